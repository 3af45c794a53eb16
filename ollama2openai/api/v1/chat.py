"""
聊天相关 API 路由
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ollama2openai.api.dependencies import get_chat_service, verify_api_key
from ollama2openai.models.schemas import ChatCompletionRequest, ChatCompletionResponse
from ollama2openai.services.chat_service import ChatService, StreamRelay
from ollama2openai.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class SSEResponse(StreamingResponse):
    """
    SSE 流式响应

    无论正常结束、客户端断开还是发送失败，都会关闭 StreamRelay，
    从而释放后端连接并记录用量。
    """

    def __init__(self, relay: StreamRelay):
        super().__init__(relay, media_type="text/event-stream", headers=SSE_HEADERS)
        self.relay = relay

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay.aclose()


@router.post("/chat/completions", response_model=ChatCompletionResponse)
async def chat_completions(
    request: ChatCompletionRequest,
    alias: str = Depends(verify_api_key),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Chat completions endpoint compatible with OpenAI API format.
    stream=true 时返回 text/event-stream，以 data: [DONE] 结束。
    """
    logger.debug(
        f"聊天请求: alias={alias}, model={request.model!r}, "
        f"messages={len(request.messages)}, stream={request.stream}"
    )

    if request.stream:
        relay = await chat_service.stream_chat_completion(request, alias)
        return SSEResponse(relay)

    return await chat_service.create_chat_completion(request, alias)
