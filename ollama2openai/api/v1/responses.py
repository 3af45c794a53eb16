"""
Response API 路由（简化实现）

请求在内部转换为聊天补全；流式时输出 chat.completion.chunk 数据帧。
"""
from fastapi import APIRouter, Depends

from ollama2openai.api.dependencies import get_chat_service, verify_api_key
from ollama2openai.api.v1.chat import SSEResponse
from ollama2openai.models.schemas import ResponseObject, ResponseRequest
from ollama2openai.services.chat_service import ChatService

router = APIRouter(tags=["responses"])


@router.post("/responses", response_model=ResponseObject)
async def create_response(
    request: ResponseRequest,
    alias: str = Depends(verify_api_key),
    chat_service: ChatService = Depends(get_chat_service),
):
    if request.stream:
        relay = await chat_service.stream_response(request, alias)
        return SSEResponse(relay)

    return await chat_service.create_response(request, alias)
