"""
请求上下文中间件

为每个请求分配请求 ID（沿用客户端传入的 X-Request-ID），写入响应头和日志上下文，
并记录请求开始与结束。实现为纯 ASGI 中间件，不包装流式响应的发送与断开检测。
"""
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ollama2openai.utils.logger import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware:

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        status_code = 500
        start = time.perf_counter()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message).append(REQUEST_ID_HEADER, request_id)
            await send(message)

        logger.info(f"➡️ {scope['method']} {scope['path']} 开始")
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(f"⬅️ {scope['method']} {scope['path']} 完成 status={status_code} ({elapsed_ms:.1f}ms)")
            request_id_var.reset(token)
