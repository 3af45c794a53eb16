"""
Ollama API 客户端

- chat / embed / list_models：单次请求
- open_chat_stream：流式聊天，返回可取消的响应单元序列
"""
import asyncio
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from ollama2openai.models.ollama import (
    OllamaChatRequest,
    OllamaChatResponse,
    OllamaEmbeddingRequest,
    OllamaEmbeddingResponse,
    OllamaTagsResponse,
)
from ollama2openai.utils.http_client import create_async_client
from ollama2openai.utils.logger import get_logger
from ollama2openai.utils.stream_parser import parse_chat_line

logger = get_logger(__name__)

# 生产者与消费者之间的缓冲单元数
STREAM_QUEUE_SIZE = 10

# 队列中的结束标记
_END = object()


class OllamaError(Exception):
    """Ollama 调用失败的基类"""


class OllamaConnectionError(OllamaError):
    """网络或连接失败"""


class OllamaTimeoutError(OllamaError):
    """请求超时"""


class OllamaStatusError(OllamaError):
    """Ollama 返回非 200 状态码"""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"ollama returned error: {status_code} - {body}")
        self.status_code = status_code
        self.body = body


class OllamaDecodeError(OllamaError):
    """响应内容无法解析"""


class ChatStream:
    """
    Ollama 流式聊天响应

    后台生产者任务逐行解码 NDJSON，把 OllamaChatResponse 放入有界队列；
    消费者通过 async for 逐个取出。

    结束条件：
    - 收到 done=true 的单元（该单元仍会交付）
    - 底层流在 done 之前结束
    - 调用 aclose()，或消费者所在任务被取消

    解码错误只会在一次 __anext__ 中抛出，之后迭代直接结束。
    aclose() 会取消生产者并关闭 HTTP 响应，可重复调用。
    """

    def __init__(self, response: httpx.Response, queue_size: int = STREAM_QUEUE_SIZE):
        self._response = response
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._error: Optional[BaseException] = None
        self._exhausted = False
        self._closed = False
        self._producer = asyncio.create_task(self._produce())

    @property
    def closed(self) -> bool:
        return self._closed

    async def _produce(self) -> None:
        line_count = 0
        try:
            async for line in self._response.aiter_lines():
                unit = parse_chat_line(line)
                if unit is None:
                    continue
                line_count += 1
                await self._queue.put(unit)
                if unit.done:
                    break
            logger.debug(f"✅ 流式响应接收完成，共 {line_count} 个单元")
        except ValueError as e:
            self._error = OllamaDecodeError(str(e))
        except httpx.TimeoutException as e:
            self._error = OllamaTimeoutError(f"stream read timeout: {e}")
        except httpx.HTTPError as e:
            self._error = OllamaConnectionError(f"stream read failed: {e}")
        except Exception as e:
            # 交给消费者处理，避免消费者一直等待
            logger.error(f"流式响应解码异常: {e}", exc_info=True)
            self._error = OllamaError(str(e))
        finally:
            await self._response.aclose()
        await self._queue.put(_END)

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> OllamaChatResponse:
        unit = await self.receive()
        if unit is None:
            raise StopAsyncIteration
        return unit

    async def receive(self) -> Optional[OllamaChatResponse]:
        """
        取下一个单元，流结束后返回 None

        等待期间被取消不会丢失单元，可以放在 asyncio.wait_for 中使用。
        """
        if self._exhausted or self._closed:
            return None

        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            return None
        return item

    async def aclose(self) -> None:
        """停止生产者并释放后端连接，可重复调用"""
        self._closed = True
        if not self._producer.done():
            self._producer.cancel()
        try:
            await asyncio.gather(self._producer, return_exceptions=True)
        finally:
            # 生产者尚未启动就被取消时不会执行自己的 finally
            await self._response.aclose()

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class OllamaClient:
    """Ollama API 客户端类"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 300,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        初始化客户端

        Args:
            base_url: Ollama 地址，例如 http://localhost:11434
            timeout: 请求超时（秒）
            http_client: 外部提供的 httpx 客户端（此时由调用方负责关闭）
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or create_async_client(self.base_url, timeout)

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("已关闭 Ollama HTTP 客户端")

    async def _request(
        self,
        method: str,
        path: str,
        response_model: type,
        payload: Optional[dict] = None,
    ) -> BaseModel:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Ollama 请求超时 {method} {path}: {e}")
            raise OllamaTimeoutError(f"request timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ollama 请求失败 {method} {path}: {e}")
            raise OllamaConnectionError(f"failed to send request: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Ollama 返回错误 {method} {path}: {response.status_code}")
            raise OllamaStatusError(response.status_code, response.text)

        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as e:
            raise OllamaDecodeError(f"failed to decode response: {e}") from e

    async def chat(self, request: OllamaChatRequest) -> OllamaChatResponse:
        """非流式聊天"""
        payload = request.model_copy(update={"stream": False}).to_payload()
        return await self._request("POST", "/api/chat", OllamaChatResponse, payload)

    async def open_chat_stream(self, request: OllamaChatRequest) -> ChatStream:
        """
        发起流式聊天请求

        非 200 状态码在返回前就会抛出，此时连接已释放。
        返回的 ChatStream 必须由调用方关闭（aclose 或 async with）。
        """
        payload = request.model_copy(update={"stream": True}).to_payload()
        http_request = self._client.build_request("POST", "/api/chat", json=payload)

        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            logger.error(f"Ollama 流式请求超时: {e}")
            raise OllamaTimeoutError(f"request timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ollama 流式请求失败: {e}")
            raise OllamaConnectionError(f"failed to send request: {e}") from e

        if response.status_code != 200:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            logger.warning(f"Ollama 流式响应状态码错误: {response.status_code}")
            raise OllamaStatusError(response.status_code, body)

        logger.debug(f"开始接收流式数据, model={request.model}")
        return ChatStream(response)

    async def embed(self, request: OllamaEmbeddingRequest) -> OllamaEmbeddingResponse:
        """向量化单条输入"""
        payload = request.model_dump(exclude_none=True)
        return await self._request("POST", "/api/embed", OllamaEmbeddingResponse, payload)

    async def list_models(self) -> OllamaTagsResponse:
        """列出本地模型"""
        return await self._request("GET", "/api/tags", OllamaTagsResponse)
