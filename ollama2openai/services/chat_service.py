"""
聊天服务：处理聊天、向量化、Response API 与模型查询的业务逻辑

负责调用转换层和 Ollama 客户端，统计用量，并把后端错误统一转换为 APIError。
每个请求从进入服务层开始计时，超过 settings.timeout 返回 504（流式则直接结束）。
"""
import asyncio
import time
from typing import Awaitable, List, TypeVar

from ollama2openai.config import Settings
from ollama2openai.models.ollama import OllamaChatRequest, OllamaEmbeddingRequest
from ollama2openai.models.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingData,
    EmbeddingRequest,
    EmbeddingResponse,
    EmbeddingUsage,
    ModelInfo,
    ModelsResponse,
    ResponseObject,
    ResponseRequest,
)
from ollama2openai.services.ollama_client import (
    ChatStream,
    OllamaClient,
    OllamaConnectionError,
    OllamaError,
    OllamaStatusError,
    OllamaTimeoutError,
)
from ollama2openai.services.usage_store import UsageStore
from ollama2openai.utils import converter
from ollama2openai.utils.errors import (
    APIError,
    ErrInvalidRequest,
    ErrModelNotFound,
    ErrOllamaConnection,
    ErrRequestTimeout,
)
from ollama2openai.utils.logger import get_logger
from ollama2openai.utils.stream_parser import SSE_DONE, format_sse
from ollama2openai.utils.tokenizer import (
    estimate_embedding_input,
    estimate_messages_token_count,
    estimate_token_count,
)

logger = get_logger(__name__)

T = TypeVar("T")


def backend_error(error: OllamaError) -> APIError:
    """
    把 Ollama 客户端错误转换为 API 错误

    - 超时 -> 504
    - Ollama 返回 404（通常是模型不存在）-> 404
    - 其他 -> 503，附带原始错误信息便于排查
    """
    if isinstance(error, OllamaTimeoutError):
        return ErrRequestTimeout.with_message(f"Ollama request timeout: {error}")
    if isinstance(error, OllamaStatusError) and error.status_code == 404:
        return ErrModelNotFound.with_message(f"Ollama error: {error.body or error}")
    if isinstance(error, OllamaConnectionError):
        return ErrOllamaConnection.with_message(f"Failed to connect to Ollama: {error}")
    return ErrOllamaConnection.with_message(f"Ollama error: {error}")


async def wait_until(deadline: float, awaitable: Awaitable[T]) -> T:
    """
    在截止时间（事件循环时钟）之前等待 awaitable 完成

    Raises:
        asyncio.TimeoutError: 截止时间已到，awaitable 已被取消
    """
    remaining = deadline - asyncio.get_running_loop().time()
    return await asyncio.wait_for(awaitable, max(remaining, 0))


class StreamRelay:
    """
    把后端单元逐个转换为 SSE 数据帧的异步迭代器

    - 数据帧顺序与后端单元顺序一致
    - 无论正常结束、出错、超时还是客户端断开，用量只记录一次，按已累计的内容估算
    - 只有正常结束才发送 [DONE]；出错或超时不追加错误帧，流直接结束
    - aclose() 随时都会释放后端流，包括一次都没有迭代过的情况
    """

    def __init__(
        self,
        stream: ChatStream,
        request: ChatCompletionRequest,
        alias: str,
        usage_store: UsageStore,
        deadline: float,
    ):
        self._stream = stream
        self._request = request
        self._alias = alias
        self._usage_store = usage_store
        self._deadline = deadline
        self.chunk_id = converter.new_chat_id()
        self._created = int(time.time())
        self._content_parts: List[str] = []
        self._completed = False
        self._recorded = False
        self._events = self._relay()

    def __aiter__(self) -> "StreamRelay":
        return self

    async def __anext__(self) -> str:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        """停止转发并释放后端流，可重复调用"""
        try:
            await self._events.aclose()
        finally:
            # 生成器从未启动时它的 finally 不会执行
            await self._stream.aclose()
            self._record_usage()

    async def _relay(self):
        try:
            async with self._stream:
                while True:
                    unit = await wait_until(self._deadline, self._stream.receive())
                    if unit is None:
                        break
                    if unit.message.content:
                        self._content_parts.append(unit.message.content)
                    chunk = converter.to_stream_chunk(
                        unit, self._request.model, self.chunk_id, self._created
                    )
                    yield format_sse(chunk)
                    if unit.done:
                        break
            self._completed = True
        except OllamaError as e:
            logger.error(f"流式响应中断, chunk_id={self.chunk_id}: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ 流式响应超过请求时限，已停止, chunk_id={self.chunk_id}")
        finally:
            self._record_usage()

        if self._completed:
            yield SSE_DONE

    def _record_usage(self) -> None:
        if self._recorded:
            return
        self._recorded = True

        prompt_tokens = estimate_messages_token_count(self._request.messages)
        completion_tokens = estimate_token_count("".join(self._content_parts))
        self._usage_store.record_completion(self._alias, prompt_tokens, completion_tokens)
        logger.info(
            f"流式补全结束: alias={self._alias}, model={self._request.model}, "
            f"completed={self._completed}, "
            f"prompt_tokens={prompt_tokens}, completion_tokens={completion_tokens}"
        )


class ChatService:
    """聊天服务类"""

    def __init__(self, client: OllamaClient, usage_store: UsageStore, settings: Settings):
        """
        初始化聊天服务

        Args:
            client: Ollama 客户端
            usage_store: 用量统计存储
            settings: 应用配置（默认模型、请求时限等）
        """
        self.client = client
        self.usage_store = usage_store
        self.settings = settings

    def _new_deadline(self) -> float:
        return asyncio.get_running_loop().time() + self.settings.timeout

    def _deadline_exceeded(self, operation: str) -> APIError:
        logger.warning(f"⏱️ {operation}超过请求时限 {self.settings.timeout}s")
        return ErrRequestTimeout.with_message(
            f"Request exceeded timeout of {self.settings.timeout}s"
        )

    # ------------------------------------------------------------------
    # 聊天补全
    # ------------------------------------------------------------------

    def prepare_chat_request(self, request: ChatCompletionRequest) -> OllamaChatRequest:
        """
        校验请求并转换为 Ollama 格式

        Raises:
            APIError: messages 为空
        """
        if not request.messages:
            raise ErrInvalidRequest.with_message("messages must not be empty")
        if not request.model or not request.model.strip():
            request.model = self.settings.default_model
        return converter.to_ollama_chat_request(request)

    async def create_chat_completion(
        self,
        request: ChatCompletionRequest,
        alias: str,
    ) -> ChatCompletionResponse:
        """非流式聊天补全：调用一次后端，估算并记录用量"""
        ollama_request = self.prepare_chat_request(request)
        deadline = self._new_deadline()

        try:
            unit = await wait_until(deadline, self.client.chat(ollama_request))
        except OllamaError as e:
            logger.error(f"聊天补全失败, model={request.model}: {e}")
            raise backend_error(e) from e
        except asyncio.TimeoutError as e:
            raise self._deadline_exceeded("聊天补全") from e

        prompt_tokens = estimate_messages_token_count(request.messages)
        completion_tokens = estimate_token_count(unit.message.content)
        self.usage_store.record_completion(alias, prompt_tokens, completion_tokens)

        logger.info(
            f"聊天补全完成: alias={alias}, model={request.model}, "
            f"prompt_tokens={prompt_tokens}, completion_tokens={completion_tokens}"
        )
        return converter.to_chat_completion_response(
            unit, request.model, prompt_tokens, completion_tokens
        )

    async def stream_chat_completion(
        self,
        request: ChatCompletionRequest,
        alias: str,
    ) -> StreamRelay:
        """
        流式聊天补全

        先打开后端流，打开失败时直接抛出 APIError（客户端收到 JSON 错误）；
        成功后返回 SSE 数据帧的 StreamRelay，调用方负责 aclose()。
        """
        ollama_request = self.prepare_chat_request(request)
        deadline = self._new_deadline()

        try:
            stream = await wait_until(deadline, self.client.open_chat_stream(ollama_request))
        except OllamaError as e:
            logger.error(f"打开流式响应失败, model={request.model}: {e}")
            raise backend_error(e) from e
        except asyncio.TimeoutError as e:
            raise self._deadline_exceeded("打开流式响应") from e

        return StreamRelay(stream, request, alias, self.usage_store, deadline)

    # ------------------------------------------------------------------
    # 向量化
    # ------------------------------------------------------------------

    async def create_embeddings(self, request: EmbeddingRequest, alias: str) -> EmbeddingResponse:
        """
        向量化：每个输入单独调用一次后端，按输入顺序汇总

        任一调用失败或超过请求时限则整个请求失败，不返回部分结果，也不记录用量。
        """
        inputs = request.inputs()
        if not inputs:
            raise ErrInvalidRequest.with_message("input must not be empty")

        model = request.model.strip() or self.settings.default_embedding_model
        deadline = self._new_deadline()

        embeddings: List[List[float]] = []
        for item in inputs:
            try:
                response = await wait_until(
                    deadline, self.client.embed(OllamaEmbeddingRequest(model=model, input=item))
                )
            except OllamaError as e:
                logger.error(f"向量化失败, model={model}: {e}")
                raise backend_error(e) from e
            except asyncio.TimeoutError as e:
                raise self._deadline_exceeded("向量化") from e
            embeddings.extend(response.embeddings)

        total_tokens = estimate_embedding_input(inputs)
        self.usage_store.record_embedding(alias, total_tokens)
        logger.info(f"向量化完成: alias={alias}, model={model}, inputs={len(inputs)}, tokens={total_tokens}")

        return EmbeddingResponse(
            data=[
                EmbeddingData(embedding=embedding, index=index)
                for index, embedding in enumerate(embeddings)
            ],
            model=model,
            usage=EmbeddingUsage(prompt_tokens=total_tokens, total_tokens=total_tokens),
        )

    # ------------------------------------------------------------------
    # Response API（内部转换为聊天补全）
    # ------------------------------------------------------------------

    async def create_response(self, request: ResponseRequest, alias: str) -> ResponseObject:
        chat_request = converter.response_request_to_chat_request(request)
        chat_request.stream = False
        chat_response = await self.create_chat_completion(chat_request, alias)
        return converter.to_response_object(chat_response)

    async def stream_response(self, request: ResponseRequest, alias: str) -> StreamRelay:
        """流式 Response API，输出与聊天补全相同的数据帧"""
        chat_request = converter.response_request_to_chat_request(request)
        chat_request.stream = True
        return await self.stream_chat_completion(chat_request, alias)

    # ------------------------------------------------------------------
    # 模型
    # ------------------------------------------------------------------

    async def list_models(self) -> ModelsResponse:
        try:
            tags = await self.client.list_models()
        except OllamaError as e:
            logger.error(f"获取模型列表失败: {e}")
            raise ErrOllamaConnection.with_message(f"Failed to get models: {e}") from e
        return ModelsResponse(data=[converter.to_model_info(model) for model in tags.models])

    async def get_model(self, name: str) -> ModelInfo:
        models = await self.list_models()
        for model in models.data:
            if model.id == name:
                return model
        raise ErrModelNotFound.with_message(f"Model '{name}' not found")
