"""
OpenAI <-> Ollama 协议转换

全部是无副作用的纯函数。不认识的内容片段直接跳过，不抛错；
请求体本身是否合法由 Pydantic 在路由层校验。
"""
import re
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ollama2openai.models.ollama import (
    OllamaChatMessage,
    OllamaChatRequest,
    OllamaChatResponse,
    OllamaModelInfo,
)
from ollama2openai.models.schemas import (
    AssistantMessage,
    ChatCompletionChoice,
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ChunkChoice,
    ChunkDelta,
    ContentPart,
    ModelInfo,
    ResponseObject,
    ResponseOutputContent,
    ResponseOutputItem,
    ResponseRequest,
    Usage,
)

# 被当作文本处理的片段类型（Response API 使用 input_text）
TEXT_PART_TYPES = ("text", "input_text")
IMAGE_PART_TYPES = ("image_url", "input_image")

# RFC3339 小数秒，Ollama 返回纳秒精度，Python 只支持到微秒
_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def new_chat_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


def new_response_id() -> str:
    return f"resp_{uuid.uuid4()}"


def extract_base64_image(url: str) -> Optional[str]:
    """
    从 data URL 中取出 base64 数据

    只接受 data:image 开头且按逗号恰好分成两段的 URL，其他情况返回 None。

    Examples:
        >>> extract_base64_image("data:image/png;base64,AAAA")
        'AAAA'
        >>> extract_base64_image("https://example.com/a.png") is None
        True
    """
    if not url.startswith("data:image"):
        return None
    segments = url.split(",")
    if len(segments) != 2:
        return None
    return segments[1]


def build_content_from_parts(parts: Sequence[ContentPart]) -> Tuple[str, List[str]]:
    """
    把多模态内容片段拆成纯文本和图片列表

    文本片段按顺序直接拼接；图片只保留 data URL 中的 base64 数据。

    Returns:
        (文本, base64 图片列表)
    """
    text_parts: List[str] = []
    images: List[str] = []

    for part in parts:
        if part.type in TEXT_PART_TYPES:
            if part.text:
                text_parts.append(part.text)
        elif part.type in IMAGE_PART_TYPES:
            if part.image_url is None:
                continue
            image = extract_base64_image(part.image_url.url)
            if image is not None:
                images.append(image)

    return "".join(text_parts), images


def to_ollama_message(message: ChatMessage) -> OllamaChatMessage:
    if isinstance(message.content, str):
        return OllamaChatMessage(role=message.role, content=message.content)

    text, images = build_content_from_parts(message.content)
    return OllamaChatMessage(role=message.role, content=text, images=images or None)


def build_options(request: ChatCompletionRequest) -> Optional[Dict[str, Any]]:
    """采样参数映射为 Ollama options，只包含请求中出现的字段"""
    options: Dict[str, Any] = {}
    if request.temperature is not None:
        options["temperature"] = request.temperature
    if request.top_p is not None:
        options["top_p"] = request.top_p
    if request.max_tokens is not None:
        options["num_predict"] = request.max_tokens
    return options or None


def to_ollama_chat_request(request: ChatCompletionRequest) -> OllamaChatRequest:
    """OpenAI 聊天请求 -> Ollama /api/chat 请求"""
    return OllamaChatRequest(
        model=request.model,
        messages=[to_ollama_message(message) for message in request.messages],
        stream=request.stream,
        options=build_options(request),
    )


def to_chat_completion_response(
    unit: OllamaChatResponse,
    model: str,
    prompt_tokens: int,
    completion_tokens: int,
) -> ChatCompletionResponse:
    """
    Ollama 非流式响应 -> OpenAI chat.completion

    Ollama 的 done 标志不区分自然结束和长度截断，finish_reason 固定为 stop。
    """
    return ChatCompletionResponse(
        id=new_chat_id(),
        created=int(time.time()),
        model=model,
        choices=[
            ChatCompletionChoice(
                index=0,
                message=AssistantMessage(role="assistant", content=unit.message.content),
                finish_reason="stop",
            )
        ],
        usage=Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


def to_stream_chunk(
    unit: OllamaChatResponse,
    model: str,
    chunk_id: str,
    created: int,
) -> ChatCompletionChunk:
    """Ollama 流式单元 -> OpenAI chat.completion.chunk"""
    return ChatCompletionChunk(
        id=chunk_id,
        created=created,
        model=model,
        choices=[
            ChunkChoice(
                index=0,
                delta=ChunkDelta(role=unit.message.role or None, content=unit.message.content),
                finish_reason="stop" if unit.done else "",
            )
        ],
    )


def parse_timestamp(value: str) -> int:
    """
    解析 Ollama 的 RFC3339 时间为 Unix 秒

    为空或无法解析时返回当前时间。

    Examples:
        >>> parse_timestamp("2024-05-01T00:00:00Z")
        1714521600
    """
    if not value:
        return int(time.time())

    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    normalized = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)

    try:
        return int(datetime.fromisoformat(normalized).timestamp())
    except ValueError:
        return int(time.time())


def to_model_info(model: OllamaModelInfo) -> ModelInfo:
    return ModelInfo(
        id=model.name,
        object="model",
        created=parse_timestamp(model.modified_at),
        owned_by="ollama",
    )


def response_request_to_chat_request(request: ResponseRequest) -> ChatCompletionRequest:
    """
    Response API 请求 -> 聊天请求

    - 字符串 input 视为一条 user 消息
    - 列表 input 每项转为一条消息，缺省 role 为 user，没有内容的项跳过
    - instructions 作为首条 system 消息
    """
    messages: List[ChatMessage] = []

    if request.instructions:
        messages.append(ChatMessage(role="system", content=request.instructions))

    if isinstance(request.input, str):
        messages.append(ChatMessage(role="user", content=request.input))
    elif isinstance(request.input, list):
        for item in request.input:
            if item.content is None:
                continue
            if isinstance(item.content, str):
                content: Any = item.content
            else:
                content = [
                    ContentPart(type="text", text=part.text)
                    if part.type in TEXT_PART_TYPES else part
                    for part in item.content
                ]
            messages.append(ChatMessage(role=item.role or "user", content=content))

    return ChatCompletionRequest(
        model=request.model,
        messages=messages,
        temperature=request.temperature,
        top_p=request.top_p,
        max_tokens=request.max_output_tokens,
        stream=request.stream,
    )


def to_response_object(response: ChatCompletionResponse) -> ResponseObject:
    """聊天补全响应 -> Response API 响应"""
    text = response.choices[0].message.content if response.choices else ""
    return ResponseObject(
        id=new_response_id(),
        created=response.created,
        model=response.model,
        output=[
            ResponseOutputItem(
                type="message",
                role="assistant",
                content=[ResponseOutputContent(type="text", text=text)],
            )
        ],
        usage=response.usage.model_copy(),
    )
