"""
OpenAI 兼容的 Pydantic 数据模型定义
"""
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageURL(BaseModel):
    """图片地址，支持 data URL（base64）"""
    url: str
    detail: Optional[str] = None  # "auto", "low", "high"


class ContentPart(BaseModel):
    """
    多模态消息内容片段

    type 为 text 时使用 text 字段，为 image_url 时使用 image_url 字段。
    其他类型同样可以解析，由转换层跳过；字段值不可用时视为缺失。
    """
    model_config = ConfigDict(extra='allow')

    type: str
    text: Optional[str] = None
    image_url: Optional[ImageURL] = None

    @field_validator('text', mode='before')
    @classmethod
    def non_string_text_as_missing(cls, v):
        return v if isinstance(v, str) else None

    @field_validator('image_url', mode='before')
    @classmethod
    def normalize_image_url(cls, v):
        # 部分客户端直接传字符串 URL
        if isinstance(v, str):
            return {"url": v}
        if isinstance(v, ImageURL) or (isinstance(v, dict) and isinstance(v.get("url"), str)):
            return v
        return None


def drop_malformed_parts(value):
    """列表形式的 content 中，丢弃不是对象或缺少字符串 type 的片段"""
    if not isinstance(value, list):
        return value
    return [
        part for part in value
        if isinstance(part, ContentPart)
        or (isinstance(part, dict) and isinstance(part.get("type"), str))
    ]


class ChatMessage(BaseModel):
    """聊天消息模型"""
    model_config = ConfigDict(extra='allow')

    role: str
    content: Union[str, List[ContentPart]] = ""  # 纯文本或多模态内容（文本+图片）
    name: Optional[str] = None

    @field_validator('content', mode='before')
    @classmethod
    def normalize_content(cls, v):
        # assistant 的工具调用消息 content 可能为 null
        return "" if v is None else drop_malformed_parts(v)


class ChatCompletionRequest(BaseModel):
    """聊天完成请求模型，未使用的 OpenAI 字段（stop、tools 等）会被忽略"""
    model_config = ConfigDict(extra='ignore')

    model: str = ""
    messages: List[ChatMessage] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False

    @field_validator('model', mode='before')
    @classmethod
    def null_model_as_empty(cls, v):
        return "" if v is None else v

    @field_validator('stream', mode='before')
    @classmethod
    def null_stream_as_false(cls, v):
        return False if v is None else v


class Usage(BaseModel):
    """Token 用量"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str = ""


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: str = "stop"


class ChatCompletionResponse(BaseModel):
    """聊天完成响应模型"""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: Usage


class ChunkDelta(BaseModel):
    role: Optional[str] = None
    content: str = ""


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta
    finish_reason: str = ""


class ChatCompletionChunk(BaseModel):
    """流式响应块（chat.completion.chunk）"""
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]


class EmbeddingRequest(BaseModel):
    """向量化请求，input 可以是单个字符串或字符串列表"""
    model_config = ConfigDict(extra='ignore')

    model: str = ""
    input: Union[str, List[str]]

    @field_validator('model', mode='before')
    @classmethod
    def null_model_as_empty(cls, v):
        return "" if v is None else v

    def inputs(self) -> List[str]:
        if isinstance(self.input, str):
            return [self.input]
        return list(self.input)


class EmbeddingData(BaseModel):
    object: str = "embedding"
    embedding: List[float]
    index: int


class EmbeddingUsage(BaseModel):
    prompt_tokens: int = 0
    total_tokens: int = 0


class EmbeddingResponse(BaseModel):
    object: str = "list"
    data: List[EmbeddingData]
    model: str
    usage: EmbeddingUsage


class ModelInfo(BaseModel):
    """模型信息模型"""
    id: str
    object: str = "model"
    created: int
    owned_by: str = "ollama"


class ModelsResponse(BaseModel):
    """模型列表响应模型"""
    object: str = "list"
    data: List[ModelInfo]


class ResponseInputItem(BaseModel):
    """Response API 的输入消息"""
    model_config = ConfigDict(extra='allow')

    role: str = "user"
    content: Union[str, List[ContentPart], None] = None

    @field_validator('content', mode='before')
    @classmethod
    def skip_malformed_parts(cls, v):
        return drop_malformed_parts(v)


class ResponseRequest(BaseModel):
    """Response API 请求（简化实现）"""
    model_config = ConfigDict(extra='ignore')

    model: str = ""
    input: Union[str, List[ResponseInputItem], None] = None
    instructions: Optional[str] = None
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stream: bool = False

    @field_validator('model', mode='before')
    @classmethod
    def null_model_as_empty(cls, v):
        return "" if v is None else v


class ResponseOutputContent(BaseModel):
    type: str = "text"
    text: str = ""


class ResponseOutputItem(BaseModel):
    type: str = "message"
    role: str = "assistant"
    content: List[ResponseOutputContent] = Field(default_factory=list)


class ResponseObject(BaseModel):
    """Response API 响应"""
    id: str
    object: str = "response"
    created: int
    model: str
    output: List[ResponseOutputItem]
    usage: Usage


class UsageRecord(BaseModel):
    """单个别名的累计用量"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    embedding_tokens: int = 0
    total_requests: int = 0
    embedding_requests: int = 0


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


UsageSnapshot = Dict[str, UsageRecord]
