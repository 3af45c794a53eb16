"""
Ollama 原生 API 数据模型
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OllamaChatMessage(BaseModel):
    """Ollama 消息：content 始终是纯文本，图片单独放在 images 中（base64）"""
    model_config = ConfigDict(extra='ignore')

    role: str = "assistant"
    content: str = ""
    images: Optional[List[str]] = None


class OllamaChatRequest(BaseModel):
    model: str
    messages: List[OllamaChatMessage]
    stream: bool = False
    format: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    keep_alive: Optional[Any] = None

    def to_payload(self) -> Dict[str, Any]:
        # stream 必须显式发送，Ollama 缺省为流式
        payload = self.model_dump(exclude_none=True)
        payload["stream"] = self.stream
        return payload


class OllamaChatResponse(BaseModel):
    """
    Ollama 聊天响应

    流式模式下每一行 JSON 是一个单元，done=true 的单元表示一次补全结束，
    并携带性能计数。
    """
    model_config = ConfigDict(extra='ignore')

    model: str = ""
    created_at: str = ""
    message: OllamaChatMessage = Field(default_factory=OllamaChatMessage)
    done: bool = False
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None


class OllamaEmbeddingRequest(BaseModel):
    model: str
    input: str
    options: Optional[Dict[str, Any]] = None
    keep_alive: Optional[Any] = None


class OllamaEmbeddingResponse(BaseModel):
    model_config = ConfigDict(extra='ignore')

    model: str = ""
    embeddings: List[List[float]] = Field(default_factory=list)
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None


class OllamaModelDetails(BaseModel):
    model_config = ConfigDict(extra='ignore')

    parent_model: Optional[str] = None
    format: Optional[str] = None
    family: Optional[str] = None
    families: Optional[List[str]] = None
    parameter_size: Optional[str] = None
    quantization_level: Optional[str] = None


class OllamaModelInfo(BaseModel):
    model_config = ConfigDict(extra='ignore', protected_namespaces=())

    name: str
    model: str = ""
    modified_at: str = ""
    size: int = 0
    digest: str = ""
    details: Optional[OllamaModelDetails] = None


class OllamaTagsResponse(BaseModel):
    """/api/tags 响应（模型列表）"""
    models: List[OllamaModelInfo] = Field(default_factory=list)
