"""
流式数据编解码工具

- 解析 Ollama 返回的 NDJSON（每行一个 JSON 对象）
- 生成 OpenAI 兼容的 SSE 数据帧
"""
from typing import Optional

from pydantic import BaseModel, ValidationError

from ollama2openai.models.ollama import OllamaChatResponse

SSE_DONE = "data: [DONE]\n\n"


def format_sse(payload: BaseModel) -> str:
    """把响应块编码为一个 SSE 事件"""
    return f"data: {payload.model_dump_json()}\n\n"


def parse_chat_line(line: str) -> Optional[OllamaChatResponse]:
    """
    解析一行 NDJSON 为聊天响应单元

    Args:
        line: 原始文本行

    Returns:
        解析后的单元；空行返回 None

    Raises:
        ValueError: 行内容不是合法的聊天响应 JSON
    """
    line = line.strip()
    if not line:
        return None
    try:
        return OllamaChatResponse.model_validate_json(line)
    except ValidationError as e:
        raise ValueError(f"无法解析的流式数据: {line[:200]}") from e
