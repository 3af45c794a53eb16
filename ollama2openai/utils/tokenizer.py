"""
Token 数量估算

这是启发式估算而不是真正的分词器，结果只是近似值。
精确计数需要 tiktoken 之类的模型分词器，本服务只用它做用量统计。
"""
import re
from typing import Any, Iterable, List, Mapping, Union

from ollama2openai.models.schemas import ChatMessage, ContentPart

# 代码特征：函数/类关键字或花括号
CODE_MARKERS = ("func ", "function ", "def ", "class ", "{", "}")

CHINESE_PATTERN = re.compile(r"[\u4e00-\u9fa5]")
JAPANESE_PATTERN = re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")
KOREAN_PATTERN = re.compile(r"[\uac00-\ud7af]")

# 每条消息的结构开销（role、分隔符等）
MESSAGE_OVERHEAD_TOKENS = 4
# 整个消息列表的补全开销
COMPLETION_OVERHEAD_TOKENS = 3
# 每张图片的固定开销
IMAGE_TOKENS = 100


def is_code_like(text: str) -> bool:
    return any(marker in text for marker in CODE_MARKERS)


def is_cjk(text: str) -> bool:
    return bool(
        CHINESE_PATTERN.search(text)
        or JAPANESE_PATTERN.search(text)
        or KOREAN_PATTERN.search(text)
    )


def estimate_token_count(text: str) -> int:
    """
    估算一段文本的 token 数量

    按优先级判断内容类型：
    1. 代码：约 2.5 字节一个 token
    2. 中日韩文字：每个字符一个 token
    3. 其他（拉丁文字等）：按字节数 / 4 与单词数 * 2 的平均值

    非空文本至少为 1，空文本为 0。

    Examples:
        >>> estimate_token_count("")
        0
        >>> estimate_token_count("你好世界")
        4
        >>> estimate_token_count("hello world")
        3
    """
    if not text:
        return 0

    byte_length = len(text.encode("utf-8"))

    if is_code_like(text):
        return max(1, int(byte_length / 2.5))

    if is_cjk(text):
        return len(text)

    char_based = int(byte_length / 4.0)
    word_based = len(text.split()) * 2
    return max(1, (char_based + word_based) // 2)


def _estimate_parts(parts: Iterable[Union[ContentPart, Mapping[str, Any]]]) -> int:
    total = 0
    for part in parts:
        if isinstance(part, ContentPart):
            text = part.text
            has_image = part.image_url is not None
        elif isinstance(part, Mapping):
            text = part.get("text")
            has_image = "image_url" in part
        else:
            continue

        if isinstance(text, str):
            total += estimate_token_count(text)
        # 图片不按文本估算，固定计费
        if has_image:
            total += IMAGE_TOKENS
    return total


def estimate_messages_token_count(messages: Iterable[Union[ChatMessage, Mapping[str, Any]]]) -> int:
    """
    估算消息列表的 token 数量

    每条消息计入 role + content + 4 个结构 token，整个列表再加 3 个补全 token。
    空列表返回 3。
    """
    total = 0
    for message in messages:
        if isinstance(message, ChatMessage):
            role, content = message.role, message.content
        else:
            role, content = message.get("role"), message.get("content")

        total += MESSAGE_OVERHEAD_TOKENS
        if isinstance(role, str):
            total += estimate_token_count(role)

        if isinstance(content, str):
            total += estimate_token_count(content)
        elif isinstance(content, list):
            total += _estimate_parts(content)

    return total + COMPLETION_OVERHEAD_TOKENS


def estimate_embedding_input(inputs: Union[str, List[Any]]) -> int:
    """估算向量化输入的 token 数量，非字符串元素忽略"""
    if isinstance(inputs, str):
        return estimate_token_count(inputs)
    return sum(estimate_token_count(item) for item in inputs if isinstance(item, str))
