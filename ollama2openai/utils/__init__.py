"""
工具函数模块
"""
from .logger import get_logger, configure_root_logger, parse_level
from .tokenizer import (
    estimate_token_count,
    estimate_messages_token_count,
    estimate_embedding_input,
)
from .stream_parser import format_sse, parse_chat_line, SSE_DONE
from .http_client import create_async_client

__all__ = [
    'get_logger',
    'configure_root_logger',
    'parse_level',
    'estimate_token_count',
    'estimate_messages_token_count',
    'estimate_embedding_input',
    'format_sse',
    'parse_chat_line',
    'SSE_DONE',
    'create_async_client',
]

# 注意：converter 与 errors 不在 __init__.py 中导入，请直接从对应模块导入
