"""
API 依赖项
"""
from typing import Optional

from fastapi import Header, Request

from ollama2openai.config import Settings
from ollama2openai.services.chat_service import ChatService
from ollama2openai.services.usage_store import UsageStore
from ollama2openai.utils.errors import ErrInvalidAPIKey, ErrMissingAPIKey
from ollama2openai.utils.logger import get_logger

logger = get_logger(__name__)

# 未携带凭证时的别名
UNKNOWN_ALIAS = "unknown"
# 鉴权关闭时携带了凭证的别名
DEFAULT_ALIAS = "default"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_usage_store(request: Request) -> UsageStore:
    return request.app.state.usage_store


def get_chat_service(request: Request) -> ChatService:
    state = request.app.state
    return ChatService(state.ollama_client, state.usage_store, state.settings)


def extract_api_key(authorization: Optional[str], x_api_key: Optional[str]) -> Optional[str]:
    """
    从请求头中取出 API Key

    支持两种方式：
    1. Authorization: Bearer <token> (OpenAI 兼容格式)
    2. X-API-Key: <token> (备用方式)
    """
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    return None


async def verify_api_key(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
) -> str:
    """
    验证 API Key 并解析出用于用量统计的别名

    Returns:
        str: 别名；未配置任何 API Key 时鉴权关闭，返回 "default" 或 "unknown"

    Raises:
        APIError: 缺少 API Key（401）或 API Key 无效（403）
    """
    settings = get_settings(request)
    api_key = extract_api_key(authorization, x_api_key)

    # 未配置 API Key，跳过验证
    if not settings.auth_enabled:
        return DEFAULT_ALIAS if api_key else UNKNOWN_ALIAS

    if not api_key:
        logger.warning("请求缺少 API Key")
        raise ErrMissingAPIKey

    alias = settings.get_alias(api_key)
    if not alias:
        logger.warning(f"API Key 验证失败: {api_key[:6]}...")
        raise ErrInvalidAPIKey

    logger.debug(f"API Key 验证通过, alias={alias}")
    return alias
