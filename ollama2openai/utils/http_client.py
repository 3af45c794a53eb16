"""
HTTP 客户端工具函数
统一创建带连接池的异步 httpx 客户端
"""
from typing import Optional

import httpx

from ollama2openai.utils.logger import get_logger

logger = get_logger(__name__)

# 连接超时（秒），读取超时使用配置的请求超时
DEFAULT_CONNECT_TIMEOUT = 5.0


def build_timeout(timeout: float, connect: Optional[float] = None) -> httpx.Timeout:
    """
    构建 httpx 超时配置

    Args:
        timeout: 读取/写入超时（秒）
        connect: 连接超时（秒），默认 DEFAULT_CONNECT_TIMEOUT

    Returns:
        httpx.Timeout 实例
    """
    return httpx.Timeout(
        timeout,
        connect=connect if connect is not None else min(DEFAULT_CONNECT_TIMEOUT, timeout),
        pool=5.0,
    )


def create_async_client(
    base_url: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    创建异步HTTP客户端
    使用连接池复用TCP连接，所有请求共享一个客户端

    Args:
        base_url: 后端基础 URL
        timeout: 请求超时（秒）
        transport: 自定义传输层（测试时注入 MockTransport）

    Returns:
        httpx.AsyncClient实例
    """
    limits = httpx.Limits(
        max_keepalive_connections=20,  # 保持活跃的连接数
        max_connections=100,            # 最大连接数
        keepalive_expiry=30.0           # 连接保持时间（秒）
    )
    client = httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        limits=limits,
        timeout=build_timeout(timeout),
        headers={"content-type": "application/json", "accept": "application/json"},
        transport=transport,
        follow_redirects=True,
    )
    logger.debug(f"已创建异步HTTP客户端: {base_url}")
    return client
