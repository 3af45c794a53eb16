"""
健康检查与用量统计路由（无需鉴权）
"""
from fastapi import APIRouter, Depends

from ollama2openai.models.schemas import UsageSnapshot
from ollama2openai.services.usage_store import UsageStore
from ollama2openai.api.dependencies import get_usage_store

router = APIRouter(tags=["system"])


@router.get("/health")
async def health():
    """健康检查端点"""
    return {"status": "healthy"}


@router.get("/usage", response_model=UsageSnapshot)
async def usage(usage_store: UsageStore = Depends(get_usage_store)):
    """按别名返回累计用量"""
    return usage_store.snapshot()
