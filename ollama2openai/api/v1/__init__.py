"""
API v1 路由模块
"""
from fastapi import APIRouter

from ollama2openai.models.schemas import ErrorResponse

from . import chat, embeddings, models, responses

# 所有 v1 接口共用的错误响应（仅用于 OpenAPI 文档）
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 503, 504)
}

router = APIRouter(prefix="/v1", responses=ERROR_RESPONSES)

router.include_router(chat.router)
router.include_router(embeddings.router)
router.include_router(models.router)
router.include_router(responses.router)
