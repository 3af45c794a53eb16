"""
向量化 API 路由
"""
from fastapi import APIRouter, Depends

from ollama2openai.api.dependencies import get_chat_service, verify_api_key
from ollama2openai.models.schemas import EmbeddingRequest, EmbeddingResponse
from ollama2openai.services.chat_service import ChatService

router = APIRouter(tags=["embeddings"])


@router.post("/embeddings", response_model=EmbeddingResponse)
async def create_embeddings(
    request: EmbeddingRequest,
    alias: str = Depends(verify_api_key),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Embeddings endpoint compatible with OpenAI API format."""
    return await chat_service.create_embeddings(request, alias)
