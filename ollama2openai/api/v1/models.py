"""
模型相关 API 路由
"""
from fastapi import APIRouter, Depends

from ollama2openai.api.dependencies import get_chat_service, verify_api_key
from ollama2openai.models.schemas import ModelInfo, ModelsResponse
from ollama2openai.services.chat_service import ChatService

router = APIRouter(tags=["models"], dependencies=[Depends(verify_api_key)])


@router.get("/models", response_model=ModelsResponse)
async def get_models(chat_service: ChatService = Depends(get_chat_service)):
    """
    Get available models endpoint compatible with OpenAI API format.
    模型列表来自 Ollama 的 /api/tags。
    """
    return await chat_service.list_models()


@router.get("/models/{model_name:path}", response_model=ModelInfo)
async def get_model(model_name: str, chat_service: ChatService = Depends(get_chat_service)):
    return await chat_service.get_model(model_name)
