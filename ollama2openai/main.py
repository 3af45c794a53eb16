"""
FastAPI 应用主入口
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ollama2openai.api.middleware import RequestContextMiddleware
from ollama2openai.api.usage import router as system_router
from ollama2openai.api.v1 import router as v1_router
from ollama2openai.config import Settings, get_settings
from ollama2openai.services.ollama_client import OllamaClient, OllamaError
from ollama2openai.services.usage_store import InMemoryUsageStore, UsageStore
from ollama2openai.utils.errors import (
    APIError,
    ErrInternalServer,
    ErrInvalidRequest,
    ErrMethodNotAllowed,
    error_for_status,
)
from ollama2openai.utils.logger import configure_root_logger, get_logger, parse_level

logger = get_logger(__name__)

VERSION = "1.0.0"

# 定义一些颜色代码
GREEN = "\033[32m"
RESET = "\033[0m"

project_logo_str = fr"""{GREEN}
  ___  _ _                        ____    ___                    _    ___
 / _ \| | | __ _ _ __ ___   __ _|___ \  / _ \ _ __   ___ _ __  / \  |_ _|
| | | | | |/ _` | '_ ` _ \ / _` | __) || | | | '_ \ / _ \ '_ \/ _ \  | |
| |_| | | | (_| | | | | | | (_| |/ __/ | |_| | |_) |  __/ | | / ___ \ | |
 \___/|_|_|\__,_|_| |_| |_|\__,_|_____| \___/| .__/ \___|_| |_/_/   \_\___|
                                            |_|
--------------------------------------------------------------------------
Ollama2OpenAI - OpenAI 兼容的 Ollama 网关
版本     : {VERSION}{RESET}"""


def error_response(error: APIError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=error.headers)


async def verify_ollama_connection(client: OllamaClient) -> None:
    """检查 Ollama 是否可用并打印模型列表，失败只记录日志"""
    logger.info(f"正在检查 Ollama 连接: {client.base_url}")
    try:
        tags = await client.list_models()
    except OllamaError as e:
        logger.error(f"❌ 无法连接 Ollama {client.base_url}: {e}")
        return

    if not tags.models:
        logger.warning("⚠️ Ollama 中没有可用模型")
        return
    logger.info("✅ Ollama 连接正常，可用模型:")
    for model in tags.models:
        logger.info(f"  - {model.name}")


def register_exception_handlers(app: FastAPI) -> None:
    """所有错误统一转换为 OpenAI 格式的错误响应"""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            error = ErrMethodNotAllowed
        else:
            error = error_for_status(exc.status_code, str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=error.to_dict(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return error_response(ErrInvalidRequest.with_message(f"Invalid request body: {details}"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"未处理的异常: {exc}", exc_info=exc)
        return error_response(ErrInternalServer)


def create_app(
    settings: Optional[Settings] = None,
    ollama_client: Optional[OllamaClient] = None,
    usage_store: Optional[UsageStore] = None,
) -> FastAPI:
    """
    创建应用

    Args:
        settings: 应用配置，默认从环境变量 / .env / YAML 加载
        ollama_client: Ollama 客户端，未提供时在启动阶段创建并在关闭时释放
        usage_store: 用量统计存储，默认使用内存实现
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        应用生命周期管理

        - 启动时创建 Ollama 客户端（未注入时）并检查连接
        - 关闭时释放自己创建的客户端
        """
        owns_client = app.state.ollama_client is None
        if owns_client:
            app.state.ollama_client = OllamaClient(settings.ollama_url, timeout=settings.timeout)

        print(project_logo_str)
        logger.info(f"🚀 Ollama2OpenAI 启动: {settings.address} -> {settings.ollama_url}")
        if not settings.auth_enabled:
            logger.warning("API_KEYS 未配置，跳过鉴权验证")
        logger.debug(f"已配置别名: {json.dumps(sorted(set(settings.api_keys.values())), ensure_ascii=False)}")

        if settings.verify_ollama_on_startup:
            await verify_ollama_connection(app.state.ollama_client)

        yield

        logger.info("🛑 正在关闭应用...")
        if owns_client:
            await app.state.ollama_client.aclose()
            app.state.ollama_client = None
        logger.info("✅ 应用关闭完成")

    app = FastAPI(title="Ollama2OpenAI", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.ollama_client = ollama_client
    app.state.usage_store = usage_store or InMemoryUsageStore()

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(system_router)
    app.include_router(v1_router)

    @app.get("/")
    async def root():
        """根路径，返回 API 基本信息"""
        return {"message": "Ollama2OpenAI is running", "version": VERSION}

    return app


configure_root_logger(level=get_settings().log_level, use_color=True)

app = create_app()


def run() -> None:
    settings = get_settings()
    log_level = logging.getLevelName(parse_level(settings.log_level)).lower()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=log_level)


if __name__ == "__main__":
    run()
