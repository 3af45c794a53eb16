"""
Pytest configuration and shared fixtures.

The Ollama backend is replaced by FakeOllama on httpx.MockTransport, so the
real OllamaClient and ChatStream code paths run against it.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ollama2openai.config import Settings
from ollama2openai.main import create_app
from ollama2openai.services.chat_service import ChatService
from ollama2openai.services.ollama_client import OllamaClient
from ollama2openai.services.usage_store import InMemoryUsageStore

from fakes import API_KEYS, OLLAMA_BASE_URL, FakeOllama


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest_asyncio.fixture
async def ollama_client(fake_ollama: FakeOllama) -> AsyncGenerator[OllamaClient, None]:
    http_client = httpx.AsyncClient(
        base_url=OLLAMA_BASE_URL,
        transport=httpx.MockTransport(fake_ollama.handler),
    )
    client = OllamaClient(OLLAMA_BASE_URL, http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def usage_store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(api_keys=API_KEYS, verify_ollama_on_startup=False)


@pytest.fixture
def chat_service(ollama_client: OllamaClient, usage_store: InMemoryUsageStore, settings: Settings) -> ChatService:
    return ChatService(ollama_client, usage_store, settings)


@pytest.fixture
def app(settings: Settings, ollama_client: OllamaClient, usage_store: InMemoryUsageStore):
    return create_app(settings=settings, ollama_client=ollama_client, usage_store=usage_store)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing API endpoints.

    Requests are authenticated as alias "alice" unless a test overrides the
    Authorization header.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": "Bearer sk-alice"},
    ) as ac:
        yield ac
