"""
In-process fake of the Ollama HTTP API, mounted on httpx.MockTransport.
"""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Set, Union

import httpx

OLLAMA_BASE_URL = "http://ollama.test"
API_KEYS = {"sk-alice": "alice", "sk-bob": "bob"}


def unit(content: str, done: bool = False, role: str = "assistant") -> dict:
    """Build one backend chat unit as Ollama would stream it."""
    return {
        "model": "llama3",
        "created_at": "2024-05-01T00:00:00Z",
        "message": {"role": role, "content": content},
        "done": done,
    }


def ndjson(units: List[Union[dict, str]]) -> bytes:
    lines = [item if isinstance(item, str) else json.dumps(item) for item in units]
    return ("\n".join(lines) + "\n").encode("utf-8")


class TrackingStream(httpx.AsyncByteStream):
    """
    Response body that records whether it was closed.

    With hold_open=True the body stalls after the given lines, like a backend
    that is still generating, until the reader goes away. delay spaces the
    lines out like a slow model.
    """

    def __init__(self, lines: List[Union[dict, str]], hold_open: bool = False, delay: float = 0):
        self.lines = lines
        self.hold_open = hold_open
        self.delay = delay
        self.closed = False
        self.lines_sent = 0

    async def __aiter__(self):
        for line in self.lines:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.lines_sent += 1
            yield ndjson([line])
        if self.hold_open:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class FakeOllama:
    """Minimal Ollama API: /api/chat, /api/embed, /api/tags."""

    def __init__(self):
        self.chat_units: List[Union[dict, str]] = [unit("Hello"), unit(" world", done=True)]
        self.stream_factory: Optional[Callable[[], httpx.AsyncByteStream]] = None
        self.models: List[dict] = [
            {
                "name": "llama3:latest",
                "model": "llama3:latest",
                "modified_at": "2024-05-01T12:00:00.123456789-07:00",
                "size": 4661224676,
                "digest": "365c0bd3c000",
            },
            {
                "name": "nomic-embed-text:latest",
                "model": "nomic-embed-text:latest",
                "modified_at": "2024-04-01T00:00:00Z",
                "size": 274302450,
                "digest": "0a109f422b47",
            },
        ]
        self.embeddings: Dict[str, List[float]] = {}
        self.fail_embed_inputs: Set[str] = set()
        self.errors: Dict[str, Union[httpx.Response, Exception]] = {}
        self.requests: List[httpx.Request] = []
        # seconds every request waits before answering
        self.delay: float = 0

    def payloads(self, path: str) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path and r.content]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        path = request.url.path

        error = self.errors.get(path)
        if isinstance(error, Exception):
            raise error
        if error is not None:
            return error

        body = json.loads(request.content) if request.content else {}

        if path == "/api/chat":
            if body.get("stream"):
                if self.stream_factory is not None:
                    return httpx.Response(200, stream=self.stream_factory())
                return httpx.Response(200, content=ndjson(self.chat_units))
            content = "".join(
                item["message"]["content"] for item in self.chat_units if isinstance(item, dict)
            )
            return httpx.Response(200, json=unit(content, done=True))

        if path == "/api/embed":
            text = body["input"]
            if text in self.fail_embed_inputs:
                return httpx.Response(500, json={"error": "embedding failed"})
            vector = self.embeddings.get(text, [0.1, 0.2, 0.3])
            return httpx.Response(200, json={"model": body["model"], "embeddings": [vector]})

        if path == "/api/tags":
            return httpx.Response(200, json={"models": self.models})

        return httpx.Response(404, json={"error": f"unknown path {path}"})


def parse_sse(body: str) -> List[str]:
    """Return the payload of every `data:` event in an SSE body."""
    return [
        event[len("data: "):]
        for event in body.split("\n\n")
        if event.startswith("data: ")
    ]
