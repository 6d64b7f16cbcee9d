"""Shared test fixtures for the fallback chat gateway tests."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from fallback_gateway.config import GatewayConfig, load_config

Reply = Union[Tuple[int, Any], Exception]

GROQ_BASE = "https://groq.test/openai/v1"
GEMINI_BASE = "https://gemini.test/v1beta"


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "providers": {
            "groq": {
                "base_url": GROQ_BASE,
                "api_key_env": "TEST_GROQ_KEY",
                "default_model": "groq-default",
                "default_temperature": 0.7,
                "priority": {
                    "speed": ["groq-fast-1", "groq-fast-2"],
                    "quality": ["groq-big-1", "groq-big-2"],
                },
            },
            "gemini": {
                "base_url": GEMINI_BASE,
                "api_key_env": "TEST_GEMINI_KEY",
                "default_model": "gemini-default",
                "priority": {
                    "speed": ["gemini-fast", "gemini-fast-2"],
                    "quality": ["gemini-pro"],
                },
            },
        },
        "rate_limit": {
            "requests_per_window": 3,
            "window_seconds": 600,
            "ttl_seconds": 660,
        },
        "kv_url": "memory://",
        "log_file": str(tmp_path / "test.log"),
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "test_config.json"
    path.write_text(json.dumps(config))
    return str(path)


class FakeUpstream:
    """In-process stand-in for the Groq and Gemini HTTP APIs.

    Chat replies are consumed from per-provider queues; once a queue is
    empty the provider answers successfully. Setting a catalog to None
    makes the model listing fail with HTTP 500.
    """

    def __init__(self) -> None:
        self.groq_catalog: Optional[List[str]] = [
            "groq-fast-1",
            "groq-fast-2",
            "groq-big-1",
            "groq-big-2",
            "groq-legacy",
        ]
        self.gemini_catalog: Optional[List[str]] = [
            "gemini-fast",
            "gemini-fast-2",
            "gemini-pro",
        ]
        self.groq_replies: List[Reply] = []
        self.gemini_replies: List[Reply] = []
        self.requests: List[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    def chat_models(self, provider: str) -> List[str]:
        """Model ids of the chat calls made to a provider, in order."""
        models = []
        for request in self.requests:
            if request.method != "POST":
                continue
            if provider == "groq" and request.url.host == "groq.test":
                models.append(json.loads(request.content)["model"])
            elif provider == "gemini" and request.url.host == "gemini.test":
                models.append(_gemini_model(request))
        return models

    def catalog_calls(self) -> int:
        return sum(1 for r in self.requests if r.method == "GET")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "groq.test":
            return self._groq(request)
        if request.url.host == "gemini.test":
            return self._gemini(request)
        return httpx.Response(404, json={"error": "unknown host"})

    def _groq(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if self.groq_catalog is None:
                return httpx.Response(500, json={"error": "catalog down"})
            return httpx.Response(
                200,
                json={"object": "list", "data": [{"id": m} for m in self.groq_catalog]},
            )
        if self.groq_replies:
            return _reply(self.groq_replies.pop(0), request)
        model = json.loads(request.content)["model"]
        return httpx.Response(200, json=groq_answer("groq says hi from " + model))

    def _gemini(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if self.gemini_catalog is None:
                return httpx.Response(500, json={"error": "catalog down"})
            models = [
                {
                    "name": "models/" + m,
                    "supportedGenerationMethods": ["generateContent", "countTokens"],
                }
                for m in self.gemini_catalog
            ]
            models.append(
                {
                    "name": "models/embedding-001",
                    "supportedGenerationMethods": ["embedContent"],
                }
            )
            return httpx.Response(200, json={"models": models})
        if self.gemini_replies:
            return _reply(self.gemini_replies.pop(0), request)
        return httpx.Response(
            200, json=gemini_answer("gemini says hi from " + _gemini_model(request))
        )


def _gemini_model(request: httpx.Request) -> str:
    return request.url.path.split("/models/", 1)[1].rsplit(":", 1)[0]


def _reply(reply: Reply, request: httpx.Request) -> httpx.Response:
    if isinstance(reply, Exception):
        raise reply
    status, body = reply
    if isinstance(body, str):
        return httpx.Response(status, text=body)
    return httpx.Response(status, json=body)


def groq_answer(text: Any) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def gemini_answer(*texts: Any) -> Dict[str, Any]:
    return {
        "candidates": [
            {"content": {"role": "model", "parts": [{"text": t} for t in texts]}}
        ]
    }


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and store URLs out of the tests."""
    monkeypatch.delenv("GATEWAY_KV_URL", raising=False)
    monkeypatch.delenv("TEST_GROQ_KEY", raising=False)
    monkeypatch.delenv("TEST_GEMINI_KEY", raising=False)


@pytest.fixture()
def groq_key(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setenv("TEST_GROQ_KEY", "gsk-test")
    return "gsk-test"


@pytest.fixture()
def gemini_key(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setenv("TEST_GEMINI_KEY", "gem-test")
    return "gem-test"


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_config(test_config_path: str) -> GatewayConfig:
    """Return a loaded test GatewayConfig."""
    return load_config(test_config_path)


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()
