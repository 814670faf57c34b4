"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, shared test doubles
and automatic API test skipping. Environment fixtures are autouse.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from aurora.providers.models import Message, ProviderRequest, ProviderResponse
from aurora.result import Artifact

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16

# =============================================================================
# Test Doubles
# =============================================================================

Outcome = ProviderResponse | BaseException | list[str]


def image_response(tag: str = "img") -> ProviderResponse:
    """A response carrying one PNG artifact tagged with *tag*."""
    return ProviderResponse(images=[Artifact(data=PNG_BYTES + tag.encode())])


def text_response(text: str) -> ProviderResponse:
    return ProviderResponse(text=text)


class ScriptedStream:
    """Chat stream over scripted chunks that remembers whether it was closed."""

    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self) -> ScriptedStream:
        return self

    async def __anext__(self) -> str:
        if self.closed or not self._chunks:
            raise StopAsyncIteration
        chunk = self._chunks.pop(0)
        if isinstance(chunk, BaseException):
            raise chunk
        return chunk

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class ScriptedProvider:
    """Provider double whose outcomes are scripted per model name.

    Each model maps to a list consumed one item per call: a ProviderResponse
    is returned, an exception is raised, and for ``stream_chat`` a list of
    strings is streamed. A model with an exhausted script falls back to
    ``default`` (an image for image calls, ``"ok"`` otherwise); a default that
    is an exception is raised on every call.

    Every call is recorded in ``calls`` as ``(method, model, payload)``; chat
    streams handed out are kept in ``streams``.
    """

    script: dict[str, list[Outcome]] = field(default_factory=dict)
    default: dict[str, Outcome] = field(default_factory=dict)
    calls: list[tuple[str, str, Any]] = field(default_factory=list)
    streams: list[ScriptedStream] = field(default_factory=list)
    closed: bool = False

    def _next(self, model: str) -> Outcome | None:
        queue = self.script.get(model)
        if queue:
            return queue.pop(0)
        return self.default.get(model)

    def models_called(self, method: str | None = None) -> list[str]:
        return [m for (kind, m, _) in self.calls if method in (None, kind)]

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.calls.append(("generate", request.model, request))
        outcome = self._next(request.model)
        if outcome is None:
            if request.want_images:
                return image_response(request.model)
            return text_response("ok")
        if isinstance(outcome, BaseException):
            raise outcome
        assert isinstance(outcome, ProviderResponse)
        return outcome

    async def generate_images(
        self,
        *,
        model: str,
        prompt: str,
        aspect_ratio: str | None = None,
        number_of_images: int = 1,
    ) -> ProviderResponse:
        self.calls.append(
            (
                "generate_images",
                model,
                {
                    "prompt": prompt,
                    "aspect_ratio": aspect_ratio,
                    "number_of_images": number_of_images,
                },
            )
        )
        outcome = self._next(model)
        if outcome is None:
            return image_response(model)
        if isinstance(outcome, BaseException):
            raise outcome
        assert isinstance(outcome, ProviderResponse)
        return outcome

    async def stream_chat(
        self,
        *,
        model: str,
        history: list[Message],
        message: str,
        thinking_budget: int | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append(
            (
                "stream_chat",
                model,
                {
                    "history": history,
                    "message": message,
                    "thinking_budget": thinking_budget,
                },
            )
        )
        outcome = self._next(model)
        if isinstance(outcome, BaseException):
            raise outcome
        chunks = ["ok"] if outcome is None else outcome
        assert isinstance(chunks, list)

        stream = ScriptedStream(chunks)
        self.streams.append(stream)
        return stream

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Injectable ``sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean credential environment for each test.

    Clears GEMINI_*, GOOGLE_* and API_KEY to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("GEMINI_", "GOOGLE_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("API_KEY", raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


@pytest.fixture
def gemini_api_key():
    """Return GEMINI_API_KEY or skip the test if unavailable."""
    key = os.getenv("GEMINI_API_KEY")
    if not key:
        pytest.skip("GEMINI_API_KEY not set")
    return key
