"""Mock provider for offline use and demos."""

from __future__ import annotations

import base64
import hashlib
from typing import TYPE_CHECKING

from aurora.providers.models import InlineImage, ProviderResponse
from aurora.result import Artifact

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aurora.providers.models import Message, ProviderRequest

# 1x1 transparent PNG
_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def _pixel(seed: str) -> Artifact:
    # Decoders ignore bytes after IEND; the suffix keeps outputs distinct.
    digest = hashlib.sha256(seed.encode()).digest()[:8]
    return Artifact(data=_PIXEL_PNG + digest, mime_type="image/png")


class MockProvider:
    """Mock provider for running without API calls.

    Image calls return a tiny PNG derived from the prompt, text calls echo the
    prompt, and chat streams the message back word by word.
    """

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Return a deterministic mock response."""
        texts = [p for p in request.parts if isinstance(p, str) and p.strip()]
        n_images = sum(1 for p in request.parts if isinstance(p, InlineImage))
        prompt = texts[-1] if texts else ""
        if request.want_images:
            return ProviderResponse(
                images=[_pixel(f"{request.model}:{prompt}:{n_images}")],
                finish_reason="STOP",
            )
        return ProviderResponse(text=f"echo: {prompt[:100]}", finish_reason="STOP")

    async def generate_images(
        self,
        *,
        model: str,
        prompt: str,
        aspect_ratio: str | None = None,
        number_of_images: int = 1,
    ) -> ProviderResponse:
        """Return *number_of_images* mock PNGs."""
        return ProviderResponse(
            images=[
                _pixel(f"{model}:{prompt}:{aspect_ratio}:{i}")
                for i in range(number_of_images)
            ]
        )

    async def stream_chat(
        self,
        *,
        model: str,  # noqa: ARG002
        history: list[Message],  # noqa: ARG002
        message: str,
        thinking_budget: int | None = None,  # noqa: ARG002
    ) -> AsyncIterator[str]:
        """Stream the message back one word at a time."""

        async def _words() -> AsyncIterator[str]:
            words = f"echo: {message}".split(" ")
            for i, word in enumerate(words):
                yield word if i == len(words) - 1 else f"{word} "

        return _words()
