"""Provider protocol: minimal interface to the generative backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aurora.providers.models import Message, ProviderRequest, ProviderResponse


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: content, image synthesis, chat streaming.

    Failures must be raised as exceptions whose text (or ``status_code``)
    lets ``aurora.classify`` tell quota, permission and busy errors apart.
    """

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Generate text and/or images from mixed text and image parts."""
        ...

    async def generate_images(
        self,
        *,
        model: str,
        prompt: str,
        aspect_ratio: str | None = None,
        number_of_images: int = 1,
    ) -> ProviderResponse:
        """Synthesize images from a prompt with a dedicated image model."""
        ...

    async def stream_chat(
        self,
        *,
        model: str,
        history: list[Message],
        message: str,
        thinking_budget: int | None = None,
    ) -> AsyncIterator[str]:
        """Open a chat seeded with *history* and stream the reply to *message*."""
        ...
