"""Domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aurora.result import Artifact


@dataclass(frozen=True)
class InlineImage:
    """An image sent inline with a request."""

    data: bytes = field(repr=False)
    mime_type: str


@dataclass(frozen=True)
class Message:
    """A prior conversational turn."""

    role: str
    content: str = ""


@dataclass(frozen=True)
class ImageOptions:
    """Output image controls. ``None`` fields are left to the model default."""

    aspect_ratio: str | None = None
    image_size: str | None = None


@dataclass(frozen=True)
class ProviderRequest:
    """A unified request payload for a ``generate_content`` style call.

    ``parts`` holds ``str`` and ``InlineImage`` items in order.
    """

    model: str
    parts: list[Any]
    image_options: ImageOptions | None = None
    #: When True the model is asked for image output.
    want_images: bool = False
    system_instruction: str | None = None
    thinking_budget: int | None = None


@dataclass
class ProviderResponse:
    """A standardized response from a provider call."""

    text: str = ""
    images: list[Artifact] = field(default_factory=list)
    #: Why the backend stopped (``STOP``, ``SAFETY``, ...), when it says.
    finish_reason: str | None = None
