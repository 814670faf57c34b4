"""Result types returned to callers."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aurora.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

CACHE_SERVED_BY = "cache"


@dataclass(frozen=True)
class Artifact:
    """One binary output produced by a backend model."""

    data: bytes = field(repr=False)
    mime_type: str = "image/png"

    def to_data_url(self) -> str:
        """Encode as a ``data:`` URL suitable for direct display."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    @classmethod
    def from_data_url(cls, url: str) -> Artifact:
        """Decode a ``data:<mime>;base64,<payload>`` URL."""
        if not url.startswith("data:") or "," not in url:
            raise ConfigurationError(
                "Not a data URL",
                hint="Expected 'data:<mime>;base64,<payload>'.",
            )
        header, payload = url[5:].split(",", 1)
        mime_type = header.split(";", 1)[0] or "application/octet-stream"
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError("Data URL payload is not valid base64") from e
        return cls(data=data, mime_type=mime_type)


@dataclass(frozen=True)
class Result:
    """Outcome of ``generate`` or ``edit``.

    ``degraded`` is True whenever anything other than the first-choice
    candidate produced the artifacts. ``synthetic`` additionally marks edits
    that were regenerated from a description rather than edited directly.
    """

    artifacts: tuple[Artifact, ...]
    served_by: str
    degraded: bool = False
    synthetic: bool = False

    @property
    def from_cache(self) -> bool:
        """Whether the artifacts came from the result cache."""
        return self.served_by == CACHE_SERVED_BY

    @property
    def first(self) -> Artifact:
        """The first artifact; results are never empty."""
        return self.artifacts[0]


class ChatStream:
    """Single-pass async stream of text increments from one chat candidate.

    The first chunk was already received when the stream was handed over;
    failures after that point surface from iteration and are not retried.
    """

    def __init__(
        self,
        first_chunk: str,
        rest: AsyncIterator[str],
        *,
        served_by: str,
        degraded: bool,
    ) -> None:
        self.served_by = served_by
        self.degraded = degraded
        self._first: str | None = first_chunk
        self._rest = rest
        self._started = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("ChatStream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        first, self._first = self._first, None
        if first:
            yield first
        async for chunk in self._rest:
            if chunk:
                yield chunk

    async def collect(self) -> str:
        """Consume the whole stream and return the concatenated text."""
        return "".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        """Release the underlying provider stream."""
        aclose = getattr(self._rest, "aclose", None)
        if callable(aclose):
            await aclose()

    def __repr__(self) -> str:
        return f"ChatStream(served_by={self.served_by!r}, degraded={self.degraded})"
