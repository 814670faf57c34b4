"""Backend model candidates and the fallback ladders built from them.

A ``CandidateOrder`` is only an ordering; how hard to push on each rung is
decided separately by the candidate's ``RetryPolicy``, or by the caller's
default policy when the candidate carries none.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

from aurora.errors import ConfigurationError
from aurora.request import ChatMode, QualityTier
from aurora.retry import RetryPolicy

#: ``content`` -> generate_content, ``images`` -> Imagen generate_images,
#: ``chat`` -> streaming chat session.
InvocationMethod = Literal["content", "images", "chat"]

THINKING_BUDGET = 32768

#: Default in-place policy for vision and chat candidates; text and chat
#: calls back off faster than image calls.
TEXT_RETRY = RetryPolicy(max_retries=3, initial_delay_s=2.0, backoff_multiplier=2.0)


@dataclass(frozen=True)
class Candidate:
    """One concrete backend model configuration."""

    id: str
    model: str
    method: InvocationMethod = "content"
    supports_resolution_control: bool = False
    supports_image_input: bool = False
    #: Independent rate-limit pool; exhausting one leaves the others usable.
    quota_bucket: str = ""
    #: None means "use the caller's default policy".
    retry: RetryPolicy | None = None
    thinking_budget: int | None = None

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.id or not self.model:
            raise ConfigurationError(
                "Candidate id and model must be non-empty",
                hint="Pass Candidate(id='...', model='gemini-...').",
            )
        if not self.quota_bucket:
            object.__setattr__(self, "quota_bucket", self.model)


class CandidateOrder(Sequence[Candidate]):
    """Immutable, ordered, non-empty list of candidates.

    Position is priority: index 0 is the primary candidate and the only one
    whose results count as non-degraded.
    """

    __slots__ = ("_items",)

    def __init__(self, candidates: Sequence[Candidate]) -> None:
        items = tuple(candidates)
        if not items:
            raise ConfigurationError(
                "A candidate order needs at least one candidate",
                hint="Provide the primary model first, then fallbacks.",
            )
        ids = [c.id for c in items]
        if len(set(ids)) != len(ids):
            raise ConfigurationError(
                f"Duplicate candidate ids in order: {ids}",
                hint="Each rung must have a unique id so served_by is unambiguous.",
            )
        self._items = items

    @property
    def primary(self) -> Candidate:
        """The first-choice candidate."""
        return self._items[0]

    @property
    def ids(self) -> tuple[str, ...]:
        """Candidate ids in priority order."""
        return tuple(c.id for c in self._items)

    def __getitem__(self, index):  # type: ignore[no-untyped-def]
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"CandidateOrder({list(self.ids)!r})"


# =============================================================================
# Default catalogue
# =============================================================================

PRO_IMAGE = Candidate(
    id="gemini-3-pro-image",
    model="gemini-3-pro-image-preview",
    supports_resolution_control=True,
    supports_image_input=True,
    quota_bucket="gemini-3-pro",
)
STANDARD_IMAGE = Candidate(
    id="gemini-2.5-flash-image",
    model="gemini-2.5-flash-image",
    supports_image_input=True,
    quota_bucket="gemini-2.5-flash-image",
)
IMAGEN = Candidate(
    id="imagen-4",
    model="imagen-4.0-generate-001",
    method="images",
    quota_bucket="imagen-4",
)
EXPERIMENTAL_IMAGE = Candidate(
    id="gemini-2.0-flash-exp-image",
    model="gemini-2.0-flash-exp-image-generation",
    supports_image_input=True,
    quota_bucket="gemini-2.0-flash-exp",
)
PREVIEW_IMAGE = Candidate(
    id="gemini-2.0-flash-preview-image",
    model="gemini-2.0-flash-preview-image-generation",
    supports_image_input=True,
    quota_bucket="gemini-2.0-flash-preview",
)
LEGACY_IMAGEN = Candidate(
    id="imagen-3",
    model="imagen-3.0-generate-002",
    method="images",
    quota_bucket="imagen-3",
)

VISION_FLASH = Candidate(
    id="gemini-2.5-flash",
    model="gemini-2.5-flash",
    supports_image_input=True,
)
VISION_FLASH_LITE = Candidate(
    id="gemini-2.5-flash-lite",
    model="gemini-2.5-flash-lite",
    supports_image_input=True,
)
VISION_LEGACY = Candidate(
    id="gemini-2.0-flash",
    model="gemini-2.0-flash",
    supports_image_input=True,
)

CHAT_THINKING = Candidate(
    id="gemini-3-pro-thinking",
    model="gemini-3-pro-preview",
    method="chat",
    thinking_budget=THINKING_BUDGET,
)
CHAT_FAST_TAIL: tuple[Candidate, ...] = (
    Candidate(
        id="chat-gemini-2.5-flash-lite",
        model="gemini-2.5-flash-lite",
        method="chat",
    ),
    Candidate(
        id="chat-gemini-2.5-flash",
        model="gemini-2.5-flash",
        method="chat",
    ),
    Candidate(
        id="chat-gemini-2.0-flash",
        model="gemini-2.0-flash",
        method="chat",
    ),
)


def generate_candidates(tier: QualityTier) -> CandidateOrder:
    """Ladder for text-to-image generation.

    The tier's own model comes first; ``pro`` falls back to the standard model
    before leaving the Gemini image family.
    """
    head = [PRO_IMAGE, STANDARD_IMAGE] if tier is QualityTier.PRO else [STANDARD_IMAGE]
    return CandidateOrder(
        [*head, IMAGEN, EXPERIMENTAL_IMAGE, PREVIEW_IMAGE, LEGACY_IMAGEN]
    )


def edit_candidates() -> CandidateOrder:
    """Ladder for direct multi-image editing."""
    return CandidateOrder([STANDARD_IMAGE, PRO_IMAGE, EXPERIMENTAL_IMAGE])


def vision_candidates() -> CandidateOrder:
    """Ladder for describing an edit in prose."""
    return CandidateOrder([VISION_FLASH, VISION_FLASH_LITE, VISION_LEGACY])


def synthesis_candidates() -> CandidateOrder:
    """Ladder for re-synthesizing an image from a description."""
    return CandidateOrder([IMAGEN, LEGACY_IMAGEN, STANDARD_IMAGE])


def chat_candidates(mode: ChatMode) -> CandidateOrder:
    """Ladder for chat; thinking mode puts a reasoning model first."""
    if mode is ChatMode.THINKING:
        return CandidateOrder([CHAT_THINKING, *CHAT_FAST_TAIL])
    return CandidateOrder(CHAT_FAST_TAIL)
