"""Public entry points: generate, edit and chat with fallback.

Each call checks credentials, builds its candidate ladder and request
payload, then hands both to the waterfall. Only terminal errors
(``AllCandidatesExhaustedError``, ``EditExhaustedError``,
``DeadlineExceededError``, ``CredentialError``) reach the caller.

Without a deadline a call runs until it succeeds or every candidate has
exhausted its retries; with the default policies that can take minutes
(see ``Orchestrator.worst_case_delay_s``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from aurora._invoke import invoke_image_candidate
from aurora.cache import ResultCache
from aurora.candidates import (
    chat_candidates,
    edit_candidates,
    generate_candidates,
)
from aurora.config import Config, EnvironmentCredentials
from aurora.errors import (
    AllCandidatesExhaustedError,
    CredentialError,
    EditExhaustedError,
    EmptyResultError,
    SyntheticEditError,
    user_message_for,
)
from aurora.prompts import build_edit_instruction, with_detail_suffix
from aurora.providers.models import Message
from aurora.request import QualityTier, Resolution
from aurora.result import CACHE_SERVED_BY, ChatStream, Result
from aurora.retry import Deadline, RetryPolicy
from aurora.synthetic import SyntheticEditPipeline
from aurora.waterfall import run_waterfall

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

    from aurora.candidates import Candidate, CandidateOrder
    from aurora.config import CredentialSource
    from aurora.providers.base import Provider
    from aurora.request import ChatMode, ChatRequest, EditRequest, GenerateRequest
    from aurora.result import Artifact

logger = logging.getLogger(__name__)

#: Highest resolution tier the backend accepts.
MAX_BACKEND_RESOLUTION = Resolution.RES_4K


def backend_resolution(resolution: Resolution) -> Resolution:
    """Map a requested resolution onto one the backend supports."""
    return MAX_BACKEND_RESOLUTION if resolution is Resolution.RES_8K else resolution


class Orchestrator:
    """Owns a provider, a result cache and the candidate ladders.

    The cache lives and dies with the orchestrator; use ``async with`` or call
    ``aclose()`` to release both.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        provider: Provider | None = None,
        cache: ResultCache | None = None,
        credentials: CredentialSource | None = None,
        generate_order: Callable[[QualityTier], CandidateOrder] = generate_candidates,
        edit_order: CandidateOrder | None = None,
        chat_order: Callable[[ChatMode], CandidateOrder] = chat_candidates,
        synthetic: SyntheticEditPipeline | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or Config()
        self.cache = cache if cache is not None else ResultCache()
        self._provider = provider
        self._owns_provider = provider is None
        self._credentials = credentials or EnvironmentCredentials(self.config)
        self._generate_order = generate_order
        self._edit_order = edit_order if edit_order is not None else edit_candidates()
        self._chat_order = chat_order
        self._synthetic = synthetic
        self._sleep = sleep

    async def __aenter__(self) -> Orchestrator:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Drop cached results and close the provider if this instance made it."""
        self.cache.clear()
        if self._provider is None or not self._owns_provider:
            return
        provider, self._provider = self._provider, None
        aclose = getattr(provider, "aclose", None)
        if callable(aclose):
            try:
                await aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Provider cleanup failed: %s", exc)

    # -------------------------------------------------------------------------
    # Setup helpers
    # -------------------------------------------------------------------------

    async def _ready(self) -> Provider:
        """Confirm credentials, then return (creating if needed) the provider."""
        if not await self._credentials.ensure_credential():
            raise CredentialError(
                "API key selection cancelled or failed.",
                hint="Set GEMINI_API_KEY or pass Config(api_key=...).",
            )
        if self._provider is None:
            self._provider = _get_provider(self.config, self._credentials.api_key)
        return self._provider

    def _deadline(self, deadline_s: float | None) -> Deadline | None:
        if deadline_s is None:
            deadline_s = self.config.deadline_s
        return Deadline.maybe(deadline_s)

    def _synthetic_for(self, provider: Provider) -> SyntheticEditPipeline:
        if self._synthetic is not None:
            return self._synthetic
        return SyntheticEditPipeline(
            provider,
            text_retry=self.config.text_retry,
            image_retry=self.config.image_retry,
            sleep=self._sleep,
        )

    def worst_case_delay_s(
        self, order: Sequence[Candidate], default_policy: RetryPolicy | None = None
    ) -> float:
        """Total backoff sleep if every candidate in *order* exhausts its retries.

        Network time comes on top of this figure.
        """
        policy = default_policy or self.config.image_retry
        return sum((c.retry or policy).worst_case_delay_s() for c in order)

    # -------------------------------------------------------------------------
    # generate
    # -------------------------------------------------------------------------

    async def generate(
        self, request: GenerateRequest, *, deadline_s: float | None = None
    ) -> Result:
        """Text-to-image with cache, tier ladder and resolution handling.

        Raises:
            AllCandidatesExhaustedError: Every rung failed; ``user_message``
                advises retrying after a cooldown.
        """
        provider = await self._ready()

        key = self.cache.key_for(request)
        if self.config.cache_enabled:
            entry = self.cache.get(key)
            if entry is not None:
                logger.info("generate: cache hit %s", key)
                return Result(
                    artifacts=entry.artifacts,
                    served_by=CACHE_SERVED_BY,
                    degraded=False,
                )

        order = self._generate_order(request.quality_tier)
        primary = order.primary
        grants_resolution = request.quality_tier is QualityTier.PRO

        wants_8k = request.resolution is Resolution.RES_8K

        async def _invoke(candidate: Candidate) -> tuple[Artifact, ...]:
            prompt = request.prompt
            image_size: str | None = None
            if grants_resolution and candidate.supports_resolution_control:
                image_size = backend_resolution(request.resolution).value
                if wants_8k and candidate.id == primary.id:
                    prompt = with_detail_suffix(prompt)
            return await invoke_image_candidate(
                provider,
                candidate,
                prompt=prompt,
                aspect_ratio=request.aspect_ratio.value,
                image_size=image_size,
            )

        try:
            outcome = await run_waterfall(
                order,
                _invoke,
                default_policy=self.config.image_retry,
                deadline=self._deadline(deadline_s),
                sleep=self._sleep,
                label="generate",
            )
        except AllCandidatesExhaustedError as e:
            raise AllCandidatesExhaustedError(
                user_message_for(e.classification),
                classification=e.classification,
                failures=e.failures,
                hint=f"All {len(order)} image models failed; wait and retry.",
            ) from e

        # Only canonical (primary-candidate) results are cached.
        if self.config.cache_enabled and outcome.served_by == primary.id:
            self.cache.set(key, outcome.value)

        return Result(
            artifacts=outcome.value,
            served_by=outcome.served_by,
            degraded=outcome.served_by != primary.id,
        )

    # -------------------------------------------------------------------------
    # edit
    # -------------------------------------------------------------------------

    async def edit(
        self, request: EditRequest, *, deadline_s: float | None = None
    ) -> Result:
        """Edit or merge 1..3 images, falling back to describe-and-regenerate.

        Raises:
            EditExhaustedError: Direct editing and the synthetic pipeline both
                failed.
        """
        provider = await self._ready()
        deadline = self._deadline(deadline_s)
        order = self._edit_order

        instruction = build_edit_instruction(
            request.instruction,
            image_count=len(request.images),
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
        )
        aspect_ratio = request.aspect_ratio.value if request.aspect_ratio else None
        image_size = (
            backend_resolution(request.resolution).value if request.resolution else None
        )

        async def _invoke(candidate: Candidate) -> tuple[Artifact, ...]:
            return await invoke_image_candidate(
                provider,
                candidate,
                prompt=instruction,
                aspect_ratio=aspect_ratio,
                image_size=image_size,
                images=request.images,
            )

        try:
            outcome = await run_waterfall(
                order,
                _invoke,
                default_policy=self.config.image_retry,
                deadline=deadline,
                sleep=self._sleep,
                label="edit",
            )
        except AllCandidatesExhaustedError as direct:
            logger.warning(
                "edit: direct candidates exhausted (%s); using synthetic pipeline",
                direct.classification.value,
            )
            try:
                synthetic = await self._synthetic_for(provider).run(
                    request.images,
                    request.instruction,
                    request.aspect_ratio,
                    deadline=deadline,
                )
            except SyntheticEditError as e:
                raise EditExhaustedError(
                    direct=direct,
                    synthetic=e,
                    hint=f"Synthetic fallback failed at the {e.stage} stage.",
                ) from e
            logger.info("edit: synthetic result served by %s", synthetic.served_by)
            return Result(
                artifacts=synthetic.value,
                served_by=synthetic.served_by,
                degraded=True,
                synthetic=True,
            )

        return Result(
            artifacts=outcome.value,
            served_by=outcome.served_by,
            degraded=outcome.degraded,
        )

    # -------------------------------------------------------------------------
    # chat
    # -------------------------------------------------------------------------

    async def chat(
        self, request: ChatRequest, *, deadline_s: float | None = None
    ) -> ChatStream:
        """Start a streamed reply from the first chat candidate that answers.

        Fallback covers stream initiation only (up to the first text chunk).
        Once the stream is handed over, failures surface from iteration and
        are never retried, since a retry could duplicate partial output.
        ``deadline_s`` likewise bounds initiation only.
        """
        provider = await self._ready()
        order = self._chat_order(request.mode)
        history = [Message(role=t.role, content=t.text) for t in request.history]

        async def _invoke(candidate: Candidate) -> tuple[str, AsyncIterator[str]]:
            stream = await provider.stream_chat(
                model=candidate.model,
                history=history,
                message=request.message,
                thinking_budget=candidate.thinking_budget,
            )
            handed_over = False
            try:
                async for chunk in stream:
                    if chunk:
                        handed_over = True
                        return chunk, stream
                raise EmptyResultError(f"{candidate.id} streamed no text")
            finally:
                if not handed_over:
                    await _close_stream(stream, candidate.id)

        try:
            outcome = await run_waterfall(
                order,
                _invoke,
                default_policy=self.config.text_retry,
                deadline=self._deadline(deadline_s),
                sleep=self._sleep,
                label=f"chat.{request.mode.value}",
            )
        except AllCandidatesExhaustedError as e:
            raise AllCandidatesExhaustedError(
                user_message_for(e.classification),
                classification=e.classification,
                failures=e.failures,
                hint=f"All {len(order)} chat models failed; wait and retry.",
            ) from e

        first, rest = outcome.value
        return ChatStream(
            first,
            rest,
            served_by=outcome.served_by,
            degraded=outcome.degraded,
        )


def _get_provider(config: Config, api_key: str | None) -> Provider:
    """Get the appropriate provider based on configuration."""
    if config.use_mock:
        from aurora.providers.mock import MockProvider

        return MockProvider()

    from aurora.providers.gemini import GeminiProvider

    if not api_key:
        raise CredentialError(
            "api_key required for real API",
            hint="Set GEMINI_API_KEY or pass Config(api_key=...).",
        )
    return GeminiProvider(api_key)


async def _close_stream(stream: AsyncIterator[str], candidate_id: str) -> None:
    """Release a chat stream that is not being handed to the caller."""
    aclose = getattr(stream, "aclose", None)
    if not callable(aclose):
        return
    try:
        await aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.warning("chat: closing %s stream failed: %s", candidate_id, exc)
