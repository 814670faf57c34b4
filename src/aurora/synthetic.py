"""Describe-then-synthesize fallback for edits.

When no model will edit the images directly, a vision model describes what
the edited image should look like and a generation model renders that
description from scratch. The result is generated, not edited, and callers
must label it as such.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from aurora._invoke import invoke_image_candidate, invoke_text_candidate
from aurora.candidates import TEXT_RETRY, synthesis_candidates, vision_candidates
from aurora.errors import AllCandidatesExhaustedError, SyntheticEditError
from aurora.prompts import DESCRIBE_SYSTEM_INSTRUCTION, build_describe_request
from aurora.request import AspectRatio
from aurora.retry import RetryPolicy
from aurora.waterfall import WaterfallResult, run_waterfall

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from aurora.candidates import Candidate, CandidateOrder
    from aurora.providers.base import Provider
    from aurora.request import SourceImage
    from aurora.result import Artifact
    from aurora.retry import Deadline

logger = logging.getLogger(__name__)


class SyntheticEditPipeline:
    """Two waterfalls in sequence: describe (vision) then synthesize (image)."""

    def __init__(
        self,
        provider: Provider,
        *,
        vision: CandidateOrder | None = None,
        synthesis: CandidateOrder | None = None,
        text_retry: RetryPolicy | None = None,
        image_retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.vision = vision if vision is not None else vision_candidates()
        self.synthesis = synthesis if synthesis is not None else synthesis_candidates()
        self.text_retry = text_retry or TEXT_RETRY
        self.image_retry = image_retry or RetryPolicy()
        self._sleep = sleep

    async def describe(
        self,
        images: Sequence[SourceImage],
        instruction: str,
        aspect_ratio: AspectRatio,
        *,
        deadline: Deadline | None = None,
    ) -> WaterfallResult[str]:
        """Stage 1: prose description of the desired edited image."""
        prompt = build_describe_request(
            instruction, image_count=len(images), aspect_ratio=aspect_ratio
        )

        async def _invoke(candidate: Candidate) -> str:
            return await invoke_text_candidate(
                self.provider,
                candidate,
                prompt=prompt,
                images=images,
                system_instruction=DESCRIBE_SYSTEM_INSTRUCTION,
            )

        return await run_waterfall(
            self.vision,
            _invoke,
            default_policy=self.text_retry,
            deadline=deadline,
            sleep=self._sleep,
            label="synthetic.describe",
        )

    async def synthesize(
        self,
        description: str,
        aspect_ratio: AspectRatio,
        *,
        deadline: Deadline | None = None,
    ) -> WaterfallResult[tuple[Artifact, ...]]:
        """Stage 2: render *description*; aspect ratio is the only parameter."""

        async def _invoke(candidate: Candidate) -> tuple[Artifact, ...]:
            return await invoke_image_candidate(
                self.provider,
                candidate,
                prompt=description,
                aspect_ratio=aspect_ratio.value,
            )

        return await run_waterfall(
            self.synthesis,
            _invoke,
            default_policy=self.image_retry,
            deadline=deadline,
            sleep=self._sleep,
            label="synthetic.synthesize",
        )

    async def run(
        self,
        images: Sequence[SourceImage],
        instruction: str,
        aspect_ratio: AspectRatio | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> WaterfallResult[tuple[Artifact, ...]]:
        """Describe the edit, then synthesize it.

        Raises:
            SyntheticEditError: Either stage exhausted its candidates;
                ``stage`` says which. The synthesis stage never runs when the
                description stage fails.
        """
        ratio = aspect_ratio or AspectRatio.SQUARE

        try:
            described = await self.describe(
                images, instruction, ratio, deadline=deadline
            )
        except AllCandidatesExhaustedError as e:
            raise SyntheticEditError(
                "Synthetic edit failed: no model could describe the edit",
                stage="describe",
                classification=e.classification,
                failures=e.failures,
            ) from e

        logger.info(
            "Synthetic edit: description from %s (%d chars)",
            described.served_by,
            len(described.value),
        )
        logger.debug("Synthetic edit description: %s", described.value)

        try:
            rendered = await self.synthesize(
                described.value, ratio, deadline=deadline
            )
        except AllCandidatesExhaustedError as e:
            raise SyntheticEditError(
                "Synthetic edit failed: no model could render the description",
                stage="synthesize",
                classification=e.classification,
                failures=(*described.failures, *e.failures),
            ) from e

        return WaterfallResult(
            value=rendered.value,
            served_by=rendered.served_by,
            degraded=True,
            failures=(*described.failures, *rendered.failures),
        )
