"""Sequential fallback across an ordered list of candidates.

Each candidate is retried in place according to its own RetryPolicy; only
when that policy gives up does control fall through to the next candidate.
Candidates never run in parallel.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from aurora.classify import ErrorClassification, classify
from aurora.errors import (
    AllCandidatesExhaustedError,
    CandidateFailure,
    ConfigurationError,
    DeadlineExceededError,
    EmptyResultError,
)
from aurora.retry import Deadline, RetryPolicy, retry_async

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from aurora.candidates import Candidate

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaterfallResult(Generic[T]):
    """The first usable value and the candidate that produced it."""

    value: T
    served_by: str
    degraded: bool
    failures: tuple[CandidateFailure, ...] = ()


async def run_waterfall(
    candidates: Sequence[Candidate],
    invoke: Callable[[Candidate], Awaitable[T]],
    *,
    default_policy: RetryPolicy,
    deadline: Deadline | None = None,
    classifier: Callable[[BaseException], ErrorClassification] = classify,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "waterfall",
) -> WaterfallResult[T]:
    """Try *candidates* in order until one returns a non-empty value.

    A falsy value (no artifacts, empty text) counts as a failure so the
    waterfall advances instead of returning nothing.

    Raises:
        AllCandidatesExhaustedError: Every candidate failed. ``classification``
            is that of the last candidate's failure.
        DeadlineExceededError: *deadline* expired before a candidate succeeded.
    """
    if not candidates:
        raise ConfigurationError(
            f"{label}: no candidates to try",
            hint="Provide at least one candidate.",
        )

    failures: list[CandidateFailure] = []
    last_exc: BaseException | None = None
    first_id = candidates[0].id

    for position, candidate in enumerate(candidates):
        if deadline is not None:
            deadline.check()

        async def _attempt(c: Candidate = candidate) -> T:
            value = await invoke(c)
            if not value:
                raise EmptyResultError(f"{c.id} returned an empty result")
            return value

        try:
            value = await retry_async(
                _attempt,
                policy=candidate.retry or default_policy,
                classifier=classifier,
                deadline=deadline,
                sleep=sleep,
            )
        except (asyncio.CancelledError, DeadlineExceededError):
            raise
        except Exception as exc:
            classification = classifier(exc)
            failures.append(CandidateFailure(candidate.id, classification, exc))
            last_exc = exc
            logger.warning(
                "%s: candidate %d/%d %s failed (%s)",
                label,
                position + 1,
                len(candidates),
                candidate.id,
                classification.value,
            )
            logger.debug("%s: %s raw error: %s", label, candidate.id, exc)
            continue

        degraded = candidate.id != first_id
        if degraded:
            logger.info("%s: served by fallback candidate %s", label, candidate.id)
        return WaterfallResult(
            value=value,
            served_by=candidate.id,
            degraded=degraded,
            failures=tuple(failures),
        )

    last = failures[-1].classification
    raise AllCandidatesExhaustedError(
        f"{label}: all {len(candidates)} candidates exhausted "
        f"(last failure: {last.value})",
        classification=last,
        failures=failures,
        hint="Wait for quotas to reset, then retry.",
    ) from last_exc
