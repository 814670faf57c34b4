"""Classification-aware async retry with exponential backoff.

Design goals:
- Explicit state (policy + attempt counters)
- Deterministic delay series so worst-case latency can be stated up front
- Only quota and busy-server failures are retried; everything else propagates
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

from aurora.classify import ErrorClassification, classify, is_transient
from aurora.errors import APIError, DeadlineExceededError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff.

    ``max_retries`` counts retries after the first call, so a fully exhausted
    sequence makes ``max_retries + 1`` calls.
    """

    max_retries: int = 5
    initial_delay_s: float = 4.0
    backoff_multiplier: float = 1.5
    max_delay_s: float | None = None
    jitter: bool = False  # "full jitter" when enabled

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValueError("RetryPolicy.max_retries must be >= 0")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s is not None and self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0 or None")

    def delays(self) -> Iterator[float]:
        """Yield the un-jittered sleep before each retry, in order."""
        delay = self.initial_delay_s
        for _ in range(self.max_retries):
            yield delay if self.max_delay_s is None else min(delay, self.max_delay_s)
            delay *= self.backoff_multiplier

    def worst_case_delay_s(self) -> float:
        """Total time spent sleeping by a fully exhausted retry sequence."""
        return sum(self.delays())


class Deadline:
    """An overall time budget shared by every suspension point of one call."""

    def __init__(
        self, seconds: float, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if seconds < 0:
            raise ValueError("Deadline seconds must be >= 0")
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    @classmethod
    def maybe(cls, seconds: float | None) -> Deadline | None:
        """Return a Deadline for *seconds*, or None when no budget was given."""
        return None if seconds is None else cls(seconds)

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        """Whether the budget is used up."""
        return self.remaining() <= 0

    def check(self) -> None:
        """Raise DeadlineExceededError if the budget is used up."""
        if self.expired():
            raise DeadlineExceededError(
                f"Deadline of {self.seconds:g}s exceeded",
                hint="Raise deadline_s or retry later.",
            )

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning the wait when the budget runs out."""
        scope = asyncio.timeout(self.remaining())
        try:
            async with scope:
                return await awaitable
        except TimeoutError:
            if scope.expired():
                raise DeadlineExceededError(
                    f"Deadline of {self.seconds:g}s exceeded",
                    hint="Raise deadline_s or retry later.",
                ) from None
            raise


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, APIError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


def _jittered(delay: float, jitter: bool) -> float:
    if not jitter or delay <= 0:
        return delay
    return random.random() * delay  # noqa: S311


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    classifier: Callable[[BaseException], ErrorClassification] = classify,
    deadline: Deadline | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Run an async factory, retrying quota and busy-server failures.

    Any other failure is re-raised unchanged, as is a transient one once
    ``policy.max_retries`` retries are spent or once the next backoff would
    outlast *deadline*. A server-supplied retry-after delay is honored when it
    exceeds the backoff delay. ``on_retry(retry_index, exc, delay)`` is called
    before each sleep. Only a spent budget raises ``DeadlineExceededError``.
    """
    delays = policy.delays()
    retry_index = 0

    while True:
        try:
            if deadline is None:
                return await factory()
            deadline.check()
            return await deadline.run(factory())
        except (asyncio.CancelledError, DeadlineExceededError):
            raise
        except Exception as exc:
            classification = classifier(exc)
            if not is_transient(classification):
                raise
            delay = next(delays, None)
            if delay is None:
                raise

            retry_index += 1
            delay = _jittered(delay, policy.jitter)
            retry_after = _retry_after_from_error(exc)
            if retry_after is not None:
                delay = max(delay, retry_after)
            if deadline is not None and delay >= deadline.remaining():
                logger.debug(
                    "Giving up on %s failure: %.2fs backoff exceeds the %.2fs left",
                    classification.value,
                    delay,
                    deadline.remaining(),
                )
                raise

            logger.debug(
                "Retry %d/%d after %s failure in %.2fs",
                retry_index,
                policy.max_retries,
                classification.value,
                delay,
            )
            if on_retry is not None:
                on_retry(retry_index, exc, delay)
            if delay > 0:
                await sleep(delay)
