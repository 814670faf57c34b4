"""Exception hierarchy for Aurora."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from aurora.classify import ErrorClassification

BUSY_MESSAGE = "The service is busy right now. Please wait a minute and try again."
REJECTED_MESSAGE = (
    "The request could not be processed by any available model. "
    "Please wait a minute and try again, or rephrase the prompt."
)
EDIT_FAILED_MESSAGE = (
    "Editing is unavailable right now. Please wait a minute and try again."
)


class AuroraError(Exception):
    """Base exception for all Aurora errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(AuroraError):
    """Configuration or request validation failed."""


class CredentialError(ConfigurationError):
    """No usable API credential could be obtained."""


class APIError(AuroraError):
    """A backend call failed.

    Providers attach status metadata so classification sees the HTTP code even
    when the SDK message does not spell it out.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class EmptyResultError(AuroraError):
    """A candidate answered successfully but produced nothing usable."""


class DeadlineExceededError(AuroraError):
    """The caller-supplied overall deadline expired."""


@dataclass(frozen=True)
class CandidateFailure:
    """Diagnostic record of one candidate that did not serve a request."""

    candidate_id: str
    classification: ErrorClassification
    error: BaseException


class AllCandidatesExhaustedError(AuroraError):
    """Every candidate in a waterfall failed.

    ``str(err)`` never contains raw backend text; the per-candidate errors are
    kept on ``failures`` for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        classification: ErrorClassification,
        failures: Sequence[CandidateFailure] = (),
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.classification = classification
        self.failures = tuple(failures)

    @property
    def user_message(self) -> str:
        """Normalized, caller-safe description of the failure."""
        return user_message_for(self.classification)


class SyntheticEditError(AllCandidatesExhaustedError):
    """A stage of the describe-then-synthesize fallback was exhausted."""

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        classification: ErrorClassification,
        failures: Sequence[CandidateFailure] = (),
        hint: str | None = None,
    ) -> None:
        super().__init__(
            message, classification=classification, failures=failures, hint=hint
        )
        self.stage = stage


class EditExhaustedError(AuroraError):
    """Direct editing and the synthetic fallback both failed."""

    def __init__(
        self,
        message: str = EDIT_FAILED_MESSAGE,
        *,
        direct: AllCandidatesExhaustedError | None = None,
        synthetic: AllCandidatesExhaustedError | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.direct = direct
        self.synthetic = synthetic

    @property
    def user_message(self) -> str:
        """Normalized, caller-safe description of the failure."""
        return EDIT_FAILED_MESSAGE


def user_message_for(classification: ErrorClassification) -> str:
    """Return the caller-facing message for a terminal classification."""
    from aurora.classify import ErrorClassification

    if classification in (
        ErrorClassification.INVALID_REQUEST,
        ErrorClassification.UNKNOWN,
    ):
        return REJECTED_MESSAGE
    return BUSY_MESSAGE


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
