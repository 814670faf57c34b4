"""Configuration: frozen Config plus the credential collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Protocol, runtime_checkable

from dotenv import load_dotenv

from aurora.candidates import TEXT_RETRY
from aurora.errors import ConfigurationError
from aurora.retry import RetryPolicy

load_dotenv()

logger = logging.getLogger(__name__)

#: Checked in order; ``API_KEY`` is what hosted key-selection flows inject.
API_KEY_ENV_VARS: tuple[str, ...] = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


def resolve_api_key() -> str | None:
    """Return the first non-empty API key found in the environment."""
    for env_var in API_KEY_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Config:
    """Immutable configuration for an Orchestrator.

    The API key is auto-resolved from the environment when not given; a
    missing key is reported by the credential check at call time, not here.

    Example:
        config = Config(deadline_s=120)
        # API key is automatically resolved from GEMINI_API_KEY
    """

    #: Auto-resolved from ``GEMINI_API_KEY``, ``GOOGLE_API_KEY`` or ``API_KEY``.
    api_key: str | None = None
    use_mock: bool = False
    #: Default in-place retry policy for image candidates.
    image_retry: RetryPolicy = field(default_factory=RetryPolicy)
    #: Default in-place retry policy for text and chat candidates.
    text_retry: RetryPolicy = TEXT_RETRY
    #: Overall budget per call in seconds; None keeps the unbounded behavior.
    deadline_s: float | None = None
    cache_enabled: bool = True

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ConfigurationError(
                f"deadline_s must be > 0, got {self.deadline_s}",
                hint="Pass deadline_s=None to disable the overall deadline.",
            )
        for name in ("image_retry", "text_retry"):
            if not isinstance(getattr(self, name), RetryPolicy):
                raise ConfigurationError(
                    f"{name} must be a RetryPolicy",
                    hint="Pass RetryPolicy(max_retries=..., initial_delay_s=...).",
                )

        if self.api_key is None and not self.use_mock:
            object.__setattr__(self, "api_key", resolve_api_key())

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(api_key={'[REDACTED]' if self.api_key else None}, "
            f"use_mock={self.use_mock}, deadline_s={self.deadline_s}, "
            f"cache_enabled={self.cache_enabled})"
        )

    __repr__ = __str__


@runtime_checkable
class CredentialSource(Protocol):
    """Confirms a usable credential before any backend call is made."""

    async def ensure_credential(self) -> bool:
        """Return True when a usable credential is available."""
        ...

    @property
    def api_key(self) -> str | None:
        """The confirmed key, or None (mock mode or not yet confirmed)."""
        ...


class EnvironmentCredentials:
    """Credential source backed by Config and environment variables.

    The environment is re-read on every check so a key selected by the host
    after startup is picked up without rebuilding the Config.
    """

    def __init__(self, config: Config) -> None:
        self._config = config
        self._api_key: str | None = config.api_key

    @property
    def api_key(self) -> str | None:
        """The most recently confirmed key."""
        return self._api_key

    async def ensure_credential(self) -> bool:
        """Return True when mock mode is on or an API key can be found."""
        if self._config.use_mock:
            return True
        if not self._api_key:
            self._api_key = resolve_api_key()
            if self._api_key:
                logger.debug("API key resolved from environment")
        return bool(self._api_key)
