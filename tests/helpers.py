"""Test helpers (small, reusable builders).

Keep this file tiny and purpose-built: canned backend errors and a way to
build an Orchestrator around a ScriptedProvider without touching the network.
"""

from __future__ import annotations

from typing import Any

from aurora.config import Config
from aurora.errors import APIError
from aurora.orchestrator import Orchestrator
from aurora.retry import RetryPolicy
from tests.conftest import RecordingSleep, ScriptedProvider

#: Zero-delay policy with two in-place retries.
FAST_RETRY = RetryPolicy(max_retries=2, initial_delay_s=0.0)


def permission_denied() -> APIError:
    return APIError("403 PERMISSION_DENIED: caller lacks access", status_code=403)


def quota_exhausted() -> APIError:
    return APIError("429 RESOURCE_EXHAUSTED: quota exceeded", status_code=429)


def overloaded() -> APIError:
    return APIError("503 UNAVAILABLE: the model is overloaded", status_code=503)


def invalid_argument() -> APIError:
    return APIError("400 INVALID_ARGUMENT: bad image_size", status_code=400)


def make_orchestrator(
    provider: ScriptedProvider,
    *,
    sleep: RecordingSleep | None = None,
    **config_kwargs: Any,
) -> Orchestrator:
    """Orchestrator in mock mode wired to *provider* with instant retries."""
    config_kwargs.setdefault("image_retry", FAST_RETRY)
    config_kwargs.setdefault("text_retry", FAST_RETRY)
    config = Config(use_mock=True, **config_kwargs)
    return Orchestrator(config, provider=provider, sleep=sleep or RecordingSleep())
