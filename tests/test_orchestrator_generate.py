"""Orchestrator.generate behavior: ladder, cache and resolution handling."""

from __future__ import annotations

import pytest

import aurora
from aurora.candidates import generate_candidates
from aurora.config import Config
from aurora.errors import (
    BUSY_MESSAGE,
    REJECTED_MESSAGE,
    AllCandidatesExhaustedError,
    CredentialError,
    EmptyResultError,
)
from aurora.orchestrator import Orchestrator, backend_resolution
from aurora.prompts import DETAIL_SUFFIX
from aurora.providers.models import ProviderResponse
from aurora.request import GenerateRequest, QualityTier, Resolution
from aurora.retry import RetryPolicy
from tests.conftest import RecordingSleep, ScriptedProvider
from tests.helpers import (
    invalid_argument,
    make_orchestrator,
    permission_denied,
    quota_exhausted,
)

pytestmark = pytest.mark.unit

PRO = "gemini-3-pro-image-preview"
STANDARD = "gemini-2.5-flash-image"
IMAGEN = "imagen-4.0-generate-001"

ALL_IMAGE_MODELS = (
    PRO,
    STANDARD,
    IMAGEN,
    "gemini-2.0-flash-exp-image-generation",
    "gemini-2.0-flash-preview-image-generation",
    "imagen-3.0-generate-002",
)


def _requests(provider: ScriptedProvider, model: str) -> list:
    return [payload for (_, m, payload) in provider.calls if m == model]


@pytest.mark.asyncio
async def test_primary_success_is_served_without_degradation() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)

    result = await orchestrator.generate(GenerateRequest("a lighthouse at dusk"))

    assert result.served_by == "gemini-2.5-flash-image"
    assert result.degraded is False
    assert result.synthetic is False
    assert len(result.artifacts) == 1
    assert provider.models_called() == [STANDARD]


@pytest.mark.asyncio
async def test_repeated_request_is_served_from_cache_without_backend_calls() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)
    request = GenerateRequest("a lighthouse at dusk")

    first = await orchestrator.generate(request)
    second = await orchestrator.generate(GenerateRequest("a lighthouse at dusk"))

    assert second.served_by == "cache"
    assert second.from_cache is True
    assert second.degraded is False
    assert second.artifacts == first.artifacts
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_cache_can_be_disabled() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider, cache_enabled=False)
    request = GenerateRequest("a lighthouse at dusk")

    await orchestrator.generate(request)
    again = await orchestrator.generate(request)

    assert again.served_by == "gemini-2.5-flash-image"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_pro_tier_8k_requests_4k_and_adds_detail_suffix_on_primary() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)
    request = GenerateRequest(
        "a red fox", resolution=Resolution.RES_8K, quality_tier=QualityTier.PRO
    )

    result = await orchestrator.generate(request)

    assert result.served_by == "gemini-3-pro-image"
    (sent,) = _requests(provider, PRO)
    assert sent.image_options.image_size == "4K"
    assert sent.image_options.aspect_ratio == "1:1"
    assert sent.parts[-1] == f"a red fox{DETAIL_SUFFIX}"
    assert sent.want_images is True


@pytest.mark.asyncio
async def test_pro_tier_4k_is_sent_unchanged_without_suffix() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)
    request = GenerateRequest(
        "a red fox", resolution=Resolution.RES_4K, quality_tier=QualityTier.PRO
    )

    await orchestrator.generate(request)

    (sent,) = _requests(provider, PRO)
    assert sent.image_options.image_size == "4K"
    assert sent.parts[-1] == "a red fox"


@pytest.mark.asyncio
async def test_standard_tier_never_sends_resolution() -> None:
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)

    await orchestrator.generate(
        GenerateRequest("a red fox", aspect_ratio="16:9", resolution=Resolution.RES_4K)
    )

    (sent,) = _requests(provider, STANDARD)
    assert sent.image_options.image_size is None
    assert sent.image_options.aspect_ratio == "16:9"


@pytest.mark.asyncio
async def test_fallback_result_is_degraded_and_not_cached() -> None:
    provider = ScriptedProvider(default={PRO: permission_denied()})
    orchestrator = make_orchestrator(provider)
    request = GenerateRequest(
        "a red fox", resolution=Resolution.RES_8K, quality_tier=QualityTier.PRO
    )

    first = await orchestrator.generate(request)
    second = await orchestrator.generate(request)

    assert first.served_by == "gemini-2.5-flash-image"
    assert first.degraded is True
    assert second.served_by == "gemini-2.5-flash-image"
    assert len(orchestrator.cache) == 0

    # The standard model has no resolution control and never gets the suffix.
    standard_requests = _requests(provider, STANDARD)
    assert standard_requests[0].image_options.image_size is None
    assert standard_requests[0].parts[-1] == "a red fox"


@pytest.mark.asyncio
async def test_quota_errors_retry_in_place_then_fall_back(
    sleep: RecordingSleep,
) -> None:
    provider = ScriptedProvider(default={STANDARD: quota_exhausted()})
    orchestrator = make_orchestrator(provider, sleep=sleep)

    result = await orchestrator.generate(GenerateRequest("a red fox", "3:4"))

    assert result.served_by == "imagen-4"
    assert result.degraded is True
    assert provider.models_called() == [STANDARD, STANDARD, STANDARD, IMAGEN]
    (imagen_call,) = _requests(provider, IMAGEN)
    assert imagen_call == {
        "prompt": "a red fox",
        "aspect_ratio": "3:4",
        "number_of_images": 1,
    }


@pytest.mark.asyncio
async def test_backoff_beyond_deadline_falls_through_to_next_candidate(
    sleep: RecordingSleep,
) -> None:
    provider = ScriptedProvider(default={STANDARD: quota_exhausted()})
    orchestrator = make_orchestrator(
        provider,
        sleep=sleep,
        image_retry=RetryPolicy(max_retries=2, initial_delay_s=20.0),
        deadline_s=10,
    )

    result = await orchestrator.generate(GenerateRequest("a fox"))

    assert result.served_by == "imagen-4"
    assert result.degraded is True
    assert provider.models_called() == [STANDARD, IMAGEN]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_candidate_returning_no_images_is_skipped() -> None:
    provider = ScriptedProvider(script={STANDARD: [ProviderResponse(text="sorry")]})
    orchestrator = make_orchestrator(provider)

    result = await orchestrator.generate(GenerateRequest("a red fox"))

    assert result.served_by == "imagen-4"


@pytest.mark.asyncio
async def test_blocked_outputs_record_the_finish_reason() -> None:
    blocked = ProviderResponse(finish_reason="IMAGE_SAFETY")
    provider = ScriptedProvider(default={m: blocked for m in ALL_IMAGE_MODELS})
    orchestrator = make_orchestrator(provider)

    with pytest.raises(AllCandidatesExhaustedError) as exc_info:
        await orchestrator.generate(GenerateRequest("a red fox"))

    first = exc_info.value.failures[0]
    assert isinstance(first.error, EmptyResultError)
    assert "finish_reason=IMAGE_SAFETY" in str(first.error)
    assert str(exc_info.value) == REJECTED_MESSAGE


@pytest.mark.asyncio
async def test_exhausted_ladder_reports_busy_message_for_quota() -> None:
    provider = ScriptedProvider(
        default={m: quota_exhausted() for m in ALL_IMAGE_MODELS}
    )
    orchestrator = make_orchestrator(provider)

    with pytest.raises(AllCandidatesExhaustedError) as exc_info:
        await orchestrator.generate(GenerateRequest("a red fox", quality_tier="pro"))

    err = exc_info.value
    assert str(err) == BUSY_MESSAGE
    assert err.user_message == BUSY_MESSAGE
    assert "429" not in str(err)
    assert len(err.failures) == 6


@pytest.mark.asyncio
async def test_exhausted_ladder_reports_rejection_for_invalid_requests() -> None:
    provider = ScriptedProvider(
        default={m: invalid_argument() for m in ALL_IMAGE_MODELS}
    )
    orchestrator = make_orchestrator(provider)

    with pytest.raises(AllCandidatesExhaustedError) as exc_info:
        await orchestrator.generate(GenerateRequest("a red fox"))

    assert str(exc_info.value) == REJECTED_MESSAGE
    # Non-transient failures are tried once per rung.
    assert len(provider.calls) == 5


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_backend_call() -> None:
    provider = ScriptedProvider()
    orchestrator = Orchestrator(Config(), provider=provider)

    with pytest.raises(CredentialError, match="cancelled or failed"):
        await orchestrator.generate(GenerateRequest("a red fox"))

    assert provider.calls == []


@pytest.mark.asyncio
async def test_credential_from_environment_is_picked_up_at_call_time(
    monkeypatch,
) -> None:
    provider = ScriptedProvider()
    orchestrator = Orchestrator(Config(), provider=provider)
    monkeypatch.setenv("API_KEY", "selected-later")

    result = await orchestrator.generate(GenerateRequest("a red fox"))

    assert result.served_by == "gemini-2.5-flash-image"


@pytest.mark.asyncio
async def test_aclose_clears_cache_and_leaves_injected_provider_open() -> None:
    provider = ScriptedProvider()
    async with make_orchestrator(provider) as orchestrator:
        await orchestrator.generate(GenerateRequest("a red fox"))
        assert len(orchestrator.cache) == 1

    assert len(orchestrator.cache) == 0
    assert provider.closed is False


@pytest.mark.asyncio
async def test_module_level_generate_uses_mock_provider() -> None:
    result = await aurora.generate(
        GenerateRequest("a red fox"), config=Config(use_mock=True)
    )

    assert result.served_by == "gemini-2.5-flash-image"
    assert result.first.mime_type == "image/png"
    assert result.first.to_data_url().startswith("data:image/png;base64,")


def test_backend_resolution_maps_8k_to_4k_only() -> None:
    assert backend_resolution(Resolution.RES_8K) is Resolution.RES_4K
    assert backend_resolution(Resolution.RES_2K) is Resolution.RES_2K


def test_worst_case_delay_covers_every_rung() -> None:
    orchestrator = Orchestrator(Config(use_mock=True), provider=ScriptedProvider())

    # Default image policy: 4 + 6 + 9 + 13.5 + 20.25 per rung.
    expected = 52.75 * 5
    order = generate_candidates(QualityTier.STANDARD)
    assert orchestrator.worst_case_delay_s(order) == pytest.approx(expected)

