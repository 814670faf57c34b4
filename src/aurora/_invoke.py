"""Map a Candidate onto the matching provider call.

The waterfall only knows ``invoke(candidate) -> value``; these helpers decide
which provider method a candidate uses and which parameters it can accept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from aurora.errors import APIError, EmptyResultError
from aurora.providers.models import ImageOptions, InlineImage, ProviderRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aurora.candidates import Candidate
    from aurora.providers.base import Provider
    from aurora.providers.models import ProviderResponse
    from aurora.request import SourceImage
    from aurora.result import Artifact


def _check_image_input(candidate: Candidate, images: Sequence[SourceImage]) -> None:
    if images and not candidate.supports_image_input:
        raise APIError(
            f"{candidate.id} does not accept image input",
            hint="Use a candidate with supports_image_input=True.",
            status_code=400,
            phase="preflight",
        )


def _artifacts(
    candidate: Candidate, response: ProviderResponse
) -> tuple[Artifact, ...]:
    if not response.images:
        reason = response.finish_reason or "unknown"
        raise EmptyResultError(
            f"{candidate.id} returned no images (finish_reason={reason})"
        )
    return tuple(response.images)


def inline_images(images: Sequence[SourceImage]) -> list[InlineImage]:
    """Convert source images into inline request parts, order preserved."""
    return [InlineImage(data=img.data, mime_type=img.mime_type) for img in images]


async def invoke_image_candidate(
    provider: Provider,
    candidate: Candidate,
    *,
    prompt: str,
    aspect_ratio: str | None = None,
    image_size: str | None = None,
    images: Sequence[SourceImage] = (),
) -> tuple[Artifact, ...]:
    """Ask *candidate* for images.

    ``image_size`` is dropped for candidates without resolution control. A
    response without images raises ``EmptyResultError`` naming the backend's
    finish reason.
    """
    _check_image_input(candidate, images)
    if candidate.method == "images":
        response = await provider.generate_images(
            model=candidate.model,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
        )
        return _artifacts(candidate, response)

    size = image_size if candidate.supports_resolution_control else None
    options = (
        ImageOptions(aspect_ratio=aspect_ratio, image_size=size)
        if aspect_ratio is not None or size is not None
        else None
    )
    response = await provider.generate(
        ProviderRequest(
            model=candidate.model,
            parts=[*inline_images(images), prompt],
            image_options=options,
            want_images=True,
        )
    )
    return _artifacts(candidate, response)


async def invoke_text_candidate(
    provider: Provider,
    candidate: Candidate,
    *,
    prompt: str,
    images: Sequence[SourceImage] = (),
    system_instruction: str | None = None,
) -> str:
    """Ask *candidate* for text (optionally about *images*); return stripped text."""
    _check_image_input(candidate, images)
    response = await provider.generate(
        ProviderRequest(
            model=candidate.model,
            parts=[*inline_images(images), prompt],
            system_instruction=system_instruction,
            thinking_budget=candidate.thinking_budget,
        )
    )
    return response.text.strip()
