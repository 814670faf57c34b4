"""Prompt text for edit, describe and high-detail generation requests."""

from __future__ import annotations

from aurora.request import AspectRatio, Resolution

DETAIL_SUFFIX = " (Highly detailed 8K resolution masterpiece, ultra-sharp)"

DESCRIBE_SYSTEM_INSTRUCTION = (
    "You are an art director writing prompts for an image generation model. "
    "Answer with the prompt only, no preamble."
)


def with_detail_suffix(prompt: str) -> str:
    """Append the detail-emphasis suffix used when 8K is requested."""
    return f"{prompt}{DETAIL_SUFFIX}"


def build_edit_instruction(
    instruction: str,
    *,
    image_count: int,
    aspect_ratio: AspectRatio | None,
    resolution: Resolution | None,
) -> str:
    """Build the structured instruction block that follows the source images."""
    target_ratio = aspect_ratio.value if aspect_ratio is not None else "same as input"
    target_res = resolution.value if resolution is not None else "same as input"
    if image_count > 1:
        task = (
            f"Merge the {image_count} images above into a single image, "
            "transforming them as instructed."
        )
    else:
        task = "Transform the image above as instructed."
    return (
        f"{task}\n"
        "\n"
        "Target output:\n"
        f"- Aspect ratio: {target_ratio}\n"
        f"- Resolution: {target_res}\n"
        f"- Source images: {image_count}\n"
        "\n"
        f"Instruction: {instruction.strip()}\n"
        "\n"
        "Return the edited image."
    )


def build_describe_request(
    instruction: str, *, image_count: int, aspect_ratio: AspectRatio
) -> str:
    """Ask a vision model to describe the image an edit should produce."""
    noun = "image" if image_count == 1 else f"{image_count} images"
    merge = (
        ""
        if image_count == 1
        else "- How the images are merged: which elements come from which image.\n"
    )
    return (
        f"Look at the {noun} above. Someone wants this edit applied:\n"
        f'"{instruction.strip()}"\n'
        "\n"
        "Describe in detail, as a single prompt for an image generation model, "
        "what the resulting image should look like after the edit. Cover:\n"
        "- Composition and subject placement.\n"
        "- Lighting and color palette.\n"
        "- Style and medium.\n"
        f"{merge}"
        f"The output will be rendered at aspect ratio {aspect_ratio.value}."
    )
