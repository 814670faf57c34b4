"""Request types: immutable, validated inputs for generate, edit and chat."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
import mimetypes
from pathlib import Path
from typing import Literal

from aurora.errors import ConfigurationError

MAX_EDIT_IMAGES = 3
DEFAULT_IMAGE_MIME = "image/jpeg"


class AspectRatio(str, Enum):
    """Output aspect ratios accepted by the image models."""

    SQUARE = "1:1"
    PORTRAIT_2_3 = "2:3"
    LANDSCAPE_3_2 = "3:2"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT_9_16 = "9:16"
    LANDSCAPE_16_9 = "16:9"
    CINEMATIC_21_9 = "21:9"


class Resolution(str, Enum):
    """Requested output resolution. ``8K`` is not a backend tier."""

    RES_1K = "1K"
    RES_2K = "2K"
    RES_4K = "4K"
    RES_8K = "8K"


class QualityTier(str, Enum):
    """Caller-chosen model tier; only ``pro`` grants resolution control."""

    STANDARD = "standard"
    PRO = "pro"


class ChatMode(str, Enum):
    """Chat latency/quality trade-off."""

    FAST = "fast"
    THINKING = "thinking"


ChatRole = Literal["user", "model"]

# base64 text prefix -> mime type
_BASE64_SIGNATURES: tuple[tuple[str, str], ...] = (
    ("/9j/", "image/jpeg"),
    ("iVBOR", "image/png"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
)
# raw byte prefix -> mime type
_MAGIC_BYTES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def detect_mime_type(encoded: str) -> str:
    """Detect an image mime type from a data URL or bare base64 string.

    Falls back to ``image/jpeg`` when nothing matches.
    """
    text = encoded.strip()
    if text.startswith("data:"):
        header = text[5:].split(",", 1)[0]
        mime = header.split(";", 1)[0]
        if mime:
            return mime
        text = text.split(",", 1)[-1]
    for prefix, mime in _BASE64_SIGNATURES:
        if text.startswith(prefix):
            return mime
    return DEFAULT_IMAGE_MIME


def sniff_mime_type(data: bytes) -> str:
    """Detect an image mime type from raw bytes."""
    for prefix, mime in _MAGIC_BYTES:
        if data.startswith(prefix):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return DEFAULT_IMAGE_MIME


@dataclass(frozen=True)
class SourceImage:
    """An input image for editing, tagged with its mime type."""

    data: bytes = field(repr=False)
    mime_type: str = DEFAULT_IMAGE_MIME

    def __post_init__(self) -> None:
        """Reject empty payloads early."""
        if not self.data:
            raise ConfigurationError(
                "Source image is empty",
                hint="Pass the image bytes or a base64 data URL.",
            )

    @classmethod
    def from_data_url(cls, url: str) -> SourceImage:
        """Create from ``data:<mime>;base64,<payload>`` or bare base64."""
        mime_type = detect_mime_type(url)
        payload = url.split(",", 1)[1] if "," in url else url
        return cls.from_base64(payload, mime_type=mime_type)

    @classmethod
    def from_base64(cls, payload: str, *, mime_type: str | None = None) -> SourceImage:
        """Create from a base64 string; mime type sniffed when not given."""
        try:
            data = base64.b64decode(payload.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(
                "Source image is not valid base64",
                hint="Pass a data URL such as 'data:image/png;base64,...'.",
            ) from e
        return cls(data=data, mime_type=mime_type or detect_mime_type(payload))

    @classmethod
    def from_bytes(cls, data: bytes, *, mime_type: str | None = None) -> SourceImage:
        """Create from raw bytes; mime type sniffed when not given."""
        return cls(data=data, mime_type=mime_type or sniff_mime_type(data))

    @classmethod
    def from_file(
        cls, path: str | Path, *, mime_type: str | None = None
    ) -> SourceImage:
        """Create from a local image file."""
        p = Path(path)
        if not p.is_file():
            raise ConfigurationError(f"Image file not found: {p}")
        data = p.read_bytes()
        guessed = mimetypes.guess_type(str(p))[0]
        if guessed is not None and not guessed.startswith("image/"):
            guessed = None
        return cls(data=data, mime_type=mime_type or guessed or sniff_mime_type(data))


def _require_text(value: object, name: str, hint: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{name} is empty or whitespace-only", hint=hint)


@dataclass(frozen=True)
class GenerateRequest:
    """Text-to-image request."""

    prompt: str
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    resolution: Resolution = Resolution.RES_2K
    quality_tier: QualityTier = QualityTier.STANDARD

    def __post_init__(self) -> None:
        """Validate and coerce enum fields."""
        _require_text(self.prompt, "prompt", "Describe the image to generate.")
        for name, enum_cls in (
            ("aspect_ratio", AspectRatio),
            ("resolution", Resolution),
            ("quality_tier", QualityTier),
        ):
            object.__setattr__(self, name, _coerce(enum_cls, getattr(self, name)))


@dataclass(frozen=True)
class EditRequest:
    """Edit/merge request over one to three source images."""

    images: tuple[SourceImage, ...]
    instruction: str
    aspect_ratio: AspectRatio | None = None
    resolution: Resolution | None = None

    def __post_init__(self) -> None:
        """Validate image count, instruction and enum fields."""
        images = tuple(self.images)
        if not 1 <= len(images) <= MAX_EDIT_IMAGES:
            raise ConfigurationError(
                f"Edit needs 1 to {MAX_EDIT_IMAGES} images, got {len(images)}",
                hint="Upload at least one and at most three source images.",
            )
        for img in images:
            if not isinstance(img, SourceImage):
                raise ConfigurationError(
                    f"Expected SourceImage, got {type(img).__name__}",
                    hint="Use SourceImage.from_data_url(), .from_file(), etc.",
                )
        object.__setattr__(self, "images", images)
        _require_text(self.instruction, "instruction", "Describe the edit to apply.")
        if self.aspect_ratio is not None:
            object.__setattr__(
                self, "aspect_ratio", _coerce(AspectRatio, self.aspect_ratio)
            )
        if self.resolution is not None:
            object.__setattr__(self, "resolution", _coerce(Resolution, self.resolution))


@dataclass(frozen=True)
class ChatTurn:
    """One prior message in a conversation."""

    role: ChatRole
    text: str

    def __post_init__(self) -> None:
        """Validate role."""
        if self.role not in ("user", "model"):
            raise ConfigurationError(
                f"Unknown chat role: {self.role!r}",
                hint="Use 'user' or 'model'.",
            )


@dataclass(frozen=True)
class ChatRequest:
    """A new chat message with its prior history."""

    message: str
    history: tuple[ChatTurn, ...] = ()
    mode: ChatMode = ChatMode.FAST

    def __post_init__(self) -> None:
        """Validate message and normalize history."""
        _require_text(self.message, "message", "Type a message to send.")
        history = tuple(self.history)
        for turn in history:
            if not isinstance(turn, ChatTurn):
                raise ConfigurationError(
                    f"Expected ChatTurn, got {type(turn).__name__}",
                    hint="Pass history=(ChatTurn('user', '...'), ...).",
                )
        object.__setattr__(self, "history", history)
        object.__setattr__(self, "mode", _coerce(ChatMode, self.mode))


def _coerce(enum_cls: type[Enum], value: object) -> Enum:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigurationError(
            f"Invalid {enum_cls.__name__}: {value!r}",
            hint=f"Allowed values: {allowed}",
        ) from None
