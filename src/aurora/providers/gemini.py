"""Gemini provider implementation."""

from __future__ import annotations

import asyncio
import base64
from typing import TYPE_CHECKING, Any

from aurora.errors import APIError, ConfigurationError
from aurora.providers._errors import wrap_provider_error
from aurora.providers.models import InlineImage, ProviderResponse
from aurora.result import Artifact

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aurora.providers.models import Message, ProviderRequest


class GeminiProvider:
    """Google Gemini / Imagen API provider."""

    def __init__(self, api_key: str) -> None:
        """Create provider with an API key."""
        if not api_key:
            raise ConfigurationError(
                "api_key required for real API",
                hint="Set GEMINI_API_KEY or pass Config(api_key=...).",
            )
        self.api_key = api_key
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
            except ImportError as e:
                raise APIError(
                    "google-genai package not installed",
                    hint="pip install google-genai",
                ) from e

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying async HTTP session, if one was opened."""
        if self._client is None:
            return
        aclose = getattr(self._client.aio, "aclose", None)
        if callable(aclose):
            await aclose()
        self._client = None

    def _convert_parts(self, parts: list[Any]) -> list[Any]:
        """Convert internal part representation to google-genai SDK types."""
        from google.genai import types

        converted: list[Any] = []
        for p in parts:
            if isinstance(p, str):
                converted.append(types.Part.from_text(text=p))
            elif isinstance(p, InlineImage):
                converted.append(
                    types.Part.from_bytes(data=p.data, mime_type=p.mime_type)
                )
            else:
                converted.append(p)
        return converted

    def _build_config(self, request: ProviderRequest) -> Any:
        from google.genai import types

        config_kwargs: dict[str, Any] = {}
        if request.want_images:
            config_kwargs["response_modalities"] = ["IMAGE", "TEXT"]
        opts = request.image_options
        if opts is not None:
            image_kwargs: dict[str, Any] = {}
            if opts.aspect_ratio is not None:
                image_kwargs["aspect_ratio"] = opts.aspect_ratio
            if opts.image_size is not None:
                image_kwargs["image_size"] = opts.image_size
            if image_kwargs:
                config_kwargs["image_config"] = types.ImageConfig(**image_kwargs)
        if request.system_instruction is not None:
            config_kwargs["system_instruction"] = request.system_instruction
        if request.thinking_budget is not None:
            config_kwargs["thinking_config"] = types.ThinkingConfig(
                thinking_budget=request.thinking_budget
            )
        return types.GenerateContentConfig(**config_kwargs)

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Generate text and/or inline images with ``generate_content``."""
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=self._convert_parts(request.parts),
                config=self._build_config(request),
            )
            if not response:
                raise APIError("Gemini returned an empty response.")
            return self._parse_response(response)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="generate",
                message=f"Gemini generate failed for {request.model}",
            ) from e

    async def generate_images(
        self,
        *,
        model: str,
        prompt: str,
        aspect_ratio: str | None = None,
        number_of_images: int = 1,
    ) -> ProviderResponse:
        """Synthesize images with an Imagen model."""
        client = self._get_client()
        from google.genai import types

        config_kwargs: dict[str, Any] = {"number_of_images": number_of_images}
        if aspect_ratio is not None:
            config_kwargs["aspect_ratio"] = aspect_ratio
        try:
            response = await client.aio.models.generate_images(
                model=model,
                prompt=prompt,
                config=types.GenerateImagesConfig(**config_kwargs),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="generate_images",
                message=f"Imagen generate failed for {model}",
            ) from e

        images: list[Artifact] = []
        for generated in getattr(response, "generated_images", None) or []:
            image = getattr(generated, "image", None)
            data = getattr(image, "image_bytes", None)
            if data:
                images.append(
                    Artifact(
                        data=data,
                        mime_type=getattr(image, "mime_type", None) or "image/png",
                    )
                )
        return ProviderResponse(images=images)

    async def stream_chat(
        self,
        *,
        model: str,
        history: list[Message],
        message: str,
        thinking_budget: int | None = None,
    ) -> AsyncIterator[str]:
        """Open a chat session and start streaming the reply."""
        client = self._get_client()
        from google.genai import types

        config_kwargs: dict[str, Any] = {}
        if thinking_budget is not None:
            config_kwargs["thinking_config"] = types.ThinkingConfig(
                thinking_budget=thinking_budget
            )
        contents = [
            types.Content(role=m.role, parts=[types.Part.from_text(text=m.content)])
            for m in history
            if m.content
        ]
        try:
            chat = client.aio.chats.create(
                model=model,
                history=contents,
                config=types.GenerateContentConfig(**config_kwargs),
            )
            stream = await chat.send_message_stream(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="chat",
                message=f"Gemini chat failed for {model}",
            ) from e
        return self._iter_text(stream, model=model)

    async def _iter_text(self, stream: Any, *, model: str) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                text = getattr(chunk, "text", None)
                if text:
                    yield text
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="gemini",
                phase="chat_stream",
                message=f"Gemini chat stream failed for {model}",
            ) from e

    def _parse_response(self, response: Any) -> ProviderResponse:
        """Parse a Gemini response into text, inline images and finish reason."""
        texts: list[str] = []
        images: list[Artifact] = []
        finish_reason: str | None = None

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            first = candidates[0]
            reason = getattr(first, "finish_reason", None)
            if reason is not None:
                finish_reason = str(getattr(reason, "name", reason))
            content = getattr(first, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                data = getattr(inline, "data", None)
                if data:
                    if isinstance(data, str):
                        data = base64.b64decode(data)
                    images.append(
                        Artifact(
                            data=data,
                            mime_type=getattr(inline, "mime_type", None) or "image/png",
                        )
                    )
                    continue
                text = getattr(part, "text", None)
                if isinstance(text, str) and text and not getattr(part, "thought", False):
                    texts.append(text)

        return ProviderResponse(
            text="".join(texts),
            images=images,
            finish_reason=finish_reason,
        )
