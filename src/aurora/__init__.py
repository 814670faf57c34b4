"""Aurora: resilient image generation, editing and chat on Gemini.

Public API:
    - Orchestrator: generate(), edit(), chat() with retry and model fallback
    - generate() / edit() / chat(): one-shot convenience wrappers
    - GenerateRequest, EditRequest, ChatRequest: explicit input types
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging

from aurora.cache import ResultCache
from aurora.candidates import Candidate, CandidateOrder
from aurora.classify import ErrorClassification, classify
from aurora.config import Config, EnvironmentCredentials
from aurora.errors import (
    AllCandidatesExhaustedError,
    APIError,
    AuroraError,
    ConfigurationError,
    CredentialError,
    DeadlineExceededError,
    EditExhaustedError,
    RateLimitError,
    SyntheticEditError,
)
from aurora.orchestrator import Orchestrator
from aurora.request import (
    AspectRatio,
    ChatMode,
    ChatRequest,
    ChatTurn,
    EditRequest,
    GenerateRequest,
    QualityTier,
    Resolution,
    SourceImage,
)
from aurora.result import Artifact, ChatStream, Result
from aurora.retry import RetryPolicy

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("aurora-genai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("aurora").addHandler(logging.NullHandler())


async def generate(request: GenerateRequest, *, config: Config) -> Result:
    """Generate an image with a short-lived Orchestrator.

    Example:
        config = Config()
        result = await generate(GenerateRequest("A lighthouse at dusk"), config=config)
        print(result.served_by, result.degraded)
    """
    async with Orchestrator(config) as orchestrator:
        return await orchestrator.generate(request)


async def edit(request: EditRequest, *, config: Config) -> Result:
    """Edit images with a short-lived Orchestrator."""
    async with Orchestrator(config) as orchestrator:
        return await orchestrator.edit(request)


async def chat(request: ChatRequest, *, config: Config) -> ChatStream:
    """Start a chat reply stream.

    The orchestrator is left open because the stream still reads from its
    provider; hold an ``Orchestrator`` yourself to control its lifetime.
    """
    return await Orchestrator(config).chat(request)


__all__ = [
    "APIError",
    "AllCandidatesExhaustedError",
    "Artifact",
    "AspectRatio",
    "AuroraError",
    "Candidate",
    "CandidateOrder",
    "ChatMode",
    "ChatRequest",
    "ChatStream",
    "ChatTurn",
    "Config",
    "ConfigurationError",
    "CredentialError",
    "DeadlineExceededError",
    "EditExhaustedError",
    "EditRequest",
    "EnvironmentCredentials",
    "ErrorClassification",
    "GenerateRequest",
    "Orchestrator",
    "QualityTier",
    "RateLimitError",
    "Resolution",
    "ResultCache",
    "Result",
    "RetryPolicy",
    "SourceImage",
    "SyntheticEditError",
    "chat",
    "classify",
    "edit",
    "generate",
]
