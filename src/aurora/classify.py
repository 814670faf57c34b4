"""Failure classification for backend errors.

The backend exposes no stable structured error codes across models, so all
text matching lives here. Callers only ever see ``ErrorClassification``.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import re

import httpx

from aurora.errors import _walk_exception_chain


class ErrorClassification(str, Enum):
    """Why a backend call failed, as far as retry and fallback care."""

    PERMISSION = "permission"
    QUOTA = "quota"
    SERVER_BUSY = "server-busy"
    INVALID_REQUEST = "invalid-request"
    UNKNOWN = "unknown"


# First match wins.
_RULES: tuple[tuple[ErrorClassification, re.Pattern[str]], ...] = (
    (
        ErrorClassification.PERMISSION,
        re.compile(r"\b403\b|permission"),
    ),
    (
        ErrorClassification.QUOTA,
        re.compile(
            r"\b429\b|quota|resource[ _]exhausted|too many requests"
        ),
    ),
    (
        ErrorClassification.SERVER_BUSY,
        re.compile(r"\b503\b|unavailable|overloaded"),
    ),
    (
        ErrorClassification.INVALID_REQUEST,
        re.compile(r"\b400\b|invalid_argument"),
    ),
)

_TRANSIENT = frozenset({ErrorClassification.QUOTA, ErrorClassification.SERVER_BUSY})


def _error_text(exc: BaseException) -> str:
    pieces: list[str] = []
    for e in _walk_exception_chain(exc):
        pieces.append(str(e))
        # google-genai errors carry ``code`` (int) and ``status`` (str).
        for attr in ("status_code", "code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, (int, str)) and not isinstance(value, bool):
                pieces.append(str(value))
    return " ".join(pieces).lower()


def classify(exc: BaseException) -> ErrorClassification:
    """Assign *exc* to one of the five failure classes.

    Matching is case-insensitive over the message of the error and every error
    in its cause/context chain, plus any ``status_code``/``code``/``status``
    attribute.
    Transport-level timeouts and connection errors count as a busy server.
    """
    if isinstance(exc, asyncio.CancelledError):
        return ErrorClassification.UNKNOWN

    text = _error_text(exc)
    for classification, pattern in _RULES:
        if pattern.search(text):
            return classification

    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            return ErrorClassification.SERVER_BUSY

    return ErrorClassification.UNKNOWN


def is_transient(classification: ErrorClassification) -> bool:
    """Return True when a failure of this class is worth retrying in place."""
    return classification in _TRANSIENT
