from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, Optional

import httpx


class FailureKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    GENERIC = "generic"


BIRTH_DETAILS_REQUIRED = (
    "Birth details are required. Please provide your birth information first."
)

FALLBACK_REPLY = (
    "I apologize, but I'm having trouble generating a response right now. "
    "Please try rephrasing your question."
)

FAILURE_MESSAGES: Dict[FailureKind, str] = {
    FailureKind.VALIDATION: BIRTH_DETAILS_REQUIRED,
    FailureKind.AUTH: (
        "There's an authentication issue with the astrology service. "
        "Please contact support."
    ),
    FailureKind.RATE_LIMIT: (
        "The service is currently busy. Please wait a moment and try again."
    ),
    FailureKind.TIMEOUT: (
        "The request timed out. Please try again with a shorter question."
    ),
    FailureKind.GENERIC: (
        "I'm sorry, I'm having technical difficulties right now. "
        "Please try again in a moment."
    ),
}


class InvalidBirthDetails(ValueError):
    """Birth details were missing or malformed; no gateway was contacted."""

    def __init__(self, message: str = BIRTH_DETAILS_REQUIRED, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class GatewayError(RuntimeError):
    """A third-party provider call failed."""

    def __init__(self, kind: FailureKind, message: str, *, gateway: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.gateway = gateway
        self.status_code = status_code


class MalformedResponseError(ValueError):
    """The provider answered successfully but with an unusable payload."""


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, GatewayError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return FailureKind.TIMEOUT

    status = _status_of(exc)
    if status in (401, 403):
        return FailureKind.AUTH
    if status == 429:
        return FailureKind.RATE_LIMIT
    if status in (408, 504) or "timeout" in str(exc).lower():
        return FailureKind.TIMEOUT
    return FailureKind.GENERIC


def wrap_gateway_error(gateway: str, exc: BaseException) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    clean = " ".join(str(exc).split())[:500] or type(exc).__name__
    return GatewayError(
        classify_failure(exc),
        f"{gateway} call failed: {clean}",
        gateway=gateway,
        status_code=_status_of(exc),
    )


def message_for(kind: FailureKind) -> str:
    return FAILURE_MESSAGES.get(kind, FAILURE_MESSAGES[FailureKind.GENERIC])
