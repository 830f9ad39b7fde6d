"""
errors.py

Classifies provider failures by message content.
is_quota_or_auth_error() decides whether the orchestrator retries on the
fallback provider; classify_error() picks which persona error message
the user sees.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

from typing import Literal

ErrorCategory = Literal["quota", "network", "default"]

_QUOTA_OR_AUTH_MARKERS: tuple[str, ...] = (
    "quota",
    "rate_limit",
    "rate limit",
    "insufficient",
    "billing",
    "exceeded",
    "429",
    "401",
    "403",
    "api key",
    "authentication",
    "permission",
    "resource_exhausted",
    "resource has been exhausted",
    "exhausted",
)

_QUOTA_MARKERS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "exceeded",
    "rate_limit",
    "rate limit",
    "429",
    "resource_exhausted",
    "resource has been exhausted",
    "too many requests",
)

_NETWORK_MARKERS: tuple[str, ...] = (
    "network",
    "connection",
    "econnrefused",
    "enotfound",
    "timeout",
    "timed out",
    "fetch failed",
    "econnreset",
    "socket hang up",
    "dns",
    "name resolution",
)


def _message(exc: BaseException) -> str:
    return str(exc).lower()


def is_quota_or_auth_error(exc: BaseException) -> bool:
    """
    Return True for quota, rate-limit and credential failures.

    Example:
        is_quota_or_auth_error(ProviderError("quota", provider="gemini", status_code=429))  # True
    """
    msg = _message(exc)
    return any(marker in msg for marker in _QUOTA_OR_AUTH_MARKERS)


def classify_error(exc: BaseException) -> ErrorCategory:
    """
    Map an error to the category of user-facing message to show.

    Args:
        exc: The error that ended the turn.

    Returns:
        "quota", "network" or "default".
    """
    msg = _message(exc)
    if any(marker in msg for marker in _QUOTA_MARKERS):
        return "quota"
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(marker in msg for marker in _NETWORK_MARKERS):
        return "network"
    return "default"
