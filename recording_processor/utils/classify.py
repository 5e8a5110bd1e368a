"""Transient-vs-fatal classification of worker HTTP failures.

Workers call classify_response() on every non-2xx response and
classify_request_error() on transport failures, so the retry policy only
ever sees TransientWorkerError for conditions that can clear on their own.
"""

from __future__ import annotations

import httpx

from recording_processor.utils.errors import (
    FatalWorkerError,
    TransientWorkerError,
    WorkerError,
)

# Overloaded, scaling up, or rate limited.
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

# 429 bodies carrying these codes are billing problems, not load.
FATAL_ERROR_CODES = frozenset({"insufficient_quota", "billing_hard_limit_reached"})


def _error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code") or error.get("type")
        return code if isinstance(code, str) else None
    return None


def is_transient_response(response: httpx.Response) -> bool:
    """Return True when a non-2xx response is worth retrying."""
    if response.status_code not in TRANSIENT_STATUS_CODES:
        return False
    return _error_code(response) not in FATAL_ERROR_CODES


def classify_response(
    response: httpx.Response, provider: str, action: str
) -> WorkerError:
    """Build the taxonomy error for a failed worker response.

    Args:
        response: The non-2xx response.
        provider: Worker identifier for error context.
        action: Short description of the call, used in the message.

    Returns:
        TransientWorkerError or FatalWorkerError (not raised).
    """
    status = response.status_code
    if is_transient_response(response):
        return TransientWorkerError(
            f"{provider} temporarily unavailable during {action} "
            f"(HTTP {status})",
            provider=provider,
            status_code=status,
        )
    if _error_code(response) in FATAL_ERROR_CODES:
        return FatalWorkerError(
            f"{provider} quota exceeded during {action}; check billing "
            "details before resubmitting",
            provider=provider,
            status_code=status,
        )
    return FatalWorkerError(
        f"{provider} {action} failed with status {status}: {response.text[:500]}",
        provider=provider,
        status_code=status,
    )


def classify_request_error(
    exc: httpx.RequestError, provider: str, action: str
) -> WorkerError:
    """Network-level failures are transient; malformed requests are not."""
    if isinstance(exc, httpx.TransportError):
        return TransientWorkerError(
            f"{provider} unreachable during {action}: {exc}", provider=provider
        )
    return FatalWorkerError(
        f"{provider} request failed during {action}: {exc}", provider=provider
    )
