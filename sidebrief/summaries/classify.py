"""Map Kagi responses and transport failures onto the closed error taxonomy."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .kagi_client import TransportConnectionError, TransportResponse, TransportTimeout
from .types import ErrorKind

INSUFFICIENT_CREDIT_CODE = 101

UNKNOWN_ERROR_MESSAGE = "Unknown error"
SIGNIN_MESSAGE = (
    "Unauthorized. Please make sure you are signed in to kagi.com, or add an API key in Settings."
)
TOKEN_INVALID_MESSAGE = (
    "Your API token appears to be invalid or expired. Please check your API token in Settings."
)
RATE_LIMIT_MESSAGE = "Kagi is rate limiting requests. Please wait a moment and try again."
UNAVAILABLE_MESSAGE = (
    "Kagi's summarization service is temporarily unavailable. Please try again in a few minutes."
)
GATEWAY_TIMEOUT_MESSAGE = (
    "Kagi's summarization service timed out. This can happen with long videos or complex pages. "
    "Try a shorter video or page, or try again later."
)
TRANSPORT_TIMEOUT_MESSAGE = (
    "The request to Kagi timed out. This can happen with long videos or complex pages. "
    "Try a shorter video or page, or try again later."
)
NETWORK_MESSAGE = "Could not connect to Kagi. Please check your internet connection and try again."


@dataclass(frozen=True)
class Classification:
    """Partial outcome derived from a single HTTP exchange."""

    summary_text: str
    success: bool = False
    time_saved_minutes: float = 0
    error_kind: ErrorKind = ErrorKind.NONE
    insufficient_credit: bool = False


def is_unauthorized_signal(output_text: Any) -> bool:
    """Return True for the free endpoint's "not signed in" marker.

    The free endpoint answers 200 with ``output_text`` set to "Unauthorized"
    instead of using a 401 status.
    """
    return isinstance(output_text, str) and output_text.strip().lower() == "unauthorized"


def classify_response(response: TransportResponse, *, use_api: bool, is_text: bool) -> Classification:
    if response.status == 200:
        if use_api:
            return _classify_paid_success(response.json_body, is_text=is_text)
        return classify_free_success(response.json_body)
    return _classify_error_status(response, use_api=use_api, is_text=is_text)


def classify_free_success(body: Any) -> Classification:
    """Interpret a 200 response from the free endpoint."""
    if not isinstance(body, Mapping):
        return Classification(summary_text=UNKNOWN_ERROR_MESSAGE)

    output_text = body.get("output_text")
    time_saved = _time_saved(body)
    if is_unauthorized_signal(output_text):
        return Classification(
            summary_text=SIGNIN_MESSAGE,
            time_saved_minutes=time_saved,
            error_kind=ErrorKind.AUTH_SIGNIN,
        )

    has_output = isinstance(output_text, str) and bool(output_text)
    return Classification(
        summary_text=output_text if has_output else UNKNOWN_ERROR_MESSAGE,
        success=not body.get("error"),
        time_saved_minutes=time_saved,
    )


def _classify_paid_success(body: Any, *, is_text: bool) -> Classification:
    if not isinstance(body, Mapping):
        return Classification(summary_text=UNKNOWN_ERROR_MESSAGE)

    error = body.get("error")
    if error:
        return Classification(
            summary_text=json.dumps(error, separators=(",", ":"), ensure_ascii=False),
            insufficient_credit=_is_insufficient_credit(error, is_text=is_text),
        )

    data = body.get("data")
    output = data.get("output") if isinstance(data, Mapping) else None
    if isinstance(output, str) and output:
        return Classification(summary_text=output, success=True)
    return Classification(summary_text=UNKNOWN_ERROR_MESSAGE)


def _classify_error_status(response: TransportResponse, *, use_api: bool, is_text: bool) -> Classification:
    status = response.status
    if status == 401:
        if use_api:
            return Classification(summary_text=TOKEN_INVALID_MESSAGE, error_kind=ErrorKind.AUTH_TOKEN)
        return Classification(summary_text=SIGNIN_MESSAGE, error_kind=ErrorKind.AUTH_SIGNIN)
    if status == 429:
        return Classification(summary_text=RATE_LIMIT_MESSAGE, error_kind=ErrorKind.KAGI_RATE_LIMIT)
    if status in (502, 503):
        return Classification(summary_text=UNAVAILABLE_MESSAGE, error_kind=ErrorKind.KAGI_UNAVAILABLE)
    if status == 504:
        return Classification(summary_text=GATEWAY_TIMEOUT_MESSAGE, error_kind=ErrorKind.KAGI_TIMEOUT)

    body = response.json_body
    if not response.is_json or not isinstance(body, Mapping):
        return Classification(summary_text=f"Error: {status} — {response.reason}")

    first = _first_error(body.get("error"))
    if first is None:
        return Classification(summary_text=f"Error: {status}")
    return Classification(
        summary_text=f"Error: {first.get('code')} — {first.get('msg')}",
        insufficient_credit=use_api and _is_insufficient_credit(body.get("error"), is_text=is_text),
    )


def classify_transport_error(exc: BaseException) -> Classification:
    """Classify a failure where no HTTP response was received."""
    message = str(exc)
    if isinstance(exc, (TransportTimeout, asyncio.TimeoutError, TimeoutError)) or _mentions_timeout(message):
        return Classification(summary_text=TRANSPORT_TIMEOUT_MESSAGE, error_kind=ErrorKind.KAGI_TIMEOUT)
    if isinstance(exc, (TransportConnectionError, ConnectionError)):
        return Classification(summary_text=NETWORK_MESSAGE, error_kind=ErrorKind.KAGI_NETWORK)
    return Classification(summary_text=f"Error: {message or exc.__class__.__name__}")


def _is_insufficient_credit(error: Any, *, is_text: bool) -> bool:
    first = _first_error(error)
    return not is_text and first is not None and first.get("code") == INSUFFICIENT_CREDIT_CODE


def _first_error(error: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(error, list) and error and isinstance(error[0], Mapping):
        return error[0]
    return None


def _time_saved(body: Mapping[str, Any]) -> float:
    output_data = body.get("output_data")
    word_stats = output_data.get("word_stats") if isinstance(output_data, Mapping) else None
    value = word_stats.get("time_saved") if isinstance(word_stats, Mapping) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _mentions_timeout(message: str) -> bool:
    lowered = message.lower()
    return "timeout" in lowered or "timed out" in lowered
