"""Decide which Kagi endpoint and engine a request should target."""
from __future__ import annotations

from typing import Dict

from .types import (
    DEFAULT_ENGINE,
    ErrorKind,
    FallbackReason,
    ResolvedRequest,
    Settings,
    SummarizeRequest,
    SummaryType,
    TextRequest,
)

TEXT_REQUIRES_TOKEN_MESSAGE = "Text summarization requires an API token. Add one in Settings."


class SelectionError(Exception):
    """Raised when a request cannot be routed to any endpoint."""

    def __init__(self, error_kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.error_kind = error_kind
        self.message = message


def effective_summary_type(request: SummarizeRequest, settings: Settings) -> SummaryType:
    return request.summary_type or settings.summary_type or SummaryType.SUMMARY


def select_engine(request: SummarizeRequest, settings: Settings) -> ResolvedRequest:
    """Return the resolved request for ``request`` under ``settings``.

    Text input has no free-tier equivalent, so a text request without a token
    raises :class:`SelectionError` before anything is built. A paid engine
    without a token is silently downgraded to the free endpoint and flagged
    with ``FallbackReason.NO_TOKEN``.
    """

    is_text = isinstance(request, TextRequest)
    token = settings.api_token
    engine = settings.engine or DEFAULT_ENGINE

    if is_text and not token:
        raise SelectionError(ErrorKind.AUTH_TOKEN, TEXT_REQUIRES_TOKEN_MESSAGE)

    use_api = bool(token) and (engine != DEFAULT_ENGINE or is_text)
    fallback_reason = (
        FallbackReason.NO_TOKEN if engine != DEFAULT_ENGINE and not token else FallbackReason.NONE
    )

    params: Dict[str, str] = {}
    if not is_text:
        params["url"] = request.url
    params["summary_type"] = effective_summary_type(request, settings).value
    if settings.target_language:
        params["target_language"] = settings.target_language
    if use_api:
        if engine:
            params["engine"] = engine
        if is_text:
            params["text"] = request.text

    return ResolvedRequest(
        use_api=use_api,
        engine=engine if use_api else DEFAULT_ENGINE,
        params=params,
        auth_header=f"Bot {token}" if use_api else None,
        fallback_reason=fallback_reason,
        is_text=is_text,
    )
