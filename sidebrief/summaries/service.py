"""Resolve summarize requests against Kagi's paid and free endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Mapping, Optional

from .classify import (
    Classification,
    classify_free_success,
    classify_response,
    classify_transport_error,
)
from .kagi_client import KagiEndpoints, Transport, TransportResponse
from .selection import SelectionError, select_engine
from .settings import SettingsProvider
from .types import (
    DEFAULT_ENGINE,
    ErrorKind,
    FallbackReason,
    Outcome,
    ResolvedRequest,
    Settings,
    SummarizeRequest,
    TextRequest,
)

FALLBACK_FAILED_MESSAGE = (
    "Insufficient API credits and free fallback failed. Please add credits or sign in to kagi.com."
)
FALLBACK_UNREACHABLE_MESSAGE = "Insufficient API credits and free fallback failed."


class SummaryResolver:
    """Single entry point used by the CLI and any other caller.

    Each :meth:`resolve` call reads settings once, makes one primary request
    and, only when a paid URL request fails for lack of credit, one follow-up
    request to the free endpoint.
    """

    _DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        settings_provider: SettingsProvider,
        transport: Transport,
        *,
        endpoints: Optional[KagiEndpoints] = None,
        timeout: float = _DEFAULT_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings_provider = settings_provider
        self._transport = transport
        self._endpoints = endpoints or KagiEndpoints()
        self.timeout = timeout
        self._logger = logger or logging.getLogger(__name__)

    async def resolve(self, request: SummarizeRequest, *, timeout: Optional[float] = None) -> Outcome:
        """Return the outcome for ``request``; never raises except on cancellation."""

        call_timeout = self.timeout if timeout is None else timeout
        settings = await self._load_settings()

        try:
            resolved = select_engine(request, settings)
        except SelectionError as exc:
            self._log_debug("selection-failed", request, {"error_kind": exc.error_kind.value})
            return Outcome(
                summary_text=exc.message,
                error_kind=exc.error_kind,
                engine_used=settings.engine,
            )

        self._log_debug(
            "selected",
            request,
            {
                "use_api": resolved.use_api,
                "engine": resolved.engine,
                "fallback_reason": resolved.fallback_reason.value,
                "has_token": settings.has_token,
            },
        )

        try:
            classification = await self._dispatch_primary(request, resolved, call_timeout)
            if not classification.insufficient_credit:
                outcome = self._finish(classification, resolved)
            else:
                outcome = await self._dispatch_fallback(request, resolved, call_timeout)
        except asyncio.CancelledError:
            self._log_debug("cancelled", request, {"use_api": resolved.use_api})
            raise

        self._log_debug(
            "done",
            request,
            {
                "success": outcome.success,
                "error_kind": outcome.error_kind.value,
                "fallback_reason": outcome.fallback_reason.value,
                "engine_used": outcome.engine_used,
            },
        )
        return outcome

    async def _load_settings(self) -> Settings:
        try:
            return await self._settings_provider.get()
        except Exception as exc:
            self._logger.warning("Unable to load settings, using defaults: %s", exc)
            return Settings()

    async def _dispatch_primary(
        self, request: SummarizeRequest, resolved: ResolvedRequest, timeout: float
    ) -> Classification:
        headers = {"Content-Type": "application/json"}
        if resolved.auth_header:
            headers["Authorization"] = resolved.auth_header

        url = self._endpoints.paid_url if resolved.use_api else self._endpoints.free_url
        # Text bodies go in a JSON POST; query strings hit URL length limits.
        method = "POST" if resolved.use_api and resolved.is_text else "GET"
        self._log_debug("dispatch", request, {"method": method, "url": url})

        try:
            response = await self._send(
                method,
                url,
                headers=headers,
                params=resolved.params,
                credentialed=not resolved.use_api,
                timeout=timeout,
            )
        except Exception as exc:
            self._logger.warning("Summarize request to %s failed: %s", url, exc)
            return classify_transport_error(exc)

        try:
            classification = classify_response(response, use_api=resolved.use_api, is_text=resolved.is_text)
        except Exception as exc:
            self._logger.warning("Unreadable response from %s: %s", url, exc)
            return classify_transport_error(exc)
        self._log_debug(
            "classified",
            request,
            {
                "status": response.status,
                "success": classification.success,
                "error_kind": classification.error_kind.value,
                "insufficient_credit": classification.insufficient_credit,
            },
        )
        if response.status != 200 and not classification.insufficient_credit:
            self._logger.warning("Summarize error: %s %s", response.status, response.reason)
        return classification

    async def _dispatch_fallback(
        self, request: SummarizeRequest, resolved: ResolvedRequest, timeout: float
    ) -> Outcome:
        params = {
            key: value
            for key, value in resolved.params.items()
            if key in ("url", "summary_type", "target_language")
        }
        self._log_debug("fallback", request, {"url": self._endpoints.free_url})

        try:
            response = await self._transport.request(
                "GET",
                self._endpoints.free_url,
                headers={"Content-Type": "application/json"},
                params=params,
                credentialed=True,
                timeout=timeout,
            )
        except Exception as exc:
            self._logger.warning("Free fallback request failed: %s", exc)
            return Outcome(summary_text=FALLBACK_UNREACHABLE_MESSAGE, engine_used=DEFAULT_ENGINE)

        try:
            status = response.status
            classification = classify_free_success(response.json_body) if status == 200 else None
        except Exception as exc:
            self._logger.warning("Unreadable free fallback response: %s", exc)
            return Outcome(summary_text=FALLBACK_FAILED_MESSAGE, engine_used=DEFAULT_ENGINE)

        if classification is None:
            self._logger.warning("Free fallback error: %s %s", status, getattr(response, "reason", ""))
            return Outcome(summary_text=FALLBACK_FAILED_MESSAGE, engine_used=DEFAULT_ENGINE)
        if classification.error_kind is ErrorKind.AUTH_SIGNIN:
            return Outcome(
                summary_text=classification.summary_text,
                error_kind=ErrorKind.AUTH_SIGNIN,
                engine_used=DEFAULT_ENGINE,
            )
        if not classification.success:
            return Outcome(summary_text=FALLBACK_FAILED_MESSAGE, engine_used=DEFAULT_ENGINE)
        return Outcome(
            summary_text=classification.summary_text,
            success=True,
            time_saved_minutes=classification.time_saved_minutes,
            fallback_reason=FallbackReason.INSUFFICIENT_CREDIT,
            engine_used=DEFAULT_ENGINE,
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, str],
        credentialed: bool,
        timeout: float,
    ) -> TransportResponse:
        if method == "POST":
            return await self._transport.request(
                method, url, headers=headers, json=dict(params), credentialed=credentialed, timeout=timeout
            )
        return await self._transport.request(
            method, url, headers=headers, params=dict(params), credentialed=credentialed, timeout=timeout
        )

    def _finish(self, classification: Classification, resolved: ResolvedRequest) -> Outcome:
        return Outcome(
            summary_text=classification.summary_text,
            success=classification.success,
            time_saved_minutes=classification.time_saved_minutes,
            error_kind=classification.error_kind,
            fallback_reason=resolved.fallback_reason,
            engine_used=resolved.engine or DEFAULT_ENGINE,
        )

    def _log_debug(self, event: str, request: SummarizeRequest, extra: Mapping[str, object]) -> None:
        if not self._logger:
            return
        payload: Dict[str, object] = {
            "event": event,
            "mode": "text" if isinstance(request, TextRequest) else "url",
            "summary_type": request.summary_type.value if request.summary_type else None,
        }
        payload.update(dict(extra))
        self._logger.debug("summary-resolver", extra={"summary": payload})
