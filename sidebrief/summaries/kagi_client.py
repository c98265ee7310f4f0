"""Thin httpx wrapper used by the summary resolver to reach Kagi."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

DEFAULT_BASE_URL = "https://kagi.com"
PAID_ENDPOINT_PATH = "/api/v0/summarize"
FREE_ENDPOINT_PATH = "/mother/summary_labs"
SESSION_COOKIE_NAME = "kagi_session"


class TransportError(RuntimeError):
    """Base error raised when no HTTP response could be obtained."""


class TransportTimeout(TransportError):
    """Raised when the request did not complete within its timeout."""


class TransportConnectionError(TransportError):
    """Raised when Kagi could not be reached at all."""


@dataclass(frozen=True)
class KagiEndpoints:
    """Fixed URLs of the paid and free summarization endpoints."""

    paid_url: str = DEFAULT_BASE_URL + PAID_ENDPOINT_PATH
    free_url: str = DEFAULT_BASE_URL + FREE_ENDPOINT_PATH

    @classmethod
    def from_base(cls, base_url: str) -> "KagiEndpoints":
        base = base_url.rstrip("/")
        return cls(paid_url=base + PAID_ENDPOINT_PATH, free_url=base + FREE_ENDPOINT_PATH)


@dataclass(frozen=True)
class TransportResponse:
    """Simplified view of an HTTP response; header names are lower-case."""

    status: int
    reason: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    json_body: Any = None
    text: str = ""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()


class Transport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
        json: Optional[Mapping[str, Any]] = None,
        credentialed: bool = False,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        ...


class KagiTransport:
    """Performs Kagi requests, attaching the session cookie only when asked.

    The free endpoint authenticates through the browser session cookie, so
    credentialed calls carry ``kagi_session``. Cookies set by responses are
    dropped after every call to keep concurrent requests independent.
    """

    _DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        session_token: Optional[str] = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.session_token = (session_token or "").strip() or None
        self.timeout = timeout
        self._owns_client = client is None
        headers = {"User-Agent": user_agent} if user_agent else None
        self._client = client or httpx.AsyncClient(timeout=self.timeout, headers=headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "KagiTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
        json: Optional[Mapping[str, Any]] = None,
        credentialed: bool = False,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        request_headers: Dict[str, str] = dict(headers)
        if credentialed and self.session_token:
            request_headers["Cookie"] = f"{SESSION_COOKIE_NAME}={self.session_token}"

        try:
            response = await self._client.request(
                method,
                url,
                headers=request_headers,
                params=dict(params) if params else None,
                json=dict(json) if json is not None else None,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeout(f"Request to {url} timed out") from exc
        except httpx.NetworkError as exc:
            raise TransportConnectionError(f"Failed to connect to {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        finally:
            self._client.cookies.clear()

        return TransportResponse(
            status=response.status_code,
            reason=response.reason_phrase,
            headers={key.lower(): value for key, value in response.headers.items()},
            json_body=_safe_json(response),
            text=response.text,
        )


def _safe_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
