from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import pytest

from sidebrief.summaries import (
    KagiEndpoints,
    Settings,
    StaticSettingsProvider,
    SummaryResolver,
    TransportResponse,
)

ENDPOINTS = KagiEndpoints()


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: Dict[str, str]
    params: Optional[Dict[str, str]]
    json: Optional[Dict[str, Any]]
    credentialed: bool
    timeout: Optional[float]


@dataclass
class StubTransport:
    """Returns scripted responses (or raises scripted errors) in order."""

    script: List[Union[TransportResponse, BaseException]] = field(default_factory=list)
    calls: List[RecordedCall] = field(default_factory=list)
    gate: Optional[asyncio.Event] = None

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
        self.calls.append(
            RecordedCall(
                method=method,
                url=url,
                headers=dict(headers),
                params=dict(params) if params is not None else None,
                json=dict(json) if json is not None else None,
                credentialed=credentialed,
                timeout=timeout,
            )
        )
        if self.gate is not None:
            await self.gate.wait()
        if not self.script:
            raise AssertionError(f"Unexpected request: {method} {url}")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


def json_response(status: int, body: Any, reason: str = "") -> TransportResponse:
    return TransportResponse(
        status=status,
        reason=reason,
        headers={"content-type": "application/json; charset=utf-8"},
        json_body=body,
    )


def free_ok(output_text: str = "A short summary.", time_saved: Any = 3) -> TransportResponse:
    return json_response(
        200,
        {"output_text": output_text, "output_data": {"word_stats": {"time_saved": time_saved}}},
    )


def paid_ok(output: str = "Paid summary.") -> TransportResponse:
    return json_response(200, {"meta": {"id": "abc"}, "data": {"output": output, "tokens": 42}})


def credit_error(status: int = 402) -> TransportResponse:
    return json_response(status, {"error": [{"code": 101, "msg": "Insufficient credit to perform this request."}]})


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def make_resolver(transport: StubTransport):
    def _make(settings: Optional[Settings] = None, **kwargs: Any) -> SummaryResolver:
        return SummaryResolver(StaticSettingsProvider(settings or Settings()), transport, **kwargs)

    return _make
