"""Shared exports for the Kagi summary resolver."""
from __future__ import annotations

from .classify import Classification, classify_response, classify_transport_error, is_unauthorized_signal
from .kagi_client import (
    KagiEndpoints,
    KagiTransport,
    Transport,
    TransportConnectionError,
    TransportError,
    TransportResponse,
    TransportTimeout,
)
from .selection import SelectionError, select_engine
from .service import SummaryResolver
from .settings import (
    OverrideSettingsProvider,
    SettingsError,
    SettingsProvider,
    StaticSettingsProvider,
    YamlSettingsProvider,
    update_settings,
    write_settings,
)
from .types import (
    ErrorKind,
    FallbackReason,
    Outcome,
    ResolvedRequest,
    Settings,
    SummarizeRequest,
    SummaryType,
    TextRequest,
    UrlRequest,
    build_request,
)


__all__ = [
    "SummaryResolver",
    "SummarizeRequest",
    "UrlRequest",
    "TextRequest",
    "build_request",
    "SummaryType",
    "Settings",
    "ResolvedRequest",
    "Outcome",
    "ErrorKind",
    "FallbackReason",
    "select_engine",
    "SelectionError",
    "Classification",
    "classify_response",
    "classify_transport_error",
    "is_unauthorized_signal",
    "KagiEndpoints",
    "KagiTransport",
    "Transport",
    "TransportResponse",
    "TransportError",
    "TransportTimeout",
    "TransportConnectionError",
    "SettingsProvider",
    "StaticSettingsProvider",
    "OverrideSettingsProvider",
    "YamlSettingsProvider",
    "SettingsError",
    "write_settings",
    "update_settings",
]
