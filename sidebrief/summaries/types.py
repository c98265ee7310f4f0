"""Dataclasses and enums shared across the summaries feature."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

DEFAULT_ENGINE = "cecil"


class SummaryType(str, Enum):
    SUMMARY = "summary"
    TAKEAWAY = "takeaway"

    @classmethod
    def parse(cls, value: Any, default: Optional["SummaryType"] = None) -> Optional["SummaryType"]:
        """Return the matching member, or ``default`` for empty/unknown values."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return cls(value.strip().lower())
            except ValueError:
                return default
        return default


class ErrorKind(str, Enum):
    """Closed set of failure categories the caller can branch on."""

    AUTH_TOKEN = "auth_token"
    AUTH_SIGNIN = "auth_signin"
    KAGI_RATE_LIMIT = "kagi_rate_limit"
    KAGI_UNAVAILABLE = "kagi_unavailable"
    KAGI_TIMEOUT = "kagi_timeout"
    KAGI_NETWORK = "kagi_network"
    NONE = "none"


class FallbackReason(str, Enum):
    NONE = "none"
    NO_TOKEN = "no_token"
    INSUFFICIENT_CREDIT = "insufficient_credit"


@dataclass(frozen=True)
class UrlRequest:
    """Summarize the document behind ``url``."""

    url: str
    summary_type: Optional[SummaryType] = None


@dataclass(frozen=True)
class TextRequest:
    """Summarize caller-supplied ``text``; only the paid endpoint accepts it."""

    text: str
    summary_type: Optional[SummaryType] = None


SummarizeRequest = Union[UrlRequest, TextRequest]


def build_request(
    url: Optional[str] = None,
    text: Optional[str] = None,
    summary_type: Union[SummaryType, str, None] = None,
) -> SummarizeRequest:
    """Build a request from loose inputs; non-empty ``text`` wins over ``url``."""
    parsed_type = SummaryType.parse(summary_type)
    if summary_type and parsed_type is None:
        raise ValueError(f"Unknown summary type: {summary_type!r}")
    if text:
        return TextRequest(text=text, summary_type=parsed_type)
    if url:
        return UrlRequest(url=url, summary_type=parsed_type)
    raise ValueError("A summarize request needs either a url or text")


@dataclass(frozen=True)
class Settings:
    """Stored user preferences, read once per resolve call."""

    engine: str = DEFAULT_ENGINE
    api_token: str = ""
    target_language: str = ""
    summary_type: SummaryType = SummaryType.SUMMARY

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        if not isinstance(data, Mapping):
            return cls()

        def _text(key: str, default: str) -> str:
            value = data.get(key)
            if value is None:
                return default
            value = str(value).strip()
            return value or default

        return cls(
            engine=_text("engine", DEFAULT_ENGINE),
            api_token=_text("api_token", ""),
            target_language=_text("target_language", ""),
            summary_type=SummaryType.parse(data.get("summary_type"), SummaryType.SUMMARY),
        )

    @property
    def has_token(self) -> bool:
        return bool(self.api_token)


@dataclass(frozen=True)
class ResolvedRequest:
    """Endpoint, auth and payload chosen for one request; never persisted."""

    use_api: bool
    engine: Optional[str]
    params: Dict[str, str] = field(default_factory=dict)
    auth_header: Optional[str] = None
    fallback_reason: FallbackReason = FallbackReason.NONE
    is_text: bool = False


@dataclass(frozen=True)
class Outcome:
    """The single result handed back to callers of the resolver."""

    summary_text: str
    success: bool = False
    time_saved_minutes: float = 0
    error_kind: ErrorKind = ErrorKind.NONE
    fallback_reason: FallbackReason = FallbackReason.NONE
    engine_used: str = DEFAULT_ENGINE

    def to_dict(self) -> Dict[str, object]:
        return {
            "summary_text": self.summary_text,
            "success": self.success,
            "time_saved_minutes": self.time_saved_minutes,
            "error_kind": self.error_kind.value,
            "fallback_reason": self.fallback_reason.value,
            "engine_used": self.engine_used,
        }
