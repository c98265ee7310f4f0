from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import parse_qs

from .summaries import (
    ErrorKind,
    FallbackReason,
    KagiEndpoints,
    KagiTransport,
    Outcome,
    OverrideSettingsProvider,
    SettingsError,
    SettingsProvider,
    SummarizeRequest,
    SummaryResolver,
    SummaryType,
    YamlSettingsProvider,
    build_request,
    update_settings,
)
from .summaries.kagi_client import DEFAULT_BASE_URL
from .summaries.settings import SETTINGS_KEYS

READER_MODE_PREFIX = "about:reader?"
SIGNIN_URL = "https://kagi.com/signin"

REMEDIATION_HINTS: Mapping[ErrorKind, str] = {
    ErrorKind.AUTH_SIGNIN: (
        f"Sign in at {SIGNIN_URL}, then store your session cookie with "
        "`sidebrief settings set session_token <value>` (or set KAGI_SESSION_TOKEN)."
    ),
    ErrorKind.AUTH_TOKEN: "Update your API token with `sidebrief settings set api_token <token>`.",
    ErrorKind.KAGI_RATE_LIMIT: "Wait a moment before trying again.",
    ErrorKind.KAGI_UNAVAILABLE: "Try again in a few minutes.",
    ErrorKind.KAGI_TIMEOUT: "Try a shorter page or video, or try again later.",
    ErrorKind.KAGI_NETWORK: "Check your internet connection.",
}

FALLBACK_NOTES: Mapping[FallbackReason, str] = {
    FallbackReason.NO_TOKEN: "Note: the selected engine needs an API token; used the free Cecil engine instead.",
    FallbackReason.INSUFFICIENT_CREDIT: "Note: insufficient API credits; used the free Cecil engine instead.",
}


def get_default_settings_path() -> Path:
    env_path = os.getenv("SIDEBRIEF_SETTINGS")
    if env_path and env_path.strip():
        return Path(env_path.strip()).expanduser()
    return Path("~/.config/sidebrief/settings.yaml").expanduser()


def get_base_url() -> str:
    return os.getenv("KAGI_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def normalize_page_url(url: str) -> str:
    """Unwrap reader-mode URLs and reject anything that is not http(s)."""
    candidate = url.strip()
    if candidate.startswith(READER_MODE_PREFIX):
        inner = parse_qs(candidate[len(READER_MODE_PREFIX):]).get("url")
        candidate = inner[0].strip() if inner else ""
    if not candidate.startswith(("http://", "https://")):
        raise ValueError(f"Only http(s) URLs can be summarized: {url!r}")
    return candidate


def read_text_input(args: argparse.Namespace) -> Optional[str]:
    if args.text is not None:
        return args.text
    if args.text_file is None:
        return None
    if args.text_file == "-":
        return sys.stdin.read()
    return Path(args.text_file).expanduser().read_text(encoding="utf-8")


def build_summarize_request(args: argparse.Namespace) -> SummarizeRequest:
    summary_type = SummaryType.TAKEAWAY if args.key_moments else None
    text = read_text_input(args)
    if text is not None:
        if not text.strip():
            raise ValueError("Text input is empty.")
        return build_request(text=text, summary_type=summary_type)
    if not args.url:
        raise ValueError("Provide a URL, --text or --text-file.")
    return build_request(url=normalize_page_url(args.url), summary_type=summary_type)


async def run_resolver(
    request: SummarizeRequest,
    provider: SettingsProvider,
    session_token: Optional[str],
    timeout: float,
) -> Outcome:
    async with KagiTransport(session_token, timeout=timeout) as transport:
        resolver = SummaryResolver(
            provider,
            transport,
            endpoints=KagiEndpoints.from_base(get_base_url()),
            timeout=timeout,
        )
        return await resolver.resolve(request)


def render_outcome(outcome: Outcome) -> int:
    print(outcome.summary_text)
    if outcome.success and outcome.time_saved_minutes and outcome.time_saved_minutes > 0:
        print(f"~{round(outcome.time_saved_minutes)} min saved", file=sys.stderr)
    note = FALLBACK_NOTES.get(outcome.fallback_reason)
    if note:
        print(note, file=sys.stderr)
    if outcome.success:
        return 0
    hint = REMEDIATION_HINTS.get(outcome.error_kind)
    if hint:
        print(hint, file=sys.stderr)
    return 1


def handle_summarize(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if args.url and (args.text is not None or args.text_file is not None):
        parser.error("Specify either a URL or text input, not both.")
    try:
        request = build_summarize_request(args)
    except (ValueError, OSError) as exc:
        parser.error(str(exc))
        return 2

    stored = YamlSettingsProvider(args.settings)
    try:
        session_token = stored.session_token()
    except SettingsError as exc:
        parser.error(str(exc))
        return 2

    provider: SettingsProvider = stored
    if args.engine or args.language:
        provider = OverrideSettingsProvider(stored, engine=args.engine, target_language=args.language)

    outcome = asyncio.run(run_resolver(request, provider, session_token, args.timeout))
    if args.json:
        print(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
        return 0 if outcome.success else 1
    return render_outcome(outcome)


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-4:]}"


def handle_settings(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if args.settings_cmd == "set":
        value = args.value.strip()
        if args.key == "summary_type" and SummaryType.parse(value) is None:
            parser.error(f"summary_type must be one of: {', '.join(t.value for t in SummaryType)}")
        try:
            update_settings(args.settings, **{args.key: value})
        except (SettingsError, OSError) as exc:
            parser.error(str(exc))
            return 2
        print(f"Saved {args.key} to {args.settings}")
        return 0

    stored = YamlSettingsProvider(args.settings)
    try:
        settings = stored.load()
        session_token = stored.session_token()
    except SettingsError as exc:
        parser.error(str(exc))
        return 2
    print(f"Settings file: {args.settings}")
    print(f"engine: {settings.engine}")
    print(f"api_token: {mask_secret(settings.api_token)}")
    print(f"target_language: {settings.target_language or '(default)'}")
    print(f"summary_type: {settings.summary_type.value}")
    print(f"session_token: {mask_secret(session_token)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sidebrief",
        description="Summarize web pages and text with Kagi's Universal Summarizer.",
    )
    p.add_argument(
        "--settings",
        type=Path,
        default=get_default_settings_path(),
        help="Settings YAML file (default: $SIDEBRIEF_SETTINGS or ~/.config/sidebrief/settings.yaml)",
    )
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v, -vv)")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_summarize = sub.add_parser("summarize", help="Summarize a URL or a piece of text")
    p_summarize.add_argument("url", nargs="?", help="Page URL to summarize (about:reader URLs are unwrapped)")
    text_group = p_summarize.add_mutually_exclusive_group()
    text_group.add_argument("--text", help="Summarize this text instead of a URL (requires an API token)")
    text_group.add_argument("--text-file", help="Read text to summarize from a file, or '-' for stdin")
    p_summarize.add_argument(
        "--key-moments",
        action="store_true",
        help="Ask for key moments (takeaway) instead of a prose summary",
    )
    p_summarize.add_argument("--engine", help="Override the stored engine for this request (e.g. cecil, agnes, muriel)")
    p_summarize.add_argument("--language", help="Override the stored target language for this request (e.g. EN, DE)")
    p_summarize.add_argument("--json", action="store_true", help="Print the full outcome as JSON")
    p_summarize.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Request timeout in seconds (default: 60)",
    )

    p_settings = sub.add_parser("settings", help="Inspect or change stored settings")
    settings_sub = p_settings.add_subparsers(dest="settings_cmd", required=True)
    settings_sub.add_parser("show", help="Print effective settings with secrets masked")
    p_set = settings_sub.add_parser("set", help="Store a single setting")
    p_set.add_argument("key", choices=SETTINGS_KEYS, help="Setting name")
    p_set.add_argument("value", help="New value (use '' to clear)")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.cmd == "summarize":
        return handle_summarize(args, parser)
    if args.cmd == "settings":
        return handle_settings(args, parser)

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
