"""Loki utility functions module.

Time parsing, LogQL selector construction and log line decoding. Everything
here is pure: no network calls and no shared state.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

NS_PER_SECOND = 1_000_000_000
NS_PER_MS = 1_000_000

DURATION_UNITS = {
    's': NS_PER_SECOND,
    'm': 60 * NS_PER_SECOND,
    'h': 3600 * NS_PER_SECOND,
    'd': 86400 * NS_PER_SECOND,
}

_DURATION_RE = re.compile(r'-?([0-9]+)([smhd])')
_NS_RE = re.compile(r'[0-9]{19}')
_MS_RE = re.compile(r'[0-9]{13}')
# Seconds fraction of an ISO time; fromisoformat on 3.10 takes only 3 or 6 digits.
_FRACTION_RE = re.compile(r'(:[0-9]{2})[.,]([0-9]+)')

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Label holding the container name in the k8s stream labels.
INFRA_LABEL = "k8s_container_name"

# Services whose own logs echo queries back and produce false matches.
EXCLUDED_INFRA_PATTERNS = [
    'loki',        # loki-read, loki-write, loki-gateway
    'promtail',
    'fluent',      # fluentd, fluent-bit
    'vector',
    'grafana',
    'prometheus',
    'mimir',
    'tempo',
    'otel',
]

DEFAULT_FALLBACK_SELECTOR = '{job=~".+"}'


class InvalidDurationError(ValueError):
    """Raised when a relative duration does not match <digits><s|m|h|d>."""
    pass


class InvalidTimestampError(ValueError):
    """Raised when a timestamp matches none of the accepted encodings."""
    pass


def parse_relative_duration(text: str) -> int:
    """Convert a relative duration such as '1h' or '-6h' to nanoseconds.

    Args:
        text: Duration string, optionally prefixed with '-'

    Returns:
        int: Duration magnitude in nanoseconds

    Raises:
        InvalidDurationError: If the string is not a valid duration
    """
    match = _DURATION_RE.fullmatch(text) if isinstance(text, str) else None
    if not match:
        raise InvalidDurationError(
            f"Invalid duration format: {text!r}. Use 1s, 5m, 1h, 24h, 7d, etc."
        )
    return int(match.group(1)) * DURATION_UNITS[match.group(2)]


def _normalize_iso(text: str) -> str:
    text = text.replace('Z', '+00:00').replace('z', '+00:00')
    return _FRACTION_RE.sub(lambda m: m.group(1) + '.' + m.group(2)[:6].ljust(6, '0'), text, count=1)


def parse_instant(value: Union[str, int, float]) -> int:
    """Convert an absolute timestamp to nanoseconds since the epoch.

    Native numbers are taken as nanoseconds. Strings may be 19-digit
    nanoseconds, 13-digit milliseconds or an ISO-8601 date-time (a value
    without a zone is read as UTC).

    Raises:
        InvalidTimestampError: If the value cannot be interpreted
    """
    if isinstance(value, bool):
        raise InvalidTimestampError(f"Invalid timestamp format: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if _NS_RE.fullmatch(text):
        return int(text)
    if _MS_RE.fullmatch(text):
        return int(text) * NS_PER_MS

    try:
        parsed = datetime.fromisoformat(_normalize_iso(text))
    except ValueError:
        raise InvalidTimestampError(
            f"Invalid timestamp format: {value}. Use ISO format "
            f"(e.g. '2024-12-03T06:27:00Z') or nanoseconds."
        ) from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    millis = (parsed - _EPOCH) // timedelta(milliseconds=1)
    return millis * NS_PER_MS


def now_ns() -> int:
    """Current wall-clock time in nanoseconds."""
    return time.time_ns()


def format_ns(ns: Union[int, str]) -> str:
    """Render a nanosecond timestamp as ISO-8601 UTC with millisecond precision."""
    millis = int(ns) // NS_PER_MS
    moment = _EPOCH + timedelta(milliseconds=millis)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def quote_logql(value: str) -> str:
    """Quote a value as a LogQL double-quoted string literal."""
    escaped = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def build_selector(labels: Mapping[str, str]) -> str:
    """Build an exact-match stream selector, e.g. {app="x", env="prod"}."""
    parts = [f"{key}={quote_logql(val)}" for key, val in labels.items()]
    return "{" + ", ".join(parts) + "}"


_SELECTOR_PAIR_RE = re.compile(r'([A-Za-z_][A-Za-z0-9_]*)\s*=\s*"((?:[^"\\]|\\.)*)"')


def parse_selector(selector: str) -> Dict[str, str]:
    """Read the exact-match pairs back out of a selector built by build_selector."""
    body = selector.strip()
    if not (body.startswith('{') and body.endswith('}')):
        raise ValueError(f"Not a stream selector: {selector!r}")

    labels: Dict[str, str] = {}
    for match in _SELECTOR_PAIR_RE.finditer(body[1:-1]):
        raw = match.group(2)
        labels[match.group(1)] = re.sub(r'\\(.)', r'\1', raw)
    return labels


def exclude_infrastructure(selector: str) -> str:
    """Add the infrastructure-exclusion matcher inside a selector's braces."""
    pattern = '|'.join(EXCLUDED_INFRA_PATTERNS)
    return f'{selector[:-1]}, {INFRA_LABEL}!~"(?i).*({pattern}).*"}}'


def append_line_filter(query: str, search_term: Optional[str],
                       case_insensitive: bool = False) -> str:
    """Append a line filter: |= for exact substrings, |~ (?i) for case-insensitive."""
    if not search_term:
        return query
    if case_insensitive:
        return f"{query} |~ {quote_logql('(?i)' + search_term)}"
    return f"{query} |= {quote_logql(search_term)}"


@dataclass(frozen=True)
class RawLine:
    """A log line kept verbatim."""
    text: str

    @property
    def fields(self) -> Optional[Dict[str, Any]]:
        return None


@dataclass(frozen=True)
class StructuredLine:
    """A log line that decoded as a JSON object or array."""
    value: Any

    @property
    def text(self) -> str:
        return json.dumps(self.value, ensure_ascii=False, separators=(',', ':'))

    @property
    def fields(self) -> Optional[Dict[str, Any]]:
        return self.value if isinstance(self.value, dict) else None


LogLine = Union[RawLine, StructuredLine]


def parse_line(text: str) -> LogLine:
    """Single parse attempt: JSON objects/arrays become structured, everything else stays raw."""
    stripped = text.lstrip()
    if stripped[:1] not in ('{', '['):
        return RawLine(text)
    try:
        value = json.loads(text)
    except ValueError:
        return RawLine(text)
    if isinstance(value, (dict, list)):
        return StructuredLine(value)
    return RawLine(text)


_LOGFMT_RE = re.compile(r'([\w.\-]+)=("((?:[^"\\]|\\.)*)"|(\S*))')


def parse_logfmt(text: str) -> Dict[str, str]:
    """Parse key=value and key="quoted value" pairs from a logfmt line."""
    fields: Dict[str, str] = {}
    for match in _LOGFMT_RE.finditer(text):
        if match.group(3) is not None:
            fields[match.group(1)] = re.sub(r'\\(.)', r'\1', match.group(3))
        else:
            fields[match.group(1)] = match.group(4)
    return fields


def line_fields(line: LogLine) -> Optional[Dict[str, Any]]:
    """Field mapping of a line: the JSON object, else logfmt pairs, else None."""
    fields = line.fields
    if fields is not None:
        return fields
    if isinstance(line, RawLine):
        parsed = parse_logfmt(line.text)
        return parsed or None
    return None


def paginate(items: list, page: int = 1, page_size: int = 100) -> str:
    """Render one page of items as JSON with a navigation hint."""
    page = max(int(page), 1)
    page_size = max(int(page_size), 1)
    start = (page - 1) * page_size
    end = start + page_size
    result = json.dumps(items[start:end], indent=2, ensure_ascii=False)

    if len(items) > end:
        result += (f"\n\n(Showing items {start + 1}-{end} of {len(items)}. "
                   f"To see more, run again with page={page + 1})")
    elif start > 0:
        result += f"\n\n(Showing items {start + 1}-{min(end, len(items))} of {len(items)})"
    return result
