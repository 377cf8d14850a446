"""Correlation ID extraction and grouping."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from ..loki.client import LogEntry
from ..loki.utils import line_fields

logger = structlog.get_logger(__name__)

DEFAULT_CORRELATION_KEYS = [
    "correlation_id", "trace_id", "request_id",
    "correlationId", "traceId", "requestId",
]

DEFAULT_TYPE_KEYS = [
    "topic", "route", "type", "message_type", "eventType", "event_type",
    "request_type", "method", "action", "operation",
]

# Stream labels first, then fields inside the line.
DEFAULT_SERVICE_KEYS = [
    "service_name", "app", "service", "application",
    "k8s_container_name", "container", "job",
]

MESSAGE_KEYS = ["message", "msg", "log", "event", "error"]

UNKNOWN_TYPE = "unknown"
MAX_TIMELINE_EVENTS = 50


@dataclass
class CorrelationGroup:
    """Distinct operation types observed for one identifier."""

    identifier: str
    types: List[str] = field(default_factory=list)

    def add_type(self, msg_type: str) -> None:
        if msg_type not in self.types:
            self.types.append(msg_type)


@dataclass
class CorrelationScan:
    """Outcome of scanning a batch of lines."""

    scanned: int
    matched: int
    groups: List[CorrelationGroup]


@dataclass
class TimelineEvent:
    timestamp: str
    service: str
    message: str


@dataclass
class TraceTimeline:
    """Chronological, per-service view of one identifier."""

    identifier: str
    events: List[TimelineEvent]

    @property
    def service_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for event in self.events:
            counts[event.service] = counts.get(event.service, 0) + 1
        return counts


def stringify_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(',', ':'))
    return str(value)


def first_present(fields: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    """Value of the first key holding a non-empty value, as a string."""
    for key in keys:
        value = fields.get(key)
        if value is None or value == "" or value is False:
            continue
        return stringify_value(value)
    return None


def scan_correlations(entries: Iterable[LogEntry],
                      correlation_keys: Optional[Sequence[str]] = None,
                      type_keys: Optional[Sequence[str]] = None) -> CorrelationScan:
    """Group correlation identifiers by the operation types seen with them.

    Lines that are neither JSON objects nor logfmt are skipped. Groups come
    back with multi-type identifiers first, then by identifier.
    """
    correlation_keys = correlation_keys or DEFAULT_CORRELATION_KEYS
    type_keys = type_keys or DEFAULT_TYPE_KEYS

    groups: Dict[str, CorrelationGroup] = {}
    scanned = 0
    matched = 0

    for entry in entries:
        scanned += 1
        fields = line_fields(entry.line)
        if not fields:
            continue

        identifier = first_present(fields, correlation_keys)
        if identifier is None:
            continue

        msg_type = first_present(fields, type_keys) or UNKNOWN_TYPE
        group = groups.get(identifier)
        if group is None:
            group = groups[identifier] = CorrelationGroup(identifier=identifier)
        group.add_type(msg_type)
        matched += 1

    ordered = sorted(groups.values(), key=lambda group: (-len(group.types), group.identifier))
    return CorrelationScan(scanned=scanned, matched=matched, groups=ordered)


def resolve_service(entry: LogEntry, service_keys: Sequence[str] = DEFAULT_SERVICE_KEYS) -> str:
    """Best-effort service name for an entry: stream labels, then line fields."""
    for key in service_keys:
        value = entry.labels.get(key)
        if value:
            return value
    fields = line_fields(entry.line) or {}
    return first_present(fields, service_keys) or UNKNOWN_TYPE


def _message_of(entry: LogEntry) -> str:
    fields = entry.line.fields
    if fields:
        message = first_present(fields, MESSAGE_KEYS)
        if message is not None:
            return message
    return entry.text


def build_trace_timeline(entries: Iterable[LogEntry], identifier: str,
                         service_keys: Sequence[str] = DEFAULT_SERVICE_KEYS) -> TraceTimeline:
    """Order the entries mentioning one identifier chronologically, tagged by service."""
    ordered = sorted(entries, key=lambda entry: entry.timestamp_ns)
    events = [
        TimelineEvent(timestamp=entry.timestamp,
                      service=resolve_service(entry, service_keys),
                      message=_message_of(entry))
        for entry in ordered
    ]
    return TraceTimeline(identifier=identifier, events=events)
