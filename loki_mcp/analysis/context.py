"""Fetch the log lines surrounding a reference entry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Mapping, Union

import structlog

from ..loki.client import Direction, LogEntry, LokiClient
from ..loki.utils import NS_PER_SECOND, build_selector, parse_instant

logger = structlog.get_logger(__name__)

CONTEXT_DIRECTIONS = ("before", "after", "both")

# How far back the "before" query may reach from the reference line.
BEFORE_LOOKBACK_NS = 3600 * NS_PER_SECOND


@dataclass
class LogContext:
    target: int
    before: List[LogEntry] = field(default_factory=list)
    after: List[LogEntry] = field(default_factory=list)


def _without_target(entries: List[LogEntry], target: int, limit: int) -> List[LogEntry]:
    # end/start are inclusive, so the reference line itself can come back
    return [entry for entry in entries if entry.timestamp_ns != target][:limit]


async def _fetch_before(client: LokiClient, query: str, target: int, limit: int) -> List[LogEntry]:
    entries = await client.query_logs(query, start=target - BEFORE_LOOKBACK_NS, end=target,
                                      limit=limit + 1, direction=Direction.BACKWARD)
    before = _without_target(entries, target, limit)
    before.reverse()
    return before


async def _fetch_after(client: LokiClient, query: str, target: int, limit: int) -> List[LogEntry]:
    entries = await client.query_logs(query, start=target, limit=limit + 1,
                                      direction=Direction.FORWARD)
    return _without_target(entries, target, limit)


async def fetch_context(client: LokiClient, labels: Mapping[str, str],
                        timestamp: Union[str, int], limit: int = 10,
                        direction: str = "both") -> LogContext:
    """Fetch up to `limit` lines before and/or after a reference timestamp.

    Args:
        client: Loki client
        labels: The exact labels of the reference entry's stream
        timestamp: Reference timestamp (ns, ms or ISO)
        limit: Lines per direction
        direction: 'before', 'after' or 'both'

    Returns:
        LogContext: Both blocks in chronological order, reference line excluded
    """
    if direction not in CONTEXT_DIRECTIONS:
        raise ValueError(f"direction must be one of {', '.join(CONTEXT_DIRECTIONS)}")

    target = parse_instant(timestamp)
    query = build_selector(labels)
    context = LogContext(target=target)

    logger.info("Fetching context", query=query, target=target, limit=limit, direction=direction)

    if direction == "both":
        context.before, context.after = await asyncio.gather(
            _fetch_before(client, query, target, limit),
            _fetch_after(client, query, target, limit),
        )
    elif direction == "before":
        context.before = await _fetch_before(client, query, target, limit)
    else:
        context.after = await _fetch_after(client, query, target, limit)

    return context
