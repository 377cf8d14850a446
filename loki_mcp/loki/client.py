"""Loki API client module."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import aiohttp
import structlog

from ..config import LokiConfig
from .utils import (
    DEFAULT_FALLBACK_SELECTOR,
    LogLine,
    append_line_filter,
    build_selector,
    exclude_infrastructure,
    format_ns,
    now_ns,
    parse_instant,
    parse_line,
    parse_relative_duration,
)

logger = structlog.get_logger(__name__)

LABELS_PATH = "/loki/api/v1/labels"
LABEL_VALUES_PATH = "/loki/api/v1/label/{label}/values"
QUERY_RANGE_PATH = "/loki/api/v1/query_range"

# Service-identifying labels, checked in this order when no selector is given.
DEFAULT_SELECTOR_PRIORITY = [
    'app', 'service', 'service_name', 'job', 'application', 'container', 'component'
]

# Metric queries are capped here, display limits are the caller's concern.
METRIC_RESULT_LIMIT = 1000


class LokiQueryError(Exception):
    """Exception raised when Loki answers with a non-success status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Loki API Error: {status} - {body}")
        self.status = status
        self.body = body


class Direction(str, Enum):
    """Scan direction of a range query."""
    BACKWARD = "BACKWARD"
    FORWARD = "FORWARD"


@dataclass(frozen=True)
class LogEntry:
    """One log line from a range query."""
    timestamp: str
    line: LogLine
    labels: Dict[str, str]

    @property
    def timestamp_ns(self) -> int:
        return int(self.timestamp)

    @property
    def text(self) -> str:
        return self.line.text


@dataclass(frozen=True)
class MetricPoint:
    """One sample of a counting series."""
    timestamp: float
    value: float


@dataclass(frozen=True)
class MetricSeries:
    """A labelled series of metric samples."""
    labels: Dict[str, str]
    values: List[MetricPoint] = field(default_factory=list)


@dataclass(frozen=True)
class StreamsResult:
    streams: List[Dict[str, Any]]


@dataclass(frozen=True)
class MatrixResult:
    series: List[Dict[str, Any]]


@dataclass(frozen=True)
class UnknownResult:
    result_type: Optional[str]
    raw: Any


QueryResult = Union[StreamsResult, MatrixResult, UnknownResult]


def decode_query_result(payload: Mapping[str, Any]) -> QueryResult:
    """Decode a query_range response body into its result variant."""
    data = payload.get('data') or {}
    result_type = data.get('resultType')
    result = data.get('result')

    if result_type == 'streams':
        return StreamsResult(streams=list(result or []))
    if result_type == 'matrix':
        return MatrixResult(series=list(result or []))
    return UnknownResult(result_type=result_type, raw=result)


def flatten_streams(streams: Sequence[Mapping[str, Any]], direction: Direction,
                    limit: int) -> List[LogEntry]:
    """Merge per-stream values into one list ordered by timestamp, then apply the limit.

    Loki orders values within a stream but not across streams, so the global
    sort has to happen here and the limit only after it.
    """
    entries = [
        LogEntry(timestamp=str(ts), line=parse_line(raw_line), labels=dict(stream.get('stream') or {}))
        for stream in streams
        for ts, raw_line in stream.get('values') or []
    ]
    entries.sort(key=lambda entry: entry.timestamp_ns, reverse=direction == Direction.BACKWARD)
    return entries[:limit]


def decode_matrix(series: Sequence[Mapping[str, Any]]) -> List[MetricSeries]:
    """Reshape matrix series into MetricSeries with float values."""
    return [
        MetricSeries(
            labels=dict(item.get('metric') or {}),
            values=[MetricPoint(timestamp=float(ts), value=float(value))
                    for ts, value in item.get('values') or []]
        )
        for item in series
    ]


class LokiClient:
    """Loki HTTP API client.

    Owns the default selector cache: it is resolved once from the label
    listing and reused for the lifetime of the client.
    """

    def __init__(self, config: LokiConfig,
                 selector_priority: Optional[Sequence[str]] = None):
        """Initialize Loki client.

        Args:
            config: Loki configuration
            selector_priority: Label names tried, in order, for the default selector
        """
        self.config = config
        self.selector_priority = list(selector_priority or DEFAULT_SELECTOR_PRIORITY)
        self._default_selector: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        if not self.config.has_credentials:
            return {}
        auth = aiohttp.BasicAuth(self.config.username, self.config.password)
        return {'Authorization': auth.encode()}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Issue a GET against the Loki API and decode the JSON body.

        Raises:
            LokiQueryError: If Loki answers with a non-success status
        """
        url = self.config.url.rstrip('/') + path
        query = {key: value for key, value in (params or {}).items() if value is not None}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        request_kwargs: Dict[str, Any] = {'params': query}
        if not self.config.verify_ssl:
            request_kwargs['ssl'] = False

        async with aiohttp.ClientSession(headers=self._headers(), timeout=timeout) as session:
            async with session.get(url, **request_kwargs) as response:
                body = await response.text()
                if response.status >= 400:
                    logger.error("Loki request failed", path=path, status=response.status, body=body[:500])
                    raise LokiQueryError(response.status, body)
                return json.loads(body)

    async def get_labels(self) -> List[str]:
        """List all label names known to Loki."""
        payload = await self._get(LABELS_PATH)
        return list(payload.get('data') or [])

    async def get_label_values(self, label: str) -> List[str]:
        """List all values of one label."""
        payload = await self._get(LABEL_VALUES_PATH.format(label=label))
        return list(payload.get('data') or [])

    async def get_default_selector(self) -> str:
        """Resolve the selector used when a caller supplies no labels.

        The first data-backed resolution is cached. The ultimate fallback is
        not, so a later call can pick up labels that appear afterwards.
        """
        if self._default_selector is not None:
            return self._default_selector

        logger.info("Auto-detecting default log selector")
        try:
            labels = await self.get_labels()
        except (LokiQueryError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Failed to fetch labels for default selector auto-detection", error=str(e))
            labels = []

        for candidate in self.selector_priority:
            if candidate in labels:
                self._default_selector = f'{{{candidate}=~".+"}}'
                logger.info("Detected default selector", selector=self._default_selector)
                return self._default_selector

        if labels:
            self._default_selector = f'{{{labels[0]}=~".+"}}'
            logger.info("Detected default selector (fallback)", selector=self._default_selector)
            return self._default_selector

        logger.warning("Using ultimate fallback selector", selector=DEFAULT_FALLBACK_SELECTOR)
        return DEFAULT_FALLBACK_SELECTOR

    async def build_query(self, labels: Optional[Mapping[str, str]] = None,
                          search_term: Optional[str] = None,
                          include_infrastructure: bool = False,
                          case_insensitive: bool = False) -> str:
        """Build a LogQL selector plus optional line filter.

        Without labels the default selector is used, with infrastructure
        services excluded unless include_infrastructure is set.
        """
        if labels:
            selector = build_selector(labels)
        else:
            selector = await self.get_default_selector()
            if not include_infrastructure:
                selector = exclude_infrastructure(selector)
        return append_line_filter(selector, search_term, case_insensitive=case_insensitive)

    def _resolve_start(self, start: Optional[Union[str, int]], start_ago: str) -> int:
        if start is not None and start != "":
            return parse_instant(start)
        return now_ns() - parse_relative_duration(start_ago)

    async def query_logs(self, query: str, start_ago: str = "1h",
                         start: Optional[Union[str, int]] = None,
                         end: Optional[Union[str, int]] = None,
                         limit: int = 100,
                         direction: Union[Direction, str] = Direction.BACKWARD) -> List[LogEntry]:
        """Run a log range query and return entries merged across streams.

        Args:
            query: LogQL selector/filter expression
            start_ago: Relative window used when no explicit start is given
            start: Absolute start (ISO, ms or ns); wins over start_ago
            end: Absolute end (ISO, ms or ns); open-ended when omitted
            limit: Maximum entries returned after the global sort
            direction: BACKWARD for newest first, FORWARD for oldest first

        Raises:
            InvalidDurationError, InvalidTimestampError: On malformed time input
            LokiQueryError: If Loki rejects the query
        """
        direction = Direction(direction)
        start_ns = self._resolve_start(start, start_ago)
        end_ns = parse_instant(end) if end is not None and end != "" else None

        logger.info("Executing LogQL", query=query, start=format_ns(start_ns),
                    end=format_ns(end_ns) if end_ns is not None else "now",
                    limit=limit, direction=direction.value)

        payload = await self._get(QUERY_RANGE_PATH, {
            'query': query,
            'start': start_ns,
            'end': end_ns,
            'limit': limit,
            'direction': direction.value,
        })

        result = decode_query_result(payload)
        if isinstance(result, StreamsResult):
            return flatten_streams(result.streams, direction, limit)
        if isinstance(result, MatrixResult):
            logger.warning("Log query returned a matrix result, expected streams", query=query)
        else:
            logger.warning("Log query returned an unknown result type",
                           query=query, result_type=result.result_type)
        return []

    async def search_logs(self, labels: Optional[Mapping[str, str]] = None,
                          search_term: Optional[str] = None,
                          limit: int = 100,
                          start_ago: str = "1h",
                          start: Optional[Union[str, int]] = None,
                          end: Optional[Union[str, int]] = None,
                          direction: Union[Direction, str] = Direction.BACKWARD,
                          include_infrastructure: bool = False) -> List[LogEntry]:
        """Build the query from structured parameters and run it."""
        query = await self.build_query(labels, search_term, include_infrastructure)
        return await self.query_logs(query, start_ago=start_ago, start=start, end=end,
                                     limit=limit, direction=direction)

    async def query_metric(self, query: str, start_ago: str = "1h",
                           step: str = "60s") -> Union[List[MetricSeries], Any]:
        """Run an aggregating range query.

        Returns:
            List[MetricSeries] for matrix results; any other result shape is
            passed through unchanged for the caller to notice.
        """
        start_ns = now_ns() - parse_relative_duration(start_ago)
        logger.info("Executing metric LogQL", query=query, start_ago=start_ago, step=step)

        payload = await self._get(QUERY_RANGE_PATH, {
            'query': query,
            'start': start_ns,
            'limit': METRIC_RESULT_LIMIT,
            'step': step,
        })

        result = decode_query_result(payload)
        if isinstance(result, MatrixResult):
            return decode_matrix(result.series)
        if isinstance(result, StreamsResult):
            logger.warning("Metric query returned streams, passing result through", query=query)
            return result.streams
        return result.raw


# Process-wide client, built lazily from configuration
_client: Optional[LokiClient] = None


def get_loki_client() -> LokiClient:
    """Get the global Loki client instance."""
    global _client
    if _client is None:
        from ..config import get_config
        _client = LokiClient(get_config().loki)
    return _client
