"""Correlation scanning tool: correlation IDs, their operation types and trace timelines."""

from typing import Any, Dict, List, Optional

import structlog
from mcp.types import Tool, TextContent

from ..analysis.correlations import (
    MAX_TIMELINE_EVENTS,
    CorrelationScan,
    TraceTimeline,
    build_trace_timeline,
    scan_correlations,
)
from ..loki.client import Direction
from ..loki.utils import format_ns
from .common import (
    LABELS_PROPERTY,
    REASONING_PROPERTY,
    TIME_WINDOW_PROPERTY,
    TRUNCATED_MARKER,
    append_capped,
    error_result,
    get_int_argument,
    get_labels_argument,
    text_result,
)

logger = structlog.get_logger(__name__)

MAX_OUTPUT_LENGTH = 30000
MESSAGE_LENGTH = 200


def render_scan(scan: CorrelationScan) -> str:
    result = (f"Scanned {scan.scanned} logs. Found {len(scan.groups)} unique correlation IDs "
              f"in {scan.matched} matching logs.\n\n")

    for group in scan.groups:
        line = f"- {group.identifier}: [{', '.join(group.types)}]\n"
        extended = append_capped(result, line, MAX_OUTPUT_LENGTH)
        if extended is None:
            result += "\n" + TRUNCATED_MARKER
            break
        result = extended

    if not scan.groups:
        result += "No correlation IDs found. Check your 'correlation_keys' parameter or log format."
    return result


def render_timeline(timeline: TraceTimeline) -> str:
    if not timeline.events:
        return f"No logs found containing '{timeline.identifier}'."

    counts = timeline.service_counts
    output = (f"Trace {timeline.identifier}: {len(timeline.events)} log lines "
              f"across {len(counts)} services.\n\n")
    output += "Services:\n"
    for service, count in sorted(counts.items(), key=lambda item: item[1], reverse=True):
        output += f"- {service}: {count} lines\n"

    output += "\nTimeline:\n"
    for event in timeline.events[:MAX_TIMELINE_EVENTS]:
        message = event.message
        if len(message) > MESSAGE_LENGTH:
            message = message[:MESSAGE_LENGTH] + "..."
        output += f"[{format_ns(event.timestamp)}] [{event.service}] {message}\n"

    remaining = len(timeline.events) - MAX_TIMELINE_EVENTS
    if remaining > 0:
        output += f"... and {remaining} more events.\n"
    return output


def _string_list(arguments: Dict[str, Any], name: str) -> Optional[List[str]]:
    value = arguments.get(name)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a list of strings.")
    return [str(item) for item in value] or None


class LokiScanCorrelationsTool:
    """
    Find correlation IDs and the message/request types seen with them.
    With a trace_id, follow that one request across services instead.
    """

    name = "loki_scan_correlations"

    def __init__(self, client=None, metrics=None):
        self._client = client
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        """Get the MCP tool definition for loki_scan_correlations."""
        return Tool(
            name=self.name,
            description=(
                "Scans logs to find correlation IDs and associated message/request types. "
                "Helpful for tracing requests or understanding message flows. Pass trace_id "
                "to get a chronological, per-service timeline of one request."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": REASONING_PROPERTY,
                    "labels": {
                        **LABELS_PROPERTY,
                        "description": "Optional key-value pairs to filter logs. Example: {'app': 'payment'}"
                    },
                    "time_window": TIME_WINDOW_PROPERTY,
                    "correlation_keys": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Keys to treat as correlation IDs. Default: ['correlation_id', 'trace_id', 'request_id', 'correlationId', 'traceId', 'requestId']"
                    },
                    "type_keys": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Keys to treat as message/request types. Default: ['topic', 'route', 'type', 'message_type', 'eventType', 'event_type', 'request_type', 'method', 'action', 'operation']"
                    },
                    "trace_id": {
                        "type": "string",
                        "description": "Optional identifier to follow. Returns the timeline of every line containing it."
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Max logs to scan. Default: 500"
                    }
                },
                "required": ["reasoning"]
            }
        )

    def get_client(self):
        """Get or create Loki client."""
        if self._client is None:
            from ..loki.client import get_loki_client
            self._client = get_loki_client()
        return self._client

    def get_metrics(self):
        if self._metrics is None:
            from ..metrics import get_usage_metrics
            self._metrics = get_usage_metrics()
        return self._metrics

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        """Execute the loki_scan_correlations tool."""
        try:
            self.get_metrics().record(self.name, arguments.get("reasoning"))
            labels = get_labels_argument(arguments)
            limit = get_int_argument(arguments, "limit", 500)
            time_window = arguments.get("time_window") or "1h"
            trace_id = arguments.get("trace_id")

            if trace_id:
                entries = await self.get_client().search_logs(
                    labels=labels,
                    search_term=str(trace_id),
                    limit=limit,
                    start_ago=time_window,
                    direction=Direction.FORWARD,
                )
                return text_result(render_timeline(build_trace_timeline(entries, str(trace_id))))

            entries = await self.get_client().search_logs(
                labels=labels,
                limit=limit,
                start_ago=time_window,
            )
            scan = scan_correlations(
                entries,
                correlation_keys=_string_list(arguments, "correlation_keys"),
                type_keys=_string_list(arguments, "type_keys"),
            )
            logger.info("Correlation scan complete", scanned=scan.scanned,
                        matched=scan.matched, groups=len(scan.groups))
            return text_result(render_scan(scan))

        except Exception as e:
            logger.error("Correlation scan error", error=str(e))
            return error_result("Correlation Scan Error", e)


_scan_tool = LokiScanCorrelationsTool()


def get_scan_correlations_tool() -> LokiScanCorrelationsTool:
    """Get the global correlation scan tool instance."""
    return _scan_tool
