"""Loki log search tool, with a count mode that charts matches over time."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from mcp.types import Tool, TextContent

from ..loki.client import Direction, MetricSeries
from .common import (
    LABELS_PROPERTY,
    REASONING_PROPERTY,
    TIME_WINDOW_PROPERTY,
    error_result,
    format_entry,
    get_int_argument,
    get_labels_argument,
    text_result,
)

logger = structlog.get_logger(__name__)

NO_LOGS_MESSAGE = "No logs found matching criteria."
DEFAULT_COUNT_TERM = "error"
DEFAULT_STEP = "1m"
MAX_CHART_POINTS = 20
BAR_WIDTH = 10


def _format_number(value: float) -> str:
    return f"{value:g}"


def render_count_chart(series: List[MetricSeries], search_term: str,
                       time_window: str, step: str) -> str:
    """Summarize a summed count series as totals plus an ASCII bar chart."""
    if not series:
        return "No data found."

    points = series[0].values
    if not points:
        return "No errors found in this time range."

    total = sum(point.value for point in points)
    peak = max(point.value for point in points)

    output = f"Found {_format_number(total)} occurrences of '{search_term}' in the last {time_window}.\n\n"
    output += f"Peak rate: {_format_number(peak)} per {step}.\n\n"
    output += "Time Series:\n"

    if len(points) > MAX_CHART_POINTS:
        stride = math.ceil(len(points) / MAX_CHART_POINTS)
        points = points[::stride]

    for point in points:
        moment = datetime.fromtimestamp(point.timestamp, tz=timezone.utc).strftime('%H:%M:%S')
        bar = "█" * math.ceil(point.value / peak * BAR_WIDTH) if peak > 0 else ""
        output += f"{moment} | {_format_number(point.value):<4} {bar}\n"

    return output


class LokiSearchLogsTool:
    """Fetch log lines by labels and text, or count matches over time."""

    name = "loki_search_logs"

    def __init__(self, client=None, metrics=None):
        self._client = client
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        """Get the MCP tool definition for loki_search_logs."""
        return Tool(
            name=self.name,
            description=(
                "Easy mode log search. Fetch logs by filtering on labels and/or text content. "
                "Returns newest logs first. Set count=true to answer 'how many?' questions: "
                "returns totals, the peak rate and an ASCII chart of matches over time instead of log lines."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": REASONING_PROPERTY,
                    "labels": {
                        **LABELS_PROPERTY,
                        "description": (
                            "Key-value pairs to filter logs. Example: {'app': 'payment-service', 'env': 'prod'}. "
                            "When omitted a service label is detected automatically."
                        )
                    },
                    "search_term": {
                        "type": "string",
                        "description": (
                            "Text to search for within the log line (case-sensitive). "
                            "In count mode the match is case-insensitive and defaults to 'error'."
                        )
                    },
                    "time_window": TIME_WINDOW_PROPERTY,
                    "start": {
                        "type": "string",
                        "description": "Absolute start (ISO-8601, ms or ns). Overrides time_window."
                    },
                    "end": {
                        "type": "string",
                        "description": "Absolute end (ISO-8601, ms or ns). Default: now"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Max number of log lines to return. Default: 100"
                    },
                    "direction": {
                        "type": "string",
                        "enum": ["BACKWARD", "FORWARD"],
                        "description": "BACKWARD returns newest first, FORWARD oldest first. Default: BACKWARD"
                    },
                    "include_infrastructure": {
                        "type": "boolean",
                        "description": "Include logging infrastructure (loki, promtail, grafana...) when no labels are given. Default: false"
                    },
                    "count": {
                        "type": "boolean",
                        "description": "Count matches over time instead of returning lines. Default: false"
                    },
                    "step": {
                        "type": "string",
                        "description": "Count mode only: interval of each data point. e.g. '1m', '5m'. Default: '1m'"
                    }
                },
                "required": []
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
        """Execute the loki_search_logs tool."""
        try:
            self.get_metrics().record(self.name, arguments.get("reasoning"))
            labels = get_labels_argument(arguments)
            include_infrastructure = bool(arguments.get("include_infrastructure", False))
            time_window = arguments.get("time_window") or "1h"

            if arguments.get("count"):
                return await self._count(labels, arguments.get("search_term"), time_window,
                                         arguments.get("step") or DEFAULT_STEP, include_infrastructure)

            limit = get_int_argument(arguments, "limit", 100)
            direction = Direction(str(arguments.get("direction") or "BACKWARD").upper())

            entries = await self.get_client().search_logs(
                labels=labels,
                search_term=arguments.get("search_term"),
                limit=limit,
                start_ago=time_window,
                start=arguments.get("start"),
                end=arguments.get("end"),
                direction=direction,
                include_infrastructure=include_infrastructure,
            )

            if not entries:
                return text_result(NO_LOGS_MESSAGE)
            return text_result("\n".join(format_entry(entry) for entry in entries))

        except Exception as e:
            logger.error("Loki search error", error=str(e))
            return error_result("Loki Search Error", e)

    async def _count(self, labels: Optional[Dict[str, str]], search_term: Optional[str],
                     time_window: str, step: str,
                     include_infrastructure: bool) -> List[TextContent]:
        term = search_term or DEFAULT_COUNT_TERM
        client = self.get_client()
        selector = await client.build_query(labels, term, include_infrastructure, case_insensitive=True)
        query = f"sum(count_over_time({selector} [{step}]))"

        result = await client.query_metric(query, start_ago=time_window, step=step)
        if not isinstance(result, list) or not all(isinstance(item, MetricSeries) for item in result):
            logger.warning("Count query did not return a matrix", query=query)
            return text_result("No data found.")

        return text_result(render_count_chart(result, term, time_window, step))


class LokiTailLogsTool:
    """Show the freshest lines: a search fixed to the last five minutes."""

    name = "loki_tail_logs"
    window = "5m"

    def __init__(self, client=None, metrics=None):
        self._search = LokiSearchLogsTool(client=client, metrics=metrics)
        # usage is recorded under the tail tool's name
        self._search.name = self.name

    def get_tool_definition(self) -> Tool:
        """Get the MCP tool definition for loki_tail_logs."""
        return Tool(
            name=self.name,
            description=(
                "See what's happening right now. Shows the freshest logs (last 5 minutes), "
                "e.g. to watch a deployment or a live issue."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": {
                        "type": "string",
                        "description": "Explanation of why you are tailing logs."
                    },
                    "labels": LABELS_PROPERTY,
                    "search_term": {
                        "type": "string",
                        "description": "Optional filter pattern."
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Max lines to fetch. Default: 50"
                    }
                },
                "required": ["reasoning"]
            }
        )

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        """Execute the loki_tail_logs tool."""
        return await self._search.execute({
            "reasoning": arguments.get("reasoning"),
            "labels": arguments.get("labels"),
            "search_term": arguments.get("search_term"),
            "limit": arguments.get("limit") or 50,
            "time_window": self.window,
        })


# Global tool instances
_search_tool = LokiSearchLogsTool()
_tail_tool = LokiTailLogsTool()


def get_search_logs_tool() -> LokiSearchLogsTool:
    """Get the global search tool instance."""
    return _search_tool


def get_tail_logs_tool() -> LokiTailLogsTool:
    """Get the global tail tool instance."""
    return _tail_tool
