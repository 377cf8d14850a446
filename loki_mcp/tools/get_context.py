"""Context tool: the lines surrounding a log entry."""

from typing import Any, Dict, List

import structlog
from mcp.types import Tool, TextContent

from ..analysis.context import CONTEXT_DIRECTIONS, LogContext, fetch_context
from ..loki.client import LogEntry
from ..loki.utils import format_ns
from .common import REASONING_PROPERTY, error_result, get_int_argument, get_labels_argument, text_result

logger = structlog.get_logger(__name__)

LINE_LENGTH = 200


def _format_lines(entries: List[LogEntry]) -> str:
    lines = []
    for entry in entries:
        content = entry.text
        if len(content) > LINE_LENGTH:
            content = content[:LINE_LENGTH] + "..."
        lines.append(f"[{format_ns(entry.timestamp)}] {content}")
    return "\n".join(lines)


def render_context(context: LogContext, direction: str) -> str:
    output = ""
    if direction in ("before", "both"):
        output += "--- CONTEXT BEFORE ---\n"
        output += _format_lines(context.before)
        output += "\n"

    output += f"--- TARGET [{format_ns(context.target)}] ---\n"

    if direction in ("after", "both"):
        output += "\n--- CONTEXT AFTER ---\n"
        output += _format_lines(context.after)
        output += "\n"
    return output


class LokiGetContextTool:
    """Show what led up to a log line and what followed it."""

    name = "loki_get_context"

    def __init__(self, client=None, metrics=None):
        self._client = client
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=(
                "Found an error? Show what led up to it and what happened after. Fetches the "
                "lines of the same stream around a log entry, essential for root cause analysis."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": REASONING_PROPERTY,
                    "labels": {
                        "type": "object",
                        "description": "The EXACT labels of the log entry you found. You MUST copy these from the log result.",
                        "additionalProperties": {"type": "string"}
                    },
                    "timestamp": {
                        "type": "string",
                        "description": "The entry's ts=<nanoseconds> value from the search result. Milliseconds or ISO-8601 also work but may not single out the entry itself."
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Number of lines to fetch in each direction. Default: 10"
                    },
                    "direction": {
                        "type": "string",
                        "enum": list(CONTEXT_DIRECTIONS),
                        "description": "Which context to fetch. Default: 'both'"
                    }
                },
                "required": ["reasoning", "labels", "timestamp"]
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
        try:
            self.get_metrics().record(self.name, arguments.get("reasoning"))
            labels = get_labels_argument(arguments, required=True)
            timestamp = arguments.get("timestamp")
            if timestamp is None or timestamp == "":
                return text_result("❌ **Invalid Parameters**\n\n'timestamp' is required.")
            if isinstance(timestamp, str) and timestamp.startswith("ts="):
                timestamp = timestamp[3:]

            limit = get_int_argument(arguments, "limit", 10)
            direction = arguments.get("direction") or "both"

            context = await fetch_context(self.get_client(), labels, timestamp,
                                          limit=limit, direction=direction)
            return text_result(render_context(context, direction))

        except Exception as e:
            logger.error("Context fetch error", error=str(e))
            return error_result("Context Fetch Error", e)


_context_tool = LokiGetContextTool()


def get_context_tool() -> LokiGetContextTool:
    return _context_tool
