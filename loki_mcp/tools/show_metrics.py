"""Usage metrics display tool."""

from typing import Any, Dict, List

import structlog
from mcp.types import Tool, TextContent

from .common import error_result, text_result

logger = structlog.get_logger(__name__)

RECENT_REASONS = 5


def render_metrics(data: Dict[str, Any]) -> str:
    tools = sorted(data.get('tools', {}).items(), key=lambda item: item[1].get('count', 0), reverse=True)
    if not tools:
        return "No tool usage recorded yet."

    output = "# Loki MCP Tool Usage Metrics\n\n"
    for name, stats in tools:
        output += f"## {name}\n"
        output += f"- **Total Usages:** {stats.get('count', 0)}\n"
        output += f"- **Last Used:** {stats.get('lastUsed', '')}\n"
        output += "- **Recent Reasons:**\n"
        for usage in stats.get('usages', [])[:RECENT_REASONS]:
            output += f"  - [{usage.get('timestamp', '')}] {usage.get('reasoning', '')}\n"
        output += "\n"
    return output


class LokiShowMetricsTool:
    """Report how often each tool was used and why."""

    name = "loki_show_metrics"

    def __init__(self, metrics=None):
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=(
                "Show usage statistics for Loki MCP tools. Displays how many times each tool "
                "was used and the reasoning provided."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": {
                        "type": "string",
                        "description": "Explanation of why you are checking metrics."
                    }
                },
                "required": ["reasoning"]
            }
        )

    def get_metrics(self):
        if self._metrics is None:
            from ..metrics import get_usage_metrics
            self._metrics = get_usage_metrics()
        return self._metrics

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        try:
            metrics = self.get_metrics()
            metrics.record(self.name, arguments.get("reasoning"))
            return text_result(render_metrics(metrics.load()))
        except Exception as e:
            logger.error("Error showing metrics", error=str(e))
            return error_result("Metrics Error", e)


_show_metrics_tool = LokiShowMetricsTool()


def get_show_metrics_tool() -> LokiShowMetricsTool:
    return _show_metrics_tool
