"""Pattern analysis tool: collapse log lines into recurring templates."""

from typing import Any, Dict, List

import structlog
from mcp.types import Tool, TextContent

from ..analysis.patterns import group_by_pattern
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
from .search_logs import NO_LOGS_MESSAGE

logger = structlog.get_logger(__name__)

MAX_OUTPUT = 40000
EXAMPLE_LENGTH = 300


def render_patterns(groups, total: int, min_occurrences: int) -> str:
    if not groups:
        return (f"Analyzed {total} logs. No recurring patterns found "
                f"(all logs are unique or occur less than {min_occurrences} times).")

    output = f"Analyzed {total} logs and found {len(groups)} distinct patterns.\n\n"
    for index, group in enumerate(groups, start=1):
        example = group.examples[0]
        block = f"## Pattern {index} ({group.count} occurrences, {group.count / total * 100:.1f}%)\n"
        block += f"**Template:** {group.template}\n\n"
        block += "**Example:**\n"
        block += example[:EXAMPLE_LENGTH]
        if len(example) > EXAMPLE_LENGTH:
            block += "..."
        block += "\n\n"

        extended = append_capped(output, block, MAX_OUTPUT)
        if extended is None:
            output += TRUNCATED_MARKER
            break
        output = extended

    return output


class LokiPatternAnalysisTool:
    """
    Group logs into patterns by replacing IDs, numbers and timestamps with
    placeholders, answering 'what kinds of errors are happening?'.
    """

    name = "loki_pattern_analysis"

    def __init__(self, client=None, metrics=None):
        self._client = client
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        """Get the MCP tool definition for loki_pattern_analysis."""
        return Tool(
            name=self.name,
            description=(
                "Group logs into patterns by replacing dynamic content (IDs, numbers, timestamps) "
                "with placeholders. Shows most common error templates. Essential for understanding "
                "'What types of errors are happening?' rather than individual instances."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": REASONING_PROPERTY,
                    "labels": LABELS_PROPERTY,
                    "search_term": {
                        "type": "string",
                        "description": "Optional filter. e.g. 'error' or 'exception'"
                    },
                    "time_window": TIME_WINDOW_PROPERTY,
                    "limit": {
                        "type": "integer",
                        "description": "Max logs to scan. Default: 500"
                    },
                    "min_occurrences": {
                        "type": "integer",
                        "description": "Only show patterns that appear at least this many times. Default: 2"
                    }
                },
                "required": ["reasoning", "labels"]
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
        """Execute the loki_pattern_analysis tool."""
        try:
            self.get_metrics().record(self.name, arguments.get("reasoning"))
            labels = get_labels_argument(arguments, required=True)
            limit = get_int_argument(arguments, "limit", 500)
            min_occurrences = get_int_argument(arguments, "min_occurrences", 2)

            entries = await self.get_client().search_logs(
                labels=labels,
                search_term=arguments.get("search_term"),
                limit=limit,
                start_ago=arguments.get("time_window") or "1h",
            )
            if not entries:
                return text_result(NO_LOGS_MESSAGE)

            groups = group_by_pattern((entry.text for entry in entries), min_occurrences)
            logger.info("Pattern analysis complete", lines=len(entries), patterns=len(groups))
            return text_result(render_patterns(groups, len(entries), min_occurrences))

        except Exception as e:
            logger.error("Pattern analysis error", error=str(e))
            return error_result("Pattern Analysis Error", e)


_pattern_tool = LokiPatternAnalysisTool()


def get_pattern_analysis_tool() -> LokiPatternAnalysisTool:
    """Get the global pattern analysis tool instance."""
    return _pattern_tool
