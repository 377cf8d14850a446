"""Field extraction tool: value distribution of one JSON/logfmt field."""

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

import structlog
from mcp.types import Tool, TextContent

from ..analysis.correlations import stringify_value
from ..loki.client import LogEntry
from ..loki.utils import RawLine, parse_logfmt
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

FORMATS = ("json", "logfmt")
MAX_OUTPUT = 30000
MAX_DISPLAY = 50


def _fields_of(entry: LogEntry, log_format: str) -> Optional[Dict[str, Any]]:
    fields = entry.line.fields
    if fields is not None:
        return fields
    if log_format == "logfmt" and isinstance(entry.line, RawLine):
        return parse_logfmt(entry.text)
    return None


def resolve_path(fields: Dict[str, Any], field_name: str) -> Any:
    """Follow a dotted path such as 'error.message' through nested objects."""
    value: Any = fields
    for key in field_name.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return None
    return value


def extract_values(entries: Iterable[LogEntry], field_name: str,
                   log_format: str = "json") -> List[str]:
    """Stringified values of a field across entries; lines without it are skipped."""
    values = []
    for entry in entries:
        fields = _fields_of(entry, log_format)
        if not fields:
            continue
        value = resolve_path(fields, field_name)
        if value is not None:
            values.append(stringify_value(value))
    return values


def render_distribution(values: List[str], field_name: str, scanned: int) -> str:
    frequency = Counter(values)
    ranked = frequency.most_common()

    output = f"Extracted {len(values)} values for field '{field_name}' from {scanned} logs.\n"
    output += f"Found {len(frequency)} unique values.\n\n"
    output += "Top values by frequency:\n"

    shown = ranked[:MAX_DISPLAY]
    for index, (value, count) in enumerate(shown, start=1):
        line = f"{index}. {value} - {count} occurrences ({count / len(values) * 100:.1f}%)\n"
        extended = append_capped(output, line, MAX_OUTPUT)
        if extended is None:
            output += "\n" + TRUNCATED_MARKER
            break
        output = extended

    if len(ranked) > MAX_DISPLAY:
        output += f"\n... and {len(ranked) - MAX_DISPLAY} more unique values."
    return output


class LokiExtractFieldTool:
    """Turn one field of structured logs into a frequency table."""

    name = "loki_extract_field"

    def __init__(self, client=None, metrics=None):
        self._client = client
        self._metrics = metrics

    def get_tool_definition(self) -> Tool:
        """Get the MCP tool definition for loki_extract_field."""
        return Tool(
            name=self.name,
            description=(
                "Use when asked for the top values of a field: which users, which endpoints, most "
                "common status codes. Extracts any field from JSON/logfmt logs, counts occurrences "
                "and shows the frequency distribution. Nested fields use dots, e.g. 'error.message'."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "reasoning": REASONING_PROPERTY,
                    "labels": LABELS_PROPERTY,
                    "field_name": {
                        "type": "string",
                        "description": "The JSON/logfmt field to extract. e.g. 'user_id', 'status_code', 'error.message'"
                    },
                    "search_term": {
                        "type": "string",
                        "description": "Optional filter to narrow down logs before extraction. e.g. 'timeout' or 'error'"
                    },
                    "time_window": TIME_WINDOW_PROPERTY,
                    "limit": {
                        "type": "integer",
                        "description": "Max logs to scan. Default: 1000"
                    },
                    "format": {
                        "type": "string",
                        "enum": list(FORMATS),
                        "description": "Log format. Default: 'json'"
                    }
                },
                "required": ["reasoning", "labels", "field_name"]
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
        """Execute the loki_extract_field tool."""
        try:
            self.get_metrics().record(self.name, arguments.get("reasoning"))
            labels = get_labels_argument(arguments, required=True)
            field_name = arguments.get("field_name")
            if not field_name or not isinstance(field_name, str):
                return text_result("❌ **Invalid Parameters**\n\n'field_name' must be a non-empty string.")

            log_format = arguments.get("format") or "json"
            if log_format not in FORMATS:
                return text_result("❌ **Invalid Parameters**\n\nformat must be 'json' or 'logfmt'.")

            entries = await self.get_client().search_logs(
                labels=labels,
                search_term=arguments.get("search_term"),
                limit=get_int_argument(arguments, "limit", 1000),
                start_ago=arguments.get("time_window") or "1h",
            )

            values = extract_values(entries, field_name, log_format)
            if not values:
                return text_result(f"No values found for field '{field_name}' in {len(entries)} logs scanned.")
            return text_result(render_distribution(values, field_name, len(entries)))

        except Exception as e:
            logger.error("Field extraction error", field=arguments.get("field_name"), error=str(e))
            return error_result("Field Extraction Error", e)


_extract_tool = LokiExtractFieldTool()


def get_extract_field_tool() -> LokiExtractFieldTool:
    """Get the global field extraction tool instance."""
    return _extract_tool
