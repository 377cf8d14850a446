"""Schema fragments and rendering helpers shared by the Loki tools."""

import json
from typing import Any, Dict, List, Mapping, Optional

from mcp.types import TextContent

from ..loki.client import LogEntry
from ..loki.utils import InvalidDurationError, InvalidTimestampError, format_ns

REASONING_PROPERTY = {
    "type": "string",
    "description": "Explanation of why you are using this tool and what you hope to find."
}

LABELS_PROPERTY = {
    "type": "object",
    "description": "Key-value pairs to filter logs. e.g. {'app': 'payment'}",
    "additionalProperties": {"type": "string"}
}

TIME_WINDOW_PROPERTY = {
    "type": "string",
    "description": "How far back to search. Format: '1h', '30m', '1d'. Default: '1h'",
    "pattern": "^-?[0-9]+[smhd]$"
}

PAGE_PROPERTIES = {
    "page": {"type": "integer", "description": "Page number (default 1)"},
    "page_size": {"type": "integer", "description": "Number of items per page (default 100)"}
}

TRUNCATED_MARKER = "... (Output truncated)"


def text_result(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


def error_result(title: str, error: Exception) -> List[TextContent]:
    """Render a failure the way every tool reports it."""
    if isinstance(error, (InvalidDurationError, InvalidTimestampError)):
        title = "Invalid Parameters"
    return text_result(f"❌ **{title}**\n\n{error}")


def get_labels_argument(arguments: Mapping[str, Any], required: bool = False) -> Optional[Dict[str, str]]:
    """Validate the optional 'labels' object of a tool call."""
    labels = arguments.get("labels")
    if labels is None or labels == {}:
        if required:
            raise ValueError("'labels' must be a non-empty object of label names to values.")
        return None
    if not isinstance(labels, dict):
        raise ValueError("'labels' must be an object of label names to values.")
    return {str(key): str(value) for key, value in labels.items()}


def get_int_argument(arguments: Mapping[str, Any], name: str, default: int,
                     minimum: int = 1) -> int:
    value = arguments.get(name)
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be an integer.") from None
    if number < minimum:
        raise ValueError(f"'{name}' must be at least {minimum}.")
    return number


def format_entry(entry: LogEntry) -> str:
    """One search result line: [iso] ts=<ns> {labels}: line.

    The nanosecond ts is what loki_get_context needs to recognise the entry.
    """
    labels = json.dumps(entry.labels, ensure_ascii=False, separators=(",", ":"))
    return f"[{format_ns(entry.timestamp)}] ts={entry.timestamp} {labels}: {entry.text}"


def append_capped(output: str, block: str, max_length: int) -> Optional[str]:
    """Append a block unless that would push the output past max_length."""
    if len(output) + len(block) > max_length:
        return None
    return output + block
