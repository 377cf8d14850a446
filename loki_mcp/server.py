#!/usr/bin/env python3
"""
MCP server exposing Loki log tools, resources and guided debugging prompts.
Served over SSE by default, or over stdio with the 'stdio' argument.
"""

import os
import sys
from typing import Dict, List, Optional

import structlog
import uvicorn
from mcp.server import Server
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.server import Context
from mcp.server.sse import SseServerTransport
from mcp.types import Tool
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Mount, Route

from loki_mcp.config import get_config
from loki_mcp.logging_config import configure_logging
from loki_mcp.loki.client import get_loki_client
from loki_mcp.resources import (
    LABEL_VALUES_URI,
    LABELS_URI,
    SERVICES_URI,
    read_label_values,
    read_labels,
    read_services,
)
from loki_mcp.tools.extract_field import get_extract_field_tool
from loki_mcp.tools.get_context import get_context_tool
from loki_mcp.tools.labels import (
    get_discover_labels_tool,
    get_label_values_tool,
    get_list_services_tool,
)
from loki_mcp.tools.pattern_analysis import get_pattern_analysis_tool
from loki_mcp.tools.scan_correlations import get_scan_correlations_tool
from loki_mcp.tools.search_logs import get_search_logs_tool, get_tail_logs_tool
from loki_mcp.tools.show_metrics import get_show_metrics_tool
from loki_mcp.workflows import PROMPTS, render_prompt

logger = structlog.get_logger(__name__)

DEFAULT_PORT = 8756

# Loading config logs, and stdout belongs to the stdio transport.
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
config = get_config()

# Create FastMCP instance
mcp = FastMCP(config.mcp.server_name)
mcp._mcp_server.version = config.mcp.version


async def _run_tool(tool, arguments: Dict, empty_message: str) -> str:
    """Execute a tool and hand its first text block back to FastMCP."""
    results = await tool.execute({key: value for key, value in arguments.items() if value is not None})
    if results:
        return results[0].text
    return empty_message


@mcp.tool()
async def loki_search_logs(
    reasoning: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    search_term: Optional[str] = None,
    time_window: str = "1h",
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: int = 100,
    direction: str = "BACKWARD",
    include_infrastructure: bool = False,
    count: bool = False,
    step: str = "1m",
    context: Context = None
) -> str:
    """Easy mode log search. Fetch logs by filtering on labels and/or text content. Returns newest logs first.

    Args:
        reasoning: Why you are searching and what you hope to find
        labels: Label filter, e.g. {"app": "payment-service", "env": "prod"}. Detected automatically when omitted
        search_term: Text to find within the line (case-sensitive; case-insensitive in count mode, default 'error')
        time_window: How far back to search, e.g. '1h', '30m', '1d' (default: 1h)
        start: Absolute start (ISO-8601, ms or ns); overrides time_window
        end: Absolute end (ISO-8601, ms or ns); default now
        limit: Max number of log lines to return (default: 100)
        direction: BACKWARD for newest first, FORWARD for oldest first
        include_infrastructure: Include loki/promtail/grafana... logs when no labels are given
        count: Count matches over time and chart them instead of returning lines
        step: Count mode interval per data point (default: 1m)

    Returns:
        One '[time] ts=<ns> {labels}: line' row per entry, or totals with an ASCII chart in count mode
    """
    try:
        return await _run_tool(get_search_logs_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "search_term": search_term,
            "time_window": time_window,
            "start": start,
            "end": end,
            "limit": limit,
            "direction": direction,
            "include_infrastructure": include_infrastructure,
            "count": count,
            "step": step,
        }, "No results returned from search")
    except Exception as e:
        return f"Error executing search: {str(e)}"


@mcp.tool()
async def loki_tail_logs(
    reasoning: str,
    labels: Optional[Dict[str, str]] = None,
    search_term: Optional[str] = None,
    limit: int = 50,
    context: Context = None
) -> str:
    """See what's happening right now: the freshest logs from the last 5 minutes.

    Args:
        reasoning: Why you are tailing logs
        labels: Optional label filter, e.g. {"app": "payment"}
        search_term: Optional filter pattern
        limit: Max lines to fetch (default: 50)
    """
    try:
        return await _run_tool(get_tail_logs_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "search_term": search_term,
            "limit": limit,
        }, "No results returned from tail")
    except Exception as e:
        return f"Error tailing logs: {str(e)}"


@mcp.tool()
async def loki_discover_labels(page: int = 1, page_size: int = 100, context: Context = None) -> str:
    """List all available label names in Loki, i.e. what you can filter by (e.g. 'app', 'namespace').

    Args:
        page: Page number (default 1)
        page_size: Number of items per page (default 100)
    """
    try:
        return await _run_tool(get_discover_labels_tool(),
                               {"page": page, "page_size": page_size}, "No labels found")
    except Exception as e:
        return f"Error discovering labels: {str(e)}"


@mcp.tool()
async def loki_get_label_values(label: str, page: int = 1, page_size: int = 100,
                                context: Context = None) -> str:
    """Get all existing values for a specific label (e.g. ask for 'app' to see all app names).

    Args:
        label: The label name to look up (e.g. 'app', 'job')
        page: Page number (default 1)
        page_size: Number of items per page (default 100)
    """
    try:
        return await _run_tool(get_label_values_tool(),
                               {"label": label, "page": page, "page_size": page_size},
                               "No label values found")
    except Exception as e:
        return f"Error retrieving label values: {str(e)}"


@mcp.tool()
async def loki_list_services(page: int = 1, page_size: int = 100, context: Context = None) -> str:
    """List all available services (values of the 'service_name' or 'app' label).

    Args:
        page: Page number (default 1)
        page_size: Number of items per page (default 100)
    """
    try:
        return await _run_tool(get_list_services_tool(),
                               {"page": page, "page_size": page_size}, "No services found")
    except Exception as e:
        return f"Error listing services: {str(e)}"


@mcp.tool()
async def loki_pattern_analysis(
    reasoning: str,
    labels: Dict[str, str],
    search_term: Optional[str] = None,
    time_window: str = "1h",
    limit: int = 500,
    min_occurrences: int = 2,
    context: Context = None
) -> str:
    """Group logs into patterns by replacing IDs, numbers and timestamps with placeholders.

    Shows the most common templates, answering 'what types of errors are happening?'.

    Args:
        reasoning: Why you are analyzing patterns
        labels: Label filter, e.g. {"app": "payment"}
        search_term: Optional filter, e.g. 'error' or 'exception'
        time_window: How far back to search (default: 1h)
        limit: Max logs to scan (default: 500)
        min_occurrences: Only show patterns seen at least this many times (default: 2)
    """
    try:
        return await _run_tool(get_pattern_analysis_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "search_term": search_term,
            "time_window": time_window,
            "limit": limit,
            "min_occurrences": min_occurrences,
        }, "No results returned from pattern analysis")
    except Exception as e:
        return f"Error in pattern analysis: {str(e)}"


@mcp.tool()
async def loki_scan_correlations(
    reasoning: str,
    labels: Optional[Dict[str, str]] = None,
    time_window: str = "1h",
    correlation_keys: Optional[List[str]] = None,
    type_keys: Optional[List[str]] = None,
    trace_id: Optional[str] = None,
    limit: int = 500,
    context: Context = None
) -> str:
    """Find correlation IDs and the message/request types seen with them.

    With trace_id, returns the chronological per-service timeline of that one request.

    Args:
        reasoning: Why you are scanning and what you hope to find
        labels: Optional label filter, e.g. {"app": "payment"}
        time_window: How far back to search (default: 1h)
        correlation_keys: Keys treated as correlation IDs
        type_keys: Keys treated as message/request types
        trace_id: Identifier to follow across services
        limit: Max logs to scan (default: 500)
    """
    try:
        return await _run_tool(get_scan_correlations_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "time_window": time_window,
            "correlation_keys": correlation_keys,
            "type_keys": type_keys,
            "trace_id": trace_id,
            "limit": limit,
        }, "No results returned from correlation scan")
    except Exception as e:
        return f"Error scanning correlations: {str(e)}"


@mcp.tool()
async def loki_get_context(
    reasoning: str,
    labels: Dict[str, str],
    timestamp: str,
    limit: int = 10,
    direction: str = "both",
    context: Context = None
) -> str:
    """Show the log lines before and after an entry, for root cause analysis.

    Args:
        reasoning: Why you are checking context
        labels: The EXACT labels of the log entry, copied from the search result
        timestamp: The entry's ts=<ns> value from the search result (ms or ISO-8601 also accepted)
        limit: Lines to fetch in each direction (default: 10)
        direction: 'before', 'after' or 'both' (default: both)
    """
    try:
        return await _run_tool(get_context_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "timestamp": timestamp,
            "limit": limit,
            "direction": direction,
        }, "No results returned from context fetch")
    except Exception as e:
        return f"Error fetching context: {str(e)}"


@mcp.tool()
async def loki_extract_field(
    reasoning: str,
    labels: Dict[str, str],
    field_name: str,
    search_term: Optional[str] = None,
    time_window: str = "1h",
    limit: int = 1000,
    format: str = "json",
    context: Context = None
) -> str:
    """Extract a field from JSON/logfmt logs and show its value frequency distribution.

    Args:
        reasoning: Why you are extracting this field
        labels: Label filter, e.g. {"app": "payment"}
        field_name: Field to extract; nested fields use dots, e.g. 'error.message'
        search_term: Optional filter to narrow down logs first
        time_window: How far back to search (default: 1h)
        limit: Max logs to scan (default: 1000)
        format: 'json' or 'logfmt' (default: json)
    """
    try:
        return await _run_tool(get_extract_field_tool(), {
            "reasoning": reasoning,
            "labels": labels,
            "field_name": field_name,
            "search_term": search_term,
            "time_window": time_window,
            "limit": limit,
            "format": format,
        }, "No results returned from field extraction")
    except Exception as e:
        return f"Error extracting field: {str(e)}"


@mcp.tool()
async def loki_show_metrics(reasoning: str, context: Context = None) -> str:
    """Show usage statistics for the Loki tools: how often each was used and why.

    Args:
        reasoning: Why you are checking metrics
    """
    try:
        return await _run_tool(get_show_metrics_tool(), {"reasoning": reasoning},
                               "No metrics available")
    except Exception as e:
        return f"Error showing metrics: {str(e)}"


TOOL_ACCESSORS = [
    get_search_logs_tool,
    get_tail_logs_tool,
    get_discover_labels_tool,
    get_label_values_tool,
    get_list_services_tool,
    get_pattern_analysis_tool,
    get_scan_correlations_tool,
    get_context_tool,
    get_extract_field_tool,
    get_show_metrics_tool,
]


async def list_tool_definitions() -> List[Tool]:
    """Advertise each tool class's own schema; FastMCP still validates and dispatches calls."""
    return [get_tool().get_tool_definition() for get_tool in TOOL_ACCESSORS]


# Replaces the listing FastMCP derives from the wrapper signatures above
mcp._mcp_server.list_tools()(list_tool_definitions)


@mcp.resource(SERVICES_URI, name="services", mime_type="application/json",
              description="List of all services/apps currently logging to Loki")
async def services_resource() -> str:
    return await read_services(get_loki_client())


@mcp.resource(LABELS_URI, name="labels", mime_type="application/json",
              description="All label keys (metadata fields) available in Loki")
async def labels_resource() -> str:
    return await read_labels(get_loki_client())


@mcp.resource(LABEL_VALUES_URI, name="label-values", mime_type="application/json",
              description="Get all values for a specific label (e.g., loki://labels/app/values)")
async def label_values_resource(label: str) -> str:
    return await read_label_values(get_loki_client(), label)


@mcp.prompt(name="debug-error", description=PROMPTS["debug-error"].description)
def debug_error_prompt(error_text: str, service: Optional[str] = None,
                       time_window: Optional[str] = None) -> str:
    return render_prompt("debug-error", {
        "error_text": error_text, "service": service, "time_window": time_window,
    })


@mcp.prompt(name="trace-request", description=PROMPTS["trace-request"].description)
def trace_request_prompt(trace_id: str, time_window: Optional[str] = None) -> str:
    return render_prompt("trace-request", {"trace_id": trace_id, "time_window": time_window})


@mcp.prompt(name="health-check", description=PROMPTS["health-check"].description)
def health_check_prompt(service: Optional[str] = None, time_window: Optional[str] = None) -> str:
    return render_prompt("health-check", {"service": service, "time_window": time_window})


def create_starlette_app(mcp_server: Server, *, debug: bool = False) -> Starlette:
    sse = SseServerTransport("/messages/")

    async def handle_sse(request):
        async with sse.connect_sse(
            request.scope, request.receive, request._send
        ) as streams:
            await mcp_server.run(
                streams[0], streams[1], mcp_server.create_initialization_options()
            )
        # Return empty response to avoid NoneType error
        return Response()

    return Starlette(
        debug=debug,
        routes=[
            Route("/", endpoint=handle_sse),
            Route("/sse", endpoint=handle_sse),
            Mount("/messages/", app=sse.handle_post_message),
        ]
    )


def main(argv: Optional[List[str]] = None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging(config.mcp.log_level)

    if argv and argv[0] == "stdio":
        logger.info("Loki MCP Server running on stdio", loki_url=config.loki.url)
        mcp.run(transport="stdio")
        return

    port = int(argv[0]) if argv else DEFAULT_PORT
    starlette_app = create_starlette_app(mcp._mcp_server, debug=True)

    print(f"Loki MCP Server running on http://localhost:{port}")
    print(f"Loki backend: {config.loki.url}")
    print("Endpoints:")
    print(f"  SSE: http://localhost:{port}/sse")
    print(f"  Messages: http://localhost:{port}/messages/")
    print("Tools:")
    print("  - loki_search_logs: Search logs by labels and text (count=true for rates and charts)")
    print("  - loki_tail_logs: Freshest logs from the last 5 minutes")
    print("  - loki_discover_labels / loki_get_label_values / loki_list_services: Explore metadata")
    print("  - loki_pattern_analysis: Group logs into recurring templates")
    print("  - loki_scan_correlations: Correlation IDs, or one trace's timeline")
    print("  - loki_get_context: Lines before and after an entry")
    print("  - loki_extract_field: Value distribution of a JSON/logfmt field")
    print("  - loki_show_metrics: Tool usage statistics")
    print("Prompts: " + ", ".join(PROMPTS))

    uvicorn.run(starlette_app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
