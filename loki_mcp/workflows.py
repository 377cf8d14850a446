"""Guided debugging workflows served as MCP prompts.

The prompt bodies live in ``prompts/*.txt`` as ``string.Template`` texts;
this module fills in the optional parts that depend on the arguments.
"""

import os
from dataclasses import dataclass, field
from string import Template
from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompts")
DEFAULT_TIME_WINDOW = "1h"


@dataclass
class PromptArgument:
    name: str
    description: str
    required: bool = False


@dataclass
class PromptDefinition:
    name: str
    description: str
    filename: str
    arguments: List[PromptArgument] = field(default_factory=list)


PROMPTS: Dict[str, PromptDefinition] = {
    "debug-error": PromptDefinition(
        name="debug-error",
        description=(
            "Guided workflow to debug an error in production. Searches for the error, gets "
            "surrounding context, and checks if it's a recurring pattern."
        ),
        filename="debug_error.txt",
        arguments=[
            PromptArgument("error_text", "The error message or text to search for", required=True),
            PromptArgument("service", "Optional: specific service/app to search in"),
            PromptArgument("time_window", "How far back to search (default: 1h)"),
        ],
    ),
    "trace-request": PromptDefinition(
        name="trace-request",
        description=(
            "Follow a request across all services using its trace/correlation ID. Shows the "
            "complete journey of a request through your distributed system."
        ),
        filename="trace_request.txt",
        arguments=[
            PromptArgument("trace_id", "The trace ID, correlation ID, or request ID to follow", required=True),
            PromptArgument("time_window", "How far back to search (default: 1h)"),
        ],
    ),
    "health-check": PromptDefinition(
        name="health-check",
        description=(
            "Quick production health check. Lists services, counts recent errors, and "
            "identifies any error patterns."
        ),
        filename="health_check.txt",
        arguments=[
            PromptArgument("service", "Optional: focus on a specific service"),
            PromptArgument("time_window", "Time window to check (default: 1h)"),
        ],
    ),
}


def _load_template(filename: str) -> Template:
    path = os.path.join(PROMPTS_DIR, filename)
    with open(path, 'r', encoding='utf-8') as f:
        return Template(f.read().strip())


def _service_labels_hint(service: Optional[str], fallback: str) -> str:
    if service:
        return f'- labels: {{"app": "{service}"}} or {{"k8s_container_name": "{service}"}}'
    return fallback


def _debug_error_values(args: Dict[str, str]) -> Dict[str, str]:
    service = args.get("service")
    return {
        "error_text": args.get("error_text", ""),
        "service_filter": f'in the "{service}" service' if service else "across all services",
        "labels_hint": _service_labels_hint(service, "- No labels needed (searches all services)"),
        "time_window": args.get("time_window") or DEFAULT_TIME_WINDOW,
    }


def _trace_request_values(args: Dict[str, str]) -> Dict[str, str]:
    return {
        "trace_id": args.get("trace_id", ""),
        "time_window": args.get("time_window") or DEFAULT_TIME_WINDOW,
    }


def _health_check_values(args: Dict[str, str]) -> Dict[str, str]:
    service = args.get("service")
    if service:
        list_step, first = "", 2
    else:
        list_step = ("**List available services** by reading the `loki://services` resource "
                     "to see what's running\n\n2. ")
        first = 3
    return {
        "service_scope": f'for "{service}"' if service else "across all services",
        "list_services_step": list_step,
        "labels_hint": _service_labels_hint(service, "- No labels (check all services)"),
        "time_window": args.get("time_window") or DEFAULT_TIME_WINDOW,
        "pattern_step": str(first),
        "summary_step": str(first + 1),
    }


_VALUE_BUILDERS = {
    "debug-error": _debug_error_values,
    "trace-request": _trace_request_values,
    "health-check": _health_check_values,
}


def render_prompt(name: str, args: Optional[Dict[str, str]] = None) -> str:
    """Render a workflow prompt with its arguments.

    Raises:
        ValueError: For an unknown prompt or a missing required argument
    """
    definition = PROMPTS.get(name)
    if definition is None:
        raise ValueError(f"Unknown prompt: {name}")

    args = {key: value for key, value in (args or {}).items() if value}
    missing = [arg.name for arg in definition.arguments if arg.required and arg.name not in args]
    if missing:
        raise ValueError(f"Missing required argument(s) for {name}: {', '.join(missing)}")

    logger.info("Rendering workflow prompt", prompt=name, file=definition.filename)
    template = _load_template(definition.filename)
    return template.safe_substitute(_VALUE_BUILDERS[name](args))


def get_prompt_messages(name: str, args: Optional[Dict[str, str]] = None) -> List[Dict[str, str]]:
    """Prompt as a list of chat messages; every workflow is a single user turn."""
    return [{"role": "user", "content": render_prompt(name, args)}]
