"""Read-only MCP resources describing what is logging to Loki."""

import json
from typing import Any, Dict, List

import structlog

from .tools.labels import find_service_label

logger = structlog.get_logger(__name__)

SERVICES_URI = "loki://services"
LABELS_URI = "loki://labels"
LABEL_VALUES_URI = "loki://labels/{label}/values"

# Wider than the loki_list_services tool: container names count as services here.
RESOURCE_SERVICE_CANDIDATES: List[str] = [
    'service_name', 'app', 'service', 'application', 'k8s_container_name'
]


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


async def read_services(client) -> str:
    """JSON listing of services, or of the available labels when none looks like a service."""
    label = await find_service_label(client, RESOURCE_SERVICE_CANDIDATES)
    if label is None:
        logger.warning("No standard service label found")
        return _dump({
            "error": "No standard service label found",
            "available_labels": await client.get_labels(),
            "hint": "Try reading loki://labels to see available label keys"
        })

    values = await client.get_label_values(label)
    return _dump({
        "label_used": label,
        "services": values,
        "count": len(values),
        "hint": f'Use {{"{label}": "service_name"}} in your search labels'
    })


async def read_labels(client) -> str:
    labels = await client.get_labels()
    return _dump({
        "labels": labels,
        "count": len(labels),
        "hint": "Read loki://labels/{label_name}/values to see values for a specific label"
    })


async def read_label_values(client, label: str) -> str:
    values = await client.get_label_values(label)
    return _dump({
        "label": label,
        "values": values,
        "count": len(values),
        "hint": f'Use {{"{label}": "value"}} in your search labels'
    })
