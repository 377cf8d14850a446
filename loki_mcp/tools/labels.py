"""Label discovery tools: label names, label values and service listing."""

from typing import Any, Dict, List, Optional

import structlog
from mcp.types import Tool, TextContent

from ..loki.utils import paginate
from .common import PAGE_PROPERTIES, error_result, get_int_argument, text_result

logger = structlog.get_logger(__name__)

SERVICE_LABEL_CANDIDATES = ['service_name', 'app', 'service', 'application']


class _LabelTool:
    """Lazy client access shared by the label tools."""

    def __init__(self, client=None):
        self._client = client

    def get_client(self):
        """Get or create Loki client."""
        if self._client is None:
            from ..loki.client import get_loki_client
            self._client = get_loki_client()
        return self._client

    @staticmethod
    def _page_arguments(arguments: Dict[str, Any]):
        return (get_int_argument(arguments, "page", 1),
                get_int_argument(arguments, "page_size", 100))


class LokiDiscoverLabelsTool(_LabelTool):
    """List the label names Loki knows about."""

    name = "loki_discover_labels"

    def get_tool_definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=(
                "List all available label names (metadata keys) in Loki. Use this to find out "
                "what you can filter by (e.g. 'app', 'namespace', 'cluster')."
            ),
            inputSchema={
                "type": "object",
                "properties": dict(PAGE_PROPERTIES)
            }
        )

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        try:
            page, page_size = self._page_arguments(arguments)
            labels = await self.get_client().get_labels()
            return text_result(paginate(labels, page, page_size))
        except Exception as e:
            logger.error("Error discovering labels", error=str(e))
            return error_result("Label Discovery Error", e)


class LokiGetLabelValuesTool(_LabelTool):
    """List the values of one label."""

    name = "loki_get_label_values"

    def get_tool_definition(self) -> Tool:
        return Tool(
            name=self.name,
            description=(
                "Get all existing values for a specific label. Use this to see valid options "
                "for a filter (e.g. ask for 'app' to see all app names)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "label": {
                        "type": "string",
                        "description": "The label name to look up (e.g. 'app', 'job')"
                    },
                    **PAGE_PROPERTIES
                },
                "required": ["label"]
            }
        )

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        try:
            label = arguments.get("label")
            if not label or not isinstance(label, str):
                return text_result("❌ **Invalid Parameters**\n\n'label' must be a non-empty string.")

            page, page_size = self._page_arguments(arguments)
            values = await self.get_client().get_label_values(label)
            return text_result(paginate(values, page, page_size))
        except Exception as e:
            logger.error("Error fetching label values", label=arguments.get("label"), error=str(e))
            return error_result("Label Values Error", e)


async def find_service_label(client, candidates: List[str]) -> Optional[str]:
    """First candidate label that exists in Loki, if any."""
    labels = await client.get_labels()
    return next((candidate for candidate in candidates if candidate in labels), None)


class LokiListServicesTool(_LabelTool):
    """List service names from the first standard service label present."""

    name = "loki_list_services"

    def get_tool_definition(self) -> Tool:
        return Tool(
            name=self.name,
            description="List all available services (values of the 'service_name' or 'app' label).",
            inputSchema={
                "type": "object",
                "properties": dict(PAGE_PROPERTIES)
            }
        )

    async def execute(self, arguments: Dict[str, Any]) -> List[TextContent]:
        try:
            page, page_size = self._page_arguments(arguments)
            client = self.get_client()

            label = await find_service_label(client, SERVICE_LABEL_CANDIDATES)
            if label is None:
                return text_result("Could not find a standard service label (service_name, app, etc.)")

            values = await client.get_label_values(label)
            return text_result(paginate(values, page, page_size))
        except Exception as e:
            logger.error("Error listing services", error=str(e))
            return error_result("Service Listing Error", e)


# Global tool instances
_discover_labels_tool = LokiDiscoverLabelsTool()
_label_values_tool = LokiGetLabelValuesTool()
_list_services_tool = LokiListServicesTool()


def get_discover_labels_tool() -> LokiDiscoverLabelsTool:
    return _discover_labels_tool


def get_label_values_tool() -> LokiGetLabelValuesTool:
    return _label_values_tool


def get_list_services_tool() -> LokiListServicesTool:
    return _list_services_tool
