"""Local tool usage metrics, persisted as JSON in the user's home directory."""

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

# Reasons kept per tool so the file cannot grow without bound.
MAX_USAGES = 20


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _repair_stats(stats: Any) -> Dict[str, Any]:
    """Coerce one tool's entry into the expected shape, keeping what is usable."""
    if not isinstance(stats, dict):
        stats = {}
    count = stats.get('count')
    if not isinstance(count, int) or isinstance(count, bool):
        stats['count'] = 0
    if not isinstance(stats.get('lastUsed'), str):
        stats['lastUsed'] = ''
    usages = stats.get('usages')
    if not isinstance(usages, list):
        usages = []
    stats['usages'] = [usage for usage in usages if isinstance(usage, dict)]
    return stats


class UsageMetrics:
    """Fire-and-forget usage recorder: failures are logged, never raised."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Dict[str, Any]:
        """Load the metrics file, or an empty structure if it is missing or unreadable.

        Malformed per-tool entries are repaired rather than rejected.
        """
        try:
            if os.path.exists(self.path):
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if isinstance(data, dict) and isinstance(data.get('tools'), dict):
                    data['tools'] = {
                        str(name): _repair_stats(stats) for name, stats in data['tools'].items()
                    }
                    return data
                logger.warning("Ignoring usage metrics with unexpected layout", path=self.path)
        except (OSError, ValueError) as e:
            logger.warning("Error loading usage metrics", path=self.path, error=str(e))
        return {'tools': {}}

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning("Error saving usage metrics", path=self.path, error=str(e))

    def record(self, tool_name: str, reasoning: Optional[str]) -> None:
        """Count one use of a tool and remember why it was used."""
        data = self.load()
        stats = data['tools'].setdefault(tool_name, {'count': 0, 'lastUsed': '', 'usages': []})

        timestamp = _now_iso()
        stats['count'] += 1
        stats['lastUsed'] = timestamp
        stats['usages'].insert(0, {'timestamp': timestamp, 'reasoning': reasoning or ''})
        del stats['usages'][MAX_USAGES:]

        self._save(data)


_metrics: Optional[UsageMetrics] = None


def get_usage_metrics() -> UsageMetrics:
    """Get the global usage metrics recorder."""
    global _metrics
    if _metrics is None:
        from .config import get_config
        _metrics = UsageMetrics(get_config().mcp.metrics_path)
    return _metrics
