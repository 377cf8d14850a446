"""Log pattern extraction by placeholder substitution.

Volatile substrings (IDs, timestamps, addresses, numbers, long strings,
paths) are replaced with fixed placeholders so structurally identical lines
collapse into one template that can be counted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

# Lines are cut to this length before normalization.
MAX_LINE_LENGTH = 500
MAX_EXAMPLES = 2

# Applied in order; later rules only see what earlier ones left behind, so
# UUIDs go before the generic hex and number rules would fragment them.
# The quoted-string rule also matches its own placeholder so a second pass
# cannot pair the closing quote of one string with the opening of the next.
_RULES = [
    (re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE), '<UUID>'),
    (re.compile(r'0x[0-9a-f]+', re.IGNORECASE), '<HEX>'),
    (re.compile(r'\b[0-9a-f]{16,}\b', re.IGNORECASE), '<HEX>'),
    (re.compile(r'\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?'), '<TIMESTAMP>'),
    (re.compile(r'\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b'), '<IP>'),
    (re.compile(r'\b\d{4,}\b'), '<NUM>'),
    (re.compile(r'\b\d+\.\d+\b'), '<NUM>'),
    (re.compile(r'"<STRING>"|"[^"]{20,}"'), '"<STRING>"'),
    (re.compile(r"'<STRING>'|'[^']{20,}'"), "'<STRING>'"),
    (re.compile(r'/[\w\-./]+'), '<PATH>'),
    (re.compile(r'\b[0-9a-f]{10,}\b', re.IGNORECASE), '<ADDR>'),
]


@dataclass
class PatternGroup:
    """Lines sharing one normalized template."""

    template: str
    count: int = 0
    examples: List[str] = field(default_factory=list)

    def add(self, line: str) -> None:
        self.count += 1
        if len(self.examples) < MAX_EXAMPLES:
            self.examples.append(line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template,
            "count": self.count,
            "examples": list(self.examples),
        }


def normalize_to_pattern(line: str) -> str:
    """Replace volatile substrings of a line with placeholders.

    Placeholders can be longer than the text they replace, which may push a
    short quoted string over the length threshold, so the rule table is
    reapplied until the template settles. Each effective substitution either
    removes non-placeholder text or collapses a quoted span, so this terminates.
    """
    pattern = line
    while True:
        previous = pattern
        for regex, placeholder in _RULES:
            pattern = regex.sub(placeholder, pattern)
        if pattern == previous:
            return pattern


def group_by_pattern(lines: Iterable[str], min_occurrences: int = 2) -> List[PatternGroup]:
    """Group lines by template.

    Args:
        lines: Raw log line texts
        min_occurrences: Groups seen fewer times than this are dropped

    Returns:
        List[PatternGroup]: Most frequent first; ties keep first-seen order
    """
    groups: Dict[str, PatternGroup] = {}

    for line in lines:
        content = line[:MAX_LINE_LENGTH]
        template = normalize_to_pattern(content)
        group = groups.get(template)
        if group is None:
            group = groups[template] = PatternGroup(template=template)
        group.add(content)

    kept = [group for group in groups.values() if group.count >= min_occurrences]
    kept.sort(key=lambda group: group.count, reverse=True)
    return kept
