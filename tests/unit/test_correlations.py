"""Unit tests for correlation scanning and trace timelines."""

import json

from loki_mcp.analysis.correlations import (
    UNKNOWN_TYPE,
    build_trace_timeline,
    first_present,
    resolve_service,
    scan_correlations,
)
from loki_mcp.loki.client import LogEntry
from loki_mcp.loki.utils import parse_line


def entry(ts, line, labels=None):
    text = json.dumps(line) if isinstance(line, dict) else line
    return LogEntry(timestamp=str(ts), line=parse_line(text), labels=dict(labels or {}))


class TestScanCorrelations:
    """Test identifier grouping."""

    def test_types_merged_per_identifier(self):
        entries = [
            entry(1, {"correlation_id": "abc", "topic": "order.created"}),
            entry(2, {"correlation_id": "abc", "topic": "payment.done"}),
            entry(3, {"correlation_id": "abc", "topic": "order.created"}),
        ]

        scan = scan_correlations(entries)

        assert scan.scanned == 3
        assert scan.matched == 3
        assert len(scan.groups) == 1
        assert scan.groups[0].identifier == "abc"
        assert scan.groups[0].types == ["order.created", "payment.done"]

    def test_unknown_type_and_skipped_lines(self):
        entries = [
            entry(1, {"trace_id": "t1", "msg": "no type here"}),
            entry(2, "plain text without fields"),
            entry(3, {"level": "info"}),
            entry(4, "[1, 2, 3]"),
        ]

        scan = scan_correlations(entries)

        assert scan.scanned == 4
        assert scan.matched == 1
        assert scan.groups[0].types == [UNKNOWN_TYPE]

    def test_logfmt_lines(self):
        scan = scan_correlations([entry(1, "level=info request_id=r-9 method=GET path=/health")])
        assert scan.groups[0].identifier == "r-9"
        assert scan.groups[0].types == ["GET"]

    def test_first_key_wins_and_values_stringified(self):
        scan = scan_correlations([entry(1, {"request_id": 42, "correlation_id": "", "trace_id": "t"})])
        assert scan.groups[0].identifier == "t"

        scan = scan_correlations([entry(1, {"request_id": 42, "route": True})])
        assert scan.groups[0].identifier == "42"
        assert scan.groups[0].types == ["true"]

    def test_sorted_by_type_count_then_identifier(self):
        entries = [
            entry(1, {"correlation_id": "zzz", "type": "a"}),
            entry(2, {"correlation_id": "bbb", "type": "a"}),
            entry(3, {"correlation_id": "mmm", "type": "a"}),
            entry(4, {"correlation_id": "mmm", "type": "b"}),
        ]

        scan = scan_correlations(entries)

        assert [group.identifier for group in scan.groups] == ["mmm", "bbb", "zzz"]

    def test_custom_keys(self):
        entries = [entry(1, {"txn": "x1", "kind": "refund", "correlation_id": "ignored"})]

        scan = scan_correlations(entries, correlation_keys=["txn"], type_keys=["kind"])

        assert scan.groups[0].identifier == "x1"
        assert scan.groups[0].types == ["refund"]

    def test_first_present(self):
        assert first_present({"a": None, "b": "", "c": 0, "d": "x"}, ["a", "b", "c", "d"]) == "0"
        assert first_present({"a": {"k": 1}}, ["a"]) == '{"k":1}'
        assert first_present({}, ["a"]) is None


class TestTraceTimeline:
    """Test the single-identifier timeline."""

    def test_chronological_with_services(self):
        entries = [
            entry(300, {"trace_id": "t", "message": "charged"}, {"app": "payments"}),
            entry(100, {"trace_id": "t", "msg": "received"}, {"service_name": "gateway", "app": "edge"}),
            entry(200, "trace_id=t service=orders msg=stored"),
        ]

        timeline = build_trace_timeline(entries, "t")

        assert [event.timestamp for event in timeline.events] == ["100", "200", "300"]
        assert [event.service for event in timeline.events] == ["gateway", "orders", "payments"]
        assert timeline.events[0].message == "received"
        assert timeline.events[1].message == "trace_id=t service=orders msg=stored"
        assert timeline.events[2].message == "charged"
        assert timeline.service_counts == {"gateway": 1, "orders": 1, "payments": 1}

    def test_unknown_service(self):
        assert resolve_service(entry(1, "no fields at all")) == UNKNOWN_TYPE
