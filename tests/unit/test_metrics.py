"""Unit tests for the usage metrics sink."""

import json
import os

from loki_mcp.metrics import MAX_USAGES, UsageMetrics


class TestUsageMetrics:
    """Test recording and loading of tool usage."""

    def test_missing_file_loads_empty(self, tmp_path):
        metrics = UsageMetrics(str(tmp_path / "metrics.json"))
        assert metrics.load() == {"tools": {}}

    def test_record_counts_and_orders_newest_first(self, tmp_path):
        path = tmp_path / "metrics.json"
        metrics = UsageMetrics(str(path))

        metrics.record("loki_search_logs", "first look")
        metrics.record("loki_search_logs", "second look")
        metrics.record("loki_get_context", None)

        data = json.loads(path.read_text())
        search = data["tools"]["loki_search_logs"]
        assert search["count"] == 2
        assert [usage["reasoning"] for usage in search["usages"]] == ["second look", "first look"]
        assert search["lastUsed"] == search["usages"][0]["timestamp"]
        assert search["lastUsed"].endswith("Z")
        assert data["tools"]["loki_get_context"]["usages"][0]["reasoning"] == ""

    def test_usages_capped(self, tmp_path):
        metrics = UsageMetrics(str(tmp_path / "metrics.json"))

        for index in range(MAX_USAGES + 5):
            metrics.record("loki_tail_logs", f"reason {index}")

        stats = metrics.load()["tools"]["loki_tail_logs"]
        assert stats["count"] == MAX_USAGES + 5
        assert len(stats["usages"]) == MAX_USAGES
        assert stats["usages"][0]["reasoning"] == f"reason {MAX_USAGES + 4}"

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text("{not json")
        metrics = UsageMetrics(str(path))

        assert metrics.load() == {"tools": {}}
        metrics.record("loki_show_metrics", "check")
        assert metrics.load()["tools"]["loki_show_metrics"]["count"] == 1

    def test_unwritable_path_never_raises(self, tmp_path):
        metrics = UsageMetrics(os.path.join(str(tmp_path), "missing-dir", "metrics.json"))

        metrics.record("loki_search_logs", "should not fail")

        assert metrics.load() == {"tools": {}}

    def test_partial_tool_entry_is_repaired(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text(json.dumps({"tools": {"x": {"count": 1}, "loki_search_logs": {"count": 4}}}))
        metrics = UsageMetrics(str(path))

        metrics.record("loki_search_logs", "why")
        metrics.record("x", None)

        tools = metrics.load()["tools"]
        assert tools["loki_search_logs"]["count"] == 5
        assert tools["loki_search_logs"]["usages"][0]["reasoning"] == "why"
        assert tools["x"]["count"] == 2

    def test_malformed_tool_entries_are_replaced(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text(json.dumps({"tools": {
            "a": "not a dict",
            "b": {"count": "three", "lastUsed": 7, "usages": {"oops": 1}},
            "c": {"count": 2, "usages": ["junk", {"timestamp": "t", "reasoning": "kept"}]},
        }}))
        metrics = UsageMetrics(str(path))

        tools = metrics.load()["tools"]

        assert tools["a"] == {"count": 0, "lastUsed": "", "usages": []}
        assert tools["b"] == {"count": 0, "lastUsed": "", "usages": []}
        assert tools["c"]["usages"] == [{"timestamp": "t", "reasoning": "kept"}]
        metrics.record("a", "still works")
        assert metrics.load()["tools"]["a"]["count"] == 1
