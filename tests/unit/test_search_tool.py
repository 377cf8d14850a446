"""Unit tests for the search, count and tail tools."""

import pytest
from unittest.mock import AsyncMock, Mock

from loki_mcp.loki.client import Direction, LogEntry, LokiQueryError, MetricPoint, MetricSeries
from loki_mcp.loki.utils import InvalidDurationError, parse_line
from loki_mcp.tools.search_logs import (
    NO_LOGS_MESSAGE,
    LokiSearchLogsTool,
    LokiTailLogsTool,
    get_search_logs_tool,
    get_tail_logs_tool,
    render_count_chart,
)

BASE_TS = 1700000000000000000  # 2023-11-14T22:13:20Z


def entry(offset_ms, line, labels=None):
    return LogEntry(timestamp=str(BASE_TS + offset_ms * 10**6), line=parse_line(line),
                    labels=labels or {"app": "checkout"})


class TestLokiSearchLogsTool:
    """Test cases for LokiSearchLogsTool."""

    def setup_method(self):
        self.client = Mock()
        self.client.search_logs = AsyncMock(return_value=[])
        self.client.build_query = AsyncMock()
        self.client.query_metric = AsyncMock()
        self.metrics = Mock()
        self.tool = LokiSearchLogsTool(client=self.client, metrics=self.metrics)

    def test_get_tool_definition(self):
        tool_def = self.tool.get_tool_definition()

        assert tool_def.name == "loki_search_logs"
        properties = tool_def.inputSchema["properties"]
        for name in ["labels", "search_term", "time_window", "limit", "start", "end",
                     "direction", "include_infrastructure", "count", "step"]:
            assert name in properties
        assert tool_def.inputSchema["required"] == []

    @pytest.mark.asyncio
    async def test_execute_formats_entries(self):
        self.client.search_logs.return_value = [
            entry(1, "timeout calling payments"),
            entry(0, '{"msg": "timeout"}', {"app": "checkout", "pod": "p1"}),
        ]

        result = await self.tool.execute({
            "reasoning": "find timeouts",
            "labels": {"app": "checkout"},
            "search_term": "timeout",
            "limit": 5,
        })

        assert len(result) == 1
        assert result[0].text == (
            '[2023-11-14T22:13:20.001Z] ts=1700000000001000000 {"app":"checkout"}: timeout calling payments\n'
            '[2023-11-14T22:13:20.000Z] ts=1700000000000000000 {"app":"checkout","pod":"p1"}: {"msg":"timeout"}'
        )
        self.client.search_logs.assert_awaited_once_with(
            labels={"app": "checkout"},
            search_term="timeout",
            limit=5,
            start_ago="1h",
            start=None,
            end=None,
            direction=Direction.BACKWARD,
            include_infrastructure=False,
        )
        self.metrics.record.assert_called_once_with("loki_search_logs", "find timeouts")

    @pytest.mark.asyncio
    async def test_execute_no_results(self):
        result = await self.tool.execute({})
        assert result[0].text == NO_LOGS_MESSAGE

    @pytest.mark.asyncio
    async def test_forward_direction(self):
        await self.tool.execute({"direction": "forward", "time_window": "30m"})

        kwargs = self.client.search_logs.call_args.kwargs
        assert kwargs["direction"] == Direction.FORWARD
        assert kwargs["start_ago"] == "30m"

    @pytest.mark.asyncio
    async def test_invalid_duration(self):
        self.client.search_logs.side_effect = InvalidDurationError("Invalid duration format: 'soon'. Use 1s, 5m, 1h, 24h, 7d, etc.")

        result = await self.tool.execute({"time_window": "soon"})

        assert "❌ **Invalid Parameters**" in result[0].text
        assert "1s, 5m, 1h, 24h, 7d" in result[0].text

    @pytest.mark.asyncio
    async def test_backend_error(self):
        self.client.search_logs.side_effect = LokiQueryError(400, "parse error")

        result = await self.tool.execute({"labels": {"app": "checkout"}})

        assert "❌ **Loki Search Error**" in result[0].text
        assert "Loki API Error: 400 - parse error" in result[0].text

    @pytest.mark.asyncio
    async def test_invalid_labels(self):
        result = await self.tool.execute({"labels": "app=checkout"})
        assert "❌" in result[0].text
        self.client.search_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_mode(self):
        self.client.build_query.return_value = '{app="checkout"} |~ "(?i)error"'
        self.client.query_metric.return_value = [MetricSeries(labels={}, values=[
            MetricPoint(timestamp=1700000000.0, value=2.0),
            MetricPoint(timestamp=1700000060.0, value=4.0),
            MetricPoint(timestamp=1700000120.0, value=0.0),
        ])]

        result = await self.tool.execute({"reasoning": "error rate", "labels": {"app": "checkout"}, "count": True})

        self.client.build_query.assert_awaited_once_with({"app": "checkout"}, "error", False, case_insensitive=True)
        self.client.query_metric.assert_awaited_once_with(
            'sum(count_over_time({app="checkout"} |~ "(?i)error" [1m]))', start_ago="1h", step="1m"
        )
        assert result[0].text == (
            "Found 6 occurrences of 'error' in the last 1h.\n\n"
            "Peak rate: 4 per 1m.\n\n"
            "Time Series:\n"
            "22:13:20 | 2    █████\n"
            "22:14:20 | 4    ██████████\n"
            "22:15:20 | 0    \n"
        )
        self.client.search_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_mode_non_matrix(self):
        self.client.build_query.return_value = '{app="checkout"} |~ "(?i)error"'
        self.client.query_metric.return_value = [{"metric": {}, "value": [1, "2"]}]

        result = await self.tool.execute({"labels": {"app": "checkout"}, "count": True})

        assert result[0].text == "No data found."


class TestRenderCountChart:
    """Test the ASCII chart rendering."""

    def test_no_series(self):
        assert render_count_chart([], "error", "1h", "1m") == "No data found."

    def test_empty_series(self):
        assert render_count_chart([MetricSeries(labels={})], "error", "1h", "1m") == \
            "No errors found in this time range."

    def test_downsampled_to_twenty_points(self):
        points = [MetricPoint(timestamp=1700000000.0 + i * 60, value=float(i + 1)) for i in range(45)]

        chart = render_count_chart([MetricSeries(labels={}, values=points)], "error", "1h", "1m")

        rows = chart.split("Time Series:\n")[1].strip().split("\n")
        assert len(rows) == 15
        assert chart.startswith("Found 1035 occurrences")


class TestLokiTailLogsTool:
    """Test cases for LokiTailLogsTool."""

    def setup_method(self):
        self.client = Mock()
        self.client.search_logs = AsyncMock(return_value=[])
        self.metrics = Mock()
        self.tool = LokiTailLogsTool(client=self.client, metrics=self.metrics)

    def test_get_tool_definition(self):
        tool_def = self.tool.get_tool_definition()
        assert tool_def.name == "loki_tail_logs"
        assert tool_def.inputSchema["required"] == ["reasoning"]

    @pytest.mark.asyncio
    async def test_last_five_minutes(self):
        await self.tool.execute({"reasoning": "deploy check", "labels": {"app": "checkout"}})

        kwargs = self.client.search_logs.call_args.kwargs
        assert kwargs["start_ago"] == "5m"
        assert kwargs["limit"] == 50
        self.metrics.record.assert_called_once_with("loki_tail_logs", "deploy check")


def test_global_instances():
    assert isinstance(get_search_logs_tool(), LokiSearchLogsTool)
    assert isinstance(get_tail_logs_tool(), LokiTailLogsTool)
