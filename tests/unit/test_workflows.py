"""Unit tests for the guided workflow prompts."""

import pytest

from loki_mcp.workflows import PROMPTS, get_prompt_messages, render_prompt


class TestWorkflowPrompts:
    """Test prompt rendering."""

    def test_known_prompts(self):
        assert set(PROMPTS) == {"debug-error", "trace-request", "health-check"}

    def test_debug_error_with_service(self):
        text = render_prompt("debug-error", {"error_text": "Connection refused", "service": "payments"})

        assert text.startswith('Debug this error in the "payments" service: "Connection refused"')
        assert '- search_term: "Connection refused"' in text
        assert '- labels: {"app": "payments"} or {"k8s_container_name": "payments"}' in text
        assert '- time_window: "1h"' in text
        assert "`loki_get_context`" in text
        assert "$" not in text

    def test_debug_error_all_services(self):
        text = render_prompt("debug-error", {"error_text": "OOMKilled", "time_window": "6h"})

        assert text.startswith('Debug this error across all services: "OOMKilled"')
        assert "- No labels needed (searches all services)" in text
        assert '- time_window: "6h"' in text

    def test_trace_request(self):
        text = render_prompt("trace-request", {"trace_id": "abc-123"})

        assert text.startswith("Trace this request across all services: abc-123")
        assert '- trace_id: "abc-123"' in text
        assert "`loki_scan_correlations`" in text

    def test_health_check_without_service_lists_services(self):
        text = render_prompt("health-check")

        assert text.startswith("Run a production health check across all services.")
        assert "1. **List available services** by reading the `loki://services` resource" in text
        assert "2. **Count errors** using `loki_search_logs` with count: true:" in text
        assert "3. **If errors found, analyze patterns**" in text
        assert "4. **Summarize health status**" in text

    def test_health_check_for_service(self):
        text = render_prompt("health-check", {"service": "checkout", "time_window": "24h"})

        assert text.startswith('Run a production health check for "checkout".')
        assert "loki://services" not in text
        assert "1. **Count errors**" in text
        assert "2. **If errors found, analyze patterns**" in text
        assert "3. **Summarize health status**" in text
        assert '- time_window: "24h"' in text

    def test_user_text_with_dollar_signs_kept(self):
        text = render_prompt("debug-error", {"error_text": "cost $5 exceeded ${limit}"})
        assert "cost $5 exceeded ${limit}" in text

    def test_missing_required_argument(self):
        with pytest.raises(ValueError):
            render_prompt("trace-request", {})

    def test_unknown_prompt(self):
        with pytest.raises(ValueError):
            render_prompt("explain-everything")

    def test_messages(self):
        messages = get_prompt_messages("trace-request", {"trace_id": "t"})
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
