"""
Name: Prometheus Metrics Tests

Responsibilities:
  - Endpoint labels collapse dynamic ids
  - Status codes are grouped by class
  - Recorded events show up in the exposition output
"""

import pytest

pytestmark = pytest.mark.unit


class TestLabels:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/admin/audit/logs/3f1c2a9e-1b2c-4d5e-8f90-0a1b2c3d4e5f", "/admin/audit/logs/{id}"),
            ("/admin/audit/entity/Event/ckv9x2p3q0000abcd1234efgh", "/admin/audit/entity/Event/{id}"),
            ("/members/42/roles", "/members/{id}/roles"),
            ("/auth/me", "/auth/me"),
        ],
    )
    def test_endpoint_label(self, path, expected):
        from eccb.crosscutting.metrics import _endpoint_label

        assert _endpoint_label(path) == expected

    @pytest.mark.parametrize(
        "code,expected", [(200, "2xx"), (307, "3xx"), (429, "4xx"), (503, "5xx"), (101, "other")]
    )
    def test_status_class(self, code, expected):
        from eccb.crosscutting.metrics import _status_class

        assert _status_class(code) == expected


class TestExposition:
    def test_recorded_events_are_exported(self):
        from eccb.crosscutting.metrics import (
            get_metrics_response,
            record_access_denied,
            record_rate_limit_decision,
        )

        record_access_denied("forbidden")
        record_rate_limit_decision("fail_open")

        body, content_type = get_metrics_response()
        text = body.decode()

        assert content_type.startswith("text/plain")
        assert 'eccb_access_denied_total{reason="forbidden"}' in text
        assert 'eccb_rate_limit_decisions_total{outcome="fail_open"}' in text
