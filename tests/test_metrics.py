"""Tests for the CloudWatch EMF metrics module."""

import json

import pytest

from x402_market.metrics import (
    MarketMetricName,
    MetricDimensions,
    MetricsEmitter,
    MetricUnit,
    get_metrics_emitter,
    init_metrics,
)


class TestMetricDimensions:

    def test_default_dimensions(self):
        result = MetricDimensions().to_dict()
        assert list(result) == ["Environment"]

    def test_none_dimensions_excluded(self):
        result = MetricDimensions(environment="test", tool_name="get_weather1").to_dict()
        assert result == {"Environment": "test", "ToolName": "get_weather1"}


class TestMetricsEmitter:
    """Tests for MetricsEmitter."""

    def test_emit_multiple_writes_emf(self, capsys):
        emitter = MetricsEmitter(service_name="test-service")

        emitter.emit_multiple(
            {
                MarketMetricName.GATE_DECISION_COUNT: (1, MetricUnit.COUNT),
                MarketMetricName.TOOL_EXECUTION_LATENCY: (12.5, MetricUnit.MILLISECONDS),
            }
        )

        output = json.loads(capsys.readouterr().out.strip())
        directive = output["_aws"]["CloudWatchMetrics"][0]
        assert directive["Namespace"] == "X402ToolMarket"
        assert {"Name": "ToolExecutionLatency", "Unit": "Milliseconds"} in directive["Metrics"]
        assert output["GateDecisionCount"] == 1
        assert output["service"] == "test-service"

    def test_disabled_emitter_is_silent(self, capsys):
        emitter = MetricsEmitter(enabled=False)
        log = emitter.record_gate_decision("get_weather1", admitted=True, proof_presented=True)

        assert capsys.readouterr().out == ""
        assert log["GateAdmit"] == 1

    def test_gate_challenge_with_rejected_proof(self):
        log = MetricsEmitter(enabled=False).record_gate_decision(
            "get_weather1", admitted=False, proof_presented=True, reason="invalid_proof"
        )

        assert log["GateChallenge"] == 1
        assert log["GateProofRejected"] == 1
        assert log["ToolName"] == "get_weather1"
        assert log["reason"] == "invalid_proof"

    def test_challenge_without_proof(self):
        log = MetricsEmitter(enabled=False).record_gate_decision(
            "get_weather1", admitted=False, proof_presented=False
        )
        assert "GateProofRejected" not in log

    def test_tool_execution_failure(self):
        log = MetricsEmitter(enabled=False).record_tool_execution(
            "adzuna_search_jobs", success=False, latency_ms=50.0, failure="timeout"
        )

        assert log["ToolExecutionFailure"] == 1
        assert log["ErrorType"] == "timeout"

    def test_settlement_success(self):
        log = MetricsEmitter(enabled=False).record_settlement(
            success=True, latency_ms=900.0, network="yellow-testnet", amount="0.04"
        )

        assert log["SettlementSuccess"] == 1
        assert log["SettlementAmountUSDC"] == 0.04
        assert log["Network"] == "yellow-testnet"

    def test_settlement_failure_truncates_error_dimension(self):
        error = "insufficient funds " * 10
        log = MetricsEmitter(enabled=False).record_settlement(success=False, latency_ms=1.0, error=error)

        assert log["SettlementFailure"] == 1
        assert log["ErrorType"] == error[:50]
        assert log["error"] == error

    def test_session(self):
        log = MetricsEmitter(enabled=False).record_session(
            success=False, cost=0.04, tool_name="get_weather1", failure="tool_error"
        )

        assert log["SessionFailure"] == 1
        assert log["SessionCostUSDC"] == 0.04

    def test_discovery(self):
        log = MetricsEmitter(enabled=False).record_discovery(success=True, latency_ms=3.0, tools_count=10)
        assert log["ToolsDiscovered"] == 10


class TestGlobalEmitter:

    def test_init_metrics_replaces_global(self):
        emitter = init_metrics(service_name="custom", enabled=False)
        assert get_metrics_emitter() is emitter
        assert emitter.service_name == "custom"

    @pytest.mark.parametrize("value,enabled", [("false", False), ("true", True)])
    def test_env_switch(self, monkeypatch, value, enabled):
        import x402_market.metrics as metrics_module

        monkeypatch.setenv("METRICS_ENABLED", value)
        monkeypatch.setattr(metrics_module, "_metrics_emitter", None)

        assert get_metrics_emitter().enabled is enabled
