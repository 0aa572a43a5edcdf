"""
Custom CloudWatch metrics for the x402 tool market.

This module provides CloudWatch metrics emission using the Embedded Metric Format (EMF)
for efficient metric publishing without requiring explicit PutMetricData API calls.

Metrics are organized into the following categories:
- Payment Gate: 402 challenges, admissions and rejected proofs
- Tool Execution: Executor outcomes and latency
- Settlement: Channel and on-chain payments made by the payer
- Sessions: Orchestration outcomes and cost
- Discovery: Catalog fetches by the payer
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class MetricUnit(str, Enum):
    """CloudWatch metric units."""
    COUNT = "Count"
    MILLISECONDS = "Milliseconds"
    NONE = "None"


class MarketMetricName(str, Enum):
    """Metric names for the tool market."""
    # Payment Gate Metrics
    GATE_DECISION_COUNT = "GateDecisionCount"
    GATE_CHALLENGE = "GateChallenge"
    GATE_ADMIT = "GateAdmit"
    GATE_PROOF_REJECTED = "GateProofRejected"

    # Tool Execution Metrics
    TOOL_EXECUTION_COUNT = "ToolExecutionCount"
    TOOL_EXECUTION_SUCCESS = "ToolExecutionSuccess"
    TOOL_EXECUTION_FAILURE = "ToolExecutionFailure"
    TOOL_EXECUTION_LATENCY = "ToolExecutionLatency"
    ADMISSION_REJECTED = "AdmissionRejected"

    # Settlement Metrics
    SETTLEMENT_COUNT = "SettlementCount"
    SETTLEMENT_SUCCESS = "SettlementSuccess"
    SETTLEMENT_FAILURE = "SettlementFailure"
    SETTLEMENT_LATENCY = "SettlementLatency"
    SETTLEMENT_AMOUNT_USDC = "SettlementAmountUSDC"
    ALLOWANCE_APPROVAL = "AllowanceApproval"

    # Session Metrics
    SESSION_COUNT = "SessionCount"
    SESSION_SUCCESS = "SessionSuccess"
    SESSION_FAILURE = "SessionFailure"
    SESSION_COST_USDC = "SessionCostUSDC"

    # Discovery Metrics
    DISCOVERY_COUNT = "DiscoveryCount"
    DISCOVERY_FAILURE = "DiscoveryFailure"
    DISCOVERY_LATENCY = "DiscoveryLatency"
    TOOLS_DISCOVERED = "ToolsDiscovered"


@dataclass
class MetricDimensions:
    """Dimensions for CloudWatch metrics."""
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    tool_name: Optional[str] = None
    network: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary, excluding None values."""
        result = {"Environment": self.environment}
        if self.tool_name:
            result["ToolName"] = self.tool_name
        if self.network:
            result["Network"] = self.network
        if self.error_type:
            result["ErrorType"] = self.error_type
        return result


class MetricsEmitter:
    """
    CloudWatch metrics emitter using Embedded Metric Format (EMF).

    EMF allows publishing metrics by simply logging JSON in a specific format.
    CloudWatch automatically extracts metrics from these logs.
    """

    NAMESPACE = "X402ToolMarket"

    def __init__(self, service_name: str = "x402-tool-market", enabled: bool = True):
        """
        Initialize the metrics emitter.

        Args:
            service_name: Service name for metric attribution
            enabled: When False, metrics are built but not written
        """
        self.service_name = service_name
        self.enabled = enabled
        self._dimensions = MetricDimensions()

    def _create_emf_log(
        self,
        metrics: dict[str, tuple[float, MetricUnit]],
        dimensions: Optional[MetricDimensions] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Create an EMF-formatted log entry.

        Args:
            metrics: Dictionary of metric name to (value, unit) tuples
            dimensions: Optional custom dimensions
            properties: Additional properties to include in the log

        Returns:
            EMF-formatted dictionary
        """
        dims = dimensions or self._dimensions
        dim_dict = dims.to_dict()

        metrics_array = [
            {"Name": name, "Unit": unit.value}
            for name, (_, unit) in metrics.items()
        ]

        emf_log: dict[str, Any] = {
            "_aws": {
                "Timestamp": int(time.time() * 1000),
                "CloudWatchMetrics": [
                    {
                        "Namespace": self.NAMESPACE,
                        "Dimensions": [list(dim_dict.keys())],
                        "Metrics": metrics_array,
                    }
                ],
            },
            "service": self.service_name,
            **dim_dict,
        }

        for name, (value, _) in metrics.items():
            emf_log[name] = value

        if properties:
            emf_log.update(properties)

        return emf_log

    def emit_multiple(
        self,
        metrics: dict[MarketMetricName, tuple[float, MetricUnit]],
        dimensions: Optional[MetricDimensions] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Emit multiple metrics in a single log entry.

        Args:
            metrics: Dictionary of metric name to (value, unit) tuples
            dimensions: Optional custom dimensions
            properties: Additional properties to log

        Returns:
            The EMF log entry that was emitted
        """
        metrics_dict = {name.value: value_unit for name, value_unit in metrics.items()}
        emf_log = self._create_emf_log(metrics_dict, dimensions, properties)
        if self.enabled:
            # Print to stdout for CloudWatch to pick up
            print(json.dumps(emf_log, default=str))
        return emf_log

    # Convenience methods for common metrics

    def record_gate_decision(
        self,
        tool_name: str,
        admitted: bool,
        proof_presented: bool,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Record a payment gate decision.

        Args:
            tool_name: Tool the decision was made for
            admitted: Whether the request was admitted
            proof_presented: Whether a proof header was present
            reason: Why a challenge was issued
        """
        metrics: dict[MarketMetricName, tuple[float, MetricUnit]] = {
            MarketMetricName.GATE_DECISION_COUNT: (1, MetricUnit.COUNT),
        }
        if admitted:
            metrics[MarketMetricName.GATE_ADMIT] = (1, MetricUnit.COUNT)
        else:
            metrics[MarketMetricName.GATE_CHALLENGE] = (1, MetricUnit.COUNT)
            if proof_presented:
                metrics[MarketMetricName.GATE_PROOF_REJECTED] = (1, MetricUnit.COUNT)

        properties: dict[str, Any] = {"toolName": tool_name}
        if reason:
            properties["reason"] = reason
        return self.emit_multiple(metrics, MetricDimensions(tool_name=tool_name), properties)

    def record_tool_execution(
        self,
        tool_name: str,
        success: bool,
        latency_ms: float,
        failure: Optional[str] = None,
    ) -> dict[str, Any]:
        """Record the outcome of a tool execution."""
        metrics: dict[MarketMetricName, tuple[float, MetricUnit]] = {
            MarketMetricName.TOOL_EXECUTION_COUNT: (1, MetricUnit.COUNT),
            MarketMetricName.TOOL_EXECUTION_LATENCY: (latency_ms, MetricUnit.MILLISECONDS),
        }
        if success:
            metrics[MarketMetricName.TOOL_EXECUTION_SUCCESS] = (1, MetricUnit.COUNT)
        else:
            metrics[MarketMetricName.TOOL_EXECUTION_FAILURE] = (1, MetricUnit.COUNT)

        dims = MetricDimensions(tool_name=tool_name, error_type=failure)
        return self.emit_multiple(metrics, dims, {"toolName": tool_name})

    def record_admission_rejected(self, tool_name: str, scope: str) -> dict[str, Any]:
        """Record a request turned away by admission control."""
        return self.emit_multiple(
            {MarketMetricName.ADMISSION_REJECTED: (1, MetricUnit.COUNT)},
            MetricDimensions(tool_name=tool_name),
            {"toolName": tool_name, "scope": scope},
        )

    def record_settlement(
        self,
        success: bool,
        latency_ms: float,
        network: Optional[str] = None,
        amount: Optional[str] = None,
        error: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Record a settlement attempt by the payer.

        Args:
            success: Whether a proof was obtained
            latency_ms: Time taken to settle in milliseconds
            network: Network the payment settled on
            amount: Amount paid in USDC
            error: Error message if failed
        """
        dims = MetricDimensions(
            network=network,
            error_type=error[:50] if error else None,
        )

        metrics: dict[MarketMetricName, tuple[float, MetricUnit]] = {
            MarketMetricName.SETTLEMENT_COUNT: (1, MetricUnit.COUNT),
            MarketMetricName.SETTLEMENT_LATENCY: (latency_ms, MetricUnit.MILLISECONDS),
        }

        if success:
            metrics[MarketMetricName.SETTLEMENT_SUCCESS] = (1, MetricUnit.COUNT)
            if amount:
                try:
                    metrics[MarketMetricName.SETTLEMENT_AMOUNT_USDC] = (float(amount), MetricUnit.NONE)
                except ValueError:
                    logger.debug("Non-numeric settlement amount %r", amount)
        else:
            metrics[MarketMetricName.SETTLEMENT_FAILURE] = (1, MetricUnit.COUNT)

        properties: dict[str, Any] = {"network": network} if network else {}
        if error:
            properties["error"] = error
        return self.emit_multiple(metrics, dims, properties)

    def record_allowance_approval(self, spender: str, amount: str) -> dict[str, Any]:
        """Record an allowance approval transaction."""
        return self.emit_multiple(
            {MarketMetricName.ALLOWANCE_APPROVAL: (1, MetricUnit.COUNT)},
            properties={"spender": spender, "amount": amount},
        )

    def record_session(
        self,
        success: bool,
        cost: float,
        tool_name: Optional[str] = None,
        failure: Optional[str] = None,
    ) -> dict[str, Any]:
        """Record a finished orchestration session."""
        metrics: dict[MarketMetricName, tuple[float, MetricUnit]] = {
            MarketMetricName.SESSION_COUNT: (1, MetricUnit.COUNT),
            MarketMetricName.SESSION_COST_USDC: (cost, MetricUnit.NONE),
        }
        if success:
            metrics[MarketMetricName.SESSION_SUCCESS] = (1, MetricUnit.COUNT)
        else:
            metrics[MarketMetricName.SESSION_FAILURE] = (1, MetricUnit.COUNT)

        dims = MetricDimensions(tool_name=tool_name, error_type=failure)
        return self.emit_multiple(metrics, dims)

    def record_discovery(
        self,
        success: bool,
        latency_ms: float,
        tools_count: int = 0,
        error: Optional[str] = None,
    ) -> dict[str, Any]:
        """Record a catalog discovery by the payer."""
        metrics: dict[MarketMetricName, tuple[float, MetricUnit]] = {
            MarketMetricName.DISCOVERY_COUNT: (1, MetricUnit.COUNT),
            MarketMetricName.DISCOVERY_LATENCY: (latency_ms, MetricUnit.MILLISECONDS),
        }
        if success:
            metrics[MarketMetricName.TOOLS_DISCOVERED] = (tools_count, MetricUnit.COUNT)
        else:
            metrics[MarketMetricName.DISCOVERY_FAILURE] = (1, MetricUnit.COUNT)

        properties = {"error": error} if error else None
        return self.emit_multiple(metrics, MetricDimensions(error_type=error[:50] if error else None), properties)


# Global metrics emitter instance
_metrics_emitter: Optional[MetricsEmitter] = None


def get_metrics_emitter() -> MetricsEmitter:
    """Get the global metrics emitter instance."""
    global _metrics_emitter
    if _metrics_emitter is None:
        _metrics_emitter = MetricsEmitter(enabled=os.getenv("METRICS_ENABLED", "true").lower() != "false")
    return _metrics_emitter


def init_metrics(service_name: str = "x402-tool-market", enabled: bool = True) -> MetricsEmitter:
    """
    Initialize the global metrics emitter.

    Args:
        service_name: Service name for metric attribution
        enabled: Whether metrics are written to stdout

    Returns:
        Configured MetricsEmitter instance
    """
    global _metrics_emitter
    _metrics_emitter = MetricsEmitter(service_name, enabled)
    return _metrics_emitter
