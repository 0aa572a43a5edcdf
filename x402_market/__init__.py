"""x402 Tool Market - pay-per-call tool gateway and payer orchestrator."""

from .catalog import ToolCatalog, ToolDescriptor, default_catalog, parse_price, render_price
from .config import ClientConfig, GatewayConfig
from .context import GatewayContext
from .errors import (
    ConfigurationError,
    DiscoveryUnavailableError,
    MarketError,
    PaymentRefusedError,
    SettlementError,
    SignerNotInitializedError,
)
from .gate import (
    PAYMENT_HEADER,
    AcceptAnyProof,
    Admit,
    Challenge,
    PaymentChallenge,
    PaymentGate,
    ProofVerifier,
    RejectAllProofs,
    ReplayGuard,
)
from .market_client import DiscoveredTool, InvocationResponse, MarketClient
from .metrics import MarketMetricName, MetricsEmitter, get_metrics_emitter, init_metrics
from .orchestrator import (
    FailureReason,
    OrchestrationSession,
    ProgressEvent,
    SessionState,
    ToolCallPolicy,
    ToolOrchestrator,
)
from .payer import ChannelSettlement, OnChainTransfer, Payer, PaymentProof
from .reasoning import BedrockReasoningEngine, EngineReply, ReasoningEngine, ToolCall

__all__ = [
    # Catalog
    "ToolCatalog",
    "ToolDescriptor",
    "default_catalog",
    "parse_price",
    "render_price",
    # Configuration
    "ClientConfig",
    "GatewayConfig",
    # Errors
    "MarketError",
    "ConfigurationError",
    "DiscoveryUnavailableError",
    "PaymentRefusedError",
    "SettlementError",
    "SignerNotInitializedError",
    # Payment gate (server side)
    "PAYMENT_HEADER",
    "PaymentChallenge",
    "PaymentGate",
    "ProofVerifier",
    "AcceptAnyProof",
    "RejectAllProofs",
    "ReplayGuard",
    "Admit",
    "Challenge",
    # Payer side
    "GatewayContext",
    "MarketClient",
    "DiscoveredTool",
    "InvocationResponse",
    "Payer",
    "PaymentProof",
    "ChannelSettlement",
    "OnChainTransfer",
    "ReasoningEngine",
    "BedrockReasoningEngine",
    "EngineReply",
    "ToolCall",
    "ToolOrchestrator",
    "OrchestrationSession",
    "SessionState",
    "FailureReason",
    "ToolCallPolicy",
    "ProgressEvent",
    # Metrics
    "get_metrics_emitter",
    "init_metrics",
    "MetricsEmitter",
    "MarketMetricName",
]
