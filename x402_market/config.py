"""Configuration for the x402 tool market gateway and payer agent."""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

# USDC on Ethereum Sepolia
SEPOLIA_USDC_ADDRESS = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5173",
    "https://agent-x402.vercel.app",
]


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ConfigurationError(f"{name} must be a decimal number, got {value!r}") from e


@dataclass
class GatewayConfig:
    """Configuration for the tool market gateway (seller side)."""

    port: int = 3000

    # Adzuna job search credentials (required)
    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    adzuna_base_url: str = "https://api.adzuna.com/v1/api"

    # Payment receiving configuration
    evm_wallet_address: str = ""
    payment_network: str = "sepolia"
    payment_asset: str = SEPOLIA_USDC_ADDRESS

    # "accept" admits any non-empty proof, "reject" refuses every proof
    payment_verification: str = "reject"
    payment_replay_guard: bool = False
    payment_verify_timeout_seconds: float = 5.0

    # Speech synthesis (OpenAI-compatible Groq endpoint)
    groq_api_key: str = ""
    groq_base_url: str = "https://api.groq.com/openai/v1"
    speech_model: str = "canopylabs/orpheus-v1-english"
    speech_voice: str = "autumn"

    upstream_timeout_seconds: float = 10.0

    # Admission control
    max_concurrent_per_tool: int = 8
    max_concurrent_total: int = 32

    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    # OpenTelemetry configuration
    otel_endpoint: str = ""
    otel_console_export: bool = False

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Load configuration from environment variables."""
        origins = os.getenv("CORS_ORIGINS", "")
        return cls(
            port=int(os.getenv("PORT", str(cls.port))),
            adzuna_app_id=os.getenv("ADZUNA_APP_ID", ""),
            adzuna_app_key=os.getenv("ADZUNA_APP_KEY", ""),
            adzuna_base_url=os.getenv("ADZUNA_BASE_URL", cls.adzuna_base_url),
            evm_wallet_address=os.getenv("EVM_WALLET_ADDRESS", ""),
            payment_network=os.getenv("PAYMENT_NETWORK", cls.payment_network),
            payment_asset=os.getenv("PAYMENT_ASSET", cls.payment_asset),
            payment_verification=os.getenv("PAYMENT_VERIFICATION", cls.payment_verification).lower(),
            payment_replay_guard=_env_bool("PAYMENT_REPLAY_GUARD"),
            payment_verify_timeout_seconds=float(
                os.getenv("PAYMENT_VERIFY_TIMEOUT", str(cls.payment_verify_timeout_seconds))
            ),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),
            groq_base_url=os.getenv("GROQ_BASE_URL", cls.groq_base_url),
            upstream_timeout_seconds=float(
                os.getenv("UPSTREAM_TIMEOUT", str(cls.upstream_timeout_seconds))
            ),
            max_concurrent_per_tool=int(
                os.getenv("MAX_CONCURRENT_PER_TOOL", str(cls.max_concurrent_per_tool))
            ),
            max_concurrent_total=int(
                os.getenv("MAX_CONCURRENT_TOTAL", str(cls.max_concurrent_total))
            ),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or list(DEFAULT_CORS_ORIGINS),
            otel_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
            otel_console_export=_env_bool("OTEL_CONSOLE_EXPORT"),
        )

    @property
    def payments_enabled(self) -> bool:
        return bool(self.evm_wallet_address)

    def validate(self) -> list[str]:
        """
        Check the configuration before the gateway starts.

        Returns:
            Warnings for optional settings that are missing.

        Raises:
            ConfigurationError: If a required credential is missing.
        """
        if not self.adzuna_app_id or not self.adzuna_app_key:
            raise ConfigurationError("Missing ADZUNA_APP_ID or ADZUNA_APP_KEY")
        if self.payment_verification not in ("accept", "reject"):
            raise ConfigurationError(
                f"PAYMENT_VERIFICATION must be 'accept' or 'reject', got {self.payment_verification!r}"
            )

        warnings = []
        if not self.evm_wallet_address:
            warnings.append("EVM_WALLET_ADDRESS not set - payments will not work")
        if not self.groq_api_key:
            warnings.append("GROQ_API_KEY not set - get_audio will fail")
        if self.payment_verification == "accept":
            warnings.append("PAYMENT_VERIFICATION=accept - payment proofs are not verified")
        return warnings


@dataclass
class ClientConfig:
    """Configuration for the payer agent (buyer side)."""

    marketplace_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 30.0

    # Bedrock model configuration
    aws_region: str = "us-west-2"
    model_id: str = "us.anthropic.claude-3-5-haiku-20241022-v1:0"
    temperature: float = 0.5
    max_tokens: int = 4096

    # CDP (Coinbase Developer Platform) configuration
    cdp_api_key_name: str = ""
    cdp_api_key_private_key: str = ""
    cdp_wallet_secret: str = ""
    cdp_wallet_address: str = ""

    # Local key alternative to CDP
    evm_private_key: str = ""
    rpc_url: str = ""

    # Network configuration
    network_id: str = "ethereum-sepolia"
    chain_id: str = "11155111"
    usdc_address: str = SEPOLIA_USDC_ADDRESS

    # Off-chain channel settlement (primary payment path)
    channel_settlement_url: str = ""
    channel_network_id: str = "yellow-testnet"

    settlement_timeout_seconds: float = 120.0
    max_payment_usdc: Decimal = Decimal("0.10")

    # Orchestration policies
    lenient_pricing: bool = True
    tool_call_policy: str = "first_only"

    # OpenTelemetry configuration
    otel_endpoint: str = ""
    otel_console_export: bool = False

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables."""
        return cls(
            marketplace_url=os.getenv("MARKETPLACE_URL", cls.marketplace_url),
            request_timeout_seconds=float(
                os.getenv("MARKETPLACE_TIMEOUT", str(cls.request_timeout_seconds))
            ),
            aws_region=os.getenv("AWS_REGION", cls.aws_region),
            model_id=os.getenv("BEDROCK_MODEL_ID", cls.model_id),
            cdp_api_key_name=os.getenv("CDP_API_KEY_ID", ""),
            cdp_api_key_private_key=os.getenv("CDP_API_KEY_SECRET", ""),
            cdp_wallet_secret=os.getenv("CDP_WALLET_SECRET", ""),
            cdp_wallet_address=os.getenv("CDP_WALLET_ADDRESS", ""),
            evm_private_key=os.getenv("EVM_PRIVATE_KEY", ""),
            rpc_url=os.getenv("RPC_URL", ""),
            network_id=os.getenv("NETWORK_ID", cls.network_id),
            chain_id=os.getenv("CHAIN_ID", cls.chain_id),
            usdc_address=os.getenv("USDC_ADDRESS", cls.usdc_address),
            channel_settlement_url=os.getenv("CHANNEL_SETTLEMENT_URL", ""),
            channel_network_id=os.getenv("CHANNEL_NETWORK_ID", cls.channel_network_id),
            settlement_timeout_seconds=float(
                os.getenv("SETTLEMENT_TIMEOUT", str(cls.settlement_timeout_seconds))
            ),
            max_payment_usdc=_env_decimal("MAX_PAYMENT_USDC", cls.max_payment_usdc),
            lenient_pricing=_env_bool("LENIENT_PRICING", cls.lenient_pricing),
            tool_call_policy=os.getenv("TOOL_CALL_POLICY", cls.tool_call_policy).lower(),
            otel_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
            otel_console_export=_env_bool("OTEL_CONSOLE_EXPORT"),
        )

    @property
    def has_cdp_credentials(self) -> bool:
        return bool(self.cdp_api_key_name and self.cdp_api_key_private_key and self.cdp_wallet_secret)
