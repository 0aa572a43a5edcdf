"""Tests for the gateway and payer configuration."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest

from x402_market.config import DEFAULT_CORS_ORIGINS, SEPOLIA_USDC_ADDRESS, ClientConfig, GatewayConfig
from x402_market.errors import ConfigurationError


class TestGatewayConfig:
    """Tests for GatewayConfig."""

    def test_default_values(self):
        config = GatewayConfig()

        assert config.port == 3000
        assert config.payment_network == "sepolia"
        assert config.payment_asset == SEPOLIA_USDC_ADDRESS
        assert config.payment_verification == "reject"
        assert config.cors_origins == DEFAULT_CORS_ORIGINS
        assert not config.payments_enabled

    def test_from_env_with_custom_values(self):
        env_vars = {
            "PORT": "8080",
            "ADZUNA_APP_ID": "app-id",
            "ADZUNA_APP_KEY": "app-key",
            "EVM_WALLET_ADDRESS": "0xabc",
            "PAYMENT_VERIFICATION": "ACCEPT",
            "PAYMENT_REPLAY_GUARD": "true",
            "UPSTREAM_TIMEOUT": "2.5",
            "MAX_CONCURRENT_PER_TOOL": "2",
            "CORS_ORIGINS": "https://a.example, https://b.example",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = GatewayConfig.from_env()

        assert config.port == 8080
        assert config.adzuna_app_id == "app-id"
        assert config.payments_enabled
        assert config.payment_verification == "accept"
        assert config.payment_replay_guard is True
        assert config.upstream_timeout_seconds == 2.5
        assert config.max_concurrent_per_tool == 2
        assert config.cors_origins == ["https://a.example", "https://b.example"]

    def test_validate_requires_adzuna(self):
        with pytest.raises(ConfigurationError, match="ADZUNA"):
            GatewayConfig().validate()

    def test_validate_rejects_unknown_verification(self):
        config = GatewayConfig(adzuna_app_id="id", adzuna_app_key="key", payment_verification="maybe")
        with pytest.raises(ConfigurationError, match="PAYMENT_VERIFICATION"):
            config.validate()

    def test_validate_warnings(self):
        config = GatewayConfig(adzuna_app_id="id", adzuna_app_key="key")
        warnings = config.validate()

        assert any("EVM_WALLET_ADDRESS" in w for w in warnings)
        assert any("GROQ_API_KEY" in w for w in warnings)

    def test_accept_mode_warns(self):
        config = GatewayConfig(
            adzuna_app_id="id",
            adzuna_app_key="key",
            evm_wallet_address="0xabc",
            groq_api_key="groq",
            payment_verification="accept",
        )
        assert config.validate() == ["PAYMENT_VERIFICATION=accept - payment proofs are not verified"]


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_default_values(self):
        config = ClientConfig()

        assert config.marketplace_url == "http://localhost:3000"
        assert config.network_id == "ethereum-sepolia"
        assert config.channel_network_id == "yellow-testnet"
        assert config.max_payment_usdc == Decimal("0.10")
        assert config.usdc_address == SEPOLIA_USDC_ADDRESS
        assert config.lenient_pricing is True
        assert config.tool_call_policy == "first_only"
        assert not config.has_cdp_credentials

    def test_from_env_with_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ClientConfig.from_env()

        assert config.marketplace_url == "http://localhost:3000"
        assert config.model_id == ClientConfig.model_id
        assert config.channel_settlement_url == ""

    def test_from_env_with_custom_values(self):
        env_vars = {
            "MARKETPLACE_URL": "https://market.example",
            "BEDROCK_MODEL_ID": "anthropic.claude-3-haiku",
            "CDP_API_KEY_ID": "key-id",
            "CDP_API_KEY_SECRET": "key-secret",
            "CDP_WALLET_SECRET": "wallet-secret",
            "CHANNEL_SETTLEMENT_URL": "https://clearnode.example",
            "MAX_PAYMENT_USDC": "0.5",
            "LENIENT_PRICING": "false",
            "TOOL_CALL_POLICY": "REJECT",
            "USDC_ADDRESS": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = ClientConfig.from_env()

        assert config.marketplace_url == "https://market.example"
        assert config.model_id == "anthropic.claude-3-haiku"
        assert config.has_cdp_credentials
        assert config.channel_settlement_url == "https://clearnode.example"
        assert config.max_payment_usdc == Decimal("0.5")
        assert config.lenient_pricing is False
        assert config.tool_call_policy == "reject"
        assert config.usdc_address == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

    def test_invalid_spending_cap(self):
        with patch.dict(os.environ, {"MAX_PAYMENT_USDC": "lots"}, clear=True):
            with pytest.raises(ConfigurationError, match="MAX_PAYMENT_USDC"):
                ClientConfig.from_env()
