"""Tests for GatewayContext initialization."""

import asyncio
from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from x402_market.config import ClientConfig
from x402_market.context import GatewayContext, create_wallet_provider
from x402_market.errors import ConfigurationError

from tests.mocks import PAYER_ADDRESS, FakeWallet


class TestInitialize:

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, client_config):
        factory = MagicMock(return_value=FakeWallet())
        context = GatewayContext(client_config, wallet_factory=factory)

        results = await asyncio.gather(context.initialize(), context.initialize())
        assert results == [True, True]
        assert await context.initialize() is True

        factory.assert_called_once_with(client_config)
        assert context.initialized
        assert context.address == PAYER_ADDRESS

    @pytest.mark.asyncio
    async def test_no_wallet(self, client_config):
        context = GatewayContext(client_config, wallet_factory=lambda config: None)

        assert await context.initialize() is False
        assert context.initialized
        assert context.address is None
        assert context.payer is not None
        assert context.payer.wallet is None

    @pytest.mark.asyncio
    async def test_factory_error_is_configuration_error(self, client_config):
        def broken(config):
            raise ValueError("bad key")

        context = GatewayContext(client_config, wallet_factory=broken)
        with pytest.raises(ConfigurationError, match="bad key"):
            await context.initialize()
        assert not context.initialized

    @pytest.mark.asyncio
    async def test_channel_requires_url(self, context):
        await context.initialize()
        assert context.channel is None
        assert context.payer.channel is None

    @pytest.mark.asyncio
    async def test_channel_from_config(self, client_config, wallet):
        config = replace(client_config, channel_settlement_url="http://clearnode.test")
        context = GatewayContext(config, wallet_factory=lambda config: wallet)

        await context.initialize()

        assert context.channel is not None
        assert context.channel.base_url == "http://clearnode.test"
        assert context.channel.network_id == "yellow-testnet"
        assert context.payer.channel is context.channel
        assert context.payer.max_payment == config.max_payment_usdc


class TestBalance:

    @pytest.mark.asyncio
    async def test_balance_in_usdc(self, client_config):
        context = GatewayContext(client_config, wallet_factory=lambda config: FakeWallet(balance=2500000))
        await context.initialize()
        assert await context.balance() == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_no_balance_before_initialize(self, context):
        assert await context.balance() is None

    @pytest.mark.asyncio
    async def test_no_balance_without_wallet(self, client_config):
        context = GatewayContext(client_config, wallet_factory=lambda config: None)
        await context.initialize()
        assert await context.balance() is None

    @pytest.mark.asyncio
    async def test_unreadable_balance_is_none(self, client_config):
        context = GatewayContext(client_config, wallet_factory=lambda config: FakeWallet(balance=None))
        await context.initialize()
        assert await context.balance() is None


class TestCreateWalletProvider:

    def test_no_credentials(self):
        assert create_wallet_provider(ClientConfig()) is None

    def test_local_key(self):
        config = ClientConfig(evm_private_key="11" * 32, chain_id="11155111")
        with patch("coinbase_agentkit.EthAccountWalletProvider") as provider:
            create_wallet_provider(config)

        wallet_config = provider.call_args.args[0]
        assert wallet_config.chain_id == "11155111"
        assert wallet_config.account.address.startswith("0x")

    def test_cdp_credentials_take_precedence(self):
        config = ClientConfig(
            cdp_api_key_name="key-id",
            cdp_api_key_private_key="key-secret",
            cdp_wallet_secret="wallet-secret",
            evm_private_key="11" * 32,
        )
        with patch("coinbase_agentkit.CdpEvmWalletProvider") as provider:
            create_wallet_provider(config)

        wallet_config = provider.call_args.args[0]
        assert wallet_config.api_key_id == "key-id"
        assert wallet_config.network_id == "ethereum-sepolia"
