"""
Process-wide payer state.

``GatewayContext`` owns everything the orchestrator shares across queries:
the configuration, the signing wallet, the channel settlement and the payer.
It is created once at startup and passed to each ``ToolOrchestrator``.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Optional

from .config import ClientConfig
from .errors import ConfigurationError
from .payer import ChannelSettlement, Payer

logger = logging.getLogger(__name__)


def create_wallet_provider(config: ClientConfig) -> Any:
    """
    Create the EVM wallet provider selected by the configuration.

    CDP credentials take precedence over a local EVM_PRIVATE_KEY.

    Returns:
        A coinbase_agentkit EvmWalletProvider, or None when no signer is configured.
    """
    if config.has_cdp_credentials:
        from coinbase_agentkit import CdpEvmWalletProvider, CdpEvmWalletProviderConfig

        wallet_config = CdpEvmWalletProviderConfig(
            api_key_id=config.cdp_api_key_name,
            api_key_secret=config.cdp_api_key_private_key,
            wallet_secret=config.cdp_wallet_secret,
            address=config.cdp_wallet_address if config.cdp_wallet_address else None,
            network_id=config.network_id,
        )
        return CdpEvmWalletProvider(wallet_config)

    if config.evm_private_key:
        from coinbase_agentkit import EthAccountWalletProvider, EthAccountWalletProviderConfig
        from eth_account import Account

        private_key = config.evm_private_key
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"

        wallet_config = EthAccountWalletProviderConfig(
            account=Account.from_key(private_key),
            chain_id=config.chain_id,
            rpc_url=config.rpc_url or None,
        )
        return EthAccountWalletProvider(wallet_config)

    return None


class GatewayContext:
    """
    Shared payer state for orchestration sessions.

    Attributes:
        config: Client configuration
        wallet: Signing wallet provider (None until initialized, or when unconfigured)
        channel: Primary channel settlement (None when CHANNEL_SETTLEMENT_URL is unset)
        payer: Payer built from the wallet and channel
    """

    def __init__(
        self,
        config: ClientConfig,
        wallet_factory: Callable[[ClientConfig], Any] = create_wallet_provider,
    ):
        self.config = config
        self.wallet: Any = None
        self.channel: Optional[ChannelSettlement] = None
        self.payer: Optional[Payer] = None
        self._wallet_factory = wallet_factory
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def address(self) -> Optional[str]:
        return self.wallet.get_address() if self.wallet else None

    async def initialize(self) -> bool:
        """
        Create the wallet, channel settlement and payer.

        Calling it again after a successful initialization returns immediately.

        Returns:
            True if a signer is available.

        Raises:
            ConfigurationError: If the wallet provider cannot be created.
        """
        async with self._lock:
            if self._initialized:
                return self.wallet is not None

            try:
                wallet = await asyncio.to_thread(self._wallet_factory, self.config)
            except Exception as e:
                logger.error("Wallet initialization failed: %s", e)
                raise ConfigurationError(f"Wallet initialization failed: {e}") from e

            if wallet is None:
                logger.warning("No CDP credentials or EVM_PRIVATE_KEY set; payments are disabled")
            else:
                logger.info("Wallet ready: %s on %s", wallet.get_address(), self.config.network_id)

            channel = None
            if wallet is not None and self.config.channel_settlement_url:
                channel = ChannelSettlement(
                    wallet,
                    self.config.channel_settlement_url,
                    network_id=self.config.channel_network_id,
                    timeout_seconds=self.config.request_timeout_seconds,
                )
                logger.info("Channel settlement enabled: %s", self.config.channel_settlement_url)

            self.wallet = wallet
            self.channel = channel
            self.payer = Payer(
                wallet,
                channel=channel,
                network_id=self.config.network_id,
                settlement_timeout_seconds=self.config.settlement_timeout_seconds,
                max_payment=self.config.max_payment_usdc,
            )
            self._initialized = True
            return wallet is not None

    async def balance(self) -> Optional[Decimal]:
        """
        USDC balance of the wallet, for display.

        Returns:
            The balance, or None when there is no signer or the read failed.
        """
        if self.payer is None or self.wallet is None:
            return None
        try:
            return await self.payer.balance(self.config.usdc_address)
        except Exception as e:
            logger.warning("Could not read USDC balance: %s", e)
            return None
