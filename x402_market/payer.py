"""
Payer: turns a 402 payment challenge into a payment proof.

Two settlement paths are tried in order:

1. Channel settlement (primary, optional): raises the ERC-20 allowance for
   the payee only when it is insufficient, then submits a signed transfer
   intent to a state-channel clearnode.
2. On-chain transfer (fallback): an ERC-20 ``transfer`` to the payee,
   waiting for the transaction receipt before returning.

Both paths sign through an EVM wallet provider from coinbase_agentkit
(``CdpEvmWalletProvider`` or ``EthAccountWalletProvider``).
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx
from web3 import Web3

from .errors import PaymentRefusedError, SettlementError, SignerNotInitializedError
from .gate import PaymentChallenge
from .metrics import get_metrics_emitter
from .tracing import add_payment_span_attributes, get_tracer

logger = logging.getLogger(__name__)

# USDC has 6 decimals
USDC_DECIMALS = 6

ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
]

_erc20 = Web3().eth.contract(abi=ERC20_ABI)


def to_atomic_units(amount: Any, decimals: int = USDC_DECIMALS) -> int:
    """Convert a decimal token amount ("0.05") to integer base units (50000)."""
    value = Decimal(str(amount))
    if value < 0:
        raise ValueError(f"Negative amount: {amount}")
    return int((value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_atomic_units(value: int, decimals: int = USDC_DECIMALS) -> Decimal:
    return Decimal(value).scaleb(-decimals)


def encode_erc20_call(function_name: str, address: str, value: int) -> str:
    """ABI-encode transfer(to, value) or approve(spender, value)."""
    return _erc20.encode_abi(function_name, args=[Web3.to_checksum_address(address), value])


@dataclass
class PaymentProof:
    """
    Evidence that a challenge was paid.

    The gateway treats the serialised proof as opaque; the fields bind it to
    the payment that was made.
    """
    transaction_id: str
    network: str
    payer: str
    timestamp: int
    amount: str = ""
    asset: str = ""
    pay_to: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_header(self) -> str:
        """Serialise for the x-402-payment header."""
        return json.dumps(
            {
                "txHash": self.transaction_id,
                "network": self.network,
                "from": self.payer,
                "timestamp": self.timestamp,
                "amount": self.amount,
                "asset": self.asset,
                "payTo": self.pay_to,
            },
            separators=(",", ":"),
        )


class OnChainTransfer:
    """
    Direct ERC-20 transfer through the wallet provider.

    Attributes:
        wallet: EVM wallet provider used to sign and send
        network_id: Network name recorded on proofs
        timeout_seconds: Bound on the wait for the transaction receipt
    """

    def __init__(self, wallet: Any, network_id: str, timeout_seconds: float = 120.0):
        self.wallet = wallet
        self.network_id = network_id
        self.timeout_seconds = timeout_seconds

    async def transfer(self, asset: str, pay_to: str, amount: int) -> str:
        """
        Send ``amount`` base units of ``asset`` to ``pay_to`` and wait for the receipt.

        Returns:
            The transaction hash.

        Raises:
            SettlementError: If the transaction reverted.
            asyncio.TimeoutError: If no receipt arrived in time.
        """
        tx_hash = await asyncio.to_thread(
            self.wallet.send_transaction,
            {"to": Web3.to_checksum_address(asset), "data": encode_erc20_call("transfer", pay_to, amount)},
        )
        logger.info("Transfer submitted: %s", tx_hash)

        receipt = await asyncio.wait_for(
            asyncio.to_thread(
                self.wallet.wait_for_transaction_receipt, tx_hash, timeout=self.timeout_seconds
            ),
            timeout=self.timeout_seconds,
        )
        if receipt is not None and receipt.get("status") == 0:
            raise SettlementError(f"Transfer {tx_hash} reverted")

        logger.info("Transfer confirmed: %s", tx_hash)
        return str(tx_hash)


class ChannelSettlement:
    """
    Off-chain settlement through a state-channel clearnode.

    Attributes:
        wallet: EVM wallet provider (allowance reads, approvals, intent signing)
        base_url: Clearnode base URL
        network_id: Network name recorded on proofs
        timeout_seconds: Bound on the clearnode request and approval receipts
    """

    def __init__(
        self,
        wallet: Any,
        base_url: str,
        network_id: str = "yellow-testnet",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.wallet = wallet
        self.base_url = base_url.rstrip("/")
        self.network_id = network_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def allowance(self, asset: str, spender: str) -> int:
        result = await asyncio.to_thread(
            self.wallet.read_contract,
            contract_address=Web3.to_checksum_address(asset),
            abi=ERC20_ABI,
            function_name="allowance",
            args=[Web3.to_checksum_address(self.wallet.get_address()), Web3.to_checksum_address(spender)],
        )
        return int(result)

    async def ensure_allowance(self, asset: str, spender: str, amount: int) -> bool:
        """
        Approve ``spender`` for ``amount`` unless the current allowance covers it.

        Returns:
            True if an approval transaction was sent.
        """
        current = await self.allowance(asset, spender)
        if current >= amount:
            logger.debug("Allowance %d for %s already covers %d", current, spender, amount)
            return False

        logger.info("Approving %d units of %s for %s", amount, asset, spender)
        tx_hash = await asyncio.to_thread(
            self.wallet.send_transaction,
            {"to": Web3.to_checksum_address(asset), "data": encode_erc20_call("approve", spender, amount)},
        )
        await asyncio.wait_for(
            asyncio.to_thread(
                self.wallet.wait_for_transaction_receipt, tx_hash, timeout=self.timeout_seconds
            ),
            timeout=self.timeout_seconds,
        )
        get_metrics_emitter().record_allowance_approval(spender, str(amount))
        return True

    async def transfer(self, asset: str, pay_to: str, amount: int) -> str:
        """
        Settle through the clearnode.

        Returns:
            The clearnode transfer id.
        """
        await self.ensure_allowance(asset, pay_to, amount)

        intent = {
            "from": self.wallet.get_address(),
            "to": pay_to,
            "asset": asset,
            "amount": str(amount),
            "timestamp": int(time.time() * 1000),
        }
        message = json.dumps(intent, separators=(",", ":"), sort_keys=True)
        signature = await asyncio.to_thread(self.wallet.sign_message, message)

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/transfers",
                json={"intent": intent, "signature": signature},
            )
            response.raise_for_status()
            body = response.json()

        transfer_id = body.get("id") if isinstance(body, dict) else None
        if not transfer_id:
            raise SettlementError("Clearnode response did not include a transfer id")
        return str(transfer_id)


class Payer:
    """
    Pays challenges with the primary channel, falling back to on-chain transfer.

    Attributes:
        wallet: Wallet provider, or None when no signer is configured
        channel: Primary channel settlement (optional)
        chain: Fallback on-chain transfer
        max_payment: Largest single payment this payer will make
    """

    def __init__(
        self,
        wallet: Any,
        channel: Optional[ChannelSettlement] = None,
        network_id: str = "ethereum-sepolia",
        settlement_timeout_seconds: float = 120.0,
        max_payment: Optional[Decimal] = None,
    ):
        self.wallet = wallet
        self.channel = channel
        self.chain = OnChainTransfer(wallet, network_id, settlement_timeout_seconds) if wallet else None
        self.max_payment = max_payment

    @property
    def address(self) -> Optional[str]:
        return self.wallet.get_address() if self.wallet else None

    async def balance_units(self, asset: str) -> int:
        """ERC-20 ``balanceOf`` for the payer's address, in base units."""
        if self.wallet is None:
            raise SignerNotInitializedError()
        result = await asyncio.to_thread(
            self.wallet.read_contract,
            contract_address=Web3.to_checksum_address(asset),
            abi=ERC20_ABI,
            function_name="balanceOf",
            args=[Web3.to_checksum_address(self.wallet.get_address())],
        )
        return int(result)

    async def balance(self, asset: str) -> Decimal:
        """Token balance of the payer, e.g. Decimal("1.25") USDC."""
        return from_atomic_units(await self.balance_units(asset))

    async def pay(self, challenge: PaymentChallenge) -> PaymentProof:
        """
        Pay a challenge.

        Raises:
            SignerNotInitializedError: No wallet is configured.
            PaymentRefusedError: The price is invalid, above the spending cap,
                or above the wallet balance.
            SettlementError: Both settlement paths failed.
        """
        if self.wallet is None or self.chain is None:
            raise SignerNotInitializedError()

        try:
            price = Decimal(challenge.price)
        except ArithmeticError as e:
            raise PaymentRefusedError(f"Unparsable price {challenge.price!r} for {challenge.tool}") from e
        if not price.is_finite() or price < 0:
            raise PaymentRefusedError(f"Invalid price {challenge.price!r} for {challenge.tool}")
        if self.max_payment is not None and price > self.max_payment:
            raise PaymentRefusedError(
                f"Price {price} {challenge.currency} for {challenge.tool} exceeds the "
                f"{self.max_payment} {challenge.currency} spending cap"
            )
        amount = to_atomic_units(price)

        try:
            available = await self.balance_units(challenge.asset)
        except Exception as e:
            # Settlement reports the real failure if funds are short
            logger.warning("Could not read balance of %s, paying anyway: %s", challenge.asset, e)
        else:
            if available < amount:
                raise PaymentRefusedError(
                    f"Balance {from_atomic_units(available)} {challenge.currency} is below the "
                    f"{price} {challenge.currency} price of {challenge.tool}"
                )

        tracer = get_tracer()
        metrics = get_metrics_emitter()
        start_time = time.time()

        with tracer.start_as_current_span("payment.settle") as span:
            add_payment_span_attributes(
                span,
                amount=challenge.price,
                currency=challenge.currency,
                network=challenge.network,
                recipient=challenge.pay_to,
                asset=challenge.asset,
                tool=challenge.tool,
            )

            primary_error: Optional[Exception] = None
            if self.channel is not None:
                try:
                    tx_id = await self.channel.transfer(challenge.asset, challenge.pay_to, amount)
                    return self._settled(span, challenge, tx_id, self.channel.network_id, start_time)
                except Exception as e:
                    primary_error = e
                    span.add_event("channel_settlement_failed", {"error": str(e)})
                    logger.warning("Channel settlement failed, falling back to on-chain transfer: %s", e)

            try:
                tx_id = await self.chain.transfer(challenge.asset, challenge.pay_to, amount)
            except Exception as e:
                latency_ms = (time.time() - start_time) * 1000
                span.set_attribute("payment.settled", False)
                span.record_exception(e)
                metrics.record_settlement(
                    success=False,
                    latency_ms=latency_ms,
                    network=self.chain.network_id,
                    error=str(e) or type(e).__name__,
                )
                raise SettlementError(
                    f"Payment for {challenge.tool} failed: {e or type(e).__name__}",
                    primary_error=primary_error,
                    fallback_error=e,
                ) from e

            return self._settled(span, challenge, tx_id, self.chain.network_id, start_time)

    def _settled(
        self,
        span: Any,
        challenge: PaymentChallenge,
        tx_id: str,
        network: str,
        start_time: float,
    ) -> PaymentProof:
        latency_ms = (time.time() - start_time) * 1000
        span.set_attribute("payment.settled", True)
        span.set_attribute("payment.transaction_id", tx_id)
        span.set_attribute("payment.settlement_network", network)
        get_metrics_emitter().record_settlement(
            success=True,
            latency_ms=latency_ms,
            network=network,
            amount=challenge.price,
        )
        logger.info("Paid %s %s for %s on %s: %s", challenge.price, challenge.currency, challenge.tool, network, tx_id)
        return PaymentProof(
            transaction_id=tx_id,
            network=network,
            payer=self.address or "",
            timestamp=int(time.time() * 1000),
            amount=challenge.price,
            asset=challenge.asset,
            pay_to=challenge.pay_to,
        )
