"""
Payment gate for priced tool invocations.

A request without a payment proof is answered with a 402 challenge that
describes what to pay (price, asset, payee, network). A request that carries
a proof is handed to a pluggable ``ProofVerifier``; only verified proofs are
admitted. Rejected or unverifiable proofs get the same challenge again.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from .catalog import ToolCatalog
from .config import GatewayConfig
from .metrics import get_metrics_emitter
from .tracing import add_payment_span_attributes, get_tracer

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "x-402-payment"


@dataclass(frozen=True)
class PaymentChallenge:
    """What a caller must pay before a tool is executed."""
    tool: str
    price: str
    currency: str
    network: str
    asset: str
    pay_to: str
    description: str

    def to_dict(self, error: str = "Payment Required") -> dict[str, Any]:
        """Convert to the 402 response body."""
        return {
            "error": error,
            "price": self.price,
            "currency": self.currency,
            "network": self.network,
            "asset": self.asset,
            "payTo": self.pay_to,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, tool: str, data: dict[str, Any]) -> "PaymentChallenge":
        """Parse a 402 response body."""
        return cls(
            tool=tool,
            price=str(data.get("price", "0")),
            currency=data.get("currency") or "USDC",
            network=data.get("network") or "",
            asset=data.get("asset") or "",
            pay_to=data.get("payTo") or "",
            description=data.get("description") or f"Payment for {tool}",
        )


@dataclass(frozen=True)
class Admit:
    """The request may be executed."""
    tool: str


@dataclass(frozen=True)
class Challenge:
    """The request must be paid (or paid again) before execution."""
    challenge: PaymentChallenge
    error: str = "Payment Required"


Decision = Union[Admit, Challenge]


class ProofVerifier(Protocol):
    """Checks a payment proof against the challenge it answers."""

    async def verify(self, proof: str, challenge: PaymentChallenge) -> bool:
        ...

    def release(self, proof: str) -> None:
        """Forget an admitted proof whose request never ran, so it can be presented again."""
        ...


class AcceptAnyProof:
    """Admits any non-empty proof without checking it."""

    async def verify(self, proof: str, challenge: PaymentChallenge) -> bool:
        return bool(proof)

    def release(self, proof: str) -> None:
        pass


class RejectAllProofs:
    """Refuses every proof. Used until a real verifier is plugged in."""

    async def verify(self, proof: str, challenge: PaymentChallenge) -> bool:
        return False

    def release(self, proof: str) -> None:
        pass


class ReplayGuard:
    """
    Wraps another verifier and rejects proofs that were already admitted.

    Remembers the most recent ``capacity`` admitted proofs in memory.
    """

    def __init__(self, inner: ProofVerifier, capacity: int = 10000):
        self.inner = inner
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    async def verify(self, proof: str, challenge: PaymentChallenge) -> bool:
        if proof in self._seen:
            logger.warning("Rejected replayed payment proof for %s", challenge.tool)
            return False
        if not await self.inner.verify(proof, challenge):
            return False
        self._seen[proof] = None
        if len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def release(self, proof: str) -> None:
        self._seen.pop(proof, None)
        self.inner.release(proof)


def create_verifier(config: GatewayConfig) -> ProofVerifier:
    """Build the verifier selected by PAYMENT_VERIFICATION / PAYMENT_REPLAY_GUARD."""
    verifier: ProofVerifier = AcceptAnyProof() if config.payment_verification == "accept" else RejectAllProofs()
    if config.payment_replay_guard:
        verifier = ReplayGuard(verifier)
    return verifier


class PaymentGate:
    """
    Decides whether a tool invocation may run.

    Attributes:
        catalog: Tool catalog used to price challenges
        config: Gateway configuration (payee, asset, network)
        verifier: Proof verifier consulted when a proof is presented
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        config: GatewayConfig,
        verifier: Optional[ProofVerifier] = None,
    ):
        self.catalog = catalog
        self.config = config
        self.verifier = verifier or create_verifier(config)

    def challenge_for(self, tool: str) -> PaymentChallenge:
        """
        Build the payment challenge for a tool.

        Raises:
            KeyError: If the tool is not in the catalog.
        """
        descriptor = self.catalog.get(tool)
        if descriptor is None:
            raise KeyError(tool)
        return PaymentChallenge(
            tool=tool,
            price=str(descriptor.price),
            currency=descriptor.currency,
            network=self.config.payment_network,
            asset=self.config.payment_asset,
            pay_to=self.config.evm_wallet_address,
            description=f"Payment for {tool}",
        )

    async def admit(self, tool: str, proof: Optional[str]) -> Decision:
        """
        Decide whether to execute a tool invocation.

        Args:
            tool: Tool name (must be in the catalog)
            proof: Payment proof header value, if any

        Returns:
            Admit, or Challenge with the reason the request was not admitted.
        """
        tracer = get_tracer()
        metrics = get_metrics_emitter()

        with tracer.start_as_current_span("payment.gate") as span:
            challenge = self.challenge_for(tool)
            add_payment_span_attributes(
                span,
                amount=challenge.price,
                currency=challenge.currency,
                network=challenge.network,
                recipient=challenge.pay_to,
                tool=tool,
            )
            span.set_attribute("payment.proof_presented", bool(proof))

            if not proof:
                span.set_attribute("payment.decision", "challenge")
                metrics.record_gate_decision(tool, admitted=False, proof_presented=False)
                return Challenge(challenge)

            try:
                valid = await asyncio.wait_for(
                    self.verifier.verify(proof, challenge),
                    timeout=self.config.payment_verify_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning("[Payment] Verification timed out for %s", tool)
                span.set_attribute("payment.decision", "verification_timeout")
                metrics.record_gate_decision(tool, admitted=False, proof_presented=True, reason="timeout")
                return Challenge(challenge, error="Payment verification timed out")

            if not valid:
                logger.info("[Payment] Rejected payment proof for %s", tool)
                span.set_attribute("payment.decision", "rejected")
                metrics.record_gate_decision(tool, admitted=False, proof_presented=True, reason="invalid_proof")
                return Challenge(challenge, error="Invalid payment proof")

            logger.info("[Payment] Received payment for %s: %s...", tool, proof[:50])
            span.set_attribute("payment.decision", "admit")
            metrics.record_gate_decision(tool, admitted=True, proof_presented=True)
            return Admit(tool)

    def release(self, tool: str, proof: Optional[str]) -> None:
        """
        Return an admitted proof whose request was turned away before the tool ran.

        Called for malformed bodies, invalid arguments and admission
        rejections, so a client retrying with the same paid proof is admitted.
        """
        if not proof:
            return
        logger.info("[Payment] Releasing unused payment proof for %s", tool)
        self.verifier.release(proof)
