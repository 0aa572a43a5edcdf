"""Exception types shared by the gateway and the payer side."""

from typing import Optional


class MarketError(Exception):
    """Base class for all marketplace errors."""


class ConfigurationError(MarketError):
    """Raised when required configuration is missing or invalid."""


class DiscoveryUnavailableError(MarketError):
    """Raised when the tool catalog cannot be fetched."""


class PaymentRefusedError(MarketError):
    """Raised when a payment challenge is refused before any transaction is sent."""


class SignerNotInitializedError(ConfigurationError):
    """Raised when a payment is requested but no signing wallet is configured."""

    def __init__(self, message: str = "Payment signer not initialized. Provide CDP credentials or EVM_PRIVATE_KEY."):
        super().__init__(message)


class SettlementError(MarketError):
    """
    Raised when every settlement path failed.

    Attributes:
        primary_error: Why the channel settlement failed (None if it was not attempted)
        fallback_error: Why the on-chain transfer failed
    """

    def __init__(
        self,
        message: str,
        primary_error: Optional[BaseException] = None,
        fallback_error: Optional[BaseException] = None,
    ):
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(message)
