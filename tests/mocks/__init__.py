"""
Test mocks for the x402 tool market test suite.

Available Mocks:
- FakeWallet: In-memory EVM wallet provider (allowances, transfers, signing)
- FakeEngine: Scripted reasoning engine

Usage:
    from tests.mocks import FakeWallet, FakeEngine

    wallet = FakeWallet()
    engine = FakeEngine.calling(("get_weather1", {"location": "London, UK"}))
"""

from .engine_mock import FakeEngine
from .wallet_mock import (
    APPROVE_SELECTOR,
    PAYEE_ADDRESS,
    PAYER_ADDRESS,
    TRANSFER_SELECTOR,
    FakeWallet,
    decode_erc20_call,
)

__all__ = [
    "FakeEngine",
    "FakeWallet",
    "APPROVE_SELECTOR",
    "TRANSFER_SELECTOR",
    "PAYEE_ADDRESS",
    "PAYER_ADDRESS",
    "decode_erc20_call",
]
