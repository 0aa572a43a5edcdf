"""
Pytest configuration and fixtures for the x402 tool market tests.

The gateway fixtures build a real FastAPI app with an httpx MockTransport
standing in for the upstream APIs, so tests exercise the full 402 handshake
without network access. The payer fixtures use the in-memory FakeWallet.

Usage:
    def test_something(client):
        response = client.post("/tools/get_weather1", json={"location": "London, UK"})
        assert response.status_code == 402

    @pytest.mark.asyncio
    async def test_market(market_client):
        tools = await market_client.list_tools()
"""

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from x402_market.config import SEPOLIA_USDC_ADDRESS, ClientConfig, GatewayConfig
from x402_market.context import GatewayContext
from x402_market.gate import AcceptAnyProof, PaymentChallenge
from x402_market.market_client import MarketClient
from x402_market.metrics import init_metrics
from x402_market.server import create_app
from x402_market.tools import build_executors

from tests.mocks import PAYEE_ADDRESS, PAYER_ADDRESS, FakeWallet


# ============================================================================
# Global state
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_metrics():
    """Keep EMF output out of test logs; metric tests build their own emitters."""
    init_metrics(service_name="x402-tool-market-test", enabled=False)
    yield


# ============================================================================
# Gateway Fixtures
# ============================================================================

def upstream_handler(request: httpx.Request) -> httpx.Response:
    """Default upstream: Adzuna answers with a small result set, Groq with WAV bytes."""
    if request.url.path.endswith("/audio/speech"):
        return httpx.Response(200, content=b"RIFF....WAVEfmt ", headers={"content-type": "audio/wav"})
    return httpx.Response(200, json={"count": 1, "results": [{"title": "Python Developer"}]})


@pytest.fixture
def upstream_transport() -> httpx.AsyncBaseTransport:
    """Transport used by executors for upstream calls. Override per test."""
    return httpx.MockTransport(upstream_handler)


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Gateway configuration with payments enabled and any proof accepted."""
    return GatewayConfig(
        adzuna_app_id="test-app-id",
        adzuna_app_key="test-app-key",
        evm_wallet_address=PAYEE_ADDRESS,
        payment_verification="accept",
        groq_api_key="test-groq-key",
        upstream_timeout_seconds=0.2,
    )


@pytest.fixture
def app(gateway_config: GatewayConfig, upstream_transport: httpx.AsyncBaseTransport):
    return create_app(
        gateway_config,
        executors=build_executors(gateway_config, transport=upstream_transport),
        verifier=AcceptAnyProof(),
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ============================================================================
# Payer Fixtures
# ============================================================================

@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        marketplace_url="http://market.test",
        evm_private_key="0x" + "11" * 32,
        max_payment_usdc=Decimal("0.10"),
    )


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet(address=PAYER_ADDRESS)


@pytest.fixture
def context(client_config: ClientConfig, wallet: FakeWallet) -> GatewayContext:
    return GatewayContext(client_config, wallet_factory=lambda config: wallet)


@pytest.fixture
def market_client(app) -> MarketClient:
    """Marketplace client wired straight into the gateway app."""
    return MarketClient("http://market.test", transport=httpx.ASGITransport(app=app))


@pytest.fixture
def weather_challenge() -> PaymentChallenge:
    return PaymentChallenge(
        tool="get_weather1",
        price="0.04",
        currency="USDC",
        network="sepolia",
        asset=SEPOLIA_USDC_ADDRESS,
        pay_to=PAYEE_ADDRESS,
        description="Payment for get_weather1",
    )
