"""
HTTP client for the x402 tool market.

The client:
1. Discovers the tool catalog from GET /tools
2. Invokes tools with POST /tools/{tool_id}, optionally with a payment proof
3. Parses 402 answers into PaymentChallenge objects

Usage:
    from x402_market.market_client import MarketClient

    client = MarketClient("http://localhost:3000")
    tools = await client.list_tools()

    response = await client.invoke("get_weather1", {"location": "London, UK"})
    if response.payment_required:
        proof = await payer.pay(response.challenge)
        response = await client.invoke("get_weather1", {...}, proof=proof.to_header())
"""

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx

from .catalog import parse_price, sanitize_parameters
from .errors import DiscoveryUnavailableError
from .gate import PAYMENT_HEADER, PaymentChallenge
from .metrics import get_metrics_emitter
from .tracing import get_tracer

logger = logging.getLogger(__name__)


@dataclass
class DiscoveredTool:
    """A tool as advertised by the marketplace."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def price(self) -> Optional[Decimal]:
        """Price parsed from the description, or None if it carries no price token."""
        return parse_price(self.description)

    def input_schema(self) -> dict[str, Any]:
        return sanitize_parameters(self.parameters)


@dataclass
class InvocationResponse:
    """Response from a tool invocation."""
    status_code: int
    data: Any = None
    content: Optional[bytes] = None
    mime_type: Optional[str] = None
    challenge: Optional[PaymentChallenge] = None
    error: Optional[str] = None

    @property
    def payment_required(self) -> bool:
        return self.status_code == 402

    @property
    def is_binary(self) -> bool:
        return self.content is not None

    @property
    def success(self) -> bool:
        if self.status_code != 200:
            return False
        if self.is_binary:
            return True
        if isinstance(self.data, dict):
            return bool(self.data.get("success", True))
        return True


class MarketClient:
    """
    Client for discovering and invoking marketplace tools.

    Attributes:
        base_url: Marketplace base URL
        timeout_seconds: Request timeout
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def list_tools(self) -> list[DiscoveredTool]:
        """
        Fetch the tool catalog.

        Raises:
            DiscoveryUnavailableError: If the catalog cannot be fetched or parsed.
        """
        tracer = get_tracer()
        metrics = get_metrics_emitter()

        with tracer.start_as_current_span("market.list_tools") as span:
            url = f"{self.base_url}/tools"
            span.set_attribute("market.discovery_url", url)
            start_time = time.time()

            try:
                async with self._client() as client:
                    response = await client.get(url, headers={"Accept": "application/json"})
                latency_ms = (time.time() - start_time) * 1000
                span.set_attribute("http.status_code", response.status_code)

                if response.status_code != 200:
                    raise DiscoveryUnavailableError(
                        f"Discovery failed with status {response.status_code}"
                    )

                payload = response.json()
                if not isinstance(payload, list):
                    raise DiscoveryUnavailableError("Discovery response is not a tool list")

                tools = [
                    DiscoveredTool(
                        name=item["name"],
                        description=item.get("description", ""),
                        parameters=item.get("parameters") or {},
                    )
                    for item in payload
                ]
            except (httpx.RequestError, ValueError, KeyError, TypeError, DiscoveryUnavailableError) as e:
                latency_ms = (time.time() - start_time) * 1000
                span.set_attribute("error.type", "discovery_failed")
                span.record_exception(e)
                metrics.record_discovery(success=False, latency_ms=latency_ms, error=str(e))
                if isinstance(e, DiscoveryUnavailableError):
                    raise
                raise DiscoveryUnavailableError(f"Discovery failed: {e}") from e

            span.set_attribute("market.tools_discovered", len(tools))
            metrics.record_discovery(success=True, latency_ms=latency_ms, tools_count=len(tools))
            logger.info("Discovered %d tools from %s", len(tools), self.base_url)
            return tools

    async def invoke(
        self,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None,
        proof: Optional[str] = None,
    ) -> InvocationResponse:
        """
        Invoke a tool.

        Args:
            tool_name: Name of the tool to invoke
            arguments: Tool arguments (JSON body)
            proof: Payment proof sent in the x-402-payment header

        Returns:
            InvocationResponse; transport failures are reported with status 0.
        """
        tracer = get_tracer()

        with tracer.start_as_current_span("market.invoke_tool") as span:
            span.set_attribute("market.tool_name", tool_name)
            span.set_attribute("market.has_payment", proof is not None)

            headers = {"Content-Type": "application/json"}
            if proof:
                headers[PAYMENT_HEADER] = proof

            try:
                async with self._client() as client:
                    response = await client.post(
                        f"{self.base_url}/tools/{tool_name}",
                        json=arguments or {},
                        headers=headers,
                    )
            except httpx.RequestError as e:
                span.set_attribute("error.type", "request_error")
                span.record_exception(e)
                logger.warning("Request to %s failed: %s", tool_name, e)
                return InvocationResponse(status_code=0, error=f"Request failed: {e}")

            span.set_attribute("http.status_code", response.status_code)
            content_type = response.headers.get("content-type", "")

            mime_type = content_type.split(";")[0].strip()
            if response.status_code == 200 and mime_type.startswith("text/"):
                return InvocationResponse(status_code=200, data=response.text, mime_type=mime_type)
            if response.status_code == 200 and mime_type != "application/json":
                return InvocationResponse(
                    status_code=200,
                    content=response.content,
                    mime_type=mime_type or "application/octet-stream",
                )

            try:
                data = response.json() if response.content else None
            except ValueError:
                data = response.text

            if response.status_code == 402:
                span.set_attribute("market.payment_required", True)
                body = data if isinstance(data, dict) else {}
                return InvocationResponse(
                    status_code=402,
                    data=data,
                    challenge=PaymentChallenge.from_dict(tool_name, body),
                    error=body.get("error", "Payment Required"),
                )

            error = None
            if response.status_code != 200:
                if isinstance(data, dict):
                    error = data.get("error") or data.get("result") or f"HTTP {response.status_code}"
                else:
                    error = str(data or f"HTTP {response.status_code}")
                if not isinstance(error, str):
                    error = json.dumps(error)
            return InvocationResponse(status_code=response.status_code, data=data, error=error)
