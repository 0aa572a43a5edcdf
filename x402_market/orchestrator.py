"""
Tool orchestrator: drives one user query through the 402 handshake.

States:
    idle -> discovering -> awaiting_selection -> (no_tool_needed | selected)
    -> awaiting_payment -> paying -> invoking -> composing -> done

Any state after discovering can end in ``failed`` with a FailureReason.
Nothing after a failure runs: a failed payment never reaches the tool, a
failed tool never reaches composition.

Usage:
    context = GatewayContext(ClientConfig.from_env())
    orchestrator = ToolOrchestrator(
        context,
        MarketClient(context.config.marketplace_url),
        BedrockReasoningEngine.from_config(context.config),
        sink=print,
    )
    session = await orchestrator.run("What's the weather in London?")
    print(session.render())
"""

import asyncio
import inspect
import logging
import tempfile
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from .context import GatewayContext
from .errors import DiscoveryUnavailableError, MarketError
from .gate import PaymentChallenge
from .market_client import DiscoveredTool, InvocationResponse, MarketClient
from .metrics import get_metrics_emitter
from .payer import PaymentProof
from .reasoning import SYSTEM_PROMPT, Conversation, ReasoningEngine
from .tracing import get_tracer

logger = logging.getLogger(__name__)

# Upstream statuses that mean the tool could not be reached at all
NETWORK_STATUSES = {0, 502, 503, 504}

_EXTENSIONS = {"audio/wav": ".wav", "audio/x-wav": ".wav", "audio/mpeg": ".mp3"}


class SessionState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    AWAITING_SELECTION = "awaiting_selection"
    NO_TOOL_NEEDED = "no_tool_needed"
    SELECTED = "selected"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYING = "paying"
    INVOKING = "invoking"
    COMPOSING = "composing"
    DONE = "done"
    FAILED = "failed"


class FailureReason(str, Enum):
    DISCOVERY_UNAVAILABLE = "discovery_unavailable"
    SELECTION_ERROR = "selection_error"
    PRICING_ERROR = "pricing_error"
    PAYMENT_ERROR = "payment_error"
    TOOL_ERROR = "tool_error"
    COMPOSITION_ERROR = "composition_error"


class ToolCallPolicy(str, Enum):
    """What to do when the engine asks for more than one tool call."""
    FIRST_ONLY = "first_only"
    REJECT = "reject"


@dataclass
class ProgressEvent:
    step: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


ProgressSink = Callable[[ProgressEvent], Any]


@dataclass
class OrchestrationSession:
    """State of a single user query. Never reused."""
    query: str
    state: SessionState = SessionState.IDLE
    history: list[SessionState] = field(default_factory=list)
    tool_name: Optional[str] = None
    arguments: Optional[dict[str, Any]] = None
    amount: Decimal = Decimal("0")
    challenge: Optional[PaymentChallenge] = None
    proof: Optional[PaymentProof] = None
    tool_status: Optional[int] = None
    result: Any = None
    answer: Optional[str] = None
    cost: Decimal = Decimal("0")
    failure: Optional[FailureReason] = None
    error: Optional[str] = None

    def transition(self, state: SessionState) -> None:
        logger.debug("Session %s -> %s", self.state.value, state.value)
        self.history.append(self.state)
        self.state = state

    def fail(self, reason: FailureReason, error: str) -> "OrchestrationSession":
        logger.warning("Session failed (%s): %s", reason.value, error)
        self.failure = reason
        self.error = error
        self.transition(SessionState.FAILED)
        return self

    @property
    def succeeded(self) -> bool:
        return self.state == SessionState.DONE

    def render(self) -> str:
        """User-facing message; failures name their kind."""
        if self.succeeded:
            return self.answer or ""

        if self.failure == FailureReason.DISCOVERY_UNAVAILABLE:
            return f"Marketplace unavailable: {self.error}"
        if self.failure == FailureReason.SELECTION_ERROR:
            return f"Could not select a tool: {self.error}"
        if self.failure == FailureReason.PRICING_ERROR:
            return f"Pricing error for {self.tool_name}: {self.error}"
        if self.failure == FailureReason.PAYMENT_ERROR:
            return f"Payment failed for {self.tool_name}: {self.error}"
        if self.failure == FailureReason.TOOL_ERROR:
            if self.tool_status in NETWORK_STATUSES:
                return f"Network error calling {self.tool_name}: {self.error}"
            return f"Tool {self.tool_name} failed: {self.error}"
        if self.failure == FailureReason.COMPOSITION_ERROR:
            return f"Could not compose an answer: {self.error}"
        return f"Sorry, I encountered an error: {self.error}"


def _describe_failure(response: InvocationResponse) -> str:
    if response.error:
        return response.error
    data = response.data
    if isinstance(data, dict):
        return str(data.get("result") or data.get("error") or data)
    return str(data)


def save_binary_result(content: bytes, mime_type: str) -> dict[str, Any]:
    """Write a binary tool result to a temporary file and describe it for the engine."""
    suffix = _EXTENSIONS.get(mime_type, ".bin")
    with tempfile.NamedTemporaryFile(prefix="x402-", suffix=suffix, delete=False) as f:
        f.write(content)
        path = Path(f.name)
    return {
        "type": mime_type.split("/")[0],
        "url": path.as_uri(),
        "format": suffix.lstrip("."),
        "size": len(content),
    }


class ToolOrchestrator:
    """
    Runs user queries against the marketplace.

    Attributes:
        context: Shared payer state (wallet, payer)
        market: Marketplace client
        engine: Reasoning engine that selects tools and composes answers
        sink: Optional progress observer, plain or coroutine function
        policy: Multi-tool-call policy
        lenient_pricing: Treat an unparsable catalog price as zero
    """

    def __init__(
        self,
        context: GatewayContext,
        market: MarketClient,
        engine: ReasoningEngine,
        sink: Optional[ProgressSink] = None,
        policy: Optional[ToolCallPolicy] = None,
        lenient_pricing: Optional[bool] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.context = context
        self.market = market
        self.engine = engine
        self.sink = sink
        self.policy = policy or ToolCallPolicy(context.config.tool_call_policy)
        self.lenient_pricing = context.config.lenient_pricing if lenient_pricing is None else lenient_pricing
        self.system_prompt = system_prompt
        self._pending: set[asyncio.Future] = set()

    def _emit(self, step: str, message: str, **details: Any) -> None:
        if self.sink is None:
            return
        event = ProgressEvent(step, message, details)
        try:
            outcome = self.sink(event)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._pending.add(task)
                task.add_done_callback(self._sink_done)
        except Exception:
            logger.warning("Progress sink failed on %s", step, exc_info=True)

    def _sink_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Progress sink failed: %s", task.exception())

    async def run(self, query: str) -> OrchestrationSession:
        """Run one query to completion; failures are recorded on the session."""
        session = OrchestrationSession(query=query)
        tracer = get_tracer()

        with tracer.start_as_current_span("orchestrator.session") as span:
            await self._run(session)
            span.set_attribute("session.state", session.state.value)
            span.set_attribute("session.cost", float(session.cost))
            if session.tool_name:
                span.set_attribute("session.tool", session.tool_name)
            if session.failure:
                span.set_attribute("session.failure", session.failure.value)

        get_metrics_emitter().record_session(
            success=session.succeeded,
            cost=float(session.cost),
            tool_name=session.tool_name,
            failure=session.failure.value if session.failure else None,
        )
        return session

    async def _run(self, session: OrchestrationSession) -> None:
        session.transition(SessionState.DISCOVERING)
        self._emit("analyzing", "Analyzing your request...")
        try:
            tools = await self.market.list_tools()
        except DiscoveryUnavailableError as e:
            session.fail(FailureReason.DISCOVERY_UNAVAILABLE, str(e))
            return

        session.transition(SessionState.AWAITING_SELECTION)
        try:
            reply = await self.engine.select(self.system_prompt, session.query, tools)
        except Exception as e:
            logger.error("Tool selection failed: %s", e, exc_info=True)
            session.fail(FailureReason.SELECTION_ERROR, str(e))
            return

        if not reply.tool_calls:
            session.transition(SessionState.NO_TOOL_NEEDED)
            session.answer = reply.text
            session.transition(SessionState.DONE)
            return

        if len(reply.tool_calls) > 1:
            names = [c.name for c in reply.tool_calls]
            if self.policy == ToolCallPolicy.REJECT:
                session.fail(FailureReason.SELECTION_ERROR, f"Engine requested {len(names)} tool calls: {names}")
                return
            logger.warning("Engine requested %d tool calls, executing only %s", len(names), names[0])

        call = reply.tool_calls[0]
        tool = next((t for t in tools if t.name == call.name), None)
        session.tool_name = call.name
        session.arguments = call.arguments
        if tool is None:
            session.fail(FailureReason.SELECTION_ERROR, f"Engine selected unknown tool {call.name}")
            return

        session.transition(SessionState.SELECTED)
        self._emit("tool_selected", f"Selected tool: {call.name}", tool=call.name, arguments=call.arguments)

        response = await self._acquire(session, tool)
        if response is None:
            return

        session.tool_status = response.status_code
        if response.status_code != 200:
            session.fail(FailureReason.TOOL_ERROR, _describe_failure(response))
            return
        if not response.success:
            # A 200 miss ("no data for this location") is still an answer to compose
            logger.info("Tool %s found no data: %s", call.name, _describe_failure(response))

        if response.is_binary:
            session.result = save_binary_result(response.content, response.mime_type or "application/octet-stream")
        else:
            session.result = response.data

        session.transition(SessionState.COMPOSING)
        self._emit("generating_response", "Generating final response...")
        try:
            session.answer = await self.engine.compose(
                Conversation(
                    system=self.system_prompt,
                    query=session.query,
                    tools=tools,
                    reply=reply,
                    call=call,
                    result=session.result,
                )
            )
        except Exception as e:
            logger.error("Answer composition failed: %s", e, exc_info=True)
            session.fail(FailureReason.COMPOSITION_ERROR, str(e))
            return

        session.transition(SessionState.DONE)

    async def _acquire(self, session: OrchestrationSession, tool: DiscoveredTool) -> Optional[InvocationResponse]:
        """Pay for and invoke the selected tool. Returns None if the session failed."""
        price = tool.price
        priced = price is not None
        if price is None:
            if not self.lenient_pricing:
                session.fail(FailureReason.PRICING_ERROR, f"No price in description of {tool.name}")
                return None
            logger.warning("No price in description of %s; treating it as free", tool.name)
            price = Decimal("0")
        session.amount = price

        session.transition(SessionState.AWAITING_PAYMENT)
        self._emit("payment_required", f"Payment required: {price} USDC", tool=tool.name, amount=str(price))

        first = await self.market.invoke(tool.name, session.arguments)
        if not first.payment_required:
            logger.info("%s answered without a payment challenge", tool.name)
            session.transition(SessionState.INVOKING)
            return first

        challenge = first.challenge
        session.challenge = challenge
        try:
            asked = Decimal(challenge.price)
            if not asked.is_finite():
                raise InvalidOperation(challenge.price)
        except InvalidOperation:
            session.fail(FailureReason.PAYMENT_ERROR, f"Malformed challenge price {challenge.price!r}")
            return None
        if priced and asked > price:
            session.fail(
                FailureReason.PAYMENT_ERROR,
                f"Gateway asked {asked} {challenge.currency} but the catalog lists {price}",
            )
            return None

        session.transition(SessionState.PAYING)
        self._emit("processing_payment", "Processing payment...", amount=challenge.price, pay_to=challenge.pay_to)
        try:
            await self.context.initialize()
            proof = await self.context.payer.pay(challenge)
        except MarketError as e:
            session.fail(FailureReason.PAYMENT_ERROR, str(e))
            return None
        except Exception as e:
            logger.error("Unexpected payment failure: %s", e, exc_info=True)
            session.fail(FailureReason.PAYMENT_ERROR, str(e) or type(e).__name__)
            return None

        session.proof = proof
        session.cost = asked
        self._emit(
            "payment_confirmed",
            "Payment confirmed! Processing result...",
            tx_hash=proof.transaction_id,
            network=proof.network,
        )

        session.transition(SessionState.INVOKING)
        response = await self.market.invoke(tool.name, session.arguments, proof=proof.to_header())
        if response.payment_required:
            session.fail(FailureReason.PAYMENT_ERROR, f"Payment was not accepted: {response.error}")
            return None
        return response
