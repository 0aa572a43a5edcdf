"""Executor base class shared by all marketplace tools."""

import asyncio
import logging
import time
from typing import Any, Iterable, Optional

import httpx

from ..metrics import get_metrics_emitter
from ..tracing import get_tracer
from .results import FailureKind, ToolResult

logger = logging.getLogger(__name__)


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        if isinstance(value, bool):
            return False
        if isinstance(value, float):
            return value.is_integer()
        return isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit())
    return True


class ToolExecutor:
    """
    Performs the capability behind one catalog entry.

    Subclasses implement ``execute``; callers use ``run``, which validates the
    required arguments, records a span and metrics, and turns unexpected
    exceptions into an internal-fault result.
    """

    def __init__(
        self,
        name: str,
        required: Iterable[str] = (),
        argument_types: Optional[dict[str, str]] = None,
    ):
        self.name = name
        self.required = tuple(required)
        # JSON schema type ("string" or "integer") per argument
        self.argument_types = dict(argument_types or {})

    def missing_arguments(self, arguments: dict[str, Any]) -> list[str]:
        return [
            key for key in self.required
            if arguments.get(key) is None or arguments.get(key) == ""
        ]

    def invalid_arguments(self, arguments: dict[str, Any]) -> dict[str, str]:
        """Arguments whose value does not match the declared type, with the expected type."""
        invalid = {}
        for key, expected in self.argument_types.items():
            value = arguments.get(key)
            if value is None or _matches_type(value, expected):
                continue
            invalid[key] = f"expected {expected}"
        return invalid

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        raise NotImplementedError

    async def run(self, arguments: Optional[dict[str, Any]]) -> ToolResult:
        tracer = get_tracer()
        metrics = get_metrics_emitter()
        start_time = time.time()
        arguments = arguments or {}

        with tracer.start_as_current_span("tool.execute") as span:
            span.set_attribute("tool.name", self.name)

            missing = self.missing_arguments(arguments)
            invalid = {} if missing else self.invalid_arguments(arguments)
            if missing:
                result = ToolResult.failed(
                    FailureKind.INVALID_ARGUMENTS,
                    400,
                    f"Missing required argument(s): {', '.join(missing)}",
                    error={"missing": missing},
                )
            elif invalid:
                result = ToolResult.failed(
                    FailureKind.INVALID_ARGUMENTS,
                    400,
                    f"Invalid argument(s): {', '.join(invalid)}",
                    error={"invalid": invalid},
                )
            else:
                try:
                    result = await self.execute(arguments)
                except Exception as e:
                    logger.exception("Tool %s failed with an internal error", self.name)
                    span.record_exception(e)
                    result = ToolResult.failed(FailureKind.INTERNAL, 500, "Internal error", error=str(e))

            span.set_attribute("tool.success", result.success)
            span.set_attribute("http.status_code", result.status_code)
            if result.failure:
                span.set_attribute("error.type", result.failure.value)

            metrics.record_tool_execution(
                tool_name=self.name,
                success=result.success,
                latency_ms=(time.time() - start_time) * 1000,
                failure=result.failure.value if result.failure else None,
            )
            return result


class UpstreamToolExecutor(ToolExecutor):
    """
    Executor that calls a downstream HTTP API.

    Every request runs under a hard deadline: the in-flight request is
    cancelled when the deadline passes, and the failure is reported as a
    timeout rather than left hanging.
    """

    def __init__(
        self,
        name: str,
        required: Iterable[str] = (),
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        argument_types: Optional[dict[str, str]] = None,
    ):
        super().__init__(name, required, argument_types)
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> tuple[Optional[httpx.Response], Optional[ToolResult]]:
        """
        Send a request to the upstream API.

        Returns:
            (response, None) when a response arrived, or (None, failure) when
            the upstream timed out or could not be reached.
        """
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        ) as client:
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, **kwargs),
                    timeout=self.timeout_seconds,
                )
                return response, None
            except (asyncio.TimeoutError, httpx.TimeoutException):
                logger.warning("Upstream call for %s timed out after %.1fs", self.name, self.timeout_seconds)
                return None, ToolResult.failed(
                    FailureKind.TIMEOUT,
                    504,
                    "Upstream request timed out",
                    error={
                        "reason": "timeout",
                        "message": f"No response within {self.timeout_seconds:g} seconds",
                    },
                )
            except httpx.RequestError as e:
                logger.warning("Upstream call for %s failed: %s", self.name, e)
                return None, ToolResult.failed(
                    FailureKind.UPSTREAM_UNREACHABLE,
                    502,
                    "Upstream service unreachable",
                    error={"reason": "unreachable", "message": str(e)},
                )


def response_payload(response: httpx.Response) -> Any:
    """Decode an upstream body as JSON, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text
