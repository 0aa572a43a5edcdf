"""
Admission control for paid tool executions.

Caps the number of tool executions in flight, per tool and across the whole
gateway, so a burst of admitted requests cannot pile up unbounded work on
the downstream APIs.

Usage:
    from x402_market.admission import AdmissionController, AdmissionConfig

    controller = AdmissionController(AdmissionConfig(max_per_tool=4, max_total=16))

    try:
        async with controller.slot("get_weather1"):
            ...  # execute the tool
    except AdmissionRejected as e:
        ...  # answer 503, retry after e.retry_after
"""

import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


@dataclass
class AdmissionConfig:
    """Configuration for admission control."""

    # Maximum concurrent executions of a single tool
    max_per_tool: int = 8

    # Maximum concurrent executions across all tools
    max_total: int = 32

    # Seconds clients are told to wait before retrying
    retry_after_seconds: int = 1

    # Enable logging of rejections
    enable_logging: bool = True


@dataclass
class AdmissionStats:
    """Statistics for admission control."""

    total_requests: int = 0
    admitted_requests: int = 0
    rejected_requests: int = 0
    peak_in_flight: int = 0
    rejected_by_tool: dict[str, int] = field(default_factory=dict)

    @property
    def rejection_rate(self) -> float:
        """Percentage of requests that were rejected."""
        if self.total_requests == 0:
            return 0.0
        return (self.rejected_requests / self.total_requests) * 100


class AdmissionRejected(Exception):
    """Raised when a concurrency cap is reached."""

    def __init__(self, tool: str, scope: str, retry_after: int):
        self.tool = tool
        self.scope = scope
        self.retry_after = retry_after
        super().__init__(f"Too many concurrent {scope} executions for {tool}. Retry after {retry_after}s")


class AdmissionController:
    """
    Per-tool and global concurrency caps.

    Slots are taken without waiting: a request that finds a cap reached is
    rejected immediately instead of queueing.
    """

    def __init__(self, config: Optional[AdmissionConfig] = None):
        self.config = config or AdmissionConfig()
        self._lock = threading.Lock()
        self._in_flight: dict[str, int] = {}
        self._total = 0
        self._stats = AdmissionStats()

    @property
    def stats(self) -> AdmissionStats:
        return self._stats

    def in_flight(self, tool: Optional[str] = None) -> int:
        with self._lock:
            if tool is None:
                return self._total
            return self._in_flight.get(tool, 0)

    def try_acquire(self, tool: str) -> Optional[str]:
        """
        Take a slot for a tool execution.

        Returns:
            None if a slot was taken, otherwise the scope that is full
            ("tool" or "global").
        """
        with self._lock:
            self._stats.total_requests += 1

            scope = None
            if self._total >= self.config.max_total:
                scope = "global"
            elif self._in_flight.get(tool, 0) >= self.config.max_per_tool:
                scope = "tool"

            if scope:
                self._stats.rejected_requests += 1
                self._stats.rejected_by_tool[tool] = self._stats.rejected_by_tool.get(tool, 0) + 1
                if self.config.enable_logging:
                    logger.warning("Admission rejected for %s (%s cap reached)", tool, scope)
                return scope

            self._in_flight[tool] = self._in_flight.get(tool, 0) + 1
            self._total += 1
            self._stats.admitted_requests += 1
            self._stats.peak_in_flight = max(self._stats.peak_in_flight, self._total)
            return None

    def release(self, tool: str) -> None:
        with self._lock:
            count = self._in_flight.get(tool, 0)
            if count <= 1:
                self._in_flight.pop(tool, None)
            else:
                self._in_flight[tool] = count - 1
            self._total = max(0, self._total - 1)

    @asynccontextmanager
    async def slot(self, tool: str) -> AsyncIterator[None]:
        """
        Hold a slot for the duration of the block.

        Raises:
            AdmissionRejected: If a concurrency cap is reached.
        """
        scope = self.try_acquire(tool)
        if scope:
            raise AdmissionRejected(tool, scope, self.config.retry_after_seconds)
        try:
            yield
        finally:
            self.release(tool)

    def reset(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._total = 0
            self._stats = AdmissionStats()
