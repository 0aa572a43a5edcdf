"""
Tests for the admission control module.
"""

import pytest

from x402_market.admission import (
    AdmissionConfig,
    AdmissionController,
    AdmissionRejected,
)


class TestAdmissionConfig:
    """Tests for AdmissionConfig."""

    def test_default_config(self):
        """Test default configuration values."""
        config = AdmissionConfig()
        assert config.max_per_tool == 8
        assert config.max_total == 32
        assert config.retry_after_seconds == 1
        assert config.enable_logging is True


class TestAdmissionController:
    """Tests for AdmissionController."""

    def test_initial_state(self):
        controller = AdmissionController()
        assert controller.in_flight() == 0
        assert controller.stats.total_requests == 0
        assert controller.stats.rejection_rate == 0.0

    def test_per_tool_cap(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=2, max_total=10))
        assert controller.try_acquire("get_weather1") is None
        assert controller.try_acquire("get_weather1") is None
        assert controller.try_acquire("get_weather1") == "tool"
        # Other tools are unaffected
        assert controller.try_acquire("get_weather2") is None
        assert controller.in_flight("get_weather1") == 2
        assert controller.in_flight() == 3

    def test_global_cap(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=5, max_total=2))
        assert controller.try_acquire("a") is None
        assert controller.try_acquire("b") is None
        assert controller.try_acquire("c") == "global"

    def test_release_frees_slot(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=1, max_total=1))
        assert controller.try_acquire("a") is None
        controller.release("a")
        assert controller.in_flight() == 0
        assert controller.try_acquire("a") is None

    def test_stats(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=1, max_total=5))
        controller.try_acquire("a")
        controller.try_acquire("a")
        controller.try_acquire("b")

        stats = controller.stats
        assert stats.total_requests == 3
        assert stats.admitted_requests == 2
        assert stats.rejected_requests == 1
        assert stats.rejected_by_tool == {"a": 1}
        assert stats.peak_in_flight == 2
        assert stats.rejection_rate == pytest.approx(100 / 3)

    def test_reset(self):
        controller = AdmissionController()
        controller.try_acquire("a")
        controller.reset()
        assert controller.in_flight() == 0
        assert controller.stats.total_requests == 0


class TestAdmissionSlot:
    """Tests for the async slot context manager."""

    @pytest.mark.asyncio
    async def test_slot_releases_on_exit(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=1))
        async with controller.slot("a"):
            assert controller.in_flight("a") == 1
        assert controller.in_flight("a") == 0

    @pytest.mark.asyncio
    async def test_slot_releases_on_error(self):
        controller = AdmissionController()
        with pytest.raises(ValueError):
            async with controller.slot("a"):
                raise ValueError("tool failed")
        assert controller.in_flight() == 0

    @pytest.mark.asyncio
    async def test_slot_rejected(self):
        controller = AdmissionController(AdmissionConfig(max_per_tool=1, retry_after_seconds=3))
        async with controller.slot("a"):
            with pytest.raises(AdmissionRejected) as exc_info:
                async with controller.slot("a"):
                    pass
        assert exc_info.value.scope == "tool"
        assert exc_info.value.retry_after == 3
        assert controller.in_flight() == 0
