"""Tests for the tool executors."""

import asyncio
import json

import httpx
import pytest

from x402_market.tools import (
    ADZUNA_ENDPOINTS,
    WAV_MIME_TYPE,
    AdzunaExecutor,
    FailureKind,
    ResultKind,
    SpeechExecutor,
    ToolResult,
    WeatherExecutor,
    build_executors,
)
from x402_market.catalog import default_catalog


def adzuna(tool_name: str, transport=None, timeout_seconds: float = 10.0) -> AdzunaExecutor:
    endpoint = next(e for e in ADZUNA_ENDPOINTS if e.tool_name == tool_name)
    return AdzunaExecutor(
        endpoint,
        app_id="id",
        app_key="key",
        base_url="https://api.adzuna.test/v1/api",
        timeout_seconds=timeout_seconds,
        transport=transport,
    )


class TestToolResult:
    """Tests for ToolResult."""

    def test_ok_to_dict(self):
        result = ToolResult.ok("Done", data={"a": 1})
        assert result.to_dict() == {"success": True, "result": "Done", "data": {"a": 1}}

    def test_miss_is_not_a_failure(self):
        result = ToolResult.miss("Nothing found")
        assert result.status_code == 200
        assert result.failure is None
        assert result.to_dict() == {"success": False, "result": "Nothing found"}

    def test_failed(self):
        result = ToolResult.failed(FailureKind.TIMEOUT, 504, "Timed out", error={"reason": "timeout"})
        assert result.status_code == 504
        assert result.to_dict()["error"] == {"reason": "timeout"}

    def test_text_and_binary(self):
        assert ToolResult.text("hello").kind == ResultKind.TEXT
        binary = ToolResult.binary(b"data", WAV_MIME_TYPE)
        assert binary.kind == ResultKind.BINARY
        assert binary.mime_type == "audio/wav"


class TestRegistry:
    def test_every_catalog_tool_has_an_executor(self, gateway_config):
        executors = build_executors(gateway_config)
        assert set(executors) == {descriptor.name for descriptor in default_catalog()}


class TestWeatherExecutor:
    """Tests for WeatherExecutor."""

    @pytest.mark.asyncio
    async def test_known_location(self):
        result = await WeatherExecutor("get_weather3").run({"location": "London, UK"})
        assert result.success is True
        assert result.message == "Rainy, 58°F, Humidity: 85%"

    @pytest.mark.asyncio
    async def test_unknown_location(self):
        result = await WeatherExecutor("get_weather3").run({"location": "Nowhere"})
        assert result.success is False
        assert result.status_code == 200
        assert result.message == "Weather data not available for this location"

    @pytest.mark.asyncio
    async def test_missing_location(self):
        result = await WeatherExecutor("get_weather3").run({"location": ""})
        assert result.failure == FailureKind.INVALID_ARGUMENTS
        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_location_must_be_a_string(self):
        result = await WeatherExecutor("get_weather3").run({"location": ["London, UK"]})
        assert result.failure == FailureKind.INVALID_ARGUMENTS
        assert result.status_code == 400
        assert result.error == {"invalid": {"location": "expected string"}}


class TestAdzunaExecutor:
    """Tests for AdzunaExecutor."""

    def test_search_request(self):
        url, params = adzuna("adzuna_search_jobs").build_request({
            "country": "GB",
            "keywords": "python",
            "location": "London",
            "page": 2.0,
            "resultsPerPage": 100,
        })
        assert url == "https://api.adzuna.test/v1/api/jobs/gb/search/2"
        assert params == {
            "app_id": "id",
            "app_key": "key",
            "results_per_page": 50,
            "what": "python",
            "where": "London",
        }

    def test_search_request_defaults(self):
        url, params = adzuna("adzuna_search_jobs").build_request({"country": "us"})
        assert url.endswith("/jobs/us/search/1")
        assert params["results_per_page"] == 10

    def test_categories_ignores_query_arguments(self):
        url, params = adzuna("adzuna_get_categories").build_request({"country": "in", "keywords": "x"})
        assert url.endswith("/jobs/in/categories")
        assert params == {"app_id": "id", "app_key": "key"}

    def test_salary_history_months(self):
        _, params = adzuna("adzuna_salary_history").build_request({"country": "gb", "months": 6})
        assert params["months"] == 6

    @pytest.mark.asyncio
    async def test_non_numeric_page_rejected_before_upstream(self):
        def handler(request):
            raise AssertionError("upstream must not be called")

        executor = adzuna("adzuna_search_jobs", httpx.MockTransport(handler))
        result = await executor.run({"country": "gb", "page": "two"})
        assert result.failure == FailureKind.INVALID_ARGUMENTS
        assert result.status_code == 400
        assert result.error == {"invalid": {"page": "expected integer"}}

    @pytest.mark.asyncio
    async def test_numeric_strings_and_whole_floats_accepted(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"results": []}))
        result = await adzuna("adzuna_search_jobs", transport).run(
            {"country": "gb", "page": "2", "resultsPerPage": 20.0}
        )
        assert result.success is True

    @pytest.mark.asyncio
    async def test_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"count": 3})

        result = await adzuna("adzuna_top_companies", httpx.MockTransport(handler)).run({"country": "gb"})
        assert result.success is True
        assert result.data == {"count": 3}
        assert seen[0].url.params["app_id"] == "id"

    @pytest.mark.asyncio
    async def test_upstream_error_forwarded(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, text="bad country"))
        result = await adzuna("adzuna_geodata", transport).run({"country": "zz"})
        assert result.success is False
        assert result.failure == FailureKind.UPSTREAM_STATUS
        assert result.status_code == 400
        assert result.error == "bad country"

    @pytest.mark.asyncio
    async def test_timeout_cancels_request(self):
        """A stuck upstream is cancelled and reported as a timeout, not a 402."""
        cancelled = asyncio.Event()

        async def hang(request):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return httpx.Response(200, json={})

        executor = adzuna("adzuna_search_jobs", httpx.MockTransport(hang), timeout_seconds=0.05)
        result = await executor.run({"country": "gb"})

        assert result.success is False
        assert result.failure == FailureKind.TIMEOUT
        assert result.status_code == 504
        assert result.error["reason"] == "timeout"
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await adzuna("adzuna_geodata", httpx.MockTransport(refuse)).run({"country": "gb"})
        assert result.failure == FailureKind.UPSTREAM_UNREACHABLE
        assert result.status_code == 502
        assert result.error["reason"] == "unreachable"


class TestSpeechExecutor:
    """Tests for SpeechExecutor."""

    @pytest.mark.asyncio
    async def test_synthesizes_wav(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"RIFFWAVE")

        executor = SpeechExecutor("get_audio", api_key="k", transport=httpx.MockTransport(handler))
        result = await executor.run({"text": "Hello there"})

        assert result.kind == ResultKind.BINARY
        assert result.content == b"RIFFWAVE"
        assert result.mime_type == "audio/wav"

        body = json.loads(requests[0].content)
        assert body == {
            "model": "canopylabs/orpheus-v1-english",
            "voice": "autumn",
            "response_format": "wav",
            "input": "Hello there",
        }
        assert requests[0].headers["authorization"] == "Bearer k"

    @pytest.mark.asyncio
    async def test_without_api_key(self):
        result = await SpeechExecutor("get_audio", api_key="").run({"text": "Hello"})
        assert result.success is False
        assert result.status_code == 503

    @pytest.mark.asyncio
    async def test_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, json={"error": "rate limited"}))
        result = await SpeechExecutor("get_audio", api_key="k", transport=transport).run({"text": "Hi"})
        assert result.status_code == 429
        assert result.error == {"error": "rate limited"}
