"""Tool executors for the x402 tool market.

Each catalog entry is served by one executor:

1. Weather tools (get_weather1/2/3): fixed dataset lookups at three price points
2. Job market tools (adzuna_*): proxies for the Adzuna API
3. Speech tool (get_audio): WAV synthesis through the Groq speech API
"""

from typing import Optional

import httpx

from ..config import GatewayConfig
from .audio import SpeechExecutor, WAV_MIME_TYPE
from .base import ToolExecutor, UpstreamToolExecutor
from .jobs import ADZUNA_ENDPOINTS, AdzunaEndpoint, AdzunaExecutor
from .results import FailureKind, ResultKind, ToolResult
from .weather import WEATHER_DATA, WeatherExecutor


def build_executors(
    config: GatewayConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, ToolExecutor]:
    """
    Create the executor for every tool in the default catalog.

    Args:
        config: Gateway configuration (credentials and timeouts)
        transport: Optional httpx transport for upstream calls (used in tests)

    Returns:
        Mapping of tool name to executor.
    """
    executors: list[ToolExecutor] = [
        WeatherExecutor("get_weather1"),
        WeatherExecutor("get_weather2"),
        WeatherExecutor("get_weather3"),
        SpeechExecutor(
            "get_audio",
            api_key=config.groq_api_key,
            base_url=config.groq_base_url,
            model=config.speech_model,
            voice=config.speech_voice,
            timeout_seconds=config.upstream_timeout_seconds,
            transport=transport,
        ),
    ]
    executors.extend(
        AdzunaExecutor(
            endpoint,
            app_id=config.adzuna_app_id,
            app_key=config.adzuna_app_key,
            base_url=config.adzuna_base_url,
            timeout_seconds=config.upstream_timeout_seconds,
            transport=transport,
        )
        for endpoint in ADZUNA_ENDPOINTS
    )
    return {executor.name: executor for executor in executors}


__all__ = [
    "build_executors",
    "ToolExecutor",
    "UpstreamToolExecutor",
    "WeatherExecutor",
    "WEATHER_DATA",
    "AdzunaExecutor",
    "AdzunaEndpoint",
    "ADZUNA_ENDPOINTS",
    "SpeechExecutor",
    "WAV_MIME_TYPE",
    "ToolResult",
    "ResultKind",
    "FailureKind",
]
