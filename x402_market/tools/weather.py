"""Weather lookup tools backed by a fixed dataset."""

from typing import Any

from .base import ToolExecutor
from .results import ToolResult

WEATHER_DATA = {
    "San Francisco, CA": {
        "temperature": "72°F",
        "condition": "Sunny",
        "humidity": "65%",
    },
    "New York, NY": {
        "temperature": "65°F",
        "condition": "Cloudy",
        "humidity": "70%",
    },
    "London, UK": {
        "temperature": "58°F",
        "condition": "Rainy",
        "humidity": "85%",
    },
}

NOT_AVAILABLE = "Weather data not available for this location"


class WeatherExecutor(ToolExecutor):
    """Returns current conditions for a known location."""

    def __init__(self, name: str, dataset: dict[str, dict[str, str]] = WEATHER_DATA):
        super().__init__(name, required=("location",), argument_types={"location": "string"})
        self.dataset = dataset

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        weather = self.dataset.get(arguments["location"])
        if not weather:
            return ToolResult.miss(NOT_AVAILABLE)
        return ToolResult.ok(
            f"{weather['condition']}, {weather['temperature']}, Humidity: {weather['humidity']}",
            data=dict(weather),
        )
