"""
Tool catalog for the x402 tool market.

Each tool advertises its price inside its description using the literal
``COSTS: <amount> <CURRENCY>`` token. Buyers parse the price from that text,
so rendering and parsing must round-trip exactly.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Iterator, Optional

PRICE_PATTERN = re.compile(r"COSTS?:\s*(\d+(?:\.\d+)?)\s*USDC", re.IGNORECASE)

DEFAULT_CURRENCY = "USDC"


def render_price(price: Decimal, currency: str = DEFAULT_CURRENCY) -> str:
    """Render a price as the machine-parsable description token."""
    return f"COSTS: {price} {currency}"


def parse_price(description: Optional[str]) -> Optional[Decimal]:
    """
    Extract the price embedded in a tool description.

    Args:
        description: Tool description text

    Returns:
        The price as a Decimal, or None if no price token is present.
    """
    if not description:
        return None
    match = PRICE_PATTERN.search(description)
    if not match:
        return None
    return Decimal(match.group(1))


def sanitize_parameters(params: Any) -> dict[str, Any]:
    """Reduce a parameter schema to the fields reasoning engines accept."""
    if not isinstance(params, dict):
        return {"type": "object", "properties": {}, "required": []}

    sanitized: dict[str, Any] = {"type": params.get("type") or "object"}

    properties = {}
    for key, value in (params.get("properties") or {}).items():
        if not isinstance(value, dict):
            continue
        prop: dict[str, Any] = {"type": value.get("type") or "string"}
        if value.get("description"):
            prop["description"] = value["description"]
        if isinstance(value.get("enum"), list):
            prop["enum"] = value["enum"]
        properties[key] = prop
    sanitized["properties"] = properties

    if isinstance(params.get("required"), list):
        sanitized["required"] = [item for item in params["required"] if isinstance(item, str)]

    return sanitized


@dataclass(frozen=True)
class ToolDescriptor:
    """A priced tool offered by the marketplace."""
    name: str
    summary: str
    parameters: dict[str, Any] = field(default_factory=dict)
    price: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        if self.price < 0:
            raise ValueError(f"Tool {self.name!r} has a negative price")

    @property
    def description(self) -> str:
        """Human-readable description with the embedded price token."""
        return f"{self.summary} {render_price(self.price, self.currency)}"

    @property
    def required_parameters(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation served by GET /tools."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolCatalog:
    """Immutable registry of the tools offered by a gateway."""

    def __init__(self, descriptors: Iterable[ToolDescriptor]):
        tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in tools:
                raise ValueError(f"Duplicate tool name in catalog: {descriptor.name}")
            tools[descriptor.name] = descriptor
        self._tools = tools

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def to_wire(self) -> list[dict[str, Any]]:
        return [descriptor.to_dict() for descriptor in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    # Must stay last: annotations above use the builtin list
    def list(self) -> list[ToolDescriptor]:
        return list(self._tools.values())


def _location_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "The city and state, e.g. San Francisco, CA",
            },
        },
        "required": ["location"],
    }


def _country_schema(**extra: dict[str, Any]) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "country": {
            "type": "string",
            "description": "ISO 3166-1 alpha-2 country code, e.g. gb, us, in",
        },
    }
    properties.update(extra)
    return {"type": "object", "properties": properties, "required": ["country"]}


WEATHER_SUMMARY = "Get the current weather for a location."

# Prices in USDC
TOOL_PRICES = {
    "get_weather1": "0.04",
    "get_weather2": "0.02",
    "get_weather3": "0.01",
    "get_audio": "0.03",
    "adzuna_search_jobs": "0.05",
    "adzuna_top_companies": "0.02",
    "adzuna_get_categories": "0.01",
    "adzuna_salary_histogram": "0.02",
    "adzuna_geodata": "0.02",
    "adzuna_salary_history": "0.02",
}


def default_catalog() -> ToolCatalog:
    """Build the catalog of tools served by the marketplace gateway."""
    price = lambda name: Decimal(TOOL_PRICES[name])  # noqa: E731

    return ToolCatalog([
        ToolDescriptor("get_weather1", WEATHER_SUMMARY, _location_schema(), price("get_weather1")),
        ToolDescriptor("get_weather2", WEATHER_SUMMARY, _location_schema(), price("get_weather2")),
        ToolDescriptor("get_weather3", WEATHER_SUMMARY, _location_schema(), price("get_weather3")),
        ToolDescriptor(
            "get_audio",
            "Convert text to speech. RETURNS: WAV audio.",
            {
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "Text to convert into speech"},
                    "voice": {
                        "type": "string",
                        "description": "Voice name (default: autumn)",
                        "enum": ["autumn"],
                        "default": "autumn",
                    },
                },
                "required": ["text"],
            },
            price("get_audio"),
        ),
        ToolDescriptor(
            "adzuna_search_jobs",
            "Search job listings across countries using Adzuna. "
            "RETURNS: job list with salaries, company, location.",
            _country_schema(
                keywords={"type": "string", "description": "Job search keywords, e.g. python developer"},
                location={"type": "string", "description": "City or region, e.g. London, Bangalore"},
                page={"type": "number", "description": "Page number (starts from 1)", "default": 1},
                resultsPerPage={"type": "number", "description": "Results per page (max 50)", "default": 10},
            ),
            price("adzuna_search_jobs"),
        ),
        ToolDescriptor(
            "adzuna_get_categories",
            "Get valid job category tags for a country. REQUIRED before filtered searches.",
            _country_schema(),
            price("adzuna_get_categories"),
        ),
        ToolDescriptor(
            "adzuna_salary_histogram",
            "Get salary distribution histogram for matching jobs. RETURNS: salary buckets.",
            _country_schema(keywords={"type": "string", "description": "Job keywords"}),
            price("adzuna_salary_histogram"),
        ),
        ToolDescriptor(
            "adzuna_top_companies",
            "Get top hiring companies ranked by open positions.",
            _country_schema(),
            price("adzuna_top_companies"),
        ),
        ToolDescriptor(
            "adzuna_geodata",
            "Get job count and average salary by region. Useful for relocation analysis.",
            _country_schema(),
            price("adzuna_geodata"),
        ),
        ToolDescriptor(
            "adzuna_salary_history",
            "Get historical salary trends over time. RETURNS: monthly averages.",
            _country_schema(),
            price("adzuna_salary_history"),
        ),
    ])
