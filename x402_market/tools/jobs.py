"""Adzuna job market tools."""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .base import UpstreamToolExecutor, response_payload
from .results import FailureKind, ToolResult

# Tool argument name -> Adzuna query parameter
QUERY_ARGUMENTS = {
    "keywords": "what",
    "location": "where",
    "category": "category",
    "months": "months",
}

ARGUMENT_TYPES = {
    "country": "string",
    "keywords": "string",
    "location": "string",
    "category": "string",
    "page": "integer",
    "resultsPerPage": "integer",
    "months": "integer",
}


@dataclass(frozen=True)
class AdzunaEndpoint:
    """An Adzuna API endpoint exposed as a marketplace tool."""
    tool_name: str
    path: str
    success_message: str
    failure_message: str
    arguments: tuple[str, ...] = ("keywords", "location", "category")
    paged: bool = False


ADZUNA_ENDPOINTS = [
    AdzunaEndpoint(
        "adzuna_search_jobs", "search", "Adzuna job search completed", "Adzuna job search failed",
        arguments=("keywords", "location"), paged=True,
    ),
    AdzunaEndpoint(
        "adzuna_get_categories", "categories", "Categories fetched", "Failed to fetch categories",
        arguments=(),
    ),
    AdzunaEndpoint(
        "adzuna_salary_histogram", "histogram", "Salary histogram fetched", "Failed to fetch salary histogram",
    ),
    AdzunaEndpoint(
        "adzuna_top_companies", "top_companies", "Top companies fetched", "Failed to fetch top companies",
    ),
    AdzunaEndpoint(
        "adzuna_geodata", "geodata", "Geographic job data fetched", "Failed to fetch geodata",
    ),
    AdzunaEndpoint(
        "adzuna_salary_history", "history", "Salary history fetched", "Failed to fetch salary history",
        arguments=("keywords", "location", "category", "months"),
    ),
]


class AdzunaExecutor(UpstreamToolExecutor):
    """Proxies one Adzuna endpoint, forwarding upstream failures verbatim."""

    def __init__(
        self,
        endpoint: AdzunaEndpoint,
        app_id: str,
        app_key: str,
        base_url: str = "https://api.adzuna.com/v1/api",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            endpoint.tool_name,
            required=("country",),
            timeout_seconds=timeout_seconds,
            transport=transport,
            argument_types=ARGUMENT_TYPES,
        )
        self.endpoint = endpoint
        self.app_id = app_id
        self.app_key = app_key
        self.base_url = base_url.rstrip("/")

    def build_request(self, arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Build the upstream URL and query parameters for a call."""
        country = str(arguments["country"]).lower()
        url = f"{self.base_url}/jobs/{country}/{self.endpoint.path}"

        params: dict[str, Any] = {"app_id": self.app_id, "app_key": self.app_key}
        if self.endpoint.paged:
            url = f"{url}/{int(arguments.get('page') or 1)}"
            params["results_per_page"] = min(int(arguments.get("resultsPerPage") or 10), 50)

        for name in self.endpoint.arguments:
            value = arguments.get(name)
            if value:
                params[QUERY_ARGUMENTS[name]] = value

        return url, params

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        url, params = self.build_request(arguments)
        response, failure = await self.request("GET", url, params=params)
        if failure:
            return failure

        data = response_payload(response)
        if not response.is_success:
            return ToolResult.failed(
                FailureKind.UPSTREAM_STATUS,
                response.status_code,
                self.endpoint.failure_message,
                error=data,
            )
        return ToolResult.ok(self.endpoint.success_message, data=data)
