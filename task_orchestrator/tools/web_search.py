"""
Web search tool backed by the Firecrawl search API.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from task_orchestrator.tools.base import BaseTool
from task_orchestrator.utils.error_handling import APIError
from task_orchestrator.utils.rate_limiting import APIClient, RateLimitManager

FIRECRAWL_BASE_URL = "https://api.firecrawl.dev/v2"


class WebSearchInput(BaseModel):
    query: str = Field(description="The search query")
    max_results: int = Field(
        default=10, ge=1, le=20, alias="maxResults", description="Maximum results"
    )
    location: str | None = Field(default=None, description="Location context")
    category: Literal["pharmacy", "restaurant", "hotel", "activity", "general"] | None = (
        Field(default=None, description="Category to focus the search")
    )

    model_config = {"populate_by_name": True}


def build_search_query(args: WebSearchInput) -> str:
    """Append the category and location to the raw query."""
    query = args.query
    if args.category and args.category != "general":
        query = f"{query} {args.category}"
    if args.location:
        query = f"{query} {args.location}"
    return query


class WebSearchTool(BaseTool):
    """Search the web and return titles, descriptions and page markdown."""

    name = "web_search"
    description = (
        "Search the web for information. Use for finding pharmacies, restaurants, "
        "activities, hotels, or general information. Returns real search results "
        "with content."
    )
    args_schema = WebSearchInput

    def __init__(
        self,
        api_key: str | None = None,
        default_max_results: int = 10,
        timeout_seconds: float = 10.0,
        manager: RateLimitManager | None = None,
        client: APIClient | None = None,
    ):
        self.api_key = api_key
        self.default_max_results = default_max_results
        self.client = client or APIClient(
            "firecrawl",
            FIRECRAWL_BASE_URL,
            api_key=api_key,
            manager=manager,
            timeout_seconds=timeout_seconds,
        )

    async def _run(self, args: WebSearchInput) -> dict[str, Any]:
        if not self.client.api_key:
            return self.failure("FIRECRAWL_API_KEY is not configured")

        limit = (
            args.max_results
            if "max_results" in args.model_fields_set
            else self.default_max_results
        )
        body: dict[str, Any] = {
            "query": build_search_query(args),
            "limit": limit,
            "sources": ["web"],
            "scrapeOptions": {"formats": [{"type": "markdown"}]},
        }
        if args.location:
            body["location"] = args.location

        try:
            response = await self.client.request("POST", "search", json_data=body)
        except APIError as e:
            return self.failure(f"Firecrawl search failed: {e!s}", {"status": e.status_code})

        results = self._parse_results(response)
        return self.success(
            {
                "query": args.query,
                "location": args.location,
                "category": args.category,
                "totalResults": len(results),
                "results": results,
            }
        )

    @staticmethod
    def _parse_results(response: dict[str, Any]) -> list[dict[str, Any]]:
        data = response.get("data") or {}
        if not response.get("success") or not isinstance(data, dict):
            return []
        return [
            {
                "id": f"result_{i + 1}",
                "title": item.get("title") or "Untitled",
                "description": item.get("description") or "",
                "url": item.get("url"),
                "markdown": item.get("markdown"),
            }
            for i, item in enumerate(data.get("web") or [])
        ]
