"""
Web search.
Tavily when an API key is configured, DuckDuckGo via LangChain otherwise
(free, no API key required).
Failures come back as a SearchResults with `error` set, never as exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests
from langchain_community.tools import DuckDuckGoSearchResults

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"


@dataclass
class SearchResults:
    """Uniform tool output: result items, the query and any images."""
    results: list[dict] = field(default_factory=list)
    query: str = ""
    images: list = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        d = {"results": self.results, "query": self.query, "images": self.images}
        if self.error is not None:
            d["error"] = self.error
        return d


class WebSearchTool:
    """Search the web and return title/content/url items."""

    def __init__(
        self,
        max_results: int = 5,
        tavily_api_key: str = "",
        timeout: int = 15,
    ):
        self.max_results = max_results
        self.tavily_api_key = tavily_api_key
        self.timeout = timeout
        self.provider = "tavily" if tavily_api_key else "duckduckgo"
        logger.info("WebSearchTool initialized (provider=%s, max_results=%d)",
                    self.provider, max_results)

    def run(
        self,
        query: str,
        max_results: int | None = None,
        search_depth: str = "basic",
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
    ) -> SearchResults:
        """Execute a web search."""
        n = max_results or self.max_results
        try:
            if self.provider == "tavily":
                result = self._tavily(query, n, search_depth,
                                      include_domains or [], exclude_domains or [])
            else:
                result = self._duckduckgo(query, n)
            logger.debug("Search for '%s' returned %d results", query, len(result.results))
            return result
        except Exception as e:
            logger.error("Search failed for '%s': %s", query, e)
            return SearchResults(query=query, error=f"Search failed: {e}")

    def _tavily(
        self,
        query: str,
        max_results: int,
        search_depth: str,
        include_domains: list[str],
        exclude_domains: list[str],
    ) -> SearchResults:
        resp = requests.post(
            TAVILY_SEARCH_URL,
            json={
                "api_key": self.tavily_api_key,
                "query": query,
                "max_results": max(max_results, 5),
                "search_depth": search_depth,
                "include_images": True,
                "include_domains": include_domains,
                "exclude_domains": exclude_domains,
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        results = [
            {"title": r.get("title", ""), "content": r.get("content", ""), "url": r.get("url", "")}
            for r in data.get("results", [])[:max_results]
        ]
        return SearchResults(results=results, query=data.get("query", query),
                             images=data.get("images", []))

    def _duckduckgo(self, query: str, max_results: int) -> SearchResults:
        search = DuckDuckGoSearchResults(max_results=max_results, output_format="list")
        items = search.invoke(query)
        results = [
            {"title": r.get("title", ""), "content": r.get("snippet", ""), "url": r.get("link", "")}
            for r in items
        ]
        return SearchResults(results=results, query=query)
