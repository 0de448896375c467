"""
Page retrieval: fetch a URL and return its readable content.

Jina Reader when JINA_API_KEY is configured, Tavily extract when a Tavily
key is, and a local requests + BeautifulSoup scrape otherwise.
"""

from __future__ import annotations

import logging

import requests
from bs4 import BeautifulSoup

from answerbox.tools.web_search import SearchResults

logger = logging.getLogger(__name__)

CONTENT_CHARACTER_LIMIT = 10000

JINA_READER_URL = "https://r.jina.ai/"
TAVILY_EXTRACT_URL = "https://api.tavily.com/extract"

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"
}


class RetrieveTool:
    """Fetch a URL and return its content as a one-item SearchResults."""

    def __init__(
        self,
        max_content_length: int = CONTENT_CHARACTER_LIMIT,
        jina_api_key: str = "",
        tavily_api_key: str = "",
        timeout: int = 15,
    ):
        self.max_content_length = max_content_length
        self.jina_api_key = jina_api_key
        self.tavily_api_key = tavily_api_key
        self.timeout = timeout
        if jina_api_key:
            self.provider = "jina"
        elif tavily_api_key:
            self.provider = "tavily"
        else:
            self.provider = "scrape"
        logger.info("RetrieveTool initialized (provider=%s, max_chars=%d)",
                    self.provider, max_content_length)

    def run(self, url: str) -> SearchResults:
        """Retrieve URL content. Never raises."""
        try:
            if self.provider == "jina":
                result = self._jina(url)
            elif self.provider == "tavily":
                result = self._tavily(url)
            else:
                result = self._scrape(url)
        except Exception as e:
            logger.error("Retrieve failed for %s: %s", url, e)
            return SearchResults(query=url, error=f"Failed to retrieve {url}: {e}")

        if not result.results:
            return SearchResults(query=url, error=f"No content retrieved from {url}")
        logger.debug("Retrieved %d chars from %s", len(result.results[0]["content"]), url)
        return result

    def _truncate(self, text: str) -> str:
        return text[: self.max_content_length]

    def _jina(self, url: str) -> SearchResults:
        resp = requests.get(
            f"{JINA_READER_URL}{url}",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.jina_api_key}",
                "X-With-Generated-Alt": "true",
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json().get("data") or {}
        if not data:
            return SearchResults()
        return SearchResults(results=[{
            "title": data.get("title", ""),
            "content": self._truncate(data.get("content", "")),
            "url": data.get("url", url),
        }])

    def _tavily(self, url: str) -> SearchResults:
        resp = requests.post(
            TAVILY_EXTRACT_URL,
            json={"api_key": self.tavily_api_key, "urls": [url]},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        results = resp.json().get("results") or []
        if not results:
            return SearchResults()
        content = self._truncate(results[0].get("raw_content", ""))
        return SearchResults(results=[{
            "title": content[:100],
            "content": content,
            "url": results[0].get("url", url),
        }])

    def _scrape(self, url: str) -> SearchResults:
        resp = requests.get(url, headers=DEFAULT_HEADERS, timeout=self.timeout)
        resp.raise_for_status()

        soup = BeautifulSoup(resp.text, "lxml")
        title = soup.title.get_text(strip=True) if soup.title else url

        # Remove noise
        for tag in soup(["script", "style", "nav", "footer", "header", "aside"]):
            tag.decompose()

        text = soup.get_text(separator="\n", strip=True)
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        text = self._truncate("\n".join(lines))
        if not text:
            return SearchResults()
        return SearchResults(results=[{"title": title, "content": text, "url": url}])
