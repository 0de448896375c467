"""
Video search through the Serper videos API.
Without SERPER_API_KEY every call returns an error result.
"""

from __future__ import annotations

import logging

import requests

from answerbox.tools.web_search import SearchResults

logger = logging.getLogger(__name__)

SERPER_VIDEOS_URL = "https://google.serper.dev/videos"


class VideoSearchTool:
    """Search videos and return title/content/url items plus video metadata."""

    def __init__(self, api_key: str = "", max_results: int = 10, timeout: int = 15):
        self.api_key = api_key
        self.max_results = max_results
        self.timeout = timeout
        if not api_key:
            logger.info("VideoSearchTool initialized without an API key (calls will fail)")
        else:
            logger.info("VideoSearchTool initialized")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def run(self, query: str) -> SearchResults:
        if not self.api_key:
            return SearchResults(query=query, error="Video search API key not configured")
        try:
            resp = requests.post(
                SERPER_VIDEOS_URL,
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                json={"q": query},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            videos = resp.json().get("videos", [])
        except Exception as e:
            logger.error("Video search failed for '%s': %s", query, e)
            return SearchResults(query=query, error=f"Video search API error: {e}")

        results = [
            {
                "title": v.get("title", ""),
                "content": v.get("snippet", ""),
                "url": v.get("link", ""),
                "imageUrl": v.get("imageUrl", ""),
                "duration": v.get("duration", ""),
                "channel": v.get("channel", ""),
                "date": v.get("date", ""),
            }
            for v in videos[: self.max_results]
        ]
        return SearchResults(results=results, query=query)
