"""
Tool registry: central dispatch for the answer pipeline's tools.
Reads config.yaml to determine which tools are enabled.
Tool names match the `name` recorded on tool messages in chat history.
"""

import logging
import time

from answerbox.config import get_config
from answerbox.tools.video_search import VideoSearchTool
from answerbox.tools.web_scraper import RetrieveTool
from answerbox.tools.web_search import SearchResults, WebSearchTool

logger = logging.getLogger(__name__)

SEARCH = "search"
RETRIEVE = "retrieve"
VIDEO_SEARCH = "videoSearch"


class ToolRegistry:
    """Manages available tools based on configuration."""

    def __init__(self, tools_cfg: dict | None = None):
        self.tools: dict[str, object] = {}
        if tools_cfg is None:
            tools_cfg = get_config().get("tools", {})

        if not tools_cfg.get("enabled", True):
            logger.info("Tools disabled globally")
            return

        # --- Web search ---
        s_cfg = tools_cfg.get("search", {})
        if s_cfg.get("enabled", True):
            self.tools[SEARCH] = WebSearchTool(
                max_results=s_cfg.get("max_results", 5),
                tavily_api_key=s_cfg.get("tavily_api_key", ""),
            )

        # --- Page retrieval ---
        r_cfg = tools_cfg.get("retrieve", {})
        if r_cfg.get("enabled", True):
            self.tools[RETRIEVE] = RetrieveTool(
                max_content_length=r_cfg.get("max_content_length", 10000),
                jina_api_key=r_cfg.get("jina_api_key", ""),
                tavily_api_key=r_cfg.get("tavily_api_key", ""),
            )

        # --- Video search (needs a Serper key) ---
        v_cfg = tools_cfg.get("video_search", {})
        if v_cfg.get("enabled", False):
            self.tools[VIDEO_SEARCH] = VideoSearchTool(
                api_key=v_cfg.get("api_key", ""),
                max_results=v_cfg.get("max_results", 10),
            )

        logger.info("Tool registry loaded: %s", list(self.tools.keys()))

    def get(self, name: str):
        """Get a tool by name, or None if not registered."""
        return self.tools.get(name)

    def list_tools(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self.tools.keys())

    def run_tool(self, name: str, input_text: str, **kwargs) -> SearchResults:
        """Run a tool by name. Unknown tools yield an error result."""
        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Tool '%s' not found in registry", name)
            return SearchResults(query=input_text, error=f"Tool '{name}' is not enabled")

        start = time.monotonic()
        result = tool.run(input_text, **kwargs)
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug("Tool '%s' finished in %.0fms (ok=%s)", name, elapsed_ms, result.ok)
        return result
