"""Search, retrieve and video-search tools used by the answer pipeline."""
from answerbox.tools.registry import ToolRegistry
from answerbox.tools.web_search import SearchResults

__all__ = ["ToolRegistry", "SearchResults"]
