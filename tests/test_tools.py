"""
Tests for tool modules.
Network calls are mocked; tools report failures as error results, never exceptions.
"""

from unittest.mock import MagicMock, patch

import requests

from answerbox.tools.registry import RETRIEVE, SEARCH, VIDEO_SEARCH, ToolRegistry
from answerbox.tools.video_search import VideoSearchTool
from answerbox.tools.web_scraper import RetrieveTool
from answerbox.tools.web_search import SearchResults, WebSearchTool


def _response(json_data=None, text="", status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = json_data or {}
    resp.text = text
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


# ---------------------------------------------------------------------------
# SearchResults
# ---------------------------------------------------------------------------

def test_search_results_dict_shape():
    ok = SearchResults(results=[{"url": "u"}], query="q")
    assert ok.ok
    assert ok.to_dict() == {"results": [{"url": "u"}], "query": "q", "images": []}

    err = SearchResults(query="q", error="boom")
    assert not err.ok
    assert err.to_dict()["error"] == "boom"


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------

def test_search_picks_provider_from_key():
    assert WebSearchTool().provider == "duckduckgo"
    assert WebSearchTool(tavily_api_key="tvly-x").provider == "tavily"


def test_duckduckgo_search_maps_fields():
    items = [{"title": "Rust", "snippet": "A language", "link": "https://rust-lang.org"}]
    with patch("answerbox.tools.web_search.DuckDuckGoSearchResults") as ddg_cls:
        ddg_cls.return_value.invoke.return_value = items
        result = WebSearchTool(max_results=3).run("rust")

    ddg_cls.assert_called_once_with(max_results=3, output_format="list")
    assert result.ok
    assert result.query == "rust"
    assert result.results == [{"title": "Rust", "content": "A language", "url": "https://rust-lang.org"}]


def test_tavily_search_maps_fields():
    data = {
        "query": "rust",
        "results": [{"title": "Rust", "content": "fast", "url": "https://rust-lang.org"}] * 8,
        "images": ["https://img/1.png"],
    }
    with patch("answerbox.tools.web_search.requests.post", return_value=_response(data)) as post:
        result = WebSearchTool(tavily_api_key="tvly-x").run("rust", max_results=2, search_depth="advanced")

    body = post.call_args.kwargs["json"]
    assert body["search_depth"] == "advanced"
    assert body["max_results"] == 5
    assert len(result.results) == 2
    assert result.images == ["https://img/1.png"]


def test_search_failure_is_an_error_result():
    with patch("answerbox.tools.web_search.requests.post", return_value=_response(status=500)):
        result = WebSearchTool(tavily_api_key="tvly-x").run("rust")
    assert not result.ok
    assert result.error.startswith("Search failed:")
    assert result.query == "rust"


# ---------------------------------------------------------------------------
# Retrieve
# ---------------------------------------------------------------------------

PAGE = """
<html><head><title>Example Page</title><script>var x = 1;</script></head>
<body><nav>menu</nav><p>First paragraph.</p><p>Second paragraph.</p><footer>foot</footer></body>
</html>
"""


def test_scrape_strips_noise():
    with patch("answerbox.tools.web_scraper.requests.get", return_value=_response(text=PAGE)):
        result = RetrieveTool().run("https://example.com")

    assert result.ok
    item = result.results[0]
    assert item["title"] == "Example Page"
    assert item["url"] == "https://example.com"
    assert "First paragraph." in item["content"]
    assert "menu" not in item["content"]
    assert "var x" not in item["content"]


def test_scrape_truncates_content():
    page = "<html><body><p>" + "x" * 500 + "</p></body></html>"
    with patch("answerbox.tools.web_scraper.requests.get", return_value=_response(text=page)):
        result = RetrieveTool(max_content_length=50).run("https://example.com")
    assert len(result.results[0]["content"]) == 50


def test_jina_reader():
    data = {"data": {"title": "T", "content": "body", "url": "https://example.com/"}}
    with patch("answerbox.tools.web_scraper.requests.get", return_value=_response(data)) as get:
        result = RetrieveTool(jina_api_key="jina-x").run("https://example.com")
    assert get.call_args.args[0] == "https://r.jina.ai/https://example.com"
    assert result.results == [{"title": "T", "content": "body", "url": "https://example.com/"}]


def test_tavily_extract():
    data = {"results": [{"url": "https://example.com", "raw_content": "extracted text"}]}
    with patch("answerbox.tools.web_scraper.requests.post", return_value=_response(data)):
        result = RetrieveTool(tavily_api_key="tvly-x").run("https://example.com")
    assert result.results[0]["content"] == "extracted text"


def test_retrieve_empty_page_is_error():
    with patch("answerbox.tools.web_scraper.requests.get", return_value=_response(text="<html></html>")):
        result = RetrieveTool().run("https://example.com")
    assert result.error == "No content retrieved from https://example.com"
    assert result.query == "https://example.com"


def test_retrieve_network_error_is_error_result():
    with patch("answerbox.tools.web_scraper.requests.get",
               side_effect=requests.ConnectionError("refused")):
        result = RetrieveTool().run("https://example.com")
    assert not result.ok
    assert result.error.startswith("Failed to retrieve https://example.com")
    assert result.query == "https://example.com"


# ---------------------------------------------------------------------------
# Video search
# ---------------------------------------------------------------------------

def test_video_search_without_key():
    tool = VideoSearchTool()
    assert not tool.configured
    assert tool.run("cats").error == "Video search API key not configured"


def test_video_search_maps_fields():
    data = {"videos": [{
        "title": "Cats", "snippet": "cute", "link": "https://youtu.be/1",
        "imageUrl": "https://img", "duration": "1:00", "channel": "C", "date": "today",
    }] * 3}
    with patch("answerbox.tools.video_search.requests.post", return_value=_response(data)) as post:
        result = VideoSearchTool(api_key="serper", max_results=2).run("cats")

    assert post.call_args.kwargs["headers"]["X-API-KEY"] == "serper"
    assert len(result.results) == 2
    assert result.results[0]["url"] == "https://youtu.be/1"
    assert result.results[0]["duration"] == "1:00"


def test_video_search_api_error():
    with patch("answerbox.tools.video_search.requests.post", return_value=_response(status=403)):
        result = VideoSearchTool(api_key="serper").run("cats")
    assert result.error.startswith("Video search API error")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_defaults():
    registry = ToolRegistry({})
    assert set(registry.list_tools()) == {SEARCH, RETRIEVE}


def test_registry_respects_flags():
    registry = ToolRegistry({
        "search": {"enabled": False},
        "video_search": {"enabled": True, "api_key": "k"},
    })
    assert registry.get(SEARCH) is None
    assert registry.get(VIDEO_SEARCH) is not None


def test_registry_global_off():
    assert ToolRegistry({"enabled": False}).list_tools() == []


def test_registry_unknown_tool():
    result = ToolRegistry({}).run_tool("calculator", "1+1")
    assert result.error == "Tool 'calculator' is not enabled"


def test_registry_dispatches():
    registry = ToolRegistry({})
    with patch.object(registry.tools[SEARCH], "run",
                      return_value=SearchResults(query="q")) as run:
        result = registry.run_tool(SEARCH, "q", max_results=2)
    run.assert_called_once_with("q", max_results=2)
    assert result.ok
