"""
Tests for multi-backend router.
Run with: pytest tests/test_backends.py
"""

import pytest
from unittest.mock import AsyncMock, patch, MagicMock

import httpx

from answerbox.backends.base import BaseBackend, BackendResponse
from answerbox.backends.openai_compat import OpenAICompatibleBackend
from answerbox.backends.router import MultiBackendRouter


def _mock_client(mock_client_cls, response=None, error=None):
    mock_client = AsyncMock()
    if error is not None:
        mock_client.post.side_effect = error
        mock_client.get.side_effect = error
    else:
        mock_client.post.return_value = response
        mock_client.get.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


class StubBackend(BaseBackend):
    """Backend with a scripted forward result."""

    def __init__(self, name, priority, response, healthy=True):
        super().__init__(name=name, url=f"http://{name}", priority=priority)
        self.response = response
        self.healthy = healthy
        self.bodies = []

    async def forward(self, body):
        self.bodies.append(body)
        return self.response

    async def health_check(self):
        return self.healthy

    async def list_models(self):
        return [f"{self.name}-model", "shared-model"]


def _ok(name, text="hi"):
    return BackendResponse(ok=True, data={"choices": [{"message": {"content": text}}]},
                           backend_name=name)


def _router(*backends):
    router = MultiBackendRouter([])
    router.backends = sorted(backends, key=lambda b: b.priority)
    return router


# ---------------------------------------------------------------------------
# BackendResponse
# ---------------------------------------------------------------------------

def test_backend_response_ok():
    """BackendResponse reports ok/error correctly."""
    ok = BackendResponse(ok=True, data={"choices": [{"message": {"content": "hi"}}]})
    assert ok.ok
    assert ok.content == "hi"

    err = BackendResponse(ok=False, error="timeout")
    assert not err.ok
    assert err.content == ""


# ---------------------------------------------------------------------------
# OpenAICompatibleBackend
# ---------------------------------------------------------------------------

def test_openai_compat_enabled_rules():
    assert OpenAICompatibleBackend("a", "http://x", api_key="k").enabled
    assert not OpenAICompatibleBackend("a", "http://x").enabled
    assert OpenAICompatibleBackend("a", "http://x", require_key=False).enabled
    assert not OpenAICompatibleBackend("a", "", api_key="k").enabled


@pytest.mark.asyncio
async def test_openai_compat_forward_success():
    """Forwards to /v1/chat/completions with the bearer key."""
    b = OpenAICompatibleBackend(name="test", url="http://fake/", api_key="sk-1")

    mock_resp = MagicMock()
    mock_resp.status_code = 200
    mock_resp.json.return_value = {"choices": [{"message": {"content": "hello"}}]}

    with patch("answerbox.backends.openai_compat.httpx.AsyncClient") as mock_client_cls:
        client = _mock_client(mock_client_cls, mock_resp)
        result = await b.forward({"model": "gpt", "messages": []})

    assert result.ok
    assert result.content == "hello"
    assert result.backend_name == "test"
    url = client.post.call_args.args[0]
    assert url == "http://fake/v1/chat/completions"
    assert client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-1"


@pytest.mark.asyncio
async def test_openai_compat_http_error():
    b = OpenAICompatibleBackend(name="test", url="http://fake", api_key="k")
    mock_resp = MagicMock()
    mock_resp.status_code = 429
    mock_resp.text = "rate limited"

    with patch("answerbox.backends.openai_compat.httpx.AsyncClient") as mock_client_cls:
        _mock_client(mock_client_cls, mock_resp)
        result = await b.forward({"model": "gpt", "messages": []})

    assert not result.ok
    assert result.status_code == 429
    assert "rate limited" in result.error


@pytest.mark.asyncio
async def test_openai_compat_timeout():
    """Timeouts come back as an error response, not an exception."""
    b = OpenAICompatibleBackend(name="test", url="http://fake", timeout=1, require_key=False)
    with patch("answerbox.backends.openai_compat.httpx.AsyncClient") as mock_client_cls:
        _mock_client(mock_client_cls, error=httpx.ReadTimeout("slow"))
        result = await b.forward({"model": "gpt", "messages": []})
    assert not result.ok
    assert "Timeout" in result.error


@pytest.mark.asyncio
async def test_openai_compat_list_models():
    b = OpenAICompatibleBackend(name="test", url="http://fake", require_key=False)
    mock_resp = MagicMock()
    mock_resp.json.return_value = {"data": [{"id": "a"}, {"name": "b"}, {}]}
    with patch("answerbox.backends.openai_compat.httpx.AsyncClient") as mock_client_cls:
        _mock_client(mock_client_cls, mock_resp)
        assert await b.list_models() == ["a", "b"]
    assert b.supports_model("a")
    assert not b.supports_model("c")


@pytest.mark.asyncio
async def test_openai_compat_health_unreachable():
    b = OpenAICompatibleBackend(name="test", url="http://fake", require_key=False)
    with patch("answerbox.backends.openai_compat.httpx.AsyncClient") as mock_client_cls:
        _mock_client(mock_client_cls, error=httpx.ConnectError("refused"))
        assert await b.health_check() is False


# ---------------------------------------------------------------------------
# MultiBackendRouter
# ---------------------------------------------------------------------------

def test_router_builds_from_config():
    router = MultiBackendRouter([
        {"name": "cloud", "provider": "openai_compat", "url": "http://c", "api_key": "k", "priority": 2},
        {"name": "local", "provider": "ollama", "url": "http://l", "priority": 1},
        {"name": "bad", "provider": "carrier-pigeon", "url": "http://p"},
        {"name": "nourl", "provider": "openai_compat"},
    ])
    assert [b.name for b in router.backends] == ["local", "cloud"]
    assert router.is_provider_enabled("local")
    assert router.is_provider_enabled("cloud")
    assert not router.is_provider_enabled("bad")


def test_router_keyless_hosted_provider_is_disabled():
    router = MultiBackendRouter([{"name": "cloud", "provider": "openai_compat", "url": "http://c"}])
    assert router.get_backend("cloud") is not None
    assert not router.is_provider_enabled("cloud")


@pytest.mark.asyncio
async def test_router_priority_and_fallback():
    first = StubBackend("first", 1, BackendResponse(ok=False, error="down"))
    second = StubBackend("second", 2, _ok("second"))
    result = await _router(second, first).forward({"model": "m", "messages": []})
    assert result.ok
    assert result.backend_name == "second"
    assert len(first.bodies) == 1


@pytest.mark.asyncio
async def test_router_all_fail():
    a = StubBackend("a", 1, BackendResponse(ok=False, error="x"))
    b = StubBackend("b", 2, BackendResponse(ok=False, error="y"))
    result = await _router(a, b).forward({"model": "m"})
    assert not result.ok
    assert result.status_code == 503
    assert result.error == "All backends failed: a: x; b: y"


@pytest.mark.asyncio
async def test_router_no_backends():
    result = await MultiBackendRouter([]).forward({"model": "m"})
    assert result.error == "All backends failed: No backends available"


@pytest.mark.asyncio
async def test_router_provider_prefix_pins_backend():
    a = StubBackend("a", 1, _ok("a"))
    b = StubBackend("b", 2, _ok("b"))
    result = await _router(a, b).forward({"model": "b:llama3:8b"})
    assert result.backend_name == "b"
    assert b.bodies[0]["model"] == "llama3:8b"
    assert a.bodies == []


@pytest.mark.asyncio
async def test_router_unknown_prefix_is_part_of_model_name():
    a = StubBackend("a", 1, _ok("a"))
    await _router(a).forward({"model": "llama3:8b"})
    assert a.bodies[0]["model"] == "llama3:8b"


@pytest.mark.asyncio
async def test_router_list_all_models_dedupes():
    a = StubBackend("a", 1, _ok("a"))
    b = StubBackend("b", 2, _ok("b"))
    data = (await _router(a, b).list_all_models())["data"]
    assert [m["id"] for m in data] == ["a-model", "shared-model", "b-model"]
    assert data[1]["owned_by"] == "a"


@pytest.mark.asyncio
async def test_router_health():
    a = StubBackend("a", 1, _ok("a"), healthy=False)
    health = await _router(a).health()
    assert health == {"a": {"healthy": False, "priority": 1}}
