"""
Tests for Thai output enhancement.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from answerbox.enhance import EnhanceError, ThaiEnhancer, contains_thai


def _client(mock_client_cls, response=None, error=None):
    mock_client = AsyncMock()
    if error is not None:
        mock_client.post.side_effect = error
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def test_contains_thai():
    assert contains_thai("สวัสดีครับ")
    assert contains_thai("hello สวัสดี")
    assert not contains_thai("hello")
    assert not contains_thai("")


def test_from_config():
    e = ThaiEnhancer.from_config({"enhance": {"url": "http://thai/", "api_key": "k", "timeout": 5}})
    assert e.url == "http://thai"
    assert e.timeout == 5
    assert e.configured
    assert not ThaiEnhancer.from_config({}).configured


@pytest.mark.asyncio
async def test_enhance_returns_model_text():
    resp = MagicMock()
    resp.json.return_value = {"choices": [{"message": {"content": "  ข้อความใหม่  "}}]}
    enhancer = ThaiEnhancer(url="http://thai", api_key="k", model="m")

    with patch("answerbox.enhance.httpx.AsyncClient") as client_cls:
        client = _client(client_cls, resp)
        result = await enhancer.enhance("ข้อความเดิม")

    assert result == "ข้อความใหม่"
    body = client.post.call_args.kwargs["json"]
    assert body["model"] == "m"
    assert "ข้อความเดิม" in body["messages"][1]["content"]
    assert client.post.call_args.args[0] == "http://thai/v1/chat/completions"


@pytest.mark.asyncio
async def test_empty_reply_keeps_input():
    resp = MagicMock()
    resp.json.return_value = {"choices": []}
    with patch("answerbox.enhance.httpx.AsyncClient") as client_cls:
        _client(client_cls, resp)
        result = await ThaiEnhancer(url="http://thai", api_key="k").enhance("เดิม")
    assert result == "เดิม"


@pytest.mark.asyncio
async def test_network_error_raises_enhance_error():
    with patch("answerbox.enhance.httpx.AsyncClient") as client_cls:
        _client(client_cls, error=httpx.ConnectError("refused"))
        with pytest.raises(EnhanceError):
            await ThaiEnhancer(url="http://thai", api_key="k").enhance("เดิม")


@pytest.mark.asyncio
async def test_not_configured():
    with pytest.raises(EnhanceError):
        await ThaiEnhancer().enhance("เดิม")
