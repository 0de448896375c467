"""
Generic OpenAI-compatible backend.

Any endpoint that speaks /v1/chat/completions and /v1/models works here:
hosted gateways (OpenAI, OpenRouter, Groq, DeepSeek, ...) as well as local
servers (Ollama, llama.cpp, vLLM) with `require_key: false`.
"""

from __future__ import annotations

import logging
import time

import httpx

from answerbox.backends.base import BaseBackend, BackendResponse

logger = logging.getLogger(__name__)


class OpenAICompatibleBackend(BaseBackend):
    """Backend for OpenAI-compatible chat completion endpoints."""

    def __init__(
        self,
        name: str,
        url: str,
        timeout: int = 120,
        priority: int = 1,
        api_key: str = "",
        require_key: bool = True,
    ):
        super().__init__(name, url, timeout, priority)
        self.api_key = api_key
        self.require_key = require_key

    @property
    def enabled(self) -> bool:
        """A provider counts as enabled once it has a base URL (and key, if required)."""
        if not self.url:
            return False
        return bool(self.api_key) or not self.require_key

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def forward(self, body: dict) -> BackendResponse:
        """Forward a non-streaming request."""
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/v1/chat/completions",
                    json=body,
                    headers=self._headers(),
                )
            latency = (time.monotonic() - t0) * 1000

            if resp.status_code >= 400:
                return BackendResponse(
                    ok=False,
                    status_code=resp.status_code,
                    backend_name=self.name,
                    latency_ms=latency,
                    error=f"HTTP {resp.status_code}: {resp.text[:200]}",
                )
            return BackendResponse(
                ok=True,
                status_code=resp.status_code,
                data=resp.json(),
                backend_name=self.name,
                latency_ms=latency,
            )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Backend '%s' timed out after %.0fms", self.name, latency)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=str(e),
            )

    async def health_check(self) -> bool:
        """Check endpoint is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.url}/v1/models", headers=self._headers())
                return resp.status_code == 200
        except Exception:
            return False

    async def list_models(self) -> list[str]:
        """Fetch available models from endpoint."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.url}/v1/models", headers=self._headers())
                resp.raise_for_status()
                data = resp.json()
            models = [m.get("id", m.get("name", "")) for m in data.get("data", [])]
            self._available_models = [m for m in models if m]
            return self._available_models
        except Exception as e:
            logger.warning("Failed to list models from '%s': %s", self.name, e)
            return []
