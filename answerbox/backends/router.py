"""
Multi-backend router: priority-based routing with fallback.

The answer pipeline talks to this router only. A model may be addressed as
"<provider>:<model>" to pin it to one backend; otherwise backends are tried
in priority order and the first success wins.
"""

from __future__ import annotations

import logging

from answerbox.backends.base import BaseBackend, BackendResponse
from answerbox.backends.openai_compat import OpenAICompatibleBackend

logger = logging.getLogger(__name__)

# Provider kind -> (backend class, api key required)
PROVIDERS: dict[str, tuple[type[BaseBackend], bool]] = {
    "openai_compat": (OpenAICompatibleBackend, True),
    "ollama": (OpenAICompatibleBackend, False),
}


class MultiBackendRouter:
    """
    Routes requests across multiple backends by priority.
    Lower priority number = tried first.
    """

    def __init__(self, backends_config: list[dict]):
        self.backends: list[BaseBackend] = []
        for cfg in backends_config:
            backend = self._create_backend(cfg)
            if backend:
                self.backends.append(backend)

        # Sort by priority (lower = first)
        self.backends.sort(key=lambda b: b.priority)

        names = [f"{b.name}(p{b.priority})" for b in self.backends]
        logger.info("Backend router initialized: %s", " -> ".join(names) or "no backends")

    @staticmethod
    def _create_backend(cfg: dict) -> BaseBackend | None:
        """Instantiate a backend from config dict."""
        provider = cfg.get("provider", "openai_compat")
        entry = PROVIDERS.get(provider)
        if not entry:
            logger.warning("Unknown backend provider '%s', skipping", provider)
            return None
        cls, require_key = entry

        name = cfg.get("name", provider)
        url = cfg.get("url", "")
        if not url:
            logger.warning("Backend '%s' has no url, skipping", name)
            return None

        return cls(
            name=name,
            url=url,
            timeout=cfg.get("timeout", 120),
            priority=cfg.get("priority", 99),
            api_key=cfg.get("api_key", ""),
            require_key=cfg.get("require_key", require_key),
        )

    def get_backend(self, name: str) -> BaseBackend | None:
        """Get a specific backend by name."""
        for b in self.backends:
            if b.name == name:
                return b
        return None

    def is_provider_enabled(self, provider_id: str) -> bool:
        """True if a configured backend answers to this provider id and is usable."""
        backend = self.get_backend(provider_id)
        return bool(backend and backend.enabled)

    def _resolve(self, model: str) -> tuple[list[BaseBackend], str]:
        """Split an optional "<provider>:" prefix off the model name."""
        if ":" in model:
            prefix, rest = model.split(":", 1)
            pinned = self.get_backend(prefix)
            if pinned is not None:
                return [pinned], rest
        return [b for b in self.backends if b.enabled], model

    async def forward(self, body: dict) -> BackendResponse:
        """
        Forward a non-streaming request.
        Tries backends in priority order; returns first success.
        """
        candidates, model = self._resolve(body.get("model", ""))
        body = {**body, "model": model}
        errors: list[str] = []

        for backend in candidates:
            if not backend.supports_model(model):
                continue

            logger.debug("Trying backend '%s' for model '%s'", backend.name, model)
            response = await backend.forward(body)

            if response.ok:
                logger.info(
                    "Backend '%s' served model '%s' in %.0fms",
                    backend.name, model, response.latency_ms,
                )
                return response

            errors.append(f"{backend.name}: {response.error}")
            logger.warning(
                "Backend '%s' failed for model '%s': %s",
                backend.name, model, response.error,
            )

        error_summary = "; ".join(errors) if errors else "No backends available"
        logger.error("All backends exhausted for model '%s': %s", model, error_summary)
        return BackendResponse(
            ok=False,
            status_code=503,
            backend_name="router",
            error=f"All backends failed: {error_summary}",
        )

    async def list_all_models(self) -> dict:
        """
        Aggregate models from all backends into a /v1/models style response.
        Deduplicates by model id.
        """
        seen: set[str] = set()
        all_models: list[dict] = []

        for backend in self.backends:
            models = await backend.list_models()
            for model_id in models:
                if model_id not in seen:
                    seen.add(model_id)
                    all_models.append({
                        "id": model_id,
                        "object": "model",
                        "owned_by": backend.name,
                    })

        return {"object": "list", "data": all_models}

    async def health(self) -> dict:
        """Health check all backends."""
        results = {}
        for backend in self.backends:
            ok = await backend.health_check()
            results[backend.name] = {"healthy": ok, "priority": backend.priority}
        return results
