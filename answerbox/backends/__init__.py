"""
LLM backends for answerbox.
Priority-based routing with fallback across OpenAI-compatible endpoints.
"""
from answerbox.backends.base import BaseBackend, BackendResponse
from answerbox.backends.openai_compat import OpenAICompatibleBackend
from answerbox.backends.router import MultiBackendRouter

__all__ = [
    "BaseBackend",
    "BackendResponse",
    "MultiBackendRouter",
    "OpenAICompatibleBackend",
]
