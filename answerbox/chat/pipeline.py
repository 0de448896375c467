"""
Answer pipeline: one user turn -> the messages that answer it.

Given the chat history (ending with the user's new input) the pipeline runs
the enabled tools, asks the model for an answer with the tool output injected
as context, asks once more for related follow-up queries, and closes the turn.
Every message it yields carries the same turn id:

    tool result(s) -> answer -> related -> followup -> end

Only the last MAX_MESSAGES history messages are replayed to the model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import AsyncIterator

from answerbox.backends.router import MultiBackendRouter
from answerbox.storage.models import Message, generate_id
from answerbox.tools.registry import RETRIEVE, SEARCH, VIDEO_SEARCH, ToolRegistry
from answerbox.tools.web_search import SearchResults

logger = logging.getLogger(__name__)

MAX_MESSAGES = 6
MAX_RETRIEVE_URLS = 3

_URL_RE = re.compile(r"https?://[^\s<>\"')]+")

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful search assistant. Answer the user's question using the "
    "provided search and page results where they are relevant, citing sources "
    "as markdown links. If the results do not contain the answer, say so and "
    "answer from general knowledge."
)

RELATED_PROMPT = (
    "Based on the conversation above, suggest {count} short follow-up search "
    "queries the user might ask next. Reply with a JSON array of strings only."
)


class PipelineError(Exception):
    """The model could not produce an answer for this turn."""


def _to_model_messages(history: list[Message]) -> list[dict]:
    """Replay the tail of the history as OpenAI-style chat messages."""
    out = []
    for message in history[-MAX_MESSAGES:]:
        if message.role == "user" and message.type in ("input", "input_related", "inquiry"):
            out.append({"role": "user", "content": message.text})
        elif message.role == "assistant" and message.type == "answer":
            out.append({"role": "assistant", "content": message.content})
    return out


def _latest_query(history: list[Message]) -> str:
    for message in reversed(history):
        if message.role == "user" and message.type in ("input", "input_related", "inquiry"):
            return message.text
    return ""


def _format_results(name: str, result: SearchResults) -> str:
    lines = [f"[{name}] {result.query}"]
    for i, item in enumerate(result.results, 1):
        title = item.get("title", "")
        url = item.get("url", "")
        content = item.get("content", "")
        lines.append(f"{i}. {title} ({url})\n{content}")
    return "\n".join(lines)


def _parse_related(text: str) -> list[str] | None:
    """Extract a JSON array of strings from the model's reply, or None."""
    match = re.search(r"\[.*\]", text, re.DOTALL)
    if not match:
        return None
    try:
        queries = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(queries, list) or not all(isinstance(q, str) for q in queries):
        return None
    return queries


class AnswerPipeline:
    """Runs tools and model calls for one turn."""

    def __init__(
        self,
        router: MultiBackendRouter,
        tools: ToolRegistry | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        related_count: int = 3,
        temperature: float = 0.3,
    ):
        self.router = router
        self.tools = tools
        self.system_prompt = system_prompt
        self.related_count = related_count
        self.temperature = temperature
        self.search_enabled = True

    async def _run_tool(self, name: str, query: str) -> SearchResults | None:
        if self.tools is None or self.tools.get(name) is None:
            return None
        return await asyncio.to_thread(self.tools.run_tool, name, query)

    async def _complete(self, model: str, messages: list[dict]) -> str:
        body = {
            "model": model,
            "messages": messages,
            "stream": False,
            "temperature": self.temperature,
        }
        response = await self.router.forward(body)
        if not response.ok:
            raise PipelineError(response.error or f"backend returned {response.status_code}")
        return response.content

    async def run(self, history: list[Message], model: str) -> AsyncIterator[Message]:
        """Yield the messages of one assistant turn."""
        turn_id = generate_id()
        query = _latest_query(history)
        if not query:
            raise PipelineError("history has no user input to answer")

        logger.info("Turn %s: model=%s query=%r", turn_id, model, query[:80])
        context: list[str] = []

        search = await self._run_tool(SEARCH, query) if self.search_enabled else None
        if search is not None:
            yield Message.tool_result(SEARCH, search.to_dict(), id=turn_id)
            if search.ok:
                context.append(_format_results(SEARCH, search))

        for url in _URL_RE.findall(query)[:MAX_RETRIEVE_URLS]:
            page = await self._run_tool(RETRIEVE, url)
            if page is None:
                break
            yield Message.tool_result(RETRIEVE, page.to_dict(), id=turn_id)
            if page.ok:
                context.append(_format_results(RETRIEVE, page))

        videos = await self._run_tool(VIDEO_SEARCH, query)
        if videos is not None:
            yield Message.tool_result(VIDEO_SEARCH, videos.to_dict(), id=turn_id)

        messages = [{"role": "system", "content": self.system_prompt}]
        if context:
            messages.append({
                "role": "system",
                "content": "The following tool results are available:\n\n" + "\n\n".join(context),
            })
        messages.extend(_to_model_messages(history))

        answer = await self._complete(model, messages)
        yield Message.answer(answer, id=turn_id)

        related = await self._related(model, messages + [{"role": "assistant", "content": answer}])
        if related:
            yield Message.related(related, id=turn_id)

        yield Message.followup(id=turn_id)
        yield Message.end(id=turn_id)

    async def _related(self, model: str, messages: list[dict]) -> list[str] | None:
        """Ask for follow-up queries. Any failure just skips the section."""
        prompt = RELATED_PROMPT.format(count=self.related_count)
        try:
            text = await self._complete(model, messages + [{"role": "user", "content": prompt}])
        except PipelineError as e:
            logger.warning("Related queries skipped: %s", e)
            return None
        queries = _parse_related(text)
        if queries is None:
            logger.debug("Related queries reply was not a JSON array: %r", text[:200])
            return None
        return queries[: self.related_count]
