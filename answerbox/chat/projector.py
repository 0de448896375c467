"""
State projector: persisted chat history -> ordered UI elements.

project() is pure. It never reorders, and a bad message only affects its own
element. Two kinds of "nothing" come out of a message:

  * dropped      - the message yields None and disappears from the output
                   (sentinels, share-page redaction, unsupported types)
  * placeholder  - a UIElement with component=None keeps the id's slot so
                   grouping still sees it (unreadable content, unknown roles)
"""

import json
import logging
from typing import Callable

from answerbox.chat import components as c
from answerbox.chat.components import Component, UIElement
from answerbox.chat.streamable import StreamableValue
from answerbox.storage.models import Message, MessageKind

logger = logging.getLogger(__name__)

SHARE_HIDDEN_TYPES = ("related", "followup")


class _Context:
    __slots__ = ("index", "chat_id", "is_share_page")

    def __init__(self, index: int, chat_id: str, is_share_page: bool):
        self.index = index
        self.chat_id = chat_id
        self.is_share_page = is_share_page


def _placeholder(message: Message) -> UIElement:
    return UIElement(id=message.id, component=None)


def _user_input(message: Message, ctx: _Context) -> UIElement:
    key = "input" if message.type == "input" else "related_query"
    try:
        payload = json.loads(message.content)
        text = payload[key]
    except (json.JSONDecodeError, TypeError, KeyError) as e:
        logger.debug("Unreadable user message %s: %s", message.id, e)
        return _placeholder(message)
    return UIElement(
        id=message.id,
        component=Component(c.USER_MESSAGE, {
            "message": text,
            "chat_id": ctx.chat_id,
            "show_share": ctx.index == 0 and not ctx.is_share_page,
        }),
    )


def _user_inquiry(message: Message, ctx: _Context) -> UIElement:
    return UIElement(
        id=message.id,
        component=Component(c.COPILOT_DISPLAY, {"content": message.content}),
    )


def _answer(message: Message, ctx: _Context) -> UIElement:
    return UIElement(
        id=message.id,
        component=Component(c.ANSWER_SECTION, {
            "result": StreamableValue.resolved(message.content),
        }),
    )


def _related(message: Message, ctx: _Context) -> UIElement:
    try:
        queries = json.loads(message.content)
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug("Unreadable related queries %s: %s", message.id, e)
        return _placeholder(message)
    return UIElement(
        id=message.id,
        component=Component(c.SEARCH_RELATED, {
            "related_queries": StreamableValue.resolved(queries),
        }),
    )


def _followup(message: Message, ctx: _Context) -> UIElement:
    return UIElement(
        id=message.id,
        component=Component(c.FOLLOWUP_PANEL, {"title": "Follow-up"}),
    )


_TOOL_COMPONENTS = {
    MessageKind.TOOL_SEARCH: c.SEARCH_SECTION,
    MessageKind.TOOL_RETRIEVE: c.RETRIEVE_SECTION,
    MessageKind.TOOL_VIDEO_SEARCH: c.VIDEO_SEARCH_SECTION,
}


def _tool(message: Message, ctx: _Context) -> UIElement | None:
    try:
        output = json.loads(message.content)
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug("Unreadable tool output %s (%s): %s", message.id, message.name, e)
        return _placeholder(message)

    kind = MessageKind.of(message)
    name = _TOOL_COMPONENTS.get(kind)
    if name is None:
        logger.debug("Unknown tool %r on message %s, not rendered", message.name, message.id)
        return None

    if name == c.RETRIEVE_SECTION:
        props = {"data": output}
    else:
        props = {"result": StreamableValue.resolved(json.dumps(output))}
    return UIElement(
        id=message.id,
        component=Component(name, props),
        is_collapsed=StreamableValue.resolved(True),
    )


_HANDLERS: dict[MessageKind, Callable[[Message, _Context], UIElement | None]] = {
    MessageKind.USER_INPUT: _user_input,
    MessageKind.USER_INPUT_RELATED: _user_input,
    MessageKind.USER_INQUIRY: _user_inquiry,
    MessageKind.ASSISTANT_ANSWER: _answer,
    MessageKind.ASSISTANT_RELATED: _related,
    MessageKind.ASSISTANT_FOLLOWUP: _followup,
    MessageKind.TOOL_SEARCH: _tool,
    MessageKind.TOOL_RETRIEVE: _tool,
    MessageKind.TOOL_VIDEO_SEARCH: _tool,
    MessageKind.TOOL_UNKNOWN: _tool,
    MessageKind.PLACEHOLDER: lambda message, ctx: _placeholder(message),
}


def project_message(
    message: Message,
    index: int,
    chat_id: str = "",
    is_share_page: bool = False,
) -> UIElement | None:
    """Project one message at position `index` of its history."""
    kind = MessageKind.of(message)
    if kind is MessageKind.HIDDEN:
        return None
    if is_share_page and message.type in SHARE_HIDDEN_TYPES:
        return None

    handler = _HANDLERS.get(kind)
    if handler is None:
        logger.debug(
            "No projection for role=%s type=%s name=%s (message %s)",
            message.role, message.type, message.name, message.id,
        )
        return None
    return handler(message, _Context(index, chat_id, is_share_page))


def project(
    history: list[Message],
    is_share_page: bool = False,
    chat_id: str = "",
) -> list[UIElement]:
    """Project a whole history, dropping messages that render to nothing."""
    elements = (
        project_message(message, index, chat_id, is_share_page)
        for index, message in enumerate(history)
    )
    return [e for e in elements if e is not None]
