"""
Data models for chat storage.
A chat is an ordered list of typed messages. Several messages of one turn
share the same id; display order is the list order.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


def generate_id() -> str:
    """Short opaque id, unique within a chat."""
    return uuid4().hex[:16]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Message:
    """A single event in a chat's history."""
    id: str = field(default_factory=generate_id)
    role: str = ""            # "user", "assistant", "tool", "system"
    content: str = ""         # plain text or a JSON-serialized payload
    type: str | None = None
    name: str | None = None   # tool name, tool role only

    # ── Variant constructors ──────────────────────────────────────────────

    @classmethod
    def user_input(cls, text: str, id: str | None = None) -> "Message":
        return cls(id=id or generate_id(), role="user", type="input",
                   content=json.dumps({"input": text}))

    @classmethod
    def related_input(cls, query: str, id: str | None = None) -> "Message":
        return cls(id=id or generate_id(), role="user", type="input_related",
                   content=json.dumps({"related_query": query}))

    @classmethod
    def answer(cls, text: str, id: str) -> "Message":
        return cls(id=id, role="assistant", type="answer", content=text)

    @classmethod
    def related(cls, queries: list[str], id: str) -> "Message":
        return cls(id=id, role="assistant", type="related",
                   content=json.dumps(queries))

    @classmethod
    def followup(cls, id: str) -> "Message":
        return cls(id=id, role="assistant", type="followup", content="followup")

    @classmethod
    def end(cls, id: str) -> "Message":
        return cls(id=id, role="assistant", type="end", content="end")

    @classmethod
    def tool_result(cls, tool_name: str, output: dict, id: str) -> "Message":
        return cls(id=id, role="tool", type=tool_name, name=tool_name,
                   content=json.dumps(output))

    # ── Serialization ─────────────────────────────────────────────────────

    @property
    def text(self) -> str:
        """Display text for user inputs; raw content for everything else."""
        if self.role == "user" and self.type in ("input", "input_related"):
            try:
                payload = json.loads(self.content)
            except (json.JSONDecodeError, TypeError):
                return self.content
            if isinstance(payload, dict):
                key = "input" if self.type == "input" else "related_query"
                return str(payload.get(key, ""))
        return self.content

    def to_dict(self) -> dict:
        d = {"id": self.id, "role": self.role, "content": self.content}
        if self.type is not None:
            d["type"] = self.type
        if self.name is not None:
            d["name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        content = data.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content)
        return cls(
            id=data.get("id") or generate_id(),
            role=data.get("role", ""),
            content=content,
            type=data.get("type"),
            name=data.get("name"),
        )


class MessageKind(enum.Enum):
    """
    Closed set of renderable message variants, one per (role, type[, name]).
    Anything else classifies as UNSUPPORTED.
    """
    HIDDEN = "hidden"                 # no type, or the `end` sentinel
    USER_INPUT = "user.input"
    USER_INPUT_RELATED = "user.input_related"
    USER_INQUIRY = "user.inquiry"
    ASSISTANT_ANSWER = "assistant.answer"
    ASSISTANT_RELATED = "assistant.related"
    ASSISTANT_FOLLOWUP = "assistant.followup"
    TOOL_SEARCH = "tool.search"
    TOOL_RETRIEVE = "tool.retrieve"
    TOOL_VIDEO_SEARCH = "tool.videoSearch"
    TOOL_UNKNOWN = "tool.unknown"
    PLACEHOLDER = "placeholder"       # unknown role: keeps its slot, renders nothing
    UNSUPPORTED = "unsupported"       # known role, unknown type

    @classmethod
    def of(cls, message: Message) -> "MessageKind":
        """Classify a message. Never raises."""
        if not message.type or message.type == "end":
            return cls.HIDDEN
        if message.role == "user":
            return _USER_KINDS.get(message.type, cls.UNSUPPORTED)
        if message.role == "assistant":
            return _ASSISTANT_KINDS.get(message.type, cls.UNSUPPORTED)
        if message.role == "tool":
            return _TOOL_KINDS.get(message.name or "", cls.TOOL_UNKNOWN)
        return cls.PLACEHOLDER


_USER_KINDS = {
    "input": MessageKind.USER_INPUT,
    "input_related": MessageKind.USER_INPUT_RELATED,
    "inquiry": MessageKind.USER_INQUIRY,
}
_ASSISTANT_KINDS = {
    "answer": MessageKind.ASSISTANT_ANSWER,
    "related": MessageKind.ASSISTANT_RELATED,
    "followup": MessageKind.ASSISTANT_FOLLOWUP,
}
_TOOL_KINDS = {
    "search": MessageKind.TOOL_SEARCH,
    "retrieve": MessageKind.TOOL_RETRIEVE,
    "videoSearch": MessageKind.TOOL_VIDEO_SEARCH,
}


@dataclass
class Chat:
    """A conversation owned by one user."""
    id: str = field(default_factory=generate_id)
    title: str = "New Chat"
    user_id: str = "anonymous"
    path: str = ""
    share_path: str | None = None
    created_at: str = field(default_factory=_now)
    messages: list[Message] = field(default_factory=list)

    def __post_init__(self):
        if not self.path:
            self.path = f"/search/{self.id}"

    @property
    def is_shared(self) -> bool:
        return bool(self.share_path)

    def to_dict(self, include_owner: bool = True) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "path": self.path,
            "sharePath": self.share_path,
            "createdAt": self.created_at,
            "messages": [m.to_dict() for m in self.messages],
        }
        if include_owner:
            d["userId"] = self.user_id
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Chat":
        return cls(
            id=data.get("id") or generate_id(),
            title=data.get("title") or "New Chat",
            user_id=data.get("userId") or data.get("user_id") or "anonymous",
            path=data.get("path") or "",
            share_path=data.get("sharePath") or data.get("share_path"),
            created_at=data.get("createdAt") or data.get("created_at") or _now(),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
        )
