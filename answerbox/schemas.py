"""
Request schemas for the HTTP surface.

Bodies are validated here before anything reaches the store or the chat
core; a failure becomes a 400 with the per-field errors pydantic reports.
Field names follow the JSON the web client sends (camelCase), with
snake_case accepted too.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError


MessageRole = Literal["user", "assistant", "system", "function", "data", "tool"]
MessageType = Literal[
    "answer", "related", "skip", "inquiry", "input", "input_related",
    "tool", "followup", "end",
]
Theme = Literal["light", "dark", "system"]
ToolCallType = Literal["native", "manual"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN = r"^https?://\S+$"


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageIn(_Schema):
    id: str
    role: MessageRole
    content: str | dict[str, Any]
    name: str | None = None
    type: MessageType | None = None


class ChatIn(_Schema):
    id: str | None = None
    title: str
    user_id: str = Field(alias="userId")
    messages: list[MessageIn]
    path: str | None = None
    share_path: str | None = Field(default=None, alias="sharePath")
    created_at: str | None = Field(default=None, alias="createdAt")


class ChatUpdate(_Schema):
    title: str | None = None
    messages: list[MessageIn] | None = None
    share_path: str | None = Field(default=None, alias="sharePath")


class ChatSubmit(_Schema):
    """One turn: the user's text against a chat id."""
    chat_id: str | None = Field(default=None, alias="chatId")
    user_id: str = Field(default="anonymous", alias="userId")
    input: str = Field(min_length=1)
    model: str | None = None
    related: bool = False
    stream: bool = False


class ModelConfig(_Schema):
    id: str
    name: str
    provider: str
    provider_id: str = Field(alias="providerId")
    enabled: bool
    tool_call_type: ToolCallType = Field(alias="toolCallType")
    tool_call_model: str | None = Field(default=None, alias="toolCallModel")


class ModelUpdate(_Schema):
    name: str | None = None
    provider: str | None = None
    provider_id: str | None = Field(default=None, alias="providerId")
    enabled: bool | None = None
    tool_call_type: ToolCallType | None = Field(default=None, alias="toolCallType")
    tool_call_model: str | None = Field(default=None, alias="toolCallModel")


class SearchRequest(_Schema):
    query: str = Field(min_length=1)
    max_results: int = Field(default=10, ge=1, le=50, alias="maxResults")
    search_depth: Literal["basic", "advanced"] = Field(default="basic", alias="searchDepth")
    include_domains: list[str] = Field(default_factory=list, alias="includeDomains")
    exclude_domains: list[str] = Field(default_factory=list, alias="excludeDomains")
    user_id: str | None = Field(default=None, alias="userId")


class RetrieveRequest(_Schema):
    url: str = Field(pattern=URL_PATTERN)


class VideoSearchRequest(_Schema):
    query: str = Field(min_length=1)
    user_id: str | None = Field(default=None, alias="userId")


class UserPreferencesIn(_Schema):
    theme: Theme = "system"
    default_model: str | None = Field(default=None, alias="defaultModel")


class UserIn(_Schema):
    id: str | None = None
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    preferences: UserPreferencesIn | None = None


class Preferences(_Schema):
    theme: Theme | None = None
    default_model: str | None = Field(default=None, alias="defaultModel")
    search_mode: bool | None = Field(default=None, alias="searchMode")
    history_enabled: bool | None = Field(default=None, alias="historyEnabled")
    notifications_enabled: bool | None = Field(default=None, alias="notificationsEnabled")


class SearchHistoryEntry(_Schema):
    query: str = Field(min_length=1)
    timestamp: int | None = None
    results: int | None = None
    source: str | None = None


class EnhanceRequest(_Schema):
    text: str = Field(min_length=1)


def dump(model: BaseModel, partial: bool = False) -> dict:
    """Client-facing dict (camelCase). partial=True keeps only fields that were sent."""
    return model.model_dump(by_alias=True, exclude_unset=partial)


def error_details(exc: ValidationError) -> list[dict]:
    """Per-field errors, trimmed to what a client needs."""
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
