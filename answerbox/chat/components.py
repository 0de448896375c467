"""
Renderable UI payloads.

A Component is an opaque instruction for the client ("draw a search
section with these props"). UIElements wrap one component with the id of the
message that produced it and its live signals. GroupedUnits are what the
renderer receives: every component of one id, in encounter order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from answerbox.chat.streamable import StreamableValue

# Component names understood by the client
USER_MESSAGE = "user_message"
COPILOT_DISPLAY = "copilot_display"
ANSWER_SECTION = "answer_section"
SEARCH_RELATED = "search_related"
FOLLOWUP_PANEL = "followup_panel"
SEARCH_SECTION = "search_section"
RETRIEVE_SECTION = "retrieve_section"
VIDEO_SEARCH_SECTION = "video_search_section"


def _plain(value: Any) -> Any:
    if isinstance(value, StreamableValue):
        return value.value
    return value


@dataclass
class Component:
    name: str
    props: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"name": self.name, "props": {k: _plain(v) for k, v in self.props.items()}}


@dataclass
class UIElement:
    id: str
    component: Component | None = None
    is_generating: StreamableValue | None = None
    is_collapsed: StreamableValue | None = None

    @property
    def generating(self) -> bool:
        return bool(self.is_generating.value) if self.is_generating else False

    @property
    def collapsed(self) -> bool:
        return bool(self.is_collapsed.value) if self.is_collapsed else False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "component": self.component.to_dict() if self.component else None,
            "isGenerating": self.generating,
            "isCollapsed": self.collapsed,
        }


@dataclass
class GroupedUnit:
    id: str
    components: list[Component | None] = field(default_factory=list)
    is_collapsed: StreamableValue | None = None

    @property
    def collapsed(self) -> bool:
        return bool(self.is_collapsed.value) if self.is_collapsed else False

    def to_dict(self, is_last: bool = False) -> dict:
        return {
            "id": self.id,
            "components": [c.to_dict() if c else None for c in self.components],
            "isCollapsed": self.collapsed,
            "isLastMessage": is_last,
        }
