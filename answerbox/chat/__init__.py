"""
Chat state: projection of stored history into UI elements, grouping by turn,
and the live session controller that runs turns through the answer pipeline.
"""
from answerbox.chat.grouper import group, render, with_last_flag
from answerbox.chat.pipeline import MAX_MESSAGES, AnswerPipeline, PipelineError
from answerbox.chat.projector import project, project_message
from answerbox.chat.session import (
    ChatSession,
    SessionManager,
    SessionState,
    TurnFailedError,
    TurnInProgressError,
)
from answerbox.chat.streamable import StreamableValue

__all__ = [
    "MAX_MESSAGES",
    "AnswerPipeline",
    "ChatSession",
    "PipelineError",
    "SessionManager",
    "SessionState",
    "StreamableValue",
    "TurnFailedError",
    "TurnInProgressError",
    "group",
    "project",
    "project_message",
    "render",
    "with_last_flag",
]
