"""
Incremental session controller.

A ChatSession holds one open conversation in two forms:

  messages  - the persisted history (what gets saved to the store)
  ui        - the live UI stream, elements appended as the turn progresses

submit() appends the user's element before any model or tool work starts,
then feeds every message the pipeline yields into both. Only one turn may be
in flight per session: a second submit() while busy raises
TurnInProgressError.

State machine:

    IDLE -> SUBMITTING -> STREAMING -> IDLE
    SUBMITTING | STREAMING -> ERROR -> IDLE   (after rollback)

On failure the session notifies on_error, rolls back according to
rollback_policy ("full" empties the conversation, "turn" drops only the
failed turn) and raises TurnFailedError once it is IDLE again.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import OrderedDict
from typing import Callable

from answerbox.chat.components import UIElement
from answerbox.chat.grouper import group
from answerbox.chat.pipeline import AnswerPipeline
from answerbox.chat.projector import project, project_message
from answerbox.chat.streamable import StreamableValue
from answerbox.storage.models import Chat, Message, generate_id
from answerbox.storage.sqlite_store import ChatOwnershipError, SQLiteStore

logger = logging.getLogger(__name__)

ROLLBACK_FULL = "full"
ROLLBACK_TURN = "turn"
ROLLBACK_POLICIES = (ROLLBACK_FULL, ROLLBACK_TURN)


class SessionState(enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    ERROR = "error"


class TurnInProgressError(RuntimeError):
    """A turn is already running for this conversation."""


class TurnFailedError(RuntimeError):
    """The pipeline failed; the session has been rolled back."""


class ChatSession:
    """One open conversation and its live UI stream."""

    def __init__(
        self,
        chat_id: str | None = None,
        user_id: str = "anonymous",
        pipeline: AnswerPipeline | None = None,
        store: SQLiteStore | None = None,
        chat: Chat | None = None,
        rollback_policy: str = ROLLBACK_FULL,
        on_error: Callable[[Exception], None] | None = None,
        persist: bool = True,
    ):
        if rollback_policy not in ROLLBACK_POLICIES:
            raise ValueError(f"unknown rollback policy: {rollback_policy!r}")
        self.chat_id = chat.id if chat else (chat_id or generate_id())
        self.user_id = user_id
        self.pipeline = pipeline
        self.store = store
        self.chat = chat
        self.rollback_policy = rollback_policy
        self.on_error = on_error
        self.persist = persist

        self.messages: list[Message] = list(chat.messages) if chat else []
        self.ui: list[UIElement] = project(self.messages, chat_id=self.chat_id)
        self.state = SessionState.IDLE

        self._listeners: list[Callable[[UIElement], None]] = []
        self._generating: StreamableValue | None = None
        self._task: asyncio.Task | None = None
        self._stop_requested = False

    @property
    def busy(self) -> bool:
        return self.state is not SessionState.IDLE

    # ── Listeners ─────────────────────────────────────────────────────────

    def add_listener(self, callback: Callable[[UIElement], None]) -> Callable[[], None]:
        """Receive every element appended to the live stream. Returns an unsubscribe."""
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return remove

    def _emit(self, element: UIElement) -> None:
        self.ui.append(element)
        for callback in list(self._listeners):
            try:
                callback(element)
            except Exception as e:
                logger.warning("Session %s listener failed: %s", self.chat_id, e)

    # ── Appends ───────────────────────────────────────────────────────────

    def append_user_turn(self, text: str, related: bool = False) -> Message:
        """Append the user's message to history and its element to the live stream."""
        message = Message.related_input(text) if related else Message.user_input(text)
        index = len(self.messages)
        self.messages.append(message)
        element = project_message(message, index, self.chat_id)
        if element is not None:
            self._emit(element)
        return message

    def append_assistant_event(self, message: Message) -> UIElement | None:
        """Append one pipeline message. Sentinels go to history only."""
        index = len(self.messages)
        self.messages.append(message)
        element = project_message(message, index, self.chat_id)
        if element is None:
            return None
        if element.is_generating is None and self._generating is not None:
            element.is_generating = self._generating
        self._emit(element)
        return element

    def reset(self) -> None:
        """Drop history and live stream. Not allowed mid-turn."""
        if self.busy:
            raise TurnInProgressError(f"chat {self.chat_id} has a turn in flight")
        self.messages = []
        self.ui = []

    # ── Turns ─────────────────────────────────────────────────────────────

    async def submit(self, text: str, model: str | None = None, related: bool = False) -> list[Message]:
        """
        Run one turn. Returns the assistant/tool messages appended.

        Raises TurnInProgressError if a turn is already running,
        TurnFailedError if the pipeline failed (after rollback), and
        StorageError if the turn succeeded but could not be saved.
        """
        if self.busy:
            raise TurnInProgressError(f"chat {self.chat_id} has a turn in flight")
        if self.pipeline is None:
            raise RuntimeError("session has no pipeline")

        # Gate is set before the first await
        self.state = SessionState.SUBMITTING
        self._stop_requested = False
        self._generating = StreamableValue(True)
        mark = (len(self.messages), len(self.ui))

        self.append_user_turn(text, related)
        produced: list[Message] = []
        self._task = asyncio.create_task(self._consume(model or "", produced))
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._stop_requested:
                self._finish()
                raise
            logger.info("Turn in chat %s stopped after %d messages", self.chat_id, len(produced))
        except Exception as e:
            self.state = SessionState.ERROR
            self._rollback(e, mark)
            self._finish()
            raise TurnFailedError(str(e) or type(e).__name__) from e

        self._finish()
        self._save()
        return produced

    async def _consume(self, model: str, produced: list[Message]) -> None:
        async for message in self.pipeline.run(list(self.messages), model):
            self.state = SessionState.STREAMING
            self.append_assistant_event(message)
            produced.append(message)

    def _finish(self) -> None:
        if self._generating is not None:
            self._generating.resolve_if_pending(False)
        self._task = None
        self.state = SessionState.IDLE

    def _rollback(self, error: Exception, mark: tuple[int, int]) -> None:
        logger.error("Turn failed in chat %s: %s", self.chat_id, error)
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception as e:
                logger.warning("on_error callback failed: %s", e)

        if self.rollback_policy == ROLLBACK_TURN:
            del self.messages[mark[0]:]
            del self.ui[mark[1]:]
        else:
            self.messages = []
            self.ui = []

    async def stop(self) -> bool:
        """
        Halt the running turn. Elements already appended stay; the session is
        IDLE when this returns. False if nothing was running.
        """
        task = self._task
        if task is None or task.done():
            return False
        self._stop_requested = True
        if self._generating is not None:
            self._generating.resolve_if_pending(False)
        task.cancel()
        await asyncio.wait([task])
        # Let submit() observe the cancellation and settle
        while self.busy:
            await asyncio.sleep(0)
        return True

    def clear(self) -> str:
        """Forget this conversation and start a fresh one. Returns the new chat id."""
        self.reset()
        self.chat = None
        self.chat_id = generate_id()
        return self.chat_id

    # ── Views ─────────────────────────────────────────────────────────────

    def ui_state(self) -> list[UIElement]:
        """The live UI stream."""
        return list(self.ui)

    def projected_state(self, is_share_page: bool = False) -> list[UIElement]:
        """Projection of the persisted history, as a reload would render it."""
        return project(self.messages, is_share_page=is_share_page, chat_id=self.chat_id)

    def grouped(self):
        return group(self.ui)

    # ── Persistence ───────────────────────────────────────────────────────

    def _title(self) -> str:
        for message in self.messages:
            if message.role == "user" and message.type in ("input", "input_related"):
                return message.text[:100] or "New Chat"
        return "New Chat"

    def _save(self) -> None:
        if self.store is None or not self.persist or not self.messages:
            return
        if self.chat is None:
            self.chat = Chat(id=self.chat_id, user_id=self.user_id)
        self.chat.title = self._title()
        self.chat.messages = list(self.messages)
        self.store.save_chat(self.chat, self.user_id)


class SessionManager:
    """
    One ChatSession per (user_id, chat_id), loaded from the store on first use.

    At most max_sessions are kept; the least recently used idle sessions are
    dropped first; the store still holds everything they saved.
    """

    def __init__(
        self,
        pipeline: AnswerPipeline | None,
        store: SQLiteStore | None = None,
        rollback_policy: str = ROLLBACK_FULL,
        persist: bool = True,
        on_error: Callable[[Exception], None] | None = None,
        max_sessions: int = 256,
    ):
        self.pipeline = pipeline
        self.store = store
        self.rollback_policy = rollback_policy
        self.persist = persist
        self.on_error = on_error
        self.max_sessions = max(1, max_sessions)
        self._sessions: OrderedDict[tuple[str, str], ChatSession] = OrderedDict()

    def get(self, chat_id: str, user_id: str = "anonymous") -> ChatSession:
        """
        Return the open session, creating it from the stored chat if needed.

        Raises ChatOwnershipError if chat_id is stored under another user.
        """
        key = (user_id, chat_id)
        session = self._sessions.get(key)
        if session is not None and self._is_stale(session):
            logger.debug("Dropping session %s: chat no longer stored", chat_id)
            del self._sessions[key]
            session = None

        if session is None:
            chat = None
            if self.store:
                owner = self.store.owner_of(chat_id)
                if owner is not None and owner != user_id:
                    raise ChatOwnershipError(f"chat {chat_id} belongs to another user")
                chat = self.store.get_chat(chat_id, user_id) if owner else None
            session = ChatSession(
                chat_id=chat_id,
                user_id=user_id,
                pipeline=self.pipeline,
                store=self.store,
                chat=chat,
                rollback_policy=self.rollback_policy,
                on_error=self.on_error,
                persist=self.persist,
            )
            self._sessions[key] = session
            self._evict()
        else:
            self._sessions.move_to_end(key)
        return session

    def _is_stale(self, session: ChatSession) -> bool:
        # A session that has been saved once but whose record is gone was
        # deleted behind its back.
        if session.busy or session.chat is None or self.store is None:
            return False
        return self.store.owner_of(session.chat_id) is None

    def _evict(self) -> None:
        excess = len(self._sessions) - self.max_sessions
        if excess <= 0:
            return
        for key in [k for k, s in self._sessions.items() if not s.busy][:excess]:
            del self._sessions[key]
            logger.debug("Evicted idle session %s (user=%s)", key[1], key[0])

    def peek(self, chat_id: str, user_id: str = "anonymous") -> ChatSession | None:
        return self._sessions.get((user_id, chat_id))

    def discard(self, chat_id: str, user_id: str = "anonymous") -> bool:
        """Forget a session. Refused while its turn is running."""
        session = self._sessions.get((user_id, chat_id))
        if session is None:
            return False
        if session.busy:
            raise TurnInProgressError(f"chat {chat_id} has a turn in flight")
        del self._sessions[(user_id, chat_id)]
        return True

    def discard_user(self, user_id: str) -> int:
        """Forget every session of a user. Refused if any of them is running."""
        keys = [k for k in self._sessions if k[0] == user_id]
        for key in keys:
            if self._sessions[key].busy:
                raise TurnInProgressError(f"chat {key[1]} has a turn in flight")
        for key in keys:
            del self._sessions[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._sessions)
