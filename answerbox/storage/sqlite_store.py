"""
SQLite storage for chats and the records around them.
Single portable file. Every chat write touches the chat record and the
owner's recency index inside one transaction, so the two never drift.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from answerbox.storage.models import Chat, Message

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    path TEXT NOT NULL,
    share_path TEXT DEFAULT NULL,
    created_at TEXT NOT NULL,
    messages TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS user_chats (
    user_id TEXT NOT NULL,
    chat_id TEXT NOT NULL,
    score REAL NOT NULL,
    PRIMARY KEY (user_id, chat_id)
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    preferences TEXT DEFAULT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS model_configs (
    key TEXT PRIMARY KEY,
    models TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS search_history (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    query TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    results INTEGER DEFAULT 0,
    source TEXT DEFAULT NULL,
    type TEXT DEFAULT 'web'
);

CREATE INDEX IF NOT EXISTS idx_user_chats_score
    ON user_chats(user_id, score);
CREATE INDEX IF NOT EXISTS idx_search_history_user
    ON search_history(user_id, timestamp);
"""

MODELS_KEY = "models:config"

DEFAULT_PREFERENCES = {
    "theme": "system",
    "historyEnabled": True,
    "notificationsEnabled": True,
}


class StorageError(Exception):
    """The store could not be read or written."""


class ChatOwnershipError(StorageError):
    """The chat id is already taken by another user."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore:
    """SQLite store for chats, users, model configs and search history."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite store initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        """One connection, one transaction: commit on success, roll back on error."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ─ Chats ──────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_chat(row: sqlite3.Row) -> Chat:
        try:
            raw_messages = json.loads(row["messages"])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Chat %s has unreadable messages, treating as empty", row["id"])
            raw_messages = []
        if not isinstance(raw_messages, list):
            raw_messages = []
        return Chat(
            id=row["id"],
            title=row["title"],
            user_id=row["user_id"],
            path=row["path"],
            share_path=row["share_path"],
            created_at=row["created_at"],
            messages=[Message.from_dict(m) for m in raw_messages if isinstance(m, dict)],
        )

    def get_chat(self, chat_id: str, user_id: str) -> Chat | None:
        """Return the chat if it exists and belongs to user_id."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM chats WHERE id = ? AND user_id = ?",
                (chat_id, user_id),
            ).fetchone()
        return self._row_to_chat(row) if row else None

    def owner_of(self, chat_id: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT user_id FROM chats WHERE id = ?", (chat_id,)).fetchone()
        return row["user_id"] if row else None

    def list_chats(self, user_id: str | None) -> list[Chat]:
        """All chats of a user, most recently saved first."""
        if not user_id:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT c.* FROM user_chats u
                   JOIN chats c ON c.id = u.chat_id
                   WHERE u.user_id = ?
                   ORDER BY u.score DESC""",
                (user_id,),
            ).fetchall()
        return [self._row_to_chat(r) for r in rows]

    def save_chat(self, chat: Chat, user_id: str) -> None:
        """Upsert the chat record and bump it in the owner's index.

        Raises ChatOwnershipError if the id belongs to another user.
        """
        with self._connect() as conn:
            row = conn.execute("SELECT user_id FROM chats WHERE id = ?", (chat.id,)).fetchone()
            if row is not None and row["user_id"] != user_id:
                raise ChatOwnershipError(f"chat {chat.id} belongs to another user")
            chat.user_id = user_id
            conn.execute(
                """INSERT OR REPLACE INTO chats
                   (id, user_id, title, path, share_path, created_at, messages)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (chat.id, user_id, chat.title, chat.path, chat.share_path,
                 chat.created_at, json.dumps([m.to_dict() for m in chat.messages])),
            )
            conn.execute(
                "INSERT OR REPLACE INTO user_chats (user_id, chat_id, score) VALUES (?, ?, ?)",
                (user_id, chat.id, time.time()),
            )
        logger.debug("Saved chat %s (user=%s, messages=%d)", chat.id, user_id, len(chat.messages))

    def delete_chat(self, chat_id: str, user_id: str) -> bool:
        """Remove the record and its index entry. False if not found or not owned."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM chats WHERE id = ? AND user_id = ?",
                (chat_id, user_id),
            )
            if cur.rowcount == 0:
                return False
            conn.execute(
                "DELETE FROM user_chats WHERE user_id = ? AND chat_id = ?",
                (user_id, chat_id),
            )
        logger.info("Deleted chat %s (user=%s)", chat_id, user_id)
        return True

    def clear_chats(self, user_id: str) -> int:
        """Delete every chat of a user. Returns the number removed."""
        with self._connect() as conn:
            ids = [
                r["chat_id"] for r in conn.execute(
                    "SELECT chat_id FROM user_chats WHERE user_id = ?", (user_id,)
                ).fetchall()
            ]
            for chat_id in ids:
                conn.execute("DELETE FROM chats WHERE id = ? AND user_id = ?", (chat_id, user_id))
            conn.execute("DELETE FROM user_chats WHERE user_id = ?", (user_id,))
        logger.info("Cleared %d chats for user %s", len(ids), user_id)
        return len(ids)

    def share_chat(self, chat_id: str, user_id: str) -> Chat | None:
        """Set the public share path. Re-sharing keeps the same path."""
        chat = self.get_chat(chat_id, user_id)
        if chat is None:
            return None
        if not chat.share_path:
            chat.share_path = f"/share/{chat_id}"
            with self._connect() as conn:
                conn.execute(
                    "UPDATE chats SET share_path = ? WHERE id = ? AND user_id = ?",
                    (chat.share_path, chat_id, user_id),
                )
            logger.info("Shared chat %s at %s", chat_id, chat.share_path)
        return chat

    def get_shared_chat(self, chat_id: str) -> Chat | None:
        """Public read: only succeeds once the chat has a share path."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM chats WHERE id = ? AND share_path IS NOT NULL",
                (chat_id,),
            ).fetchone()
        return self._row_to_chat(row) if row else None

    # ─ Users and preferences ──────────────────────────────────────────────

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> dict:
        user = dict(row)
        user["preferences"] = json.loads(user["preferences"]) if user["preferences"] else None
        user["createdAt"] = user.pop("created_at")
        user["updatedAt"] = user.pop("updated_at")
        return user

    def get_user(self, user_id: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def save_user(self, name: str, email: str, user_id: str | None = None,
                  preferences: dict | None = None) -> dict:
        """Create a user (new id) or update an existing one."""
        now = _now()
        user_id = user_id or str(uuid4())
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT created_at, preferences FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            created_at = existing["created_at"] if existing else now
            if preferences is None and existing and existing["preferences"]:
                prefs_json = existing["preferences"]
            else:
                prefs_json = json.dumps(preferences) if preferences is not None else None
            conn.execute(
                """INSERT OR REPLACE INTO users
                   (id, name, email, preferences, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (user_id, name, email, prefs_json, created_at, now),
            )
        return self.get_user(user_id)

    def delete_user(self, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return cur.rowcount > 0

    def get_preferences(self, user_id: str) -> dict | None:
        """Stored preferences, defaults if none were ever set, None if no user."""
        user = self.get_user(user_id)
        if user is None:
            return None
        return user["preferences"] or dict(DEFAULT_PREFERENCES)

    def update_preferences(self, user_id: str, changes: dict) -> dict | None:
        """Merge changes over the current preferences."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT preferences FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            if row is None:
                return None
            current = json.loads(row["preferences"]) if row["preferences"] else {}
            merged = {**current, **changes}
            conn.execute(
                "UPDATE users SET preferences = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged), _now(), user_id),
            )
        return merged

    # ─ Model configuration ────────────────────────────────────────────────

    def get_models(self) -> list[dict] | None:
        """Stored model list, or None if never saved or unreadable."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT models FROM model_configs WHERE key = ?", (MODELS_KEY,)
            ).fetchone()
        if row is None:
            return None
        try:
            models = json.loads(row["models"])
        except json.JSONDecodeError as e:
            logger.error("Failed to parse models data: %s", e)
            return None
        return models if isinstance(models, list) else None

    def save_models(self, models: list[dict]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO model_configs (key, models, updated_at) VALUES (?, ?, ?)",
                (MODELS_KEY, json.dumps(models), _now()),
            )

    def update_model(self, model_id: str, changes: dict,
                     defaults: list[dict] | None = None) -> dict | None:
        """
        Merge changes into one stored model and save the list.
        Starts from `defaults` when nothing usable is stored yet.
        Returns the updated model, or None if the id is unknown.
        """
        models = self.get_models()
        if models is None:
            models = [dict(m) for m in (defaults or [])]
        for i, model in enumerate(models):
            if model.get("id") == model_id:
                models[i] = {**model, **changes}
                self.save_models(models)
                return models[i]
        return None

    # ─ Search history ─────────────────────────────────────────────────────

    def add_search_history(
        self,
        user_id: str,
        query: str,
        results: int = 0,
        source: str | None = None,
        kind: str = "web",
        timestamp: int | None = None,
    ) -> dict:
        timestamp = timestamp or int(time.time() * 1000)
        prefix = "search:video" if kind == "video" else "search"
        entry_id = f"{prefix}:{user_id}:{timestamp}"
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO search_history
                   (id, user_id, query, timestamp, results, source, type)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (entry_id, user_id, query, timestamp, results, source, kind),
            )
        return {"query": query, "timestamp": timestamp, "results": results,
                "source": source, "type": kind}

    def get_search_history(self, user_id: str, limit: int = 50, offset: int = 0) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT query, timestamp, results, source, type FROM search_history
                   WHERE user_id = ?
                   ORDER BY timestamp DESC
                   LIMIT ? OFFSET ?""",
                (user_id, limit, offset),
            ).fetchall()
        return [dict(r) for r in rows]

    def clear_search_history(self, user_id: str) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM search_history WHERE user_id = ?", (user_id,))
        return cur.rowcount

    # ─ Stats ──────────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        """Return counts of stored records."""
        with self._connect() as conn:
            chat_count = conn.execute("SELECT COUNT(*) FROM chats").fetchone()[0]
            shared_count = conn.execute(
                "SELECT COUNT(*) FROM chats WHERE share_path IS NOT NULL"
            ).fetchone()[0]
            owner_count = conn.execute(
                "SELECT COUNT(DISTINCT user_id) FROM user_chats"
            ).fetchone()[0]
            user_count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            search_count = conn.execute("SELECT COUNT(*) FROM search_history").fetchone()[0]

        return {
            "chats": chat_count,
            "shared_chats": shared_count,
            "chat_owners": owner_count,
            "users": user_count,
            "searches": search_count,
        }
