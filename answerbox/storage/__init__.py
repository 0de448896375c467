"""Chat persistence: typed messages and the SQLite record store."""
from answerbox.storage.models import Chat, Message, MessageKind
from answerbox.storage.sqlite_store import SQLiteStore, StorageError

__all__ = ["Chat", "Message", "MessageKind", "SQLiteStore", "StorageError"]
