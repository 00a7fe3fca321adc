"""SQLite-backed persistent chat memory.

One row per memory id holds the JSON-encoded message list for that
conversation. Every write is committed before the call returns. A single
writer per database file is assumed; concurrent processes writing the same
file get no isolation guarantees beyond SQLite's own locking.
"""
import sqlite3
import json
from pathlib import Path
from typing import List, Union
import structlog

from ragchain.errors import CorruptMemoryError, NotFoundError
from ragchain.rag.models import ChatMessage

logger = structlog.get_logger()


class PersistentChatMemoryStore:
    """Durable key-value store mapping memory ids to message lists."""

    def __init__(self, db_path: Union[str, Path]):
        """Bind the store to a database file (see initialize())."""
        self.db_path = Path(db_path)

    @classmethod
    def initialize(cls, db_path: Union[str, Path]) -> "PersistentChatMemoryStore":
        """Open (creating if absent) the memory database at db_path.

        Raises:
            NotFoundError: If the parent directory does not exist
        """
        store = cls(db_path)
        store.init_database()
        return store

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row
        """
        if not self.db_path.parent.is_dir():
            raise NotFoundError("Memory database directory", self.db_path.parent)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self) -> None:
        """Create the chat_memory table if it doesn't exist."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chat_memory (
                    memory_id TEXT PRIMARY KEY,
                    messages_json TEXT NOT NULL
                )
            """)
            conn.commit()
            logger.info("memory_database_initialized", db_path=str(self.db_path))

        except Exception as e:
            conn.rollback()
            logger.error("memory_database_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    def get(self, memory_id: str) -> List[ChatMessage]:
        """Get the stored messages for a memory id.

        Returns:
            Messages in chronological order (empty list for unknown ids)
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "SELECT messages_json FROM chat_memory WHERE memory_id = ?",
                (memory_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return []
            return self._decode(memory_id, row["messages_json"])

        except Exception as e:
            logger.error("memory_get_failed", memory_id=memory_id, error=str(e))
            raise
        finally:
            conn.close()

    def _decode(self, memory_id: str, raw: str) -> List[ChatMessage]:
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError(f"expected a message list, got {type(items).__name__}")
            return [ChatMessage.from_dict(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptMemoryError(memory_id, self.db_path, str(e)) from e

    def update(self, memory_id: str, messages: List[ChatMessage]) -> None:
        """Replace the stored messages for a memory id and commit."""
        payload = json.dumps([m.to_dict() for m in messages])

        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO chat_memory (memory_id, messages_json) VALUES (?, ?)
                ON CONFLICT(memory_id) DO UPDATE SET messages_json = excluded.messages_json
            """, (memory_id, payload))
            conn.commit()
            logger.debug(
                "memory_updated", memory_id=memory_id, message_count=len(messages)
            )

        except Exception as e:
            conn.rollback()
            logger.error("memory_update_failed", memory_id=memory_id, error=str(e))
            raise
        finally:
            conn.close()

    def delete(self, memory_id: str) -> bool:
        """Delete the stored messages for a memory id and commit.

        Returns:
            True if deleted, False if not found
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM chat_memory WHERE memory_id = ?", (memory_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info("memory_deleted", memory_id=memory_id)
            return deleted

        except Exception as e:
            conn.rollback()
            logger.error("memory_delete_failed", memory_id=memory_id, error=str(e))
            raise
        finally:
            conn.close()

    def list_memory_ids(self) -> List[str]:
        """List every stored memory id in sorted order."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT memory_id FROM chat_memory ORDER BY memory_id")
            return [row["memory_id"] for row in cursor.fetchall()]

        except Exception as e:
            logger.error("memory_list_failed", error=str(e))
            raise
        finally:
            conn.close()
