"""
SQLite-backed key-value store for user data.
Values are stored as JSON text under string keys.
"""
import aiosqlite
import json
import logging
from pathlib import Path
from typing import Any, Optional

from streamhub.config import get_settings

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Async SQLite key-value store."""

    def __init__(self, db_path: Optional[str] = None):
        settings = get_settings()
        self.db_path = db_path or settings.database_path
        self._ensure_directory()

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create the storage table if it doesn't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await db.commit()
        logger.info(f"Key-value store ready at {self.db_path}")

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a stored value, or ``default`` when the key is absent."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
            if row:
                return json.loads(row[0])
            return default

    async def set(self, key: str, value: Any):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)""",
                (key, json.dumps(value)),
            )
            await db.commit()

    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await db.commit()
            return cursor.rowcount > 0

    async def keys(self) -> list[str]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT key FROM kv_store ORDER BY key")
            rows = await cursor.fetchall()
            return [row[0] for row in rows]


# Singleton instance
_store: Optional[KeyValueStore] = None


async def get_store() -> KeyValueStore:
    """Get or create key-value store singleton."""
    global _store
    if _store is None:
        _store = KeyValueStore()
        await _store.initialize()
    return _store
