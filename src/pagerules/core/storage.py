"""Rule and blob persistence using SQLite."""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import structlog

from .errors import PersistenceError

logger = structlog.get_logger()


class Storage(ABC):
    """
    Key-value storage collaborator.

    Implementations must be atomic from the engine's point of view: a save
    either lands completely or raises PersistenceError.
    """

    @abstractmethod
    async def load_rules(self) -> list[dict[str, Any]]:
        """Return the persisted rule list (empty when nothing was saved)."""

    @abstractmethod
    async def save_rules(self, rules: list[dict[str, Any]]) -> None:
        """Replace the persisted rule list."""

    @abstractmethod
    async def save_blob(self, key: str, value: Any) -> None:
        """Store an arbitrary JSON-serializable value under key."""

    @abstractmethod
    async def load_blob(self, key: str) -> Optional[Any]:
        """Return the value stored under key, or None."""


class SQLiteStorage(Storage):
    """Storage backed by a single SQLite key-value table."""

    def __init__(
        self,
        db_path: str = "./data/pagerules.db",
        rules_key: str = "automation_rules",
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.rules_key = rules_key
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open database and create tables."""
        try:
            self._db = await aiosqlite.connect(str(self.db_path))
            self._db.row_factory = aiosqlite.Row

            await self._db.executescript("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at REAL NOT NULL
                );
            """)
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(f"Failed to open storage: {e}") from e

        logger.info("storage_initialized", path=str(self.db_path))

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def load_rules(self) -> list[dict[str, Any]]:
        rules = await self.load_blob(self.rules_key)
        return rules or []

    async def save_rules(self, rules: list[dict[str, Any]]) -> None:
        await self.save_blob(self.rules_key, rules)

    async def save_blob(self, key: str, value: Any) -> None:
        db = self._require_db()
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key} is not serializable: {e}", key=key) from e

        async with self._lock:
            try:
                await db.execute("""
                    INSERT OR REPLACE INTO kv_store (key, value_json, updated_at)
                    VALUES (?, ?, ?)
                """, (key, payload, time.time()))
                await db.commit()
            except Exception as e:
                await db.rollback()
                raise PersistenceError(f"Failed to save {key}: {e}", key=key) from e

    async def load_blob(self, key: str) -> Optional[Any]:
        db = self._require_db()
        try:
            cursor = await db.execute(
                "SELECT value_json FROM kv_store WHERE key = ?",
                (key,)
            )
            row = await cursor.fetchone()
        except Exception as e:
            raise PersistenceError(f"Failed to load {key}: {e}", key=key) from e

        if not row:
            return None
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt value for {key}: {e}", key=key) from e

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List stored keys, optionally filtered by prefix."""
        db = self._require_db()
        cursor = await db.execute(
            "SELECT key FROM kv_store WHERE key LIKE ? ORDER BY key",
            (f"{prefix}%",)
        )
        rows = await cursor.fetchall()
        return [row["key"] for row in rows]

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError("Storage is not initialized")
        return self._db
