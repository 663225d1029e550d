"""
Repository helpers for guild settings persistence.

Wraps the connection/cursor boilerplate so the configuration provider only
deals in guild ids, keys and JSON values.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from .database import Database

if TYPE_CHECKING:
    from aiosqlite import Row


class BaseRepository:
    """
    Base class for repository pattern database access.

    Provides common query methods that handle connection management,
    cursor operations, and result processing uniformly.
    """

    @staticmethod
    @asynccontextmanager
    async def transaction():
        """
        Context manager for explicit transaction control.

        Usage:
            async with BaseRepository.transaction() as db:
                await db.execute("INSERT ...", params)
                await db.execute("UPDATE ...", params)
                # Auto-commits on success, rolls back on exception
        """
        async with Database.get_connection() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    @staticmethod
    async def fetch_one(query: str, params: tuple[Any, ...] = ()) -> Row | None:
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(query: str, params: tuple[Any, ...] = ()) -> list[Row]:
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return list(await cursor.fetchall())

    @staticmethod
    async def execute(
        query: str,
        params: tuple[Any, ...] = (),
        commit: bool = True,
    ) -> int:
        """
        Execute a write query (INSERT, UPDATE, DELETE).

        Returns:
            Number of rows affected
        """
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            if commit:
                await db.commit()
            return cursor.rowcount


class GuildSettingsRepository(BaseRepository):
    """Reads and writes rows of the ``guild_settings`` table."""

    @classmethod
    async def load(cls, guild_id: int) -> dict[str, Any]:
        """Return every decodable setting stored for a guild."""
        settings: dict[str, Any] = {}
        rows = await cls.fetch_all(
            "SELECT key, value FROM guild_settings WHERE guild_id = ?", (guild_id,)
        )
        for key, value_json in rows:
            try:
                settings[key] = json.loads(value_json)
            except (json.JSONDecodeError, TypeError):
                continue
        return settings

    @classmethod
    async def upsert(
        cls,
        guild_id: int,
        key: str,
        value: Any,
        changed_by: int | None = None,
    ) -> None:
        """Store one setting and record the change in the audit table."""
        new_value = encode_json(value)
        async with cls.transaction() as db:
            cursor = await db.execute(
                "SELECT value FROM guild_settings WHERE guild_id = ? AND key = ?",
                (guild_id, key),
            )
            row = await cursor.fetchone()
            old_value = row[0] if row else None
            await db.execute(
                """
                INSERT OR REPLACE INTO guild_settings (guild_id, key, value)
                VALUES (?, ?, ?)
                """,
                (guild_id, key, new_value),
            )
            await db.execute(
                """
                INSERT INTO guild_settings_audit
                    (guild_id, key, old_value, new_value, changed_by_user_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                (guild_id, key, old_value, new_value, changed_by),
            )

    @classmethod
    async def delete_prefix(cls, guild_id: int, prefix: str) -> int:
        """Delete every setting of a guild whose key starts with ``prefix``."""
        return await cls.execute(
            "DELETE FROM guild_settings WHERE guild_id = ? AND key LIKE ?",
            (guild_id, f"{prefix}%"),
        )


def encode_json(value: Any) -> str:
    """Encode a value as a JSON string."""
    return json.dumps(value)
