"""
Database Helper Module

Provides a centralized database interface for the AutoRoom bot using aiosqlite.
Handles connection setup and schema initialization.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager

import aiosqlite

from utils.logging import get_logger

from .schema import init_schema

logger = get_logger(__name__)


class Database:
    _db_path: str = "autoroom.db"
    _lock = asyncio.Lock()  # Ensures that only one initialization happens
    _initialized = False

    @classmethod
    async def initialize(cls, db_path: str | None = None) -> None:
        async with cls._lock:
            if cls._initialized:
                return
            if db_path:
                cls._db_path = db_path
            async with aiosqlite.connect(cls._db_path) as db:
                await init_schema(db)
            cls._initialized = True
            logger.info("Database initialized at %s", cls._db_path)

    @classmethod
    @asynccontextmanager
    async def get_connection(cls):
        """
        Get a connection to the database with optimized settings.

        Usage:
            async with Database.get_connection() as db:
                await db.execute("SELECT * FROM guild_settings")
        """
        if not cls._initialized:
            await cls.initialize()
        async with aiosqlite.connect(cls._db_path) as db:
            await db.execute("PRAGMA busy_timeout=5000")
            await db.execute("PRAGMA foreign_keys=ON")
            try:
                await db.execute("PRAGMA journal_mode=WAL")
            except sqlite3.OperationalError as exc:
                # WAL transition can fail briefly if another writer holds a lock; retry once
                if "database is locked" in str(exc).lower():
                    await asyncio.sleep(0.05)
                    await db.execute("PRAGMA journal_mode=WAL")
                else:
                    raise
            await db.execute("PRAGMA synchronous=NORMAL")
            db.row_factory = aiosqlite.Row
            yield db
