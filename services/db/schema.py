"""
Canonical schema definition (version=1).

Only the configuration provider persists anything: managed AutoRoom channels
live in memory and are rebuilt from nothing on restart.
"""

import aiosqlite

from utils.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1


async def init_schema(db: aiosqlite.Connection) -> None:
    """
    Initialize the database schema with all required tables.

    Args:
        db: An open database connection
    """
    await db.execute("PRAGMA foreign_keys=ON")

    # Schema migrations tracking (single canonical version)
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    # Guild settings (JSON-encoded values, dot-notation keys like "autoroom.bitrate")
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS guild_settings (
            guild_id INTEGER NOT NULL,
            key TEXT NOT NULL,
            value TEXT,
            PRIMARY KEY (guild_id, key)
        )
        """
    )

    # Audit trail for guild_settings changes
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS guild_settings_audit (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guild_id INTEGER NOT NULL,
            key TEXT NOT NULL,
            old_value TEXT,
            new_value TEXT,
            changed_by_user_id INTEGER,
            changed_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_guild_settings_audit_guild ON guild_settings_audit(guild_id)"
    )

    await db.execute(
        "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, strftime('%s','now'))",
        (SCHEMA_VERSION,),
    )

    await db.commit()

    logger.info("Schema initialization complete")
