"""Migration 002: append-only bot output log."""

from __future__ import annotations

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS bot_logs (
            id TEXT PRIMARY KEY,
            bot_id TEXT NOT NULL,
            bot_name TEXT NOT NULL,
            stream TEXT NOT NULL,
            chunk TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """)
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_logs_bot_time "
        "ON bot_logs(bot_id, created_at DESC)"
    )
