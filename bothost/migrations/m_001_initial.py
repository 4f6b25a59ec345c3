"""Migration 001: tenants, bots and login codes."""

from __future__ import annotations

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS tenants (
            id TEXT PRIMARY KEY,
            external_id TEXT NOT NULL UNIQUE,
            username TEXT DEFAULT '',
            avatar TEXT DEFAULT '',
            tier TEXT NOT NULL DEFAULT 'free',
            created_at TEXT NOT NULL
        )
    """)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS bots (
            id TEXT PRIMARY KEY,
            owner TEXT NOT NULL,
            name TEXT NOT NULL,
            path TEXT NOT NULL,
            runtime TEXT NOT NULL DEFAULT 'node',
            status TEXT NOT NULL DEFAULT 'stopped',
            created_at TEXT NOT NULL,
            last_started TEXT,
            last_stopped TEXT,
            UNIQUE (owner, name)
        )
    """)
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_bots_owner ON bots(owner)"
    )
    await db.execute("""
        CREATE TABLE IF NOT EXISTS auth_codes (
            code TEXT NOT NULL,
            external_id TEXT NOT NULL,
            username TEXT DEFAULT '',
            avatar TEXT DEFAULT '',
            issued_at TEXT NOT NULL,
            used INTEGER NOT NULL DEFAULT 0,
            used_at TEXT
        )
    """)
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_codes_lookup ON auth_codes(code, used)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_codes_identity ON auth_codes(external_id, used)"
    )
