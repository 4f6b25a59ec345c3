"""WorkloadRegistry — durable records for bots, tenants and login codes.

SQLite-backed via aiosqlite. Every call opens a short-lived connection,
so the registry can be shared between the web server, the supervisor's
exit observers and CLI commands without holding a connection open.
"""

from __future__ import annotations

import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

import aiosqlite

from bothost.exceptions import ConflictError, ValidationError
from bothost.migrations.runner import apply_migrations
from bothost.types import AuthCode, Bot, BotStatus, Tenant, Tier, utcnow


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_bot(row: aiosqlite.Row) -> Bot:
    return Bot(
        id=row["id"],
        owner=row["owner"],
        name=row["name"],
        path=row["path"],
        runtime=row["runtime"],
        status=BotStatus(row["status"]),
        created_at=_dt(row["created_at"]),
        last_started=_dt(row["last_started"]),
        last_stopped=_dt(row["last_stopped"]),
    )


def _row_to_tenant(row: aiosqlite.Row) -> Tenant:
    return Tenant(
        id=row["id"],
        external_id=row["external_id"],
        username=row["username"],
        avatar=row["avatar"],
        tier=row["tier"],
        created_at=_dt(row["created_at"]),
    )


def _row_to_code(row: aiosqlite.Row) -> AuthCode:
    return AuthCode(
        code=row["code"],
        external_id=row["external_id"],
        username=row["username"],
        avatar=row["avatar"],
        issued_at=_dt(row["issued_at"]),
        used=bool(row["used"]),
        used_at=_dt(row["used_at"]),
    )


class WorkloadRegistry:
    """Persistent store consulted by the supervisor, broker and service."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await apply_migrations(self._db_path)

    async def _fetchone(self, sql: str, params: tuple = ()) -> aiosqlite.Row | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                return list(await cursor.fetchall())

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount

    async def _scalar(self, sql: str, params: tuple = ()) -> Any:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(sql, params) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """A write transaction holding the database lock from its first statement."""
        async with aiosqlite.connect(self._db_path, isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    # ── Bots ──────────────────────────────────────────────────────────────

    async def create_bot(self, bot: Bot, limit: int | None = None) -> Bot:
        """Insert a bot. With ``limit``, refuse once the owner holds that many."""
        async with self._transaction() as db:
            if limit is not None:
                async with db.execute(
                    "SELECT COUNT(*) FROM bots WHERE owner = ?", (bot.owner,)
                ) as cursor:
                    held = (await cursor.fetchone())[0]
                if held >= limit:
                    raise ConflictError(f"You have reached your bot limit ({limit})")
            try:
                await db.execute(
                    "INSERT INTO bots "
                    "(id, owner, name, path, runtime, status, created_at, last_started, last_stopped) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        bot.id,
                        bot.owner,
                        bot.name,
                        bot.path,
                        bot.runtime,
                        bot.status.value,
                        _ts(bot.created_at),
                        _ts(bot.last_started),
                        _ts(bot.last_stopped),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"A bot named '{bot.name}' already exists") from e
        return bot

    async def get_bot(self, bot_id: str) -> Bot | None:
        row = await self._fetchone("SELECT * FROM bots WHERE id = ?", (bot_id,))
        return _row_to_bot(row) if row else None

    async def find_bot(self, bot_id: str, owner: str) -> Bot | None:
        row = await self._fetchone(
            "SELECT * FROM bots WHERE id = ? AND owner = ?", (bot_id, owner)
        )
        return _row_to_bot(row) if row else None

    async def find_bot_by_name(self, owner: str, name: str) -> Bot | None:
        row = await self._fetchone(
            "SELECT * FROM bots WHERE owner = ? AND name = ?", (owner, name)
        )
        return _row_to_bot(row) if row else None

    async def list_bots(self, owner: str) -> list[Bot]:
        rows = await self._fetchall(
            "SELECT * FROM bots WHERE owner = ? ORDER BY created_at", (owner,)
        )
        return [_row_to_bot(r) for r in rows]

    async def count_bots(self, owner: str | None = None, status: BotStatus | None = None) -> int:
        conditions = []
        params: list = []
        if owner is not None:
            conditions.append("owner = ?")
            params.append(owner)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        where = " AND ".join(conditions) if conditions else "1=1"
        return await self._scalar(f"SELECT COUNT(*) FROM bots WHERE {where}", tuple(params))

    async def set_status(
        self, bot_id: str, status: BotStatus, at: datetime | None = None
    ) -> bool:
        """Persist a lifecycle transition and its timestamp."""
        column = "last_started" if status == BotStatus.RUNNING else "last_stopped"
        changed = await self._execute(
            f"UPDATE bots SET status = ?, {column} = ? WHERE id = ?",
            (status.value, _ts(at or utcnow()), bot_id),
        )
        return changed > 0

    async def reset_running(self, at: datetime | None = None) -> int:
        """Mark every bot recorded as running as stopped."""
        return await self._execute(
            "UPDATE bots SET status = ?, last_stopped = ? WHERE status = ?",
            (BotStatus.STOPPED.value, _ts(at or utcnow()), BotStatus.RUNNING.value),
        )

    async def delete_bot(self, bot_id: str) -> bool:
        return await self._execute("DELETE FROM bots WHERE id = ?", (bot_id,)) > 0

    # ── Tenants ───────────────────────────────────────────────────────────

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        row = await self._fetchone("SELECT * FROM tenants WHERE id = ?", (tenant_id,))
        return _row_to_tenant(row) if row else None

    async def find_tenant(self, external_id: str) -> Tenant | None:
        row = await self._fetchone(
            "SELECT * FROM tenants WHERE external_id = ?", (external_id,)
        )
        return _row_to_tenant(row) if row else None

    async def find_or_create_tenant(
        self, external_id: str, username: str = "", avatar: str = ""
    ) -> Tenant:
        tenant = Tenant(external_id=external_id, username=username, avatar=avatar)
        await self._execute(
            "INSERT OR IGNORE INTO tenants "
            "(id, external_id, username, avatar, tier, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                tenant.id,
                tenant.external_id,
                tenant.username,
                tenant.avatar,
                tenant.tier.value,
                _ts(tenant.created_at),
            ),
        )
        return await self.find_tenant(external_id)

    async def set_tier(self, tenant_id: str, tier: Tier | str) -> bool:
        try:
            tier = Tier(tier)
        except ValueError:
            raise ValidationError(f"Unknown tier '{tier}'") from None
        return await self._execute(
            "UPDATE tenants SET tier = ? WHERE id = ?", (tier.value, tenant_id)
        ) > 0

    async def count_tenants(self) -> int:
        return await self._scalar("SELECT COUNT(*) FROM tenants")

    # ── Login codes ───────────────────────────────────────────────────────

    async def replace_code(self, code: AuthCode) -> bool:
        """Void the identity's unused codes and store ``code``, in one transaction.

        Returns False, changing nothing, if another identity holds the same
        code unused.
        """
        async with self._transaction() as db:
            async with db.execute(
                "SELECT 1 FROM auth_codes WHERE code = ? AND used = 0 AND external_id != ?",
                (code.code, code.external_id),
            ) as cursor:
                if await cursor.fetchone() is not None:
                    return False
            await db.execute(
                "UPDATE auth_codes SET used = 1, used_at = ? WHERE external_id = ? AND used = 0",
                (_ts(code.issued_at), code.external_id),
            )
            await db.execute(
                "INSERT INTO auth_codes "
                "(code, external_id, username, avatar, issued_at, used, used_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    code.code,
                    code.external_id,
                    code.username,
                    code.avatar,
                    _ts(code.issued_at),
                    int(code.used),
                    _ts(code.used_at),
                ),
            )
        return True

    async def find_unused_code(self, code: str) -> AuthCode | None:
        row = await self._fetchone(
            "SELECT * FROM auth_codes WHERE code = ? AND used = 0 "
            "ORDER BY issued_at DESC LIMIT 1",
            (code,),
        )
        return _row_to_code(row) if row else None

    async def consume_code(self, code: AuthCode, at: datetime | None = None) -> bool:
        """Mark a code used. False if someone else consumed it first."""
        return await self._execute(
            "UPDATE auth_codes SET used = 1, used_at = ? "
            "WHERE code = ? AND external_id = ? AND issued_at = ? AND used = 0",
            (_ts(at or utcnow()), code.code, code.external_id, _ts(code.issued_at)),
        ) == 1

    async def purge_codes(self, issued_before: datetime) -> int:
        return await self._execute(
            "DELETE FROM auth_codes WHERE issued_at < ?", (_ts(issued_before),)
        )
