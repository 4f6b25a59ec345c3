"""Bot log store — append-only record of every bot's output.

The supervisor forwards each chunk a bot writes to stdout or stderr
here as soon as it is read. Entries are never updated; the dashboard
pages through them newest first.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import datetime

import aiosqlite
import structlog
from pydantic import BaseModel, Field

from bothost.exceptions import ValidationError
from bothost.types import Stream, new_id, utcnow

logger = structlog.get_logger()


class BotLogEntry(BaseModel):
    """A single chunk of bot output."""

    id: str = Field(default_factory=new_id)
    bot_id: str
    bot_name: str
    stream: Stream
    chunk: str
    created_at: datetime = Field(default_factory=utcnow)


class LogPage(BaseModel):
    entries: list[BotLogEntry] = Field(default_factory=list)
    page: int = 1
    per_page: int = 50
    total: int = 0

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))


class BaseLogSink(ABC):
    """Anything that accepts tagged output chunks."""

    @abstractmethod
    async def append(
        self, bot_id: str, bot_name: str, stream: Stream, chunk: str
    ) -> BotLogEntry:
        ...


class BotLogStore(BaseLogSink):
    """SQLite-backed sink that also mirrors output to structlog."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def append(
        self, bot_id: str, bot_name: str, stream: Stream, chunk: str
    ) -> BotLogEntry:
        entry = BotLogEntry(
            bot_id=bot_id, bot_name=bot_name, stream=Stream(stream), chunk=chunk
        )
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO bot_logs (id, bot_id, bot_name, stream, chunk, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.bot_id,
                    entry.bot_name,
                    entry.stream.value,
                    entry.chunk,
                    entry.created_at.isoformat(),
                ),
            )
            await db.commit()

        logger.info(
            "bot.output",
            bot_id=bot_id,
            bot=bot_name,
            stream=entry.stream.value,
            chunk=chunk.rstrip()[:500],
        )
        return entry

    async def query(
        self,
        bot_ids: list[str],
        page: int = 1,
        per_page: int = 50,
        stream: Stream | str | None = None,
        search: str = "",
    ) -> LogPage:
        """Page through output of the given bots, newest first."""
        page = max(1, page)
        if not bot_ids:
            return LogPage(page=page, per_page=per_page)

        conditions = [f"bot_id IN ({', '.join('?' for _ in bot_ids)})"]
        params: list = list(bot_ids)
        if stream:
            try:
                stream = Stream(stream)
            except ValueError:
                raise ValidationError(f"Unknown stream '{stream}'") from None
            conditions.append("stream = ?")
            params.append(stream.value)
        if search:
            conditions.append("chunk LIKE ?")
            params.append(f"%{search}%")
        where = " AND ".join(conditions)

        entries = []
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT COUNT(*) FROM bot_logs WHERE {where}", params
            ) as cursor:
                total = (await cursor.fetchone())[0]

            sql = (
                f"SELECT * FROM bot_logs WHERE {where} "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?"
            )
            async with db.execute(sql, [*params, per_page, (page - 1) * per_page]) as cursor:
                async for row in cursor:
                    entries.append(BotLogEntry(
                        id=row["id"],
                        bot_id=row["bot_id"],
                        bot_name=row["bot_name"],
                        stream=Stream(row["stream"]),
                        chunk=row["chunk"],
                        created_at=datetime.fromisoformat(row["created_at"]),
                    ))

        return LogPage(entries=entries, page=page, per_page=per_page, total=total)
