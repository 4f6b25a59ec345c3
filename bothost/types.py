"""Core types shared across all bothost subsystems."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TypeAlias

from pydantic import BaseModel, Field

# ── ID Types ──────────────────────────────────────────────────────────────────

BotId: TypeAlias = str
TenantId: TypeAlias = str
ExternalId: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ─────────────────────────────────────────────────────────────────────


class BotStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ULTIMATE = "ultimate"


_TIER_LIMITS = {
    Tier.FREE: 1,
    Tier.PREMIUM: 5,
    Tier.ULTIMATE: 10,
}


def bot_limit(tier: Tier | str) -> int:
    """How many bots a tenant of the given tier may host."""
    try:
        return _TIER_LIMITS[Tier(tier)]
    except ValueError:
        return 1


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class Stream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


# ── Records ──────────────────────────────────────────────────────────────────


class Bot(BaseModel):
    """A hosted workload and its persisted lifecycle state."""

    id: BotId = Field(default_factory=new_id)
    owner: TenantId
    name: str
    path: str
    runtime: str = "node"
    status: BotStatus = BotStatus.STOPPED
    created_at: datetime = Field(default_factory=utcnow)
    last_started: datetime | None = None
    last_stopped: datetime | None = None


class Tenant(BaseModel):
    id: TenantId = Field(default_factory=new_id)
    external_id: ExternalId
    username: str = ""
    avatar: str = ""
    tier: Tier = Tier.FREE
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def bot_limit(self) -> int:
        return bot_limit(self.tier)


class AuthCode(BaseModel):
    """A one-time login code bound to an external chat identity."""

    code: str
    external_id: ExternalId
    username: str = ""
    avatar: str = ""
    issued_at: datetime = Field(default_factory=utcnow)
    used: bool = False
    used_at: datetime | None = None


class FileEntry(BaseModel):
    name: str
    path: str
    kind: FileKind
    size: int = 0
    extension: str = ""
