"""Web sessions — opaque tokens handed out after a successful code login."""

from __future__ import annotations

import secrets
import time
from typing import Callable


class SessionStore:
    """In-memory token → tenant id map with a sliding expiry."""

    def __init__(
        self,
        ttl_seconds: int = 7 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, tuple[str, float]] = {}

    def create(self, tenant_id: str) -> str:
        self.purge_expired()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = (tenant_id, self._clock() + self._ttl)
        return token

    def get(self, token: str | None) -> str | None:
        if not token:
            return None
        entry = self._sessions.get(token)
        if entry is None:
            return None
        tenant_id, expires = entry
        now = self._clock()
        if now > expires:
            del self._sessions[token]
            return None
        self._sessions[token] = (tenant_id, now + self._ttl)
        return tenant_id

    def drop(self, token: str | None) -> bool:
        return self._sessions.pop(token or "", None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [t for t, (_, expires) in self._sessions.items() if now > expires]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
