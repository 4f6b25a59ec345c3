"""CredentialBroker — one-time login codes for chat identities.

A user asks the chat bot for a code, types it into the web login form,
and the broker trades it for the chat identity it was issued to. Codes
are short, human-typeable, single use, and expire after a fixed TTL.
Issuing a new code voids every unused code the same identity still holds.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from bothost.exceptions import NotFoundError, ValidationError
from bothost.registry.store import WorkloadRegistry
from bothost.types import AuthCode, utcnow

_logger = logging.getLogger(__name__)

# No 0/O, 1/I: codes are read off a chat message and typed by hand.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
DEFAULT_TTL = timedelta(minutes=5)


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CredentialBroker:
    """Issues and redeems single-use, time-limited login codes."""

    def __init__(
        self,
        registry: WorkloadRegistry,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def issue(self, external_id: str, username: str = "", avatar: str = "") -> str:
        """Issue a fresh code for ``external_id``, voiding its older ones."""
        if not external_id:
            raise ValidationError("An external identity is required")

        now = self._clock()
        # Live codes stay unique across identities; retry on a clash.
        while True:
            code = generate_code()
            if await self._registry.replace_code(AuthCode(
                code=code,
                external_id=external_id,
                username=username,
                avatar=avatar,
                issued_at=now,
            )):
                break
        await self.purge_expired()

        _logger.info("Issued login code for %s", username or external_id)
        return code

    async def redeem(self, code: str) -> AuthCode:
        """Consume a code and return the identity it was issued to."""
        cleaned = normalize_code(code)
        if not cleaned:
            raise ValidationError("A verification code is required")

        record = await self._registry.find_unused_code(cleaned)
        if record is None:
            raise NotFoundError("Invalid verification code")

        now = self._clock()
        if now - record.issued_at > self._ttl:
            raise NotFoundError("Verification code has expired")

        if not await self._registry.consume_code(record, at=now):
            raise NotFoundError("Invalid verification code")

        record.used = True
        record.used_at = now
        return record

    async def purge_expired(self) -> int:
        """Drop codes that can no longer be redeemed."""
        return await self._registry.purge_codes(self._clock() - self._ttl)
