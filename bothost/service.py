"""HostingService — the tenant-facing operations of the platform.

Composes the registry, file store, supervisor, credential broker and
log store. Every bot operation is scoped to the calling tenant: a bot
that exists but belongs to someone else is reported as not found.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bothost.auth.broker import CredentialBroker
from bothost.exceptions import (
    BothostError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from bothost.files.store import HIDDEN_PREFIX, TenantFileStore
from bothost.logs.sink import BotLogStore, LogPage
from bothost.processes.runtime import Runtime, get_runtime
from bothost.processes.supervisor import ProcessSupervisor
from bothost.registry.store import WorkloadRegistry
from bothost.types import Bot, BotStatus, FileEntry, Tenant, bot_limit

_logger = logging.getLogger(__name__)

_MAX_NAME_LENGTH = 64


@dataclass
class Upload:
    """A file already received onto local disk."""

    path: Path
    filename: str


@dataclass
class DeletionReport:
    bot_id: str
    process_stopped: bool = False
    files_removed: bool = False
    record_removed: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record_removed and not self.errors


def validate_bot_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("A bot name is required")
    if len(name) > _MAX_NAME_LENGTH:
        raise ValidationError(f"Bot names are limited to {_MAX_NAME_LENGTH} characters")
    if name.startswith(HIDDEN_PREFIX) or any(c in name for c in ("/", "\\", "\x00")):
        raise ValidationError(f"'{name}' is not a valid bot name")
    return name


class HostingService:
    def __init__(
        self,
        registry: WorkloadRegistry,
        files: TenantFileStore,
        supervisor: ProcessSupervisor,
        broker: CredentialBroker,
        logs: BotLogStore,
        bots_dir: Path,
        default_runtime: str = "node",
    ) -> None:
        self.registry = registry
        self.files = files
        self.supervisor = supervisor
        self.broker = broker
        self.logs = logs
        self._bots_dir = Path(bots_dir)
        self._default_runtime = default_runtime
        self._create_locks: dict[str, asyncio.Lock] = {}

    # ── Login ─────────────────────────────────────────────────────────────

    async def issue_code(self, external_id: str, username: str = "", avatar: str = "") -> str:
        return await self.broker.issue(external_id, username, avatar)

    async def login(self, code: str) -> Tenant:
        """Redeem a login code and return (creating if needed) its tenant."""
        auth = await self.broker.redeem(code)
        tenant = await self.registry.find_or_create_tenant(
            auth.external_id, auth.username, auth.avatar
        )
        _logger.info("Login: %s", tenant.username or tenant.external_id)
        return tenant

    async def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = await self.registry.get_tenant(tenant_id)
        if tenant is None:
            raise NotFoundError("Account not found")
        return tenant

    # ── Bots ──────────────────────────────────────────────────────────────

    async def get_bot(self, owner: str, bot_id: str) -> Bot:
        bot = await self.registry.find_bot(bot_id, owner)
        if bot is None:
            raise NotFoundError("Bot not found")
        return bot

    async def list_bots(self, owner: str) -> list[Bot]:
        return await self.registry.list_bots(owner)

    async def create_bot(
        self,
        owner: str,
        name: str,
        code: str | None = None,
        upload: Upload | None = None,
        runtime: str | None = None,
    ) -> Bot:
        """Create a bot from inline code or an uploaded file or zip."""
        name = validate_bot_name(name)
        rt = get_runtime(runtime or self._default_runtime)
        if upload is None and not code:
            raise ValidationError("Upload a file or provide the bot's code")

        tenant = await self.get_tenant(owner)
        limit = bot_limit(tenant.tier)
        async with self._create_locks.setdefault(owner, asyncio.Lock()):
            if await self.registry.count_bots(owner=owner) >= limit:
                raise ConflictError(f"You have reached your bot limit ({limit})")
            if await self.registry.find_bot_by_name(owner, name) is not None:
                raise ConflictError(f"A bot named '{name}' already exists")

            root = self._bots_dir / owner / name
            fresh = not root.exists()
            await self.files.ensure(root)
            try:
                await self._populate(root, rt, name, code, upload)
                # Re-checked in the insert transaction for other processes on this database.
                bot = await self.registry.create_bot(
                    Bot(owner=owner, name=name, path=str(root.resolve()), runtime=rt.name),
                    limit=limit,
                )
            except BothostError:
                if fresh:
                    await self._discard(root)
                raise

        _logger.info("Created bot %s (%s) for %s", name, bot.id, owner)
        return bot

    async def _populate(
        self, root: Path, rt: Runtime, name: str, code: str | None, upload: Upload | None,
    ) -> None:
        if upload is not None:
            if Path(upload.filename).suffix.lower() == ".zip":
                await self.files.extract_archive(upload.path, root)
                upload.path.unlink(missing_ok=True)
            else:
                await self.files.import_file(root, upload.path, Path(upload.filename).name)
        else:
            await self.files.write(root, rt.primary_entry, code)

        manifest = rt.manifest(name, rt.primary_entry)
        if manifest is not None:
            filename, content = manifest
            if not (root / filename).exists():
                await self.files.write(root, filename, content)

    async def _discard(self, root: Path) -> None:
        try:
            await self.files.remove_root(root)
        except BothostError as e:
            _logger.error("Could not clean up %s: %s", root, e)

    async def delete_bot(self, owner: str, bot_id: str) -> DeletionReport:
        """Stop, wipe and forget a bot. Carries on past filesystem errors."""
        bot = await self.get_bot(owner, bot_id)
        report = DeletionReport(bot_id=bot.id)

        report.process_stopped = await self.supervisor.stop(bot.id)

        try:
            await self.files.remove_root(bot.path)
            report.files_removed = True
        except BothostError as e:
            _logger.error("Error deleting files of bot %s: %s", bot.name, e)
            report.errors.append(str(e))

        report.record_removed = await self.registry.delete_bot(bot.id)
        self.supervisor.forget(bot.id)
        _logger.info("Deleted bot %s (%s)", bot.name, bot.id)
        return report

    async def start_bot(self, owner: str, bot_id: str) -> Bot:
        bot = await self.get_bot(owner, bot_id)
        await self.supervisor.start(bot.id)
        return await self.get_bot(owner, bot_id)

    async def stop_bot(self, owner: str, bot_id: str) -> Bot:
        bot = await self.get_bot(owner, bot_id)
        await self.supervisor.stop(bot.id)
        return await self.get_bot(owner, bot_id)

    async def dashboard(self, owner: str) -> dict[str, Any]:
        tenant = await self.get_tenant(owner)
        bots = await self.list_bots(owner)
        running = sum(1 for b in bots if b.status == BotStatus.RUNNING)
        return {
            "total_bots": len(bots),
            "running_bots": running,
            "stopped_bots": len(bots) - running,
            "bot_limit": bot_limit(tenant.tier),
            "tier": tenant.tier.value,
        }

    async def platform_stats(self) -> dict[str, Any]:
        total = await self.registry.count_bots()
        running = await self.registry.count_bots(status=BotStatus.RUNNING)
        return {
            "users": await self.registry.count_tenants(),
            "bots": total,
            "running_bots": running,
            "stopped_bots": await self.registry.count_bots(status=BotStatus.STOPPED),
            "active_processes": self.supervisor.count,
            "uptime_pct": round(running / total * 100) if total else 0,
        }

    # ── Files ─────────────────────────────────────────────────────────────

    async def list_files(self, owner: str, bot_id: str) -> list[FileEntry]:
        bot = await self.get_bot(owner, bot_id)
        return await self.files.list(bot.path)

    async def read_file(self, owner: str, bot_id: str, path: str) -> str:
        bot = await self.get_bot(owner, bot_id)
        return await self.files.read(bot.path, path)

    async def write_file(self, owner: str, bot_id: str, path: str, content: str) -> None:
        bot = await self.get_bot(owner, bot_id)
        await self.files.write(bot.path, path, content)

    async def delete_file(self, owner: str, bot_id: str, path: str) -> None:
        bot = await self.get_bot(owner, bot_id)
        await self.files.delete(bot.path, path)

    async def upload_files(self, owner: str, bot_id: str, uploads: list[Upload]) -> list[str]:
        bot = await self.get_bot(owner, bot_id)
        stored = []
        for upload in uploads:
            name = Path(upload.filename).name
            await self.files.import_file(bot.path, upload.path, name)
            stored.append(name)
        return stored

    async def download_path(self, owner: str, bot_id: str, path: str) -> Path:
        bot = await self.get_bot(owner, bot_id)
        target = self.files.resolve(bot.path, path)
        if not target.is_file():
            raise ValidationError(f"'{path}' is not a file")
        return target

    # ── Logs ──────────────────────────────────────────────────────────────

    async def bot_logs(
        self, owner: str, bot_id: str, page: int = 1, per_page: int = 20,
        stream: str | None = None, search: str = "",
    ) -> LogPage:
        bot = await self.get_bot(owner, bot_id)
        return await self.logs.query([bot.id], page, per_page, stream, search)

    async def tenant_logs(
        self, owner: str, page: int = 1, per_page: int = 50,
        stream: str | None = None, search: str = "",
    ) -> LogPage:
        bots = await self.list_bots(owner)
        return await self.logs.query([b.id for b in bots], page, per_page, stream, search)
