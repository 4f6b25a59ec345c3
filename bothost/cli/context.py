"""Runtime context — wires the subsystems together and bridges sync CLI to async."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Coroutine

from bothost.auth.broker import CredentialBroker
from bothost.config import BothostSettings, settings
from bothost.files.store import TenantFileStore
from bothost.logs.sink import BotLogStore
from bothost.processes.supervisor import ProcessSupervisor
from bothost.registry.store import WorkloadRegistry
from bothost.service import HostingService


def build_service(cfg: BothostSettings | None = None) -> HostingService:
    """Construct every subsystem from settings. Nothing touches disk yet."""
    cfg = cfg or settings
    db_path = str(cfg.db_path)

    registry = WorkloadRegistry(db_path)
    files = TenantFileStore(cache_dirs=cfg.dependency_cache_dirs)
    logs = BotLogStore(db_path)
    supervisor = ProcessSupervisor(
        registry, files, logs, stop_timeout=cfg.stop_timeout_seconds,
    )
    broker = CredentialBroker(
        registry, ttl=timedelta(seconds=cfg.auth_code_ttl_seconds),
    )
    return HostingService(
        registry=registry,
        files=files,
        supervisor=supervisor,
        broker=broker,
        logs=logs,
        bots_dir=cfg.bots_dir,
        default_runtime=cfg.default_runtime,
    )


async def prepare(
    service: HostingService,
    cfg: BothostSettings | None = None,
    reconcile: bool = True,
) -> None:
    """Create data directories, migrate the database, reset stale statuses.

    Only the process that owns the supervisor may reconcile: a CLI command
    running next to a live server would mark its bots stopped.
    """
    cfg = cfg or settings
    cfg.data_dir.mkdir(parents=True, exist_ok=True)
    cfg.bots_dir.mkdir(parents=True, exist_ok=True)
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    await service.registry.initialize()
    if reconcile:
        await service.supervisor.reconcile()


def run_async(coro: Coroutine) -> Any:
    """Run an async function from sync CLI code."""
    return asyncio.run(coro)
