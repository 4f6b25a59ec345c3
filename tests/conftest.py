"""Shared test fixtures: a temporary registry, an in-memory log sink, and
a fully wired HostingService rooted in ``tmp_path``."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from bothost.auth.broker import CredentialBroker
from bothost.files.store import TenantFileStore
from bothost.logs.sink import BaseLogSink, BotLogEntry, BotLogStore
from bothost.processes.supervisor import ProcessSupervisor
from bothost.registry.store import WorkloadRegistry
from bothost.service import HostingService
from bothost.types import Bot, Stream


class MemorySink(BaseLogSink):
    """Log sink that keeps every chunk in a list. No database."""

    def __init__(self):
        self.entries: list[BotLogEntry] = []

    async def append(self, bot_id, bot_name, stream, chunk):
        entry = BotLogEntry(bot_id=bot_id, bot_name=bot_name, stream=Stream(stream), chunk=chunk)
        self.entries.append(entry)
        return entry

    def text(self, bot_id: str, stream: Stream = Stream.STDOUT) -> str:
        return "".join(e.chunk for e in self.entries if e.bot_id == bot_id and e.stream == stream)


async def stop_all(supervisor: ProcessSupervisor) -> None:
    """Stop every live process and wait for it to exit."""
    for bot_id in supervisor.running_ids():
        handle = supervisor.get_handle(bot_id)
        await supervisor.stop(bot_id)
        if handle is not None:
            await asyncio.wait_for(handle.process.wait(), timeout=10)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "bothost.db")


@pytest_asyncio.fixture
async def registry(db_path):
    reg = WorkloadRegistry(db_path)
    await reg.initialize()
    return reg


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def files():
    return TenantFileStore()


@pytest_asyncio.fixture
async def supervisor(registry, files, sink):
    sup = ProcessSupervisor(registry, files, sink, stop_timeout=2.0)
    yield sup
    await stop_all(sup)


@pytest_asyncio.fixture
async def make_bot(registry, tmp_path):
    """Create a python bot on disk and in the registry from a script body."""

    async def _make(script: str | None, name: str = "echo", owner: str = "t1",
                    entry: str = "main.py") -> Bot:
        root = tmp_path / "bots" / owner / name
        root.mkdir(parents=True)
        if script is not None:
            (root / entry).write_text(script)
        return await registry.create_bot(
            Bot(owner=owner, name=name, path=str(root), runtime="python")
        )

    return _make


@pytest_asyncio.fixture
async def service(registry, db_path, tmp_path):
    files = TenantFileStore()
    logs = BotLogStore(db_path)
    supervisor = ProcessSupervisor(registry, files, logs, stop_timeout=2.0)
    svc = HostingService(
        registry=registry,
        files=files,
        supervisor=supervisor,
        broker=CredentialBroker(registry),
        logs=logs,
        bots_dir=tmp_path / "bots",
        default_runtime="python",
    )
    yield svc
    await stop_all(supervisor)


@pytest_asyncio.fixture
async def tenant(service):
    """A signed-in free-tier tenant."""
    code = await service.issue_code("1001", "alice")
    return await service.login(code)


@pytest.fixture
def bots_root(tmp_path) -> Path:
    return tmp_path / "bots"
