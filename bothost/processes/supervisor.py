"""ProcessSupervisor — the process table for hosted bots.

Spawns each bot as a real OS process in its sandbox, streams its output
to the log sink, and writes the bot's status back to the registry when
the process is started, stopped, or exits on its own.

A bot id maps to at most one live process. Every transition of that
mapping (spawn-and-insert, stop-and-remove, exit-and-remove) runs under
a per-bot lock together with the status write that belongs to it, so
concurrent starts never double-spawn and an exit can never overwrite
the status of a newer run.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from datetime import datetime

from bothost.exceptions import EntryNotFoundError, NotFoundError, ProcessError
from bothost.files.store import TenantFileStore
from bothost.logs.sink import BaseLogSink
from bothost.processes.runtime import get_runtime
from bothost.registry.store import WorkloadRegistry
from bothost.types import Bot, BotStatus, Stream, utcnow

_logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


@dataclass
class ProcessHandle:
    """A live bot process. In memory only, owned by the supervisor."""

    bot_id: str
    bot_name: str
    process: asyncio.subprocess.Process
    command: list[str]
    started_at: datetime = field(default_factory=utcnow)
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def os_pid(self) -> int:
        return self.process.pid


class ProcessSupervisor:
    """Starts, tracks and stops one OS process per bot."""

    def __init__(
        self,
        registry: WorkloadRegistry,
        files: TenantFileStore,
        sink: BaseLogSink,
        stop_timeout: float = 5.0,
    ) -> None:
        self._registry = registry
        self._files = files
        self._sink = sink
        self._stop_timeout = stop_timeout
        self._handles: dict[str, ProcessHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._observers: set[asyncio.Task] = set()

    def _lock_for(self, bot_id: str) -> asyncio.Lock:
        return self._locks.setdefault(bot_id, asyncio.Lock())

    # ── Queries ───────────────────────────────────────────────────────────

    def is_running(self, bot_id: str) -> bool:
        return bot_id in self._handles

    def running_ids(self) -> list[str]:
        return list(self._handles)

    def get_handle(self, bot_id: str) -> ProcessHandle | None:
        return self._handles.get(bot_id)

    @property
    def count(self) -> int:
        return len(self._handles)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self, bot_id: str) -> ProcessHandle:
        """Start a bot's process. Starting a running bot is a no-op."""
        async with self._lock_for(bot_id):
            existing = self._handles.get(bot_id)
            if existing is not None:
                return existing

            bot = await self._registry.get_bot(bot_id)
            if bot is None:
                raise NotFoundError(f"Bot '{bot_id}' not found")

            handle = await self._spawn(bot)
            self._handles[bot_id] = handle
            try:
                await self._registry.set_status(bot_id, BotStatus.RUNNING, handle.started_at)
            except Exception:
                _logger.error("Could not record start of bot %s, terminating it", bot.name)
                del self._handles[bot_id]
                self._terminate(handle)
                self._track(asyncio.create_task(self._escalate(handle)))
                raise

            handle.tasks = [
                asyncio.create_task(self._pump(handle, handle.process.stdout, Stream.STDOUT)),
                asyncio.create_task(self._pump(handle, handle.process.stderr, Stream.STDERR)),
            ]
            self._track(asyncio.create_task(self._observe_exit(handle)))

        _logger.info("Started bot %s (%s) as pid %d", bot.name, bot_id, handle.os_pid)
        return handle

    async def _spawn(self, bot: Bot) -> ProcessHandle:
        runtime = get_runtime(bot.runtime)
        entry = await self._files.resolve_entry(bot.path, runtime.entry_files, runtime.extension)
        if entry is None:
            raise EntryNotFoundError(
                f"No entry file found for bot '{bot.name}' "
                f"(tried {', '.join(runtime.entry_files)} and *{runtime.extension})"
            )

        command = runtime.argv(entry.name)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=bot.path,
            )
        except OSError as e:
            _logger.error("Failed to spawn bot %s: %s", bot.name, e)
            raise ProcessError(f"Could not start '{bot.name}': {e}") from e

        return ProcessHandle(
            bot_id=bot.id, bot_name=bot.name, process=process, command=command,
        )

    async def _pump(
        self,
        handle: ProcessHandle,
        stream: asyncio.StreamReader | None,
        name: Stream,
    ) -> None:
        """Forward every chunk of one output stream to the sink, in order."""
        if stream is None:
            return
        while True:
            data = await stream.read(_CHUNK_SIZE)
            if not data:
                break
            try:
                await self._sink.append(
                    handle.bot_id,
                    handle.bot_name,
                    name,
                    data.decode("utf-8", errors="replace"),
                )
            except Exception:
                _logger.exception(
                    "Dropped %s chunk from bot %s", name.value, handle.bot_name
                )

    async def _observe_exit(self, handle: ProcessHandle) -> None:
        """Wait for the process to end, then release its slot."""
        exit_code = await handle.process.wait()
        # Drain what the process wrote before it died; a grandchild may
        # still hold the pipes open, so bound the wait.
        await asyncio.wait(handle.tasks, timeout=self._stop_timeout)

        _logger.info(
            "Bot %s (%s) exited with code %s", handle.bot_name, handle.bot_id, exit_code
        )

        # Released handles are never re-inserted.
        if self._handles.get(handle.bot_id) is not handle:
            return

        async with self._lock_for(handle.bot_id):
            if self._handles.get(handle.bot_id) is not handle:
                # stop() already released it and recorded the stop
                return
            try:
                await self._registry.set_status(handle.bot_id, BotStatus.STOPPED)
            except Exception:
                _logger.exception("Could not record exit of bot %s", handle.bot_id)
            # Released after the status write so wait_stopped() sees both.
            del self._handles[handle.bot_id]

    async def stop(self, bot_id: str) -> bool:
        """Stop a bot's process. Returns False if nothing was running."""
        async with self._lock_for(bot_id):
            handle = self._handles.pop(bot_id, None)
            if handle is not None:
                self._terminate(handle)
                self._track(asyncio.create_task(self._escalate(handle)))

            bot = await self._registry.get_bot(bot_id)
            if bot is not None and (handle is not None or bot.status == BotStatus.RUNNING):
                await self._registry.set_status(bot_id, BotStatus.STOPPED)

        if handle is not None:
            _logger.info("Stopped bot %s (%s)", handle.bot_name, bot_id)
        return handle is not None

    def _track(self, task: asyncio.Task) -> None:
        self._observers.add(task)
        task.add_done_callback(self._observers.discard)

    async def _escalate(self, handle: ProcessHandle) -> None:
        """Kill a process that ignored SIGTERM for longer than the stop timeout."""
        try:
            await asyncio.wait_for(handle.process.wait(), timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            _logger.warning("Bot %s ignored SIGTERM, killing", handle.bot_name)
            try:
                handle.process.kill()
            except ProcessLookupError:
                pass

    @staticmethod
    def _terminate(handle: ProcessHandle) -> None:
        try:
            handle.process.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            pass

    def forget(self, bot_id: str) -> None:
        """Drop the lock of a bot that no longer exists."""
        lock = self._locks.get(bot_id)
        if lock is not None and not lock.locked() and bot_id not in self._handles:
            del self._locks[bot_id]

    async def reconcile(self) -> int:
        """Reset bots recorded as running that have no live process."""
        if self._handles:
            return 0
        reset = await self._registry.reset_running()
        if reset:
            _logger.info("Reset %d stale running bot(s) to stopped", reset)
        return reset

    async def wait_stopped(self, bot_id: str, timeout: float = 5.0) -> bool:
        """Wait until a bot has no live process (or the timeout passes)."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while bot_id in self._handles:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.05)
        return True

    async def shutdown(self) -> None:
        """Signal every live process. Returns once all signals are sent."""
        for bot_id in list(self._handles):
            async with self._lock_for(bot_id):
                handle = self._handles.get(bot_id)
                if handle is not None:
                    self._terminate(handle)
        _logger.info("Sent termination to %d bot process(es)", len(self._handles))
