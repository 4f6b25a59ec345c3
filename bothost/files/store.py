"""TenantFileStore — sandboxed file operations under a bot's root.

Every path a tenant hands us is resolved against the bot's sandbox root
and rejected if it lands anywhere outside it. Blocking filesystem work
runs in a worker thread so the event loop keeps serving other tenants.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Iterable

from bothost.exceptions import NotFoundError, StorageError, ValidationError
from bothost.types import FileEntry, FileKind

_logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."
DEFAULT_CACHE_DIRS = ("node_modules", "__pycache__", ".venv")


class TenantFileStore:
    """File operations confined to one sandbox root per call."""

    def __init__(self, cache_dirs: Iterable[str] = DEFAULT_CACHE_DIRS) -> None:
        self._cache_dirs = frozenset(cache_dirs)

    # ── Path confinement ──────────────────────────────────────────────────

    @staticmethod
    def _resolve(root: str | Path, relative_path: str) -> Path:
        """Resolve ``relative_path`` under ``root`` or raise ValidationError."""
        if not relative_path or not str(relative_path).strip():
            raise ValidationError("A file path is required")
        if "\x00" in relative_path:
            raise ValidationError("File path contains a NUL byte")

        base = Path(root).resolve()
        target = (base / relative_path).resolve()
        if target == base or not target.is_relative_to(base):
            raise ValidationError(f"Path '{relative_path}' escapes the bot directory")
        return target

    def resolve(self, root: str | Path, relative_path: str) -> Path:
        """Absolute path of an existing file or directory inside ``root``."""
        target = self._resolve(root, relative_path)
        if not target.exists():
            raise NotFoundError(f"File '{relative_path}' not found")
        return target

    # ── Directory operations ──────────────────────────────────────────────

    async def ensure(self, root: str | Path) -> Path:
        path = Path(root)
        try:
            await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create bot directory: {e}") from e
        return path

    async def list(self, root: str | Path) -> list[FileEntry]:
        """Immediate children of ``root``: directories first, then by name."""
        path = Path(root)
        if not path.exists():
            _logger.info("Creating missing bot directory %s", path)
            await self.ensure(path)
            return []
        try:
            return await asyncio.to_thread(self._list_sync, path)
        except OSError as e:
            raise StorageError(f"Cannot list bot directory: {e}") from e

    def _list_sync(self, root: Path) -> list[FileEntry]:
        entries = []
        for child in root.iterdir():
            name = child.name
            if name.startswith(HIDDEN_PREFIX) or name in self._cache_dirs:
                continue
            try:
                if child.is_dir():
                    entries.append(FileEntry(
                        name=name, path=name, kind=FileKind.DIRECTORY,
                    ))
                else:
                    entries.append(FileEntry(
                        name=name,
                        path=name,
                        kind=FileKind.FILE,
                        size=child.stat().st_size,
                        extension=child.suffix.lower(),
                    ))
            except OSError as e:
                _logger.warning("Skipping %s: %s", child, e)

        entries.sort(key=lambda e: (e.kind != FileKind.DIRECTORY, e.name))
        return entries

    # ── File operations ───────────────────────────────────────────────────

    async def read(self, root: str | Path, relative_path: str) -> str:
        target = self._resolve(root, relative_path)
        try:
            return await asyncio.to_thread(target.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise NotFoundError(f"File '{relative_path}' not found") from e
        except UnicodeDecodeError as e:
            raise ValidationError(f"File '{relative_path}' is not UTF-8 text") from e
        except OSError as e:
            raise StorageError(f"Cannot read '{relative_path}': {e}") from e

    async def write(self, root: str | Path, relative_path: str, content: str) -> Path:
        target = self._resolve(root, relative_path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Cannot write '{relative_path}': {e}") from e
        return target

    async def delete(self, root: str | Path, relative_path: str) -> None:
        target = self._resolve(root, relative_path)
        if not target.exists() and not target.is_symlink():
            raise NotFoundError(f"File '{relative_path}' not found")

        def _remove() -> None:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()

        try:
            await asyncio.to_thread(_remove)
        except FileNotFoundError as e:
            raise NotFoundError(f"File '{relative_path}' not found") from e
        except OSError as e:
            raise StorageError(f"Cannot delete '{relative_path}': {e}") from e

    async def import_file(self, root: str | Path, source: str | Path, name: str) -> Path:
        """Move an uploaded file into ``root`` as ``name``, replacing any existing one."""
        target = self._resolve(root, name)

        def _move() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_dir():
                shutil.rmtree(target)
            shutil.move(str(source), str(target))

        try:
            await asyncio.to_thread(_move)
        except FileNotFoundError as e:
            raise NotFoundError(f"Upload '{source}' not found") from e
        except OSError as e:
            raise StorageError(f"Cannot store '{name}': {e}") from e
        return target

    async def extract_archive(self, archive_path: str | Path, dest_root: str | Path) -> list[str]:
        """Unpack a zip into ``dest_root``, overwriting conflicting paths."""
        await self.ensure(dest_root)

        def _extract() -> list[str]:
            with zipfile.ZipFile(archive_path) as zf:
                zf.extractall(dest_root)
                return zf.namelist()

        try:
            names = await asyncio.to_thread(_extract)
        except zipfile.BadZipFile as e:
            raise ValidationError(f"Not a valid zip archive: {e}") from e
        except FileNotFoundError as e:
            raise NotFoundError(f"Archive '{archive_path}' not found") from e
        except OSError as e:
            raise StorageError(f"Cannot extract archive: {e}") from e

        _logger.info("Extracted %d entries into %s", len(names), dest_root)
        return names

    async def remove_root(self, root: str | Path) -> None:
        """Delete a whole sandbox. A missing root is not an error."""
        path = Path(root)
        if not path.exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise StorageError(f"Cannot remove bot directory: {e}") from e

    # ── Entry resolution ──────────────────────────────────────────────────

    async def resolve_entry(
        self, root: str | Path, candidates: Iterable[str], extension: str
    ) -> Path | None:
        """Pick the file a bot process starts from.

        Conventional names are tried in order; otherwise the first file
        (sorted by name) with the runtime's extension at the top level.
        """
        return await asyncio.to_thread(self._resolve_entry_sync, Path(root), list(candidates), extension)

    @staticmethod
    def _resolve_entry_sync(root: Path, candidates: list[str], extension: str) -> Path | None:
        for name in candidates:
            path = root / name
            if path.is_file():
                return path

        if not root.is_dir():
            return None
        matches = sorted(
            p for p in root.iterdir()
            if p.is_file() and p.suffix.lower() == extension.lower()
        )
        return matches[0] if matches else None
