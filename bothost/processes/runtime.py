"""Runtimes — how each supported language finds and launches a bot.

A runtime bundles the interpreter command, the conventional entry-file
names tried in order, the source extension used as a fallback, and the
manifest written next to freshly created bots.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import Callable

from bothost.exceptions import ValidationError


def _no_manifest(name: str, entry: str) -> tuple[str, str] | None:
    return None


def _node_manifest(name: str, entry: str) -> tuple[str, str] | None:
    package = {
        "name": "-".join(name.lower().split()),
        "version": "1.0.0",
        "description": "Discord Bot",
        "main": entry,
        "dependencies": {"discord.js": "^14.0.0"},
        "scripts": {"start": f"node {entry}"},
    }
    return "package.json", json.dumps(package, indent=2)


@dataclass(frozen=True)
class Runtime:
    name: str
    command: tuple[str, ...]
    entry_files: tuple[str, ...]
    extension: str
    manifest: Callable[[str, str], tuple[str, str] | None] = _no_manifest

    @property
    def primary_entry(self) -> str:
        return self.entry_files[0]

    def argv(self, entry: str) -> list[str]:
        return [*self.command, entry]


RUNTIMES: dict[str, Runtime] = {
    "node": Runtime(
        name="node",
        command=("node",),
        entry_files=("index.js", "app.js", "main.js", "bot.js"),
        extension=".js",
        manifest=_node_manifest,
    ),
    "python": Runtime(
        name="python",
        command=(sys.executable, "-u"),
        entry_files=("main.py", "bot.py", "app.py", "index.py"),
        extension=".py",
    ),
}


def get_runtime(name: str) -> Runtime:
    try:
        return RUNTIMES[name]
    except KeyError:
        raise ValidationError(
            f"Unknown runtime '{name}' (expected one of: {', '.join(sorted(RUNTIMES))})"
        ) from None
