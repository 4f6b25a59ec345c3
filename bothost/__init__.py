"""bothost — multi-tenant hosting for chat bots run as supervised processes."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("bothost")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
