"""Custom exception hierarchy for bothost."""


class BothostError(Exception):
    """Base for all bothost errors."""


class NotFoundError(BothostError):
    """Bot, file or auth code is unknown (or already consumed)."""


class EntryNotFoundError(NotFoundError):
    """No entry file could be resolved in a bot's sandbox."""


class ConflictError(BothostError):
    """Quota exceeded or a name is already taken."""


class ValidationError(BothostError):
    """Malformed input, including paths escaping a sandbox root."""


class StorageError(BothostError):
    """Filesystem failure inside a sandbox."""


class ProcessError(BothostError):
    """The OS refused to spawn a bot process."""
