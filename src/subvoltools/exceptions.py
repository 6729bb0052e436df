"""Exceptions for subvoltools."""


class BackupError(Exception):
    """Base class for errors that end a backup run.

    ``exit_code`` is the process status the CLI reports for it.
    """
    exit_code = 1


class ValidationError(BackupError):
    """Invalid source, destination, pattern file, or flag combination."""


class DependencyUnavailable(BackupError):
    """A copy strategy cannot run on this host.

    Never fatal on its own: the strategy selector catches it and falls
    back to the next strategy in the chain.
    """

    def __init__(self, strategy, reason: str):
        super().__init__(f"{strategy} unavailable: {reason}")
        self.strategy = strategy
        self.reason = reason


class EnumerationError(BackupError):
    """A path in the source tree could not be read during the walk."""

    def __init__(self, path: str, error: str):
        super().__init__(f"Cannot read {path}: {error}")
        self.path = path
        self.error = error


class CopyError(BackupError):
    """A single file failed to transfer (raised in strict mode)."""

    def __init__(self, path: str, error: str):
        super().__init__(f"Failed to copy {path}: {error}")
        self.path = path
        self.error = error


class InterruptedRun(BackupError):
    """The run was interrupted or cancelled by the operator."""
