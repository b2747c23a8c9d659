"""
Exceptions and diagnostics for treebackup.

Per-file problems are raised as one of the exceptions below inside the
scanner and materializer, caught at the file level, and turned into
Diagnostic values so a single bad file never stops a backup run.
"""

from dataclasses import dataclass
from typing import Optional


class BackupError(RuntimeError):
    """Base class for all backup errors."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class UnreadableFile(BackupError):
    """A file could not be opened or read (fingerprinting or copy source)."""
    pass


class DestinationWriteFailure(BackupError):
    """A file, directory or log line could not be written."""
    pass


class MissingSourceRoot(BackupError):
    """The directory to back up does not exist or is not a directory."""
    pass


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem encountered while processing a single path."""

    kind: str
    path: str
    message: str

    @classmethod
    def from_error(cls, error: BackupError) -> "Diagnostic":
        return cls(kind=type(error).__name__, path=error.path or "", message=str(error))

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"
