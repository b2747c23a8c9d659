"""
Treebackup - point-in-time backups of a directory tree.

This package creates full and incremental directory snapshots. Files are
compared by content digest, changed files are copied, and unchanged files are
hard-linked from the previous snapshot to save space.
"""

__version__ = "0.1.0"

# Export public API
from .operations import BackupOperations, BackupOutcome, OutcomeStatus
from .ledger import SnapshotLedger, SnapshotRecord

__all__ = ["BackupOperations", "BackupOutcome", "OutcomeStatus", "SnapshotLedger", "SnapshotRecord"]
