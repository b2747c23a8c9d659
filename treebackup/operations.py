import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from .changes import ChangeSet, full_change_set, resolve_changes
from .errors import BackupError, Diagnostic, DestinationWriteFailure, MissingSourceRoot
from .ledger import HISTORY_FILENAME, SnapshotLedger, SnapshotRecord
from .materializer import materialize_snapshot
from .scanner import ScanResult, scan_tree
from .snapshots import latest_snapshot, list_snapshots, new_snapshot_path, snapshot_timestamp


# Get logger instance (configuration is handled in cli.py)
logger = logging.getLogger('treebackup')


class OutcomeStatus(Enum):
    SUCCESS = "success"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


@dataclass
class BackupOutcome:
    """Result of one backup invocation, suitable for display."""

    status: OutcomeStatus
    message: str
    record: Optional[SnapshotRecord] = None
    total_files: int = 0
    copied: int = 0
    linked: int = 0
    fallback_copied: int = 0
    failed: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


class BackupOperations:
    """Runs full and incremental backups and keeps their history."""

    def __init__(self, ledger: Optional[SnapshotLedger] = None):
        """
        Initialize BackupOperations with a ledger.

        Args:
            ledger (SnapshotLedger, optional): Ledger that receives a record for
                every completed backup. A new empty ledger is used if omitted.
        """
        self.ledger = ledger if ledger is not None else SnapshotLedger()

    def run_full_backup(self, source_root: Union[str, Path],
                        backup_root: Union[str, Path]) -> BackupOutcome:
        """
        Copy every file of the source tree into a new snapshot directory.

        Args:
            source_root: Directory to back up
            backup_root: Directory that holds the snapshots and the history log

        Returns:
            BackupOutcome: SUCCESS with counts, or FAILED with a message
        """
        try:
            source_path, backup_path = self._check_roots(source_root, backup_root)
            logger.info(f"Starting full backup of '{source_path}' into '{backup_path}'")
            scan = self._scan_source(source_path, backup_path)
            return self._materialize(scan, full_change_set(scan.records), backup_path, prior=None)
        except BackupError as e:
            return self._failed(e)
        except OSError as e:
            return self._failed(BackupError(f"Backup aborted: {e}", path=e.filename))

    def run_incremental_backup(self, source_root: Union[str, Path],
                               backup_root: Union[str, Path]) -> BackupOutcome:
        """
        Back up only what changed since the most recent snapshot.

        New and modified files are copied from the source; unchanged files are
        hard-linked from the latest snapshot. Without a prior snapshot this is
        a full backup. If nothing was added or modified, no snapshot directory
        is created and the outcome is NO_CHANGES.

        Args:
            source_root: Directory to back up
            backup_root: Directory that holds the snapshots and the history log

        Returns:
            BackupOutcome: SUCCESS, NO_CHANGES or FAILED
        """
        try:
            source_path, backup_path = self._check_roots(source_root, backup_root)
            prior = latest_snapshot(backup_path)
            if prior is None:
                logger.info(f"No previous snapshot in '{backup_path}', running a full backup")
                return self.run_full_backup(source_path, backup_path)

            logger.info(f"Starting incremental backup of '{source_path}' based on '{prior.name}'")
            scan = self._scan_source(source_path, backup_path)
            prior_scan = scan_tree(prior)
            changes = resolve_changes(scan.records, prior_scan.records)

            if not changes.has_changes:
                message = f"No changes detected since {prior.name}"
                logger.info(message)
                return BackupOutcome(
                    status=OutcomeStatus.NO_CHANGES,
                    message=message,
                    total_files=len(scan.records),
                    diagnostics=scan.diagnostics + prior_scan.diagnostics,
                )

            outcome = self._materialize(scan, changes, backup_path, prior=prior)
            outcome.diagnostics[:0] = prior_scan.diagnostics
            return outcome
        except BackupError as e:
            return self._failed(e)
        except OSError as e:
            return self._failed(BackupError(f"Backup aborted: {e}", path=e.filename))

    def list_history(self) -> List[SnapshotRecord]:
        """Return the backups completed through this ledger, oldest first."""
        return self.ledger.list()

    def _check_roots(self, source_root, backup_root):
        source_path = Path(source_root).expanduser()
        if not source_path.exists():
            raise MissingSourceRoot(f"Source directory '{source_root}' does not exist", path=str(source_root))
        if not source_path.is_dir():
            raise MissingSourceRoot(f"'{source_root}' is not a directory", path=str(source_root))
        return source_path.resolve(), Path(backup_root).expanduser().resolve()

    def _scan_source(self, source_path: Path, backup_path: Path) -> ScanResult:
        # A backup root inside the source tree must not back itself up
        if backup_path == source_path:
            exclude = list_snapshots(backup_path) + [backup_path / HISTORY_FILENAME]
        elif backup_path.is_relative_to(source_path):
            exclude = [backup_path]
        else:
            exclude = []
        return scan_tree(source_path, exclude=exclude)

    def _materialize(self, scan: ScanResult, changes: ChangeSet, backup_path: Path,
                     prior: Optional[Path]) -> BackupOutcome:
        destination = self._new_destination(backup_path)
        result = materialize_snapshot(changes, scan.root, destination, prior_snapshot=prior)

        record = SnapshotRecord(
            timestamp=snapshot_timestamp(destination),
            source_root=str(scan.root),
            snapshot_path=str(destination),
            total_source_files=len(scan.records),
            files_written=result.files_written,
            files_linked=result.linked,
            files_failed=result.failed,
            is_incremental=prior is not None,
            based_on_snapshot=prior.name if prior is not None else "",
        )
        diagnostics = scan.diagnostics + result.diagnostics
        try:
            self.ledger.record(record)
        except BackupError as e:
            logger.error(str(e))
            diagnostics.append(Diagnostic.from_error(e))

        message = (f"{record.kind.capitalize()} backup saved to {destination} "
                   f"({record.files_written}/{record.total_source_files} files copied)")
        logger.info(message)
        return BackupOutcome(
            status=OutcomeStatus.SUCCESS,
            message=message,
            record=record,
            total_files=len(scan.records),
            copied=result.copied,
            linked=result.linked,
            fallback_copied=result.fallback_copied,
            failed=result.failed,
            diagnostics=diagnostics,
        )

    def _new_destination(self, backup_path: Path) -> Path:
        try:
            backup_path.mkdir(parents=True, exist_ok=True)
            return new_snapshot_path(backup_path)
        except OSError as e:
            raise DestinationWriteFailure(
                f"Cannot prepare backup directory '{backup_path}': {e}", path=str(backup_path)) from e

    def _failed(self, error: BackupError) -> BackupOutcome:
        logger.error(f"Backup failed: {error}")
        return BackupOutcome(
            status=OutcomeStatus.FAILED,
            message=str(error),
            diagnostics=[Diagnostic.from_error(error)],
        )
