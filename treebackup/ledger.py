import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from .errors import DestinationWriteFailure


logger = logging.getLogger('treebackup')

HISTORY_FILENAME = "backup_history.txt"


@dataclass(frozen=True)
class SnapshotRecord:
    """Summary of one completed backup run."""

    timestamp: str
    source_root: str
    snapshot_path: str
    total_source_files: int
    files_written: int
    files_linked: int = 0
    files_failed: int = 0
    is_incremental: bool = False
    based_on_snapshot: str = ""

    @property
    def kind(self) -> str:
        return "incremental" if self.is_incremental else "full"

    @property
    def backup_root(self) -> Path:
        return Path(self.snapshot_path).parent

    def log_line(self) -> str:
        """Single human-readable line for the history log."""
        line = (f"{self.timestamp}: {self.kind} backup of '{self.source_root}' "
                f"({self.files_written}/{self.total_source_files} files copied")
        if self.is_incremental:
            line += f", {self.files_linked} linked, based on {self.based_on_snapshot}"
        if self.files_failed:
            line += f", {self.files_failed} failed"
        return line + ")"

    def render(self) -> str:
        """Multi-line block used when showing the backup history."""
        lines = [
            f"Time:       {self.timestamp}",
            f"Type:       {'Incremental' if self.is_incremental else 'Full'} backup",
        ]
        if self.is_incremental:
            lines.append(f"Based on:   {self.based_on_snapshot}")
        lines.extend([
            f"Source:     {self.source_root}",
            f"Location:   {self.snapshot_path}",
            f"Files:      {self.files_written}/{self.total_source_files}",
        ])
        return "\n".join(lines)


class SnapshotLedger:
    """
    Ordered record of completed backups.

    Records are kept in memory for display and each one is also appended as a
    line to the history log of its backup root. The log file is opened and
    closed for every record, so a crash can only lose the record being written.
    """

    def __init__(self):
        self._records: List[SnapshotRecord] = []

    def record(self, snapshot_record: SnapshotRecord) -> None:
        """
        Add a record to the ledger and append it to the history log.

        Raises:
            DestinationWriteFailure: If the history log cannot be written. The
                record is still kept in memory.
        """
        self._records.append(snapshot_record)
        history_file = snapshot_record.backup_root / HISTORY_FILENAME
        try:
            # Paths that are not valid UTF-8 are written as escapes
            with open(history_file, 'a', encoding='utf-8', errors='backslashreplace') as f:
                f.write(snapshot_record.log_line() + "\n")
        except (OSError, UnicodeError) as e:
            raise DestinationWriteFailure(
                f"Cannot append to history log '{history_file}': {e}", path=str(history_file)) from e
        logger.debug(f"Recorded {snapshot_record.kind} backup {snapshot_record.timestamp} in '{history_file}'")

    def list(self) -> List[SnapshotRecord]:
        """Return all records, oldest first."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @staticmethod
    def read_log(backup_root: Union[str, Path]) -> List[str]:
        """Return the lines of a backup root's history log, or an empty list if it has none."""
        history_file = Path(backup_root) / HISTORY_FILENAME
        if not history_file.exists():
            return []
        return history_file.read_text(encoding='utf-8', errors='replace').splitlines()
