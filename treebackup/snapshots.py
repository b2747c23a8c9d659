import re
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union


logger = logging.getLogger('treebackup')

SNAPSHOT_PREFIX = "backup_"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# backup_YYYYMMDD_HHMMSS with an optional _NN suffix for same-second runs
_SNAPSHOT_NAME_RE = re.compile(r"^backup_\d{8}_\d{6}(_\d{2})?$")
_MAX_SEQUENCE = 99


def current_timestamp() -> str:
    """Return the local time formatted for use in a snapshot directory name."""
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def is_snapshot_name(name: str) -> bool:
    """Check whether a directory name follows the snapshot naming convention."""
    return bool(_SNAPSHOT_NAME_RE.match(name))


def snapshot_timestamp(snapshot_path: Union[str, Path]) -> str:
    """Extract the timestamp part of a snapshot directory name."""
    return Path(snapshot_path).name[len(SNAPSHOT_PREFIX):]


def list_snapshots(backup_root: Union[str, Path]) -> List[Path]:
    """
    List the snapshot directories directly under a backup root.

    Timestamps are zero-padded, so sorting by name is chronological.

    Args:
        backup_root: Directory holding the snapshots

    Returns:
        List[Path]: Snapshot directories, oldest first. Empty if the backup
        root does not exist or holds no snapshots.
    """
    root = Path(backup_root)
    if not root.is_dir():
        return []
    snapshots = [
        entry for entry in root.iterdir()
        if is_snapshot_name(entry.name) and entry.is_dir() and not entry.is_symlink()
    ]
    snapshots.sort(key=lambda p: p.name)
    logger.debug(f"Found {len(snapshots)} snapshots in '{root}'")
    return snapshots


def latest_snapshot(backup_root: Union[str, Path]) -> Optional[Path]:
    """Return the most recent snapshot directory, or None if there is none."""
    snapshots = list_snapshots(backup_root)
    return snapshots[-1] if snapshots else None


def new_snapshot_path(backup_root: Union[str, Path]) -> Path:
    """
    Choose the directory name for a new snapshot.

    Two runs within the same second would get the same name, so a taken name
    gets a two-digit sequence suffix. Names stay in chronological order when
    sorted.

    Args:
        backup_root: Directory holding the snapshots

    Returns:
        Path: A path under backup_root that does not exist yet

    Raises:
        FileExistsError: If every sequence number for the current second is taken
    """
    root = Path(backup_root)
    timestamp = current_timestamp()
    candidate = root / f"{SNAPSHOT_PREFIX}{timestamp}"
    if not candidate.exists():
        return candidate

    for seq in range(1, _MAX_SEQUENCE + 1):
        candidate = root / f"{SNAPSHOT_PREFIX}{timestamp}_{seq:02d}"
        if not candidate.exists():
            logger.debug(f"Snapshot name collision, using '{candidate.name}'")
            return candidate

    raise FileExistsError(f"No free snapshot name left for {timestamp} in '{root}'")
