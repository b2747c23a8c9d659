import os
import stat
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Union

from .errors import Diagnostic, UnreadableFile
from .hashing import hash_file_content


logger = logging.getLogger('treebackup')

# Log a progress line every this many fingerprinted files
PROGRESS_INTERVAL = 100


@dataclass(frozen=True)
class FileRecord:
    """A regular file found during a scan, keyed by its path relative to the scan root."""

    relative_path: str
    content_digest: str
    size_bytes: int
    modified_at: float


@dataclass
class ScanResult:
    """Inventory of one tree plus the files that could not be processed."""

    root: Path
    records: List[FileRecord] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


def scan_tree(root: Union[str, Path], exclude: Iterable[Union[str, Path]] = ()) -> ScanResult:
    """
    Walk a directory tree and fingerprint every regular file in it.

    Symlinks and other non-regular entries are left out of the inventory, and
    symlinked directories are not followed. Any directory listed in `exclude`
    is skipped entirely, and any file listed there is left out. Files that
    cannot be read are reported as diagnostics instead of stopping the scan.

    Args:
        root: Directory to scan
        exclude: Directories and files to leave out of the scan

    Returns:
        ScanResult: Records sorted by relative path, plus diagnostics
    """
    root_path = Path(root).resolve()
    excluded = {Path(p).resolve() for p in exclude}
    result = ScanResult(root=root_path)

    def on_walk_error(error: OSError) -> None:
        logger.warning(f"Cannot list directory '{error.filename}': {error.strerror}")
        result.diagnostics.append(
            Diagnostic(kind=UnreadableFile.__name__, path=str(error.filename),
                       message=f"Cannot list directory '{error.filename}': {error.strerror}")
        )

    logger.info(f"Scanning '{root_path}'")
    for dirpath, dirnames, filenames in os.walk(root_path, onerror=on_walk_error):
        current = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if current / d not in excluded)

        for name in sorted(filenames):
            file_path = current / name
            if file_path in excluded:
                continue
            relative_path = file_path.relative_to(root_path).as_posix()
            try:
                st = os.lstat(file_path)
                if not stat.S_ISREG(st.st_mode):
                    logger.debug(f"Skipping non-regular file '{file_path}'")
                    continue
                digest = hash_file_content(file_path)
            except UnreadableFile as e:
                logger.warning(f"Skipping unreadable file '{file_path}': {e}")
                result.diagnostics.append(Diagnostic.from_error(e))
                continue
            except OSError as e:
                # Vanished between listing and stat
                logger.warning(f"Could not process file '{file_path}': {e}")
                result.diagnostics.append(
                    Diagnostic(kind=UnreadableFile.__name__, path=str(file_path), message=str(e))
                )
                continue

            result.records.append(
                FileRecord(
                    relative_path=relative_path,
                    content_digest=digest,
                    size_bytes=st.st_size,
                    modified_at=st.st_mtime,
                )
            )
            if len(result.records) % PROGRESS_INTERVAL == 0:
                logger.info(f"Fingerprinted {len(result.records)} files under '{root_path}'")

    result.records.sort(key=lambda r: r.relative_path)
    if result.diagnostics:
        logger.warning(f"Skipped {len(result.diagnostics)} entries while scanning '{root_path}'")
    logger.info(f"Scan of '{root_path}' found {len(result.records)} files")
    return result
