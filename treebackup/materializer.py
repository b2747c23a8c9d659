import os
import shutil
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .changes import ChangeSet
from .errors import BackupError, Diagnostic, DestinationWriteFailure, UnreadableFile
from .hashing import CHUNK_SIZE


logger = logging.getLogger('treebackup')


@dataclass
class MaterializeResult:
    """Counts of what happened while writing a snapshot directory."""

    copied: int = 0
    linked: int = 0
    fallback_copied: int = 0
    failed: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def files_written(self) -> int:
        """Files whose bytes were written: source copies plus link fallbacks."""
        return self.copied + self.fallback_copied


def copy_file(source: Path, destination: Path) -> None:
    """
    Copy one file's bytes and metadata, creating parent directories.

    An existing destination file is overwritten.

    Raises:
        UnreadableFile: If the source cannot be opened or read
        DestinationWriteFailure: If the destination cannot be created or written
    """
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DestinationWriteFailure(
            f"Cannot create directory '{destination.parent}': {e}", path=str(destination)) from e

    try:
        fsrc = open(source, 'rb')
    except OSError as e:
        raise UnreadableFile(f"Cannot read file '{source}': {e}", path=str(source)) from e

    with fsrc:
        try:
            with open(destination, 'wb') as fdst:
                while True:
                    try:
                        chunk = fsrc.read(CHUNK_SIZE)
                    except OSError as e:
                        raise UnreadableFile(f"Cannot read file '{source}': {e}", path=str(source)) from e
                    if not chunk:
                        break
                    fdst.write(chunk)
        except OSError as e:
            raise DestinationWriteFailure(
                f"Cannot write file '{destination}': {e}", path=str(destination)) from e

    try:
        shutil.copystat(source, destination)
    except OSError as e:
        logger.debug(f"Could not copy metadata to '{destination}': {e}")


def link_or_copy(prior_file: Path, destination: Path) -> bool:
    """
    Hard-link a file from the prior snapshot, copying it if linking fails.

    Links fail across filesystems, on filesystems without hard links, or
    without permission; any such failure falls back to a byte copy.

    Returns:
        bool: True if a link was created, False if the file was copied

    Raises:
        UnreadableFile: If the fallback copy cannot read the prior file
        DestinationWriteFailure: If the fallback copy cannot write
    """
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.link(prior_file, destination)
        return True
    except OSError as e:
        logger.debug(f"Hard link failed for '{destination}' ({e}), copying instead")

    copy_file(prior_file, destination)
    return False


def materialize_snapshot(changes: ChangeSet,
                         source_root: Union[str, Path],
                         destination: Union[str, Path],
                         prior_snapshot: Optional[Union[str, Path]] = None) -> MaterializeResult:
    """
    Write a new snapshot directory from a change set.

    Changed and new files are copied from the source tree. Unchanged files
    are hard-linked from the prior snapshot (or copied from it when linking
    is not possible). Per-file failures are counted and collected as
    diagnostics; they do not stop the run.

    Args:
        changes: Output of the change resolver
        source_root: Directory the source records are relative to
        destination: Snapshot directory to create; must not exist yet
        prior_snapshot: Snapshot the linked records are relative to

    Returns:
        MaterializeResult: Counts and diagnostics

    Raises:
        DestinationWriteFailure: If the snapshot directory itself cannot be created
        ValueError: If there are files to link but no prior snapshot
    """
    source_root = Path(source_root)
    destination = Path(destination)
    if changes.to_link_from_prior and prior_snapshot is None:
        raise ValueError("A prior snapshot is required to link unchanged files")

    try:
        destination.mkdir(parents=True, exist_ok=False)
    except OSError as e:
        raise DestinationWriteFailure(
            f"Cannot create snapshot directory '{destination}': {e}", path=str(destination)) from e
    logger.info(f"Created snapshot directory '{destination}'")

    result = MaterializeResult()
    total = changes.total_files
    done = 0

    for record in changes.to_copy_from_source:
        try:
            copy_file(source_root / record.relative_path, destination / record.relative_path)
            result.copied += 1
            logger.debug(f"Copied '{record.relative_path}'")
        except BackupError as e:
            logger.warning(f"Failed to copy '{record.relative_path}': {e}")
            result.failed += 1
            result.diagnostics.append(Diagnostic.from_error(e))
        done += 1
        if done % 100 == 0:
            logger.info(f"Processed {done}/{total} files")

    if changes.to_link_from_prior:
        prior_root = Path(prior_snapshot)
        for record in changes.to_link_from_prior:
            try:
                if link_or_copy(prior_root / record.relative_path, destination / record.relative_path):
                    result.linked += 1
                else:
                    result.fallback_copied += 1
            except BackupError as e:
                logger.warning(f"Failed to carry over '{record.relative_path}': {e}")
                result.failed += 1
                result.diagnostics.append(Diagnostic.from_error(e))
            done += 1
            if done % 100 == 0:
                logger.info(f"Processed {done}/{total} files")

    if result.failed:
        logger.warning(f"{result.failed} files could not be written to '{destination}'")
    logger.info(
        f"Snapshot '{destination.name}' written: {result.copied} copied, {result.linked} linked, "
        f"{result.fallback_copied} copied instead of linked, {result.failed} failed"
    )
    return result
