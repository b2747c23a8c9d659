import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .scanner import FileRecord


logger = logging.getLogger('treebackup')


@dataclass
class ChangeSet:
    """
    Split of a source inventory into files to copy and files to link.

    `to_copy_from_source` holds source records (new or modified files).
    `to_link_from_prior` holds the matching records of the prior snapshot, so
    that linking reads the snapshot's stored copy rather than the live source.
    """

    to_copy_from_source: List[FileRecord] = field(default_factory=list)
    to_link_from_prior: List[FileRecord] = field(default_factory=list)
    new_paths: List[str] = field(default_factory=list)
    modified_paths: List[str] = field(default_factory=list)
    removed_paths: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_copy_from_source)

    @property
    def total_files(self) -> int:
        return len(self.to_copy_from_source) + len(self.to_link_from_prior)


def resolve_changes(source_records: Sequence[FileRecord],
                    prior_records: Sequence[FileRecord]) -> ChangeSet:
    """
    Compare the current source inventory with the latest snapshot's inventory.

    A file is unchanged only when the same relative path exists in both and
    the content digests are equal. Sizes and modification times are ignored.

    Args:
        source_records: Inventory of the source tree
        prior_records: Inventory of the prior snapshot

    Returns:
        ChangeSet: Every source path appears in exactly one of the two lists
    """
    prior_by_path: Dict[str, FileRecord] = {r.relative_path: r for r in prior_records}
    changes = ChangeSet()

    for record in source_records:
        prior = prior_by_path.get(record.relative_path)
        if prior is None:
            changes.to_copy_from_source.append(record)
            changes.new_paths.append(record.relative_path)
        elif prior.content_digest != record.content_digest:
            changes.to_copy_from_source.append(record)
            changes.modified_paths.append(record.relative_path)
        else:
            changes.to_link_from_prior.append(prior)

    source_paths = {r.relative_path for r in source_records}
    changes.removed_paths = sorted(p for p in prior_by_path if p not in source_paths)

    logger.info(
        f"Changes: {len(changes.new_paths)} new, {len(changes.modified_paths)} modified, "
        f"{len(changes.to_link_from_prior)} unchanged, {len(changes.removed_paths)} removed"
    )
    return changes


def full_change_set(source_records: Sequence[FileRecord]) -> ChangeSet:
    """Change set for a full backup: every source file is copied."""
    return ChangeSet(
        to_copy_from_source=list(source_records),
        new_paths=[r.relative_path for r in source_records],
    )
