import errno
import os
import sys
from pathlib import Path

import pytest

from treebackup import materializer
from treebackup.hashing import hash_file_content
from treebackup.ledger import HISTORY_FILENAME, SnapshotLedger
from treebackup.operations import BackupOperations, OutcomeStatus
from tests.conftest import TestBase


class TestBackupScenarios(TestBase):
    """End-to-end full and incremental backup runs."""

    def _modify_and_add(self):
        with open(self.source_dir / "file_1.txt", "w") as f:
            f.write("Modified content")
        with open(self.source_dir / "new_file.txt", "w") as f:
            f.write("New file content")

    def test_full_backup(self):
        """A full backup into an empty backup directory copies every file."""
        outcome = self.ops.run_full_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.ok
        assert outcome.copied == 3
        assert outcome.total_files == 3

        snapshots = self.snapshot_dirs()
        assert len(snapshots) == 1
        assert snapshots[0].name.startswith("backup_")
        assert self.tree_digests(snapshots[0]) == self.tree_digests(self.source_dir)

        history = self.ops.list_history()
        assert len(history) == 1
        assert history[0].is_incremental is False
        assert history[0].based_on_snapshot == ""
        assert history[0].snapshot_path == str(snapshots[0])
        assert history[0].files_written == 3
        assert history[0].total_source_files == 3

    def test_incremental_after_changes(self):
        """Only the modified and the new file are copied; the rest is linked."""
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        first = self.snapshot_dirs()[0]
        self._modify_and_add()

        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.copied == 2
        assert outcome.linked + outcome.fallback_copied == 2
        assert outcome.failed == 0

        snapshots = self.snapshot_dirs()
        assert len(snapshots) == 2
        second = snapshots[1]
        assert second != first
        assert self.tree_digests(second) == self.tree_digests(self.source_dir)
        assert len(self.tree_digests(second)) == 4

        record = outcome.record
        assert record.is_incremental is True
        assert record.based_on_snapshot == first.name
        assert record.files_written == 2 + outcome.fallback_copied
        assert record.total_source_files == 4
        assert len(self.ops.list_history()) == 2

    def test_incremental_does_not_recopy_unchanged_files(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        first = self.snapshot_dirs()[0]
        self._modify_and_add()

        self.ops.run_incremental_backup(self.source_dir, self.backup_dir)
        second = self.snapshot_dirs()[1]

        assert os.stat(second / "file_2.txt").st_ino == os.stat(first / "file_2.txt").st_ino
        assert os.stat(second / "file_1.txt").st_ino != os.stat(first / "file_1.txt").st_ino

    def test_incremental_without_changes(self):
        """No changes means no new snapshot and no new ledger entry."""
        self.ops.run_full_backup(self.source_dir, self.backup_dir)

        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.NO_CHANGES
        assert outcome.ok
        assert outcome.record is None
        assert len(self.snapshot_dirs()) == 1
        assert len(self.ops.list_history()) == 1
        assert len(SnapshotLedger.read_log(self.backup_dir)) == 1

    def test_incremental_ignores_timestamp_only_changes(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        os.utime(self.source_dir / "file_1.txt", (1_000_000_000, 1_000_000_000))

        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)
        assert outcome.status is OutcomeStatus.NO_CHANGES

    def test_content_change_detected_with_same_size_and_mtime(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        path = self.source_dir / "file_1.txt"
        st = os.stat(path)
        path.write_text("Content of file X")  # same length
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns))

        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.copied == 1
        latest = self.snapshot_dirs()[-1]
        assert (latest / "file_1.txt").read_text() == "Content of file X"

    def test_incremental_without_prior_snapshot_is_full(self):
        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.copied == 3
        assert outcome.record.is_incremental is False
        assert len(self.snapshot_dirs()) == 1
        assert len(self.ops.list_history()) == 1

    def test_incremental_with_missing_backup_directory_is_full(self):
        backup_dir = self.working_dir / "not_created_yet"
        outcome = self.ops.run_incremental_backup(self.source_dir, backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.record.is_incremental is False
        assert (backup_dir / HISTORY_FILENAME).exists()

    def test_link_failure_falls_back_to_copy(self, monkeypatch):
        """Unchanged files still reach the snapshot when hard links are impossible."""
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        self._modify_and_add()

        def fail_link(src, dst):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        monkeypatch.setattr(materializer.os, "link", fail_link)
        outcome = self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.linked == 0
        assert outcome.fallback_copied == 2
        assert outcome.record.files_written == 4
        latest = self.snapshot_dirs()[-1]
        assert self.tree_digests(latest) == self.tree_digests(self.source_dir)

    def test_deleted_source_file_is_not_carried_over(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        os.remove(self.source_dir / "file_2.txt")
        self._modify_and_add()

        self.ops.run_incremental_backup(self.source_dir, self.backup_dir)
        latest = self.snapshot_dirs()[-1]

        assert not (latest / "file_2.txt").exists()
        assert set(self.tree_digests(latest)) == {"file_1.txt", "new_file.txt", "nested/binary.bin"}

    def test_missing_source_root(self):
        outcome = self.ops.run_full_backup(self.working_dir / "missing", self.backup_dir)

        assert outcome.status is OutcomeStatus.FAILED
        assert not outcome.ok
        assert outcome.diagnostics[0].kind == "MissingSourceRoot"
        assert self.snapshot_dirs() == []
        assert self.ops.list_history() == []

        outcome = self.ops.run_incremental_backup(self.working_dir / "missing", self.backup_dir)
        assert outcome.status is OutcomeStatus.FAILED

    def test_source_root_that_is_a_file(self):
        outcome = self.ops.run_full_backup(self.source_dir / "file_1.txt", self.backup_dir)
        assert outcome.status is OutcomeStatus.FAILED
        assert self.snapshot_dirs() == []

    def test_backup_directory_inside_source(self):
        backup_dir = self.source_dir / "backups"
        self.ops.run_full_backup(self.source_dir, backup_dir)

        outcome = self.ops.run_incremental_backup(self.source_dir, backup_dir)

        assert outcome.status is OutcomeStatus.NO_CHANGES
        snapshot = [p for p in backup_dir.iterdir() if p.is_dir()][0]
        assert not (snapshot / "backups").exists()

    def test_backup_directory_same_as_source(self):
        """Snapshots and the history log kept in the source root are not backed up again."""
        self.ops.run_full_backup(self.source_dir, self.source_dir)

        outcome = self.ops.run_incremental_backup(self.source_dir, self.source_dir)

        assert outcome.status is OutcomeStatus.NO_CHANGES
        assert outcome.total_files == 3
        snapshots = [p for p in self.source_dir.iterdir() if p.name.startswith("backup_") and p.is_dir()]
        assert len(snapshots) == 1
        assert set(self.tree_digests(snapshots[0])) == {"file_1.txt", "file_2.txt", "nested/binary.bin"}

        with open(self.source_dir / "file_1.txt", "w") as f:
            f.write("Modified content")
        outcome = self.ops.run_incremental_backup(self.source_dir, self.source_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.copied == 1
        assert outcome.total_files == 3
        latest = Path(outcome.record.snapshot_path)
        assert set(self.tree_digests(latest)) == {"file_1.txt", "file_2.txt", "nested/binary.bin"}

    @pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem accepting non-UTF-8 names")
    def test_source_path_not_valid_utf8(self):
        """A source directory name that is not valid UTF-8 still yields an outcome and a log line."""
        raw_source = os.fsencode(str(self.working_dir)) + b"/src\xff"
        os.mkdir(raw_source)
        source = Path(os.fsdecode(raw_source))
        (source / "file.txt").write_text("content")

        outcome = self.ops.run_full_backup(source, self.backup_dir)

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.copied == 1
        assert outcome.diagnostics == []
        assert len(self.ops.list_history()) == 1
        lines = SnapshotLedger.read_log(self.backup_dir)
        assert len(lines) == 1
        assert "src\\udcff" in lines[0]

    def test_history_log_lines(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        self._modify_and_add()
        self.ops.run_incremental_backup(self.source_dir, self.backup_dir)

        lines = SnapshotLedger.read_log(self.backup_dir)
        assert len(lines) == 2
        assert "full backup" in lines[0]
        assert "3/3" in lines[0]
        assert str(self.source_dir.resolve()) in lines[0]
        assert "incremental backup" in lines[1]
        assert "/4" in lines[1]

    def test_round_trip_digest(self):
        self.ops.run_full_backup(self.source_dir, self.backup_dir)
        snapshot = self.snapshot_dirs()[0]

        for rel in ["file_1.txt", "nested/binary.bin"]:
            assert hash_file_content(snapshot / rel) == hash_file_content(self.source_dir / rel)

    def test_shared_ledger_across_operations(self):
        ledger = SnapshotLedger()
        BackupOperations(ledger).run_full_backup(self.source_dir, self.backup_dir)
        BackupOperations(ledger).run_full_backup(self.source_dir, self.working_dir / "other")

        assert len(ledger.list()) == 2
        assert BackupOperations().list_history() == []
