import os
import pytest
import tempfile
from pathlib import Path

from treebackup.hashing import hash_file_content
from treebackup.operations import BackupOperations


# ---- Individual fixtures for flexible test composition ----

@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def source_dir(temp_dir):
    """Create a source directory with three test files, one of them nested."""
    source_dir = temp_dir / "source"
    os.makedirs(source_dir)
    create_test_files(source_dir)
    return source_dir


@pytest.fixture
def backup_dir(temp_dir):
    """Path of an empty backup directory."""
    backup_dir = temp_dir / "backups"
    os.makedirs(backup_dir)
    return backup_dir


# ---- Base test class for inheritance-based testing ----

class TestBase:
    """Base class for backup tests providing an isolated working directory."""

    def setUp(self):
        """
        Set up the test environment.

        This method:
        1. Creates a temporary directory
        2. Creates the source directory with test files
        3. Creates an empty backup directory
        4. Creates a BackupOperations instance with a fresh ledger
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.working_dir = Path(self.temp_dir.name)

        self.source_dir = self.working_dir / "source"
        self.backup_dir = self.working_dir / "backups"
        os.makedirs(self.source_dir)
        os.makedirs(self.backup_dir)

        create_test_files(self.source_dir)

        self.ops = BackupOperations()

    def tearDown(self):
        """Clean up the temporary directory."""
        try:
            self.temp_dir.cleanup()
        except (PermissionError, OSError) as e:
            print(f"Warning: Could not clean up temporary directory: {e}")

    @pytest.fixture(autouse=True)
    def _setup_teardown_fixture(self):
        """
        Pytest fixture to automatically call setUp and tearDown.

        This fixture is automatically used by all test methods in classes
        that inherit from TestBase.
        """
        self.setUp()
        yield
        self.tearDown()

    def snapshot_dirs(self):
        """Snapshot directories currently in the backup directory, oldest first."""
        return sorted(p for p in self.backup_dir.iterdir() if p.is_dir())

    def tree_digests(self, root):
        """Map of relative path to content digest for every file under root."""
        return tree_digests(root)


# ---- Helper functions for both approaches ----

def create_test_files(directory):
    """Create two top-level files and one nested file in the specified directory."""
    (directory / "file_1.txt").write_text("Content of file 1")
    (directory / "file_2.txt").write_text("Content of file 2")
    os.makedirs(directory / "nested", exist_ok=True)
    with open(directory / "nested" / "binary.bin", "wb") as f:
        f.write(os.urandom(1024))  # 1KB of random data


def tree_digests(root):
    """Map of relative path to content digest for every file under root."""
    root = Path(root)
    digests = {}
    for dirpath, _, files in os.walk(root):
        for name in files:
            path = Path(dirpath) / name
            digests[path.relative_to(root).as_posix()] = hash_file_content(path)
    return digests
