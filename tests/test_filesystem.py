"""
test_filesystem.py - Local Filesystem Tests

Tests for the raw filesystem primitives and their error mapping.
"""

import errno
import pytest
import tempfile
import shutil
from pathlib import Path
import sys

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from secure_store.errors import (
    AlreadyExistsError, ErrorKind, InvalidDirectoryError, NotFoundError
)
from secure_store.filesystem import LocalFileRepository, _translate


class TestLocalFileRepository:
    """Test cases for LocalFileRepository."""

    def setup_method(self):
        """Setup test environment."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.files = LocalFileRepository()

    def teardown_method(self):
        """Cleanup test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_and_read(self):
        path = self.temp_dir / "blob.bin"
        self.files.create_empty_file(path)
        self.files.write_bytes(path, b"payload")

        assert self.files.read_bytes(path) == b"payload"
        # No temporary file left behind
        assert sorted(p.name for p in self.temp_dir.iterdir()) == ["blob.bin"]

    def test_list_entries(self):
        (self.temp_dir / "zeta").mkdir()
        (self.temp_dir / "alpha.txt").write_bytes(b"")

        assert self.files.list_entries(self.temp_dir) == ["alpha.txt", "zeta/"]

    def test_failures(self):
        path = self.temp_dir / "blob.bin"
        self.files.create_empty_file(path)

        with pytest.raises(AlreadyExistsError):
            self.files.create_empty_file(path)
        with pytest.raises(NotFoundError):
            self.files.read_bytes(self.temp_dir / "missing")
        with pytest.raises(InvalidDirectoryError):
            self.files.read_bytes(self.temp_dir)
        with pytest.raises(NotFoundError):
            self.files.delete_file(self.temp_dir / "missing")
        with pytest.raises(NotFoundError):
            self.files.list_entries(self.temp_dir / "missing")

    def test_error_translation(self):
        path = self.temp_dir / "x"

        assert _translate(PermissionError(errno.EACCES, "denied"), path).kind is ErrorKind.NOT_READABLE
        assert _translate(PermissionError(errno.EACCES, "denied"), path, writing=True).kind is ErrorKind.NOT_WRITABLE
        assert _translate(OSError(errno.EIO, "io"), path).kind is ErrorKind.UNKNOWN


if __name__ == "__main__":
    # Run tests
    pytest.main([__file__, "-v"])
