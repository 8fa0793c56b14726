"""
src/secure_store/filesystem.py - Local Filesystem Access

Raw byte-level primitives used by the file service. Every OSError is mapped
into the store's error taxonomy here so nothing above this layer has to
inspect errno values.
"""

import errno
import os
from pathlib import Path
from typing import List

from .errors import (
    AlreadyExistsError, InvalidDirectoryError, NotFoundError, NotReadableError,
    NotWritableError, StoreError
)


def _translate(error: OSError, path: Path, writing: bool = False) -> StoreError:
    """Map an OSError to a StoreError kind."""
    if isinstance(error, FileNotFoundError):
        return NotFoundError(f"No such file or directory: {path.name}")
    if isinstance(error, FileExistsError):
        return AlreadyExistsError(f"{path.name} already exists")
    if isinstance(error, (NotADirectoryError, IsADirectoryError)):
        return InvalidDirectoryError(f"Wrong entry type: {path.name}")
    if isinstance(error, PermissionError) or error.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
        if writing:
            return NotWritableError(f"Cannot write {path.name}")
        return NotReadableError(f"Cannot read {path.name}")
    return StoreError(f"Filesystem error on {path.name}: {error.strerror or error}")


class LocalFileRepository:
    """Filesystem primitives over already-sandboxed absolute paths."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_directory(self, path: Path) -> bool:
        return path.is_dir()

    def is_readable(self, path: Path) -> bool:
        return os.access(path, os.R_OK)

    def is_writable(self, path: Path) -> bool:
        return os.access(path, os.W_OK)

    def list_entries(self, directory: Path) -> List[str]:
        """
        List a directory.

        Returns:
            Entry names sorted alphabetically, directories suffixed with "/"
        """
        try:
            entries = []
            for entry in sorted(directory.iterdir(), key=lambda p: p.name):
                entries.append(entry.name + "/" if entry.is_dir() else entry.name)
            return entries
        except OSError as e:
            raise _translate(e, directory)

    def create_empty_file(self, path: Path) -> None:
        """Create an empty file; fails if anything exists at path."""
        try:
            path.touch(exist_ok=False)
        except OSError as e:
            raise _translate(e, path, writing=True)

    def create_directory(self, path: Path) -> None:
        try:
            path.mkdir(exist_ok=False)
        except OSError as e:
            raise _translate(e, path, writing=True)

    def delete_file(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            raise _translate(e, path, writing=True)

    def read_bytes(self, path: Path) -> bytes:
        if not path.exists():
            raise NotFoundError(f"No such file: {path.name}")
        if path.is_dir():
            raise InvalidDirectoryError(f"{path.name} is a directory")
        if not self.is_readable(path):
            raise NotReadableError(f"File not readable: {path.name}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise _translate(e, path)

    def write_bytes(self, path: Path, data: bytes) -> None:
        """
        Replace a file's content.

        Data goes to a temporary sibling first and is moved into place with
        os.replace, so readers never see a half-written blob.
        """
        if path.exists() and not self.is_writable(path):
            raise NotWritableError(f"File not writable: {path.name}")

        tmp = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            if tmp.exists():
                tmp.unlink()
            raise _translate(e, path, writing=True)
