"""
src/secure_store/sandbox.py - Path Sandbox

Confines every path the store touches to one authorized root directory.

User input is joined onto the current directory, normalized (".", ".."
collapsed, symlinks followed) and then compared with the root component by
component. A sibling such as "root-evil" shares a string prefix with "root"
but not its components, so it is rejected.
"""

import os
from pathlib import Path
from typing import Tuple, Union

from .errors import (
    InvalidArgumentError, InvalidDirectoryError, NotFoundError, OutOfBoundsError
)


_SEPARATORS = tuple(sep for sep in ("/", "\\", os.sep, os.altsep) if sep)


def validate_filename(name: str) -> str:
    """
    Validate a bare file or directory name.

    Names must not carry path separators; traversal goes through
    change_directory, never through a filename.

    Raises:
        InvalidArgumentError: If the name is empty, ".", "..", or contains
            a separator or NUL byte
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgumentError("name must not be empty")
    if name in (".", ".."):
        raise InvalidArgumentError(f"'{name}' is not a valid name")
    if "\x00" in name:
        raise InvalidArgumentError("name must not contain NUL bytes")
    if any(sep in name for sep in _SEPARATORS):
        raise InvalidArgumentError(f"name must not contain path separators: {name}")
    return name


class PathSandbox:
    """
    Resolves user-supplied paths against an immutable root boundary.

    The current directory is always the root or one of its descendants and
    only moves through a successful change_directory().
    """

    def __init__(self, root_dir: Union[str, Path]):
        """
        Initialize sandbox.

        Args:
            root_dir: Authorized root directory (created if missing)
        """
        root = Path(root_dir).expanduser()
        root.mkdir(parents=True, exist_ok=True)
        self._root = root.resolve()
        self._root_parts: Tuple[str, ...] = self._root.parts
        self._current = self._root

    @property
    def root(self) -> Path:
        return self._root

    @property
    def current(self) -> Path:
        return self._current

    def contains(self, path: Path) -> bool:
        """Component-wise containment test against the root."""
        parts = path.parts
        return parts[:len(self._root_parts)] == self._root_parts

    def resolve(self, user_input: str = "", base: Union[str, Path, None] = None) -> Path:
        """
        Resolve user input to an absolute path inside the root.

        Inputs starting with "/" are taken relative to the root, everything
        else relative to base (the current directory by default).

        Args:
            user_input: Path fragment typed by the user
            base: Directory to resolve against

        Returns:
            Normalized absolute path

        Raises:
            InvalidArgumentError: If the input contains a NUL byte
            OutOfBoundsError: If the normalized path leaves the root
        """
        if user_input is None:
            user_input = ""
        if "\x00" in user_input:
            raise InvalidArgumentError("path must not contain NUL bytes")

        start = Path(base) if base is not None else self._current
        if user_input.startswith(("/", "\\")):
            start = self._root
            user_input = user_input.lstrip("/\\")

        candidate = (start / user_input).resolve(strict=False)
        if not self.contains(candidate):
            raise OutOfBoundsError(f"'{user_input or '.'}' resolves outside the authorized directory")
        return candidate

    def resolve_child(self, name: str, directory: Union[str, Path, None] = None) -> Path:
        """
        Resolve a bare filename inside a directory of the sandbox.

        Args:
            name: Filename (validated, no separators)
            directory: Optional directory fragment, defaults to the current one

        Returns:
            Absolute path of the file
        """
        validate_filename(name)
        parent = self._current if directory is None else self.resolve(str(directory))
        return self.resolve(name, base=parent)

    def change_directory(self, user_input: str) -> str:
        """
        Move the current directory.

        "/" resets to the root; ".." at the root is a reported no-op.

        Returns:
            Human-readable status message

        Raises:
            InvalidArgumentError: If the input is empty
            OutOfBoundsError: If the target leaves the root
            NotFoundError: If the target does not exist
            InvalidDirectoryError: If the target is not a directory
        """
        if not user_input or not user_input.strip():
            raise InvalidArgumentError("directory must not be empty")

        user_input = user_input.strip()
        if user_input == "/":
            self._current = self._root
            return "Moved to /"

        if user_input == ".." and self._current == self._root:
            return "Already at the root directory"

        target = self.resolve(user_input)
        if not target.exists():
            raise NotFoundError(f"No such directory: {user_input}")
        if not target.is_dir():
            raise InvalidDirectoryError(f"{user_input} is not a directory")

        self._current = target
        return f"Moved to {self.pwd()}"

    def relative_key(self, path: Path) -> str:
        """
        Root-relative POSIX key of a sandboxed path.

        Used to index the ledger and the ownership records.
        """
        if not self.contains(path):
            raise OutOfBoundsError(f"{path} is outside the authorized directory")
        return path.relative_to(self._root).as_posix()

    def display(self, path: Path) -> str:
        """Path as shown to the user, rooted at "/"."""
        key = self.relative_key(path)
        return "/" if key in ("", ".") else "/" + key

    def pwd(self) -> str:
        return self.display(self._current)
