"""
src/secure_store/errors.py - Error Taxonomy & Operation Results

Lower layers (sandbox, filesystem, crypto, ledger, record store) raise
StoreError subclasses. The file service catches them at its boundary and
hands back an OperationResult, so callers branch on the ErrorKind and never
on message text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Failure kinds surfaced by the store."""
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    NOT_READABLE = "NOT_READABLE"
    NOT_WRITABLE = "NOT_WRITABLE"
    NOT_A_DIRECTORY = "NOT_A_DIRECTORY"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INTEGRITY_VIOLATION = "INTEGRITY_VIOLATION"
    CRYPTO_ERROR = "CRYPTO_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        """Only a store outage is worth another attempt by the caller."""
        return self is ErrorKind.PERSISTENCE_ERROR

    @property
    def fails_closed(self) -> bool:
        return self in (ErrorKind.INTEGRITY_VIOLATION, ErrorKind.PERMISSION_DENIED)


class StoreError(Exception):
    """Base exception carrying an ErrorKind."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NotFoundError(StoreError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(StoreError):
    kind = ErrorKind.ALREADY_EXISTS


class NotReadableError(StoreError):
    kind = ErrorKind.NOT_READABLE


class NotWritableError(StoreError):
    kind = ErrorKind.NOT_WRITABLE


class InvalidDirectoryError(StoreError):
    kind = ErrorKind.NOT_A_DIRECTORY


class InvalidArgumentError(StoreError):
    kind = ErrorKind.INVALID_ARGUMENT


class OutOfBoundsError(StoreError):
    kind = ErrorKind.OUT_OF_BOUNDS


class PermissionDeniedError(StoreError):
    kind = ErrorKind.PERMISSION_DENIED


class IntegrityViolation(StoreError):
    kind = ErrorKind.INTEGRITY_VIOLATION


class CryptoError(StoreError):
    kind = ErrorKind.CRYPTO_ERROR


class PersistenceError(StoreError):
    kind = ErrorKind.PERSISTENCE_ERROR


# Human-readable prefixes, one per kind
_MESSAGES = {
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.ALREADY_EXISTS: "Already exists",
    ErrorKind.NOT_READABLE: "Not readable",
    ErrorKind.NOT_WRITABLE: "Not writable",
    ErrorKind.NOT_A_DIRECTORY: "Not a directory",
    ErrorKind.INVALID_ARGUMENT: "Invalid argument",
    ErrorKind.OUT_OF_BOUNDS: "Access outside the authorized directory is forbidden",
    ErrorKind.PERMISSION_DENIED: "Permission denied",
    ErrorKind.INTEGRITY_VIOLATION: "Integrity violation",
    ErrorKind.CRYPTO_ERROR: "Cryptographic failure",
    ErrorKind.PERSISTENCE_ERROR: "Record store unavailable",
    ErrorKind.UNKNOWN: "Unknown error",
}


@dataclass
class OperationResult:
    """Outcome of one store operation."""
    ok: bool
    action: str
    path: Optional[str] = None
    kind: Optional[ErrorKind] = None
    message: str = ""
    value: Any = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, action: str, path: Optional[str] = None, message: str = "",
                value: Any = None, **details) -> "OperationResult":
        return cls(ok=True, action=action, path=path, message=message,
                   value=value, details=details)

    @classmethod
    def failure(cls, action: str, error: StoreError,
                path: Optional[str] = None) -> "OperationResult":
        return cls(ok=False, action=action, path=path, kind=error.kind,
                   message=f"{_MESSAGES[error.kind]}: {error.message}")

    @property
    def outcome(self) -> str:
        return "SUCCESS" if self.ok else self.kind.value

    @property
    def text(self) -> str:
        """Plaintext value decoded as UTF-8 (read results)."""
        if isinstance(self.value, bytes):
            return self.value.decode("utf-8", errors="replace")
        return "" if self.value is None else str(self.value)

    def __bool__(self) -> bool:
        return self.ok
