"""
src/secure_store/file_service.py - Access-Controlled File Service

🔗 FEATURE: SECURE FILE OPERATIONS
Composes the sandbox, key derivation, the integrity ledger, ownership
records and audit logging into create/read/update/delete workflows.

🔄 PROCESSING FLOW:
create: Resolve → Integrity Check → Derive (key, salt) → Ownership Record → Encrypt "" → Write → Ledger
read:   Resolve → Integrity Check → Ownership → Read Blob → Re-derive → Decrypt
update: Resolve → Ownership → Re-derive → Encrypt → Write → Ledger
delete: Resolve → Integrity Check → Ownership → Tombstone → Remove
         ↓ (Any failure)
    Stop → Audit Failure Kind → Failure Result

Each public method returns an OperationResult and writes exactly one audit
event before returning. Keys are derived per call and never persisted; the
local name is dropped after use, but Python cannot wipe the underlying bytes
object, so key material may linger in process memory until collected.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .audit_logger import AuditLogger
from .config import StoreConfig
from .crypto import CryptoManager, decode_salt, encode_salt
from .errors import (
    AlreadyExistsError, InvalidArgumentError, InvalidDirectoryError,
    NotFoundError, OperationResult, PermissionDeniedError, StoreError
)
from .filesystem import LocalFileRepository
from .integrity import IntegrityLedger
from .records import OwnershipRecord, RecordStore
from .sandbox import PathSandbox
from .users import UserService


logger = logging.getLogger(__name__)

Content = Union[str, bytes]


class _Target:
    """Path key of the operation in flight, filled in once resolved."""

    def __init__(self):
        self.key: Optional[str] = None
        self.details: dict = {}


class SecureFileService:
    """
    Secure file operations for the current user.

    All collaborators are injected; use open_store() to build a wired
    instance from a StoreConfig.
    """

    def __init__(self, sandbox: PathSandbox, files: LocalFileRepository,
                 crypto_manager: CryptoManager, ledger: IntegrityLedger,
                 record_store: RecordStore, users: UserService,
                 audit_logger: AuditLogger):
        self.sandbox = sandbox
        self.files = files
        self.crypto_manager = crypto_manager
        self.ledger = ledger
        self.record_store = record_store
        self.users = users
        self.audit_logger = audit_logger

    # ------------------------------ Plumbing ------------------------------
    def _run(self, action: str, operation: Callable[[_Target], OperationResult]) -> OperationResult:
        """Run one operation, translate its failure and audit the outcome."""
        actor = self.users.current_user
        target = _Target()
        try:
            result = operation(target)
        except StoreError as e:
            result = OperationResult.failure(action, e, path=target.key)
        except Exception as e:
            logger.exception("Unclassified failure during %s", action)
            result = OperationResult.failure(action, StoreError(str(e)), path=target.key)

        details = dict(target.details)
        if not result.ok:
            details['message'] = result.message
            if result.kind.fails_closed:
                logger.warning("%s denied for %s on %s: %s",
                               action, actor, result.path, result.message)
        self.audit_logger.log_operation(actor, action, result.path, result.kind, details)
        return result

    def _resolve(self, target: _Target, name: str,
                 directory: Optional[str] = None) -> Path:
        path = self.sandbox.resolve_child(name, directory)
        target.key = self.sandbox.relative_key(path)
        return path

    def _require_owner(self, key: str, actor: str) -> OwnershipRecord:
        """
        Ownership gate.

        Raises:
            PermissionDeniedError: If no record exists or another user owns it
        """
        record = self.record_store.get_file_key(key)
        if record is None:
            raise PermissionDeniedError(f"{key} has no ownership record")
        if record.owner != actor:
            raise PermissionDeniedError(f"{key} belongs to another user")
        return record

    def _require_file(self, path: Path, key: str) -> None:
        if not self.files.exists(path):
            raise NotFoundError(f"No such file: {key}")
        if self.files.is_directory(path):
            raise InvalidDirectoryError(f"{key} is a directory")

    def _require_parent(self, path: Path) -> None:
        parent = path.parent
        if not self.files.exists(parent):
            raise NotFoundError(f"No such directory: {self.sandbox.display(parent)}")
        if not self.files.is_directory(parent):
            raise InvalidDirectoryError(f"{self.sandbox.display(parent)} is not a directory")

    @staticmethod
    def _to_bytes(content: Any) -> bytes:
        if isinstance(content, bytes):
            return content
        if isinstance(content, str):
            return content.encode('utf-8')
        raise InvalidArgumentError(f"content must be str or bytes, not {type(content).__name__}")

    # ---------------------------- File operations ----------------------------
    def create(self, name: str, directory: Optional[str] = None) -> OperationResult:
        """
        Create an empty encrypted file owned by the current user.

        Args:
            name: Bare filename
            directory: Optional directory, defaults to the current one
        """
        def operation(target: _Target) -> OperationResult:
            actor = self.users.require_user()
            path = self._resolve(target, name, directory)

            if self.files.exists(path):
                raise AlreadyExistsError(f"{target.key} already exists")
            self._require_parent(path)

            # A tracked path may only be created again after a tombstone
            last = self.ledger.check_integrity(target.key, path)
            record = self.record_store.get_file_key(target.key)
            if record is not None and record.owner != actor and (last is None or not last.is_tombstone):
                raise PermissionDeniedError(f"{target.key} belongs to another user")

            file_key, salt = self.crypto_manager.derive_key(self.users.credential_hash(actor))
            try:
                self.record_store.put_file_key(target.key, actor, encode_salt(salt))
                blob = self.crypto_manager.encrypt(b"", file_key)
            finally:
                del file_key

            self.files.create_empty_file(path)
            self.files.write_bytes(path, blob)
            entry = self.ledger.record_file(target.key, path)
            target.details['fingerprint'] = entry.fingerprint

            return OperationResult.success("CREATE", target.key, "File created successfully")

        return self._run("CREATE", operation)

    def read(self, name: str, directory: Optional[str] = None) -> OperationResult:
        """
        Decrypt and return a file's content.

        Returns:
            OperationResult whose value holds the plaintext bytes
        """
        def operation(target: _Target) -> OperationResult:
            actor = self.users.require_user()
            path = self._resolve(target, name, directory)

            self.ledger.check_integrity(target.key, path)
            self._require_file(path, target.key)
            record = self._require_owner(target.key, actor)

            blob = self.files.read_bytes(path)
            file_key = self.crypto_manager.rederive_key(
                self.users.credential_hash(actor), decode_salt(record.salt)
            )
            try:
                plaintext = self.crypto_manager.decrypt(blob, file_key)
            finally:
                del file_key

            target.details['bytes_read'] = len(plaintext)
            return OperationResult.success("READ", target.key, value=plaintext)

        return self._run("READ", operation)

    def update(self, name: str, content: Content,
               directory: Optional[str] = None) -> OperationResult:
        """
        Replace a file's content with freshly encrypted data.

        Args:
            name: Bare filename
            content: New plaintext (str is stored as UTF-8)
            directory: Optional directory, defaults to the current one
        """
        def operation(target: _Target) -> OperationResult:
            actor = self.users.require_user()
            path = self._resolve(target, name, directory)
            data = self._to_bytes(content)

            self._require_file(path, target.key)
            record = self._require_owner(target.key, actor)

            file_key = self.crypto_manager.rederive_key(
                self.users.credential_hash(actor), decode_salt(record.salt)
            )
            try:
                blob = self.crypto_manager.encrypt(data, file_key)
            finally:
                del file_key

            self.files.write_bytes(path, blob)
            entry = self.ledger.record_file(target.key, path)
            target.details.update(bytes_written=len(data), fingerprint=entry.fingerprint)

            return OperationResult.success("UPDATE", target.key, "File updated successfully")

        return self._run("UPDATE", operation)

    def delete(self, name: str, directory: Optional[str] = None) -> OperationResult:
        """
        Delete a file, leaving a tombstone in its ledger.

        The ownership record stays so the path keeps its history.
        """
        def operation(target: _Target) -> OperationResult:
            actor = self.users.require_user()
            path = self._resolve(target, name, directory)

            self.ledger.check_integrity(target.key, path)
            self._require_file(path, target.key)
            self._require_owner(target.key, actor)

            self.ledger.append_delete_event(target.key)
            self.files.delete_file(path)

            return OperationResult.success("DELETE", target.key, "File deleted successfully")

        return self._run("DELETE", operation)

    def verify(self, name: str, directory: Optional[str] = None) -> OperationResult:
        """Run the integrity check alone and report the ledger state."""
        def operation(target: _Target) -> OperationResult:
            self.users.require_user()
            path = self._resolve(target, name, directory)

            last = self.ledger.check_integrity(target.key, path)
            if last is None:
                message = f"{target.key} is not tracked"
            elif last.is_tombstone:
                message = f"{target.key} was deleted on {last.timestamp}"
            else:
                message = f"{target.key} is intact ({last.size} bytes, recorded {last.timestamp})"
            return OperationResult.success("VERIFY", target.key, message, value=last)

        return self._run("VERIFY", operation)

    def history(self, name: str, directory: Optional[str] = None) -> OperationResult:
        """
        Ledger entries of an owned path, oldest first.

        Returns:
            OperationResult whose value is a list of LedgerEntry
        """
        def operation(target: _Target) -> OperationResult:
            actor = self.users.require_user()
            self._resolve(target, name, directory)
            self._require_owner(target.key, actor)

            entries = self.ledger.load_entries(target.key)
            if not entries:
                raise NotFoundError(f"{target.key} has no ledger entries")
            return OperationResult.success("HISTORY", target.key, value=entries)

        return self._run("HISTORY", operation)

    # -------------------------- Directory operations --------------------------
    def create_directory(self, name: str, directory: Optional[str] = None) -> OperationResult:
        def operation(target: _Target) -> OperationResult:
            self.users.require_user()
            path = self._resolve(target, name, directory)

            if self.files.exists(path):
                raise AlreadyExistsError(f"{target.key} already exists")
            self._require_parent(path)
            self.files.create_directory(path)

            return OperationResult.success("MKDIR", target.key, "Directory created successfully")

        return self._run("MKDIR", operation)

    def list_directory(self, path: str = "") -> OperationResult:
        """
        List a sandboxed directory.

        Returns:
            OperationResult whose value is the sorted list of entry names
        """
        def operation(target: _Target) -> OperationResult:
            directory = self.sandbox.resolve(path)
            target.key = self.sandbox.relative_key(directory)

            if not self.files.exists(directory):
                raise NotFoundError(f"No such directory: {path}")
            if not self.files.is_directory(directory):
                raise InvalidDirectoryError(f"{path} is not a directory")

            entries = self.files.list_entries(directory)
            return OperationResult.success(
                "LIST", target.key, f"Files in {self.sandbox.display(directory)}:", value=entries
            )

        return self._run("LIST", operation)

    def change_directory(self, path: str) -> OperationResult:
        def operation(target: _Target) -> OperationResult:
            message = self.sandbox.change_directory(path)
            target.key = self.sandbox.relative_key(self.sandbox.current)
            return OperationResult.success("CHANGE_DIRECTORY", target.key, message)

        return self._run("CHANGE_DIRECTORY", operation)

    def pwd(self) -> str:
        return self.sandbox.pwd()

    def close(self) -> None:
        self.audit_logger.close()
        self.record_store.close()


def open_store(config: StoreConfig) -> SecureFileService:
    """
    Build a file service and its collaborators, once per process.

    Args:
        config: Store configuration

    Returns:
        Wired SecureFileService
    """
    config.validate()

    record_store = RecordStore(config.database_path, max_attempts=config.store_max_attempts)
    audit_logger = AuditLogger(
        record_store,
        config.log_dir,
        max_log_size=config.log_max_bytes,
        backup_count=config.log_backup_count
    )
    crypto_manager = CryptoManager(
        kdf_iterations=config.kdf_iterations,
        key_length=config.key_length_bytes,
        salt_length=config.salt_length_bytes,
        nonce_length=config.nonce_length_bytes,
        credential_iterations=config.credential_iterations
    )

    return SecureFileService(
        sandbox=PathSandbox(config.root_path),
        files=LocalFileRepository(),
        crypto_manager=crypto_manager,
        ledger=IntegrityLedger(config.ledger_dir),
        record_store=record_store,
        users=UserService(record_store, crypto_manager, audit_logger),
        audit_logger=audit_logger
    )
