"""
src/secure_store/integrity.py - Integrity Ledger

🔍 FEATURE: TAMPER EVIDENCE
Keeps an append-only history of SHA-256 fingerprints for every file the
store writes or deletes.

🏗️ ARCHITECTURE:
- One JSON document per tracked path in the ledger directory
- Entries {fingerprint, timestamp, size}, oldest first, never rewritten
- Tombstones: fingerprint "DELETED", size 0, appended on delete
- Atomic writes: temporary file + os.replace

🛡️ CHECK POLICY:
- Untracked path: trusted on first access
- Last entry is a tombstone: the file must not exist (otherwise it was
  recreated outside the store)
- Otherwise the live fingerprint and size must match the last entry

Tampering is detected lazily, on the next operation touching the path.
"""

import hashlib
import json
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .crypto import calculate_file_hash
from .errors import IntegrityViolation, StoreError


DELETED = "DELETED"


@dataclass
class LedgerEntry:
    """One ledger record."""
    fingerprint: str
    timestamp: str
    size: int

    @property
    def is_tombstone(self) -> bool:
        return self.fingerprint == DELETED


class IntegrityLedger:
    """
    Append-only per-path fingerprint history.

    Paths are addressed by their root-relative key (see PathSandbox.relative_key).
    """

    def __init__(self, ledger_dir: Path):
        """
        Initialize ledger.

        Args:
            ledger_dir: Directory holding the ledger documents
        """
        self.ledger_dir = ledger_dir
        self.ledger_dir.mkdir(parents=True, exist_ok=True)

    def _document_path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode('utf-8')).hexdigest()
        return self.ledger_dir / f"{digest}.integrity.json"

    def _load_document(self, key: str) -> Optional[dict]:
        doc_path = self._document_path(key)
        if not doc_path.exists():
            return None

        try:
            with open(doc_path, 'r') as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise IntegrityViolation(f"Ledger for {key} is corrupt: {e}")
        except OSError as e:
            raise StoreError(f"Cannot read ledger for {key}: {e}")

        if (not isinstance(document, dict) or document.get('path') != key
                or not isinstance(document.get('entries'), list)):
            raise IntegrityViolation(f"Ledger for {key} has an invalid format")
        return document

    def _save_document(self, key: str, document: dict) -> None:
        doc_path = self._document_path(key)
        tmp = doc_path.with_suffix(".tmp")
        try:
            with open(tmp, 'w') as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, doc_path)
        except OSError as e:
            raise StoreError(f"Cannot write ledger for {key}: {e}")

    def append_entry(self, key: str, fingerprint: str, size: int) -> LedgerEntry:
        """
        Append an entry, creating the ledger for the path if needed.

        Args:
            key: Root-relative path key
            fingerprint: SHA-256 hex of the stored blob, or DELETED
            size: Stored blob size in bytes

        Returns:
            The appended entry
        """
        document = self._load_document(key) or {'path': key, 'entries': []}
        entry = LedgerEntry(
            fingerprint=fingerprint,
            timestamp=datetime.now(timezone.utc).isoformat(),
            size=size
        )
        document['entries'].append(asdict(entry))
        self._save_document(key, document)
        return entry

    def append_delete_event(self, key: str) -> LedgerEntry:
        """Append a tombstone for the path."""
        return self.append_entry(key, DELETED, 0)

    def record_file(self, key: str, file_path: Path) -> LedgerEntry:
        """Fingerprint a file as it is on disk and append it."""
        try:
            fingerprint = calculate_file_hash(file_path)
            size = file_path.stat().st_size
        except OSError as e:
            raise StoreError(f"Cannot fingerprint {key}: {e}")
        return self.append_entry(key, fingerprint, size)

    def load_entries(self, key: str) -> List[LedgerEntry]:
        """Full history of a path, oldest first."""
        document = self._load_document(key)
        if document is None:
            return []
        try:
            return [LedgerEntry(**entry) for entry in document['entries']]
        except TypeError as e:
            raise IntegrityViolation(f"Ledger for {key} has a malformed entry: {e}")

    def load_last_entry(self, key: str) -> Optional[LedgerEntry]:
        """
        Most recent entry of a path.

        Returns:
            LedgerEntry, or None if the path was never tracked
        """
        entries = self.load_entries(key)
        return entries[-1] if entries else None

    def check_integrity(self, key: str, file_path: Path) -> Optional[LedgerEntry]:
        """
        Compare the file on disk with the last ledger entry.

        Args:
            key: Root-relative path key
            file_path: Absolute path of the stored blob

        Returns:
            The last entry (None for an untracked path)

        Raises:
            IntegrityViolation: On recreation after a tombstone, a missing
                tracked file, or a fingerprint/size mismatch
        """
        last = self.load_last_entry(key)
        if last is None:
            return None

        if last.is_tombstone:
            if file_path.exists():
                raise IntegrityViolation(
                    f"{key} was deleted through the store but exists again"
                )
            return last

        if not file_path.is_file():
            raise IntegrityViolation(f"{key} was removed outside the store")

        try:
            size = file_path.stat().st_size
            fingerprint = calculate_file_hash(file_path)
        except OSError as e:
            raise IntegrityViolation(f"Cannot fingerprint {key}: {e}")

        if size != last.size or fingerprint != last.fingerprint:
            raise IntegrityViolation(
                f"{key} was modified outside the store "
                f"(expected {last.fingerprint[:16]}/{last.size}B, found {fingerprint[:16]}/{size}B)"
            )
        return last
