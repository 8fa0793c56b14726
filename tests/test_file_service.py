"""
test_file_service.py - Secure File Operation Tests

End-to-end tests for the access-controlled create/read/update/delete
workflows, directory navigation and auditing.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
import sys

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from secure_store.config import StoreConfig
from secure_store.errors import ErrorKind, PersistenceError
from secure_store.file_service import open_store


class TestSecureFileService:
    """Test cases for SecureFileService."""

    def setup_method(self):
        """Setup test environment."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config = StoreConfig(
            root_dir=str(self.temp_dir / "root"),
            state_dir=str(self.temp_dir / "state"),
            kdf_iterations=1000,
            credential_iterations=1000
        )
        self.service = open_store(self.config)
        self.root = self.service.sandbox.root

        self.service.users.register("alice", "alice-pw")
        self.service.users.register("bob", "bob-pw")

    def teardown_method(self):
        """Cleanup test environment."""
        self.service.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _switch_to(self, username):
        if self.service.users.is_logged_in:
            self.service.users.logout()
        self.service.users.login(username, f"{username}-pw")

    def test_end_to_end_scenario(self):
        """Create, update, read, cross-user denial and tamper detection."""
        self._switch_to("alice")

        assert self.service.create("notes.txt").ok
        assert self.service.update("notes.txt", "hello").ok

        entries = self.service.ledger.load_entries("notes.txt")
        assert len(entries) == 2
        assert entries[0].fingerprint != entries[1].fingerprint

        result = self.service.read("notes.txt")
        assert result.ok
        assert result.value == b"hello"

        self._switch_to("bob")
        result = self.service.read("notes.txt")
        assert not result.ok
        assert result.kind is ErrorKind.PERMISSION_DENIED
        assert result.value is None

        # Append a byte behind the store's back
        self._switch_to("alice")
        with open(self.root / "notes.txt", "ab") as f:
            f.write(b"\x00")

        result = self.service.read("notes.txt")
        assert result.kind is ErrorKind.INTEGRITY_VIOLATION
        assert result.value is None

    def test_content_is_encrypted_at_rest(self):
        self._switch_to("alice")
        self.service.create("secret.txt")
        self.service.update("secret.txt", "top secret message")

        blob = (self.root / "secret.txt").read_bytes()
        assert b"top secret message" not in blob
        assert len(blob) == 12 + len(b"top secret message") + 16

    def test_created_file_is_empty(self):
        self._switch_to("alice")
        self.service.create("empty.txt")

        result = self.service.read("empty.txt")
        assert result.ok
        assert result.value == b""
        assert len((self.root / "empty.txt").read_bytes()) == 12 + 16

    def test_fresh_nonce_per_update(self):
        self._switch_to("alice")
        self.service.create("notes.txt")

        self.service.update("notes.txt", "same")
        first = (self.root / "notes.txt").read_bytes()
        self.service.update("notes.txt", "same")
        second = (self.root / "notes.txt").read_bytes()

        assert first[:12] != second[:12]
        assert self.service.read("notes.txt").value == b"same"

    def test_binary_content(self):
        self._switch_to("alice")
        self.service.create("data.bin")
        payload = bytes(range(256)) * 10

        assert self.service.update("data.bin", payload).ok
        assert self.service.read("data.bin").value == payload

    def test_login_required(self):
        for result in (self.service.create("notes.txt"),
                       self.service.read("notes.txt"),
                       self.service.update("notes.txt", "x"),
                       self.service.delete("notes.txt")):
            assert result.kind is ErrorKind.PERMISSION_DENIED

        assert not (self.root / "notes.txt").exists()

    def test_create_existing(self):
        self._switch_to("alice")
        self.service.create("notes.txt")

        result = self.service.create("notes.txt")

        assert result.kind is ErrorKind.ALREADY_EXISTS
        assert len(self.service.ledger.load_entries("notes.txt")) == 1

    def test_invalid_names(self):
        self._switch_to("alice")

        for name in ("", "..", "a/b", "../escape.txt"):
            assert self.service.create(name).kind is ErrorKind.INVALID_ARGUMENT

    def test_out_of_bounds_directory(self):
        self._switch_to("alice")

        result = self.service.create("escape.txt", directory="..")

        assert result.kind is ErrorKind.OUT_OF_BOUNDS
        assert not (self.temp_dir / "escape.txt").exists()

    def test_ownership_isolation(self):
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.update("notes.txt", "alice's data")

        self._switch_to("bob")
        assert self.service.update("notes.txt", "bob was here").kind is ErrorKind.PERMISSION_DENIED
        assert self.service.delete("notes.txt").kind is ErrorKind.PERMISSION_DENIED
        assert self.service.history("notes.txt").kind is ErrorKind.PERMISSION_DENIED

        # Denied calls leave the file and its ledger untouched
        assert not self.service.ledger.load_last_entry("notes.txt").is_tombstone
        self._switch_to("alice")
        assert self.service.read("notes.txt").value == b"alice's data"

    def test_untracked_file_without_owner(self):
        self._switch_to("alice")
        (self.root / "dropped.txt").write_bytes(b"planted")

        assert self.service.read("dropped.txt").kind is ErrorKind.PERMISSION_DENIED

    def test_missing_file(self):
        self._switch_to("alice")

        assert self.service.read("ghost.txt").kind is ErrorKind.NOT_FOUND
        assert self.service.update("ghost.txt", "x").kind is ErrorKind.NOT_FOUND

    def test_delete_leaves_tombstone(self):
        self._switch_to("alice")
        self.service.create("notes.txt")

        result = self.service.delete("notes.txt")

        assert result.ok
        assert not (self.root / "notes.txt").exists()
        assert self.service.ledger.load_last_entry("notes.txt").is_tombstone
        assert self.service.read("notes.txt").kind is ErrorKind.NOT_FOUND
        assert "was deleted" in self.service.verify("notes.txt").message

    def test_recreation_outside_store_detected(self):
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.delete("notes.txt")

        (self.root / "notes.txt").write_bytes(b"resurrected")

        assert self.service.read("notes.txt").kind is ErrorKind.INTEGRITY_VIOLATION
        assert self.service.verify("notes.txt").kind is ErrorKind.INTEGRITY_VIOLATION

    def test_create_over_removed_tracked_file(self):
        """A file removed outside the store cannot be claimed by recreating it."""
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.update("notes.txt", "alice's data")
        (self.root / "notes.txt").unlink()

        self._switch_to("bob")
        result = self.service.create("notes.txt")

        assert result.kind is ErrorKind.INTEGRITY_VIOLATION
        assert self.service.record_store.get_file_key("notes.txt").owner == "alice"
        assert len(self.service.ledger.load_entries("notes.txt")) == 2
        assert not (self.root / "notes.txt").exists()

        self._switch_to("alice")
        assert self.service.verify("notes.txt").kind is ErrorKind.INTEGRITY_VIOLATION

    def test_create_over_foreign_ownership_record(self):
        """An ownership record without a tombstone keeps its owner."""
        self._switch_to("alice")
        self.service.record_store.put_file_key("orphan.txt", "alice", "c2FsdHNhbHRzYWx0c2FsdA==")

        self._switch_to("bob")
        result = self.service.create("orphan.txt")

        assert result.kind is ErrorKind.PERMISSION_DENIED
        assert self.service.record_store.get_file_key("orphan.txt").owner == "alice"
        assert not (self.root / "orphan.txt").exists()

    def test_recreation_through_store(self):
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.delete("notes.txt")

        self._switch_to("bob")
        assert self.service.create("notes.txt").ok
        assert self.service.update("notes.txt", "bob's now").ok
        assert self.service.read("notes.txt").value == b"bob's now"

        fingerprints = [e.fingerprint for e in self.service.ledger.load_entries("notes.txt")]
        assert len(fingerprints) == 4
        assert fingerprints[1] == "DELETED"

    def test_ledger_never_shrinks(self):
        self._switch_to("alice")
        lengths = []

        for step in (lambda: self.service.create("notes.txt"),
                     lambda: self.service.update("notes.txt", "one"),
                     lambda: self.service.read("notes.txt"),
                     lambda: self.service.update("notes.txt", "two"),
                     lambda: self.service.delete("notes.txt")):
            step()
            lengths.append(len(self.service.ledger.load_entries("notes.txt")))

        assert lengths == [1, 2, 2, 3, 4]

    def test_tampered_blob_with_forged_ledger(self):
        """Authentication still fails when the ledger is forged to match."""
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.update("notes.txt", "hello")

        path = self.root / "notes.txt"
        blob = bytearray(path.read_bytes())
        blob[-1] ^= 1
        path.write_bytes(bytes(blob))
        self.service.ledger.record_file("notes.txt", path)

        assert self.service.read("notes.txt").kind is ErrorKind.CRYPTO_ERROR

    def test_verify_and_history(self):
        self._switch_to("alice")
        assert "not tracked" in self.service.verify("notes.txt").message

        self.service.create("notes.txt")
        self.service.update("notes.txt", "hello")

        assert "is intact" in self.service.verify("notes.txt").message
        history = self.service.history("notes.txt")
        assert [entry.size for entry in history.value] == [28, 33]

    def test_directories(self):
        self._switch_to("alice")

        assert self.service.create_directory("docs").ok
        assert self.service.create_directory("docs").kind is ErrorKind.ALREADY_EXISTS
        assert self.service.change_directory("docs").message == "Moved to /docs"
        assert self.service.pwd() == "/docs"

        assert self.service.create("a.txt").ok
        assert (self.root / "docs" / "a.txt").exists()
        assert self.service.ledger.load_last_entry("docs/a.txt") is not None

        assert self.service.change_directory("../..").kind is ErrorKind.OUT_OF_BOUNDS
        assert self.service.pwd() == "/docs"

        self.service.change_directory("/")
        assert self.service.read("a.txt", directory="docs").ok
        assert self.service.read("docs").kind is ErrorKind.NOT_A_DIRECTORY

    def test_list_directory(self):
        self._switch_to("alice")
        self.service.create_directory("docs")
        self.service.create("b.txt")
        self.service.create("a.txt")

        result = self.service.list_directory()

        assert result.message == "Files in /:"
        assert result.value == ["a.txt", "b.txt", "docs/"]
        assert self.service.list_directory("missing").kind is ErrorKind.NOT_FOUND
        assert self.service.list_directory("..").kind is ErrorKind.OUT_OF_BOUNDS

    def test_navigation_without_login(self):
        (self.root / "docs").mkdir()

        assert self.service.list_directory().ok
        assert self.service.change_directory("docs").ok
        assert self.service.change_directory("..").message == "Moved to /"
        assert self.service.change_directory("..").message == "Already at the root directory"

    def test_every_operation_audited(self):
        self._switch_to("alice")
        self.service.create("notes.txt")
        self.service.read("notes.txt")
        self._switch_to("bob")
        self.service.read("notes.txt")

        trail = self.service.audit_logger.get_audit_trail("notes.txt")

        assert [(e['actor'], e['action'], e['outcome']) for e in trail] == [
            ("alice", "CREATE", "SUCCESS"),
            ("alice", "READ", "SUCCESS"),
            ("bob", "READ", "PERMISSION_DENIED"),
        ]
        assert self.service.audit_logger.verify_log_integrity()['verified']

    def test_persistence_failure(self, monkeypatch):
        self._switch_to("alice")
        self.service.create("notes.txt")

        def unavailable(path):
            raise PersistenceError("get_file_key failed after 3 attempts")

        monkeypatch.setattr(self.service.record_store, "get_file_key", unavailable)

        result = self.service.read("notes.txt")
        assert result.kind is ErrorKind.PERSISTENCE_ERROR
        assert result.kind.retryable

    def test_unexpected_error_is_contained(self, monkeypatch):
        self._switch_to("alice")
        self.service.create("notes.txt")

        def explode(path):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(self.service.files, "read_bytes", explode)

        result = self.service.read("notes.txt")
        assert result.kind is ErrorKind.UNKNOWN
        assert self.service.audit_logger.get_audit_trail("notes.txt")[-1]['outcome'] == "UNKNOWN"


if __name__ == "__main__":
    # Run tests
    pytest.main([__file__, "-v"])
