"""
src/secure_store/audit_logger.py - Access Auditing & Logging

Every store operation, successful or not, produces one audit event:
- Written once to the audit_log table of the record store
- Mirrored as a JSON line to a rotating audit.log file
- HIGH/CRITICAL events also go to security.log
- Each event carries a SHA-256 checksum over its canonical JSON for
  tamper detection

A failure of the audit sink itself is reported through the module logger and
is not audited again.
"""

import hashlib
import json
import logging
import logging.handlers
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ErrorKind, PersistenceError
from .records import RecordStore


logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


class Severity(Enum):
    """Event severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_SEVERITY_BY_KIND = {
    ErrorKind.INTEGRITY_VIOLATION: Severity.CRITICAL,
    ErrorKind.OUT_OF_BOUNDS: Severity.HIGH,
    ErrorKind.PERMISSION_DENIED: Severity.HIGH,
    ErrorKind.CRYPTO_ERROR: Severity.HIGH,
    ErrorKind.PERSISTENCE_ERROR: Severity.MEDIUM,
    ErrorKind.UNKNOWN: Severity.MEDIUM,
}


@dataclass
class AuditEvent:
    """Structured audit event."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    path: Optional[str]
    outcome: str
    severity: str
    details: str
    checksum: Optional[str] = None


def _event_checksum(event: AuditEvent) -> str:
    payload = asdict(event)
    payload.pop('checksum', None)
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()


class AuditLogger:
    """
    Audit journal for the secure file store.

    Features:
    - Structured JSON events
    - Tamper-evident checksums
    - Rotating log files
    - Per-path audit trail queries
    """

    def __init__(self, record_store: RecordStore, log_dir: Path,
                 max_log_size: int = 10 * 1024 * 1024, backup_count: int = 5):
        """
        Initialize audit logger.

        Args:
            record_store: Store holding the audit_log table
            log_dir: Directory for audit.log and security.log
            max_log_size: Maximum size per log file
            backup_count: Number of rotated files to keep
        """
        self.record_store = record_store
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.max_log_size = max_log_size
        self.backup_count = backup_count
        self._handlers: List[logging.Handler] = []

        self._setup_loggers()

    def _setup_loggers(self):
        """Setup rotating file loggers."""
        formatter = logging.Formatter('%(message)s')

        # Audit log for all events
        self.audit_logger = logging.getLogger(f"secure_store.audit.{id(self)}")
        self.audit_logger.setLevel(logging.INFO)
        self.audit_logger.propagate = False

        audit_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / 'audit.log',
            maxBytes=self.max_log_size,
            backupCount=self.backup_count
        )
        audit_handler.setFormatter(formatter)
        self.audit_logger.addHandler(audit_handler)
        self._handlers.append(audit_handler)

        # Security log for HIGH/CRITICAL events
        self.security_logger = logging.getLogger(f"secure_store.security.{id(self)}")
        self.security_logger.setLevel(logging.WARNING)
        self.security_logger.propagate = False

        security_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / 'security.log',
            maxBytes=self.max_log_size,
            backupCount=self.backup_count
        )
        security_handler.setFormatter(formatter)
        self.security_logger.addHandler(security_handler)
        self._handlers.append(security_handler)

    def _create_event(self, actor: Optional[str], action: str, path: Optional[str],
                      outcome: str, severity: Severity,
                      details: Optional[Dict[str, Any]] = None) -> AuditEvent:
        """Create structured audit event."""
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            actor=actor or ANONYMOUS,
            action=action,
            path=path,
            outcome=outcome,
            severity=severity.value,
            details=json.dumps(details or {}, sort_keys=True, default=str)
        )
        event.checksum = _event_checksum(event)
        return event

    def _write_event(self, event: AuditEvent) -> None:
        """Write an event to the log files and the record store."""
        event_json = json.dumps(asdict(event), sort_keys=True)

        self.audit_logger.info(event_json)
        if event.severity in (Severity.HIGH.value, Severity.CRITICAL.value):
            self.security_logger.warning(event_json)

        try:
            self.record_store.append_audit(asdict(event))
        except PersistenceError as e:
            logger.error("Audit event %s for %s not persisted: %s",
                         event.event_id, event.action, e)

    def log_operation(self, actor: Optional[str], action: str, path: Optional[str],
                      kind: Optional[ErrorKind] = None,
                      details: Optional[Dict[str, Any]] = None) -> AuditEvent:
        """
        Log a file or directory operation.

        Args:
            actor: Current user, None when nobody is logged in
            action: Operation name (CREATE, READ, UPDATE, DELETE, ...)
            path: Root-relative path of the target
            kind: Failure kind, None on success
            details: Optional additional details

        Returns:
            The written event
        """
        if kind is None:
            outcome, severity = "SUCCESS", Severity.LOW
        else:
            outcome, severity = kind.value, _SEVERITY_BY_KIND.get(kind, Severity.LOW)

        event = self._create_event(actor, action, path, outcome, severity, details)
        self._write_event(event)
        return event

    def log_auth_attempt(self, username: str, action: str, success: bool,
                         details: Optional[Dict[str, Any]] = None) -> AuditEvent:
        """
        Log an authentication event (REGISTER, LOGIN, LOGOUT).

        Args:
            username: User the attempt was made for
            action: Authentication action
            success: Whether it succeeded
            details: Optional additional details
        """
        outcome = "SUCCESS" if success else "FAILURE"
        severity = Severity.LOW if success else Severity.MEDIUM

        event = self._create_event(username, action, None, outcome, severity, details)
        self._write_event(event)
        return event

    def get_audit_trail(self, path: str, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get audit trail for a specific path.

        Returns:
            List of audit events for the path, oldest first
        """
        return self.record_store.list_audit(path=path, limit=limit)

    def get_user_activity(self, actor: str, limit: int = 100) -> List[Dict[str, Any]]:
        return self.record_store.list_audit(actor=actor, limit=limit)

    def verify_log_integrity(self, limit: int = 10_000) -> Dict[str, Any]:
        """
        Recompute the checksum of every stored event.

        Returns:
            Dictionary with integrity verification results
        """
        results = {
            'verified': True,
            'total_events': 0,
            'corrupted_events': 0,
        }

        fields = AuditEvent.__dataclass_fields__
        for row in self.record_store.list_audit(limit=limit):
            results['total_events'] += 1
            event = AuditEvent(**{key: row[key] for key in fields})
            if event.checksum != _event_checksum(event):
                results['corrupted_events'] += 1
                results['verified'] = False

        return results

    def close(self):
        """Detach and close the file handlers."""
        for handler in self._handlers:
            self.audit_logger.removeHandler(handler)
            self.security_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
