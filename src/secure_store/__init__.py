"""
Secure File Store - a single-user encrypted file manager with tamper evidence.

Features:
- File Encryption at Rest (PBKDF2-HMAC-SHA256 keys, AES-256-GCM)
- Append-only Integrity Ledger (SHA-256 fingerprints, tombstones)
- Per-file Ownership Enforcement
- Path Sandbox confined to an authorized root
- Access Auditing & Logging
"""

from .errors import ErrorKind, OperationResult, StoreError
from .config import StoreConfig, load_config
from .file_service import SecureFileService, open_store

__version__ = "1.0.0"
__author__ = "Secure FS Team"

__all__ = [
    "ErrorKind",
    "OperationResult",
    "StoreError",
    "StoreConfig",
    "load_config",
    "SecureFileService",
    "open_store",
]
