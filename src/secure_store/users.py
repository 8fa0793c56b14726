"""
src/secure_store/users.py - User Accounts & Session

Registration and login against the record store, and the single current
user of this process.
"""

import hmac
from typing import Optional

from .audit_logger import AuditLogger
from .crypto import CryptoManager, decode_salt, encode_salt
from .errors import (
    InvalidArgumentError, NotFoundError, PermissionDeniedError, StoreError
)
from .records import RecordStore


class UserService:
    """
    User accounts and the current session.

    Exactly one user is current at a time; switching users means logging
    out first.
    """

    def __init__(self, record_store: RecordStore, crypto_manager: CryptoManager,
                 audit_logger: AuditLogger):
        self.record_store = record_store
        self.crypto_manager = crypto_manager
        self.audit_logger = audit_logger
        self._current_user: Optional[str] = None

    @property
    def current_user(self) -> Optional[str]:
        return self._current_user

    @property
    def is_logged_in(self) -> bool:
        return self._current_user is not None

    @staticmethod
    def _require_credentials(username: str, password: str) -> None:
        if not username or not username.strip():
            raise InvalidArgumentError("username must not be empty")
        if not password or not password.strip():
            raise InvalidArgumentError("password must not be empty")

    def register(self, username: str, password: str) -> str:
        """
        Create a user account.

        Returns:
            Status message

        Raises:
            InvalidArgumentError: On empty username or password
            AlreadyExistsError: If the username is taken
        """
        try:
            self._require_credentials(username, password)
            salt = self.crypto_manager.generate_salt()
            password_hash = self.crypto_manager.hash_credential(password, salt)
            self.record_store.create_user(username, password_hash, encode_salt(salt))
        except StoreError as e:
            self.audit_logger.log_auth_attempt(username, "REGISTER", False, {"reason": e.kind.value})
            raise

        self.audit_logger.log_auth_attempt(username, "REGISTER", True)
        return f"User '{username}' created"

    def login(self, username: str, password: str) -> str:
        """
        Authenticate and make the user current.

        Unknown users and wrong passwords get the same message.

        Raises:
            InvalidArgumentError: On empty input or an open session
            PermissionDeniedError: If authentication fails
        """
        try:
            self._require_credentials(username, password)
            if self._current_user is not None:
                raise InvalidArgumentError(f"'{self._current_user}' is already logged in; log out first")

            record = self.record_store.get_user(username)
            if record is None:
                raise PermissionDeniedError("Invalid username or password")

            computed = self.crypto_manager.hash_credential(password, decode_salt(record.salt))
            if not hmac.compare_digest(computed.encode(), record.password_hash.encode()):
                raise PermissionDeniedError("Invalid username or password")
        except StoreError as e:
            self.audit_logger.log_auth_attempt(username, "LOGIN", False, {"reason": e.kind.value})
            raise

        self._current_user = username
        self.audit_logger.log_auth_attempt(username, "LOGIN", True)
        return f"Welcome {username}"

    def logout(self) -> str:
        """
        End the current session.

        Raises:
            InvalidArgumentError: If nobody is logged in
        """
        if self._current_user is None:
            raise InvalidArgumentError("No user is logged in")

        username = self._current_user
        self._current_user = None
        self.audit_logger.log_auth_attempt(username, "LOGOUT", True)
        return f"Goodbye {username}"

    def require_user(self) -> str:
        """
        Current user, for operations that need one.

        Raises:
            PermissionDeniedError: If nobody is logged in
        """
        if self._current_user is None:
            raise PermissionDeniedError("Log in first")
        return self._current_user

    def credential_hash(self, username: str) -> str:
        """
        Key material for a user's file keys.

        Raises:
            NotFoundError: If the user record is gone
        """
        record = self.record_store.get_user(username)
        if record is None:
            raise NotFoundError(f"No credentials stored for '{username}'")
        return record.password_hash
