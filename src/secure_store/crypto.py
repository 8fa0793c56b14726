"""
src/secure_store/crypto.py - File Encryption at Rest

🔐 FEATURE: FILE ENCRYPTION AT REST
Per-file AES-256-GCM encryption under keys derived from the owner's
credential hash.

🏗️ ARCHITECTURE:
- Credential Hash: PBKDF2-HMAC-SHA256(password, user salt), stored per user
- File Key: PBKDF2-HMAC-SHA256(credential hash, file salt), never stored
- File Salt: 128-bit random value kept in the file's ownership record
- Nonce: 96-bit random value, fresh for every encryption
- Ciphertext Blob: nonce || ciphertext || 128-bit authentication tag

🛡️ SECURITY NOTES:
- A new nonce is drawn from the OS CSPRNG on every encrypt() call, even when
  the same file is re-encrypted under the same key.
- The credential hash is the KDF secret, so whoever can read the user table
  can derive every file key of every user. Hardening this changes the threat
  model and is out of scope here.
"""

import base64
import binascii
import hashlib
import secrets
from pathlib import Path
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import CryptoError


TAG_LENGTH_BYTES = 16  # 128-bit GCM tag


def encode_salt(salt: bytes) -> str:
    return base64.b64encode(salt).decode('ascii')


def decode_salt(salt_b64: str) -> bytes:
    """
    Decode a stored base64 salt.

    Raises:
        CryptoError: If the value is not valid base64
    """
    try:
        return base64.b64decode(salt_b64.encode('ascii'), validate=True)
    except (binascii.Error, ValueError, AttributeError) as e:
        raise CryptoError(f"Invalid salt encoding: {e}")


class CryptoManager:
    """
    Key derivation and authenticated encryption for stored files.

    Features:
    - PBKDF2-HMAC-SHA256 key derivation with a fixed iteration count
    - AES-GCM authenticated encryption
    - Fresh random nonce per encryption
    - Credential hashing for user accounts
    """

    def __init__(self, kdf_iterations: int = 600_000, key_length: int = 32,
                 salt_length: int = 16, nonce_length: int = 12,
                 credential_iterations: int = 200_000):
        """
        Initialize crypto manager.

        Args:
            kdf_iterations: PBKDF2 iterations for file keys
            key_length: Derived key length in bytes
            salt_length: Random salt length in bytes
            nonce_length: GCM nonce length in bytes
            credential_iterations: PBKDF2 iterations for credential hashes
        """
        self.kdf_iterations = kdf_iterations
        self.key_length = key_length
        self.salt_length = salt_length
        self.nonce_length = nonce_length
        self.credential_iterations = credential_iterations

    def generate_salt(self) -> bytes:
        return secrets.token_bytes(self.salt_length)

    def _pbkdf2(self, secret: bytes, salt: bytes, iterations: int) -> bytes:
        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.key_length,
                salt=salt,
                iterations=iterations,
            )
            return kdf.derive(secret)
        except (TypeError, ValueError) as e:
            raise CryptoError(f"Key derivation failed: {e}")

    def derive_key(self, secret_material: str) -> Tuple[bytes, bytes]:
        """
        Derive a key for a new file.

        Args:
            secret_material: Owner's credential hash

        Returns:
            Tuple of (key, salt); only the salt may be persisted
        """
        salt = self.generate_salt()
        return self.rederive_key(secret_material, salt), salt

    def rederive_key(self, secret_material: str, salt: bytes) -> bytes:
        """
        Re-derive the key of an existing file.

        Deterministic: same secret and salt give the same key.

        Raises:
            CryptoError: If the inputs are unusable
        """
        if not secret_material:
            raise CryptoError("Empty key material")
        if not salt:
            raise CryptoError("Empty salt")
        return self._pbkdf2(secret_material.encode('utf-8'), salt, self.kdf_iterations)

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        """
        Encrypt data using AES-GCM.

        Args:
            plaintext: Data to encrypt
            key: File key from derive_key()/rederive_key()

        Returns:
            Ciphertext blob: nonce || ciphertext || tag
        """
        nonce = secrets.token_bytes(self.nonce_length)
        try:
            aesgcm = AESGCM(key)
            ciphertext = aesgcm.encrypt(nonce, plaintext, None)
        except (TypeError, ValueError, OverflowError) as e:
            raise CryptoError(f"Encryption failed: {e}")
        return nonce + ciphertext

    def decrypt(self, blob: bytes, key: bytes) -> bytes:
        """
        Decrypt a ciphertext blob produced by encrypt().

        Raises:
            CryptoError: If the blob is too short or authentication fails
        """
        if len(blob) < self.nonce_length + TAG_LENGTH_BYTES:
            raise CryptoError(f"Ciphertext blob too short ({len(blob)} bytes)")

        nonce = blob[:self.nonce_length]
        ciphertext = blob[self.nonce_length:]
        try:
            aesgcm = AESGCM(key)
            return aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise CryptoError("Authentication tag mismatch; wrong key or modified ciphertext")
        except (TypeError, ValueError) as e:
            raise CryptoError(f"Decryption failed: {e}")

    def hash_credential(self, password: str, salt: bytes) -> str:
        """
        Hash a password for the user table.

        Returns:
            Base64-encoded PBKDF2-HMAC-SHA256 digest
        """
        digest = self._pbkdf2(password.encode('utf-8'), salt, self.credential_iterations)
        return base64.b64encode(digest).decode('ascii')


def calculate_data_checksum(data: bytes) -> str:
    """
    Calculate SHA-256 checksum of data in memory.

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def calculate_file_hash(file_path: Path) -> str:
    """
    Calculate SHA-256 hash of a file.

    Args:
        file_path: Path to file

    Returns:
        Hex-encoded SHA-256 hash
    """
    sha256_hash = hashlib.sha256()

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(64 * 1024), b''):
            sha256_hash.update(chunk)

    return sha256_hash.hexdigest()
