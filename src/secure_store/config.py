"""
src/secure_store/config.py - Store Configuration

Settings are kept in a JSON file next to the application. When the file is
missing the defaults are written out so an operator can edit them.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from .errors import InvalidArgumentError


DEFAULT_CONFIG_PATH = Path("secure_store.json")


@dataclass
class StoreConfig:
    """Store configuration."""
    root_dir: str = "root_app"
    state_dir: str = ".secure_store"
    kdf_iterations: int = 600_000
    credential_iterations: int = 200_000
    key_length_bytes: int = 32  # AES-256
    salt_length_bytes: int = 16
    nonce_length_bytes: int = 12  # 96-bit GCM nonce
    store_max_attempts: int = 3
    log_max_bytes: int = 10 * 1024 * 1024  # 10MB
    log_backup_count: int = 5

    def __post_init__(self):
        self.validate()

    @property
    def root_path(self) -> Path:
        return Path(self.root_dir).expanduser().resolve()

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser().resolve()

    @property
    def ledger_dir(self) -> Path:
        return self.state_path / "integrity"

    @property
    def database_path(self) -> Path:
        return self.state_path / "secure_store.db"

    @property
    def log_dir(self) -> Path:
        return self.state_path / "logs"

    def validate(self) -> None:
        """
        Check value ranges and directory placement.

        Raises:
            InvalidArgumentError: If a setting is out of range or the state
                directory sits inside the root boundary
        """
        if self.key_length_bytes not in (16, 24, 32):
            raise InvalidArgumentError(f"key_length_bytes must be 16, 24 or 32, got {self.key_length_bytes}")
        if self.nonce_length_bytes < 12:
            raise InvalidArgumentError("nonce_length_bytes must be at least 12")
        if self.salt_length_bytes < 16:
            raise InvalidArgumentError("salt_length_bytes must be at least 16")
        for name in ("kdf_iterations", "credential_iterations", "store_max_attempts",
                     "log_max_bytes"):
            if getattr(self, name) < 1:
                raise InvalidArgumentError(f"{name} must be positive")
        if self.log_backup_count < 0:
            raise InvalidArgumentError("log_backup_count must not be negative")

        root = self.root_path.parts
        state = self.state_path.parts
        if state[:len(root)] == root:
            raise InvalidArgumentError(
                f"state_dir {self.state_path} must not be inside root_dir {self.root_path}"
            )

    def to_dict(self) -> dict:
        return asdict(self)

    def save(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """Write configuration to a JSON file."""
        with open(config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> StoreConfig:
    """
    Load configuration from a JSON file.

    Unknown keys are ignored. A missing file is created with the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        StoreConfig instance

    Raises:
        InvalidArgumentError: If the file is not valid JSON or holds bad values
    """
    config_path = Path(config_path or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        config = StoreConfig()
        config.save(config_path)
        return config

    try:
        with open(config_path, 'r') as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidArgumentError(f"Invalid configuration file {config_path}: {e}")

    if not isinstance(raw, dict):
        raise InvalidArgumentError(f"Configuration file {config_path} must hold a JSON object")

    known = {f.name for f in fields(StoreConfig)}
    values = {key: value for key, value in raw.items() if key in known}

    try:
        return StoreConfig(**values)
    except TypeError as e:
        raise InvalidArgumentError(f"Invalid configuration value: {e}")
