"""
Centralized configuration for pairvault.

All configuration is loaded from environment variables with sensible defaults.
Passwords that protect private keys are never configuration; they are passed
to each vault call and dropped when it returns.

Usage:
    from pairvault.config import get_config
    cfg = get_config()
    print(cfg.db.name)              # "pairvault"
    print(cfg.vault.cipher)         # "aes-256-gcm"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

SUPPORTED_CIPHERS = ("aes-256-gcm", "chacha20-poly1305")
DEFAULT_CIPHER = "aes-256-gcm"
DEFAULT_KDF_ITERATIONS = 600_000  # OWASP 2023 floor for PBKDF2-HMAC-SHA256
MAX_KDF_ITERATIONS = 10 * DEFAULT_KDF_ITERATIONS  # upper bound accepted from config and stored envelopes


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "pairvault"
    user: str = "pairvault"
    password: str = ""
    pool_min: int = 1
    pool_max: int = 10

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class VaultConfig:
    """Cipher and schema settings for the key vault."""

    cipher: str = DEFAULT_CIPHER
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    # Table/column that owner ids reference; empty table = no foreign key
    principal_table: str = "users"
    principal_column: str = "id"

    def __post_init__(self) -> None:
        if self.cipher not in SUPPORTED_CIPHERS:
            raise ValueError(
                f"Unsupported cipher: {self.cipher}. Use one of {', '.join(SUPPORTED_CIPHERS)}."
            )
        if not 1 <= self.kdf_iterations <= MAX_KDF_ITERATIONS:
            raise ValueError(
                f"KDF iterations must be between 1 and {MAX_KDF_ITERATIONS}, got {self.kdf_iterations}"
            )

    @property
    def has_principal_fk(self) -> bool:
        return bool(self.principal_table)


@dataclass(frozen=True)
class Config:
    """Top-level pairvault configuration."""

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("PAIRVAULT_DB_HOST", ""),
        port=int(os.environ.get("PAIRVAULT_DB_PORT", "5432")),
        name=os.environ.get("PAIRVAULT_DB_NAME", "pairvault"),
        user=os.environ.get("PAIRVAULT_DB_USER", os.environ.get("USER", "pairvault")),
        password=os.environ.get("PAIRVAULT_DB_PASSWORD", ""),
        pool_min=int(os.environ.get("PAIRVAULT_DB_POOL_MIN", "1")),
        pool_max=int(os.environ.get("PAIRVAULT_DB_POOL_MAX", "10")),
    )

    vault = VaultConfig(
        cipher=os.environ.get("PAIRVAULT_CIPHER", DEFAULT_CIPHER).strip().lower(),
        kdf_iterations=int(
            os.environ.get("PAIRVAULT_KDF_ITERATIONS", str(DEFAULT_KDF_ITERATIONS))
        ),
        principal_table=os.environ.get("PAIRVAULT_PRINCIPAL_TABLE", "users"),
        principal_column=os.environ.get("PAIRVAULT_PRINCIPAL_COLUMN", "id"),
    )

    return Config(db=db, vault=vault)


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
