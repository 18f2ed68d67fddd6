"""
TOML-based configuration for BitGuard.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from bitguard_core.config import load_config
    cfg = load_config("bitguard.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class WalletConfig:
    """Which network the wallet lives on and where its envelope is kept."""
    network: str = "main"                 # "main" or "test"
    storage_key: str = "bitguard_wallet"
    min_password_length: int = 8


@dataclass
class VaultConfig:
    """Envelope key-stretching cost."""
    kdf_iterations: int = 100_000
    # unversioned envelopes carry no iteration count of their own
    legacy_iterations: int = 100_000


@dataclass
class StorageConfig:
    """Persistence settings."""
    backend: str = "file"                 # "memory", "file" or "sqlite"
    path: str = "data/wallet"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class BitGuardConfig:
    """Top-level configuration container."""
    wallet: WalletConfig = field(default_factory=WalletConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> BitGuardConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        BITGUARD_NETWORK          -> wallet.network
        BITGUARD_STORAGE_BACKEND  -> storage.backend
        BITGUARD_STORAGE_PATH     -> storage.path
        BITGUARD_KDF_ITERATIONS   -> vault.kdf_iterations
        BITGUARD_LOG_LEVEL        -> logging.level
        BITGUARD_LOG_FMT          -> logging.format
        BITGUARD_LOG_FILE         -> logging.file
    """
    cfg = BitGuardConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("wallet", cfg.wallet),
                ("vault", cfg.vault),
                ("storage", cfg.storage),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("BITGUARD_NETWORK"):
        cfg.wallet.network = v.lower()
    if v := os.environ.get("BITGUARD_STORAGE_BACKEND"):
        cfg.storage.backend = v.lower()
    if v := os.environ.get("BITGUARD_STORAGE_PATH"):
        cfg.storage.path = v
    if v := os.environ.get("BITGUARD_KDF_ITERATIONS"):
        cfg.vault.kdf_iterations = int(v)
    if v := os.environ.get("BITGUARD_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("BITGUARD_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("BITGUARD_LOG_FILE"):
        cfg.logging.file = v

    return cfg
