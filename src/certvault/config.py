"""VaultConfig — tunable parameters for export encryption and backups.

Sensible defaults are provided for every parameter so that callers only
need a configuration file when they want to deviate from them.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class VaultConfig(BaseModel):
    """Runtime configuration for certvault.

    Parameters
    ----------
    pbe_iterations:
        Key derivation iteration count for password-based encryption of
        private keys and certificate bags.
    mac_iterations:
        Key derivation iteration count for the PKCS#12 integrity MAC.
    challenge_size:
        Number of random bytes signed when proving possession of a
        private key.
    salt_size:
        Length in bytes of generated PBE and MAC salts.
    default_alias:
        Friendly name given to the key entry of exported PKCS#12 stores.
    archive_compression:
        Compression applied to backup archive entries.
    log_level:
        Default logging level used by the command line interface.
    """

    pbe_iterations: int = Field(default=2048, ge=1)
    mac_iterations: int = Field(default=2048, ge=1)
    challenge_size: int = Field(default=2048, ge=1)
    salt_size: int = Field(default=16, ge=8)
    default_alias: str = Field(default="1", min_length=1)
    archive_compression: Literal["stored", "deflated"] = "deflated"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = {"frozen": True}


def load_config(path: Path | None = None) -> VaultConfig:
    """Load a :class:`VaultConfig` from a JSON file.

    Parameters
    ----------
    path:
        JSON file holding any subset of the configuration fields. When
        ``None`` the defaults are returned.

    Raises
    ------
    ValueError
        If the file is not valid JSON or holds invalid values.
    """
    if path is None:
        return VaultConfig()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return VaultConfig.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid configuration file {str(path)!r}: {exc}") from exc
