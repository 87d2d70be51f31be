"""CryptoContext — explicit carrier for randomness and PBE parameters.

A single context is built at process start (usually from a
:class:`~certvault.config.VaultConfig`) and handed to every component that
signs, encrypts or derives keys. Nothing in certvault registers global
providers or reads ambient crypto state.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Callable

from certvault.config import VaultConfig


@dataclass(frozen=True)
class CryptoContext:
    """Randomness source and key-derivation parameters.

    Parameters
    ----------
    pbe_iterations:
        Iteration count used when deriving encryption keys from passwords.
    mac_iterations:
        Iteration count used when deriving PKCS#12 MAC keys.
    challenge_size:
        Size of the random buffer signed during pair validation.
    salt_size:
        Length of freshly generated salts.
    default_alias:
        Friendly name for PKCS#12 key entries.
    random_source:
        Callable returning *n* cryptographically secure random bytes.
    """

    pbe_iterations: int = 2048
    mac_iterations: int = 2048
    challenge_size: int = 2048
    salt_size: int = 16
    default_alias: str = "1"
    random_source: Callable[[int], bytes] = field(default=secrets.token_bytes, repr=False)

    @classmethod
    def from_config(cls, config: VaultConfig) -> "CryptoContext":
        """Build a context from a validated configuration."""
        return cls(
            pbe_iterations=config.pbe_iterations,
            mac_iterations=config.mac_iterations,
            challenge_size=config.challenge_size,
            salt_size=config.salt_size,
            default_alias=config.default_alias,
        )

    def random_bytes(self, size: int) -> bytes:
        """Return *size* random bytes from the configured source."""
        return self.random_source(size)

    def new_salt(self) -> bytes:
        """Return a fresh salt of the configured length."""
        return self.random_bytes(self.salt_size)
