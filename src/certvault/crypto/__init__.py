"""Cryptographic primitives shared by the credential and backup subsystems.

Digests, default signature schemes, password-based encryption and the
explicit :class:`CryptoContext` carrying randomness and iteration counts.
"""
from __future__ import annotations

from certvault.crypto.context import CryptoContext
from certvault.crypto.digest import (
    SignatureScheme,
    default_signature_scheme,
    sha512_hex,
    sign,
    verify,
)

__all__ = [
    "CryptoContext",
    "SignatureScheme",
    "default_signature_scheme",
    "sha512_hex",
    "sign",
    "verify",
]
