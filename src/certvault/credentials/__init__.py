"""Credential bundles: decoding, key/certificate pairing and export."""
from __future__ import annotations

from certvault.credentials.bundle import CredentialBundle, KeyPair
from certvault.credentials.decoders import (
    KeyMaterial,
    load_certificates,
    load_pkcs12,
    load_private_key,
    load_public_key,
)
from certvault.credentials.exporter import CredentialExporter
from certvault.credentials.formats import EncodingType, ExportFormat, PKCS8Cipher, PKCS12Cipher
from certvault.credentials.validator import CredentialValidator

__all__ = [
    "CredentialBundle",
    "CredentialExporter",
    "CredentialValidator",
    "EncodingType",
    "ExportFormat",
    "KeyMaterial",
    "KeyPair",
    "PKCS12Cipher",
    "PKCS8Cipher",
    "load_certificates",
    "load_pkcs12",
    "load_private_key",
    "load_public_key",
]
