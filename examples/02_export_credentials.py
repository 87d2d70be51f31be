#!/usr/bin/env python3
"""Example: Validate and export CA credentials

Creates a self-signed CA certificate, proves the private key matches it,
and exports the pair as an AES-protected PKCS#12 keystore and an encrypted
PKCS#8 key.

Usage:
    python examples/02_export_credentials.py

Requirements:
    pip install certvault
"""
from __future__ import annotations

import datetime

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

import certvault
from certvault import (
    CertificateRequest,
    CredentialExporter,
    CredentialValidator,
    EncodingType,
    PKCS8Cipher,
    PKCS12Cipher,
    to_facet,
)
from certvault.requests.usage import KeyType, KeyUsage


def _self_signed(request: CertificateRequest) -> x509.Certificate:
    key = request.ensure_key_pair()
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(request.subject)
        .issuer_name(request.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=365))
    )
    for extension, critical in request.extensions():
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(key, hashes.SHA512())


def main() -> None:
    print(f"certvault version: {certvault.__version__}")

    # Step 1: Describe the CA
    request = CertificateRequest(
        subject=x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Example Root CA")]),
        key_type=KeyType.EC_P384,
        key_usage=KeyUsage.KEY_CERT_SIGN | KeyUsage.CRL_SIGN,
        is_ca_request=True,
        crl_location="http://crl.example.com/root.crl",
        description="Example root",
    )
    request.validate()
    certificate = _self_signed(request)
    print(f"Issued {certificate.subject.rfc4514_string()}")

    # Step 2: Prove the key belongs to the certificate
    bundle = CredentialValidator().validate_pair(certificate, request.private_key)
    bundle = bundle.with_request(to_facet(request))
    print(f"Key pair validated; request sealed: {request.sealed}")

    # Step 3: Export
    exporter = CredentialExporter()
    keystore = exporter.export_pkcs12(bundle, PKCS12Cipher.AES256, "keystore-password")
    key_pem = exporter.export_pkcs8(
        bundle, EncodingType.PEM, PKCS8Cipher.AES_256_CBC, "key-password"
    )
    print(f"PKCS#12 keystore: {len(keystore)} bytes")
    print(key_pem.decode("ascii").splitlines()[0])

    # Step 4: Reopen the keystore with cryptography
    key, cert, _ = pkcs12.load_key_and_certificates(keystore, b"keystore-password")
    print(f"Keystore reopened: key={type(key).__name__}, cert matches={cert == certificate}")

    print("\nExport example complete.")


if __name__ == "__main__":
    main()
