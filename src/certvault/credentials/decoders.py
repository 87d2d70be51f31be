"""Decoders for certificate, key and keystore containers.

Certificates may be supplied as PEM (one or more blocks), DER, or a PKCS#7
certs-only structure in either encoding. Private keys may be PKCS#8 (plain or
password encrypted) or "traditional" PKCS#1/SEC1/DSA keys. Only traditional
keys carry their public half in the container, so only they report a public
key in the returned :class:`KeyMaterial`.
"""
from __future__ import annotations

import logging
from pathlib import Path

from asn1crypto import keys as asn1_keys
from asn1crypto import pem as asn1_pem
from asn1crypto import pkcs12 as asn1_pkcs12
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12

from certvault.credentials.bundle import KeyPair
from certvault.crypto import pbe
from certvault.errors import DecodeError, InvalidPasswordError

logger = logging.getLogger(__name__)

# What a key container yielded: the private key and, when the container
# carries it, the public key.
KeyMaterial = KeyPair

_TRADITIONAL_PEM_TYPES = {"RSA PRIVATE KEY", "EC PRIVATE KEY", "DSA PRIVATE KEY"}
_IGNORED_PEM_TYPES = {"EC PARAMETERS", "DSA PARAMETERS"}


def _password_bytes(password: str | None) -> bytes | None:
    return password.encode("utf-8") if password else None


# ------------------------------------------------------------------
# Certificates
# ------------------------------------------------------------------


def load_certificates(data: bytes) -> list[x509.Certificate]:
    """Decode one or more certificates from *data*.

    Raises
    ------
    DecodeError
        If no certificate could be decoded.
    """
    try:
        if asn1_pem.detect(data):
            if b"-----BEGIN PKCS7-----" in data:
                certificates = pkcs7.load_pem_pkcs7_certificates(data)
            else:
                certificates = x509.load_pem_x509_certificates(data)
        else:
            try:
                certificates = [x509.load_der_x509_certificate(data)]
            except ValueError:
                certificates = pkcs7.load_der_pkcs7_certificates(data)
    except ValueError as exc:
        raise DecodeError("Unable to decode certificate data") from exc

    if not certificates:
        raise DecodeError("No certificates found")
    return list(certificates)


def read_certificates(path: Path) -> list[x509.Certificate]:
    """Read and decode a certificate or chain file."""
    return load_certificates(path.read_bytes())


# ------------------------------------------------------------------
# Private keys
# ------------------------------------------------------------------


def _load_pkcs8_der(der: bytes) -> KeyMaterial:
    private_key = serialization.load_der_private_key(der, password=None)
    return KeyMaterial(private_key=private_key, public_key=None)


def _load_encrypted_pkcs8_der(der: bytes, password: str | None) -> KeyMaterial:
    if not password:
        raise InvalidPasswordError("Password required to decrypt private key")
    plaintext = pbe.decrypt_private_key_info(der, password)
    try:
        return _load_pkcs8_der(plaintext)
    except (ValueError, TypeError) as exc:
        raise InvalidPasswordError("Wrong password or corrupted data") from exc


def _is_encrypted_pkcs8(der: bytes) -> bool:
    try:
        info = asn1_keys.EncryptedPrivateKeyInfo.load(der, strict=True)
        info["encryption_algorithm"]["algorithm"].native
        info["encrypted_data"].native
    except (ValueError, TypeError):
        return False
    return True


def _is_pkcs8(der: bytes) -> bool:
    try:
        info = asn1_keys.PrivateKeyInfo.load(der, strict=True)
        info["private_key_algorithm"]["algorithm"].native
    except (ValueError, TypeError):
        return False
    return True


def _load_traditional(data: bytes, password: str | None, pem: bool) -> KeyMaterial:
    loader = serialization.load_pem_private_key if pem else serialization.load_der_private_key
    try:
        private_key = loader(data, password=_password_bytes(password))
    except TypeError as exc:
        raise InvalidPasswordError(str(exc)) from exc
    except ValueError as exc:
        if password:
            raise InvalidPasswordError("Wrong password or corrupted data") from exc
        raise DecodeError("Unable to decode private key") from exc
    return KeyMaterial(private_key=private_key, public_key=private_key.public_key())


def load_private_key(data: bytes, password: str | None = None) -> KeyMaterial:
    """Decode a private key container.

    Parameters
    ----------
    data:
        PEM or DER encoded PKCS#8, encrypted PKCS#8 or traditional key.
    password:
        Password for encrypted containers.

    Raises
    ------
    InvalidPasswordError
        If the container is encrypted and *password* is missing or wrong.
    DecodeError
        If no private key could be decoded.
    """
    if asn1_pem.detect(data):
        try:
            blocks = list(asn1_pem.unarmor(data, multiple=True))
        except ValueError as exc:
            raise DecodeError("Malformed PEM data") from exc

        for type_name, _headers, der in blocks:
            if type_name in _IGNORED_PEM_TYPES:
                continue
            if type_name == "ENCRYPTED PRIVATE KEY":
                return _load_encrypted_pkcs8_der(der, password)
            if type_name == "PRIVATE KEY":
                try:
                    return _load_pkcs8_der(der)
                except ValueError as exc:
                    raise DecodeError("Unable to decode PKCS#8 private key") from exc
            if type_name in _TRADITIONAL_PEM_TYPES:
                return _load_traditional(data, password, pem=True)
            logger.debug("Skipping PEM block of type %s", type_name)
        raise DecodeError("No private key found in PEM data")

    if _is_encrypted_pkcs8(data):
        return _load_encrypted_pkcs8_der(data, password)
    if _is_pkcs8(data):
        try:
            return _load_pkcs8_der(data)
        except ValueError as exc:
            raise DecodeError("Unable to decode PKCS#8 private key") from exc
    return _load_traditional(data, password, pem=False)


def read_private_key(path: Path, password: str | None = None) -> KeyMaterial:
    """Read and decode a private key file."""
    return load_private_key(path.read_bytes(), password)


# ------------------------------------------------------------------
# Keystores and public keys
# ------------------------------------------------------------------


def _check_pfx_structure(data: bytes) -> None:
    # Everything outside the encrypted bags must parse before a password is tried.
    try:
        pfx = asn1_pkcs12.Pfx.load(data, strict=True)
        version = pfx["version"].native
        content_types = [info["content_type"].native for info in pfx.authenticated_safe]
    except (ValueError, TypeError, KeyError) as exc:
        raise DecodeError("Not a PKCS#12 keystore") from exc
    if version != "v3":
        raise DecodeError(f"Not a PKCS#12 keystore: unsupported version {version!r}")
    if not content_types:
        raise DecodeError("Not a PKCS#12 keystore: empty authenticated safe")


def load_pkcs12(
    data: bytes, password: str | None = None
) -> tuple[KeyMaterial | None, list[x509.Certificate]]:
    """Decode a PKCS#12 keystore into its key material and certificate chain.

    Raises
    ------
    DecodeError
        If *data* is not a PKCS#12 structure.
    InvalidPasswordError
        If the keystore cannot be opened with *password*.
    """
    _check_pfx_structure(data)

    try:
        store = pkcs12.load_pkcs12(data, _password_bytes(password))
    except ValueError as exc:
        raise InvalidPasswordError("Unable to open keystore with the supplied password") from exc

    chain: list[x509.Certificate] = []
    if store.cert is not None:
        chain.append(store.cert.certificate)
    chain.extend(extra.certificate for extra in store.additional_certs)

    material = None
    if store.key is not None:
        material = KeyMaterial(private_key=store.key, public_key=store.key.public_key())
    return material, chain


def load_public_key(data: bytes) -> PublicKeyTypes:
    """Decode a PEM or DER SubjectPublicKeyInfo."""
    try:
        if asn1_pem.detect(data):
            return serialization.load_pem_public_key(data)
        return serialization.load_der_public_key(data)
    except (ValueError, TypeError) as exc:
        raise DecodeError("Unable to decode public key") from exc
