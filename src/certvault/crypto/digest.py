"""Content digests and algorithm-specific signing.

Pure functions only. SHA-512 is the digest used for backup integrity; the
remaining digests are provided for fingerprints and display purposes.
Signature helpers dispatch on :class:`SignatureScheme` so callers never
need to know the padding or hash conventions of a key type.
"""
from __future__ import annotations

import enum
import hashlib
import hmac

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    PrivateKeyTypes,
    PublicKeyTypes,
)

from certvault.errors import UnsupportedKeyTypeError


# ------------------------------------------------------------------
# Digests
# ------------------------------------------------------------------


def md5(content: bytes) -> bytes:
    """Return the MD5 digest of *content*."""
    return hashlib.md5(content).digest()


def sha1(content: bytes) -> bytes:
    """Return the SHA-1 digest of *content*."""
    return hashlib.sha1(content).digest()


def sha256(content: bytes) -> bytes:
    """Return the SHA-256 digest of *content*."""
    return hashlib.sha256(content).digest()


def sha384(content: bytes) -> bytes:
    """Return the SHA-384 digest of *content*."""
    return hashlib.sha384(content).digest()


def sha512(content: bytes) -> bytes:
    """Return the SHA-512 digest of *content*."""
    return hashlib.sha512(content).digest()


def sha512_hex(content: bytes) -> str:
    """Return the lowercase hexadecimal SHA-512 digest of *content*."""
    return hashlib.sha512(content).hexdigest()


def digests_equal(first_hex: str, second_hex: str) -> bool:
    """Compare two hexadecimal digests case-insensitively in constant time."""
    return hmac.compare_digest(first_hex.lower().encode(), second_hex.lower().encode())


def fingerprints(content: bytes) -> dict[str, str]:
    """Return colon-separated MD5, SHA-1, SHA-256 and SHA-384 fingerprints of *content*."""
    functions = (("MD5", md5), ("SHA-1", sha1), ("SHA-256", sha256), ("SHA-384", sha384))
    return {
        name: ":".join(f"{byte:02X}" for byte in function(content))
        for name, function in functions
    }


# ------------------------------------------------------------------
# Signatures
# ------------------------------------------------------------------


class SignatureScheme(str, enum.Enum):
    """Signature algorithms used for possession proofs and CSR signing."""

    SHA256_WITH_RSA = "SHA256withRSA"
    SHA512_WITH_ECDSA = "SHA512withECDSA"
    SHA256_WITH_DSA = "SHA256withDSA"
    ED25519 = "Ed25519"
    ED448 = "Ed448"


def default_signature_scheme(public_key: PublicKeyTypes) -> SignatureScheme:
    """Return the default signature scheme for a public key type.

    Raises
    ------
    UnsupportedKeyTypeError
        If the key type has no signature scheme (e.g. X25519).
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        return SignatureScheme.SHA256_WITH_RSA
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return SignatureScheme.SHA512_WITH_ECDSA
    if isinstance(public_key, dsa.DSAPublicKey):
        return SignatureScheme.SHA256_WITH_DSA
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        return SignatureScheme.ED25519
    if isinstance(public_key, ed448.Ed448PublicKey):
        return SignatureScheme.ED448
    raise UnsupportedKeyTypeError(
        f"No signature algorithm known for key type {type(public_key).__name__}"
    )


def signing_hash_for(private_key: CertificateIssuerPrivateKeyTypes) -> hashes.HashAlgorithm | None:
    """Return the hash to pass to ``cryptography`` builders for *private_key*.

    EdDSA keys sign without a separate hash and yield ``None``.
    """
    if isinstance(private_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return None
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return hashes.SHA512()
    return hashes.SHA256()


def sign(private_key: PrivateKeyTypes, data: bytes, scheme: SignatureScheme) -> bytes:
    """Sign *data* with *private_key* using *scheme*.

    Raises
    ------
    UnsupportedKeyTypeError
        If the key cannot be used with the requested scheme.
    """
    if scheme is SignatureScheme.SHA256_WITH_RSA and isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
    if scheme is SignatureScheme.SHA512_WITH_ECDSA and isinstance(
        private_key, ec.EllipticCurvePrivateKey
    ):
        return private_key.sign(data, ec.ECDSA(hashes.SHA512()))
    if scheme is SignatureScheme.SHA256_WITH_DSA and isinstance(private_key, dsa.DSAPrivateKey):
        return private_key.sign(data, hashes.SHA256())
    if scheme is SignatureScheme.ED25519 and isinstance(private_key, ed25519.Ed25519PrivateKey):
        return private_key.sign(data)
    if scheme is SignatureScheme.ED448 and isinstance(private_key, ed448.Ed448PrivateKey):
        return private_key.sign(data)
    raise UnsupportedKeyTypeError(
        f"Key type {type(private_key).__name__} cannot sign with {scheme.value}"
    )


def verify(
    public_key: PublicKeyTypes,
    signature: bytes,
    data: bytes,
    scheme: SignatureScheme,
) -> bool:
    """Return True if *signature* over *data* verifies under *public_key*.

    Raises
    ------
    UnsupportedKeyTypeError
        If the key cannot be used with the requested scheme.
    """
    try:
        if scheme is SignatureScheme.SHA256_WITH_RSA and isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
        elif scheme is SignatureScheme.SHA512_WITH_ECDSA and isinstance(
            public_key, ec.EllipticCurvePublicKey
        ):
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA512()))
        elif scheme is SignatureScheme.SHA256_WITH_DSA and isinstance(public_key, dsa.DSAPublicKey):
            public_key.verify(signature, data, hashes.SHA256())
        elif scheme is SignatureScheme.ED25519 and isinstance(
            public_key, ed25519.Ed25519PublicKey
        ):
            public_key.verify(signature, data)
        elif scheme is SignatureScheme.ED448 and isinstance(public_key, ed448.Ed448PublicKey):
            public_key.verify(signature, data)
        else:
            raise UnsupportedKeyTypeError(
                f"Key type {type(public_key).__name__} cannot verify {scheme.value}"
            )
    except InvalidSignature:
        return False
    return True
