"""CredentialValidator — proves a private key belongs to a certificate.

A key container does not always carry the public half of the key (plain
PKCS#8 files don't), so equality of public keys cannot always be checked.
Validation therefore runs in two stages:

1. If the candidate exposes a public key, its SubjectPublicKeyInfo must be
   byte-identical to the certificate's.
2. A random challenge is always signed with the candidate private key using
   the default scheme for the certificate's key type and verified with the
   certificate's public key.

Any failure in either stage is reported as :class:`CredentialMismatchError`.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from certvault.credentials import decoders
from certvault.credentials.bundle import CredentialBundle, KeyPair
from certvault.crypto import digest
from certvault.crypto.context import CryptoContext
from certvault.errors import CredentialMismatchError, DecodeError, UnsupportedKeyTypeError

logger = logging.getLogger(__name__)


def _spki(public_key: PublicKeyTypes) -> bytes:
    return public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)


class CredentialValidator:
    """Validates key/certificate pairs and opens credential files as bundles.

    Parameters
    ----------
    context:
        Source of challenge randomness. Defaults to a context with standard
        parameters.
    """

    def __init__(self, context: CryptoContext | None = None) -> None:
        self._context = context or CryptoContext()

    # ------------------------------------------------------------------
    # Pair validation
    # ------------------------------------------------------------------

    def prove_possession(
        self, certificate: x509.Certificate, private_key: PrivateKeyTypes
    ) -> None:
        """Sign a random challenge with *private_key* and verify it with *certificate*.

        Raises
        ------
        CredentialMismatchError
            If the signature does not verify or no scheme applies.
        """
        public_key = certificate.public_key()
        challenge = self._context.random_bytes(self._context.challenge_size)
        try:
            scheme = digest.default_signature_scheme(public_key)
            signature = digest.sign(private_key, challenge, scheme)
            verified = digest.verify(public_key, signature, challenge, scheme)
        except (UnsupportedKeyTypeError, ValueError, TypeError) as exc:
            raise CredentialMismatchError() from exc
        if not verified:
            raise CredentialMismatchError()

    def validate_pair(
        self,
        certificate: x509.Certificate | Sequence[x509.Certificate],
        candidate: KeyPair | PrivateKeyTypes,
        *,
        source_cert_path: Path | None = None,
        source_key_path: Path | None = None,
        unlock_secret: str | None = None,
    ) -> CredentialBundle:
        """Check that *candidate* is the private key of *certificate*.

        Parameters
        ----------
        certificate:
            A single certificate or a chain, leaf first.
        candidate:
            Decoded key material or a bare private key.

        Returns
        -------
        CredentialBundle
            Bundle holding the chain and the validated key pair.

        Raises
        ------
        CredentialMismatchError
            If the key does not belong to the leaf certificate.
        """
        if isinstance(certificate, x509.Certificate):
            chain: tuple[x509.Certificate, ...] = (certificate,)
        else:
            chain = tuple(certificate)
        if not chain:
            raise ValueError("Certificate chain must not be empty")
        leaf = chain[0]

        if isinstance(candidate, KeyPair):
            material = candidate
        else:
            material = KeyPair(private_key=candidate)

        if material.public_key is not None and _spki(material.public_key) != _spki(leaf.public_key()):
            logger.info("Public key mismatch for %s", leaf.subject.rfc4514_string())
            raise CredentialMismatchError()

        self.prove_possession(leaf, material.private_key)
        logger.debug("Private key proven for %s", leaf.subject.rfc4514_string())

        key_pair = KeyPair(
            private_key=material.private_key,
            public_key=material.public_key or leaf.public_key(),
        )
        return CredentialBundle(
            certificate_chain=chain,
            key_pair=key_pair,
            source_cert_path=source_cert_path,
            source_key_path=source_key_path,
            unlock_secret=unlock_secret,
        )

    # ------------------------------------------------------------------
    # File loaders
    # ------------------------------------------------------------------

    def open_pkcs7_8(
        self, cert_path: Path, key_path: Path, password: str | None = None
    ) -> CredentialBundle:
        """Open a certificate (or chain) file and a separate key file.

        Raises
        ------
        DecodeError
            If either file cannot be decoded.
        InvalidPasswordError
            If the key file is encrypted and *password* is wrong.
        CredentialMismatchError
            If the key does not belong to the certificate.
        """
        chain = decoders.read_certificates(cert_path)
        material = decoders.read_private_key(key_path, password)
        bundle = self.validate_pair(
            chain,
            material,
            source_cert_path=cert_path,
            source_key_path=key_path,
            unlock_secret=password,
        )
        logger.info("Opened credentials from %s and %s", cert_path, key_path)
        return bundle

    def open_pkcs12(self, path: Path, password: str | None = None) -> CredentialBundle:
        """Open a PKCS#12 keystore and validate its key against its certificate."""
        material, chain = decoders.load_pkcs12(path.read_bytes(), password)
        if not chain:
            raise DecodeError(f"Keystore {str(path)!r} holds no certificate")
        if material is None:
            return CredentialBundle(certificate_chain=tuple(chain), source_cert_path=path)
        bundle = self.validate_pair(
            chain,
            material,
            source_cert_path=path,
            source_key_path=path,
            unlock_secret=password,
        )
        logger.info("Opened keystore %s", path)
        return bundle

    def open_pkcs7(self, path: Path) -> CredentialBundle:
        """Open a certificate-only file."""
        chain = decoders.read_certificates(path)
        return CredentialBundle(certificate_chain=tuple(chain), source_cert_path=path)
