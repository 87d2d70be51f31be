"""CredentialBundle — a certificate chain plus optional key pair and provenance.

Bundles are produced by :class:`~certvault.credentials.validator.CredentialValidator`
once a key has been proven to match its certificate, or built directly by
callers that already hold trusted material. They are immutable; the unlock
secret is kept only for the lifetime of the object and never persisted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

if TYPE_CHECKING:
    from certvault.requests.model import RequestFacet


@dataclass(frozen=True)
class KeyPair:
    """A private key and, when known, its public half."""

    private_key: PrivateKeyTypes
    public_key: PublicKeyTypes | None = None

    def __post_init__(self) -> None:
        if self.private_key is None:
            raise ValueError("A key pair requires a private key")


@dataclass(frozen=True)
class CredentialBundle:
    """Certificate chain (leaf first) with optional key pair.

    Parameters
    ----------
    certificate_chain:
        Non-empty sequence of certificates, leaf first, root last.
    key_pair:
        Matching key pair, if the private key is held.
    source_cert_path:
        File the chain was read from.
    source_key_path:
        File the private key was read from.
    unlock_secret:
        Password that unlocked the key container. Excluded from ``repr``.
    request:
        Request facet recorded when the certificate was issued.

    Raises
    ------
    ValueError
        If the chain is empty or holds ``None`` elements.
    """

    certificate_chain: tuple[x509.Certificate, ...]
    key_pair: KeyPair | None = None
    source_cert_path: Path | None = None
    source_key_path: Path | None = None
    unlock_secret: str | None = field(default=None, repr=False)
    request: RequestFacet | None = None

    def __post_init__(self) -> None:
        chain = tuple(self.certificate_chain)
        if not chain:
            raise ValueError("Certificate chain must not be empty")
        if any(cert is None for cert in chain):
            raise ValueError("Certificate chain must not contain empty entries")
        object.__setattr__(self, "certificate_chain", chain)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def certificate(self) -> x509.Certificate:
        """The leaf certificate."""
        return self.certificate_chain[0]

    @property
    def has_private_key(self) -> bool:
        return self.key_pair is not None

    @property
    def private_key(self) -> PrivateKeyTypes | None:
        return self.key_pair.private_key if self.key_pair is not None else None

    @property
    def public_key(self) -> PublicKeyTypes:
        """Public key of the key pair, falling back to the leaf certificate's."""
        if self.key_pair is not None and self.key_pair.public_key is not None:
            return self.key_pair.public_key
        return self.certificate.public_key()

    def public_key_der(self) -> bytes:
        """Return the DER SubjectPublicKeyInfo of :attr:`public_key`."""
        return self.public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)

    def with_request(self, request: RequestFacet) -> "CredentialBundle":
        """Return a copy of this bundle with *request* attached."""
        return CredentialBundle(
            certificate_chain=self.certificate_chain,
            key_pair=self.key_pair,
            source_cert_path=self.source_cert_path,
            source_key_path=self.source_key_path,
            unlock_secret=self.unlock_secret,
            request=request,
        )
