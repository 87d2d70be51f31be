"""PKCS10Request — an externally submitted certificate signing request.

All accessors read the extension-request attribute of the wrapped CSR; the
request itself is immutable.
"""
from __future__ import annotations

import datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import Encoding

from certvault.credentials.formats import EncodingType
from certvault.errors import DecodeError
from certvault.requests.extensions import CRLDistributionPoint, CRLPointStatus
from certvault.requests.usage import (
    ExtendedKeyUsage,
    GeneralNameEntry,
    KeyType,
    KeyUsage,
    RequestKind,
)

DEFAULT_EXTENSION = ".csr"


class PKCS10Request:
    """Wraps a parsed ``CertificateSigningRequest``.

    Parameters
    ----------
    csr:
        The parsed request.
    description:
        Free-text comment kept alongside the request.
    created_at:
        When the request was received. Defaults to now.
    source_path:
        File the request was read from, if any.
    """

    def __init__(
        self,
        csr: x509.CertificateSigningRequest,
        description: str | None = None,
        created_at: datetime.datetime | None = None,
        source_path: Path | None = None,
    ) -> None:
        self._csr = csr
        self._description = description
        self._created_at = created_at or datetime.datetime.now(datetime.timezone.utc)
        self._source_path = source_path

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_bytes(cls, data: bytes, description: str | None = None) -> "PKCS10Request":
        """Parse a PEM or DER encoded request.

        Raises
        ------
        DecodeError
            If *data* is not a certificate signing request.
        """
        try:
            if b"-----BEGIN" in data:
                csr = x509.load_pem_x509_csr(data)
            else:
                csr = x509.load_der_x509_csr(data)
        except ValueError as exc:
            raise DecodeError("Unable to decode certificate signing request") from exc
        return cls(csr, description=description)

    @classmethod
    def from_file(cls, path: Path, description: str | None = None) -> "PKCS10Request":
        request = cls.from_bytes(path.read_bytes(), description=description)
        request._source_path = path
        request._created_at = datetime.datetime.fromtimestamp(
            path.stat().st_mtime, tz=datetime.timezone.utc
        )
        return request

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @property
    def kind(self) -> RequestKind:
        return RequestKind.PKCS10

    @property
    def csr(self) -> x509.CertificateSigningRequest:
        return self._csr

    @property
    def source_path(self) -> Path | None:
        return self._source_path

    @property
    def subject(self) -> x509.Name:
        return self._csr.subject

    @property
    def description(self) -> str | None:
        return self._description

    @property
    def created_at(self) -> datetime.datetime | None:
        return self._created_at

    @property
    def key_type(self) -> KeyType | None:
        return KeyType.for_key(self.public_key())

    def public_key(self) -> PublicKeyTypes:
        return self._csr.public_key()

    def _extension(self, extension_type: type[x509.ExtensionType]) -> x509.ExtensionType | None:
        try:
            return self._csr.extensions.get_extension_for_class(extension_type).value
        except x509.ExtensionNotFound:
            return None

    @property
    def key_usage(self) -> KeyUsage:
        value = self._extension(x509.KeyUsage)
        return KeyUsage.from_x509(value) if value is not None else KeyUsage.NONE

    @property
    def extended_key_usage(self) -> tuple[str, ...]:
        value = self._extension(x509.ExtendedKeyUsage)
        if value is None:
            return ()
        return tuple(oid.dotted_string for oid in value)

    @property
    def extended_key_usage_names(self) -> list[str]:
        return [ExtendedKeyUsage.describe(dotted) for dotted in self.extended_key_usage]

    @property
    def subject_alt_names(self) -> tuple[GeneralNameEntry, ...]:
        value = self._extension(x509.SubjectAlternativeName)
        if value is None:
            return ()
        return tuple(GeneralNameEntry.from_x509(name) for name in value)

    @property
    def is_ca_request(self) -> bool:
        """True if BasicConstraints marks a CA, else if keyCertSign is requested."""
        constraints = self._extension(x509.BasicConstraints)
        if constraints is not None:
            return constraints.ca
        return KeyUsage.KEY_CERT_SIGN in self.key_usage

    def _distribution_point(self) -> x509.DistributionPoint | None:
        value = self._extension(x509.CRLDistributionPoints)
        if not value:
            return None
        return value[0]

    @property
    def crl_location(self) -> str | None:
        point = self._distribution_point()
        if point is None or not point.full_name:
            return None
        for name in point.full_name:
            if isinstance(name, x509.UniformResourceIdentifier):
                return name.value
        return None

    @property
    def crl_issuer(self) -> x509.Name | None:
        point = self._distribution_point()
        if point is None or not point.crl_issuer:
            return None
        for name in point.crl_issuer:
            if isinstance(name, x509.DirectoryName):
                return name.value
        return None

    def crl_distribution_point(self) -> CRLDistributionPoint:
        if not self.is_ca_request:
            return CRLDistributionPoint.not_requested()
        value = self._extension(x509.CRLDistributionPoints)
        if value is None:
            return CRLDistributionPoint.not_requested()
        return CRLDistributionPoint(CRLPointStatus.AVAILABLE, extension=value)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    @property
    def is_signature_valid(self) -> bool:
        return self._csr.is_signature_valid

    def encoded(self, encoding: EncodingType = EncodingType.DER) -> bytes:
        return self._csr.public_bytes(Encoding.PEM if encoding is EncodingType.PEM else Encoding.DER)

    def __repr__(self) -> str:
        return f"PKCS10Request(subject={self.subject.rfc4514_string()!r})"
