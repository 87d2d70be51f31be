"""Certificate request variants and the mappings between them.

Three variants share the :class:`RequestCapabilities` protocol:

* :class:`CertificateRequest`: an in-memory request, editable until it is
  converted for issuance;
* :class:`~certvault.requests.pkcs10.PKCS10Request`: an externally
  submitted CSR;
* :class:`CertificateTemplate`: a reusable template stored on disk.

Conversions are explicit functions (:func:`to_template`, :func:`to_request`,
:func:`to_facet`) rather than casts between classes.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Union, runtime_checkable

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    PublicKeyTypes,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)

from certvault.crypto.digest import signing_hash_for
from certvault.errors import RequestSealedError
from certvault.requests.extensions import (
    CRLDistributionPoint,
    build_crl_distribution_point,
    build_extensions,
)
from certvault.requests.pkcs10 import PKCS10Request
from certvault.requests.usage import GeneralNameEntry, KeyType, KeyUsage, RequestKind

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@runtime_checkable
class RequestCapabilities(Protocol):
    """Accessors every request variant provides."""

    @property
    def kind(self) -> RequestKind: ...

    @property
    def subject(self) -> x509.Name: ...

    @property
    def key_type(self) -> KeyType | None: ...

    @property
    def key_usage(self) -> KeyUsage: ...

    @property
    def extended_key_usage(self) -> tuple[str, ...]: ...

    @property
    def subject_alt_names(self) -> tuple[GeneralNameEntry, ...]: ...

    @property
    def is_ca_request(self) -> bool: ...

    @property
    def crl_location(self) -> str | None: ...

    @property
    def crl_issuer(self) -> x509.Name | None: ...

    @property
    def description(self) -> str | None: ...

    @property
    def created_at(self) -> datetime.datetime | None: ...

    def crl_distribution_point(self) -> CRLDistributionPoint: ...

    def public_key(self) -> PublicKeyTypes | None: ...


# ------------------------------------------------------------------
# In-memory request
# ------------------------------------------------------------------


@dataclass
class CertificateRequest:
    """A certificate request being prepared for issuance.

    Attributes may be changed freely until :meth:`seal` is called (which
    :func:`to_facet` does); afterwards any assignment raises
    :class:`RequestSealedError`.
    """

    subject: x509.Name
    key_type: KeyType | None = KeyType.RSA_2048
    key_usage: KeyUsage = KeyUsage.NONE
    extended_key_usage: tuple[str, ...] = ()
    subject_alt_names: tuple[GeneralNameEntry, ...] = ()
    is_ca_request: bool = False
    crl_location: str | None = None
    crl_issuer: x509.Name | None = None
    description: str | None = None
    created_at: datetime.datetime | None = field(default_factory=_utcnow)
    private_key: CertificateIssuerPrivateKeyTypes | None = field(default=None, repr=False)
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.extended_key_usage = tuple(self.extended_key_usage)
        self.subject_alt_names = tuple(self.subject_alt_names)

    def __setattr__(self, name: str, value: object) -> None:
        if getattr(self, "_sealed", False):
            raise RequestSealedError(f"Cannot change {name!r}: request has been issued")
        super().__setattr__(name, value)

    @property
    def kind(self) -> RequestKind:
        return RequestKind.REQUEST

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Freeze the request. Further modification raises :class:`RequestSealedError`."""
        object.__setattr__(self, "_sealed", True)

    # ------------------------------------------------------------------
    # Key material
    # ------------------------------------------------------------------

    def ensure_key_pair(self) -> CertificateIssuerPrivateKeyTypes:
        """Return the request's private key, generating one from ``key_type`` if needed."""
        if self.private_key is None:
            if self.key_type is None:
                raise ValueError("No key type set for key generation")
            logger.debug("Generating %s key for %s", self.key_type.value, self.subject.rfc4514_string())
            self.private_key = self.key_type.generate()
        return self.private_key

    def public_key(self) -> PublicKeyTypes | None:
        return self.private_key.public_key() if self.private_key is not None else None

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def crl_distribution_point(self) -> CRLDistributionPoint:
        return build_crl_distribution_point(
            self.is_ca_request, self.crl_location, self.crl_issuer, self.subject
        )

    def extensions(self) -> list[tuple[x509.ExtensionType, bool]]:
        """Return the ``(extension, critical)`` pairs this request asks for."""
        return build_extensions(self)

    def validate(self) -> None:
        """Raise ValueError if the CRL configuration was given but cannot be used."""
        point = self.crl_distribution_point()
        if point.reason is not None:
            raise ValueError(point.reason)
        for entry in self.subject_alt_names:
            entry.to_x509()

    def to_csr(self) -> PKCS10Request:
        """Sign a PKCS#10 request with the request's key, generating it if needed."""
        private_key = self.ensure_key_pair()
        builder = x509.CertificateSigningRequestBuilder().subject_name(self.subject)
        for extension, critical in self.extensions():
            builder = builder.add_extension(extension, critical=critical)
        csr = builder.sign(private_key, signing_hash_for(private_key))
        return PKCS10Request(csr, description=self.description, created_at=self.created_at)


# ------------------------------------------------------------------
# Template
# ------------------------------------------------------------------


@dataclass
class CertificateTemplate:
    """A reusable request description persisted as a JSON document."""

    subject: x509.Name
    key_type: KeyType | None = KeyType.RSA_2048
    key_usage: KeyUsage = KeyUsage.NONE
    extended_key_usage: tuple[str, ...] = ()
    subject_alt_names: tuple[GeneralNameEntry, ...] = ()
    is_ca_request: bool = False
    crl_location: str | None = None
    crl_issuer: x509.Name | None = None
    description: str | None = None
    created_at: datetime.datetime | None = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.extended_key_usage = tuple(self.extended_key_usage)
        self.subject_alt_names = tuple(self.subject_alt_names)

    @property
    def kind(self) -> RequestKind:
        return RequestKind.TEMPLATE

    def public_key(self) -> PublicKeyTypes | None:
        return None

    def crl_distribution_point(self) -> CRLDistributionPoint:
        return build_crl_distribution_point(
            self.is_ca_request, self.crl_location, self.crl_issuer, self.subject
        )

    @classmethod
    def load(cls, path: Path) -> "CertificateTemplate":
        """Read a template document from *path*.

        Raises
        ------
        TemplateFormatError
            If the document is malformed or of an unknown version.
        """
        from certvault.requests.template_codec import decode_template

        return decode_template(path.read_bytes())

    def store(self, path: Path) -> None:
        """Write this template to *path*."""
        from certvault.requests.template_codec import encode_template

        path.write_bytes(encode_template(self))

    def as_request(self) -> CertificateRequest:
        return to_request(self)


# ------------------------------------------------------------------
# Issued facet
# ------------------------------------------------------------------


@dataclass(frozen=True)
class RequestFacet:
    """Immutable snapshot of a request, attached to a bundle at issuance."""

    kind: RequestKind
    subject: x509.Name
    key_type: KeyType | None
    key_usage: KeyUsage
    extended_key_usage: tuple[str, ...]
    subject_alt_names: tuple[GeneralNameEntry, ...]
    is_ca_request: bool
    crl_location: str | None
    crl_issuer: x509.Name | None
    description: str | None
    created_at: datetime.datetime | None
    public_key_der: bytes | None = field(default=None, repr=False)

    def public_key(self) -> PublicKeyTypes | None:
        if self.public_key_der is None:
            return None
        return load_der_public_key(self.public_key_der)

    def crl_distribution_point(self) -> CRLDistributionPoint:
        return build_crl_distribution_point(
            self.is_ca_request, self.crl_location, self.crl_issuer, self.subject
        )


RequestVariant = Union[CertificateRequest, PKCS10Request, CertificateTemplate]


# ------------------------------------------------------------------
# Mappings
# ------------------------------------------------------------------


def _common_attributes(variant: RequestCapabilities) -> dict[str, object]:
    key_type = variant.key_type
    if key_type is None:
        key_type = KeyType.for_key(variant.public_key())
    return {
        "subject": variant.subject,
        "key_type": key_type,
        "key_usage": variant.key_usage,
        "extended_key_usage": tuple(variant.extended_key_usage),
        "subject_alt_names": tuple(variant.subject_alt_names),
        "is_ca_request": variant.is_ca_request,
        "crl_location": variant.crl_location,
        "crl_issuer": variant.crl_issuer,
        "description": variant.description,
        "created_at": variant.created_at,
    }


def to_template(variant: RequestCapabilities) -> CertificateTemplate:
    """Copy the attributes of any request variant into a new template."""
    return CertificateTemplate(**_common_attributes(variant))  # type: ignore[arg-type]


def to_request(variant: RequestCapabilities) -> CertificateRequest:
    """Copy the attributes of any request variant into a new editable request.

    Private keys are never copied; the new request generates its own on
    demand.
    """
    return CertificateRequest(**_common_attributes(variant))  # type: ignore[arg-type]


def to_facet(variant: RequestCapabilities) -> RequestFacet:
    """Snapshot *variant* for issuance.

    An in-memory :class:`CertificateRequest` is sealed by this call.
    """
    if isinstance(variant, CertificateRequest):
        variant.seal()
    public_key = variant.public_key()
    return RequestFacet(
        kind=variant.kind,
        public_key_der=(
            public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)
            if public_key is not None
            else None
        ),
        **_common_attributes(variant),  # type: ignore[arg-type]
    )
