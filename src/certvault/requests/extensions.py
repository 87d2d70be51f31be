"""X.509 extensions derived from request attributes.

The CRL distribution point is optional: it is only produced for CA
requests, and a CA request whose CRL configuration cannot be turned into an
extension is reported as *unavailable* (with a reason) rather than silently
dropped, so callers can tell a configuration gap from "not requested".
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from cryptography import x509

from certvault.requests.usage import KeyUsage

if TYPE_CHECKING:
    from certvault.requests.model import RequestCapabilities


class CRLPointStatus(str, enum.Enum):
    NOT_REQUESTED = "not-requested"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CRLDistributionPoint:
    """Outcome of building a CRL distribution point extension.

    Parameters
    ----------
    status:
        Whether the extension was built, not requested, or unavailable.
    extension:
        The extension value when ``status`` is ``AVAILABLE``.
    reason:
        Why the extension is unavailable.
    """

    status: CRLPointStatus
    extension: x509.CRLDistributionPoints | None = None
    reason: str | None = None

    @property
    def available(self) -> bool:
        return self.status is CRLPointStatus.AVAILABLE

    @classmethod
    def not_requested(cls) -> "CRLDistributionPoint":
        return cls(CRLPointStatus.NOT_REQUESTED)

    @classmethod
    def unavailable(cls, reason: str) -> "CRLDistributionPoint":
        return cls(CRLPointStatus.UNAVAILABLE, reason=reason)


def build_crl_distribution_point(
    is_ca_request: bool,
    crl_location: str | None,
    crl_issuer: x509.Name | None,
    subject: x509.Name | None,
) -> CRLDistributionPoint:
    """Build the CRL distribution point for a request.

    The CRL issuer defaults to the request subject. Non-CA requests and CA
    requests without a CRL location are ``NOT_REQUESTED``; a location that
    is not an absolute URL, or a missing issuer name, is ``UNAVAILABLE``.
    """
    if not is_ca_request or not crl_location or not crl_location.strip():
        return CRLDistributionPoint.not_requested()

    location = crl_location.strip()
    parsed = urlparse(location)
    if not parsed.scheme or not parsed.netloc:
        return CRLDistributionPoint.unavailable(f"CRL location {location!r} is not an absolute URL")

    issuer = crl_issuer if crl_issuer is not None else subject
    if issuer is None or len(issuer) == 0:
        return CRLDistributionPoint.unavailable("No CRL issuer or subject name available")

    extension = x509.CRLDistributionPoints(
        [
            x509.DistributionPoint(
                full_name=[x509.UniformResourceIdentifier(location)],
                relative_name=None,
                reasons=None,
                crl_issuer=[x509.DirectoryName(issuer)],
            )
        ]
    )
    return CRLDistributionPoint(CRLPointStatus.AVAILABLE, extension=extension)


def build_extensions(request: RequestCapabilities) -> list[tuple[x509.ExtensionType, bool]]:
    """Return ``(extension, critical)`` pairs describing *request*.

    A subject key identifier is included once the request has a public key.

    Raises
    ------
    ValueError
        If a subject alternative name is malformed.
    """
    extensions: list[tuple[x509.ExtensionType, bool]] = []
    if request.is_ca_request:
        extensions.append((x509.BasicConstraints(ca=True, path_length=None), True))
    if request.key_usage != KeyUsage.NONE:
        extensions.append((request.key_usage.to_x509(), True))
    if request.extended_key_usage:
        extensions.append(
            (
                x509.ExtendedKeyUsage(
                    [x509.ObjectIdentifier(dotted) for dotted in request.extended_key_usage]
                ),
                False,
            )
        )
    if request.subject_alt_names:
        extensions.append(
            (
                x509.SubjectAlternativeName(
                    [entry.to_x509() for entry in request.subject_alt_names]
                ),
                False,
            )
        )
    crl_point = request.crl_distribution_point()
    if crl_point.extension is not None:
        extensions.append((crl_point.extension, False))
    public_key = request.public_key()
    if public_key is not None:
        extensions.append((x509.SubjectKeyIdentifier.from_public_key(public_key), False))
    return extensions
