"""Certificate request model: request variants, templates and their codec."""
from __future__ import annotations

from certvault.requests.extensions import CRLDistributionPoint, CRLPointStatus
from certvault.requests.model import (
    CertificateRequest,
    CertificateTemplate,
    RequestCapabilities,
    RequestFacet,
    to_facet,
    to_request,
    to_template,
)
from certvault.requests.pkcs10 import PKCS10Request
from certvault.requests.template_codec import decode_template, encode_template
from certvault.requests.usage import (
    ExtendedKeyUsage,
    GeneralNameEntry,
    GeneralNameTag,
    KeyType,
    KeyUsage,
    RequestKind,
)

__all__ = [
    "CRLDistributionPoint",
    "CRLPointStatus",
    "CertificateRequest",
    "CertificateTemplate",
    "ExtendedKeyUsage",
    "GeneralNameEntry",
    "GeneralNameTag",
    "KeyType",
    "KeyUsage",
    "PKCS10Request",
    "RequestCapabilities",
    "RequestFacet",
    "RequestKind",
    "decode_template",
    "encode_template",
    "to_facet",
    "to_request",
    "to_template",
]
