"""Versioned JSON codec for :class:`~certvault.requests.model.CertificateTemplate`.

Every persisted field is listed in :class:`TemplateDocument`:

* names (subject, CRL issuer) as RFC 4514 strings;
* enumerations by member name;
* timestamps as ISO-8601 strings;
* other-name values as base64.

Documents carry ``schema_version``; only version 1 is understood.
"""
from __future__ import annotations

import datetime
import json
from typing import Literal

from cryptography import x509
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from certvault.errors import TemplateFormatError
from certvault.requests.model import CertificateTemplate
from certvault.requests.usage import GeneralNameEntry, GeneralNameTag, KeyType, KeyUsage

SCHEMA_VERSION = 1
DEFAULT_EXTENSION = ".json"


class GeneralNameDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tag: str
    value: str
    type_id: str | None = None


class TemplateDocument(BaseModel):
    """On-disk representation of a certificate template."""

    model_config = ConfigDict(extra="forbid")

    schema_version: Literal[1] = SCHEMA_VERSION
    subject: str
    key_type: str | None = None
    key_usage: list[str] = Field(default_factory=list)
    extended_key_usage: list[str] = Field(default_factory=list)
    subject_alt_names: list[GeneralNameDocument] = Field(default_factory=list)
    is_ca_request: bool = False
    crl_location: str | None = None
    crl_issuer: str | None = None
    description: str | None = None
    created_at: datetime.datetime | None = None


def encode_template(template: CertificateTemplate) -> bytes:
    """Serialize *template* into a UTF-8 JSON document."""
    document = TemplateDocument(
        subject=template.subject.rfc4514_string(),
        key_type=template.key_type.name if template.key_type is not None else None,
        key_usage=template.key_usage.names(),
        extended_key_usage=list(template.extended_key_usage),
        subject_alt_names=[
            GeneralNameDocument(tag=entry.tag.name, value=entry.value, type_id=entry.type_id)
            for entry in template.subject_alt_names
        ],
        is_ca_request=template.is_ca_request,
        crl_location=template.crl_location,
        crl_issuer=template.crl_issuer.rfc4514_string() if template.crl_issuer is not None else None,
        description=template.description,
        created_at=template.created_at,
    )
    return document.model_dump_json(indent=2).encode("utf-8")


def decode_template(data: bytes) -> CertificateTemplate:
    """Parse a template document.

    Raises
    ------
    TemplateFormatError
        If the document is not valid JSON, has an unknown ``schema_version``,
        or holds values that cannot be decoded.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TemplateFormatError(f"Template is not a JSON document: {exc}") from exc

    if not isinstance(payload, dict):
        raise TemplateFormatError("Template document must be a JSON object")
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise TemplateFormatError(f"Unsupported template schema version {version!r}")

    try:
        document = TemplateDocument.model_validate(payload)
        return CertificateTemplate(
            subject=x509.Name.from_rfc4514_string(document.subject),
            key_type=KeyType[document.key_type] if document.key_type is not None else None,
            key_usage=KeyUsage.from_names(document.key_usage),
            extended_key_usage=tuple(
                x509.ObjectIdentifier(dotted).dotted_string for dotted in document.extended_key_usage
            ),
            subject_alt_names=tuple(
                GeneralNameEntry(GeneralNameTag[entry.tag], entry.value, entry.type_id)
                for entry in document.subject_alt_names
            ),
            is_ca_request=document.is_ca_request,
            crl_location=document.crl_location,
            crl_issuer=(
                x509.Name.from_rfc4514_string(document.crl_issuer)
                if document.crl_issuer is not None
                else None
            ),
            description=document.description,
            created_at=document.created_at,
        )
    except ValidationError as exc:
        raise TemplateFormatError(f"Invalid template document: {exc}") from exc
    except (KeyError, ValueError) as exc:
        raise TemplateFormatError(f"Invalid template value: {exc}") from exc
