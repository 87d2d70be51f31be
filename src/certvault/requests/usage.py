"""Enumerations shared by every certificate request variant.

Key usage bits, extended key usage purposes, key algorithms and subject
alternative name entries, each with conversions to and from the
``cryptography`` X.509 types.
"""
from __future__ import annotations

import base64
import enum
import ipaddress
import re
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes


class RequestKind(str, enum.Enum):
    """The request variants: in-memory, externally submitted, and on-disk template."""

    REQUEST = "request"
    PKCS10 = "pkcs10"
    TEMPLATE = "template"


# ------------------------------------------------------------------
# Key usage
# ------------------------------------------------------------------


class KeyUsage(enum.Flag):
    """X.509 key usage bits."""

    NONE = 0
    DIGITAL_SIGNATURE = enum.auto()
    NON_REPUDIATION = enum.auto()
    KEY_ENCIPHERMENT = enum.auto()
    DATA_ENCIPHERMENT = enum.auto()
    KEY_AGREEMENT = enum.auto()
    KEY_CERT_SIGN = enum.auto()
    CRL_SIGN = enum.auto()
    ENCIPHER_ONLY = enum.auto()
    DECIPHER_ONLY = enum.auto()

    @classmethod
    def from_names(cls, names: list[str]) -> "KeyUsage":
        usage = cls.NONE
        for name in names:
            usage |= cls[name]
        return usage

    def names(self) -> list[str]:
        """Return the names of the set bits in declaration order."""
        return [
            member.name
            for member in KeyUsage
            if member is not KeyUsage.NONE and member in self
        ]

    def to_x509(self) -> x509.KeyUsage:
        """Return the ``KeyUsage`` extension value for these bits."""
        key_agreement = KeyUsage.KEY_AGREEMENT in self
        return x509.KeyUsage(
            digital_signature=KeyUsage.DIGITAL_SIGNATURE in self,
            content_commitment=KeyUsage.NON_REPUDIATION in self,
            key_encipherment=KeyUsage.KEY_ENCIPHERMENT in self,
            data_encipherment=KeyUsage.DATA_ENCIPHERMENT in self,
            key_agreement=key_agreement,
            key_cert_sign=KeyUsage.KEY_CERT_SIGN in self,
            crl_sign=KeyUsage.CRL_SIGN in self,
            encipher_only=key_agreement and KeyUsage.ENCIPHER_ONLY in self,
            decipher_only=key_agreement and KeyUsage.DECIPHER_ONLY in self,
        )

    @classmethod
    def from_x509(cls, value: x509.KeyUsage) -> "KeyUsage":
        usage = cls.NONE
        flags = [
            (value.digital_signature, cls.DIGITAL_SIGNATURE),
            (value.content_commitment, cls.NON_REPUDIATION),
            (value.key_encipherment, cls.KEY_ENCIPHERMENT),
            (value.data_encipherment, cls.DATA_ENCIPHERMENT),
            (value.key_agreement, cls.KEY_AGREEMENT),
            (value.key_cert_sign, cls.KEY_CERT_SIGN),
            (value.crl_sign, cls.CRL_SIGN),
        ]
        if value.key_agreement:
            flags.append((value.encipher_only, cls.ENCIPHER_ONLY))
            flags.append((value.decipher_only, cls.DECIPHER_ONLY))
        for is_set, member in flags:
            if is_set:
                usage |= member
        return usage


# ------------------------------------------------------------------
# Extended key usage
# ------------------------------------------------------------------


class ExtendedKeyUsage(str, enum.Enum):
    """Well-known extended key usage purposes, valued by dotted OID."""

    ANY = "2.5.29.37.0"
    SERVER_AUTH = "1.3.6.1.5.5.7.3.1"
    CLIENT_AUTH = "1.3.6.1.5.5.7.3.2"
    CODE_SIGNING = "1.3.6.1.5.5.7.3.3"
    EMAIL_PROTECTION = "1.3.6.1.5.5.7.3.4"
    IPSEC_END_SYSTEM = "1.3.6.1.5.5.7.3.5"
    IPSEC_TUNNEL = "1.3.6.1.5.5.7.3.6"
    IPSEC_USER = "1.3.6.1.5.5.7.3.7"
    TIME_STAMPING = "1.3.6.1.5.5.7.3.8"
    OCSP_SIGNING = "1.3.6.1.5.5.7.3.9"
    DVCS = "1.3.6.1.5.5.7.3.10"
    SCVP_RESPONDER = "1.3.6.1.5.5.7.3.12"
    EAP_OVER_PPP = "1.3.6.1.5.5.7.3.13"
    EAP_OVER_LAN = "1.3.6.1.5.5.7.3.14"
    SCVP_SERVER = "1.3.6.1.5.5.7.3.15"
    SCVP_CLIENT = "1.3.6.1.5.5.7.3.16"
    IPSEC_IKE = "1.3.6.1.5.5.7.3.17"
    SSH_CLIENT = "1.3.6.1.5.5.7.3.21"
    SSH_SERVER = "1.3.6.1.5.5.7.3.22"
    CMC_CA = "1.3.6.1.5.5.7.3.27"
    CMC_RA = "1.3.6.1.5.5.7.3.28"
    SMARTCARD_LOGON = "1.3.6.1.4.1.311.20.2.2"

    @property
    def oid(self) -> x509.ObjectIdentifier:
        return x509.ObjectIdentifier(self.value)

    @classmethod
    def describe(cls, dotted: str) -> str:
        """Return the member name for *dotted*, or *dotted* itself if unknown."""
        try:
            return cls(dotted).name
        except ValueError:
            return dotted


# ------------------------------------------------------------------
# Key types
# ------------------------------------------------------------------


class KeyType(str, enum.Enum):
    """Key algorithms and sizes a request may ask for."""

    RSA_2048 = "RSA 2048"
    RSA_3072 = "RSA 3072"
    RSA_4096 = "RSA 4096"
    DSA_2048 = "DSA 2048"
    DSA_3072 = "DSA 3072"
    EC_P256 = "EC NIST P-256"
    EC_P384 = "EC NIST P-384"
    EC_P521 = "EC NIST P-521"
    ED25519 = "EdDSA Ed25519"
    ED448 = "EdDSA Ed448"

    @property
    def algorithm(self) -> str:
        return self.name.split("_", 1)[0]

    def generate(self) -> CertificateIssuerPrivateKeyTypes:
        """Generate a fresh private key of this type."""
        if self.algorithm == "RSA":
            return rsa.generate_private_key(public_exponent=65537, key_size=int(self.name[4:]))
        if self.algorithm == "DSA":
            return dsa.generate_private_key(key_size=int(self.name[4:]))
        if self is KeyType.EC_P256:
            return ec.generate_private_key(ec.SECP256R1())
        if self is KeyType.EC_P384:
            return ec.generate_private_key(ec.SECP384R1())
        if self is KeyType.EC_P521:
            return ec.generate_private_key(ec.SECP521R1())
        if self is KeyType.ED25519:
            return ed25519.Ed25519PrivateKey.generate()
        return ed448.Ed448PrivateKey.generate()

    @classmethod
    def for_key(cls, public_key: object) -> "KeyType | None":
        """Return the key type matching an existing public key, if any."""
        if isinstance(public_key, rsa.RSAPublicKey):
            name = f"RSA_{public_key.key_size}"
        elif isinstance(public_key, dsa.DSAPublicKey):
            name = f"DSA_{public_key.key_size}"
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            name = {"secp256r1": "EC_P256", "secp384r1": "EC_P384", "secp521r1": "EC_P521"}.get(
                public_key.curve.name, ""
            )
        elif isinstance(public_key, ed25519.Ed25519PublicKey):
            name = "ED25519"
        elif isinstance(public_key, ed448.Ed448PublicKey):
            name = "ED448"
        else:
            return None
        return cls.__members__.get(name)


# ------------------------------------------------------------------
# Subject alternative names
# ------------------------------------------------------------------

_DNS_NAME = re.compile(
    r"^(?=.{1,253}\.?$)(?:(?!-|[^.]+_)[A-Za-z0-9-_]{1,63}(?<!-)(?:\.|$)){2,}$"
)


class GeneralNameTag(enum.IntEnum):
    """GeneralName choice tags (RFC 5280)."""

    OTHER_NAME = 0
    RFC822_NAME = 1
    DNS_NAME = 2
    X400_ADDRESS = 3
    DIRECTORY_NAME = 4
    EDI_PARTY_NAME = 5
    URI = 6
    IP_ADDRESS = 7
    REGISTERED_ID = 8


@dataclass(frozen=True)
class GeneralNameEntry:
    """A subject alternative name in textual form.

    ``value`` is the textual representation: an e-mail address, DNS name,
    URI, IP address or network, RFC 4514 directory name, dotted OID, or for
    other names the base64 DER value with ``type_id`` holding its OID.
    """

    tag: GeneralNameTag
    value: str
    type_id: str | None = None

    def to_x509(self) -> x509.GeneralName:
        """Convert to a ``cryptography`` general name.

        Raises
        ------
        ValueError
            If the value is malformed or the tag is not supported.
        """
        if self.tag is GeneralNameTag.RFC822_NAME:
            return x509.RFC822Name(self.value)
        if self.tag is GeneralNameTag.DNS_NAME:
            if not _DNS_NAME.match(self.value):
                raise ValueError(f"DNS name {self.value!r} appears invalid")
            return x509.DNSName(self.value)
        if self.tag is GeneralNameTag.URI:
            return x509.UniformResourceIdentifier(self.value)
        if self.tag is GeneralNameTag.IP_ADDRESS:
            if "/" in self.value:
                return x509.IPAddress(ipaddress.ip_network(self.value))
            return x509.IPAddress(ipaddress.ip_address(self.value))
        if self.tag is GeneralNameTag.DIRECTORY_NAME:
            return x509.DirectoryName(x509.Name.from_rfc4514_string(self.value))
        if self.tag is GeneralNameTag.REGISTERED_ID:
            return x509.RegisteredID(x509.ObjectIdentifier(self.value))
        if self.tag is GeneralNameTag.OTHER_NAME:
            if not self.type_id:
                raise ValueError("Other names require a type identifier")
            return x509.OtherName(
                x509.ObjectIdentifier(self.type_id), base64.b64decode(self.value, validate=True)
            )
        raise ValueError(f"General names of type {self.tag.name} are not supported")

    @classmethod
    def from_x509(cls, name: x509.GeneralName) -> "GeneralNameEntry":
        if isinstance(name, x509.RFC822Name):
            return cls(GeneralNameTag.RFC822_NAME, name.value)
        if isinstance(name, x509.DNSName):
            return cls(GeneralNameTag.DNS_NAME, name.value)
        if isinstance(name, x509.UniformResourceIdentifier):
            return cls(GeneralNameTag.URI, name.value)
        if isinstance(name, x509.IPAddress):
            return cls(GeneralNameTag.IP_ADDRESS, str(name.value))
        if isinstance(name, x509.DirectoryName):
            return cls(GeneralNameTag.DIRECTORY_NAME, name.value.rfc4514_string())
        if isinstance(name, x509.RegisteredID):
            return cls(GeneralNameTag.REGISTERED_ID, name.value.dotted_string)
        if isinstance(name, x509.OtherName):
            return cls(
                GeneralNameTag.OTHER_NAME,
                base64.b64encode(name.value).decode("ascii"),
                name.type_id.dotted_string,
            )
        raise ValueError(f"Unsupported general name {name!r}")
