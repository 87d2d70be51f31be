"""Export formats, encodings and cipher choices.

Each cipher enumeration maps onto the ``asn1crypto`` algorithm name of the
password-based encryption scheme used by :mod:`certvault.crypto.pbe`.
"""
from __future__ import annotations

import enum


class EncodingType(str, enum.Enum):
    """Binary (DER) or textual (PEM) output."""

    DER = "der"
    PEM = "pem"


class ExportFormat(str, enum.Enum):
    """Containers a :class:`~certvault.credentials.bundle.CredentialBundle` can be written to."""

    CERTIFICATE = "certificate"
    CERTIFICATE_CHAIN = "chain"
    PKCS12 = "pkcs12"
    PKCS8 = "pkcs8"
    PUBLIC_KEY = "public-key"

    @property
    def requires_private_key(self) -> bool:
        return self in (ExportFormat.PKCS12, ExportFormat.PKCS8)


class PKCS12Cipher(str, enum.Enum):
    """Key and certificate bag encryption for PKCS#12 keystores.

    ``DES3`` selects the legacy keystore layout produced by the default
    serializer; the AES choices build the safe bags directly.
    """

    DES3 = "DES3"
    AES128 = "AES128"
    AES192 = "AES192"
    AES256 = "AES256"

    @property
    def pbe_scheme(self) -> str | None:
        return _PKCS12_SCHEMES[self]

    @property
    def is_legacy(self) -> bool:
        return self is PKCS12Cipher.DES3


class PKCS8Cipher(str, enum.Enum):
    """Password-based encryption schemes for PKCS#8 private keys."""

    DES3_CBC = "DES3_CBC"
    AES_128_CBC = "AES_128_CBC"
    AES_192_CBC = "AES_192_CBC"
    AES_256_CBC = "AES_256_CBC"
    PBE_SHA1_RC4_128 = "PBE_SHA1_RC4_128"
    PBE_SHA1_RC4_40 = "PBE_SHA1_RC4_40"
    PBE_SHA1_3DES = "PBE_SHA1_3DES"
    PBE_SHA1_2DES = "PBE_SHA1_2DES"
    PBE_SHA1_RC2_128 = "PBE_SHA1_RC2_128"
    PBE_SHA1_RC2_40 = "PBE_SHA1_RC2_40"

    @property
    def pbe_scheme(self) -> str:
        return _PKCS8_SCHEMES[self]


_PKCS12_SCHEMES: dict[PKCS12Cipher, str | None] = {
    PKCS12Cipher.DES3: None,
    PKCS12Cipher.AES128: "aes128_cbc",
    PKCS12Cipher.AES192: "aes192_cbc",
    PKCS12Cipher.AES256: "aes256_cbc",
}

_PKCS8_SCHEMES: dict[PKCS8Cipher, str] = {
    PKCS8Cipher.DES3_CBC: "tripledes_3key",
    PKCS8Cipher.AES_128_CBC: "aes128_cbc",
    PKCS8Cipher.AES_192_CBC: "aes192_cbc",
    PKCS8Cipher.AES_256_CBC: "aes256_cbc",
    PKCS8Cipher.PBE_SHA1_RC4_128: "pkcs12_sha1_rc4_128",
    PKCS8Cipher.PBE_SHA1_RC4_40: "pkcs12_sha1_rc4_40",
    PKCS8Cipher.PBE_SHA1_3DES: "pkcs12_sha1_tripledes_3key",
    PKCS8Cipher.PBE_SHA1_2DES: "pkcs12_sha1_tripledes_2key",
    PKCS8Cipher.PBE_SHA1_RC2_128: "pkcs12_sha1_rc2_128",
    PKCS8Cipher.PBE_SHA1_RC2_40: "pkcs12_sha1_rc2_40",
}
