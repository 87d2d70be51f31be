"""CredentialExporter — serializes credential bundles into interchange containers.

Supported containers:

* single certificate, DER or PEM;
* certificate chain, concatenated PEM or a DER PKCS#7 certs-only carrier;
* PKCS#12 keystore, either the legacy layout produced by the default
  serializer or AES-encrypted safe bags built directly;
* PKCS#8 private key, plain or password encrypted with a selectable scheme;
* SubjectPublicKeyInfo public key, DER or PEM.

Every failure raised by the underlying crypto provider is wrapped in
:class:`~certvault.errors.ExportError` with the provider exception chained.
"""
from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path

from asn1crypto import algos, cms, core
from asn1crypto import keys as asn1_keys
from asn1crypto import pem as asn1_pem
from asn1crypto import pkcs12 as asn1_pkcs12
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    pkcs7,
    pkcs12,
)

from certvault.audit import ActivityLog
from certvault.credentials.bundle import CredentialBundle
from certvault.credentials.formats import EncodingType, ExportFormat, PKCS8Cipher, PKCS12Cipher
from certvault.crypto import pbe
from certvault.crypto.context import CryptoContext
from certvault.errors import ExportError, MissingPrivateKeyError

logger = logging.getLogger(__name__)

_ENCODINGS = {EncodingType.DER: Encoding.DER, EncodingType.PEM: Encoding.PEM}

DEFAULT_PKCS8_CIPHER = PKCS8Cipher.AES_256_CBC


@contextlib.contextmanager
def _provider_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ExportError(f"Unable to create {operation}: {exc}") from exc


def _require_private_key(bundle: CredentialBundle) -> PrivateKeyTypes:
    private_key = bundle.private_key
    if private_key is None:
        raise MissingPrivateKeyError()
    return private_key


class CredentialExporter:
    """Writes credential bundles into standard containers.

    Parameters
    ----------
    context:
        Randomness and iteration counts for password-based encryption.
    activity_log:
        Optional log receiving one event per export.
    """

    def __init__(
        self,
        context: CryptoContext | None = None,
        activity_log: ActivityLog | None = None,
    ) -> None:
        self._context = context or CryptoContext()
        self._activity_log = activity_log

    # ------------------------------------------------------------------
    # Certificates and public keys
    # ------------------------------------------------------------------

    def export_certificate(
        self, bundle: CredentialBundle, encoding: EncodingType = EncodingType.PEM
    ) -> bytes:
        """Return the leaf certificate in *encoding*."""
        with _provider_errors("certificate"):
            return bundle.certificate.public_bytes(_ENCODINGS[encoding])

    def export_chain(
        self, bundle: CredentialBundle, encoding: EncodingType = EncodingType.PEM
    ) -> bytes:
        """Return the whole chain, in stored order.

        PEM output concatenates one block per certificate; DER output is a
        PKCS#7 signed-data structure carrying only certificates.
        """
        with _provider_errors("certificate chain"):
            if encoding is EncodingType.PEM:
                return b"".join(
                    cert.public_bytes(Encoding.PEM) for cert in bundle.certificate_chain
                )
            return pkcs7.serialize_certificates(list(bundle.certificate_chain), Encoding.DER)

    def export_public_key(
        self, bundle: CredentialBundle, encoding: EncodingType = EncodingType.PEM
    ) -> bytes:
        """Return the SubjectPublicKeyInfo in *encoding*. Never encrypted."""
        with _provider_errors("public key"):
            return bundle.public_key.public_bytes(
                _ENCODINGS[encoding], PublicFormat.SubjectPublicKeyInfo
            )

    # ------------------------------------------------------------------
    # PKCS#8
    # ------------------------------------------------------------------

    def export_pkcs8(
        self,
        bundle: CredentialBundle,
        encoding: EncodingType = EncodingType.PEM,
        cipher: PKCS8Cipher | None = None,
        password: str | None = None,
    ) -> bytes:
        """Return the private key as PKCS#8.

        Parameters
        ----------
        bundle:
            Bundle holding the private key.
        encoding:
            DER or PEM output.
        cipher:
            Encryption scheme used when *password* is given. Defaults to
            AES-256-CBC.
        password:
            When ``None`` the key is written unencrypted; otherwise it is
            always encrypted, whatever the encoding.

        Raises
        ------
        MissingPrivateKeyError
            If the bundle holds no private key.
        ExportError
            If the key cannot be serialized or encrypted.
        """
        private_key = _require_private_key(bundle)
        with _provider_errors("PKCS#8 private key"):
            if password is None:
                return private_key.private_bytes(
                    _ENCODINGS[encoding], PrivateFormat.PKCS8, NoEncryption()
                )

            cipher = cipher or DEFAULT_PKCS8_CIPHER
            plain = private_key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
            encrypted = pbe.encrypt_private_key_info(
                plain, password, cipher.pbe_scheme, self._context
            )
            if encoding is EncodingType.PEM:
                return asn1_pem.armor("ENCRYPTED PRIVATE KEY", encrypted)
            return encrypted

    # ------------------------------------------------------------------
    # PKCS#12
    # ------------------------------------------------------------------

    def export_pkcs12(
        self,
        bundle: CredentialBundle,
        cipher: PKCS12Cipher | None = None,
        password: str | None = None,
        alias: str | None = None,
    ) -> bytes:
        """Return a PKCS#12 keystore holding the private key and full chain.

        Without a password, or with the ``DES3`` (or no) cipher, the
        keystore is produced by the default serializer. AES ciphers with a
        password build the safe bags directly.

        Raises
        ------
        MissingPrivateKeyError
            If the bundle holds no private key.
        ExportError
            If the keystore cannot be assembled.
        """
        private_key = _require_private_key(bundle)
        alias = alias or self._context.default_alias
        with _provider_errors("PKCS#12 keystore"):
            if cipher is None or cipher.is_legacy or not password:
                return self._legacy_pkcs12(bundle, private_key, password, alias)
            return self._aes_pkcs12(bundle, private_key, cipher, password, alias)

    def _legacy_pkcs12(
        self,
        bundle: CredentialBundle,
        private_key: PrivateKeyTypes,
        password: str | None,
        alias: str,
    ) -> bytes:
        if password:
            encryption = (
                PrivateFormat.PKCS12.encryption_builder()
                .kdf_rounds(self._context.pbe_iterations)
                .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
                .hmac_hash(hashes.SHA1())
                .build(password.encode("utf-8"))
            )
        else:
            encryption = NoEncryption()
        chain = bundle.certificate_chain
        return pkcs12.serialize_key_and_certificates(
            alias.encode("utf-8"),
            private_key,  # type: ignore[arg-type]
            chain[0],
            list(chain[1:]) or None,
            encryption,
        )

    def _aes_pkcs12(
        self,
        bundle: CredentialBundle,
        private_key: PrivateKeyTypes,
        cipher: PKCS12Cipher,
        password: str,
        alias: str,
    ) -> bytes:
        scheme = cipher.pbe_scheme
        if scheme is None:
            raise ValueError(f"PKCS#12 cipher {cipher.value!r} has no PBES2 scheme")
        local_key_id = x509.SubjectKeyIdentifier.from_public_key(bundle.public_key).digest
        attributes = asn1_pkcs12.Attributes(
            [
                {"type": "local_key_id", "values": [local_key_id]},
                {"type": "friendly_name", "values": [alias]},
            ]
        )

        cert_bags = []
        for index, certificate in enumerate(bundle.certificate_chain):
            bag = {
                "bag_id": "cert_bag",
                "bag_value": asn1_pkcs12.CertBag(
                    {
                        "cert_id": "x509",
                        "cert_value": asn1_x509.Certificate.load(
                            certificate.public_bytes(Encoding.DER)
                        ),
                    }
                ),
            }
            if index == 0:
                bag["bag_attributes"] = attributes
            cert_bags.append(asn1_pkcs12.SafeBag(bag))

        cert_algorithm, cert_ciphertext = pbe.encrypt(
            asn1_pkcs12.SafeContents(cert_bags).dump(), password, scheme, self._context
        )
        encrypted_certs = cms.EncryptedData(
            {
                "version": "v0",
                "encrypted_content_info": {
                    "content_type": "data",
                    "content_encryption_algorithm": cert_algorithm,
                    "encrypted_content": cert_ciphertext,
                },
            }
        )

        shrouded_key = pbe.encrypt_private_key_info(
            private_key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption()),
            password,
            scheme,
            self._context,
        )
        key_bag = asn1_pkcs12.SafeBag(
            {
                "bag_id": "pkcs8_shrouded_key_bag",
                "bag_value": asn1_keys.EncryptedPrivateKeyInfo.load(shrouded_key),
                "bag_attributes": attributes,
            }
        )

        authenticated_safe = asn1_pkcs12.AuthenticatedSafe(
            [
                {"content_type": "encrypted_data", "content": encrypted_certs},
                {
                    "content_type": "data",
                    "content": asn1_pkcs12.SafeContents([key_bag]).dump(),
                },
            ]
        ).dump()

        mac_salt = self._context.new_salt()
        mac = pbe.pkcs12_mac(
            authenticated_safe, password, mac_salt, self._context.mac_iterations
        )
        pfx = asn1_pkcs12.Pfx(
            {
                "version": "v3",
                "auth_safe": {
                    "content_type": "data",
                    "content": core.OctetString(authenticated_safe),
                },
                "mac_data": {
                    "mac": {
                        "digest_algorithm": algos.DigestAlgorithm(
                            {"algorithm": "sha256", "parameters": core.Null()}
                        ),
                        "digest": mac,
                    },
                    "mac_salt": mac_salt,
                    "iterations": self._context.mac_iterations,
                },
            }
        )
        logger.debug("Built PKCS#12 keystore with %s for %d certificates", scheme, len(cert_bags))
        return pfx.dump()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def export_container(
        self,
        bundle: CredentialBundle,
        export_format: ExportFormat,
        encoding: EncodingType = EncodingType.PEM,
        cipher: PKCS8Cipher | PKCS12Cipher | None = None,
        password: str | None = None,
    ) -> bytes:
        """Serialize *bundle* into the container named by *export_format*.

        *encoding* is ignored for PKCS#12, which is always DER. *cipher* must
        match the format (:class:`PKCS8Cipher` or :class:`PKCS12Cipher`).

        Raises
        ------
        MissingPrivateKeyError
            If the format needs a private key the bundle lacks.
        ExportError
            If serialization fails.
        """
        if export_format is ExportFormat.CERTIFICATE:
            data = self.export_certificate(bundle, encoding)
        elif export_format is ExportFormat.CERTIFICATE_CHAIN:
            data = self.export_chain(bundle, encoding)
        elif export_format is ExportFormat.PUBLIC_KEY:
            data = self.export_public_key(bundle, encoding)
        elif export_format is ExportFormat.PKCS8:
            if cipher is not None and not isinstance(cipher, PKCS8Cipher):
                raise ValueError(f"{cipher!r} is not a PKCS#8 cipher")
            data = self.export_pkcs8(bundle, encoding, cipher, password)
        elif export_format is ExportFormat.PKCS12:
            if cipher is not None and not isinstance(cipher, PKCS12Cipher):
                raise ValueError(f"{cipher!r} is not a PKCS#12 cipher")
            data = self.export_pkcs12(bundle, cipher, password)
        else:
            raise ValueError(f"Unknown export format {export_format!r}")

        if self._activity_log is not None:
            self._activity_log.log_export(
                bundle.certificate.subject.rfc4514_string(),
                export_format.value,
                encoding=encoding.value,
                encrypted=password is not None,
            )
        return data

    def export_to_file(
        self,
        bundle: CredentialBundle,
        path: Path,
        export_format: ExportFormat,
        encoding: EncodingType = EncodingType.PEM,
        cipher: PKCS8Cipher | PKCS12Cipher | None = None,
        password: str | None = None,
    ) -> Path:
        """Serialize *bundle* and write the result to *path*.

        Raises
        ------
        ExportError
            If serialization or the file write fails.
        """
        data = self.export_container(bundle, export_format, encoding, cipher, password)
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise ExportError(f"Unable to write {str(path)!r}: {exc}") from exc
        logger.info("Exported %s to %s", export_format.value, path)
        return path
