"""certvault — certificate authority credential export, backup and restore.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import certvault
>>> certvault.__version__
'0.1.0'

Quick start
-----------
::

    from certvault import (
        # Credentials
        CredentialValidator, CredentialExporter, CredentialBundle, ExportFormat,
        # Requests
        CertificateRequest, CertificateTemplate, PKCS10Request, to_facet,
        # Backup
        BackupEngine, DatastoreInfo, CancellationToken,
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Ambient
# ------------------------------------------------------------------
from certvault.audit import ActivityEvent, ActivityLog
from certvault.config import VaultConfig, load_config
from certvault.crypto.context import CryptoContext
from certvault.errors import (
    BackupError,
    CertVaultError,
    CredentialMismatchError,
    DecodeError,
    ExportError,
    IntegrityViolationError,
    InvalidPasswordError,
    MalformedArchiveError,
    MissingPrivateKeyError,
    OperationCancelledError,
    PathSafetyViolationError,
    RequestSealedError,
    TemplateFormatError,
    TransientIOError,
    UnsupportedKeyTypeError,
)

# ------------------------------------------------------------------
# Credentials subsystem
# ------------------------------------------------------------------
from certvault.credentials.bundle import CredentialBundle, KeyPair
from certvault.credentials.exporter import CredentialExporter
from certvault.credentials.formats import EncodingType, ExportFormat, PKCS8Cipher, PKCS12Cipher
from certvault.credentials.validator import CredentialValidator

# ------------------------------------------------------------------
# Request subsystem
# ------------------------------------------------------------------
from certvault.requests.model import (
    CertificateRequest,
    CertificateTemplate,
    RequestFacet,
    to_facet,
    to_request,
    to_template,
)
from certvault.requests.pkcs10 import PKCS10Request

# ------------------------------------------------------------------
# Backup subsystem
# ------------------------------------------------------------------
from certvault.backup.engine import BackupEngine, DatastoreInfo
from certvault.backup.manifest import BackupManifest, BackupManifestEntry
from certvault.backup.progress import CancellationToken, ProgressEvent

__all__ = [
    # version
    "__version__",
    # ambient
    "ActivityEvent",
    "ActivityLog",
    "CryptoContext",
    "VaultConfig",
    "load_config",
    # errors
    "BackupError",
    "CertVaultError",
    "CredentialMismatchError",
    "DecodeError",
    "ExportError",
    "IntegrityViolationError",
    "InvalidPasswordError",
    "MalformedArchiveError",
    "MissingPrivateKeyError",
    "OperationCancelledError",
    "PathSafetyViolationError",
    "RequestSealedError",
    "TemplateFormatError",
    "TransientIOError",
    "UnsupportedKeyTypeError",
    # credentials
    "CredentialBundle",
    "CredentialExporter",
    "CredentialValidator",
    "EncodingType",
    "ExportFormat",
    "KeyPair",
    "PKCS12Cipher",
    "PKCS8Cipher",
    # requests
    "CertificateRequest",
    "CertificateTemplate",
    "PKCS10Request",
    "RequestFacet",
    "to_facet",
    "to_request",
    "to_template",
    # backup
    "BackupEngine",
    "BackupManifest",
    "BackupManifestEntry",
    "CancellationToken",
    "DatastoreInfo",
    "ProgressEvent",
]
