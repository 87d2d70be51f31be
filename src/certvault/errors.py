"""Exception taxonomy for certvault.

Every error raised deliberately by the package derives from
:class:`CertVaultError`. Errors that describe I/O outcomes also derive from
:class:`OSError` so callers handling file-system failures generically still
catch them.
"""
from __future__ import annotations


class CertVaultError(Exception):
    """Base class for all certvault errors."""


# ------------------------------------------------------------------
# Credentials
# ------------------------------------------------------------------


class CredentialMismatchError(CertVaultError, ValueError):
    """Raised when a private key does not belong to the supplied certificate."""

    def __init__(self, message: str = "Keying material doesn't match supplied certificate") -> None:
        super().__init__(message)


class InvalidPasswordError(CertVaultError):
    """Raised when a container cannot be decrypted with the supplied password."""


class DecodeError(CertVaultError):
    """Raised when a certificate, key or request container cannot be decoded."""


class UnsupportedKeyTypeError(CertVaultError):
    """Raised when no signature scheme is known for a key type."""


class MissingPrivateKeyError(CertVaultError, RuntimeError):
    """Raised when an export needs a private key the bundle does not hold."""

    def __init__(self, message: str = "No private key present") -> None:
        super().__init__(message)


class ExportError(CertVaultError, OSError):
    """Raised when serializing credential material fails.

    The underlying provider exception is always chained as ``__cause__``.
    """


# ------------------------------------------------------------------
# Requests and templates
# ------------------------------------------------------------------


class TemplateFormatError(CertVaultError):
    """Raised when a stored template document cannot be read."""


class RequestSealedError(CertVaultError):
    """Raised when a request is modified after it was converted for issuance."""


# ------------------------------------------------------------------
# Backup and restore
# ------------------------------------------------------------------


class BackupError(CertVaultError, OSError):
    """Base class for backup and restore failures."""


class MalformedArchiveError(BackupError):
    """Raised when an archive is not a recognisable, consistent backup."""


class IntegrityViolationError(BackupError):
    """Raised when an archived entry does not match its manifest record.

    Parameters
    ----------
    entry:
        Name of the offending archive entry.
    message:
        Human-readable description of the failure.
    expected:
        The value recorded in the manifest (size or digest), if applicable.
    actual:
        The value observed in the archive, if applicable.
    """

    def __init__(
        self,
        entry: str,
        message: str,
        expected: object = None,
        actual: object = None,
    ) -> None:
        detail = message
        if expected is not None or actual is not None:
            detail = f"{message} (expected {expected}, got {actual})"
        super().__init__(f"Entry {entry!r}: {detail}")
        self.entry = entry
        self.expected = expected
        self.actual = actual


class PathSafetyViolationError(BackupError):
    """Raised when an archive path would resolve outside its permitted root."""

    def __init__(self, entry: str, message: str = "resolves outside the restore location") -> None:
        super().__init__(f"Invalid entry in backup file found: {entry!r} {message}")
        self.entry = entry


class OperationCancelledError(BackupError):
    """Raised when the caller cancelled a backup or restore in progress."""


class TransientIOError(BackupError):
    """Raised when the file system fails underneath a backup or restore.

    The original :class:`OSError` is chained as ``__cause__``.
    """
