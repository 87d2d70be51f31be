"""BackupManifest — the record of an archive's identity and contents.

The manifest is stored as the ``manifest.json`` entry of every backup
archive. It lists every archived file with its size and SHA-512 digest, in
the order the files were written.
"""
from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from certvault.errors import MalformedArchiveError

MANIFEST_NAME = "manifest.json"
FORMAT_VERSION = 1
MINIMUM_ENTRIES = 2


class BackupManifestEntry(BaseModel):
    """One archived file.

    Parameters
    ----------
    relative_path:
        Archive entry name, ``/`` separated and prefixed by the datastore
        description.
    size_bytes:
        Length of the file content.
    digest_hex:
        Lowercase hexadecimal SHA-512 digest of the file content.
    """

    model_config = ConfigDict(frozen=True)

    relative_path: str
    size_bytes: int = Field(ge=0)
    digest_hex: str = Field(pattern=r"^[0-9a-fA-F]{128}$")


class BackupManifest(BaseModel):
    """Identity and ordered contents of a backup archive."""

    model_config = ConfigDict(frozen=True)

    format_version: int = FORMAT_VERSION
    archive_id: uuid.UUID
    description: str
    created_at: datetime.datetime
    entries: tuple[BackupManifestEntry, ...] = ()

    @property
    def total_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self.entries)

    def to_json(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "BackupManifest":
        """Parse a manifest document.

        Raises
        ------
        MalformedArchiveError
            If the document is not a valid manifest.
        """
        try:
            manifest = cls.model_validate_json(data)
        except ValidationError as exc:
            raise MalformedArchiveError(f"Unable to read backup manifest: {exc}") from exc
        if manifest.format_version != FORMAT_VERSION:
            raise MalformedArchiveError(
                f"Unsupported manifest format version {manifest.format_version}"
            )
        return manifest
