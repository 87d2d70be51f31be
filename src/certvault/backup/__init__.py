"""Tamper-evident backup and restore of CA datastores."""
from __future__ import annotations

from certvault.backup.engine import BackupEngine, BackupState, DatastoreInfo, RestoreState
from certvault.backup.manifest import MANIFEST_NAME, BackupManifest, BackupManifestEntry
from certvault.backup.progress import CancellationToken, ProgressEvent, ProgressSink

__all__ = [
    "MANIFEST_NAME",
    "BackupEngine",
    "BackupManifest",
    "BackupManifestEntry",
    "BackupState",
    "CancellationToken",
    "DatastoreInfo",
    "ProgressEvent",
    "ProgressSink",
    "RestoreState",
]
