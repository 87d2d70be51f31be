"""BackupEngine — all-or-nothing zip backups of a CA datastore.

Archive layout
--------------
* every regular file of the datastore, stored under
  ``<description>/<relative path>`` with ``/`` separators;
* a trailing ``manifest.json`` entry holding the :class:`BackupManifest`;
* the archive comment set to the CA identifier (UUID string).

The UUID is recorded twice (manifest and comment) and restore requires both
to agree. Entry paths are checked twice: the restore base derived from the
description must lie strictly inside the destination, and every entry must
lie strictly inside that base. Each entry's size and SHA-512 digest are
verified before anything is written, and any failure or cancellation
removes everything written so far.
"""
from __future__ import annotations

import datetime
import enum
import logging
import os
import shutil
import uuid
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from certvault.audit import ActivityLog
from certvault.backup.manifest import (
    MANIFEST_NAME,
    MINIMUM_ENTRIES,
    BackupManifest,
    BackupManifestEntry,
)
from certvault.backup.progress import CancellationToken, ProgressEvent, ProgressSink
from certvault.crypto.digest import digests_equal, sha512_hex
from certvault.errors import (
    BackupError,
    IntegrityViolationError,
    MalformedArchiveError,
    OperationCancelledError,
    PathSafetyViolationError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

_COMPRESSION = {"stored": zipfile.ZIP_STORED, "deflated": zipfile.ZIP_DEFLATED}

# Root used to evaluate entry paths when verifying without extracting.
_VERIFY_ROOT = Path(os.path.abspath(os.sep)) / "certvault-verify"


@dataclass(frozen=True)
class DatastoreInfo:
    """What the engine needs to know about a CA datastore.

    Parameters
    ----------
    base_path:
        Directory holding the datastore.
    ca_id:
        Identifier of the CA; becomes the archive identity.
    description:
        Human-readable CA name; becomes the top-level archive directory.
    """

    base_path: Path
    ca_id: uuid.UUID
    description: str


class BackupState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    WRITING = "writing"
    COMPLETE = "complete"
    CANCELLED_CLEANUP = "cancelled"
    FAILED = "failed"


class RestoreState(str, enum.Enum):
    IDLE = "idle"
    OPENING = "opening"
    MANIFEST_CHECK = "manifest-check"
    EXTRACTING = "extracting"
    COMPLETE = "complete"
    CANCELLED_CLEANUP = "cancelled"
    FAILED = "failed"


def _normalize(path: Path) -> Path:
    """Make *path* absolute and collapse ``.``/``..`` without touching the file system."""
    return Path(os.path.normpath(os.path.abspath(path)))


def _is_strict_descendant(child: Path, parent: Path) -> bool:
    return child != parent and parent in child.parents


def _check_cancel(cancel: CancellationToken | None, operation: str) -> None:
    if cancel is not None and cancel.is_cancelled:
        raise OperationCancelledError(f"{operation} cancelled by user")


class BackupEngine:
    """Writes, verifies and restores datastore backups.

    Parameters
    ----------
    compression:
        ``"deflated"`` (default) or ``"stored"``.
    activity_log:
        Optional log receiving one event per backup or restore.
    """

    def __init__(
        self,
        compression: Literal["stored", "deflated"] = "deflated",
        activity_log: ActivityLog | None = None,
    ) -> None:
        if compression not in _COMPRESSION:
            raise ValueError(f"Unknown compression {compression!r}")
        self._compression = _COMPRESSION[compression]
        self._activity_log = activity_log
        self.backup_state = BackupState.IDLE
        self.restore_state = RestoreState.IDLE

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def backup(
        self,
        datastore: DatastoreInfo,
        target: Path,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> BackupManifest:
        """Archive every regular file of *datastore* into *target*.

        An existing *target* is replaced. Nothing is left at *target* if the
        backup fails or is cancelled.

        Returns
        -------
        BackupManifest
            The manifest written into the archive.

        Raises
        ------
        OperationCancelledError
            If *cancel* was set before the last file was written.
        TransientIOError
            If reading the datastore or writing the archive fails.
        """
        if not datastore.description or not datastore.description.strip():
            raise ValueError("Datastore description must not be blank")
        base = _normalize(datastore.base_path)
        if not base.is_dir():
            raise BackupError(f"Datastore location {str(base)!r} is not a directory")

        target = _normalize(target)
        self.backup_state = BackupState.SCANNING
        logger.info("Backup of %r (%s) to %s", datastore.description, datastore.ca_id, target)

        completed = False
        try:
            if target.exists():
                target.unlink()
            files = sorted(
                path for path in base.rglob("*") if path.is_file() and _normalize(path) != target
            )
            if len(files) < MINIMUM_ENTRIES:
                logger.warning(
                    "Datastore %s holds %d file(s); the backup will not be restorable",
                    base,
                    len(files),
                )

            entries: list[BackupManifestEntry] = []
            self.backup_state = BackupState.WRITING
            with zipfile.ZipFile(target, "w", compression=self._compression) as archive:
                archive.comment = str(datastore.ca_id).encode("ascii")
                for index, path in enumerate(files):
                    name = f"{datastore.description}/{path.relative_to(base).as_posix()}"
                    _check_cancel(cancel, "Backup")
                    if progress is not None:
                        progress(ProgressEvent(name, index, len(files)))

                    data = path.read_bytes()
                    archive.writestr(name, data)
                    entries.append(
                        BackupManifestEntry(
                            relative_path=name, size_bytes=len(data), digest_hex=sha512_hex(data)
                        )
                    )
                    logger.debug("Archived %s (%d bytes)", name, len(data))

                manifest = BackupManifest(
                    archive_id=datastore.ca_id,
                    description=datastore.description,
                    created_at=datetime.datetime.now(datetime.timezone.utc),
                    entries=tuple(entries),
                )
                archive.writestr(MANIFEST_NAME, manifest.to_json())

            if progress is not None:
                progress(ProgressEvent("complete", len(files), len(files)))
            completed = True
        except OperationCancelledError:
            self.backup_state = BackupState.CANCELLED_CLEANUP
            logger.warning("Backup to %s cancelled; removing partial archive", target)
            raise
        except BackupError:
            self.backup_state = BackupState.FAILED
            raise
        except OSError as exc:
            self.backup_state = BackupState.FAILED
            raise TransientIOError(f"Backup to {str(target)!r} failed: {exc}") from exc
        finally:
            if not completed:
                if self.backup_state not in (BackupState.CANCELLED_CLEANUP, BackupState.FAILED):
                    self.backup_state = BackupState.FAILED
                target.unlink(missing_ok=True)
                self._log_backup(datastore, target, False)

        self.backup_state = BackupState.COMPLETE
        self._log_backup(datastore, target, True, entries=len(manifest.entries))
        logger.info("Backup of %r complete: %d entries", datastore.description, len(manifest.entries))
        return manifest

    def _log_backup(self, datastore: DatastoreInfo, target: Path, success: bool, **details: object) -> None:
        if self._activity_log is not None:
            self._activity_log.log_backup(datastore.ca_id, target, success, **details)

    # ------------------------------------------------------------------
    # Archive identity
    # ------------------------------------------------------------------

    @staticmethod
    def _open(archive: Path) -> zipfile.ZipFile:
        if not archive.is_file():
            raise BackupError(f"Backup file {str(archive)!r} does not exist or is not readable")
        try:
            return zipfile.ZipFile(archive, "r")
        except zipfile.BadZipFile as exc:
            raise MalformedArchiveError(f"{str(archive)!r} is not a backup archive") from exc

    @staticmethod
    def _read_manifest(archive: zipfile.ZipFile) -> BackupManifest:
        try:
            raw = archive.read(MANIFEST_NAME)
        except KeyError as exc:
            raise MalformedArchiveError(
                "File does not appear to be a backup archive: missing backup manifest"
            ) from exc
        except (zipfile.BadZipFile, zlib.error) as exc:
            raise MalformedArchiveError(f"Backup manifest is corrupt: {exc}") from exc
        manifest = BackupManifest.from_json(raw)

        try:
            archive_id = uuid.UUID(archive.comment.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedArchiveError(
                "File does not appear to be a backup archive: missing UUID identifier"
            ) from exc
        if archive_id != manifest.archive_id:
            raise MalformedArchiveError(
                f"Archive UUID {archive_id} doesn't match manifest UUID {manifest.archive_id}"
            )
        return manifest

    def inspect(self, archive: Path) -> BackupManifest:
        """Return the manifest of *archive* after checking its identity.

        Raises
        ------
        MalformedArchiveError
            If the manifest is missing, unreadable, or disagrees with the
            archive comment.
        """
        with self._open(_normalize(archive)) as zf:
            return self._read_manifest(zf)

    # ------------------------------------------------------------------
    # Entry validation
    # ------------------------------------------------------------------

    @staticmethod
    def _read_entry(
        archive: zipfile.ZipFile,
        entry: BackupManifestEntry,
        destination: Path,
        base_path: Path,
    ) -> tuple[Path, bytes]:
        name = entry.relative_path
        if not name or not name.strip():
            raise PathSafetyViolationError(name, "has an empty path")
        target = _normalize(destination / name)
        if not _is_strict_descendant(target, base_path):
            raise PathSafetyViolationError(name)

        try:
            info = archive.getinfo(name)
        except KeyError as exc:
            raise IntegrityViolationError(name, "missing from backup archive") from exc
        if info.file_size != entry.size_bytes:
            raise IntegrityViolationError(
                name, "size differs from manifest", expected=entry.size_bytes, actual=info.file_size
            )

        data = bytearray()
        try:
            with archive.open(info) as stream:
                while len(data) < entry.size_bytes:
                    chunk = stream.read(entry.size_bytes - len(data))
                    if not chunk:
                        break
                    data += chunk
        except (zipfile.BadZipFile, zlib.error) as exc:
            raise IntegrityViolationError(name, f"is corrupt: {exc}") from exc
        if len(data) != entry.size_bytes:
            raise IntegrityViolationError(
                name, "not read fully", expected=entry.size_bytes, actual=len(data)
            )

        digest = sha512_hex(bytes(data))
        if not digests_equal(digest, entry.digest_hex):
            raise IntegrityViolationError(
                name, "fails digest verification", expected=entry.digest_hex, actual=digest
            )
        return target, bytes(data)

    def _checked_entries(
        self,
        archive: zipfile.ZipFile,
        manifest: BackupManifest,
        destination: Path,
        base_path: Path,
        progress: ProgressSink | None,
        cancel: CancellationToken | None,
        operation: str,
    ) -> Iterator[tuple[Path, bytes]]:
        total = len(manifest.entries)
        for index, entry in enumerate(manifest.entries):
            _check_cancel(cancel, operation)
            if progress is not None:
                progress(ProgressEvent(entry.relative_path, index, total))
            yield self._read_entry(archive, entry, destination, base_path)
        if progress is not None:
            progress(ProgressEvent("complete", total, total))

    @staticmethod
    def _base_path(manifest: BackupManifest, destination: Path) -> Path:
        if len(manifest.entries) < MINIMUM_ENTRIES:
            raise MalformedArchiveError(
                f"Backup manifest appears malformed: {len(manifest.entries)} entries"
            )
        base_path = _normalize(destination / manifest.description)
        if not _is_strict_descendant(base_path, destination):
            raise PathSafetyViolationError(
                manifest.description, "description resolves outside the restore location"
            )
        return base_path

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(
        self,
        archive: Path,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> BackupManifest:
        """Run every restore check against *archive* without writing anything.

        Raises
        ------
        MalformedArchiveError, IntegrityViolationError, PathSafetyViolationError
            As :meth:`restore` would.
        """
        with self._open(_normalize(archive)) as zf:
            manifest = self._read_manifest(zf)
            base_path = self._base_path(manifest, _VERIFY_ROOT)
            for _target, _data in self._checked_entries(
                zf, manifest, _VERIFY_ROOT, base_path, progress, cancel, "Verification"
            ):
                pass
        logger.info("Verified %s: %d entries", archive, len(manifest.entries))
        return manifest

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(
        self,
        archive: Path,
        destination: Path,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> Path:
        """Extract *archive* into ``destination/<description>``.

        Returns
        -------
        Path
            The restored datastore directory.

        Raises
        ------
        MalformedArchiveError
            If the archive is not a consistent backup.
        PathSafetyViolationError
            If the description or an entry path escapes its root.
        IntegrityViolationError
            If an entry is missing, of the wrong size, or fails its digest.
        OperationCancelledError
            If *cancel* was set before the last entry was written.
        TransientIOError
            If the file system fails while writing.
        """
        self.restore_state = RestoreState.OPENING
        archive = _normalize(archive)
        if not destination.is_dir():
            self.restore_state = RestoreState.FAILED
            raise BackupError(
                f"Destination location {str(destination)!r} does not exist or is not a directory"
            )
        destination = _normalize(destination)
        logger.info("Restore of %s into %s", archive, destination)

        base_path: Path | None = None
        owns_base = False
        completed = False
        manifest: BackupManifest | None = None
        try:
            with self._open(archive) as zf:
                self.restore_state = RestoreState.MANIFEST_CHECK
                manifest = self._read_manifest(zf)
                base_path = self._base_path(manifest, destination)
                if base_path.exists():
                    raise BackupError(
                        f"Restore would overwrite existing files at {str(base_path)!r}, aborting"
                    )
                owns_base = True

                self.restore_state = RestoreState.EXTRACTING
                for target, data in self._checked_entries(
                    zf, manifest, destination, base_path, progress, cancel, "Restore"
                ):
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(data)
                    logger.debug("Restored %s (%d bytes)", target, len(data))
                restored_manifest, restored_path = manifest, base_path
            completed = True
        except OperationCancelledError:
            self.restore_state = RestoreState.CANCELLED_CLEANUP
            raise
        except BackupError:
            self.restore_state = RestoreState.FAILED
            raise
        except OSError as exc:
            self.restore_state = RestoreState.FAILED
            raise TransientIOError(f"Restore into {str(destination)!r} failed: {exc}") from exc
        finally:
            if not completed:
                if self.restore_state not in (
                    RestoreState.CANCELLED_CLEANUP,
                    RestoreState.FAILED,
                ):
                    self.restore_state = RestoreState.FAILED
                if owns_base and base_path is not None and base_path.exists():
                    logger.warning("Removing partially restored datastore %s", base_path)
                    shutil.rmtree(base_path, ignore_errors=True)
                self._log_restore(manifest, archive, False)

        self.restore_state = RestoreState.COMPLETE
        self._log_restore(restored_manifest, archive, True, destination=str(restored_path))
        logger.info(
            "Restore of %r complete: %d entries",
            restored_manifest.description,
            len(restored_manifest.entries),
        )
        return restored_path

    def _log_restore(
        self, manifest: BackupManifest | None, archive: Path, success: bool, **details: object
    ) -> None:
        if self._activity_log is not None:
            ca_id = manifest.archive_id if manifest is not None else "-"
            self._activity_log.log_restore(ca_id, archive, success, **details)
