"""Tests for certvault.backup.engine — BackupEngine backup, verify and restore."""
from __future__ import annotations

import struct
import uuid
import zipfile
from pathlib import Path

import pytest

from certvault.audit import ActivityLog
from certvault.backup.engine import BackupEngine, BackupState, DatastoreInfo, RestoreState
from certvault.backup.manifest import MANIFEST_NAME, BackupManifest, BackupManifestEntry
from certvault.backup.progress import CancellationToken, ProgressEvent
from certvault.crypto.digest import sha512_hex
from certvault.errors import (
    BackupError,
    IntegrityViolationError,
    MalformedArchiveError,
    OperationCancelledError,
    PathSafetyViolationError,
)

CA_ID = uuid.UUID("0f6e4a52-8a3c-4c58-9d0a-3b1c7c9b2e11")
DATASTORE_FILES = {
    "ca_cert.pem": b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n",
    "ca_key.p8": b"\x30\x82\x01\x00" + bytes(range(256)),
    "issued/1.pem": b"issued certificate one",
    "issued/2.pem": b"issued certificate two",
}


def _write_archive(
    path: Path,
    entries: dict[str, bytes],
    manifest_entries: list[BackupManifestEntry] | None = None,
    description: str = "Test CA",
    archive_id: uuid.UUID = CA_ID,
    comment: str | None = None,
    compression: int = zipfile.ZIP_DEFLATED,
) -> Path:
    """Write a hand-built archive, optionally with a manifest that lies."""
    if manifest_entries is None:
        manifest_entries = [
            BackupManifestEntry(relative_path=name, size_bytes=len(data), digest_hex=sha512_hex(data))
            for name, data in entries.items()
        ]
    manifest = BackupManifest(
        archive_id=archive_id,
        description=description,
        created_at="2024-01-01T00:00:00Z",  # type: ignore[arg-type]
        entries=tuple(manifest_entries),
    )
    with zipfile.ZipFile(path, "w", compression=compression) as zf:
        zf.comment = (comment if comment is not None else str(archive_id)).encode("ascii")
        for name, data in entries.items():
            zf.writestr(name, data)
        zf.writestr(MANIFEST_NAME, manifest.to_json())
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def datastore(tmp_path: Path) -> DatastoreInfo:
    base = tmp_path / "datastore"
    for relative, data in DATASTORE_FILES.items():
        path = base / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return DatastoreInfo(base_path=base, ca_id=CA_ID, description="Test CA")


@pytest.fixture()
def activity_log() -> ActivityLog:
    return ActivityLog()


@pytest.fixture()
def engine(activity_log: ActivityLog) -> BackupEngine:
    return BackupEngine(activity_log=activity_log)


@pytest.fixture()
def archive(tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo) -> Path:
    target = tmp_path / "backup.zip"
    engine.backup(datastore, target)
    return target


@pytest.fixture()
def restore_root(tmp_path: Path) -> Path:
    root = tmp_path / "restore"
    root.mkdir()
    return root


# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------


class TestBackup:
    def test_archive_layout(self, archive: Path) -> None:
        with zipfile.ZipFile(archive) as zf:
            names = zf.namelist()
            assert zf.comment.decode("ascii") == str(CA_ID)
        assert names[-1] == MANIFEST_NAME
        assert sorted(names[:-1]) == sorted(f"Test CA/{name}" for name in DATASTORE_FILES)

    def test_manifest_lists_every_file(
        self, tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo
    ) -> None:
        manifest = engine.backup(datastore, tmp_path / "out.zip")
        assert manifest.archive_id == CA_ID
        assert len(manifest.entries) == len(DATASTORE_FILES)
        by_name = {entry.relative_path: entry for entry in manifest.entries}
        key_entry = by_name["Test CA/ca_key.p8"]
        assert key_entry.size_bytes == len(DATASTORE_FILES["ca_key.p8"])
        assert key_entry.digest_hex == sha512_hex(DATASTORE_FILES["ca_key.p8"])
        assert manifest.total_bytes == sum(len(data) for data in DATASTORE_FILES.values())

    def test_progress_events(
        self, tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo
    ) -> None:
        events: list[ProgressEvent] = []
        engine.backup(datastore, tmp_path / "out.zip", progress=events.append)
        assert [event.completed for event in events] == [0, 1, 2, 3, 4]
        assert events[-1].item == "complete"
        assert events[-1].percent == 100.0
        assert engine.backup_state is BackupState.COMPLETE

    def test_existing_target_replaced(
        self, tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo
    ) -> None:
        target = tmp_path / "out.zip"
        target.write_bytes(b"stale")
        engine.backup(datastore, target)
        assert zipfile.is_zipfile(target)

    def test_target_inside_datastore_not_archived(
        self, engine: BackupEngine, datastore: DatastoreInfo
    ) -> None:
        target = datastore.base_path / "self.zip"
        manifest = engine.backup(datastore, target)
        assert all(not entry.relative_path.endswith("self.zip") for entry in manifest.entries)

    def test_cancel_removes_partial_archive(
        self, tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo
    ) -> None:
        token = CancellationToken()
        target = tmp_path / "out.zip"

        def cancel_after_first(event: ProgressEvent) -> None:
            if event.completed == 1:
                token.cancel()

        with pytest.raises(OperationCancelledError):
            engine.backup(datastore, target, progress=cancel_after_first, cancel=token)
        assert not target.exists()
        assert engine.backup_state is BackupState.CANCELLED_CLEANUP

    def test_missing_datastore(self, tmp_path: Path, engine: BackupEngine) -> None:
        info = DatastoreInfo(tmp_path / "missing", CA_ID, "Test CA")
        with pytest.raises(BackupError):
            engine.backup(info, tmp_path / "out.zip")

    def test_blank_description(self, tmp_path: Path, engine: BackupEngine, datastore: DatastoreInfo) -> None:
        info = DatastoreInfo(datastore.base_path, CA_ID, "  ")
        with pytest.raises(ValueError):
            engine.backup(info, tmp_path / "out.zip")

    def test_activity_logged(
        self, archive: Path, activity_log: ActivityLog
    ) -> None:
        (event,) = activity_log.read_log()
        assert event["event_type"] == "backup_created"
        assert event["ca_id"] == str(CA_ID)

    def test_unknown_compression(self) -> None:
        with pytest.raises(ValueError):
            BackupEngine(compression="bzip2")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class TestRestore:
    def test_round_trip(self, archive: Path, engine: BackupEngine, restore_root: Path) -> None:
        base = engine.restore(archive, restore_root)
        assert base == restore_root / "Test CA"
        for relative, data in DATASTORE_FILES.items():
            assert (base / relative).read_bytes() == data
        assert engine.restore_state is RestoreState.COMPLETE

    def test_restore_logged(
        self, archive: Path, engine: BackupEngine, restore_root: Path, activity_log: ActivityLog
    ) -> None:
        engine.restore(archive, restore_root)
        assert activity_log.read_log()[-1]["event_type"] == "backup_restored"

    def test_existing_base_path_refused(
        self, archive: Path, engine: BackupEngine, restore_root: Path
    ) -> None:
        existing = restore_root / "Test CA"
        existing.mkdir()
        (existing / "keep.txt").write_text("mine")
        with pytest.raises(BackupError, match="overwrite"):
            engine.restore(archive, restore_root)
        assert (existing / "keep.txt").read_text() == "mine"

    def test_missing_destination(self, archive: Path, engine: BackupEngine, tmp_path: Path) -> None:
        with pytest.raises(BackupError):
            engine.restore(archive, tmp_path / "nowhere")

    def test_tampered_entry(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        good = {"Test CA/a.txt": b"alpha", "Test CA/b.txt": b"bravo"}
        entries = [
            BackupManifestEntry(relative_path=name, size_bytes=len(data), digest_hex=sha512_hex(data))
            for name, data in good.items()
        ]
        tampered = dict(good, **{"Test CA/b.txt": b"BRAVO"})
        path = _write_archive(tmp_path / "tampered.zip", tampered, entries)
        with pytest.raises(IntegrityViolationError) as excinfo:
            engine.restore(path, restore_root)
        assert excinfo.value.entry == "Test CA/b.txt"
        assert not (restore_root / "Test CA").exists()

    def test_flipped_byte_in_stored_archive(
        self, tmp_path: Path, datastore: DatastoreInfo, restore_root: Path
    ) -> None:
        engine = BackupEngine(compression="stored")
        path = tmp_path / "stored.zip"
        engine.backup(datastore, path)

        with zipfile.ZipFile(path) as zf:
            info = zf.getinfo("Test CA/ca_key.p8")
        raw = bytearray(path.read_bytes())
        name_length, extra_length = struct.unpack("<HH", raw[info.header_offset + 26 : info.header_offset + 30])
        data_offset = info.header_offset + 30 + name_length + extra_length
        raw[data_offset + 10] ^= 0xFF
        path.write_bytes(bytes(raw))

        with pytest.raises(IntegrityViolationError):
            engine.restore(path, restore_root)
        assert not (restore_root / "Test CA").exists()

    def test_size_mismatch(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/b.txt": b"bravo"}
        entries = [
            BackupManifestEntry(relative_path="Test CA/a.txt", size_bytes=5, digest_hex=sha512_hex(b"alpha")),
            BackupManifestEntry(relative_path="Test CA/b.txt", size_bytes=99, digest_hex=sha512_hex(b"bravo")),
        ]
        path = _write_archive(tmp_path / "size.zip", files, entries)
        with pytest.raises(IntegrityViolationError, match="size"):
            engine.restore(path, restore_root)

    def test_entry_missing_from_archive(
        self, tmp_path: Path, engine: BackupEngine, restore_root: Path
    ) -> None:
        files = {"Test CA/a.txt": b"alpha"}
        entries = [
            BackupManifestEntry(relative_path="Test CA/a.txt", size_bytes=5, digest_hex=sha512_hex(b"alpha")),
            BackupManifestEntry(relative_path="Test CA/gone.txt", size_bytes=4, digest_hex=sha512_hex(b"gone")),
        ]
        path = _write_archive(tmp_path / "missing.zip", files, entries)
        with pytest.raises(IntegrityViolationError, match="missing"):
            engine.restore(path, restore_root)
        assert not (restore_root / "Test CA").exists()

    def test_uuid_mismatch(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/b.txt": b"bravo"}
        path = _write_archive(tmp_path / "uuid.zip", files, comment=str(uuid.uuid4()))
        with pytest.raises(MalformedArchiveError, match="UUID"):
            engine.restore(path, restore_root)

    def test_missing_comment(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/b.txt": b"bravo"}
        path = _write_archive(tmp_path / "nocomment.zip", files, comment="")
        with pytest.raises(MalformedArchiveError):
            engine.restore(path, restore_root)

    def test_missing_manifest(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        path = tmp_path / "plain.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.comment = str(CA_ID).encode("ascii")
            zf.writestr("Test CA/a.txt", b"alpha")
        with pytest.raises(MalformedArchiveError, match="manifest"):
            engine.restore(path, restore_root)

    def test_not_a_zip(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        path = tmp_path / "junk.zip"
        path.write_bytes(b"definitely not a zip")
        with pytest.raises(MalformedArchiveError):
            engine.restore(path, restore_root)

    def test_too_few_entries(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        path = _write_archive(tmp_path / "one.zip", {"Test CA/a.txt": b"alpha"})
        with pytest.raises(MalformedArchiveError, match="malformed"):
            engine.restore(path, restore_root)

    def test_entry_escaping_base(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/../../escape.txt": b"owned"}
        path = _write_archive(tmp_path / "escape.zip", files)
        with pytest.raises(PathSafetyViolationError):
            engine.restore(path, restore_root)
        assert not (tmp_path / "escape.txt").exists()
        assert not (restore_root / "Test CA").exists()

    def test_entry_escaping_to_sibling(
        self, tmp_path: Path, engine: BackupEngine, restore_root: Path
    ) -> None:
        files = {"Test CA/a.txt": b"alpha", "Other CA/b.txt": b"bravo"}
        path = _write_archive(tmp_path / "sibling.zip", files)
        with pytest.raises(PathSafetyViolationError):
            engine.restore(path, restore_root)
        assert not (restore_root / "Other CA").exists()

    def test_entry_equal_to_base(self, tmp_path: Path, engine: BackupEngine, restore_root: Path) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/.": b""}
        path = _write_archive(tmp_path / "dot.zip", files)
        with pytest.raises(PathSafetyViolationError):
            engine.restore(path, restore_root)

    def test_description_escaping_destination(
        self, tmp_path: Path, engine: BackupEngine, restore_root: Path
    ) -> None:
        files = {"../evil/a.txt": b"alpha", "../evil/b.txt": b"bravo"}
        path = _write_archive(tmp_path / "evil.zip", files, description="../evil")
        with pytest.raises(PathSafetyViolationError):
            engine.restore(path, restore_root)
        assert not (tmp_path / "evil").exists()

    def test_cancel_removes_partial_restore(
        self, archive: Path, engine: BackupEngine, restore_root: Path
    ) -> None:
        token = CancellationToken()

        def cancel_after_two(event: ProgressEvent) -> None:
            if event.completed == 2:
                token.cancel()

        with pytest.raises(OperationCancelledError):
            engine.restore(archive, restore_root, progress=cancel_after_two, cancel=token)
        assert not (restore_root / "Test CA").exists()
        assert engine.restore_state is RestoreState.CANCELLED_CLEANUP

    def test_failure_logged(
        self, tmp_path: Path, engine: BackupEngine, restore_root: Path, activity_log: ActivityLog
    ) -> None:
        path = _write_archive(tmp_path / "one.zip", {"Test CA/a.txt": b"alpha"})
        with pytest.raises(MalformedArchiveError):
            engine.restore(path, restore_root)
        event = activity_log.read_log()[-1]
        assert event["event_type"] == "restore_failed"
        assert event["level"] == "WARNING"


# ---------------------------------------------------------------------------
# Verify and inspect
# ---------------------------------------------------------------------------


class TestVerifyAndInspect:
    def test_verify_good_archive(self, archive: Path, engine: BackupEngine, tmp_path: Path) -> None:
        manifest = engine.verify(archive)
        assert manifest.archive_id == CA_ID
        assert not (tmp_path / "Test CA").exists()

    def test_verify_detects_tampering(self, tmp_path: Path, engine: BackupEngine) -> None:
        good = {"Test CA/a.txt": b"alpha", "Test CA/b.txt": b"bravo"}
        entries = [
            BackupManifestEntry(relative_path=name, size_bytes=len(data), digest_hex=sha512_hex(data))
            for name, data in good.items()
        ]
        path = _write_archive(tmp_path / "t.zip", dict(good, **{"Test CA/a.txt": b"ALPHA"}), entries)
        with pytest.raises(IntegrityViolationError):
            engine.verify(path)

    def test_verify_detects_escape(self, tmp_path: Path, engine: BackupEngine) -> None:
        files = {"Test CA/a.txt": b"alpha", "Test CA/../../x.txt": b"owned"}
        path = _write_archive(tmp_path / "e.zip", files)
        with pytest.raises(PathSafetyViolationError):
            engine.verify(path)

    def test_inspect(self, archive: Path, engine: BackupEngine) -> None:
        manifest = engine.inspect(archive)
        assert manifest.description == "Test CA"
        assert len(manifest.entries) == len(DATASTORE_FILES)

    def test_inspect_missing_file(self, tmp_path: Path, engine: BackupEngine) -> None:
        with pytest.raises(BackupError):
            engine.inspect(tmp_path / "absent.zip")
