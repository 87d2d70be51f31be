#!/usr/bin/env python3
"""Example: Backup and restore

Builds a small CA datastore in a temporary directory, backs it up into a
zip archive, verifies the archive and restores it next to the original.

Usage:
    python examples/01_backup_restore.py

Requirements:
    pip install certvault
"""
from __future__ import annotations

import tempfile
import uuid
from pathlib import Path

import certvault
from certvault import BackupEngine, DatastoreInfo, ProgressEvent


def _report(event: ProgressEvent) -> None:
    print(f"  [{event.percent:5.1f}%] {event.item}")


def main() -> None:
    print(f"certvault version: {certvault.__version__}")

    with tempfile.TemporaryDirectory() as workdir:
        root = Path(workdir)

        # Step 1: Lay out a datastore
        datastore = root / "datastore"
        (datastore / "issued").mkdir(parents=True)
        (datastore / "ca_cert.pem").write_text("-----BEGIN CERTIFICATE-----\n...\n")
        (datastore / "issued" / "cert1.pem").write_text("-----BEGIN CERTIFICATE-----\n...\n")
        info = DatastoreInfo(base_path=datastore, ca_id=uuid.uuid4(), description="Example CA")
        print(f"Datastore for CA {info.ca_id} at {datastore}")

        # Step 2: Back it up
        engine = BackupEngine()
        archive = root / "example-ca.zip"
        manifest = engine.backup(info, archive, progress=_report)
        print(f"Archived {len(manifest.entries)} files ({manifest.total_bytes} bytes)")

        # Step 3: Verify without extracting
        engine.verify(archive)
        print("Archive verified")

        # Step 4: Restore into an empty directory
        destination = root / "restore"
        destination.mkdir()
        restored = engine.restore(archive, destination, progress=_report)
        print(f"Restored to {restored}")
        for path in sorted(restored.rglob("*")):
            if path.is_file():
                print(f"  {path.relative_to(restored)}")

    print("\nBackup example complete.")


if __name__ == "__main__":
    main()
