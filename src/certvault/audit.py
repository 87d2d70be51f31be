"""ActivityLog — JSONL record of operations performed on a CA datastore.

Backups, restores, exports and credential validation are appended as single
JSON lines to the configured file. Passwords and key material are never
written; callers pass only identifiers, paths and format names.

If no file path is configured, events are kept in an in-memory buffer that
can be drained via :meth:`ActivityLog.drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ActivityEvent:
    """A single recorded CA operation.

    Parameters
    ----------
    event_type:
        Short snake_case string identifying the operation (e.g. "backup_created").
    ca_id:
        Identifier of the CA the operation applied to, or "-" when unknown.
    level:
        Severity, "INFO" for successful operations and "WARNING" for failures.
    details:
        Arbitrary key-value metadata about the operation.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    ca_id: str
    level: str = "INFO"
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary suitable for JSON encoding."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "event_type": self.event_type,
            "ca_id": self.ca_id,
            "details": self.details,
        }


class ActivityLog:
    """Append-only JSONL activity log.

    Thread-safe. Each call to :meth:`log` appends one JSON line to the
    configured file (or to the in-memory buffer if no path is set).

    Parameters
    ----------
    log_path:
        Path to the JSONL log file. Parent directories are created
        automatically. If None, events are buffered in memory only.
    enabled:
        When False, events are discarded.
    """

    def __init__(self, log_path: Path | None = None, enabled: bool = True) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()
        self.enabled = enabled

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Core logging
    # ------------------------------------------------------------------

    def log(self, event: ActivityEvent) -> None:
        """Append *event* to the log."""
        if not self.enabled:
            return
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(
        self,
        event_type: str,
        ca_id: object = "-",
        level: str = "INFO",
        **details: object,
    ) -> None:
        """Log a simple event without constructing :class:`ActivityEvent`."""
        self.log(
            ActivityEvent(
                event_type=event_type,
                ca_id=str(ca_id),
                level=level,
                details=dict(details),
            )
        )

    # ------------------------------------------------------------------
    # Operation loggers
    # ------------------------------------------------------------------

    def log_backup(self, ca_id: object, archive: Path, success: bool, **kwargs: object) -> None:
        """Log the outcome of a datastore backup."""
        self.log_event(
            "backup_created" if success else "backup_failed",
            ca_id=ca_id,
            level="INFO" if success else "WARNING",
            archive=str(archive),
            **kwargs,
        )

    def log_restore(self, ca_id: object, archive: Path, success: bool, **kwargs: object) -> None:
        """Log the outcome of a datastore restore."""
        self.log_event(
            "backup_restored" if success else "restore_failed",
            ca_id=ca_id,
            level="INFO" if success else "WARNING",
            archive=str(archive),
            **kwargs,
        )

    def log_export(self, subject: str, export_format: str, **kwargs: object) -> None:
        """Log an export of credential material."""
        self.log_event("credentials_exported", subject=subject, format=export_format, **kwargs)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory event buffer, oldest first."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read events from the log file (or buffer).

        Parameters
        ----------
        tail:
            If provided, return only the last *tail* events.

        Returns
        -------
        list[dict[str, object]]
            Parsed event dictionaries in chronological order.
        """
        if self._log_path is None or not self._log_path.exists():
            with self._lock:
                lines = list(self._buffer)
        else:
            with self._lock:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed
