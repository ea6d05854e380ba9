"""
Worker control channel: stop requests, heartbeats and identifier-migration requests.

``FileControlChannel`` keeps the admin-facing JSON files under the control directory
(default ``data/cron``); ``InMemoryControlChannel`` is used by tests and embedded runs.
The worker only talks to the ``ControlChannel`` interface.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

STOP_REQUEST_FILE = "riot-worker-stop-request.json"
HEARTBEAT_FILE = "riot-worker-heartbeat.json"
MIGRATION_REQUEST_FILE = "puuid-migration-request.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ControlChannel(ABC):
    @abstractmethod
    def should_stop(self) -> bool:
        ...

    @abstractmethod
    def request_stop(self, reason: str = "") -> None:
        ...

    @abstractmethod
    def report_heartbeat(self, metrics: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def migration_requested(self) -> Optional[Dict[str, Any]]:
        """Pending migration request payload, or None."""

    @abstractmethod
    def request_migration(self, reason: str) -> None:
        ...

    @abstractmethod
    def clear_migration_request(self) -> None:
        ...


class InMemoryControlChannel(ControlChannel):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop = False
        self._migration: Optional[Dict[str, Any]] = None
        self.heartbeats: List[Dict[str, Any]] = []

    def should_stop(self) -> bool:
        with self._lock:
            return self._stop

    def request_stop(self, reason: str = "") -> None:
        with self._lock:
            self._stop = True

    def report_heartbeat(self, metrics: Dict[str, Any]) -> None:
        with self._lock:
            self.heartbeats.append({"last_beat": _now_iso(), **metrics})

    def migration_requested(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return dict(self._migration) if self._migration is not None else None

    def request_migration(self, reason: str) -> None:
        with self._lock:
            if self._migration is None:
                self._migration = {"requested_at": _now_iso(), "reason": reason}

    def clear_migration_request(self) -> None:
        with self._lock:
            self._migration = None


class FileControlChannel(ControlChannel):
    def __init__(self, control_dir: str | Path) -> None:
        self._dir = Path(control_dir)
        self._stop = False

    def _path(self, name: str) -> Path:
        return self._dir / name

    def _write(self, name: str, payload: Dict[str, Any]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self._path(name + ".tmp")
        tmp.write_text(json.dumps(payload, sort_keys=True, default=str), encoding="utf-8")
        tmp.replace(self._path(name))

    def _read(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._path(name)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable control file %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def should_stop(self) -> bool:
        """True once a stop was requested; an admin stop file is consumed on first sight."""
        if self._stop:
            return True
        path = self._path(STOP_REQUEST_FILE)
        if path.exists():
            logger.info("Stop request file found: %s", path)
            try:
                path.unlink()
            except OSError as e:
                logger.warning("Could not remove stop request file: %s", e)
            self._stop = True
        return self._stop

    def request_stop(self, reason: str = "") -> None:
        self._stop = True

    def report_heartbeat(self, metrics: Dict[str, Any]) -> None:
        try:
            self._write(HEARTBEAT_FILE, {"last_beat": _now_iso(), **metrics})
        except OSError as e:
            logger.warning("Heartbeat write failed: %s", e)

    def migration_requested(self) -> Optional[Dict[str, Any]]:
        return self._read(MIGRATION_REQUEST_FILE)

    def request_migration(self, reason: str) -> None:
        if self._path(MIGRATION_REQUEST_FILE).exists():
            return
        self._write(MIGRATION_REQUEST_FILE, {"requested_at": _now_iso(), "reason": reason})
        logger.warning("Identifier migration requested: %s", reason)

    def clear_migration_request(self) -> None:
        try:
            self._path(MIGRATION_REQUEST_FILE).unlink()
        except FileNotFoundError:
            pass
