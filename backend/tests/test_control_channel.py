"""Worker control channel: admin stop file, heartbeat file, migration request lifecycle."""

from __future__ import annotations

import json
import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from ops.control import (
    HEARTBEAT_FILE,
    MIGRATION_REQUEST_FILE,
    STOP_REQUEST_FILE,
    FileControlChannel,
    InMemoryControlChannel,
)


def test_stop_file_is_consumed_and_latched(tmp_path) -> None:
    channel = FileControlChannel(tmp_path)
    assert channel.should_stop() is False
    (tmp_path / STOP_REQUEST_FILE).write_text("{}", encoding="utf-8")
    assert channel.should_stop() is True
    assert not (tmp_path / STOP_REQUEST_FILE).exists()
    assert channel.should_stop() is True


def test_request_stop_without_file(tmp_path) -> None:
    channel = FileControlChannel(tmp_path / "cron")
    channel.request_stop("SIGTERM")
    assert channel.should_stop() is True


def test_heartbeat_written_atomically(tmp_path) -> None:
    channel = FileControlChannel(tmp_path / "cron")
    channel.report_heartbeat({"cycle": 3, "phase": "sleep"})
    data = json.loads((tmp_path / "cron" / HEARTBEAT_FILE).read_text(encoding="utf-8"))
    assert data["cycle"] == 3
    assert data["phase"] == "sleep"
    assert "last_beat" in data
    assert not (tmp_path / "cron" / (HEARTBEAT_FILE + ".tmp")).exists()


def test_migration_request_kept_until_cleared(tmp_path) -> None:
    channel = FileControlChannel(tmp_path)
    assert channel.migration_requested() is None
    channel.request_migration("Exception decrypting abc")
    channel.request_migration("second report")
    request = channel.migration_requested()
    assert request is not None
    assert request["reason"] == "Exception decrypting abc"
    channel.clear_migration_request()
    assert channel.migration_requested() is None
    assert not (tmp_path / MIGRATION_REQUEST_FILE).exists()
    channel.clear_migration_request()


def test_admin_written_empty_request_counts(tmp_path) -> None:
    (tmp_path / MIGRATION_REQUEST_FILE).write_text("", encoding="utf-8")
    assert FileControlChannel(tmp_path).migration_requested() == {}


def test_in_memory_channel() -> None:
    channel = InMemoryControlChannel()
    assert channel.should_stop() is False
    channel.report_heartbeat({"cycle": 1})
    channel.request_migration("rotated")
    channel.request_migration("again")
    assert channel.migration_requested()["reason"] == "rotated"
    channel.clear_migration_request()
    assert channel.migration_requested() is None
    channel.request_stop()
    assert channel.should_stop() is True
    assert channel.heartbeats[0]["cycle"] == 1
