"""Alert dispatcher: fire-and-forget sends, sink failures recorded and never raised."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest

from ops.alerts import AlertDispatcher, AlertSink, LoggingAlertSink


class BrokenSink(AlertSink):
    async def send(self, title, message, error=None, context=None) -> None:
        raise ConnectionError("webhook down")


class CollectingSink(AlertSink):
    def __init__(self) -> None:
        self.sent = []

    async def send(self, title, message, error=None, context=None) -> None:
        self.sent.append((title, message, error, context))


@pytest.mark.asyncio
async def test_alert_is_delivered_after_flush() -> None:
    sink = CollectingSink()
    dispatcher = AlertDispatcher(sink)
    dispatcher.alert("Riot collect failed", "aborted", context={"cycle": 3})
    assert sink.sent == []
    await dispatcher.flush()
    assert sink.sent == [("Riot collect failed", "aborted", None, {"cycle": "3"})]
    assert dispatcher.sent == 1


@pytest.mark.asyncio
async def test_sink_failure_is_recorded_not_raised() -> None:
    dispatcher = AlertDispatcher(BrokenSink(), failure_log_size=2)
    for i in range(3):
        dispatcher.alert(f"alert {i}", "msg")
    await dispatcher.flush()
    assert dispatcher.sent == 0
    assert len(dispatcher.failures) == 2
    assert dispatcher.failures[-1]["title"] == "alert 2"
    assert "webhook down" in dispatcher.failures[-1]["error"]


@pytest.mark.asyncio
async def test_logging_sink_writes_warning(caplog) -> None:
    dispatcher = AlertDispatcher(LoggingAlertSink())
    with caplog.at_level(logging.WARNING, logger="ops.alerts"):
        dispatcher.alert("Riot worker stopped", "after 2 cycles", error=RuntimeError("x"), context={"reason": "auth"})
        await dispatcher.flush()
    assert any("ALERT Riot worker stopped" in r.getMessage() and "reason=auth" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_flush_without_alerts_is_noop() -> None:
    await AlertDispatcher().flush()
