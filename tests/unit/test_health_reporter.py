from datetime import datetime, timezone

from applybot.models.connection import ConnectionState, ConnectionStatus
from applybot.services.health_reporter import HealthReporter


class StubSource:
    def __init__(self, active: bool, idle: float, attempts: int = 0):
        self.status = ConnectionStatus(
            state=ConnectionState.ACTIVE if active else ConnectionState.DISCONNECTED,
            is_polling_active=active,
            polling_started=datetime(2026, 1, 1, tzinfo=timezone.utc),
            reconnect_attempts=attempts,
            time_since_last_message=idle,
        )

    def get_status(self):
        return self.status


class BrokenSource:
    def get_status(self):
        raise RuntimeError("snapshot unavailable")


def test_no_supervisor_reports_ok_without_bot():
    report = HealthReporter(None).report()
    assert report.status == "ok"
    assert report.bot is None
    assert report.to_dict()["bot"] is None


def test_active_and_quiet_is_ok():
    report = HealthReporter(StubSource(active=True, idle=3600)).report()
    assert report.status == "ok"
    assert report.message is None


def test_inactive_but_recent_is_ok():
    report = HealthReporter(StubSource(active=False, idle=600)).report()
    assert report.status == "ok"


def test_inactive_and_stale_is_warning():
    report = HealthReporter(StubSource(active=False, idle=600.5, attempts=4)).report()
    assert report.status == "warning"
    assert report.message == "Bot polling is not active"
    assert report.bot["reconnectAttempts"] == 4
    assert report.bot["isPollingActive"] is False


def test_time_since_last_message_is_whole_seconds():
    report = HealthReporter(StubSource(active=True, idle=61.9)).report()
    assert report.bot["timeSinceLastMessage"] == "61s"
    assert report.bot["pollingStarted"] == "2026-01-01T00:00:00Z"
    assert report.timestamp.endswith("Z")


def test_custom_threshold():
    report = HealthReporter(StubSource(active=False, idle=31), stale_after=30).report()
    assert report.status == "warning"


def test_source_failure_reports_error():
    report = HealthReporter(BrokenSource()).report()
    assert report.status == "error"
    assert report.error == "snapshot unavailable"
    assert report.to_dict()["error"] == "snapshot unavailable"
