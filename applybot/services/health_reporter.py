import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from applybot.models.connection import ConnectionStatus

logger = logging.getLogger(__name__)

STALE_AFTER_SECONDS = 10 * 60


class StatusSource(Protocol):
    def get_status(self) -> ConnectionStatus: ...


@dataclass
class HealthReport:
    status: str
    timestamp: str
    bot: dict | None = None
    message: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        payload = {"status": self.status, "timestamp": self.timestamp, "bot": self.bot}
        if self.message is not None:
            payload["message"] = self.message
        if self.error is not None:
            payload["error"] = self.error
        return payload


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _now_iso() -> str:
    return _iso_utc(datetime.now(timezone.utc))


class HealthReporter:
    """
    ok / warning / error view of the bot connection for uptime monitors.
    Warning only when polling is down AND nothing has arrived for longer than
    the stale threshold; a quiet but connected bot is healthy.
    """

    def __init__(self, source: StatusSource | None = None, stale_after: float = STALE_AFTER_SECONDS) -> None:
        self._source = source
        self._stale_after = stale_after

    def report(self) -> HealthReport:
        """Never raises."""
        try:
            if self._source is None:
                return HealthReport(status="ok", timestamp=_now_iso())
            snapshot = self._source.get_status()
            report = HealthReport(
                status="ok",
                timestamp=_now_iso(),
                bot={
                    "isPollingActive": snapshot.is_polling_active,
                    "pollingStarted": _iso_utc(snapshot.polling_started) if snapshot.polling_started else None,
                    "reconnectAttempts": snapshot.reconnect_attempts,
                    "timeSinceLastMessage": f"{math.floor(snapshot.time_since_last_message)}s",
                },
            )
            if not snapshot.is_polling_active and snapshot.time_since_last_message > self._stale_after:
                report.status = "warning"
                report.message = "Bot polling is not active"
            return report
        except Exception as exc:
            logger.exception("[health] status computation failed")
            return HealthReport(status="error", timestamp=_now_iso(), error=str(exc))
