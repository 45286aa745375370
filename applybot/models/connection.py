from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Supervisor-owned state. Replaced as a whole on every transition."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    is_polling_active: bool = False
    polling_started: datetime | None = None
    reconnect_attempts: int = 0
    last_message_at: float = 0.0
    last_error: str | None = None


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState
    is_polling_active: bool
    polling_started: datetime | None
    reconnect_attempts: int
    time_since_last_message: float
    last_error: str | None = None
