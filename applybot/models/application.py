from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


DECISIONS = frozenset({ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value})


@dataclass
class Submitter:
    telegram_user_id: int | None = None
    username: str | None = None
    chat_id: int | None = None


@dataclass
class Application:
    id: int
    submitter: Submitter
    fields: dict = field(default_factory=dict)
    status: str = ApplicationStatus.PENDING.value
    admin_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_decided(self) -> bool:
        return self.status in DECISIONS
