from abc import ABC, abstractmethod

from applybot.models.application import Application, Submitter


class AbstractApplicationRepository(ABC):
    @abstractmethod
    def create(self, fields: dict, submitter: Submitter) -> int:
        """Insert a pending application. Returns the store-assigned id."""

    @abstractmethod
    def get_all(self) -> list[Application]:
        """Return every application, newest first."""

    @abstractmethod
    def get_by_id(self, application_id: int) -> Application | None:
        """Return the application or None if the id is unknown."""

    @abstractmethod
    def update_status(self, application_id: int, status: str, admin_notes: str | None = None) -> None:
        """Set status and notes, bumping updated_at."""

    @abstractmethod
    def count_by_status(self) -> dict[str, int]:
        """Return {status: count} for every status present."""
