class ApplyBotError(Exception):
    """Base class for application workflow errors."""


class ValidationError(ApplyBotError):
    """A submission is missing required content fields."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"missing required fields: {', '.join(missing)}")


class NotFoundError(ApplyBotError):
    def __init__(self, application_id: int) -> None:
        self.application_id = application_id
        super().__init__(f"application {application_id} not found")


class InvalidDecisionError(ApplyBotError):
    def __init__(self, decision: object) -> None:
        self.decision = decision
        super().__init__(f"invalid decision: {decision!r}")


class AlreadyDecidedError(ApplyBotError):
    def __init__(self, application_id: int, status: str) -> None:
        self.application_id = application_id
        self.status = status
        super().__init__(f"application {application_id} is already {status}")


class ConfigurationError(ApplyBotError):
    """Unrecoverable setup problem, e.g. a missing or rejected bot token."""


class BotConnectionError(ApplyBotError, ConnectionError):
    """The message-bus session was lost or could not be established."""


class TelegramAuthError(ApplyBotError):
    """The Bot API rejected the token."""


class MirrorError(ApplyBotError):
    """Writing a status to the spreadsheet failed."""
