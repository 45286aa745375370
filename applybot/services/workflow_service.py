import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Protocol

from applybot.models.application import DECISIONS, Application, ApplicationStatus, Submitter
from applybot.repositories.base import AbstractApplicationRepository
from applybot.services.errors import (
    AlreadyDecidedError,
    InvalidDecisionError,
    NotFoundError,
    ValidationError,
)
from applybot.services.message_parser import APPLICATION_FORM_HELP, parse_application_message
from applybot.services.telegram_service import TelegramService

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_FIELDS = ("name", "contact", "about")


class StatusMirror(Protocol):
    async def update_status(self, application_id: int, status: str) -> None: ...


class _KeyedLocks:
    """asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: int):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class ApplicationWorkflowService:
    """
    Turns inbound chat submissions into pending applications and applies
    administrator decisions.

    A decision writes the store first and that write decides the outcome. The
    spreadsheet mirror and the applicant notification run afterwards in a
    background task whose failures are only logged.
    """

    def __init__(
        self,
        repository: AbstractApplicationRepository,
        mirror: StatusMirror | None = None,
        telegram: TelegramService | None = None,
        required_fields: tuple[str, ...] = DEFAULT_REQUIRED_FIELDS,
        allow_redecide: bool = True,
        admin_chat_id: int | None = None,
        approved_chat_link: str | None = None,
    ) -> None:
        self._repository = repository
        self._mirror = mirror
        self._telegram = telegram
        self._required_fields = required_fields
        self._allow_redecide = allow_redecide
        self._admin_chat_id = admin_chat_id
        self._approved_chat_link = approved_chat_link
        self._decision_locks = _KeyedLocks()
        self._mirror_locks = _KeyedLocks()
        self._background: set[asyncio.Task] = set()

    # --- intake -----------------------------------------------------------

    def validate(self, fields: dict) -> None:
        missing = [
            name for name in self._required_fields
            if not isinstance(fields.get(name), str) or not fields[name].strip()
        ]
        if missing:
            raise ValidationError(missing)

    async def submit(self, fields: dict, submitter: Submitter) -> int:
        """Store a new pending application. Raises ValidationError before any write."""
        self.validate(fields)
        application_id = await asyncio.to_thread(self._repository.create, fields, submitter)
        logger.info(
            "[workflow] application submitted | id=%s | user=%s",
            application_id,
            submitter.telegram_user_id,
        )
        if self._admin_chat_id is not None:
            self._spawn(
                self._notify(
                    self._admin_chat_id,
                    f"New application #{application_id} from {_display_name(submitter)}",
                )
            )
        return application_id

    async def handle_update(self, update: dict) -> None:
        """Dispatch target for the connection supervisor."""
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        if not text:
            return
        chat_id = (message.get("chat") or {}).get("id")
        sender = message.get("from") or {}

        command = text.split()[0].split("@")[0]
        if command in ("/start", "/help"):
            await self._reply(chat_id, APPLICATION_FORM_HELP)
            return

        submitter = Submitter(
            telegram_user_id=sender.get("id"),
            username=sender.get("username"),
            chat_id=chat_id,
        )
        try:
            application_id = await self.submit(parse_application_message(text), submitter)
        except ValidationError as exc:
            logger.info("[workflow] submission rejected | user=%s | missing=%s", submitter.telegram_user_id, exc.missing)
            await self._reply(
                chat_id,
                f"Your application is missing: {', '.join(exc.missing)}.\n\n{APPLICATION_FORM_HELP}",
            )
            return
        await self._reply(chat_id, f"Thank you! Your application #{application_id} has been received.")

    # --- decisions --------------------------------------------------------

    async def decide(self, application_id: int, decision: str, admin_notes: str | None = None) -> Application:
        """
        Apply an administrator decision. Store errors propagate; mirror and
        notification errors never do.
        """
        if decision not in DECISIONS:
            raise InvalidDecisionError(decision)

        async with self._decision_locks.hold(application_id):
            application = await asyncio.to_thread(self._repository.get_by_id, application_id)
            if application is None:
                raise NotFoundError(application_id)
            if application.is_decided and not self._allow_redecide:
                raise AlreadyDecidedError(application_id, application.status)

            previous = application.status
            await asyncio.to_thread(self._repository.update_status, application_id, decision, admin_notes)
            application.status = decision
            application.admin_notes = admin_notes
            logger.info(
                "[workflow] decision stored | id=%s | %s -> %s",
                application_id,
                previous,
                decision,
            )
            # Dispatched under the decision lock so mirror writes queue in decision order.
            self._spawn(self._after_decision(application))

        return application

    async def _after_decision(self, application: Application) -> None:
        async with self._mirror_locks.hold(application.id):
            await self._mirror_status(application.id, application.status)
        await self._notify_applicant(application)

    async def _mirror_status(self, application_id: int, status: str) -> None:
        if self._mirror is None:
            return
        try:
            await self._mirror.update_status(application_id, status)
        except Exception as exc:
            logger.error("[workflow] mirror update failed (non-critical) | id=%s | error=%s", application_id, exc)

    async def _notify_applicant(self, application: Application) -> None:
        chat_id = application.submitter.chat_id
        if chat_id is None:
            return
        if application.status == ApplicationStatus.APPROVED.value:
            text = f"Your application #{application.id} has been approved!"
            if self._approved_chat_link:
                text += f"\nJoin the chat: {self._approved_chat_link}"
        else:
            text = f"Unfortunately, your application #{application.id} has been rejected."
        if application.admin_notes:
            text += f"\n\nComment: {application.admin_notes}"
        await self._notify(chat_id, text)

    # --- reads ------------------------------------------------------------

    async def list_applications(self) -> list[Application]:
        return await asyncio.to_thread(self._repository.get_all)

    async def get_application(self, application_id: int) -> Application:
        application = await asyncio.to_thread(self._repository.get_by_id, application_id)
        if application is None:
            raise NotFoundError(application_id)
        return application

    async def stats(self) -> dict[str, int]:
        counts = await asyncio.to_thread(self._repository.count_by_status)
        result = {status.value: counts.get(status.value, 0) for status in ApplicationStatus}
        return {"total": sum(counts.values()), **result}

    # --- background -------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[workflow] background task failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for outstanding mirror writes and notifications."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _reply(self, chat_id: int | None, text: str) -> None:
        if chat_id is not None:
            await self._notify(chat_id, text)

    async def _notify(self, chat_id: int, text: str) -> None:
        if self._telegram is None:
            return
        try:
            await self._telegram.send_message(chat_id, text)
        except Exception as exc:
            logger.warning("[workflow] telegram notification failed | chat=%s | error=%s", chat_id, exc)


def _display_name(submitter: Submitter) -> str:
    if submitter.username:
        return f"@{submitter.username}"
    return str(submitter.telegram_user_id)
