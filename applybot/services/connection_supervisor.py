import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable

from applybot.models.connection import ConnectionSnapshot, ConnectionState, ConnectionStatus
from applybot.services.errors import ConfigurationError, TelegramAuthError
from applybot.services.telegram_service import TelegramService

logger = logging.getLogger(__name__)

UpdateHandler = Callable[[dict], Awaitable[None]]


class ConnectionSupervisor:
    """
    Owns the single long-poll session to the Bot API.

    One asyncio task runs the poll loop and is the only writer of the snapshot
    once started. Readers call get_status() at any time; the snapshot is a frozen
    dataclass swapped in a single assignment, so a read never sees a half-applied
    transition.

    State machine: disconnected -> connecting -> active -> disconnected -> connecting ...
    Reconnection is retried forever with capped exponential backoff. A rejected
    token is the only fatal condition.
    """

    def __init__(
        self,
        telegram: TelegramService,
        handler: UpdateHandler,
        poll_timeout: int = 30,
        backoff_base: float = 1.0,
        backoff_max: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._telegram = telegram
        self._handler = handler
        self._poll_timeout = poll_timeout
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._clock = clock
        self._sleep = sleep

        self._snapshot = ConnectionSnapshot(last_message_at=clock())
        self._start_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None
        self._dispatch_tasks: set[asyncio.Task] = set()
        self._offset = 0
        self._stopping = False
        self.fatal_error: BaseException | None = None

    # --- snapshot ---------------------------------------------------------

    def _transition(self, **changes) -> None:
        self._snapshot = replace(self._snapshot, **changes)

    def get_status(self) -> ConnectionStatus:
        """Point-in-time view of the connection. Never blocks, never raises."""
        snap = self._snapshot
        return ConnectionStatus(
            state=snap.state,
            is_polling_active=snap.is_polling_active,
            polling_started=snap.polling_started,
            reconnect_attempts=snap.reconnect_attempts,
            time_since_last_message=max(0.0, self._clock() - snap.last_message_at),
            last_error=snap.last_error,
        )

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect try number `attempt` (0-based), capped at backoff_max."""
        return min(self._backoff_base * (2 ** attempt), self._backoff_max)

    # --- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """
        Validate the token and begin polling. No-op while already running.
        Raises ConfigurationError if the Bot API rejects the token; a transient
        failure is left to the reconnect loop instead.
        """
        async with self._start_lock:
            if self.is_running:
                return
            self._stopping = False
            self.fatal_error = None
            try:
                connected = await self._connect()
            except TelegramAuthError as exc:
                self.fatal_error = exc
                self._transition(state=ConnectionState.STOPPED, is_polling_active=False, last_error=str(exc))
                raise ConfigurationError(str(exc)) from exc
            if not connected:
                self._transition(reconnect_attempts=self._snapshot.reconnect_attempts + 1)
                logger.warning("[supervisor] initial connect failed | error=%s", self._snapshot.last_error)

            self._poll_task = asyncio.create_task(self._run(connected), name="telegram-poll")

    async def stop(self) -> None:
        """Close the session: cancel the poll loop, any pending backoff and in-flight handlers."""
        self._stopping = True
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        pending = list(self._dispatch_tasks)
        for dispatch in pending:
            dispatch.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._transition(state=ConnectionState.STOPPED, is_polling_active=False)
        logger.info("[supervisor] stopped")

    # --- connection -------------------------------------------------------

    async def _connect(self) -> bool:
        """
        One connection attempt. True on success, False on a transient failure.
        TelegramAuthError propagates.
        """
        async with self._connect_lock:
            self._transition(state=ConnectionState.CONNECTING)
            try:
                me = await self._telegram.get_me()
                await self._telegram.delete_webhook()
            except TelegramAuthError:
                raise
            except Exception as exc:
                self._transition(
                    state=ConnectionState.DISCONNECTED,
                    is_polling_active=False,
                    last_error=str(exc),
                )
                return False
            self._transition(
                state=ConnectionState.ACTIVE,
                is_polling_active=True,
                polling_started=datetime.now(timezone.utc),
                reconnect_attempts=0,
                last_error=None,
            )
            logger.info("[supervisor] polling active | bot=@%s", me.get("username"))
            return True

    async def _run(self, connected: bool) -> None:
        try:
            while not self._stopping:
                if not connected:
                    await self._reconnect()
                    if self._stopping:
                        break
                    connected = True
                try:
                    await self._poll_once()
                except TelegramAuthError:
                    raise
                except Exception as exc:
                    self.on_disconnect(exc)
                    connected = False
        except TelegramAuthError as exc:
            self.fatal_error = exc
            self._transition(state=ConnectionState.STOPPED, is_polling_active=False, last_error=str(exc))
            logger.critical("[supervisor] bot token rejected, polling halted | error=%s", exc)

    async def _reconnect(self) -> None:
        while not self._stopping:
            delay = self.backoff_delay(self._snapshot.reconnect_attempts)
            logger.info(
                "[supervisor] reconnecting | attempt=%d | delay=%.1fs",
                self._snapshot.reconnect_attempts + 1,
                delay,
            )
            await self._sleep(delay)
            if await self._connect():
                return
            self._transition(reconnect_attempts=self._snapshot.reconnect_attempts + 1)
            logger.warning(
                "[supervisor] reconnect failed | attempts=%d | error=%s",
                self._snapshot.reconnect_attempts,
                self._snapshot.last_error,
            )

    async def _poll_once(self) -> None:
        updates = await self._telegram.get_updates(self._offset, self._poll_timeout)
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = max(self._offset, update_id + 1)
            self.on_message(update)

    # --- events -----------------------------------------------------------

    def on_message(self, update: dict) -> None:
        """Record activity and hand the update to the handler without awaiting it."""
        self._transition(last_message_at=self._clock())
        task = asyncio.create_task(self._handler(update))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._on_dispatch_done)

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._dispatch_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[supervisor] update handler failed | error=%s", exc, exc_info=exc)

    def on_disconnect(self, cause: BaseException) -> None:
        self._transition(
            state=ConnectionState.DISCONNECTED,
            is_polling_active=False,
            last_error=str(cause),
        )
        logger.warning("[supervisor] polling lost | error=%s", cause)
