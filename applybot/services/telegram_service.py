import logging

import httpx

from applybot.services.errors import BotConnectionError, TelegramAuthError

logger = logging.getLogger(__name__)

# Bot API answers 401 for a malformed/revoked token and 404 when the token path is unknown.
_AUTH_STATUS_CODES = {401, 404}


class TelegramService:
    """Minimal async Telegram Bot API client over httpx."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        request_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = f"{base_url.rstrip('/')}/bot{token}/"
        self._request_timeout = request_timeout
        self._client = client or httpx.AsyncClient()

    async def _call(self, method: str, payload: dict | None = None, timeout: float | None = None):
        url = self._base_url + method
        try:
            response = await self._client.post(
                url, json=payload or {}, timeout=timeout or self._request_timeout
            )
        except httpx.HTTPError as exc:
            raise BotConnectionError(f"{method}: {type(exc).__name__}: {exc}") from exc

        if response.status_code in _AUTH_STATUS_CODES:
            raise TelegramAuthError(f"{method}: bot token rejected (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError as exc:
            raise BotConnectionError(f"{method}: non-JSON response (HTTP {response.status_code})") from exc

        if not body.get("ok", False):
            raise BotConnectionError(
                f"{method}: API error {body.get('error_code')}: {body.get('description')}"
            )
        return body["result"]

    async def get_me(self) -> dict:
        return await self._call("getMe")

    async def delete_webhook(self) -> None:
        """Polling and webhooks are mutually exclusive on the Bot API."""
        await self._call("deleteWebhook", {"drop_pending_updates": False})

    async def get_updates(self, offset: int, timeout: int) -> list[dict]:
        return await self._call(
            "getUpdates",
            {"offset": offset, "timeout": timeout, "allowed_updates": ["message"]},
            # The HTTP timeout must outlast the server-side long poll.
            timeout=timeout + self._request_timeout,
        )

    async def send_message(self, chat_id: int, text: str) -> dict:
        return await self._call("sendMessage", {"chat_id": chat_id, "text": text})

    async def close(self) -> None:
        await self._client.aclose()
