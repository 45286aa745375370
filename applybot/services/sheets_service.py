import asyncio
import json
import logging
from urllib.parse import quote

import google.auth.exceptions
import google.auth.transport.requests
import httpx
from google.auth.credentials import Credentials
from google.oauth2 import service_account

from applybot.services.errors import ConfigurationError, MirrorError

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_service_account_credentials(
    info_json: str | None = None, file_path: str | None = None
) -> Credentials | None:
    """
    Build service-account credentials from raw JSON or a key file.
    Returns None when neither is configured; a malformed key is a ConfigurationError.
    """
    try:
        if info_json:
            return service_account.Credentials.from_service_account_info(
                json.loads(info_json), scopes=SHEETS_SCOPES
            )
        if file_path:
            return service_account.Credentials.from_service_account_file(file_path, scopes=SHEETS_SCOPES)
    except (ValueError, OSError) as exc:
        raise ConfigurationError(f"invalid Google service account credentials: {exc}") from exc
    return None


class SheetsService:
    """
    Best-effort status mirror into a Google Sheets spreadsheet.
    Rows are keyed by application id in column A; the status lives in `status_column`.
    The OAuth token is refreshed whenever it has expired.
    With no spreadsheet or credentials configured every write is a logged no-op.
    """

    def __init__(
        self,
        spreadsheet_id: str | None,
        credentials: Credentials | None,
        sheet_name: str = "Applications",
        status_column: str = "F",
        request_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        auth_request=None,
    ) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        self._sheet_name = sheet_name
        self._status_column = status_column
        self._request_timeout = request_timeout
        self._client = client or httpx.AsyncClient()
        self._auth_request = auth_request
        self._refresh_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._spreadsheet_id and self._credentials is not None)

    def _values_url(self, a1_range: str) -> str:
        return f"{SHEETS_API_URL}/{self._spreadsheet_id}/values/{quote(a1_range, safe='')}"

    async def _auth_headers(self) -> dict:
        async with self._refresh_lock:
            if not self._credentials.valid:
                if self._auth_request is None:
                    self._auth_request = google.auth.transport.requests.Request()
                # google-auth refresh is blocking I/O.
                await asyncio.to_thread(self._credentials.refresh, self._auth_request)
                logger.debug("[sheets] access token refreshed")
        return {"Authorization": f"Bearer {self._credentials.token}"}

    async def _find_row(self, application_id: int, headers: dict) -> int | None:
        response = await self._client.get(
            self._values_url(f"{self._sheet_name}!A:A"),
            headers=headers,
            timeout=self._request_timeout,
        )
        response.raise_for_status()
        for index, row in enumerate(response.json().get("values", []), start=1):
            if row and str(row[0]).strip() == str(application_id):
                return index
        return None

    async def update_status(self, application_id: int, status: str) -> None:
        """Raises MirrorError on any failure, including a missing row or a failed token refresh."""
        if not self.enabled:
            logger.debug("[sheets] mirror disabled | id=%s", application_id)
            return
        try:
            headers = await self._auth_headers()
            row = await self._find_row(application_id, headers)
            if row is None:
                raise MirrorError(f"application {application_id} has no row in sheet {self._sheet_name!r}")
            cell = f"{self._sheet_name}!{self._status_column}{row}"
            response = await self._client.put(
                self._values_url(cell),
                params={"valueInputOption": "RAW"},
                json={"range": cell, "values": [[status]]},
                headers=headers,
                timeout=self._request_timeout,
            )
            response.raise_for_status()
        except google.auth.exceptions.GoogleAuthError as exc:
            raise MirrorError(f"sheets auth failed for {application_id}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise MirrorError(f"sheets update failed for {application_id}: {exc}") from exc
        logger.info("[sheets] status mirrored | id=%s | status=%s | row=%d", application_id, status, row)

    async def close(self) -> None:
        await self._client.aclose()
