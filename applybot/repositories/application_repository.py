import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime

from applybot.db.connection import DEFAULT_BUSY_TIMEOUT_MS, get_connection
from applybot.models.application import Application, Submitter
from applybot.repositories.base import AbstractApplicationRepository

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_application(row: sqlite3.Row) -> Application:
    return Application(
        id=row["id"],
        submitter=Submitter(
            telegram_user_id=row["telegram_user_id"],
            username=row["telegram_username"],
            chat_id=row["chat_id"],
        ),
        fields=json.loads(row["fields"] or "{}"),
        status=row["status"],
        admin_notes=row["admin_notes"],
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
    )


class ApplicationRepository(AbstractApplicationRepository):
    def __init__(self, db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self._db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms

    def _connect(self):
        return closing(get_connection(self._db_path, self._busy_timeout_ms))

    def create(self, fields: dict, submitter: Submitter) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO applications
                    (telegram_user_id, telegram_username, chat_id, fields, status)
                VALUES (?, ?, ?, ?, 'pending')
                """,
                (
                    submitter.telegram_user_id,
                    submitter.username,
                    submitter.chat_id,
                    json.dumps(fields, ensure_ascii=False),
                ),
            )
            conn.commit()
            return cursor.lastrowid

    def get_all(self) -> list[Application]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM applications ORDER BY created_at DESC, id DESC").fetchall()
        return [_row_to_application(row) for row in rows]

    def get_by_id(self, application_id: int) -> Application | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM applications WHERE id = ?", (application_id,)).fetchone()
        return _row_to_application(row) if row else None

    def update_status(self, application_id: int, status: str, admin_notes: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE applications
                SET status = ?, admin_notes = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (status, admin_notes, application_id),
            )
            conn.commit()

    def count_by_status(self) -> dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS n FROM applications GROUP BY status").fetchall()
        return {row["status"]: row["n"] for row in rows}
