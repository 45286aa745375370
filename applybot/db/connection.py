import logging
import sqlite3
from contextlib import closing
from pathlib import Path

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = Path(__file__).parent / "migrations"

DEFAULT_BUSY_TIMEOUT_MS = 5000


def get_connection(db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> sqlite3.Connection:
    """Open a WAL connection usable from worker threads. Writers wait up to busy_timeout_ms for a lock."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    return conn


def run_migrations(db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> list[str]:
    """Apply unapplied *.sql files in filename order. Returns the names applied."""
    newly_applied: list[str] = []
    with closing(get_connection(db_path, busy_timeout_ms)) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _schema_migrations (
                filename   TEXT PRIMARY KEY,
                applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.commit()

        applied = {row["filename"] for row in conn.execute("SELECT filename FROM _schema_migrations")}
        pending = [p for p in sorted(_MIGRATIONS_DIR.glob("*.sql")) if p.name not in applied]
        if not pending:
            logger.debug("[db] schema up to date | db=%s", db_path)

        for migration_path in pending:
            logger.info("[db] applying migration | file=%s", migration_path.name)
            conn.executescript(migration_path.read_text(encoding="utf-8"))
            conn.execute("INSERT INTO _schema_migrations (filename) VALUES (?)", (migration_path.name,))
            conn.commit()
            newly_applied.append(migration_path.name)
    return newly_applied
