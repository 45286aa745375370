from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PORT: int = 3000
    DB_PATH: str = "./data/applybot.db"
    DB_BUSY_TIMEOUT_MS: int = 5000
    LOG_LEVEL: str = "info"

    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    ADMIN_TELEGRAM_ID: int | None = None
    APPROVED_CHAT_LINK: str | None = None
    POLL_TIMEOUT_SECONDS: int = 30
    RECONNECT_BASE_SECONDS: float = 1.0
    RECONNECT_MAX_SECONDS: float = 60.0

    GOOGLE_SHEETS_SPREADSHEET_ID: str | None = None
    GOOGLE_SERVICE_ACCOUNT_JSON: str | None = None
    GOOGLE_SERVICE_ACCOUNT_FILE: str | None = None
    GOOGLE_SHEETS_SHEET_NAME: str = "Applications"
    GOOGLE_SHEETS_STATUS_COLUMN: str = "F"

    REQUIRED_FIELDS: str = "name,contact,about"
    ALLOW_REDECIDE: bool = True
    HEALTH_STALE_SECONDS: float = 600.0

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(f.strip() for f in self.REQUIRED_FIELDS.split(",") if f.strip())


settings = Settings()
