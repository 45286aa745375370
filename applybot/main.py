import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from applybot.api.routes import router
from applybot.config import settings
from applybot.db.connection import run_migrations
from applybot.repositories.application_repository import ApplicationRepository
from applybot.services.connection_supervisor import ConnectionSupervisor
from applybot.services.errors import ConfigurationError
from applybot.services.health_reporter import HealthReporter
from applybot.services.sheets_service import SheetsService, load_service_account_credentials
from applybot.services.telegram_service import TelegramService
from applybot.services.workflow_service import ApplicationWorkflowService


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _check_settings(logger: logging.Logger) -> None:
    if not settings.TELEGRAM_BOT_TOKEN.strip():
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set")
    if settings.ADMIN_TELEGRAM_ID is None:
        logger.warning("ADMIN_TELEGRAM_ID is not set; admins will not be notified of new applications")
    if not settings.APPROVED_CHAT_LINK:
        logger.warning("APPROVED_CHAT_LINK is not set; approved applicants will not receive a chat link")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure_logging()
    logger = logging.getLogger(__name__)
    _check_settings(logger)
    logger.info("applybot starting | db=%s | port=%s", settings.DB_PATH, settings.PORT)
    run_migrations(settings.DB_PATH, busy_timeout_ms=settings.DB_BUSY_TIMEOUT_MS)
    credentials = load_service_account_credentials(
        settings.GOOGLE_SERVICE_ACCOUNT_JSON, settings.GOOGLE_SERVICE_ACCOUNT_FILE
    )

    telegram = TelegramService(settings.TELEGRAM_BOT_TOKEN, base_url=settings.TELEGRAM_API_URL)
    sheets = SheetsService(
        settings.GOOGLE_SHEETS_SPREADSHEET_ID,
        credentials,
        sheet_name=settings.GOOGLE_SHEETS_SHEET_NAME,
        status_column=settings.GOOGLE_SHEETS_STATUS_COLUMN,
    )
    if not sheets.enabled:
        logger.warning("Google Sheets is not configured; status mirroring disabled")

    app.state.repository = ApplicationRepository(settings.DB_PATH, busy_timeout_ms=settings.DB_BUSY_TIMEOUT_MS)
    app.state.workflow = ApplicationWorkflowService(
        app.state.repository,
        mirror=sheets,
        telegram=telegram,
        required_fields=settings.required_fields,
        allow_redecide=settings.ALLOW_REDECIDE,
        admin_chat_id=settings.ADMIN_TELEGRAM_ID,
        approved_chat_link=settings.APPROVED_CHAT_LINK,
    )
    app.state.supervisor = ConnectionSupervisor(
        telegram,
        app.state.workflow.handle_update,
        poll_timeout=settings.POLL_TIMEOUT_SECONDS,
        backoff_base=settings.RECONNECT_BASE_SECONDS,
        backoff_max=settings.RECONNECT_MAX_SECONDS,
    )
    app.state.health_reporter = HealthReporter(app.state.supervisor, stale_after=settings.HEALTH_STALE_SECONDS)

    try:
        await app.state.supervisor.start()
        yield
    finally:
        logger.info("applybot shutting down")
        await app.state.supervisor.stop()
        await app.state.workflow.drain()
        await telegram.close()
        await sheets.close()


def create_app() -> FastAPI:
    app = FastAPI(title="applybot admin", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("applybot.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL)
