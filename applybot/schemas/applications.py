from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from applybot.models.application import Application


class DecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    admin_notes: str | None = Field(default=None, alias="adminNotes")

    @field_validator("admin_notes")
    @classmethod
    def blank_notes_to_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class DecisionResponse(BaseModel):
    success: bool = True


class ApplicationOut(BaseModel):
    id: int
    telegram_user_id: int | None = None
    telegram_username: str | None = None
    fields: dict = {}
    status: str
    admin_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, application: Application) -> "ApplicationOut":
        return cls(
            id=application.id,
            telegram_user_id=application.submitter.telegram_user_id,
            telegram_username=application.submitter.username,
            fields=application.fields,
            status=application.status,
            admin_notes=application.admin_notes,
            created_at=application.created_at,
            updated_at=application.updated_at,
        )


class StatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
