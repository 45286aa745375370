import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from applybot.schemas.applications import ApplicationOut, DecisionRequest, DecisionResponse, StatsResponse
from applybot.services.errors import AlreadyDecidedError, InvalidDecisionError, NotFoundError
from applybot.services.health_reporter import HealthReporter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    reporter = getattr(request.app.state, "health_reporter", None) or HealthReporter()
    report = reporter.report()
    return JSONResponse(status_code=500 if report.status == "error" else 200, content=report.to_dict())


@router.get("/api/applications", response_model=list[ApplicationOut])
async def list_applications(request: Request) -> list[ApplicationOut]:
    applications = await request.app.state.workflow.list_applications()
    return [ApplicationOut.from_model(a) for a in applications]


@router.get("/api/applications/{application_id}", response_model=ApplicationOut)
async def get_application(application_id: int, request: Request) -> ApplicationOut:
    try:
        application = await request.app.state.workflow.get_application(application_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Application not found")
    return ApplicationOut.from_model(application)


@router.post("/api/applications/{application_id}/status", response_model=DecisionResponse)
async def update_status(application_id: int, payload: DecisionRequest, request: Request) -> DecisionResponse:
    try:
        await request.app.state.workflow.decide(application_id, payload.status, payload.admin_notes)
    except InvalidDecisionError:
        raise HTTPException(status_code=400, detail="Invalid status")
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Application not found")
    except AlreadyDecidedError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    logger.info("[admin] status updated | id=%s | status=%s", application_id, payload.status)
    return DecisionResponse()


@router.get("/api/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse:
    return StatsResponse(**await request.app.state.workflow.stats())
