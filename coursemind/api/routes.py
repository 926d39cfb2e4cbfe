"""FastAPI routes for CourseMind.

``POST /api/materials/process`` is the ingestion trigger: an external
scheduler (cron) calls it periodically and each call runs one scheduler
batch.  When ``CRON_SECRET`` is set the caller must present it, either as
``x-cron-secret`` or as ``Authorization: Bearer <secret>``.  With no
secret configured the endpoint is open and network access has to be
restricted elsewhere.

Services are resolved from ``app.state`` via ``Depends``.
"""

from __future__ import annotations

import hmac
import re
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from coursemind.api.schemas import ErrorResponse, HealthResponse, ProcessMaterialsResponse
from coursemind.config.settings import Settings
from coursemind.pipeline.scheduler import MaterialJobScheduler

router = APIRouter(prefix="/api")

_BEARER_RE = re.compile(r"^Bearer\s+(.+?)\s*$", re.IGNORECASE)


def _get_scheduler(request: Request) -> MaterialJobScheduler:
    return request.app.state.scheduler


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


SchedulerDep = Annotated[MaterialJobScheduler, Depends(_get_scheduler)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


def provided_cron_secret(request: Request) -> str | None:
    """Return the secret presented by the caller, if any.

    ``x-cron-secret`` wins over ``Authorization``.  The bearer scheme is
    matched case-insensitively and the token is trimmed.
    """
    header_secret = request.headers.get("x-cron-secret")
    if header_secret:
        return header_secret

    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization.strip())
    return match.group(1).strip() if match else None


def is_authorized(request: Request, secret: str) -> bool:
    if not secret:
        return True
    provided = provided_cron_secret(request)
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8"))


@router.post(
    "/materials/process",
    response_model=ProcessMaterialsResponse,
    responses={401: {"model": ErrorResponse}},
)
async def process_materials(
    request: Request,
    scheduler: SchedulerDep,
    settings: SettingsDep,
) -> ProcessMaterialsResponse | JSONResponse:
    """Run one ingestion batch."""
    if not is_authorized(request, settings.cron_secret):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    summary = await scheduler.run_batch()
    return ProcessMaterialsResponse(processed=summary.processed, failures=summary.failures)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok")
