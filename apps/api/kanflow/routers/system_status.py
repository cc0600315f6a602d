from __future__ import annotations

from fastapi import APIRouter, Depends

from kanflow.config import settings
from kanflow.deps import get_current_user
from kanflow.metrics import runtime_metrics
from kanflow.models import User
from kanflow.realtime import hub
from kanflow.schemas import SystemStatusOut

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status", response_model=SystemStatusOut)
async def system_status(user: User = Depends(get_current_user)) -> SystemStatusOut:
  return SystemStatusOut(
    version=settings.app_version,
    buildSha=settings.build_sha,
    startedAt=runtime_metrics.started_at,
    uptimeSeconds=runtime_metrics.uptime_seconds(),
    requests=runtime_metrics.snapshot(),
    realtime={**hub.snapshot(), **runtime_metrics.realtime_snapshot()},
  )
