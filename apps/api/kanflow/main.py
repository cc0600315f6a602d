from __future__ import annotations

import logging
from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from kanflow.ai.providers import AIProviderError
from kanflow.config import settings
from kanflow.db import engine
from kanflow.metrics import runtime_metrics
from kanflow.models import Base
from kanflow.routers.activity import router as activity_router
from kanflow.routers.assignees import router as assignees_router
from kanflow.routers.ai import router as ai_router
from kanflow.routers.auth import router as auth_router
from kanflow.routers.boards import router as boards_router
from kanflow.routers.labels import router as labels_router
from kanflow.routers.lists import router as lists_router
from kanflow.routers.realtime import router as realtime_router
from kanflow.routers.system_status import router as system_status_router
from kanflow.routers.tasks import router as tasks_router

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Kanflow API", version="0.1.0")


@app.exception_handler(AIProviderError)
async def _ai_provider_error_handler(_, exc: AIProviderError) -> JSONResponse:
  return JSONResponse(status_code=502, content={"detail": exc.message})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(boards_router)
app.include_router(lists_router)
app.include_router(tasks_router)
app.include_router(labels_router)
app.include_router(assignees_router)
app.include_router(activity_router)
app.include_router(ai_router)
app.include_router(realtime_router)
app.include_router(system_status_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_request(response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_sqlite() -> bool:
  return settings.database_url.startswith("sqlite")


@app.on_event("startup")
async def _startup() -> None:
  # Postgres schema is owned by alembic; sqlite dev/test databases are created on the fly.
  if _is_sqlite():
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
  logger.info("kanflow api %s (%s) started, ai provider=%s", settings.app_version, settings.build_sha, settings.ai_provider)
