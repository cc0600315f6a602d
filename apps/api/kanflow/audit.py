from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.models import AuditEvent
from kanflow.schemas import AuditOut


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_type: str,
  entity_id: str | None,
  board_id: str | None = None,
  task_id: str | None = None,
  actor_id: str | None = None,
  payload: dict[str, Any] | None = None,
) -> AuditEvent:
  """Stage an activity row on the session; the caller's commit persists it with the change."""
  ev = AuditEvent(
    board_id=board_id,
    task_id=task_id,
    actor_id=actor_id,
    event_type=event_type,
    entity_type=entity_type,
    entity_id=entity_id,
    payload=jsonable_encoder(payload or {}),
  )
  db.add(ev)
  return ev


def audit_out(ev: AuditEvent) -> AuditOut:
  return AuditOut(
    id=ev.id,
    boardId=ev.board_id,
    taskId=ev.task_id,
    actorId=ev.actor_id,
    eventType=ev.event_type,
    entityType=ev.entity_type,
    entityId=ev.entity_id,
    payload=ev.payload,
    createdAt=ev.created_at,
  )


async def board_activity_page(
  db: AsyncSession,
  board_id: str,
  *,
  task_id: str | None = None,
  page: int = 1,
  limit: int = 50,
) -> tuple[list[AuditEvent], int]:
  """One page of a board's activity, newest first, plus the total row count for the filter."""
  q = select(AuditEvent).where(AuditEvent.board_id == board_id)
  if task_id:
    q = q.where(AuditEvent.task_id == task_id)
  total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()
  res = await db.execute(
    q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).offset((page - 1) * limit).limit(limit)
  )
  return list(res.scalars().all()), total
