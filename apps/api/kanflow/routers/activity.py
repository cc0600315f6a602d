from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import audit_out, board_activity_page
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import User
from kanflow.schemas import ActivityPageOut, PaginationOut

router = APIRouter(tags=["activity"])


@router.get("/boards/{board_id}/activity", response_model=ActivityPageOut)
async def board_activity(
  board_id: str,
  taskId: str | None = None,
  page: int = Query(default=1, ge=1),
  limit: int = Query(default=50, ge=1, le=200),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ActivityPageOut:
  await require_board_role(board_id, "viewer", user, db)
  events, total = await board_activity_page(db, board_id, task_id=taskId, page=page, limit=limit)
  return ActivityPageOut(
    activities=[audit_out(ev) for ev in events],
    pagination=PaginationOut(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit) if total else 0),
  )
