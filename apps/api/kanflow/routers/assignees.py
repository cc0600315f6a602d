from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.deps import board_role, get_current_user, get_db, require_board_role
from kanflow.models import Task, TaskAssignee, User
from kanflow.realtime import publish_board_event
from kanflow.routers.tasks import get_task_or_404
from kanflow.schemas import TaskAssigneeIn, TaskOut
from kanflow.serializers import full_task_out

router = APIRouter(tags=["assignees"])


@router.post("/tasks/{task_id}/assignees", response_model=TaskOut)
async def add_assignee(task_id: str, payload: TaskAssigneeIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  res = await db.execute(select(User).where(User.id == payload.userId))
  assignee = res.scalar_one_or_none()
  # only people who can see the board can be assigned to its tasks
  if not assignee or not assignee.active or not await board_role(t.board_id, assignee, db):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee has no board access")

  exists = await db.execute(select(TaskAssignee.id).where(TaskAssignee.task_id == t.id, TaskAssignee.user_id == assignee.id))
  if not exists.scalar_one_or_none():
    db.add(TaskAssignee(task_id=t.id, user_id=assignee.id))
    await _touch(db, t, user, event_type="task.assignee.added", assignee_id=assignee.id)
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:updated", out)
  return out


@router.delete("/tasks/{task_id}/assignees/{user_id}", response_model=TaskOut)
async def remove_assignee(task_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  res = await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == t.id, TaskAssignee.user_id == user_id))
  if res.rowcount:
    await _touch(db, t, user, event_type="task.assignee.removed", assignee_id=user_id)
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:updated", out)
  return out


async def _touch(db: AsyncSession, t: Task, user: User, *, event_type: str, assignee_id: str) -> None:
  t.version += 1
  await write_audit(
    db,
    event_type=event_type,
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"userId": assignee_id},
  )
  await db.commit()
