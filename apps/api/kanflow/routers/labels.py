from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import Label, Task, TaskLabel, User
from kanflow.realtime import publish_board_event
from kanflow.routers.tasks import get_task_or_404
from kanflow.schemas import LabelCreateIn, LabelOut, LabelUpdateIn, TaskLabelIn, TaskOut
from kanflow.serializers import full_task_out, label_out

router = APIRouter(tags=["labels"])


async def _get_label_or_404(db: AsyncSession, label_id: str) -> Label:
  res = await db.execute(select(Label).where(Label.id == label_id))
  l = res.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Label not found")
  return l


async def _ensure_name_free(db: AsyncSession, board_id: str, name: str, *, exclude_id: str | None = None) -> None:
  q = select(Label.id).where(Label.board_id == board_id, Label.name == name)
  if exclude_id:
    q = q.where(Label.id != exclude_id)
  if (await db.execute(q)).scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Label name already exists")


@router.get("/boards/{board_id}/labels", response_model=list[LabelOut])
async def list_labels(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[LabelOut]:
  await require_board_role(board_id, "viewer", user, db)
  res = await db.execute(select(Label).where(Label.board_id == board_id).order_by(Label.name.asc()))
  return [label_out(l) for l in res.scalars().all()]


@router.post("/boards/{board_id}/labels", response_model=LabelOut)
async def create_label(
  board_id: str,
  payload: LabelCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  await require_board_role(board_id, "member", user, db)
  await _ensure_name_free(db, board_id, payload.name)
  l = Label(board_id=board_id, name=payload.name, color=payload.color)
  db.add(l)
  await db.flush()
  await write_audit(
    db, event_type="label.created", entity_type="Label", entity_id=l.id, board_id=board_id, actor_id=user.id, payload={"name": l.name}
  )
  await db.commit()
  out = label_out(l)
  await publish_board_event(board_id, "label:created", out)
  return out


@router.patch("/labels/{label_id}", response_model=LabelOut)
async def update_label(label_id: str, payload: LabelUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> LabelOut:
  l = await _get_label_or_404(db, label_id)
  await require_board_role(l.board_id, "member", user, db)
  if payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
    await _ensure_name_free(db, l.board_id, name, exclude_id=l.id)
    l.name = name
  if payload.color is not None:
    l.color = payload.color
  await write_audit(
    db, event_type="label.updated", entity_type="Label", entity_id=l.id, board_id=l.board_id, actor_id=user.id, payload={"name": l.name}
  )
  await db.commit()
  out = label_out(l)
  await publish_board_event(l.board_id, "label:updated", out)
  return out


@router.delete("/labels/{label_id}")
async def delete_label(label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  l = await _get_label_or_404(db, label_id)
  await require_board_role(l.board_id, "member", user, db)
  await db.execute(delete(TaskLabel).where(TaskLabel.label_id == label_id))
  await db.execute(delete(Label).where(Label.id == label_id))
  await write_audit(
    db, event_type="label.deleted", entity_type="Label", entity_id=label_id, board_id=l.board_id, actor_id=user.id, payload={"name": l.name}
  )
  await db.commit()
  await publish_board_event(l.board_id, "label:deleted", {"labelId": label_id, "boardId": l.board_id})
  return {"ok": True}


@router.post("/tasks/{task_id}/labels", response_model=TaskOut)
async def attach_label(task_id: str, payload: TaskLabelIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  l = await _get_label_or_404(db, payload.labelId)
  if l.board_id != t.board_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Label belongs to another board")

  exists = await db.execute(select(TaskLabel.id).where(TaskLabel.task_id == t.id, TaskLabel.label_id == l.id))
  if not exists.scalar_one_or_none():
    db.add(TaskLabel(task_id=t.id, label_id=l.id))
    await _touch(db, t, user, event_type="task.label.added", label=l)
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:updated", out)
  return out


@router.delete("/tasks/{task_id}/labels/{label_id}", response_model=TaskOut)
async def detach_label(task_id: str, label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  l = await _get_label_or_404(db, label_id)
  res = await db.execute(delete(TaskLabel).where(TaskLabel.task_id == t.id, TaskLabel.label_id == label_id))
  if res.rowcount:
    await _touch(db, t, user, event_type="task.label.removed", label=l)
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:updated", out)
  return out


async def _touch(db: AsyncSession, t: Task, user: User, *, event_type: str, label: Label) -> None:
  t.version += 1
  await write_audit(
    db,
    event_type=event_type,
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"labelId": label.id, "name": label.name},
  )
  await db.commit()
