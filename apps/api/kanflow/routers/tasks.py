from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.config import settings
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import Comment, Task, TaskAssignee, TaskLabel, TaskList, User
from kanflow.ordering import next_task_position, place, renumber, tasks_in_list
from kanflow.realtime import publish_board_event
from kanflow.schemas import CommentCreateIn, CommentOut, Priority, TaskCreateIn, TaskMoveIn, TaskOut, TaskUpdateIn
from kanflow.serializers import full_task_out, tasks_out

router = APIRouter(tags=["tasks"])


async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t


def _comment_out(c: Comment, author: User | None) -> CommentOut:
  return CommentOut(
    id=c.id,
    taskId=c.task_id,
    authorId=c.author_id,
    authorName=author.name if author else "Unknown",
    body=c.body,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


def _check_version(t: Task, version: int | None) -> None:
  if version is not None and t.version != version:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")


@router.post("/lists/{list_id}/tasks", response_model=TaskOut)
async def create_task(
  list_id: str,
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  lres = await db.execute(select(TaskList).where(TaskList.id == list_id))
  l = lres.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")
  await require_board_role(l.board_id, "member", user, db)

  t = Task(
    board_id=l.board_id,
    list_id=l.id,
    title=payload.title,
    description=payload.description,
    priority=payload.priority,
    due_date=payload.dueDate,
    position=await next_task_position(db, l.id),
    creator_id=user.id,
  )
  db.add(t)
  await db.flush()
  await write_audit(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"title": t.title, "listId": t.list_id},
  )
  await db.commit()
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:created", out)
  return out


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "viewer", user, db)
  return await full_task_out(db, t)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(task_id: str, payload: TaskUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  _check_version(t, payload.version)

  changed: dict[str, object] = {}
  if payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    t.title = title
    changed["title"] = title
  if payload.description is not None:
    t.description = payload.description or None
    changed["description"] = t.description
  if payload.priority is not None:
    t.priority = payload.priority
    changed["priority"] = t.priority
  if payload.clearDueDate:
    t.due_date = None
    changed["dueDate"] = None
  elif payload.dueDate is not None:
    t.due_date = payload.dueDate
    changed["dueDate"] = t.due_date

  t.version += 1
  await write_audit(
    db,
    event_type="task.updated",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload=changed,
  )
  await db.commit()
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:updated", out)
  return out


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  board_id, list_id = t.board_id, t.list_id

  await db.execute(delete(Comment).where(Comment.task_id == task_id))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id == task_id))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task_id))
  await db.execute(delete(Task).where(Task.id == task_id))
  renumber([x for x in await tasks_in_list(db, list_id) if x.id != task_id])

  await write_audit(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=task_id,
    board_id=board_id,
    task_id=task_id,
    actor_id=user.id,
    payload={"title": t.title, "listId": list_id},
  )
  await db.commit()
  await publish_board_event(board_id, "task:deleted", {"taskId": task_id, "listId": list_id, "boardId": board_id})
  return {"ok": True}


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(task_id: str, payload: TaskMoveIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  _check_version(t, payload.version)

  lres = await db.execute(select(TaskList).where(TaskList.id == payload.listId))
  dest = lres.scalar_one_or_none()
  if not dest or dest.board_id != t.board_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid listId")

  from_list = t.list_id
  # ordering is computed in memory, then written back as sequential positions
  if from_list == dest.id:
    arr = await tasks_in_list(db, from_list)
    to_idx = place(arr, t, payload.position)
    renumber(arr)
  else:
    from_arr = [x for x in await tasks_in_list(db, from_list) if x.id != t.id]
    to_arr = await tasks_in_list(db, dest.id)
    to_idx = place(to_arr, t, payload.position)
    renumber(from_arr)
    renumber(to_arr)
    t.list_id = dest.id

  t.version += 1
  await write_audit(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"fromListId": from_list, "toListId": dest.id, "position": to_idx},
  )
  await db.commit()
  out = await full_task_out(db, t)
  await publish_board_event(t.board_id, "task:moved", {"task": out, "fromListId": from_list, "toListId": dest.id})
  return out


@router.get("/boards/{board_id}/tasks", response_model=list[TaskOut])
async def list_board_tasks(
  board_id: str,
  search: str | None = None,
  priority: Priority | None = None,
  labelId: str | None = None,
  listId: str | None = None,
  dueFrom: datetime | None = None,
  dueTo: datetime | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  await require_board_role(board_id, "viewer", user, db)
  q = select(Task).where(Task.board_id == board_id)
  term = (search or "").strip().lower()
  if term:
    q = q.where(or_(func.lower(Task.title).contains(term), func.lower(func.coalesce(Task.description, "")).contains(term)))
  if priority:
    q = q.where(Task.priority == priority)
  if listId:
    q = q.where(Task.list_id == listId)
  if labelId:
    q = q.where(Task.id.in_(select(TaskLabel.task_id).where(TaskLabel.label_id == labelId)))
  if dueFrom is not None:
    q = q.where(Task.due_date >= dueFrom)
  if dueTo is not None:
    q = q.where(Task.due_date <= dueTo)
  res = await db.execute(q.order_by(Task.list_id.asc(), Task.position.asc()))
  return await tasks_out(db, list(res.scalars().all()))


@router.get("/boards/{board_id}/tasks/search", response_model=list[TaskOut])
async def search_tasks(
  board_id: str,
  q: str = Query(min_length=1),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  await require_board_role(board_id, "viewer", user, db)
  term = q.strip().lower()
  res = await db.execute(
    select(Task)
    .where(
      Task.board_id == board_id,
      or_(func.lower(Task.title).contains(term), func.lower(func.coalesce(Task.description, "")).contains(term)),
    )
    .order_by(Task.updated_at.desc())
    .limit(settings.task_search_limit)
  )
  return await tasks_out(db, list(res.scalars().all()))


async def _broadcast_task_refresh(db: AsyncSession, t: Task) -> None:
  await publish_board_event(t.board_id, "task:updated", await full_task_out(db, t))


@router.get("/tasks/{task_id}/comments", response_model=list[CommentOut])
async def list_comments(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "viewer", user, db)
  res = await db.execute(
    select(Comment, User).outerjoin(User, User.id == Comment.author_id).where(Comment.task_id == task_id).order_by(Comment.created_at.asc())
  )
  return [_comment_out(c, author) for c, author in res.all()]


@router.post("/tasks/{task_id}/comments", response_model=CommentOut)
async def add_comment(
  task_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  t = await get_task_or_404(db, task_id)
  await require_board_role(t.board_id, "member", user, db)
  c = Comment(task_id=task_id, author_id=user.id, body=payload.body)
  db.add(c)
  await db.flush()
  await write_audit(
    db,
    event_type="comment.created",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=task_id,
    actor_id=user.id,
    payload={"body": c.body[:200]},
  )
  await db.commit()
  await _broadcast_task_refresh(db, t)
  return _comment_out(c, user)


@router.patch("/comments/{comment_id}", response_model=CommentOut)
async def update_comment(
  comment_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  res = await db.execute(select(Comment).where(Comment.id == comment_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
  t = await get_task_or_404(db, c.task_id)
  await require_board_role(t.board_id, "member", user, db)
  if c.author_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can edit this comment")
  c.body = payload.body
  await write_audit(
    db,
    event_type="comment.updated",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"body": c.body[:200]},
  )
  await db.commit()
  return _comment_out(c, user)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(select(Comment).where(Comment.id == comment_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
  t = await get_task_or_404(db, c.task_id)
  await require_board_role(t.board_id, "viewer", user, db)
  if c.author_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can delete this comment")
  await db.execute(delete(Comment).where(Comment.id == comment_id))
  await write_audit(
    db,
    event_type="comment.deleted",
    entity_type="Comment",
    entity_id=comment_id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={},
  )
  await db.commit()
  await _broadcast_task_refresh(db, t)
  return {"ok": True}
