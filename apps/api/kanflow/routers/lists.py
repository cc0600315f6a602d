from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import Comment, Task, TaskAssignee, TaskLabel, TaskList, User
from kanflow.ordering import lists_on_board, next_list_position, renumber, tasks_in_list
from kanflow.realtime import publish_board_event
from kanflow.schemas import ListCreateIn, ListOut, ListReorderIn, ListUpdateIn
from kanflow.serializers import list_out, tasks_out

router = APIRouter(tags=["lists"])


async def _get_list_or_404(db: AsyncSession, list_id: str) -> TaskList:
  res = await db.execute(select(TaskList).where(TaskList.id == list_id))
  l = res.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")
  return l


@router.get("/boards/{board_id}/lists", response_model=list[ListOut])
async def list_lists(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ListOut]:
  await require_board_role(board_id, "viewer", user, db)
  out = []
  for l in await lists_on_board(db, board_id):
    out.append(list_out(l, await tasks_out(db, await tasks_in_list(db, l.id))))
  return out


@router.post("/boards/{board_id}/lists", response_model=ListOut)
async def create_list(
  board_id: str,
  payload: ListCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ListOut:
  await require_board_role(board_id, "member", user, db)
  l = TaskList(board_id=board_id, title=payload.title, position=await next_list_position(db, board_id))
  db.add(l)
  await db.flush()
  await write_audit(
    db,
    event_type="list.created",
    entity_type="List",
    entity_id=l.id,
    board_id=board_id,
    actor_id=user.id,
    payload={"title": l.title},
  )
  await db.commit()
  out = list_out(l)
  await publish_board_event(board_id, "list:created", out)
  return out


@router.patch("/lists/{list_id}", response_model=ListOut)
async def update_list(list_id: str, payload: ListUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ListOut:
  l = await _get_list_or_404(db, list_id)
  await require_board_role(l.board_id, "member", user, db)

  if payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    l.title = title

  await write_audit(
    db,
    event_type="list.updated",
    entity_type="List",
    entity_id=l.id,
    board_id=l.board_id,
    actor_id=user.id,
    payload={"title": l.title},
  )
  await db.commit()
  # no tasks in the payload: receivers keep their own copy of the list's tasks
  out = list_out(l)
  await publish_board_event(l.board_id, "list:updated", out)
  return out


@router.delete("/lists/{list_id}")
async def delete_list(list_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  l = await _get_list_or_404(db, list_id)
  await require_board_role(l.board_id, "member", user, db)
  board_id = l.board_id

  list_tasks = select(Task.id).where(Task.list_id == list_id)
  await db.execute(delete(Comment).where(Comment.task_id.in_(list_tasks)))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id.in_(list_tasks)))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(list_tasks)))
  tres = await db.execute(delete(Task).where(Task.list_id == list_id))
  await db.execute(delete(TaskList).where(TaskList.id == list_id))
  renumber([x for x in await lists_on_board(db, board_id) if x.id != list_id])

  await write_audit(
    db,
    event_type="list.deleted",
    entity_type="List",
    entity_id=list_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"title": l.title, "deletedTasks": int(tres.rowcount or 0)},
  )
  await db.commit()
  await publish_board_event(board_id, "list:deleted", {"listId": list_id, "boardId": board_id})
  return {"ok": True}


@router.post("/boards/{board_id}/lists/reorder")
async def reorder_lists(
  board_id: str,
  payload: ListReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await require_board_role(board_id, "member", user, db)
  lists = {l.id: l for l in await lists_on_board(db, board_id)}
  if len(payload.listIds) != len(lists) or set(payload.listIds) != set(lists.keys()):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="listIds must include all lists")
  for idx, list_id in enumerate(payload.listIds):
    lists[list_id].position = idx
  await write_audit(
    db,
    event_type="lists.reordered",
    entity_type="Board",
    entity_id=board_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"listIds": payload.listIds},
  )
  await db.commit()
  positions = [{"id": list_id, "position": idx} for idx, list_id in enumerate(payload.listIds)]
  await publish_board_event(board_id, "list:moved", {"boardId": board_id, "lists": positions})
  return {"ok": True}
