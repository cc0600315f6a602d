from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.config import settings
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import AuditEvent, Board, BoardMember, Comment, Label, Task, TaskAssignee, TaskLabel, TaskList, User
from kanflow.ordering import lists_on_board
from kanflow.realtime import publish_board_event, publish_user_event
from kanflow.schemas import (
  BoardCreateIn,
  BoardDetailOut,
  BoardOut,
  BoardPageOut,
  BoardUpdateIn,
  MemberAddIn,
  MemberOut,
  PaginationOut,
)
from kanflow.serializers import board_out, label_out, list_out, tasks_out

router = APIRouter(prefix="/boards", tags=["boards"])

DEFAULT_LISTS = ("To Do", "In Progress", "Done")


async def _get_board_or_404(db: AsyncSession, board_id: str) -> Board:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  return b


async def _members(db: AsyncSession, board_id: str) -> list[MemberOut]:
  res = await db.execute(
    select(BoardMember, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id == board_id)
    .order_by(BoardMember.created_at.asc())
  )
  return [MemberOut(userId=u.id, email=u.email, name=u.name, role=m.role) for m, u in res.all()]


async def _delete_board_everything(db: AsyncSession, *, board_id: str) -> None:
  board_tasks = select(Task.id).where(Task.board_id == board_id)
  await db.execute(delete(Comment).where(Comment.task_id.in_(board_tasks)))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id.in_(board_tasks)))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(board_tasks)))
  await db.execute(delete(Task).where(Task.board_id == board_id))
  await db.execute(delete(Label).where(Label.board_id == board_id))
  await db.execute(delete(TaskList).where(TaskList.board_id == board_id))
  await db.execute(delete(AuditEvent).where(AuditEvent.board_id == board_id))
  await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id))
  await db.execute(delete(Board).where(and_(Board.id == board_id)))


@router.get("", response_model=BoardPageOut)
async def list_boards(
  page: int = Query(default=1, ge=1),
  limit: int | None = Query(default=None, ge=1),
  search: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardPageOut:
  limit = min(limit or settings.boards_page_limit_default, settings.boards_page_limit_max)
  q = (
    select(Board, BoardMember.role)
    .join(BoardMember, BoardMember.board_id == Board.id)
    .where(BoardMember.user_id == user.id)
  )
  term = (search or "").strip().lower()
  if term:
    q = q.where(func.lower(Board.title).contains(term))

  total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()
  res = await db.execute(q.order_by(Board.updated_at.desc(), Board.id.asc()).offset((page - 1) * limit).limit(limit))
  boards = [board_out(b, role) for b, role in res.all()]
  return BoardPageOut(
    boards=boards,
    pagination=PaginationOut(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit) if total else 0),
  )


@router.post("", response_model=BoardOut)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = Board(title=payload.title, description=payload.description, color=payload.color, owner_id=user.id)
  db.add(b)
  await db.flush()
  db.add(BoardMember(board_id=b.id, user_id=user.id, role="admin"))

  if payload.defaultLists:
    for idx, title in enumerate(DEFAULT_LISTS):
      db.add(TaskList(board_id=b.id, title=title, position=idx))

  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"title": b.title},
  )
  await db.commit()
  return board_out(b, "admin")


@router.get("/{board_id}", response_model=BoardDetailOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardDetailOut:
  role = await require_board_role(board_id, "viewer", user, db)
  b = await _get_board_or_404(db, board_id)

  lists = await lists_on_board(db, board_id)
  tres = await db.execute(
    select(Task).where(Task.board_id == board_id).order_by(Task.position.asc(), Task.created_at.asc())
  )
  tasks = await tasks_out(db, list(tres.scalars().all()))
  by_list: dict[str, list] = {l.id: [] for l in lists}
  for t in tasks:
    by_list.setdefault(t.listId, []).append(t)

  lres = await db.execute(select(Label).where(Label.board_id == board_id).order_by(Label.name.asc()))
  return BoardDetailOut(
    **board_out(b, role).model_dump(),
    lists=[list_out(l, by_list[l.id]) for l in lists],
    labels=[label_out(l) for l in lres.scalars().all()],
    members=await _members(db, board_id),
  )


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  role = await require_board_role(board_id, "member", user, db)
  b = await _get_board_or_404(db, board_id)
  if payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    b.title = title
  if payload.description is not None:
    b.description = payload.description or None
  if payload.color is not None:
    b.color = payload.color
  await write_audit(
    db, event_type="board.updated", entity_type="Board", entity_id=b.id, board_id=b.id, actor_id=user.id, payload={"title": b.title}
  )
  await db.commit()
  out = board_out(b, role)
  await publish_board_event(b.id, "board:updated", out.model_copy(update={"role": None}))
  return out


@router.delete("/{board_id}")
async def delete_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await require_board_role(board_id, "admin", user, db)
  await _get_board_or_404(db, board_id)

  await _delete_board_everything(db, board_id=board_id)
  await write_audit(db, event_type="board.deleted", entity_type="Board", entity_id=board_id, actor_id=user.id, payload={})
  await db.commit()
  await publish_board_event(board_id, "board:deleted", {"boardId": board_id})
  return {"ok": True}


@router.get("/{board_id}/members", response_model=list[MemberOut])
async def list_members(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  await require_board_role(board_id, "viewer", user, db)
  return await _members(db, board_id)


@router.post("/{board_id}/members", response_model=MemberOut)
async def add_member(
  board_id: str,
  payload: MemberAddIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberOut:
  await require_board_role(board_id, "admin", user, db)
  await _get_board_or_404(db, board_id)
  ures = await db.execute(select(User).where(User.email == payload.email.strip().lower()))
  target = ures.scalar_one_or_none()
  if not target:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

  mres = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == target.id))
  m = mres.scalar_one_or_none()
  if m:
    m.role = payload.role
  else:
    db.add(BoardMember(board_id=board_id, user_id=target.id, role=payload.role))
  await write_audit(
    db,
    event_type="board.member.upserted",
    entity_type="BoardMember",
    entity_id=target.id,
    board_id=board_id,
    actor_id=user.id,
    payload={"email": target.email, "role": payload.role},
  )
  await db.commit()
  out = MemberOut(userId=target.id, email=target.email, name=target.name, role=payload.role)
  await publish_board_event(board_id, "member:added", out)
  # the new member is not in the board room yet; tell their own connections
  await publish_user_event(target.id, "member:added", {"boardId": board_id, **out.model_dump()})
  return out


@router.delete("/{board_id}/members/{user_id}")
async def remove_member(board_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await require_board_role(board_id, "admin", user, db)
  b = await _get_board_or_404(db, board_id)
  if user_id == b.owner_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Board owner cannot be removed")
  res = await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id))
  if not res.rowcount:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
  await write_audit(
    db, event_type="board.member.removed", entity_type="BoardMember", entity_id=user_id, board_id=board_id, actor_id=user.id, payload={}
  )
  await db.commit()
  await publish_board_event(board_id, "member:removed", {"boardId": board_id, "userId": user_id})
  await publish_user_event(user_id, "member:removed", {"boardId": board_id, "userId": user_id})
  return {"ok": True}
