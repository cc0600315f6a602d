from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.ai.planner import AIPlanParseError, build_plan_prompt, normalize_plan, parse_json_reply
from kanflow.ai.providers import get_ai_provider
from kanflow.audit import write_audit
from kanflow.deps import get_current_user, get_db, require_board_role
from kanflow.models import Board, Task, TaskList, User
from kanflow.ordering import lists_on_board, next_list_position, next_task_position
from kanflow.realtime import publish_board_event
from kanflow.schemas import AIPlanIn, AIPlanOut
from kanflow.serializers import list_out, tasks_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/boards/{board_id}/plan", response_model=AIPlanOut)
async def plan_board(board_id: str, payload: AIPlanIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> AIPlanOut:
  await require_board_role(board_id, "member" if payload.apply else "viewer", user, db)
  bres = await db.execute(select(Board).where(Board.id == board_id))
  if not bres.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")

  lists = await lists_on_board(db, board_id)
  titles = [l.title for l in lists]
  provider = get_ai_provider()
  reply = await provider.generate(
    prompt=build_plan_prompt(payload.goal, titles),
    context={"kind": "board_plan", "goal": payload.goal, "lists": titles},
  )
  try:
    summary, planned = normalize_plan(parse_json_reply(reply))
  except AIPlanParseError as exc:
    logger.warning("unparsable AI plan for board %s: %s", board_id, reply[:200])
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

  out = AIPlanOut(boardId=board_id, summary=summary, lists=planned)
  if not payload.apply:
    return out

  by_title = {l.title.strip().lower(): l for l in lists}
  new_lists: list[TaskList] = []
  new_tasks: list[Task] = []
  now = datetime.now(timezone.utc)
  for pl in planned:
    target = by_title.get(pl.title.strip().lower())
    if target is None:
      target = TaskList(board_id=board_id, title=pl.title, position=await next_list_position(db, board_id))
      db.add(target)
      await db.flush()
      by_title[pl.title.strip().lower()] = target
      new_lists.append(target)
    pos = await next_task_position(db, target.id)
    for pt in pl.tasks:
      t = Task(
        board_id=board_id,
        list_id=target.id,
        title=pt.title,
        description=pt.description,
        priority=pt.priority,
        due_date=(now + timedelta(days=pt.dueOffsetDays)) if pt.dueOffsetDays is not None else None,
        position=pos,
        creator_id=user.id,
      )
      db.add(t)
      new_tasks.append(t)
      pos += 1
    await db.flush()

  await write_audit(
    db,
    event_type="ai.plan.applied",
    entity_type="Board",
    entity_id=board_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"goal": payload.goal[:200], "lists": len(new_lists), "tasks": len(new_tasks)},
  )
  await db.commit()

  for l in new_lists:
    await publish_board_event(board_id, "list:created", list_out(l))
  for t in await tasks_out(db, new_tasks):
    await publish_board_event(board_id, "task:created", t)

  out.applied = True
  out.createdListIds = [l.id for l in new_lists]
  out.createdTaskIds = [t.id for t in new_tasks]
  return out
