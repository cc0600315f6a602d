from __future__ import annotations

from typing import Protocol, Sequence, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.models import Task, TaskList


class Positioned(Protocol):
  id: str
  position: int


P = TypeVar("P", bound=Positioned)


def renumber(items: Sequence[Positioned]) -> None:
  for idx, x in enumerate(items):
    if x.position != idx:
      x.position = idx


def place(items: list[P], item: P, index: int) -> int:
  """Remove `item` (by id) from `items` and reinsert it at `index`, clamped. Returns the index used."""
  items[:] = [x for x in items if x.id != item.id]
  idx = min(max(index, 0), len(items))
  items.insert(idx, item)
  return idx


async def tasks_in_list(db: AsyncSession, list_id: str) -> list[Task]:
  res = await db.execute(
    select(Task).where(Task.list_id == list_id).order_by(Task.position.asc(), Task.created_at.asc())
  )
  return list(res.scalars().all())


async def lists_on_board(db: AsyncSession, board_id: str) -> list[TaskList]:
  res = await db.execute(
    select(TaskList).where(TaskList.board_id == board_id).order_by(TaskList.position.asc(), TaskList.created_at.asc())
  )
  return list(res.scalars().all())


async def next_task_position(db: AsyncSession, list_id: str) -> int:
  res = await db.execute(select(func.max(Task.position)).where(Task.list_id == list_id))
  max_pos = res.scalar_one()
  return (max_pos + 1) if max_pos is not None else 0


async def next_list_position(db: AsyncSession, board_id: str) -> int:
  res = await db.execute(select(func.max(TaskList.position)).where(TaskList.board_id == board_id))
  max_pos = res.scalar_one()
  return (max_pos + 1) if max_pos is not None else 0
