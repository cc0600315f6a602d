from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.models import Board, Comment, Label, Task, TaskAssignee, TaskLabel, TaskList, User
from kanflow.schemas import AssigneeOut, BoardOut, LabelOut, LabelRefOut, ListOut, TaskOut, UserOut


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, avatarUrl=u.avatar_url, active=bool(u.active))


def board_out(b: Board, role: str | None = None) -> BoardOut:
  return BoardOut(
    id=b.id,
    title=b.title,
    description=b.description,
    color=b.color,
    ownerId=b.owner_id,
    role=role,
    createdAt=b.created_at,
    updatedAt=b.updated_at,
  )


def label_out(l: Label) -> LabelOut:
  return LabelOut(id=l.id, boardId=l.board_id, name=l.name, color=l.color)


def task_out(
  t: Task,
  *,
  labels: list[LabelRefOut] | None = None,
  assignees: list[AssigneeOut] | None = None,
  comment_count: int = 0,
) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    listId=t.list_id,
    title=t.title,
    description=t.description,
    priority=t.priority,
    dueDate=t.due_date,
    position=t.position,
    version=t.version,
    labels=labels or [],
    assignees=assignees or [],
    commentCount=comment_count,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def list_out(l: TaskList, tasks: list[TaskOut] | None = None) -> ListOut:
  return ListOut(id=l.id, boardId=l.board_id, title=l.title, position=l.position, tasks=tasks or [])


@dataclass
class TaskExtras:
  labels: dict[str, list[LabelRefOut]] = field(default_factory=lambda: defaultdict(list))
  assignees: dict[str, list[AssigneeOut]] = field(default_factory=lambda: defaultdict(list))
  counts: dict[str, int] = field(default_factory=dict)


async def task_extras(db: AsyncSession, task_ids: Iterable[str]) -> TaskExtras:
  """Labels, assignees and comment counts for a batch of tasks, three queries total."""
  ids = list(task_ids)
  x = TaskExtras()
  if not ids:
    return x
  lres = await db.execute(
    select(TaskLabel.task_id, Label)
    .join(Label, Label.id == TaskLabel.label_id)
    .where(TaskLabel.task_id.in_(ids))
    .order_by(Label.name.asc())
  )
  for task_id, label in lres.all():
    x.labels[task_id].append(LabelRefOut(id=label.id, name=label.name, color=label.color))
  ares = await db.execute(
    select(TaskAssignee.task_id, User)
    .join(User, User.id == TaskAssignee.user_id)
    .where(TaskAssignee.task_id.in_(ids))
    .order_by(TaskAssignee.created_at.asc())
  )
  for task_id, u in ares.all():
    x.assignees[task_id].append(AssigneeOut(userId=u.id, name=u.name, email=u.email))
  cres = await db.execute(
    select(Comment.task_id, func.count()).where(Comment.task_id.in_(ids)).group_by(Comment.task_id)
  )
  for task_id, n in cres.all():
    x.counts[task_id] = int(n)
  return x


async def tasks_out(db: AsyncSession, tasks: list[Task]) -> list[TaskOut]:
  x = await task_extras(db, [t.id for t in tasks])
  return [
    task_out(t, labels=x.labels.get(t.id), assignees=x.assignees.get(t.id), comment_count=x.counts.get(t.id, 0))
    for t in tasks
  ]


async def full_task_out(db: AsyncSession, t: Task) -> TaskOut:
  return (await tasks_out(db, [t]))[0]
