from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


def _parse_dt(value: object) -> datetime | None:
  if not value:
    return None
  if isinstance(value, datetime):
    return value
  return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class LabelRef:
  id: str
  name: str
  color: str


@dataclass(frozen=True)
class Assignee:
  user_id: str
  name: str
  email: str


@dataclass(frozen=True)
class TaskState:
  id: str
  list_id: str
  title: str
  position: int
  description: str | None = None
  priority: str = "medium"
  due_date: datetime | None = None
  board_id: str | None = None
  version: int = 0
  labels: tuple[LabelRef, ...] = ()
  assignees: tuple[Assignee, ...] = ()
  comment_count: int = 0

  @classmethod
  def from_api(cls, data: dict[str, Any]) -> TaskState:
    return cls(
      id=data["id"],
      list_id=data["listId"],
      title=data["title"],
      position=int(data.get("position") or 0),
      description=data.get("description"),
      priority=data.get("priority") or "medium",
      due_date=_parse_dt(data.get("dueDate")),
      board_id=data.get("boardId"),
      version=int(data.get("version") or 0),
      labels=tuple(LabelRef(id=l["id"], name=l["name"], color=l["color"]) for l in data.get("labels") or ()),
      assignees=tuple(Assignee(user_id=a["userId"], name=a["name"], email=a["email"]) for a in data.get("assignees") or ()),
      comment_count=int(data.get("commentCount") or 0),
    )

  def placed(self, list_id: str, position: int) -> TaskState:
    if self.list_id == list_id and self.position == position:
      return self
    return replace(self, list_id=list_id, position=position)


@dataclass(frozen=True)
class ListState:
  id: str
  title: str
  position: int
  board_id: str | None = None
  tasks: tuple[TaskState, ...] = ()

  @classmethod
  def from_api(cls, data: dict[str, Any]) -> ListState:
    tasks = sorted((TaskState.from_api(t) for t in data.get("tasks") or ()), key=lambda t: t.position)
    return cls(
      id=data["id"],
      title=data["title"],
      position=int(data.get("position") or 0),
      board_id=data.get("boardId"),
      tasks=tuple(tasks),
    )

  def index_of(self, task_id: str) -> int | None:
    for idx, t in enumerate(self.tasks):
      if t.id == task_id:
        return idx
    return None

  def with_tasks(self, tasks: list[TaskState] | tuple[TaskState, ...]) -> ListState:
    """Copy of this list holding `tasks` in the given order, positions rewritten to 0..n-1."""
    return replace(self, tasks=tuple(t.placed(self.id, idx) for idx, t in enumerate(tasks)))


Lists = tuple[ListState, ...]


@dataclass(frozen=True)
class BoardSummary:
  id: str
  title: str
  color: str = "#6366f1"
  description: str | None = None
  owner_id: str | None = None
  role: str | None = None

  @classmethod
  def from_api(cls, data: dict[str, Any]) -> BoardSummary:
    return cls(
      id=data["id"],
      title=data["title"],
      color=data.get("color") or "#6366f1",
      description=data.get("description"),
      owner_id=data.get("ownerId"),
      role=data.get("role"),
    )


@dataclass(frozen=True)
class Pagination:
  page: int
  limit: int
  total: int
  total_pages: int

  @classmethod
  def from_api(cls, data: dict[str, Any]) -> Pagination:
    return cls(
      page=int(data["page"]),
      limit=int(data["limit"]),
      total=int(data["total"]),
      total_pages=int(data["totalPages"]),
    )


@dataclass(frozen=True)
class Notification:
  level: str
  message: str
  context: dict[str, Any] = field(default_factory=dict, compare=False)


def find_list(lists: Lists, list_id: str) -> ListState | None:
  for l in lists:
    if l.id == list_id:
      return l
  return None


def find_task(lists: Lists, task_id: str) -> tuple[ListState, int] | None:
  for l in lists:
    idx = l.index_of(task_id)
    if idx is not None:
      return l, idx
  return None
