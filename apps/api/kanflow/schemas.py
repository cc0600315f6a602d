from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Priority = Literal["low", "medium", "high", "urgent"]
Role = Literal["viewer", "member", "admin"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _strip_required(value: str) -> str:
  s = (value or "").strip()
  if not s:
    raise ValueError("must not be blank")
  return s


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  avatarUrl: str | None = None
  active: bool = True


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  name: str = Field(min_length=1, max_length=120)
  password: str = Field(min_length=8, max_length=256)

  @field_validator("email")
  @classmethod
  def _email_shape(cls, v: str) -> str:
    s = v.strip().lower()
    if "@" not in s or s.startswith("@") or s.endswith("@"):
      raise ValueError("invalid email")
    return s

  @field_validator("name")
  @classmethod
  def _name_required(cls, v: str) -> str:
    return _strip_required(v)


class LoginIn(BaseModel):
  email: str
  password: str


class AuthOut(BaseModel):
  user: UserOut
  token: str
  expiresAt: datetime


class MemberOut(BaseModel):
  userId: str
  email: str
  name: str
  role: str


class MemberAddIn(BaseModel):
  email: str
  role: Role = "member"


class LabelRefOut(BaseModel):
  id: str
  name: str
  color: str


class LabelOut(BaseModel):
  id: str
  boardId: str
  name: str
  color: str


class LabelCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=64)
  color: str = Field(default="#64748b", max_length=32)

  @field_validator("name")
  @classmethod
  def _name_required(cls, v: str) -> str:
    return _strip_required(v)


class LabelUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=64)
  color: str | None = Field(default=None, max_length=32)


class TaskLabelIn(BaseModel):
  labelId: str


class AssigneeOut(BaseModel):
  userId: str
  name: str
  email: str


class TaskAssigneeIn(BaseModel):
  userId: str


class TaskOut(BaseModel):
  id: str
  boardId: str
  listId: str
  title: str
  description: str | None
  priority: str
  dueDate: datetime | None
  position: int
  version: int
  labels: list[LabelRefOut] = []
  assignees: list[AssigneeOut] = []
  commentCount: int = 0
  createdAt: datetime
  updatedAt: datetime


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  priority: Priority = "medium"
  dueDate: datetime | None = None

  @field_validator("title")
  @classmethod
  def _title_required(cls, v: str) -> str:
    return _strip_required(v)

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  priority: Priority | None = None
  dueDate: datetime | None = None
  clearDueDate: bool = False
  version: int | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskMoveIn(BaseModel):
  listId: str
  position: int = Field(ge=0)
  version: int | None = None


class ListOut(BaseModel):
  id: str
  boardId: str
  title: str
  position: int
  tasks: list[TaskOut] = []


class ListCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)

  @field_validator("title")
  @classmethod
  def _title_required(cls, v: str) -> str:
    return _strip_required(v)


class ListUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=200)


class ListReorderIn(BaseModel):
  listIds: list[str]


class BoardOut(BaseModel):
  id: str
  title: str
  description: str | None
  color: str
  ownerId: str
  role: str | None = None
  createdAt: datetime
  updatedAt: datetime


class BoardDetailOut(BoardOut):
  lists: list[ListOut] = []
  labels: list[LabelOut] = []
  members: list[MemberOut] = []


class PaginationOut(BaseModel):
  page: int
  limit: int
  total: int
  totalPages: int


class BoardPageOut(BaseModel):
  boards: list[BoardOut]
  pagination: PaginationOut


class BoardCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)
  description: str | None = None
  color: str = Field(default="#6366f1", max_length=32)
  defaultLists: bool = True

  @field_validator("title")
  @classmethod
  def _title_required(cls, v: str) -> str:
    return _strip_required(v)


class BoardUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = None
  color: str | None = Field(default=None, max_length=32)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  authorName: str
  body: str
  createdAt: datetime
  updatedAt: datetime


class CommentCreateIn(BaseModel):
  body: str = Field(min_length=1, max_length=10000)

  @field_validator("body")
  @classmethod
  def _body_required(cls, v: str) -> str:
    return _strip_required(v)


class AuditOut(BaseModel):
  id: str
  boardId: str | None
  taskId: str | None
  actorId: str | None
  eventType: str
  entityType: str
  entityId: str | None
  payload: dict[str, Any]
  createdAt: datetime


class ActivityPageOut(BaseModel):
  activities: list[AuditOut]
  pagination: PaginationOut


class AIPlanIn(BaseModel):
  goal: str = Field(min_length=3, max_length=4000)
  apply: bool = False


class AIPlanTaskOut(BaseModel):
  title: str
  description: str | None = None
  priority: Priority = "medium"
  dueOffsetDays: int | None = None


class AIPlanListOut(BaseModel):
  title: str
  tasks: list[AIPlanTaskOut] = []


class AIPlanOut(BaseModel):
  boardId: str
  summary: str
  lists: list[AIPlanListOut]
  applied: bool = False
  createdListIds: list[str] = []
  createdTaskIds: list[str] = []


class SystemStatusOut(BaseModel):
  version: str
  buildSha: str
  startedAt: datetime
  uptimeSeconds: int
  requests: dict[str, Any]
  realtime: dict[str, Any]
