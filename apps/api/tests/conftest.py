from __future__ import annotations

import os
import sys
from pathlib import Path

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./kanflow_test.db")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

from kanflow.config import settings
from kanflow.db import SessionLocal, engine
from kanflow.main import app
from kanflow.models import (
  AuditEvent,
  Base,
  Board,
  BoardMember,
  Comment,
  Label,
  Session,
  Task,
  TaskAssignee,
  TaskLabel,
  TaskList,
  User,
)
from kanflow.rate_limit import limiter
from kanflow.realtime import hub
from kanflow.seed import ensure_user

SEEDED = {
  "admin@kanflow.local": ("Admin", "admin1234"),
  "member@kanflow.local": ("Member", "member1234"),
}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    # Keep seeded users; wipe everything else for deterministic tests.
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Comment))
    await db.execute(delete(TaskAssignee))
    await db.execute(delete(TaskLabel))
    await db.execute(delete(Label))
    await db.execute(delete(Task))
    await db.execute(delete(TaskList))
    await db.execute(delete(BoardMember))
    await db.execute(delete(Board))
    await db.execute(delete(Session))
    await db.execute(delete(User).where(User.email.notin_(list(SEEDED))))
    await db.execute(update(User).where(User.email.in_(list(SEEDED))).values(active=True))
    for email, (name, password) in SEEDED.items():
      await ensure_user(db, email=email, name=name, password=password)
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. kanflow_test)."
    )
  await _reset_db()
  yield
  for ws in list(hub._joined):
    hub.disconnect(ws)
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, email: str, password: str) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "kf_session=" in cookie
  # httpx keeps the cookie; the body carries the bearer token for non-browser clients
  return res.json()


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    u = res.scalar_one()
    return u.id


async def make_board(client: AsyncClient, title: str = "Board", **extra) -> dict:
  res = await client.post("/boards", json={"title": title, **extra})
  assert res.status_code == 200, res.text
  board = res.json()
  detail = (await client.get(f"/boards/{board['id']}")).json()
  return detail


async def make_task(client: AsyncClient, list_id: str, title: str, **extra) -> dict:
  res = await client.post(f"/lists/{list_id}/tasks", json={"title": title, **extra})
  assert res.status_code == 200, res.text
  return res.json()


async def list_titles(client: AsyncClient, board_id: str) -> dict[str, list[str]]:
  """List id -> task titles in position order, straight from the server."""
  lists = (await client.get(f"/boards/{board_id}/lists")).json()
  return {l["id"]: [t["title"] for t in sorted(l["tasks"], key=lambda t: t["position"])] for l in lists}


class FakeSocket:
  """Stands in for a websocket in the hub; records everything sent to it."""

  def __init__(self, *, fail: bool = False) -> None:
    self.sent: list[dict] = []
    self.fail = fail

  async def send_json(self, data, mode: str = "text") -> None:
    if self.fail:
      raise RuntimeError("socket closed")
    self.sent.append(data)

  def events(self) -> list[str]:
    return [m["event"] for m in self.sent]
