from __future__ import annotations

import asyncio
import logging
import os
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.db import SessionLocal
from kanflow.models import Board, BoardMember, Task, TaskList, User
from kanflow.security import hash_password

logger = logging.getLogger(__name__)

DEMO_BOARD_TITLE = "Kanflow Demo"


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def ensure_user(db: AsyncSession, *, email: str, name: str, password: str) -> tuple[User, bool]:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u:
    return u, False
  u = User(email=email, name=name, password_hash=hash_password(password))
  db.add(u)
  await db.flush()
  return u, True


async def _demo_board(db: AsyncSession, owner: User, member: User) -> None:
  bres = await db.execute(select(Board).where(Board.title == DEMO_BOARD_TITLE, Board.owner_id == owner.id))
  if bres.scalar_one_or_none():
    return
  board = Board(title=DEMO_BOARD_TITLE, description="Sample board", owner_id=owner.id)
  db.add(board)
  await db.flush()
  db.add(BoardMember(board_id=board.id, user_id=owner.id, role="admin"))
  db.add(BoardMember(board_id=board.id, user_id=member.id, role="member"))
  samples = {
    "To Do": [("Write onboarding notes", "medium"), ("Collect feedback", "low")],
    "In Progress": [("Ship drag and drop", "high")],
    "Done": [("Set up project", "medium")],
  }
  for idx, (title, tasks) in enumerate(samples.items()):
    l = TaskList(board_id=board.id, title=title, position=idx)
    db.add(l)
    await db.flush()
    for pos, (task_title, priority) in enumerate(tasks):
      db.add(Task(board_id=board.id, list_id=l.id, title=task_title, priority=priority, position=pos, creator_id=owner.id))


async def seed() -> None:
  async with SessionLocal() as db:
    admin_password, admin_generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    member_password, member_generated = _bootstrap_password("SEED_MEMBER_PASSWORD")

    admin, admin_new = await ensure_user(db, email="admin@kanflow.local", name="Admin", password=admin_password)
    member, member_new = await ensure_user(db, email="member@kanflow.local", name="Member", password=member_password)
    if admin_new:
      logger.warning("created admin@kanflow.local password=%s (generated=%s)", admin_password, str(admin_generated).lower())
    if member_new:
      logger.warning("created member@kanflow.local password=%s (generated=%s)", member_password, str(member_generated).lower())

    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      await _demo_board(db, admin, member)
    await db.commit()


if __name__ == "__main__":
  logging.basicConfig(level=logging.INFO)
  asyncio.run(seed())
