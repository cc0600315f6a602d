from __future__ import annotations

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.db import SessionLocal
from kanflow.models import BoardMember, Session as DbSession, User
from kanflow.security import SESSION_COOKIE_NAME, session_expired

ROLE_ORDER = {"viewer": 0, "member": 1, "admin": 2}


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if auth and auth.lower().startswith("bearer "):
    token = auth.split(" ", 1)[1].strip()
    return token or None
  return None


async def user_for_session(db: AsyncSession, token: str | None) -> User:
  """Resolve a session token to its user, raising 401/403 the way HTTP handlers expect."""
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

  res = await db.execute(select(DbSession).where(DbSession.id == token))
  s = res.scalar_one_or_none()
  if not s:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
  if session_expired(s.expires_at):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")

  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
  return u


async def get_current_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  return await user_for_session(db, session_id or bearer_token(request))


async def board_role(board_id: str, user: User, db: AsyncSession) -> str | None:
  res = await db.execute(
    select(BoardMember.role).where(BoardMember.board_id == board_id, BoardMember.user_id == user.id)
  )
  return res.scalar_one_or_none()


async def require_board_role(
  board_id: str,
  min_role: str,
  user: User,
  db: AsyncSession,
) -> str:
  # role order: viewer < member < admin
  role = await board_role(board_id, user, db)
  if not role:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No board access")
  if ROLE_ORDER.get(role, -1) < ROLE_ORDER.get(min_role, 0):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
  return role


def client_ip(request: Request) -> str | None:
  return request.client.host if request.client else None
