from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "kf_session"
SESSION_TTL_DAYS = 14


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def new_session_token() -> str:
  return "kfs_" + secrets.token_urlsafe(32)


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=SESSION_TTL_DAYS)


def as_utc(value: datetime) -> datetime:
  # sqlite hands back naive datetimes
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)


def session_expired(expires_at: datetime, *, now: datetime | None = None) -> bool:
  return as_utc(expires_at) < (now or datetime.now(timezone.utc))
