from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kanflow.audit import write_audit
from kanflow.config import settings
from kanflow.deps import bearer_token, client_ip, get_current_user, get_db
from kanflow.models import Session as DbSession, User
from kanflow.rate_limit import limiter
from kanflow.schemas import AuthOut, LoginIn, RegisterIn, UserOut
from kanflow.security import (
  SESSION_COOKIE_NAME,
  SESSION_TTL_DAYS,
  hash_password,
  new_session_expires_at,
  new_session_token,
  verify_password,
)
from kanflow.serializers import user_out

router = APIRouter(prefix="/auth", tags=["auth"])


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


async def _open_session(db: AsyncSession, u: User, request: Request, response: Response) -> AuthOut:
  s = DbSession(
    id=new_session_token(),
    user_id=u.id,
    created_ip=client_ip(request),
    user_agent=(request.headers.get("user-agent") or "")[:512] or None,
    expires_at=new_session_expires_at(),
  )
  db.add(s)
  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain,
    max_age=SESSION_TTL_DAYS * 24 * 3600,
    path="/",
  )
  return AuthOut(user=user_out(u), token=s.id, expiresAt=s.expires_at)


@router.post("/register", response_model=AuthOut)
async def register(payload: RegisterIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = client_ip(request) or "unknown"
  _rate_limit_or_429(key=f"auth:register:ip:{ip}", limit=int(settings.rate_limit_register_ip_per_minute), window_seconds=60)

  res = await db.execute(select(User.id).where(User.email == payload.email))
  if res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

  u = User(email=payload.email, name=payload.name, password_hash=hash_password(payload.password))
  db.add(u)
  await db.flush()
  out = await _open_session(db, u, request, response)
  await write_audit(db, event_type="auth.registered", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"email": u.email})
  await db.commit()
  return out


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = client_ip(request) or "unknown"
  email_key = (payload.email or "").strip().lower()
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email_key:
    _rate_limit_or_429(key=f"auth:login:email:{email_key}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)

  res = await db.execute(select(User).where(User.email == email_key))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    await write_audit(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, payload={"email": email_key, "ip": ip})
    await db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")

  out = await _open_session(db, u, request, response)
  await write_audit(db, event_type="auth.login", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"ip": ip})
  await db.commit()
  return out


@router.post("/logout")
async def logout(
  request: Request,
  response: Response,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
  token = session_id or bearer_token(request)
  if token:
    await db.execute(delete(DbSession).where(DbSession.id == token))
    await db.commit()
  response.delete_cookie(SESSION_COOKIE_NAME, path="/", domain=settings.cookie_domain)
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)
