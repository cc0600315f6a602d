from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from kanflow.db import SessionLocal
from kanflow.deps import require_board_role, user_for_session
from kanflow.models import User
from kanflow.realtime import board_room, hub
from kanflow.security import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

WS_UNAUTHORIZED = 4401


async def _authenticate(websocket: WebSocket, token: str | None) -> User | None:
  token = token or websocket.cookies.get(SESSION_COOKIE_NAME)
  async with SessionLocal() as db:
    try:
      return await user_for_session(db, token)
    except HTTPException as exc:
      logger.info("websocket rejected: %s", exc.detail)
      return None


async def _join_board(websocket: WebSocket, user: User, board_id: str) -> None:
  async with SessionLocal() as db:
    try:
      role = await require_board_role(board_id, "viewer", user, db)
    except HTTPException as exc:
      await hub.send(websocket, "error", {"type": "board:join", "boardId": board_id, "message": exc.detail})
      return
  hub.join(websocket, board_room(board_id))
  logger.debug("user %s joined board %s", user.id, board_id)
  await hub.send(websocket, "board:joined", {"boardId": board_id, "role": role})


@router.websocket("/ws")
async def board_socket(websocket: WebSocket, token: str | None = None) -> None:
  user = await _authenticate(websocket, token)
  if user is None:
    await websocket.close(code=WS_UNAUTHORIZED)
    return

  await websocket.accept()
  hub.register(websocket, user_id=user.id)
  logger.info("websocket connected for user %s (%d open)", user.id, hub.connection_count())
  try:
    while True:
      try:
        msg = await websocket.receive_json()
      except ValueError:
        await hub.send(websocket, "error", {"message": "Invalid JSON"})
        continue
      kind = msg.get("type") if isinstance(msg, dict) else None
      board_id = str(msg.get("boardId") or "") if isinstance(msg, dict) else ""
      if kind == "ping":
        await hub.send(websocket, "pong", {})
      elif kind == "board:join" and board_id:
        await _join_board(websocket, user, board_id)
      elif kind == "board:leave" and board_id:
        hub.leave(websocket, board_room(board_id))
        await hub.send(websocket, "board:left", {"boardId": board_id})
      else:
        await hub.send(websocket, "error", {"message": "Unknown message"})
  except WebSocketDisconnect:
    pass
  finally:
    hub.disconnect(websocket)
    logger.info("websocket closed for user %s (%d open)", user.id, hub.connection_count())
