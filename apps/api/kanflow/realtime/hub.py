from __future__ import annotations

import logging
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder

from kanflow.metrics import runtime_metrics

logger = logging.getLogger(__name__)


class Socket(Protocol):
  async def send_json(self, data: Any, mode: str = "text") -> None: ...


def board_room(board_id: str) -> str:
  return f"board:{board_id}"


def user_room(user_id: str) -> str:
  return f"user:{user_id}"


class RealtimeHub:
  """
  Process-local room registry for websocket fan-out.

  A socket may sit in any number of rooms; every connection is also placed in its
  user's room. Messages are `{"event": name, "data": payload}`. A socket whose send
  fails is removed from every room it joined.
  """

  def __init__(self) -> None:
    self._rooms: dict[str, set[Socket]] = {}
    self._joined: dict[Socket, set[str]] = {}

  def register(self, ws: Socket, *, user_id: str) -> None:
    self._joined.setdefault(ws, set())
    self.join(ws, user_room(user_id))

  def join(self, ws: Socket, room: str) -> None:
    self._rooms.setdefault(room, set()).add(ws)
    self._joined.setdefault(ws, set()).add(room)

  def leave(self, ws: Socket, room: str) -> None:
    members = self._rooms.get(room)
    if members is not None:
      members.discard(ws)
      if not members:
        del self._rooms[room]
    rooms = self._joined.get(ws)
    if rooms is not None:
      rooms.discard(room)

  def disconnect(self, ws: Socket) -> None:
    for room in list(self._joined.get(ws, ())):
      self.leave(ws, room)
    self._joined.pop(ws, None)

  def rooms_of(self, ws: Socket) -> set[str]:
    return set(self._joined.get(ws, ()))

  def room_size(self, room: str) -> int:
    return len(self._rooms.get(room, ()))

  def connection_count(self) -> int:
    return len(self._joined)

  async def send(self, ws: Socket, event: str, data: Any) -> None:
    await ws.send_json({"event": event, "data": jsonable_encoder(data)})

  async def broadcast(self, room: str, event: str, data: Any) -> int:
    message = {"event": event, "data": jsonable_encoder(data)}
    delivered = 0
    dead: list[Socket] = []
    for ws in list(self._rooms.get(room, ())):
      try:
        await ws.send_json(message)
        delivered += 1
      except Exception as exc:
        logger.info("dropping socket from %s after failed send of %s: %s", room, event, exc)
        dead.append(ws)
    for ws in dead:
      self.disconnect(ws)
    runtime_metrics.observe_broadcast(event, delivered, len(dead))
    logger.debug("broadcast %s to %s (%d delivered)", event, room, delivered)
    return delivered

  def snapshot(self) -> dict:
    return {
      "connections": self.connection_count(),
      "rooms": len(self._rooms),
      "boardRooms": sum(1 for r in self._rooms if r.startswith("board:")),
    }


hub = RealtimeHub()


async def publish_board_event(board_id: str, event: str, data: Any) -> int:
  """Fan an event out to everyone subscribed to the board, the originating client included."""
  return await hub.broadcast(board_room(board_id), event, data)


async def publish_user_event(user_id: str, event: str, data: Any) -> int:
  """Deliver to every open connection of one user, whichever boards they have joined."""
  return await hub.broadcast(user_room(user_id), event, data)
