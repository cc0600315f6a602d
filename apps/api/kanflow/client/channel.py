from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from kanflow.client.store import BoardStore

logger = logging.getLogger(__name__)

RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_SECONDS = 1.0


def ws_url(base_url: str, token: str | None) -> str:
  """http(s)://host[/prefix] -> ws(s)://host[/prefix]/ws?token=..."""
  parts = urlsplit(base_url)
  scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
  path = parts.path.rstrip("/") + "/ws"
  query = urlencode({"token": token}) if token else ""
  return urlunsplit((scheme, parts.netloc, path, query, ""))


class BoardChannel:
  """
  Keeps one board's broadcast events flowing into a `BoardStore`.

  `run()` connects, joins the board room and feeds every event to
  `store.apply_event` until `leave()` is called. A dropped connection is retried
  up to `max_attempts` times, `retry_delay` seconds apart; after a successful
  reconnect the board is fetched again because events may have been missed.
  """

  def __init__(
    self,
    store: BoardStore,
    url: str,
    *,
    connect: Callable[[str], Any] = ws_connect,
    max_attempts: int = RECONNECT_ATTEMPTS,
    retry_delay: float = RECONNECT_DELAY_SECONDS,
  ) -> None:
    self.store = store
    self.url = url
    self.max_attempts = max_attempts
    self.retry_delay = retry_delay
    self.joined = asyncio.Event()
    self.board_id: str | None = None
    self._connect = connect
    self._ws: Any = None
    self._closing = False

  @classmethod
  def for_store(cls, store: BoardStore, **kwargs: Any) -> BoardChannel:
    return cls(store, ws_url(store.api.base_url, store.api.token), **kwargs)

  async def _send(self, message: dict[str, Any]) -> None:
    if self._ws is not None:
      await self._ws.send(json.dumps(message))

  def _dispatch(self, raw: str | bytes) -> None:
    try:
      message = json.loads(raw)
    except ValueError:
      logger.warning("ignoring malformed realtime message")
      return
    if not isinstance(message, dict):
      logger.warning("ignoring non-object realtime message")
      return
    event = message.get("event")
    data = message.get("data") or {}
    if not isinstance(event, str) or not isinstance(data, dict):
      logger.warning("ignoring realtime message with bad envelope: %r", event)
      return
    if event == "board:joined":
      self.joined.set()
    elif event == "pong":
      return
    elif event == "error":
      logger.warning("realtime error: %s", data.get("message"))
    elif event:
      try:
        self.store.apply_event(event, data)
      except (KeyError, TypeError, ValueError) as exc:
        logger.warning("failed to apply %s: %r", event, exc)

  async def run(self, board_id: str) -> None:
    self.board_id = board_id
    self._closing = False
    failures = 0
    connected_before = False
    while not self._closing:
      try:
        async with self._connect(self.url) as ws:
          self._ws = ws
          await self._send({"type": "board:join", "boardId": board_id})
          if connected_before:
            logger.info("reconnected to board %s, refetching", board_id)
            await self.store.fetch_board(board_id)
          connected_before = True
          failures = 0
          async for raw in ws:
            self._dispatch(raw)
      except (OSError, WebSocketException) as exc:
        logger.info("realtime connection lost: %s", exc)
      finally:
        self._ws = None
        self.joined.clear()

      if self._closing:
        break
      failures += 1
      if failures > self.max_attempts:
        logger.warning("giving up on realtime for board %s after %d attempts", board_id, self.max_attempts)
        self.store.notify("Live updates disconnected", level="warning", boardId=board_id)
        return
      await asyncio.sleep(self.retry_delay)

  async def leave(self) -> None:
    self._closing = True
    ws = self._ws
    if ws is None:
      return
    if self.board_id:
      await self._send({"type": "board:leave", "boardId": self.board_id})
    await ws.close()
