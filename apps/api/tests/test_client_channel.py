from __future__ import annotations

import json

import anyio
import httpx
import pytest

from kanflow.client import BoardChannel, BoardStore, KanflowApi
from kanflow.client.channel import ws_url
from test_client_store import FakeApi, _board_payload, _task, layout

pytestmark = pytest.mark.anyio


class FakeWs:
  def __init__(self, messages: list[dict], *, hold_open: bool = False) -> None:
    self.messages = [json.dumps(m) for m in messages]
    self.hold_open = hold_open
    self.sent: list[dict] = []
    self.closed = anyio.Event()

  async def __aenter__(self) -> FakeWs:
    return self

  async def __aexit__(self, *exc) -> None:
    self.closed.set()

  async def send(self, raw: str) -> None:
    self.sent.append(json.loads(raw))

  async def close(self) -> None:
    self.closed.set()

  async def __aiter__(self):
    for raw in self.messages:
      yield raw
    if self.hold_open:
      await self.closed.wait()


class FakeConnect:
  """Hands out scripted connections; an exception in the script (or running out) fails that attempt."""

  def __init__(self, *script) -> None:
    self.script = list(script)
    self.urls: list[str] = []

  def __call__(self, url: str):
    self.urls.append(url)
    step = self.script.pop(0) if self.script else OSError("connection refused")
    if isinstance(step, Exception):
      raise step
    return step


async def _open_store(fake: FakeApi) -> BoardStore:
  http = httpx.AsyncClient(transport=httpx.MockTransport(fake), base_url="http://api")
  store = BoardStore(KanflowApi("http://api", token="kfs_test", client=http))
  await store.fetch_board("b1")
  return store


def test_ws_url_from_api_base() -> None:
  assert ws_url("http://localhost:8000", "kfs_a") == "ws://localhost:8000/ws?token=kfs_a"
  assert ws_url("https://example.com/api/", None) == "wss://example.com/api/ws"


async def test_events_flow_into_the_store() -> None:
  fake = FakeApi(_board_payload(todo=["X", "Y"], doing=[]))
  store = await _open_store(fake)
  ws = FakeWs(
    [
      {"event": "board:joined", "data": {"boardId": "b1", "role": "admin"}},
      {"event": "task:moved", "data": {"task": _task("X", "doing", 0), "fromListId": "todo", "toListId": "doing"}},
      {"event": "pong", "data": {}},
    ]
  )
  channel = BoardChannel(store, "ws://api/ws?token=t", connect=FakeConnect(ws), max_attempts=1, retry_delay=0)
  await channel.run("b1")

  assert ws.sent[0] == {"type": "board:join", "boardId": "b1"}
  assert layout(store) == {"todo": [("Y", 0)], "doing": [("X", 0)]}


async def test_malformed_messages_do_not_stop_the_stream() -> None:
  fake = FakeApi(_board_payload(todo=["X", "Y"], doing=[]))
  store = await _open_store(fake)
  ws = FakeWs(
    [
      {"event": "task:deleted", "data": {"boardId": "b1"}},
      ["not", "an", "envelope"],
      {"event": "list:updated", "data": "oops"},
      {"event": "task:moved", "data": {"task": _task("X", "doing", 0), "fromListId": "todo", "toListId": "doing"}},
    ]
  )
  channel = BoardChannel(store, "ws://api/ws", connect=FakeConnect(ws), max_attempts=1, retry_delay=0)
  await channel.run("b1")

  assert layout(store) == {"todo": [("Y", 0)], "doing": [("X", 0)]}
  # only the give-up warning once the scripted connection runs out
  assert [n.message for n in store.notifications] == ["Live updates disconnected"]


async def test_reconnect_refetches_the_board() -> None:
  fake = FakeApi(_board_payload(todo=["X"], doing=[]))
  store = await _open_store(fake)
  connect = FakeConnect(FakeWs([]), OSError("reset"), FakeWs([{"event": "board:joined", "data": {"boardId": "b1"}}]))
  channel = BoardChannel(store, "ws://api/ws", connect=connect, max_attempts=2, retry_delay=0)
  await channel.run("b1")

  gets = [path for method, path, _ in fake.requests if method == "GET"]
  # initial open plus one refetch after the successful reconnect
  assert gets == ["/boards/b1", "/boards/b1"]
  assert len(connect.urls) == 5


async def test_gives_up_after_max_attempts() -> None:
  store = await _open_store(FakeApi(_board_payload(todo=[])))
  connect = FakeConnect()
  channel = BoardChannel(store, "ws://api/ws", connect=connect, max_attempts=5, retry_delay=0)
  await channel.run("b1")

  assert len(connect.urls) == 6
  assert [(n.level, n.message) for n in store.notifications] == [("warning", "Live updates disconnected")]


async def test_leave_stops_without_reconnecting() -> None:
  store = await _open_store(FakeApi(_board_payload(todo=[])))
  ws = FakeWs([{"event": "board:joined", "data": {"boardId": "b1"}}], hold_open=True)
  connect = FakeConnect(ws)
  channel = BoardChannel(store, "ws://api/ws", connect=connect, retry_delay=0)

  async with anyio.create_task_group() as tg:
    tg.start_soon(channel.run, "b1")
    await channel.joined.wait()
    await channel.leave()

  assert ws.sent[-1] == {"type": "board:leave", "boardId": "b1"}
  assert len(connect.urls) == 1
  assert store.notifications == []
