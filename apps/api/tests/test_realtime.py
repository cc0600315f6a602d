from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from starlette.websockets import WebSocketDisconnect

from kanflow.main import app
from kanflow.metrics import runtime_metrics
from kanflow.realtime import RealtimeHub, board_room, hub, user_room
from conftest import FakeSocket, login, make_board, make_task, seeded_user_id


@pytest.mark.anyio
async def test_hub_broadcast_reaches_only_room_members() -> None:
  h = RealtimeHub()
  a, b, c = FakeSocket(), FakeSocket(), FakeSocket()
  h.register(a, user_id="u1")
  h.register(b, user_id="u2")
  h.join(a, board_room("b1"))
  h.join(b, board_room("b1"))
  h.join(c, board_room("b2"))

  delivered = await h.broadcast(board_room("b1"), "task:deleted", {"taskId": "t1"})
  assert delivered == 2
  assert a.sent == b.sent == [{"event": "task:deleted", "data": {"taskId": "t1"}}]
  assert c.sent == []
  assert h.rooms_of(a) == {user_room("u1"), board_room("b1")}


@pytest.mark.anyio
async def test_hub_drops_sockets_that_fail_to_send() -> None:
  h = RealtimeHub()
  good, bad = FakeSocket(), FakeSocket(fail=True)
  h.join(good, board_room("b1"))
  h.join(bad, board_room("b1"))
  before = runtime_metrics.realtime_snapshot()["droppedSockets"]

  assert await h.broadcast(board_room("b1"), "list:deleted", {"listId": "l1"}) == 1
  assert h.room_size(board_room("b1")) == 1
  assert h.rooms_of(bad) == set()
  assert runtime_metrics.realtime_snapshot()["droppedSockets"] == before + 1


def test_hub_leave_and_disconnect_clean_up_rooms() -> None:
  h = RealtimeHub()
  ws = FakeSocket()
  h.register(ws, user_id="u1")
  h.join(ws, board_room("b1"))
  h.leave(ws, board_room("b1"))
  assert h.room_size(board_room("b1")) == 0
  h.disconnect(ws)
  assert h.connection_count() == 0
  assert h.snapshot() == {"connections": 0, "rooms": 0, "boardRooms": 0}


@pytest.mark.anyio
async def test_each_mutation_broadcasts_exactly_one_event(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Live")
  todo, doing, done = (l["id"] for l in board["lists"])
  watcher, bystander = FakeSocket(), FakeSocket()
  hub.join(watcher, board_room(board["id"]))
  hub.join(bystander, board_room("some-other-board"))

  t = await make_task(client, todo, "A")
  await client.patch(f"/tasks/{t['id']}", json={"title": "A2"})
  await client.post(f"/tasks/{t['id']}/move", json={"listId": doing, "position": 0})
  await client.delete(f"/tasks/{t['id']}")
  created = (await client.post(f"/boards/{board['id']}/lists", json={"title": "QA"})).json()
  await client.patch(f"/lists/{created['id']}", json={"title": "QA!"})
  await client.post(f"/boards/{board['id']}/lists/reorder", json={"listIds": [created["id"], todo, doing, done]})
  await client.delete(f"/lists/{created['id']}")

  assert watcher.events() == [
    "task:created",
    "task:updated",
    "task:moved",
    "task:deleted",
    "list:created",
    "list:updated",
    "list:moved",
    "list:deleted",
  ]
  assert bystander.sent == []

  moved = watcher.sent[2]["data"]
  assert (moved["fromListId"], moved["toListId"]) == (todo, doing)
  assert moved["task"]["id"] == t["id"]
  assert (moved["task"]["listId"], moved["task"]["position"]) == (doing, 0)
  assert watcher.sent[3]["data"] == {"taskId": t["id"], "listId": doing, "boardId": board["id"]}
  assert watcher.sent[6]["data"]["lists"][0] == {"id": created["id"], "position": 0}


@pytest.mark.anyio
async def test_rejected_move_broadcasts_nothing(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Live")
  other = await make_board(client, "Other")
  t = await make_task(client, board["lists"][0]["id"], "A")
  watcher = FakeSocket()
  hub.join(watcher, board_room(board["id"]))

  res = await client.post(f"/tasks/{t['id']}/move", json={"listId": other["lists"][0]["id"], "position": 0})
  assert res.status_code == 400
  assert watcher.sent == []


def _token(c: TestClient, email: str, password: str) -> str:
  res = c.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  return res.json()["token"]


def test_websocket_rejects_missing_or_bad_token() -> None:
  with TestClient(app) as c:
    for url in ("/ws", "/ws?token=kfs_nope"):
      with pytest.raises(WebSocketDisconnect) as exc:
        with c.websocket_connect(url):
          pass
      assert exc.value.code == 4401


def test_websocket_join_receives_board_events() -> None:
  with TestClient(app) as c:
    token = _token(c, "admin@kanflow.local", "admin1234")
    board = c.post("/boards", json={"title": "Socket board"}).json()
    lists = c.get(f"/boards/{board['id']}/lists").json()

    with c.websocket_connect(f"/ws?token={token}") as ws:
      ws.send_json({"type": "ping"})
      assert ws.receive_json() == {"event": "pong", "data": {}}

      ws.send_json({"type": "board:join", "boardId": board["id"]})
      assert ws.receive_json() == {"event": "board:joined", "data": {"boardId": board["id"], "role": "admin"}}

      task = c.post(f"/lists/{lists[0]['id']}/tasks", json={"title": "Hello"}).json()
      msg = ws.receive_json()
      assert msg["event"] == "task:created"
      assert msg["data"]["id"] == task["id"]

      c.post(f"/tasks/{task['id']}/move", json={"listId": lists[1]["id"], "position": 0})
      msg = ws.receive_json()
      assert msg["event"] == "task:moved"
      assert msg["data"]["toListId"] == lists[1]["id"]

      ws.send_json({"type": "board:leave", "boardId": board["id"]})
      assert ws.receive_json() == {"event": "board:left", "data": {"boardId": board["id"]}}


def test_websocket_join_without_membership_is_an_error_event() -> None:
  with TestClient(app) as c:
    _token(c, "admin@kanflow.local", "admin1234")
    board = c.post("/boards", json={"title": "Private"}).json()
    token = _token(c, "member@kanflow.local", "member1234")

    with c.websocket_connect(f"/ws?token={token}") as ws:
      ws.send_json({"type": "board:join", "boardId": board["id"]})
      msg = ws.receive_json()
      assert msg["event"] == "error"
      assert msg["data"]["message"] == "No board access"

      ws.send_text("not json")
      assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}


@pytest.mark.anyio
async def test_membership_changes_reach_the_affected_user(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Shared")
  member_id = await seeded_user_id("member@kanflow.local")
  # the member is connected but has not joined this board's room
  member_ws, stranger_ws = FakeSocket(), FakeSocket()
  hub.register(member_ws, user_id=member_id)
  hub.register(stranger_ws, user_id="someone-else")

  res = await client.post(f"/boards/{board['id']}/members", json={"email": "member@kanflow.local", "role": "member"})
  assert res.status_code == 200, res.text
  await client.delete(f"/boards/{board['id']}/members/{member_id}")

  assert member_ws.events() == ["member:added", "member:removed"]
  added = member_ws.sent[0]["data"]
  assert (added["boardId"], added["userId"], added["role"]) == (board["id"], member_id, "member")
  assert member_ws.sent[1]["data"] == {"boardId": board["id"], "userId": member_id}
  assert stranger_ws.sent == []
