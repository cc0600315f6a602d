from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from kanflow.db import SessionLocal
from kanflow.models import TaskAssignee
from kanflow.realtime import board_room, hub
from conftest import FakeSocket, login, make_board, make_task, seeded_user_id

pytestmark = pytest.mark.anyio


async def test_assign_and_unassign_board_member(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "People")
  member_id = await seeded_user_id("member@kanflow.local")
  await client.post(f"/boards/{board['id']}/members", json={"email": "member@kanflow.local", "role": "member"})
  t = await make_task(client, board["lists"][0]["id"], "Pair on this")
  assert t["assignees"] == []
  watcher = FakeSocket()
  hub.join(watcher, board_room(board["id"]))

  res = await client.post(f"/tasks/{t['id']}/assignees", json={"userId": member_id})
  assert res.status_code == 200, res.text
  assert res.json()["assignees"] == [{"userId": member_id, "name": "Member", "email": "member@kanflow.local"}]
  assert res.json()["version"] == 1

  # assigning twice changes nothing
  again = await client.post(f"/tasks/{t['id']}/assignees", json={"userId": member_id})
  assert again.json()["version"] == 1
  assert len(again.json()["assignees"]) == 1

  lists = (await client.get(f"/boards/{board['id']}/lists")).json()
  assert lists[0]["tasks"][0]["assignees"][0]["userId"] == member_id

  removed = await client.delete(f"/tasks/{t['id']}/assignees/{member_id}")
  assert removed.status_code == 200, removed.text
  assert removed.json()["assignees"] == []
  assert removed.json()["version"] == 2

  assert watcher.events() == ["task:updated", "task:updated", "task:updated"]
  assert watcher.sent[0]["data"]["assignees"][0]["userId"] == member_id

  activity = (await client.get(f"/boards/{board['id']}/activity", params={"taskId": t["id"]})).json()["activities"]
  types = [e["eventType"] for e in activity]
  assert types[:2] == ["task.assignee.removed", "task.assignee.added"]
  assert activity[0]["payload"] == {"userId": member_id}


async def test_assignee_must_have_board_access(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Private")
  t = await make_task(client, board["lists"][0]["id"], "Mine")
  outsider = await seeded_user_id("member@kanflow.local")

  res = await client.post(f"/tasks/{t['id']}/assignees", json={"userId": outsider})
  assert res.status_code == 400
  assert res.json()["detail"] == "Assignee has no board access"
  unknown = await client.post(f"/tasks/{t['id']}/assignees", json={"userId": "no-such-user"})
  assert unknown.status_code == 400


async def test_viewer_cannot_assign(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Read only")
  admin_id = await seeded_user_id("admin@kanflow.local")
  await client.post(f"/boards/{board['id']}/members", json={"email": "member@kanflow.local", "role": "viewer"})
  t = await make_task(client, board["lists"][0]["id"], "Look only")

  await login(client, "member@kanflow.local", "member1234")
  res = await client.post(f"/tasks/{t['id']}/assignees", json={"userId": admin_id})
  assert res.status_code == 403


async def test_deleting_a_task_clears_its_assignees(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Cleanup")
  admin_id = await seeded_user_id("admin@kanflow.local")
  t = await make_task(client, board["lists"][0]["id"], "Doomed")
  await client.post(f"/tasks/{t['id']}/assignees", json={"userId": admin_id})

  assert (await client.delete(f"/tasks/{t['id']}")).status_code == 200
  async with SessionLocal() as db:
    left = (await db.execute(select(func.count()).select_from(TaskAssignee))).scalar_one()
  assert left == 0
