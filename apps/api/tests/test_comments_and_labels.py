from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import login, make_board, make_task

pytestmark = pytest.mark.anyio


async def test_comments_update_counts_and_enforce_authorship(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Talk")
  await client.post(f"/boards/{board['id']}/members", json={"email": "member@kanflow.local", "role": "member"})
  t = await make_task(client, board["lists"][0]["id"], "Discuss")

  c = await client.post(f"/tasks/{t['id']}/comments", json={"body": "first!"})
  assert c.status_code == 200, c.text
  assert c.json()["authorName"] == "Admin"
  assert (await client.get(f"/tasks/{t['id']}")).json()["commentCount"] == 1

  await login(client, "member@kanflow.local", "member1234")
  res = await client.patch(f"/comments/{c.json()['id']}", json={"body": "edited by someone else"})
  assert res.status_code == 403
  assert (await client.delete(f"/comments/{c.json()['id']}")).status_code == 403

  await login(client, "admin@kanflow.local", "admin1234")
  res = await client.patch(f"/comments/{c.json()['id']}", json={"body": "first (edited)"})
  assert res.status_code == 200
  comments = (await client.get(f"/tasks/{t['id']}/comments")).json()
  assert [x["body"] for x in comments] == ["first (edited)"]

  assert (await client.delete(f"/comments/{c.json()['id']}")).status_code == 200
  assert (await client.get(f"/tasks/{t['id']}")).json()["commentCount"] == 0


async def test_blank_comment_is_rejected(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Talk")
  t = await make_task(client, board["lists"][0]["id"], "Discuss")
  assert (await client.post(f"/tasks/{t['id']}/comments", json={"body": "   "})).status_code == 422


async def test_labels_crud_and_task_attachment(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Labels")
  t = await make_task(client, board["lists"][0]["id"], "Tag me")

  bug = await client.post(f"/boards/{board['id']}/labels", json={"name": "bug", "color": "#ef4444"})
  assert bug.status_code == 200, bug.text
  dup = await client.post(f"/boards/{board['id']}/labels", json={"name": "bug"})
  assert dup.status_code == 409

  tagged = await client.post(f"/tasks/{t['id']}/labels", json={"labelId": bug.json()["id"]})
  assert tagged.status_code == 200, tagged.text
  assert [l["name"] for l in tagged.json()["labels"]] == ["bug"]
  assert tagged.json()["version"] == 1

  # attaching twice changes nothing
  again = await client.post(f"/tasks/{t['id']}/labels", json={"labelId": bug.json()["id"]})
  assert again.json()["version"] == 1

  by_label = (await client.get(f"/boards/{board['id']}/tasks", params={"labelId": bug.json()["id"]})).json()
  assert [x["id"] for x in by_label] == [t["id"]]

  renamed = await client.patch(f"/labels/{bug.json()['id']}", json={"name": "defect"})
  assert renamed.json()["name"] == "defect"

  untagged = await client.delete(f"/tasks/{t['id']}/labels/{bug.json()['id']}")
  assert untagged.json()["labels"] == []

  assert (await client.delete(f"/labels/{bug.json()['id']}")).status_code == 200
  assert (await client.get(f"/boards/{board['id']}/labels")).json() == []


async def test_label_from_another_board_cannot_be_attached(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Mine")
  other = await make_board(client, "Theirs")
  t = await make_task(client, board["lists"][0]["id"], "Task")
  foreign = (await client.post(f"/boards/{other['id']}/labels", json={"name": "x"})).json()
  res = await client.post(f"/tasks/{t['id']}/labels", json={"labelId": foreign["id"]})
  assert res.status_code == 400
