from __future__ import annotations

import pytest
from httpx import AsyncClient

from kanflow.ai.planner import AIPlanParseError, normalize_plan, parse_json_reply
from kanflow.ai.providers import AIProviderError
from kanflow.routers import ai as ai_router
from conftest import list_titles, login, make_board, make_task

pytestmark = pytest.mark.anyio


class _CannedProvider:
  def __init__(self, reply: str | None = None, *, error: Exception | None = None) -> None:
    self.reply = reply
    self.error = error

  async def generate(self, *, prompt: str, context: dict) -> str:
    if self.error:
      raise self.error
    return self.reply or ""


async def test_plan_preview_does_not_touch_the_board(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Plan")
  res = await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Launch the beta"})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["applied"] is False
  assert [l["title"] for l in body["lists"]] == ["To Do", "In Progress", "Review"]
  assert all(titles == [] for titles in (await list_titles(client, board["id"])).values())


async def test_plan_apply_reuses_lists_and_appends_tasks(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Plan")
  todo = board["lists"][0]["id"]
  await make_task(client, todo, "Existing")

  res = await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Fix the outage ASAP", "apply": True})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["applied"] is True
  assert len(body["createdListIds"]) == 1
  assert len(body["createdTaskIds"]) == 5
  assert body["lists"][1]["tasks"][0]["priority"] == "urgent"

  lists = (await client.get(f"/boards/{board['id']}/lists")).json()
  assert [l["title"] for l in lists] == ["To Do", "In Progress", "Done", "Review"]
  assert [t["position"] for t in lists[0]["tasks"]] == [0, 1, 2, 3]
  assert lists[0]["tasks"][0]["title"] == "Existing"
  assert all(t["dueDate"] for t in lists[0]["tasks"][1:])


async def test_plan_apply_requires_member_role(client: AsyncClient) -> None:
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Plan")
  await client.post(f"/boards/{board['id']}/members", json={"email": "member@kanflow.local", "role": "viewer"})
  await login(client, "member@kanflow.local", "member1234")
  assert (await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Preview only"})).status_code == 200
  res = await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Apply it", "apply": True})
  assert res.status_code == 403


async def test_unparsable_plan_is_502(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(ai_router, "get_ai_provider", lambda: _CannedProvider("Sorry, I can't help with that."))
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Plan")
  res = await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Anything", "apply": True})
  assert res.status_code == 502
  assert res.json()["detail"] == "Failed to parse AI response"


async def test_provider_failure_is_502(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(ai_router, "get_ai_provider", lambda: _CannedProvider(error=AIProviderError()))
  await login(client, "admin@kanflow.local", "admin1234")
  board = await make_board(client, "Plan")
  res = await client.post(f"/ai/boards/{board['id']}/plan", json={"goal": "Anything"})
  assert res.status_code == 502
  assert "temporarily unavailable" in res.json()["detail"]


def test_parse_json_reply_tolerates_chatter() -> None:
  assert parse_json_reply('Here you go:\n{"summary": "s", "lists": []}\nGood luck!') == {"summary": "s", "lists": []}
  with pytest.raises(AIPlanParseError):
    parse_json_reply("no json at all")


def test_normalize_plan_cleans_priorities_and_drops_empty_lists() -> None:
  summary, lists = normalize_plan(
    {
      "lists": [
        {"title": "Now", "tasks": [{"title": "a", "priority": "P0", "dueOffset": "3"}, {"title": "  "}]},
        {"title": "Later", "tasks": []},
        {"title": "", "tasks": [{"title": "orphan"}]},
      ]
    }
  )
  assert summary == "Suggested plan"
  assert [l.title for l in lists] == ["Now"]
  assert [(t.title, t.priority, t.dueOffsetDays) for t in lists[0].tasks] == [("a", "medium", 3)]
