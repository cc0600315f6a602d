from __future__ import annotations

import pytest

from kanflow.config import settings
from conftest import login

pytestmark = pytest.mark.anyio


async def test_system_status_requires_login(client):
  res = await client.get("/system/status")
  assert res.status_code == 401


async def test_system_status_reports_runtime_and_realtime(client):
  await login(client, "member@kanflow.local", "member1234")
  await client.get("/health")
  res = await client.get("/system/status")
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["version"] == settings.app_version
  assert body["uptimeSeconds"] >= 0
  assert body["requests"]
  assert {"connections", "rooms", "broadcasts", "deliveries", "droppedSockets"} <= set(body["realtime"])


async def test_health_and_version(client):
  assert (await client.get("/health")).json() == {"ok": True}
  res = await client.get("/version")
  assert res.json() == {"version": settings.app_version, "buildSha": settings.build_sha}
  assert res.headers["x-content-type-options"] == "nosniff"
