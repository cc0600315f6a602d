from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class ApiError(RuntimeError):
  """A request that did not produce a usable response. `status_code` is 0 for transport failures."""

  def __init__(self, *, status_code: int, message: str, details: Any = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.details = details


def _extract_error(payload: Any) -> str:
  if isinstance(payload, dict):
    detail = payload.get("detail")
    if isinstance(detail, str) and detail.strip():
      return detail.strip()
    if isinstance(detail, dict) and detail.get("message"):
      return str(detail["message"])
    if isinstance(detail, list) and detail:
      first = detail[0]
      if isinstance(first, dict) and first.get("msg"):
        loc = ".".join(str(x) for x in first.get("loc") or () if x != "body")
        return f"{loc}: {first['msg']}" if loc else str(first["msg"])
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500]
  return "Request failed"


class KanflowApi:
  """Thin async client for the Kanflow HTTP API."""

  def __init__(
    self,
    base_url: str = "http://localhost:8000",
    *,
    token: str | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
  ) -> None:
    self._owns_client = client is None
    self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
    self.token = token

  async def __aenter__(self) -> KanflowApi:
    return self

  async def __aexit__(self, *exc: object) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()

  @property
  def base_url(self) -> str:
    return str(self._client.base_url)

  def _headers(self) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if self.token:
      headers["Authorization"] = f"Bearer {self.token}"
    return headers

  async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
    try:
      r = await self._client.request(method, path, headers=self._headers(), **kwargs)
    except httpx.HTTPError as exc:
      logger.info("%s %s failed: %s", method, path, exc)
      raise ApiError(status_code=0, message="Network error, please try again", details=str(exc)) from exc
    if r.status_code >= 400:
      try:
        payload = r.json()
      except ValueError:
        payload = (r.text or "")[:800]
      raise ApiError(status_code=r.status_code, message=_extract_error(payload), details=payload)
    if r.status_code == 204:
      return None
    return r.json()

  async def login(self, email: str, password: str) -> dict:
    data = await self._request_json("POST", "/auth/login", json={"email": email, "password": password})
    self.token = data["token"]
    return data

  async def logout(self) -> None:
    await self._request_json("POST", "/auth/logout")
    self.token = None

  async def list_boards(self, *, page: int = 1, limit: int | None = None, search: str | None = None) -> dict:
    params: dict[str, Any] = {"page": page}
    if limit is not None:
      params["limit"] = limit
    if search:
      params["search"] = search
    return await self._request_json("GET", "/boards", params=params)

  async def get_board(self, board_id: str) -> dict:
    return await self._request_json("GET", f"/boards/{board_id}")

  async def create_board(self, *, title: str, description: str | None = None, color: str | None = None) -> dict:
    body: dict[str, Any] = {"title": title, "description": description}
    if color:
      body["color"] = color
    return await self._request_json("POST", "/boards", json=body)

  async def delete_board(self, board_id: str) -> None:
    await self._request_json("DELETE", f"/boards/{board_id}")

  async def create_list(self, board_id: str, title: str) -> dict:
    return await self._request_json("POST", f"/boards/{board_id}/lists", json={"title": title})

  async def update_list(self, list_id: str, *, title: str) -> dict:
    return await self._request_json("PATCH", f"/lists/{list_id}", json={"title": title})

  async def delete_list(self, list_id: str) -> None:
    await self._request_json("DELETE", f"/lists/{list_id}")

  async def reorder_lists(self, board_id: str, list_ids: list[str]) -> None:
    await self._request_json("POST", f"/boards/{board_id}/lists/reorder", json={"listIds": list_ids})

  async def create_task(self, list_id: str, **fields: Any) -> dict:
    return await self._request_json("POST", f"/lists/{list_id}/tasks", json=fields)

  async def update_task(self, task_id: str, **fields: Any) -> dict:
    return await self._request_json("PATCH", f"/tasks/{task_id}", json=fields)

  async def delete_task(self, task_id: str) -> None:
    await self._request_json("DELETE", f"/tasks/{task_id}")

  async def move_task(self, task_id: str, list_id: str, position: int, *, version: int | None = None) -> dict:
    body: dict[str, Any] = {"listId": list_id, "position": position}
    if version is not None:
      body["version"] = version
    return await self._request_json("POST", f"/tasks/{task_id}/move", json=body)

  async def add_assignee(self, task_id: str, user_id: str) -> dict:
    return await self._request_json("POST", f"/tasks/{task_id}/assignees", json={"userId": user_id})

  async def remove_assignee(self, task_id: str, user_id: str) -> dict:
    return await self._request_json("DELETE", f"/tasks/{task_id}/assignees/{user_id}")
