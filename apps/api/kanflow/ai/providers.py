from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from kanflow.config import settings

logger = logging.getLogger(__name__)


class AIProviderError(RuntimeError):
  def __init__(self, message: str = "AI service temporarily unavailable. Please try again.") -> None:
    super().__init__(message)
    self.message = message


class AIProvider(Protocol):
  async def generate(self, *, prompt: str, context: dict[str, Any]) -> str: ...


def _short(goal: str, n: int = 60) -> str:
  g = " ".join((goal or "").split())
  return g if len(g) <= n else g[: n - 3].rstrip() + "..."


@dataclass
class LocalDeterministicProvider:
  async def generate(self, *, prompt: str, context: dict[str, Any]) -> str:
    # Offline stand-in: same input, same plan. Wrapped in a code fence like chat models do.
    kind = context.get("kind", "generic")
    if kind != "board_plan":
      return json.dumps({"echo": prompt, "context": context}, indent=2)

    goal = _short(str(context.get("goal") or "the project"))
    titles = [str(t) for t in (context.get("lists") or []) if str(t).strip()]
    todo = titles[0] if titles else "To Do"
    doing = titles[1] if len(titles) > 1 else "In Progress"
    hay = goal.lower()
    urgent = any(w in hay for w in ("urgent", "asap", "outage", "incident", "deadline"))
    plan = {
      "summary": f"Plan for {goal}",
      "lists": [
        {
          "title": todo,
          "tasks": [
            {"title": f"Define scope for {goal}", "priority": "high", "dueOffset": 2},
            {"title": "List open questions and owners", "priority": "medium", "dueOffset": 3},
            {"title": "Draft acceptance criteria", "priority": "medium", "dueOffset": 5},
          ],
        },
        {
          "title": doing,
          "tasks": [
            {"title": f"Build first slice of {goal}", "priority": "urgent" if urgent else "high", "dueOffset": 7},
          ],
        },
        {
          "title": "Review",
          "tasks": [
            {"title": "Review outcome with stakeholders", "priority": "low", "dueOffset": 10},
          ],
        },
      ],
    }
    return "```json\n" + json.dumps(plan, indent=2) + "\n```"


@dataclass
class OpenAICompatibleProvider:
  api_key: str
  base_url: str
  model: str = "gpt-4o-mini"
  timeout: float = 60.0

  async def generate(self, *, prompt: str, context: dict[str, Any]) -> str:
    headers = {"Authorization": f"Bearer {self.api_key}"}
    try:
      async with httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout) as client:
        # OpenAI-compatible chat completions API.
        r = await client.post(
          "/chat/completions",
          json={
            "model": self.model,
            "messages": [
              {"role": "system", "content": "You are a senior project manager planning work on a Kanban board."},
              {"role": "user", "content": f"Context:\n{json.dumps(context)}\n\nPrompt:\n{prompt}"},
            ],
            "temperature": 0.3,
          },
        )
        r.raise_for_status()
        data = r.json()
        return data["choices"][0]["message"]["content"]
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
      logger.warning("AI provider request failed: %s", exc)
      raise AIProviderError() from exc


def get_ai_provider() -> AIProvider:
  if settings.ai_provider.lower() == "openai":
    if not settings.openai_api_key:
      raise RuntimeError("AI_PROVIDER=openai requires OPENAI_API_KEY")
    return OpenAICompatibleProvider(
      api_key=settings.openai_api_key,
      base_url=settings.openai_base_url,
      model=settings.openai_model,
    )
  return LocalDeterministicProvider()
