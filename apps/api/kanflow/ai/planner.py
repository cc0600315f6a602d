from __future__ import annotations

import json
import re
from typing import Any

from kanflow.schemas import AIPlanListOut, AIPlanTaskOut

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")

PRIORITIES = ("low", "medium", "high", "urgent")
MAX_LISTS = 8
MAX_TASKS_PER_LIST = 12


class AIPlanParseError(ValueError):
  pass


def build_plan_prompt(goal: str, list_titles: list[str]) -> str:
  existing = ", ".join(list_titles) or "none"
  return (
    "A user wants help planning work on an existing Kanban board.\n\n"
    f'Goal: "{goal}"\n'
    f"Existing lists: {existing}\n\n"
    "Return JSON with this exact shape:\n"
    '{"summary": "one sentence", "lists": [{"title": "list name", "tasks": '
    '[{"title": "actionable task", "description": "optional", "priority": "low|medium|high|urgent", '
    '"dueOffset": days_from_now}]}]}\n\n'
    "Rules:\n"
    "- Prefer the existing list titles; only add a list when the workflow needs it\n"
    "- 3-6 specific tasks per list, most medium priority\n"
    "- Return ONLY valid JSON"
  )


def parse_json_reply(text: str) -> Any:
  """Pull a JSON document out of a model reply, tolerating Markdown fences and chatter around it."""
  m = _FENCE_RE.search(text or "")
  raw = m.group(1).strip() if m else (text or "").strip()
  try:
    return json.loads(raw)
  except ValueError:
    pass
  m = _OBJECT_RE.search(raw)
  if m:
    try:
      return json.loads(m.group(1))
    except ValueError:
      pass
  raise AIPlanParseError("Failed to parse AI response")


def _priority(value: object) -> str:
  p = str(value or "").strip().lower()
  return p if p in PRIORITIES else "medium"


def _offset(value: object) -> int | None:
  try:
    n = int(value)
  except (TypeError, ValueError):
    return None
  return max(0, min(n, 365))


def normalize_plan(data: Any) -> tuple[str, list[AIPlanListOut]]:
  if not isinstance(data, dict):
    raise AIPlanParseError("Failed to parse AI response")
  raw_lists = data.get("lists")
  if not isinstance(raw_lists, list):
    raise AIPlanParseError("Failed to parse AI response")

  out: list[AIPlanListOut] = []
  for item in raw_lists[:MAX_LISTS]:
    if not isinstance(item, dict):
      continue
    title = str(item.get("title") or "").strip()[:200]
    if not title:
      continue
    tasks: list[AIPlanTaskOut] = []
    for t in (item.get("tasks") or [])[:MAX_TASKS_PER_LIST]:
      if not isinstance(t, dict):
        continue
      task_title = str(t.get("title") or "").strip()[:500]
      if not task_title:
        continue
      desc = t.get("description")
      tasks.append(
        AIPlanTaskOut(
          title=task_title,
          description=str(desc).strip() or None if desc else None,
          priority=_priority(t.get("priority")),
          dueOffsetDays=_offset(t.get("dueOffset")),
        )
      )
    if tasks:
      out.append(AIPlanListOut(title=title, tasks=tasks))
  summary = str(data.get("summary") or data.get("boardTitle") or "").strip() or "Suggested plan"
  return summary, out
