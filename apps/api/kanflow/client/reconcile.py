"""
Merge functions for board state.

Each takes the current lists and a confirmed change (a server response or a broadcast
event) and returns the new lists. The same function serves "my own change came back"
and "someone else changed something", so both paths converge on the same state.
Changes that reference lists this client does not hold are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from kanflow.client.state import ListState, Lists, TaskState, find_list, find_task

logger = logging.getLogger(__name__)


def _renumber_lists(lists: list[ListState]) -> Lists:
  return tuple(l if l.position == idx else replace(l, position=idx) for idx, l in enumerate(lists))


def _without_task(lists: Lists, task_id: str) -> Lists:
  return tuple(
    l if l.index_of(task_id) is None else l.with_tasks([t for t in l.tasks if t.id != task_id])
    for l in lists
  )


def merge_task_moved(lists: Lists, task: TaskState, from_list_id: str, to_list_id: str) -> Lists:
  """
  Place the server's copy of a moved task.

  The task is pulled out of every list (its source and any stale copy), the
  destination is renumbered, then the incoming snapshot is inserted and the
  destination sorted by position with the incoming task winning ties.
  Applying the same event again gives the same result.
  """
  if find_list(lists, to_list_id) is None:
    logger.debug("task:moved %s (%s -> %s) ignored: destination not loaded", task.id, from_list_id, to_list_id)
    return lists
  incoming = task.placed(to_list_id, task.position)
  out = []
  for l in _without_task(lists, task.id):
    if l.id != to_list_id:
      out.append(l)
      continue
    ranked = sorted(
      [(t.position, 1, t) for t in l.tasks] + [(incoming.position, 0, incoming)],
      key=lambda r: (r[0], r[1]),
    )
    out.append(l.with_tasks([r[2] for r in ranked]))
  return tuple(out)


def merge_task_created(lists: Lists, task: TaskState) -> Lists:
  dst = find_list(lists, task.list_id)
  if dst is None or find_task(lists, task.id) is not None:
    return lists
  return tuple(l.with_tasks(list(l.tasks) + [task]) if l.id == dst.id else l for l in lists)


def merge_task_updated(lists: Lists, task: TaskState) -> Lists:
  found = find_task(lists, task.id)
  if found is None:
    return lists
  current, idx = found
  if current.id != task.list_id:
    return merge_task_moved(lists, task, current.id, task.list_id)
  # field update only: keep the local order, the list is renumbered by moves
  kept = replace(task, position=current.tasks[idx].position)
  tasks = list(current.tasks)
  tasks[idx] = kept
  return tuple(replace(l, tasks=tuple(tasks)) if l.id == current.id else l for l in lists)


def merge_task_deleted(lists: Lists, task_id: str) -> Lists:
  return _without_task(lists, task_id)


def merge_list_created(lists: Lists, lst: ListState) -> Lists:
  if find_list(lists, lst.id) is not None:
    return lists
  return tuple(sorted(list(lists) + [lst], key=lambda l: l.position))


def merge_list_updated(lists: Lists, list_id: str, *, title: str | None = None, position: int | None = None) -> Lists:
  current = find_list(lists, list_id)
  if current is None:
    return lists
  changes = {}
  if title is not None and title != current.title:
    changes["title"] = title
  if position is not None and position != current.position:
    changes["position"] = position
  if not changes:
    return lists
  out = tuple(replace(l, **changes) if l.id == list_id else l for l in lists)
  if "position" in changes:
    out = tuple(sorted(out, key=lambda l: l.position))
  return out


def merge_list_deleted(lists: Lists, list_id: str) -> Lists:
  if find_list(lists, list_id) is None:
    return lists
  return _renumber_lists([l for l in lists if l.id != list_id])


def merge_lists_moved(lists: Lists, positions: Mapping[str, int]) -> Lists:
  moved = [replace(l, position=positions[l.id]) if l.id in positions and positions[l.id] != l.position else l for l in lists]
  return _renumber_lists(sorted(moved, key=lambda l: l.position))
