from __future__ import annotations

import logging
from dataclasses import dataclass

from kanflow.client.state import Lists, find_list, find_task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragResult:
  """What a drag-and-drop gesture reports: where the card was picked up and where it was dropped."""

  source_list_id: str
  source_index: int
  destination_list_id: str
  destination_index: int
  task_id: str | None = None


@dataclass(frozen=True)
class MoveDirective:
  task_id: str
  list_id: str
  position: int


def encode_move(lists: Lists, drag: DragResult) -> MoveDirective | None:
  """
  Turn a drop into a single move directive.

  Returns None when nothing should happen: the drop landed where the card started,
  or the gesture refers to lists/cards this state no longer has. A destination index
  outside [0, len(destination)] is a caller bug and raises ValueError.
  """
  src = find_list(lists, drag.source_list_id)
  dst = find_list(lists, drag.destination_list_id)
  if src is None or dst is None:
    logger.debug("drag references unknown list %s -> %s", drag.source_list_id, drag.destination_list_id)
    return None
  if not 0 <= drag.source_index < len(src.tasks):
    logger.debug("drag source index %d out of range for list %s", drag.source_index, src.id)
    return None
  task = src.tasks[drag.source_index]
  if drag.task_id is not None and task.id != drag.task_id:
    logger.debug("drag task %s no longer at %s[%d]", drag.task_id, src.id, drag.source_index)
    return None

  if not 0 <= drag.destination_index <= len(dst.tasks):
    raise ValueError(f"destination index {drag.destination_index} outside [0, {len(dst.tasks)}]")
  if src.id == dst.id and drag.source_index == drag.destination_index:
    return None
  return MoveDirective(task_id=task.id, list_id=dst.id, position=drag.destination_index)


def apply_move(lists: Lists, task_id: str, list_id: str, index: int) -> Lists | None:
  """
  Optimistically move a task: take it out of its list, insert it into `list_id` at
  `index` (clamped) and renumber both lists.

  Returns the new lists, or None when there is nothing to apply: the task or the
  destination is unknown (stale state), or the task already sits at that spot.
  Lists that are not touched are shared with the input.
  """
  found = find_task(lists, task_id)
  dst = find_list(lists, list_id)
  if found is None or dst is None:
    logger.debug("move of %s to %s abandoned: not in local state", task_id, list_id)
    return None
  src, src_idx = found
  task = src.tasks[src_idx]

  remaining = [t for t in dst.tasks if t.id != task_id]
  idx = min(max(index, 0), len(remaining))
  if src.id == dst.id and src_idx == idx:
    return None

  remaining.insert(idx, task)
  new_dst = dst.with_tasks(remaining)
  new_src = src if src.id == dst.id else src.with_tasks([t for t in src.tasks if t.id != task_id])

  out = []
  for l in lists:
    if l.id == dst.id:
      out.append(new_dst)
    elif l.id == src.id:
      out.append(new_src)
    else:
      out.append(l)
  return tuple(out)
