from __future__ import annotations

from dataclasses import replace

from kanflow.client import ListState, TaskState, apply_move
from kanflow.client.reconcile import (
  merge_list_created,
  merge_list_deleted,
  merge_list_updated,
  merge_lists_moved,
  merge_task_created,
  merge_task_deleted,
  merge_task_moved,
  merge_task_updated,
)
from test_client_moves import board, layout


def server_task(task_id: str, list_id: str, position: int, **extra) -> TaskState:
  return TaskState(id=task_id, list_id=list_id, title=task_id, position=position, version=1, **extra)


def test_own_move_echo_is_not_duplicated() -> None:
  lists = board(todo=["X", "Y"], doing=["Z"])
  optimistic = apply_move(lists, "X", "doing", 1)
  echoed = merge_task_moved(optimistic, server_task("X", "doing", 1), "todo", "doing")
  assert layout(echoed) == layout(optimistic) == {"todo": [("Y", 0)], "doing": [("Z", 0), ("X", 1)]}
  assert sum(1 for l in echoed for t in l.tasks if t.id == "X") == 1
  assert echoed[1].tasks[1].version == 1


def test_same_event_twice_equals_once() -> None:
  lists = board(todo=["X", "Y", "Z"], doing=["W"])
  event = server_task("Y", "doing", 0)
  once = merge_task_moved(lists, event, "todo", "doing")
  twice = merge_task_moved(once, event, "todo", "doing")
  assert once == twice
  assert layout(once) == {"todo": [("X", 0), ("Z", 1)], "doing": [("Y", 0), ("W", 1)]}


def test_remote_move_within_list() -> None:
  lists = board(todo=["X", "Y", "Z"])
  merged = merge_task_moved(lists, server_task("X", "todo", 2), "todo", "todo")
  assert layout(merged) == {"todo": [("Y", 0), ("Z", 1), ("X", 2)]}
  again = merge_task_moved(merged, server_task("X", "todo", 2), "todo", "todo")
  assert again == merged


def test_remote_move_to_unloaded_list_is_ignored() -> None:
  lists = board(todo=["X"])
  assert merge_task_moved(lists, server_task("X", "elsewhere", 0), "todo", "elsewhere") is lists


def test_task_created_appends_once() -> None:
  lists = board(todo=["X"])
  created = merge_task_created(lists, server_task("N", "todo", 1))
  assert layout(created) == {"todo": [("X", 0), ("N", 1)]}
  assert merge_task_created(created, server_task("N", "todo", 1)) is created
  assert merge_task_created(lists, server_task("N", "nowhere", 0)) is lists


def test_task_updated_keeps_local_position() -> None:
  lists = board(todo=["X", "Y"])
  updated = merge_task_updated(lists, replace(server_task("Y", "todo", 5), title="renamed", priority="high"))
  assert layout(updated) == {"todo": [("X", 0), ("Y", 1)]}
  assert (updated[0].tasks[1].title, updated[0].tasks[1].priority) == ("renamed", "high")


def test_task_updated_with_new_list_is_treated_as_move() -> None:
  lists = board(todo=["X", "Y"], doing=[])
  updated = merge_task_updated(lists, server_task("X", "doing", 0))
  assert layout(updated) == {"todo": [("Y", 0)], "doing": [("X", 0)]}


def test_task_deleted_renumbers() -> None:
  lists = board(todo=["X", "Y", "Z"])
  assert layout(merge_task_deleted(lists, "Y")) == {"todo": [("X", 0), ("Z", 1)]}
  assert merge_task_deleted(lists, "missing") == lists


def test_list_events() -> None:
  lists = board(todo=["X"], doing=[], done=[])
  created = merge_list_created(lists, ListState(id="qa", title="QA", position=3))
  assert [l.id for l in created] == ["todo", "doing", "done", "qa"]
  assert merge_list_created(created, ListState(id="qa", title="QA", position=3)) is created

  renamed = merge_list_updated(created, "qa", title="Review")
  assert renamed[3].title == "Review"
  assert merge_list_updated(renamed, "qa", title="Review") is renamed

  moved = merge_lists_moved(renamed, {"qa": 0, "todo": 1, "doing": 2, "done": 3})
  assert [(l.id, l.position) for l in moved] == [("qa", 0), ("todo", 1), ("doing", 2), ("done", 3)]
  assert moved[1].tasks == lists[0].tasks

  deleted = merge_list_deleted(moved, "todo")
  assert [(l.id, l.position) for l in deleted] == [("qa", 0), ("doing", 1), ("done", 2)]
  assert merge_list_deleted(deleted, "todo") is deleted
