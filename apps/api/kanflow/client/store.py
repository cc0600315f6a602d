from __future__ import annotations

import logging
from typing import Any, Callable

from kanflow.client.api import ApiError, KanflowApi
from kanflow.client.moves import DragResult, apply_move, encode_move
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
from kanflow.client.sequencing import RequestSequencer
from kanflow.client.state import BoardSummary, ListState, Lists, Notification, Pagination, TaskState, find_task

logger = logging.getLogger(__name__)

Listener = Callable[["BoardStore"], None]


class BoardStore:
  """
  Client-side state for the board dashboard and the open board.

  Every mutation goes through the merge functions in `kanflow.client.reconcile`,
  whether it comes from this client's own confirmed request or from a broadcast.
  Moves are applied before the request is sent and rolled back if it fails.
  Actions never raise: user-initiated failures become one `Notification`,
  background failures are only logged.
  """

  def __init__(self, api: KanflowApi, *, on_notify: Callable[[Notification], None] | None = None) -> None:
    self.api = api
    self.on_notify = on_notify

    self.boards: tuple[BoardSummary, ...] = ()
    self.boards_pagination: Pagination | None = None
    self.boards_loading = False

    self.active_board: BoardSummary | None = None
    self.lists: Lists = ()
    self.board_loading = False

    self.notifications: list[Notification] = []

    self._boards_seq = RequestSequencer()
    self._board_seq = RequestSequencer()
    self._listeners: list[Listener] = []

  # -- plumbing ------------------------------------------------------------

  def subscribe(self, listener: Listener) -> Callable[[], None]:
    self._listeners.append(listener)

    def unsubscribe() -> None:
      if listener in self._listeners:
        self._listeners.remove(listener)

    return unsubscribe

  def _changed(self) -> None:
    for listener in list(self._listeners):
      listener(self)

  def _set_lists(self, lists: Lists) -> None:
    if lists is self.lists:
      return
    self.lists = lists
    self._changed()

  def notify(self, message: str, *, level: str = "error", **context: Any) -> None:
    n = Notification(level=level, message=message, context=context)
    self.notifications.append(n)
    if self.on_notify is not None:
      self.on_notify(n)

  def _fail(self, action: str, exc: ApiError) -> None:
    logger.info("%s failed (%s): %s", action, exc.status_code, exc.message)
    self.notify(exc.message, action=action, statusCode=exc.status_code)

  @property
  def board_id(self) -> str | None:
    return self.active_board.id if self.active_board else None

  def task(self, task_id: str) -> TaskState | None:
    found = find_task(self.lists, task_id)
    return found[0].tasks[found[1]] if found else None

  # -- dashboard -----------------------------------------------------------

  async def fetch_boards(self, *, page: int = 1, limit: int | None = None, search: str | None = None) -> None:
    token = self._boards_seq.issue()
    self.boards_loading = True
    self._changed()
    try:
      data = await self.api.list_boards(page=page, limit=limit, search=search)
    except ApiError as exc:
      if self._boards_seq.is_current(token):
        logger.info("board list fetch failed: %s", exc.message)
        self.boards_loading = False
        self._changed()
      return
    if not self._boards_seq.is_current(token):
      logger.debug("discarding stale board list response %d (latest %d)", token, self._boards_seq.latest)
      return
    self.boards = tuple(BoardSummary.from_api(b) for b in data["boards"])
    self.boards_pagination = Pagination.from_api(data["pagination"])
    self.boards_loading = False
    self._changed()

  async def create_board(self, title: str, *, description: str | None = None, color: str | None = None) -> BoardSummary | None:
    try:
      data = await self.api.create_board(title=title, description=description, color=color)
    except ApiError as exc:
      self._fail("create_board", exc)
      return None
    board = BoardSummary.from_api(data)
    self.boards = (board,) + tuple(b for b in self.boards if b.id != board.id)
    self._changed()
    return board

  async def delete_board(self, board_id: str) -> bool:
    try:
      await self.api.delete_board(board_id)
    except ApiError as exc:
      self._fail("delete_board", exc)
      return False
    self.boards = tuple(b for b in self.boards if b.id != board_id)
    if self.board_id == board_id:
      self.clear_active_board()
    else:
      self._changed()
    return True

  # -- active board --------------------------------------------------------

  async def fetch_board(self, board_id: str) -> bool:
    token = self._board_seq.issue()
    self.board_loading = True
    self._changed()
    try:
      data = await self.api.get_board(board_id)
    except ApiError as exc:
      if self._board_seq.is_current(token):
        logger.info("board %s fetch failed: %s", board_id, exc.message)
        self.board_loading = False
        self._changed()
      return False
    if not self._board_seq.is_current(token):
      logger.debug("discarding stale board %s response", board_id)
      return False
    self.active_board = BoardSummary.from_api(data)
    self.lists = tuple(sorted((ListState.from_api(l) for l in data.get("lists") or ()), key=lambda l: l.position))
    self.board_loading = False
    self._changed()
    return True

  def clear_active_board(self) -> None:
    self._board_seq.issue()
    self.active_board = None
    self.lists = ()
    self.board_loading = False
    self._changed()

  def set_lists(self, lists: Lists) -> None:
    self._set_lists(tuple(lists))

  # -- lists ---------------------------------------------------------------

  async def create_list(self, title: str) -> ListState | None:
    board_id = self.board_id
    if board_id is None:
      return None
    try:
      data = await self.api.create_list(board_id, title)
    except ApiError as exc:
      self._fail("create_list", exc)
      return None
    lst = ListState.from_api(data)
    if self.board_id == board_id:
      self._set_lists(merge_list_created(self.lists, lst))
    return lst

  async def update_list(self, list_id: str, *, title: str) -> ListState | None:
    try:
      data = await self.api.update_list(list_id, title=title)
    except ApiError as exc:
      self._fail("update_list", exc)
      return None
    lst = ListState.from_api(data)
    self._set_lists(merge_list_updated(self.lists, lst.id, title=lst.title))
    return lst

  async def delete_list(self, list_id: str) -> bool:
    try:
      await self.api.delete_list(list_id)
    except ApiError as exc:
      self._fail("delete_list", exc)
      return False
    self._set_lists(merge_list_deleted(self.lists, list_id))
    return True

  async def reorder_lists(self, list_ids: list[str]) -> bool:
    board_id = self.board_id
    if board_id is None:
      return False
    try:
      await self.api.reorder_lists(board_id, list_ids)
    except ApiError as exc:
      self._fail("reorder_lists", exc)
      return False
    self._set_lists(merge_lists_moved(self.lists, {list_id: idx for idx, list_id in enumerate(list_ids)}))
    return True

  # -- tasks ---------------------------------------------------------------

  async def create_task(self, list_id: str, title: str, **fields: Any) -> TaskState | None:
    try:
      data = await self.api.create_task(list_id, title=title, **fields)
    except ApiError as exc:
      self._fail("create_task", exc)
      return None
    task = TaskState.from_api(data)
    self._set_lists(merge_task_created(self.lists, task))
    return task

  async def update_task(self, task_id: str, **fields: Any) -> TaskState | None:
    try:
      data = await self.api.update_task(task_id, **fields)
    except ApiError as exc:
      self._fail("update_task", exc)
      return None
    task = TaskState.from_api(data)
    self._set_lists(merge_task_updated(self.lists, task))
    return task

  async def delete_task(self, task_id: str) -> bool:
    try:
      await self.api.delete_task(task_id)
    except ApiError as exc:
      self._fail("delete_task", exc)
      return False
    self._set_lists(merge_task_deleted(self.lists, task_id))
    return True

  async def assign(self, task_id: str, user_id: str, *, remove: bool = False) -> TaskState | None:
    action = "remove_assignee" if remove else "add_assignee"
    try:
      data = await getattr(self.api, action)(task_id, user_id)
    except ApiError as exc:
      self._fail(action, exc)
      return None
    task = TaskState.from_api(data)
    self._set_lists(merge_task_updated(self.lists, task))
    return task

  async def move_task(self, task_id: str, list_id: str, position: int) -> bool:
    """
    Move a task optimistically, then confirm with the server.

    Returns True when the server accepted the move. On failure the lists are put
    back exactly as they were before the move and one notification is raised; the
    move is not retried. No request is sent when the move changes nothing.
    If another board was opened (or the board closed) while the request was in
    flight, the snapshot belongs to a board that is no longer shown and is dropped.
    """
    snapshot = self.lists
    moved = apply_move(snapshot, task_id, list_id, position)
    if moved is None:
      return False
    gen = self._board_seq.latest
    self._set_lists(moved)
    try:
      await self.api.move_task(task_id, list_id, position)
    except ApiError as exc:
      if self._board_seq.is_current(gen):
        logger.info("rolling back move of %s to %s[%d]", task_id, list_id, position)
        self._set_lists(snapshot)
      else:
        logger.info("move of %s failed after its board was closed, not rolling back", task_id)
      self._fail("move_task", exc)
      return False
    return True

  async def handle_drag(self, drag: DragResult) -> bool:
    directive = encode_move(self.lists, drag)
    if directive is None:
      return False
    return await self.move_task(directive.task_id, directive.list_id, directive.position)

  # -- broadcasts ----------------------------------------------------------

  def _other_board(self, board_id: object) -> bool:
    return bool(board_id) and board_id != self.board_id

  def apply_event(self, event: str, data: dict[str, Any]) -> bool:
    """
    Merge one broadcast event into the open board. Returns False when the event was
    not applied, including events whose payload is missing the fields they need.
    """
    if self.active_board is None:
      return False
    if not isinstance(data, dict):
      logger.warning("ignoring %s with non-object payload", event)
      return False
    try:
      return self._apply(event, data)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
      logger.warning("ignoring malformed %s event: %r", event, exc)
      return False

  def _apply(self, event: str, data: dict[str, Any]) -> bool:
    if event in ("task:created", "task:updated"):
      if self._other_board(data.get("boardId")):
        return False
      task = TaskState.from_api(data)
      merge = merge_task_created if event == "task:created" else merge_task_updated
      self._set_lists(merge(self.lists, task))
    elif event == "task:moved":
      raw = data.get("task") or {}
      if self._other_board(raw.get("boardId")):
        return False
      task = TaskState.from_api(raw)
      self._set_lists(merge_task_moved(self.lists, task, data.get("fromListId") or task.list_id, data.get("toListId") or task.list_id))
    elif event == "task:deleted":
      if self._other_board(data.get("boardId")):
        return False
      self._set_lists(merge_task_deleted(self.lists, data["taskId"]))
    elif event == "list:created":
      if self._other_board(data.get("boardId")):
        return False
      self._set_lists(merge_list_created(self.lists, ListState.from_api(data)))
    elif event == "list:updated":
      if self._other_board(data.get("boardId")):
        return False
      self._set_lists(merge_list_updated(self.lists, data["id"], title=data.get("title"), position=data.get("position")))
    elif event == "list:deleted":
      if self._other_board(data.get("boardId")):
        return False
      self._set_lists(merge_list_deleted(self.lists, data["listId"]))
    elif event == "list:moved":
      if self._other_board(data.get("boardId")):
        return False
      self._set_lists(merge_lists_moved(self.lists, {p["id"]: int(p["position"]) for p in data.get("lists") or ()}))
    elif event == "board:updated":
      if self._other_board(data.get("id")):
        return False
      self.active_board = BoardSummary.from_api({**data, "role": self.active_board.role})
      self._changed()
    elif event == "board:deleted":
      if self._other_board(data.get("boardId")):
        return False
      self.boards = tuple(b for b in self.boards if b.id != data.get("boardId"))
      self.clear_active_board()
      self.notify("This board was deleted", level="warning", boardId=data.get("boardId"))
    else:
      logger.debug("ignoring event %s", event)
      return False
    return True
