"""Board-state client: optimistic moves, rollback and broadcast reconciliation over the Kanflow API."""

from kanflow.client.api import ApiError, KanflowApi
from kanflow.client.channel import BoardChannel
from kanflow.client.moves import DragResult, MoveDirective, apply_move, encode_move
from kanflow.client.state import Assignee, BoardSummary, ListState, Notification, Pagination, TaskState
from kanflow.client.store import BoardStore

__all__ = [
  "ApiError",
  "Assignee",
  "BoardChannel",
  "BoardStore",
  "BoardSummary",
  "DragResult",
  "KanflowApi",
  "ListState",
  "MoveDirective",
  "Notification",
  "Pagination",
  "TaskState",
  "apply_move",
  "encode_move",
]
