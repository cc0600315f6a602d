from __future__ import annotations


class RequestSequencer:
  """
  Generation counter for fetches that may resolve out of order.

  Each fetch takes a token from `issue()` before awaiting; when it resolves, only the
  holder of the latest token may write its result. Issuing without fetching (e.g.
  when leaving a board) invalidates whatever is still in flight.
  """

  def __init__(self) -> None:
    self._latest = 0

  def issue(self) -> int:
    self._latest += 1
    return self._latest

  def is_current(self, token: int) -> bool:
    return token == self._latest

  @property
  def latest(self) -> int:
    return self._latest
