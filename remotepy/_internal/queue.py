"""Matching of responses to requests.

The wire protocol carries no request identifiers: the remote answers
requests strictly in the order they were written, so the oldest pending call
always owns the next response.
"""
from __future__ import annotations

import logging

from collections import deque

from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import Callable, List

    from ._typing import ResponseHandler


logger = logging.getLogger(__name__)


class PendingCall:
    """A request waiting for its response.

    Args:
        on_response: invoked with the response tag and values
        on_abort: invoked with an exception if the channel closes first
    """
    __slots__ = ("request", "on_response", "on_abort")

    def __init__(
        self,
        request: str,
        on_response: ResponseHandler,
        on_abort: Callable[[Exception], None],
    ):
        self.request = request
        self.on_response = on_response
        self.on_abort = on_abort


class CorrelationQueue:
    """FIFO of pending calls.

    Not thread-safe, only touched from the event loop and from request
    issuing code running on it.
    """
    def __init__(self):
        self._pending = deque()

    def __len__(self):
        return len(self._pending)

    def push(self, call: PendingCall) -> None:
        self._pending.append(call)

    def dispatch(self, tag: str, values: List[str]) -> None:
        """Deliver a decoded response to the oldest pending call.
        """
        try:
            call = self._pending.popleft()
        except IndexError:
            logger.error(
                "Received %s response with no pending request, discarding", tag
            )
            return

        try:
            call.on_response(tag, values)
        except Exception:
            logger.exception("Error handling %s response to %s", tag, call.request)

    def fail_all(self, exc: Exception) -> None:
        """Abort every pending call, oldest first.
        """
        if self._pending:
            logger.warning("Failing %d pending calls: %s", len(self._pending), exc)
        while self._pending:
            call = self._pending.popleft()
            try:
                call.on_abort(exc)
            except Exception:
                logger.exception("Error aborting %s", call.request)
