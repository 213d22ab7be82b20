"""A deadline shared by every call made on behalf of one lifecycle operation.

Each top-level lifecycle call (create / read / update / delete) builds a
single :class:`Deadline` from its timeout and threads it through every
client request and through the async-operation waiter, so one timeout
governs the initial request, the poll loop, and the final re-fetch.

Cancellation is cooperative: setting the optional :class:`threading.Event`
wakes any :meth:`Deadline.sleep` immediately and makes the next
:meth:`Deadline.check` raise.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from keysmith.exceptions import OperationCancelledError, OperationTimeoutError


class Deadline:
    """Monotonic deadline with an optional cancellation event.

    Args:
        timeout: Seconds until the deadline, or ``None`` for no deadline.
        cancel_event: When set, the deadline is treated as cancelled.
        clock: Monotonic clock; injectable for tests.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        clock=time.monotonic,
    ) -> None:
        self._clock = clock
        self._timeout = timeout
        self._expires_at = None if timeout is None else clock() + timeout
        self._cancel_event = cancel_event or threading.Event()

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry (never negative), or ``None`` if unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Cancel the deadline, waking any pending :meth:`sleep`."""
        self._cancel_event.set()

    def check(self, what: str = "operation") -> None:
        """Raise if the deadline was cancelled or has expired.

        Raises:
            OperationCancelledError: The cancel event is set.
            OperationTimeoutError: The deadline has elapsed.
        """
        if self.cancelled():
            raise OperationCancelledError(f"{what}: cancelled by caller")
        if self.expired():
            raise self._timeout_error(what)

    def sleep(self, seconds: float, what: str = "operation") -> None:
        """Wait up to *seconds*, returning early and raising on cancel or expiry."""
        self.check(what)
        remaining = self.remaining()
        delay = seconds if remaining is None else min(seconds, remaining)
        if self._cancel_event.wait(delay):
            self.check(what)
        if remaining is not None and delay >= remaining:
            raise self._timeout_error(what)

    def _timeout_error(self, what: str) -> OperationTimeoutError:
        return OperationTimeoutError(f"{what}: deadline exceeded after {self._timeout:g}s")

    def request_timeout(self, default: float) -> float:
        """Per-request timeout: *default* bounded by the time remaining."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)
