"""Awaiting long-running async operations.

Every mutating control-plane call returns an :class:`~keysmith.models.AsyncOperation`
handle. :func:`await_async_operation` polls that handle until it reaches a
terminal state or the caller's :class:`~keysmith.deadline.Deadline`
expires. It is the single waiter used by create, update, and delete.
"""

from __future__ import annotations

import logging
from typing import Optional

from keysmith.deadline import Deadline
from keysmith.enums import AsyncOperationState, parse_operation_state
from keysmith.exceptions import (
    KeysmithError,
    OperationCancelledError,
    OperationError,
    OperationFailedError,
    OperationTimeoutError,
)
from keysmith.models import AsyncOperation, PollConfig

logger = logging.getLogger(__name__)


def await_async_operation(
    client,
    operation: Optional[AsyncOperation],
    deadline: Optional[Deadline] = None,
    poll: Optional[PollConfig] = None,
) -> AsyncOperation:
    """Block until *operation* is fulfilled.

    The first status check happens after ``poll.interval`` seconds; the
    interval then grows by ``poll.backoff`` up to ``poll.max_interval``.
    An operation that is already terminal is evaluated without polling.
    The passed-in *operation* is never modified.

    Args:
        client: A :class:`~keysmith.client.CloudClient` (anything with
            ``get_async_operation``).
        operation: The handle returned by the mutating call.
        deadline: Governs the whole wait; ``None`` waits indefinitely.
        poll: Polling schedule; defaults to a fixed one-second interval.

    Returns:
        The final, fulfilled :class:`~keysmith.models.AsyncOperation`.

    Raises:
        OperationError: *operation* is ``None`` or a status query failed.
        OperationFailedError: The operation failed or was rejected.
        OperationCancelledError: The operation was cancelled server-side,
            or the deadline's cancel event was set.
        OperationTimeoutError: The deadline expired first.
    """
    if operation is None:
        raise OperationError("failed to await response: nil operation")

    deadline = deadline or Deadline()
    poll = poll or PollConfig()
    what = f"async operation {operation.id}"

    current = operation
    interval = poll.interval
    while True:
        state = parse_operation_state(current.state)
        if state.is_terminal:
            return _finish(current, state)

        logger.debug("%s responded with state %s", what, state.value)
        deadline.sleep(interval, what)
        interval = min(interval * poll.backoff, poll.max_interval)

        try:
            current = client.get_async_operation(operation.id, deadline)
        except (OperationTimeoutError, OperationCancelledError):
            raise
        except KeysmithError as exc:
            raise OperationError(
                f"failed to query async operation status: {exc}"
            ) from exc


def _finish(operation: AsyncOperation, state: AsyncOperationState) -> AsyncOperation:
    if state == AsyncOperationState.FULFILLED:
        return operation
    reason = operation.failure_reason or "no reason given"
    if state == AsyncOperationState.CANCELLED:
        raise OperationCancelledError(f"request was cancelled: {reason}")
    if state == AsyncOperationState.REJECTED:
        raise OperationFailedError(f"request was rejected: {reason}")
    raise OperationFailedError(f"request failed: {reason}")
