"""Pairing of asynchronous executor results with the commands awaiting them."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import CommandFailedError, CommandTimeoutError

LOGGER = logging.getLogger(__name__)


@dataclass
class PendingCommand:
    """An in-flight remote command waiting for its result."""

    step_id: str
    action_name: str
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None
    created_at: float = field(default_factory=time.monotonic)


class CommandCorrelator:
    """Own the pending-command table.

    Each registered step id settles exactly once: by a result, by its timeout,
    by a bulk rejection, or by the awaiting caller being cancelled. Whichever
    happens first removes the entry; later signals for that id are ignored.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingCommand] = {}

    def register(
        self,
        step_id: str,
        timeout: float,
        *,
        action_name: str = "command",
    ) -> asyncio.Future:
        if step_id in self._pending:
            raise ValueError(f"Step {step_id} is already pending")
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        pending = PendingCommand(step_id=step_id, action_name=action_name, future=future)
        pending.timer = loop.call_later(timeout, self._expire, step_id, timeout)
        future.add_done_callback(lambda _: self._discard(step_id, future))
        self._pending[step_id] = pending
        return future

    def resolve(self, step_id: str, value: Any = None) -> bool:
        pending = self._pop(step_id)
        if pending is None:
            LOGGER.debug("Ignoring result for unknown step %s", step_id)
            return False
        if not pending.future.done():
            pending.future.set_result(value)
        return True

    def reject(self, step_id: str, error: BaseException) -> bool:
        pending = self._pop(step_id)
        if pending is None:
            LOGGER.debug("Ignoring failure for unknown step %s", step_id)
            return False
        if not pending.future.done():
            pending.future.set_exception(error)
        return True

    def settle(self, step_id: str, ok: bool, data: Any = None, error: Optional[str] = None) -> bool:
        """Resolve or reject ``step_id`` from an executor result."""

        if ok:
            return self.resolve(step_id, data)
        return self.reject(step_id, CommandFailedError(error or "Unknown executor error"))

    def reject_all(self, error_factory) -> int:
        """Reject every outstanding command with a fresh error per entry."""

        step_ids = list(self._pending)
        for step_id in step_ids:
            self.reject(step_id, error_factory())
        return len(step_ids)

    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, step_id: str) -> bool:
        return step_id in self._pending

    # Internal helpers ------------------------------------------------------

    def _expire(self, step_id: str, timeout: float) -> None:
        pending = self._pending.get(step_id)
        if pending is None:
            return
        LOGGER.warning("Command %s (%s) timed out", pending.action_name, step_id)
        self.reject(
            step_id,
            CommandTimeoutError(
                f"Command {pending.action_name} timed out after {int(timeout * 1000)}ms"
            ),
        )

    def _pop(self, step_id: str) -> Optional[PendingCommand]:
        pending = self._pending.pop(step_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def _discard(self, step_id: str, future: asyncio.Future) -> None:
        # Only drop the entry if it still belongs to this future (caller cancelled).
        pending = self._pending.get(step_id)
        if pending is not None and pending.future is future:
            self._pop(step_id)
