"""Connection bookkeeping for the (single) external executor."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .protocol import ExecutorCapabilities

LOGGER = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ExecutorStatus(BaseModel):
    """Public view of the executor connection returned by the status endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    connected: bool = False
    last_seen_at: Optional[int] = None


class ExecutorConnectionRegistry:
    """Track whether an executor is attached and when it was last heard from."""

    def __init__(self, clock: Callable[[], int] = _epoch_ms) -> None:
        self._clock = clock
        self._connected = False
        self._last_seen_at: Optional[int] = None
        self._capabilities: Optional[ExecutorCapabilities] = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def capabilities(self) -> Optional[ExecutorCapabilities]:
        return self._capabilities

    def mark_connected(self, capabilities: Optional[ExecutorCapabilities] = None) -> None:
        self._connected = True
        self._last_seen_at = self._clock()
        if capabilities is not None:
            self._capabilities = capabilities
        LOGGER.info("Executor connected")

    def mark_disconnected(self) -> None:
        if self._connected:
            LOGGER.info("Executor disconnected")
        self._connected = False

    def touch_heartbeat(self, connected: bool = True) -> ExecutorStatus:
        """Record a heartbeat. ``connected=False`` keeps the last-seen time."""

        if connected:
            self.mark_connected()
        else:
            self.mark_disconnected()
        return self.status()

    def status(self) -> ExecutorStatus:
        return ExecutorStatus(connected=self._connected, last_seen_at=self._last_seen_at)

    def reset(self) -> None:
        self._connected = False
        self._last_seen_at = None
        self._capabilities = None
