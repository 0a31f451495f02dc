"""Execution adapter that forwards browser work to an external executor."""

from __future__ import annotations

import base64
import itertools
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from ..browser.base import ExecutionAdapter, RemotePage, ScreenshotCapture
from ..errors import ConnectivityError, ExecutorDisconnectedError
from ..models import BrowserAction
from .correlation import CommandCorrelator
from .protocol import (
    ExecutorCapabilities,
    ProtocolModel,
    RunNextActionMessage,
    RunObservationMessage,
    RunStopMessage,
)
from .registry import ExecutorConnectionRegistry

LOGGER = logging.getLogger(__name__)

SendFn = Callable[[ProtocolModel], None]

NOT_CONNECTED_MESSAGE = (
    "Hybrid execution mode is selected but no local executor is connected yet. "
    "Run 'hybrid-browser-agent executor' in a separate terminal to connect."
)


@dataclass
class ObservationCache:
    """Most recent observation fields reported by the executor."""

    screenshot: Optional[str] = None
    dom: Optional[str] = None
    console_errors: list[str] = field(default_factory=list)


class RemoteExecutionAdapter(ExecutionAdapter):
    """Drive a browser that lives in a separately connected executor process."""

    def __init__(
        self,
        registry: Optional[ExecutorConnectionRegistry] = None,
        *,
        default_timeout: float = 30.0,
        correlator: Optional[CommandCorrelator] = None,
    ) -> None:
        self._registry = registry or ExecutorConnectionRegistry()
        self._default_timeout = default_timeout
        self._correlator = correlator or CommandCorrelator()
        self._send: Optional[SendFn] = None
        self._counter = itertools.count()
        self._observation = ObservationCache()

    @property
    def registry(self) -> ExecutorConnectionRegistry:
        return self._registry

    @property
    def correlator(self) -> CommandCorrelator:
        return self._correlator

    @property
    def connected(self) -> bool:
        return self._send is not None

    @property
    def last_observation(self) -> ObservationCache:
        return self._observation

    # Transport management --------------------------------------------------

    def register_connection(
        self,
        send: SendFn,
        capabilities: Optional[ExecutorCapabilities] = None,
    ) -> None:
        if self._send is not None:
            LOGGER.info("Replacing existing executor transport")
            rejected = self._correlator.reject_all(
                lambda: ExecutorDisconnectedError("Local executor reconnected; command was lost")
            )
            if rejected:
                LOGGER.warning("Rejected %d command(s) sent to the replaced transport", rejected)
        self._send = send
        self._registry.mark_connected(capabilities)

    def disconnect(self, send: Optional[SendFn] = None) -> int:
        """Drop the active transport and fail every outstanding command.

        When ``send`` is given and is no longer the active transport the call
        is ignored, so a stale stream closing cannot tear down its successor.
        """

        if send is not None and send != self._send:
            LOGGER.debug("Ignoring disconnect from a replaced executor transport")
            return 0
        self._send = None
        self._registry.mark_disconnected()
        rejected = self._correlator.reject_all(
            lambda: ExecutorDisconnectedError("Local executor disconnected")
        )
        if rejected:
            LOGGER.warning("Rejected %d pending executor command(s) on disconnect", rejected)
        return rejected

    def handle_result(
        self,
        step_id: str,
        ok: bool,
        data: Any = None,
        error: Optional[str] = None,
    ) -> bool:
        return self._correlator.settle(step_id, ok, data, error)

    def handle_observation(self, message: RunObservationMessage) -> None:
        # Absent fields leave the cached values untouched.
        if message.screenshot_ref is not None:
            self._observation.screenshot = message.screenshot_ref
        if message.dom_snapshot is not None:
            self._observation.dom = message.dom_snapshot
        if message.console_errors is not None:
            self._observation.console_errors = list(message.console_errors)

    # Commands --------------------------------------------------------------

    def next_step_id(self) -> str:
        return f"step_{int(time.time() * 1000)}_{next(self._counter)}"

    async def send_command(
        self,
        session_id: str,
        action_name: str,
        args: Optional[dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        send = self._send
        if send is None:
            raise ConnectivityError(NOT_CONNECTED_MESSAGE)
        timeout = timeout_ms / 1000 if timeout_ms is not None else self._default_timeout
        step_id = self.next_step_id()
        future = self._correlator.register(step_id, timeout, action_name=action_name)
        message = RunNextActionMessage(
            run_id=session_id,
            step_id=step_id,
            action=action_name,
            args=args or {},
            timeout_ms=int(timeout * 1000),
        )
        LOGGER.debug("Dispatching %s as %s for %s", action_name, step_id, session_id)
        try:
            send(message)
        except Exception as exc:
            self._correlator.reject(step_id, ConnectivityError(f"Failed to send {action_name}: {exc}"))
        return await future

    # ExecutionAdapter ------------------------------------------------------

    def has_session(self, session_id: str) -> bool:
        return self._send is not None

    async def get_page(
        self,
        session_id: str,
        url: Optional[str] = None,
        headless: bool = True,
    ) -> RemotePage:
        if url:
            await self.send_command(session_id, "goto", {"url": url})
        elif self._send is None:
            raise ConnectivityError(NOT_CONNECTED_MESSAGE)
        return RemotePage(session_id=session_id, url=url)

    async def capture_screenshot(
        self,
        session_id: str,
        output_dir: Path,
        label: str,
    ) -> Optional[ScreenshotCapture]:
        self._observation.screenshot = None
        data = await self.send_command(session_id, "getScreenshot", {})
        if isinstance(data, dict) and data.get("base64"):
            self._observation.screenshot = data["base64"]
        encoded = self._observation.screenshot
        if not encoded:
            return None
        output_dir.mkdir(parents=True, exist_ok=True)
        file_path = output_dir / f"{label}.jpg"
        file_path.write_bytes(base64.b64decode(encoded))
        return ScreenshotCapture(base64=encoded, file_path=file_path)

    async def get_simplified_dom(self, session_id: str) -> str:
        self._observation.dom = None
        data = await self.send_command(session_id, "getDOM", {})
        if isinstance(data, dict) and data.get("dom"):
            self._observation.dom = data["dom"]
        return self._observation.dom or ""

    def get_console_errors(self, session_id: str) -> list[str]:
        errors = self._observation.console_errors
        self._observation.console_errors = []
        return errors

    async def execute_action(
        self,
        session_id: str,
        action: BrowserAction,
        headless: bool = True,
    ) -> None:
        await self.send_command(
            session_id,
            action.action,
            action.model_dump(exclude_none=True),
        )

    async def close_session(self, session_id: str) -> None:
        send = self._send
        if send is None:
            return
        try:
            send(RunStopMessage(run_id=session_id))
        except Exception as exc:  # pragma: no cover
            LOGGER.warning("Failed to send stop for %s: %s", session_id, exc)
