"""Executor-side handling of commands received from the control plane."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from ..browser.manager import BrowserManager
from ..errors import BrowserActionError
from ..models import BrowserAction
from .protocol import (
    ProtocolModel,
    RunActionResultMessage,
    RunNextActionMessage,
    RunObservationMessage,
    RunStopMessage,
)

LOGGER = logging.getLogger(__name__)

ResultSender = Callable[[ProtocolModel], Awaitable[None]]


class ExecutorWorker:
    """Perform exactly one browser primitive per command and report back."""

    def __init__(
        self,
        manager: BrowserManager,
        send: ResultSender,
        *,
        headless: bool = False,
        artifacts_dir: Path = Path(".agent/executor"),
    ) -> None:
        self._manager = manager
        self._send = send
        self._headless = headless
        self._artifacts_dir = artifacts_dir

    @property
    def manager(self) -> BrowserManager:
        return self._manager

    async def handle_next_action(self, message: RunNextActionMessage) -> None:
        run_id = message.run_id
        started = time.monotonic()
        LOGGER.info("Received action %s (%s)", message.action, message.step_id)
        try:
            observation = await self._perform(message)
        except Exception as exc:
            LOGGER.error("Action %s failed: %s", message.action, exc)
            await self._send(
                RunActionResultMessage(
                    run_id=run_id,
                    step_id=message.step_id,
                    ok=False,
                    latency_ms=_elapsed_ms(started),
                    error=str(exc) or exc.__class__.__name__,
                )
            )
            return
        if observation is not None:
            await self._send(observation)
        await self._send(
            RunActionResultMessage(
                run_id=run_id,
                step_id=message.step_id,
                ok=True,
                latency_ms=_elapsed_ms(started),
            )
        )

    async def _perform(self, message: RunNextActionMessage) -> Optional[RunObservationMessage]:
        run_id = message.run_id
        args = message.args
        if message.action == "goto":
            await self._manager.get_page(run_id, args.get("url"), self._headless)
            return None

        await self._manager.get_page(run_id, None, self._headless)
        if message.action == "getDOM":
            dom = await self._manager.get_simplified_dom(run_id)
            return RunObservationMessage(
                run_id=run_id,
                dom_snapshot=dom,
                console_errors=self._manager.get_console_errors(run_id),
            )
        if message.action == "getScreenshot":
            shot = await self._manager.capture_screenshot(
                run_id,
                self._artifacts_dir / run_id,
                message.step_id,
            )
            if shot is None:
                raise BrowserActionError("Screenshot unavailable: browser session lost")
            return RunObservationMessage(run_id=run_id, screenshot_ref=shot.base64)

        try:
            action = BrowserAction.model_validate({**args, "action": message.action})
        except ValidationError as exc:
            raise BrowserActionError(f"Invalid arguments for {message.action}: {exc}") from exc
        await self._manager.execute_action(run_id, action, self._headless)
        return None

    async def handle_stop(self, message: RunStopMessage) -> None:
        LOGGER.info("Stopping run %s", message.run_id)
        await self._manager.close_session(message.run_id)

    async def close(self) -> None:
        await self._manager.shutdown()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
