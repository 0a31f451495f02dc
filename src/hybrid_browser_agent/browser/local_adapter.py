"""Execution adapter backed by the in-process browser manager."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from ..models import BrowserAction
from .base import ExecutionAdapter, ScreenshotCapture
from .manager import BrowserManager


class LocalExecutionAdapter(ExecutionAdapter):
    """Delegate every operation to a :class:`BrowserManager`."""

    def __init__(self, manager: BrowserManager) -> None:
        self._manager = manager

    @property
    def manager(self) -> BrowserManager:
        return self._manager

    def has_session(self, session_id: str) -> bool:
        return self._manager.has_session(session_id)

    async def get_page(
        self,
        session_id: str,
        url: Optional[str] = None,
        headless: bool = True,
    ) -> Any:
        return await self._manager.get_page(session_id, url, headless)

    async def capture_screenshot(
        self,
        session_id: str,
        output_dir: Path,
        label: str,
    ) -> Optional[ScreenshotCapture]:
        return await self._manager.capture_screenshot(session_id, output_dir, label)

    async def get_simplified_dom(self, session_id: str) -> str:
        return await self._manager.get_simplified_dom(session_id)

    def get_console_errors(self, session_id: str) -> list[str]:
        return self._manager.get_console_errors(session_id)

    async def execute_action(
        self,
        session_id: str,
        action: BrowserAction,
        headless: bool = True,
    ) -> None:
        await self._manager.execute_action(session_id, action, headless)

    async def close_session(self, session_id: str) -> None:
        await self._manager.close_session(session_id)
