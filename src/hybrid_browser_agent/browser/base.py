"""Execution adapter abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..models import BrowserAction


@dataclass
class ScreenshotCapture:
    """A captured screenshot, both inline and on disk."""

    base64: str
    file_path: Optional[Path] = None


@dataclass
class RemotePage:
    """Opaque page reference handed out when the browser lives in an executor."""

    session_id: str
    url: Optional[str] = None


class ExecutionAdapter(ABC):
    """Uniform interface for driving a browser, wherever it runs."""

    @abstractmethod
    def has_session(self, session_id: str) -> bool:
        """Return whether a browser is currently attached to ``session_id``."""

    @abstractmethod
    async def get_page(
        self,
        session_id: str,
        url: Optional[str] = None,
        headless: bool = True,
    ) -> Any:
        """Ensure a live page exists for the session, optionally navigating."""

    @abstractmethod
    async def capture_screenshot(
        self,
        session_id: str,
        output_dir: Path,
        label: str,
    ) -> Optional[ScreenshotCapture]:
        """Capture the current viewport, or ``None`` when there is no session."""

    @abstractmethod
    async def get_simplified_dom(self, session_id: str) -> str:
        """Return the interactive-element summary for the current page."""

    @abstractmethod
    def get_console_errors(self, session_id: str) -> list[str]:
        """Drain and return console errors captured since the last call."""

    @abstractmethod
    async def execute_action(
        self,
        session_id: str,
        action: BrowserAction,
        headless: bool = True,
    ) -> None:
        """Perform a single browser primitive."""

    @abstractmethod
    async def close_session(self, session_id: str) -> None:
        """Release the browser owned by the session."""
