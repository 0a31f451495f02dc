from pathlib import Path
from typing import Any, Optional

import pytest

from hybrid_browser_agent.browser.base import ExecutionAdapter, ScreenshotCapture
from hybrid_browser_agent.models import BrowserAction


class StubExecutionAdapter(ExecutionAdapter):
    """In-memory adapter that records what the agent asked it to do."""

    def __init__(self) -> None:
        self.sessions: set[str] = set()
        self.pages: list[tuple[str, Optional[str], bool]] = []
        self.actions: list[BrowserAction] = []
        self.console_errors: list[str] = []
        self.dom = '[0] <button> "Submit" @ (100, 200)'
        self.action_error: Optional[Exception] = None
        self.page_error: Optional[Exception] = None
        self.closed: list[str] = []

    def has_session(self, session_id: str) -> bool:
        return session_id in self.sessions

    async def get_page(self, session_id: str, url: Optional[str] = None, headless: bool = True) -> Any:
        self.pages.append((session_id, url, headless))
        if self.page_error is not None:
            raise self.page_error
        self.sessions.add(session_id)
        return object()

    async def capture_screenshot(
        self,
        session_id: str,
        output_dir: Path,
        label: str,
    ) -> Optional[ScreenshotCapture]:
        if session_id not in self.sessions:
            return None
        return ScreenshotCapture(base64="c2NyZWVu", file_path=output_dir / f"{label}.jpg")

    async def get_simplified_dom(self, session_id: str) -> str:
        return self.dom if session_id in self.sessions else ""

    def get_console_errors(self, session_id: str) -> list[str]:
        errors = list(self.console_errors)
        self.console_errors.clear()
        return errors

    async def execute_action(self, session_id: str, action: BrowserAction, headless: bool = True) -> None:
        if self.action_error is not None:
            raise self.action_error
        self.actions.append(action)
        self.sessions.add(session_id)

    async def close_session(self, session_id: str) -> None:
        self.closed.append(session_id)
        self.sessions.discard(session_id)


@pytest.fixture
def stub_adapter() -> StubExecutionAdapter:
    return StubExecutionAdapter()
