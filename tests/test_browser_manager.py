import asyncio
import base64
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from hybrid_browser_agent.browser.local_adapter import LocalExecutionAdapter
from hybrid_browser_agent.browser.manager import (
    SESSION_LOST_MESSAGE,
    BrowserLauncher,
    BrowserManager,
)
from hybrid_browser_agent.config import BrowserConfig
from hybrid_browser_agent.errors import (
    BrowserActionError,
    BrowserLaunchError,
    NavigationError,
    SessionLostError,
)
from hybrid_browser_agent.models import BrowserAction


class StubMouse:
    def __init__(self, page: "StubPage") -> None:
        self._page = page

    async def click(self, x: float, y: float, click_count: int = 1) -> None:
        self._page.calls.append(("click", x, y, click_count))
        if self._page.fail_with:
            raise PlaywrightError(self._page.fail_with)

    async def wheel(self, dx: float, dy: float) -> None:
        self._page.calls.append(("wheel", dx, dy))


class StubKeyboard:
    def __init__(self, page: "StubPage") -> None:
        self._page = page

    async def press(self, key: str) -> None:
        self._page.calls.append(("press", key))

    async def type(self, text: str, delay: float = 0) -> None:
        self._page.calls.append(("type", text))


class StubPage:
    def __init__(self) -> None:
        self.url = "about:blank"
        self.closed = False
        self.calls: list[tuple[Any, ...]] = []
        self.handlers: dict[str, Any] = {}
        self.fail_navigation = False
        self.fail_with: Optional[str] = None
        self.mouse = StubMouse(self)
        self.keyboard = StubKeyboard(self)

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str, wait_until: str, timeout: float) -> None:
        self.calls.append(("goto", url, wait_until, timeout))
        if self.fail_navigation:
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        self.url = url

    async def wait_for_load_state(self, state: str, timeout: float) -> None:
        self.calls.append(("wait", state, timeout))

    async def evaluate(self, script: str) -> str:
        return '[0] <button> "Go" @ (10, 20)'

    async def screenshot(self, type: str, quality: int) -> bytes:
        return b"jpeg-bytes"


class StubBrowser:
    def __init__(self, page: StubPage) -> None:
        self.page = page
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class StubLauncher(BrowserLauncher):
    def __init__(self) -> None:
        self.launches: list[bool] = []
        self.browsers: list[StubBrowser] = []
        self.next_page: Optional[StubPage] = None
        self.error: Optional[str] = None

    async def launch(self, headless: bool) -> tuple[Any, Any]:
        self.launches.append(headless)
        if self.error:
            raise PlaywrightError(self.error)
        page = self.next_page or StubPage()
        self.next_page = None
        browser = StubBrowser(page)
        self.browsers.append(browser)
        return browser, page


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _manager(clock: Optional[FakeClock] = None, display: bool = True):
    launcher = StubLauncher()
    manager = BrowserManager(
        BrowserConfig(idle_timeout=60),
        launcher=launcher,
        clock=clock or FakeClock(),
        display_check=lambda: display,
    )
    return manager, launcher


@pytest.mark.asyncio
async def test_get_page_launches_once_and_reuses():
    manager, launcher = _manager()

    page = await manager.get_page("s1", "https://example.com")
    again = await manager.get_page("s1")

    assert page is again
    assert launcher.launches == [True]
    assert page.url == "https://example.com"
    assert page.calls[0] == ("goto", "https://example.com", "domcontentloaded", 30000.0)


@pytest.mark.asyncio
async def test_get_page_navigates_existing_session_to_new_url():
    manager, launcher = _manager()
    page = await manager.get_page("s1", "https://a.test")

    await manager.get_page("s1", "https://b.test")

    assert page.url == "https://b.test"
    assert len(launcher.launches) == 1


@pytest.mark.asyncio
async def test_headless_change_restarts_and_restores_url():
    manager, launcher = _manager()
    first = await manager.get_page("s1", "https://example.com", headless=True)

    second = await manager.get_page("s1", headless=False)

    assert second is not first
    assert launcher.launches == [True, False]
    assert launcher.browsers[0].closed
    assert second.url == "https://example.com"


@pytest.mark.asyncio
async def test_headful_without_display_falls_back_to_headless():
    manager, launcher = _manager(display=False)

    await manager.get_page("s1", headless=False)

    assert launcher.launches == [True]


@pytest.mark.asyncio
async def test_closed_page_is_relaunched():
    manager, launcher = _manager()
    page = await manager.get_page("s1", "https://example.com")
    page.closed = True

    fresh = await manager.get_page("s1")

    assert fresh is not page
    assert launcher.browsers[0].closed
    assert len(launcher.launches) == 2


@pytest.mark.asyncio
async def test_navigation_failure_releases_new_browser():
    manager, launcher = _manager()
    failing = StubPage()
    failing.fail_navigation = True
    launcher.next_page = failing

    with pytest.raises(NavigationError, match="Failed to navigate to https://bad.test"):
        await manager.get_page("s1", "https://bad.test")

    assert launcher.browsers[0].closed
    assert not manager.has_session("s1")


@pytest.mark.asyncio
async def test_launch_failure_is_reported():
    manager, launcher = _manager()
    launcher.error = "Executable doesn't exist"

    with pytest.raises(BrowserLaunchError, match="playwright install chromium"):
        await manager.get_page("s1")


@pytest.mark.asyncio
async def test_headful_launch_without_x_server_retries_headless():
    manager, launcher = _manager()
    launcher.error = "Missing X server or $DISPLAY"

    with pytest.raises(BrowserLaunchError):
        await manager.get_page("s1", headless=False)

    assert launcher.launches == [False, True]


@pytest.mark.asyncio
async def test_action_without_session_is_session_lost():
    manager, _ = _manager()

    with pytest.raises(SessionLostError, match=SESSION_LOST_MESSAGE):
        await manager.execute_action("s1", BrowserAction(action="click", x=1, y=2))


@pytest.mark.asyncio
async def test_navigate_without_session_starts_browser():
    manager, launcher = _manager()

    await manager.execute_action("s1", BrowserAction(action="navigate", url="https://example.com"))

    assert manager.has_session("s1")
    assert launcher.launches == [True]


@pytest.mark.asyncio
async def test_closed_page_action_evicts_session():
    manager, _ = _manager()
    page = await manager.get_page("s1")
    page.closed = True

    with pytest.raises(SessionLostError, match="was closed"):
        await manager.execute_action("s1", BrowserAction(action="scroll", direction="down"))

    assert not manager.has_session("s1")


@pytest.mark.asyncio
async def test_detached_target_becomes_session_lost():
    manager, launcher = _manager()
    page = await manager.get_page("s1")
    page.fail_with = "Target closed"

    with pytest.raises(SessionLostError):
        await manager.execute_action("s1", BrowserAction(action="click", x=1, y=2))

    assert not manager.has_session("s1")
    assert launcher.browsers[0].closed


@pytest.mark.asyncio
async def test_other_action_failure_keeps_session():
    manager, _ = _manager()
    page = await manager.get_page("s1")
    page.fail_with = "Element is not attached"

    with pytest.raises(BrowserActionError):
        await manager.execute_action("s1", BrowserAction(action="click", x=1, y=2))

    assert manager.has_session("s1")


@pytest.mark.asyncio
async def test_primitives_drive_the_page():
    manager, _ = _manager()
    page = await manager.get_page("s1")

    await manager.execute_action("s1", BrowserAction(action="click", x=5, y=6))
    await manager.execute_action("s1", BrowserAction(action="type", x=7, y=8, text="hello"))
    await manager.execute_action("s1", BrowserAction(action="scroll", direction="up"))

    assert page.calls == [
        ("click", 5, 6, 1),
        ("wait", "networkidle", 5000.0),
        ("click", 7, 8, 3),
        ("press", "Backspace"),
        ("type", "hello"),
        ("wheel", 0, -400),
    ]


@pytest.mark.asyncio
async def test_collect_idle_evicts_only_stale_sessions():
    clock = FakeClock()
    manager, launcher = _manager(clock)
    await manager.get_page("old")
    clock.now += 50
    await manager.get_page("fresh")
    clock.now += 20

    evicted = await manager.collect_idle()

    assert evicted == ["old"]
    assert manager.has_session("fresh")
    assert launcher.browsers[0].closed


@pytest.mark.asyncio
async def test_console_errors_are_drained():
    manager, _ = _manager()
    page = await manager.get_page("s1")
    page.handlers["console"](SimpleNamespace(type="error", text="boom"))
    page.handlers["console"](SimpleNamespace(type="log", text="ignored"))
    page.handlers["pageerror"](SimpleNamespace(message="Uncaught TypeError"))

    assert manager.get_console_errors("s1") == ["boom", "Page Error: Uncaught TypeError"]
    assert manager.get_console_errors("s1") == []
    assert manager.get_console_errors("missing") == []


@pytest.mark.asyncio
async def test_screenshot_and_dom_through_local_adapter(tmp_path: Path):
    manager, _ = _manager()
    adapter = LocalExecutionAdapter(manager)

    assert await adapter.capture_screenshot("s1", tmp_path, "none") is None
    assert await adapter.get_simplified_dom("s1") == ""

    await adapter.get_page("s1")
    capture = await adapter.capture_screenshot("s1", tmp_path, "step-1")

    assert capture is not None
    assert capture.file_path == tmp_path / "step-1.jpg"
    assert capture.file_path.read_bytes() == b"jpeg-bytes"
    assert base64.b64decode(capture.base64) == b"jpeg-bytes"
    assert "<button>" in await adapter.get_simplified_dom("s1")
    assert adapter.has_session("s1")

    await adapter.close_session("s1")

    assert not adapter.has_session("s1")


@pytest.mark.asyncio
async def test_shutdown_closes_everything():
    manager, launcher = _manager()
    manager.start()
    await manager.get_page("a")
    await manager.get_page("b")

    await manager.shutdown()

    assert all(browser.closed for browser in launcher.browsers)
    assert not manager.has_session("a")


class GatedLauncher(StubLauncher):
    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def launch(self, headless: bool) -> tuple[Any, Any]:
        self.entered.set()
        await self.release.wait()
        return await super().launch(headless)


@pytest.mark.asyncio
async def test_close_during_launch_leaves_one_live_browser():
    launcher = GatedLauncher()
    manager = BrowserManager(launcher=launcher, clock=FakeClock(), display_check=lambda: True)

    first = asyncio.create_task(manager.get_page("s1", "https://a.test"))
    await launcher.entered.wait()
    closing = asyncio.create_task(manager.close_session("s1"))
    second = asyncio.create_task(manager.get_page("s1", "https://b.test"))
    await asyncio.sleep(0)
    launcher.release.set()
    await asyncio.gather(first, closing, second)

    live = [browser for browser in launcher.browsers if not browser.closed]
    assert len(launcher.browsers) == 2
    assert len(live) == 1
    assert live[0].page.url == "https://b.test"
    assert manager.has_session("s1")


@pytest.mark.asyncio
async def test_concurrent_get_page_converges_on_one_handle():
    manager, launcher = _manager()

    pages = await asyncio.gather(
        *(manager.get_page("s1", "https://example.com") for _ in range(5))
    )

    assert launcher.launches == [True]
    assert all(page is pages[0] for page in pages)
    assert [call[0] for call in pages[0].calls] == ["goto"]
