"""Playwright-powered browser sessions keyed by conversation session id."""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..config import BrowserConfig
from ..errors import BrowserActionError, BrowserLaunchError, NavigationError, SessionLostError
from ..models import BrowserAction
from .base import ScreenshotCapture

LOGGER = logging.getLogger(__name__)

SESSION_LOST_MESSAGE = "Browser session lost, please navigate to a URL to restart."
SESSION_CLOSED_MESSAGE = "Browser session was closed. Please start a new session or navigate to a URL."
LOST_TARGET_MARKERS = (
    "detached Frame",
    "Frame was detached",
    "Target closed",
    "Session closed",
    "has been closed",
)

INTERACTIVE_ELEMENTS_SCRIPT = """
() => {
  const elements = [];
  const selectors = 'a, button, input, select, textarea, [role="button"], [onclick]';
  document.querySelectorAll(selectors).forEach((el, i) => {
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) return;
    const tag = el.tagName.toLowerCase();
    const text = (el.textContent || '').trim().slice(0, 80);
    const type = el.getAttribute('type') || '';
    const placeholder = el.getAttribute('placeholder') || '';
    const ariaLabel = el.getAttribute('aria-label') || '';
    const role = el.getAttribute('role') || '';
    const label = text || placeholder || ariaLabel || '[' + tag + ']';
    const cx = Math.round(rect.x + rect.width / 2);
    const cy = Math.round(rect.y + rect.height / 2);
    elements.push('[' + i + '] <' + tag + (type ? ' type="' + type + '"' : '')
      + (role ? ' role="' + role + '"' : '') + '> "' + label + '" @ (' + cx + ', ' + cy + ')');
  });
  return elements.join('\\n');
}
"""


class BrowserLauncher(ABC):
    """Factory for browser/page pairs."""

    @abstractmethod
    async def launch(self, headless: bool) -> tuple[Any, Any]:
        """Launch a browser and return ``(browser, page)``."""

    async def stop(self) -> None:
        """Release driver resources once no browsers remain."""


class PlaywrightLauncher(BrowserLauncher):
    """Launch Chromium through the async Playwright driver."""

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright = None

    async def launch(self, headless: bool) -> tuple[Any, Any]:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        browser = await self._playwright.chromium.launch(
            headless=headless,
            args=list(self._config.launch_args),
        )
        context = await browser.new_context(
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            }
        )
        page = await context.new_page()
        return browser, page

    async def stop(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


@dataclass
class BrowserHandle:
    """A live browser owned by one session."""

    browser: Any
    page: Any
    headless: bool
    last_activity: float
    console_errors: list[str] = field(default_factory=list)


def display_available() -> bool:
    return not (sys.platform.startswith("linux") and not os.environ.get("DISPLAY"))


class BrowserManager:
    """Own at most one browser per session and evict idle ones."""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        *,
        launcher: Optional[BrowserLauncher] = None,
        clock: Callable[[], float] = time.monotonic,
        display_check: Callable[[], bool] = display_available,
    ) -> None:
        self._config = config or BrowserConfig()
        self._launcher = launcher or PlaywrightLauncher(self._config)
        self._clock = clock
        self._display_check = display_check
        self._sessions: dict[str, BrowserHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._gc_task: Optional[asyncio.Task] = None

    # Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic idle sweep on the running loop."""

        if self._gc_task is None or self._gc_task.done():
            self._gc_task = asyncio.get_running_loop().create_task(self._gc_loop())

    async def shutdown(self) -> None:
        if self._gc_task is not None:
            self._gc_task.cancel()
            try:
                await self._gc_task
            except asyncio.CancelledError:
                pass
            self._gc_task = None
        for session_id in list(self._sessions):
            await self.close_session(session_id)
        self._locks.clear()
        await self._launcher.stop()

    async def _gc_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.gc_interval)
            try:
                await self.collect_idle()
            except Exception:  # pragma: no cover
                LOGGER.exception("Idle browser sweep failed")

    async def collect_idle(self) -> list[str]:
        """Close sessions idle longer than the configured timeout."""

        now = self._clock()
        evicted: list[str] = []
        for session_id, handle in list(self._sessions.items()):
            lock = self._locks.get(session_id)
            if lock is not None and lock.locked():
                continue
            if now - handle.last_activity > self._config.idle_timeout:
                await self.close_session(session_id)
                evicted.append(session_id)
                LOGGER.info("Collected idle browser session %s", session_id)
        return evicted

    # Sessions --------------------------------------------------------------

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def resolve_headless(self, requested: bool) -> bool:
        if not requested and not self._display_check():
            LOGGER.warning(
                "Headful browser requested but no display is available; falling back to headless"
            )
            return True
        return requested

    async def get_page(
        self,
        session_id: str,
        url: Optional[str] = None,
        headless: bool = True,
    ) -> Any:
        async with self._lock_for(session_id):
            return await self._get_page_locked(session_id, url, headless)

    async def _get_page_locked(self, session_id: str, url: Optional[str], headless: bool) -> Any:
        effective_headless = self.resolve_headless(headless)
        handle = self._sessions.get(session_id)
        captured_url: Optional[str] = None

        if handle is not None and handle.headless != effective_headless:
            LOGGER.info(
                "Headless mode changed (%s -> %s); restarting session %s",
                handle.headless,
                effective_headless,
                session_id,
            )
            captured_url = self._current_url(handle)
            if captured_url == "about:blank":
                captured_url = None
            await self._evict(session_id)
            handle = None

        if handle is not None and self._is_stale(handle):
            LOGGER.info("Session %s appears dead; restarting", session_id)
            await self._evict(session_id)
            handle = None

        if handle is not None:
            handle.last_activity = self._clock()
            if url and url != self._current_url(handle):
                await self._goto(handle.page, url)
            return handle.page

        handle = await self._launch(effective_headless)
        target_url = url or captured_url
        if target_url:
            try:
                await self._goto(handle.page, target_url)
            except NavigationError:
                await self._close_browser(handle)
                raise
        await self._evict(session_id)
        self._sessions[session_id] = handle
        return handle.page

    async def _launch(self, headless: bool) -> BrowserHandle:
        LOGGER.info("Launching new browser (headless=%s)", headless)
        try:
            browser, page = await self._launcher.launch(headless)
        except PlaywrightError as exc:
            message = str(exc)
            if headless or "missing x server" not in message.lower():
                raise BrowserLaunchError(
                    "Failed to launch browser. Is Chromium installed? "
                    f"Run \"playwright install chromium\". Details: {message}"
                ) from exc
            LOGGER.warning("Headful launch failed due to missing X server; retrying headless")
            headless = True
            try:
                browser, page = await self._launcher.launch(True)
            except PlaywrightError as retry_exc:
                raise BrowserLaunchError(f"Failed to launch browser. Details: {retry_exc}") from retry_exc

        handle = BrowserHandle(
            browser=browser,
            page=page,
            headless=headless,
            last_activity=self._clock(),
        )

        def _on_console(message: Any) -> None:
            if message.type == "error":
                handle.console_errors.append(message.text)

        def _on_page_error(error: Any) -> None:
            handle.console_errors.append(f"Page Error: {getattr(error, 'message', None) or error}")

        page.on("console", _on_console)
        page.on("pageerror", _on_page_error)
        return handle

    async def _goto(self, page: Any, url: str) -> None:
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._config.navigation_timeout * 1000,
            )
        except PlaywrightError as exc:
            raise NavigationError(url, str(exc)) from exc

    @staticmethod
    def _current_url(handle: BrowserHandle) -> Optional[str]:
        try:
            return handle.page.url
        except PlaywrightError:
            return None

    @staticmethod
    def _is_stale(handle: BrowserHandle) -> bool:
        try:
            if handle.page.is_closed():
                return True
            handle.page.url
        except PlaywrightError:
            return True
        return False

    async def _evict(self, session_id: str) -> None:
        handle = self._sessions.pop(session_id, None)
        if handle is not None:
            await self._close_browser(handle)

    @staticmethod
    async def _close_browser(handle: BrowserHandle) -> None:
        try:
            await handle.browser.close()
        except PlaywrightError as exc:
            LOGGER.debug("Ignoring error while closing browser: %s", exc)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        # Kept after close: waiters and later callers must share one lock.
        return self._locks.setdefault(session_id, asyncio.Lock())

    async def close_session(self, session_id: str) -> None:
        async with self._lock_for(session_id):
            await self._evict(session_id)

    # Observation -----------------------------------------------------------

    def get_console_errors(self, session_id: str) -> list[str]:
        handle = self._sessions.get(session_id)
        if handle is None:
            return []
        errors = list(handle.console_errors)
        handle.console_errors.clear()
        return errors

    async def get_simplified_dom(self, session_id: str) -> str:
        handle = self._sessions.get(session_id)
        if handle is None:
            return ""
        if handle.page.is_closed():
            LOGGER.info("Page closed for %s; removing session", session_id)
            await self._evict(session_id)
            return ""
        try:
            return await handle.page.evaluate(INTERACTIVE_ELEMENTS_SCRIPT)
        except PlaywrightError as exc:
            LOGGER.warning("Failed to read DOM for %s (likely closed): %s", session_id, exc)
            await self._evict(session_id)
            return ""

    async def capture_screenshot(
        self,
        session_id: str,
        output_dir: Path,
        label: str,
    ) -> Optional[ScreenshotCapture]:
        handle = self._sessions.get(session_id)
        if handle is None:
            return None
        if handle.page.is_closed():
            await self._evict(session_id)
            return None
        output_dir.mkdir(parents=True, exist_ok=True)
        file_path = output_dir / f"{label}.jpg"
        try:
            data = await handle.page.screenshot(
                type="jpeg",
                quality=self._config.screenshot_quality,
            )
        except PlaywrightError as exc:
            LOGGER.warning("Screenshot failed for %s (session lost): %s", session_id, exc)
            await self._evict(session_id)
            return None
        file_path.write_bytes(data)
        handle.last_activity = self._clock()
        return ScreenshotCapture(base64=base64.b64encode(data).decode("ascii"), file_path=file_path)

    # Actions ---------------------------------------------------------------

    async def execute_action(
        self,
        session_id: str,
        action: BrowserAction,
        headless: bool = True,
    ) -> None:
        handle = self._sessions.get(session_id)
        if handle is None and action.action == "navigate" and action.url:
            LOGGER.info("Lazily starting session %s for navigation to %s", session_id, action.url)
            await self.get_page(session_id, action.url, headless)
            return
        if handle is None:
            raise SessionLostError(SESSION_LOST_MESSAGE)

        handle.last_activity = self._clock()
        if handle.page.is_closed():
            await self._evict(session_id)
            raise SessionLostError(SESSION_CLOSED_MESSAGE)

        page = handle.page
        try:
            await self._perform(page, action)
        except PlaywrightError as exc:
            message = str(exc)
            LOGGER.error("Action %s failed for %s: %s", action.action, session_id, message)
            if any(marker in message for marker in LOST_TARGET_MARKERS):
                await self._evict(session_id)
                raise SessionLostError(SESSION_LOST_MESSAGE) from exc
            raise BrowserActionError(message) from exc

    async def _perform(self, page: Any, action: BrowserAction) -> None:
        if action.action == "navigate":
            if action.url:
                await self._goto(page, action.url)
        elif action.action == "click":
            await page.mouse.click(action.x, action.y)
            try:
                await page.wait_for_load_state(
                    "networkidle",
                    timeout=self._config.network_idle_timeout * 1000,
                )
            except PlaywrightError:
                LOGGER.debug("Network did not settle after click")
        elif action.action == "type":
            if action.x is not None and action.y is not None:
                await page.mouse.click(action.x, action.y, click_count=3)
                await asyncio.sleep(0.1)
                await page.keyboard.press("Backspace")
            await page.keyboard.type(action.text or "", delay=self._config.type_delay_ms)
        elif action.action == "scroll":
            distance = self._config.scroll_distance
            await page.mouse.wheel(0, distance if action.direction == "down" else -distance)
            await asyncio.sleep(0.5)
        else:
            raise BrowserActionError(f"Unsupported action type: {action.action}")
