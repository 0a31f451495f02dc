"""Notification channels for agent events."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from rich.console import Console

from ..models import NotificationEvent


class Notifier(ABC):
    """Interface for delivering events emitted while an agent turn runs."""

    @abstractmethod
    def notify(self, event: NotificationEvent) -> None:
        """Send a notification event."""


class ConsoleNotifier(Notifier):
    """Simple notifier that prints to the console using Rich."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console()

    def notify(self, event: NotificationEvent) -> None:
        style = {
            "info": "cyan",
            "warning": "yellow",
            "error": "red",
            "success": "green",
        }.get(event.level.value, "white")
        if event.type == "screenshot":
            self._console.print("[SCREENSHOT] captured", style="dim")
            return
        self._console.print(f"[{event.type.upper()}] {event.message}", style=style)
        if event.data:
            self._console.print(event.data, style="dim")


class RecordingNotifier(Notifier):
    """Keep every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]


class EventBroadcaster(Notifier):
    """Route events to per-session subscriber queues."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(session_id, []).append(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(session_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(session_id, None)

    def close(self, session_id: str) -> None:
        """Signal end-of-stream to every subscriber of ``session_id``."""

        for queue in self._subscribers.get(session_id, []):
            queue.put_nowait(None)

    def notify(self, event: NotificationEvent) -> None:
        if event.session_id is None:
            return
        for queue in self._subscribers.get(event.session_id, []):
            queue.put_nowait(event)


class CompositeNotifier(Notifier):
    """Fan-out notifier that propagates events to multiple notifiers."""

    def __init__(self, notifiers: Iterable[Notifier]) -> None:
        self._notifiers = list(notifiers)

    def notify(self, event: NotificationEvent) -> None:
        for notifier in self._notifiers:
            notifier.notify(event)
