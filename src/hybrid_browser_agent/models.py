"""Shared models used across the hybrid browser agent."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExecutionMode(str, enum.Enum):
    """Where the browser for a deployment runs."""

    SINGLE = "single"
    HYBRID = "hybrid"


class SessionStatus(str, enum.Enum):
    """Lifecycle state of a conversation session."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Session(BaseModel):
    """A conversation session that may own a browser."""

    id: str
    target_url: Optional[str] = None
    headless: bool = True
    status: SessionStatus = SessionStatus.IDLE
    last_activity: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    test_account_id: Optional[str] = Field(
        default=None,
        description="Test account bound to this session for credential typing.",
    )

    def touch(self) -> None:
        self.last_activity = datetime.now(timezone.utc)


class BrowserAction(BaseModel):
    """A single browser primitive dispatched through an execution adapter."""

    action: str
    x: Optional[float] = None
    y: Optional[float] = None
    text: Optional[str] = None
    direction: Optional[str] = None
    url: Optional[str] = None


class EventType(str, enum.Enum):
    """Typed events emitted while an agent turn runs."""

    THOUGHT = "thought"
    SCREENSHOT = "screenshot"
    ACTION = "action"
    DONE = "done"
    ASK_HUMAN = "ask_human"
    ERROR = "error"
    STOPPED = "stopped"
    BUDGET_EXHAUSTED = "budget_exhausted"


class NotificationLevel(str, enum.Enum):
    """Severity of notification events."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class NotificationEvent(BaseModel):
    """Event emitted to notify users."""

    type: str
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    session_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
