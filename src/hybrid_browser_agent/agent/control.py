"""Utilities for coordinating cancellation of running agent turns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class StopRequest:
    """Record describing a stop request issued by the user."""

    reason: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StopToken:
    """Cooperative cancellation flag polled at loop checkpoints.

    Only touched from the event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._request: Optional[StopRequest] = None

    def request_stop(self, reason: str = "Agent stopped by user.") -> bool:
        """Set the flag. Returns ``False`` when a stop was already pending."""

        if self._request is not None:
            return False
        self._request = StopRequest(reason=reason)
        return True

    @property
    def stop_requested(self) -> bool:
        return self._request is not None

    def snapshot(self) -> Optional[StopRequest]:
        return self._request

    def clear(self) -> None:
        self._request = None


class StopController:
    """Hand out one :class:`StopToken` per session."""

    def __init__(self) -> None:
        self._tokens: dict[str, StopToken] = {}

    def token_for(self, session_id: str) -> StopToken:
        return self._tokens.setdefault(session_id, StopToken())

    def request_stop(self, session_id: str, reason: str = "Agent stopped by user.") -> bool:
        return self.token_for(session_id).request_stop(reason)

    def reset(self, session_id: str) -> None:
        token = self._tokens.get(session_id)
        if token is not None:
            token.clear()
