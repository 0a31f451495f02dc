"""Base classes and utilities for reasoning clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..agent.actions import AgentAction
from ..agent.intent import IntentClassification, proceed


@dataclass
class ConversationTurn:
    """A single entry of the per-turn conversation history."""

    role: str
    content: str
    is_skill_context: bool = False


@dataclass
class Observation:
    """What the agent can see before deciding its next action."""

    screenshot_base64: Optional[str] = None
    dom: str = ""
    console_errors: list[str] = field(default_factory=list)


class ReasoningClient(ABC):
    """Abstract interface for reasoning providers."""

    @abstractmethod
    async def reason(
        self,
        history: Sequence[ConversationTurn],
        observation: Observation,
        skill_context: Optional[str] = None,
    ) -> AgentAction:
        """Return the next action for the agent loop.

        Implementations must not raise for provider or parsing failures; those
        are reported as ``error`` actions instead.
        """

    async def classify_intent(self, message: str) -> IntentClassification:
        """Decide whether a user message may run the action loop.

        Providers without a classifier let every message proceed.
        """

        return proceed("Intent classifier not available.")
