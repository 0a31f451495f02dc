"""Mock reasoning clients for testing and offline use."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional, Sequence, Union

from ..agent.actions import AgentAction, parse_action
from ..agent.intent import IntentClassification, parse_intent, proceed
from .base import ConversationTurn, Observation, ReasoningClient


class ScriptedReasoner(ReasoningClient):
    """Return actions from a predefined sequence.

    Entries may be action models or raw model output strings, which are run
    through the normal parser. Intent decisions follow the same rule and
    default to proceed once exhausted.
    """

    def __init__(
        self,
        actions: Iterable[Union[AgentAction, str]],
        intents: Iterable[Union[IntentClassification, str]] = (),
    ) -> None:
        self._actions: Deque[Union[AgentAction, str]] = deque(actions)
        self._intents: Deque[Union[IntentClassification, str]] = deque(intents)
        self.calls: list[tuple[list[ConversationTurn], Observation, Optional[str]]] = []
        self.classified: list[str] = []

    async def reason(
        self,
        history: Sequence[ConversationTurn],
        observation: Observation,
        skill_context: Optional[str] = None,
    ) -> AgentAction:
        self.calls.append((list(history), observation, skill_context))
        if not self._actions:
            raise RuntimeError("ScriptedReasoner ran out of actions")
        item = self._actions.popleft()
        if isinstance(item, str):
            return parse_action(item)
        return item

    async def classify_intent(self, message: str) -> IntentClassification:
        self.classified.append(message)
        if not self._intents:
            return proceed("No scripted intent decision.")
        item = self._intents.popleft()
        if isinstance(item, str):
            return parse_intent(item, message)
        return item

    @property
    def remaining(self) -> int:
        return len(self._actions)
