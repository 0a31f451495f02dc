"""Per-session entry point that runs one agent turn per user message."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from ..browser.base import ExecutionAdapter
from ..config import AgentConfig
from ..credentials import CredentialResolver
from ..errors import AgentCoreError
from ..llm.base import ConversationTurn, ReasoningClient
from ..models import EventType, NotificationEvent, NotificationLevel, Session, SessionStatus
from ..notifications.base import Notifier
from ..skills.registry import SkillRegistry
from ..transcript import InMemoryTranscriptStore, TranscriptEntry, TranscriptStore
from .intent import IntentVerdict
from .control import StopController
from .loop import AgentLoop, LoopOutcome, LoopTerminal, describe_failure

LOGGER = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s]+")


class AgentService:
    """Serialize agent turns per session and keep their transcripts."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        reasoner: ReasoningClient,
        notifier: Notifier,
        *,
        skills: Optional[SkillRegistry] = None,
        credentials: Optional[CredentialResolver] = None,
        transcripts: Optional[TranscriptStore] = None,
        config: Optional[AgentConfig] = None,
        stops: Optional[StopController] = None,
    ) -> None:
        self._adapter = adapter
        self._reasoner = reasoner
        self._config = config or AgentConfig()
        self._notifier = notifier
        self._credentials = credentials or CredentialResolver()
        self._transcripts = transcripts or InMemoryTranscriptStore()
        self._stops = stops or StopController()
        self._locks: dict[str, asyncio.Lock] = {}
        self._sessions: dict[str, Session] = {}
        self._loop = AgentLoop(
            adapter,
            reasoner,
            notifier,
            skills=skills,
            credentials=self._credentials,
            config=self._config,
        )

    @property
    def transcripts(self) -> TranscriptStore:
        return self._transcripts

    @property
    def adapter(self) -> ExecutionAdapter:
        return self._adapter

    def is_running(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def request_stop(self, session_id: str) -> bool:
        """Ask the running turn of ``session_id`` to stop at its next checkpoint."""

        session = self._sessions.get(session_id)
        if session is not None and session.status is SessionStatus.RUNNING:
            session.status = SessionStatus.STOPPED
        LOGGER.info("Stop requested for session %s", session_id)
        return self._stops.request_stop(session_id)

    async def handle_message(self, session: Session, message: str) -> LoopOutcome:
        """Run one agent turn. Never raises for agent or browser failures."""

        lock = self._locks.setdefault(session.id, asyncio.Lock())
        async with lock:
            self._sessions[session.id] = session
            self._stops.reset(session.id)
            session.status = SessionStatus.RUNNING
            session.touch()
            self._transcripts.add(TranscriptEntry(session_id=session.id, role="user", content=message))
            try:
                try:
                    await self._open_target(session, message)
                    refusal = await self._screen_intent(session, message)
                except AgentCoreError as exc:
                    LOGGER.warning("Could not start turn for %s: %s", session.id, exc)
                    outcome = self._failed(session, describe_failure(exc))
                except Exception as exc:
                    LOGGER.exception("Unexpected error starting turn for %s", session.id)
                    outcome = self._failed(session, describe_failure(exc))
                else:
                    if refusal is not None:
                        outcome = refusal
                    else:
                        history = self._history(session)
                        outcome = await self._loop.run(
                            session, history, self._stops.token_for(session.id)
                        )
                self._transcripts.add(
                    TranscriptEntry(
                        session_id=session.id,
                        role="agent",
                        content=outcome.transcript,
                        screenshot_path=(
                            outcome.final_screenshot.file_path if outcome.final_screenshot else None
                        ),
                    )
                )
                return outcome
            finally:
                session.status = SessionStatus.IDLE
                session.touch()

    async def _open_target(self, session: Session, message: str) -> None:
        match = URL_PATTERN.search(message)
        if not match or self._adapter.has_session(session.id):
            return
        url = match.group(0)
        mode = "Headless" if session.headless else "Headed"
        self._notifier.notify(
            NotificationEvent(
                type=EventType.THOUGHT.value,
                message=f"Launching browser ({mode}) and navigating to {url}...",
                session_id=session.id,
            )
        )
        await self._adapter.get_page(session.id, url, session.headless)
        session.target_url = url

    async def _screen_intent(self, session: Session, message: str) -> Optional[LoopOutcome]:
        """Return a refusal outcome when the classifier rejects ``message``."""

        if not self._config.classify_intent:
            return None
        decision = await self._reasoner.classify_intent(message)
        if decision.refused:
            LOGGER.info("Refused message for session %s: %s", session.id, decision.reasoning)
            return self._failed(session, f"Request Refused: {decision.reasoning}")
        if decision.verdict is IntentVerdict.USE_SKILL:
            thought = f"Router suggested skill: {decision.skill_name} ({decision.reasoning})"
        else:
            thought = f"Router check passed: {decision.reasoning}"
        self._notifier.notify(
            NotificationEvent(type=EventType.THOUGHT.value, message=thought, session_id=session.id)
        )
        return None

    def _history(self, session: Session) -> list[ConversationTurn]:
        history = [
            ConversationTurn(role=entry.role, content=entry.content)
            for entry in self._transcripts.get(session.id)
        ]
        account = self._credentials.get_account(session.test_account_id)
        if account is not None:
            history.append(
                ConversationTurn(
                    role="system",
                    content=(
                        f"Active test account selected for this session: id={account.id}, "
                        f"key={account.account_key}. Use action type_test_account_secret with "
                        "field=username or field=password when filling credentials. Never ask "
                        "for or output the raw credential values."
                    ),
                )
            )
        return history

    def _failed(self, session: Session, message: str) -> LoopOutcome:
        self._notifier.notify(
            NotificationEvent(
                type=EventType.ERROR.value,
                message=message,
                level=NotificationLevel.ERROR,
                session_id=session.id,
            )
        )
        return LoopOutcome(
            terminal=LoopTerminal.ERROR,
            message=message,
            action_count=0,
            transcript=f"Error: {message}",
        )
