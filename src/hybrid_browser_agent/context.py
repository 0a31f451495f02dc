"""Owned runtime components shared by the HTTP service and the CLI."""

from __future__ import annotations

import logging
from typing import Optional

from .agent.service import AgentService
from .browser.base import ExecutionAdapter
from .browser.local_adapter import LocalExecutionAdapter
from .browser.manager import BrowserManager
from .config import AppConfig
from .credentials import CredentialResolver
from .executor.registry import ExecutorConnectionRegistry
from .executor.remote_adapter import RemoteExecutionAdapter
from .llm.base import ReasoningClient
from .models import ExecutionMode, Session
from .notifications.base import CompositeNotifier, EventBroadcaster, Notifier
from .router import resolve_execution_mode, select_adapter
from .skills.registry import SkillRegistry
from .transcript import InMemoryTranscriptStore, TranscriptStore

LOGGER = logging.getLogger(__name__)


class RuntimeContext:
    """Hold the browser manager, executor link and agent service for one process."""

    def __init__(
        self,
        config: AppConfig,
        *,
        reasoner: ReasoningClient,
        notifier: Notifier,
        skills: Optional[SkillRegistry] = None,
        credentials: Optional[CredentialResolver] = None,
        transcripts: Optional[TranscriptStore] = None,
        browser_manager: Optional[BrowserManager] = None,
        registry: Optional[ExecutorConnectionRegistry] = None,
    ) -> None:
        self.config = config
        self.mode: ExecutionMode = resolve_execution_mode(config.deployment_mode)
        self.reasoner = reasoner
        self.events = EventBroadcaster()
        self.notifier = CompositeNotifier([notifier, self.events])
        self.skills = skills or SkillRegistry()
        self.credentials = credentials or CredentialResolver()
        self.transcripts = transcripts or InMemoryTranscriptStore()
        self.browser_manager = browser_manager or BrowserManager(config.browser)
        self.registry = registry or ExecutorConnectionRegistry()
        self.local_adapter = LocalExecutionAdapter(self.browser_manager)
        self.remote_adapter = RemoteExecutionAdapter(
            self.registry,
            default_timeout=config.executor.command_timeout,
        )
        self.sessions: dict[str, Session] = {}
        self.agent = AgentService(
            self.adapter,
            reasoner,
            self.notifier,
            skills=self.skills,
            credentials=self.credentials,
            transcripts=self.transcripts,
            config=config.agent,
        )
        LOGGER.info("Runtime context ready in %s mode", self.mode.value)

    @property
    def adapter(self) -> ExecutionAdapter:
        return select_adapter(self.mode, local=self.local_adapter, remote=self.remote_adapter)

    def get_session(self, session_id: str, *, headless: Optional[bool] = None) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            self.sessions[session_id] = session
        if headless is not None:
            session.headless = headless
        return session

    async def start(self) -> None:
        self.browser_manager.start()

    async def reset(self) -> None:
        """Drop the executor link and every browser, keeping configuration."""

        self.remote_adapter.disconnect()
        self.registry.reset()
        for session_id in list(self.sessions):
            await self.browser_manager.close_session(session_id)
        self.sessions.clear()

    async def shutdown(self) -> None:
        self.remote_adapter.disconnect()
        await self.browser_manager.shutdown()
        close = getattr(self.reasoner, "aclose", None)
        if close is not None:
            await close()
