"""The bounded reason/act loop that drives a browser for one user message."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from ..browser.base import ExecutionAdapter, ScreenshotCapture
from ..config import AgentConfig
from ..credentials import CredentialResolver
from ..errors import (
    AgentCoreError,
    BudgetExhaustedError,
    ConnectivityError,
    ExecutorDisconnectedError,
    SecretUnavailableError,
    SkillValidationError,
    UserStoppedError,
)
from ..llm.base import ConversationTurn, Observation, ReasoningClient
from ..models import BrowserAction, EventType, NotificationEvent, NotificationLevel, Session
from ..notifications.base import Notifier
from ..skills.registry import SkillRegistry
from .actions import (
    AskHumanAction,
    DoneAction,
    ErrorAction,
    RunScriptAction,
    TypeSecretAction,
    TypeTestAccountSecretAction,
    UseSkillAction,
    to_browser_action,
)
from .control import StopToken

LOGGER = logging.getLogger(__name__)

STOPPED_MESSAGE = "Agent stopped by user."
NOT_CONNECTED_HINT = (
    "Hybrid mode is selected, but no local executor is connected yet. "
    "Switch to single mode or connect an executor."
)


class LoopTerminal(str, enum.Enum):
    """How an agent turn ended."""

    DONE = "done"
    ASK_HUMAN = "ask_human"
    ERROR = "error"
    STOPPED = "stopped"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass
class SkillContext:
    name: str
    instructions: str


@dataclass
class LoopState:
    """Mutable bookkeeping for a single loop run."""

    session: Session
    history: list[ConversationTurn]
    action_count: int = 0
    skill: Optional[SkillContext] = None
    transcript: list[str] = field(default_factory=list)

    def note(self, content: str, *, is_skill_context: bool = False) -> None:
        self.history.append(
            ConversationTurn(role="system", content=content, is_skill_context=is_skill_context)
        )


@dataclass
class LoopOutcome:
    terminal: LoopTerminal
    message: str
    action_count: int
    transcript: str
    final_screenshot: Optional[ScreenshotCapture] = None


class _Terminal(Exception):
    """Internal signal carrying a terminal action out of the dispatch."""

    def __init__(self, terminal: LoopTerminal, message: str) -> None:
        super().__init__(message)
        self.terminal = terminal
        self.message = message


class AgentLoop:
    """Turn reasoning output into a bounded sequence of browser operations."""

    def __init__(
        self,
        adapter: ExecutionAdapter,
        reasoner: ReasoningClient,
        notifier: Notifier,
        *,
        skills: Optional[SkillRegistry] = None,
        credentials: Optional[CredentialResolver] = None,
        config: Optional[AgentConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._reasoner = reasoner
        self._notifier = notifier
        self._skills = skills or SkillRegistry()
        self._credentials = credentials or CredentialResolver()
        self._config = config or AgentConfig()
        self._sleep = sleep

    @property
    def adapter(self) -> ExecutionAdapter:
        return self._adapter

    async def run(
        self,
        session: Session,
        history: list[ConversationTurn],
        stop: Optional[StopToken] = None,
    ) -> LoopOutcome:
        """Run until a terminal action, a stop request or the action budget."""

        stop = stop or StopToken()
        state = LoopState(session=session, history=history)
        try:
            terminal, message = await self._iterate(state, stop)
        except AgentCoreError as exc:
            message = describe_failure(exc)
            LOGGER.warning("Agent turn for %s failed: %s", session.id, exc)
            return self._fail(state, message)
        except Exception as exc:
            LOGGER.exception("Unhandled error in agent turn for %s", session.id)
            return self._fail(state, str(exc) or exc.__class__.__name__)

        final_shot = await self._final_screenshot(session)
        return LoopOutcome(
            terminal=terminal,
            message=message,
            action_count=state.action_count,
            transcript="\n".join(state.transcript),
            final_screenshot=final_shot,
        )

    # Iteration -------------------------------------------------------------

    async def _iterate(self, state: LoopState, stop: StopToken) -> tuple[LoopTerminal, str]:
        try:
            while state.action_count < self._config.max_actions:
                self._check_stop(stop)
                observation = await self._observe(state.session)
                action = await self._reasoner.reason(
                    list(state.history),
                    observation,
                    state.skill.instructions if state.skill else None,
                )
                self._emit(state, EventType.THOUGHT, action.reasoning)
                state.transcript.append(action.reasoning)
                self._check_stop(stop)
                await self._dispatch(state, action)
            raise BudgetExhaustedError(
                f"Reached the limit of {self._config.max_actions} actions for this message."
            )
        except _Terminal as terminal:
            state.skill = None
            return terminal.terminal, terminal.message
        except UserStoppedError as exc:
            LOGGER.info("Stop signal received for %s", state.session.id)
            self._emit(state, EventType.STOPPED, str(exc), level=NotificationLevel.WARNING)
            state.transcript.append(str(exc))
            return LoopTerminal.STOPPED, str(exc)
        except BudgetExhaustedError as exc:
            self._emit(state, EventType.BUDGET_EXHAUSTED, str(exc), level=NotificationLevel.WARNING)
            state.transcript.append(str(exc))
            return LoopTerminal.BUDGET_EXHAUSTED, str(exc)
        except SkillValidationError as exc:
            self._emit(state, EventType.ERROR, str(exc), level=NotificationLevel.ERROR)
            state.transcript.append(f"Error: {exc}")
            return LoopTerminal.ERROR, str(exc)

    def _check_stop(self, stop: StopToken) -> None:
        if stop.stop_requested:
            request = stop.snapshot()
            raise UserStoppedError(request.reason if request else STOPPED_MESSAGE)

    async def _observe(self, session: Session) -> Observation:
        screenshot: Optional[ScreenshotCapture] = None
        if self._config.capture_screenshots:
            screenshot = await self._adapter.capture_screenshot(
                session.id,
                self._screenshot_dir(session),
                f"msg-{int(time.time() * 1000)}",
            )
        if screenshot:
            self._emit_screenshot(session, screenshot)
        dom = await self._adapter.get_simplified_dom(session.id)
        errors = self._adapter.get_console_errors(session.id)
        return Observation(
            screenshot_base64=screenshot.base64 if screenshot else None,
            dom=dom,
            console_errors=errors,
        )

    async def _dispatch(self, state: LoopState, action: Any) -> None:
        if isinstance(action, UseSkillAction):
            await self._load_skill(state, action.skill_name)
            state.action_count += 1
            return
        if isinstance(action, DoneAction):
            self._emit(state, EventType.DONE, action.summary, level=NotificationLevel.SUCCESS)
            state.transcript.append(f"Done: {action.summary}")
            raise _Terminal(LoopTerminal.DONE, action.summary)
        if isinstance(action, AskHumanAction):
            self._emit(state, EventType.ASK_HUMAN, action.question, level=NotificationLevel.WARNING)
            state.transcript.append(f"Question: {action.question}")
            raise _Terminal(LoopTerminal.ASK_HUMAN, action.question)
        if isinstance(action, ErrorAction):
            self._emit(state, EventType.ERROR, action.message, level=NotificationLevel.ERROR)
            state.transcript.append(f"Error: {action.message}")
            raise _Terminal(LoopTerminal.ERROR, action.message)

        label, data = self._describe(state, action)
        self._emit(state, EventType.ACTION, label, data=data)
        state.transcript.append(f"Action: {label}")

        if isinstance(action, RunScriptAction):
            result = await self._skills.execute_skill_script(
                action.skill_name,
                action.script,
                action.args,
            )
            content = f"[Script Result] Output: {json.dumps(result.output, default=str)}"
            if result.error:
                content += f" Error: {result.error}"
            state.note(content)
            state.action_count += 1
            return

        browser_action = self._resolve_browser_action(state, action)
        if browser_action is None:
            state.action_count += 1
            return
        await self._adapter.execute_action(
            state.session.id,
            browser_action,
            state.session.headless,
        )
        await self._sleep(self._config.settle_delay)
        state.history.append(
            ConversationTurn(role="agent", content=f"{action.reasoning}\nAction: {label}")
        )
        state.action_count += 1

    def _resolve_browser_action(self, state: LoopState, action: Any) -> Optional[BrowserAction]:
        """Map the action to a primitive; secret failures become notes and return ``None``."""

        try:
            if isinstance(action, TypeSecretAction):
                text = self._credentials.resolve_env_secret(action.key)
                return BrowserAction(action="type", x=action.x, y=action.y, text=text)
            if isinstance(action, TypeTestAccountSecretAction):
                text = self._credentials.resolve_account_secret(
                    state.session.test_account_id,
                    action.field,
                )
                return BrowserAction(action="type", x=action.x, y=action.y, text=text)
        except SecretUnavailableError as exc:
            self._emit(state, EventType.ERROR, str(exc), level=NotificationLevel.ERROR)
            state.note(f"Error: {exc}")
            return None
        browser_action = to_browser_action(action)
        if browser_action is None:
            raise AgentCoreError(f"Unsupported action: {action.action}")
        return browser_action

    async def _load_skill(self, state: LoopState, name: str) -> None:
        if state.skill is not None and state.skill.name == name:
            self._emit(state, EventType.THOUGHT, f"Skill '{name}' is already active. Preventing loop.")
            state.note(
                f"System: STOP! Skill '{name}' is ALREADY loaded and active. You are stuck in a "
                "loop. DO NOT call use_skill again. LOOK at the skill instructions in your "
                "context and execute the NEXT step."
            )
            return

        instructions = self._skills.load_skill_instructions(name)
        if not instructions:
            message = f"Skill not found: {name}"
            self._emit(state, EventType.ERROR, message, level=NotificationLevel.ERROR)
            state.transcript.append(message)
            state.note(f"Error: skill '{name}' is not registered. Continue without it.")
            return

        validation = await self._skills.execute_skill_validation(name)
        if not validation.valid:
            if validation.error:
                message = (
                    f"Skill '{name}' requires configuration: {validation.error}. "
                    "Please fix this to use the skill."
                )
            else:
                message = (
                    f"Skill '{name}' validation failed. The environment or state does not "
                    "meet the skill's strict requirements (Tripwire check)."
                )
            raise SkillValidationError(name, message)

        state.skill = SkillContext(name=name, instructions=instructions)
        self._emit(state, EventType.THOUGHT, f"Loaded skill: {name}")
        state.transcript.append(f"Loaded skill: {name}")
        state.note(f"[Skill: {name}] {instructions}", is_skill_context=True)

    def _describe(self, state: LoopState, action: Any) -> tuple[str, dict[str, Any]]:
        kind = action.action
        data: dict[str, Any] = {}
        if kind == "navigate":
            label = f"Navigating to {action.url}"
        elif kind == "click":
            label = f"Clicking at ({_num(action.x)}, {_num(action.y)})"
            data = {"x": action.x, "y": action.y}
        elif kind == "type":
            label = f'Typing "{action.text}"'
            data = {"x": action.x, "y": action.y}
        elif kind == "scroll":
            label = f"Scrolling {action.direction}"
        elif kind == "type_secret":
            label = f"Typing secret from env.{action.key}"
            data = {"x": action.x, "y": action.y}
        elif kind == "type_test_account_secret":
            account = self._credentials.get_account(state.session.test_account_id)
            account_ref = account.account_key if account else "<none>"
            label = f"Typing test account {action.field} from selected account {account_ref}"
            data = {"x": action.x, "y": action.y}
        elif kind == "run_script":
            label = f"Running script: {action.skill_name}/{action.script}"
        else:
            label = kind
        return label, {"label": label, **data}

    # Output ----------------------------------------------------------------

    def _fail(self, state: LoopState, message: str) -> LoopOutcome:
        self._emit(state, EventType.ERROR, message, level=NotificationLevel.ERROR)
        return LoopOutcome(
            terminal=LoopTerminal.ERROR,
            message=message,
            action_count=state.action_count,
            transcript=f"Error: {message}",
        )

    async def _final_screenshot(self, session: Session) -> Optional[ScreenshotCapture]:
        if not self._config.capture_screenshots:
            return None
        try:
            shot = await self._adapter.capture_screenshot(
                session.id,
                self._screenshot_dir(session),
                f"final-{int(time.time() * 1000)}",
            )
        except AgentCoreError as exc:
            LOGGER.warning("Final screenshot for %s failed: %s", session.id, exc)
            return None
        if shot:
            self._emit_screenshot(session, shot)
        return shot

    def _screenshot_dir(self, session: Session) -> Path:
        return self._config.screenshots_dir / session.id

    def _emit_screenshot(self, session: Session, shot: ScreenshotCapture) -> None:
        self._notifier.notify(
            NotificationEvent(
                type=EventType.SCREENSHOT.value,
                message="Screenshot captured",
                session_id=session.id,
                data={
                    "base64": shot.base64,
                    "file_path": str(shot.file_path) if shot.file_path else None,
                },
            )
        )

    def _emit(
        self,
        state: LoopState,
        kind: EventType,
        message: str,
        *,
        level: NotificationLevel = NotificationLevel.INFO,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self._notifier.notify(
            NotificationEvent(
                type=kind.value,
                message=message,
                level=level,
                session_id=state.session.id,
                data=data or {},
            )
        )


def describe_failure(exc: BaseException) -> str:
    """User-facing text for an error that ended a turn."""

    if isinstance(exc, ConnectivityError) and not isinstance(exc, ExecutorDisconnectedError):
        return NOT_CONNECTED_HINT
    return str(exc) or exc.__class__.__name__


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
