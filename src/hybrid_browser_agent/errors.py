"""Exception hierarchy for the browser execution core."""

from __future__ import annotations


class AgentCoreError(RuntimeError):
    """Base class for failures raised by the execution core."""


class ConnectivityError(AgentCoreError):
    """Raised when no remote executor is attached to the control plane."""


class ExecutorDisconnectedError(ConnectivityError):
    """Raised for commands still pending when the executor transport is lost."""


class CommandTimeoutError(AgentCoreError, TimeoutError):
    """Raised when a remote command is not answered within its timeout."""


class CommandFailedError(AgentCoreError):
    """Raised when the executor reports ``ok: false`` for a command."""


class ActionValidationError(AgentCoreError, ValueError):
    """Raised when an action payload does not match the schema after normalization."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class SkillValidationError(AgentCoreError):
    """Raised when a skill's tripwire check rejects its use."""

    def __init__(self, skill_name: str, message: str) -> None:
        super().__init__(message)
        self.skill_name = skill_name


class SessionLostError(AgentCoreError):
    """Raised when the browser target for a session was closed or detached."""


class BrowserLaunchError(AgentCoreError):
    """Raised when the browser process cannot be launched."""


class NavigationError(AgentCoreError):
    """Raised when navigating to a URL fails."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"Failed to navigate to {url}: {message}")
        self.url = url


class BrowserActionError(AgentCoreError):
    """Raised when executing a browser action fails for other reasons."""


class SecretUnavailableError(AgentCoreError):
    """Raised when a secret referenced by the agent cannot be resolved."""


class BudgetExhaustedError(AgentCoreError):
    """Raised when the per-turn action budget has been used up."""


class UserStoppedError(AgentCoreError):
    """Raised at a cancellation checkpoint after a stop was requested."""
