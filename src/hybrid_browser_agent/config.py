"""Configuration models for the hybrid browser agent."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .credentials import AccountCredentials


class LLMConfig(BaseModel):
    """Settings for the reasoning provider."""

    provider: str = Field(default="openai")
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class BrowserConfig(BaseModel):
    """Settings for in-process browsers."""

    viewport_width: int = 1280
    viewport_height: int = 800
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--window-size=1280,800",
        ]
    )
    navigation_timeout: float = Field(default=30.0, description="Seconds allowed for page loads.")
    network_idle_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for network idleness after a click.",
    )
    idle_timeout: float = Field(default=300.0, description="Evict sessions idle this long.")
    gc_interval: float = Field(default=60.0, description="Seconds between idle sweeps.")
    screenshot_quality: int = 70
    type_delay_ms: float = 30
    scroll_distance: int = 400


class ExecutorConfig(BaseModel):
    """Settings shared by the control plane and the external executor."""

    secret: Optional[str] = Field(
        default=None,
        description="Shared token required on executor endpoints when set.",
    )
    command_timeout: float = Field(default=30.0, description="Default remote command timeout.")
    keepalive_interval: float = 15.0
    server_url: str = "http://localhost:8000"
    executor_id: str = "server"
    version: str = "1.0"
    headless: bool = False
    artifacts_dir: Path = Path(".agent/executor")


class AgentConfig(BaseModel):
    """Settings for the agent action loop."""

    max_actions: int = Field(default=8, description="Actions allowed per user turn.")
    settle_delay: float = Field(default=1.0, description="Seconds to wait after each action.")
    capture_screenshots: bool = True
    classify_intent: bool = Field(
        default=True, description="Run the intent classifier before each turn."
    )
    screenshots_dir: Path = Path(".agent/screenshots")


class NotificationConfig(BaseModel):
    """Notification channel settings."""

    channel: str = Field(default="console")


class ServerConfig(BaseModel):
    """Settings for the control-plane HTTP service."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)


class AppConfig(BaseSettings):
    """Top-level configuration for the execution core."""

    model_config = SettingsConfigDict(
        env_prefix="HYBRID_BROWSER_AGENT_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    deployment_mode: str = Field(default="single")
    llm: LLMConfig = Field(default_factory=LLMConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    accounts: list[AccountCredentials] = Field(
        default_factory=list,
        description="Test accounts available to credential-typing actions.",
    )
    skills_dir: Optional[Path] = Field(
        default=None,
        description="Optional directory of SKILL.md bundles to merge into the registry.",
    )


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> AppConfig:
    """Load configuration from an optional file and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = AppConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return AppConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
