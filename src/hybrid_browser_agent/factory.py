"""Factories for constructing components from configuration."""

from __future__ import annotations

import json
import os
from typing import Optional

from .agent.actions import normalize_action_payload, validate_action
from .agent.prompt_builder import PromptBuilder
from .config import AppConfig, LLMConfig, NotificationConfig
from .context import RuntimeContext
from .credentials import CredentialResolver, InMemoryAccountStore
from .llm.base import ReasoningClient
from .llm.mock import ScriptedReasoner
from .llm.openai_client import OpenAIReasoningClient
from .notifications.base import ConsoleNotifier, Notifier, RecordingNotifier
from .skills.builtin import builtin_skills
from .skills.registry import SkillRegistry

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}
_DEFAULT_BASE_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
}


def build_reasoner(config: LLMConfig, prompt_builder: Optional[PromptBuilder] = None) -> ReasoningClient:
    provider = config.provider.lower()
    if provider in {"openai", "openrouter", "azure", "openai-compatible"}:
        updates: dict[str, object] = {}
        env_name = _API_KEY_ENV.get(provider)
        if not config.api_key and env_name and os.environ.get(env_name):
            updates["api_key"] = os.environ[env_name]
        if not config.base_url and provider in _DEFAULT_BASE_URLS:
            updates["base_url"] = _DEFAULT_BASE_URLS[provider]
        if updates:
            config = config.model_copy(update=updates)
        return OpenAIReasoningClient(config, prompt_builder)
    if provider == "mock":
        responses = []
        for item in config.parameters.get("responses", []):
            if isinstance(item, dict):
                responses.append(validate_action(normalize_action_payload(item)))
            else:
                responses.append(str(item))
        intents = [
            json.dumps(item) if isinstance(item, dict) else str(item)
            for item in config.parameters.get("intents", [])
        ]
        return ScriptedReasoner(responses, intents)
    raise ValueError(f"Unsupported LLM provider: {config.provider}")


def build_notifier(config: NotificationConfig) -> Notifier:
    channel = config.channel.lower()
    if channel == "console":
        return ConsoleNotifier()
    if channel == "none":
        return RecordingNotifier()
    raise ValueError(f"Unsupported notification channel: {config.channel}")


def build_credentials(config: AppConfig) -> CredentialResolver:
    return CredentialResolver(InMemoryAccountStore(config.accounts))


def build_skills(config: AppConfig, credentials: CredentialResolver) -> SkillRegistry:
    registry = SkillRegistry(builtin_skills(credentials.accounts))
    if config.skills_dir is not None:
        registry.load_directory(config.skills_dir)
    return registry


def build_context(
    config: AppConfig,
    *,
    reasoner: Optional[ReasoningClient] = None,
    notifier: Optional[Notifier] = None,
) -> RuntimeContext:
    credentials = build_credentials(config)
    skills = build_skills(config, credentials)
    if reasoner is None:
        reasoner = build_reasoner(config.llm, PromptBuilder(skills.format_summary()))
    return RuntimeContext(
        config,
        reasoner=reasoner,
        notifier=notifier or build_notifier(config.notifications),
        skills=skills,
        credentials=credentials,
    )
