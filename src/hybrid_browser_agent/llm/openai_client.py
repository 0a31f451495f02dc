"""Reasoning client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from ..agent.actions import AgentAction, ErrorAction, parse_action
from ..agent.intent import IntentClassification, parse_intent, proceed
from ..agent.prompt_builder import PromptBuilder
from ..config import LLMConfig
from .base import ConversationTurn, Observation, ReasoningClient

LOGGER = logging.getLogger(__name__)

_RESERVED_PARAMETERS = {"timeout", "temperature", "max_tokens"}


class OpenAIReasoningClient(ReasoningClient):
    """Call an OpenAI-compatible chat completion API to obtain actions."""

    def __init__(
        self,
        config: LLMConfig,
        prompt_builder: Optional[PromptBuilder] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.model:
            raise ValueError("LLM model must be specified for OpenAIReasoningClient")
        self._config = config
        self._prompts = prompt_builder or PromptBuilder()
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "https://api.openai.com/v1",
            timeout=config.parameters.get("timeout", 60),
            headers=headers,
            transport=transport,
        )
        self._temperature = config.parameters.get("temperature", 0.1)
        self._max_tokens = config.parameters.get("max_tokens", 4096)

    @property
    def provider(self) -> str:
        return self._config.provider

    async def reason(
        self,
        history: Sequence[ConversationTurn],
        observation: Observation,
        skill_context: Optional[str] = None,
    ) -> AgentAction:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": self._build_messages(history, observation, skill_context),
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        payload.update(
            {k: v for k, v in self._config.parameters.items() if k not in _RESERVED_PARAMETERS}
        )
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as exc:
            return self._status_error(exc)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            LOGGER.warning("Reasoning request to %s failed: %s", self.provider, exc)
            return ErrorAction(
                message=f"LLM request failed ({self.provider}): {exc}",
                reasoning="API call threw an exception",
            )
        return parse_action((content or "").strip())

    async def classify_intent(self, message: str) -> IntentClassification:
        payload = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": self._prompts.intent_prompt()},
                {"role": "user", "content": message},
            ],
            "temperature": 0.1,
        }
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            LOGGER.warning("Intent classification via %s failed: %s", self.provider, exc)
            return proceed("Classifier failed.")
        return parse_intent((content or "").strip(), message)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _status_error(self, exc: httpx.HTTPStatusError) -> ErrorAction:
        status = exc.response.status_code
        detail = str(exc)
        LOGGER.warning("Reasoning provider %s returned HTTP %s", self.provider, status)
        if status == 429:
            return ErrorAction(
                message="Rate limited by LLM provider. Please wait a moment and try again.",
                reasoning=detail,
            )
        if status in (401, 403):
            return ErrorAction(
                message=f"Invalid API key for {self.provider}. Check the configured API key.",
                reasoning=detail,
            )
        return ErrorAction(
            message=f"LLM request failed ({self.provider}): {detail}",
            reasoning="API call threw an exception",
        )

    def _build_messages(
        self,
        history: Sequence[ConversationTurn],
        observation: Observation,
        skill_context: Optional[str],
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._prompts.system_prompt(skill_context)}
        ]
        for turn in history:
            if turn.is_skill_context:
                continue
            role = "user" if turn.role == "user" else "assistant"
            messages.append({"role": role, "content": turn.content})
        text = self._prompts.observation_text(observation)
        if observation.screenshot_base64:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": text},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:image/jpeg;base64,{observation.screenshot_base64}"
                            },
                        },
                    ],
                }
            )
        else:
            messages.append({"role": "user", "content": text})
        return messages
