"""Action vocabulary the reasoning model may emit, and how raw output becomes one."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import ActionValidationError
from ..llm.json_parser import extract_json_object
from ..models import BrowserAction

LOGGER = logging.getLogger(__name__)

REASONING_PLACEHOLDER = "Model omitted reasoning; auto-filled by parser."
INVALID_OUTPUT_REASONING = "LLM returned invalid output"
RAW_EXCERPT_LENGTH = 200


class ActionModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    reasoning: str


class NavigateAction(ActionModel):
    action: Literal["navigate"] = "navigate"
    url: str = Field(description="The full URL to navigate to")


class ClickAction(ActionModel):
    action: Literal["click"] = "click"
    x: float = Field(description="X coordinate of the element center")
    y: float = Field(description="Y coordinate of the element center")


class TypeAction(ActionModel):
    action: Literal["type"] = "type"
    x: float
    y: float
    text: str = Field(description="The text to type")


class ScrollAction(ActionModel):
    action: Literal["scroll"] = "scroll"
    direction: Literal["up", "down"]


class AskHumanAction(ActionModel):
    action: Literal["ask_human"] = "ask_human"
    question: str = Field(description="The question to ask the user")


class DoneAction(ActionModel):
    action: Literal["done"] = "done"
    summary: str = Field(description="Summary of what was accomplished")


class ErrorAction(ActionModel):
    action: Literal["error"] = "error"
    message: str


class UseSkillAction(ActionModel):
    action: Literal["use_skill"] = "use_skill"
    skill_name: str = Field(description="The name of the skill to use")


class TypeSecretAction(ActionModel):
    action: Literal["type_secret"] = "type_secret"
    key: str = Field(description="The environment variable name")
    x: float
    y: float


class TypeTestAccountSecretAction(ActionModel):
    action: Literal["type_test_account_secret"] = "type_test_account_secret"
    field: Literal["username", "password"]
    x: float
    y: float


class RunScriptAction(ActionModel):
    action: Literal["run_script"] = "run_script"
    skill_name: str
    script: str
    args: dict[str, Any]


AgentAction = Annotated[
    Union[
        NavigateAction,
        ClickAction,
        TypeAction,
        ScrollAction,
        AskHumanAction,
        DoneAction,
        ErrorAction,
        UseSkillAction,
        TypeSecretAction,
        TypeTestAccountSecretAction,
        RunScriptAction,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[AgentAction] = TypeAdapter(AgentAction)

TERMINAL_ACTIONS = frozenset({"done", "ask_human", "error"})
BROWSER_ACTIONS = frozenset({"navigate", "click", "type", "scroll"})

_ACTION_DESCRIPTIONS = (
    ('{"action":"navigate","url":"<full_url>","reasoning":"<why>"}', "Navigate to a new URL"),
    ('{"action":"click","x":<num>,"y":<num>,"reasoning":"<why>"}', "Click at x,y coordinates"),
    (
        '{"action":"type","x":<num>,"y":<num>,"text":"<text>","reasoning":"<why>"}',
        "Type text",
    ),
    ('{"action":"scroll","direction":"up"|"down","reasoning":"<why>"}', "Scroll page"),
    ('{"action":"ask_human","question":"<question>","reasoning":"<why>"}', "Ask user for help"),
    ('{"action":"done","summary":"<summary>","reasoning":"<why>"}', "Task completed"),
    ('{"action":"error","message":"<msg>","reasoning":"<why>"}', "Report error"),
    ('{"action":"use_skill","skill_name":"<name>","reasoning":"<why>"}', "Invoke a skill"),
    (
        '{"action":"type_secret","x":<num>,"y":<num>,"key":"<ENV_VAR>","reasoning":"<why>"}',
        "Securely type a non-account secret from the environment (NEVER use 'text')",
    ),
    (
        '{"action":"type_test_account_secret","x":<num>,"y":<num>,'
        '"field":"username"|"password","reasoning":"<why>"}',
        "Securely type a selected test account credential (value never shown to the model)",
    ),
    (
        '{"action":"run_script","skill_name":"<name>","script":"<script>",'
        '"args":{...},"reasoning":"<why>"}',
        "Run a skill script",
    ),
)


def describe_actions() -> str:
    """Return the action list embedded in the system prompt."""

    return "\n".join(f"- {example}: {summary}" for example, summary in _ACTION_DESCRIPTIONS)


def normalize_action_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Repair common model mistakes before validation.

    Returns a new dict; the input is left untouched.
    """

    data = dict(payload)
    if data.get("use_skill") and not data.get("action"):
        data["action"] = "use_skill"
        data["skill_name"] = data.pop("use_skill")
    if data.get("action") == "type_secret" and not data.get("key") and data.get("text"):
        data["key"] = data.pop("text")
    if data.get("action") and not data.get("reasoning"):
        data["reasoning"] = REASONING_PLACEHOLDER
    return data


def validate_action(payload: dict[str, Any]) -> AgentAction:
    """Validate a normalized payload against the action union."""

    try:
        return _ACTION_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        fields: list[str] = []
        issues: list[str] = []
        tag = payload.get("action")
        for error in exc.errors():
            loc = list(error.get("loc", ()))
            if loc and loc[0] == tag:
                loc = loc[1:]
            path = ".".join(str(part) for part in loc) or "action"
            fields.append(path)
            issues.append(f"{path}: {error.get('msg')}")
        raise ActionValidationError(f"Validation error: {', '.join(issues)}", fields) from exc


def parse_action(raw: str) -> AgentAction:
    """Turn raw model output into an action, never raising.

    Any failure becomes an :class:`ErrorAction` describing what went wrong and
    quoting the start of the raw text.
    """

    try:
        payload = extract_json_object(raw)
        return validate_action(normalize_action_payload(payload))
    except ActionValidationError as exc:
        problem = str(exc)
    except json.JSONDecodeError as exc:
        problem = f"JSON Parse error: {exc.msg}"
    except ValueError as exc:
        problem = f"JSON Parse error: {exc}"
    LOGGER.warning("Rejected model output: %s", problem)
    return ErrorAction(
        message=f"Failed to parse LLM response: {problem}. Raw: {raw[:RAW_EXCERPT_LENGTH]}",
        reasoning=INVALID_OUTPUT_REASONING,
    )


def to_browser_action(action: ActionModel) -> Optional[BrowserAction]:
    """Project a browser-level action onto the adapter primitive."""

    if isinstance(action, NavigateAction):
        return BrowserAction(action="navigate", url=action.url)
    if isinstance(action, ClickAction):
        return BrowserAction(action="click", x=action.x, y=action.y)
    if isinstance(action, TypeAction):
        return BrowserAction(action="type", x=action.x, y=action.y, text=action.text)
    if isinstance(action, ScrollAction):
        return BrowserAction(action="scroll", direction=action.direction)
    return None
