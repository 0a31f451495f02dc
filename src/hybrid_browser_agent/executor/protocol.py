"""Message vocabulary exchanged between the control plane and an executor.

Every message is a JSON object with a ``type`` discriminator and camelCase
field names. On the executor channel each message travels in its own
server-sent-events ``data:`` frame; keep-alives are SSE comment frames.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from ..models import ExecutionMode

KEEPALIVE_FRAME = ": heartbeat\n\n"


class ProtocolModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExecutorCapabilities(ProtocolModel):
    supports_headful: bool = True
    supports_screenshots: bool = True
    supports_human_takeover: bool = False
    platform: Optional[str] = None
    browser: Optional[str] = None


class ExecutorHelloMessage(ProtocolModel):
    type: Literal["executor.hello"] = "executor.hello"
    executor_id: str
    version: str
    capabilities: ExecutorCapabilities = Field(default_factory=ExecutorCapabilities)


class RunAssignMessage(ProtocolModel):
    type: Literal["run.assign"] = "run.assign"
    run_id: str
    session_id: str
    mode: ExecutionMode
    target_url: Optional[str] = None


class RunNextActionMessage(ProtocolModel):
    type: Literal["run.next_action"] = "run.next_action"
    run_id: str
    step_id: str
    action: str
    args: dict[str, Any] = Field(default_factory=dict)
    timeout_ms: Optional[int] = None


class RunActionResultMessage(ProtocolModel):
    type: Literal["run.action_result"] = "run.action_result"
    run_id: str
    step_id: str
    ok: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None


class RunObservationMessage(ProtocolModel):
    type: Literal["run.observation"] = "run.observation"
    run_id: str
    screenshot_ref: Optional[str] = None
    dom_snapshot: Optional[str] = None
    console_errors: Optional[list[str]] = None


class RunNeedsHumanMessage(ProtocolModel):
    type: Literal["run.needs_human"] = "run.needs_human"
    run_id: str
    reason: str
    hint: Optional[str] = None


class RunHumanResumedMessage(ProtocolModel):
    type: Literal["run.human_resumed"] = "run.human_resumed"
    run_id: str


class RunStopMessage(ProtocolModel):
    type: Literal["run.stop"] = "run.stop"
    run_id: str
    reason: Optional[str] = None


class RunFinalizeMessage(ProtocolModel):
    type: Literal["run.finalize"] = "run.finalize"
    run_id: str
    status: Literal["completed", "failed", "stopped"]
    summary: Optional[str] = None


ProtocolMessage = Annotated[
    Union[
        ExecutorHelloMessage,
        RunAssignMessage,
        RunNextActionMessage,
        RunActionResultMessage,
        RunObservationMessage,
        RunNeedsHumanMessage,
        RunHumanResumedMessage,
        RunStopMessage,
        RunFinalizeMessage,
    ],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[ProtocolMessage] = TypeAdapter(ProtocolMessage)


def parse_message(data: dict[str, Any] | str | bytes) -> ProtocolMessage:
    """Validate a decoded (or raw JSON) frame into a typed message."""

    if isinstance(data, (str, bytes)):
        return _MESSAGE_ADAPTER.validate_json(data)
    return _MESSAGE_ADAPTER.validate_python(data)


def encode_frame(message: ProtocolModel) -> str:
    """Render ``message`` as a single SSE data frame."""

    return f"data: {json.dumps(message.to_wire())}\n\n"


def decode_frame(block: str) -> Optional[ProtocolMessage]:
    """Parse one SSE frame; comments and empty frames yield ``None``."""

    payload_lines = [
        line[len("data:") :].lstrip()
        for line in block.splitlines()
        if line.startswith("data:")
    ]
    if not payload_lines:
        return None
    return parse_message("\n".join(payload_lines))
