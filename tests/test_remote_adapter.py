import asyncio
import base64
from pathlib import Path

import pytest

from hybrid_browser_agent.errors import (
    CommandFailedError,
    CommandTimeoutError,
    ConnectivityError,
    ExecutorDisconnectedError,
)
from hybrid_browser_agent.executor.protocol import (
    ProtocolModel,
    RunNextActionMessage,
    RunObservationMessage,
    RunStopMessage,
)
from hybrid_browser_agent.executor.registry import ExecutorConnectionRegistry
from hybrid_browser_agent.executor.remote_adapter import NOT_CONNECTED_MESSAGE, RemoteExecutionAdapter
from hybrid_browser_agent.models import BrowserAction


class CapturingTransport:
    def __init__(self) -> None:
        self.sent: list[ProtocolModel] = []

    def __call__(self, message: ProtocolModel) -> None:
        self.sent.append(message)

    def commands(self) -> list[RunNextActionMessage]:
        return [message for message in self.sent if isinstance(message, RunNextActionMessage)]


def _adapter(timeout: float = 5.0):
    registry = ExecutorConnectionRegistry(clock=lambda: 42)
    adapter = RemoteExecutionAdapter(registry, default_timeout=timeout)
    transport = CapturingTransport()
    adapter.register_connection(transport)
    return adapter, transport


async def _next_command(transport: CapturingTransport, count: int = 1) -> RunNextActionMessage:
    while len(transport.commands()) < count:
        await asyncio.sleep(0)
    return transport.commands()[count - 1]


@pytest.mark.asyncio
async def test_command_without_executor_fails_fast():
    adapter = RemoteExecutionAdapter()

    with pytest.raises(ConnectivityError, match="no local executor is connected"):
        await adapter.send_command("s1", "click", {"x": 1, "y": 2})

    with pytest.raises(ConnectivityError) as excinfo:
        await adapter.execute_action("s1", BrowserAction(action="click", x=1, y=2))
    assert str(excinfo.value) == NOT_CONNECTED_MESSAGE
    assert adapter.correlator.pending_count() == 0


@pytest.mark.asyncio
async def test_execute_action_sends_command_and_awaits_result():
    adapter, transport = _adapter()

    task = asyncio.create_task(
        adapter.execute_action("s1", BrowserAction(action="click", x=10, y=20))
    )
    command = await _next_command(transport)

    assert command.run_id == "s1"
    assert command.action == "click"
    assert command.args == {"action": "click", "x": 10.0, "y": 20.0}
    assert command.timeout_ms == 5000
    assert command.step_id.startswith("step_")

    assert adapter.handle_result(command.step_id, True)
    await task


@pytest.mark.asyncio
async def test_failed_result_surfaces_executor_message():
    adapter, transport = _adapter()

    task = asyncio.create_task(adapter.send_command("s1", "click", {}))
    command = await _next_command(transport)
    adapter.handle_result(command.step_id, False, error="No element at point")

    with pytest.raises(CommandFailedError, match="No element at point"):
        await task


@pytest.mark.asyncio
async def test_command_times_out():
    adapter, _ = _adapter()

    with pytest.raises(CommandTimeoutError, match="timed out after 20ms"):
        await adapter.send_command("s1", "scroll", {}, timeout_ms=20)

    assert adapter.correlator.pending_count() == 0


@pytest.mark.asyncio
async def test_step_ids_are_unique():
    adapter = RemoteExecutionAdapter()

    ids = {adapter.next_step_id() for _ in range(100)}

    assert len(ids) == 100


@pytest.mark.asyncio
async def test_disconnect_rejects_pending_commands():
    adapter, transport = _adapter()

    task = asyncio.create_task(adapter.send_command("s1", "goto", {"url": "https://x.test"}))
    await _next_command(transport)

    assert adapter.disconnect() == 1
    with pytest.raises(ExecutorDisconnectedError, match="Local executor disconnected"):
        await task
    assert not adapter.connected
    assert not adapter.registry.connected


@pytest.mark.asyncio
async def test_stale_transport_disconnect_is_ignored():
    adapter, old = _adapter()
    new = CapturingTransport()
    adapter.register_connection(new)

    assert adapter.disconnect(old) == 0
    assert adapter.connected

    task = asyncio.create_task(adapter.send_command("s1", "click", {}))
    command = await _next_command(new)
    adapter.handle_result(command.step_id, True)
    await task
    assert old.commands() == []


@pytest.mark.asyncio
async def test_replacing_transport_rejects_commands_sent_to_old_one():
    adapter, old = _adapter()

    task = asyncio.create_task(adapter.send_command("s1", "click", {"x": 1, "y": 2}))
    await _next_command(old)
    adapter.register_connection(CapturingTransport())

    with pytest.raises(ExecutorDisconnectedError, match="reconnected"):
        await task
    assert adapter.correlator.pending_count() == 0
    assert adapter.connected


@pytest.mark.asyncio
async def test_screenshot_uses_latest_observation(tmp_path: Path):
    adapter, transport = _adapter()
    encoded = base64.b64encode(b"jpeg").decode("ascii")
    adapter.handle_observation(RunObservationMessage(run_id="s1", screenshot_ref="stale"))

    task = asyncio.create_task(adapter.capture_screenshot("s1", tmp_path, "shot"))
    command = await _next_command(transport)
    assert command.action == "getScreenshot"
    adapter.handle_observation(RunObservationMessage(run_id="s1", screenshot_ref=encoded))
    adapter.handle_result(command.step_id, True)
    capture = await task

    assert capture is not None
    assert capture.base64 == encoded
    assert (tmp_path / "shot.jpg").read_bytes() == b"jpeg"


@pytest.mark.asyncio
async def test_screenshot_without_observation_returns_none(tmp_path: Path):
    adapter, transport = _adapter()

    task = asyncio.create_task(adapter.capture_screenshot("s1", tmp_path, "shot"))
    command = await _next_command(transport)
    adapter.handle_result(command.step_id, True)

    assert await task is None


@pytest.mark.asyncio
async def test_dom_and_console_errors_from_observations():
    adapter, transport = _adapter()

    task = asyncio.create_task(adapter.get_simplified_dom("s1"))
    command = await _next_command(transport)
    adapter.handle_observation(
        RunObservationMessage(run_id="s1", dom_snapshot="[0] <a>", console_errors=["boom"])
    )
    adapter.handle_result(command.step_id, True)

    assert await task == "[0] <a>"
    assert adapter.get_console_errors("s1") == ["boom"]
    assert adapter.get_console_errors("s1") == []


@pytest.mark.asyncio
async def test_get_page_navigates_remotely():
    adapter, transport = _adapter()

    task = asyncio.create_task(adapter.get_page("s1", "https://example.com"))
    command = await _next_command(transport)
    adapter.handle_result(command.step_id, True)
    page = await task

    assert command.action == "goto"
    assert command.args == {"url": "https://example.com"}
    assert page.session_id == "s1"
    assert adapter.has_session("s1")


@pytest.mark.asyncio
async def test_close_session_sends_stop():
    adapter, transport = _adapter()

    await adapter.close_session("s1")

    assert isinstance(transport.sent[-1], RunStopMessage)
    assert transport.sent[-1].run_id == "s1"


def test_registry_heartbeat_keeps_last_seen():
    now = [100]
    registry = ExecutorConnectionRegistry(clock=lambda: now[0])

    assert registry.status().model_dump(by_alias=True) == {"connected": False, "lastSeenAt": None}
    registry.touch_heartbeat()
    now[0] = 200
    status = registry.touch_heartbeat(connected=False)

    assert status.connected is False
    assert status.last_seen_at == 100
