from hybrid_browser_agent.agent.control import StopController
from hybrid_browser_agent.models import ExecutionMode
from hybrid_browser_agent.router import (
    normalize_execution_mode,
    resolve_execution_mode,
    select_adapter,
)


def test_stop_token_is_idempotent_until_reset():
    controller = StopController()
    token = controller.token_for("s1")

    assert controller.request_stop("s1")
    assert not controller.request_stop("s1")
    assert token.stop_requested
    assert token.snapshot().reason == "Agent stopped by user."

    controller.reset("s1")

    assert not token.stop_requested
    assert controller.token_for("s1") is token


def test_stop_tokens_are_per_session():
    controller = StopController()
    controller.request_stop("s1")

    assert not controller.token_for("s2").stop_requested


def test_execution_mode_aliases():
    assert normalize_execution_mode("server") is ExecutionMode.SINGLE
    assert normalize_execution_mode(" Local ") is ExecutionMode.HYBRID
    assert normalize_execution_mode("hybrid") is ExecutionMode.HYBRID
    assert normalize_execution_mode("cloud") is None
    assert normalize_execution_mode(None) is None


def test_unknown_mode_defaults_to_single():
    assert resolve_execution_mode("cloud") is ExecutionMode.SINGLE
    assert resolve_execution_mode(None) is ExecutionMode.SINGLE


def test_select_adapter_by_mode():
    local, remote = object(), object()

    assert select_adapter(ExecutionMode.SINGLE, local=local, remote=remote) is local
    assert select_adapter(ExecutionMode.HYBRID, local=local, remote=remote) is remote
