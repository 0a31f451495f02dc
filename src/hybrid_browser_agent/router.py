"""Selection of the execution adapter for the configured deployment mode."""

from __future__ import annotations

import logging
from typing import Optional

from .browser.base import ExecutionAdapter
from .models import ExecutionMode

LOGGER = logging.getLogger(__name__)

_MODE_ALIASES = {
    "single": ExecutionMode.SINGLE,
    "server": ExecutionMode.SINGLE,
    "hybrid": ExecutionMode.HYBRID,
    "local": ExecutionMode.HYBRID,
}


def normalize_execution_mode(value: Optional[str]) -> Optional[ExecutionMode]:
    """Map a configured deployment mode (including legacy names) to a mode."""

    if value is None:
        return None
    return _MODE_ALIASES.get(value.strip().lower())


def resolve_execution_mode(value: Optional[str]) -> ExecutionMode:
    mode = normalize_execution_mode(value)
    if mode is None and value is not None:
        LOGGER.warning("Unknown deployment mode %r; defaulting to single", value)
    return mode or ExecutionMode.SINGLE


def select_adapter(
    mode: ExecutionMode,
    *,
    local: ExecutionAdapter,
    remote: ExecutionAdapter,
) -> ExecutionAdapter:
    if mode is ExecutionMode.HYBRID:
        return remote
    return local
