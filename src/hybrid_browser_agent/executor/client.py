"""Long-running client that connects an executor to the control plane."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from ..browser.manager import BrowserManager
from ..config import BrowserConfig, ExecutorConfig
from .protocol import (
    ExecutorHelloMessage,
    ProtocolModel,
    RunNextActionMessage,
    RunStopMessage,
    decode_frame,
)
from .worker import ExecutorWorker

LOGGER = logging.getLogger(__name__)


class ExecutorConnectionError(RuntimeError):
    """Raised when the control plane refuses or drops the executor channel."""


async def iter_sse_blocks(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """Split a text stream into SSE frames separated by blank lines."""

    buffer = ""
    async for chunk in chunks:
        buffer += chunk.replace("\r\n", "\n")
        while "\n\n" in buffer:
            block, buffer = buffer.split("\n\n", 1)
            if block.strip():
                yield block
    if buffer.strip():
        yield buffer


class ExecutorClient:
    """Consume the command stream and post results back over HTTP."""

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        *,
        browser_config: Optional[BrowserConfig] = None,
        worker: Optional[ExecutorWorker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or ExecutorConfig()
        self._http = httpx.AsyncClient(
            base_url=self._config.server_url.rstrip("/"),
            transport=transport,
            timeout=httpx.Timeout(30.0, read=None),
        )
        self._worker = worker or ExecutorWorker(
            BrowserManager(browser_config),
            self.post,
            headless=self._config.headless,
            artifacts_dir=self._config.artifacts_dir,
        )
        self.hello: Optional[ExecutorHelloMessage] = None

    @property
    def worker(self) -> ExecutorWorker:
        return self._worker

    def _params(self) -> dict[str, str]:
        if self._config.secret:
            return {"token": self._config.secret}
        return {}

    async def post(self, message: ProtocolModel) -> None:
        response = await self._http.post(
            "/api/executor/result",
            params=self._params(),
            json=message.to_wire(),
        )
        if response.is_error:
            LOGGER.error("Failed to send result: HTTP %s", response.status_code)

    async def run(self) -> None:
        """Process commands until the control plane closes the stream."""

        LOGGER.info("Connecting to %s", self._config.server_url)
        try:
            async with self._http.stream(
                "GET",
                "/api/executor/connect",
                params=self._params(),
            ) as response:
                if response.is_error:
                    raise ExecutorConnectionError(
                        f"Failed to connect: HTTP {response.status_code}"
                    )
                LOGGER.info("Connected; listening for commands")
                async for block in iter_sse_blocks(response.aiter_text()):
                    await self.handle_block(block)
            LOGGER.info("Disconnected from server")
        finally:
            await self.close()

    async def handle_block(self, block: str) -> None:
        try:
            message = decode_frame(block)
        except (ValidationError, ValueError) as exc:
            LOGGER.error("Failed to parse message: %s", exc)
            return
        if message is None:
            return
        await self.dispatch(message)

    async def dispatch(self, message: Any) -> None:
        if isinstance(message, RunNextActionMessage):
            await self._worker.handle_next_action(message)
        elif isinstance(message, RunStopMessage):
            await self._worker.handle_stop(message)
        elif isinstance(message, ExecutorHelloMessage):
            self.hello = message
            LOGGER.info("Control plane %s (version %s) ready", message.executor_id, message.version)
        else:
            LOGGER.debug("Ignoring %s message", message.type)

    async def close(self) -> None:
        await self._worker.close()
        await self._http.aclose()
