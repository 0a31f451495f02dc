"""HTTP control plane: executor channel endpoints and session conversations."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ValidationError

from ..context import RuntimeContext
from ..executor.protocol import (
    KEEPALIVE_FRAME,
    ExecutorHelloMessage,
    ProtocolModel,
    RunActionResultMessage,
    RunObservationMessage,
    encode_frame,
    parse_message,
)
from ..models import NotificationEvent

LOGGER = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


# Pydantic request/response models ---------------------------------------------


class MessageRequest(BaseModel):
    message: str
    headless: Optional[bool] = None
    test_account_id: Optional[str] = None


class TranscriptEntryModel(BaseModel):
    role: str
    content: str
    screenshot: Optional[str] = None
    created_at: datetime


class StopResponse(BaseModel):
    stopped: bool


# Executor channel -------------------------------------------------------------


class ExecutorChannel:
    """Outbound queue feeding one executor's SSE stream."""

    def __init__(self, hello: ExecutorHelloMessage, keepalive_interval: float) -> None:
        self._hello = hello
        self._keepalive_interval = keepalive_interval
        self._queue: asyncio.Queue[ProtocolModel] = asyncio.Queue()
        # Stored once so register and disconnect see the same callable.
        self.send = self._queue.put_nowait

    async def frames(self) -> AsyncIterator[str]:
        yield encode_frame(self._hello)
        while True:
            try:
                message = await asyncio.wait_for(
                    self._queue.get(), timeout=self._keepalive_interval
                )
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            yield encode_frame(message)


def _event_frame(event: NotificationEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


class ControlPlaneApplication:
    def __init__(self, context: RuntimeContext) -> None:
        self._context = context

    @property
    def context(self) -> RuntimeContext:
        return self._context

    def _check_token(self, token: Optional[str]) -> None:
        secret = self._context.config.executor.secret
        if secret and token != secret:
            raise HTTPException(status_code=401, detail="Unauthorized")

    def create_app(self) -> FastAPI:
        context = self._context

        @asynccontextmanager
        async def lifespan(_: FastAPI) -> AsyncIterator[None]:
            await context.start()
            try:
                yield
            finally:
                await context.shutdown()

        app = FastAPI(title="Hybrid Browser Agent", lifespan=lifespan)
        router = APIRouter(prefix="/api")

        # Executor routes ---------------------------------------------------

        @router.get("/executor/connect")
        async def executor_connect(token: Optional[str] = None) -> StreamingResponse:
            self._check_token(token)
            executor = context.config.executor
            channel = ExecutorChannel(
                ExecutorHelloMessage(executor_id=executor.executor_id, version=executor.version),
                executor.keepalive_interval,
            )
            context.remote_adapter.register_connection(channel.send)
            LOGGER.info("Executor attached to the command stream")

            async def stream() -> AsyncIterator[str]:
                try:
                    async for frame in channel.frames():
                        yield frame
                finally:
                    context.remote_adapter.disconnect(channel.send)

            return StreamingResponse(
                stream(),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        @router.post("/executor/result")
        async def executor_result(request: Request, token: Optional[str] = None) -> Dict[str, Any]:
            self._check_token(token)
            body = await request.body()
            try:
                message = parse_message(body)
            except (ValidationError, ValueError) as exc:
                raise HTTPException(status_code=400, detail=f"Invalid message: {exc}") from exc
            if isinstance(message, RunActionResultMessage):
                matched = context.remote_adapter.handle_result(
                    message.step_id, message.ok, None, message.error
                )
                if not matched:
                    LOGGER.debug("Result for unknown step %s ignored", message.step_id)
            elif isinstance(message, RunObservationMessage):
                context.remote_adapter.handle_observation(message)
            else:
                LOGGER.debug("Ignoring %s posted by executor", message.type)
            return {"received": True}

        @router.get("/executor/heartbeat")
        async def executor_heartbeat_status() -> Dict[str, Any]:
            return context.registry.status().model_dump(by_alias=True)

        @router.post("/executor/heartbeat")
        async def executor_heartbeat(request: Request) -> Dict[str, Any]:
            connected = True
            body = await request.body()
            if body:
                try:
                    payload = json.loads(body)
                except ValueError:
                    payload = None
                if isinstance(payload, dict) and payload.get("connected") is False:
                    connected = False
            status = context.registry.touch_heartbeat(connected)
            return status.model_dump(by_alias=True)

        @router.get("/executor/status")
        async def executor_status() -> Dict[str, Any]:
            return context.registry.status().model_dump(by_alias=True)

        # Session routes ----------------------------------------------------

        @router.post("/sessions/{session_id}/messages")
        async def post_message(session_id: str, payload: MessageRequest) -> StreamingResponse:
            if not payload.message.strip():
                raise HTTPException(status_code=400, detail="Message must not be empty")
            session = context.get_session(session_id, headless=payload.headless)
            if payload.test_account_id is not None:
                session.test_account_id = payload.test_account_id
            queue = context.events.subscribe(session_id)
            task = asyncio.create_task(context.agent.handle_message(session, payload.message))
            task.add_done_callback(lambda _: context.events.close(session_id))

            async def stream() -> AsyncIterator[str]:
                try:
                    while True:
                        event = await queue.get()
                        if event is None:
                            break
                        yield _event_frame(event)
                    outcome = await task
                    summary = {
                        "type": "result",
                        "terminal": outcome.terminal.value,
                        "message": outcome.message,
                        "actionCount": outcome.action_count,
                    }
                    yield f"data: {json.dumps(summary)}\n\n"
                finally:
                    context.events.unsubscribe(session_id, queue)

            return StreamingResponse(
                stream(),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        @router.post("/sessions/{session_id}/stop", response_model=StopResponse)
        async def stop_session(session_id: str) -> StopResponse:
            return StopResponse(stopped=context.agent.request_stop(session_id))

        @router.get("/sessions/{session_id}/transcript", response_model=List[TranscriptEntryModel])
        async def get_transcript(session_id: str) -> List[TranscriptEntryModel]:
            if session_id not in context.sessions:
                raise HTTPException(status_code=404, detail="Session not found")
            return [
                TranscriptEntryModel(
                    role=entry.role,
                    content=entry.content,
                    screenshot=entry.screenshot_path.name if entry.screenshot_path else None,
                    created_at=entry.created_at,
                )
                for entry in context.transcripts.get(session_id)
            ]

        @router.post("/reset")
        async def reset() -> Dict[str, Any]:
            await context.reset()
            return {"status": "reset"}

        app.include_router(router)
        return app


def create_app(context: RuntimeContext) -> FastAPI:
    return ControlPlaneApplication(context).create_app()
