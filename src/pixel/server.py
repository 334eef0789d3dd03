"""HTTP and WebSocket surface for the UI peer."""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from loguru import logger

from pixel.app.runtime import AppRuntime, SessionRuntime
from pixel.errors import PeerDisconnectedError, PipelineError, SessionBusyError
from pixel.pipeline.text import process_reply_text
from pixel.remote.channel import Message, PeerChannel
from pixel.remote.messages import ACTION_RESULT

CONNECTED_MESSAGE = "Connected to Pixel"
PROCESSING_STATUS = "Processing your message..."
BUSY_ERROR = "Still working on your previous message."


def _now() -> str:
    return datetime.now(UTC).isoformat()


class WebSocketChannel(PeerChannel):
    """Peer channel writing JSON frames to one WebSocket."""

    def __init__(self, peer_id: str, websocket: WebSocket) -> None:
        super().__init__(peer_id)
        self._websocket = websocket

    async def _transmit(self, message: Message) -> None:
        try:
            await self._websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as exc:
            raise PeerDisconnectedError(f"peer {self.peer_id} is disconnected") from exc


class UIConnection:
    """One UI client: its channel, its session and at most one running turn."""

    def __init__(self, runtime: AppRuntime, websocket: WebSocket) -> None:
        self.peer_id = uuid.uuid4().hex[:12]
        self._runtime = runtime
        self._websocket = websocket
        self.channel = WebSocketChannel(self.peer_id, websocket)
        self.session: SessionRuntime = runtime.open_session(self.peer_id, self.channel)
        self._turn: asyncio.Task[None] | None = None

    async def run(self) -> None:
        logger.info("ws.connect peer={}", self.peer_id)
        try:
            await self._emit({"type": "connected", "message": CONNECTED_MESSAGE, "agentInfo": self._runtime.info()})
            while True:
                raw = await self._websocket.receive_text()
                await self._handle_frame(raw)
        except (WebSocketDisconnect, PeerDisconnectedError):
            logger.info("ws.disconnect peer={}", self.peer_id)
        finally:
            await self._shutdown()

    async def _handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("ws.frame.invalid peer={}", self.peer_id)
            return
        if not isinstance(frame, dict):
            logger.warning("ws.frame.invalid peer={}", self.peer_id)
            return

        kind = frame.get("type")
        if kind == "user-message":
            await self._start_turn(str(frame.get("message", "")))
        elif kind == ACTION_RESULT:
            await self.channel.deliver(frame)
        elif kind == "get-history":
            history = [turn.to_payload() for turn in self.session.orchestrator.history]
            await self._emit({"type": "conversation-history", "history": history})
        elif kind == "clear-history":
            self.session.orchestrator.clear_history()
            await self._emit({"type": "history-cleared", "message": "Conversation history cleared", "timestamp": _now()})
        else:
            logger.warning("ws.frame.unknown peer={} type={}", self.peer_id, kind)

    async def _start_turn(self, text: str) -> None:
        if not text.strip():
            await self._emit({"type": "agent-error", "error": "Empty message", "timestamp": _now()})
            return
        if self._turn is not None and not self._turn.done():
            await self._emit({"type": "agent-error", "error": BUSY_ERROR, "timestamp": _now()})
            return
        self._turn = asyncio.create_task(self._run_turn(text))

    async def _run_turn(self, text: str) -> None:
        start = time.perf_counter()
        try:
            await self._emit({"type": "agent-processing", "status": PROCESSING_STATUS})
            try:
                reply = await self.session.handle_input(text)
            except SessionBusyError:
                await self._emit({"type": "agent-error", "error": BUSY_ERROR, "timestamp": _now()})
                return
            except PipelineError as exc:
                logger.warning("ws.turn.failed peer={} error={}", self.peer_id, exc)
                await self._emit({"type": "agent-error", "error": str(exc), "timestamp": _now()})
                return

            processed = process_reply_text(reply)
            await self._emit(
                {
                    "type": "agent-response",
                    "displayText": processed.display,
                    "speechText": processed.speech,
                    "timestamp": _now(),
                    "processingTimeMs": int((time.perf_counter() - start) * 1000),
                }
            )
        except PeerDisconnectedError:
            logger.info("ws.turn.orphaned peer={}", self.peer_id)

    async def _emit(self, frame: dict[str, Any]) -> None:
        await self.channel.send(frame)

    async def _shutdown(self) -> None:
        await self._runtime.close_session(self.peer_id)
        if self._turn is not None and not self._turn.done():
            self._turn.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._turn
        self._turn = None


def create_app(runtime: AppRuntime) -> FastAPI:
    """Build the FastAPI app serving one runtime."""
    app = FastAPI(title="Pixel voice agent")
    app.state.runtime = runtime

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy", "timestamp": _now(), "agent": runtime.info()}

    @app.get("/api/agent/info")
    async def agent_info() -> dict[str, Any]:
        return runtime.info()

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        await UIConnection(runtime, websocket).run()

    return app
