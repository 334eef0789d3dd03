"""Application runtime and session management."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from pixel.actions import ActionRegistry, register_builtin_actions
from pixel.config import Settings
from pixel.pipeline.backend import ChatBackend, RepublicBackend
from pixel.pipeline.orchestrator import SessionOrchestrator
from pixel.pipeline.stages import ConversationStage, DecisionStage
from pixel.remote.channel import PeerChannel
from pixel.remote.correlator import RemoteCorrelator


@dataclass
class SessionRuntime:
    """Runtime state for one connected conversation."""

    session_id: str
    orchestrator: SessionOrchestrator
    channel: PeerChannel | None = None
    detach: Callable[[], None] | None = None

    async def handle_input(self, text: str) -> str:
        return await self.orchestrator.handle(text)

    async def close(self) -> None:
        if self.channel is not None:
            # Closing rejects this peer's outstanding delegated calls.
            await self.channel.close()
        if self.detach is not None:
            self.detach()
            self.detach = None


class AppRuntime:
    """Process-wide runtime that shares one registry and correlator across sessions."""

    def __init__(
        self,
        settings: Settings,
        *,
        router_backend: ChatBackend | None = None,
        responder_backend: ChatBackend | None = None,
        correlator: RemoteCorrelator | None = None,
        registry: ActionRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.correlator = correlator or RemoteCorrelator(default_timeout_seconds=settings.action_timeout_seconds)
        if registry is None:
            registry = ActionRegistry(self.correlator)
            register_builtin_actions(registry)
        self.registry = registry
        self.router_backend = router_backend or RepublicBackend(
            settings.router_model,
            api_key=settings.api_key,
            api_base=settings.api_base,
            max_tokens=settings.router_max_tokens,
            timeout_seconds=settings.model_timeout_seconds,
        )
        self.responder_backend = responder_backend or RepublicBackend(
            settings.responder_model,
            api_key=settings.api_key,
            api_base=settings.api_base,
            max_tokens=settings.responder_max_tokens,
            timeout_seconds=settings.model_timeout_seconds,
        )
        self.decision = DecisionStage(self.router_backend, self.registry)
        self.conversation = ConversationStage(self.responder_backend)
        self._sessions: dict[str, SessionRuntime] = {}

    @property
    def sessions(self) -> dict[str, SessionRuntime]:
        return dict(self._sessions)

    def get_session(self, session_id: str) -> SessionRuntime | None:
        return self._sessions.get(session_id)

    def open_session(self, session_id: str, channel: PeerChannel | None = None) -> SessionRuntime:
        if session_id in self._sessions:
            raise ValueError(f"Session already open: {session_id}")

        orchestrator = SessionOrchestrator(
            session_id,
            decision=self.decision,
            conversation=self.conversation,
            registry=self.registry,
            system_prompt=self.settings.system_prompt,
            max_history_pairs=self.settings.max_history_pairs,
            peer_id=channel.peer_id if channel is not None else None,
        )
        detach = self.correlator.attach(channel) if channel is not None else None
        session = SessionRuntime(session_id=session_id, orchestrator=orchestrator, channel=channel, detach=detach)
        self._sessions[session_id] = session
        logger.info("session.open session={} peer={}", session_id, channel.peer_id if channel else "-")
        return session

    async def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.close()
        logger.info("session.close session={}", session_id)

    async def handle_input(self, session_id: str, text: str) -> str:
        session = self._sessions.get(session_id)
        if session is None:
            session = self.open_session(session_id)
        return await session.handle_input(text)

    async def check_backends(self) -> dict[str, bool]:
        """Ping both models with a trivial prompt."""
        results: dict[str, bool] = {}
        for role, backend in (("router", self.router_backend), ("responder", self.responder_backend)):
            ping = getattr(backend, "ping", None)
            results[role] = bool(await ping()) if ping is not None else True
        return results

    def info(self) -> dict[str, Any]:
        return {
            "router": self.router_backend.model,
            "conversation": self.responder_backend.model,
            "actions": self.registry.describe(),
            "actionTimeoutSeconds": self.correlator.default_timeout_seconds,
            "maxHistoryLength": self.settings.max_history_pairs,
            "sessions": len(self._sessions),
        }
