"""Per-session orchestration of decision, action dispatch and reply generation."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger

from pixel.actions.registry import ActionRegistry
from pixel.errors import SessionBusyError
from pixel.logging_utils import session_context
from pixel.pipeline.stages import ConversationStage, DecisionStage
from pixel.types import ActionContext, ActionOutcome, ActionRequest, ConversationTurn, Role

DEFAULT_MAX_HISTORY_PAIRS = 10


class SessionPhase(StrEnum):
    IDLE = "idle"
    ROUTING_DECISION = "routing_decision"
    ACTION_DISPATCH = "action_dispatch"
    GENERATING_REPLY = "generating_reply"


@dataclass
class SessionState:
    """Mutable context of one conversation, owned by a single orchestrator."""

    system_prompt: str
    max_history_pairs: int = DEFAULT_MAX_HISTORY_PAIRS
    turns: list[ConversationTurn] = field(default_factory=list)

    @property
    def max_turns(self) -> int:
        return self.max_history_pairs * 2

    def append(self, role: Role, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text)
        self.turns.append(turn)
        return turn

    def snapshot(self) -> tuple[ConversationTurn, ...]:
        return tuple(self.turns)

    def apply_retention(self) -> int:
        """Drop the oldest turns beyond the bound; return how many were dropped.

        The kept history always starts with a user turn.
        """
        overflow = len(self.turns) - self.max_turns
        if overflow <= 0:
            return 0
        while overflow < len(self.turns) and self.turns[overflow].role != "user":
            overflow += 1
        del self.turns[:overflow]
        return overflow


class SessionOrchestrator:
    """Run one utterance at a time through decision, actions and conversation."""

    def __init__(
        self,
        session_id: str,
        *,
        decision: DecisionStage,
        conversation: ConversationStage,
        registry: ActionRegistry,
        system_prompt: str,
        max_history_pairs: int = DEFAULT_MAX_HISTORY_PAIRS,
        peer_id: str | None = None,
    ) -> None:
        if max_history_pairs < 1:
            raise ValueError("max_history_pairs must be at least 1")
        self.session_id = session_id
        self.peer_id = peer_id
        self._decision = decision
        self._conversation = conversation
        self._registry = registry
        self._state = SessionState(system_prompt=system_prompt, max_history_pairs=max_history_pairs)
        self._phase = SessionPhase.IDLE

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._state.turns)

    def clear_history(self) -> None:
        self._state.turns.clear()
        logger.info("session.history.cleared session={}", self.session_id)

    def info(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "phase": self._phase.value,
            "historyLength": len(self._state.turns),
            "maxHistoryLength": self._state.max_history_pairs,
        }

    async def handle(self, utterance: str) -> str:
        """Process one user utterance and return the agent's reply.

        Backend failures propagate; the user turn stays in history either way.
        """
        if self._phase is not SessionPhase.IDLE:
            raise SessionBusyError(f"session {self.session_id} is busy ({self._phase.value})")

        with session_context(self.session_id):
            self._phase = SessionPhase.ROUTING_DECISION
            start = time.monotonic()
            try:
                self._state.append("user", utterance)
                reply, action_count = await self._run_pipeline()
                self._state.append("agent", reply)
            finally:
                self._phase = SessionPhase.IDLE
                dropped = self._state.apply_retention()
                if dropped:
                    logger.debug("session.history.trimmed dropped={}", dropped)

            logger.info(
                "turn.complete actions={} duration={:.3f}ms",
                action_count,
                (time.monotonic() - start) * 1000,
            )
            return reply

    async def _run_pipeline(self) -> tuple[str, int]:
        system_prompt = self._state.system_prompt
        decision = await self._decision.decide(self._state.snapshot(), system_prompt=system_prompt)

        if not decision.actions:
            self._phase = SessionPhase.GENERATING_REPLY
            reply = await self._conversation.respond(self._state.snapshot(), system_prompt=system_prompt)
            return reply, 0

        self._phase = SessionPhase.ACTION_DISPATCH
        outcomes = await self._dispatch_all(decision.actions)

        self._phase = SessionPhase.GENERATING_REPLY
        reply = await self._conversation.respond(
            self._state.snapshot(),
            system_prompt=system_prompt,
            outcomes=outcomes,
        )
        return reply, len(outcomes)

    async def _dispatch_all(self, requests: Sequence[ActionRequest]) -> list[ActionOutcome]:
        context = ActionContext(session_id=self.session_id, peer_id=self.peer_id)
        outcomes: list[ActionOutcome] = []
        for request in requests:
            result = await self._registry.dispatch(request, context=context)
            outcomes.append(ActionOutcome(request=request, result=result))
        return outcomes
