"""Decision and conversation stage adapters over a chat backend."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from republic import Tool

from pixel.actions.registry import ActionRegistry
from pixel.errors import BackendError
from pixel.pipeline.backend import ChatBackend, ChatReply
from pixel.prompts import ACTION_OUTCOME_HEADER, ACTION_OUTCOME_INSTRUCTION
from pixel.types import ActionOutcome, ActionRequest, ConversationTurn


@dataclass(frozen=True)
class Decision:
    """Actions the router asked for; empty means plain conversation."""

    actions: list[ActionRequest] = field(default_factory=list)


def build_messages(history: Sequence[ConversationTurn], system_prompt: str) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt.strip()})
    messages.extend(turn.to_message() for turn in history)
    return messages


def summarize_outcomes(outcomes: Sequence[ActionOutcome]) -> str:
    lines = [ACTION_OUTCOME_HEADER]
    for idx, outcome in enumerate(outcomes, start=1):
        request, result = outcome.request, outcome.result
        call = f"{request.name}({_render_args(request.args)})"
        if result.success:
            detail = f"{idx}. {call}: succeeded"
            if result.result is not None:
                detail += f", result: {_render_value(result.result)}"
        else:
            detail = f"{idx}. {call}: failed, {result.error or 'unknown error'}"
        lines.append(detail)
    lines.append(ACTION_OUTCOME_INSTRUCTION)
    return "\n".join(lines)


def _render_args(args: Any) -> str:
    return ", ".join(f"{key}={_render_value(value)}" for key, value in args.items())


def _render_value(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except TypeError:
        return repr(value)


async def _call(backend: ChatBackend, messages: list[dict[str, str]], actions: list[Tool] | None, stage: str) -> ChatReply:
    try:
        return await backend.chat(messages, actions)
    except BackendError:
        raise
    except Exception as exc:
        logger.exception("{}.backend.error model={}", stage, backend.model)
        raise BackendError(f"{stage} backend failed: {exc!s}") from exc


class DecisionStage:
    """Ask the router model whether the latest utterance needs any actions."""

    def __init__(self, backend: ChatBackend, registry: ActionRegistry) -> None:
        self._backend = backend
        self._registry = registry

    @property
    def model(self) -> str:
        return self._backend.model

    async def decide(self, history: Sequence[ConversationTurn], *, system_prompt: str) -> Decision:
        messages = build_messages(history, system_prompt)
        reply = await _call(self._backend, messages, self._registry.model_tools(), "decision")
        if reply.actions:
            logger.info("decision.actions names={}", [action.name for action in reply.actions])
        else:
            logger.info("decision.none")
        return Decision(actions=list(reply.actions))


class ConversationStage:
    """Produce the spoken reply, optionally grounded in action outcomes."""

    def __init__(self, backend: ChatBackend) -> None:
        self._backend = backend

    @property
    def model(self) -> str:
        return self._backend.model

    async def respond(
        self,
        history: Sequence[ConversationTurn],
        *,
        system_prompt: str,
        outcomes: Sequence[ActionOutcome] | None = None,
    ) -> str:
        messages = build_messages(history, system_prompt)
        if outcomes:
            messages.append({"role": "system", "content": summarize_outcomes(outcomes)})
        reply = await _call(self._backend, messages, None, "conversation")
        text = reply.text.strip()
        if not text:
            raise BackendError("conversation backend returned an empty reply")
        return text
