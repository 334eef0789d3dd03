"""Model backend contract and the Republic-backed implementation."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger
from republic import LLM, Tool

from pixel.errors import BackendError
from pixel.types import ActionRequest

PING_MESSAGES = [{"role": "user", "content": "Hello"}]


@dataclass(frozen=True)
class ChatReply:
    """Text plus any structured action requests returned by one model call."""

    text: str
    actions: list[ActionRequest] = field(default_factory=list)


class ChatBackend(Protocol):
    """Minimal async contract for model backends."""

    @property
    def model(self) -> str: ...

    async def chat(self, messages: Sequence[dict[str, Any]], actions: Sequence[Tool] | None = None) -> ChatReply: ...


class RepublicBackend:
    """Chat backend speaking to a provider through the Republic LLM client."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 500,
        timeout_seconds: float | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds
        self._llm = LLM(model=model, api_key=api_key, api_base=api_base)

    @property
    def model(self) -> str:
        return self._model

    async def chat(self, messages: Sequence[dict[str, Any]], actions: Sequence[Tool] | None = None) -> ChatReply:
        logger.debug("model.call.start model={} messages={} tools={}", self._model, len(messages), len(actions or []))
        try:
            async with asyncio.timeout(self._timeout_seconds):
                # The Republic chat client is synchronous; keep it off the event loop.
                response = await asyncio.to_thread(
                    self._llm.chat.raw,
                    messages=list(messages),
                    tools=list(actions or []),
                    max_tokens=self._max_tokens,
                )
        except TimeoutError as exc:
            raise BackendError(f"model_timeout: no response within {self._timeout_seconds}s") from exc
        except Exception as exc:
            logger.exception("model.call.error model={}", self._model)
            raise BackendError(f"model_call_error: {exc!s}") from exc
        return parse_response(response)

    async def ping(self) -> bool:
        try:
            reply = await self.chat(PING_MESSAGES)
        except BackendError:
            return False
        return bool(reply.text.strip())


def parse_response(response: Any) -> ChatReply:
    """Extract text and action requests from a chat-completion style response."""
    if isinstance(response, str):
        return ChatReply(text=response)
    choices = getattr(response, "choices", None)
    if not choices:
        raise BackendError("malformed model output: no choices")
    message = getattr(choices[0], "message", None)
    if message is None:
        raise BackendError("malformed model output: no message")

    text = getattr(message, "content", "") or ""
    actions: list[ActionRequest] = []
    for idx, tool_call in enumerate(getattr(message, "tool_calls", None) or []):
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        name = getattr(function, "name", "") or ""
        if not name:
            continue
        call_id = getattr(tool_call, "id", None) or str(idx)
        actions.append(ActionRequest(name=name, args=parse_arguments(getattr(function, "arguments", None)), call_id=call_id))
    return ChatReply(text=text, actions=actions)


def parse_arguments(arguments: object) -> dict[str, Any]:
    """Normalize tool-call arguments given either as a JSON string or an object."""
    if arguments is None:
        return {}
    if isinstance(arguments, dict):
        return dict(arguments)
    if not isinstance(arguments, str):
        raise BackendError(f"malformed tool arguments: {type(arguments).__name__}")
    raw = arguments.strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BackendError(f"malformed tool arguments: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise BackendError("malformed tool arguments: expected an object")
    return parsed
