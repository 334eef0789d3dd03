"""Shared conversation and action dataclasses."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, TypeAlias

Role: TypeAlias = Literal["user", "agent"]


@dataclass(frozen=True)
class ConversationTurn:
    """One user or agent utterance."""

    role: Role
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_message(self) -> dict[str, str]:
        role = "assistant" if self.role == "agent" else "user"
        return {"role": role, "content": self.text}

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.text, "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class ActionRequest:
    """A requested action with its raw arguments."""

    name: str
    args: Mapping[str, Any] = field(default_factory=dict)
    call_id: str | None = None


@dataclass(frozen=True)
class ActionResult:
    """Terminal outcome of one action."""

    success: bool
    result: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, result: Any = None) -> ActionResult:
        return cls(success=True, result=result)

    @classmethod
    def failed(cls, error: str) -> ActionResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class ActionOutcome:
    """An action request paired with its result."""

    request: ActionRequest
    result: ActionResult


@dataclass(frozen=True)
class ActionContext:
    """Per-dispatch context handed to the registry and local handlers."""

    session_id: str
    peer_id: str | None = None
