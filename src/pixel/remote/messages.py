"""Wire models exchanged with the remote execution peer."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pixel.types import ActionResult

EXECUTE_ACTION = "execute-action"
ACTION_RESULT = "action-result"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ExecuteActionMessage(_WireModel):
    """Outbound request asking the peer to run one action."""

    type: Literal["execute-action"] = EXECUTE_ACTION
    execution_id: str
    action_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ActionResultMessage(_WireModel):
    """Inbound reply carrying the outcome of one delegated action."""

    type: Literal["action-result"] = ACTION_RESULT
    execution_id: str
    success: bool
    result: Any = None
    error: str | None = None

    def to_result(self) -> ActionResult:
        if self.success:
            return ActionResult.ok(self.result)
        return ActionResult.failed(self.error or "action failed on peer")
