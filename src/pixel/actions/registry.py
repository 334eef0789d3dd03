"""Unified action registry."""

from __future__ import annotations

import inspect
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from loguru import logger
from pydantic import BaseModel, ValidationError
from republic import Tool

from pixel.errors import ActionError, InvalidArgumentsError, PeerDisconnectedError, UnknownActionError
from pixel.remote.correlator import RemoteCorrelator
from pixel.types import ActionContext, ActionRequest, ActionResult

ActionKind: TypeAlias = Literal["local", "delegated"]
LocalHandler = Callable[..., Any]
PrepareArgs = Callable[[BaseModel], dict[str, Any]]


class _Delegated:
    def __repr__(self) -> str:
        return "DELEGATED"


DELEGATED = _Delegated()


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


@dataclass(frozen=True)
class ActionSpec:
    """Action metadata plus either a local handler or the ``DELEGATED`` marker."""

    name: str
    description: str
    params: type[BaseModel]
    handler: LocalHandler | _Delegated = DELEGATED
    context: bool = False
    prepare: PrepareArgs | None = None
    timeout_seconds: float | None = None

    @property
    def kind(self) -> ActionKind:
        return "delegated" if self.handler is DELEGATED else "local"


class ActionRegistry:
    """Registry for local and peer-delegated actions."""

    def __init__(self, correlator: RemoteCorrelator | None = None) -> None:
        self._actions: dict[str, ActionSpec] = {}
        self._correlator = correlator

    def register(self, spec: ActionSpec) -> None:
        if spec.name in self._actions:
            raise ValueError(f"Duplicate action name: {spec.name}")
        self._actions[spec.name] = spec

    def local(
        self,
        *,
        name: str,
        description: str,
        params: type[BaseModel],
        context: bool = False,
    ) -> Callable[[LocalHandler], LocalHandler]:
        def decorator(func: LocalHandler) -> LocalHandler:
            self.register(ActionSpec(name=name, description=description, params=params, handler=func, context=context))
            return func

        return decorator

    def delegated(
        self,
        *,
        name: str,
        description: str,
        params: type[BaseModel],
        prepare: PrepareArgs | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.register(
            ActionSpec(
                name=name,
                description=description,
                params=params,
                prepare=prepare,
                timeout_seconds=timeout_seconds,
            )
        )

    def has(self, name: str) -> bool:
        return name in self._actions

    def get(self, name: str) -> ActionSpec | None:
        return self._actions.get(name)

    def specs(self) -> list[ActionSpec]:
        return sorted(self._actions.values(), key=lambda item: item.name)

    def model_tools(self) -> list[Tool]:
        return [
            Tool(
                name=spec.name,
                description=spec.description,
                parameters=spec.params.model_json_schema(),
                handler=None,
                context=False,
            )
            for spec in self.specs()
        ]

    def describe(self) -> list[dict[str, str]]:
        return [{"name": spec.name, "kind": spec.kind, "description": spec.description} for spec in self.specs()]

    async def dispatch(self, request: ActionRequest, *, context: ActionContext) -> ActionResult:
        """Run one action and return its result; action failures never raise."""
        self._log_call(request, context)
        start = time.monotonic()
        result: ActionResult | None = None
        try:
            spec, params = self._resolve(request)
            if spec.kind == "local":
                result = await self._run_local(spec, params, context)
            else:
                result = await self._delegate(spec, params, context)
        except ActionError as exc:
            result = ActionResult.failed(str(exc))
        except Exception as exc:
            # Argument models and prepare hooks are user code too.
            logger.exception("action.dispatch.error name={}", request.name)
            result = ActionResult.failed(f"execution failed: {exc!s}")
        finally:
            duration = time.monotonic() - start
            logger.info(
                "action.dispatch.end name={} success={} duration={:.3f}ms",
                request.name,
                result.success if result is not None else False,
                duration * 1000,
            )
        return result

    def _resolve(self, request: ActionRequest) -> tuple[ActionSpec, BaseModel]:
        spec = self.get(request.name)
        if spec is None:
            raise UnknownActionError(f"unknown action: {request.name}")
        try:
            params = spec.params.model_validate(dict(request.args))
        except ValidationError as exc:
            raise InvalidArgumentsError(f"invalid arguments for {request.name}: {_format_errors(exc)}") from exc
        return spec, params

    async def _run_local(self, spec: ActionSpec, params: BaseModel, context: ActionContext) -> ActionResult:
        handler = spec.handler
        try:
            output = handler(params, context=context) if spec.context else handler(params)
            if inspect.isawaitable(output):
                output = await output
        except Exception as exc:
            # Handlers are arbitrary user code; any failure becomes a failed result.
            logger.exception("action.local.error name={}", spec.name)
            return ActionResult.failed(f"execution failed: {exc!s}")
        if isinstance(output, ActionResult):
            return output
        return ActionResult.ok(output)

    async def _delegate(self, spec: ActionSpec, params: BaseModel, context: ActionContext) -> ActionResult:
        if self._correlator is None or context.peer_id is None:
            raise PeerDisconnectedError(f"no remote peer available for {spec.name}")
        args = spec.prepare(params) if spec.prepare is not None else params.model_dump(exclude_none=True)
        future = await self._correlator.begin_delegated_call(
            context.peer_id,
            spec.name,
            args,
            spec.timeout_seconds,
        )
        return await future

    def _log_call(self, request: ActionRequest, context: ActionContext) -> None:
        params: list[str] = []
        for key, value in request.args.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            params.append(f"{key}={_shorten_text(rendered)}")
        logger.info(
            "action.dispatch.start name={} session={} peer={} {{ {} }}",
            request.name,
            context.session_id,
            context.peer_id or "-",
            ", ".join(params),
        )


def _format_errors(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(item) for item in error.get("loc", ())) or "args"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)

