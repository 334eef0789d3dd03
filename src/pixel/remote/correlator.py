"""Correlation of delegated action calls with their asynchronous peer replies."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any

from loguru import logger
from pydantic import ValidationError

from pixel.errors import ActionError, ActionTimeoutError, PeerDisconnectedError
from pixel.remote.channel import Message, PeerChannel
from pixel.remote.messages import ACTION_RESULT, ActionResultMessage, ExecuteActionMessage
from pixel.types import ActionResult

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class DelegatedExecution:
    """One in-flight remote action call.

    ``resolve`` and ``reject`` settle the future at most once between them; later calls
    return ``False`` and change nothing.
    """

    execution_id: str
    peer_id: str
    action_name: str
    future: asyncio.Future[ActionResult]
    created_at: float
    deadline: float
    timer: asyncio.TimerHandle | None = None
    settled: bool = False

    def resolve(self, result: ActionResult) -> bool:
        if not self._settle():
            return False
        if not self.future.done():
            self.future.set_result(result)
        return True

    def reject(self, error: ActionError) -> bool:
        if not self._settle():
            return False
        if not self.future.done():
            self.future.set_exception(error)
        return True

    def _settle(self) -> bool:
        if self.settled:
            return False
        self.settled = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        return True


class RemoteCorrelator:
    """Bridge in-process awaits to fire-and-forget peer messages by execution id."""

    def __init__(self, *, default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._default_timeout_seconds = default_timeout_seconds
        self._pending: dict[str, DelegatedExecution] = {}
        self._channels: dict[str, PeerChannel] = {}
        self._counter = itertools.count(1)

    @property
    def default_timeout_seconds(self) -> float:
        return self._default_timeout_seconds

    def attach(self, channel: PeerChannel) -> Callable[[], None]:
        """Route the channel's results and close event through this correlator.

        Results are only accepted for calls made to the same peer. A peer id can be
        attached again once its previous channel is closed.
        """
        current = self._channels.get(channel.peer_id)
        if current is not None and current is not channel and not current.closed:
            raise ValueError(f"Peer already attached: {channel.peer_id}")
        self._channels[channel.peer_id] = channel
        unsub_message = channel.on_message(partial(self._handle_message, channel.peer_id))
        unsub_close = channel.on_close(self._handle_close)

        def _detach() -> None:
            unsub_message()
            unsub_close()
            if self._channels.get(channel.peer_id) is channel:
                del self._channels[channel.peer_id]

        logger.debug("delegate.attach peer={}", channel.peer_id)
        return _detach

    def is_pending(self, execution_id: str) -> bool:
        return execution_id in self._pending

    def pending_count(self, peer_id: str | None = None) -> int:
        if peer_id is None:
            return len(self._pending)
        return sum(1 for execution in self._pending.values() if execution.peer_id == peer_id)

    async def begin_delegated_call(
        self,
        peer_id: str,
        action_name: str,
        args: Mapping[str, Any],
        deadline_seconds: float | None = None,
    ) -> asyncio.Future[ActionResult]:
        """Send ``action_name`` to the peer and return a future for its result.

        The returned future always settles: with the peer's result, or with
        ``ActionTimeoutError`` / ``PeerDisconnectedError``. Nothing is raised here.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ActionResult] = loop.create_future()
        timeout = self._default_timeout_seconds if deadline_seconds is None else deadline_seconds

        channel = self._channels.get(peer_id)
        if channel is None or channel.closed:
            logger.warning("delegate.no_peer peer={} action={}", peer_id, action_name)
            future.set_exception(PeerDisconnectedError(f"peer {peer_id} is not connected"))
            return future

        execution_id = self._next_id(peer_id)
        now = loop.time()
        execution = DelegatedExecution(
            execution_id=execution_id,
            peer_id=peer_id,
            action_name=action_name,
            future=future,
            created_at=now,
            deadline=now + timeout,
        )
        # Recorded before the send so a fast reply always finds its entry.
        self._pending[execution_id] = execution
        execution.timer = loop.call_later(timeout, self._expire, execution_id)
        future.add_done_callback(partial(self._discard_cancelled, execution_id))
        logger.info(
            "delegate.begin id={} peer={} action={} timeout={:.1f}s",
            execution_id,
            peer_id,
            action_name,
            timeout,
        )

        message = ExecuteActionMessage(execution_id=execution_id, action_name=action_name, args=dict(args))
        try:
            await channel.send(message.to_wire())
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            # Transports raise their own connection errors; all of them mean the peer is gone.
            logger.warning("delegate.send_failed id={} peer={} error={}", execution_id, peer_id, exc)
            self._settle_rejected(execution_id, PeerDisconnectedError(f"failed to reach peer {peer_id}: {exc!s}"))
        return future

    def complete_delegated_call(self, execution_id: str, result: ActionResult, *, peer_id: str | None = None) -> bool:
        """Resolve the pending call for ``execution_id``.

        Unknown, duplicate and late ids are discarded and ``False`` is returned, as are
        results from a ``peer_id`` other than the one the call was sent to.
        """
        execution = self._pending.get(execution_id)
        if execution is None:
            logger.debug("delegate.discard id={} reason=not_pending", execution_id)
            return False
        if peer_id is not None and execution.peer_id != peer_id:
            logger.debug("delegate.discard id={} reason=foreign_peer peer={}", execution_id, peer_id)
            return False
        del self._pending[execution_id]
        execution.resolve(result)
        elapsed = execution.future.get_loop().time() - execution.created_at
        logger.info(
            "delegate.complete id={} action={} success={} elapsed={:.3f}ms",
            execution_id,
            execution.action_name,
            result.success,
            elapsed * 1000,
        )
        return True

    def reject_peer(self, peer_id: str) -> int:
        """Reject every outstanding call of ``peer_id`` with ``PeerDisconnectedError``."""
        execution_ids = [
            execution_id for execution_id, execution in self._pending.items() if execution.peer_id == peer_id
        ]
        for execution_id in execution_ids:
            self._settle_rejected(execution_id, PeerDisconnectedError(f"peer {peer_id} disconnected"))
        if execution_ids:
            logger.warning("delegate.peer_lost peer={} rejected={}", peer_id, len(execution_ids))
        return len(execution_ids)

    def _next_id(self, peer_id: str) -> str:
        while True:
            execution_id = f"{peer_id}-{next(self._counter)}"
            if execution_id not in self._pending:
                return execution_id

    def _expire(self, execution_id: str) -> None:
        execution = self._pending.get(execution_id)
        if execution is None:
            return
        timeout = execution.deadline - execution.created_at
        logger.warning("delegate.timeout id={} action={} timeout={:.1f}s", execution_id, execution.action_name, timeout)
        self._settle_rejected(
            execution_id,
            ActionTimeoutError(f"action {execution.action_name} timed out after {timeout:.1f}s"),
        )

    def _settle_rejected(self, execution_id: str, error: ActionError) -> None:
        execution = self._pending.pop(execution_id, None)
        if execution is not None:
            execution.reject(error)

    def _discard_cancelled(self, execution_id: str, future: asyncio.Future[ActionResult]) -> None:
        if not future.cancelled():
            return
        execution = self._pending.pop(execution_id, None)
        if execution is not None:
            execution.settled = True
            if execution.timer is not None:
                execution.timer.cancel()
            logger.debug("delegate.cancelled id={}", execution_id)

    async def _handle_message(self, peer_id: str, message: Message) -> None:
        if message.get("type") != ACTION_RESULT:
            return
        try:
            reply = ActionResultMessage.model_validate(message)
        except ValidationError as exc:
            logger.warning("delegate.bad_reply error={}", exc.errors(include_url=False))
            return
        self.complete_delegated_call(reply.execution_id, reply.to_result(), peer_id=peer_id)

    async def _handle_close(self, peer_id: str) -> None:
        self.reject_peer(peer_id)
        channel = self._channels.get(peer_id)
        if channel is not None and channel.closed:
            del self._channels[peer_id]
