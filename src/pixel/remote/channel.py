"""Duplex peer channel abstraction."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any, TypeAlias

from blinker import Signal

from pixel.errors import PeerDisconnectedError

Message: TypeAlias = dict[str, Any]
MessageHandler = Callable[[Message], Coroutine[Any, Any, None]]
CloseHandler = Callable[[str], Coroutine[Any, Any, None]]


class PeerChannel(ABC):
    """One connection to a remote peer.

    Transports implement ``_transmit``; inbound frames are pushed in with ``deliver``
    and fanned out to ``on_message`` subscribers.
    """

    def __init__(self, peer_id: str) -> None:
        self.peer_id = peer_id
        self._inbound = Signal("pixel.peer.inbound")
        self._closing = Signal("pixel.peer.closed")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def _transmit(self, message: Message) -> None:
        """Write one frame to the underlying transport."""

    async def send(self, message: Message) -> None:
        if self._closed:
            raise PeerDisconnectedError(f"peer {self.peer_id} is disconnected")
        await self._transmit(message)

    async def deliver(self, message: Message) -> None:
        await self._inbound.send_async(self, message=message)

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        async def _receiver(sender: Any, *, message: Message) -> None:
            await handler(message)

        self._inbound.connect(_receiver, weak=False)
        return lambda: self._inbound.disconnect(_receiver)

    def on_close(self, handler: CloseHandler) -> Callable[[], None]:
        async def _receiver(sender: Any, *, peer_id: str) -> None:
            await handler(peer_id)

        self._closing.connect(_receiver, weak=False)
        return lambda: self._closing.disconnect(_receiver)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._closing.send_async(self, peer_id=self.peer_id)


class MemoryChannel(PeerChannel):
    """In-process channel whose outbound frames land on a queue."""

    def __init__(self, peer_id: str) -> None:
        super().__init__(peer_id)
        self._outbound: asyncio.Queue[Message] = asyncio.Queue()

    async def _transmit(self, message: Message) -> None:
        await self._outbound.put(message)

    async def next_outbound(self, timeout_seconds: float | None = None) -> Message | None:
        if timeout_seconds is None:
            return await self._outbound.get()
        try:
            return await asyncio.wait_for(self._outbound.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None
