"""Delegated Action Examples - How remote execution is correlated.

This script walks through the lifecycle of a delegated action:
1. A successful round trip through an in-memory peer
2. A peer that never answers and the deadline that fires
3. A peer that disconnects with calls still outstanding
"""

from __future__ import annotations

import asyncio

from pixel.actions import ActionRegistry, register_builtin_actions
from pixel.remote import MemoryChannel, RemoteCorrelator
from pixel.types import ActionContext, ActionRequest

# ============================================================================
# A FAKE UI PEER
# ============================================================================


async def friendly_peer(channel: MemoryChannel) -> None:
    """Apply every requested action and report success."""
    while True:
        message = await channel.next_outbound()
        if message is None:
            continue
        print(f"  peer <- {message['actionName']} {message['args']} (id={message['executionId']})")
        await channel.deliver(
            {
                "type": "action-result",
                "executionId": message["executionId"],
                "success": True,
                "result": {"applied": message["args"]},
            }
        )


def build(timeout_seconds: float) -> tuple[RemoteCorrelator, ActionRegistry, MemoryChannel]:
    correlator = RemoteCorrelator(default_timeout_seconds=timeout_seconds)
    registry = ActionRegistry(correlator)
    register_builtin_actions(registry)
    channel = MemoryChannel("demo-ui")
    correlator.attach(channel)
    return correlator, registry, channel


# ============================================================================
# SCENARIOS
# ============================================================================


async def round_trip() -> None:
    print("1. Round trip")
    _, registry, channel = build(timeout_seconds=2.0)
    peer = asyncio.create_task(friendly_peer(channel))
    result = await registry.dispatch(
        ActionRequest("changeBackgroundColor", {"color": "purple"}),
        context=ActionContext(session_id="demo", peer_id=channel.peer_id),
    )
    print(f"  result: {result}")
    peer.cancel()


async def silent_peer() -> None:
    print("2. Silent peer")
    correlator, registry, channel = build(timeout_seconds=0.2)
    result = await registry.dispatch(
        ActionRequest("changeBackgroundColor", {"color": "red"}),
        context=ActionContext(session_id="demo", peer_id=channel.peer_id),
    )
    print(f"  result: {result}")
    print(f"  pending after timeout: {correlator.pending_count()}")


async def disconnecting_peer() -> None:
    print("3. Disconnect")
    correlator, registry, channel = build(timeout_seconds=30.0)
    call = asyncio.create_task(
        registry.dispatch(
            ActionRequest("changeBackgroundColor", {"color": "green"}),
            context=ActionContext(session_id="demo", peer_id=channel.peer_id),
        )
    )
    await channel.next_outbound()
    print(f"  pending before close: {correlator.pending_count()}")
    await channel.close()
    print(f"  result: {await call}")


async def main() -> None:
    await round_trip()
    await silent_peer()
    await disconnecting_peer()


if __name__ == "__main__":
    asyncio.run(main())
