import asyncio

import pytest

from pixel.errors import ActionTimeoutError, PeerDisconnectedError
from pixel.remote.channel import MemoryChannel, Message, PeerChannel
from pixel.remote.correlator import DelegatedExecution, RemoteCorrelator
from pixel.types import ActionResult


class BrokenChannel(PeerChannel):
    async def _transmit(self, message: Message) -> None:
        raise ConnectionResetError("socket closed")


def _attached(peer_id: str = "ui", timeout: float = 1.0) -> tuple[RemoteCorrelator, MemoryChannel]:
    correlator = RemoteCorrelator(default_timeout_seconds=timeout)
    channel = MemoryChannel(peer_id)
    correlator.attach(channel)
    return correlator, channel


@pytest.mark.asyncio
async def test_begin_emits_execute_action_after_recording_entry() -> None:
    correlator, channel = _attached()

    future = await correlator.begin_delegated_call("ui", "changeBackgroundColor", {"color": "#0000FF"})
    message = await channel.next_outbound(timeout_seconds=0.1)

    assert message == {
        "type": "execute-action",
        "executionId": message["executionId"],
        "actionName": "changeBackgroundColor",
        "args": {"color": "#0000FF"},
    }
    assert correlator.is_pending(message["executionId"])
    assert not future.done()
    future.cancel()


@pytest.mark.asyncio
async def test_outstanding_execution_ids_are_distinct() -> None:
    correlator, channel = _attached()
    other = MemoryChannel("other")
    correlator.attach(other)

    futures = [await correlator.begin_delegated_call("ui", "a", {}) for _ in range(5)]
    futures.append(await correlator.begin_delegated_call("other", "a", {}))
    ids = [(await channel.next_outbound(timeout_seconds=0.1))["executionId"] for _ in range(5)]
    ids.append((await other.next_outbound(timeout_seconds=0.1))["executionId"])

    assert len(set(ids)) == 6
    assert correlator.pending_count() == 6
    assert correlator.pending_count("other") == 1
    for future in futures:
        future.cancel()


@pytest.mark.asyncio
async def test_action_result_message_resolves_the_matching_call() -> None:
    correlator, channel = _attached()
    first = await correlator.begin_delegated_call("ui", "a", {})
    second = await correlator.begin_delegated_call("ui", "b", {})
    first_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]
    second_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    await channel.deliver({"type": "action-result", "executionId": second_id, "success": True, "result": {"n": 2}})
    await channel.deliver({"type": "action-result", "executionId": first_id, "success": False, "error": "nope"})

    assert await second == ActionResult(success=True, result={"n": 2})
    assert await first == ActionResult(success=False, error="nope")
    assert correlator.pending_count() == 0


@pytest.mark.asyncio
async def test_completing_unknown_id_has_no_side_effect() -> None:
    correlator, channel = _attached()
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    assert correlator.complete_delegated_call("ui-does-not-exist", ActionResult.ok()) is False
    await channel.deliver({"type": "action-result", "executionId": "bogus", "success": True})

    assert correlator.pending_count() == 1
    assert correlator.is_pending(execution_id)
    assert not future.done()
    future.cancel()


@pytest.mark.asyncio
async def test_duplicate_completion_is_discarded() -> None:
    correlator, channel = _attached()
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    assert correlator.complete_delegated_call(execution_id, ActionResult.ok("first")) is True
    assert correlator.complete_delegated_call(execution_id, ActionResult.ok("second")) is False
    assert (await future).result == "first"


@pytest.mark.asyncio
async def test_unanswered_call_times_out_within_deadline_window() -> None:
    correlator, channel = _attached(timeout=5.0)
    loop = asyncio.get_running_loop()
    started = loop.time()

    future = await correlator.begin_delegated_call("ui", "a", {}, deadline_seconds=0.05)
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]
    with pytest.raises(ActionTimeoutError, match="timed out"):
        await future
    elapsed = loop.time() - started

    assert 0.05 <= elapsed < 0.5
    assert not correlator.is_pending(execution_id)
    assert correlator.complete_delegated_call(execution_id, ActionResult.ok()) is False


@pytest.mark.asyncio
async def test_late_expiry_after_completion_does_not_settle_twice() -> None:
    correlator, channel = _attached()
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    correlator.complete_delegated_call(execution_id, ActionResult.ok("done"))
    correlator._expire(execution_id)

    assert (await future).result == "done"


@pytest.mark.asyncio
async def test_delegated_execution_settles_exactly_once() -> None:
    loop = asyncio.get_running_loop()
    execution = DelegatedExecution(
        execution_id="ui-1",
        peer_id="ui",
        action_name="a",
        future=loop.create_future(),
        created_at=loop.time(),
        deadline=loop.time() + 1,
        timer=loop.call_later(60, lambda: None),
    )

    assert execution.resolve(ActionResult.ok()) is True
    assert execution.reject(ActionTimeoutError("late")) is False
    assert execution.resolve(ActionResult.failed("again")) is False
    assert execution.timer is None
    assert (await execution.future).success is True


@pytest.mark.asyncio
async def test_peer_disconnect_rejects_outstanding_calls_immediately() -> None:
    correlator, channel = _attached(timeout=30.0)
    bystander = MemoryChannel("bystander")
    correlator.attach(bystander)
    first = await correlator.begin_delegated_call("ui", "a", {})
    second = await correlator.begin_delegated_call("ui", "b", {})
    unaffected = await correlator.begin_delegated_call("bystander", "c", {})

    await channel.close()

    for future in (first, second):
        assert future.done()
        with pytest.raises(PeerDisconnectedError):
            await future
    assert correlator.pending_count("ui") == 0
    assert not unaffected.done()
    unaffected.cancel()


@pytest.mark.asyncio
async def test_call_without_attached_peer_is_already_rejected() -> None:
    correlator = RemoteCorrelator()

    future = await correlator.begin_delegated_call("ghost", "a", {})

    assert future.done()
    with pytest.raises(PeerDisconnectedError):
        await future
    assert correlator.pending_count() == 0


@pytest.mark.asyncio
async def test_send_failure_rejects_with_peer_disconnected() -> None:
    correlator = RemoteCorrelator()
    correlator.attach(BrokenChannel("ui"))

    future = await correlator.begin_delegated_call("ui", "a", {})

    with pytest.raises(PeerDisconnectedError, match="socket closed"):
        await future
    assert correlator.pending_count() == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_removes_its_entry() -> None:
    correlator, channel = _attached()
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    waiter = asyncio.create_task(asyncio.wait_for(future, timeout=5))
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    await asyncio.sleep(0)

    assert not correlator.is_pending(execution_id)


@pytest.mark.asyncio
async def test_malformed_reply_is_dropped() -> None:
    correlator, channel = _attached()
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    await channel.deliver({"type": "action-result", "executionId": execution_id})
    await channel.deliver({"type": "something-else", "executionId": execution_id, "success": True})

    assert correlator.is_pending(execution_id)
    future.cancel()


@pytest.mark.asyncio
async def test_detach_stops_routing_replies() -> None:
    correlator = RemoteCorrelator()
    channel = MemoryChannel("ui")
    detach = correlator.attach(channel)
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await channel.next_outbound(timeout_seconds=0.1))["executionId"]

    detach()
    await channel.deliver({"type": "action-result", "executionId": execution_id, "success": True})

    assert correlator.is_pending(execution_id)
    followup = await correlator.begin_delegated_call("ui", "b", {})
    with pytest.raises(PeerDisconnectedError):
        await followup
    future.cancel()


@pytest.mark.asyncio
async def test_result_from_another_peer_is_discarded() -> None:
    correlator, alice = _attached("alice")
    mallory = MemoryChannel("mallory")
    correlator.attach(mallory)
    future = await correlator.begin_delegated_call("alice", "a", {})
    execution_id = (await alice.next_outbound(timeout_seconds=0.1))["executionId"]

    await mallory.deliver({"type": "action-result", "executionId": execution_id, "success": True, "result": "spoofed"})

    assert not future.done()
    assert correlator.is_pending(execution_id)
    assert correlator.complete_delegated_call(execution_id, ActionResult.ok(), peer_id="mallory") is False

    await alice.deliver({"type": "action-result", "executionId": execution_id, "success": True, "result": "real"})
    assert (await future).result == "real"


@pytest.mark.asyncio
async def test_attaching_a_live_peer_id_twice_is_rejected() -> None:
    correlator, first = _attached("ui")

    with pytest.raises(ValueError, match="already attached"):
        correlator.attach(MemoryChannel("ui"))

    await first.close()
    second = MemoryChannel("ui")
    correlator.attach(second)
    future = await correlator.begin_delegated_call("ui", "a", {})
    execution_id = (await second.next_outbound(timeout_seconds=0.1))["executionId"]

    await first.close()

    assert correlator.is_pending(execution_id)
    assert not future.done()
    future.cancel()
