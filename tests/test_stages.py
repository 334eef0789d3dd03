import pytest
from fakes import FakeBackend, act, say

from pixel.actions import ActionRegistry, register_builtin_actions
from pixel.errors import BackendError
from pixel.pipeline.stages import ConversationStage, DecisionStage, build_messages, summarize_outcomes
from pixel.prompts import ACTION_OUTCOME_HEADER, ACTION_OUTCOME_INSTRUCTION
from pixel.types import ActionOutcome, ActionRequest, ActionResult, ConversationTurn

HISTORY = (
    ConversationTurn(role="user", text="hi"),
    ConversationTurn(role="agent", text="Hello!"),
    ConversationTurn(role="user", text="make it blue"),
)


def _registry() -> ActionRegistry:
    registry = ActionRegistry()
    register_builtin_actions(registry)
    return registry


def test_build_messages_maps_roles_and_prepends_system_prompt() -> None:
    messages = build_messages(HISTORY, "  Be brief.  ")

    assert messages == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Hello!"},
        {"role": "user", "content": "make it blue"},
    ]
    assert build_messages(HISTORY[:1], "   ") == [{"role": "user", "content": "hi"}]


def test_summarize_outcomes_lists_results_in_request_order() -> None:
    summary = summarize_outcomes(
        [
            ActionOutcome(ActionRequest("changeBackgroundColor", {"color": "#0000FF"}), ActionResult.ok({"ok": True})),
            ActionOutcome(ActionRequest("changeBackgroundColor", {"color": "red"}), ActionResult.failed("timed out")),
        ]
    )

    lines = summary.splitlines()
    assert lines[0] == ACTION_OUTCOME_HEADER
    assert lines[1] == '1. changeBackgroundColor(color="#0000FF"): succeeded, result: {"ok": true}'
    assert lines[2] == '2. changeBackgroundColor(color="red"): failed, timed out'
    assert lines[-1] == ACTION_OUTCOME_INSTRUCTION


@pytest.mark.asyncio
async def test_decision_stage_offers_registered_actions() -> None:
    backend = FakeBackend(act(("changeBackgroundColor", {"color": "blue"})))
    stage = DecisionStage(backend, _registry())

    decision = await stage.decide(HISTORY, system_prompt="sys")

    assert [(request.name, dict(request.args)) for request in decision.actions] == [
        ("changeBackgroundColor", {"color": "blue"})
    ]
    messages, tools = backend.calls[0]
    assert messages[0] == {"role": "system", "content": "sys"}
    assert messages[-1] == {"role": "user", "content": "make it blue"}
    assert tools is not None
    assert [tool.name for tool in tools] == ["changeBackgroundColor"]


@pytest.mark.asyncio
async def test_decision_stage_returns_empty_decision_for_chat() -> None:
    stage = DecisionStage(FakeBackend(say("just talking")), _registry())

    decision = await stage.decide(HISTORY, system_prompt="sys")

    assert decision.actions == []


@pytest.mark.asyncio
async def test_decision_stage_wraps_unexpected_backend_errors() -> None:
    stage = DecisionStage(FakeBackend(RuntimeError("socket hang up")), _registry())

    with pytest.raises(BackendError, match="decision backend failed: socket hang up"):
        await stage.decide(HISTORY, system_prompt="sys")


@pytest.mark.asyncio
async def test_decision_stage_propagates_backend_errors_unchanged() -> None:
    error = BackendError("model_timeout: no response within 60.0s")
    stage = DecisionStage(FakeBackend(error), _registry())

    with pytest.raises(BackendError) as exc_info:
        await stage.decide(HISTORY, system_prompt="sys")
    assert exc_info.value is error


@pytest.mark.asyncio
async def test_conversation_stage_has_no_tools_and_does_not_mutate_history() -> None:
    backend = FakeBackend(say("  Sure thing!  "))
    stage = ConversationStage(backend)
    history = list(HISTORY)

    reply = await stage.respond(history, system_prompt="sys")

    assert reply == "Sure thing!"
    assert history == list(HISTORY)
    messages, tools = backend.calls[0]
    assert tools is None
    assert len(messages) == 4


@pytest.mark.asyncio
async def test_conversation_stage_appends_outcome_summary() -> None:
    backend = FakeBackend(say("Done, it's blue now."))
    stage = ConversationStage(backend)
    outcomes = [ActionOutcome(ActionRequest("changeBackgroundColor", {"color": "#0000FF"}), ActionResult.ok())]

    await stage.respond(HISTORY, system_prompt="sys", outcomes=outcomes)

    messages, _ = backend.calls[0]
    assert messages[-1]["role"] == "system"
    assert messages[-1]["content"] == summarize_outcomes(outcomes)
    assert messages[-2] == {"role": "user", "content": "make it blue"}


@pytest.mark.asyncio
async def test_conversation_stage_rejects_empty_reply() -> None:
    stage = ConversationStage(FakeBackend(say("   ")))

    with pytest.raises(BackendError, match="empty reply"):
        await stage.respond(HISTORY, system_prompt="sys")
