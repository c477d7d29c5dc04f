"""End-to-end tests for ChatService turns."""

import asyncio

import pytest

from invoice_chat.api.deps import build_chat_service
from invoice_chat.core.errors import ConversationArchived, InvalidTransition, ValidationError
from invoice_chat.services.chat import describe_outcome
from invoice_chat.services.executor import ActionContext, ExecutionResult
from invoice_chat.services.intents import SearchIntent, UnrecognizedIntent
from invoice_chat.services.llm.base import LLMResponse, ToolCall


@pytest.mark.asyncio
async def test_mark_paid_end_to_end(service, invoices):
    turn = await service.send("user-1", None, "mark invoice INV-100 as paid")

    assert turn.error is None
    assert turn.proposal is not None
    assert "approved → paid" in turn.assistant_message.content
    assert turn.assistant_message.proposed_action["proposal_id"] == turn.proposal.id
    assert turn.assistant_message.record_ids == ["inv-100"]

    result = await service.confirm("user-1", turn.conversation_id, turn.assistant_message.id)

    assert result.outcome == "success"
    assert result.execution.record.status == "paid"
    assert "approved → paid" in result.assistant_message.content
    [entry] = service.conversation_actions("user-1", turn.conversation_id)
    assert entry.confirmed_by_user
    assert entry.before == {"status": "approved"}
    assert entry.after == {"status": "paid"}


@pytest.mark.asyncio
async def test_illegal_transition_becomes_reply_with_alternatives(service, invoices):
    turn = await service.send("user-1", None, "mark INV-101 as paid")

    assert isinstance(turn.error, InvalidTransition)
    assert turn.error.allowed == ["in_review", "overdue"]
    assert "in_review, overdue" in turn.assistant_message.content
    assert turn.proposal is None
    assert turn.assistant_message.meta["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_read_turn(service, invoices):
    turn = await service.send("user-1", None, "show pending invoices")

    assert isinstance(turn.intent, SearchIntent)
    assert "INV-101" in turn.assistant_message.content
    assert turn.assistant_message.record_ids == ["inv-101"]
    assert turn.assistant_message.meta["intent"] == "search"
    assert turn.assistant_message.meta["function"] == "search_records"


@pytest.mark.asyncio
async def test_unrecognized_turn(service, invoices):
    turn = await service.send("user-1", None, "what's the weather like")
    assert "rephrase" in turn.assistant_message.content
    assert turn.error is None


@pytest.mark.asyncio
async def test_first_message_titles_the_conversation(service, invoices):
    turn = await service.send("user-1", None, "show overdue invoices")
    view = await service.conversation("user-1", turn.conversation_id)
    assert view.conversation.title == "show overdue invoices"
    assert [m.role for m in view.messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_new_message_abandons_pending_proposal(service, invoices):
    turn = await service.send("user-1", None, "mark invoice INV-100 as paid")
    await service.send("user-1", turn.conversation_id, "show pending invoices")

    result = await service.confirm("user-1", turn.conversation_id, turn.assistant_message.id)

    assert result.outcome == "stale"
    assert service.conversation_actions("user-1", turn.conversation_id) == []


@pytest.mark.asyncio
async def test_cancel_then_confirm_is_stale(service, invoices):
    turn = await service.send("user-1", None, "approve INV-104")

    assert await service.cancel("user-1", turn.conversation_id) is True
    assert await service.cancel("user-1", turn.conversation_id) is False

    result = await service.confirm("user-1", turn.conversation_id, turn.assistant_message.id)
    assert result.outcome == "stale"
    view = await service.conversation("user-1", turn.conversation_id)
    assert view.pending is None


@pytest.mark.asyncio
async def test_pending_proposal_is_visible(service, invoices):
    turn = await service.send("user-1", None, "add note to INV-102: disputed by finance")
    view = await service.conversation("user-1", turn.conversation_id)
    assert view.pending.id == turn.proposal.id
    assert view.pending.message_id == turn.assistant_message.id


@pytest.mark.asyncio
async def test_empty_message_rejected(service):
    with pytest.raises(ValidationError):
        await service.send("user-1", None, "   ")


@pytest.mark.asyncio
async def test_archived_conversation_rejects_turns(service, invoices):
    turn = await service.send("user-1", None, "show pending invoices")
    await service.archive("user-1", turn.conversation_id)
    with pytest.raises(ConversationArchived):
        await service.send("user-1", turn.conversation_id, "and overdue?")


@pytest.mark.asyncio
async def test_concurrent_confirms_apply_once(service, invoices):
    turn = await service.send("user-1", None, "mark invoice INV-100 as paid")
    message_id = turn.assistant_message.id

    results = await asyncio.gather(
        service.confirm("user-1", turn.conversation_id, message_id),
        service.confirm("user-1", turn.conversation_id, message_id),
    )

    assert sorted(r.outcome for r in results) == ["stale", "success"]
    assert len(service.conversation_actions("user-1", turn.conversation_id)) == 1


@pytest.mark.asyncio
async def test_record_history(service, invoices):
    turn = await service.send("user-1", None, "mark invoice INV-100 as paid")
    await service.confirm("user-1", turn.conversation_id, turn.assistant_message.id)

    history = await service.record_history("user-1", "INV-100")
    assert [e.action_type for e in history] == ["status_change"]


@pytest.mark.asyncio
async def test_semantic_turn_records_usage(engine, invoices, fake_provider):
    provider = fake_provider(LLMResponse(
        content="",
        tool_calls=[ToolCall(name="get_summary_stats", arguments={"status": ["overdue"]})],
        model="gemini-test",
        usage={"input_tokens": 40, "output_tokens": 5},
    ))
    service = build_chat_service(engine, provider)

    turn = await service.send("user-1", None, "what do we owe on late stuff")

    assert turn.assistant_message.meta["source"] == "semantic"
    assert turn.assistant_message.meta["model"] == "gemini-test"
    assert turn.assistant_message.meta["input_tokens"] == 40
    assert "$9,800.00" in turn.assistant_message.content


def test_describe_outcome_requires_proposal():
    with pytest.raises(ValueError):
        describe_outcome(ExecutionResult("success"))


@pytest.mark.asyncio
async def test_dispatcher_rejects_intent_without_function(service):
    ctx = ActionContext(owner_id="user-1", conversation_id=1)
    with pytest.raises(ValueError):
        await service.dispatcher._read(UnrecognizedIntent(), ctx)
