"""Tests for the conversation store."""

import gc

import pytest

from invoice_chat.core.errors import ConversationArchived, ConversationNotFound
from invoice_chat.services.conversations import ConversationLocks, ConversationStore, derive_title


@pytest.fixture
def store(engine):
    return ConversationStore(engine)


def test_title_is_derived_once_from_first_user_message(store):
    conv = store.create("user-1")
    store.append_message("user-1", conv.id, "assistant", "Welcome!")
    store.append_message("user-1", conv.id, "user", "Show pending invoices")
    store.append_message("user-1", conv.id, "user", "Now the overdue ones")

    assert store.get("user-1", conv.id).title == "Show pending invoices"


def test_long_titles_are_truncated():
    title = derive_title("x" * 80)
    assert title == "x" * 60 + "..."
    assert derive_title("short   and\nspaced") == "short and spaced"


def test_sequences_increase(store):
    conv = store.create("user-1")
    seqs = [store.append_message("user-1", conv.id, "user", f"message {i}").sequence for i in range(4)]
    assert seqs == [1, 2, 3, 4]
    assert [m.content for m in store.messages("user-1", conv.id)] == [f"message {i}" for i in range(4)]


def test_content_is_sanitized(store):
    conv = store.create("user-1")
    msg = store.append_message("user-1", conv.id, "user", "<script>x</script>fish &amp; chips\x07")
    assert msg.content == "xfish & chips"


def test_recent_messages_window(store):
    conv = store.create("user-1")
    for i in range(5):
        store.append_message("user-1", conv.id, "user", f"m{i}")
    assert [m.content for m in store.recent_messages(conv.id, 2)] == ["m3", "m4"]


def test_archived_conversations_are_read_only(store):
    conv = store.create("user-1")
    store.append_message("user-1", conv.id, "user", "hello")
    store.archive("user-1", conv.id)

    with pytest.raises(ConversationArchived):
        store.append_message("user-1", conv.id, "user", "still there?")
    assert len(store.messages("user-1", conv.id)) == 1


def test_conversations_are_scoped_to_owner(store):
    conv = store.create("user-1")
    with pytest.raises(ConversationNotFound):
        store.get("user-2", conv.id)
    with pytest.raises(ConversationNotFound):
        store.append_message("user-2", conv.id, "user", "hi")


def test_listing_summaries(store):
    first = store.create("user-1")
    store.append_message("user-1", first.id, "user", "first chat")
    second = store.create("user-1")
    store.append_message("user-1", second.id, "user", "second chat")
    store.append_message("user-1", second.id, "assistant", "reply " * 40)
    archived = store.create("user-1")
    store.archive("user-1", archived.id)
    store.create("user-2")

    summaries, total = store.list_conversations("user-1")
    assert total == 2
    assert [s.id for s in summaries] == [second.id, first.id]
    assert summaries[0].message_count == 2
    assert len(summaries[0].last_message) == 100

    _, total = store.list_conversations("user-1", include_archived=True)
    assert total == 3


def test_context_updates_merge(store):
    conv = store.create("user-1", {"filters": {"status": "pending"}})
    updated = store.update_context("user-1", conv.id, {"page": 2})
    assert updated.context == {"filters": {"status": "pending"}, "page": 2}


def test_unknown_role_rejected(store):
    conv = store.create("user-1")
    with pytest.raises(ValueError):
        store.append_message("user-1", conv.id, "tool", "nope")


def test_unused_locks_are_released():
    locks = ConversationLocks()
    lock = locks.get(1)
    assert locks.get(1) is lock
    locks.get(2)

    gc.collect()
    assert len(locks) == 1

    del lock
    gc.collect()
    assert len(locks) == 0
