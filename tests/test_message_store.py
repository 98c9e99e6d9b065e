"""
Tests for stored message history and conversation summaries.
"""

from datetime import UTC, datetime

from luxepass.db.models import Conversation, Message
from luxepass.services.messaging.message_store import REDACTED, MessageStore

USER = "2348012345678"


def test_record_inbound_creates_conversation_and_counts_unread(db):
    store = MessageStore(db)

    first = store.record_inbound(
        identifier=USER, message_id="wamid.1", content="Hi", display_name="Ada"
    )
    store.record_inbound(identifier=USER, message_id="wamid.2", content="Book a stay")

    assert first.direction == "inbound"
    assert first.status == "received"
    conversation = store.get_conversation_by_identifier(USER)
    assert conversation.display_name == "Ada"
    assert conversation.unread_count == 2
    assert conversation.last_message == "Book a stay"


def test_record_inbound_duplicate_id_is_skipped(db):
    store = MessageStore(db)
    store.record_inbound(identifier=USER, message_id="wamid.dup", content="Hi")

    assert store.record_inbound(identifier=USER, message_id="wamid.dup", content="Hi") is None
    assert db.query(Message).count() == 1
    assert store.get_conversation_by_identifier(USER).unread_count == 1


def test_record_inbound_without_text_uses_type_as_preview(db):
    store = MessageStore(db)
    store.record_inbound(identifier=USER, message_id="wamid.img", content=None, message_type="image")
    assert store.get_conversation_by_identifier(USER).last_message == "[image]"


def test_record_outbound_generates_local_id(db):
    store = MessageStore(db)

    message = store.record_outbound(identifier=USER, content="Welcome", status="failed")

    assert message.message_id.startswith("local_")
    assert message.direction == "outbound"
    assert message.to_number == USER
    assert message.status == "failed"
    # Outbound messages never count as unread
    assert store.get_conversation_by_identifier(USER).unread_count == 0


def test_update_status_never_moves_backwards(db):
    store = MessageStore(db)
    store.record_outbound(identifier=USER, content="Welcome", message_id="wamid.out")

    store.update_status("wamid.out", "read")
    store.update_status("wamid.out", "delivered")

    assert db.query(Message).filter_by(message_id="wamid.out").one().status == "read"


def test_update_status_failed_always_applies(db):
    store = MessageStore(db)
    store.record_outbound(identifier=USER, content="Welcome", message_id="wamid.out")

    store.update_status("wamid.out", "delivered")
    store.update_status("wamid.out", "failed")

    assert db.query(Message).filter_by(message_id="wamid.out").one().status == "failed"


def test_update_status_ignores_unknown_message_and_status(db):
    store = MessageStore(db)
    store.record_outbound(identifier=USER, content="Welcome", message_id="wamid.out")

    assert store.update_status("wamid.missing", "delivered") is None
    assert store.update_status("wamid.out", "deleted") is None


def test_read_receipt_clears_unread(db):
    store = MessageStore(db)
    store.record_inbound(identifier=USER, message_id="wamid.in", content="Hi")
    store.record_outbound(identifier=USER, content="Welcome", message_id="wamid.out")

    store.update_status("wamid.out", "read")

    assert store.get_conversation_by_identifier(USER).unread_count == 0


def test_mark_conversation_read(db):
    store = MessageStore(db)
    store.record_inbound(identifier=USER, message_id="wamid.in", content="Hi")
    conversation = store.get_conversation_by_identifier(USER)

    store.mark_conversation_read(conversation.id)

    assert store.get_conversation(conversation.id).unread_count == 0
    assert store.mark_conversation_read(9999) is None


def test_list_conversations_most_recent_first(db):
    store = MessageStore(db)
    store.record_inbound(
        identifier="111", message_id="wamid.a", content="a", timestamp=datetime(2026, 3, 1, tzinfo=UTC)
    )
    store.record_inbound(
        identifier="222", message_id="wamid.b", content="b", timestamp=datetime(2026, 3, 2, tzinfo=UTC)
    )

    assert [c.identifier for c in store.list_conversations()] == ["222", "111"]
    assert [c.identifier for c in store.list_conversations(limit=1, offset=1)] == ["111"]


def test_list_messages_oldest_first(db):
    store = MessageStore(db)
    for i in range(1, 4):
        store.record_inbound(
            identifier=USER,
            message_id=f"wamid.{i}",
            content=f"message {i}",
            timestamp=datetime(2026, 3, i, tzinfo=UTC),
        )
    conversation = store.get_conversation_by_identifier(USER)

    assert [m.content for m in store.list_messages(conversation.id)] == [
        "message 1",
        "message 2",
        "message 3",
    ]
    assert [m.content for m in store.list_messages(conversation.id, limit=2)] == [
        "message 2",
        "message 3",
    ]


def test_redact_blanks_content_and_preview(db):
    store = MessageStore(db)
    store.record_inbound(identifier=USER, message_id="wamid.secret", content="Lagos")

    store.redact("wamid.secret")

    assert db.query(Message).filter_by(message_id="wamid.secret").one().content == REDACTED
    assert db.query(Conversation).filter_by(identifier=USER).one().last_message == REDACTED
    assert store.redact("wamid.missing") is None
