"""Tests for the tracked-conversation table and role lookup."""
from agentbot.session.conversations import (
    JOINABLE_ROLES,
    ConversationTable,
    LastContentEvent,
    Role,
    get_consumer_id,
    get_role,
)


def _result(conversation_id, participants, last=None):
    result = {"convId": conversation_id, "conversationDetails": {"participants": participants}}
    if last is not None:
        result["lastContentEventNotification"] = last
    return result


def test_add_is_idempotent():
    table = ConversationTable()
    first = table.add("C1")
    second = table.add("C1")
    assert first is second
    assert len(table) == 1
    assert "C1" in table
    assert table.ids() == ["C1"]


def test_update_refreshes_details_and_keeps_profile():
    table = ConversationTable()
    table.update("C1", _result("C1", [{"id": "c", "role": "CONSUMER"}]))
    table.get("C1").consumer_profile = {"firstName": "Ann"}

    table.update("C1", _result("C1", [{"id": "c", "role": "CONSUMER"}, {"id": "a", "role": "ASSIGNED_AGENT"}]))

    conversation = table.get("C1")
    assert len(conversation.participants) == 2
    assert conversation.consumer_profile == {"firstName": "Ann"}


def test_last_content_event_keeps_only_role_from_metadata():
    last = {
        "sequence": 4,
        "serverTimestamp": 1700000000000,
        "originatorId": "c",
        "originatorPId": "pid-c",
        "originatorMetadata": {"id": "c", "role": "CONSUMER", "clientProperties": {"os": "linux"}},
        "event": {"type": "ContentEvent", "message": "hi"},
    }
    table = ConversationTable()
    conversation = table.update("C1", _result("C1", [], last))

    assert conversation.last_content_event == LastContentEvent(
        sequence=4,
        server_timestamp=1700000000000,
        originator_id="c",
        originator_pid="pid-c",
        originator_role="CONSUMER",
        event_type="ContentEvent",
    )


def test_update_without_last_content_clears_projection():
    table = ConversationTable()
    table.update("C1", _result("C1", [], {"sequence": 1, "event": {"type": "ContentEvent"}}))
    table.update("C1", _result("C1", []))
    assert table.get("C1").last_content_event is None


def test_remove():
    table = ConversationTable()
    table.add("C1")
    assert table.remove("C1") is not None
    assert table.remove("C1") is None
    assert "C1" not in table
    assert table.get("C1") is None


def test_get_role():
    details = {"participants": [{"id": "bot", "role": "READER"}, {"id": "c", "role": "CONSUMER"}]}
    assert get_role(details, "bot") == Role.READER
    assert get_role(details, "c") == "CONSUMER"
    assert get_role(details, "someone-else") is None
    assert get_role({"participants": [{"id": "bot"}]}, "bot") is None
    assert get_role(None, "bot") is None
    assert get_role(details, None) is None


def test_joinable_roles():
    assert JOINABLE_ROLES == {"READER", "MANAGER", "ASSIGNED_AGENT"}
    assert "CONSUMER" not in JOINABLE_ROLES


def test_get_consumer_id():
    details = {"participants": [{"id": "bot", "role": "ASSIGNED_AGENT"}, {"id": "c", "role": "CONSUMER"}]}
    assert get_consumer_id(details) == "c"
    assert get_consumer_id({"participants": [{"id": "bot", "role": "READER"}]}) is None
    assert get_consumer_id({}) is None
    assert get_consumer_id(None) is None
