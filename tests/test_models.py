"""Unit tests for ConversationState ordering and call-id rules."""
from __future__ import annotations

import pytest

from toolrelay.errors import ConversationStateError
from toolrelay.models import ConversationState, Message, ToolCall


def _assistant(*ids):
    return Message(
        role="assistant",
        tool_calls=[ToolCall(id=i, name="get_weather", arguments='{"location":"X"}') for i in ids],
    )


def test_messages_keep_append_order():
    state = ConversationState()
    state.add_user("q")
    state.add_assistant(_assistant("a", "b"))
    state.add_tool_result("b", "rb")
    state.add_tool_result("a", "ra")
    assert [m.role for m in state.messages] == ["user", "assistant", "tool", "tool"]
    assert [m.tool_call_id for m in state.messages[2:]] == ["b", "a"]


def test_messages_property_is_a_copy():
    state = ConversationState()
    state.add_user("q")
    state.messages.append(Message(role="user", content="sneaky"))
    assert len(state) == 1


def test_tool_result_must_match_preceding_assistant_call():
    state = ConversationState()
    state.add_user("q")
    state.add_assistant(_assistant("call_1"))
    with pytest.raises(ConversationStateError):
        state.add_tool_result("call_999", "made up")


def test_tool_result_id_cannot_be_reused():
    state = ConversationState()
    state.add_user("q")
    state.add_assistant(_assistant("call_1"))
    state.add_tool_result("call_1", "first")
    with pytest.raises(ConversationStateError):
        state.add_tool_result("call_1", "second")


def test_tool_result_before_assistant_raises():
    state = ConversationState()
    state.add_user("q")
    with pytest.raises(ConversationStateError):
        state.add_tool_result("call_1", "orphan")


def test_ids_from_older_assistant_turns_are_rejected():
    state = ConversationState()
    state.add_user("q")
    state.add_assistant(_assistant("old"))
    state.add_tool_result("old", "r")
    state.add_assistant(_assistant("new"))
    with pytest.raises(ConversationStateError):
        state.add_tool_result("old", "again")


def test_add_assistant_rejects_other_roles():
    with pytest.raises(ConversationStateError):
        ConversationState().add_assistant(Message(role="user", content="q"))


def test_messages_are_frozen():
    msg = Message(role="user", content="q")
    with pytest.raises(Exception):
        msg.content = "changed"
