"""
Tests for history sanitizing.

Usage:
    pytest testing/test_history_sanitizer.py
"""

from persona_engine.models import ChatMessage, MessageRole, TextPart, ToolPart, ToolState
from persona_engine.services.history_sanitizer import sanitize_history


def _tool_message(state, output=None, error_text=None):
    return ChatMessage(
        role=MessageRole.ASSISTANT,
        parts=[
            TextPart(text="Let me check."),
            ToolPart(tool_name="lookup", tool_call_id="call_1", state=state, output=output, error_text=error_text),
        ],
    )


def test_drops_streaming_tool_call():
    user = ChatMessage.from_text(MessageRole.USER, "hi")
    interrupted = _tool_message(ToolState.INPUT_STREAMING)
    assert sanitize_history([user, interrupted]) == [user]


def test_drops_input_available_without_result():
    message = _tool_message(ToolState.INPUT_AVAILABLE)
    assert sanitize_history([message]) == []


def test_keeps_input_available_with_output_or_error():
    with_output = _tool_message(ToolState.INPUT_AVAILABLE, output={"answer": 42})
    with_error = _tool_message(ToolState.INPUT_AVAILABLE, error_text="timed out")
    assert sanitize_history([with_output, with_error]) == [with_output, with_error]


def test_keeps_completed_tool_calls():
    done = _tool_message(ToolState.OUTPUT_AVAILABLE, output="ok")
    failed = _tool_message(ToolState.OUTPUT_ERROR, error_text="nope")
    assert sanitize_history([done, failed]) == [done, failed]


def test_order_preserved_and_input_untouched():
    messages = [
        ChatMessage.from_text(MessageRole.USER, "one"),
        _tool_message(ToolState.INPUT_STREAMING),
        ChatMessage.from_text(MessageRole.ASSISTANT, "two"),
        ChatMessage.from_text(MessageRole.USER, "three"),
    ]
    result = sanitize_history(messages)
    assert [m.text for m in result] == ["one", "two", "three"]
    assert len(messages) == 4
