"""
Unit Tests for the Anthropic Messages parser
"""

import json

import pytest

from protocol_bridge.exceptions import InvalidPayloadError
from protocol_bridge.ir import (
    ErrorEvent,
    FinishEvent,
    FinishReason,
    ImagePart,
    ReasoningEvent,
    ReasoningPart,
    Role,
    TextPart,
    TokenEvent,
    ToolCallDeltaEvent,
    ToolCallEvent,
    ToolResultPart,
)
from protocol_bridge.to_ir import parse_claude_chunk, parse_claude_request, parse_claude_response
from tests.fixtures import (
    CLAUDE_IMAGE_REQUEST,
    CLAUDE_SIMPLE_REQUEST,
    CLAUDE_TEXT_RESPONSE,
    CLAUDE_TOOL_REQUEST,
    CLAUDE_TOOL_USE_RESPONSE,
    sse,
)


class TestParseClaudeRequest:
    """Tests for Anthropic request -> IR"""

    def test_simple_request(self):
        req = parse_claude_request(CLAUDE_SIMPLE_REQUEST)

        assert req.model == "claude-sonnet-4"
        assert req.max_tokens == 1024
        assert len(req.messages) == 2
        assert req.messages[0].role == Role.SYSTEM
        assert req.messages[0].content == [TextPart(text="You are helpful.")]
        assert req.messages[1].role == Role.USER
        assert req.messages[1].content == [TextPart(text="Hello")]

    def test_accepts_json_text_and_bytes(self):
        text = json.dumps(CLAUDE_SIMPLE_REQUEST)

        assert parse_claude_request(text) == parse_claude_request(CLAUDE_SIMPLE_REQUEST)
        assert parse_claude_request(text.encode("utf-8")).model == "claude-sonnet-4"

    def test_system_blocks_are_joined(self):
        req = parse_claude_request(CLAUDE_TOOL_REQUEST)

        assert req.messages[0].role == Role.SYSTEM
        assert req.messages[0].content[0].text == "You are helpful.\nAnswer briefly."

    def test_tool_use_and_tool_result(self):
        req = parse_claude_request(CLAUDE_TOOL_REQUEST)
        assistant = req.messages[2]
        tool_turn = req.messages[3]

        assert assistant.role == Role.ASSISTANT
        assert assistant.content == [ReasoningPart(reasoning="Need tool", thought_signature="sig_1")]
        assert len(assistant.tool_calls) == 1
        assert assistant.tool_calls[0].id == "toolu_1"
        assert assistant.tool_calls[0].name == "get_weather"
        assert json.loads(assistant.tool_calls[0].args) == {"city": "Paris"}

        assert tool_turn.role == Role.TOOL
        assert tool_turn.content == [ToolResultPart(tool_call_id="toolu_1", result="Sunny")]

    def test_tools_thinking_and_metadata(self):
        req = parse_claude_request(CLAUDE_TOOL_REQUEST)

        assert len(req.tools) == 1
        assert req.tools[0].name == "get_weather"
        assert req.tools[0].parameters["properties"] == {"city": {"type": "string"}}
        assert req.thinking.include_thoughts is True
        assert req.thinking.budget == 2048
        assert req.metadata == {"user_id": "u-1"}

    def test_thinking_without_budget_is_auto(self):
        req = parse_claude_request(dict(CLAUDE_SIMPLE_REQUEST, thinking={"type": "enabled"}))
        assert req.thinking.budget == -1

    def test_thinking_disabled(self):
        req = parse_claude_request(dict(CLAUDE_SIMPLE_REQUEST, thinking={"type": "disabled"}))

        assert req.thinking.include_thoughts is False
        assert req.thinking.budget == 0

    def test_images(self):
        req = parse_claude_request(CLAUDE_IMAGE_REQUEST)
        content = req.messages[0].content

        # Only base64 sources are carried
        assert len(content) == 2
        assert content[1] == ImagePart(mime_type="image/jpeg", data="/9j/AAAA")

    def test_tool_use_without_input(self):
        payload = {
            "model": "claude-sonnet-4",
            "max_tokens": 10,
            "messages": [
                {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": "toolu_2", "name": "noop", "input": None}],
                }
            ],
        }
        req = parse_claude_request(payload)
        assert req.messages[0].tool_calls[0].args == "{}"

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2, 3]", "null"])
    def test_invalid_payload(self, raw):
        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_claude_request(raw)

        assert exc_info.value.source_protocol == "anthropic_messages"
        assert exc_info.value.to_dict()["error"] == "invalid_payload"


class TestParseClaudeResponse:
    """Tests for Anthropic response -> IR"""

    def test_text_response(self):
        messages, usage = parse_claude_response(CLAUDE_TEXT_RESPONSE)

        assert len(messages) == 1
        assert messages[0].role == Role.ASSISTANT
        assert messages[0].content == [TextPart(text="Hello there!")]
        assert usage.prompt_tokens == 12
        assert usage.completion_tokens == 4
        assert usage.total_tokens == 16
        assert usage.cached_tokens is None

    def test_tool_use_response(self):
        messages, usage = parse_claude_response(CLAUDE_TOOL_USE_RESPONSE)
        message = messages[0]

        assert message.content[0] == ReasoningPart(
            reasoning="The user wants weather.", thought_signature="sig_abc"
        )
        assert message.content[1] == TextPart(text="Let me check.")
        assert message.tool_calls[0].id == "toolu_9"
        assert usage.cached_tokens == 8

    def test_empty_content(self):
        messages, usage = parse_claude_response({"content": [], "usage": {"input_tokens": 1}})

        assert messages == []
        assert usage.prompt_tokens == 1
        assert usage.completion_tokens == 0

    def test_missing_usage(self):
        messages, usage = parse_claude_response({"content": [{"type": "text", "text": "x"}]})

        assert len(messages) == 1
        assert usage is None


class TestParseClaudeChunk:
    """Tests for Anthropic SSE -> IR events"""

    def _delta(self, delta, index=0):
        return sse(
            "content_block_delta", {"type": "content_block_delta", "index": index, "delta": delta}
        )

    def test_message_start_yields_nothing(self):
        assert parse_claude_chunk(sse("message_start", {"type": "message_start", "message": {}})) == []

    def test_text_delta(self):
        events = parse_claude_chunk(self._delta({"type": "text_delta", "text": "Hi"}))
        assert events == [TokenEvent(content="Hi")]

    def test_empty_text_delta(self):
        assert parse_claude_chunk(self._delta({"type": "text_delta", "text": ""})) == []

    def test_thinking_and_signature_deltas(self):
        thinking = parse_claude_chunk(self._delta({"type": "thinking_delta", "thinking": "hmm"}))
        signature = parse_claude_chunk(self._delta({"type": "signature_delta", "signature": "sig"}))

        assert thinking == [ReasoningEvent(reasoning="hmm")]
        assert signature == [ReasoningEvent(thought_signature="sig")]

    def test_tool_use_block(self):
        start = parse_claude_chunk(
            sse(
                "content_block_start",
                {
                    "type": "content_block_start",
                    "index": 2,
                    "content_block": {"type": "tool_use", "id": "toolu_1", "name": "get_weather"},
                },
            )
        )
        delta = parse_claude_chunk(
            self._delta({"type": "input_json_delta", "partial_json": '{"ci'}, index=2)
        )
        stop = parse_claude_chunk(sse("content_block_stop", {"type": "content_block_stop", "index": 2}))

        assert isinstance(start[0], ToolCallEvent)
        assert start[0].index == 2
        assert start[0].tool_call.id == "toolu_1"
        assert start[0].tool_call.name == "get_weather"
        assert start[0].tool_call.args == ""

        assert isinstance(delta[0], ToolCallDeltaEvent)
        assert delta[0].index == 2
        assert delta[0].tool_call.args == '{"ci'

        assert isinstance(stop[0], ToolCallDeltaEvent)
        assert stop[0].index == 2
        assert stop[0].tool_call.is_complete is True

    def test_text_block_start_yields_nothing(self):
        frame = sse(
            "content_block_start",
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        )
        assert parse_claude_chunk(frame) == []

    @pytest.mark.parametrize(
        "stop_reason,expected",
        [
            ("end_turn", FinishReason.STOP),
            ("stop_sequence", FinishReason.STOP),
            ("tool_use", FinishReason.TOOL_CALLS),
            ("max_tokens", FinishReason.LENGTH),
        ],
    )
    def test_message_delta(self, stop_reason, expected):
        events = parse_claude_chunk(
            sse(
                "message_delta",
                {
                    "type": "message_delta",
                    "delta": {"stop_reason": stop_reason},
                    "usage": {"input_tokens": 3, "output_tokens": 7},
                },
            )
        )

        assert len(events) == 1
        assert isinstance(events[0], FinishEvent)
        assert events[0].finish_reason == expected
        assert events[0].usage.prompt_tokens == 3
        assert events[0].usage.completion_tokens == 7

    def test_message_delta_without_stop_reason(self):
        frame = sse("message_delta", {"type": "message_delta", "delta": {}, "usage": {"output_tokens": 1}})
        assert parse_claude_chunk(frame) == []

    def test_message_stop(self):
        events = parse_claude_chunk(sse("message_stop", {"type": "message_stop"}))
        assert events == [FinishEvent(finish_reason=FinishReason.STOP)]

    def test_error(self):
        events = parse_claude_chunk(
            sse("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        )
        assert events == [ErrorEvent(message="Overloaded", error_type="overloaded_error")]

    def test_error_defaults(self):
        events = parse_claude_chunk(sse("error", {"type": "error"}))
        assert events == [ErrorEvent(message="Unknown Claude API error", error_type="api_error")]

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "event: ping\n\n",
            sse("ping", {"type": "ping"}),
            "data: {broken\n\n",
            "data: [1, 2]\n\n",
            sse("mystery", {"type": "mystery"}),
        ],
    )
    def test_ignored_frames(self, raw):
        assert parse_claude_chunk(raw) == []
