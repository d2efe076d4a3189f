"""
Unit Tests for IR helpers
"""

import copy

import pytest

from protocol_bridge.ir import (
    FinishReason,
    Message,
    ReasoningPart,
    Role,
    TextPart,
    clean_json_schema,
    clean_json_schema_for_claude,
    combine_reasoning_parts,
    combine_text_parts,
    get_first_reasoning_signature,
    map_budget_to_effort,
    map_effort_to_budget,
    map_finish_reason_to_openai,
    map_openai_finish_reason,
    map_standard_role,
    parse_json_object,
    parse_tool_call_args,
)


class TestRoleMapping:
    """Tests for map_standard_role"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("user", Role.USER),
            ("assistant", Role.ASSISTANT),
            ("ASSISTANT", Role.ASSISTANT),
            ("model", Role.ASSISTANT),
            ("system", Role.SYSTEM),
            ("developer", Role.SYSTEM),
            ("tool", Role.TOOL),
            ("function", Role.TOOL),
            ("narrator", Role.USER),
            (None, Role.USER),
            ("", Role.USER),
        ],
    )
    def test_map_standard_role(self, raw, expected):
        assert map_standard_role(raw) == expected


class TestFinishReasonMapping:
    """Tests for finish reason translation"""

    @pytest.mark.parametrize(
        "reason",
        [FinishReason.STOP, FinishReason.LENGTH, FinishReason.TOOL_CALLS, FinishReason.CONTENT_FILTER],
    )
    def test_round_trip_through_openai(self, reason):
        """Reasons with an OpenAI counterpart survive a round trip"""
        assert map_openai_finish_reason(map_finish_reason_to_openai(reason)) == reason

    @pytest.mark.parametrize("reason", [FinishReason.ERROR, FinishReason.UNKNOWN, None])
    def test_collapses_to_stop(self, reason):
        assert map_finish_reason_to_openai(reason) == "stop"

    def test_openai_aliases(self):
        assert map_openai_finish_reason("max_tokens") == FinishReason.LENGTH
        assert map_openai_finish_reason("function_call") == FinishReason.TOOL_CALLS

    def test_unknown_and_missing(self):
        assert map_openai_finish_reason(None) == FinishReason.UNKNOWN
        assert map_openai_finish_reason("") == FinishReason.UNKNOWN
        assert map_openai_finish_reason("something_new") == FinishReason.UNKNOWN


class TestThinkingBudget:
    """Tests for effort <-> budget mapping"""

    @pytest.mark.parametrize(
        "effort,budget",
        [("minimal", 512), ("low", 1024), ("medium", 8192), ("high", 24576), ("xhigh", 32768)],
    )
    def test_effort_to_budget(self, effort, budget):
        mapped = map_effort_to_budget(effort)
        assert mapped.budget == budget
        assert mapped.include_thoughts is True

    @pytest.mark.parametrize("effort", ["low", "medium", "high", "xhigh"])
    def test_effort_round_trip(self, effort):
        assert map_budget_to_effort(map_effort_to_budget(effort).budget) == effort

    def test_none_disables_thinking(self):
        mapped = map_effort_to_budget("none")
        assert mapped.budget == 0
        assert mapped.include_thoughts is False
        assert map_budget_to_effort(0) == "none"

    def test_unknown_effort_is_auto(self):
        mapped = map_effort_to_budget("auto")
        assert mapped.budget == -1
        assert mapped.include_thoughts is True
        assert map_effort_to_budget(None).budget == -1

    def test_auto_budget_uses_default_effort(self):
        assert map_budget_to_effort(-1) == "auto"
        assert map_budget_to_effort(-1, "medium") == "medium"
        assert map_budget_to_effort(None, "high") == "high"

    @pytest.mark.parametrize(
        "budget,effort",
        [(1, "low"), (1024, "low"), (1025, "medium"), (8192, "medium"), (24576, "high"), (50000, "xhigh")],
    )
    def test_budget_thresholds(self, budget, effort):
        assert map_budget_to_effort(budget) == effort


class TestPartAggregation:
    """Tests for text / reasoning aggregation helpers"""

    def test_combine_parts(self):
        message = Message(
            role=Role.ASSISTANT,
            content=[
                ReasoningPart(reasoning="Step 1. "),
                TextPart(text="Hello "),
                ReasoningPart(reasoning="Step 2.", thought_signature="sig"),
                TextPart(text="world"),
            ],
        )

        assert combine_text_parts(message) == "Hello world"
        assert combine_reasoning_parts(message) == "Step 1. Step 2."
        assert get_first_reasoning_signature(message) == "sig"

    def test_empty_message(self):
        message = Message(role=Role.USER)

        assert combine_text_parts(message) == ""
        assert combine_reasoning_parts(message) == ""
        assert get_first_reasoning_signature(message) is None


class TestToolArguments:
    """Tests for tool argument parsing"""

    def test_parses_object(self):
        assert parse_tool_call_args('{"city":"Paris","days":3}') == {"city": "Paris", "days": 3}

    @pytest.mark.parametrize("args", ["", None, "{}", "not json", "[1, 2]", '"text"', '{"city":'])
    def test_falls_back_to_empty_object(self, args):
        assert parse_tool_call_args(args) == {}

    def test_parse_json_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}
        assert parse_json_object({"a": 1}) == {"a": 1}
        assert parse_json_object("[1]") is None
        assert parse_json_object("nope") is None
        assert parse_json_object(42) is None


class TestSchemaCleaning:
    """Tests for JSON-schema cleaning"""

    SCHEMA = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "$id": "weather",
        "type": "object",
        "definitions": {"unit": {"type": "string"}},
        "properties": {
            "city": {"type": "string", "$ref": "#/definitions/city"},
            "tags": {
                "type": "array",
                "items": {"$id": "tag", "type": "string"},
            },
            "options": {
                "type": "object",
                "$defs": {"x": {}},
                "properties": {"units": {"type": "string", "$schema": "x"}},
            },
        },
        "required": ["city"],
    }

    def test_strips_unsupported_keys_recursively(self):
        cleaned = clean_json_schema_for_claude(self.SCHEMA)

        assert cleaned == {
            "type": "object",
            "properties": {
                "city": {"type": "string"},
                "tags": {"type": "array", "items": {"type": "string"}},
                "options": {"type": "object", "properties": {"units": {"type": "string"}}},
            },
            "required": ["city"],
        }

    def test_does_not_mutate_input(self):
        original = copy.deepcopy(self.SCHEMA)
        clean_json_schema_for_claude(self.SCHEMA)
        assert self.SCHEMA == original

    def test_idempotent(self):
        once = clean_json_schema_for_claude(self.SCHEMA)
        assert clean_json_schema_for_claude(once) == once

    @pytest.mark.parametrize("schema", [None, "string", 3, ["type"]])
    def test_non_dict_input(self, schema):
        assert clean_json_schema_for_claude(schema) == {}
        assert clean_json_schema(schema) == {}

    def test_clean_json_schema_defaults_to_object(self):
        assert clean_json_schema({}) == {"type": "object", "properties": {}}
        assert clean_json_schema({"type": "object"}) == {"type": "object", "properties": {}}
        assert clean_json_schema({"type": "string"}) == {"type": "string"}

    def test_clean_json_schema_keeps_properties(self):
        schema = {"type": "object", "properties": {"city": {"type": "string"}}}
        cleaned = clean_json_schema(schema)

        assert cleaned == schema
        assert cleaned is not schema
