"""
IR helper functions

Pure, total helpers shared by the parsers and generators: role and
finish-reason mapping, thinking budget/effort mapping, text aggregation,
tool argument parsing and JSON-schema cleaning. None of these raise on
malformed input.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .types import (
    FinishReason,
    Message,
    ReasoningPart,
    Role,
    TextPart,
)


# Keys rejected by the Anthropic tool input_schema validator
_CLAUDE_UNSUPPORTED_SCHEMA_KEYS = ("$schema", "$id", "$ref", "definitions", "$defs")

_ROLE_MAP = {
    "user": Role.USER,
    "assistant": Role.ASSISTANT,
    "model": Role.ASSISTANT,
    "system": Role.SYSTEM,
    "developer": Role.SYSTEM,
    "tool": Role.TOOL,
    "function": Role.TOOL,
}

_OPENAI_FINISH_MAP = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "max_tokens": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}

# Effort level -> thinking budget
_EFFORT_BUDGETS = {
    "minimal": 512,
    "low": 1024,
    "medium": 8192,
    "high": 24576,
    "xhigh": 32768,
}


@dataclass(frozen=True)
class ThinkingBudget:
    budget: int
    include_thoughts: bool


def map_standard_role(role: Optional[str]) -> Role:
    """Normalize an arbitrary role string to one of the four canonical roles."""
    if not role:
        return Role.USER
    return _ROLE_MAP.get(str(role).lower(), Role.USER)


def map_openai_finish_reason(reason: Optional[str]) -> FinishReason:
    if not reason:
        return FinishReason.UNKNOWN
    return _OPENAI_FINISH_MAP.get(reason, FinishReason.UNKNOWN)


def map_finish_reason_to_openai(reason: Optional[FinishReason]) -> str:
    """
    Map an IR finish reason to the OpenAI ``finish_reason`` string.

    ``error`` and ``unknown`` have no OpenAI counterpart and collapse to
    ``stop``, so this mapping is not invertible for them.
    """
    if reason in (
        FinishReason.LENGTH,
        FinishReason.TOOL_CALLS,
        FinishReason.CONTENT_FILTER,
    ):
        return reason.value
    return "stop"


def map_budget_to_effort(budget: Optional[int], default_effort: str = "auto") -> str:
    """Map a thinking-token budget to a reasoning effort level."""
    if budget is None:
        return default_effort
    if budget == 0:
        return "none"
    if budget < 0:
        return default_effort
    if budget <= 1024:
        return "low"
    if budget <= 8192:
        return "medium"
    if budget <= 24576:
        return "high"
    return "xhigh"


def map_effort_to_budget(effort: Optional[str]) -> ThinkingBudget:
    """Map a reasoning effort level to a thinking-token budget (-1 = auto)."""
    level = (effort or "").lower()
    if level == "none":
        return ThinkingBudget(budget=0, include_thoughts=False)
    return ThinkingBudget(budget=_EFFORT_BUDGETS.get(level, -1), include_thoughts=True)


def combine_text_parts(message: Message) -> str:
    return "".join(p.text for p in message.content if isinstance(p, TextPart))


def combine_reasoning_parts(message: Message) -> str:
    return "".join(p.reasoning for p in message.content if isinstance(p, ReasoningPart))


def get_first_reasoning_signature(message: Message) -> Optional[str]:
    for part in message.content:
        if isinstance(part, ReasoningPart) and part.thought_signature:
            return part.thought_signature
    return None


def parse_tool_call_args(args: Optional[str]) -> Dict[str, Any]:
    """Parse tool call arguments, falling back to an empty object."""
    if not args or args == "{}":
        return {}
    try:
        parsed = json.loads(args)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_json_object(text: Any) -> Optional[Dict[str, Any]]:
    """Decode a JSON object from text; None when it is not one."""
    if isinstance(text, dict):
        return text
    if not isinstance(text, (str, bytes)):
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def clean_json_schema_for_claude(schema: Any) -> Dict[str, Any]:
    """
    Strip JSON-schema keys the Anthropic API rejects.

    Recurses into ``properties`` values and ``items``. The input is never
    modified; cleaning an already-clean schema returns an equal schema.
    """
    if not isinstance(schema, dict):
        return {}

    cleaned = {
        key: value
        for key, value in schema.items()
        if key not in _CLAUDE_UNSUPPORTED_SCHEMA_KEYS
    }

    properties = cleaned.get("properties")
    if isinstance(properties, dict):
        cleaned["properties"] = {
            name: clean_json_schema_for_claude(prop) if isinstance(prop, dict) else prop
            for name, prop in properties.items()
        }

    items = cleaned.get("items")
    if isinstance(items, dict):
        cleaned["items"] = clean_json_schema_for_claude(items)

    return cleaned


def clean_json_schema(schema: Any) -> Dict[str, Any]:
    """Normalize a tool parameter schema to an object schema."""
    if not isinstance(schema, dict):
        return {}

    cleaned = dict(schema)
    if not cleaned.get("type"):
        cleaned["type"] = "object"
    if cleaned["type"] == "object" and not cleaned.get("properties"):
        cleaned["properties"] = {}
    return cleaned
