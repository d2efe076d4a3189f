"""
Intermediate Representation (IR) Module

Protocol-agnostic types and helpers that all conversions pass through.
"""

from .types import (
    ContentPart,
    ContentType,
    ErrorEvent,
    EventType,
    FilePart,
    FinishEvent,
    FinishReason,
    ImageEvent,
    ImagePart,
    Message,
    ReasoningEvent,
    ReasoningPart,
    ReasoningSummaryEvent,
    ResponseMeta,
    Role,
    TextPart,
    ThinkingConfig,
    TokenEvent,
    ToolCall,
    ToolCallDeltaEvent,
    ToolCallEvent,
    ToolDefinition,
    ToolResultPart,
    UnifiedChatRequest,
    UnifiedEvent,
    Usage,
)
from .utils import (
    ThinkingBudget,
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

__all__ = [
    # Enums
    "ContentType",
    "EventType",
    "FinishReason",
    "Role",
    # Content parts
    "ContentPart",
    "FilePart",
    "ImagePart",
    "ReasoningPart",
    "TextPart",
    "ToolResultPart",
    # Messages and requests
    "Message",
    "ResponseMeta",
    "ThinkingConfig",
    "ToolCall",
    "ToolDefinition",
    "UnifiedChatRequest",
    "Usage",
    # Events
    "ErrorEvent",
    "FinishEvent",
    "ImageEvent",
    "ReasoningEvent",
    "ReasoningSummaryEvent",
    "TokenEvent",
    "ToolCallDeltaEvent",
    "ToolCallEvent",
    "UnifiedEvent",
    # Helpers
    "ThinkingBudget",
    "clean_json_schema",
    "clean_json_schema_for_claude",
    "combine_reasoning_parts",
    "combine_text_parts",
    "get_first_reasoning_signature",
    "map_budget_to_effort",
    "map_effort_to_budget",
    "map_finish_reason_to_openai",
    "map_openai_finish_reason",
    "map_standard_role",
    "parse_json_object",
    "parse_tool_call_args",
]
