"""
Intermediate Representation Type Definitions

Protocol-neutral request, message and stream event types. Every conversion
between the Anthropic Messages protocol and the OpenAI Chat Completions /
Responses protocols is routed through these types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Role(str, Enum):
    """Canonical message roles."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ContentType(str, Enum):
    """Content part variants."""
    TEXT = "text"
    REASONING = "reasoning"
    IMAGE = "image"
    FILE = "file"
    TOOL_RESULT = "tool_result"


class FinishReason(str, Enum):
    """Terminal classification of why generation stopped."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"
    UNKNOWN = "unknown"


class EventType(str, Enum):
    """Unified stream event variants."""
    TOKEN = "token"
    REASONING = "reasoning"
    REASONING_SUMMARY = "reasoning_summary"
    TOOL_CALL = "tool_call"
    TOOL_CALL_DELTA = "tool_call_delta"
    IMAGE = "image"
    FINISH = "finish"
    ERROR = "error"


@dataclass
class Usage:
    """Token usage; only final once attached to a finish event."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    thoughts_tokens: Optional[int] = None  # reasoning tokens
    cached_tokens: Optional[int] = None
    audio_tokens: Optional[int] = None
    accepted_prediction_tokens: Optional[int] = None
    rejected_prediction_tokens: Optional[int] = None


@dataclass
class ResponseMeta:
    """Upstream response identity passed through to generated output."""
    response_id: Optional[str] = None
    native_finish_reason: Optional[str] = None
    create_time: Optional[int] = None


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


@dataclass
class TextPart:
    type: ContentType = field(default=ContentType.TEXT, init=False)
    text: str = ""


@dataclass
class ReasoningPart:
    """Model reasoning, optionally verified by an opaque signature."""
    type: ContentType = field(default=ContentType.REASONING, init=False)
    reasoning: str = ""
    thought_signature: Optional[str] = None


@dataclass
class ImagePart:
    """Inline (base64) or remote image."""
    type: ContentType = field(default=ContentType.IMAGE, init=False)
    mime_type: str = "image/png"
    data: Optional[str] = None  # base64 without data-URI prefix
    url: Optional[str] = None


@dataclass
class FilePart:
    type: ContentType = field(default=ContentType.FILE, init=False)
    file_id: Optional[str] = None
    file_url: Optional[str] = None
    filename: Optional[str] = None
    file_data: Optional[str] = None


@dataclass
class ToolResultPart:
    """Result of a tool invocation, keyed by the originating call id."""
    type: ContentType = field(default=ContentType.TOOL_RESULT, init=False)
    tool_call_id: str = ""
    result: str = ""
    tool_name: Optional[str] = None


ContentPart = Union[TextPart, ReasoningPart, ImagePart, FilePart, ToolResultPart]


# ---------------------------------------------------------------------------
# Messages and tools
# ---------------------------------------------------------------------------


@dataclass
class ToolCall:
    """
    A tool invocation emitted by the assistant.

    ``args`` is a JSON string. While streaming it may hold a partial fragment
    that must be concatenated with later fragments in arrival order.
    """
    id: str = ""
    name: str = ""
    args: str = ""
    item_id: Optional[str] = None  # Responses API output item id
    thought_signature: Optional[str] = None
    is_custom: bool = False
    is_complete: bool = False


@dataclass
class ToolDefinition:
    name: str = ""
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    format: Optional[Dict[str, Any]] = None  # custom tool input format
    is_custom: bool = False


@dataclass
class Message:
    role: Role = Role.USER
    content: List[ContentPart] = field(default_factory=list)
    tool_calls: List[ToolCall] = field(default_factory=list)


@dataclass
class ThinkingConfig:
    """
    Reasoning configuration.

    ``budget`` follows the thinking-token convention: 0 disables reasoning,
    -1 means "let the provider decide", positive values are token budgets.
    """
    summary: Optional[str] = None
    effort: Optional[str] = None
    budget: Optional[int] = None
    include_thoughts: Optional[bool] = None


@dataclass
class UnifiedChatRequest:
    """Canonical chat request. Treated as immutable once parsed."""
    model: str = ""
    messages: List[Message] = field(default_factory=list)
    tools: List[ToolDefinition] = field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: Optional[int] = None
    stop_sequences: List[str] = field(default_factory=list)
    thinking: Optional[ThinkingConfig] = None
    tool_choice: Optional[str] = None
    parallel_tool_calls: Optional[bool] = None
    response_modality: List[str] = field(default_factory=list)
    response_schema: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    instructions: Optional[str] = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass
class TokenEvent:
    """Visible text delta. ``refusal`` is set for refusal text."""
    type: EventType = field(default=EventType.TOKEN, init=False)
    content: str = ""
    refusal: Optional[str] = None
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ReasoningEvent:
    """Reasoning delta, or a bare signature when ``reasoning`` is empty."""
    type: EventType = field(default=EventType.REASONING, init=False)
    reasoning: str = ""
    thought_signature: Optional[str] = None
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ReasoningSummaryEvent:
    type: EventType = field(default=EventType.REASONING_SUMMARY, init=False)
    summary: str = ""
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ToolCallEvent:
    """Start (or full snapshot) of the tool call at stream position ``index``."""
    type: EventType = field(default=EventType.TOOL_CALL, init=False)
    tool_call: ToolCall = field(default_factory=ToolCall)
    index: int = 0
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ToolCallDeltaEvent:
    """Argument fragment or completion marker for the tool call at ``index``."""
    type: EventType = field(default=EventType.TOOL_CALL_DELTA, init=False)
    tool_call: ToolCall = field(default_factory=ToolCall)
    index: int = 0
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ImageEvent:
    type: EventType = field(default=EventType.IMAGE, init=False)
    image: ImagePart = field(default_factory=ImagePart)
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class FinishEvent:
    """
    End of generation.

    ``finish_reason`` is None for a usage-only trailer chunk.
    """
    type: EventType = field(default=EventType.FINISH, init=False)
    finish_reason: Optional[FinishReason] = FinishReason.STOP
    usage: Optional[Usage] = None
    content_filter: Optional[Any] = None
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


@dataclass
class ErrorEvent:
    """Upstream error frame propagated end-to-end."""
    type: EventType = field(default=EventType.ERROR, init=False)
    message: str = ""
    error_type: str = "api_error"
    system_fingerprint: Optional[str] = None
    logprobs: Optional[Any] = None


UnifiedEvent = Union[
    TokenEvent,
    ReasoningEvent,
    ReasoningSummaryEvent,
    ToolCallEvent,
    ToolCallDeltaEvent,
    ImageEvent,
    FinishEvent,
    ErrorEvent,
]
