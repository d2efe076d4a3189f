"""
Protocol Bridge

Translates chat requests, responses and streamed events between the Anthropic
Messages API and the OpenAI Chat Completions / Responses APIs through a single
Intermediate Representation. Synchronous and I/O free.
"""

from .converters import (
    ClaudeToOpenAIResponsesStreamConverter,
    ClaudeToOpenAIStreamConverter,
    ConversionResult,
    OpenAIToClaudeStreamConverter,
    OpenAIToResponsesStreamConverter,
    StreamConverter,
    claude_request_to_openai,
    claude_request_to_openai_responses,
    claude_response_to_openai,
    convert_request,
    convert_response,
    openai_request_to_claude,
    openai_response_to_claude,
    openai_responses_to_claude_response,
    safe_claude_request_to_openai,
    safe_claude_request_to_openai_responses,
    safe_claude_response_to_openai,
    safe_openai_request_to_claude,
    safe_openai_response_to_claude,
    safe_openai_responses_to_claude_response,
)
from .exceptions import (
    ConversionError,
    InvalidPayloadError,
    StreamStateError,
    UnsupportedProtocolError,
)
from .from_ir import ClaudeStreamState, ResponsesStreamState
from .schemas import Protocol
from .stream import SSEDecoder

__version__ = "0.1.0"
__all__ = [
    # One-shot converters
    "claude_request_to_openai",
    "claude_request_to_openai_responses",
    "claude_response_to_openai",
    "openai_request_to_claude",
    "openai_response_to_claude",
    "openai_responses_to_claude_response",
    "safe_claude_request_to_openai",
    "safe_claude_request_to_openai_responses",
    "safe_claude_response_to_openai",
    "safe_openai_request_to_claude",
    "safe_openai_response_to_claude",
    "safe_openai_responses_to_claude_response",
    "ConversionResult",
    # Generic converters
    "convert_request",
    "convert_response",
    # Stream converters
    "StreamConverter",
    "ClaudeToOpenAIStreamConverter",
    "ClaudeToOpenAIResponsesStreamConverter",
    "OpenAIToClaudeStreamConverter",
    "OpenAIToResponsesStreamConverter",
    "ClaudeStreamState",
    "ResponsesStreamState",
    "SSEDecoder",
    # Errors
    "ConversionError",
    "InvalidPayloadError",
    "StreamStateError",
    "UnsupportedProtocolError",
    # Enums
    "Protocol",
]
