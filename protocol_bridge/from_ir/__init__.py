"""
Protocol generators: IR -> wire payloads.
"""

from .claude import (
    ClaudeEncoder,
    ClaudeStreamState,
    to_claude_request,
    to_claude_response,
    to_claude_sse,
)
from .openai import (
    OpenAIChatEncoder,
    format_openai_error_sse,
    format_openai_sse,
    format_openai_sse_done,
    is_reasoning_model,
    to_openai_chat_completion,
    to_openai_chunk,
    to_openai_request,
)
from .openai_responses import (
    OpenAIResponsesEncoder,
    ResponsesStreamState,
    to_openai_responses_request,
    to_openai_responses_response,
    to_openai_responses_sse,
)

__all__ = [
    "ClaudeEncoder",
    "ClaudeStreamState",
    "OpenAIChatEncoder",
    "OpenAIResponsesEncoder",
    "ResponsesStreamState",
    "format_openai_error_sse",
    "format_openai_sse",
    "format_openai_sse_done",
    "is_reasoning_model",
    "to_claude_request",
    "to_claude_response",
    "to_claude_sse",
    "to_openai_chat_completion",
    "to_openai_chunk",
    "to_openai_request",
    "to_openai_responses_request",
    "to_openai_responses_response",
    "to_openai_responses_sse",
]
