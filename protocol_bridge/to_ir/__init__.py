"""
Protocol parsers: wire payloads -> IR.
"""

from .claude import ClaudeDecoder, parse_claude_chunk, parse_claude_request, parse_claude_response
from .openai import (
    OpenAIDecoder,
    is_chat_chunk,
    parse_openai_chunk,
    parse_openai_request,
    parse_openai_response,
)

__all__ = [
    "ClaudeDecoder",
    "OpenAIDecoder",
    "is_chat_chunk",
    "parse_claude_chunk",
    "parse_claude_request",
    "parse_claude_response",
    "parse_openai_chunk",
    "parse_openai_request",
    "parse_openai_response",
]
