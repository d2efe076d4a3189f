"""
Protocol identifiers
"""

from enum import Enum
from typing import Union

from .exceptions import UnsupportedProtocolError


class Protocol(str, Enum):
    """Supported wire protocols."""
    ANTHROPIC_MESSAGES = "anthropic_messages"
    OPENAI_CHAT = "openai_chat"
    OPENAI_RESPONSES = "openai_responses"

    @classmethod
    def from_string(cls, value: Union["Protocol", str]) -> "Protocol":
        """Convert string to Protocol enum with normalization."""
        if isinstance(value, Protocol):
            return value
        normalized = str(value).lower().strip()
        mapping = {
            "anthropic": cls.ANTHROPIC_MESSAGES,
            "anthropic_messages": cls.ANTHROPIC_MESSAGES,
            "claude": cls.ANTHROPIC_MESSAGES,
            "openai": cls.OPENAI_CHAT,
            "openai_chat": cls.OPENAI_CHAT,
            "chat_completions": cls.OPENAI_CHAT,
            "openai_responses": cls.OPENAI_RESPONSES,
            "responses": cls.OPENAI_RESPONSES,
        }
        if normalized in mapping:
            return mapping[normalized]
        raise UnsupportedProtocolError(str(value))
