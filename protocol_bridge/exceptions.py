"""
Conversion Exceptions

Only the one-shot conversion paths raise. Streaming parsers swallow malformed
frames and return no events; upstream error frames travel through the IR as
ErrorEvent instead of being raised.
"""

from typing import Any, Dict, Optional


class ConversionError(Exception):
    """Base exception for conversion errors."""

    def __init__(
        self,
        message: str,
        source_protocol: Optional[str] = None,
        target_protocol: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.source_protocol = source_protocol
        self.target_protocol = target_protocol
        self.field = field
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": "conversion_error",
            "message": self.message,
            "source_protocol": self.source_protocol,
            "target_protocol": self.target_protocol,
            "field": self.field,
            "details": self.details,
        }


class InvalidPayloadError(ConversionError):
    """
    Raised when a request or response body cannot be decoded.

    Examples:
    - Body is not valid JSON
    - Body decodes to a JSON array or scalar instead of an object
    """

    def __init__(
        self,
        message: str,
        source_protocol: Optional[str] = None,
        preview: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            source_protocol=source_protocol,
            details={"preview": preview} if preview else {},
        )
        self.preview = preview

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"] = "invalid_payload"
        return result


class UnsupportedProtocolError(ConversionError):
    """Raised when a protocol name or direction has no registered converter."""

    def __init__(
        self,
        protocol: str,
        source_protocol: Optional[str] = None,
        target_protocol: Optional[str] = None,
    ):
        super().__init__(
            message=f"Unsupported protocol: {protocol}",
            source_protocol=source_protocol,
            target_protocol=target_protocol,
            field="protocol",
        )
        self.protocol = protocol

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"] = "unsupported_protocol"
        result["protocol"] = self.protocol
        return result


class StreamStateError(ConversionError):
    """Raised when a serialized stream state cannot be restored."""

    def __init__(
        self,
        message: str,
        state_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details or {})
        self.state_type = state_type

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"] = "stream_state_error"
        result["state_type"] = self.state_type
        return result
