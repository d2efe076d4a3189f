"""
SSE framing utilities

Helpers for splitting an upstream Server-Sent Events byte stream into frames
and for formatting outbound frames in the two wire styles:

- Anthropic: ``event: <name>\\ndata: <json>\\n\\n``
- OpenAI Chat: ``data: <json>\\n\\n`` terminated by ``data: [DONE]\\n\\n``
"""

import json
from typing import Any, Dict, List, Optional, Tuple, Union

DONE_MARKER = "[DONE]"


def dump_json(data: Any) -> str:
    """Serialize compactly, matching what upstream providers put on the wire."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def format_sse_event(event_type: Optional[str], data: Union[Dict[str, Any], str]) -> str:
    """Format a single SSE frame, with an ``event:`` line when a name is given."""
    payload = data if isinstance(data, str) else dump_json(data)
    if event_type:
        return f"event: {event_type}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


def format_sse_done() -> str:
    return f"data: {DONE_MARKER}\n\n"


def parse_sse_frame(raw: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a raw SSE frame into its event name and data payload.

    Only the first ``data:`` line is used; upstream providers never split a
    JSON payload across several data lines. Comment lines are ignored.
    """
    event_type = None
    data = None
    for line in raw.replace("\r\n", "\n").split("\n"):
        if line.startswith("event:") and event_type is None:
            event_type = line[6:].strip()
        elif line.startswith("data:") and data is None:
            data = line[5:].strip()
    return event_type, data


def extract_sse_data(raw: str) -> Optional[str]:
    """Return the payload of the first ``data:`` line, if any."""
    return parse_sse_frame(raw)[1]


class SSEDecoder:
    """
    Incremental SSE frame splitter.

    Feed raw bytes or text as they arrive; complete frames (terminated by a
    blank line) are returned as text ready for a stream converter. Bytes are
    buffered until a frame is complete, so a multi-byte UTF-8 character split
    across reads survives. CRLF line endings are normalized.
    """

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        if not chunk:
            return []
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        data = (self._buffer + chunk).replace(b"\r\n", b"\n")
        parts = data.split(b"\n\n")
        self._buffer = parts.pop()  # Keep last incomplete frame

        return [self._decode(part) for part in parts if part.strip()]

    def flush(self) -> List[str]:
        """Return any trailing frame that arrived without a terminating blank line."""
        remainder, self._buffer = self._buffer, b""
        if not remainder.strip():
            return []
        return [self._decode(remainder)]

    @staticmethod
    def _decode(frame: bytes) -> str:
        return frame.decode("utf-8", errors="ignore") + "\n\n"


__all__ = [
    "DONE_MARKER",
    "SSEDecoder",
    "dump_json",
    "extract_sse_data",
    "format_sse_done",
    "format_sse_event",
    "parse_sse_frame",
]
