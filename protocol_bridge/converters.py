"""
Conversion facade

Composes the protocol parsers and generators into direct Anthropic <-> OpenAI
conversions:

- one-shot request/response conversions, each with a ``safe_*`` twin that
  returns a ``ConversionResult`` instead of raising
- a protocol-keyed ``convert_request`` / ``convert_response`` dispatch
- four stream converters that pump one upstream SSE frame at a time

Example:
    >>> converter = OpenAIToClaudeStreamConverter(model="claude-sonnet-4")
    >>> for frame in SSEDecoder().feed(upstream_bytes):
    ...     out = converter.convert_chunk(frame)
    ...     if out:
    ...         send(out)
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import get_settings
from .exceptions import UnsupportedProtocolError
from .from_ir.claude import ClaudeStreamState, to_claude_request, to_claude_response, to_claude_sse
from .from_ir.openai import (
    format_openai_error_sse,
    format_openai_sse,
    format_openai_sse_done,
    to_openai_chat_completion,
    to_openai_chunk,
    to_openai_request,
)
from .from_ir.openai_responses import (
    ResponsesStreamState,
    to_openai_responses_request,
    to_openai_responses_response,
    to_openai_responses_sse,
)
from .ir import (
    ErrorEvent,
    FinishEvent,
    Message,
    ToolCallDeltaEvent,
    ToolCallEvent,
    UnifiedChatRequest,
    UnifiedEvent,
    Usage,
)
from .schemas import Protocol
from .to_ir.base import RawPayload
from .to_ir.claude import parse_claude_chunk, parse_claude_request, parse_claude_response
from .to_ir.openai import is_chat_chunk, parse_openai_chunk, parse_openai_request, parse_openai_response

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Outcome of a ``safe_*`` conversion."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def _safe(func: Callable[..., Dict[str, Any]], *args: Any) -> ConversionResult:
    try:
        return ConversionResult(success=True, data=func(*args))
    except Exception as e:
        logger.warning("Conversion %s failed: %s", func.__name__, e, exc_info=True)
        return ConversionResult(success=False, error=str(e) or "Unknown conversion error")


# =============================================================================
# One-shot conversions
# =============================================================================


def claude_request_to_openai(request: RawPayload) -> Dict[str, Any]:
    """Anthropic Messages request -> Chat Completions request."""
    return to_openai_request(parse_claude_request(request))


def claude_request_to_openai_responses(request: RawPayload) -> Dict[str, Any]:
    """Anthropic Messages request -> Responses API request."""
    return to_openai_responses_request(parse_claude_request(request))


def openai_request_to_claude(request: RawPayload) -> Dict[str, Any]:
    """Chat Completions or Responses API request -> Anthropic Messages request."""
    return to_claude_request(parse_openai_request(request))


def openai_response_to_claude(response: RawPayload, model: str, message_id: str) -> Dict[str, Any]:
    """Chat Completions response -> Anthropic Messages response."""
    messages, usage = parse_openai_response(response)
    return to_claude_response(messages, usage, model, message_id)


def openai_responses_to_claude_response(
    response: RawPayload, model: str, message_id: str
) -> Dict[str, Any]:
    """Responses API response -> Anthropic Messages response."""
    messages, usage = parse_openai_response(response)
    return to_claude_response(messages, usage, model, message_id)


def claude_response_to_openai(response: RawPayload, model: str, message_id: str) -> Dict[str, Any]:
    """Anthropic Messages response -> chat.completion object."""
    messages, usage = parse_claude_response(response)
    return to_openai_chat_completion(messages, usage, model, message_id)


def safe_claude_request_to_openai(request: RawPayload) -> ConversionResult:
    return _safe(claude_request_to_openai, request)


def safe_claude_request_to_openai_responses(request: RawPayload) -> ConversionResult:
    return _safe(claude_request_to_openai_responses, request)


def safe_openai_request_to_claude(request: RawPayload) -> ConversionResult:
    return _safe(openai_request_to_claude, request)


def safe_openai_response_to_claude(
    response: RawPayload, model: str, message_id: str
) -> ConversionResult:
    return _safe(openai_response_to_claude, response, model, message_id)


def safe_openai_responses_to_claude_response(
    response: RawPayload, model: str, message_id: str
) -> ConversionResult:
    return _safe(openai_responses_to_claude_response, response, model, message_id)


def safe_claude_response_to_openai(
    response: RawPayload, model: str, message_id: str
) -> ConversionResult:
    return _safe(claude_response_to_openai, response, model, message_id)


# =============================================================================
# Protocol-keyed dispatch
# =============================================================================

_REQUEST_PARSERS: Dict[Protocol, Callable[[RawPayload], UnifiedChatRequest]] = {
    Protocol.ANTHROPIC_MESSAGES: parse_claude_request,
    Protocol.OPENAI_CHAT: parse_openai_request,
    Protocol.OPENAI_RESPONSES: parse_openai_request,
}

_REQUEST_GENERATORS: Dict[Protocol, Callable[[UnifiedChatRequest], Dict[str, Any]]] = {
    Protocol.ANTHROPIC_MESSAGES: to_claude_request,
    Protocol.OPENAI_CHAT: to_openai_request,
    Protocol.OPENAI_RESPONSES: to_openai_responses_request,
}

_RESPONSE_PARSERS: Dict[Protocol, Callable[[RawPayload], Tuple[List[Message], Optional[Usage]]]] = {
    Protocol.ANTHROPIC_MESSAGES: parse_claude_response,
    Protocol.OPENAI_CHAT: parse_openai_response,
    Protocol.OPENAI_RESPONSES: parse_openai_response,
}

_RESPONSE_GENERATORS: Dict[Protocol, Callable[..., Dict[str, Any]]] = {
    Protocol.ANTHROPIC_MESSAGES: to_claude_response,
    Protocol.OPENAI_CHAT: to_openai_chat_completion,
    Protocol.OPENAI_RESPONSES: to_openai_responses_response,
}


def _resolve(source: Any, target: Any) -> Tuple[Protocol, Protocol]:
    try:
        return Protocol.from_string(source), Protocol.from_string(target)
    except UnsupportedProtocolError as e:
        raise UnsupportedProtocolError(
            e.protocol, source_protocol=str(source), target_protocol=str(target)
        ) from e


def convert_request(source_protocol: Any, target_protocol: Any, payload: RawPayload) -> Dict[str, Any]:
    """
    Convert a request body between any two supported protocols.

    Raises:
        UnsupportedProtocolError: unknown protocol name
        InvalidPayloadError: payload is not a JSON object
    """
    source, target = _resolve(source_protocol, target_protocol)
    ir_request = _REQUEST_PARSERS[source](payload)
    return _REQUEST_GENERATORS[target](ir_request)


def convert_response(
    source_protocol: Any,
    target_protocol: Any,
    payload: RawPayload,
    *,
    model: str,
    message_id: str,
) -> Dict[str, Any]:
    """Convert a non-streaming response body between any two supported protocols."""
    source, target = _resolve(source_protocol, target_protocol)
    messages, usage = _RESPONSE_PARSERS[source](payload)
    return _RESPONSE_GENERATORS[target](messages, usage, model, message_id)


# =============================================================================
# Stream converters
# =============================================================================


def _now_ms() -> int:
    return int(time.time() * 1000)


class StreamConverter:
    """
    Base class for the stream converters.

    Subclasses bind one parser to one generator. Chunks for one stream must be
    delivered sequentially; a converter holds the generator state for exactly
    one outbound stream.

    Converters reading Chat Completions streams hold back a finish that
    arrived without usage, because ``stream_options.include_usage`` sends the
    usage in a separate trailer after the ``finish_reason`` chunk. The held
    finish is emitted with the trailer's usage, on ``[DONE]``, on any other
    event, or by ``flush()``.
    """

    source_protocol: Protocol
    target_protocol: Protocol
    holds_finish_for_usage = False

    def __init__(self, model: str, message_id: str):
        self.model = model
        self.message_id = message_id
        self._logged_events = 0
        self._pending_finish: Optional[FinishEvent] = None

    def convert_chunk(self, raw_chunk: str) -> Optional[str]:
        """
        Convert one upstream SSE frame.

        Returns the translated frames as one string, or None when the frame
        decodes to no events or produces no output.
        """
        events = self._parse(raw_chunk)
        if not events:
            return None

        self._log_events(events)

        output: List[Optional[str]] = []
        for event in events:
            if self._pending_finish is not None:
                output.extend(self._release_finish(event))
            elif self._should_hold(event, raw_chunk):
                self._pending_finish = event
            else:
                output.append(self._generate(event))
        joined = "".join(text for text in output if text)
        return joined or None

    def flush(self) -> Optional[str]:
        """Emit a finish still waiting for a usage trailer when the upstream ends early."""
        if self._pending_finish is None:
            return None
        pending, self._pending_finish = self._pending_finish, None
        return self._generate(pending)

    def _should_hold(self, event: UnifiedEvent, raw_chunk: str) -> bool:
        return (
            self.holds_finish_for_usage
            and isinstance(event, FinishEvent)
            and event.finish_reason is not None
            and event.usage is None
            and is_chat_chunk(raw_chunk)
        )

    def _release_finish(self, event: UnifiedEvent) -> List[Optional[str]]:
        pending, self._pending_finish = self._pending_finish, None
        if isinstance(event, FinishEvent):
            if event.usage is not None:
                pending.usage = event.usage
            return [self._generate(pending)]
        logger.debug("Emitting held finish before %s event", event.type.value)
        return [self._generate(pending), self._generate(event)]

    def _parse(self, raw_chunk: str) -> List[UnifiedEvent]:
        raise NotImplementedError

    def _generate(self, event: UnifiedEvent) -> Optional[str]:
        raise NotImplementedError

    def _log_events(self, events: List[UnifiedEvent]) -> None:
        settings = get_settings()
        if self._logged_events >= settings.STREAM_LOG_EVENT_LIMIT or not logger.isEnabledFor(
            logging.DEBUG
        ):
            self._logged_events += len(events)
            return

        preview = settings.STREAM_LOG_PREVIEW_CHARS
        for event in events:
            tool_call = event.tool_call if isinstance(event, (ToolCallEvent, ToolCallDeltaEvent)) else None
            logger.debug(
                "[%s->%s] IR event: type=%s, content=%r, tool=%s, args=%r",
                self.source_protocol.value,
                self.target_protocol.value,
                event.type.value,
                (getattr(event, "content", "") or "")[:preview],
                tool_call.name if tool_call and tool_call.name else "none",
                (tool_call.args if tool_call else "")[:preview],
            )
        self._logged_events += len(events)


class ClaudeToOpenAIStreamConverter(StreamConverter):
    """Anthropic Messages SSE -> Chat Completions SSE."""

    source_protocol = Protocol.ANTHROPIC_MESSAGES
    target_protocol = Protocol.OPENAI_CHAT

    def __init__(self, model: str, message_id: Optional[str] = None):
        super().__init__(model, message_id or f"chatcmpl-{_now_ms()}")
        self.chunk_index = 0
        self.finish_sent = False

    def _parse(self, raw_chunk: str) -> List[UnifiedEvent]:
        return parse_claude_chunk(raw_chunk)

    def _generate(self, event: UnifiedEvent) -> Optional[str]:
        if isinstance(event, ErrorEvent):
            return format_openai_error_sse(event)
        if isinstance(event, FinishEvent):
            # message_delta and message_stop both finish; emit one finish chunk
            if self.finish_sent:
                return None
            self.finish_sent = True

        chunk = to_openai_chunk(event, self.model, self.message_id, self.chunk_index)
        if chunk is None:
            return None
        self.chunk_index += 1
        return format_openai_sse(chunk)

    def get_done_marker(self) -> str:
        return format_openai_sse_done()


class OpenAIToClaudeStreamConverter(StreamConverter):
    """Chat Completions / Responses API SSE -> Anthropic Messages SSE."""

    source_protocol = Protocol.OPENAI_CHAT
    target_protocol = Protocol.ANTHROPIC_MESSAGES
    holds_finish_for_usage = True

    def __init__(self, model: str, message_id: Optional[str] = None):
        super().__init__(model, message_id or f"msg_{_now_ms()}")
        self.state: Optional[ClaudeStreamState] = None

    def _parse(self, raw_chunk: str) -> List[UnifiedEvent]:
        return parse_openai_chunk(raw_chunk)

    def _generate(self, event: UnifiedEvent) -> Optional[str]:
        text, self.state = to_claude_sse(event, self.model, self.message_id, self.state)
        return text or None


class _ResponsesStreamConverter(StreamConverter):
    target_protocol = Protocol.OPENAI_RESPONSES

    def __init__(self, model: str, response_id: Optional[str] = None):
        super().__init__(model, response_id or f"resp_{_now_ms()}")
        self.state: Optional[ResponsesStreamState] = None

    @property
    def response_id(self) -> str:
        return self.message_id

    def _generate(self, event: UnifiedEvent) -> Optional[str]:
        frames, self.state = to_openai_responses_sse(event, self.model, self.message_id, self.state)
        return "".join(frames) or None


class ClaudeToOpenAIResponsesStreamConverter(_ResponsesStreamConverter):
    """Anthropic Messages SSE -> Responses API SSE."""

    source_protocol = Protocol.ANTHROPIC_MESSAGES

    def _parse(self, raw_chunk: str) -> List[UnifiedEvent]:
        return parse_claude_chunk(raw_chunk)


class OpenAIToResponsesStreamConverter(_ResponsesStreamConverter):
    """Chat Completions SSE -> Responses API SSE."""

    source_protocol = Protocol.OPENAI_CHAT
    holds_finish_for_usage = True

    def _parse(self, raw_chunk: str) -> List[UnifiedEvent]:
        return parse_openai_chunk(raw_chunk)
