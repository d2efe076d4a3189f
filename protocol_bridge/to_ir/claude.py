"""
Anthropic Messages API Parser

Converts Anthropic Messages requests, responses and SSE chunks into the
Intermediate Representation.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..ir import (
    ErrorEvent,
    FinishEvent,
    FinishReason,
    ImagePart,
    Message,
    ReasoningEvent,
    ReasoningPart,
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
    clean_json_schema,
)
from ..stream import extract_sse_data
from .base import RawPayload, as_dict, as_int, as_list, load_json_payload, stringify

logger = logging.getLogger(__name__)

PROTOCOL = "anthropic_messages"


class ClaudeDecoder:
    """Decodes Anthropic Messages API payloads to IR."""

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def parse_request(self, raw: RawPayload) -> UnifiedChatRequest:
        """Decode an Anthropic Messages request to IR."""
        payload = load_json_payload(raw, PROTOCOL)

        req = UnifiedChatRequest(model=payload.get("model") or "")

        # Generation parameters
        req.max_tokens = payload.get("max_tokens")
        req.temperature = payload.get("temperature")
        req.top_p = payload.get("top_p")
        req.top_k = payload.get("top_k")
        if isinstance(payload.get("stop_sequences"), list):
            req.stop_sequences = list(payload["stop_sequences"])

        # System prompt becomes a leading system message
        system_text = self._decode_system(payload.get("system"))
        if system_text:
            req.messages.append(Message(role=Role.SYSTEM, content=[TextPart(text=system_text)]))

        for msg in as_list(payload.get("messages")):
            if isinstance(msg, dict):
                req.messages.append(self._decode_message(msg))

        for tool in as_list(payload.get("tools")):
            if isinstance(tool, dict):
                req.tools.append(self._decode_tool(tool))

        req.thinking = self._decode_thinking(payload.get("thinking"))

        metadata = payload.get("metadata")
        if isinstance(metadata, dict):
            req.metadata = metadata

        return req

    def _decode_system(self, system: Any) -> str:
        if isinstance(system, str):
            return system
        if isinstance(system, list):
            return "\n".join(
                part["text"]
                for part in system
                if isinstance(part, dict)
                and part.get("type") == "text"
                and isinstance(part.get("text"), str)
            )
        return ""

    def _decode_message(self, msg: Dict[str, Any]) -> Message:
        role = Role.ASSISTANT if msg.get("role") == "assistant" else Role.USER
        message = Message(role=role)

        content = msg.get("content")
        if isinstance(content, str):
            message.content.append(TextPart(text=content))
            return message

        blocks = [b for b in as_list(content) if isinstance(b, dict)]

        # A user turn carrying tool results is a tool turn in the IR
        if role == Role.USER and any(b.get("type") == "tool_result" for b in blocks):
            message.role = Role.TOOL

        for block in blocks:
            self._decode_content_block(block, message)
        return message

    def _decode_content_block(self, block: Dict[str, Any], message: Message) -> None:
        block_type = block.get("type")

        if block_type == "text":
            if block.get("text"):
                message.content.append(TextPart(text=block["text"]))

        elif block_type == "thinking":
            thinking = block.get("thinking")
            if isinstance(thinking, dict):
                thinking = thinking.get("text")
            message.content.append(
                ReasoningPart(
                    reasoning=thinking if isinstance(thinking, str) else "",
                    thought_signature=block.get("signature") or None,
                )
            )

        elif block_type == "image":
            source = as_dict(block.get("source"))
            if source.get("type") == "base64":
                message.content.append(
                    ImagePart(
                        mime_type=source.get("media_type") or "image/png",
                        data=source.get("data"),
                    )
                )

        elif block_type == "tool_use":
            tool_input = block.get("input")
            message.tool_calls.append(
                ToolCall(
                    id=block.get("id") or "",
                    name=block.get("name") or "",
                    args=stringify(tool_input) if tool_input is not None else "{}",
                )
            )

        elif block_type == "tool_result":
            message.content.append(
                ToolResultPart(
                    tool_call_id=block.get("tool_use_id") or "",
                    result=self._decode_tool_result_content(block.get("content")),
                )
            )

        else:
            logger.debug("Ignoring unsupported Anthropic content block type: %s", block_type)

    def _decode_tool_result_content(self, content: Any) -> str:
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "\n".join(
                part["text"]
                for part in content
                if isinstance(part, dict)
                and part.get("type") == "text"
                and isinstance(part.get("text"), str)
            )
        if content:
            return stringify(content)
        return ""

    def _decode_tool(self, tool: Dict[str, Any]) -> ToolDefinition:
        schema = tool.get("input_schema")
        return ToolDefinition(
            name=tool.get("name") or "",
            description=tool.get("description") or "",
            parameters=clean_json_schema(schema) if isinstance(schema, dict) else {},
        )

    def _decode_thinking(self, thinking: Any) -> Optional[ThinkingConfig]:
        if not isinstance(thinking, dict):
            return None
        if thinking.get("type") == "enabled":
            budget = thinking.get("budget_tokens")
            return ThinkingConfig(
                include_thoughts=True,
                budget=budget if isinstance(budget, int) else -1,
            )
        if thinking.get("type") == "disabled":
            return ThinkingConfig(include_thoughts=False, budget=0)
        return None

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def parse_response(self, raw: RawPayload) -> Tuple[List[Message], Optional[Usage]]:
        """Decode a non-streaming Anthropic response into messages and usage."""
        payload = load_json_payload(raw, PROTOCOL)

        usage = None
        if isinstance(payload.get("usage"), dict):
            usage = self._decode_usage(payload["usage"])

        message = Message(role=Role.ASSISTANT)
        for block in as_list(payload.get("content")):
            if isinstance(block, dict):
                self._decode_content_block(block, message)

        if message.content or message.tool_calls:
            return [message], usage
        return [], usage

    def _decode_usage(self, usage: Dict[str, Any]) -> Usage:
        prompt = as_int(usage.get("input_tokens"))
        completion = as_int(usage.get("output_tokens"))
        result = Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )
        if usage.get("cache_read_input_tokens"):
            result.cached_tokens = as_int(usage["cache_read_input_tokens"])
        return result

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def parse_chunk(self, raw_chunk: str) -> List[UnifiedEvent]:
        """
        Decode one Anthropic SSE frame into zero or more IR events.

        Never raises: frames without a data line, malformed JSON and unknown
        event types all yield no events.
        """
        data = extract_sse_data(raw_chunk or "")
        if not data:
            return []

        try:
            parsed = json.loads(data)
        except ValueError:
            logger.debug("Skipping malformed Anthropic SSE data: %.80s", data)
            return []
        if not isinstance(parsed, dict):
            return []

        event_type = parsed.get("type")

        if event_type == "message_start":
            return []
        if event_type == "content_block_start":
            return self._decode_block_start(parsed)
        if event_type == "content_block_delta":
            return self._decode_block_delta(parsed)
        if event_type == "content_block_stop":
            return [
                ToolCallDeltaEvent(
                    tool_call=ToolCall(is_complete=True),
                    index=as_int(parsed.get("index")),
                )
            ]
        if event_type == "message_delta":
            return self._decode_message_delta(parsed)
        if event_type == "message_stop":
            return [FinishEvent(finish_reason=FinishReason.STOP)]
        if event_type == "error":
            error = as_dict(parsed.get("error"))
            return [
                ErrorEvent(
                    message=error.get("message") or "Unknown Claude API error",
                    error_type=error.get("type") or "api_error",
                )
            ]

        if event_type != "ping":
            logger.debug("Ignoring unknown Anthropic SSE event type: %s", event_type)
        return []

    def _decode_block_start(self, parsed: Dict[str, Any]) -> List[UnifiedEvent]:
        block = as_dict(parsed.get("content_block"))
        if block.get("type") != "tool_use":
            # Text and thinking content arrives in content_block_delta
            return []
        return [
            ToolCallEvent(
                tool_call=ToolCall(
                    id=block.get("id") or "",
                    name=block.get("name") or "",
                    args="",
                ),
                index=as_int(parsed.get("index")),
            )
        ]

    def _decode_block_delta(self, parsed: Dict[str, Any]) -> List[UnifiedEvent]:
        delta = as_dict(parsed.get("delta"))
        delta_type = delta.get("type")

        if delta_type == "text_delta" and delta.get("text"):
            return [TokenEvent(content=delta["text"])]
        if delta_type == "thinking_delta" and delta.get("thinking"):
            return [ReasoningEvent(reasoning=delta["thinking"])]
        if delta_type == "signature_delta" and delta.get("signature"):
            return [ReasoningEvent(thought_signature=delta["signature"])]
        if delta_type == "input_json_delta" and isinstance(delta.get("partial_json"), str):
            return [
                ToolCallDeltaEvent(
                    tool_call=ToolCall(args=delta["partial_json"]),
                    index=as_int(parsed.get("index")),
                )
            ]
        return []

    def _decode_message_delta(self, parsed: Dict[str, Any]) -> List[UnifiedEvent]:
        delta = as_dict(parsed.get("delta"))
        stop_reason = delta.get("stop_reason")
        if not stop_reason:
            return []

        event = FinishEvent(finish_reason=self._map_stop_reason(stop_reason))
        if isinstance(parsed.get("usage"), dict):
            event.usage = self._decode_usage(parsed["usage"])
        return [event]

    def _map_stop_reason(self, reason: str) -> FinishReason:
        if reason == "tool_use":
            return FinishReason.TOOL_CALLS
        if reason == "max_tokens":
            return FinishReason.LENGTH
        return FinishReason.STOP


_decoder = ClaudeDecoder()


def parse_claude_request(raw: RawPayload) -> UnifiedChatRequest:
    return _decoder.parse_request(raw)


def parse_claude_response(raw: RawPayload) -> Tuple[List[Message], Optional[Usage]]:
    return _decoder.parse_response(raw)


def parse_claude_chunk(raw_chunk: str) -> List[UnifiedEvent]:
    return _decoder.parse_chunk(raw_chunk)
