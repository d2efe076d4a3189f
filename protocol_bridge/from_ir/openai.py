"""
OpenAI Chat Completions Generator

Converts IR requests, responses and stream events into OpenAI Chat
Completions wire format. Chunk generation is stateless apart from the
caller-supplied chunk index.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ..config import get_settings
from ..ir import (
    ErrorEvent,
    FinishEvent,
    FinishReason,
    ImageEvent,
    ImagePart,
    Message,
    ReasoningEvent,
    ReasoningSummaryEvent,
    ResponseMeta,
    Role,
    TextPart,
    TokenEvent,
    ToolCall,
    ToolCallDeltaEvent,
    ToolCallEvent,
    ToolDefinition,
    ToolResultPart,
    UnifiedChatRequest,
    UnifiedEvent,
    Usage,
    combine_reasoning_parts,
    combine_text_parts,
    get_first_reasoning_signature,
    map_budget_to_effort,
    map_finish_reason_to_openai,
)
from ..stream import dump_json, format_sse_done

logger = logging.getLogger(__name__)

_REASONING_MODEL_PREFIXES = ("o1", "o3")


def is_reasoning_model(model: str) -> bool:
    """OpenAI o-series models take max_completion_tokens and reasoning_effort."""
    return (model or "").lower().startswith(_REASONING_MODEL_PREFIXES)


def image_to_url(image: ImagePart) -> str:
    if image.url:
        return image.url
    return f"data:{image.mime_type};base64,{image.data or ''}"


def build_usage(usage: Usage) -> Dict[str, Any]:
    """Render IR usage with the prompt/completion detail breakdowns."""
    result: Dict[str, Any] = {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }

    prompt_details = {}
    if usage.cached_tokens:
        prompt_details["cached_tokens"] = usage.cached_tokens
    if usage.audio_tokens:
        prompt_details["audio_tokens"] = usage.audio_tokens
    if prompt_details:
        result["prompt_tokens_details"] = prompt_details

    completion_details = {}
    if usage.thoughts_tokens:
        completion_details["reasoning_tokens"] = usage.thoughts_tokens
    if usage.accepted_prediction_tokens:
        completion_details["accepted_prediction_tokens"] = usage.accepted_prediction_tokens
    if usage.rejected_prediction_tokens:
        completion_details["rejected_prediction_tokens"] = usage.rejected_prediction_tokens
    if completion_details:
        result["completion_tokens_details"] = completion_details

    return result


class OpenAIChatEncoder:
    """Encodes IR to OpenAI Chat Completions format."""

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def to_request(self, req: UnifiedChatRequest) -> Dict[str, Any]:
        """Encode an IR request as a Chat Completions request body."""
        reasoning_model = is_reasoning_model(req.model)
        result: Dict[str, Any] = {"model": req.model, "messages": []}

        # Generation parameters
        if req.temperature is not None:
            result["temperature"] = req.temperature
        if req.top_p is not None:
            result["top_p"] = req.top_p
        if req.max_tokens is not None:
            key = "max_completion_tokens" if reasoning_model else "max_tokens"
            result[key] = req.max_tokens
        if req.stop_sequences:
            result["stop"] = list(req.stop_sequences)

        # Reasoning effort is only understood by reasoning models
        if req.thinking and req.thinking.include_thoughts and reasoning_model:
            budget = req.thinking.budget if req.thinking.budget is not None else -1
            result["reasoning_effort"] = map_budget_to_effort(
                budget, get_settings().DEFAULT_REASONING_EFFORT
            )

        for msg in req.messages:
            result["messages"].extend(self._encode_message(msg))

        if req.tools:
            result["tools"] = [self._encode_tool(t) for t in req.tools]
        if req.tool_choice:
            result["tool_choice"] = req.tool_choice
        if req.parallel_tool_calls is not None:
            result["parallel_tool_calls"] = req.parallel_tool_calls
        if req.response_modality:
            result["modalities"] = [m.lower() for m in req.response_modality]
        if req.response_schema:
            result["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": req.response_schema},
            }

        return result

    def _encode_message(self, msg: Message) -> List[Dict[str, Any]]:
        if msg.role == Role.SYSTEM:
            text = combine_text_parts(msg)
            return [{"role": "system", "content": text}] if text else []
        if msg.role == Role.USER:
            user = self._encode_user_message(msg)
            return [user] if user else []
        if msg.role == Role.ASSISTANT:
            return [self._encode_assistant_message(msg)]
        if msg.role == Role.TOOL:
            return [
                {"role": "tool", "tool_call_id": p.tool_call_id, "content": p.result}
                for p in msg.content
                if isinstance(p, ToolResultPart)
            ]
        return []

    def _encode_user_message(self, msg: Message) -> Optional[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []
        for part in msg.content:
            if isinstance(part, TextPart) and part.text:
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                parts.append({"type": "image_url", "image_url": {"url": image_to_url(part)}})

        if not parts:
            return None
        # A lone text part is sent as a plain string
        if len(parts) == 1 and parts[0]["type"] == "text":
            return {"role": "user", "content": parts[0]["text"]}
        return {"role": "user", "content": parts}

    def _encode_assistant_message(self, msg: Message) -> Dict[str, Any]:
        result: Dict[str, Any] = {"role": "assistant"}

        text = combine_text_parts(msg)
        if text:
            result["content"] = text
        elif not msg.tool_calls:
            result["content"] = ""

        reasoning = combine_reasoning_parts(msg)
        if reasoning:
            result["reasoning_content"] = reasoning
            signature = get_first_reasoning_signature(msg)
            if signature:
                result["reasoning_signature"] = signature

        if msg.tool_calls:
            result["tool_calls"] = [self._encode_tool_call(tc) for tc in msg.tool_calls]
        return result

    def _encode_tool_call(self, tc: ToolCall) -> Dict[str, Any]:
        return {
            "id": tc.id,
            "type": "function",
            "function": {"name": tc.name, "arguments": tc.args or "{}"},
        }

    def _encode_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters or {"type": "object", "properties": {}},
            },
        }

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def to_chat_completion(
        self,
        messages: List[Message],
        usage: Optional[Usage],
        model: str,
        message_id: str,
        meta: Optional[ResponseMeta] = None,
    ) -> Dict[str, Any]:
        """Encode the last assistant IR message as a chat.completion object."""
        response: Dict[str, Any] = {
            "id": (meta and meta.response_id) or message_id,
            "object": "chat.completion",
            "created": (meta and meta.create_time) or int(time.time()),
            "model": model,
            "choices": [],
        }

        last_assistant = next((m for m in reversed(messages) if m.role == Role.ASSISTANT), None)
        if last_assistant is not None:
            message: Dict[str, Any] = {"role": "assistant", "content": None}
            text = combine_text_parts(last_assistant)
            if text:
                message["content"] = text
            reasoning = combine_reasoning_parts(last_assistant)
            if reasoning:
                message["reasoning_content"] = reasoning
            if last_assistant.tool_calls:
                message["tool_calls"] = [
                    self._encode_tool_call(tc) for tc in last_assistant.tool_calls
                ]

            choice: Dict[str, Any] = {
                "index": 0,
                "finish_reason": "tool_calls" if last_assistant.tool_calls else "stop",
                "message": message,
            }
            if meta and meta.native_finish_reason:
                choice["native_finish_reason"] = meta.native_finish_reason
            response["choices"] = [choice]

        if usage is not None:
            response["usage"] = build_usage(usage)
        return response

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def to_chunk(
        self,
        event: UnifiedEvent,
        model: str,
        message_id: str,
        chunk_index: int = 0,
        meta: Optional[ResponseMeta] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Encode one IR event as a chat.completion.chunk object.

        Returns None when the event has no Chat Completions counterpart: errors
        (see ``format_error_sse``), empty deltas and bare tool-call completion
        markers.
        """
        choice: Dict[str, Any] = {"index": 0, "delta": {}}

        if isinstance(event, TokenEvent):
            if not event.content and not event.refusal:
                return None
            delta: Dict[str, Any] = {"role": "assistant"}
            if event.content:
                delta["content"] = event.content
            if event.refusal:
                delta["refusal"] = event.refusal
            choice["delta"] = delta

        elif isinstance(event, (ReasoningEvent, ReasoningSummaryEvent)):
            text = event.reasoning if isinstance(event, ReasoningEvent) else event.summary
            signature = event.thought_signature if isinstance(event, ReasoningEvent) else None
            if not text and not signature:
                return None
            delta = {}
            if text:
                delta["reasoning_content"] = text
            if signature:
                delta["reasoning_signature"] = signature
            choice["delta"] = delta

        elif isinstance(event, ToolCallEvent):
            tc = event.tool_call
            tool_delta: Dict[str, Any] = {"index": event.index}
            if tc.id:
                tool_delta["id"] = tc.id
                tool_delta["type"] = "function"
            function: Dict[str, Any] = {"arguments": tc.args or ""}
            if tc.name:
                function["name"] = tc.name
            tool_delta["function"] = function
            choice["delta"] = {"tool_calls": [tool_delta]}

        elif isinstance(event, ToolCallDeltaEvent):
            tc = event.tool_call
            if not tc.args and not tc.id and not tc.name:
                # Completion marker only; Chat Completions has no block close
                return None
            tool_delta = {"index": event.index}
            if tc.id:
                tool_delta["id"] = tc.id
                tool_delta["type"] = "function"
            function = {"arguments": tc.args or ""}
            if tc.name:
                function["name"] = tc.name
            tool_delta["function"] = function
            choice["delta"] = {"tool_calls": [tool_delta]}

        elif isinstance(event, ImageEvent):
            choice["delta"] = {
                "role": "assistant",
                "images": [
                    {
                        "index": 0,
                        "type": "image_url",
                        "image_url": {"url": image_to_url(event.image)},
                    }
                ],
            }

        elif isinstance(event, FinishEvent):
            choice["finish_reason"] = map_finish_reason_to_openai(
                event.finish_reason or FinishReason.STOP
            )
            if meta and meta.native_finish_reason:
                choice["native_finish_reason"] = meta.native_finish_reason
            if event.content_filter:
                choice["content_filter_results"] = event.content_filter

        else:
            # ErrorEvent and anything unrecognized
            return None

        if event.logprobs:
            choice["logprobs"] = event.logprobs

        # The first chunk of a stream announces the assistant role
        if chunk_index == 0 and "role" not in choice["delta"] and "finish_reason" not in choice:
            choice["delta"] = {"role": "assistant", **choice["delta"]}

        chunk: Dict[str, Any] = {
            "id": (meta and meta.response_id) or message_id,
            "object": "chat.completion.chunk",
            "created": (meta and meta.create_time) or int(time.time()),
            "model": model,
            "choices": [choice],
        }
        if event.system_fingerprint:
            chunk["system_fingerprint"] = event.system_fingerprint
        if isinstance(event, FinishEvent) and event.usage is not None:
            chunk["usage"] = build_usage(event.usage)
        return chunk


def format_openai_sse(chunk: Dict[str, Any]) -> str:
    return f"data: {dump_json(chunk)}\n\n"


def format_openai_sse_done() -> str:
    return format_sse_done()


def format_openai_error_sse(event: ErrorEvent) -> str:
    """Render an upstream error as an OpenAI-style streamed error payload."""
    return format_openai_sse(
        {
            "error": {
                "message": event.message or "Unknown error",
                "type": event.error_type or "api_error",
                "param": None,
                "code": None,
            }
        }
    )


_encoder = OpenAIChatEncoder()


def to_openai_request(req: UnifiedChatRequest) -> Dict[str, Any]:
    return _encoder.to_request(req)


def to_openai_chat_completion(
    messages: List[Message],
    usage: Optional[Usage],
    model: str,
    message_id: str,
    meta: Optional[ResponseMeta] = None,
) -> Dict[str, Any]:
    return _encoder.to_chat_completion(messages, usage, model, message_id, meta)


def to_openai_chunk(
    event: UnifiedEvent,
    model: str,
    message_id: str,
    chunk_index: int = 0,
    meta: Optional[ResponseMeta] = None,
) -> Optional[Dict[str, Any]]:
    return _encoder.to_chunk(event, model, message_id, chunk_index, meta)
