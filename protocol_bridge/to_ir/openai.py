"""
OpenAI Chat Completions / Responses API Parser

Converts OpenAI requests, responses and SSE chunks into the Intermediate
Representation. Both the Chat Completions shape (``messages``/``choices``)
and the Responses API shape (``input``/``output`` items and named stream
events) are accepted.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..ir import (
    ContentPart,
    ErrorEvent,
    FinishEvent,
    FinishReason,
    ImagePart,
    Message,
    ReasoningEvent,
    ReasoningPart,
    ReasoningSummaryEvent,
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
    map_effort_to_budget,
    map_openai_finish_reason,
    map_standard_role,
)
from ..stream import DONE_MARKER, parse_sse_frame
from .base import RawPayload, as_dict, as_int, as_list, load_json_payload, stringify

logger = logging.getLogger(__name__)

PROTOCOL = "openai"


class OpenAIDecoder:
    """Decodes OpenAI Chat Completions and Responses API payloads to IR."""

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def parse_request(self, raw: RawPayload) -> UnifiedChatRequest:
        """Decode a Chat Completions or Responses API request to IR."""
        payload = load_json_payload(raw, PROTOCOL)

        req = UnifiedChatRequest(model=payload.get("model") or "")

        # Generation parameters
        req.temperature = payload.get("temperature")
        req.top_p = payload.get("top_p")
        req.top_k = payload.get("top_k")
        if payload.get("max_tokens") is not None:
            req.max_tokens = payload["max_tokens"]
        elif payload.get("max_completion_tokens") is not None:
            req.max_tokens = payload["max_completion_tokens"]
        elif payload.get("max_output_tokens") is not None:
            req.max_tokens = payload["max_output_tokens"]

        stop = payload.get("stop")
        if isinstance(stop, list):
            req.stop_sequences = [s for s in stop if isinstance(s, str)]
        elif isinstance(stop, str) and stop:
            req.stop_sequences = [stop]

        # Responses API instructions act as a system prompt
        instructions = payload.get("instructions")
        if isinstance(instructions, str) and instructions:
            req.instructions = instructions
            req.messages.append(Message(role=Role.SYSTEM, content=[TextPart(text=instructions)]))

        if isinstance(payload.get("messages"), list):
            for msg in payload["messages"]:
                if isinstance(msg, dict):
                    req.messages.append(self._decode_message(msg))
        elif "input" in payload:
            req.messages.extend(self._decode_responses_input(payload["input"]))

        for tool in as_list(payload.get("tools")):
            if isinstance(tool, dict):
                definition = self._decode_tool(tool)
                if definition is not None:
                    req.tools.append(definition)

        tool_choice = payload.get("tool_choice")
        if isinstance(tool_choice, dict):
            req.tool_choice = "required"
        elif isinstance(tool_choice, str):
            req.tool_choice = tool_choice

        if isinstance(payload.get("parallel_tool_calls"), bool):
            req.parallel_tool_calls = payload["parallel_tool_calls"]

        if isinstance(payload.get("modalities"), list):
            req.response_modality = [
                str(m).upper() for m in payload["modalities"] if isinstance(m, str)
            ]

        req.thinking = self._decode_thinking(payload)

        response_format = as_dict(payload.get("response_format"))
        if response_format.get("type") == "json_schema":
            schema = as_dict(response_format.get("json_schema")).get("schema")
            if isinstance(schema, dict):
                req.response_schema = schema

        metadata = payload.get("metadata")
        if isinstance(metadata, dict):
            req.metadata = metadata

        return req

    def _decode_message(self, msg: Dict[str, Any]) -> Message:
        role_str = msg.get("role") or "user"
        message = Message(role=map_standard_role(role_str))

        if role_str == "assistant":
            reasoning, signature = self._decode_reasoning(msg)
            if reasoning:
                message.content.append(
                    ReasoningPart(reasoning=reasoning, thought_signature=signature)
                )

        content = msg.get("content")
        if isinstance(content, str) and role_str != "tool":
            has_tool_calls = bool(as_list(msg.get("tool_calls")))
            # Assistant turns that only call tools often carry content: ""
            if content or role_str != "assistant" or not has_tool_calls:
                message.content.append(TextPart(text=content))
        elif isinstance(content, list) and role_str != "tool":
            for item in content:
                if isinstance(item, dict):
                    part = self._decode_content_part(item, message)
                    if part is not None:
                        message.content.append(part)

        if role_str == "assistant" and isinstance(msg.get("tool_calls"), list):
            message.tool_calls.extend(self._decode_tool_calls(msg["tool_calls"]))

        if role_str == "tool":
            message.content.append(
                ToolResultPart(
                    tool_call_id=msg.get("tool_call_id") or msg.get("tool_use_id") or "",
                    result=self._extract_content_string(content),
                    tool_name=msg.get("name") or None,
                )
            )

        return message

    def _decode_content_part(
        self, item: Dict[str, Any], message: Message
    ) -> Optional[ContentPart]:
        item_type = item.get("type")

        if item_type in ("text", "input_text", "output_text"):
            text = item.get("text")
            if isinstance(text, str) and text.strip():
                return TextPart(text=text)
            return None

        if item_type == "image_url":
            image_url = item.get("image_url")
            url = image_url.get("url") if isinstance(image_url, dict) else image_url
            if isinstance(url, str) and url:
                return self._parse_data_url(url)
            return None

        if item_type == "input_image":
            url = item.get("image_url")
            if isinstance(url, str) and url:
                return self._parse_data_url(url)
            return None

        if item_type == "image":
            source = as_dict(item.get("source"))
            if source.get("data"):
                return ImagePart(
                    mime_type=source.get("media_type") or "image/png",
                    data=source["data"],
                )
            return None

        if item_type == "tool_use":
            # Anthropic-style block embedded in an OpenAI message
            tool_input = item.get("input")
            message.tool_calls.append(
                ToolCall(
                    id=item.get("id") or "",
                    name=item.get("name") or "",
                    args=stringify(tool_input) if tool_input else "{}",
                )
            )
            return None

        if item_type == "tool_result":
            message.role = Role.TOOL
            return ToolResultPart(
                tool_call_id=item.get("tool_use_id") or "",
                result=self._extract_content_string(item.get("content")),
            )

        logger.debug("Ignoring unsupported OpenAI content part type: %s", item_type)
        return None

    def _decode_responses_input(self, items: Any) -> List[Message]:
        """Decode a Responses API ``input`` (string or item list) into messages."""
        if isinstance(items, str):
            return [Message(role=Role.USER, content=[TextPart(text=items)])]

        messages: List[Message] = []
        for item in as_list(items):
            if not isinstance(item, dict):
                continue
            item_type = item.get("type") or ("message" if "role" in item else None)

            if item_type == "message":
                messages.append(self._decode_message(item))

            elif item_type == "function_call":
                call = ToolCall(
                    id=item.get("call_id") or "",
                    name=item.get("name") or "",
                    args=item.get("arguments") or "{}",
                    item_id=item.get("id") or None,
                )
                # Consecutive calls belong to one assistant turn
                if (
                    messages
                    and messages[-1].role == Role.ASSISTANT
                    and not any(isinstance(p, TextPart) for p in messages[-1].content)
                    and messages[-1].tool_calls
                ):
                    messages[-1].tool_calls.append(call)
                else:
                    messages.append(Message(role=Role.ASSISTANT, tool_calls=[call]))

            elif item_type == "function_call_output":
                messages.append(
                    Message(
                        role=Role.TOOL,
                        content=[
                            ToolResultPart(
                                tool_call_id=item.get("call_id") or "",
                                result=self._extract_content_string(item.get("output")),
                            )
                        ],
                    )
                )

            elif item_type == "reasoning":
                summary = "".join(
                    s.get("text") or ""
                    for s in as_list(item.get("summary"))
                    if isinstance(s, dict)
                )
                if summary:
                    messages.append(
                        Message(role=Role.ASSISTANT, content=[ReasoningPart(reasoning=summary)])
                    )

            else:
                logger.debug("Ignoring unsupported Responses input item type: %s", item_type)

        return messages

    def _decode_tool(self, tool: Dict[str, Any]) -> Optional[ToolDefinition]:
        tool_type = tool.get("type")
        params: Dict[str, Any] = {}
        is_custom = False
        tool_format = None

        if tool_type == "function":
            fn = tool.get("function")
            source = fn if isinstance(fn, dict) else tool  # nested or flat
            name = source.get("name") or ""
            description = source.get("description") or ""
            if isinstance(source.get("parameters"), dict):
                params = clean_json_schema(source["parameters"])
        elif tool_type == "custom":
            name = tool.get("name") or ""
            description = tool.get("description") or ""
            is_custom = True
            tool_format = tool.get("format") if isinstance(tool.get("format"), dict) else None
        elif tool.get("name"):
            name = tool["name"]
            description = tool.get("description") or ""
            schema = tool.get("parameters") or tool.get("input_schema")
            if isinstance(schema, dict):
                params = clean_json_schema(schema)
        else:
            return None

        if not name:
            return None
        return ToolDefinition(
            name=name,
            description=description,
            parameters=params,
            format=tool_format,
            is_custom=is_custom,
        )

    def _decode_thinking(self, payload: Dict[str, Any]) -> Optional[ThinkingConfig]:
        """Resolve thinking config; later shapes override earlier ones."""
        thinking: Optional[ThinkingConfig] = None

        effort = payload.get("reasoning_effort")
        if isinstance(effort, str) and effort:
            mapped = map_effort_to_budget(effort)
            thinking = ThinkingConfig(
                effort=effort,
                budget=mapped.budget,
                include_thoughts=mapped.include_thoughts,
            )

        reasoning = payload.get("reasoning")
        if isinstance(reasoning, dict):
            if thinking is None:
                thinking = ThinkingConfig()
            if isinstance(reasoning.get("effort"), str) and reasoning["effort"]:
                mapped = map_effort_to_budget(reasoning["effort"])
                thinking.effort = reasoning["effort"]
                thinking.budget = mapped.budget
                thinking.include_thoughts = mapped.include_thoughts
            if reasoning.get("summary"):
                thinking.summary = reasoning["summary"]

        claude_thinking = payload.get("thinking")
        if isinstance(claude_thinking, dict):
            if claude_thinking.get("type") == "enabled":
                if thinking is None:
                    thinking = ThinkingConfig()
                budget = claude_thinking.get("budget_tokens")
                thinking.include_thoughts = True
                thinking.budget = budget if isinstance(budget, int) else -1
            elif claude_thinking.get("type") == "disabled":
                thinking = ThinkingConfig(include_thoughts=False, budget=0)

        return thinking

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def parse_response(self, raw: RawPayload) -> Tuple[List[Message], Optional[Usage]]:
        """Decode a non-streaming Chat Completions or Responses API response."""
        payload = load_json_payload(raw, PROTOCOL)

        # Some gateways wrap the body in {"data": {...}}
        root = payload["data"] if isinstance(payload.get("data"), dict) else payload

        usage = self._decode_usage(root.get("usage"))

        if isinstance(root.get("output"), list):
            return self._decode_output_items(root["output"]), usage

        choices = as_list(root.get("choices"))
        if not choices or not isinstance(choices[0], dict):
            return [], usage
        message_data = choices[0].get("message")
        if not isinstance(message_data, dict):
            return [], usage

        message = Message(role=Role.ASSISTANT)
        reasoning, signature = self._decode_reasoning(message_data)
        if reasoning:
            message.content.append(ReasoningPart(reasoning=reasoning, thought_signature=signature))
        if isinstance(message_data.get("content"), str) and message_data["content"]:
            message.content.append(TextPart(text=message_data["content"]))
        if isinstance(message_data.get("tool_calls"), list):
            message.tool_calls.extend(self._decode_tool_calls(message_data["tool_calls"]))

        if not message.content and not message.tool_calls:
            return [], usage
        return [message], usage

    def _decode_output_items(self, output: List[Any]) -> List[Message]:
        """Each Responses API output item becomes one assistant message, in order."""
        messages: List[Message] = []

        for item in output:
            if not isinstance(item, dict):
                continue
            item_type = item.get("type")

            if item_type == "message":
                texts = [
                    TextPart(text=c["text"])
                    for c in as_list(item.get("content"))
                    if isinstance(c, dict) and c.get("type") == "output_text" and c.get("text")
                ]
                if texts:
                    messages.append(Message(role=Role.ASSISTANT, content=list(texts)))

            elif item_type == "reasoning":
                parts = [
                    ReasoningPart(reasoning=s["text"])
                    for s in as_list(item.get("summary"))
                    if isinstance(s, dict) and s.get("type") == "summary_text" and s.get("text")
                ]
                if parts:
                    messages.append(Message(role=Role.ASSISTANT, content=list(parts)))

            elif item_type in ("function_call", "custom_tool_call"):
                is_custom = item_type == "custom_tool_call"
                args = item.get("input") if is_custom else item.get("arguments")
                messages.append(
                    Message(
                        role=Role.ASSISTANT,
                        tool_calls=[
                            ToolCall(
                                id=item.get("call_id") or "",
                                name=item.get("name") or "",
                                args=args or "{}",
                                item_id=item.get("id") or None,
                                is_custom=is_custom,
                            )
                        ],
                    )
                )

        return messages

    def _decode_usage(self, usage: Any) -> Optional[Usage]:
        """Decode Chat (prompt/completion) or Responses (input/output) usage."""
        if not isinstance(usage, dict):
            return None

        prompt = as_int(usage.get("prompt_tokens", usage.get("input_tokens")))
        completion = as_int(usage.get("completion_tokens", usage.get("output_tokens")))
        result = Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=as_int(usage.get("total_tokens")),
        )

        prompt_details = as_dict(
            usage.get("prompt_tokens_details") or usage.get("input_tokens_details")
        )
        if prompt_details.get("cached_tokens"):
            result.cached_tokens = as_int(prompt_details["cached_tokens"])
        if prompt_details.get("audio_tokens"):
            result.audio_tokens = as_int(prompt_details["audio_tokens"])

        completion_details = as_dict(
            usage.get("completion_tokens_details") or usage.get("output_tokens_details")
        )
        if completion_details.get("reasoning_tokens"):
            result.thoughts_tokens = as_int(completion_details["reasoning_tokens"])
        if completion_details.get("accepted_prediction_tokens"):
            result.accepted_prediction_tokens = as_int(
                completion_details["accepted_prediction_tokens"]
            )
        if completion_details.get("rejected_prediction_tokens"):
            result.rejected_prediction_tokens = as_int(
                completion_details["rejected_prediction_tokens"]
            )

        return result

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def parse_chunk(self, raw_chunk: str) -> List[UnifiedEvent]:
        """
        Decode one OpenAI SSE frame into zero or more IR events.

        Accepts a full ``event:``/``data:`` frame or a bare JSON payload.
        Never raises.
        """
        trimmed = (raw_chunk or "").strip()
        if not trimmed:
            return []

        event_type, data = parse_sse_frame(trimmed)
        if data is None:
            data = trimmed
        if data == DONE_MARKER:
            return [FinishEvent(finish_reason=FinishReason.STOP)]
        if not data:
            return []

        try:
            parsed = json.loads(data)
        except ValueError:
            logger.debug("Skipping malformed OpenAI SSE data: %.80s", data)
            return []
        if not isinstance(parsed, dict):
            return []

        if not event_type:
            event_type = parsed.get("type") or ""

        if event_type.startswith("response.") or event_type == "error":
            return self._decode_responses_event(event_type, parsed)
        return self._decode_chat_chunk(parsed)

    def _decode_chat_chunk(self, parsed: Dict[str, Any]) -> List[UnifiedEvent]:
        events: List[UnifiedEvent] = []
        fingerprint = parsed.get("system_fingerprint")

        if isinstance(parsed.get("error"), dict):
            error = parsed["error"]
            return [
                ErrorEvent(
                    message=error.get("message") or "Unknown OpenAI API error",
                    error_type=error.get("type") or "api_error",
                )
            ]

        choices = as_list(parsed.get("choices"))
        if not choices or not isinstance(choices[0], dict):
            # Usage-only trailer sent with stream_options.include_usage
            usage = self._decode_usage(parsed.get("usage"))
            if usage is not None:
                events.append(
                    FinishEvent(finish_reason=None, usage=usage, system_fingerprint=fingerprint)
                )
            return events

        choice = choices[0]
        delta = as_dict(choice.get("delta"))

        if isinstance(delta.get("content"), str) and delta["content"]:
            events.append(TokenEvent(content=delta["content"]))

        if isinstance(delta.get("refusal"), str) and delta["refusal"]:
            events.append(TokenEvent(refusal=delta["refusal"]))

        reasoning, signature = self._decode_reasoning(delta)
        if reasoning or signature:
            events.append(ReasoningEvent(reasoning=reasoning, thought_signature=signature))

        for tc in as_list(delta.get("tool_calls")):
            if not isinstance(tc, dict):
                continue
            func = as_dict(tc.get("function"))
            events.append(
                ToolCallEvent(
                    tool_call=ToolCall(
                        id=tc.get("id") or "",
                        name=func.get("name") or "",
                        args=func.get("arguments") or "",
                    ),
                    index=as_int(tc.get("index")),
                )
            )

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            events.append(
                FinishEvent(
                    finish_reason=map_openai_finish_reason(finish_reason),
                    usage=self._decode_usage(parsed.get("usage")),
                    content_filter=choice.get("content_filter_results"),
                    system_fingerprint=fingerprint,
                    logprobs=choice.get("logprobs"),
                )
            )
        elif events:
            events[0].system_fingerprint = fingerprint
            if choice.get("logprobs"):
                events[0].logprobs = choice["logprobs"]

        return events

    def _decode_responses_event(
        self, event_type: str, parsed: Dict[str, Any]
    ) -> List[UnifiedEvent]:
        output_index = as_int(parsed.get("output_index"))

        if event_type == "response.output_item.added":
            item = as_dict(parsed.get("item"))
            if item.get("type") in ("function_call", "custom_tool_call"):
                return [
                    ToolCallEvent(
                        tool_call=ToolCall(
                            id=item.get("call_id") or "",
                            item_id=item.get("id") or "",
                            name=item.get("name") or "",
                            args="",
                            is_custom=item.get("type") == "custom_tool_call",
                        ),
                        index=output_index,
                    )
                ]
            return []

        if event_type == "response.output_text.delta":
            delta = parsed.get("delta") or parsed.get("text") or ""
            return [TokenEvent(content=delta)] if delta else []

        if event_type == "response.reasoning_summary_text.delta":
            delta = parsed.get("delta") or parsed.get("text") or ""
            return [ReasoningSummaryEvent(summary=delta)] if delta else []

        if event_type == "response.function_call_arguments.done":
            if not isinstance(parsed.get("arguments"), str):
                return []
            return [
                ToolCallDeltaEvent(
                    tool_call=ToolCall(item_id=parsed.get("item_id") or "", args=parsed["arguments"]),
                    index=output_index,
                )
            ]

        if event_type == "response.custom_tool_call_input.delta":
            if not isinstance(parsed.get("delta"), str):
                return []
            return [
                ToolCallDeltaEvent(
                    tool_call=ToolCall(
                        item_id=parsed.get("item_id") or "",
                        args=parsed["delta"],
                        is_custom=True,
                    ),
                    index=output_index,
                )
            ]

        if event_type == "response.completed":
            response = as_dict(parsed.get("response"))
            event = FinishEvent(finish_reason=FinishReason.STOP)
            if isinstance(response.get("usage"), dict):
                event.usage = self._decode_usage(response["usage"])
            return [event]

        if event_type in ("error", "response.failed"):
            error = as_dict(parsed.get("error")) or as_dict(
                as_dict(parsed.get("response")).get("error")
            )
            message = parsed.get("message") or error.get("message") or "Unknown OpenAI API error"
            return [ErrorEvent(message=message, error_type=error.get("type") or "api_error")]

        return []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _decode_reasoning(self, obj: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        """Read reasoning text from ``reasoning_content`` or Anthropic-style ``thinking``."""
        if isinstance(obj.get("reasoning_content"), str) and obj["reasoning_content"]:
            signature = obj.get("reasoning_signature")
            return obj["reasoning_content"], signature if isinstance(signature, str) else None
        if isinstance(obj.get("thinking"), str) and obj["thinking"]:
            return obj["thinking"], None
        if isinstance(obj.get("reasoning_signature"), str) and obj["reasoning_signature"]:
            return "", obj["reasoning_signature"]
        return "", None

    def _decode_tool_calls(self, tool_calls: List[Any]) -> List[ToolCall]:
        result = []
        for tc in tool_calls:
            if not isinstance(tc, dict) or not isinstance(tc.get("function"), dict):
                continue
            func = tc["function"]
            result.append(
                ToolCall(
                    id=tc.get("id") or "",
                    name=func.get("name") or "",
                    args=func.get("arguments") or "{}",
                )
            )
        return result

    def _parse_data_url(self, url: str) -> Optional[ImagePart]:
        """Parse ``data:<mime>;base64,<data>``; remote URLs are kept as-is."""
        if not url.startswith("data:"):
            return ImagePart(mime_type="image/jpeg", url=url)

        header, sep, data = url.partition(",")
        if not sep:
            return None

        mime_type = "image/jpeg"
        semicolon = header.find(";")
        if semicolon > 5:
            mime_type = header[5:semicolon]
        return ImagePart(mime_type=mime_type, data=data)

    def _extract_content_string(self, content: Any) -> str:
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            for item in content:
                if (
                    isinstance(item, dict)
                    and item.get("type") in ("text", "input_text", "output_text")
                    and item.get("text")
                ):
                    return item["text"]
        if content:
            return stringify(content)
        return ""


_decoder = OpenAIDecoder()


def parse_openai_request(raw: RawPayload) -> UnifiedChatRequest:
    return _decoder.parse_request(raw)


def parse_openai_response(raw: RawPayload) -> Tuple[List[Message], Optional[Usage]]:
    return _decoder.parse_response(raw)


def parse_openai_chunk(raw_chunk: str) -> List[UnifiedEvent]:
    return _decoder.parse_chunk(raw_chunk)


def is_chat_chunk(raw_chunk: str) -> bool:
    """True for a Chat Completions chunk frame, False for Responses events and ``[DONE]``."""
    trimmed = (raw_chunk or "").strip()
    _, data = parse_sse_frame(trimmed)
    if data is None:
        data = trimmed
    try:
        parsed = json.loads(data)
    except ValueError:
        return False
    return isinstance(parsed, dict) and isinstance(parsed.get("choices"), list)
