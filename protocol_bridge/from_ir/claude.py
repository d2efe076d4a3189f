"""
Anthropic Messages API Generator

Converts IR requests, responses and stream events into Anthropic Messages
wire format.

Streaming keeps a ``ClaudeStreamState`` record that is threaded through each
call::

    text, state = to_claude_sse(event, model, message_id, state)

The caller owns the record; a call never mutates the state it was given.
"""

import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..config import get_settings
from ..exceptions import StreamStateError
from ..ir import (
    ErrorEvent,
    FinishEvent,
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
    clean_json_schema_for_claude,
    combine_reasoning_parts,
    combine_text_parts,
    parse_tool_call_args,
)
from ..stream import format_sse_event

logger = logging.getLogger(__name__)

STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"

_EMPTY_INPUT_SCHEMA = {"type": "object", "properties": {}, "additionalProperties": False}


@dataclass
class ActiveToolCall:
    block_index: int
    id: str
    name: str


@dataclass
class ClaudeStreamState:
    """
    Per-stream bookkeeping for the Anthropic SSE generator.

    At most one content block is open at a time: ``active_block_index`` and
    ``active_block_type`` describe it, or are None when no block is open.
    ``active_tool_calls`` maps an upstream tool-call stream index to the
    Anthropic block it was assigned.
    """
    message_id: str = ""
    model: str = ""
    message_start_sent: bool = False
    has_content: bool = False
    has_tool_calls: bool = False
    finish_sent: bool = False
    active_block_index: Optional[int] = None
    active_block_type: Optional[str] = None  # text | thinking | tool_use
    next_block_index: int = 0
    active_tool_calls: Dict[int, ActiveToolCall] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["active_tool_calls"] = {
            str(index): asdict(call) for index, call in self.active_tool_calls.items()
        }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaudeStreamState":
        try:
            values = dict(data)
            values["active_tool_calls"] = {
                int(index): ActiveToolCall(**call)
                for index, call in (data.get("active_tool_calls") or {}).items()
            }
            return cls(**values)
        except (TypeError, ValueError, AttributeError) as e:
            raise StreamStateError(
                f"Cannot restore Claude stream state: {e}",
                state_type=cls.__name__,
            ) from e


class ClaudeEncoder:
    """Encodes IR to Anthropic Messages API format."""

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def to_request(self, req: UnifiedChatRequest) -> Dict[str, Any]:
        """Encode an IR request as an Anthropic Messages request body."""
        settings = get_settings()
        result: Dict[str, Any] = {
            "model": req.model,
            "max_tokens": (
                req.max_tokens if req.max_tokens is not None else settings.CLAUDE_DEFAULT_MAX_TOKENS
            ),
            "messages": [],
        }

        # Generation parameters
        if req.temperature is not None:
            result["temperature"] = req.temperature
        if req.top_p is not None:
            result["top_p"] = req.top_p
        if req.top_k is not None:
            result["top_k"] = req.top_k
        if req.stop_sequences:
            result["stop_sequences"] = list(req.stop_sequences)

        if req.thinking:
            thinking = self._encode_thinking(req.thinking)
            if thinking:
                result["thinking"] = thinking

        # System messages are hoisted to the top-level system field
        system_texts = []
        conversation = []
        for msg in req.messages:
            if msg.role == Role.SYSTEM:
                text = combine_text_parts(msg)
                if text:
                    system_texts.append(text)
            else:
                conversation.append(msg)
        if system_texts:
            result["system"] = "\n".join(system_texts)

        result["messages"] = self._encode_messages(conversation)

        if req.tools:
            result["tools"] = [self._encode_tool(t) for t in req.tools]
            tool_choice = self._encode_tool_choice(req.tool_choice, req.parallel_tool_calls)
            if tool_choice:
                result["tool_choice"] = tool_choice

        if req.metadata:
            result["metadata"] = req.metadata

        return result

    def _encode_thinking(self, thinking: ThinkingConfig) -> Optional[Dict[str, Any]]:
        if thinking.include_thoughts and thinking.budget != 0:
            encoded: Dict[str, Any] = {"type": "enabled"}
            if thinking.budget and thinking.budget > 0:
                encoded["budget_tokens"] = thinking.budget
            return encoded
        if thinking.budget == 0:
            return {"type": "disabled"}
        return None

    def _encode_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        # Index of the last user message made purely of tool results
        open_tool_turn: Optional[int] = None

        for msg in messages:
            if msg.role == Role.TOOL:
                blocks = [
                    self._encode_tool_result(p) for p in msg.content if isinstance(p, ToolResultPart)
                ]
                if not blocks:
                    continue
                # Results for parallel calls must share one user turn
                if open_tool_turn is not None and open_tool_turn == len(result) - 1:
                    result[open_tool_turn]["content"].extend(blocks)
                else:
                    result.append({"role": "user", "content": blocks})
                    open_tool_turn = len(result) - 1
                continue

            is_assistant = msg.role == Role.ASSISTANT
            blocks = self._encode_content(msg, include_tool_calls=is_assistant)
            if blocks:
                result.append({"role": "assistant" if is_assistant else "user", "content": blocks})

        return result

    def _encode_content(self, msg: Message, include_tool_calls: bool) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []

        for part in msg.content:
            if isinstance(part, ReasoningPart):
                if part.reasoning:
                    block = {"type": "thinking", "thinking": part.reasoning}
                    if part.thought_signature:
                        block["signature"] = part.thought_signature
                    blocks.append(block)
            elif isinstance(part, TextPart):
                if part.text:
                    blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                block = self._encode_image(part)
                if block:
                    blocks.append(block)
            elif isinstance(part, ToolResultPart):
                blocks.append(self._encode_tool_result(part))

        if include_tool_calls:
            for tc in msg.tool_calls:
                blocks.append(self._encode_tool_use(tc))

        return blocks

    def _encode_image(self, image: ImagePart) -> Optional[Dict[str, Any]]:
        if image.data:
            # The API expects bare base64 without a data-URI prefix
            data = image.data.split(",", 1)[1] if "," in image.data else image.data
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": image.mime_type, "data": data},
            }
        if image.url:
            return {"type": "image", "source": {"type": "url", "url": image.url}}
        return None

    def _encode_tool_result(self, part: ToolResultPart) -> Dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": part.tool_call_id,
            "content": part.result,
        }

    def _encode_tool_use(self, tc: ToolCall) -> Dict[str, Any]:
        return {
            "type": "tool_use",
            "id": tc.id,
            "name": tc.name,
            "input": parse_tool_call_args(tc.args),
        }

    def _encode_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        if tool.parameters:
            schema = clean_json_schema_for_claude(tool.parameters)
        else:
            schema = dict(_EMPTY_INPUT_SCHEMA)
        return {
            "name": tool.name,
            "description": tool.description,
            "input_schema": schema,
        }

    def _encode_tool_choice(
        self, choice: Optional[str], parallel: Optional[bool]
    ) -> Optional[Dict[str, Any]]:
        mapping = {"auto": "auto", "required": "any", "any": "any", "none": "none"}
        choice_type = mapping.get(choice or "")
        if choice_type is None and parallel is False:
            choice_type = "auto"
        if choice_type is None:
            return None

        result: Dict[str, Any] = {"type": choice_type}
        if parallel is False and choice_type != "none":
            result["disable_parallel_tool_use"] = True
        return result

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def to_response(
        self,
        messages: List[Message],
        usage: Optional[Usage],
        model: str,
        message_id: str,
    ) -> Dict[str, Any]:
        """Encode assistant IR messages as a non-streaming Anthropic response."""
        content: List[Dict[str, Any]] = []
        has_tool_calls = False

        for msg in messages:
            if msg.role != Role.ASSISTANT:
                continue

            reasoning = combine_reasoning_parts(msg)
            if reasoning:
                block: Dict[str, Any] = {"type": "thinking", "thinking": reasoning}
                signature = next(
                    (
                        p.thought_signature
                        for p in msg.content
                        if isinstance(p, ReasoningPart) and p.thought_signature
                    ),
                    None,
                )
                if signature:
                    block["signature"] = signature
                content.append(block)

            text = combine_text_parts(msg)
            if text:
                content.append({"type": "text", "text": text})

            for tc in msg.tool_calls:
                has_tool_calls = True
                content.append(self._encode_tool_use(tc))

        response: Dict[str, Any] = {
            "id": message_id,
            "type": "message",
            "role": "assistant",
            "model": model,
            "content": content,
            "stop_reason": STOP_TOOL_USE if has_tool_calls else STOP_END_TURN,
            "stop_sequence": None,
        }
        if usage is not None:
            response["usage"] = {
                "input_tokens": usage.prompt_tokens,
                "output_tokens": usage.completion_tokens,
            }
        return response

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def to_sse(
        self,
        event: UnifiedEvent,
        model: str,
        message_id: str,
        state: Optional[ClaudeStreamState] = None,
    ) -> Tuple[str, ClaudeStreamState]:
        """
        Encode one IR event as Anthropic SSE text.

        Returns the frames (possibly empty) and the successor state.
        """
        state = copy.deepcopy(state) if state is not None else ClaudeStreamState()
        frames: List[str] = []

        if not state.message_start_sent:
            state.message_start_sent = True
            state.model = model
            state.message_id = message_id
            frames.append(self._message_start(model, message_id))

        if isinstance(event, TokenEvent):
            text = event.content or event.refusal or ""
            if text:
                self._emit_delta(state, frames, "text", {"type": "text_delta", "text": text})

        elif isinstance(event, ReasoningEvent):
            if event.reasoning:
                self._emit_delta(
                    state, frames, "thinking", {"type": "thinking_delta", "thinking": event.reasoning}
                )
            if event.thought_signature:
                self._emit_delta(
                    state,
                    frames,
                    "thinking",
                    {"type": "signature_delta", "signature": event.thought_signature},
                )

        elif isinstance(event, ReasoningSummaryEvent):
            # Anthropic has no summary block; the summary streams as thinking
            if event.summary:
                self._emit_delta(
                    state, frames, "thinking", {"type": "thinking_delta", "thinking": event.summary}
                )

        elif isinstance(event, ToolCallEvent):
            self._emit_tool_call(state, frames, event.tool_call, event.index)

        elif isinstance(event, ToolCallDeltaEvent):
            self._emit_tool_call_delta(state, frames, event.tool_call, event.index)

        elif isinstance(event, FinishEvent):
            if not state.finish_sent:
                state.finish_sent = True
                self._emit_finish(state, frames, event.usage)

        elif isinstance(event, ErrorEvent):
            frames.append(
                self._format(
                    "error",
                    {
                        "type": "error",
                        "error": {
                            "type": event.error_type or "api_error",
                            "message": event.message or "Unknown error",
                        },
                    },
                )
            )

        return "".join(frames), state

    def _message_start(self, model: str, message_id: str) -> str:
        return self._format(
            "message_start",
            {
                "type": "message_start",
                "message": {
                    "id": message_id,
                    "type": "message",
                    "role": "assistant",
                    "content": [],
                    "model": model,
                    "stop_reason": None,
                    "stop_sequence": None,
                    "usage": {"input_tokens": 0, "output_tokens": 0},
                },
            },
        )

    def _open_block(
        self, state: ClaudeStreamState, frames: List[str], block_type: str, content_block: Dict[str, Any]
    ) -> int:
        """Close whatever block is open, then start a new one."""
        self._close_active_block(state, frames)
        index = state.next_block_index
        state.next_block_index += 1
        state.active_block_index = index
        state.active_block_type = block_type
        frames.append(
            self._format(
                "content_block_start",
                {"type": "content_block_start", "index": index, "content_block": content_block},
            )
        )
        return index

    def _close_active_block(self, state: ClaudeStreamState, frames: List[str]) -> None:
        if state.active_block_index is None:
            return
        frames.append(self._block_stop(state.active_block_index))
        state.active_block_index = None
        state.active_block_type = None

    def _emit_delta(
        self, state: ClaudeStreamState, frames: List[str], block_type: str, delta: Dict[str, Any]
    ) -> None:
        if state.active_block_type != block_type:
            content_block = (
                {"type": "text", "text": ""} if block_type == "text" else {"type": "thinking", "thinking": ""}
            )
            self._open_block(state, frames, block_type, content_block)
        state.has_content = True
        frames.append(self._block_delta(state.active_block_index, delta))

    def _emit_tool_call(
        self, state: ClaudeStreamState, frames: List[str], tc: ToolCall, index: int
    ) -> None:
        existing = state.active_tool_calls.get(index)
        if existing is not None:
            # Continuation of a tracked call: arguments only
            if tc.args:
                frames.append(
                    self._block_delta(
                        existing.block_index, {"type": "input_json_delta", "partial_json": tc.args}
                    )
                )
            return

        tool_id = tc.id or f"tool_{index}"
        block_index = self._open_block(
            state,
            frames,
            "tool_use",
            {"type": "tool_use", "id": tool_id, "name": tc.name or "", "input": {}},
        )
        state.has_content = True
        state.has_tool_calls = True
        state.active_tool_calls[index] = ActiveToolCall(
            block_index=block_index, id=tool_id, name=tc.name or ""
        )

        if tc.args:
            frames.append(
                self._block_delta(block_index, {"type": "input_json_delta", "partial_json": tc.args})
            )

    def _emit_tool_call_delta(
        self, state: ClaudeStreamState, frames: List[str], tc: ToolCall, index: int
    ) -> None:
        existing = state.active_tool_calls.get(index)
        if existing is None:
            logger.debug("Ignoring tool call delta for untracked index %s", index)
            return

        if tc.args:
            frames.append(
                self._block_delta(
                    existing.block_index, {"type": "input_json_delta", "partial_json": tc.args}
                )
            )

        if tc.is_complete:
            del state.active_tool_calls[index]
            if state.active_block_index == existing.block_index:
                self._close_active_block(state, frames)

    def _emit_finish(
        self, state: ClaudeStreamState, frames: List[str], usage: Optional[Usage]
    ) -> None:
        self._close_active_block(state, frames)

        message_delta: Dict[str, Any] = {
            "type": "message_delta",
            "delta": {
                "stop_reason": STOP_TOOL_USE if state.has_tool_calls else STOP_END_TURN,
                "stop_sequence": None,
            },
        }
        if usage is not None:
            message_delta["usage"] = {
                "input_tokens": usage.prompt_tokens,
                "output_tokens": usage.completion_tokens,
            }
        frames.append(self._format("message_delta", message_delta))
        frames.append(self._format("message_stop", {"type": "message_stop"}))

    def _block_delta(self, index: Optional[int], delta: Dict[str, Any]) -> str:
        return self._format(
            "content_block_delta", {"type": "content_block_delta", "index": index, "delta": delta}
        )

    def _block_stop(self, index: int) -> str:
        return self._format("content_block_stop", {"type": "content_block_stop", "index": index})

    def _format(self, event_type: str, data: Dict[str, Any]) -> str:
        return format_sse_event(event_type, data)


_encoder = ClaudeEncoder()


def to_claude_request(req: UnifiedChatRequest) -> Dict[str, Any]:
    return _encoder.to_request(req)


def to_claude_response(
    messages: List[Message],
    usage: Optional[Usage],
    model: str,
    message_id: str,
) -> Dict[str, Any]:
    return _encoder.to_response(messages, usage, model, message_id)


def to_claude_sse(
    event: UnifiedEvent,
    model: str,
    message_id: str,
    state: Optional[ClaudeStreamState] = None,
) -> Tuple[str, ClaudeStreamState]:
    return _encoder.to_sse(event, model, message_id, state)
