"""
OpenAI Responses API Generator

Converts IR requests, responses and stream events into OpenAI Responses API
wire format.

The stream generator is item-oriented: every message, reasoning summary and
function call is an output item with its own ``output_index``, opened with
``response.output_item.added`` and closed with ``response.output_item.done``.
Items are sequential; opening a new item closes the previous message or
reasoning item first. Every emitted event carries a strictly increasing
``sequence_number``.

State is threaded through each call::

    events, state = to_openai_responses_sse(event, model, response_id, state)
"""

import copy
import logging
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Set, Tuple

from ..config import get_settings
from ..exceptions import StreamStateError
from ..ir import (
    ErrorEvent,
    FinishEvent,
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
    ToolResultPart,
    UnifiedChatRequest,
    UnifiedEvent,
    Usage,
    combine_reasoning_parts,
    combine_text_parts,
    map_budget_to_effort,
)
from ..stream import format_sse_event
from .openai import image_to_url

logger = logging.getLogger(__name__)

# Fields whose JSON form differs from the in-memory one
_SET_FIELDS = ("msg_item_added", "msg_content_added", "msg_item_done", "func_item_done", "func_is_custom")
_INT_KEYED_FIELDS = (
    "msg_text_buf",
    "func_output_index",
    "func_call_ids",
    "func_names",
    "func_args_buf",
    "completed_items",
)


@dataclass
class ResponsesStreamState:
    """
    Per-stream bookkeeping for the Responses API SSE generator.

    Message buffers and sets are keyed by output index; function-call maps are
    keyed by the upstream tool-call stream index. Only one reasoning item
    exists per response.
    """
    seq: int = 0
    response_id: str = ""
    model: str = ""
    created_at: int = 0
    started: bool = False
    finished: bool = False
    next_output_index: int = 0
    # Message items
    current_msg_index: Optional[int] = None
    msg_item_added: Set[int] = field(default_factory=set)
    msg_content_added: Set[int] = field(default_factory=set)
    msg_item_done: Set[int] = field(default_factory=set)
    msg_text_buf: Dict[int, str] = field(default_factory=dict)
    # Reasoning item
    reasoning_id: str = ""
    reasoning_index: int = 0
    reasoning_buf: str = ""
    reasoning_done: bool = False
    # Function call items
    func_output_index: Dict[int, int] = field(default_factory=dict)
    func_call_ids: Dict[int, str] = field(default_factory=dict)
    func_names: Dict[int, str] = field(default_factory=dict)
    func_args_buf: Dict[int, str] = field(default_factory=dict)
    func_item_done: Set[int] = field(default_factory=set)
    func_is_custom: Set[int] = field(default_factory=set)
    # Finished items by output index, for response.completed
    completed_items: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    # Usage snapshot
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0
    cached_tokens: int = 0
    usage_seen: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in _SET_FIELDS:
            data[name] = sorted(data[name])
        for name in _INT_KEYED_FIELDS:
            data[name] = {str(k): v for k, v in data[name].items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResponsesStreamState":
        known = {f.name for f in fields(cls)}
        try:
            values = {k: v for k, v in data.items() if k in known}
            for name in _SET_FIELDS:
                if name in values:
                    values[name] = set(values[name])
            for name in _INT_KEYED_FIELDS:
                if name in values:
                    values[name] = {int(k): v for k, v in values[name].items()}
            return cls(**values)
        except (TypeError, ValueError, AttributeError) as e:
            raise StreamStateError(
                f"Cannot restore Responses stream state: {e}",
                state_type=cls.__name__,
            ) from e


class OpenAIResponsesEncoder:
    """Encodes IR to OpenAI Responses API format."""

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def to_request(self, req: UnifiedChatRequest) -> Dict[str, Any]:
        """Encode an IR request as a Responses API request body."""
        result: Dict[str, Any] = {"model": req.model, "input": []}

        # System messages become instructions
        system_texts = [
            combine_text_parts(m) for m in req.messages if m.role == Role.SYSTEM
        ]
        instructions = "\n".join(t for t in system_texts if t) or req.instructions
        if instructions:
            result["instructions"] = instructions

        result["input"] = self._encode_input(req.messages)

        if req.max_tokens is not None:
            result["max_output_tokens"] = req.max_tokens
        if req.temperature is not None:
            result["temperature"] = req.temperature
        if req.top_p is not None:
            result["top_p"] = req.top_p

        if req.thinking and req.thinking.include_thoughts:
            budget = req.thinking.budget if req.thinking.budget is not None else -1
            reasoning: Dict[str, Any] = {
                "effort": map_budget_to_effort(budget, get_settings().DEFAULT_REASONING_EFFORT)
            }
            if req.thinking.summary:
                reasoning["summary"] = req.thinking.summary
            result["reasoning"] = reasoning

        if req.tools:
            result["tools"] = [
                {
                    "type": "function",
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters or {"type": "object", "properties": {}},
                }
                for t in req.tools
            ]
        if req.tool_choice:
            result["tool_choice"] = req.tool_choice
        if req.parallel_tool_calls is not None:
            result["parallel_tool_calls"] = req.parallel_tool_calls
        if req.metadata:
            result["metadata"] = req.metadata

        return result

    def _encode_input(self, messages: List[Message]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == Role.USER:
                content = []
                for part in msg.content:
                    if isinstance(part, TextPart) and part.text:
                        content.append({"type": "input_text", "text": part.text})
                    elif isinstance(part, ImagePart):
                        content.append({"type": "input_image", "image_url": image_to_url(part)})
                if content:
                    items.append({"type": "message", "role": "user", "content": content})

            elif msg.role == Role.ASSISTANT:
                text = combine_text_parts(msg)
                if text:
                    items.append(
                        {
                            "type": "message",
                            "role": "assistant",
                            "content": [{"type": "output_text", "text": text}],
                        }
                    )
                for tc in msg.tool_calls:
                    items.append(
                        {
                            "type": "function_call",
                            "call_id": tc.id,
                            "name": tc.name,
                            "arguments": tc.args or "{}",
                        }
                    )

            elif msg.role == Role.TOOL:
                for part in msg.content:
                    if isinstance(part, ToolResultPart):
                        items.append(
                            {
                                "type": "function_call_output",
                                "call_id": part.tool_call_id,
                                "output": part.result,
                            }
                        )

        return items

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def to_response(
        self,
        messages: List[Message],
        usage: Optional[Usage],
        model: str,
        response_id: str,
        meta: Optional[ResponseMeta] = None,
    ) -> Dict[str, Any]:
        """Encode assistant IR messages as a non-streaming Responses API object."""
        resp_id = (meta and meta.response_id) or response_id
        output: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role != Role.ASSISTANT:
                continue

            reasoning = combine_reasoning_parts(msg)
            if reasoning:
                output.append(self._reasoning_item(f"rs_{resp_id}_{len(output)}", reasoning))

            text = combine_text_parts(msg)
            if text:
                output.append(self._message_item(f"msg_{resp_id}_{len(output)}", text, "completed"))

            for tc in msg.tool_calls:
                output.append(self._tool_call_item(tc.id, tc.name, tc.args or "{}", tc.is_custom))

        response: Dict[str, Any] = {
            "id": resp_id,
            "object": "response",
            "created_at": (meta and meta.create_time) or int(time.time()),
            "status": "completed",
            "model": model,
            "output": output,
        }
        if usage is not None:
            response["usage"] = self._usage_block(
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.total_tokens,
                usage.thoughts_tokens or 0,
                usage.cached_tokens or 0,
            )
        return response

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def to_sse(
        self,
        event: UnifiedEvent,
        model: str,
        response_id: str,
        state: Optional[ResponsesStreamState] = None,
    ) -> Tuple[List[str], ResponsesStreamState]:
        """
        Encode one IR event as Responses API SSE frames.

        Returns the frames (possibly empty) and the successor state.
        """
        state = copy.deepcopy(state) if state is not None else ResponsesStreamState()
        frames: List[str] = []

        if not state.started:
            state.started = True
            state.response_id = response_id
            state.model = model
            state.created_at = int(time.time())
            snapshot = self._response_snapshot(state, "in_progress")
            self._emit(state, frames, "response.created", {"response": snapshot})
            self._emit(state, frames, "response.in_progress", {"response": dict(snapshot)})

        if state.finished:
            return frames, state

        if isinstance(event, TokenEvent):
            self._process_token(state, frames, event)
        elif isinstance(event, (ReasoningEvent, ReasoningSummaryEvent)):
            text = event.reasoning if isinstance(event, ReasoningEvent) else event.summary
            self._process_reasoning(state, frames, text)
        elif isinstance(event, ToolCallEvent):
            self._process_tool_call(state, frames, event.tool_call, event.index)
        elif isinstance(event, ToolCallDeltaEvent):
            self._process_tool_call_delta(state, frames, event.tool_call, event.index)
        elif isinstance(event, FinishEvent):
            self._process_finish(state, frames, event)
        elif isinstance(event, ErrorEvent):
            self._emit(
                state,
                frames,
                "error",
                {
                    "code": event.error_type or "api_error",
                    "message": event.message or "Unknown error",
                    "param": None,
                },
            )
        else:
            logger.debug("Responses stream has no counterpart for %s event", event.type)

        return frames, state

    def _process_token(self, state: ResponsesStreamState, frames: List[str], event: TokenEvent) -> None:
        text = event.content or event.refusal or ""
        if not text:
            return

        self._close_reasoning(state, frames)
        idx = self._ensure_message(state, frames)
        state.msg_text_buf[idx] = state.msg_text_buf.get(idx, "") + text
        self._emit(
            state,
            frames,
            "response.output_text.delta",
            {
                "item_id": self._msg_id(state, idx),
                "output_index": idx,
                "content_index": 0,
                "delta": text,
                "logprobs": [],
            },
        )

    def _process_reasoning(self, state: ResponsesStreamState, frames: List[str], text: str) -> None:
        if not text:
            return
        if state.reasoning_done:
            logger.debug("Dropping reasoning delta after the reasoning item was closed")
            return

        if not state.reasoning_id:
            self._close_message(state, frames)
            state.reasoning_index = self._allocate_index(state)
            state.reasoning_id = f"rs_{state.response_id}_{state.reasoning_index}"
            self._emit(
                state,
                frames,
                "response.output_item.added",
                {
                    "output_index": state.reasoning_index,
                    "item": {
                        "id": state.reasoning_id,
                        "type": "reasoning",
                        "status": "in_progress",
                        "summary": [],
                    },
                },
            )
            self._emit(
                state,
                frames,
                "response.reasoning_summary_part.added",
                {
                    "item_id": state.reasoning_id,
                    "output_index": state.reasoning_index,
                    "summary_index": 0,
                    "part": {"type": "summary_text", "text": ""},
                },
            )

        state.reasoning_buf += text
        self._emit(
            state,
            frames,
            "response.reasoning_summary_text.delta",
            {
                "item_id": state.reasoning_id,
                "output_index": state.reasoning_index,
                "summary_index": 0,
                "delta": text,
            },
        )

    def _process_tool_call(
        self, state: ResponsesStreamState, frames: List[str], tc: ToolCall, index: int
    ) -> None:
        if index in state.func_output_index:
            # Chat-style continuation: later fragments repeat the tool_call shape
            if index not in state.func_item_done:
                self._append_arguments(state, frames, index, tc.args)
            return

        self._close_message(state, frames)
        self._close_reasoning(state, frames)

        output_index = self._allocate_index(state)
        call_id = tc.id or f"call_{index}"
        state.func_output_index[index] = output_index
        state.func_call_ids[index] = call_id
        state.func_names[index] = tc.name or ""
        state.func_args_buf[index] = ""
        if tc.is_custom:
            state.func_is_custom.add(index)

        item = self._tool_call_item(call_id, tc.name or "", "", tc.is_custom, status="in_progress")
        self._emit(
            state,
            frames,
            "response.output_item.added",
            {"output_index": output_index, "item": item},
        )
        self._append_arguments(state, frames, index, tc.args)

    def _process_tool_call_delta(
        self, state: ResponsesStreamState, frames: List[str], tc: ToolCall, index: int
    ) -> None:
        if index not in state.func_output_index:
            logger.debug("Ignoring tool call delta for untracked index %s", index)
            return
        if index in state.func_item_done:
            return

        self._append_arguments(state, frames, index, tc.args)
        if tc.is_complete:
            self._close_tool_call(state, frames, index)

    def _process_finish(
        self, state: ResponsesStreamState, frames: List[str], event: FinishEvent
    ) -> None:
        if event.usage is not None:
            state.prompt_tokens = event.usage.prompt_tokens
            state.completion_tokens = event.usage.completion_tokens
            state.total_tokens = event.usage.total_tokens
            state.reasoning_tokens = event.usage.thoughts_tokens or 0
            state.cached_tokens = event.usage.cached_tokens or 0
            state.usage_seen = True

        # Force-close every open item
        self._close_message(state, frames)
        self._close_reasoning(state, frames)
        for index in sorted(state.func_output_index, key=state.func_output_index.get):
            if index not in state.func_item_done:
                self._close_tool_call(state, frames, index)

        response = self._response_snapshot(state, "completed")
        response["output"] = [state.completed_items[i] for i in sorted(state.completed_items)]
        if state.usage_seen:
            response["usage"] = self._usage_block(
                state.prompt_tokens,
                state.completion_tokens,
                state.total_tokens,
                state.reasoning_tokens,
                state.cached_tokens,
            )
        self._emit(state, frames, "response.completed", {"response": response})
        state.finished = True

    # -- item helpers ---------------------------------------------------

    def _allocate_index(self, state: ResponsesStreamState) -> int:
        index = state.next_output_index
        state.next_output_index += 1
        return index

    def _msg_id(self, state: ResponsesStreamState, idx: int) -> str:
        return f"msg_{state.response_id}_{idx}"

    def _ensure_message(self, state: ResponsesStreamState, frames: List[str]) -> int:
        """Open a message item and its content part unless one is already open."""
        idx = state.current_msg_index
        if idx is None or idx in state.msg_item_done:
            idx = self._allocate_index(state)
            state.current_msg_index = idx

        if idx not in state.msg_item_added:
            state.msg_item_added.add(idx)
            self._emit(
                state,
                frames,
                "response.output_item.added",
                {
                    "output_index": idx,
                    "item": {
                        "id": self._msg_id(state, idx),
                        "type": "message",
                        "status": "in_progress",
                        "role": "assistant",
                        "content": [],
                    },
                },
            )
        if idx not in state.msg_content_added:
            state.msg_content_added.add(idx)
            self._emit(
                state,
                frames,
                "response.content_part.added",
                {
                    "item_id": self._msg_id(state, idx),
                    "output_index": idx,
                    "content_index": 0,
                    "part": {"type": "output_text", "text": "", "annotations": [], "logprobs": []},
                },
            )
        return idx

    def _close_message(self, state: ResponsesStreamState, frames: List[str]) -> None:
        idx = state.current_msg_index
        if idx is None or idx in state.msg_item_done or idx not in state.msg_item_added:
            return

        text = state.msg_text_buf.get(idx, "")
        part = {"type": "output_text", "text": text, "annotations": [], "logprobs": []}
        self._emit(
            state,
            frames,
            "response.output_text.done",
            {
                "item_id": self._msg_id(state, idx),
                "output_index": idx,
                "content_index": 0,
                "text": text,
                "logprobs": [],
            },
        )
        self._emit(
            state,
            frames,
            "response.content_part.done",
            {
                "item_id": self._msg_id(state, idx),
                "output_index": idx,
                "content_index": 0,
                "part": part,
            },
        )
        item = self._message_item(self._msg_id(state, idx), text, "completed")
        self._emit(state, frames, "response.output_item.done", {"output_index": idx, "item": item})
        state.msg_item_done.add(idx)
        state.completed_items[idx] = item

    def _close_reasoning(self, state: ResponsesStreamState, frames: List[str]) -> None:
        if not state.reasoning_id or state.reasoning_done:
            return

        common = {
            "item_id": state.reasoning_id,
            "output_index": state.reasoning_index,
            "summary_index": 0,
        }
        self._emit(
            state,
            frames,
            "response.reasoning_summary_text.done",
            dict(common, text=state.reasoning_buf),
        )
        self._emit(
            state,
            frames,
            "response.reasoning_summary_part.done",
            dict(common, part={"type": "summary_text", "text": state.reasoning_buf}),
        )
        item = self._reasoning_item(state.reasoning_id, state.reasoning_buf)
        self._emit(
            state,
            frames,
            "response.output_item.done",
            {"output_index": state.reasoning_index, "item": item},
        )
        state.reasoning_done = True
        state.completed_items[state.reasoning_index] = item

    def _append_arguments(
        self, state: ResponsesStreamState, frames: List[str], index: int, args: str
    ) -> None:
        if not args:
            return
        state.func_args_buf[index] = state.func_args_buf.get(index, "") + args
        is_custom = index in state.func_is_custom
        event_type = (
            "response.custom_tool_call_input.delta"
            if is_custom
            else "response.function_call_arguments.delta"
        )
        self._emit(
            state,
            frames,
            event_type,
            {
                "item_id": f"fc_{state.func_call_ids[index]}",
                "output_index": state.func_output_index[index],
                "delta": args,
            },
        )

    def _close_tool_call(self, state: ResponsesStreamState, frames: List[str], index: int) -> None:
        call_id = state.func_call_ids[index]
        output_index = state.func_output_index[index]
        is_custom = index in state.func_is_custom
        final_args = state.func_args_buf.get(index) or ("" if is_custom else "{}")

        if is_custom:
            self._emit(
                state,
                frames,
                "response.custom_tool_call_input.done",
                {"item_id": f"fc_{call_id}", "output_index": output_index, "input": final_args},
            )
        else:
            self._emit(
                state,
                frames,
                "response.function_call_arguments.done",
                {"item_id": f"fc_{call_id}", "output_index": output_index, "arguments": final_args},
            )

        item = self._tool_call_item(call_id, state.func_names.get(index, ""), final_args, is_custom)
        self._emit(
            state,
            frames,
            "response.output_item.done",
            {"output_index": output_index, "item": item},
        )
        state.func_item_done.add(index)
        state.completed_items[output_index] = item

    # -- payload builders -----------------------------------------------

    def _emit(
        self, state: ResponsesStreamState, frames: List[str], event_type: str, payload: Dict[str, Any]
    ) -> None:
        state.seq += 1
        data = {"type": event_type, "sequence_number": state.seq}
        data.update(payload)
        frames.append(format_sse_event(event_type, data))

    def _response_snapshot(self, state: ResponsesStreamState, status: str) -> Dict[str, Any]:
        return {
            "id": state.response_id,
            "object": "response",
            "created_at": state.created_at,
            "status": status,
            "model": state.model,
            "output": [],
        }

    def _message_item(self, item_id: str, text: str, status: str) -> Dict[str, Any]:
        return {
            "id": item_id,
            "type": "message",
            "status": status,
            "role": "assistant",
            "content": [{"type": "output_text", "text": text, "annotations": [], "logprobs": []}],
        }

    def _reasoning_item(self, item_id: str, text: str) -> Dict[str, Any]:
        return {
            "id": item_id,
            "type": "reasoning",
            "summary": [{"type": "summary_text", "text": text}],
        }

    def _tool_call_item(
        self,
        call_id: str,
        name: str,
        args: str,
        is_custom: bool,
        status: str = "completed",
    ) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "id": f"fc_{call_id}",
            "type": "custom_tool_call" if is_custom else "function_call",
            "status": status,
            "call_id": call_id,
            "name": name,
        }
        item["input" if is_custom else "arguments"] = args
        return item

    def _usage_block(
        self,
        prompt_tokens: int,
        completion_tokens: int,
        total_tokens: int,
        reasoning_tokens: int,
        cached_tokens: int,
    ) -> Dict[str, Any]:
        return {
            "input_tokens": prompt_tokens,
            "input_tokens_details": {"cached_tokens": cached_tokens},
            "output_tokens": completion_tokens,
            "output_tokens_details": {"reasoning_tokens": reasoning_tokens},
            "total_tokens": total_tokens or prompt_tokens + completion_tokens,
        }


_encoder = OpenAIResponsesEncoder()


def to_openai_responses_request(req: UnifiedChatRequest) -> Dict[str, Any]:
    return _encoder.to_request(req)


def to_openai_responses_response(
    messages: List[Message],
    usage: Optional[Usage],
    model: str,
    response_id: str,
    meta: Optional[ResponseMeta] = None,
) -> Dict[str, Any]:
    return _encoder.to_response(messages, usage, model, response_id, meta)


def to_openai_responses_sse(
    event: UnifiedEvent,
    model: str,
    response_id: str,
    state: Optional[ResponsesStreamState] = None,
) -> Tuple[List[str], ResponsesStreamState]:
    return _encoder.to_sse(event, model, response_id, state)
