"""
Shared decoding helpers for the protocol parsers.
"""

import json
from typing import Any, Dict, Union

from ..exceptions import InvalidPayloadError

RawPayload = Union[str, bytes, Dict[str, Any]]


def load_json_payload(raw: RawPayload, protocol: str) -> Dict[str, Any]:
    """
    Decode a request/response body into a JSON object.

    Raises:
        InvalidPayloadError: body is not JSON or not a JSON object
    """
    if isinstance(raw, dict):
        return raw

    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        preview = raw[:120] if isinstance(raw, str) else None
        raise InvalidPayloadError(
            f"Invalid JSON payload: {e}",
            source_protocol=protocol,
            preview=preview,
        ) from e

    if not isinstance(parsed, dict):
        raise InvalidPayloadError(
            f"Expected a JSON object, got {type(parsed).__name__}",
            source_protocol=protocol,
        )
    return parsed


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def as_int(value: Any) -> int:
    """Token counts may arrive as null or floats; anything else counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def stringify(value: Any) -> str:
    """Render a tool input/output value as a JSON string."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
