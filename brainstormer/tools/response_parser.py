"""Tolerant parsing of generator replies into ``{reply, elements}``.

Generators are asked for a JSON object but routinely return something else:
the object encoded one or more extra times as a JSON string, a bare array of
elements, a pseudo function call wrapping an array, Markdown fences, reasoning
preambles, or plain prose. Each repair strategy below handles one of those
shapes; ``parse_generator_reply`` runs them in order and the first one that
applies wins. A strategy returns ``None`` when its shape does not match and
raises ``GeneratorProtocolError`` when it matches but cannot be decoded.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from brainstormer.agents.errors import GeneratorProtocolError

logger = logging.getLogger(__name__)

ARRAY_REPLY = "Added elements to the board."

_FUNCTION_CALL_RE = re.compile(r"^\s*[A-Za-z_][\w.]*\s*\(\s*(\[[\s\S]*\])\s*\)\s*;?\s*$")
_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json|javascript|js)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_MAX_UNWRAP = 5


class GeneratorReply(BaseModel):
    reply: str = ""
    elements: List[Dict[str, Any]] = Field(default_factory=list)


def strip_noise(text: str) -> str:
    """Remove reasoning blocks and Markdown fences around a JSON payload."""
    cleaned = _THINK_RE.sub("", text)
    fence = _FENCE_RE.search(cleaned)
    if fence:
        cleaned = fence.group(1)
    return cleaned.strip()


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except RecursionError as exc:
        raise json.JSONDecodeError("JSON nested too deeply", raw, 0) from exc


def lenient_json_loads(raw: str) -> Any:
    try:
        return _loads(raw)
    except json.JSONDecodeError:
        cleaned = raw.replace("“", "\"").replace("”", "\"").replace("’", "'")
        cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
        return _loads(cleaned)


def extract_balanced(text: str, opener: str = "{", closer: str = "}") -> Optional[str]:
    """Return the first balanced ``opener...closer`` substring, ignoring string contents."""
    start = text.find(opener)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == "\"":
                in_string = False
            continue
        if char == "\"":
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    end = text.rfind(closer)
    if end > start:
        return text[start:end + 1]
    return None


def unwrap_encoded(value: Any) -> Any:
    """Decode a value while it is still a string that looks like JSON."""
    for _ in range(_MAX_UNWRAP):
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if not stripped.startswith(("{", "[", "\"")):
            return value
        value = lenient_json_loads(stripped)
    return value


def _coerce_elements(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _from_mapping(data: Dict[str, Any]) -> GeneratorReply:
    reply = data.get("reply")
    if reply is None:
        reply = data.get("message") or data.get("response") or ""
    return GeneratorReply(reply=str(reply), elements=_coerce_elements(data.get("elements")))


def _from_array(items: List[Any]) -> GeneratorReply:
    return GeneratorReply(reply=ARRAY_REPLY, elements=_coerce_elements(items))


def _decode_array(text: str) -> GeneratorReply:
    try:
        items = lenient_json_loads(text)
    except json.JSONDecodeError as exc:
        raise GeneratorProtocolError(f"Invalid element array: {exc}") from exc
    if not isinstance(items, list):
        raise GeneratorProtocolError("Expected a JSON array of elements")
    return _from_array(items)


def structured_passthrough(raw: Any) -> Optional[GeneratorReply]:
    if isinstance(raw, GeneratorReply):
        return raw
    if isinstance(raw, dict):
        return _from_mapping(raw)
    if isinstance(raw, list):
        return _from_array(raw)
    return None


def function_call_array(raw: Any) -> Optional[GeneratorReply]:
    if not isinstance(raw, str):
        return None
    match = _FUNCTION_CALL_RE.match(strip_noise(raw))
    if not match:
        return None
    return _decode_array(match.group(1))


def bare_array(raw: Any) -> Optional[GeneratorReply]:
    if not isinstance(raw, str):
        return None
    text = strip_noise(raw)
    if not text.startswith("["):
        return None
    return _decode_array(text)


def json_object(raw: Any) -> Optional[GeneratorReply]:
    if not isinstance(raw, str):
        return None
    text = strip_noise(raw)
    if text.startswith("{\"{"):
        reply_at = text.find("{\"reply\"")
        if reply_at != -1:
            text = text[reply_at:]
    try:
        decoded = unwrap_encoded(text)
    except json.JSONDecodeError:
        decoded = text
    if isinstance(decoded, str):
        candidate = extract_balanced(decoded)
        if candidate is None:
            raise GeneratorProtocolError("No JSON object found in generator output")
        try:
            decoded = unwrap_encoded(candidate)
        except json.JSONDecodeError as exc:
            raise GeneratorProtocolError(f"Unparseable JSON object: {exc}") from exc
    if isinstance(decoded, dict):
        return _from_mapping(decoded)
    if isinstance(decoded, list):
        return _from_array(decoded)
    raise GeneratorProtocolError(f"Unexpected JSON payload type: {type(decoded).__name__}")


REPAIR_STRATEGIES: Tuple[Tuple[str, Callable[[Any], Optional[GeneratorReply]]], ...] = (
    ("structured_passthrough", structured_passthrough),
    ("function_call_array", function_call_array),
    ("bare_array", bare_array),
    ("json_object", json_object),
)


def _as_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw)
    except (TypeError, ValueError, RecursionError):
        return str(raw)


def parse_generator_reply(raw: Any) -> GeneratorReply:
    """Coerce arbitrary generator output into a reply; never raises."""
    for name, strategy in REPAIR_STRATEGIES:
        try:
            parsed = strategy(raw)
        except GeneratorProtocolError as exc:
            logger.warning("Generator reply could not be repaired", extra={"strategy": name, "error": str(exc)})
            break
        if parsed is not None:
            logger.debug("Generator reply parsed", extra={"strategy": name, "element_count": len(parsed.elements)})
            return parsed
    return GeneratorReply(reply=_as_text(raw), elements=[])
