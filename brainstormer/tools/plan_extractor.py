"""Turn planner output into an ordered, non-empty list of step descriptions."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

from brainstormer.tools.response_parser import extract_balanced, strip_noise, unwrap_encoded

logger = logging.getLogger(__name__)

GENERIC_STEP = "Break the request into components and connections"

_STEP_KEYS = ("step", "description", "text", "title", "name")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)]|step\s*\d+\s*[:.)-])\s*", re.IGNORECASE)


def _entry_text(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    if isinstance(entry, dict):
        for key in _STEP_KEYS:
            value = entry.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        for value in entry.values():
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""
    if entry is None or isinstance(entry, (list, tuple)):
        return ""
    return str(entry).strip()


def _flatten_values(data: Dict[str, Any]) -> List[Any]:
    flattened: List[Any] = []
    for value in data.values():
        if isinstance(value, list):
            flattened.extend(value)
        else:
            flattened.append(value)
    return flattened


def _from_structure(data: Any) -> List[Any]:
    if isinstance(data, dict):
        steps = data.get("steps")
        if isinstance(steps, list):
            return steps
        if isinstance(steps, str):
            return [steps]
        return _flatten_values(data)
    if isinstance(data, list):
        return data
    return [data]


def _from_free_text(text: str) -> List[str]:
    lines = [_LIST_MARKER_RE.sub("", line).strip() for line in text.splitlines()]
    return [line for line in lines if line]


def _decode(raw: str) -> Any:
    text = strip_noise(raw)
    try:
        decoded = unwrap_encoded(text)
    except json.JSONDecodeError:
        decoded = text
    if not isinstance(decoded, str):
        return decoded
    text = decoded
    for opener, closer in (("[", "]"), ("{", "}")):
        candidate = extract_balanced(text, opener, closer)
        if candidate is None:
            continue
        try:
            return unwrap_encoded(candidate)
        except json.JSONDecodeError:
            continue
    return text


def candidate_steps(raw: Any) -> List[str]:
    """Every non-empty step string the raw planner output contains, in order."""
    if isinstance(raw, str):
        decoded = _decode(raw)
        if isinstance(decoded, str):
            entries: List[Any] = _from_free_text(decoded)
        else:
            entries = _from_structure(decoded)
    else:
        entries = _from_structure(raw)
    texts = [_entry_text(entry) for entry in entries]
    return [text for text in texts if text]


def _is_echo(step: str, request: str) -> bool:
    lowered = step.lower()
    needle = request.lower()
    return step == request or needle in lowered


def extract_plan_steps(raw: Any, request: str) -> List[str]:
    """Normalize planner output; never returns an empty plan."""
    request = (request or "").strip()
    steps = candidate_steps(raw)
    if request:
        if len(steps) == 1 and _is_echo(steps[0], request):
            logger.warning("Planner echoed the request", extra={"request": request})
            return [GENERIC_STEP]
        needle = request.lower()
        steps = [step for step in steps if step != request and not step.lower().startswith(needle)]
    if not steps:
        logger.warning("Planner produced no usable steps", extra={"request": request})
        return [GENERIC_STEP]
    return steps
