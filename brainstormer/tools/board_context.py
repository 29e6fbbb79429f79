"""Size-bounded board summaries sent to the generator for grounding."""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterable, List, Optional

from brainstormer.models.elements import Connector, Element, Shape
from brainstormer.utils.config import settings

TRUNCATION_MARKER = "...[truncated]"


def cap_text(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    if limit <= len(TRUNCATION_MARKER):
        return TRUNCATION_MARKER[:limit]
    return text[:limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def _rounded(value: float) -> int:
    return round(value) if math.isfinite(value) else 0


def _summarize(element: Element, label_chars: int) -> Optional[Dict[str, Any]]:
    if isinstance(element, Shape):
        label = element.label
        if len(label) > label_chars:
            label = label[:label_chars] + "…"
        return {
            "id": element.id,
            "type": element.type,
            "x": _rounded(element.x),
            "y": _rounded(element.y),
            "w": _rounded(element.width),
            "h": _rounded(element.height),
            "label": label,
        }
    if isinstance(element, Connector):
        return {
            "id": element.id,
            "type": element.type,
            "x": _rounded(element.x),
            "y": _rounded(element.y),
            "w": _rounded(element.width),
            "h": _rounded(element.height),
            "start": element.start_id,
            "end": element.end_id,
        }
    return None


def summarize_board(elements: Iterable[Element], label_chars: Optional[int] = None) -> List[Dict[str, Any]]:
    label_chars = settings.label_preview_chars if label_chars is None else label_chars
    summary = []
    for element in elements:
        entry = _summarize(element, label_chars)
        if entry is not None:
            summary.append(entry)
    return summary


def board_context(elements: Iterable[Element], limit: Optional[int] = None) -> str:
    """Compact JSON summary of shapes and connectors, hard-capped at ``limit`` characters."""
    limit = settings.board_context_limit if limit is None else limit
    serialized = json.dumps(summarize_board(elements), separators=(",", ":"), ensure_ascii=False)
    return cap_text(serialized, limit)


def cap_user_text(text: str, limit: Optional[int] = None) -> str:
    limit = settings.user_text_limit if limit is None else limit
    return cap_text((text or "").strip(), limit)
