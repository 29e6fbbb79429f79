"""Map generator element records onto factory calls.

Records come from independent generator calls that know nothing about the ids
already on the board, so identity is carried by labels: a record whose label
normalizes to an existing shape's label produces nothing, and connectors may
reference shapes by board id, by an id used earlier in the same batch, or by
label.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from brainstormer.models.elements import SHAPE_KINDS, Element, Shape
from brainstormer.tools.board_index import BoardIndex, SynthesisResult
from brainstormer.tools.element_factory import InvalidEndpoints, make_connector, make_labeled_shape
from brainstormer.tools.fallback_builder import FallbackBuilder

logger = logging.getLogger(__name__)

_LABEL_KEYS = ("label", "text", "name", "title")
_START_KEYS = ("start", "startBinding", "from", "source")
_END_KEYS = ("end", "endBinding", "to", "target")
_LINEAR_TYPES = {"arrow", "line", "connector", "edge"}


def _first_present(record: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, "", {}):
            return value
    return None


def _reference(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("id") or value.get("elementId") or value.get("label") or value.get("text")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _size(value: Any) -> Optional[float]:
    number = _number(value)
    return number if number is not None and number > 0 else None


def record_label(record: Dict[str, Any]) -> str:
    value = _first_present(record, _LABEL_KEYS)
    if isinstance(value, dict):
        value = value.get("text")
    return str(value).strip() if value is not None else ""


def is_connector_record(record: Dict[str, Any]) -> bool:
    if _first_present(record, _START_KEYS) is not None or _first_present(record, _END_KEYS) is not None:
        return True
    return str(record.get("type") or "").lower() in _LINEAR_TYPES


class RecordSynthesizer:
    """Structured path: one pass over a batch of element records."""

    def __init__(self, existing: Iterable[Element]) -> None:
        self.index = BoardIndex(existing)
        self._aliases: Dict[str, str] = {}

    def resolve(self, reference: Optional[str]) -> Optional[Shape]:
        if not reference:
            return None
        shape = self.index.by_id(reference)
        if shape is None and reference in self._aliases:
            shape = self.index.by_id(self._aliases[reference])
        if shape is None:
            shape = self.index.by_label(reference)
        return shape

    def _alias(self, record: Dict[str, Any], shape: Shape) -> None:
        record_id = record.get("id")
        if record_id is not None:
            self._aliases[str(record_id)] = shape.id

    def connector_from(self, record: Dict[str, Any]) -> List[Element]:
        start_ref = _reference(_first_present(record, _START_KEYS))
        end_ref = _reference(_first_present(record, _END_KEYS))
        start = self.resolve(start_ref)
        end = self.resolve(end_ref)
        try:
            connector = make_connector(start, end)
        except InvalidEndpoints:
            logger.debug("Skipping connector with unresolved endpoints", extra={"start": start_ref, "end": end_ref})
            return []
        if start.id == end.id or self.index.has_connection(start.id, end.id):
            return []
        self.index.register_connector(connector)
        return [connector]

    def shape_from(self, record: Dict[str, Any]) -> List[Element]:
        label = record_label(record)
        if not label:
            logger.debug("Skipping record without a label", extra={"record_id": record.get("id")})
            return []
        existing = self.index.by_label(label)
        if existing is not None:
            self._alias(record, existing)
            return []
        kind = str(record.get("type") or "rectangle").lower()
        if kind not in SHAPE_KINDS:
            kind = "rectangle"
        slot_x, slot_y = self.index.next_slot()
        x = _number(record.get("x"))
        y = _number(record.get("y"))
        shape, text = make_labeled_shape(
            kind,
            slot_x if x is None else x,
            slot_y if y is None else y,
            _size(record.get("width")),
            _size(record.get("height")),
            label,
        )
        self.index.register_shape(shape)
        self._alias(record, shape)
        return [shape, text]

    def run(self, records: Iterable[Any]) -> SynthesisResult:
        created: List[Element] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            if is_connector_record(record):
                created.extend(self.connector_from(record))
            else:
                created.extend(self.shape_from(record))
        return SynthesisResult(elements=created)


def synthesize_records(records: Iterable[Any], existing: Iterable[Element]) -> SynthesisResult:
    return RecordSynthesizer(existing).run(records)


def synthesize_step(
    step: str,
    records: Iterable[Any],
    existing: Iterable[Element],
    allow_fallback: bool = True,
) -> SynthesisResult:
    """Structured path first; the keyword fallback only when it yields nothing."""
    existing = list(existing)
    result = synthesize_records(records, existing)
    if result.elements or not allow_fallback:
        return result
    fallback = FallbackBuilder().build(step, existing)
    fallback.used_fallback = True
    return fallback
