"""Label and id lookups over the shapes already on a board."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from brainstormer.models.elements import Connector, Element, Shape, normalize_label

GRID_X_START = 100.0
GRID_X_STEP = 250.0
GRID_Y_BASELINE = 100.0


@dataclass
class SynthesisResult:
    elements: List[Element] = field(default_factory=list)
    used_fallback: bool = False
    notes: List[str] = field(default_factory=list)


class BoardIndex:
    """Registry used to keep one shape per normalized label.

    Built from the session elements at the start of a synthesis run and
    updated as new shapes and connectors are produced, so later records in
    the same batch see earlier ones.
    """

    def __init__(self, elements: Iterable[Element] = ()) -> None:
        self._shapes: List[Shape] = []
        self._by_id: Dict[str, Shape] = {}
        self._by_label: Dict[str, Shape] = {}
        self._edges: Set[Tuple[str, str]] = set()
        for element in elements:
            if isinstance(element, Shape):
                self.register_shape(element)
            elif isinstance(element, Connector):
                self.register_connector(element)

    def register_shape(self, shape: Shape) -> None:
        self._shapes.append(shape)
        self._by_id[shape.id] = shape
        key = normalize_label(shape.label)
        if key and key not in self._by_label:
            self._by_label[key] = shape

    def register_connector(self, connector: Connector) -> None:
        self._edges.add((connector.start_id, connector.end_id))

    def by_id(self, shape_id: Optional[str]) -> Optional[Shape]:
        if not shape_id:
            return None
        return self._by_id.get(shape_id)

    def by_label(self, label: Optional[str]) -> Optional[Shape]:
        key = normalize_label(label)
        if not key:
            return None
        return self._by_label.get(key)

    def labels(self) -> List[str]:
        return list(self._by_label)

    def has_connection(self, start_id: str, end_id: str) -> bool:
        return (start_id, end_id) in self._edges

    def last_shape(self) -> Optional[Shape]:
        return self._shapes[-1] if self._shapes else None

    @property
    def shape_count(self) -> int:
        return len(self._shapes)

    def next_slot(self) -> Tuple[float, float]:
        return GRID_X_START + self.shape_count * GRID_X_STEP, GRID_Y_BASELINE
