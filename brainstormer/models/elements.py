"""Whiteboard element models (canvas wire format)."""
from __future__ import annotations

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ShapeKind = Literal["rectangle", "diamond", "ellipse", "circle"]
SHAPE_KINDS: Tuple[str, ...] = ("rectangle", "diamond", "ellipse", "circle")


def normalize_label(label: Any) -> str:
    """Identity key for a label: trimmed, inner whitespace collapsed, lowercase."""
    return re.sub(r"\s+", " ", str(label or "")).strip().lower()


class _CanvasModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Point(_CanvasModel):
    x: float
    y: float


class Binding(_CanvasModel):
    element_id: str = Field(..., alias="elementId")
    focus: float = 0
    gap: float = 0


class BoundElement(_CanvasModel):
    type: Literal["text", "arrow"]
    id: str


class _ElementBase(_CanvasModel):
    id: str
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    angle: float = 0
    stroke_color: str = Field("#1e1e1e", alias="strokeColor")
    background_color: str = Field("#ffffff", alias="backgroundColor")
    fill_style: str = Field("hachure", alias="fillStyle")
    stroke_width: float = Field(1, alias="strokeWidth")
    roughness: int = 1
    opacity: int = 100
    group_ids: List[str] = Field(default_factory=list, alias="groupIds")
    is_deleted: bool = Field(False, alias="isDeleted")
    locked: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Shape(_ElementBase):
    type: ShapeKind = "rectangle"
    label: str = Field("", alias="customLabel")
    bound_elements: List[BoundElement] = Field(default_factory=list, alias="boundElements")

    @property
    def center(self) -> Point:
        return Point(x=self.x + self.width / 2, y=self.y + self.height / 2)

    @property
    def half_size(self) -> Tuple[float, float]:
        return self.width / 2, self.height / 2

    @property
    def bound_text_id(self) -> Optional[str]:
        for bound in self.bound_elements:
            if bound.type == "text":
                return bound.id
        return None


class TextElement(_ElementBase):
    type: Literal["text"] = "text"
    text: str = ""
    original_text: str = Field("", alias="originalText")
    font_size: int = Field(20, alias="fontSize")
    font_family: int = Field(1, alias="fontFamily")
    text_align: str = Field("center", alias="textAlign")
    vertical_align: str = Field("middle", alias="verticalAlign")
    line_height: float = Field(1.25, alias="lineHeight")
    container_id: Optional[str] = Field(None, alias="containerId")


class Connector(_ElementBase):
    type: Literal["arrow"] = "arrow"
    points: List[List[float]] = Field(default_factory=list)
    start_binding: Binding = Field(..., alias="startBinding")
    end_binding: Binding = Field(..., alias="endBinding")
    start_anchor: Point = Field(..., alias="startAnchor")
    end_anchor: Point = Field(..., alias="endAnchor")
    start_arrowhead: Optional[str] = Field(None, alias="startArrowhead")
    end_arrowhead: Optional[str] = Field("arrow", alias="endArrowhead")

    @property
    def start_id(self) -> str:
        return self.start_binding.element_id

    @property
    def end_id(self) -> str:
        return self.end_binding.element_id


Element = Annotated[Union[Shape, TextElement, Connector], Field(discriminator="type")]

_ELEMENT_ADAPTER: TypeAdapter = TypeAdapter(Element)


def element_from_dict(data: Dict[str, Any]) -> Element:
    """Re-hydrate a wire-format dict produced by ``to_wire``."""
    return _ELEMENT_ADAPTER.validate_python(data)


def shapes_in(elements: List[Element]) -> List[Shape]:
    return [element for element in elements if isinstance(element, Shape)]


def connectors_in(elements: List[Element]) -> List[Connector]:
    return [element for element in elements if isinstance(element, Connector)]
