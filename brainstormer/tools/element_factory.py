"""Element factory with geometric connector anchoring.

Every element produced here conforms to the canvas element skeleton so that
labels render inside their shapes and arrows bind to shape boundaries.
"""
from __future__ import annotations

import math
from typing import Callable, Dict, Optional, Tuple
from uuid import uuid4

from brainstormer.models.elements import (
    Binding,
    BoundElement,
    Connector,
    Point,
    SHAPE_KINDS,
    Shape,
    TextElement,
)

DEFAULT_WIDTH = 120.0
DEFAULT_HEIGHT = 60.0
DEFAULT_FONT_SIZE = 20
LINE_HEIGHT = 1.25
CHAR_WIDTH_FACTOR = 0.6
TEXT_PADDING = 16
MIN_TEXT_WIDTH = 20

_FILL_BY_KIND = {"diamond": "#eef2f5"}
_DEFAULT_FILL = "#ffffff"
_DEGENERATE_DIRECTION = (1.0, 0.0)


class InvalidEndpoints(ValueError):
    """Raised when a connector is requested without two resolvable shapes."""


def new_id() -> str:
    return uuid4().hex[:20]


def approx_text_width(text: str, font_size: int = DEFAULT_FONT_SIZE) -> int:
    return max(MIN_TEXT_WIDTH, math.ceil(len(text) * font_size * CHAR_WIDTH_FACTOR))


def make_shape(
    kind: str = "rectangle",
    x: float = 0,
    y: float = 0,
    width: Optional[float] = None,
    height: Optional[float] = None,
    label: str = "",
) -> Shape:
    if kind not in SHAPE_KINDS:
        raise ValueError(f"Unsupported shape kind: {kind}")
    return Shape(
        id=new_id(),
        type=kind,
        x=float(x),
        y=float(y),
        width=float(width) if width else DEFAULT_WIDTH,
        height=float(height) if height else DEFAULT_HEIGHT,
        background_color=_FILL_BY_KIND.get(kind, _DEFAULT_FILL),
        label=label,
        bound_elements=[],
    )


def bind_text(shape: Shape, text: TextElement) -> None:
    """Point ``shape`` at ``text``, replacing any previous text binding."""
    others = [bound for bound in shape.bound_elements if bound.type != "text"]
    shape.bound_elements = others + [BoundElement(type="text", id=text.id)]
    text.container_id = shape.id


def make_text(
    content: str,
    x: float = 0,
    y: float = 0,
    width: Optional[float] = None,
    height: Optional[float] = None,
    container: Optional[Shape] = None,
    font_size: int = DEFAULT_FONT_SIZE,
) -> TextElement:
    auto_width = width or approx_text_width(content, font_size) + TEXT_PADDING
    auto_height = height or round(font_size * LINE_HEIGHT)
    text = TextElement(
        id=new_id(),
        x=float(x),
        y=float(y),
        width=float(auto_width),
        height=float(auto_height),
        background_color="transparent",
        text=content,
        original_text=content,
        font_size=font_size,
        line_height=LINE_HEIGHT,
    )
    if container is not None:
        bind_text(container, text)
    return text


def make_labeled_shape(
    kind: str,
    x: float,
    y: float,
    width: Optional[float],
    height: Optional[float],
    label: str,
) -> Tuple[Shape, TextElement]:
    shape = make_shape(kind, x, y, width, height, label)
    text_width = approx_text_width(label) + TEXT_PADDING
    text_height = round(DEFAULT_FONT_SIZE * LINE_HEIGHT)
    text = make_text(
        label,
        x=shape.x + (shape.width - text_width) / 2,
        y=shape.y + (shape.height - text_height) / 2,
        width=text_width,
        height=text_height,
        container=shape,
    )
    return shape, text


def _rectangle_scale(ux: float, uy: float, half_w: float, half_h: float) -> float:
    tx = half_w / abs(ux) if ux else math.inf
    ty = half_h / abs(uy) if uy else math.inf
    return min(tx, ty)


def _diamond_scale(ux: float, uy: float, half_w: float, half_h: float) -> float:
    return 1.0 / (abs(ux) / half_w + abs(uy) / half_h)


def _ellipse_scale(ux: float, uy: float, half_w: float, half_h: float) -> float:
    return 1.0 / math.sqrt((ux / half_w) ** 2 + (uy / half_h) ** 2)


_BOUNDARY_SCALE: Dict[str, Callable[[float, float, float, float], float]] = {
    "rectangle": _rectangle_scale,
    "diamond": _diamond_scale,
    "ellipse": _ellipse_scale,
    "circle": _ellipse_scale,
}


def unit_direction(start: Point, end: Point) -> Tuple[float, float]:
    dx = end.x - start.x
    dy = end.y - start.y
    length = math.hypot(dx, dy)
    if length == 0:
        return _DEGENERATE_DIRECTION
    return dx / length, dy / length


def boundary_point(shape: Shape, ux: float, uy: float) -> Point:
    """Point where the ray from the shape center along (ux, uy) leaves the shape."""
    center = shape.center
    half_w, half_h = shape.half_size
    if half_w <= 0 or half_h <= 0 or (ux == 0 and uy == 0):
        return center
    scale = _BOUNDARY_SCALE.get(shape.type, _rectangle_scale)(ux, uy, half_w, half_h)
    return Point(x=center.x + ux * scale, y=center.y + uy * scale)


def make_connector(start: Optional[Shape], end: Optional[Shape]) -> Connector:
    if start is None or end is None:
        raise InvalidEndpoints("Connector requires both a start and an end shape")
    ux, uy = unit_direction(start.center, end.center)
    start_anchor = boundary_point(start, ux, uy)
    end_anchor = boundary_point(end, -ux, -uy)
    dx = end_anchor.x - start_anchor.x
    dy = end_anchor.y - start_anchor.y
    return Connector(
        id=new_id(),
        x=start_anchor.x,
        y=start_anchor.y,
        width=abs(dx),
        height=abs(dy),
        background_color="transparent",
        points=[[0.0, 0.0], [dx, dy]],
        start_binding=Binding(element_id=start.id),
        end_binding=Binding(element_id=end.id),
        start_anchor=start_anchor,
        end_anchor=end_anchor,
    )
