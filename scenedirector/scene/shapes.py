# scenedirector/scene/shapes.py
"""
Primitive vector shapes.

Shape geometry is LOCAL to the owning scene object; the object's transform
places it in the world. Field names are snake_case in Python and camelCase on
the wire (``radiusX``, ``fillLinearGradientColorStops``...).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every model that crosses the JSON boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GradientPoint(WireModel):
    x: float
    y: float


def check_color_stops(stops: list[float | str] | None) -> list[float | str] | None:
    """Stops alternate offset/color: [0, "#000", 0.5, "#888", 1, "#fff"]."""
    if stops is None:
        return stops
    if len(stops) % 2 != 0:
        raise ValueError("gradient stops must have even length [stop,color,stop,color,...]")
    for i in range(0, len(stops), 2):
        offset = stops[i]
        if isinstance(offset, str) or not 0 <= offset <= 1:
            raise ValueError(f"gradient stop at index {i} must be a number in [0..1]")
        if not isinstance(stops[i + 1], str):
            raise ValueError(f"gradient color at index {i + 1} must be a string")
    return stops


class ShapeBase(WireModel):
    id: str
    role: str | None = None
    opacity: float | None = Field(default=None, ge=0, le=1)
    fill: str | None = None
    stroke: str | None = None
    stroke_width: float | None = Field(default=None, ge=0, le=20)

    fill_linear_gradient_start_point: GradientPoint | None = None
    fill_linear_gradient_end_point: GradientPoint | None = None
    fill_linear_gradient_color_stops: list[float | str] | None = None

    fill_radial_gradient_start_point: GradientPoint | None = None
    fill_radial_gradient_end_point: GradientPoint | None = None
    fill_radial_gradient_start_radius: float | None = Field(default=None, ge=0)
    fill_radial_gradient_end_radius: float | None = Field(default=None, ge=0)
    fill_radial_gradient_color_stops: list[float | str] | None = None

    @field_validator("fill_linear_gradient_color_stops", "fill_radial_gradient_color_stops")
    @classmethod
    def _validate_stops(cls, v: list[float | str] | None) -> list[float | str] | None:
        return check_color_stops(v)

    @property
    def has_gradient(self) -> bool:
        return bool(self.fill_linear_gradient_color_stops or self.fill_radial_gradient_color_stops)


class RectShape(ShapeBase):
    type: Literal["rect"] = "rect"
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    corner_radius: float | None = Field(default=None, ge=0)


class CircleShape(ShapeBase):
    type: Literal["circle"] = "circle"
    x: float
    y: float
    radius: float = Field(ge=0)


class EllipseShape(ShapeBase):
    type: Literal["ellipse"] = "ellipse"
    x: float
    y: float
    radius_x: float = Field(ge=0)
    radius_y: float = Field(ge=0)


class LineShape(ShapeBase):
    type: Literal["line"] = "line"
    points: list[float] = Field(max_length=200)

    @field_validator("points")
    @classmethod
    def _even_points(cls, v: list[float]) -> list[float]:
        if len(v) % 2 != 0:
            raise ValueError("points array must have an even number of elements")
        return v


class PolylineShape(ShapeBase):
    type: Literal["polyline"] = "polyline"
    points: list[float] = Field(max_length=200)
    closed: bool | None = None


class PolygonShape(ShapeBase):
    type: Literal["polygon"] = "polygon"
    points: list[float] = Field(max_length=200)


class PathShape(ShapeBase):
    type: Literal["path"] = "path"
    d: str = Field(max_length=800)


class TextShape(ShapeBase):
    type: Literal["text"] = "text"
    x: float
    y: float
    text: str = Field(max_length=80)
    font_size: float | None = Field(default=None, ge=6, le=96)
    font_family: str | None = None
    align: Literal["left", "center", "right"] | None = None


VectorShape = Annotated[
    Union[
        RectShape,
        CircleShape,
        EllipseShape,
        LineShape,
        PolylineShape,
        PolygonShape,
        PathShape,
        TextShape,
    ],
    Field(discriminator="type"),
]

SHAPE_TYPES = frozenset(
    {"rect", "circle", "ellipse", "line", "polyline", "polygon", "path", "text"}
)

# Shapes that carry a flat [x1, y1, x2, y2, ...] point list.
POINT_SHAPES = (LineShape, PolylineShape, PolygonShape)
# Shapes anchored at a single (x, y).
ANCHORED_SHAPES = (RectShape, CircleShape, EllipseShape, TextShape)

_shape_list_adapter: TypeAdapter[list[VectorShape]] = TypeAdapter(list[VectorShape])


def parse_shapes(raw: list[dict[str, Any]]) -> list[VectorShape]:
    """Validate plain dicts (templates, fixtures) into typed shapes."""
    return _shape_list_adapter.validate_python(raw)
