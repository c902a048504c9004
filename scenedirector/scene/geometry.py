# scenedirector/scene/geometry.py
"""
Bounding boxes, clamping and translation helpers for scene objects.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable

from ..config import WORLD_MAX, WORLD_MIN
from .objects import SceneObject, Transform
from .shapes import (
    ANCHORED_SHAPES,
    POINT_SHAPES,
    CircleShape,
    EllipseShape,
    PathShape,
    RectShape,
    TextShape,
    VectorShape,
)


PATH_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

DEFAULT_TRANSFORM = {"x": 50.0, "y": 50.0, "scale": 1.0, "rotation": 0.0}
ORIGIN_TRANSFORM = Transform(x=0, y=0, scale=1, rotation=0)


def clamp(n: float, lo: float = WORLD_MIN, hi: float = WORLD_MAX) -> float:
    return max(lo, min(hi, n))


def round2(n: float) -> float:
    """Round half up to two decimals."""
    return math.floor(n * 100 + 0.5) / 100


def clamp_transform(
    x: float | None = None,
    y: float | None = None,
    scale: float | None = None,
    rotation: float | None = None,
) -> Transform:
    """Saturate every field into range; missing fields take the defaults."""
    return Transform(
        x=clamp(DEFAULT_TRANSFORM["x"] if x is None else x),
        y=clamp(DEFAULT_TRANSFORM["y"] if y is None else y),
        scale=clamp(DEFAULT_TRANSFORM["scale"] if scale is None else scale, 0.1, 3),
        rotation=clamp(DEFAULT_TRANSFORM["rotation"] if rotation is None else rotation, -180, 180),
    )


@dataclass(frozen=True)
class BBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def union(self, other: "BBox") -> "BBox":
        return BBox(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )


def _bbox_of_pairs(values: list[float]) -> BBox | None:
    xs = values[0::2]
    ys = values[1::2]
    n = min(len(xs), len(ys))
    if n == 0:
        return None
    return BBox(min(xs[:n]), min(ys[:n]), max(xs[:n]), max(ys[:n]))


def shape_bbox(shape: VectorShape) -> BBox | None:
    if isinstance(shape, RectShape):
        return BBox(shape.x, shape.y, shape.x + shape.width, shape.y + shape.height)
    if isinstance(shape, CircleShape):
        r = shape.radius
        return BBox(shape.x - r, shape.y - r, shape.x + r, shape.y + r)
    if isinstance(shape, EllipseShape):
        return BBox(
            shape.x - shape.radius_x,
            shape.y - shape.radius_y,
            shape.x + shape.radius_x,
            shape.y + shape.radius_y,
        )
    if isinstance(shape, POINT_SHAPES):
        return _bbox_of_pairs(shape.points)
    if isinstance(shape, PathShape):
        return _bbox_of_pairs([float(m) for m in PATH_NUMBER_RE.findall(shape.d)])
    if isinstance(shape, TextShape):
        return BBox(shape.x, shape.y, shape.x, shape.y)
    return None


def local_bbox(shapes: Iterable[VectorShape]) -> BBox | None:
    box: BBox | None = None
    for shape in shapes:
        bb = shape_bbox(shape)
        if bb is None:
            continue
        box = bb if box is None else box.union(bb)
    return box


def world_bbox(obj: SceneObject) -> BBox | None:
    """Object bbox in world units (translation and scale, rotation ignored)."""
    bb = local_bbox(obj.shapes)
    if bb is None:
        return None
    t = obj.transform
    return BBox(
        round2(t.x + bb.min_x * t.scale),
        round2(t.y + bb.min_y * t.scale),
        round2(t.x + bb.max_x * t.scale),
        round2(t.y + bb.max_y * t.scale),
    )


def shift_path_d(d: str, dx: float, dy: float) -> str:
    """Shift every coordinate pair in a path string; values are clamped and rounded."""
    counter = 0

    def _shift(match: re.Match[str]) -> str:
        nonlocal counter
        value = float(match.group(0)) - (dx if counter % 2 == 0 else dy)
        counter += 1
        return _format_number(round2(clamp(value)))

    return PATH_NUMBER_RE.sub(_shift, d)


def _format_number(n: float) -> str:
    return str(int(n)) if n == int(n) else str(n)


def shift_shape(shape: VectorShape, dx: float, dy: float, saturate: bool) -> VectorShape:
    """
    Translate a shape by (-dx, -dy).

    With ``saturate`` the results are clamped into world range, otherwise
    they are rounded to two decimals.
    """
    fix = clamp if saturate else round2

    if isinstance(shape, ANCHORED_SHAPES):
        return shape.model_copy(update={"x": fix(shape.x - dx), "y": fix(shape.y - dy)})
    if isinstance(shape, POINT_SHAPES):
        points = [fix(p - (dx if i % 2 == 0 else dy)) for i, p in enumerate(shape.points)]
        return shape.model_copy(update={"points": points})
    if isinstance(shape, PathShape):
        return shape.model_copy(update={"d": shift_path_d(shape.d, dx, dy)})
    return shape
