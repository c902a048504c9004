# scenedirector/ai_pipeline/realism.py
"""
Realism pass.

Objects tagged with a known category but drawn with too few shapes (a lone
circle tagged "tree") are swapped for a canned multi-shape template. Backdrop
objects are snapped to their default band. Pure function of
``(object, utterance)``.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..config import MAX_SHAPES_PER_OBJECT, settings
from ..scene.commands import ADD_COMMANDS, BatchCommand, CommandEnvelope, DrawingCommand
from ..scene.geometry import ORIGIN_TRANSFORM
from ..scene.layering import default_bounds, has_full_canvas_intent, is_backdrop
from ..scene.objects import SceneObject
from ..scene.shapes import RectShape, VectorShape, parse_shapes
from .stabilizer import is_band_stack


MIN_SHAPES_BY_TAG: dict[str, int] = {
    "tree": 2,
    "house": 3,
    "person": 4,
    "car": 3,
    "flower": 2,
    "bush": 2,
    "mountain": 1,
    "sun": 1,
    "cloud": 1,
    "bird": 2,
    "default": 1,
}

_SIMPLE_WORDS = ("simple", "minimal", "basic")
_REALISM_WORDS = ("proper", "realistic", "actual shape")


# =============================================================================
# Templates (local coordinates, centered on the object origin)
# =============================================================================

_TEMPLATES: dict[str, list[dict[str, Any]]] = {
    "tree": [
        {"id": "trunk_1", "type": "rect", "x": -3, "y": 0, "width": 6, "height": 20, "fill": "#5D4037"},
        {"id": "canopy_1", "type": "ellipse", "x": 0, "y": -8, "radiusX": 12, "radiusY": 10, "fill": "#2E7D32"},
        {"id": "canopy_2", "type": "ellipse", "x": -6, "y": -4, "radiusX": 8, "radiusY": 7, "fill": "#388E3C"},
        {"id": "canopy_3", "type": "ellipse", "x": 6, "y": -4, "radiusX": 8, "radiusY": 7, "fill": "#388E3C"},
        {"id": "highlight_1", "type": "ellipse", "x": -3, "y": -10, "radiusX": 4, "radiusY": 3,
         "fill": "#43A047", "opacity": 0.6},
    ],
    "house": [
        {"id": "base_1", "type": "rect", "x": -15, "y": 0, "width": 30, "height": 25, "fill": "#8D6E63"},
        {"id": "roof_1", "type": "polygon", "points": [-18, 0, 18, 0, 0, -15], "fill": "#5D4037"},
        {"id": "door_1", "type": "rect", "x": -4, "y": 10, "width": 8, "height": 15, "fill": "#3E2723"},
        {"id": "window_1", "type": "rect", "x": -12, "y": 5, "width": 6, "height": 6,
         "fill": "#90CAF9", "stroke": "#5D4037", "strokeWidth": 1},
        {"id": "window_2", "type": "rect", "x": 6, "y": 5, "width": 6, "height": 6,
         "fill": "#90CAF9", "stroke": "#5D4037", "strokeWidth": 1},
        {"id": "chimney_1", "type": "rect", "x": 8, "y": -12, "width": 5, "height": 10, "fill": "#795548"},
    ],
    "person": [
        {"id": "head_1", "type": "circle", "x": 0, "y": -18, "radius": 4, "fill": "#FFCCBC"},
        {"id": "body_1", "type": "rect", "x": -4, "y": -14, "width": 8, "height": 14, "fill": "#1976D2"},
        {"id": "arm_l_1", "type": "rect", "x": -7, "y": -12, "width": 3, "height": 10, "fill": "#1976D2"},
        {"id": "arm_r_1", "type": "rect", "x": 4, "y": -12, "width": 3, "height": 10, "fill": "#1976D2"},
        {"id": "leg_l_1", "type": "rect", "x": -3, "y": 0, "width": 3, "height": 12, "fill": "#424242"},
        {"id": "leg_r_1", "type": "rect", "x": 0, "y": 0, "width": 3, "height": 12, "fill": "#424242"},
    ],
    "car": [
        {"id": "body_1", "type": "rect", "x": -18, "y": -6, "width": 36, "height": 10,
         "fill": "#D32F2F", "cornerRadius": 2},
        {"id": "cabin_1", "type": "polygon", "points": [-10, -6, 10, -6, 6, -14, -6, -14], "fill": "#90CAF9"},
        {"id": "wheel_f_1", "type": "circle", "x": -10, "y": 4, "radius": 4, "fill": "#212121"},
        {"id": "wheel_b_1", "type": "circle", "x": 10, "y": 4, "radius": 4, "fill": "#212121"},
        {"id": "hubcap_f_1", "type": "circle", "x": -10, "y": 4, "radius": 2, "fill": "#9E9E9E"},
        {"id": "hubcap_b_1", "type": "circle", "x": 10, "y": 4, "radius": 2, "fill": "#9E9E9E"},
    ],
    "bush": [
        {"id": "base_1", "type": "ellipse", "x": 0, "y": 0, "radiusX": 10, "radiusY": 6, "fill": "#2E7D32"},
        {"id": "top_1", "type": "ellipse", "x": 0, "y": -4, "radiusX": 8, "radiusY": 5, "fill": "#388E3C"},
        {"id": "highlight_1", "type": "ellipse", "x": -3, "y": -5, "radiusX": 3, "radiusY": 2,
         "fill": "#43A047", "opacity": 0.5},
    ],
    "flower": [
        {"id": "stem_1", "type": "rect", "x": -1, "y": 0, "width": 2, "height": 10, "fill": "#4CAF50"},
        {"id": "center_1", "type": "circle", "x": 0, "y": -2, "radius": 3, "fill": "#FFC107"},
        {"id": "petal_1", "type": "ellipse", "x": 0, "y": -6, "radiusX": 2, "radiusY": 3, "fill": "#E91E63"},
        {"id": "petal_2", "type": "ellipse", "x": 4, "y": -2, "radiusX": 3, "radiusY": 2, "fill": "#E91E63"},
        {"id": "petal_3", "type": "ellipse", "x": -4, "y": -2, "radiusX": 3, "radiusY": 2, "fill": "#E91E63"},
        {"id": "petal_4", "type": "ellipse", "x": 3, "y": 1, "radiusX": 2, "radiusY": 3, "fill": "#E91E63"},
        {"id": "petal_5", "type": "ellipse", "x": -3, "y": 1, "radiusX": 2, "radiusY": 3, "fill": "#E91E63"},
    ],
    "mountain": [
        {"id": "main_1", "type": "polygon", "points": [-25, 20, 25, 20, 0, -20], "fill": "#5D4037"},
        {"id": "snow_1", "type": "polygon", "points": [-8, -8, 8, -8, 0, -20], "fill": "#FAFAFA"},
        {"id": "shadow_1", "type": "polygon", "points": [0, -20, 15, 5, 25, 20, 0, 20],
         "fill": "#4E342E", "opacity": 0.4},
    ],
    "cloud": [
        {"id": "puff_1", "type": "ellipse", "x": 0, "y": 0, "radiusX": 12, "radiusY": 6, "fill": "#FAFAFA"},
        {"id": "puff_2", "type": "ellipse", "x": -8, "y": 2, "radiusX": 8, "radiusY": 5, "fill": "#ECEFF1"},
        {"id": "puff_3", "type": "ellipse", "x": 8, "y": 2, "radiusX": 8, "radiusY": 5, "fill": "#ECEFF1"},
        {"id": "puff_4", "type": "ellipse", "x": 0, "y": -3, "radiusX": 8, "radiusY": 4, "fill": "#FFFFFF"},
    ],
    "sun": [
        {
            "id": "glow_1", "type": "circle", "x": 0, "y": 0, "radius": 10,
            "fill": "#FFF59D", "opacity": 0.3,
            "fillRadialGradientStartPoint": {"x": 0, "y": 0},
            "fillRadialGradientEndPoint": {"x": 0, "y": 0},
            "fillRadialGradientStartRadius": 0,
            "fillRadialGradientEndRadius": 10,
            "fillRadialGradientColorStops": [0, "#FFEB3B", 0.5, "#FFF59D", 1, "rgba(255,235,59,0)"],
        },
        {"id": "core_1", "type": "circle", "x": 0, "y": 0, "radius": 6, "fill": "#FFEB3B"},
    ],
    "bird": [
        {"id": "body_1", "type": "ellipse", "x": 0, "y": 0, "radiusX": 3, "radiusY": 2, "fill": "#37474F"},
        {"id": "wing_l_1", "type": "path", "d": "M-2,-1 Q-6,-4 -8,0", "stroke": "#37474F", "strokeWidth": 1.5},
        {"id": "wing_r_1", "type": "path", "d": "M2,-1 Q6,-4 8,0", "stroke": "#37474F", "strokeWidth": 1.5},
    ],
    "silhouette": [
        {"id": "body_1", "type": "polygon", "points": [-8, 10, 8, 10, 10, -5, 0, -15, -10, -5],
         "fill": "#546E7A", "stroke": "#37474F", "strokeWidth": 1},
        {"id": "detail_1", "type": "circle", "x": 0, "y": -8, "radius": 3, "fill": "#78909C"},
        {"id": "base_1", "type": "rect", "x": -6, "y": 8, "width": 12, "height": 4, "fill": "#455A64"},
    ],
}

_BACKDROP_STOPS = {
    "sky": [0, "#1565C0", 0.4, "#42A5F5", 0.7, "#90CAF9", 0.9, "#E1F5FE", 1, "#FFE8B0"],
    "grass": [0, "#7CB342", 0.3, "#8BC34A", 0.7, "#689F38", 1, "#558B2F"],
}


def _backdrop_template(kind: str, full_canvas: bool) -> list[VectorShape]:
    b = default_bounds(kind, full_canvas)
    return parse_shapes([
        {
            "id": f"{kind}_bg_1",
            "type": "rect",
            "x": b.x1,
            "y": b.y1,
            "width": b.width,
            "height": b.height,
            "fillLinearGradientStartPoint": {"x": 50, "y": b.y1},
            "fillLinearGradientEndPoint": {"x": 50, "y": b.y2},
            "fillLinearGradientColorStops": _BACKDROP_STOPS[kind],
        }
    ])


_BACKDROP_KINDS: dict[str, str] = {"sky": "sky", "grass": "grass", "field": "grass", "ground": "grass"}


def template_shapes(tag: str, utterance: str) -> list[VectorShape]:
    """Template for ``tag``; unknown tags get a generic silhouette."""
    lower = tag.lower()
    if lower in _BACKDROP_KINDS:
        return _backdrop_template(_BACKDROP_KINDS[lower], has_full_canvas_intent(utterance))
    raw = _TEMPLATES.get(lower, _TEMPLATES["silhouette"])
    return parse_shapes(raw)[:MAX_SHAPES_PER_OBJECT]


# =============================================================================
# Pass
# =============================================================================

def min_shapes_for(tag: str, table: Mapping[str, int] = MIN_SHAPES_BY_TAG) -> int:
    return table.get(tag.lower(), table.get("default", 1))


def needs_enrichment(
    obj: SceneObject,
    utterance: str,
    table: Mapping[str, int] = MIN_SHAPES_BY_TAG,
) -> bool:
    lower = utterance.lower()
    if any(word in lower for word in _SIMPLE_WORDS):
        return False
    if len(obj.shapes) < min_shapes_for(obj.tag, table):
        return True
    return any(word in lower for word in _REALISM_WORDS)


def place_backdrop(obj: SceneObject, utterance: str) -> SceneObject:
    """Stretch backdrop rects over the default band and pin the transform to the origin."""
    if not is_backdrop(obj.semantic_tag):
        return obj
    b = default_bounds(obj.tag, has_full_canvas_intent(utterance))
    shapes = [
        s.model_copy(update={"x": b.x1, "y": b.y1, "width": b.width, "height": b.height})
        if isinstance(s, RectShape) else s
        for s in obj.shapes
    ]
    return obj.model_copy(update={"shapes": shapes, "transform": ORIGIN_TRANSFORM})


def enrich_object(
    obj: SceneObject,
    utterance: str,
    table: Mapping[str, int] = MIN_SHAPES_BY_TAG,
) -> SceneObject:
    if is_backdrop(obj.semantic_tag):
        # Band stacks were already fitted to their band by the stabilizer.
        if is_band_stack(obj.shapes, settings.thresholds):
            return obj
        obj = place_backdrop(obj, utterance)
    if needs_enrichment(obj, utterance, table):
        obj = obj.model_copy(update={"shapes": template_shapes(obj.semantic_tag or "object", utterance)})
    return obj


def apply_realism_commands(
    commands: list[DrawingCommand],
    utterance: str,
    table: Mapping[str, int] = MIN_SHAPES_BY_TAG,
) -> list[DrawingCommand]:
    out: list[DrawingCommand] = []
    for cmd in commands:
        if isinstance(cmd, ADD_COMMANDS):
            obj = enrich_object(cmd.object, utterance, table)
            out.append(cmd.model_copy(update={"object": obj}))
        elif isinstance(cmd, BatchCommand):
            out.append(cmd.model_copy(
                update={"commands": apply_realism_commands(cmd.commands, utterance, table)}
            ))
        else:
            out.append(cmd)
    return out


def apply_realism_pass(
    envelope: CommandEnvelope,
    utterance: str,
    table: Mapping[str, int] = MIN_SHAPES_BY_TAG,
) -> CommandEnvelope:
    commands = apply_realism_commands(envelope.commands, utterance, table)
    return envelope.model_copy(update={"commands": commands})
