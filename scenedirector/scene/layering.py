# scenedirector/scene/layering.py
"""
Layer ranks, backdrop classification and default bands.

Paint order is driven by ``compute_order_key``: layers paint
sky < background < ground < foreground, and within a layer backdrop objects
(sky, grass, water...) paint before everything else.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import HORIZON_Y


BACKDROP_TAGS = frozenset(
    {"sky", "field", "grass", "ground", "water", "sand", "background_backdrop", "backdrop"}
)

LAYER_RANK: dict[str, int] = {
    "sky": 0,
    "background": 1,
    "ground": 2,
    "foreground": 3,
}

UNKNOWN_LAYER_RANK = 9

_FULL_CANVAS_PHRASES = (
    "whole canvas",
    "full canvas",
    "entire canvas",
    "fill canvas",
    "top to bottom",
    "cover screen",
    "full screen",
    "cover everything",
    "entire screen",
    "whole screen",
)


@dataclass(frozen=True)
class Bounds:
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


def is_backdrop(semantic_tag: str | None) -> bool:
    if not semantic_tag:
        return False
    return semantic_tag.lower() in BACKDROP_TAGS


def layer_rank(layer: str) -> int:
    return LAYER_RANK.get(layer, UNKNOWN_LAYER_RANK)


def compute_order_key(layer: str, semantic_tag: str | None) -> int:
    return layer_rank(layer) * 100 + (0 if is_backdrop(semantic_tag) else 10)


def has_full_canvas_intent(utterance: str) -> bool:
    lower = utterance.lower()
    return any(phrase in lower for phrase in _FULL_CANVAS_PHRASES)


def default_bounds(semantic_tag: str, full_canvas: bool) -> Bounds:
    """Where a backdrop with this tag lives when nothing else is said."""
    tag = semantic_tag.lower()
    if full_canvas:
        return Bounds(0, 0, 100, 100)
    if tag == "sky":
        return Bounds(0, 0, 100, HORIZON_Y)
    if tag in ("grass", "field", "ground"):
        return Bounds(0, HORIZON_Y, 100, 100)
    return Bounds(0, 0, 100, 100)


def band_for_layer(layer: str) -> tuple[float, float]:
    """Vertical (min_y, max_y) band an object on ``layer`` should stay inside."""
    if layer == "sky":
        return 0, HORIZON_Y
    if layer in ("ground", "foreground"):
        return HORIZON_Y, 100
    return 0, 100
