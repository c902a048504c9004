# scenedirector/ai_pipeline/stabilizer.py
"""
Geometric stabilizer.

Runs on a validated, safety-guarded envelope and keeps every new or patched
object on-canvas and internally consistent no matter how the model chose its
coordinates:

1. Shape hygiene      - widen hairline paths, drop auto-generated direction
                        indicators from people, drop decorative specks from
                        backdrops.
2. Clamp              - saturate transform fields into their declared range.
3. Local rebase       - shapes authored in world space are moved back around
                        the object origin and the offset folded into transform.
4. Coverage           - skies/grounds/full-canvas backdrops snap to their band,
                        band stacks are re-tiled to cover it exactly.
5. Fit to band        - nudge the object so its world bbox stays inside its
                        layer band.

Update patches get the band-aware merge and a clamp of whichever transform
fields they carry.
"""

from __future__ import annotations

import math
import re
from typing import Literal

from ..config import StabilizerThresholds, settings
from ..scene.commands import (
    ADD_COMMANDS,
    UPDATE_COMMANDS,
    BatchCommand,
    CommandEnvelope,
    DrawingCommand,
    Patch,
    PatchTransform,
)
from ..scene.geometry import (
    ORIGIN_TRANSFORM,
    clamp,
    clamp_transform,
    local_bbox,
    round2,
    shape_bbox,
    shift_shape,
)
from ..scene.layering import band_for_layer
from ..scene.objects import SceneGraph, SceneObject
from ..scene.shapes import (
    LineShape,
    PathShape,
    PolylineShape,
    RectShape,
    VectorShape,
)


CoverageMode = Literal["default", "full_canvas"]

_FULL_CANVAS_RES = (
    re.compile(r"\b(full|whole|entire)\s+(canvas|screen)\b", re.IGNORECASE),
    re.compile(r"\bcover\s+(the\s+)?(canvas|screen)\b", re.IGNORECASE),
    re.compile(r"\bfill\s+(the\s+)?(canvas|screen)\b", re.IGNORECASE),
    re.compile(r"\bbackground\b", re.IGNORECASE),
)
_INDICATOR_RE = re.compile(
    r"\b(path|arrow|direction\s*line|indicator|show\s*direction|point\s*(to|at|towards))\b",
    re.IGNORECASE,
)
_TEXTURE_RE = re.compile(
    r"\b(texture|pattern|rows|row|detailed|details|tufts|rice|plants|grass\s*blades?)\b",
    re.IGNORECASE,
)
_SKY_RE = re.compile(r"\bsky\b", re.IGNORECASE)
_BACKGROUND_RE = re.compile(r"\bbackground\b", re.IGNORECASE)
_SKY_OR_BG_RE = re.compile(r"\b(sky|background)\b", re.IGNORECASE)
_SCALE_RE = re.compile(r"\b(scale|bigger|smaller|expand|stretch|fill|cover)\b", re.IGNORECASE)

_SIMPLIFIABLE_BACKDROPS = frozenset(
    {
        "sky", "field", "grass", "ground", "paddy_field", "water", "sand",
        "backdrop", "background_backdrop", "paddy", "meadow", "lawn",
    }
)
_GROUND_WORDS = ("ground", "field", "grass", "floor")
_INDICATOR_IDS = ("indicator", "arrow", "direction")


def coverage_mode(utterance: str) -> CoverageMode:
    if any(rx.search(utterance or "") for rx in _FULL_CANVAS_RES):
        return "full_canvas"
    return "default"


# =============================================================================
# Shape hygiene
# =============================================================================

def boost_visibility(obj: SceneObject, thresholds: StabilizerThresholds) -> SceneObject:
    changed = False
    shapes: list[VectorShape] = []
    for shape in obj.shapes:
        if isinstance(shape, PathShape) and (shape.stroke_width or 0) < thresholds.path_min_stroke:
            shape = shape.model_copy(update={"stroke_width": thresholds.path_boost_width})
            changed = True
        shapes.append(shape)
    return obj.model_copy(update={"shapes": shapes}) if changed else obj


def filter_indicator_shapes(obj: SceneObject, utterance: str) -> SceneObject:
    """Drop direction arrows/indicators the model likes to attach to people."""
    if _INDICATOR_RE.search(utterance) or obj.tag not in ("person", "people"):
        return obj

    def _keep(shape: VectorShape) -> bool:
        shape_id = shape.id.lower()
        if any(word in shape_id for word in _INDICATOR_IDS):
            return False
        if isinstance(shape, (LineShape, PolylineShape, PathShape)):
            stroke = (shape.stroke or "").lower()
            if "point" in shape_id or "dashed" in stroke:
                return False
        return True

    kept = [s for s in obj.shapes if _keep(s)]
    if not kept or len(kept) == len(obj.shapes):
        return obj
    return obj.model_copy(update={"shapes": kept})


def _is_significant(shape: VectorShape) -> bool:
    if isinstance(shape, (LineShape, PolylineShape)):
        return False
    if isinstance(shape, (RectShape, PathShape)):
        return True
    bb = shape_bbox(shape)
    if bb is None:
        return False
    return bb.width >= 25 or bb.height >= 15 or bb.width * bb.height >= 600


def simplify_backdrop(obj: SceneObject, utterance: str) -> SceneObject:
    """Backdrops stay flat unless the user asked for texture or detail."""
    if obj.tag not in _SIMPLIFIABLE_BACKDROPS or _TEXTURE_RE.search(utterance):
        return obj

    kept = [s for s in obj.shapes if s.has_gradient or _is_significant(s)]
    if not kept:
        first = next((s for s in obj.shapes if isinstance(s, (RectShape, PathShape))), None)
        if first is None:
            return obj
        kept = [first]
    if len(kept) == len(obj.shapes):
        return obj
    return obj.model_copy(update={"shapes": kept})


# =============================================================================
# Band stacks
# =============================================================================

def is_band_rect(shape: VectorShape, thresholds: StabilizerThresholds) -> bool:
    return (
        isinstance(shape, RectShape)
        and shape.x <= thresholds.band_max_x
        and shape.width >= thresholds.band_min_width
        and shape.height > 0
    )


def band_rects(shapes: list[VectorShape], thresholds: StabilizerThresholds) -> list[RectShape]:
    rects = [s for s in shapes if is_band_rect(s, thresholds)]
    return sorted(rects, key=lambda r: r.y)


def is_band_stack(shapes: list[VectorShape] | None, thresholds: StabilizerThresholds) -> bool:
    return bool(shapes) and len(band_rects(shapes, thresholds)) >= thresholds.band_min_rects


def normalize_band_stack(
    shapes: list[VectorShape],
    target_height: float,
    thresholds: StabilizerThresholds | None = None,
) -> list[VectorShape] | None:
    """
    Re-tile the full-width rects so they cover ``[0, target_height]`` exactly.

    Heights are whole units where possible: the remainder of the division is
    spread one unit at a time over the first bands, any fractional leftover
    goes to the last band. Non-band shapes are kept after the bands.
    """
    thresholds = thresholds or settings.thresholds
    rects = band_rects(shapes, thresholds)
    if len(rects) < thresholds.band_min_rects:
        return None

    n = len(rects)
    base = math.floor(target_height / n)
    remainder = target_height - base * n

    heights: list[float] = []
    for _ in rects:
        extra = 1 if remainder >= 1 else 0
        remainder -= extra
        heights.append(base + extra)
    heights[-1] += remainder

    out: list[VectorShape] = []
    y = 0.0
    for rect, height in zip(rects, heights):
        out.append(rect.model_copy(update={"x": 0, "y": y, "width": 100, "height": height}))
        y += height

    out.extend(s for s in shapes if not is_band_rect(s, thresholds))
    return out


# =============================================================================
# New objects
# =============================================================================

def rebase_to_local(obj: SceneObject, thresholds: StabilizerThresholds) -> SceneObject:
    """Shapes that sit far from the origin were authored in world space; pull them back."""
    bb = local_bbox(obj.shapes)
    if bb is None:
        return obj
    needs_rebase = (
        bb.min_x > thresholds.rebase_min_margin
        or bb.min_y > thresholds.rebase_min_margin
        or bb.max_x > thresholds.rebase_max_extent
        or bb.max_y > thresholds.rebase_max_extent
    )
    if not needs_rebase:
        return obj

    transform = obj.transform.model_copy(
        update={"x": clamp(obj.transform.x + bb.min_x), "y": clamp(obj.transform.y + bb.min_y)}
    )
    shapes = [shift_shape(s, bb.min_x, bb.min_y, saturate=True) for s in obj.shapes]
    return obj.model_copy(update={"transform": transform, "shapes": shapes})


def shift_to_origin(obj: SceneObject) -> SceneObject:
    """Move shapes so the local bbox starts at (0, 0); the transform absorbs the offset."""
    bb = local_bbox(obj.shapes)
    if bb is None or (bb.min_x == 0 and bb.min_y == 0):
        return obj

    transform = obj.transform.model_copy(
        update={"x": round2(obj.transform.x + bb.min_x), "y": round2(obj.transform.y + bb.min_y)}
    )
    shapes = [shift_shape(s, bb.min_x, bb.min_y, saturate=False) for s in obj.shapes]
    return obj.model_copy(update={"transform": transform, "shapes": shapes})


def apply_coverage(
    obj: SceneObject,
    mode: CoverageMode,
    utterance: str,
    thresholds: StabilizerThresholds,
) -> SceneObject:
    tag = obj.tag
    layer = obj.layer
    stacked = is_band_stack(obj.shapes, thresholds)

    force_full = mode == "full_canvas" and (
        layer == "sky"
        or tag == "sky"
        or bool(_SKY_RE.search(utterance))
        or bool(_BACKGROUND_RE.search(utterance))
        or stacked
    )
    if force_full:
        shapes = normalize_band_stack(obj.shapes, 100, thresholds) if stacked else None
        return obj.model_copy(
            update={
                "layer": "background",
                "transform": ORIGIN_TRANSFORM,
                "shapes": shapes or obj.shapes,
            }
        )

    band_min, band_max = band_for_layer(layer)
    target_height = band_max - band_min

    if layer == "sky" and (tag == "sky" or _SKY_RE.search(utterance) or stacked):
        shapes = normalize_band_stack(obj.shapes, target_height, thresholds) if stacked else None
        return obj.model_copy(update={"transform": ORIGIN_TRANSFORM, "shapes": shapes or obj.shapes})

    if layer in ("ground", "foreground") and any(word in tag for word in _GROUND_WORDS):
        shapes = normalize_band_stack(obj.shapes, target_height, thresholds) if stacked else None
        transform = clamp_transform(x=0, y=band_min, scale=1, rotation=0)
        return obj.model_copy(update={"transform": transform, "shapes": shapes or obj.shapes})

    return obj


def fit_to_band(obj: SceneObject, mode: CoverageMode, thresholds: StabilizerThresholds) -> SceneObject:
    """Nudge the object so its world bbox sits inside the band of its layer."""
    bb = local_bbox(obj.shapes)
    if bb is None:
        return obj

    margin = thresholds.fit_margin
    band_min, band_max = (0, 100) if mode == "full_canvas" else band_for_layer(obj.layer)
    t = obj.transform

    min_x = t.x + bb.min_x * t.scale
    max_x = t.x + bb.max_x * t.scale
    min_y = t.y + bb.min_y * t.scale
    max_y = t.y + bb.max_y * t.scale

    dx = 0.0
    dy = 0.0
    if min_x < margin:
        dx = margin - min_x
    elif max_x > 100 - margin:
        dx = 100 - margin - max_x
    if min_y < band_min + margin:
        dy = band_min + margin - min_y
    elif max_y > band_max - margin:
        dy = band_max - margin - max_y

    if dx == 0 and dy == 0:
        return obj
    transform = t.model_copy(update={"x": clamp(t.x + dx), "y": clamp(t.y + dy)})
    return obj.model_copy(update={"transform": transform})


def _clamped(obj: SceneObject) -> SceneObject:
    t = obj.transform
    return obj.model_copy(update={"transform": clamp_transform(t.x, t.y, t.scale, t.rotation)})


def stabilize_new_object(
    obj: SceneObject,
    mode: CoverageMode,
    utterance: str,
    thresholds: StabilizerThresholds | None = None,
) -> SceneObject:
    thresholds = thresholds or settings.thresholds
    out = boost_visibility(obj, thresholds)
    out = filter_indicator_shapes(out, utterance)
    out = simplify_backdrop(out, utterance)
    out = _clamped(out)
    out = rebase_to_local(out, thresholds)
    out = shift_to_origin(out)
    out = apply_coverage(out, mode, utterance, thresholds)
    out = fit_to_band(out, mode, thresholds)
    return _clamped(out)


# =============================================================================
# Update patches
# =============================================================================

def _normalize_band_patch(
    object_id: str,
    patch: Patch,
    scene: SceneGraph | None,
    mode: CoverageMode,
    utterance: str,
    thresholds: StabilizerThresholds,
) -> Patch:
    """Keep band stacks tiled when a patch resizes or replaces them."""
    current = scene.objects.get(object_id) if scene is not None else None
    if current is None:
        return patch

    layer = current.layer
    band_min, band_max = (0, 100) if mode == "full_canvas" else band_for_layer(layer)
    target_height = band_max - band_min

    band_now = is_band_stack(current.shapes, thresholds)
    band_patch = is_band_stack(patch.shapes, thresholds)
    if not band_now and not band_patch:
        return patch

    scale_intent = bool(_SCALE_RE.search(utterance)) or (
        patch.transform is not None and patch.transform.scale is not None
    )
    wants_sky_or_bg = bool(_SKY_OR_BG_RE.search(utterance)) or current.tag == "sky" or layer == "sky"

    if not scale_intent and not wants_sky_or_bg and mode != "full_canvas":
        if band_patch and patch.shapes is not None:
            shapes = normalize_band_stack(patch.shapes, target_height, thresholds)
            if shapes:
                return patch.model_copy(update={"shapes": shapes})
        return patch

    candidate = patch.shapes if band_patch and patch.shapes is not None else current.shapes
    shapes = normalize_band_stack(candidate, 100 if mode == "full_canvas" else target_height, thresholds)
    if not shapes:
        return patch

    force_full = mode == "full_canvas" and (
        layer == "sky" or current.tag == "sky" or bool(_BACKGROUND_RE.search(utterance))
    )
    if force_full or layer == "sky":
        transform = PatchTransform(x=0, y=0, scale=1, rotation=0)
    else:
        merged = current.transform.model_dump()
        if patch.transform is not None:
            merged.update(patch.transform.model_dump(exclude_none=True))
        transform = PatchTransform(
            x=clamp(merged["x"]), y=clamp(merged["y"]), scale=merged["scale"], rotation=merged["rotation"]
        )

    return patch.model_copy(update={"transform": transform, "shapes": shapes})


def _clamp_patch_transform(patch: Patch) -> Patch:
    t = patch.transform
    if t is None:
        return patch
    clamped = PatchTransform(
        x=None if t.x is None else clamp(t.x),
        y=None if t.y is None else clamp(t.y),
        scale=None if t.scale is None else clamp(t.scale, 0.1, 3),
        rotation=None if t.rotation is None else clamp(t.rotation, -180, 180),
    )
    return patch.model_copy(update={"transform": clamped})


def stabilize_commands(
    commands: list[DrawingCommand],
    utterance: str,
    scene: SceneGraph | None = None,
    thresholds: StabilizerThresholds | None = None,
    mode: CoverageMode | None = None,
) -> list[DrawingCommand]:
    thresholds = thresholds or settings.thresholds
    mode = mode or coverage_mode(utterance)

    out: list[DrawingCommand] = []
    for cmd in commands:
        if isinstance(cmd, ADD_COMMANDS):
            obj = stabilize_new_object(cmd.object, mode, utterance, thresholds)
            out.append(cmd.model_copy(update={"object": obj}))
        elif isinstance(cmd, UPDATE_COMMANDS):
            patch = _normalize_band_patch(cmd.id, cmd.patch, scene, mode, utterance, thresholds)
            out.append(cmd.model_copy(update={"patch": _clamp_patch_transform(patch)}))
        elif isinstance(cmd, BatchCommand):
            inner = stabilize_commands(cmd.commands, utterance, scene, thresholds, mode)
            out.append(cmd.model_copy(update={"commands": inner}))
        else:
            out.append(cmd)
    return out


def stabilize_envelope(
    envelope: CommandEnvelope,
    utterance: str,
    scene: SceneGraph | None = None,
    thresholds: StabilizerThresholds | None = None,
) -> CommandEnvelope:
    commands = stabilize_commands(envelope.commands, utterance, scene, thresholds)
    return envelope.model_copy(update={"commands": commands})
