# scenedirector/ai_pipeline/normalizer.py
"""
Syntactic repair of model output before validation.

The model regularly returns near-miss JSON: a bare command instead of an
envelope, ``object_id`` instead of ``id``, update fields outside ``patch``,
legacy ``x1/y1/x2/y2`` lines. These helpers rewrite such shapes into the
grammar's form. They never authorize anything: destructive commands pass
through untouched for the safety guard to judge.

Every function works on plain JSON values, is pure and is idempotent.
"""

from __future__ import annotations

from typing import Any

from ..config import settings
from ..scene.commands import TARGET_ID_COMMANDS
from ..scene.geometry import clamp


ADD_TYPES = ("add_preview_object", "add_object")
UPDATE_TYPES = ("update_preview_object", "update_object")

_TARGET_ALIASES = ("objectId", "object_id")
_PATCH_FIELDS = ("transform", "shapes", "layer", "status", "semanticTag")
_DEFAULT_SYNTH_TRANSFORM = {"x": 50, "y": 70, "scale": 1, "rotation": 0}


def normalize_envelope(candidate: Any, max_batch_depth: int | None = None) -> Any:
    """Coerce ``candidate`` toward ``{"commands": [...], ...}``.

    Batches nested deeper than ``max_batch_depth`` are left as they came in;
    the validator rejects them.
    """
    if not isinstance(candidate, dict):
        return candidate

    if isinstance(candidate.get("envelope"), dict):
        candidate = candidate["envelope"]

    if "commands" not in candidate:
        if any(k in candidate for k in ("refused", "refusalReason", "notes")):
            candidate = {**candidate, "commands": []}
        elif isinstance(candidate.get("type"), str) or isinstance(candidate.get("command_type"), str):
            candidate = {"commands": [candidate]}
        else:
            return candidate

    if isinstance(candidate["commands"], list):
        max_depth = settings.max_batch_depth if max_batch_depth is None else max_batch_depth
        commands = normalize_commands(candidate["commands"], [0], max_depth=max_depth)
        candidate = {**candidate, "commands": commands}
    return candidate


def normalize_commands(
    commands: list[Any],
    counter: list[int] | None = None,
    depth: int = 1,
    max_depth: int | None = None,
) -> list[Any]:
    counter = counter if counter is not None else [0]
    return [normalize_command(cmd, counter, depth, max_depth) for cmd in commands]


def normalize_command(
    cmd: Any,
    counter: list[int] | None = None,
    depth: int = 1,
    max_depth: int | None = None,
) -> Any:
    if not isinstance(cmd, dict):
        return cmd
    counter = counter if counter is not None else [0]
    max_depth = settings.max_batch_depth if max_depth is None else max_depth

    cmd = _rename_command_type(cmd)
    cmd = _synthesize_object(cmd, counter)
    cmd = _normalize_target_id(cmd)
    cmd = _fold_into_patch(cmd)

    kind = cmd.get("type")
    if kind in ADD_TYPES and isinstance(cmd.get("object"), dict):
        obj = cmd["object"]
        if isinstance(obj.get("shapes"), list):
            cmd = {**cmd, "object": {**obj, "shapes": normalize_shapes(obj["shapes"])}}
    elif kind in UPDATE_TYPES and isinstance(cmd.get("patch"), dict):
        patch = cmd["patch"]
        if isinstance(patch.get("shapes"), list):
            cmd = {**cmd, "patch": {**patch, "shapes": normalize_shapes(patch["shapes"])}}
    elif kind == "batch" and isinstance(cmd.get("commands"), list) and depth < max_depth:
        cmd = {**cmd, "commands": normalize_commands(cmd["commands"], counter, depth + 1, max_depth)}

    return cmd


# =============================================================================
# Command-level repairs
# =============================================================================

def _rename_command_type(cmd: dict[str, Any]) -> dict[str, Any]:
    if "type" in cmd or not isinstance(cmd.get("command_type"), str):
        return cmd
    out = {k: v for k, v in cmd.items() if k != "command_type"}
    out["type"] = cmd["command_type"]
    return out


def _synthesize_object(cmd: dict[str, Any], counter: list[int]) -> dict[str, Any]:
    """Build the ``object`` wrapper for add-commands that put its fields at the top level."""
    kind = cmd.get("type")
    if kind not in ADD_TYPES or "object" in cmd:
        return cmd

    object_type = cmd.get("object_type")
    object_id = cmd.get("id") or cmd.get("objectId") or cmd.get("object_id")
    if not isinstance(object_id, str) or not object_id:
        counter[0] += 1
        object_id = f"obj_{object_type or 'obj'}_{counter[0]}"

    shapes = cmd.get("shapes") if isinstance(cmd.get("shapes"), list) else []
    obj: dict[str, Any] = {
        "id": object_id,
        "status": "preview" if kind == "add_preview_object" else "committed",
        "layer": cmd.get("layer") or "ground",
        "transform": cmd.get("transform") or dict(_DEFAULT_SYNTH_TRANSFORM),
        "shapes": [_clamp_shape_coords(s) for s in shapes],
    }
    tag = cmd.get("semanticTag") or object_type
    if isinstance(tag, str) and tag:
        obj["semanticTag"] = tag

    return {"type": kind, "object": obj}


def _clamp_shape_coords(shape: Any) -> Any:
    if not isinstance(shape, dict):
        return shape
    out = dict(shape)
    for key in ("x", "y"):
        if _is_number(out.get(key)):
            out[key] = clamp(out[key])
    if isinstance(out.get("points"), list):
        out["points"] = [clamp(p) if _is_number(p) else p for p in out["points"]]
    return out


def _normalize_target_id(cmd: dict[str, Any]) -> dict[str, Any]:
    if cmd.get("type") not in TARGET_ID_COMMANDS:
        return cmd

    target = None
    for key in ("id", *_TARGET_ALIASES):
        value = cmd.get(key)
        if isinstance(value, str) and value:
            target = value
            break

    out = {k: v for k, v in cmd.items() if k not in _TARGET_ALIASES}
    if target is not None:
        out["id"] = target
    return out


def _fold_into_patch(cmd: dict[str, Any]) -> dict[str, Any]:
    """Move stray update fields (top level or under ``object``) into ``patch``."""
    if cmd.get("type") not in UPDATE_TYPES:
        return cmd

    patch = dict(cmd["patch"]) if isinstance(cmd.get("patch"), dict) else {}
    stray = {k: cmd[k] for k in _PATCH_FIELDS if k in cmd}
    obj = cmd.get("object") if isinstance(cmd.get("object"), dict) else {}

    if not stray and not obj:
        return cmd

    for source in (stray, obj):
        for key in _PATCH_FIELDS:
            if key in patch:
                continue
            value = source.get(key)
            if value is not None and value != "":
                patch[key] = value

    out = {k: v for k, v in cmd.items() if k not in _PATCH_FIELDS and k != "object"}
    out["patch"] = patch
    return out


# =============================================================================
# Shape-level repairs
# =============================================================================

def normalize_shapes(shapes: list[Any]) -> list[Any]:
    out = [normalize_line_shape(s) for s in shapes]
    return _dedupe_shape_ids(out)


def normalize_line_shape(shape: Any) -> Any:
    """``{type: line, x1, y1, x2, y2}`` -> ``{type: line, points: [x1, y1, x2, y2]}``."""
    if not isinstance(shape, dict) or shape.get("type") != "line":
        return shape
    if "points" in shape:
        return shape
    coords = [shape.get(k) for k in ("x1", "y1", "x2", "y2")]
    if not all(_is_number(c) for c in coords):
        return shape
    out = {k: v for k, v in shape.items() if k not in ("x1", "y1", "x2", "y2")}
    out["points"] = coords
    return out


def _dedupe_shape_ids(shapes: list[Any]) -> list[Any]:
    """Fill missing shape ids and suffix repeated ones so ids are unique per object."""
    seen: set[str] = set()
    out = []
    for index, shape in enumerate(shapes):
        if not isinstance(shape, dict):
            out.append(shape)
            continue
        shape_id = shape.get("id")
        if not isinstance(shape_id, str) or not shape_id:
            shape_id = f"{shape.get('type', 'shape')}_{index + 1}"
        base, n = shape_id, 2
        while shape_id in seen:
            shape_id = f"{base}_{n}"
            n += 1
        seen.add(shape_id)
        out.append(shape if shape_id == shape.get("id") else {**shape, "id": shape_id})
    return out


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
