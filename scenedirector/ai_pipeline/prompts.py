# scenedirector/ai_pipeline/prompts.py
"""
Prompt construction for the command director.

The system instruction is static per process (contract + JSON schema); the
user prompt carries the utterance, the current scene and machine-readable
scene facts the model uses for relative placement.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from ..config import HORIZON_Y
from ..scene.commands import CommandEnvelope
from ..scene.geometry import BBox, round2, world_bbox
from ..scene.objects import SceneGraph
from .router import IntentType


_SYSTEM_PROMPT = f"""You are the DrawingCommand generator for a shared, voice-driven canvas.
Turn ONE user utterance into ONE CommandEnvelope JSON object.

OUTPUT CONTRACT
1) Output a single JSON object. No prose, no markdown, no code fences.
2) Envelope: {{ "commands": [ ... ], "refused"?: boolean, "refusalReason"?: string, "notes"?: string }}
3) "commands" is always present, also when refusing ("commands": []).
4) Every command uses the discriminator key "type".
5) Field names are camelCase exactly as in the schema. Commands that target an
   existing object use "id" (never objectId / object_id).
6) If the request is ambiguous or cannot be done safely, refuse:
   {{ "refused": true, "refusalReason": "short_reason", "notes": "message for the user", "commands": [] }}

COMMANDS
set_scene_intent, add_preview_object, update_preview_object, commit_preview_object,
cancel_preview_object, add_object, update_object, delete_object,
set_background_gradient, set_ground_fill, set_path, batch.
- add_preview_object carries object.status="preview"; add_object carries "committed".
- update_* carries "patch" with any of: layer, status, transform, semanticTag, shapes.
  A patch never contains id or type.

OBJECTS AND SHAPES
- Object: {{ id, status, layer (sky|background|ground|foreground), transform {{x,y,scale,rotation}},
  semanticTag?, shapes[1..60] }}.
- Shapes: rect, circle, ellipse, line, polyline, polygon, path, text. Each has a unique "id".
- Shape coordinates are LOCAL to the object, near (0,0). Place the object with transform.x/y.
- Prefer recognizable multi-shape objects (a tree = trunk + canopy, a house = walls + roof + door).

GRADIENTS
- Linear: fillLinearGradientStartPoint, fillLinearGradientEndPoint,
  fillLinearGradientColorStops [offset, color, offset, color, ...] with offset in [0..1].
- Radial: fillRadialGradientStartPoint/EndPoint, fillRadialGradientStartRadius/EndRadius,
  fillRadialGradientColorStops.
- Prefer native gradients for skies and backdrops over stacked rectangles.

BACKDROPS AND LAYERS
- sky backdrop: y=0..{HORIZON_Y}, x=0..100, layer "sky".
- grass/field/ground backdrop: y={HORIZON_Y}..100, layer "ground".
- "whole canvas" / "full screen" / "top to bottom": span y=0..100.
- Paint order: sky < background < ground < foreground; within a layer backdrops
  (sky, grass, field, ground, water, sand) paint behind everything else.
- A sun goes on the sky layer with semanticTag "sun" so it paints over the sky.

GUARDRAILS
- World coordinates 0..100 on both axes, y grows downward.
- transform: x,y in 0..100, scale in 0.1..3, rotation in -180..180.
- Never delete or cancel unless the user explicitly asks to delete/remove/erase/cancel/undo.
- Never change an object's semanticTag unless the user asks to turn it into / convert it.
"""


@lru_cache(maxsize=1)
def build_system_instruction() -> str:
    """System prompt with the envelope JSON schema appended."""
    schema = CommandEnvelope.model_json_schema(by_alias=True)
    return f"{_SYSTEM_PROMPT}\nCOMMAND ENVELOPE JSON SCHEMA\n{json.dumps(schema, separators=(',', ':'))}\n"


# =============================================================================
# Scene context
# =============================================================================

def _anchors(b: BBox) -> dict[str, dict[str, float]]:
    mid_x = round2((b.min_x + b.max_x) / 2)
    mid_y = round2((b.min_y + b.max_y) / 2)
    return {
        "topLeft": {"x": b.min_x, "y": b.min_y},
        "topCenter": {"x": mid_x, "y": b.min_y},
        "topRight": {"x": b.max_x, "y": b.min_y},
        "center": {"x": mid_x, "y": mid_y},
        "bottomLeft": {"x": b.min_x, "y": b.max_y},
        "bottomCenter": {"x": mid_x, "y": b.max_y},
        "bottomRight": {"x": b.max_x, "y": b.max_y},
    }


def build_scene_facts(scene: SceneGraph) -> dict[str, Any]:
    """World bboxes, anchor points and tag index for every object, in paint order."""
    facts: dict[str, Any] = {
        "horizonY": HORIZON_Y,
        "worldBounds": {"minX": 0, "minY": 0, "maxX": 100, "maxY": 100},
        "layers": {
            "skyBand": {"minY": 0, "maxY": HORIZON_Y},
            "groundBand": {"minY": HORIZON_Y, "maxY": 100},
            "background": {"minY": 0, "maxY": 100},
        },
        "objects": [],
        "byTag": {},
    }

    for obj in scene.ordered_objects():
        bb = world_bbox(obj)
        facts["objects"].append({
            "id": obj.id,
            "status": obj.status,
            "layer": obj.layer,
            "semanticTag": obj.semantic_tag,
            "transform": obj.transform.to_wire(),
            "bboxWorld": None if bb is None else {
                "minX": bb.min_x, "minY": bb.min_y, "maxX": bb.max_x, "maxY": bb.max_y,
                "width": round2(bb.width), "height": round2(bb.height),
            },
            "anchors": None if bb is None else _anchors(bb),
            "shapesCount": len(obj.shapes),
            "shapeIds": [s.id for s in obj.shapes][:60],
        })
        if obj.semantic_tag:
            facts["byTag"].setdefault(obj.semantic_tag, []).append(obj.id)

    return facts


def build_scene_summary(scene: SceneGraph) -> str:
    """One human-readable line per object."""
    lines = []
    for obj in scene.ordered_objects():
        t = obj.transform
        lines.append(
            f"{obj.id}: tag={obj.semantic_tag or 'none'}, layer={obj.layer}, status={obj.status}, "
            f"pos=({t.x:.1f},{t.y:.1f}), scale={t.scale:.2f}, shapes={len(obj.shapes)}"
        )
    if scene.intent is not None:
        lines.append(f"intent: {scene.intent.description}")
    return "\n".join(lines)


def build_preview_context(scene: SceneGraph, last_touched_id: str | None) -> str:
    """Targeting rules for pronouns ("it", "that") and bare "commit"."""
    previews = [obj for obj in scene.ordered_objects() if obj.status == "preview"]
    last = scene.objects.get(last_touched_id) if last_touched_id else None

    head = f"LastTouchedObjectId={last_touched_id or 'none'}"
    if last is not None:
        head += f" (tag={last.semantic_tag or 'none'}, status={last.status})"
    lines = [head]

    if not previews:
        lines.append("Active previews: none.")
        lines.append('Target rule: If user says "it/that/this", and LastTouchedObjectId exists, use it. Otherwise refuse.')
        lines.append('Commit rule: If no previews exist, "commit" should refuse.')
        return "\n".join(lines)

    listed = ", ".join(f"{p.id}(tag={p.semantic_tag or 'none'})" for p in previews)
    lines.append(f"Active previews ({len(previews)}): {listed}")
    lines.extend([
        "Target rules:",
        '- For move/scale/rotate edits ("move it", "make it bigger"): target LastTouchedObjectId if it exists.',
        "- For preview-only actions (commit/cancel/update_preview): target a PREVIEW object only.",
        '- If user says "commit/finish" with no noun:',
        "  - If LastTouchedObjectId exists AND it is a preview, commit it.",
        "  - Else if exactly 1 preview exists, commit that preview.",
        '  - Else if multiple previews exist, require a noun/tag (e.g., "commit the mountain") or refuse.',
        '- If user says "commit the <tag>": choose the most recently-added preview with semanticTag=<tag>.',
        "- If still ambiguous, refuse with refused=true.",
    ])
    return "\n".join(lines)


_TASKS = {
    IntentType.LIVE_DRAW: "TASK: Generate commands to fulfill the drawing request. Prefer the preview workflow for new objects.",
    IntentType.COMPOSITION_PASS: "TASK: Improve composition (balance, contrast, harmony) with small, safe adjustments.",
    IntentType.FINAL_RENDER_PLAN: "TASK: Plan cleanup/enhancement steps for a final render. Use as few commands as possible.",
}

_RULES = f"""COORDINATE RULES:
- World is 0..100 for x and y (y grows downward). Horizon is around y={HORIZON_Y}.
- Sky band y=0..{HORIZON_Y}; ground/foreground band y={HORIZON_Y}..100; background anywhere.
- Use LOCAL shape coordinates and place objects with transform.x/transform.y.
- Keep every object fully on screen.

COVERAGE:
- FULL_CANVAS: make the object cover x=0..100, y=0..100.
- DEFAULT_BANDS: sky -> sky band, ground/field -> ground band, other objects -> their layer band.

BANDS:
- When faking a gradient with stacked full-width rects, the bands must be contiguous,
  whole-unit heights, and cover the target height exactly.

RELATIVE PLACEMENT:
- "top/bottom/left/right/center of <object>": use SCENE_FACTS.objects[*].anchors.
- "next to / above / below": derive the transform from the referenced bboxWorld.

EDITING:
- "add a door to the house": update the existing house (copy its shapes and append).
- "bigger/smaller": change transform.scale with update_preview_object/update_object.

SAFETY:
- Do not delete or cancel unless the user explicitly says delete/remove/erase/cancel/undo.
- "add" always creates a NEW object.
- Do not change semanticTag unless the user says turn into/convert/transform.

RESPONSE:
- A single JSON object with "commands": [] even when refused. Never a bare command."""


def build_user_prompt(
    utterance: str,
    intent: IntentType,
    coverage: str,
    scene: SceneGraph | None,
    preview_context: str = "",
) -> str:
    parts = [
        f'USER REQUEST: "{utterance}"',
        "",
        f"INTENT TYPE: {intent.value}",
        f"COVERAGE_MODE: {'FULL_CANVAS' if coverage == 'full_canvas' else 'DEFAULT_BANDS'}",
        "",
    ]

    if scene is not None and scene.order:
        parts.append("CURRENT SCENE STATE (JSON):")
        parts.append(json.dumps(scene.to_wire(), separators=(",", ":")))
        parts.append("")
        parts.append("SCENE_FACTS (machine-readable; use for anchors + relative placement):")
        parts.append(json.dumps(build_scene_facts(scene), separators=(",", ":")))
    else:
        parts.append("CURRENT SCENE STATE: Empty canvas")
    parts.append("")

    if preview_context.strip():
        parts.append("PREVIEW CONTEXT:")
        parts.append(preview_context)
        parts.append("")

    parts.append(_TASKS[intent])
    parts.append("")
    parts.append(_RULES)
    return "\n".join(parts)
