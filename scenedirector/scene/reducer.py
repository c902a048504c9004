# scenedirector/scene/reducer.py
"""
Scene graph reducer.

Pure functions: ``apply_commands(scene, commands)`` never mutates its input
and never reads clocks, randomness or any other external state. Operations on
missing ids, double commits and the like are identity operations.

Per-object lifecycle: absent -> preview -> committed -> absent.
"""

from __future__ import annotations

from typing import Iterable

from .commands import (
    AddObject,
    AddPreviewObject,
    BatchCommand,
    CancelPreviewObject,
    CommitPreviewObject,
    DeleteObject,
    DrawingCommand,
    Patch,
    SetSceneIntent,
    UpdateObject,
    UpdatePreviewObject,
)
from .geometry import clamp_transform
from .layering import compute_order_key
from .objects import SceneGraph, SceneObject


def order_key(obj: SceneObject) -> int:
    return compute_order_key(obj.layer, obj.semantic_tag)


def insert_into_order(objects: dict[str, SceneObject], order: list[str], object_id: str) -> list[str]:
    """
    Return ``order`` with ``object_id`` moved to its sorted slot.

    The slot is the first position whose key is strictly greater than the
    object's key, so equal keys keep arrival order.
    """
    key = order_key(objects[object_id])
    without = [oid for oid in order if oid != object_id]

    index = len(without)
    for i, other_id in enumerate(without):
        other = objects.get(other_id)
        if other is not None and order_key(other) > key:
            index = i
            break

    without.insert(index, object_id)
    return without


def merge_patch(existing: SceneObject, patch: Patch) -> SceneObject:
    update: dict[str, object] = {}

    if patch.transform is not None:
        merged = existing.transform.model_dump()
        merged.update(patch.transform.model_dump(exclude_none=True))
        update["transform"] = clamp_transform(**merged)
    if patch.layer is not None:
        update["layer"] = patch.layer
    if patch.semantic_tag is not None:
        update["semantic_tag"] = patch.semantic_tag
    if patch.shapes is not None:
        update["shapes"] = list(patch.shapes)
    # Status only ever moves forward.
    if patch.status == "committed":
        update["status"] = "committed"

    return existing.model_copy(update=update)


def _with(scene: SceneGraph, **changes: object) -> SceneGraph:
    return SceneGraph(
        intent=changes.get("intent", scene.intent),
        objects=changes.get("objects", scene.objects),
        order=changes.get("order", scene.order),
    )


def apply_command(scene: SceneGraph, command: DrawingCommand) -> SceneGraph:
    if isinstance(command, SetSceneIntent):
        return _with(scene, intent=command.intent)

    if isinstance(command, (AddPreviewObject, AddObject)):
        obj = command.object
        if obj.id in scene.objects:
            return scene
        objects = {**scene.objects, obj.id: obj}
        return _with(scene, objects=objects, order=insert_into_order(objects, scene.order, obj.id))

    if isinstance(command, (UpdatePreviewObject, UpdateObject)):
        existing = scene.objects.get(command.id)
        if existing is None:
            return scene
        updated = merge_patch(existing, command.patch)
        objects = {**scene.objects, command.id: updated}
        if order_key(existing) == order_key(updated):
            return _with(scene, objects=objects)
        return _with(scene, objects=objects, order=insert_into_order(objects, scene.order, command.id))

    if isinstance(command, CommitPreviewObject):
        existing = scene.objects.get(command.id)
        if existing is None or existing.status == "committed":
            return scene
        committed = existing.model_copy(update={"status": "committed"})
        return _with(scene, objects={**scene.objects, command.id: committed})

    if isinstance(command, (CancelPreviewObject, DeleteObject)):
        if command.id not in scene.objects:
            return scene
        objects = {oid: obj for oid, obj in scene.objects.items() if oid != command.id}
        return _with(scene, objects=objects, order=[oid for oid in scene.order if oid != command.id])

    if isinstance(command, BatchCommand):
        result = scene
        for inner in command.commands:
            result = apply_command(result, inner)
        return result

    # set_background_gradient / set_ground_fill / set_path are consumed by
    # the renderer from the broadcast envelope.
    return scene


def apply_commands(scene: SceneGraph, commands: Iterable[DrawingCommand]) -> SceneGraph:
    """Apply ``commands`` in order and return a fresh scene graph."""
    result = _with(scene, objects=dict(scene.objects), order=list(scene.order))
    for command in commands:
        result = apply_command(result, command)
    return result
