# scenedirector/scene/commands.py
"""
Drawing command grammar.

A closed, ``type``-discriminated set of mutations over scene objects plus the
``CommandEnvelope`` wrapper the model (or an operator) submits. ``Patch`` has
no ``id``/``type`` members and forbids unknown keys, so a patch that tries to
rewrite identity never validates.
"""

from __future__ import annotations

from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import ConfigDict, Field, field_validator, model_serializer, model_validator

from ..config import MAX_SHAPES_PER_OBJECT
from .objects import (
    Gradient,
    ObjectStatus,
    Point,
    SceneIntent,
    SceneLayer,
    SceneObject,
    check_unique_shape_ids,
)
from .shapes import VectorShape, WireModel


# =============================================================================
# Patches
# =============================================================================

class PatchTransform(WireModel):
    """Partial transform; values are saturated into range downstream."""

    model_config = ConfigDict(extra="forbid")

    x: float | None = None
    y: float | None = None
    scale: float | None = None
    rotation: float | None = None


class Patch(WireModel):
    model_config = ConfigDict(extra="forbid")

    layer: SceneLayer | None = None
    status: ObjectStatus | None = None
    transform: PatchTransform | None = None
    semantic_tag: str | None = Field(default=None, min_length=1, max_length=32)
    shapes: list[VectorShape] | None = Field(
        default=None, min_length=1, max_length=MAX_SHAPES_PER_OBJECT
    )

    @field_validator("shapes")
    @classmethod
    def _unique_shape_ids(cls, shapes: list[VectorShape] | None) -> list[VectorShape] | None:
        return shapes if shapes is None else check_unique_shape_ids(shapes)

    def touched_fields(self) -> list[str]:
        """Wire names of the fields this patch actually changes."""
        return list(self.to_wire().keys())


# =============================================================================
# Commands
# =============================================================================

class SetSceneIntent(WireModel):
    type: Literal["set_scene_intent"] = "set_scene_intent"
    intent: SceneIntent | None

    @model_serializer(mode="wrap")
    def _keep_null_intent(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        data.setdefault("intent", None)
        return data


class AddPreviewObject(WireModel):
    type: Literal["add_preview_object"] = "add_preview_object"
    object: SceneObject

    @field_validator("object")
    @classmethod
    def _must_be_preview(cls, obj: SceneObject) -> SceneObject:
        if obj.status != "preview":
            raise ValueError("object.status must be preview")
        return obj


class UpdatePreviewObject(WireModel):
    type: Literal["update_preview_object"] = "update_preview_object"
    id: str
    patch: Patch


class CommitPreviewObject(WireModel):
    type: Literal["commit_preview_object"] = "commit_preview_object"
    id: str


class CancelPreviewObject(WireModel):
    type: Literal["cancel_preview_object"] = "cancel_preview_object"
    id: str


class AddObject(WireModel):
    type: Literal["add_object"] = "add_object"
    object: SceneObject

    @field_validator("object")
    @classmethod
    def _must_be_committed(cls, obj: SceneObject) -> SceneObject:
        if obj.status != "committed":
            raise ValueError("object.status must be committed")
        return obj


class UpdateObject(WireModel):
    type: Literal["update_object"] = "update_object"
    id: str
    patch: Patch


class DeleteObject(WireModel):
    type: Literal["delete_object"] = "delete_object"
    id: str


class SetBackgroundGradient(WireModel):
    type: Literal["set_background_gradient"] = "set_background_gradient"
    gradient: Gradient


class SetGroundFill(WireModel):
    type: Literal["set_ground_fill"] = "set_ground_fill"
    fill: str


class SetPath(WireModel):
    type: Literal["set_path"] = "set_path"
    id: str
    bezier_points: list[Point]
    width_near: float = Field(ge=0, le=50)
    width_far: float = Field(ge=0, le=50)


class BatchCommand(WireModel):
    type: Literal["batch"] = "batch"
    commands: list[DrawingCommand]


DrawingCommand = Annotated[
    Union[
        SetSceneIntent,
        AddPreviewObject,
        UpdatePreviewObject,
        CommitPreviewObject,
        CancelPreviewObject,
        AddObject,
        UpdateObject,
        DeleteObject,
        SetBackgroundGradient,
        SetGroundFill,
        SetPath,
        BatchCommand,
    ],
    Field(discriminator="type"),
]

BatchCommand.model_rebuild()

COMMAND_TYPES = frozenset(
    {
        "set_scene_intent",
        "add_preview_object",
        "update_preview_object",
        "commit_preview_object",
        "cancel_preview_object",
        "add_object",
        "update_object",
        "delete_object",
        "set_background_gradient",
        "set_ground_fill",
        "set_path",
        "batch",
    }
)

# Commands addressing an existing object through ``id``.
TARGET_ID_COMMANDS = frozenset(
    {
        "update_preview_object",
        "update_object",
        "commit_preview_object",
        "cancel_preview_object",
        "delete_object",
        "set_path",
    }
)

ADD_COMMANDS = (AddPreviewObject, AddObject)
UPDATE_COMMANDS = (UpdatePreviewObject, UpdateObject)


class CommandEnvelope(WireModel):
    commands: list[DrawingCommand]
    notes: str | None = None
    refused: bool | None = None
    refusal_reason: str | None = None

    @model_validator(mode="after")
    def _refused_carries_no_commands(self) -> "CommandEnvelope":
        if self.refused and self.commands:
            raise ValueError("refused envelopes must carry commands: []")
        return self


def refused_envelope(reason: str, notes: str) -> CommandEnvelope:
    return CommandEnvelope(commands=[], refused=True, refusal_reason=reason, notes=notes)


def iter_commands(commands: list[Any], depth: int = 1) -> Iterator[tuple[Any, int]]:
    """Depth-first walk yielding ``(command, depth)``, descending into batches."""
    for cmd in commands:
        yield cmd, depth
        if isinstance(cmd, BatchCommand):
            yield from iter_commands(cmd.commands, depth + 1)
