# scenedirector/scene/objects.py
"""
Scene objects and the scene graph.

``SceneGraph.order`` is the paint order (index 0 painted first) and must
always be a permutation of ``SceneGraph.objects`` keys.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator, model_serializer, model_validator

from ..config import MAX_SHAPES_PER_OBJECT
from .shapes import VectorShape, WireModel


SceneLayer = Literal["sky", "background", "ground", "foreground"]
ObjectStatus = Literal["preview", "committed"]


class Point(WireModel):
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)


class Transform(WireModel):
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)
    scale: float = Field(ge=0.1, le=3)
    rotation: float = Field(ge=-180, le=180)


class SceneIntent(WireModel):
    description: str
    mood: Literal["calm", "bright", "dramatic", "sunset"] | None = None
    palette_hint: str | None = None


class GradientStop(WireModel):
    offset: float = Field(ge=0, le=1)
    color: str


class Gradient(WireModel):
    kind: Literal["linear"] = "linear"
    from_: Point = Field(alias="from")
    to: Point
    stops: list[GradientStop]


def check_unique_shape_ids(shapes: list[VectorShape]) -> list[VectorShape]:
    seen: set[str] = set()
    for shape in shapes:
        if shape.id in seen:
            raise ValueError(f"duplicate shape id {shape.id!r}")
        seen.add(shape.id)
    return shapes


class SceneObject(WireModel):
    id: str = Field(min_length=1)
    status: ObjectStatus
    layer: SceneLayer
    transform: Transform
    semantic_tag: str | None = Field(default=None, min_length=1, max_length=32)
    shapes: list[VectorShape] = Field(min_length=1, max_length=MAX_SHAPES_PER_OBJECT)

    @field_validator("shapes")
    @classmethod
    def _unique_shape_ids(cls, shapes: list[VectorShape]) -> list[VectorShape]:
        return check_unique_shape_ids(shapes)

    @property
    def tag(self) -> str:
        """Lower-cased semantic tag, empty when untagged."""
        return (self.semantic_tag or "").lower()


class SceneGraph(WireModel):
    intent: SceneIntent | None = None
    objects: dict[str, SceneObject] = Field(default_factory=dict)
    order: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _order_is_permutation(self) -> "SceneGraph":
        if len(self.order) != len(set(self.order)):
            raise ValueError("order contains duplicate ids")
        if set(self.order) != set(self.objects):
            raise ValueError("order must list exactly the ids in objects")
        for key, obj in self.objects.items():
            if key != obj.id:
                raise ValueError(f"object stored under {key!r} has id {obj.id!r}")
        return self

    @model_serializer(mode="wrap")
    def _keep_null_intent(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        data.setdefault("intent", None)
        return data

    def ordered_objects(self) -> list[SceneObject]:
        return [self.objects[oid] for oid in self.order if oid in self.objects]

    def preview_ids(self) -> list[str]:
        return [obj.id for obj in self.ordered_objects() if obj.status == "preview"]


def create_empty_scene() -> SceneGraph:
    return SceneGraph(intent=None, objects={}, order=[])
