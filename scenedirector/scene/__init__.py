# scenedirector/scene/__init__.py
"""
Scene Graph Core

Typed shapes/objects, the drawing command grammar and the pure reducer that
applies commands to a scene graph with deterministic paint order.
"""

from .commands import (
    CommandEnvelope,
    DrawingCommand,
    Patch,
    PatchTransform,
    refused_envelope,
)
from .layering import HORIZON_Y, compute_order_key, is_backdrop
from .objects import (
    Gradient,
    Point,
    SceneGraph,
    SceneIntent,
    SceneObject,
    Transform,
    create_empty_scene,
)
from .reducer import apply_command, apply_commands
from .shapes import VectorShape, parse_shapes

__all__ = [
    "CommandEnvelope",
    "DrawingCommand",
    "Gradient",
    "HORIZON_Y",
    "Patch",
    "PatchTransform",
    "Point",
    "SceneGraph",
    "SceneIntent",
    "SceneObject",
    "Transform",
    "VectorShape",
    "apply_command",
    "apply_commands",
    "compute_order_key",
    "create_empty_scene",
    "is_backdrop",
    "parse_shapes",
    "refused_envelope",
]
