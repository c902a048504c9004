import copy
from typing import Any

import pytest


TREE_ENVELOPE: dict[str, Any] = {
    "commands": [
        {
            "type": "add_preview_object",
            "object": {
                "id": "tree_1",
                "status": "preview",
                "layer": "ground",
                "transform": {"x": 30, "y": 70, "scale": 1, "rotation": 0},
                "semanticTag": "tree",
                "shapes": [
                    {"id": "trunk", "type": "rect", "x": -3, "y": 0, "width": 6, "height": 20, "fill": "#5D4037"},
                    {"id": "canopy", "type": "circle", "x": 0, "y": -8, "radius": 10, "fill": "#2E7D32"},
                ],
            },
        }
    ]
}


class ScriptedModel:
    """Stands in for Gemini: returns (or raises) the scripted replies in order."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def generate(self, system_instruction, user_prompt, model, thinking_level) -> str:
        self.calls.append({
            "system_instruction": system_instruction,
            "user_prompt": user_prompt,
            "model": model,
            "thinking_level": thinking_level,
        })
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_object(
    object_id: str,
    layer: str = "ground",
    tag: str | None = None,
    status: str = "committed",
    transform: dict | None = None,
    shapes: list[dict] | None = None,
) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "id": object_id,
        "status": status,
        "layer": layer,
        "transform": transform or {"x": 50, "y": 60, "scale": 1, "rotation": 0},
        "shapes": shapes or [{"id": "body", "type": "rect", "x": 0, "y": 0, "width": 10, "height": 10}],
    }
    if tag is not None:
        obj["semanticTag"] = tag
    return obj


@pytest.fixture
def scripted_model():
    return ScriptedModel


@pytest.fixture
def tree_envelope() -> dict[str, Any]:
    return copy.deepcopy(TREE_ENVELOPE)


@pytest.fixture
def obj():
    return make_object
