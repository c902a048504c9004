import pytest

from scenedirector.scene import CommandEnvelope, apply_commands, compute_order_key, create_empty_scene
from scenedirector.scene.reducer import merge_patch


def _commands(*raw: dict) -> list:
    return CommandEnvelope.model_validate({"commands": list(raw)}).commands


def _add(obj: dict) -> dict:
    kind = "add_preview_object" if obj["status"] == "preview" else "add_object"
    return {"type": kind, "object": obj}


@pytest.fixture
def scene_with_tree(obj):
    return apply_commands(create_empty_scene(), _commands(_add(obj("tree_1", "ground", "tree"))))


def test_order_keys():
    assert compute_order_key("sky", "sky") == 0
    assert compute_order_key("sky", "sun") == 10
    assert compute_order_key("background", None) == 110
    assert compute_order_key("ground", "GRASS") == 200
    assert compute_order_key("foreground", "person") == 310


@pytest.mark.parametrize("arrival", [("sky", "sun"), ("sun", "sky")])
def test_backdrop_paints_before_object_in_same_layer(obj, arrival):
    objects = {
        "sky": obj("sky", "sky", "sky", transform={"x": 0, "y": 0, "scale": 1, "rotation": 0}),
        "sun": obj("sun", "sky", "sun", shapes=[{"id": "disc", "type": "circle", "x": 0, "y": 0, "radius": 6}]),
    }

    scene = apply_commands(create_empty_scene(), _commands(*[_add(objects[k]) for k in arrival]))

    assert scene.order == ["sky", "sun"]


def test_layers_paint_back_to_front_regardless_of_arrival(obj):
    scene = apply_commands(
        create_empty_scene(),
        _commands(
            _add(obj("person", "foreground", "person")),
            _add(obj("tree", "ground", "tree")),
            _add(obj("grass", "ground", "grass")),
            _add(obj("hills", "background", "mountain")),
            _add(obj("sky", "sky", "sky")),
        ),
    )

    assert scene.order == ["sky", "hills", "grass", "tree", "person"]


def test_equal_keys_keep_arrival_order(obj):
    scene = apply_commands(
        create_empty_scene(),
        _commands(_add(obj("a", tag="tree")), _add(obj("b", tag="bush")), _add(obj("c", tag="rock"))),
    )

    assert scene.order == ["a", "b", "c"]


def test_apply_is_deterministic_and_composable(obj):
    c1 = _commands(_add(obj("a", tag="tree")), _add(obj("sky", "sky", "sky")))
    c2 = _commands(
        {"type": "update_object", "id": "a", "patch": {"transform": {"x": 10}}},
        {"type": "delete_object", "id": "sky"},
    )
    start = create_empty_scene()

    assert apply_commands(start, c1) == apply_commands(start, c1)
    assert apply_commands(apply_commands(start, c1), c2) == apply_commands(start, c1 + c2)


def test_apply_never_mutates_input(scene_with_tree, obj):
    before = scene_with_tree.model_copy(deep=True)

    result = apply_commands(
        scene_with_tree,
        _commands(
            _add(obj("bush_1", tag="bush")),
            {"type": "update_object", "id": "tree_1", "patch": {"layer": "foreground"}},
        ),
    )

    assert scene_with_tree == before
    assert result.objects is not scene_with_tree.objects
    assert result.order is not scene_with_tree.order


def test_noop_commands_still_return_fresh_container(scene_with_tree):
    result = apply_commands(scene_with_tree, _commands({"type": "commit_preview_object", "id": "missing"}))

    assert result == scene_with_tree
    assert result.objects is not scene_with_tree.objects
    assert result.order is not scene_with_tree.order


def test_add_existing_id_is_noop(scene_with_tree, obj):
    result = apply_commands(scene_with_tree, _commands(_add(obj("tree_1", "sky", "cloud"))))

    assert result == scene_with_tree


def test_preview_lifecycle(obj):
    scene = apply_commands(create_empty_scene(), _commands(_add(obj("p", tag="tree", status="preview"))))
    assert scene.preview_ids() == ["p"]

    updated = apply_commands(
        scene, _commands({"type": "update_preview_object", "id": "p", "patch": {"transform": {"x": 20}}})
    )
    assert updated.objects["p"].status == "preview"
    assert updated.objects["p"].transform.x == 20
    assert updated.order == ["p"]

    committed = apply_commands(updated, _commands({"type": "commit_preview_object", "id": "p"}))
    assert committed.objects["p"].status == "committed"
    assert committed.preview_ids() == []

    again = apply_commands(committed, _commands({"type": "commit_preview_object", "id": "p"}))
    assert again == committed


def test_patch_cannot_demote_committed_object(scene_with_tree):
    result = apply_commands(
        scene_with_tree, _commands({"type": "update_object", "id": "tree_1", "patch": {"status": "preview"}})
    )

    assert result.objects["tree_1"].status == "committed"


def test_layer_change_reinserts_in_order(obj):
    scene = apply_commands(
        create_empty_scene(),
        _commands(_add(obj("sky", "sky", "sky")), _add(obj("tree", "ground", "tree"))),
    )

    moved = apply_commands(scene, _commands({"type": "update_object", "id": "tree", "patch": {"layer": "sky"}}))
    assert moved.order == ["sky", "tree"]

    retagged = apply_commands(
        moved, _commands({"type": "update_object", "id": "tree", "patch": {"semanticTag": "sky"}})
    )
    # Equal keys: the re-inserted object goes after its peers.
    assert retagged.order == ["sky", "tree"]

    dropped = apply_commands(scene, _commands({"type": "update_object", "id": "sky", "patch": {"layer": "ground"}}))
    assert dropped.order == ["sky", "tree"]
    grounded = apply_commands(
        scene, _commands({"type": "update_object", "id": "sky", "patch": {"layer": "foreground"}})
    )
    assert grounded.order == ["tree", "sky"]


def test_delete_and_cancel_remove_objects(obj):
    scene = apply_commands(
        create_empty_scene(),
        _commands(_add(obj("a", tag="tree")), _add(obj("p", tag="bush", status="preview"))),
    )

    result = apply_commands(
        scene,
        _commands({"type": "delete_object", "id": "a"}, {"type": "cancel_preview_object", "id": "p"}),
    )

    assert result.objects == {}
    assert result.order == []
    assert apply_commands(result, _commands({"type": "delete_object", "id": "a"})) == result


def test_scene_intent_set_and_cleared():
    scene = apply_commands(
        create_empty_scene(),
        _commands({"type": "set_scene_intent", "intent": {"description": "quiet farm", "mood": "calm"}}),
    )
    assert scene.intent.description == "quiet farm"

    cleared = apply_commands(scene, _commands({"type": "set_scene_intent", "intent": None}))
    assert cleared.intent is None


def test_renderer_commands_are_identity(scene_with_tree):
    result = apply_commands(
        scene_with_tree,
        _commands(
            {"type": "set_ground_fill", "fill": "#6B8E23"},
            {
                "type": "set_background_gradient",
                "gradient": {
                    "from": {"x": 50, "y": 0},
                    "to": {"x": 50, "y": 45},
                    "stops": [{"offset": 0, "color": "#1565C0"}, {"offset": 1, "color": "#E1F5FE"}],
                },
            },
            {
                "type": "set_path",
                "id": "road",
                "bezierPoints": [{"x": 50, "y": 100}, {"x": 50, "y": 45}],
                "widthNear": 20,
                "widthFar": 2,
            },
        ),
    )

    assert result == scene_with_tree


def test_batch_equals_sequential_application(obj):
    flat = _commands(
        _add(obj("a", tag="tree")),
        {"type": "update_object", "id": "a", "patch": {"layer": "foreground"}},
        _add(obj("g", "ground", "grass")),
    )
    batched = _commands(
        {
            "type": "batch",
            "commands": [
                _add(obj("a", tag="tree")),
                {"type": "batch", "commands": [{"type": "update_object", "id": "a", "patch": {"layer": "foreground"}}]},
            ],
        },
        _add(obj("g", "ground", "grass")),
    )

    assert apply_commands(create_empty_scene(), batched) == apply_commands(create_empty_scene(), flat)


def test_merge_patch_clamps_merged_transform(scene_with_tree):
    patch = _commands(
        {"type": "update_object", "id": "tree_1", "patch": {"transform": {"x": 150, "rotation": 500}}}
    )[0].patch

    merged = merge_patch(scene_with_tree.objects["tree_1"], patch)

    assert merged.transform.x == 100
    assert merged.transform.rotation == 180
    assert merged.transform.y == 60
    assert merged.transform.scale == 1
