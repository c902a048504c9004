from scenedirector.ai_pipeline.realism import apply_realism_pass, enrich_object, min_shapes_for, needs_enrichment
from scenedirector.scene import CommandEnvelope, SceneObject
from scenedirector.scene.shapes import RectShape


def _object(obj_factory, object_id, layer="ground", tag=None, shapes=None, transform=None) -> SceneObject:
    return SceneObject.model_validate(obj_factory(object_id, layer, tag, transform=transform, shapes=shapes))


LONE_CIRCLE = [{"id": "c", "type": "circle", "x": 0, "y": 0, "radius": 8, "fill": "#2E7D32"}]


def test_lone_circle_tree_gets_template(obj):
    tree = _object(obj, "tree_1", tag="tree", shapes=LONE_CIRCLE)

    out = enrich_object(tree, "add a tree")

    assert [s.id for s in out.shapes] == ["trunk_1", "canopy_1", "canopy_2", "canopy_3", "highlight_1"]
    assert out.transform == tree.transform
    assert out.id == "tree_1"


def test_simple_request_keeps_model_shapes(obj):
    tree = _object(obj, "tree_1", tag="tree", shapes=LONE_CIRCLE)

    assert enrich_object(tree, "add a simple tree") == tree


def test_realism_words_force_template_even_when_detailed_enough(obj):
    shapes = LONE_CIRCLE + [{"id": "t", "type": "rect", "x": -2, "y": 0, "width": 4, "height": 10}]
    tree = _object(obj, "tree_1", tag="tree", shapes=shapes)

    assert not needs_enrichment(tree, "add a tree")
    assert needs_enrichment(tree, "add a realistic tree")


def test_unknown_tag_gets_silhouette_only_when_asked(obj):
    robot = _object(obj, "robot_1", tag="robot")

    assert enrich_object(robot, "add a robot") == robot
    assert [s.id for s in enrich_object(robot, "add a realistic robot").shapes] == ["body_1", "detail_1", "base_1"]


def test_min_shapes_table_falls_back_to_default():
    assert min_shapes_for("Person") == 4
    assert min_shapes_for("spaceship") == 1


def test_sky_backdrop_is_stretched_over_sky_band(obj):
    sky = _object(
        obj,
        "sky_1",
        layer="sky",
        tag="sky",
        shapes=[{"id": "bg", "type": "rect", "x": 10, "y": 20, "width": 50, "height": 10, "fill": "#87CEEB"}],
        transform={"x": 30, "y": 30, "scale": 1, "rotation": 0},
    )

    out = enrich_object(sky, "add a blue sky")

    [rect] = out.shapes
    assert isinstance(rect, RectShape)
    assert (rect.x, rect.y, rect.width, rect.height) == (0, 0, 100, 45)
    t = out.transform
    assert (t.x, t.y, t.scale, t.rotation) == (0, 0, 1, 0)


def test_full_canvas_sky_covers_everything(obj):
    sky = _object(obj, "sky_1", layer="sky", tag="sky")

    [rect] = enrich_object(sky, "make the sky fill the whole canvas").shapes

    assert (rect.y, rect.height) == (0, 100)


def test_band_stack_backdrop_is_left_where_it_was_placed(obj):
    bands = [
        {"id": f"band_{i}", "type": "rect", "x": 0, "y": i * 15, "width": 100, "height": 15}
        for i in range(3)
    ]
    grass = _object(
        obj, "grass_1", tag="grass", shapes=bands,
        transform={"x": 0, "y": 45, "scale": 1, "rotation": 0},
    )

    out = enrich_object(grass, "add grass")

    assert out == grass


def test_pass_recurses_into_batch_and_ignores_updates(obj):
    envelope = CommandEnvelope.model_validate({
        "commands": [
            {
                "type": "batch",
                "commands": [
                    {"type": "add_object", "object": obj("tree_1", tag="tree", shapes=LONE_CIRCLE)},
                    {"type": "update_object", "id": "tree_1", "patch": {"layer": "foreground"}},
                ],
            }
        ]
    })

    out = apply_realism_pass(envelope, "add a tree")

    added, update = out.commands[0].commands
    assert len(added.object.shapes) == 5
    assert update == envelope.commands[0].commands[1]
