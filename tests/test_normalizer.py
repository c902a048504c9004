import pytest

from scenedirector.ai_pipeline.extract import JsonExtractionError, extract_json_text, parse_model_json
from scenedirector.ai_pipeline.normalizer import normalize_envelope
from scenedirector.ai_pipeline.validator import validate_envelope


# =============================================================================
# Extraction
# =============================================================================

def test_extracts_fenced_json_with_surrounding_prose():
    raw = 'Sure! Here you go:\n```json\n{"commands": []}\n```\nLet me know.'

    assert parse_model_json(raw) == {"commands": []}


def test_extracts_balanced_object_ignoring_braces_in_strings():
    raw = 'prefix {"notes": "use } and { freely", "commands": []} trailing {junk'

    assert extract_json_text(raw) == '{"notes": "use } and { freely", "commands": []}'


def test_trailing_commas_are_repaired():
    assert parse_model_json('{"commands": [{"type": "set_ground_fill", "fill": "#333",},],}') == {
        "commands": [{"type": "set_ground_fill", "fill": "#333"}]
    }


def test_unparseable_text_raises():
    with pytest.raises(JsonExtractionError):
        parse_model_json("{ not json")


def test_pathologically_nested_json_raises_extraction_error():
    with pytest.raises(JsonExtractionError):
        parse_model_json("[" * 5000 + "]" * 5000)


# =============================================================================
# Envelope repairs
# =============================================================================

def test_unwraps_envelope_wrapper(tree_envelope):
    assert normalize_envelope({"envelope": tree_envelope}) == tree_envelope


def test_wraps_bare_command():
    cmd = {"type": "delete_object", "id": "tree_1"}

    assert normalize_envelope(cmd) == {"commands": [cmd]}


def test_refusal_without_commands_gets_empty_list():
    out = normalize_envelope({"refused": True, "refusalReason": "ambiguous"})

    assert out["commands"] == []
    assert validate_envelope(out).ok


def test_renames_command_type_and_target_aliases():
    out = normalize_envelope({"commands": [{"command_type": "commit_preview_object", "objectId": "p1"}]})

    assert out["commands"] == [{"type": "commit_preview_object", "id": "p1"}]


def test_object_id_alias_on_delete():
    out = normalize_envelope({"commands": [{"type": "delete_object", "object_id": "tree_1"}]})

    assert out["commands"] == [{"type": "delete_object", "id": "tree_1"}]


def test_synthesizes_missing_object_wrapper():
    out = normalize_envelope({
        "commands": [
            {
                "type": "add_object",
                "object_type": "rock",
                "shapes": [{"id": "r", "type": "circle", "x": 140, "y": -5, "radius": 3}],
            },
            {"type": "add_preview_object", "id": "bush_9", "shapes": [{"type": "ellipse", "x": 0, "y": 0, "radiusX": 4, "radiusY": 2}]},
        ]
    })

    first, second = out["commands"]
    assert first["object"]["id"] == "obj_rock_1"
    assert first["object"]["status"] == "committed"
    assert first["object"]["layer"] == "ground"
    assert first["object"]["semanticTag"] == "rock"
    assert first["object"]["transform"] == {"x": 50, "y": 70, "scale": 1, "rotation": 0}
    assert first["object"]["shapes"][0]["x"] == 100
    assert first["object"]["shapes"][0]["y"] == 0

    assert second["object"]["id"] == "bush_9"
    assert second["object"]["status"] == "preview"
    assert second["object"]["shapes"][0]["id"] == "ellipse_1"
    assert validate_envelope(out).ok


def test_folds_stray_update_fields_into_patch():
    out = normalize_envelope({
        "commands": [
            {
                "type": "update_object",
                "objectId": "tree_1",
                "transform": {"x": 20},
                "object": {"layer": "foreground", "semanticTag": "oak"},
            }
        ]
    })

    assert out["commands"] == [
        {
            "type": "update_object",
            "id": "tree_1",
            "patch": {"transform": {"x": 20}, "layer": "foreground", "semanticTag": "oak"},
        }
    ]


def test_existing_patch_fields_win_over_stray_ones():
    out = normalize_envelope({
        "commands": [{"type": "update_object", "id": "a", "layer": "sky", "patch": {"layer": "ground"}}]
    })

    assert out["commands"][0]["patch"] == {"layer": "ground"}


def test_legacy_line_coordinates_become_points(tree_envelope):
    line = {"id": "fence", "type": "line", "x1": 0, "y1": 5, "x2": 20, "y2": 5, "stroke": "#795548"}
    tree_envelope["commands"][0]["object"]["shapes"].append(line)
    tree_envelope["commands"].append(
        {"type": "update_preview_object", "id": "tree_1", "patch": {"shapes": [dict(line, id="rail")]}}
    )

    out = normalize_envelope(tree_envelope)

    added = out["commands"][0]["object"]["shapes"][-1]
    patched = out["commands"][1]["patch"]["shapes"][0]
    assert added == {"id": "fence", "type": "line", "stroke": "#795548", "points": [0, 5, 20, 5]}
    assert patched["points"] == [0, 5, 20, 5]
    assert validate_envelope(out).ok


def test_duplicate_shape_ids_are_suffixed(obj):
    shapes = [
        {"id": "leaf", "type": "circle", "x": 0, "y": 0, "radius": 2},
        {"id": "leaf", "type": "circle", "x": 3, "y": 0, "radius": 2},
        {"id": "leaf", "type": "circle", "x": 6, "y": 0, "radius": 2},
    ]
    out = normalize_envelope({"commands": [{"type": "add_object", "object": obj("b", tag="bush", shapes=shapes)}]})

    ids = [s["id"] for s in out["commands"][0]["object"]["shapes"]]
    assert ids == ["leaf", "leaf_2", "leaf_3"]


def test_recurses_into_batch():
    out = normalize_envelope({
        "commands": [{"type": "batch", "commands": [{"command_type": "delete_object", "objectId": "a"}]}]
    })

    assert out["commands"][0]["commands"] == [{"type": "delete_object", "id": "a"}]


def test_normalization_is_idempotent(tree_envelope):
    messy = {
        "envelope": {
            "commands": [
                {"type": "add_object", "object_type": "rock", "shapes": [{"type": "circle", "x": 0, "y": 0, "radius": 3}]},
                {"command_type": "update_object", "object_id": "a", "transform": {"x": 5}},
                {"type": "batch", "commands": [{"type": "delete_object", "objectId": "b"}]},
            ]
        }
    }

    once = normalize_envelope(messy)

    assert normalize_envelope(once) == once
    assert normalize_envelope(tree_envelope) == tree_envelope


def test_normalizer_does_not_drop_destructive_commands():
    out = normalize_envelope({"commands": [{"type": "delete_object", "id": "tree_1"}]})

    assert out["commands"][0]["type"] == "delete_object"


def _deep_batch(depth: int) -> dict:
    envelope: dict = {"type": "set_ground_fill", "fill": "#333"}
    for _ in range(depth):
        envelope = {"type": "batch", "commands": [envelope]}
    return {"commands": [envelope]}


def test_normalizer_stops_descending_past_batch_limit():
    raw = _deep_batch(400)

    out = normalize_envelope(raw, max_batch_depth=3)

    level, raw_level = out["commands"][0], raw["commands"][0]
    for _ in range(2):
        level, raw_level = level["commands"][0], raw_level["commands"][0]
    assert level is raw_level
    assert not validate_envelope(out, max_batch_depth=3).ok


def test_synthesized_ids_count_only_synthesized_objects():
    out = normalize_envelope({
        "commands": [
            {"type": "add_object", "object_type": "rock"},
            {"type": "add_object", "id": "bush_9", "object_type": "bush"},
            {"type": "batch", "commands": [{"type": "add_preview_object", "object_type": "rock"}]},
        ]
    })

    assert out["commands"][0]["object"]["id"] == "obj_rock_1"
    assert out["commands"][1]["object"]["id"] == "bush_9"
    assert out["commands"][2]["commands"][0]["object"]["id"] == "obj_rock_2"
