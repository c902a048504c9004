import asyncio
import json

import pytest

from scenedirector.ai_pipeline.agents import ModelCallError, call_with_retries, suggested_retry_delay
from scenedirector.ai_pipeline.director import (
    API_ERROR,
    JSON_PARSE_FAILED,
    RATE_LIMITED,
    SCHEMA_VALIDATION_FAILED,
    CommandDirector,
    DirectorInput,
    prepare_manual_envelope,
    run_pipeline,
)
from scenedirector.ai_pipeline.router import ThinkingLevel
from scenedirector.config import HORIZON_Y, Settings
from scenedirector.scene import apply_commands, create_empty_scene
from scenedirector.scene.geometry import world_bbox

from conftest import TREE_ENVELOPE, make_object


def _raw(*commands: dict, **extra) -> str:
    return json.dumps({"commands": list(commands), **extra})


# =============================================================================
# run_pipeline
# =============================================================================

def test_unparseable_text_becomes_refused_envelope():
    result = run_pipeline("{ not json", "add a tree")

    assert not result.validated
    assert result.refusal == JSON_PARSE_FAILED
    assert result.envelope.refused
    assert result.envelope.refusal_reason == JSON_PARSE_FAILED
    assert result.envelope.commands == []


def test_schema_failure_becomes_refused_envelope():
    result = run_pipeline(_raw({"type": "explode_object", "id": "a"}), "blow it up")

    assert not result.validated
    assert result.refusal == SCHEMA_VALIDATION_FAILED
    assert result.envelope.refused


def test_fenced_reply_is_stabilized_into_local_coordinates():
    result = run_pipeline(f"```json\n{json.dumps(TREE_ENVELOPE)}\n```", "add a tree")

    assert result.validated
    assert result.refusal is None
    obj = result.envelope.commands[0].object
    assert (obj.transform.x, obj.transform.y) == (20, 52)
    trunk, canopy = obj.shapes
    assert (trunk.x, trunk.y) == (7, 18)
    assert (canopy.x, canopy.y) == (10, 10)


def test_model_refusal_passes_through():
    result = run_pipeline(_raw(refused=True, refusalReason="ambiguous_target"), "move it")

    assert result.validated
    assert result.refusal is None
    assert result.envelope.refused
    assert result.envelope.refusal_reason == "ambiguous_target"


def test_unrequested_delete_never_reaches_the_scene():
    scene = apply_commands(create_empty_scene(), run_pipeline(json.dumps(TREE_ENVELOPE), "add a tree").envelope.commands)

    result = run_pipeline(_raw({"type": "delete_object", "id": "tree_1"}), "add a bush", scene)

    assert result.envelope.commands == []
    assert result.guard.removed == 1
    assert "Safety" in result.envelope.notes
    assert apply_commands(scene, result.envelope.commands) == scene


def test_sky_stays_behind_sun_whatever_the_arrival_order():
    sun = make_object("sun_1", "sky", "sun", shapes=[{"id": "disc", "type": "circle", "x": 0, "y": 0, "radius": 6}],
                      transform={"x": 80, "y": 15, "scale": 1, "rotation": 0})
    sky = make_object("sky_1", "sky", "sky", shapes=[{"id": "bg", "type": "rect", "x": 0, "y": 0, "width": 100, "height": 45}],
                      transform={"x": 0, "y": 0, "scale": 1, "rotation": 0})

    scene = create_empty_scene()
    for utterance, obj in (("add a sun", sun), ("add a sky", sky)):
        result = run_pipeline(_raw({"type": "add_object", "object": obj}), utterance, scene)
        assert result.validated
        scene = apply_commands(scene, result.envelope.commands)

    assert scene.order == ["sky_1", "sun_1"]
    sky_t = scene.objects["sky_1"].transform
    assert (sky_t.x, sky_t.y) == (0, 0)


def test_lone_circle_tree_is_enriched():
    envelope = {
        "commands": [{
            "type": "add_object",
            "object": make_object("tree_2", tag="tree", shapes=[{"id": "c", "type": "circle", "x": 0, "y": 0, "radius": 8}]),
        }]
    }

    result = run_pipeline(json.dumps(envelope), "add a tree")

    assert result.validated
    assert len(result.envelope.commands[0].object.shapes) == 5


def test_grass_band_stack_stays_below_the_horizon():
    bands = [
        {"id": f"band_{i}", "type": "rect", "x": 0, "y": i * 10, "width": 100, "height": 10, "fill": "#7CB342"}
        for i in range(3)
    ]
    grass = make_object("grass_1", "ground", "grass", shapes=bands)

    result = run_pipeline(_raw({"type": "add_object", "object": grass}), "add grass")

    assert result.validated
    obj = result.envelope.commands[0].object
    assert len(obj.shapes) == 3
    assert world_bbox(obj).min_y >= HORIZON_Y


def test_pathologically_nested_reply_is_refused():
    result = run_pipeline("[" * 5000 + "]" * 5000, "add a tree")

    assert result.refusal == JSON_PARSE_FAILED
    assert result.envelope.refused


def test_deeply_nested_batches_are_refused():
    inner = '{"type": "set_ground_fill", "fill": "#333"}'
    raw = '{"commands": [' + '{"type": "batch", "commands": [' * 400 + inner + "]}" * 400 + "]}"

    result = run_pipeline(raw, "paint the ground")

    assert not result.validated
    assert result.refusal in (SCHEMA_VALIDATION_FAILED, JSON_PARSE_FAILED)
    assert result.envelope.refused
    assert not prepare_manual_envelope({"commands": [_nest_batches(400)]}).ok


def _nest_batches(depth: int) -> dict:
    cmd: dict = {"type": "set_ground_fill", "fill": "#333"}
    for _ in range(depth):
        cmd = {"type": "batch", "commands": [cmd]}
    return cmd


# =============================================================================
# CommandDirector
# =============================================================================

def test_generate_drives_model_and_pipeline(scripted_model):
    model = scripted_model(json.dumps(TREE_ENVELOPE))
    director = CommandDirector(model=model, settings=Settings())

    result = asyncio.run(director.generate(DirectorInput(utterance="add a tree")))

    assert result.validated
    assert result.event_status == "applied"
    assert result.thinking_level is ThinkingLevel.LOW
    [call] = model.calls
    assert call["model"] == "gemini-3-flash-preview"
    assert call["thinking_level"] is ThinkingLevel.LOW
    assert 'USER REQUEST: "add a tree"' in call["user_prompt"]
    assert "CURRENT SCENE STATE: Empty canvas" in call["user_prompt"]


def test_composition_requests_use_the_smart_model(scripted_model):
    model = scripted_model(_raw())
    director = CommandDirector(model=model, settings=Settings())

    result = asyncio.run(director.generate(DirectorInput(utterance="improve composition please")))

    assert result.thinking_level is ThinkingLevel.HIGH
    assert model.calls[0]["model"] == "gemini-3-pro-preview"


def test_rate_limit_becomes_error_event(scripted_model):
    model = scripted_model(ModelCallError("quota exceeded", status=429))
    director = CommandDirector(model=model, settings=Settings(max_retries=0))

    result = asyncio.run(director.generate(DirectorInput(utterance="add a tree")))

    assert result.refusal == RATE_LIMITED
    assert result.event_status == "error"
    assert result.envelope.refused
    assert result.envelope.commands == []
    assert "Rate limit" in result.envelope.notes


def test_non_retryable_failure_is_not_retried(scripted_model):
    model = scripted_model(ModelCallError("bad request", status=400), _raw())
    director = CommandDirector(model=model, settings=Settings(max_retries=2))

    result = asyncio.run(director.generate(DirectorInput(utterance="add a tree")))

    assert result.refusal == API_ERROR
    assert len(model.calls) == 1


def test_missing_client_becomes_api_error(scripted_model):
    director = CommandDirector(model=scripted_model(RuntimeError("GEMINI_API_KEY environment variable not set")))

    result = asyncio.run(director.generate(DirectorInput(utterance="add a tree")))

    assert result.refusal == API_ERROR
    assert result.event_status == "error"


def test_parse_failure_is_rejected_not_error(scripted_model):
    director = CommandDirector(model=scripted_model("sorry, no json today"), settings=Settings())

    result = asyncio.run(director.generate(DirectorInput(utterance="add a tree")))

    assert result.event_status == "rejected"
    assert result.raw_text == "sorry, no json today"


# =============================================================================
# Retries
# =============================================================================

class _Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _recording_sleep():
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    return sleep, delays


def test_transient_failures_back_off_linearly():
    sleep, delays = _recording_sleep()
    fn = _Flaky(ModelCallError("down", status=503), ModelCallError("down", status=503), "ok")

    assert asyncio.run(call_with_retries(fn, max_retries=2, sleep=sleep)) == "ok"
    assert delays == [1.2, 2.4]


def test_server_suggested_delay_wins():
    sleep, delays = _recording_sleep()
    fn = _Flaky(ModelCallError("slow down", status=429, retry_after_s=7), "ok")

    asyncio.run(call_with_retries(fn, sleep=sleep))

    assert delays == [7]


def test_retries_are_bounded():
    sleep, delays = _recording_sleep()
    fn = _Flaky(*[ModelCallError("down", status=500) for _ in range(3)])

    with pytest.raises(ModelCallError):
        asyncio.run(call_with_retries(fn, max_retries=1, sleep=sleep))
    assert fn.calls == 2
    assert delays == [1.2]


def test_client_errors_propagate_immediately():
    sleep, delays = _recording_sleep()
    fn = _Flaky(ModelCallError("forbidden", status=403))

    with pytest.raises(ModelCallError):
        asyncio.run(call_with_retries(fn, sleep=sleep))
    assert delays == []


def test_suggested_retry_delay_parsing():
    assert suggested_retry_delay('429 RESOURCE_EXHAUSTED {"retryDelay": "7s"}') == 7.0
    assert suggested_retry_delay("503 UNAVAILABLE") is None
