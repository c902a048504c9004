# scenedirector/ai_pipeline/director.py
"""
Command Director - utterance to safe, stabilized CommandEnvelope.

Flow:
    utterance -> router -> prompts -> model (raw text)
    raw text -> extract -> normalize -> validate -> safety
             -> stabilize -> realism -> re-validate

``run_pipeline`` is the synchronous half and never raises for bad model
output: every failure becomes a refused envelope. The model call is split
from it so the session can await the network outside its writer loop and
run the pipeline against the scene as it is when the envelope is applied.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from ..config import Settings, settings as default_settings
from ..scene.commands import CommandEnvelope, refused_envelope
from ..scene.objects import SceneGraph, create_empty_scene
from .agents import EnvelopeModel, GeminiEnvelopeAgent, ModelCallError, call_with_retries
from .extract import JsonExtractionError, parse_model_json
from .normalizer import normalize_envelope
from .prompts import (
    build_preview_context,
    build_scene_summary,
    build_system_instruction,
    build_user_prompt,
)
from .realism import apply_realism_pass
from .router import IntentType, ThinkingLevel, classify_intent, thinking_for
from .safety import GuardReport, apply_safety
from .stabilizer import coverage_mode, stabilize_envelope
from .validator import ValidationResult, validate_envelope


logger = logging.getLogger(__name__)

# Refusal reasons produced by the pipeline itself (the model may add its own).
JSON_PARSE_FAILED = "json_parse_failed"
SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
RATE_LIMITED = "rate_limited"
API_ERROR = "api_error"

REJECTED_REASONS = frozenset({JSON_PARSE_FAILED, SCHEMA_VALIDATION_FAILED})
ERROR_REASONS = frozenset({RATE_LIMITED, API_ERROR})

_NOTES = {
    JSON_PARSE_FAILED: "I couldn't understand the response. Please try again.",
    SCHEMA_VALIDATION_FAILED: "I couldn't produce a valid command envelope. Please rephrase.",
    RATE_LIMITED: "Rate limit hit. Try again shortly (or upgrade your quota tier).",
    API_ERROR: "There was an error processing your request. Please try again.",
}
_RECHECK_NOTE = "Normalization failed. Please try again."

RAW_LOG_LIMIT = 800


# =============================================================================
# Pipeline (pure)
# =============================================================================

@dataclass
class PipelineResult:
    envelope: CommandEnvelope
    validated: bool
    refusal: str | None = None
    guard: GuardReport | None = None


def _failed(reason: str, notes: str | None = None) -> PipelineResult:
    return PipelineResult(
        envelope=refused_envelope(reason, notes or _NOTES[reason]),
        validated=False,
        refusal=reason,
    )


def run_pipeline(
    raw_text: str,
    utterance: str,
    scene: SceneGraph | None = None,
    settings: Settings = default_settings,
) -> PipelineResult:
    """Turn raw model text into an envelope the reducer can apply."""
    try:
        candidate = parse_model_json(raw_text)
    except JsonExtractionError as e:
        logger.warning("[-] [Director] %s; raw=%r", e, (raw_text or "")[:RAW_LOG_LIMIT])
        return _failed(JSON_PARSE_FAILED)

    checked = validate_envelope(
        normalize_envelope(candidate, settings.max_batch_depth),
        settings.max_commands,
        settings.max_batch_depth,
    )
    if not checked.ok:
        logger.warning(
            "[-] [Director] Envelope failed validation at %s; raw=%r",
            checked.issue, (raw_text or "")[:RAW_LOG_LIMIT],
        )
        return _failed(SCHEMA_VALIDATION_FAILED)

    envelope = checked.envelope
    if envelope.refused:
        logger.info("[Director] Model refused: %s", envelope.refusal_reason)
        return PipelineResult(envelope=envelope, validated=True)

    envelope, report = apply_safety(envelope, utterance)
    envelope = stabilize_envelope(envelope, utterance, scene, settings.thresholds)
    envelope = apply_realism_pass(envelope, utterance)

    # Stabilizer and realism output must satisfy the same grammar.
    recheck = validate_envelope(envelope.to_wire(), settings.max_commands, settings.max_batch_depth)
    if not recheck.ok:
        logger.error("[-] [Director] Post-stabilization envelope invalid at %s", recheck.issue)
        return _failed(SCHEMA_VALIDATION_FAILED, _RECHECK_NOTE)

    return PipelineResult(envelope=recheck.envelope, validated=True, guard=report)


def prepare_manual_envelope(candidate: object, settings: Settings = default_settings) -> ValidationResult:
    """Normalize and validate an operator-authored envelope (no safety/stabilize/realism)."""
    return validate_envelope(
        normalize_envelope(candidate, settings.max_batch_depth),
        settings.max_commands,
        settings.max_batch_depth,
    )


# =============================================================================
# Director
# =============================================================================

@dataclass
class DirectorInput:
    utterance: str
    scene: SceneGraph | None = None
    last_touched_id: str | None = None


@dataclass
class ModelReply:
    """Raw model output for one utterance, before the pipeline runs."""

    utterance: str
    intent: IntentType
    thinking_level: ThinkingLevel
    latency_ms: int
    raw_text: str | None = None
    refusal: str | None = None


@dataclass
class DirectorResult:
    envelope: CommandEnvelope
    latency_ms: int
    validated: bool
    thinking_level: ThinkingLevel
    intent: IntentType = IntentType.LIVE_DRAW
    refusal: str | None = None
    raw_text: str | None = None

    @property
    def event_status(self) -> str:
        if self.refusal in REJECTED_REASONS:
            return "rejected"
        if self.refusal in ERROR_REASONS:
            return "error"
        if self.envelope.refused:
            return "refused"
        return "applied"


class CommandDirector:
    """
    Drives one utterance through the model and the pipeline.

    ``fetch`` awaits the model (with retries); ``finish`` runs the pure
    pipeline. ``generate`` does both for callers that own no scene state.
    """

    def __init__(self, model: EnvelopeModel | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.model = model or GeminiEnvelopeAgent(self.settings)

    async def fetch(self, inp: DirectorInput) -> ModelReply:
        scene = inp.scene or create_empty_scene()
        intent = classify_intent(inp.utterance)
        thinking = thinking_for(intent, inp.utterance)
        model_name = self.settings.model_for(thinking.value)

        user_prompt = build_user_prompt(
            inp.utterance,
            intent,
            coverage_mode(inp.utterance),
            scene,
            "\n".join([
                build_preview_context(scene, inp.last_touched_id),
                "",
                "HUMAN_SCENE_SUMMARY (debug only):",
                build_scene_summary(scene) or "(empty)",
            ]),
        )
        system_instruction = build_system_instruction()

        logger.info(
            "[*] [Director] %s (thinking=%s, model=%s): %r",
            intent.value, thinking.value, model_name, inp.utterance[:120],
        )
        started = time.monotonic()
        try:
            raw = await call_with_retries(
                lambda: self.model.generate(system_instruction, user_prompt, model_name, thinking),
                max_retries=self.settings.max_retries,
            )
        except ModelCallError as e:
            reason = RATE_LIMITED if e.status == 429 else API_ERROR
            logger.error("[-] [Director] Model call failed (%s): %s", reason, e)
            return ModelReply(inp.utterance, intent, thinking, _elapsed_ms(started), refusal=reason)
        except RuntimeError as e:
            logger.error("[-] [Director] Model unavailable: %s", e)
            return ModelReply(inp.utterance, intent, thinking, _elapsed_ms(started), refusal=API_ERROR)

        latency = _elapsed_ms(started)
        logger.info("[+] [Director] Model replied in %dms (%d chars)", latency, len(raw))
        return ModelReply(inp.utterance, intent, thinking, latency, raw_text=raw)

    def finish(self, reply: ModelReply, scene: SceneGraph | None = None) -> DirectorResult:
        if reply.refusal is not None:
            return DirectorResult(
                envelope=refused_envelope(reply.refusal, _NOTES[reply.refusal]),
                latency_ms=reply.latency_ms,
                validated=False,
                thinking_level=reply.thinking_level,
                intent=reply.intent,
                refusal=reply.refusal,
            )

        result = run_pipeline(reply.raw_text or "", reply.utterance, scene, self.settings)
        return DirectorResult(
            envelope=result.envelope,
            latency_ms=reply.latency_ms,
            validated=result.validated,
            thinking_level=reply.thinking_level,
            intent=reply.intent,
            refusal=result.refusal,
            raw_text=reply.raw_text,
        )

    async def generate(self, inp: DirectorInput) -> DirectorResult:
        reply = await self.fetch(inp)
        return self.finish(reply, inp.scene)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
