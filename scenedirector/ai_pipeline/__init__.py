# scenedirector/ai_pipeline/__init__.py
"""
AI Pipeline Module - untrusted model output to safe drawing commands.

Handles ONLY the model call and the repair/guard stages. Does NOT apply
commands (that's scene.reducer) or own state (that's session).

Stages:
1. extract / normalizer - recover a JSON envelope and fix near-miss syntax
2. validator - the single grammar gate
3. safety - strip destructive or re-tagging commands the user never asked for
4. stabilizer - clamp, rebase and re-tile geometry
5. realism - expand under-specified known objects
"""

from .agents import EnvelopeModel, GeminiEnvelopeAgent, ModelCallError
from .director import (
    CommandDirector,
    DirectorInput,
    DirectorResult,
    ModelReply,
    PipelineResult,
    prepare_manual_envelope,
    run_pipeline,
)
from .normalizer import normalize_envelope
from .router import IntentType, ThinkingLevel, classify_intent, thinking_for
from .safety import GuardReport, apply_safety
from .stabilizer import normalize_band_stack, stabilize_envelope
from .realism import apply_realism_pass
from .validator import ValidationIssue, ValidationResult, validate_envelope

__all__ = [
    # Director
    "CommandDirector",
    "DirectorInput",
    "DirectorResult",
    "ModelReply",
    "PipelineResult",
    "prepare_manual_envelope",
    "run_pipeline",
    # Model access
    "EnvelopeModel",
    "GeminiEnvelopeAgent",
    "ModelCallError",
    # Stages
    "normalize_envelope",
    "validate_envelope",
    "ValidationIssue",
    "ValidationResult",
    "apply_safety",
    "GuardReport",
    "stabilize_envelope",
    "normalize_band_stack",
    "apply_realism_pass",
    # Routing
    "IntentType",
    "ThinkingLevel",
    "classify_intent",
    "thinking_for",
]
