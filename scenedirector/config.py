# scenedirector/config.py
"""
Service configuration.

Everything tunable is read from the environment once, at import time, into a
frozen ``Settings`` instance. Heuristic geometry thresholds live in their own
dataclass so tests and callers can pass alternative values explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


# World is percentage-of-canvas on both axes, y grows downward.
WORLD_MIN = 0.0
WORLD_MAX = 100.0

# Boundary between the default sky band and the default ground band.
HORIZON_Y = 45

MAX_SHAPES_PER_OBJECT = 60


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class StabilizerThresholds:
    """Empirically tuned constants used by the geometric stabilizer."""

    # Local bbox outside these limits means shapes were authored in world space.
    rebase_min_margin: float = 12.0
    rebase_max_extent: float = 110.0

    # Band stack detection.
    band_min_rects: int = 3
    band_max_x: float = 1.0
    band_min_width: float = 95.0

    # Distance kept between an object's world bbox and its band edges.
    fit_margin: float = 1.0

    # Paths thinner than this are widened to ``path_boost_width``.
    path_min_stroke: float = 3.0
    path_boost_width: float = 5.0


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str | None = None
    text_model: str | None = None
    text_model_fast: str = "gemini-3-flash-preview"
    text_model_smart: str = "gemini-3-pro-preview"
    temperature: float = 0.2
    model_timeout_s: float = 120.0
    max_retries: int = 2

    event_log_limit: int = 100
    max_commands: int = 200
    max_batch_depth: int = 8

    thresholds: StabilizerThresholds = field(default_factory=StabilizerThresholds)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gemini_api_key=os.environ.get("GEMINI_API_KEY") or None,
            text_model=os.environ.get("GEMINI_TEXT_MODEL") or None,
            text_model_fast=os.environ.get("GEMINI_TEXT_MODEL_FAST", "gemini-3-flash-preview"),
            text_model_smart=os.environ.get("GEMINI_TEXT_MODEL_SMART", "gemini-3-pro-preview"),
            model_timeout_s=_env_float("SCENE_DIRECTOR_TIMEOUT_S", 120.0),
            max_retries=_env_int("SCENE_DIRECTOR_MAX_RETRIES", 2),
            event_log_limit=_env_int("SCENE_EVENT_LOG_LIMIT", 100),
            max_commands=_env_int("SCENE_MAX_COMMANDS", 200),
            max_batch_depth=_env_int("SCENE_MAX_BATCH_DEPTH", 8),
        )

    def model_for(self, thinking_level: str) -> str:
        """Pick the text model for a thinking level; GEMINI_TEXT_MODEL wins."""
        if self.text_model:
            return self.text_model
        return self.text_model_smart if thinking_level == "high" else self.text_model_fast


settings = Settings.from_env()
