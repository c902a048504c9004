# scenedirector/ai_pipeline/router.py
"""
Intent routing: decide what kind of request an utterance is and how much
model "thinking" it deserves.
"""

from __future__ import annotations

import re
from enum import Enum


class IntentType(str, Enum):
    LIVE_DRAW = "LIVE_DRAW"
    COMPOSITION_PASS = "COMPOSITION_PASS"
    FINAL_RENDER_PLAN = "FINAL_RENDER_PLAN"


class ThinkingLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


FINAL_RENDER_KEYWORDS = (
    "final render", "finalize", "cinematic", "export",
    "make it a painting", "render plan", "finish",
)

COMPOSITION_KEYWORDS = (
    "improve composition", "make it look better", "balance",
    "contrast", "director pass", "tweak layout", "rebalance",
    "adjust layout", "fix composition",
)

OBJECT_WORDS = (
    "tree", "trees", "house", "houses", "mountain", "mountains",
    "sun", "bird", "birds", "flower", "flowers", "bush", "bushes",
    "path", "sky", "field", "cloud", "clouds", "grass",
)

_MULTI_STEP_RE = re.compile(r"\b(and|also|then|plus|with)\b", re.IGNORECASE)


def classify_intent(utterance: str) -> IntentType:
    lower = utterance.lower()
    if any(kw in lower for kw in FINAL_RENDER_KEYWORDS):
        return IntentType.FINAL_RENDER_PLAN
    if any(kw in lower for kw in COMPOSITION_KEYWORDS):
        return IntentType.COMPOSITION_PASS
    return IntentType.LIVE_DRAW


def count_object_words(utterance: str) -> int:
    # Substring count, so "trees" also counts "tree".
    lower = utterance.lower()
    return sum(1 for word in OBJECT_WORDS if word in lower)


def thinking_for(intent: IntentType, utterance: str) -> ThinkingLevel:
    if intent in (IntentType.COMPOSITION_PASS, IntentType.FINAL_RENDER_PLAN):
        return ThinkingLevel.HIGH

    if (
        len(utterance) > 120
        or _MULTI_STEP_RE.search(utterance)
        or count_object_words(utterance) >= 3
    ):
        return ThinkingLevel.MEDIUM

    return ThinkingLevel.LOW
