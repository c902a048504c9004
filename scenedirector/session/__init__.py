# scenedirector/session/__init__.py
"""
Session Module - owns the canonical scene and its event log.
"""

from .events import SessionEvent, diff_summary, infer_last_touched
from .state import Broadcast, CanonicalState, SceneSession

__all__ = [
    "Broadcast",
    "CanonicalState",
    "SceneSession",
    "SessionEvent",
    "diff_summary",
    "infer_last_touched",
]
