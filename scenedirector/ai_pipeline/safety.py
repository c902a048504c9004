# scenedirector/ai_pipeline/safety.py
"""
Safety guard: strip destructive or identity-changing commands the user did
not ask for.

Stripped commands are counted and summarized in the envelope notes so the
suppression is visible to the user and in the session log.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..scene.commands import (
    BatchCommand,
    CancelPreviewObject,
    CommandEnvelope,
    DeleteObject,
    DrawingCommand,
    UpdateObject,
    UpdatePreviewObject,
)


logger = logging.getLogger(__name__)

DESTRUCTIVE_RE = re.compile(
    r"\b(delete|remove|erase|clear|get rid|discard|wipe|cancel|undo)\b", re.IGNORECASE
)
CONVERSION_RE = re.compile(
    r"\b(turn into|convert|transform|change into|make it into)\b", re.IGNORECASE
)


def wants_destruction(utterance: str) -> bool:
    return bool(DESTRUCTIVE_RE.search(utterance))


def wants_conversion(utterance: str) -> bool:
    return bool(CONVERSION_RE.search(utterance))


@dataclass
class GuardReport:
    removed: int = 0
    stripped_semantic: int = 0

    @property
    def changed(self) -> bool:
        return self.removed > 0 or self.stripped_semantic > 0

    def note(self) -> str:
        parts = []
        if self.removed:
            parts.append(f"ignored {self.removed} destructive command(s)")
        if self.stripped_semantic:
            parts.append(f"ignored {self.stripped_semantic} semanticTag change(s)")
        return f"(Safety: {'; '.join(parts)})"


def guard_commands(
    commands: list[DrawingCommand],
    utterance: str,
    report: GuardReport | None = None,
) -> tuple[list[DrawingCommand], GuardReport]:
    report = report if report is not None else GuardReport()
    allow_destroy = wants_destruction(utterance)
    allow_convert = wants_conversion(utterance)

    out: list[DrawingCommand] = []
    for cmd in commands:
        if isinstance(cmd, BatchCommand):
            inner, _ = guard_commands(cmd.commands, utterance, report)
            out.append(cmd.model_copy(update={"commands": inner}))
        elif isinstance(cmd, (DeleteObject, CancelPreviewObject)) and not allow_destroy:
            report.removed += 1
        elif (
            isinstance(cmd, (UpdateObject, UpdatePreviewObject))
            and cmd.patch.semantic_tag is not None
            and not allow_convert
        ):
            report.stripped_semantic += 1
            patch = cmd.patch.model_copy(update={"semantic_tag": None})
            out.append(cmd.model_copy(update={"patch": patch}))
        else:
            out.append(cmd)
    return out, report


def apply_safety(envelope: CommandEnvelope, utterance: str) -> tuple[CommandEnvelope, GuardReport]:
    """Return the guarded envelope plus a report of what was suppressed."""
    commands, report = guard_commands(envelope.commands, utterance)
    if not report.changed:
        return envelope, report

    note = report.note()
    notes = f"{envelope.notes} {note}" if envelope.notes else note
    logger.info("[Safety] %s for utterance=%r", note, utterance[:120])
    return envelope.model_copy(update={"commands": commands, "notes": notes}), report
