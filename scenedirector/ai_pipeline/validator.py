# scenedirector/ai_pipeline/validator.py
"""
The single gate between untrusted JSON and typed commands.

``validate_envelope`` never raises for bad input; it reports the first
violated field path instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from pydantic import ValidationError

from ..config import settings
from ..scene.commands import COMMAND_TYPES, CommandEnvelope
from ..scene.shapes import SHAPE_TYPES


_TAG_SEGMENTS = COMMAND_TYPES | SHAPE_TYPES


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class ValidationResult:
    envelope: CommandEnvelope | None = None
    issue: ValidationIssue | None = None

    @property
    def ok(self) -> bool:
        return self.envelope is not None


def format_loc(loc: tuple[Any, ...]) -> str:
    """``('commands', 0, 'add_object', 'object', 'id')`` -> ``commands.0.object.id``."""
    parts: list[str] = []
    previous: Any = None
    for segment in loc:
        # Discriminated unions insert the tag after the list index.
        if isinstance(segment, str) and segment in _TAG_SEGMENTS and isinstance(previous, int):
            previous = segment
            continue
        parts.append(str(segment))
        previous = segment
    return ".".join(parts) or "envelope"


def _walk_raw(commands: list[Any], prefix: str, depth: int) -> Iterator[tuple[str, int]]:
    for i, cmd in enumerate(commands):
        path = f"{prefix}.{i}"
        yield path, depth
        if isinstance(cmd, dict) and cmd.get("type") == "batch" and isinstance(cmd.get("commands"), list):
            yield from _walk_raw(cmd["commands"], f"{path}.commands", depth + 1)


def _check_limits(candidate: Any, max_commands: int, max_batch_depth: int) -> ValidationIssue | None:
    if not isinstance(candidate, dict) or not isinstance(candidate.get("commands"), list):
        return None
    total = 0
    for path, depth in _walk_raw(candidate["commands"], "commands", 1):
        total += 1
        if depth > max_batch_depth:
            return ValidationIssue(path, f"batch nesting deeper than {max_batch_depth}")
        if total > max_commands:
            return ValidationIssue(path, f"envelope carries more than {max_commands} commands")
    return None


def validate_envelope(
    candidate: Any,
    max_commands: int | None = None,
    max_batch_depth: int | None = None,
) -> ValidationResult:
    limit_issue = _check_limits(
        candidate,
        settings.max_commands if max_commands is None else max_commands,
        settings.max_batch_depth if max_batch_depth is None else max_batch_depth,
    )
    if limit_issue is not None:
        return ValidationResult(issue=limit_issue)

    try:
        envelope = CommandEnvelope.model_validate(candidate)
    except ValidationError as e:
        first = e.errors()[0]
        loc = tuple(first["loc"])
        if first["type"] in ("union_tag_invalid", "union_tag_not_found"):
            loc = loc + ("type",)
        return ValidationResult(issue=ValidationIssue(format_loc(loc), first["msg"]))

    return ValidationResult(envelope=envelope)
