"""Validation engine behind `m check`.

Decides whether a user intent may proceed and returns a JSON envelope
with a machine-readable `next_step`. An existing diagnosis always wins
over the intent text, so an assistant that has just finished
debugging is routed to the fix instead of a new plan.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mission_toolkit.diagnosis import DiagnosisSummary, read_diagnosis, summarize
from mission_toolkit.errors import ErrorKind
from mission_toolkit.mission import DIAGNOSIS_FILENAME

logger = logging.getLogger(__name__)

PLACEHOLDER_INTENT = "$ARGUMENTS"

NEXT_STEP_DIAGNOSIS = "DIAGNOSIS_DETECTED"
NEXT_STEP_ASK_USER = "ASK_USER: What is your intent or goal for this task?"
NEXT_STEP_PROCEED = "PROCEED with execution"

MESSAGE_EMPTY = "Input is empty or whitespace"
MESSAGE_PLACEHOLDER = "Input is a placeholder - no intent provided"
MESSAGE_VALID = "Input is valid"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of validate(); a failed check is not an error."""

    is_valid: bool
    next_step: str
    message: str | None = None
    diagnosis: DiagnosisSummary | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        if self.diagnosis is not None:
            return {
                "is_valid": self.is_valid,
                "next_step": self.next_step,
                "diagnosis": self.diagnosis.to_dict(),
            }
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "next_step": self.next_step,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def detect_diagnosis(mission_dir: Path) -> DiagnosisSummary | None:
    """Summary of the diagnosis in mission_dir, if one is usable.

    Any diagnosis file that parses counts, even one without an id.
    """
    path = Path(mission_dir) / DIAGNOSIS_FILENAME
    if not path.is_file():
        return None

    result = read_diagnosis(path)
    if result.is_err():
        error = result.unwrap_err()
        if error.code != ErrorKind.NOT_FOUND:
            logger.warning(f"Ignoring unreadable diagnosis: {error}")
        return None

    return summarize(result.unwrap())


def validate_intent(intent: str) -> CheckResult:
    trimmed = (intent or "").strip()

    if not trimmed:
        return CheckResult(is_valid=False, message=MESSAGE_EMPTY, next_step=NEXT_STEP_ASK_USER)

    if trimmed == PLACEHOLDER_INTENT:
        return CheckResult(is_valid=False, message=MESSAGE_PLACEHOLDER, next_step=NEXT_STEP_ASK_USER)

    return CheckResult(is_valid=True, message=MESSAGE_VALID, next_step=NEXT_STEP_PROCEED)


def validate(intent: str, mission_dir: Path) -> CheckResult:
    """Check an intent against the mission state.

    Args:
        intent: Free-form user intent
        mission_dir: The .mission directory to inspect

    Returns:
        CheckResult; DIAGNOSIS_DETECTED whenever a diagnosis is present
    """
    summary = detect_diagnosis(mission_dir)
    if summary is not None:
        logger.debug(f"Diagnosis {summary.id} present, routing to diagnosis")
        return CheckResult(is_valid=True, next_step=NEXT_STEP_DIAGNOSIS, diagnosis=summary)

    return validate_intent(intent)
