"""Diagnosis engine.

A diagnosis is a structured debug investigation kept in
`.mission/diagnosis.md`:

    ---
    id: DIAG-20261019-142233
    status: investigating        # investigating -> confirmed | inconclusive
    confidence: low              # low | medium | high
    created: 2026-10-19 14:22:33.123456
    ---

    ## SYMPTOM
    ## INVESTIGATION       (list, checkboxes)
    ## HYPOTHESES          (list, numbered)
    ## ROOT CAUSE
    ## AFFECTED FILES      (list)
    ## RECOMMENDED FIX     (required once confirmed)
    ## REPRODUCTION        (optional)

Status transitions are entirely caller-driven. finalize() only checks
structure; it never changes the document.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from mission_toolkit import md
from mission_toolkit.config import MissionConfig
from mission_toolkit.errors import Err, ErrorKind, MissionError, Ok, Result, invalid_argument, malformed, not_found
from mission_toolkit.logging import log_diagnosis_event
from mission_toolkit.md import Document
from mission_toolkit.mission import DIAGNOSIS_FILENAME
from mission_toolkit.types import DiagnosisId

logger = logging.getLogger(__name__)

STATUS_INVESTIGATING = "investigating"
STATUS_CONFIRMED = "confirmed"
STATUS_INCONCLUSIVE = "inconclusive"
VALID_STATUSES = (STATUS_INVESTIGATING, STATUS_CONFIRMED, STATUS_INCONCLUSIVE)

VALID_CONFIDENCE = ("low", "medium", "high")

REQUIRED_SECTIONS = ("SYMPTOM", "INVESTIGATION", "HYPOTHESES", "ROOT CAUSE", "AFFECTED FILES")
CONFIRMED_REQUIRED_SECTIONS = ("RECOMMENDED FIX",)
LIST_SECTIONS = frozenset({"INVESTIGATION", "HYPOTHESES", "AFFECTED FILES"})

KNOWN_KEYS = ("id", "status", "confidence", "created")

ID_FORMAT = "DIAG-%Y%m%d-%H%M%S"

DIAGNOSIS_TEMPLATE = """
## SYMPTOM
{symptom}

## INVESTIGATION
- [ ] Initial investigation pending

## HYPOTHESES
1. **[UNKNOWN]** Investigation not yet started

## ROOT CAUSE
To be determined

## AFFECTED FILES
- TBD

## RECOMMENDED FIX
To be determined after investigation

## REPRODUCTION
TBD
"""


@dataclass
class Diagnosis:
    """A parsed diagnosis document."""

    id: DiagnosisId
    status: str
    confidence: str
    created: Any
    body: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> Document:
        frontmatter: dict[str, Any] = {
            "id": self.id,
            "status": self.status,
            "confidence": self.confidence,
            "created": self.created,
        }
        if self.created is None:
            del frontmatter["created"]
        frontmatter.update(self.extra)
        return Document(frontmatter=frontmatter, body=self.body)

    @classmethod
    def from_document(cls, doc: Document) -> Diagnosis:
        fm = doc.frontmatter
        return cls(
            id=DiagnosisId(str(fm.get("id") or "")),
            status=str(fm.get("status") or ""),
            confidence=str(fm.get("confidence") or ""),
            created=fm.get("created"),
            body=doc.body,
            extra={k: v for k, v in fm.items() if k not in KNOWN_KEYS},
        )


@dataclass(frozen=True)
class DiagnosisSummary:
    """The parts of a diagnosis that downstream steps act on."""

    id: str
    root_cause: str
    affected_files: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "root_cause": self.root_cause,
            "affected_files": list(self.affected_files),
        }


def generate_diagnosis_id(now: datetime | None = None) -> DiagnosisId:
    return DiagnosisId((now or datetime.now()).strftime(ID_FORMAT))


def read_diagnosis(path: Path) -> Result[Diagnosis, MissionError]:
    result = md.read_document(path)
    if result.is_err():
        error = result.unwrap_err()
        if error.code == ErrorKind.NOT_FOUND:
            return Err(not_found(f"diagnosis file not found: {path}", path=str(path)))
        return Err(error.wrap("reading diagnosis"))
    return Ok(Diagnosis.from_document(result.unwrap()))


def summarize(diagnosis: Diagnosis) -> DiagnosisSummary:
    """Extract id, root cause and affected files.

    The root cause is the first non-empty line of ROOT CAUSE; affected
    files are the `- ` lines of AFFECTED FILES with the marker removed.
    """
    root_cause = ""
    for line in md.section_lines(diagnosis.body, "ROOT CAUSE") or []:
        if line.strip():
            root_cause = line.strip()
            break

    affected_files = []
    for line in md.section_lines(diagnosis.body, "AFFECTED FILES") or []:
        trimmed = line.strip()
        if trimmed.startswith("- "):
            affected_files.append(trimmed[2:].strip())

    return DiagnosisSummary(id=diagnosis.id, root_cause=root_cause, affected_files=affected_files)


class DiagnosisManager:
    """Create and update `.mission/diagnosis.md`."""

    def __init__(self, mission_dir: Path, config: MissionConfig | None = None):
        self.mission_dir = Path(mission_dir)
        self.config = config or MissionConfig()

    @property
    def diagnosis_path(self) -> Path:
        return self.mission_dir / DIAGNOSIS_FILENAME

    def exists(self) -> bool:
        return self.diagnosis_path.is_file()

    def read(self) -> Result[Diagnosis, MissionError]:
        return read_diagnosis(self.diagnosis_path)

    def create(self, symptom: str) -> Result[Diagnosis, MissionError]:
        """Start a new investigation, replacing any existing diagnosis."""
        symptom = (symptom or "").strip()
        if not symptom:
            return Err(invalid_argument("symptom cannot be empty"))

        if self.exists():
            logger.warning(f"Replacing existing diagnosis at {self.diagnosis_path}")

        now = datetime.now()
        diagnosis = Diagnosis(
            id=generate_diagnosis_id(now),
            status=STATUS_INVESTIGATING,
            confidence="low",
            created=now,
            body=DIAGNOSIS_TEMPLATE.format(symptom=symptom),
        )

        saved = self._save(diagnosis)
        if saved.is_err():
            return saved

        log_diagnosis_event("created", diagnosis.id)
        return Ok(diagnosis)

    def update_section(self, section: str, content: str) -> Result[Diagnosis, MissionError]:
        """Replace a text section or append one line to a list section.

        List content that already carries a list marker is appended as
        written; bare text is formatted for the section. Unknown sections
        are created at the end of the document.
        """
        if not section or not section.strip():
            return Err(invalid_argument("section cannot be empty"))
        if not content or not content.strip():
            return Err(invalid_argument("content cannot be empty"))
        if error := md.validate_section_name(section):
            return Err(error)

        loaded = self.read()
        if loaded.is_err():
            return loaded
        diagnosis = loaded.unwrap()

        name = md.normalize_section_name(section)
        if name not in LIST_SECTIONS:
            diagnosis.body = md.update_section_content(diagnosis.body, name, content)
        elif md.parse_list_item(content) is not None:
            existing = [
                line
                for line in md.section_lines(diagnosis.body, name) or []
                if line.strip() and line.strip() not in md.PLACEHOLDER_LINES
            ]
            diagnosis.body = md.update_section_content(diagnosis.body, name, "\n".join([*existing, content]))
        else:
            diagnosis.body = md.update_section_list(diagnosis.body, name, [content.strip()], append_mode=True)

        saved = self._save(diagnosis)
        if saved.is_err():
            return saved

        log_diagnosis_event(f"updated {name}", diagnosis.id)
        return Ok(diagnosis)

    def update_list(self, section: str, items: list[str], append_mode: bool = False) -> Result[Diagnosis, MissionError]:
        """Replace (or extend) a section's list with formatted items."""
        if not section or not section.strip():
            return Err(invalid_argument("section cannot be empty"))
        if error := md.validate_section_name(section):
            return Err(error)
        items = [item.strip() for item in items or [] if item and item.strip()]
        if not items:
            return Err(invalid_argument("items cannot be empty"))

        loaded = self.read()
        if loaded.is_err():
            return loaded
        diagnosis = loaded.unwrap()

        name = md.normalize_section_name(section)
        diagnosis.body = md.update_section_list(diagnosis.body, name, items, append_mode=append_mode)

        saved = self._save(diagnosis)
        if saved.is_err():
            return saved

        log_diagnosis_event(f"updated {name}", diagnosis.id)
        return Ok(diagnosis)

    def update_frontmatter(self, status: str | None = None, confidence: str | None = None) -> Result[Diagnosis, MissionError]:
        """Set status and/or confidence; at least one is required."""
        if not status and not confidence:
            return Err(invalid_argument("at least one of status or confidence must be provided"))
        if status and status not in VALID_STATUSES:
            return Err(
                invalid_argument(
                    f"invalid status: {status} (must be investigating, confirmed, or inconclusive)",
                    status=status,
                )
            )
        if confidence and confidence not in VALID_CONFIDENCE:
            return Err(
                invalid_argument(
                    f"invalid confidence: {confidence} (must be low, medium, or high)",
                    confidence=confidence,
                )
            )

        loaded = self.read()
        if loaded.is_err():
            return loaded
        diagnosis = loaded.unwrap()

        if status:
            if status != diagnosis.status:
                logger.info(f"Diagnosis {diagnosis.id}: {diagnosis.status or 'unset'} -> {status}")
            diagnosis.status = status
        if confidence:
            diagnosis.confidence = confidence

        saved = self._save(diagnosis)
        if saved.is_err():
            return saved

        log_diagnosis_event("frontmatter updated", diagnosis.id)
        return Ok(diagnosis)

    def finalize(self) -> Result[dict[str, Any], MissionError]:
        """Check that every required section is present.

        Returns:
            Ok({"valid": True, "message": ...}) or
            Ok({"valid": False, "missing_sections": [...], "message": ...})
        """
        loaded = self.read()
        if loaded.is_err():
            return loaded
        diagnosis = loaded.unwrap()

        doc = diagnosis.to_document()
        required = list(REQUIRED_SECTIONS)
        if diagnosis.status == STATUS_CONFIRMED:
            required.extend(CONFIRMED_REQUIRED_SECTIONS)

        missing = [section for section in required if not doc.has_section(section)]
        if missing:
            logger.info(f"Diagnosis {diagnosis.id} incomplete: missing {', '.join(missing)}")
            return Ok(
                {
                    "valid": False,
                    "missing_sections": missing,
                    "message": f"Missing required sections: {', '.join(missing)}",
                }
            )

        log_diagnosis_event("finalized", diagnosis.id)
        return Ok({"valid": True, "message": "Diagnosis validated successfully"})

    def finalize_json(self) -> Result[str, MissionError]:
        report = self.finalize()
        if report.is_err():
            return report
        return Ok(json.dumps(report.unwrap(), indent=2))

    def _save(self, diagnosis: Diagnosis) -> Result[Path, MissionError]:
        if diagnosis.status and diagnosis.status not in VALID_STATUSES:
            return Err(malformed(f"diagnosis has invalid status: {diagnosis.status}", status=diagnosis.status))

        written = md.write_document(
            self.diagnosis_path,
            diagnosis.to_document(),
            mode=self.config.file_mode,
            dir_mode=self.config.dir_mode,
        )
        if written.is_err():
            return Err(written.unwrap_err().wrap("writing diagnosis"))
        return written
