"""Markdown documents with YAML frontmatter.

Mission artifacts are plain markdown files:

    ---
    id: DIAG-20261019-142233
    status: investigating
    ---
    ## SYMPTOM
    500 on login

    ## INVESTIGATION
    - [ ] Initial investigation pending

The frontmatter block is optional. The body is treated as a flat list of
`## NAME` sections, which gives the engines typed section-level
operations (text vs. list sections, placeholder elision) without each
one scanning strings on its own.

Section names are case-insensitive and hyphens in a requested name are
read as spaces, so "affected-files" addresses `## AFFECTED FILES`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mission_toolkit.atomic import DEFAULT_DIR_MODE, DEFAULT_FILE_MODE, atomic_write_text, read_text
from mission_toolkit.errors import Err, MissionError, Ok, Result, invalid_argument, malformed

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
SECTION_PREFIX = "## "
MAX_SECTION_NAME_LENGTH = 100

# Sentinel lines written into a fresh diagnosis; dropped on first real append
PLACEHOLDER_LINES = frozenset(
    {
        "- [ ] Initial investigation pending",
        "1. **[UNKNOWN]** Investigation not yet started",
        "- TBD",
    }
)

_NUMBERED_ITEM = re.compile(r"^\d+\.\s+(.*)$")


# =============================================================================
# Document
# =============================================================================


@dataclass
class Document:
    """A markdown document: frontmatter mapping plus body text."""

    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    def get_section(self, name: str) -> Result[str, MissionError]:
        if error := validate_section_name(name):
            return Err(error)
        return Ok(extract_section(self.body, name))

    def get_list(self, name: str) -> Result[list[str], MissionError]:
        if error := validate_section_name(name):
            return Err(error)
        return Ok(extract_list(self.body, name))

    def has_section(self, name: str) -> bool:
        return find_section(self.body, name) != -1

    def list_sections(self) -> list[str]:
        """Section names in document order, as written."""
        return [
            line.strip()[len(SECTION_PREFIX) :].strip()
            for line in self.body.split("\n")
            if is_section_header(line)
        ]

    def update_section_content(self, name: str, content: str) -> Result[None, MissionError]:
        if error := validate_section_name(name):
            return Err(error)
        self.body = update_section_content(self.body, name, content)
        return Ok(None)

    def update_section_list(self, name: str, items: list[str]) -> Result[None, MissionError]:
        if error := validate_section_name(name):
            return Err(error)
        self.body = update_section_list(self.body, name, items, append_mode=False)
        return Ok(None)

    def append_section_list(self, name: str, items: list[str]) -> Result[None, MissionError]:
        if error := validate_section_name(name):
            return Err(error)
        self.body = update_section_list(self.body, name, items, append_mode=True)
        return Ok(None)


# =============================================================================
# Parse / write
# =============================================================================


def parse(content: bytes | str) -> Result[Document, MissionError]:
    """Parse markdown with optional YAML frontmatter.

    Frontmatter is present only when the first line is exactly `---`; it
    ends at the next line that is exactly `---`. Everything after that
    line is the body, byte for byte.

    Returns:
        Ok(Document), or Err(malformed) for non-UTF-8 input, an
        unterminated block, invalid YAML, or frontmatter that is not a mapping
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            return Err(malformed(f"document is not valid UTF-8: {e}"))

    if not content:
        return Ok(Document())

    lines = content.splitlines(keepends=True)
    if _strip_eol(lines[0]) != FRONTMATTER_DELIMITER:
        return Ok(Document(frontmatter={}, body=content))

    end = None
    for i in range(1, len(lines)):
        if _strip_eol(lines[i]) == FRONTMATTER_DELIMITER:
            end = i
            break

    if end is None:
        return Err(malformed("unterminated frontmatter: missing closing '---'"))

    fm_text = "".join(lines[1:end])
    body = "".join(lines[end + 1 :])

    try:
        data = yaml.safe_load(fm_text)
    except yaml.YAMLError as e:
        return Err(malformed(f"invalid frontmatter YAML: {e}"))

    if data is None:
        data = {}
    if not isinstance(data, dict):
        return Err(malformed(f"frontmatter must be a mapping, got {type(data).__name__}"))

    return Ok(Document(frontmatter=data, body=body))


def write(doc: Document) -> Result[str, MissionError]:
    """Serialize a document.

    Empty frontmatter yields the body alone; otherwise the output is
    `---\\n<yaml>---\\n<body>`.
    """
    if not doc.frontmatter:
        return Ok(doc.body)

    try:
        fm_yaml = yaml.safe_dump(
            doc.frontmatter,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    except yaml.YAMLError as e:
        return Err(malformed(f"cannot serialize frontmatter: {e}"))

    return Ok(f"{FRONTMATTER_DELIMITER}\n{fm_yaml}{FRONTMATTER_DELIMITER}\n{doc.body}")


def read_document(path: Path) -> Result[Document, MissionError]:
    """Read and parse a document from disk."""
    text = read_text(path)
    if text.is_err():
        return text

    parsed = parse(text.unwrap())
    if parsed.is_err():
        return Err(parsed.unwrap_err().wrap(f"parsing {path}", path=str(path)))
    return parsed


def write_document(
    path: Path,
    doc: Document,
    mode: int = DEFAULT_FILE_MODE,
    dir_mode: int = DEFAULT_DIR_MODE,
) -> Result[Path, MissionError]:
    """Serialize a document and replace the file atomically."""
    text = write(doc)
    if text.is_err():
        return Err(text.unwrap_err().wrap(f"writing {path}", path=str(path)))
    return atomic_write_text(path, text.unwrap(), mode=mode, dir_mode=dir_mode)


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


# =============================================================================
# Section primitives
# =============================================================================


def normalize_section_name(name: str) -> str:
    """Uppercase, hyphens read as spaces."""
    return name.strip().upper().replace("-", " ")


def validate_section_name(name: str) -> MissionError | None:
    """Return an error if a section name is unusable, else None."""
    if not name or not name.strip():
        return invalid_argument("section name cannot be empty")
    if any(c in name for c in "\n\r\t"):
        return invalid_argument("section name contains invalid characters", section=name)
    if len(name) > MAX_SECTION_NAME_LENGTH:
        return invalid_argument(
            f"section name too long (max {MAX_SECTION_NAME_LENGTH} characters)",
            section=name,
        )
    return None


def is_section_header(line: str) -> bool:
    return line.strip().startswith(SECTION_PREFIX)


def find_section(body: str, name: str) -> int:
    """Line index of `## NAME` in body, or -1."""
    header = SECTION_PREFIX + normalize_section_name(name)
    for i, line in enumerate(body.split("\n")):
        if line.strip().upper() == header:
            return i
    return -1


def next_section_index(lines: list[str], start: int) -> int:
    """Index of the first header at or after start, or len(lines)."""
    for i in range(start, len(lines)):
        if is_section_header(lines[i]):
            return i
    return len(lines)


def section_lines(body: str, name: str) -> list[str] | None:
    """Raw lines between a header and the next one, or None if absent."""
    idx = find_section(body, name)
    if idx == -1:
        return None
    lines = body.split("\n")
    return lines[idx + 1 : next_section_index(lines, idx + 1)]


def extract_section(body: str, name: str) -> str:
    """Trimmed text of a section; empty if the section is missing."""
    lines = section_lines(body, name)
    if lines is None:
        return ""
    return "\n".join(lines).strip()


def parse_list_item(line: str) -> str | None:
    """Text of a list line, or None if the line is not a list item.

    Recognised markers: `- [ ] `, `- [x] `, `- `, `* `, `N. `.
    """
    trimmed = line.strip()
    for prefix in ("- [ ] ", "- [x] ", "- ", "* "):
        if trimmed.startswith(prefix):
            return trimmed[len(prefix) :].strip()
    if match := _NUMBERED_ITEM.match(trimmed):
        return match.group(1).strip()
    return None


def extract_list(body: str, name: str) -> list[str]:
    """List item texts of a section, markers stripped."""
    items = []
    for line in section_lines(body, name) or []:
        item = parse_list_item(line)
        if item is not None:
            items.append(item)
    return items


def format_list_items(section: str, items: list[str], start: int = 1) -> list[str]:
    """Format items the way the section expects them.

    INVESTIGATION items are checkboxes, HYPOTHESES are numbered from
    start, everything else is a dash list.
    """
    normalized = normalize_section_name(section)
    if normalized == "INVESTIGATION":
        return [f"- [ ] {item}" for item in items]
    if normalized == "HYPOTHESES":
        return [f"{start + i}. {item}" for i, item in enumerate(items)]
    return [f"- {item}" for item in items]


def update_section_content(body: str, name: str, content: str) -> str:
    """Replace a section's text, or append the section if it is missing."""
    normalized = normalize_section_name(name)
    content = content.rstrip("\n")
    idx = find_section(body, name)

    if idx == -1:
        prefix = body.rstrip("\n")
        section = f"{SECTION_PREFIX}{normalized}\n{content}\n" if content else f"{SECTION_PREFIX}{normalized}\n"
        if not prefix:
            return section
        return f"{prefix}\n\n{section}"

    lines = body.split("\n")
    end = next_section_index(lines, idx + 1)

    parts = lines[: idx + 1]
    if content:
        parts.append(content)
    if end < len(lines):
        parts.append("")
        parts.extend(lines[end:])
    else:
        parts.append("")

    return "\n".join(parts)


def update_section_list(body: str, name: str, items: list[str], append_mode: bool = False) -> str:
    """Replace or extend the list of a section.

    Placeholder lines and blank lines are dropped. Non-list text in the
    section (e.g. an italic description) is kept above the list. In
    append mode existing list lines are kept verbatim and numbering of
    HYPOTHESES continues after them.
    """
    prose: list[str] = []
    existing: list[str] = []

    for line in section_lines(body, name) or []:
        trimmed = line.strip()
        if not trimmed or trimmed in PLACEHOLDER_LINES:
            continue
        if parse_list_item(trimmed) is not None:
            existing.append(trimmed)
        else:
            prose.append(line.rstrip())

    kept = existing if append_mode else []
    formatted = format_list_items(name, items, start=len(kept) + 1)

    return update_section_content(body, name, "\n".join(prose + kept + formatted))
