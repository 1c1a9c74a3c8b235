"""Backlog engine.

The backlog is a single markdown document, `.mission/backlog.md`, with
one section per item type:

    ---
    last_updated: 2026-10-19 14:22:33.123456
    last_action: 'Added feature item: Ship v1'
    ---
    # Mission Backlog

    ## FEATURES
    *User-defined feature requests and enhancements.*
    - [ ] Ship v1

    ...

    ## COMPLETED
    *History of completed backlog items.*
    - [x] Old task (Completed: 2026-10-18)

Refactor items can carry a pattern marker, `[PATTERN:<id>][COUNT:<n>]`,
which is bumped in place each time the same pattern is observed again
instead of adding a duplicate line.

Every mutation rewrites the frontmatter with a fresh `last_updated` and
a short `last_action`; other frontmatter keys are kept as they are.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterable

from mission_toolkit import md
from mission_toolkit.config import MissionConfig
from mission_toolkit.errors import Err, MissionError, Ok, Result, conflict, invalid_argument, not_found
from mission_toolkit.logging import log_backlog_change
from mission_toolkit.md import Document
from mission_toolkit.mission import BACKLOG_FILENAME

logger = logging.getLogger(__name__)

COMPLETED = "completed"

# Order matters: it is the order used in error messages
ITEM_TYPES = ("decomposed", "refactor", "future", "feature", "bugfix")

SECTION_HEADERS = {
    "feature": "FEATURES",
    "bugfix": "BUGFIXES",
    "decomposed": "DECOMPOSED INTENTS",
    "refactor": "REFACTORING OPPORTUNITIES",
    "future": "FUTURE ENHANCEMENTS",
    COMPLETED: "COMPLETED",
}
SECTION_TYPES = {header: item_type for item_type, header in SECTION_HEADERS.items()}

OPEN_PREFIX = "- [ ]"
DONE_PREFIX = "- [x]"

PATTERN_MARKER = re.compile(r"\[PATTERN:([^\]]+)\]\[COUNT:(\d+)\]")

COMPLETED_FALLBACK_DESCRIPTION = "(History of completed backlog items)"

BACKLOG_TEMPLATE = """# Mission Backlog

## FEATURES
*User-defined feature requests and enhancements.*

## BUGFIXES
*Bug reports and issues to be fixed.*

## DECOMPOSED INTENTS
*Atomic tasks broken down from larger epics.*

## REFACTORING OPPORTUNITIES
*Technical debt and refactoring opportunities identified during development.*

## FUTURE ENHANCEMENTS
*Ideas and future feature requests for later consideration.*

## COMPLETED
*History of completed backlog items.*
"""


@dataclass(frozen=True)
class BacklogMetadata:
    """Frontmatter of the backlog document."""

    last_updated: datetime | None
    last_action: str


class BacklogManager:
    """Reads and mutates `.mission/backlog.md`.

    All operations return Result values. A malformed document halts the
    operation before anything is written.
    """

    def __init__(self, mission_dir: Path, config: MissionConfig | None = None):
        self.mission_dir = Path(mission_dir)
        self.config = config or MissionConfig()

    @property
    def backlog_path(self) -> Path:
        return self.mission_dir / BACKLOG_FILENAME

    # =========================================================================
    # Mutations
    # =========================================================================

    def add(self, description: str, item_type: str) -> Result[str, MissionError]:
        """Append an open item to the section for item_type.

        Returns:
            Ok(action string recorded in the frontmatter)
        """
        return self.add_with_pattern(description, item_type, "")

    def add_with_pattern(self, description: str, item_type: str, pattern_id: str = "") -> Result[str, MissionError]:
        """Like add(), but refactor items with a pattern ID are deduplicated.

        The first observation writes `[PATTERN:<id>][COUNT:2]`; later ones
        bump the count on the existing line. A pattern ID on any other
        type is ignored.
        """
        if error := _validate_type(item_type):
            return Err(error)
        if error := _validate_description(description):
            return Err(error)

        pattern_id = (pattern_id or "").strip()
        if pattern_id and item_type != "refactor":
            logger.debug(f"Ignoring pattern id {pattern_id!r} for {item_type} item")
            pattern_id = ""
        if pattern_id and ("]" in pattern_id or "\n" in pattern_id):
            return Err(invalid_argument(f"invalid pattern id: {pattern_id}", pattern_id=pattern_id))

        loaded = self._load()
        if loaded.is_err():
            return loaded
        doc = loaded.unwrap()

        if pattern_id:
            found = _find_pattern(doc.body, pattern_id)
            if found.is_err():
                return found
            if found.unwrap() is not None:
                return self._increment_pattern(doc, pattern_id, found.unwrap())
            line = f"{OPEN_PREFIX} [PATTERN:{pattern_id}][COUNT:2] {description}"
        else:
            line = f"{OPEN_PREFIX} {description}"

        doc.body = _insert_items(doc.body, SECTION_HEADERS[item_type], [line])
        return self._save(doc, f"Added {item_type} item: {description}")

    def add_multiple(self, descriptions: list[str], item_type: str) -> Result[str, MissionError]:
        """Append several open items to one section in a single write."""
        if error := _validate_type(item_type):
            return Err(error)
        if not descriptions:
            return Err(invalid_argument("no items to add"))
        for description in descriptions:
            if error := _validate_description(description):
                return Err(error)

        loaded = self._load()
        if loaded.is_err():
            return loaded
        doc = loaded.unwrap()

        lines = [f"{OPEN_PREFIX} {d}" for d in descriptions]
        doc.body = _insert_items(doc.body, SECTION_HEADERS[item_type], lines)
        return self._save(doc, f"Added {len(descriptions)} {item_type} items")

    def complete(self, item_text: str) -> Result[str, MissionError]:
        """Move the first open item containing item_text to COMPLETED."""
        item_text = (item_text or "").strip()
        if not item_text:
            return Err(invalid_argument("item text cannot be empty"))

        loaded = self._load()
        if loaded.is_err():
            return loaded
        doc = loaded.unwrap()

        lines = doc.body.split("\n")
        for i, line in enumerate(lines):
            trimmed = line.strip()
            if not trimmed.startswith(OPEN_PREFIX):
                continue
            text = trimmed[len(OPEN_PREFIX) :].strip()
            if item_text in text:
                del lines[i]
                break
        else:
            return Err(not_found(f"item not found: {item_text}", item=item_text))

        done_line = f"{DONE_PREFIX} {text} (Completed: {date.today().strftime('%Y-%m-%d')})"
        body = "\n".join(lines)
        completed_header = SECTION_HEADERS[COMPLETED]

        if md.find_section(body, completed_header) == -1:
            body = "\n".join(
                [
                    body.rstrip("\n"),
                    "",
                    f"{md.SECTION_PREFIX}{completed_header}",
                    COMPLETED_FALLBACK_DESCRIPTION,
                    done_line,
                    "",
                ]
            )
        else:
            body = _insert_items(body, completed_header, [done_line])

        doc.body = body
        return self._save(doc, f"Completed item: {item_text}")

    def cleanup(self, item_type: str = "") -> Result[int, MissionError]:
        """Remove completed items, optionally only those matching item_type.

        Type matching is a heuristic on the item text:
        decomposed items contain "(from Epic:", refactor items mention
        "refactor" or "extract", other types never match.

        Returns:
            Ok(number of lines removed); the file is only rewritten when > 0
        """
        if item_type and (error := _validate_type(item_type)):
            return Err(error)

        loaded = self._load()
        if loaded.is_err():
            return loaded
        doc = loaded.unwrap()

        kept: list[str] = []
        removed = 0
        for section, line in _walk(doc.body):
            trimmed = line.strip()
            if section == COMPLETED and trimmed.startswith(DONE_PREFIX):
                if not item_type or _matches_item_type(trimmed, item_type):
                    removed += 1
                    continue
            kept.append(line)

        if removed == 0:
            logger.debug("Cleanup removed nothing, backlog unchanged")
            return Ok(0)

        doc.body = "\n".join(kept)
        action = f"Cleaned up {removed} completed {item_type} items" if item_type else f"Cleaned up {removed} completed items"
        saved = self._save(doc, action)
        if saved.is_err():
            return saved
        return Ok(removed)

    # =========================================================================
    # Queries
    # =========================================================================

    def list(self, include: Iterable[str] | None = None, exclude: Iterable[str] | None = None) -> Result[list[str], MissionError]:
        """Checklist lines filtered by type tag.

        Completed lines are returned only when "completed" is included
        and not excluded. Typed lines are returned unless their tag is
        excluded, and, when an include set is given, only if it names
        their tag.
        """
        include_set = set(include or ())
        exclude_set = set(exclude or ())
        for tag in include_set | exclude_set:
            if tag != COMPLETED and (error := _validate_type(tag)):
                return Err(error)

        loaded = self._load()
        if loaded.is_err():
            return loaded

        items: list[str] = []
        for section, line in _walk(loaded.unwrap().body):
            trimmed = line.strip()
            if not (trimmed.startswith(OPEN_PREFIX) or trimmed.startswith(DONE_PREFIX)):
                continue
            if section is None or section in exclude_set:
                continue
            if section == COMPLETED:
                if COMPLETED in include_set:
                    items.append(trimmed)
            elif not include_set or section in include_set:
                items.append(trimmed)

        return Ok(items)

    def get_pattern_count(self, pattern_id: str) -> Result[int, MissionError]:
        """Current count for a pattern ID, 0 if it has not been recorded."""
        loaded = self._load()
        if loaded.is_err():
            return loaded

        found = _find_pattern(loaded.unwrap().body, pattern_id.strip())
        if found.is_err():
            return found
        if found.unwrap() is None:
            return Ok(0)
        _, count = found.unwrap()
        return Ok(count)

    def read_metadata(self) -> Result[BacklogMetadata, MissionError]:
        loaded = self._load()
        if loaded.is_err():
            return loaded

        fm = loaded.unwrap().frontmatter
        last_updated = fm.get("last_updated")
        return Ok(
            BacklogMetadata(
                last_updated=_as_local_naive(last_updated) if isinstance(last_updated, datetime) else None,
                last_action=str(fm.get("last_action") or ""),
            )
        )

    # =========================================================================
    # Storage
    # =========================================================================

    def _load(self) -> Result[Document, MissionError]:
        """Read the backlog, creating it from the template on first access."""
        if not self.backlog_path.exists():
            logger.info(f"Creating backlog at {self.backlog_path}")
            created = self._save(Document(frontmatter={}, body=BACKLOG_TEMPLATE), "Created backlog")
            if created.is_err():
                return created

        result = md.read_document(self.backlog_path)
        if result.is_err():
            return Err(result.unwrap_err().wrap("reading backlog"))

        doc = result.unwrap()
        doc.body = _unwrap_nested_frontmatter(doc)
        return Ok(doc)

    def _save(self, doc: Document, action: str) -> Result[str, MissionError]:
        frontmatter: dict[str, Any] = dict(doc.frontmatter)
        frontmatter["last_updated"] = _next_timestamp(frontmatter.get("last_updated"))
        frontmatter["last_action"] = action

        written = md.write_document(
            self.backlog_path,
            Document(frontmatter=frontmatter, body=doc.body),
            mode=self.config.file_mode,
            dir_mode=self.config.dir_mode,
        )
        if written.is_err():
            return Err(written.unwrap_err().wrap("writing backlog"))

        log_backlog_change(action)
        return Ok(action)

    def _increment_pattern(self, doc: Document, pattern_id: str, found: tuple[int, int]) -> Result[str, MissionError]:
        index, count = found
        new_count = count + 1
        lines = doc.body.split("\n")
        lines[index] = PATTERN_MARKER.sub(
            lambda m: f"[PATTERN:{pattern_id}][COUNT:{new_count}]" if m.group(1) == pattern_id else m.group(0),
            lines[index],
        )
        doc.body = "\n".join(lines)
        return self._save(doc, f"Incremented pattern {pattern_id} count to {new_count}")


# =============================================================================
# Helpers
# =============================================================================


def _validate_type(item_type: str) -> MissionError | None:
    if item_type not in ITEM_TYPES:
        return invalid_argument(
            f"invalid type: {item_type}. Valid types: {', '.join(ITEM_TYPES)}",
            item_type=item_type,
        )
    return None


def _validate_description(description: str) -> MissionError | None:
    if not description or not description.strip():
        return invalid_argument("description cannot be empty")
    if "\n" in description or "\r" in description:
        return invalid_argument("description must be a single line", description=description)
    return None


def _walk(body: str) -> Iterable[tuple[str | None, str]]:
    """Yield (type tag of enclosing section, line) for every non-header line.

    Lines before the first section, or in a section that is not part of
    the backlog schema, get None.
    """
    section: str | None = None
    for line in body.split("\n"):
        if md.is_section_header(line):
            section = SECTION_TYPES.get(md.normalize_section_name(line.strip()[len(md.SECTION_PREFIX) :]))
            yield section, line
            continue
        yield section, line


def _insert_items(body: str, section_name: str, items: list[str]) -> str:
    """Insert lines at the end of a section's leading block.

    The block is the header plus the non-blank, non-header lines that
    follow it. A missing section is appended first.
    """
    if md.find_section(body, section_name) == -1:
        body = md.update_section_content(body, section_name, "")

    lines = body.split("\n")
    j = md.find_section(body, section_name) + 1
    while j < len(lines) and lines[j].strip() and not md.is_section_header(lines[j]):
        j += 1
    lines[j:j] = items
    return "\n".join(lines)


def _find_pattern(body: str, pattern_id: str) -> Result[tuple[int, int] | None, MissionError]:
    """(line index, count) of the marker for pattern_id, or None."""
    matches = []
    for i, line in enumerate(body.split("\n")):
        for m in PATTERN_MARKER.finditer(line):
            if m.group(1) == pattern_id:
                matches.append((i, int(m.group(2))))

    if len(matches) > 1:
        return Err(
            conflict(
                f"pattern {pattern_id} appears {len(matches)} times in backlog",
                pattern_id=pattern_id,
            )
        )
    return Ok(matches[0] if matches else None)


def _matches_item_type(item: str, item_type: str) -> bool:
    if item_type == "decomposed":
        return "(from Epic:" in item
    if item_type == "refactor":
        lowered = item.lower()
        return "refactor" in lowered or "extract" in lowered
    return False


def _as_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _now() -> datetime:
    return datetime.now()


def _next_timestamp(previous: Any) -> datetime:
    """Now, but never earlier than just after the previous timestamp."""
    now = _now()
    if isinstance(previous, datetime):
        floor = _as_local_naive(previous) + timedelta(microseconds=1)
        if now < floor:
            return floor
    return now


def _unwrap_nested_frontmatter(doc: Document) -> str:
    """Fold stray frontmatter blocks at the top of the body into doc.

    Older writers could prepend a second block instead of replacing the
    first; the outer values win.
    """
    body = doc.body
    while body.startswith(md.FRONTMATTER_DELIMITER + "\n"):
        inner = md.parse(body)
        if inner.is_err() or not inner.unwrap().frontmatter:
            break
        logger.warning("Merging duplicate frontmatter block in backlog")
        for key, value in inner.unwrap().frontmatter.items():
            doc.frontmatter.setdefault(key, value)
        body = inner.unwrap().body
    return body
