"""Decide, per document, whether to create, update or skip its org file.

Planning never writes: it reads existing files through the index and
returns PlannedChange objects for the writer. Given the same documents,
highlights, notes and knowledge base, it returns the same plan.
"""

from __future__ import annotations

import hashlib
import logging
import re
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from roamsync.core.org_roam import OrgRoamIndex, parse_file_properties
from roamsync.core.templates import TemplateRenderer
from roamsync.core.urls import slugify
from roamsync.providers.content_types import Document, Highlight, Note

logger = logging.getLogger(__name__)

# Start of the machine-managed part of a file; everything above is manual
HIGHLIGHTS_MARKER = "* Highlights"
_MARKER_LINE = re.compile(r"^\* Highlights[ \t]*$", re.MULTILINE)
_STATUS_LINE = re.compile(r"^#\+status:.*$", re.IGNORECASE | re.MULTILINE)

MAX_SLUG_LENGTH = 100


class PlanAction(str, Enum):
    """What the writer should do with a document."""

    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"
    FAILED = "failed"  # Planning raised; nothing is written


class PlanInvariantError(RuntimeError):
    """The highlight index references a document that was never fetched."""


class MarkerNotFoundError(ValueError):
    """An existing file has no highlights marker line."""


@dataclass(frozen=True)
class HighlightEntry:
    """A highlight paired with its note, as passed to the templates."""

    id: str
    content: str
    note: str | None = None
    note_saved_at: str | None = None


@dataclass(frozen=True)
class PlannedChange:
    action: PlanAction
    document: Document
    path: Path | None = None
    status: str | None = None
    block: str | None = None  # rendered highlights section
    content: str | None = None  # full file, CREATE only
    reason: str | None = None


def build_entries(highlights: Sequence[Highlight], notes: Mapping[str, Note]) -> list[HighlightEntry]:
    """Oldest-first highlight entries with their notes.

    Reader lists highlights newest first; files read top to bottom.
    """
    entries = []
    for highlight in reversed(highlights):
        note = notes.get(highlight.id)
        entries.append(
            HighlightEntry(
                id=highlight.id,
                content=highlight.content,
                note=note.content if note else None,
                note_saved_at=note.saved_at if note else None,
            )
        )
    return entries


def ambiguous_titles(documents: Iterable[Document]) -> set[str]:
    """Titles shared by more than one document in this run."""
    counts = Counter(doc.title for doc in documents)
    return {title for title, n in counts.items() if n > 1}


def make_filename(document: Document, ambiguous: set[str]) -> str:
    """<YYYYMMDDhhmmss>-<slug>[-<url hash>].org

    The hash suffix is only added when another document has the same title.
    It is the md5 of roam_ref: the cleaned source URL, or "@readwise_<id>"
    for private documents, which have no URL to hash.
    """
    stamp = document.saved_at.strftime("%Y%m%d%H%M%S")
    name = f"{stamp}-{slugify(document.title, MAX_SLUG_LENGTH)}"
    if document.title in ambiguous:
        digest = hashlib.md5(document.roam_ref.encode("utf-8")).hexdigest()
        name = f"{name}-{digest[:8]}"
    return f"{name}.org"


def org_timestamp(dt: datetime) -> str:
    """Inactive org timestamp, e.g. [2024-01-02 Tue 10:30]."""
    return dt.strftime("[%Y-%m-%d %a %H:%M]")


def find_marker(text: str) -> int | None:
    match = _MARKER_LINE.search(text)
    return match.start() if match else None


def splice_highlights(text: str, status: str, block: str) -> str:
    """Replace the highlights section of an existing file.

    Everything before the marker is kept verbatim except the #+status: line,
    which is set to `status`. Everything from the marker on becomes `block`.

    Raises:
        MarkerNotFoundError: If the file has no marker line
    """
    pos = find_marker(text)
    if pos is None:
        raise MarkerNotFoundError(f"No '{HIGHLIGHTS_MARKER}' line found")
    prefix = _STATUS_LINE.sub(lambda _: f"#+status: {status}", text[:pos], count=1)
    return prefix + block


def _plan_update(
    document: Document,
    path: Path,
    status: str,
    block: str,
    index: OrgRoamIndex,
) -> PlannedChange:
    if not path.exists():
        return PlannedChange(PlanAction.SKIP, document, path, status, block, reason="file missing")

    existing = index.read_file(path)
    if find_marker(existing) is None:
        return PlannedChange(PlanAction.SKIP, document, path, status, block, reason="no highlights marker")

    if splice_highlights(existing, status, block) == existing:
        return PlannedChange(PlanAction.SKIP, document, path, status, block, reason="unchanged")

    return PlannedChange(PlanAction.UPDATE, document, path, status, block)


def plan_document(
    document: Document,
    highlights: Sequence[Highlight],
    notes: Mapping[str, Note],
    index: OrgRoamIndex,
    renderer: TemplateRenderer,
    ambiguous: set[str],
    target_dir: Path,
    new_node_id: Callable[[], str],
) -> PlannedChange:
    """Plan the change for one document with at least one highlight."""
    status = document.status
    entries = build_entries(highlights, notes)
    block = renderer.render_highlights(entries)

    node = index.lookup(document.reference)
    if node is not None:
        return _plan_update(document, node.file, status, block, index)

    path = target_dir / make_filename(document, ambiguous)
    if path.exists():
        # Written by an earlier run the index has not picked up yet
        _, refs, _ = parse_file_properties(index.read_file(path))
        if document.reference in refs:
            return _plan_update(document, path, status, block, index)
        return PlannedChange(PlanAction.SKIP, document, path, status, block, reason="filename taken")

    content = renderer.render_document(
        uuid=new_node_id(),
        reference=document.roam_ref,
        url=document.source_url,
        readwise_url=document.readwise_url,
        title=document.title,
        author=document.author,
        status=status,
        timestamp=org_timestamp(document.saved_at),
        highlights=entries,
        highlights_block=block,
    )
    return PlannedChange(PlanAction.CREATE, document, path, status, block, content=content)


def plan_changes(
    documents: Iterable[Document],
    highlight_index: Mapping[str, list[Highlight]],
    note_index: Mapping[str, Note],
    index: OrgRoamIndex,
    renderer: TemplateRenderer,
    target_dir: Path,
    new_node_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> list[PlannedChange]:
    """Plan every document that has highlights.

    A failure while planning one document yields a FAILED change and the
    run continues.

    Raises:
        PlanInvariantError: If highlight_index has a key with no document
    """
    documents_by_id = {doc.id: doc for doc in documents}
    ambiguous = ambiguous_titles(documents_by_id.values())
    planned_refs: set[str] = set()
    changes: list[PlannedChange] = []

    for doc_id, highlights in highlight_index.items():
        if not highlights:
            continue

        document = documents_by_id.get(doc_id)
        if document is None:
            raise PlanInvariantError(f"Highlight index has unknown document id {doc_id}")

        if document.reference in planned_refs:
            logger.info(f"Skipping {document.title!r}: ref {document.reference} already planned in this run")
            changes.append(PlannedChange(PlanAction.SKIP, document, reason="duplicate ref"))
            continue
        planned_refs.add(document.reference)

        try:
            change = plan_document(
                document, highlights, note_index, index, renderer, ambiguous, target_dir, new_node_id
            )
        except Exception as e:
            logger.warning(f"Failed to plan document {document.id} ({document.title[:50]}): {e}")
            change = PlannedChange(PlanAction.FAILED, document, reason=str(e))

        if change.action == PlanAction.SKIP:
            logger.debug(f"Skip {document.title!r}: {change.reason}")
        changes.append(change)

    return changes
