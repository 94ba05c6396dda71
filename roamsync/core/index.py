"""Parent/child indices over documents, highlights and notes."""

from __future__ import annotations

import logging
from typing import Iterable

from roamsync.providers.content_types import Document, Highlight, Note

logger = logging.getLogger(__name__)


def map_parents_to_highlights(
    documents: Iterable[Document],
    highlights: Iterable[Highlight],
) -> dict[str, list[Highlight]]:
    """Group highlights by parent document id, keeping fetch order.

    Every document id gets an entry, even without highlights. Highlights
    whose parent was not fetched (e.g. another category) are dropped.
    """
    parent_map: dict[str, list[Highlight]] = {doc.id: [] for doc in documents}

    orphans = 0
    for highlight in highlights:
        siblings = parent_map.get(highlight.parent_id)
        if siblings is None:
            orphans += 1
            continue
        siblings.append(highlight)

    if orphans:
        logger.debug(f"Ignored {orphans} highlight(s) without a fetched parent document")
    return parent_map


def note_list_to_map(notes: Iterable[Note]) -> dict[str, Note]:
    """Map highlight id -> note.

    Reader returns newest first, so on duplicates the first note seen
    (the newest) is kept.
    """
    note_map: dict[str, Note] = {}
    for note in notes:
        if note.parent_id in note_map:
            logger.warning(
                f"Highlight {note.parent_id} has more than one note; "
                f"keeping {note_map[note.parent_id].id}, ignoring {note.id}"
            )
            continue
        note_map[note.parent_id] = note
    return note_map
