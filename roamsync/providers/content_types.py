"""Readwise Reader content types: documents, highlights and notes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from roamsync.core.urls import org_roam_ref

# Local-store prefix for documents without a URL (org-roam "cite" refs)
PRIVATE_REF_PREFIX = "readwise_"

STATUS_DONE = "DONE"
STATUS_TODO = "TODO"


def status_for_location(location: str | None) -> str:
    """Map a Reader location (new, later, shortlist, archive, feed) to a status.

    Only archived documents count as read; any other value, including ones
    Reader may add later, is TODO.
    """
    if location == "archive":
        return STATUS_DONE
    return STATUS_TODO


@dataclass(frozen=True)
class Document:
    """A top-level saved item (article, epub, pdf, ...)."""

    id: str
    category: str
    title: str
    location: str
    saved_at: datetime
    source_url: str | None = None  # cleaned URL, None for private items
    readwise_url: str | None = None
    author: str = ""
    published_at: datetime | None = None

    @property
    def has_url(self) -> bool:
        return self.source_url is not None

    @property
    def reference(self) -> str:
        """Ref as stored by org-roam, used to find an existing node."""
        if self.source_url:
            return org_roam_ref(self.source_url)
        return f"{PRIVATE_REF_PREFIX}{self.id}"

    @property
    def roam_ref(self) -> str:
        """Ref as written in the :ROAM_REFS: property."""
        if self.source_url:
            return self.source_url
        return f"@{PRIVATE_REF_PREFIX}{self.id}"

    @property
    def status(self) -> str:
        return status_for_location(self.location)


@dataclass(frozen=True)
class Highlight:
    """A quoted excerpt belonging to a document."""

    id: str
    parent_id: str  # Document id
    content: str


@dataclass(frozen=True)
class Note:
    """An annotation attached to a highlight."""

    id: str
    parent_id: str  # Highlight id, not Document id
    saved_at: str
    content: str


@dataclass(frozen=True)
class ExistingNode:
    """An org-roam node already present in the knowledge base."""

    node_id: str
    file: Path
    title: str = ""
