"""Apply planned changes to the knowledge base."""

from __future__ import annotations

import logging
from pathlib import Path

from roamsync.core.planner import PlanAction, PlannedChange, splice_highlights

logger = logging.getLogger(__name__)


def create_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def update_file(path: Path, status: str, block: str) -> None:
    """Rewrite the status line and highlights section of an existing file.

    Raises:
        MarkerNotFoundError: If the file has no highlights marker; the file
            is left untouched
    """
    existing = path.read_text(encoding="utf-8")
    path.write_text(splice_highlights(existing, status, block), encoding="utf-8")


def apply_change(change: PlannedChange) -> bool:
    """Write one change. Returns True if a file was written."""
    if change.action == PlanAction.CREATE:
        assert change.path is not None and change.content is not None
        create_file(change.path, change.content)
        logger.info(f"Created {change.path}")
        return True

    if change.action == PlanAction.UPDATE:
        assert change.path is not None and change.status is not None and change.block is not None
        update_file(change.path, change.status, change.block)
        logger.info(f"Updated {change.path}")
        return True

    return False
