"""One sync run: fetch, index, plan, write, checkpoint.

The watermark is only advanced after the fetch succeeded and every
planned document was written, so a failed run is recovered by running
again.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from roamsync.core.checkpoint import CheckpointStore
from roamsync.core.index import map_parents_to_highlights, note_list_to_map
from roamsync.core.org_roam import OrgRoamIndex
from roamsync.core.planner import PlanAction, PlanInvariantError, plan_changes
from roamsync.core.settings import Settings
from roamsync.core.templates import TemplateRenderer
from roamsync.core.writer import apply_change
from roamsync.providers.readwise import ReadwiseClient, ReadwiseError

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Status of a sync run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncJob:
    """Counters and outcome of one sync run."""

    status: SyncStatus = SyncStatus.PENDING
    updated_after: datetime | None = None
    documents_fetched: int = 0
    highlights_fetched: int = 0
    notes_fetched: int = 0
    records_dropped: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    dry_run: bool = False
    checkpoint_written: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    error: str | None = None
    failed_documents: list[str] = field(default_factory=list)

    def finish(self, status: SyncStatus) -> None:
        self.status = status
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "status": self.status.value,
            "updated_after": self.updated_after.isoformat() if self.updated_after else None,
            "documents_fetched": self.documents_fetched,
            "highlights_fetched": self.highlights_fetched,
            "notes_fetched": self.notes_fetched,
            "records_dropped": self.records_dropped,
            "items_created": self.items_created,
            "items_updated": self.items_updated,
            "items_skipped": self.items_skipped,
            "items_failed": self.items_failed,
            "dry_run": self.dry_run,
            "checkpoint_written": self.checkpoint_written,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "failed_documents": list(self.failed_documents),
        }


def run_sync(
    settings: Settings,
    client: ReadwiseClient,
    *,
    full: bool = False,
    dry_run: bool = False,
    index_loader: Callable[[], OrgRoamIndex] | None = None,
    renderer: TemplateRenderer | None = None,
) -> SyncJob:
    """Run one incremental sync from Reader into the org-roam directory.

    Args:
        settings: Paths, categories and URL rules
        client: Reader API client
        full: Ignore the stored watermark and fetch everything
        dry_run: Plan only; write neither files nor the checkpoint
        index_loader: Override how the existing knowledge base is read
        renderer: Override the template renderer

    Returns:
        The finished SyncJob

    Raises:
        ReadwiseError: If fetching fails; nothing has been written
        sqlite3.Error: If org-roam.db cannot be read; nothing has been written
    """
    job = SyncJob(dry_run=dry_run)
    checkpoint = CheckpointStore(settings.updated_after_file_path)
    job.updated_after = None if full else checkpoint.read_watermark()
    job.status = SyncStatus.RUNNING

    if job.updated_after:
        logger.info(f"Fetching documents updated after {job.updated_after.isoformat()}")
    else:
        logger.info("No watermark, fetching all documents")

    try:
        documents, dropped_docs = client.get_document_list(
            settings.document_categories,
            job.updated_after,
            settings.keep_query_params,
        )
        highlights, dropped_highlights = client.get_highlight_list()
        notes, dropped_notes = client.get_note_list()
    except ReadwiseError as e:
        logger.exception("Fetching from Readwise failed; nothing written")
        job.error = str(e)
        job.finish(SyncStatus.FAILED)
        raise

    job.documents_fetched = len(documents)
    job.highlights_fetched = len(highlights)
    job.notes_fetched = len(notes)
    job.records_dropped = dropped_docs + dropped_highlights + dropped_notes

    try:
        if index_loader is None:
            index = OrgRoamIndex.load(settings.org_roam_dir, settings.org_roam_db_path)
        else:
            index = index_loader()
    except sqlite3.Error as e:
        logger.exception(f"Reading org-roam database {settings.org_roam_db_path} failed; nothing written")
        job.error = f"org-roam database: {e}"
        job.finish(SyncStatus.FAILED)
        raise
    renderer = renderer or TemplateRenderer(settings.templates_dir)

    try:
        changes = plan_changes(
            documents,
            map_parents_to_highlights(documents, highlights),
            note_list_to_map(notes),
            index,
            renderer,
            settings.org_roam_dir,
        )
    except PlanInvariantError as e:
        logger.exception("Planning failed; nothing written")
        job.error = str(e)
        job.finish(SyncStatus.FAILED)
        raise

    for change in changes:
        if change.action == PlanAction.SKIP:
            job.items_skipped += 1
            continue
        if change.action == PlanAction.FAILED:
            job.items_failed += 1
            job.failed_documents.append(change.document.id)
            continue

        if dry_run:
            logger.info(f"[dry run] would {change.action.value} {change.path}")
        else:
            try:
                apply_change(change)
            except Exception as e:
                logger.warning(f"Failed to write {change.path} for document {change.document.id}: {e}")
                job.items_failed += 1
                job.failed_documents.append(change.document.id)
                continue

        if change.action == PlanAction.CREATE:
            job.items_created += 1
        else:
            job.items_updated += 1

    if dry_run:
        logger.info("Dry run, checkpoint not written")
    elif job.items_failed:
        logger.warning(f"{job.items_failed} document(s) failed, checkpoint not advanced")
    else:
        checkpoint.write_watermark(job.started_at)
        job.checkpoint_written = True

    job.finish(SyncStatus.COMPLETED)
    logger.info(
        f"Sync finished: {job.items_created} created, {job.items_updated} updated, "
        f"{job.items_skipped} skipped, {job.items_failed} failed"
    )
    return job
