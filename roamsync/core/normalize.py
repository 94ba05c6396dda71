"""Parse raw Reader API records into typed documents, highlights and notes.

Every parser fails closed: a missing or mistyped required field raises
RecordError, and normalize_batch() drops that record instead of failing the
whole batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, TypeVar

from roamsync.core.urls import clean_url, is_http_url
from roamsync.providers.content_types import Document, Highlight, Note

logger = logging.getLogger(__name__)

T = TypeVar("T")

EBOOK_CATEGORY = "epub"


class RecordError(ValueError):
    """A raw record is missing a required field or has the wrong type."""


def _get_str(raw: Mapping[str, Any], field: str) -> str:
    if field not in raw or raw[field] is None:
        raise RecordError(f"Missing {field}")
    value = raw[field]
    if not isinstance(value, str):
        raise RecordError(f"{field} is not a string")
    return value


def _opt_str(raw: Mapping[str, Any], field: str) -> str | None:
    value = raw.get(field)
    return value if isinstance(value, str) else None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp (with optional trailing Z) as an aware UTC datetime."""
    return _as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def _parse_published(value: Any) -> datetime | None:
    """published_date is either null, epoch milliseconds, or an ISO date string."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            return parse_timestamp(value)
        except ValueError:
            return None
    return None


def display_title(title: str, category: str, published_at: datetime | None) -> str:
    """Books get their publication year appended: "Title (1999)"."""
    if category == EBOOK_CATEGORY and published_at is not None:
        return f"{title} ({published_at.year})"
    return title


def parse_document(
    raw: Mapping[str, Any],
    keep_query_params: Mapping[str, frozenset[str]] | None = None,
) -> Document:
    """Convert a Reader document record to a Document."""
    doc_id = _get_str(raw, "id")
    category = _get_str(raw, "category")
    title = _get_str(raw, "title")
    location = _get_str(raw, "location")
    saved_at_raw = _get_str(raw, "saved_at")
    try:
        saved_at = parse_timestamp(saved_at_raw)
    except ValueError as e:
        raise RecordError(f"saved_at is not a timestamp: {saved_at_raw!r}") from e

    # Private items have source_url like "private://..."
    source_url = _opt_str(raw, "source_url")
    cleaned = clean_url(source_url, keep_query_params) if is_http_url(source_url) else None

    published_at = _parse_published(raw.get("published_date"))

    return Document(
        id=doc_id,
        category=category,
        title=display_title(title, category, published_at),
        location=location,
        saved_at=saved_at,
        source_url=cleaned,
        readwise_url=_opt_str(raw, "url"),
        author=_opt_str(raw, "author") or "",
        published_at=published_at,
    )


def parse_highlight(raw: Mapping[str, Any]) -> Highlight:
    return Highlight(
        id=_get_str(raw, "id"),
        parent_id=_get_str(raw, "parent_id"),
        content=_get_str(raw, "content"),
    )


def parse_note(raw: Mapping[str, Any]) -> Note:
    return Note(
        id=_get_str(raw, "id"),
        parent_id=_get_str(raw, "parent_id"),
        saved_at=_get_str(raw, "saved_at"),
        content=_get_str(raw, "content"),
    )


def normalize_batch(
    records: Iterable[Mapping[str, Any]],
    parser: Callable[[Mapping[str, Any]], T],
) -> tuple[list[T], int]:
    """Parse every record, dropping malformed ones.

    Returns:
        Tuple of (parsed items in input order, number of dropped records)
    """
    parsed: list[T] = []
    dropped = 0
    for raw in records:
        if not isinstance(raw, Mapping):
            dropped += 1
            logger.debug(f"Dropping non-object record: {raw!r:.80}")
            continue
        try:
            parsed.append(parser(raw))
        except RecordError as e:
            dropped += 1
            logger.debug(f"Dropping record {raw.get('id', 'unknown')}: {e}")
    if dropped:
        logger.info(f"Dropped {dropped} malformed record(s) via {getattr(parser, '__name__', 'parser')}")
    return parsed, dropped
