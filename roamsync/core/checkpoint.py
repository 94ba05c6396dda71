"""Persistence of the "updated after" watermark between runs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Single ISO 8601 timestamp in a text file, overwritten each run."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read_watermark(self) -> datetime | None:
        """Return the stored watermark, or None for a full resync.

        A missing, empty or unparsable file counts as no watermark.
        """
        try:
            contents = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read checkpoint {self.path}: {e}; doing a full sync")
            return None

        if not contents:
            return None
        try:
            watermark = datetime.fromisoformat(contents.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Invalid date {contents!r} in {self.path}; doing a full sync")
            return None

        if watermark.tzinfo is None:
            watermark = watermark.replace(tzinfo=timezone.utc)
        return watermark

    def write_watermark(self, timestamp: datetime) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(timestamp.isoformat(), encoding="utf-8")

    def reset(self) -> bool:
        """Delete the checkpoint. Returns True if there was one."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True
