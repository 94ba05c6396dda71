"""Read-only view of an existing org-roam knowledge base.

Answers one question for the planner: does a ref already exist, and in
which file. The index comes from org-roam.db when available, otherwise
from scanning the :ID: / :ROAM_REFS: properties of every .org file.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from roamsync.core.urls import org_roam_ref
from roamsync.providers.content_types import ExistingNode

logger = logging.getLogger(__name__)

_PROPERTY = re.compile(r"^\s*:(?P<key>[A-Za-z_]+):\s*(?P<value>.*?)\s*$")
_TITLE = re.compile(r"^\s*#\+title:\s*(?P<title>.*?)\s*$", re.IGNORECASE)
_REF_TOKEN = re.compile(r'"[^"]*"|\S+')
_URL_REF = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def _unquote_emacsql(value: object) -> str:
    """org-roam.db stores strings in their printed lisp form: "\\"...\\""."""
    if value is None:
        return ""
    text = str(value)
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return text


def normalize_ref(raw: str) -> str:
    """Convert a :ROAM_REFS: entry to the form org-roam stores in its DB.

    - "https://example.com/a?v=1" -> "//example.com/a?v=1" (decoded)
    - "@key" or "cite:@key" -> "key"
    """
    ref = raw.strip().strip('"')
    if _URL_REF.match(ref):
        return org_roam_ref(ref)
    if ref.startswith("[cite:") and ref.endswith("]"):
        ref = ref[len("[cite:"):-1]
    if ref.startswith("cite:"):
        ref = ref[len("cite:"):]
    return ref.lstrip("@")


def parse_file_properties(text: str) -> tuple[str | None, list[str], str]:
    """Return (node id, refs, title) for the file-level node of an org file."""
    node_id: str | None = None
    refs: list[str] = []
    title = ""
    for line in text.splitlines():
        if line.startswith("*"):
            break  # past the file-level node
        title_match = _TITLE.match(line)
        if title_match:
            title = title_match.group("title")
            continue
        prop = _PROPERTY.match(line)
        if not prop:
            continue
        key = prop.group("key").upper()
        if key == "ID" and node_id is None:
            node_id = prop.group("value")
        elif key == "ROAM_REFS":
            refs.extend(normalize_ref(tok) for tok in _REF_TOKEN.findall(prop.group("value")))
    return node_id, refs, title


@dataclass
class OrgRoamIndex:
    """Snapshot of ref -> node id and node id -> (file, title)."""

    refs: dict[str, str] = field(default_factory=dict)
    nodes: dict[str, ExistingNode] = field(default_factory=dict)

    def lookup(self, reference: str) -> ExistingNode | None:
        """Resolve a reference to its node; None when either hop is missing."""
        node_id = self.refs.get(reference)
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def read_file(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    @classmethod
    def from_db(cls, db_path: Path) -> "OrgRoamIndex":
        """Load refs and nodes from org-roam.db (opened read-only)."""
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        try:
            refs = {
                _unquote_emacsql(row["ref"]): _unquote_emacsql(row["node_id"])
                for row in conn.execute("SELECT node_id, ref FROM refs")
            }
            nodes: dict[str, ExistingNode] = {}
            for row in conn.execute("SELECT id, file, title FROM nodes"):
                node_id = _unquote_emacsql(row["id"])
                nodes[node_id] = ExistingNode(
                    node_id=node_id,
                    file=Path(_unquote_emacsql(row["file"])),
                    title=_unquote_emacsql(row["title"]),
                )
        finally:
            conn.close()
        logger.info(f"Loaded {len(refs)} refs and {len(nodes)} nodes from {db_path}")
        return cls(refs=refs, nodes=nodes)

    @classmethod
    def from_files(cls, org_roam_dir: Path) -> "OrgRoamIndex":
        """Build the index by scanning .org files for file-level properties."""
        index = cls()
        if not org_roam_dir.exists():
            logger.warning(f"org-roam directory {org_roam_dir} does not exist")
            return index

        for path in sorted(org_roam_dir.rglob("*.org")):
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable file {path}: {e}")
                continue
            node_id, refs, title = parse_file_properties(text)
            if node_id is None:
                continue
            index.nodes[node_id] = ExistingNode(node_id=node_id, file=path, title=title)
            for ref in refs:
                index.refs.setdefault(ref, node_id)

        logger.info(f"Scanned {len(index.nodes)} nodes with {len(index.refs)} refs in {org_roam_dir}")
        return index

    @classmethod
    def load(cls, org_roam_dir: Path, db_path: Path | None = None) -> "OrgRoamIndex":
        if db_path is not None and db_path.exists():
            return cls.from_db(db_path)
        return cls.from_files(org_roam_dir)
