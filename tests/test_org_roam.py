"""Tests for core/org_roam.py"""

import sqlite3
from pathlib import Path

import pytest

from roamsync.core.org_roam import OrgRoamIndex, normalize_ref, parse_file_properties


@pytest.fixture
def roam_db(tmp_path):
    """org-roam.db with emacsql-quoted values, as org-roam writes them."""
    db_path = tmp_path / "org-roam.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE nodes (id NOT NULL PRIMARY KEY, file NOT NULL, level NOT NULL, title)")
    conn.execute("CREATE TABLE refs (node_id NOT NULL, ref NOT NULL, type NOT NULL)")
    conn.execute(
        "INSERT INTO nodes VALUES (?, ?, 0, ?)",
        ('"n1"', '"/kb/x.org"', '"Say \\"hi\\""'),
    )
    conn.execute("INSERT INTO refs VALUES (?, ?, ?)", ('"n1"', '"//ex.com/a"', '"https"'))
    conn.execute("INSERT INTO refs VALUES (?, ?, ?)", ('"n2"', '"readwise_abc"', '"cite"'))
    conn.commit()
    conn.close()
    return db_path


class TestFromDb:
    def test_resolves_ref_to_file(self, roam_db):
        index = OrgRoamIndex.from_db(roam_db)
        node = index.lookup("//ex.com/a")

        assert node is not None
        assert node.node_id == "n1"
        assert node.file == Path("/kb/x.org")
        assert node.title == 'Say "hi"'

    def test_ref_without_node_resolves_to_none(self, roam_db):
        index = OrgRoamIndex.from_db(roam_db)
        assert index.refs["readwise_abc"] == "n2"
        assert index.lookup("readwise_abc") is None

    def test_unknown_ref(self, roam_db):
        assert OrgRoamIndex.from_db(roam_db).lookup("//other.com/") is None

    def test_load_prefers_db(self, roam_db, tmp_path):
        index = OrgRoamIndex.load(tmp_path, roam_db)
        assert "//ex.com/a" in index.refs


class TestFromFiles:
    def test_scans_file_level_properties(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "a.org").write_text(
            ":PROPERTIES:\n:ID:       id-a\n:ROAM_REFS: https://ex.com/caf%C3%A9 @readwise_xyz\n:END:\n"
            "#+title: Café\n\n* Highlights\n:PROPERTIES:\n:ID: heading-id\n:END:\n",
            encoding="utf-8",
        )
        (tmp_path / "no-id.org").write_text("#+title: nothing\n", encoding="utf-8")

        index = OrgRoamIndex.from_files(tmp_path)

        assert set(index.nodes) == {"id-a"}
        assert index.lookup("//ex.com/café").title == "Café"
        assert index.lookup("readwise_xyz").file == tmp_path / "sub" / "a.org"

    def test_missing_directory_is_empty(self, tmp_path):
        index = OrgRoamIndex.from_files(tmp_path / "nope")
        assert index.refs == {} and index.nodes == {}

    def test_load_falls_back_to_files(self, tmp_path):
        (tmp_path / "a.org").write_text(":PROPERTIES:\n:ID: x\n:ROAM_REFS: https://ex.com/a\n:END:\n", encoding="utf-8")
        index = OrgRoamIndex.load(tmp_path, tmp_path / "missing.db")
        assert index.refs == {"//ex.com/a": "x"}


class TestRefs:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://ex.com/a", "//ex.com/a"),
            ("http://ex.com/a%20b", "//ex.com/a b"),
            ("@readwise_1", "readwise_1"),
            ("cite:@key", "key"),
            ('"https://ex.com/q"', "//ex.com/q"),
            ("https://www.youtube.com/watch?v=A", "//www.youtube.com/watch?v=A"),
        ],
    )
    def test_normalize_ref(self, raw, expected):
        assert normalize_ref(raw) == expected

    def test_properties_stop_at_first_heading(self):
        node_id, refs, title = parse_file_properties("#+title: T\n* H\n:ROAM_REFS: https://late.com/\n")
        assert node_id is None
        assert refs == []
        assert title == "T"
