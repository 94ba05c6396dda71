"""Tests for core/normalize.py and core/urls.py"""

from datetime import datetime, timezone

import pytest

from roamsync.core.normalize import (
    RecordError,
    display_title,
    normalize_batch,
    parse_document,
    parse_highlight,
    parse_note,
)
from roamsync.core.urls import clean_url, org_roam_ref, slugify


def raw_document(**overrides):
    raw = {
        "id": "d1",
        "category": "article",
        "title": "A Title",
        "location": "archive",
        "saved_at": "2024-03-04T05:06:07.123456+00:00",
        "source_url": "https://ex.com/a?utm=1",
        "url": "https://read.readwise.io/read/d1",
        "author": "Someone",
        "published_date": None,
    }
    raw.update(overrides)
    return raw


class TestCleanUrl:
    """Tests for clean_url()."""

    def test_strips_query_and_fragment_without_rules(self):
        assert clean_url("https://ex.com/a?utm=1&b=2#frag") == "https://ex.com/a"

    def test_keeps_allow_listed_params(self):
        rules = {"youtube.com": frozenset({"v"})}
        url = "https://www.youtube.com/watch?v=abc&t=10&utm_source=x"
        assert clean_url(url, rules) == "https://www.youtube.com/watch?v=abc"

    def test_rules_for_other_domains_do_not_apply(self):
        rules = {"youtube.com": frozenset({"v"})}
        assert clean_url("https://notyoutube.com/watch?v=abc", rules) == "https://notyoutube.com/watch"

    def test_empty_path_becomes_slash(self):
        assert clean_url("https://ex.com") == "https://ex.com/"


class TestOrgRoamRef:
    """Tests for org_roam_ref()."""

    def test_drops_scheme_and_fragment(self):
        assert org_roam_ref("https://ex.com/a#section") == "//ex.com/a"

    def test_keeps_query_of_cleaned_url(self):
        url = clean_url("https://www.youtube.com/watch?v=A&utm_source=x", {"youtube.com": frozenset({"v"})})
        assert org_roam_ref(url) == "//www.youtube.com/watch?v=A"

    def test_percent_decodes(self):
        assert org_roam_ref("https://ex.com/caf%C3%A9/a%20b") == "//ex.com/café/a b"

    def test_same_url_same_ref(self):
        assert org_roam_ref("https://Ex.com/a") == org_roam_ref("https://ex.com/a")


class TestSlugify:
    def test_org_roam_style(self):
        assert slugify("Hello, World: Ünïcode & more!") == "hello_world_unicode_more"

    def test_truncates(self):
        assert len(slugify("word " * 50, max_length=100)) <= 100


class TestParseDocument:
    """Tests for parse_document()."""

    def test_scenario_archived_article(self):
        doc = parse_document(raw_document())

        assert doc.source_url == "https://ex.com/a"
        assert doc.reference == "//ex.com/a"
        assert doc.roam_ref == "https://ex.com/a"
        assert doc.status == "DONE"
        assert doc.saved_at.tzinfo is not None
        assert doc.readwise_url == "https://read.readwise.io/read/d1"

    def test_private_document_gets_synthetic_ref(self):
        doc = parse_document(raw_document(id="abc", source_url="private://pdf/abc"))

        assert doc.source_url is None
        assert doc.has_url is False
        assert doc.reference == "readwise_abc"
        assert doc.roam_ref == "@readwise_abc"

    def test_private_refs_are_distinct_per_id(self):
        a = parse_document(raw_document(id="a", source_url=None))
        b = parse_document(raw_document(id="b", source_url=None))
        assert a.reference != b.reference

    def test_epub_title_gets_year_from_epoch_millis(self):
        doc = parse_document(raw_document(category="epub", published_date=1064880000000))
        assert doc.title == "A Title (2003)"

    def test_epub_title_gets_year_from_iso_date(self):
        doc = parse_document(raw_document(category="epub", published_date="1999-05-01"))
        assert doc.title == "A Title (1999)"

    def test_article_title_unchanged(self):
        doc = parse_document(raw_document(published_date=1064880000000))
        assert doc.title == "A Title"

    def test_missing_author_is_empty(self):
        doc = parse_document(raw_document(author=None))
        assert doc.author == ""

    @pytest.mark.parametrize("field", ["id", "category", "title", "location", "saved_at"])
    def test_missing_required_field(self, field):
        raw = raw_document()
        del raw[field]
        with pytest.raises(RecordError):
            parse_document(raw)

    def test_wrong_type(self):
        with pytest.raises(RecordError):
            parse_document(raw_document(title=42))

    def test_bad_timestamp(self):
        with pytest.raises(RecordError):
            parse_document(raw_document(saved_at="yesterday"))


class TestDisplayTitle:
    def test_only_epub_with_date(self):
        published = datetime(2010, 1, 1, tzinfo=timezone.utc)
        assert display_title("Book", "epub", published) == "Book (2010)"
        assert display_title("Book", "epub", None) == "Book"
        assert display_title("Post", "article", published) == "Post"


class TestHighlightAndNote:
    def test_parse_highlight(self):
        h = parse_highlight({"id": "h1", "parent_id": "d1", "content": "quote"})
        assert (h.id, h.parent_id, h.content) == ("h1", "d1", "quote")

    def test_parse_note(self):
        n = parse_note({"id": "n1", "parent_id": "h1", "saved_at": "2024-01-01T00:00:00Z", "content": "mine"})
        assert n.parent_id == "h1"
        assert n.content == "mine"

    def test_note_requires_content(self):
        with pytest.raises(RecordError):
            parse_note({"id": "n1", "parent_id": "h1", "saved_at": "2024-01-01T00:00:00Z"})


class TestNormalizeBatch:
    def test_drops_bad_records_and_keeps_order(self):
        records = [
            {"id": "h1", "parent_id": "d1", "content": "a"},
            {"id": "h2", "parent_id": None, "content": "b"},
            "not a record",
            {"id": "h3", "parent_id": "d1", "content": "c"},
        ]
        parsed, dropped = normalize_batch(records, parse_highlight)
        assert [h.id for h in parsed] == ["h1", "h3"]
        assert dropped == 2
