"""Tests for core/settings.py"""

from pathlib import Path

import pytest

from roamsync.core.settings import DEFAULT_CATEGORIES, Settings

ENV_VARS = [
    "READWISE_API_KEY",
    "ROAMSYNC_CONFIG",
    "ROAMSYNC_ORG_ROAM_DIR",
    "ROAMSYNC_ORG_ROAM_DB",
    "ROAMSYNC_TEMPLATES_DIR",
    "ROAMSYNC_CHECKPOINT_FILE",
    "ROAMSYNC_CATEGORIES",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self):
        s = Settings.from_env()
        assert s.readwise_token == ""
        assert s.document_categories == DEFAULT_CATEGORIES
        assert s.org_roam_dir == Path("~/org-roam").expanduser()
        assert s.org_roam_db_path is None
        assert s.keep_query_params == {}

    def test_env(self, monkeypatch):
        monkeypatch.setenv("READWISE_API_KEY", "tok")
        monkeypatch.setenv("ROAMSYNC_CATEGORIES", "article, pdf")
        monkeypatch.setenv("ROAMSYNC_ORG_ROAM_DB", "/tmp/org-roam.db")
        s = Settings.from_env()
        assert s.readwise_token == "tok"
        assert s.document_categories == ("article", "pdf")
        assert s.org_roam_db_path == Path("/tmp/org-roam.db")

    def test_toml_file_with_env_override(self, tmp_path, monkeypatch):
        config = tmp_path / "config.toml"
        config.write_text(
            'org_roam_dir = "/kb"\n'
            'document_categories = ["epub"]\n'
            "[keep_query_params]\n"
            '"youtube.com" = ["v", "list"]\n',
            encoding="utf-8",
        )
        monkeypatch.setenv("ROAMSYNC_CHECKPOINT_FILE", str(tmp_path / "wm"))

        s = Settings.load(config)

        assert s.org_roam_dir == Path("/kb")
        assert s.document_categories == ("epub",)
        assert s.keep_query_params == {"youtube.com": frozenset({"v", "list"})}
        assert s.updated_after_file_path == tmp_path / "wm"

    def test_missing_config_file_uses_env(self, tmp_path):
        s = Settings.load(tmp_path / "absent.toml")
        assert s.document_categories == DEFAULT_CATEGORIES
