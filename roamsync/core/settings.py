from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = "~/.config/roamsync/config.toml"
DEFAULT_CATEGORIES = ("article", "epub")


def _path(value: str | os.PathLike[str]) -> Path:
    return Path(value).expanduser()


def _opt_path(value: str | None) -> Path | None:
    value = (value or "").strip()
    return _path(value) if value else None


def _categories(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    return tuple(c.strip() for c in value if c and c.strip())


@dataclass(frozen=True)
class Settings:
    readwise_token: str
    org_roam_dir: Path
    updated_after_file_path: Path
    org_roam_db_path: Path | None = None
    templates_dir: Path | None = None
    document_categories: tuple[str, ...] = DEFAULT_CATEGORIES
    # domain suffix -> query parameters that survive URL cleaning
    keep_query_params: dict[str, frozenset[str]] = field(default_factory=dict)

    @staticmethod
    def from_env(base: dict[str, Any] | None = None) -> "Settings":
        """Build settings from environment variables, falling back to `base` values."""
        base = base or {}

        def _s(name: str, key: str, default: str | None) -> str | None:
            value = os.getenv(name)
            if value is not None and value.strip():
                return value.strip()
            value = base.get(key, default)
            return str(value) if value is not None else None

        keep = base.get("keep_query_params") or {}
        categories = os.getenv("ROAMSYNC_CATEGORIES") or base.get("document_categories") or DEFAULT_CATEGORIES

        return Settings(
            readwise_token=_s("READWISE_API_KEY", "readwise_token", "") or "",
            org_roam_dir=_path(_s("ROAMSYNC_ORG_ROAM_DIR", "org_roam_dir", "~/org-roam")),
            updated_after_file_path=_path(
                _s("ROAMSYNC_CHECKPOINT_FILE", "updated_after_file_path", "~/.config/roamsync/updated_after")
            ),
            org_roam_db_path=_opt_path(_s("ROAMSYNC_ORG_ROAM_DB", "org_roam_db_path", None)),
            templates_dir=_opt_path(_s("ROAMSYNC_TEMPLATES_DIR", "templates_dir", None)),
            document_categories=_categories(categories),
            keep_query_params={domain: frozenset(names) for domain, names in keep.items()},
        )

    @staticmethod
    def load(config_path: str | os.PathLike[str] | None = None) -> "Settings":
        """Read a TOML config file (if present); environment variables take precedence."""
        path = _path(config_path or os.getenv("ROAMSYNC_CONFIG") or DEFAULT_CONFIG_PATH)
        base: dict[str, Any] = {}
        if path.exists():
            with path.open("rb") as f:
                base = tomllib.load(f)
        return Settings.from_env(base)
