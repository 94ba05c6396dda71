"""URL cleaning, org-roam refs and filename slugs."""

from __future__ import annotations

import re
import unicodedata
from typing import Mapping
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit


def _matching_domain(host: str, keep_query_params: Mapping[str, object]) -> str | None:
    """Return the first configured domain that is a suffix of host."""
    for domain in keep_query_params:
        suffix = domain.lower()
        if host == suffix or host.endswith("." + suffix):
            return domain
    return None


def clean_url(url: str, keep_query_params: Mapping[str, frozenset[str]] | None = None) -> str:
    """Strip tracking noise from a URL.

    - Remove the fragment
    - Remove every query parameter, except the ones allow-listed for the
      host's domain (matched as a domain suffix)
    - An empty path becomes "/"
    """
    keep_query_params = keep_query_params or {}
    parsed = urlsplit(url.strip())
    host = (parsed.hostname or "").lower()

    query = ""
    domain = _matching_domain(host, keep_query_params)
    if domain is not None:
        allowed = keep_query_params[domain]
        kept = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k in allowed]
        query = urlencode(kept)

    return urlunsplit((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or "/",
        query,
        "",  # fragment
    ))


def org_roam_ref(url: str) -> str:
    """Return the org-roam ref for a URL.

    org-roam stores URL refs without the scheme, starting with a double
    slash, and decoded rather than percent-encoded. The query is part of
    the ref (youtube.com/watch?v=... identifies the video), so callers
    pass a URL already stripped by clean_url. The fragment is dropped.
    """
    parsed = urlsplit(url)
    query = f"?{parsed.query}" if parsed.query else ""
    return unquote(f"//{parsed.hostname or ''}{parsed.path or '/'}{query}")


def is_http_url(url: str | None) -> bool:
    return bool(url) and url.lower().startswith(("http://", "https://"))


_NON_ALNUM = re.compile(r"[\W_]+")


def slugify(title: str, max_length: int = 100) -> str:
    """Slug in the style of org-roam node files: ascii-folded, lowercase, "_"-separated."""
    decomposed = unicodedata.normalize("NFD", title)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    slug = _NON_ALNUM.sub("_", stripped).strip("_").lower()
    return slug[:max_length].rstrip("_")
