"""Readwise Reader API client."""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from functools import partial
from typing import Any, Callable, Iterable, Mapping

import httpx

from roamsync.core.normalize import normalize_batch, parse_document, parse_highlight, parse_note
from roamsync.providers.content_types import Document, Highlight, Note

logger = logging.getLogger(__name__)

READWISE_BASE_URL = "https://readwise.io/api"
LIST_PATH = "/v3/list/"

MAX_RETRIES = 5
DEFAULT_RATE_LIMIT_WAIT = 60.0
RATE_LIMIT_BUFFER = 5.0

# {"detail": "Request was throttled. Expected available in 50 seconds."}
_WAIT_HINT = re.compile(r"Expected available in (\d+) seconds?")


class ReadwiseError(Exception):
    """Base exception for Readwise API errors."""


class ReadwiseAuthError(ReadwiseError):
    """Authentication failed."""


class ReadwiseRateLimitError(ReadwiseError):
    """Rate limit exceeded after all retries."""


class ReadwiseConnectionError(ReadwiseError):
    """Network failure talking to the API."""


class ReadwiseProtocolError(ReadwiseError):
    """Unexpected status code or malformed response."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def rate_limit_wait(resp: httpx.Response) -> float:
    """Seconds to sleep before retrying a throttled request.

    Reader puts the wait in the body ("Expected available in N seconds");
    a numeric Retry-After header is used when the body has none. Both get
    a 5 second buffer. Without either hint, wait 60 seconds.
    """
    match = _WAIT_HINT.search(resp.text)
    if match:
        return int(match.group(1)) + RATE_LIMIT_BUFFER

    retry_after = resp.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after) + RATE_LIMIT_BUFFER
        except ValueError:
            pass

    return DEFAULT_RATE_LIMIT_WAIT


class ReadwiseClient:
    """Client for the Readwise Reader list API (v3)."""

    def __init__(
        self,
        token: str,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        if not token:
            raise ValueError("Readwise API token is required")
        self._sleep = sleep
        self._max_retries = max_retries
        self._client = httpx.Client(
            base_url=READWISE_BASE_URL,
            headers={"Authorization": f"Token {token}"},
            timeout=30.0,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReadwiseClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request_with_retry(self, url: str, params: dict[str, str]) -> httpx.Response:
        """GET a page, sleeping through 429 responses.

        Raises:
            ReadwiseRateLimitError: If still rate limited after max_retries
            ReadwiseAuthError: If authentication fails
            ReadwiseProtocolError: For any other non-200 status
        """
        retries = 0
        while True:
            try:
                resp = self._client.get(url, params=params)
            except httpx.HTTPError as e:
                raise ReadwiseConnectionError(f"Request to {url} failed: {e}") from e

            if resp.status_code == 200:
                return resp

            if resp.status_code == 401:
                raise ReadwiseAuthError("Invalid Readwise API token")

            if resp.status_code == 429:
                logger.warning(f"Rate limited (429): {resp.text}")
                if retries >= self._max_retries:
                    raise ReadwiseRateLimitError(
                        f"Still getting rate limited despite {retries} retries"
                    )
                wait_time = rate_limit_wait(resp)
                logger.info(
                    f"Waiting {wait_time:.0f}s before retry "
                    f"(retry {retries + 1}/{self._max_retries})"
                )
                self._sleep(wait_time)
                retries += 1
                continue

            raise ReadwiseProtocolError(
                f"Unexpected status: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

    def fetch(
        self,
        category: str | None = None,
        updated_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every raw record of a category, following pageCursor.

        Args:
            category: Filter by category (article, email, rss, highlight, note, pdf, epub, tweet, video)
            updated_after: Only fetch records updated after this datetime (filtered server-side)

        Returns:
            All records from all pages, in API order (newest first)
        """
        params: dict[str, str] = {}
        if category:
            params["category"] = category
        if updated_after:
            params["updatedAfter"] = updated_after.isoformat()

        all_results: list[dict[str, Any]] = []
        next_cursor: str | None = None

        while True:
            if next_cursor:
                params["pageCursor"] = next_cursor

            logger.debug(f"Fetching {LIST_PATH} {params}")
            resp = self._request_with_retry(LIST_PATH, params)
            try:
                data = resp.json()
            except ValueError as e:
                raise ReadwiseProtocolError(f"Malformed JSON from {LIST_PATH}: {e}", 200, resp.text) from e

            results = data.get("results") if isinstance(data, dict) else None
            if not isinstance(results, list):
                raise ReadwiseProtocolError("No results found in response", 200, resp.text)
            all_results.extend(results)

            next_cursor = data.get("nextPageCursor")
            if not next_cursor:
                break

        return all_results

    def get_document_list(
        self,
        categories: Iterable[str],
        updated_after: datetime | None = None,
        keep_query_params: Mapping[str, frozenset[str]] | None = None,
    ) -> tuple[list[Document], int]:
        """Fetch and parse documents of every category.

        Returns:
            Tuple of (documents, number of dropped malformed records)
        """
        parser = partial(parse_document, keep_query_params=keep_query_params)
        documents: list[Document] = []
        dropped = 0
        for category in categories:
            results = self.fetch(category, updated_after)
            logger.info(f"Number of {category}s: {len(results)}")
            parsed, bad = normalize_batch(results, parser)
            documents.extend(parsed)
            dropped += bad
        return documents, dropped

    def get_highlight_list(self) -> tuple[list[Highlight], int]:
        """Fetch every highlight; empty highlights are discarded."""
        results = self.fetch("highlight")
        logger.info(f"Number of highlights: {len(results)}")
        parsed, dropped = normalize_batch(results, parse_highlight)
        # There's a surprising number of empty highlights
        return [h for h in parsed if h.content.strip()], dropped

    def get_note_list(self) -> tuple[list[Note], int]:
        results = self.fetch("note")
        logger.info(f"Number of notes: {len(results)}")
        return normalize_batch(results, parse_note)
