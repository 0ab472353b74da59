"""Readwise Reader API v3 client.

Handles listing documents by location, paging through highlights, and moving
documents between locations. Requests are strictly sequential; the Reader API
allows roughly 20 requests per minute.
"""

import logging
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

from feedpromote import config

log = logging.getLogger(__name__)

# Annotation artifacts share the list endpoint with top-level documents
_ARTIFACT_CATEGORIES = {"highlight", "note"}


class ApiError(RuntimeError):
    """Non-2xx response from the Reader API (other than 429)."""

    def __init__(self, status: int, status_text: str) -> None:
        super().__init__(f"API error: {status} {status_text}")
        self.status = status
        self.status_text = status_text


def _headers() -> dict:
    return {
        "Authorization": f"Token {config.READWISE_TOKEN}",
        "Content-Type": "application/json",
    }


def _url(endpoint: str) -> str:
    if endpoint.startswith("http"):
        return endpoint
    return f"{config.API_BASE}{endpoint}"


def _retry_after(resp: requests.Response) -> int:
    value = resp.headers.get("Retry-After")
    try:
        return max(0, int(value)) if value else config.RETRY_AFTER_DEFAULT
    except ValueError:
        return config.RETRY_AFTER_DEFAULT


def request(
    endpoint: str,
    method: str = "GET",
    body: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, str]] = None,
) -> Any:
    """Send one API request and return the decoded JSON body.

    A 429 response sleeps for the server's Retry-After and re-sends the same
    request, with no retry cap. Any other non-2xx raises ApiError. Responses
    without a body decode to None.
    """
    url = _url(endpoint)
    while True:
        resp = requests.request(
            method, url,
            headers=_headers(), params=params, json=body,
            timeout=config.HTTP_TIMEOUT,
        )
        if resp.status_code == 429:
            wait = _retry_after(resp)
            log.warning("Rate limited. Waiting %d seconds...", wait)
            time.sleep(wait)
            continue

        if not resp.ok:
            raise ApiError(resp.status_code, resp.reason or "")

        if not resp.content:
            return None
        return resp.json()


def _pages(params: Dict[str, str]) -> Iterator[List[Dict[str, Any]]]:
    """Yield one page of raw results at a time, following nextPageCursor.

    Sleeps REQUEST_DELAY between pages (never after the last one). The
    cursor is consumed as it goes, so the iterator cannot be replayed.
    """
    cursor = None
    while True:
        page_params = dict(params)
        if cursor:
            page_params["pageCursor"] = cursor
        data = request("/list/", params=page_params) or {}
        yield data.get("results") or []

        cursor = data.get("nextPageCursor")
        if not cursor:
            return
        time.sleep(config.REQUEST_DELAY)


def iter_documents(location: str) -> Iterator[List[Dict[str, Any]]]:
    """Yield pages of top-level documents in a location, artifacts removed."""
    for page in _pages({"location": location}):
        yield [doc for doc in page if doc.get("category") not in _ARTIFACT_CATEGORIES]


def fetch_partition(location: str, max_count: Optional[int] = None) -> List[Dict[str, Any]]:
    """Fetch every top-level document in a location, in server order.

    With max_count, stops requesting pages once at least max_count documents
    have been collected. The result may then overshoot by up to one page;
    callers truncate.
    """
    documents: List[Dict[str, Any]] = []
    log.debug("Fetching documents from %s...", location)
    for docs in iter_documents(location):
        documents.extend(docs)
        log.debug("  Fetched %d documents (total: %d)", len(docs), len(documents))
        if max_count is not None and len(documents) >= max_count:
            break
    return documents


def fetch_highlights_by_parent() -> Dict[str, List[Dict[str, Any]]]:
    """Page through every highlight once and group them by parent document id."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    total = 0
    for page in _pages({"category": "highlight"}):
        for highlight in page:
            parent = highlight.get("parent_id")
            if parent is None:
                continue
            grouped.setdefault(str(parent), []).append(highlight)
            total += 1
    log.debug("Fetched %d highlight(s) across %d document(s)", total, len(grouped))
    return grouped


def update_location(document_id: str, location: str) -> None:
    """Move a document to another location (feed, new, later, archive)."""
    request(f"/update/{document_id}/", method="PATCH", body={"location": location})
