"""Feed reconciliation: promote Ghostreader-approved documents out of the Feed.

Each feed document goes through a fixed sequence of checks and ends in
exactly one outcome:

  too old     outside the --since window, nothing recorded
  cached      already classified by an earlier run, not re-examined
  unannotated no Ghostreader output yet, deliberately not cached
  promoted    marker found, moved to the promotion location, cached as True
  no marker   annotated without the marker, cached as False

All state for a run lives on a RunContext passed through each step.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from feedpromote import classifier
from feedpromote import config
from feedpromote import reader_client
from feedpromote.state import State

log = logging.getLogger(__name__)


class RunStats:
    """Per-run counters and title lists, rendered by report.format_summary()."""

    def __init__(self) -> None:
        self.total = 0
        self.promoted: List[str] = []
        self.skipped_no_read: List[str] = []
        self.skipped_no_summary: List[str] = []
        self.skipped_cached = 0
        self.skipped_too_old = 0
        self.archived = 0


class RunContext:
    """Options and mutable state for a single run."""

    def __init__(
        self,
        state: State,
        dry_run: bool = False,
        limit: Optional[int] = None,
        since_days: Optional[int] = None,
        use_highlights: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        self.state = state
        self.dry_run = dry_run
        self.limit = limit
        self.since_days = since_days
        self.use_highlights = use_highlights
        self.now = now or datetime.now(timezone.utc)
        self.stats = RunStats()
        self.highlights: Optional[Dict[str, List[Dict[str, Any]]]] = None

    @property
    def cutoff(self) -> Optional[datetime]:
        if self.since_days is None:
            return None
        return self.now - timedelta(days=self.since_days)


def document_title(doc: Dict[str, Any]) -> str:
    return doc.get("title") or doc.get("url") or f"ID: {doc.get('id')}"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def document_timestamp(doc: Dict[str, Any]) -> Optional[datetime]:
    """Last update time of a document, falling back to its creation time."""
    return _parse_timestamp(doc.get("updated_at")) or _parse_timestamp(doc.get("created_at"))


def is_too_old(doc: Dict[str, Any], cutoff: Optional[datetime]) -> bool:
    """True if a --since window is set and the document falls before it.

    Documents without a usable timestamp are kept.
    """
    if cutoff is None:
        return False
    ts = document_timestamp(doc)
    return ts is not None and ts < cutoff


def _move(ctx: RunContext, doc_id: str, location: str) -> None:
    if ctx.dry_run:
        log.debug("  [DRY RUN] Would move document %s to %s", doc_id, location)
        return
    time.sleep(config.REQUEST_DELAY)
    reader_client.update_location(doc_id, location)
    log.debug("  Moved document %s to %s", doc_id, location)


def _classify(ctx: RunContext, doc: Dict[str, Any]) -> Optional[bool]:
    """None if not annotated yet, else whether the verdict is positive."""
    if ctx.use_highlights:
        highlights = (ctx.highlights or {}).get(str(doc.get("id")), [])
        if not classifier.has_highlights(highlights):
            return None
        log.debug("  Has %d highlight(s)", len(highlights))
        return classifier.has_read_marker(highlights)

    if not classifier.is_annotated(doc):
        return None
    return classifier.is_positive_verdict(doc)


def process_document(ctx: RunContext, doc: Dict[str, Any]) -> str:
    """Run one feed document through the decision sequence.

    Returns the outcome name: "too_old", "cached", "unannotated",
    "promoted" or "no_marker".
    """
    stats = ctx.stats
    doc_id = str(doc.get("id"))
    title = document_title(doc)
    log.debug("Processing: %s", title)

    if is_too_old(doc, ctx.cutoff):
        log.debug("  Older than %d day(s), skipping", ctx.since_days)
        stats.skipped_too_old += 1
        return "too_old"

    if ctx.state.has_document(doc_id):
        log.debug("  Already processed in an earlier run")
        stats.skipped_cached += 1
        return "cached"

    verdict = _classify(ctx, doc)
    if verdict is None:
        log.debug("  No summary yet (Ghostreader hasn't processed)")
        stats.skipped_no_summary.append(title)
        return "unannotated"

    if verdict:
        log.debug('  Found "%s" marker - promoting to %s', config.READ_MARKER, config.PROMOTE_LOCATION)
        _move(ctx, doc_id, config.PROMOTE_LOCATION)
        stats.promoted.append(title)
        ctx.state.mark_processed(doc_id, promoted=True)
        return "promoted"

    log.debug("  Processed, but no %s marker", config.READ_MARKER)
    stats.skipped_no_read.append(title)
    ctx.state.mark_processed(doc_id, promoted=False)
    return "no_marker"


def process_feed(ctx: RunContext) -> List[Dict[str, Any]]:
    """Fetch the feed (honouring --limit) and reconcile every document.

    Returns the documents that were processed.
    """
    documents = reader_client.fetch_partition(config.FEED_LOCATION, max_count=ctx.limit)
    ctx.stats.total = len(documents)
    log.info("Found %d document(s) in Feed", len(documents))

    if ctx.limit and len(documents) > ctx.limit:
        log.info("Processing only first %d (use --limit=N to change)", ctx.limit)
        documents = documents[:ctx.limit]

    if not documents:
        log.info("No documents to process.")
        return documents

    if ctx.use_highlights and ctx.highlights is None:
        time.sleep(config.REQUEST_DELAY)
        ctx.highlights = reader_client.fetch_highlights_by_parent()

    for doc in documents:
        process_document(ctx, doc)
    return documents


def archive_later(ctx: RunContext) -> int:
    """Move every document in the Later location to the archive.

    No classification and no cache updates. Returns the number of documents
    archived (or that would be, in dry-run mode).
    """
    log.info("Archiving everything in %s...", config.LATER_LOCATION)
    documents = reader_client.fetch_partition(config.LATER_LOCATION)
    log.info("Found %d document(s) in %s", len(documents), config.LATER_LOCATION)

    for doc in documents:
        log.debug("Archiving: %s", document_title(doc))
        _move(ctx, str(doc.get("id")), config.ARCHIVE_LOCATION)
        ctx.stats.archived += 1
    return ctx.stats.archived


def run(ctx: RunContext, archive: bool = False) -> RunStats:
    """Optional archive sweep, then feed reconciliation."""
    if archive:
        archive_later(ctx)
        time.sleep(config.REQUEST_DELAY)
    process_feed(ctx)
    return ctx.stats
