"""Decide from document metadata whether Ghostreader has run and what it said.

Two annotation sources are supported: the document's own summary/notes
(Ghostreader writes its verdict into the summary), and highlight records
attached to the document. Matching is a literal, case-sensitive substring
check with no normalization.
"""

from typing import Any, Dict, List, Optional

from feedpromote import config


def _marker(marker: Optional[str]) -> str:
    return config.READ_MARKER if marker is None else marker


def is_annotated(doc: Dict[str, Any]) -> bool:
    """True if the document carries a non-empty summary."""
    return bool(doc.get("summary"))


def is_positive_verdict(doc: Dict[str, Any], marker: Optional[str] = None) -> bool:
    """True if the marker appears in the document's summary or notes."""
    needle = _marker(marker)
    summary = doc.get("summary") or ""
    notes = doc.get("notes") or ""
    return needle in summary or needle in notes


def has_highlights(highlights: List[Dict[str, Any]]) -> bool:
    return len(highlights) > 0


def has_read_marker(highlights: List[Dict[str, Any]], marker: Optional[str] = None) -> bool:
    """True if any highlight's content (or text) contains the marker."""
    needle = _marker(marker)
    return any(
        needle in (h.get("content") or h.get("text") or "")
        for h in highlights
    )
