"""Tests for feed reconciliation: outcomes, cache behaviour, windows, archive sweep."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

MARKER = "📖 READ"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolate_state(tmp_path, monkeypatch):
    """Point state module at a temp directory so tests don't touch real state."""
    import feedpromote.state as state_mod
    from feedpromote import config

    monkeypatch.setattr(state_mod, "STATE_PATH", tmp_path / "processed.json")
    monkeypatch.setattr(state_mod, "LOCK_PATH", tmp_path / "processed.lock")
    monkeypatch.setattr(config, "READ_MARKER", MARKER)
    monkeypatch.setattr(config, "FEED_LOCATION", "feed")
    monkeypatch.setattr(config, "PROMOTE_LOCATION", "later")
    monkeypatch.setattr(config, "LATER_LOCATION", "later")
    monkeypatch.setattr(config, "ARCHIVE_LOCATION", "archive")
    yield tmp_path


@pytest.fixture()
def remote():
    """Fake Reader: feed/later contents keyed by location, records moves."""

    class Remote:
        def __init__(self):
            self.locations = {"feed": [], "later": []}
            self.highlights = {}
            self.moves = []
            self.fetches = []

        def fetch_partition(self, location, max_count=None):
            self.fetches.append((location, max_count))
            return list(self.locations.get(location, []))

        def update_location(self, doc_id, location):
            self.moves.append((doc_id, location))

        def fetch_highlights_by_parent(self):
            return self.highlights

    fake = Remote()
    with patch("feedpromote.reconcile.reader_client.fetch_partition", side_effect=fake.fetch_partition), \
            patch("feedpromote.reconcile.reader_client.update_location", side_effect=fake.update_location), \
            patch("feedpromote.reconcile.reader_client.fetch_highlights_by_parent",
                  side_effect=fake.fetch_highlights_by_parent), \
            patch("feedpromote.reconcile.time.sleep") as sleep:
        fake.sleep = sleep
        yield fake


def _doc(doc_id, summary=None, title=None, **extra):
    doc = {"id": doc_id, "title": title or f"Doc {doc_id}", "category": "article"}
    if summary is not None:
        doc["summary"] = summary
    doc.update(extra)
    return doc


def _ctx(**kwargs):
    from feedpromote.reconcile import RunContext
    from feedpromote.state import State

    state = kwargs.pop("state", None) or State()
    kwargs.setdefault("now", NOW)
    return RunContext(state, **kwargs)


class TestScenario:
    def test_three_documents(self, remote):
        from feedpromote.reconcile import process_feed

        remote.locations["feed"] = [
            _doc("A", title="A"),
            _doc("B", summary=f"Great read {MARKER} yes", title="B"),
            _doc("C", summary="ok", title="C"),
        ]
        ctx = _ctx()
        process_feed(ctx)

        stats = ctx.stats
        assert stats.total == 3
        assert stats.promoted == ["B"]
        assert stats.skipped_no_read == ["C"]
        assert stats.skipped_no_summary == ["A"]
        assert remote.moves == [("B", "later")]
        assert ctx.state.processed == {
            "B": {"promoted": True},
            "C": {"promoted": False},
        }


class TestOutcomes:
    def test_unannotated_is_never_cached(self, remote):
        from feedpromote.reconcile import process_document

        ctx = _ctx()
        assert process_document(ctx, _doc("x", summary="")) == "unannotated"
        assert process_document(ctx, _doc("y")) == "unannotated"
        assert len(ctx.state) == 0
        assert remote.moves == []

    def test_promotion_waits_before_moving(self, remote, monkeypatch):
        from feedpromote import config
        from feedpromote.reconcile import process_document

        monkeypatch.setattr(config, "REQUEST_DELAY", 3)
        ctx = _ctx()
        process_document(ctx, _doc("p", summary=MARKER))
        remote.sleep.assert_called_once_with(3)

    def test_promotion_uses_configured_location(self, remote, monkeypatch):
        from feedpromote import config
        from feedpromote.reconcile import process_document

        monkeypatch.setattr(config, "PROMOTE_LOCATION", "new")
        ctx = _ctx()
        process_document(ctx, _doc("p", summary=MARKER))
        assert remote.moves == [("p", "new")]

    def test_marker_in_notes_promotes(self, remote):
        from feedpromote.reconcile import process_document

        ctx = _ctx()
        assert process_document(ctx, _doc("n", summary="fine", notes=MARKER)) == "promoted"

    def test_cached_document_is_hard_skipped(self, remote):
        from feedpromote.reconcile import process_document

        ctx = _ctx()
        ctx.state.mark_processed("c", promoted=False)
        # Summary changed remotely since; still skipped
        assert process_document(ctx, _doc("c", summary=MARKER)) == "cached"
        assert ctx.stats.skipped_cached == 1
        assert remote.moves == []
        assert ctx.state.processed["c"] == {"promoted": False}

    def test_failed_move_propagates_and_is_not_cached(self, remote):
        from feedpromote.reader_client import ApiError
        from feedpromote.reconcile import process_document

        ctx = _ctx()
        with patch("feedpromote.reconcile.reader_client.update_location",
                   side_effect=ApiError(500, "Internal Server Error")):
            with pytest.raises(ApiError):
                process_document(ctx, _doc("p", summary=MARKER))
        assert not ctx.state.has_document("p")
        assert ctx.stats.promoted == []

    def test_title_fallbacks(self):
        from feedpromote.reconcile import document_title

        assert document_title({"id": 1, "title": "T", "url": "u"}) == "T"
        assert document_title({"id": 1, "url": "https://x"}) == "https://x"
        assert document_title({"id": 7}) == "ID: 7"


class TestIdempotence:
    def test_second_run_makes_no_moves(self, remote):
        from feedpromote.reconcile import process_feed
        from feedpromote.state import State

        remote.locations["feed"] = [
            _doc("B", summary=MARKER),
            _doc("C", summary="ok"),
        ]
        first = _ctx()
        process_feed(first)
        first.state.save()
        assert len(remote.moves) == 1

        # Remote content changes, but both ids are cached now
        remote.locations["feed"] = [
            _doc("B", summary=MARKER),
            _doc("C", summary=f"now {MARKER}"),
        ]
        second = _ctx(state=State())
        process_feed(second)
        assert len(remote.moves) == 1
        assert second.stats.skipped_cached == 2

    def test_unannotated_is_retried_until_summary_appears(self, remote):
        from feedpromote.reconcile import process_feed
        from feedpromote.state import State

        remote.locations["feed"] = [_doc("A")]
        for _ in range(3):
            ctx = _ctx(state=State())
            process_feed(ctx)
            ctx.state.save()
            assert ctx.stats.skipped_no_summary == ["Doc A"]
            assert not ctx.state.has_document("A")

        remote.locations["feed"] = [_doc("A", summary=MARKER)]
        ctx = _ctx(state=State())
        process_feed(ctx)
        assert ctx.stats.promoted == ["Doc A"]
        assert remote.moves == [("A", "later")]


class TestDryRun:
    def test_no_moves_but_outcomes_reported(self, remote):
        from feedpromote.reconcile import process_feed

        remote.locations["feed"] = [_doc("B", summary=MARKER), _doc("C", summary="ok")]
        ctx = _ctx(dry_run=True)
        process_feed(ctx)

        assert remote.moves == []
        assert ctx.stats.promoted == ["Doc B"]
        assert ctx.state.has_document("B")
        remote.sleep.assert_not_called()


class TestLimit:
    def test_limit_truncates_and_is_passed_to_fetcher(self, remote):
        from feedpromote.reconcile import process_feed

        remote.locations["feed"] = [_doc(str(i), summary="ok") for i in range(20)]
        ctx = _ctx(limit=12)
        processed = process_feed(ctx)

        assert remote.fetches == [("feed", 12)]
        assert len(processed) == 12
        assert ctx.stats.total == 20
        assert len(ctx.stats.skipped_no_read) == 12

    def test_empty_feed(self, remote):
        from feedpromote.reconcile import process_feed

        ctx = _ctx()
        assert process_feed(ctx) == []
        assert ctx.stats.total == 0


class TestSinceWindow:
    def test_old_documents_skipped_without_caching(self, remote):
        from feedpromote.reconcile import process_feed

        remote.locations["feed"] = [
            _doc("old", summary=MARKER, updated_at="2026-02-01T00:00:00Z"),
            _doc("new", summary=MARKER, updated_at="2026-03-09T08:00:00.123456+00:00"),
            _doc("undated", summary="ok"),
        ]
        ctx = _ctx(since_days=7)
        process_feed(ctx)

        assert ctx.stats.skipped_too_old == 1
        assert ctx.stats.promoted == ["Doc new"]
        assert not ctx.state.has_document("old")
        assert ctx.state.has_document("undated")

    def test_falls_back_to_created_at(self):
        from feedpromote.reconcile import is_too_old

        cutoff = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert is_too_old({"created_at": "2026-02-01T00:00:00"}, cutoff) is True
        assert is_too_old({"created_at": "2026-03-02T00:00:00"}, cutoff) is False

    def test_no_window(self):
        from feedpromote.reconcile import is_too_old

        assert is_too_old({"updated_at": "1999-01-01T00:00:00Z"}, None) is False

    def test_unparseable_timestamp_is_kept(self):
        from feedpromote.reconcile import is_too_old

        cutoff = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert is_too_old({"updated_at": "yesterday"}, cutoff) is False

    def test_window_checked_before_cache(self, remote):
        from feedpromote.reconcile import process_document

        ctx = _ctx(since_days=1)
        ctx.state.mark_processed("old", promoted=True)
        doc = _doc("old", updated_at="2020-01-01T00:00:00Z")
        assert process_document(ctx, doc) == "too_old"
        assert ctx.stats.skipped_cached == 0


class TestHighlightMode:
    def test_verdict_from_highlights(self, remote):
        from feedpromote.reconcile import process_feed

        remote.locations["feed"] = [_doc("A"), _doc("B"), _doc("C", summary=MARKER)]
        remote.highlights = {
            "A": [{"content": f"{MARKER} absolutely"}],
            "B": [{"content": "meh"}],
        }
        ctx = _ctx(use_highlights=True)
        process_feed(ctx)

        assert ctx.stats.promoted == ["Doc A"]
        assert ctx.stats.skipped_no_read == ["Doc B"]
        # Summary is ignored in highlight mode
        assert ctx.stats.skipped_no_summary == ["Doc C"]
        assert remote.moves == [("A", "later")]


class TestArchiveSweep:
    def test_moves_everything_in_later(self, remote):
        from feedpromote.reconcile import archive_later

        remote.locations["later"] = [_doc("L1"), _doc("L2", summary=MARKER)]
        ctx = _ctx()
        assert archive_later(ctx) == 2
        assert remote.moves == [("L1", "archive"), ("L2", "archive")]
        assert remote.fetches == [("later", None)]
        assert len(ctx.state) == 0

    def test_dry_run_counts_without_moving(self, remote):
        from feedpromote.reconcile import archive_later

        remote.locations["later"] = [_doc("L1")]
        ctx = _ctx(dry_run=True)
        assert archive_later(ctx) == 1
        assert remote.moves == []

    def test_run_archives_before_feed(self, remote):
        from feedpromote.reconcile import run

        remote.locations["later"] = [_doc("L1")]
        remote.locations["feed"] = [_doc("F1", summary=MARKER)]
        stats = run(_ctx(), archive=True)

        assert remote.moves == [("L1", "archive"), ("F1", "later")]
        assert [f[0] for f in remote.fetches] == ["later", "feed"]
        assert stats.archived == 1
        assert stats.promoted == ["Doc F1"]

    def test_run_without_archive_skips_later(self, remote):
        from feedpromote.reconcile import run

        run(_ctx())
        assert [f[0] for f in remote.fetches] == ["feed"]
