"""Feed processor entry point.

One-shot script: lists the Readwise Reader Feed, promotes documents that
Ghostreader marked as worth reading, then exits. Designed to be run on a
schedule via cron or launchd.
"""

import logging
import sys
from typing import List, Optional

log = logging.getLogger("feedpromote")

_VERSION = "0.3.0"

_HELP = """\
Usage: feedpromote [options]

  Promote Readwise Reader Feed documents whose Ghostreader summary
  contains the READ marker, then print a summary.

Options:
  --dry-run             Show what would happen; make no changes, keep cache as is
  --verbose             Log every document decision
  --no-cache            Ignore the completion cache (neither read nor written)
  --limit=N             Process at most N Feed documents
  --since=N             Only process documents updated in the last N days
  --archive-later       Archive everything in Later before processing the Feed
  --highlights          Read the verdict from highlights instead of the summary
  -h, --help            Show this help
  -V, --version         Show version

Environment:
  READWISE_TOKEN        Required. https://readwise.io/access_token
"""


def _int_flag(argv: List[str], name: str) -> Optional[int]:
    """Parse a --name=N flag. Exits with status 2 on a bad value."""
    prefix = f"--{name}="
    raw = next((a for a in argv if a.startswith(prefix)), None)
    if raw is None:
        return None
    value = raw[len(prefix):]
    try:
        number = int(value)
    except ValueError:
        number = 0
    if number < 1:
        print(f"Error: --{name} expects a positive integer, got '{value}'")
        sys.exit(2)
    return number


def main(argv: Optional[List[str]] = None) -> None:
    argv = sys.argv[1:] if argv is None else argv

    if "--help" in argv or "-h" in argv:
        print(_HELP)
        return

    if "--version" in argv or "-V" in argv:
        print(f"feedpromote {_VERSION}")
        return

    dry_run = "--dry-run" in argv
    verbose = "--verbose" in argv
    no_cache = "--no-cache" in argv
    archive = "--archive-later" in argv
    use_highlights = "--highlights" in argv
    limit = _int_flag(argv, "limit")
    since_days = _int_flag(argv, "since")

    from feedpromote import config
    config.ensure_loaded()

    from feedpromote import reconcile
    from feedpromote import report
    from feedpromote import state as state_mod

    config.setup_logging(verbose)

    log.info("Reader Feed Processor")
    log.info("Mode: %s", "DRY RUN" if dry_run else "LIVE")
    log.info("Verbose: %s", "ON" if verbose else "OFF")
    if limit:
        log.info("Limit: %d document(s)", limit)
    if since_days:
        log.info("Since: last %d day(s)", since_days)

    # Prevent overlapping runs
    if not state_mod.acquire_lock():
        log.warning("Another instance is running (lock held), exiting")
        return

    try:
        state = state_mod.State(load=not no_cache)
        if not no_cache:
            log.info("Loaded %d cached document(s)", len(state))

        ctx = reconcile.RunContext(
            state,
            dry_run=dry_run,
            limit=limit,
            since_days=since_days,
            use_highlights=use_highlights,
        )
        stats = reconcile.run(ctx, archive=archive)

        if not dry_run and not no_cache:
            state.save()
            log.debug("Saved %d cached document(s)", len(state))

        report.print_summary(stats, dry_run=dry_run, archive=archive)
    except Exception as e:
        log.error("Error: %s", e)
        log.debug("Run aborted", exc_info=True)
        sys.exit(1)
    finally:
        state_mod.release_lock()


if __name__ == "__main__":
    main()
