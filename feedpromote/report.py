"""Plain-text run summary."""

from typing import List

from feedpromote import config
from feedpromote.reconcile import RunStats

_RULE = "=" * 60


def _section(lines: List[str], heading: str, titles: List[str]) -> None:
    lines.append("")
    lines.append(f"{heading} ({len(titles)}):")
    if titles:
        lines.extend(f"  - {t}" for t in titles)
    else:
        lines.append("  (none)")


def format_summary(stats: RunStats, dry_run: bool = False, archive: bool = False) -> str:
    lines = ["", _RULE, "SUMMARY", _RULE]
    if dry_run:
        lines.append("(DRY RUN - no changes made)")
        lines.append("")

    if archive:
        lines.append(f"Archived from {config.LATER_LOCATION}: {stats.archived}")
    lines.append(f"Total documents in Feed: {stats.total}")

    _section(lines, f"Promoted to {config.PROMOTE_LOCATION}", stats.promoted)
    _section(lines, "Skipped - processed, no READ marker", stats.skipped_no_read)
    _section(lines, "Skipped - not yet processed by Ghostreader", stats.skipped_no_summary)

    lines.append("")
    lines.append(f"Skipped - already processed (cached): {stats.skipped_cached}")
    lines.append(f"Skipped - outside --since window: {stats.skipped_too_old}")
    lines.append("")
    lines.append(_RULE)
    return "\n".join(lines)


def print_summary(stats: RunStats, dry_run: bool = False, archive: bool = False) -> None:
    print(format_summary(stats, dry_run=dry_run, archive=archive))
