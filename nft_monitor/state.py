"""Pure state transitions for the monitoring log.

The monitor never mutates a MonitoringLog in place: each scan cycle produces
a new log from the previous one and the cycle's scan results.
"""
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from nft_monitor.models import MonitoringLog, ScanCycleSummary, ScanResult, WatchListEntry

HISTORY_LIMIT = 100


def upsert_watch_list(
    entries: tuple[WatchListEntry, ...],
    result: ScanResult,
    now: datetime,
) -> tuple[WatchListEntry, ...]:
    """Insert a qualifying collection, or refresh it keeping first_seen_at."""
    updated = []
    found = False
    for entry in entries:
        if entry.collection == result.collection:
            entry = replace(
                entry,
                risk_score=result.risk_score,
                recommendation=result.recommendation,
                last_seen_at=now,
            )
            found = True
        updated.append(entry)

    if not found:
        updated.append(
            WatchListEntry(
                collection=result.collection,
                first_seen_at=now,
                risk_score=result.risk_score,
                recommendation=result.recommendation,
                last_seen_at=now,
            )
        )
    return tuple(updated)


def expire_watch_list(
    entries: tuple[WatchListEntry, ...],
    now: datetime,
    ttl: Optional[timedelta],
) -> tuple[WatchListEntry, ...]:
    """Drop entries that have not requalified within ttl. ttl=None keeps all."""
    if ttl is None:
        return entries
    return tuple(e for e in entries if (e.last_seen_at or e.first_seen_at) >= now - ttl)


def append_history(
    history: tuple[ScanCycleSummary, ...],
    summary: ScanCycleSummary,
    limit: int = HISTORY_LIMIT,
) -> tuple[ScanCycleSummary, ...]:
    """Append a summary, evicting the oldest entries beyond limit."""
    combined = history + (summary,)
    if len(combined) > limit:
        combined = combined[len(combined) - limit:]
    return combined


def apply_scan_results(
    log: MonitoringLog,
    results: Iterable[ScanResult],
    now: datetime,
    is_high_priority: Callable[[ScanResult], bool],
    history_limit: int = HISTORY_LIMIT,
    watch_list_ttl: Optional[timedelta] = None,
) -> MonitoringLog:
    """Fold one cycle's scan results into the log and return the new log."""
    flagged = sorted((r for r in results if r.has_alerts), key=lambda r: r.risk_score, reverse=True)
    high_priority = [r for r in flagged if is_high_priority(r)]

    watch_list = log.high_priority_alerts
    for result in high_priority:
        watch_list = upsert_watch_list(watch_list, result, now)
    watch_list = expire_watch_list(watch_list, now, watch_list_ttl)

    summary = ScanCycleSummary(
        timestamp=now,
        total_alerts=len(flagged),
        high_priority_count=len(high_priority),
        alerts=tuple(alert for result in flagged for alert in result.alerts),
    )

    return MonitoringLog(
        last_update=now,
        alert_history=append_history(log.alert_history, summary, history_limit),
        high_priority_alerts=watch_list,
    )


def new_watch_list_entries(before: MonitoringLog, after: MonitoringLog) -> list[WatchListEntry]:
    """Entries present in after but not in before."""
    known = {entry.collection for entry in before.high_priority_alerts}
    return [entry for entry in after.high_priority_alerts if entry.collection not in known]
