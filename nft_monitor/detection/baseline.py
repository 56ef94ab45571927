"""Baseline and social signal providers used by the anomaly analyzer."""
from typing import Optional, Protocol

from nft_monitor.models import Baseline, CollectionStats, SocialSignal


class BaselineProvider(Protocol):
    """Supplies the 'normal' behaviour a collection is compared against.

    Implementations must always return a value; a never-seen collection may
    fall back to a baseline derived from the current snapshot.
    """

    async def get_baseline(self, collection: str, current: CollectionStats) -> Baseline:
        ...

    async def prune(self) -> int:
        """Drop history no longer needed for baselines. Returns rows removed."""
        ...


class SocialSignalProvider(Protocol):
    """Supplies social mention counts for a collection, or None if unknown."""

    async def get_signal(self, collection: str) -> Optional[SocialSignal]:
        ...


def baseline_from_stats(stats: CollectionStats) -> Baseline:
    """Derive daily averages from the 30-day figures of a single snapshot."""
    return Baseline(
        avg_volume=stats.thirty_day_volume / 30,
        avg_floor_price=stats.one_day_average_price,
        avg_sales=stats.thirty_day_sales / 30,
    )


class StatsBaselineProvider:
    """Baseline computed from the snapshot itself; needs no history."""

    async def get_baseline(self, collection: str, current: CollectionStats) -> Baseline:
        return baseline_from_stats(current)

    async def prune(self) -> int:
        return 0
