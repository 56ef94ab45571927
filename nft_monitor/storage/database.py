"""SQLite snapshot history backing the rolling-average baseline."""
from datetime import datetime, timedelta
from typing import Optional

import aiosqlite
import structlog

from nft_monitor.detection.baseline import baseline_from_stats
from nft_monitor.models import Baseline, CollectionStats, utcnow

logger = structlog.get_logger()

DB_PATH = "nft_monitor.db"


class SnapshotBaselineProvider:
    """Records each scanned snapshot and serves rolling averages over a window."""

    def __init__(self, db_path: str = DB_PATH, window_days: int = 7):
        self.db_path = db_path
        self.window = timedelta(days=window_days)
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Connect to database and create tables."""
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._create_tables()
        logger.info("database_connected", path=self.db_path)
        await self.prune()

    async def close(self):
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")

    async def _create_tables(self):
        await self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS collection_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                floor_price REAL DEFAULT 0,
                one_day_volume REAL DEFAULT 0,
                one_day_sales INTEGER DEFAULT 0,
                one_day_average_price REAL DEFAULT 0,
                captured_at TIMESTAMP NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_snapshots_collection_time
                ON collection_snapshots(collection, captured_at);
        """)
        await self._conn.commit()

    async def record_snapshot(self, stats: CollectionStats):
        """Store a snapshot for future baselines."""
        captured_at = (stats.fetched_at or utcnow()).isoformat()
        await self._conn.execute("""
            INSERT INTO collection_snapshots
            (collection, floor_price, one_day_volume, one_day_sales, one_day_average_price, captured_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            stats.collection,
            stats.floor_price,
            stats.one_day_volume,
            stats.one_day_sales,
            stats.one_day_average_price,
            captured_at,
        ))
        await self._conn.commit()

    async def rolling_average(self, collection: str, since: datetime) -> Optional[Baseline]:
        """Average the snapshots captured since the given time, or None if there are none."""
        async with self._conn.execute("""
            SELECT COUNT(*) AS n,
                   AVG(one_day_volume) AS avg_volume,
                   AVG(floor_price) AS avg_floor_price,
                   AVG(one_day_sales) AS avg_sales
            FROM collection_snapshots
            WHERE collection = ? AND captured_at >= ?
        """, (collection, since.isoformat())) as cursor:
            row = await cursor.fetchone()

        if row is None or not row["n"]:
            return None
        return Baseline(
            avg_volume=row["avg_volume"] or 0.0,
            avg_floor_price=row["avg_floor_price"] or 0.0,
            avg_sales=row["avg_sales"] or 0.0,
        )

    async def get_baseline(self, collection: str, current: CollectionStats) -> Baseline:
        """Rolling baseline from prior snapshots, then record the current one."""
        now = current.fetched_at or utcnow()
        try:
            baseline = await self.rolling_average(collection, now - self.window)
            await self.record_snapshot(current)
        except aiosqlite.Error as e:
            logger.warning("baseline_history_unavailable", collection=collection, error=str(e))
            baseline = None

        if baseline is None:
            logger.debug("baseline_from_current_stats", collection=collection)
            baseline = baseline_from_stats(current)
        return baseline

    async def prune(self, older_than: Optional[datetime] = None) -> int:
        """Delete snapshots outside the baseline window. Returns rows removed."""
        cutoff = older_than or (utcnow() - self.window)
        try:
            cursor = await self._conn.execute(
                "DELETE FROM collection_snapshots WHERE captured_at < ?",
                (cutoff.isoformat(),),
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            logger.warning("snapshot_prune_failed", error=str(e))
            return 0

        if cursor.rowcount:
            logger.info("snapshots_pruned", removed=cursor.rowcount, cutoff=cutoff.isoformat())
        return cursor.rowcount
