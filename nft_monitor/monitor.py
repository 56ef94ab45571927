"""Continuous monitor: scans the top collections on a fixed interval."""
import asyncio
import contextlib
import os
from datetime import timedelta
from typing import Callable, Optional

import structlog

from nft_monitor.api.opensea import MIN_REQUEST_INTERVAL, OpenSeaClient
from nft_monitor.detection.analyzer import AnomalyAnalyzer
from nft_monitor.detection.baseline import BaselineProvider, SocialSignalProvider, StatsBaselineProvider
from nft_monitor.detection.scoring import RiskScorer
from nft_monitor.errors import ConfigError, PersistenceError, UpstreamError
from nft_monitor.models import CollectionStats, MonitoringLog, ScanResult, utcnow
from nft_monitor.state import HISTORY_LIMIT, apply_scan_results, new_watch_list_entries
from nft_monitor.storage.log_store import LOG_PATH, load_log, save_log

logger = structlog.get_logger()


class ContinuousMonitor:
    """Runs scan cycles on a timer and owns the persisted monitoring log."""

    def __init__(
        self,
        config: dict,
        api_key: Optional[str] = None,
        client_factory: Optional[Callable] = None,
        baseline_provider: Optional[BaselineProvider] = None,
        social_provider: Optional[SocialSignalProvider] = None,
        notifier=None,
    ):
        self.config = config
        self.analyzer = AnomalyAnalyzer(config)
        self.scorer = RiskScorer(config)
        self.baseline_provider = baseline_provider or StatsBaselineProvider()
        self.social_provider = social_provider
        self.notifier = notifier

        # Polling settings
        polling = config.get("polling", {})
        self.interval = polling.get("interval_seconds", 1200)
        self.max_collections = polling.get("max_collections", 50)
        self.order_by = polling.get("order_by", "one_day_volume")
        self.request_delay = max(polling.get("request_delay_seconds", MIN_REQUEST_INTERVAL), MIN_REQUEST_INTERVAL)
        self.timeout = polling.get("timeout_seconds", 10)

        # Log settings
        monitoring = config.get("monitoring", {})
        self.log_path = monitoring.get("log_file", LOG_PATH)
        self.history_limit = monitoring.get("history_limit", HISTORY_LIMIT)
        if self.history_limit < 1:
            raise ConfigError(f"monitoring.history_limit must be at least 1, got {self.history_limit}")
        ttl_hours = monitoring.get("watch_list_ttl_hours", 24)
        self.watch_list_ttl = timedelta(hours=ttl_hours) if ttl_hours else None
        self.collections: list[str] = monitoring.get("collections") or []

        if client_factory is None:
            api_key = api_key or os.getenv("OPENSEA_API_KEY")
            if not api_key:
                raise ConfigError("OPENSEA_API_KEY is not set; refusing to start the monitor")
            client_factory = self._default_client_factory(api_key)
        self._client_factory = client_factory

        self.log = MonitoringLog()
        self.is_running = False
        self.cycle_in_progress = False
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None

    def _default_client_factory(self, api_key: str) -> Callable:
        def factory():
            return OpenSeaClient(api_key=api_key, timeout=self.timeout, min_interval=self.request_delay)
        return factory

    async def start(self):
        """Load state, scan once immediately, then scan every interval."""
        if self.is_running:
            logger.info("monitor_already_running")
            return

        self.is_running = True
        logger.info("monitor_starting", interval=self.interval, log_file=self.log_path)
        self.log = load_log(self.log_path)

        await self._run_cycle_safely()

        # stop() may have been called while the first cycle ran
        if self.is_running:
            self._timer_task = asyncio.create_task(self._timer_loop())
            logger.info("monitor_started", next_scan_in=self.interval)

    async def stop(self):
        """Disarm the timer, cancel any running cycle, and flush the log once."""
        if not self.is_running:
            return

        logger.info("monitor_stopping")
        self.is_running = False

        for task in (self._timer_task, self._cycle_task):
            if task and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._timer_task = None
        self._cycle_task = None
        self.cycle_in_progress = False

        self.flush()
        logger.info("monitor_stopped", watch_list=len(self.log.high_priority_alerts))

    async def scan_once(self) -> list[ScanResult]:
        """Load state, run a single cycle, persist."""
        self.log = load_log(self.log_path)
        return await self.run_cycle()

    async def _timer_loop(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += self.interval

            if self.cycle_in_progress:
                logger.warning("scan_tick_skipped", reason="previous cycle still running")
                continue
            # set before the task first runs so a late tick cannot start a second cycle
            self.cycle_in_progress = True
            self._cycle_task = asyncio.create_task(self._run_cycle_safely())

    async def _run_cycle_safely(self) -> list[ScanResult]:
        """Timer callback body: never lets an exception escape."""
        self.cycle_in_progress = True
        try:
            return await self.run_cycle()
        except Exception:
            logger.exception("scan_cycle_failed")
            return []
        finally:
            self.cycle_in_progress = False

    async def run_cycle(self) -> list[ScanResult]:
        """Scan the batch, fold the results into the log and persist it."""
        now = utcnow()
        logger.info("scan_cycle_start", time=now.isoformat())

        async with self._client_factory() as client:
            results = await self._scan_batch(client)
        await self.baseline_provider.prune()

        before = self.log
        self.log = apply_scan_results(
            before,
            results,
            now,
            is_high_priority=self.scorer.is_high_priority,
            history_limit=self.history_limit,
            watch_list_ttl=self.watch_list_ttl,
        )
        self.flush()

        self._log_cycle(results)
        await self._notify_new_entries(before, results)
        return results

    async def _resolve_batch(self, client) -> list[str]:
        if self.collections:
            return list(self.collections[: self.max_collections])

        try:
            collections = await client.list_collections(order_by=self.order_by, limit=self.max_collections)
        except UpstreamError as e:
            logger.error("failed_to_list_collections", error=str(e))
            return []
        slugs = [c.get("collection") for c in collections if c.get("collection")]
        return slugs[: self.max_collections]

    async def _scan_batch(self, client) -> list[ScanResult]:
        slugs = await self._resolve_batch(client)
        if not slugs:
            logger.warning("no_collections_to_scan")
            return []

        results = []
        for slug in slugs:
            try:
                stats = await client.fetch_stats(slug)
            except UpstreamError as e:
                logger.warning("collection_skipped", collection=slug, error=str(e), error_type=type(e).__name__)
                continue
            results.append(await self.scan_collection(stats))
        return results

    async def scan_collection(self, stats: CollectionStats) -> ScanResult:
        """Detect and score one collection snapshot."""
        baseline = await self.baseline_provider.get_baseline(stats.collection, stats)
        alerts = self.analyzer.detect(stats, baseline)

        if self.social_provider is not None:
            try:
                signal = await self.social_provider.get_signal(stats.collection)
            except UpstreamError as e:
                logger.warning("social_signal_failed", collection=stats.collection, error=str(e))
                signal = None
            social_alert = self.analyzer.detect_social(stats.collection, signal)
            if social_alert:
                alerts.append(social_alert)

        return self.scorer.assess(stats, alerts, utcnow())

    def flush(self) -> bool:
        """Write the log. Failures are logged and retried on the next cycle."""
        try:
            save_log(self.log, self.log_path)
        except PersistenceError as e:
            logger.error("monitoring_log_write_failed", path=str(self.log_path), error=str(e))
            return False
        return True

    def _log_cycle(self, results: list[ScanResult]):
        flagged = sorted((r for r in results if r.has_alerts), key=lambda r: r.risk_score, reverse=True)
        if not flagged:
            logger.info("no_unusual_activity", scanned=len(results))

        for result in flagged[:5]:
            logger.info(
                "collection_flagged",
                collection=result.collection,
                risk_score=result.risk_score,
                action=result.recommendation.action.value,
                confidence=result.recommendation.confidence.value,
                alerts=[a.message for a in result.alerts],
            )

        summary = self.log.alert_history[-1] if self.log.alert_history else None
        logger.info(
            "scan_cycle_complete",
            scanned=len(results),
            with_activity=len(flagged),
            high_priority=summary.high_priority_count if summary else 0,
            watch_list=len(self.log.high_priority_alerts),
        )

    async def _notify_new_entries(self, before: MonitoringLog, results: list[ScanResult]):
        new_entries = new_watch_list_entries(before, self.log)
        if not new_entries:
            return

        by_collection = {r.collection: r for r in results}
        for entry in new_entries:
            logger.info("new_high_priority_collection", collection=entry.collection, risk_score=entry.risk_score)
            if self.notifier is not None and entry.collection in by_collection:
                await self.notifier.send_watch_list_alert(by_collection[entry.collection])
