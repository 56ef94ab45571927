"""Main entry point for the NFT activity monitor."""
import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv

from nft_monitor.alerts.telegram import TelegramNotifier
from nft_monitor.api.opensea import OpenSeaClient
from nft_monitor.detection.trending import find_trending_collections
from nft_monitor.detection.whales import track_whale_activity, whale_alert
from nft_monitor.errors import ConfigError
from nft_monitor.monitor import ContinuousMonitor
from nft_monitor.storage.database import SnapshotBaselineProvider
from nft_monitor.storage.log_store import LOG_PATH, load_log

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

logger = structlog.get_logger()


def configure_logging(level: str = "INFO"):
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from YAML file."""
    config_path = config_path or Path(__file__).parent.parent / "config.yaml"

    if not config_path.exists():
        logger.warning("config_file_not_found", path=str(config_path))
        return {}

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    logger.info("config_loaded", path=str(config_path))
    return config


def build_baseline_provider(config: dict) -> Optional[SnapshotBaselineProvider]:
    """Snapshot history is used only when baseline.source is 'history'."""
    baseline = config.get("baseline", {})
    if baseline.get("source", "stats") != "history":
        return None
    return SnapshotBaselineProvider(
        db_path=baseline.get("db_path", "nft_monitor.db"),
        window_days=baseline.get("window_days", 7),
    )


async def run_monitor(config: dict, once: bool = False) -> int:
    """Run the continuous monitor until SIGINT/SIGTERM, or a single cycle."""
    history = build_baseline_provider(config)
    monitor = ContinuousMonitor(config, baseline_provider=history, notifier=TelegramNotifier())

    if history:
        await history.connect()

    try:
        if once:
            results = await monitor.scan_once()
            logger.info("scan_once_complete", scanned=len(results))
            return EXIT_OK

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_event.set)

        await monitor.start()
        await shutdown_event.wait()
        logger.info("shutdown_signal_received")
        return EXIT_OK
    finally:
        await monitor.stop()
        if history:
            await history.close()


async def run_whales(config: dict, collection: str) -> int:
    whales = config.get("whales", {})
    async with OpenSeaClient() as client:
        report = await track_whale_activity(
            client,
            collection,
            min_value=whales.get("min_value", 10),
            min_purchases=whales.get("min_purchases", 2),
            min_total_spent=whales.get("min_total_spent", 20),
        )

    logger.info(
        "whale_report",
        collection=report.collection,
        pattern=report.pattern.value,
        interpretation=report.interpretation,
        whales=report.whale_count,
        volume=round(report.total_whale_volume, 2),
        transactions=report.whale_transactions,
    )
    for whale in report.top_whales:
        logger.info("whale", address=whale.address, purchases=whale.purchase_count, spent=round(whale.total_spent, 2))

    alert = whale_alert(report)
    if alert:
        logger.info("whale_alert", severity=alert.severity.value, message=alert.message)
    return EXIT_OK


async def run_trending(config: dict) -> int:
    trending_config = config.get("trending", {})
    async with OpenSeaClient() as client:
        trending = await find_trending_collections(
            client,
            limit=trending_config.get("limit", 50),
            min_change=trending_config.get("min_change", 50),
        )

    if not trending:
        logger.info("no_trending_collections")
    for item in trending[:10]:
        logger.info(
            "trending_collection",
            collection=item.name,
            change=f"+{item.one_day_change:.1f}%",
            volume=round(item.one_day_volume, 2),
        )
    return EXIT_OK


async def run_report(config: dict) -> int:
    log_path = config.get("monitoring", {}).get("log_file", LOG_PATH)
    log = load_log(log_path)
    sent = await TelegramNotifier().send_report(log)
    return EXIT_OK if sent else EXIT_FAILURE


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nft-monitor", description="NFT collection activity monitor")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Scan on a fixed interval until interrupted")
    subparsers.add_parser("scan-once", help="Run a single scan cycle")
    whales = subparsers.add_parser("whales", help="Analyze whale activity for a collection")
    whales.add_argument("collection")
    subparsers.add_parser("trending", help="List trending collections")
    subparsers.add_parser("report", help="Send a Telegram digest of the monitoring log")
    return parser.parse_args(argv)


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    args = parse_args(argv)
    config = load_config(args.config)

    try:
        if args.command == "start":
            return await run_monitor(config)
        if args.command == "scan-once":
            return await run_monitor(config, once=True)
        if args.command == "whales":
            return await run_whales(config, args.collection)
        if args.command == "trending":
            return await run_trending(config)
        return await run_report(config)
    except ConfigError as e:
        logger.error("configuration_error", error=str(e))
        return EXIT_CONFIG


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
