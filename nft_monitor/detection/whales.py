"""Whale activity analysis over recent sale events."""
from datetime import datetime, timedelta
from typing import Optional

import structlog

from nft_monitor.models import (
    Alert,
    AlertType,
    SaleEvent,
    Severity,
    WhaleBuyer,
    WhalePattern,
    WhaleReport,
    utcnow,
)

logger = structlog.get_logger()

RECENT_WINDOW = timedelta(hours=1)
TOP_WHALES = 5


def analyze_whales(
    collection: str,
    events: list[SaleEvent],
    min_value: float = 10,
    min_purchases: int = 2,
    min_total_spent: float = 20,
    now: Optional[datetime] = None,
) -> WhaleReport:
    """Cluster large purchases by buyer and classify the pattern."""
    now = now or utcnow()
    whale_transactions = [e for e in events if e.price >= min_value and e.buyer]

    buyers: dict[str, WhaleBuyer] = {}
    for tx in whale_transactions:
        buyer = buyers.setdefault(tx.buyer, WhaleBuyer(address=tx.buyer))
        buyer.purchases.append(tx)
        buyer.total_spent += tx.price

    whales = sorted(
        (b for b in buyers.values() if b.purchase_count >= min_purchases or b.total_spent >= min_total_spent),
        key=lambda b: b.total_spent,
        reverse=True,
    )

    pattern, interpretation, urgency = _classify(whales, whale_transactions, now)
    return WhaleReport(
        collection=collection,
        whale_count=len(whales),
        total_whale_volume=sum(w.total_spent for w in whales),
        top_whales=whales[:TOP_WHALES],
        whale_transactions=len(whale_transactions),
        pattern=pattern,
        interpretation=interpretation,
        urgency=urgency,
    )


def _classify(whales: list[WhaleBuyer], transactions: list[SaleEvent], now: datetime):
    if not whales:
        return WhalePattern.NO_WHALES, "No significant whale activity", None

    recent = sum(1 for tx in transactions if tx.timestamp > now - RECENT_WINDOW)
    if recent > 5:
        return WhalePattern.WHALE_ACCUMULATION, "Whales are actively accumulating", Severity.HIGH

    if len(whales) > 3 and whales[0].total_spent > 50:
        return WhalePattern.MAJOR_WHALE_INTEREST, "Large holders showing strong interest", Severity.MEDIUM

    return WhalePattern.NORMAL_WHALE_ACTIVITY, "Standard whale trading patterns", Severity.LOW


async def track_whale_activity(client, collection: str, min_value: float = 10, **thresholds) -> WhaleReport:
    """Fetch recent sales for a collection and analyze whale behaviour."""
    events = await client.fetch_events(collection, event_type="sale", limit=100)
    report = analyze_whales(collection, events, min_value=min_value, **thresholds)
    logger.info(
        "whale_scan_complete",
        collection=collection,
        whales=report.whale_count,
        pattern=report.pattern.value,
    )
    return report


def whale_alert(report: WhaleReport) -> Optional[Alert]:
    """Convert a notable whale pattern into an alert."""
    if report.pattern == WhalePattern.WHALE_ACCUMULATION:
        severity = Severity.HIGH
    elif report.pattern == WhalePattern.MAJOR_WHALE_INTEREST:
        severity = Severity.MEDIUM
    else:
        return None

    return Alert(
        collection=report.collection,
        type=AlertType.WHALE_ACTIVITY,
        severity=severity,
        message=(
            f"{report.interpretation}: {report.whale_count} whales spent "
            f"{report.total_whale_volume:.1f} across {report.whale_transactions} purchases"
        ),
        observed_value=report.total_whale_volume,
        baseline_value=0.0,
    )
