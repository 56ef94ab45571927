"""Risk scoring and action recommendations."""
from datetime import datetime
from typing import Iterable, Optional

from nft_monitor.models import (
    Action,
    Alert,
    AlertType,
    CollectionStats,
    Confidence,
    Recommendation,
    ScanResult,
    Severity,
)

DEFAULT_WEIGHTS = {
    Severity.HIGH: 40,
    Severity.MEDIUM: 20,
    Severity.LOW: 10,
}
MAX_SCORE = 100


class RiskScorer:
    """Turns a collection's alerts into a bounded score and a recommendation."""

    def __init__(self, config: Optional[dict] = None):
        scoring = (config or {}).get("scoring", {})
        self.weights = {
            Severity.HIGH: scoring.get("high_weight", DEFAULT_WEIGHTS[Severity.HIGH]),
            Severity.MEDIUM: scoring.get("medium_weight", DEFAULT_WEIGHTS[Severity.MEDIUM]),
            Severity.LOW: scoring.get("low_weight", DEFAULT_WEIGHTS[Severity.LOW]),
        }
        self.high_priority_score = scoring.get("high_priority_score", 60)

    def score(self, alerts: Iterable[Alert]) -> int:
        """Sum severity weights, clamped to [0, 100]."""
        total = sum(self.weights.get(alert.severity, 0) for alert in alerts)
        return max(0, min(int(total), MAX_SCORE))

    def recommend(self, stats: CollectionStats, alerts: Iterable[Alert]) -> Recommendation:
        """Map the alert composition to an action. Pure and deterministic."""
        alerts = list(alerts)
        if not alerts:
            return Recommendation(Action.HOLD, Confidence.LOW, "No significant activity detected")

        types = {alert.type for alert in alerts}
        high_count = sum(1 for alert in alerts if alert.severity == Severity.HIGH)

        if high_count >= 2 and (AlertType.VOLUME_SURGE in types or AlertType.FLOOR_PUMP in types):
            return Recommendation(Action.BUY, Confidence.HIGH, "Multiple strong bullish signals detected")

        if AlertType.SALES_SPIKE in types and AlertType.FLOOR_PUMP in types:
            return Recommendation(Action.BUY, Confidence.MEDIUM, "Organic demand driving price and sales")

        if AlertType.FLOOR_DUMP in types:
            return Recommendation(Action.WAIT, Confidence.MEDIUM, "Price declining, wait for stabilization")

        return Recommendation(Action.WATCH, Confidence.LOW, "Activity detected, monitor for confirmation")

    def assess(self, stats: CollectionStats, alerts: Iterable[Alert], timestamp: datetime) -> ScanResult:
        alerts = tuple(alerts)
        return ScanResult(
            collection=stats.collection,
            timestamp=timestamp,
            stats=stats,
            alerts=alerts,
            risk_score=self.score(alerts),
            recommendation=self.recommend(stats, alerts),
        )

    def is_high_priority(self, result: ScanResult) -> bool:
        return result.risk_score >= self.high_priority_score or result.recommendation.action == Action.BUY
