"""Anomaly detection for collection statistics."""
import math
from dataclasses import fields
from typing import Optional

import structlog

from nft_monitor.errors import DetectionError
from nft_monitor.models import Alert, AlertType, Baseline, CollectionStats, Severity, SocialSignal

logger = structlog.get_logger()


class AnomalyAnalyzer:
    """Compares a collection snapshot against its baseline and emits alerts."""

    def __init__(self, config: Optional[dict] = None):
        """Initialize with configuration."""
        detection = (config or {}).get("detection", {})

        # Detection thresholds
        self.volume_surge_pct = detection.get("volume_surge_pct", 100)
        self.volume_surge_high_pct = detection.get("volume_surge_high_pct", 300)
        self.sales_spike_multiplier = detection.get("sales_spike_multiplier", 3)
        self.floor_move_ratio = detection.get("floor_move_ratio", 0.20)
        self.floor_move_high_ratio = detection.get("floor_move_high_ratio", 0.40)
        self.market_cap_shift = detection.get("market_cap_shift", 100)
        self.market_cap_shift_high = detection.get("market_cap_shift_high", 500)
        self.listing_pattern_enabled = detection.get("listing_pattern_enabled", False)
        self.listing_deviation_ratio = detection.get("listing_deviation_ratio", 0.5)
        self.social_increase_pct = detection.get("social_increase_pct", 50)

    def detect(self, current: CollectionStats, baseline: Baseline) -> list[Alert]:
        """Run every rule against the snapshot. Rules are independent."""
        self._validate(current)

        alerts = []
        for rule in (
            self._check_volume_surge,
            self._check_sales_spike,
            self._check_floor_move,
            self._check_market_cap_shift,
        ):
            alert = rule(current, baseline)
            if alert:
                alerts.append(alert)

        if self.listing_pattern_enabled:
            alert = self.detect_listing_pattern(current, baseline)
            if alert:
                alerts.append(alert)

        return alerts

    def _validate(self, stats: CollectionStats):
        for f in fields(stats):
            value = getattr(stats, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if not math.isfinite(value):
                raise DetectionError(f"{stats.collection}: non-finite {f.name}={value!r}")
            # volume changes may be negative, nothing else may
            if value < 0 and not f.name.endswith("volume_change"):
                raise DetectionError(f"{stats.collection}: negative {f.name}={value!r}")

    def _check_volume_surge(self, stats: CollectionStats, baseline: Baseline) -> Optional[Alert]:
        change = stats.one_day_volume_change
        if change <= self.volume_surge_pct:
            return None
        return Alert(
            collection=stats.collection,
            type=AlertType.VOLUME_SURGE,
            severity=Severity.HIGH if change > self.volume_surge_high_pct else Severity.MEDIUM,
            message=f"Volume surged {change:.1f}% in 24h",
            observed_value=stats.one_day_volume,
            baseline_value=baseline.avg_volume,
        )

    def _check_sales_spike(self, stats: CollectionStats, baseline: Baseline) -> Optional[Alert]:
        avg_daily_sales = stats.thirty_day_sales / 30 if stats.thirty_day_sales > 0 else baseline.avg_sales
        if avg_daily_sales <= 0:
            return None  # insufficient baseline

        if stats.one_day_sales <= avg_daily_sales * self.sales_spike_multiplier:
            return None
        ratio = stats.one_day_sales / avg_daily_sales
        return Alert(
            collection=stats.collection,
            type=AlertType.SALES_SPIKE,
            severity=Severity.HIGH,
            message=(
                f"Sales {ratio:.1f}x above 30-day average "
                f"({stats.one_day_sales} vs {avg_daily_sales:.1f})"
            ),
            observed_value=float(stats.one_day_sales),
            baseline_value=avg_daily_sales,
        )

    def _reference_price(self, stats: CollectionStats, baseline: Baseline) -> float:
        if stats.one_day_average_price > 0:
            return stats.one_day_average_price
        return baseline.avg_floor_price

    def _check_floor_move(self, stats: CollectionStats, baseline: Baseline) -> Optional[Alert]:
        avg_price = self._reference_price(stats, baseline)
        if avg_price <= 0:
            return None

        delta = (stats.floor_price - avg_price) / avg_price
        if abs(delta) <= self.floor_move_ratio:
            return None

        pumped = delta > 0
        return Alert(
            collection=stats.collection,
            type=AlertType.FLOOR_PUMP if pumped else AlertType.FLOOR_DUMP,
            severity=Severity.HIGH if abs(delta) > self.floor_move_high_ratio else Severity.MEDIUM,
            message=f"Floor {'pumped' if pumped else 'dumped'} {abs(delta) * 100:.1f}% vs 1-day average",
            observed_value=stats.floor_price,
            baseline_value=avg_price,
        )

    def _check_market_cap_shift(self, stats: CollectionStats, baseline: Baseline) -> Optional[Alert]:
        avg_price = self._reference_price(stats, baseline)
        if avg_price <= 0 or stats.total_supply <= 0:
            return None

        current_cap = stats.floor_price * stats.total_supply
        reference_cap = avg_price * stats.total_supply
        change = current_cap - reference_cap
        if abs(change) <= self.market_cap_shift:
            return None
        return Alert(
            collection=stats.collection,
            type=AlertType.MARKET_CAP_SHIFT,
            severity=Severity.HIGH if abs(change) > self.market_cap_shift_high else Severity.MEDIUM,
            message=(
                f"Market cap {'increased' if change > 0 else 'decreased'} by "
                f"{abs(change):.1f} {stats.floor_price_symbol}"
            ),
            observed_value=current_cap,
            baseline_value=reference_cap,
        )

    def detect_listing_pattern(self, stats: CollectionStats, baseline: Baseline) -> Optional[Alert]:
        """Flag average sale prices that drift far from the baseline's."""
        if stats.one_day_sales <= 0 or baseline.avg_sales <= 0 or baseline.avg_volume <= 0:
            return None

        current_ratio = stats.one_day_volume / stats.one_day_sales
        historical_ratio = baseline.avg_volume / baseline.avg_sales
        deviation = abs(current_ratio - historical_ratio) / historical_ratio
        if deviation <= self.listing_deviation_ratio:
            return None

        if current_ratio > historical_ratio:
            message = f"Average sale price {deviation * 100:.1f}% above baseline - holders delisting"
        else:
            message = f"Average sale price {deviation * 100:.1f}% below baseline - mass listings"
        return Alert(
            collection=stats.collection,
            type=AlertType.LISTING_PATTERN,
            severity=Severity.LOW,
            message=message,
            observed_value=current_ratio,
            baseline_value=historical_ratio,
        )

    def detect_social(self, collection: str, signal: Optional[SocialSignal]) -> Optional[Alert]:
        """Flag a jump in social mentions."""
        if signal is None or signal.previous_mentions_24h <= 0:
            return None

        increase = signal.increase_percent
        if increase < self.social_increase_pct:
            return None
        return Alert(
            collection=collection,
            type=AlertType.SOCIAL_TRENDING,
            severity=Severity.MEDIUM,
            message=f"Social mentions up {increase:.1f}% - {signal.platform} trending",
            observed_value=float(signal.mentions_24h),
            baseline_value=float(signal.previous_mentions_24h),
        )
