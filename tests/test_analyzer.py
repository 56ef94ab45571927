"""Tests for the anomaly analyzer."""
import math
import re

import pytest

from nft_monitor.detection.analyzer import AnomalyAnalyzer
from nft_monitor.detection.baseline import baseline_from_stats
from nft_monitor.errors import DetectionError
from nft_monitor.models import AlertType, Baseline, CollectionStats, Severity, SocialSignal


def make_stats(**overrides) -> CollectionStats:
    values = {
        "collection": "test-collection",
        "floor_price": 1.0,
        "one_day_volume": 10.0,
        "thirty_day_volume": 300.0,
        "one_day_sales": 10,
        "thirty_day_sales": 300,
        "one_day_volume_change": 0.0,
        "one_day_average_price": 1.0,
    }
    values.update(overrides)
    return CollectionStats(**values)


def detect(stats: CollectionStats, config: dict = None):
    return AnomalyAnalyzer(config).detect(stats, baseline_from_stats(stats))


def types_of(alerts):
    return [a.type for a in alerts]


class TestVolumeSurge:
    def test_exactly_100_percent_does_not_trigger(self) -> None:
        assert AlertType.VOLUME_SURGE not in types_of(detect(make_stats(one_day_volume_change=100)))

    def test_just_above_100_percent_triggers_medium(self) -> None:
        alerts = detect(make_stats(one_day_volume_change=100.01))
        surge = [a for a in alerts if a.type == AlertType.VOLUME_SURGE]
        assert len(surge) == 1
        assert surge[0].severity == Severity.MEDIUM
        assert "100.0%" in surge[0].message

    def test_above_300_percent_is_high(self) -> None:
        alerts = detect(make_stats(one_day_volume_change=350))
        assert alerts[0].type == AlertType.VOLUME_SURGE
        assert alerts[0].severity == Severity.HIGH

    def test_negative_change_never_triggers(self) -> None:
        assert detect(make_stats(one_day_volume_change=-80)) == []


class TestSalesSpike:
    def test_triggers_above_three_times_daily_average(self) -> None:
        alerts = detect(make_stats(one_day_sales=31))
        assert types_of(alerts) == [AlertType.SALES_SPIKE]
        assert alerts[0].severity == Severity.HIGH
        assert alerts[0].baseline_value == pytest.approx(10.0)

    def test_exactly_three_times_does_not_trigger(self) -> None:
        assert detect(make_stats(one_day_sales=30)) == []

    def test_zero_history_without_baseline_is_skipped(self) -> None:
        stats = make_stats(one_day_sales=50, thirty_day_sales=0)
        alerts = AnomalyAnalyzer().detect(stats, Baseline(avg_volume=0, avg_floor_price=0, avg_sales=0))
        assert AlertType.SALES_SPIKE not in types_of(alerts)

    def test_zero_history_falls_back_to_baseline_sales(self) -> None:
        stats = make_stats(one_day_sales=16, thirty_day_sales=0)
        alerts = AnomalyAnalyzer().detect(stats, Baseline(avg_volume=0, avg_floor_price=0, avg_sales=5))
        assert types_of(alerts) == [AlertType.SALES_SPIKE]
        assert "3.2x" in alerts[0].message


class TestFloorMoves:
    def test_thirty_percent_pump_is_medium(self) -> None:
        alerts = detect(make_stats(floor_price=1.30, one_day_average_price=1.00))
        assert len(alerts) == 1
        assert alerts[0].type == AlertType.FLOOR_PUMP
        assert alerts[0].severity == Severity.MEDIUM
        assert "30.0%" in alerts[0].message

    def test_fifty_percent_dump_is_high(self) -> None:
        alerts = detect(make_stats(floor_price=0.5, one_day_average_price=1.0))
        assert types_of(alerts) == [AlertType.FLOOR_DUMP]
        assert alerts[0].severity == Severity.HIGH
        assert "50.0%" in alerts[0].message

    def test_twenty_percent_does_not_trigger(self) -> None:
        assert detect(make_stats(floor_price=1.2, one_day_average_price=1.0)) == []

    def test_zero_average_price_without_baseline_is_skipped(self) -> None:
        stats = make_stats(floor_price=2.0, one_day_average_price=0.0, total_supply=1000)
        alerts = AnomalyAnalyzer().detect(stats, Baseline(avg_volume=10, avg_floor_price=0, avg_sales=10))
        assert alerts == []

    def test_zero_average_price_uses_baseline_floor(self) -> None:
        stats = make_stats(floor_price=2.0, one_day_average_price=0.0)
        alerts = AnomalyAnalyzer().detect(stats, Baseline(avg_volume=10, avg_floor_price=1.0, avg_sales=10))
        assert types_of(alerts) == [AlertType.FLOOR_PUMP]
        assert alerts[0].baseline_value == 1.0


class TestMarketCapShift:
    def test_medium_shift(self) -> None:
        alerts = detect(make_stats(floor_price=1.5, one_day_average_price=1.0, total_supply=300))
        shift = [a for a in alerts if a.type == AlertType.MARKET_CAP_SHIFT]
        assert len(shift) == 1
        assert shift[0].severity == Severity.MEDIUM
        assert "increased by 150.0" in shift[0].message

    def test_high_shift_on_decrease(self) -> None:
        alerts = detect(make_stats(floor_price=0.5, one_day_average_price=1.0, total_supply=2000))
        shift = [a for a in alerts if a.type == AlertType.MARKET_CAP_SHIFT][0]
        assert shift.severity == Severity.HIGH
        assert "decreased by 1000.0" in shift.message

    def test_no_supply_no_shift(self) -> None:
        alerts = detect(make_stats(floor_price=1.5, one_day_average_price=1.0, total_supply=0))
        assert AlertType.MARKET_CAP_SHIFT not in types_of(alerts)


class TestAnalyzerContract:
    def test_quiet_collection_has_no_alerts(self) -> None:
        assert detect(make_stats()) == []

    def test_rules_apply_independently(self) -> None:
        stats = make_stats(
            one_day_volume_change=400,
            one_day_sales=40,
            floor_price=1.5,
            one_day_average_price=1.0,
            total_supply=1000,
        )
        assert set(types_of(detect(stats))) == {
            AlertType.VOLUME_SURGE,
            AlertType.SALES_SPIKE,
            AlertType.FLOOR_PUMP,
            AlertType.MARKET_CAP_SHIFT,
        }

    def test_messages_carry_one_decimal_magnitude(self) -> None:
        stats = make_stats(one_day_volume_change=123.456, floor_price=0.7, total_supply=1000)
        for alert in detect(stats):
            assert re.search(r"\d+\.\d\b", alert.message), alert.message
            assert math.isfinite(alert.observed_value)
            assert math.isfinite(alert.baseline_value)

    def test_non_finite_stats_are_a_contract_violation(self) -> None:
        with pytest.raises(DetectionError):
            detect(make_stats(floor_price=float("nan")))

    def test_negative_sales_are_a_contract_violation(self) -> None:
        with pytest.raises(DetectionError):
            detect(make_stats(one_day_sales=-1))

    def test_thresholds_are_configurable(self) -> None:
        config = {"detection": {"volume_surge_pct": 50}}
        assert types_of(detect(make_stats(one_day_volume_change=60), config)) == [AlertType.VOLUME_SURGE]


class TestListingPattern:
    def test_disabled_by_default(self) -> None:
        stats = make_stats(one_day_volume=40.0, one_day_sales=10)
        assert AlertType.LISTING_PATTERN not in types_of(detect(stats))

    def test_enabled_flags_price_drift(self) -> None:
        stats = make_stats(one_day_volume=40.0, one_day_sales=10)
        alerts = detect(stats, {"detection": {"listing_pattern_enabled": True}})
        assert types_of(alerts) == [AlertType.LISTING_PATTERN]
        assert alerts[0].severity == Severity.LOW
        assert "300.0%" in alerts[0].message


class TestSocialSignals:
    def test_mention_growth_is_trending(self) -> None:
        signal = SocialSignal(platform="Twitter", mentions_24h=300, previous_mentions_24h=100)
        alert = AnomalyAnalyzer().detect_social("test-collection", signal)
        assert alert is not None
        assert alert.type == AlertType.SOCIAL_TRENDING
        assert alert.severity == Severity.MEDIUM
        assert "200.0%" in alert.message

    def test_small_growth_is_ignored(self) -> None:
        signal = SocialSignal(platform="Discord", mentions_24h=110, previous_mentions_24h=100)
        assert AnomalyAnalyzer().detect_social("test-collection", signal) is None

    def test_missing_signal_is_ignored(self) -> None:
        assert AnomalyAnalyzer().detect_social("test-collection", None) is None
