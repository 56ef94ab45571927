"""Data models for the NFT activity monitor."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string or unix timestamp into an aware datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Action(str, Enum):
    BUY = "BUY"
    WAIT = "WAIT"
    WATCH = "WATCH"
    HOLD = "HOLD"


class AlertType(str, Enum):
    VOLUME_SURGE = "VOLUME_SURGE"
    SALES_SPIKE = "SALES_SPIKE"
    FLOOR_PUMP = "FLOOR_PUMP"
    FLOOR_DUMP = "FLOOR_DUMP"
    MARKET_CAP_SHIFT = "MARKET_CAP_SHIFT"
    WHALE_ACTIVITY = "WHALE_ACTIVITY"
    SOCIAL_TRENDING = "SOCIAL_TRENDING"
    LISTING_PATTERN = "LISTING_PATTERN"


class WhalePattern(str, Enum):
    NO_WHALES = "NO_WHALES"
    WHALE_ACCUMULATION = "WHALE_ACCUMULATION"
    MAJOR_WHALE_INTEREST = "MAJOR_WHALE_INTEREST"
    NORMAL_WHALE_ACTIVITY = "NORMAL_WHALE_ACTIVITY"


@dataclass(frozen=True)
class CollectionStats:
    """Snapshot of a collection's marketplace statistics at scan time."""
    collection: str
    floor_price: float = 0.0
    floor_price_symbol: str = "ETH"
    one_day_volume: float = 0.0
    seven_day_volume: float = 0.0
    thirty_day_volume: float = 0.0
    one_day_sales: int = 0
    seven_day_sales: int = 0
    thirty_day_sales: int = 0
    one_day_volume_change: float = 0.0  # percent
    seven_day_volume_change: float = 0.0
    thirty_day_volume_change: float = 0.0
    one_day_average_price: float = 0.0
    total_supply: int = 0
    num_owners: int = 0
    market_cap: float = 0.0
    fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class Baseline:
    """Rolling averages describing a collection's recent normal behaviour."""
    avg_volume: float
    avg_floor_price: float
    avg_sales: float


@dataclass(frozen=True)
class Alert:
    """A single anomaly observed for one collection in one scan."""
    collection: str
    type: AlertType
    severity: Severity
    message: str
    observed_value: float
    baseline_value: float

    def to_dict(self) -> dict:
        return {
            "collection": self.collection,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "observedValue": self.observed_value,
            "baselineValue": self.baseline_value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Alert":
        return cls(
            collection=data.get("collection", ""),
            type=AlertType(data["type"]),
            severity=Severity(data["severity"]),
            message=data.get("message", ""),
            observed_value=float(data.get("observedValue") or 0),
            baseline_value=float(data.get("baselineValue") or 0),
        )


@dataclass(frozen=True)
class Recommendation:
    action: Action
    confidence: Confidence
    reasoning: str

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "confidence": self.confidence.value,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        return cls(
            action=Action(data["action"]),
            confidence=Confidence(data["confidence"]),
            reasoning=data.get("reasoning", ""),
        )


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning one collection in one cycle."""
    collection: str
    timestamp: datetime
    stats: CollectionStats
    alerts: tuple[Alert, ...]
    risk_score: int
    recommendation: Recommendation

    @property
    def has_alerts(self) -> bool:
        return len(self.alerts) > 0


@dataclass(frozen=True)
class WatchListEntry:
    """A collection that qualified as high priority at least once."""
    collection: str
    first_seen_at: datetime
    risk_score: int
    recommendation: Recommendation
    last_seen_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "collection": self.collection,
            "firstSeenAt": format_timestamp(self.first_seen_at),
            "lastSeenAt": format_timestamp(self.last_seen_at or self.first_seen_at),
            "riskScore": self.risk_score,
            "recommendation": self.recommendation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WatchListEntry":
        first_seen = parse_timestamp(data.get("firstSeenAt") or data["firstSeen"])
        last_seen = data.get("lastSeenAt")
        return cls(
            collection=data["collection"],
            first_seen_at=first_seen,
            risk_score=int(data.get("riskScore", 0)),
            recommendation=Recommendation.from_dict(data["recommendation"]),
            last_seen_at=parse_timestamp(last_seen) if last_seen else first_seen,
        )


@dataclass(frozen=True)
class ScanCycleSummary:
    """Per-cycle record kept in the alert history."""
    timestamp: datetime
    total_alerts: int
    high_priority_count: int
    alerts: tuple[Alert, ...] = ()

    def to_dict(self) -> dict:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "totalAlerts": self.total_alerts,
            "highPriorityCount": self.high_priority_count,
            "alerts": [alert.to_dict() for alert in self.alerts],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScanCycleSummary":
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            total_alerts=int(data.get("totalAlerts", 0)),
            high_priority_count=int(data.get("highPriorityCount", 0)),
            alerts=tuple(Alert.from_dict(a) for a in data.get("alerts", [])),
        )


@dataclass(frozen=True)
class MonitoringLog:
    """Everything the monitor persists between cycles."""
    last_update: Optional[datetime] = None
    alert_history: tuple[ScanCycleSummary, ...] = ()
    high_priority_alerts: tuple[WatchListEntry, ...] = ()

    def to_dict(self) -> dict:
        return {
            "lastUpdate": format_timestamp(self.last_update) if self.last_update else None,
            "alertHistory": [summary.to_dict() for summary in self.alert_history],
            "highPriorityAlerts": [entry.to_dict() for entry in self.high_priority_alerts],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MonitoringLog":
        last_update = data.get("lastUpdate")
        return cls(
            last_update=parse_timestamp(last_update) if last_update else None,
            alert_history=tuple(ScanCycleSummary.from_dict(s) for s in data.get("alertHistory", [])),
            high_priority_alerts=tuple(WatchListEntry.from_dict(e) for e in data.get("highPriorityAlerts", [])),
        )


@dataclass(frozen=True)
class SaleEvent:
    """A marketplace event (usually a sale) for a collection."""
    event_type: str
    token_id: str
    price: float
    currency: str
    seller: Optional[str]
    buyer: Optional[str]
    timestamp: datetime
    transaction_hash: Optional[str] = None
    marketplace: str = "OpenSea"


@dataclass
class WhaleBuyer:
    """Aggregated purchases of one large buyer."""
    address: str
    purchases: list[SaleEvent] = field(default_factory=list)
    total_spent: float = 0.0

    @property
    def purchase_count(self) -> int:
        return len(self.purchases)


@dataclass
class WhaleReport:
    collection: str
    whale_count: int
    total_whale_volume: float
    top_whales: list[WhaleBuyer]
    whale_transactions: int
    pattern: WhalePattern
    interpretation: str
    urgency: Optional[Severity] = None


@dataclass(frozen=True)
class TrendingCollection:
    collection: str
    name: str
    floor_price: float
    one_day_change: float
    one_day_volume: float
    one_day_sales: int


@dataclass(frozen=True)
class SocialSignal:
    """Mention counts for a collection on one social platform."""
    platform: str
    mentions_24h: int
    previous_mentions_24h: int

    @property
    def increase_percent(self) -> float:
        if self.previous_mentions_24h <= 0:
            return 0.0
        return (self.mentions_24h - self.previous_mentions_24h) / self.previous_mentions_24h * 100
