"""OpenSea API client for fetching collection stats and sale events."""
import asyncio
import math
import os
import time
from typing import Optional

import httpx
import structlog

from nft_monitor.errors import AuthError, ConfigError, NetworkError, NotFoundError, UpstreamError
from nft_monitor.models import CollectionStats, SaleEvent, parse_timestamp, utcnow

logger = structlog.get_logger()

# API Base URL
OPENSEA_API_URL = "https://api.opensea.io/api/v2"

# OpenSea hard-rejects bursts above ~2 requests per second
MIN_REQUEST_INTERVAL = 0.5
DEFAULT_TIMEOUT = 10.0

INTERVAL_NAMES = ("one_day", "seven_day", "thirty_day")


class RequestThrottle:
    """Enforces a minimum delay between consecutive requests."""

    def __init__(self, min_interval: float = MIN_REQUEST_INTERVAL):
        self.min_interval = min_interval
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self):
        """Sleep until the next request slot is available."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = time.monotonic() - self._last_request
                if elapsed < self.min_interval:
                    await asyncio.sleep(self.min_interval - elapsed)
            self._last_request = time.monotonic()


class OpenSeaClient:
    """Client for the OpenSea v2 REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        min_interval: float = MIN_REQUEST_INTERVAL,
        base_url: str = OPENSEA_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or os.getenv("OPENSEA_API_KEY")
        if not self.api_key:
            raise ConfigError("OpenSea API key not configured. Set OPENSEA_API_KEY in the environment or .env file")

        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.throttle = RequestThrottle(min_interval)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Accept": "application/json", "X-API-KEY": self.api_key},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    async def _get(self, path: str, params: Optional[dict] = None, collection: Optional[str] = None) -> dict:
        """Issue a throttled GET and map failures onto UpstreamError subclasses."""
        await self.throttle.wait()
        try:
            response = await self.client.get(f"{self.base_url}{path}", params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {path} timed out", collection=collection) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Request to {path} failed: {e}", collection=collection) from e

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"OpenSea rejected API key ({status})", collection=collection, status_code=status)
        if status == 404:
            raise NotFoundError(f"Not found: {path}", collection=collection, status_code=status)
        if status >= 400:
            raise UpstreamError(f"OpenSea returned {status} for {path}", collection=collection, status_code=status)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Malformed response body for {path}", collection=collection) from e

    async def list_collections(self, order_by: str = "one_day_volume", limit: int = 50) -> list[dict]:
        """Fetch a page of collections ordered by the given metric."""
        data = await self._get("/collections", params={"order_by": order_by, "limit": limit})
        collections = data.get("collections") or []
        logger.info("fetched_collections", count=len(collections), order_by=order_by)
        return collections

    async def fetch_stats(self, collection: str) -> CollectionStats:
        """Fetch current statistics for one collection."""
        data = await self._get(f"/collections/{collection}/stats", collection=collection)
        try:
            return self._parse_stats(collection, data)
        except (AttributeError, TypeError, ValueError) as e:
            raise UpstreamError(f"Unexpected stats payload: {e}", collection=collection) from e

    async def fetch_events(self, collection: str, event_type: Optional[str] = None, limit: int = 50) -> list[SaleEvent]:
        """Fetch recent events for a collection. Returns [] on any upstream failure."""
        params = {"limit": limit}
        if event_type:
            params["event_type"] = event_type

        try:
            data = await self._get(f"/events/collection/{collection}", params=params, collection=collection)
        except UpstreamError as e:
            logger.warning("failed_to_fetch_events", collection=collection, error=str(e))
            return []

        events = []
        for item in data.get("asset_events") or []:
            event = self._parse_event(item)
            if event:
                events.append(event)
        return events

    def _parse_stats(self, collection: str, data: dict) -> CollectionStats:
        total = data.get("total") or {}
        intervals = data.get("intervals") or []

        # Prefer named intervals, fall back to positional order
        by_name = {item.get("interval"): item for item in intervals if item.get("interval")}
        periods = {}
        for index, name in enumerate(INTERVAL_NAMES):
            if name in by_name:
                periods[name] = by_name[name]
            elif index < len(intervals):
                periods[name] = intervals[index]
            else:
                periods[name] = {}

        def num(source: dict, key: str, signed: bool = False) -> float:
            value = source.get(key)
            if value is None:
                return 0.0
            value = float(value)
            # httpx decodes NaN and Infinity literals
            if not math.isfinite(value) or (value < 0 and not signed):
                raise ValueError(f"{key}={value!r}")
            return value

        return CollectionStats(
            collection=collection,
            floor_price=num(total, "floor_price"),
            floor_price_symbol=total.get("floor_price_symbol") or "ETH",
            one_day_volume=num(periods["one_day"], "volume"),
            seven_day_volume=num(periods["seven_day"], "volume"),
            thirty_day_volume=num(periods["thirty_day"], "volume"),
            one_day_sales=int(num(periods["one_day"], "sales")),
            seven_day_sales=int(num(periods["seven_day"], "sales")),
            thirty_day_sales=int(num(periods["thirty_day"], "sales")),
            one_day_volume_change=num(periods["one_day"], "volume_change", signed=True),
            seven_day_volume_change=num(periods["seven_day"], "volume_change", signed=True),
            thirty_day_volume_change=num(periods["thirty_day"], "volume_change", signed=True),
            one_day_average_price=num(periods["one_day"], "average_price"),
            total_supply=int(num(total, "total_supply")),
            num_owners=int(num(total, "num_owners")),
            market_cap=num(total, "market_cap"),
            fetched_at=utcnow(),
        )

    def _parse_event(self, item: dict) -> Optional[SaleEvent]:
        """Parse an asset event from API response."""
        try:
            # v2 reports payment in base units; older payloads carry price.value
            payment = item.get("payment")
            if payment:
                decimals = payment.get("decimals")
                decimals = 18 if decimals is None else int(decimals)
                price = int(payment.get("quantity") or 0) / (10 ** decimals)
                currency = payment.get("symbol") or "ETH"
            else:
                price_info = item.get("price") or {}
                price = float(price_info.get("value") or 0)
                currency = price_info.get("currency") or "ETH"

            nft = item.get("nft") or {}
            buyer = item.get("buyer") or (item.get("to_account") or {}).get("address")
            seller = item.get("seller") or (item.get("from_account") or {}).get("address")

            timestamp_raw = item.get("event_timestamp") or item.get("closing_date")
            timestamp = parse_timestamp(timestamp_raw) if timestamp_raw else utcnow()

            transaction = item.get("transaction")
            if isinstance(transaction, dict):
                transaction = transaction.get("hash")

            return SaleEvent(
                event_type=item.get("event_type") or "unknown",
                token_id=str(nft.get("identifier") or item.get("token_id") or ""),
                price=price,
                currency=currency,
                seller=seller,
                buyer=buyer,
                timestamp=timestamp,
                transaction_hash=transaction,
                marketplace=item.get("marketplace") or "OpenSea",
            )
        except (TypeError, ValueError) as e:
            logger.warning("event_parse_error", error=str(e), item=item)
            return None
