"""Cross-collection trend ranking."""
import structlog

from nft_monitor.errors import UpstreamError
from nft_monitor.models import TrendingCollection

logger = structlog.get_logger()


def rank_trending(collections: list[dict], min_change: float = 50) -> list[TrendingCollection]:
    """Keep collections whose one-day change exceeds min_change, biggest first."""
    trending = []
    for item in collections:
        change = float(item.get("one_day_change") or 0)
        if change <= min_change:
            continue
        trending.append(
            TrendingCollection(
                collection=item.get("collection", ""),
                name=item.get("name") or item.get("collection", ""),
                floor_price=float(item.get("floor_price") or 0),
                one_day_change=change,
                one_day_volume=float(item.get("one_day_volume") or 0),
                one_day_sales=int(item.get("one_day_sales") or 0),
            )
        )
    trending.sort(key=lambda t: t.one_day_change, reverse=True)
    return trending


async def find_trending_collections(client, limit: int = 50, min_change: float = 50) -> list[TrendingCollection]:
    """Fetch collections ordered by one-day change and rank the movers."""
    try:
        collections = await client.list_collections(order_by="one_day_change", limit=limit)
    except UpstreamError as e:
        logger.warning("failed_to_fetch_trending", error=str(e))
        return []
    return rank_trending(collections, min_change=min_change)
