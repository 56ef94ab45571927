"""Tests for the OpenSea API client."""
import time

import httpx
import pytest

from nft_monitor.api.opensea import OpenSeaClient, RequestThrottle
from nft_monitor.errors import AuthError, ConfigError, NetworkError, NotFoundError, UpstreamError

STATS_PAYLOAD = {
    "total": {
        "volume": 250000.5,
        "sales": 40000,
        "num_owners": 4500,
        "market_cap": 120000.0,
        "floor_price": 12.5,
        "floor_price_symbol": "ETH",
        "average_price": 6.1,
    },
    "intervals": [
        {"interval": "one_day", "volume": 420.0, "volume_change": 150.5, "sales": 35, "average_price": 12.0},
        {"interval": "seven_day", "volume": 2100.0, "volume_change": 20.0, "sales": 170, "average_price": 12.3},
        {"interval": "thirty_day", "volume": 8000.0, "volume_change": -5.0, "sales": 640, "average_price": 12.5},
    ],
}

EVENTS_PAYLOAD = {
    "asset_events": [
        {
            "event_type": "sale",
            "nft": {"identifier": "1234"},
            "payment": {"quantity": "15000000000000000000", "decimals": 18, "symbol": "ETH"},
            "buyer": "0xbuyer",
            "seller": "0xseller",
            "event_timestamp": 1767225600,
            "transaction": "0xhash",
        },
        {
            "event_type": "sale",
            "token_id": "99",
            "price": {"value": 2.5, "currency": "WETH"},
            "to_account": {"address": "0xother"},
            "from_account": {"address": "0xseller"},
            "event_timestamp": "2026-01-01T00:00:00Z",
            "transaction": {"hash": "0xhash2"},
        },
    ]
}


def make_client(handler) -> OpenSeaClient:
    return OpenSeaClient(api_key="test-key", min_interval=0, transport=httpx.MockTransport(handler))


class TestConstruction:
    def test_missing_api_key_is_config_error(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENSEA_API_KEY", raising=False)
        with pytest.raises(ConfigError):
            OpenSeaClient()

    def test_reads_api_key_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("OPENSEA_API_KEY", "env-key")
        assert OpenSeaClient().api_key == "env-key"

    def test_requires_context_manager(self) -> None:
        with pytest.raises(RuntimeError):
            _ = OpenSeaClient(api_key="test-key").client


class TestFetchStats:
    @pytest.mark.asyncio
    async def test_parses_stats_and_sends_key(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers.get("X-API-KEY")
            return httpx.Response(200, json=STATS_PAYLOAD)

        async with make_client(handler) as client:
            stats = await client.fetch_stats("pudgypenguins")

        assert seen == {"path": "/api/v2/collections/pudgypenguins/stats", "key": "test-key"}
        assert stats.collection == "pudgypenguins"
        assert stats.floor_price == 12.5
        assert stats.one_day_volume == 420.0
        assert stats.one_day_volume_change == 150.5
        assert stats.one_day_sales == 35
        assert stats.thirty_day_sales == 640
        assert stats.one_day_average_price == 12.0
        assert stats.num_owners == 4500
        assert stats.total_supply == 0
        assert stats.fetched_at is not None

    @pytest.mark.asyncio
    async def test_missing_intervals_default_to_zero(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"total": {"floor_price": 1.0}})

        async with make_client(handler) as client:
            stats = await client.fetch_stats("tiny")

        assert stats.one_day_volume == 0.0
        assert stats.thirty_day_sales == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [(401, AuthError), (403, AuthError), (404, NotFoundError), (500, UpstreamError), (429, UpstreamError)],
    )
    async def test_http_errors_are_mapped(self, status, error) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={})

        async with make_client(handler) as client:
            with pytest.raises(error) as excinfo:
                await client.fetch_stats("broken")

        assert excinfo.value.collection == "broken"
        assert excinfo.value.status_code == status

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkError):
                await client.fetch_stats("offline")

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkError):
                await client.fetch_stats("slow")

    @pytest.mark.asyncio
    async def test_malformed_body_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>maintenance</html>")

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError):
                await client.fetch_stats("maintenance")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            b'{"total": {"floor_price": NaN}}',
            b'{"total": {"floor_price": 1.0}, "intervals": [{"interval": "one_day", "average_price": Infinity}]}',
            b'{"total": {"floor_price": -2.0}}',
            b'{"total": {}, "intervals": [{"interval": "one_day", "volume": -10}]}',
        ],
    )
    async def test_invalid_numbers_are_upstream_error(self, body) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as excinfo:
                await client.fetch_stats("corrupt")

        assert excinfo.value.collection == "corrupt"

    @pytest.mark.asyncio
    async def test_negative_volume_change_is_allowed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"intervals": [{"interval": "one_day", "volume_change": -80.0}]})

        async with make_client(handler) as client:
            stats = await client.fetch_stats("cooling")

        assert stats.one_day_volume_change == -80.0


class TestFetchEvents:
    @pytest.mark.asyncio
    async def test_parses_both_price_formats(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=EVENTS_PAYLOAD)

        async with make_client(handler) as client:
            events = await client.fetch_events("pudgypenguins", event_type="sale", limit=100)

        assert seen["params"] == {"limit": "100", "event_type": "sale"}
        assert len(events) == 2
        assert events[0].price == pytest.approx(15.0)
        assert events[0].buyer == "0xbuyer"
        assert events[0].token_id == "1234"
        assert events[0].transaction_hash == "0xhash"
        assert events[1].price == 2.5
        assert events[1].currency == "WETH"
        assert events[1].buyer == "0xother"
        assert events[1].transaction_hash == "0xhash2"

    @pytest.mark.asyncio
    async def test_zero_decimals_payment(self) -> None:
        payload = {
            "asset_events": [
                {
                    "event_type": "sale",
                    "nft": {"identifier": "7"},
                    "payment": {"quantity": "3", "decimals": 0, "symbol": "APE"},
                    "buyer": "0xbuyer",
                    "event_timestamp": 1767225600,
                }
            ]
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        async with make_client(handler) as client:
            events = await client.fetch_events("apes")

        assert events[0].price == 3.0
        assert events[0].currency == "APE"

    @pytest.mark.asyncio
    async def test_failure_returns_empty_list(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={})

        async with make_client(handler) as client:
            assert await client.fetch_events("pudgypenguins") == []


class TestListCollections:
    @pytest.mark.asyncio
    async def test_passes_ordering(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"collections": [{"collection": "a"}, {"collection": "b"}]})

        async with make_client(handler) as client:
            collections = await client.list_collections(order_by="one_day_volume", limit=2)

        assert seen["params"] == {"order_by": "one_day_volume", "limit": "2"}
        assert [c["collection"] for c in collections] == ["a", "b"]


class TestRequestThrottle:
    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self) -> None:
        throttle = RequestThrottle(min_interval=0.5)
        start = time.monotonic()
        await throttle.wait()
        assert time.monotonic() - start < 0.05

    @pytest.mark.asyncio
    async def test_enforces_spacing(self) -> None:
        throttle = RequestThrottle(min_interval=0.1)
        await throttle.wait()
        start = time.monotonic()
        await throttle.wait()
        assert time.monotonic() - start >= 0.08

    @pytest.mark.asyncio
    async def test_client_requests_are_spaced(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=STATS_PAYLOAD)

        client = OpenSeaClient(api_key="test-key", min_interval=0.1, transport=httpx.MockTransport(handler))
        async with client:
            start = time.monotonic()
            for slug in ("a", "b", "c"):
                await client.fetch_stats(slug)
            elapsed = time.monotonic() - start

        assert elapsed >= 0.18
