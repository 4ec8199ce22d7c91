"""Tests for the CoinGecko client and the HTTP layer beneath it."""
import json
import pytest
import requests
from decimal import Decimal
from unittest.mock import MagicMock, patch

from monitor.api import PriceProvider, create_provider
from monitor.api.coingecko import CoinGeckoClient
from utils.errors import DataUnavailable, NotFound, TransientFetchError
from utils.http_client import APIError, HTTPClient
from utils.rate_limiter import RateLimiter


def _response(status=200, body=None, text=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text if text is not None else json.dumps(body)
    resp.headers = headers or {}
    return resp


def _market_row(coin_id, price, symbol=None, cap=1000):
    return {"id": coin_id, "name": coin_id.title(), "symbol": symbol or coin_id[:3],
            "current_price": price, "price_change_percentage_24h": 1.5,
            "market_cap": cap, "image": f"https://img/{coin_id}.png"}


@pytest.fixture
def client():
    c = CoinGeckoClient(rate_limit=6000, max_retries=0)
    c.client.session.request = MagicMock()
    yield c
    c.close()


def test_satisfies_provider_protocol(client):
    assert isinstance(client, PriceProvider)


class TestListAllQuotes:
    def test_parses_listing_in_rank_order(self, client):
        rows = [_market_row("bitcoin", 67500.12), _market_row("ethereum", 3500)]
        client.client.session.request.return_value = _response(body=rows)

        quotes = client.list_all_quotes()

        assert [q.id for q in quotes] == ["bitcoin", "ethereum"]
        assert quotes[0].current_price == Decimal("67500.12")
        assert quotes[0].price_change_pct_24h == Decimal("1.5")

    def test_skips_malformed_rows(self, client):
        rows = [_market_row("bitcoin", 1), {"name": "no id"}, _market_row("bad", -5)]
        client.client.session.request.return_value = _response(body=rows)
        assert [q.id for q in client.list_all_quotes()] == ["bitcoin"]

    def test_duplicate_across_pages_keeps_first(self):
        c = CoinGeckoClient(rate_limit=6000, max_retries=0, per_page=2, pages=2)
        c.client.session.request = MagicMock(side_effect=[
            _response(body=[_market_row("bitcoin", 100), _market_row("ethereum", 10)]),
            _response(body=[_market_row("ethereum", 11), _market_row("solana", 5)]),
        ])
        quotes = c.list_all_quotes()
        assert [q.id for q in quotes] == ["bitcoin", "ethereum", "solana"]
        assert quotes[1].current_price == Decimal("10")

    def test_short_page_stops_paging(self):
        c = CoinGeckoClient(rate_limit=6000, max_retries=0, per_page=5, pages=3)
        c.client.session.request = MagicMock(return_value=_response(body=[_market_row("bitcoin", 1)]))
        c.list_all_quotes()
        assert c.client.session.request.call_count == 1

    def test_empty_listing(self, client):
        client.client.session.request.return_value = _response(body=[])
        with pytest.raises(DataUnavailable):
            client.list_all_quotes()

    def test_non_list_payload(self, client):
        client.client.session.request.return_value = _response(body={"error": "oops"})
        with pytest.raises(DataUnavailable):
            client.list_all_quotes()

    def test_malformed_json(self, client):
        client.client.session.request.return_value = _response(text="<html>busy</html>")
        with pytest.raises(DataUnavailable):
            client.list_all_quotes()

    def test_server_error_is_transient(self, client):
        client.client.session.request.return_value = _response(status=503, text="")
        with pytest.raises(TransientFetchError) as exc:
            client.list_all_quotes()
        assert exc.value.status_code == 503

    def test_network_error_is_transient(self, client):
        client.client.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(TransientFetchError):
            client.list_all_quotes()


class TestQuoteDetail:
    def test_parses_detail(self, client):
        body = {"id": "bitcoin", "name": "Bitcoin", "symbol": "btc",
                "image": {"large": "https://img/btc.png"},
                "market_data": {"current_price": {"usd": 68000.5, "eur": 62000},
                                "market_cap": {"usd": 1300000000000},
                                "price_change_percentage_24h": -0.4}}
        client.client.session.request.return_value = _response(body=body)

        quote = client.get_quote_detail("bitcoin")

        assert quote.current_price == Decimal("68000.5")
        assert quote.image == "https://img/btc.png"
        args, kwargs = client.client.session.request.call_args
        assert args[1].endswith("/coins/bitcoin")

    def test_unknown_coin(self, client):
        client.client.session.request.return_value = _response(status=404, text="{}")
        with pytest.raises(NotFound) as exc:
            client.get_quote_detail("not-a-coin")
        assert exc.value.coin_id == "not-a-coin"

    def test_missing_price_is_data_unavailable(self, client):
        body = {"id": "bitcoin", "market_data": {"current_price": {"eur": 1}}}
        client.client.session.request.return_value = _response(body=body)
        with pytest.raises(DataUnavailable):
            client.get_quote_detail("bitcoin")

    def test_rate_limited_is_transient(self, client):
        client.client.session.request.return_value = _response(status=429, text="")
        with pytest.raises(TransientFetchError):
            client.get_quote_detail("bitcoin")

    def test_never_cached(self, client):
        body = {"id": "solana", "market_data": {"current_price": {"usd": 150}}}
        client.client.session.request.return_value = _response(body=body)
        client.get_quote_detail("solana")
        client.get_quote_detail("solana")
        assert client.client.session.request.call_count == 2


class TestHTTPClient:
    @patch("utils.http_client.time.sleep")
    def test_retries_then_succeeds(self, mock_sleep):
        http = HTTPClient("https://example.test", max_retries=2)
        http.session.request = MagicMock(side_effect=[
            _response(status=502, text=""),
            _response(status=429, text="", headers={"Retry-After": "3"}),
            _response(body={"ok": True}),
        ])

        assert http.get("/thing") == {"ok": True}
        assert http.session.request.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 3.0]

    @patch("utils.http_client.time.sleep")
    def test_gives_up_after_max_retries(self, mock_sleep):
        http = HTTPClient("https://example.test", max_retries=1)
        http.session.request = MagicMock(return_value=_response(status=500, text=""))

        with pytest.raises(APIError) as exc:
            http.get("/thing")
        assert exc.value.status_code == 500
        assert exc.value.retryable is True
        assert http.session.request.call_count == 2

    def test_client_errors_not_retried(self):
        http = HTTPClient("https://example.test", max_retries=3)
        http.session.request = MagicMock(return_value=_response(status=401, text="denied"))

        with pytest.raises(APIError) as exc:
            http.get("/thing")
        assert exc.value.retryable is False
        assert http.session.request.call_count == 1

    def test_floats_decoded_as_decimal(self):
        http = HTTPClient("https://example.test", max_retries=0)
        http.session.request = MagicMock(return_value=_response(text='{"price": 0.1}'))
        assert http.get()["price"] == Decimal("0.1")


class TestRateLimiter:
    def test_bucket_drains(self):
        limiter = RateLimiter(2)
        assert limiter.try_acquire()
        assert limiter.try_acquire()
        assert not limiter.try_acquire()

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            RateLimiter(0)


def test_create_provider_from_config():
    provider = create_provider({"api": {"coingecko": {
        "base_url": "https://pro.example/api/v3/", "vs_currency": "eur",
        "api_key": "k-123", "per_page": 100,
    }}})
    try:
        assert provider.client.base_url == "https://pro.example/api/v3"
        assert provider.vs_currency == "eur"
        assert provider.per_page == 100
        assert provider.client.session.headers["x-cg-demo-api-key"] == "k-123"
    finally:
        provider.close()
