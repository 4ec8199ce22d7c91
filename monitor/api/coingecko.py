"""CoinGecko API client for the market listing and per-coin details."""
import logging
import requests

from models.quotes import CoinQuote
from utils.errors import DataUnavailable, NotFound, TransientFetchError
from utils.http_client import HTTPClient, APIError
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("coinwatch.coingecko")

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoClient:
    """Read-only price provider backed by the public CoinGecko API.

    HTTP and network failures are translated into the CoinWatch error
    taxonomy here so that callers only ever see ``NotFound``,
    ``DataUnavailable`` or ``TransientFetchError``.
    """

    def __init__(self, base_url=DEFAULT_BASE_URL, rate_limit=30, timeout=10, max_retries=2,
                 vs_currency="usd", per_page=250, pages=1, api_key=None):
        headers = {"x-cg-demo-api-key": api_key} if api_key else None
        self.client = HTTPClient(
            base_url=base_url,
            rate_limiter=RateLimiter(rate_limit),
            timeout=timeout,
            max_retries=max_retries,
            headers=headers,
            source="coingecko",
        )
        self.vs_currency = vs_currency
        self.per_page = per_page
        self.pages = pages

    def _get(self, path, params=None, coin_id=None):
        try:
            return self.client.get(path, params=params)
        except APIError as e:
            if e.status_code == 404 and coin_id is not None:
                raise NotFound(coin_id) from e
            if e.status_code == 200:
                # Answered, but the body was not JSON
                raise DataUnavailable(str(e)) from e
            # Unknown failures are retried next cycle
            raise TransientFetchError(str(e), status_code=e.status_code, source="coingecko") from e
        except requests.exceptions.RequestException as e:
            raise TransientFetchError(f"{path}: {e}", source="coingecko") from e

    def list_all_quotes(self):
        """Fetch the ranked market listing, ``pages`` x ``per_page`` coins.

        Coins that shift rank between page requests can appear twice; the
        first (higher-ranked) occurrence wins.
        """
        quotes = []
        seen = set()
        for page in range(1, self.pages + 1):
            rows = self._get("/coins/markets", params={
                "vs_currency": self.vs_currency,
                "order": "market_cap_desc",
                "per_page": self.per_page,
                "page": page,
                "sparkline": "false",
            })
            if not isinstance(rows, list):
                raise DataUnavailable(f"Expected a list from /coins/markets, got {type(rows).__name__}")
            for row in rows:
                try:
                    quote = CoinQuote.from_market_row(row)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed market row: {e}")
                    continue
                if quote.id in seen:
                    logger.debug(f"Duplicate {quote.id} on page {page}, keeping first")
                    continue
                seen.add(quote.id)
                quotes.append(quote)
            if len(rows) < self.per_page:
                break

        if not quotes:
            raise DataUnavailable("Provider returned no quotes")
        return quotes

    def get_quote_detail(self, coin_id):
        """Authoritative current quote for one coin."""
        data = self._get(f"/coins/{coin_id}", params={
            "localization": "false",
            "tickers": "false",
            "community_data": "false",
            "developer_data": "false",
            "sparkline": "false",
        }, coin_id=coin_id)
        if not isinstance(data, dict) or "id" not in data:
            raise DataUnavailable(f"Malformed detail payload for {coin_id}")
        prices = (data.get("market_data") or {}).get("current_price") or {}
        price = prices.get(self.vs_currency)
        if price is None:
            raise DataUnavailable(f"No {self.vs_currency} price for {coin_id}")
        try:
            return CoinQuote.from_detail(data, self.vs_currency)
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"Malformed detail payload for {coin_id}: {e}") from e

    def ping(self):
        """True when the API answers its ping endpoint."""
        data = self._get("/ping")
        return isinstance(data, dict) and "gecko_says" in data

    def close(self):
        self.client.close()
