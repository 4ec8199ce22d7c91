"""Price provider contract and construction from config."""
import logging
from typing import Protocol, runtime_checkable

from monitor.api.coingecko import CoinGeckoClient

logger = logging.getLogger("coinwatch.api")


@runtime_checkable
class PriceProvider(Protocol):
    def list_all_quotes(self) -> list: ...

    def get_quote_detail(self, coin_id: str): ...


def create_provider(config=None):
    """Build the CoinGecko provider from the ``api`` config section."""
    cfg = (config or {}).get("api", {}).get("coingecko", {})
    return CoinGeckoClient(
        base_url=cfg.get("base_url", "https://api.coingecko.com/api/v3"),
        rate_limit=cfg.get("rate_limit", 30),
        timeout=cfg.get("timeout", 10),
        max_retries=cfg.get("max_retries", 2),
        vs_currency=cfg.get("vs_currency", "usd"),
        per_page=cfg.get("per_page", 250),
        pages=cfg.get("pages", 1),
        api_key=cfg.get("api_key") or None,
    )
