"""Dataclasses for coin quotes and market snapshots."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional


def to_decimal(value, default=Decimal("0")):
    """Coerce provider numbers (int, float, str, Decimal, None) to Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


@dataclass(frozen=True)
class CoinQuote:
    id: str
    name: str = ""
    symbol: str = ""
    current_price: Decimal = Decimal("0")
    price_change_pct_24h: Decimal = Decimal("0")
    market_cap: Decimal = Decimal("0")
    image: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("CoinQuote requires an id")
        for name in ("current_price", "price_change_pct_24h", "market_cap"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        if self.current_price < 0:
            raise ValueError(f"{self.id}: negative price {self.current_price}")
        if self.market_cap < 0:
            raise ValueError(f"{self.id}: negative market cap {self.market_cap}")

    @property
    def display_symbol(self):
        return self.symbol.upper()

    @classmethod
    def from_market_row(cls, row):
        """Build from a CoinGecko ``/coins/markets`` row."""
        return cls(
            id=row["id"],
            name=row.get("name") or row["id"],
            symbol=row.get("symbol") or "",
            current_price=row.get("current_price"),
            price_change_pct_24h=row.get("price_change_percentage_24h"),
            market_cap=row.get("market_cap"),
            image=row.get("image") or "",
        )

    @classmethod
    def from_detail(cls, data, vs_currency="usd"):
        """Build from a CoinGecko ``/coins/{id}`` payload."""
        md = data.get("market_data") or {}
        image = data.get("image") or {}
        if isinstance(image, dict):
            image = image.get("large") or image.get("small") or ""
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            symbol=data.get("symbol") or "",
            current_price=(md.get("current_price") or {}).get(vs_currency),
            price_change_pct_24h=md.get("price_change_percentage_24h"),
            market_cap=(md.get("market_cap") or {}).get(vs_currency),
            image=str(image),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Complete, point-in-time set of quotes in the provider's rank order."""
    quotes: tuple = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        quotes = tuple(self.quotes)
        index = {}
        for quote in quotes:
            if quote.id in index:
                raise ValueError(f"Duplicate coin id in snapshot: {quote.id}")
            index[quote.id] = quote
        object.__setattr__(self, "quotes", quotes)
        object.__setattr__(self, "_index", index)

    def __len__(self):
        return len(self.quotes)

    def __iter__(self):
        return iter(self.quotes)

    def get(self, coin_id) -> Optional[CoinQuote]:
        return self._index.get(coin_id)

    def __contains__(self, coin_id):
        return coin_id in self._index
