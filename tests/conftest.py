"""Shared test fixtures."""
import os
import sys
import threading
import pytest
import tempfile
from decimal import Decimal

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.quotes import CoinQuote
from utils.errors import NotFound


class FakeProvider:
    """In-memory price provider with switchable prices and failures."""

    def __init__(self, quotes=None):
        self.quotes = {q.id: q for q in quotes or []}
        self.prices = {}
        self.errors = {}
        self.listing = None
        self.listing_error = None
        self.listing_gate = None
        self.listing_calls = 0
        self.detail_calls = []
        self._lock = threading.Lock()

    def set_price(self, coin_id, price):
        self.prices[coin_id] = Decimal(str(price))

    def list_all_quotes(self):
        with self._lock:
            self.listing_calls += 1
        if self.listing_gate is not None:
            self.listing_gate.wait(timeout=5)
        if self.listing_error is not None:
            raise self.listing_error
        if self.listing is not None:
            return list(self.listing)
        return list(self.quotes.values())

    def get_quote_detail(self, coin_id):
        with self._lock:
            self.detail_calls.append(coin_id)
        if coin_id in self.errors:
            raise self.errors[coin_id]
        base = self.quotes.get(coin_id)
        if coin_id in self.prices:
            return CoinQuote(id=coin_id, name=base.name if base else coin_id,
                             symbol=base.symbol if base else "", current_price=self.prices[coin_id])
        if base is None:
            raise NotFound(coin_id)
        return base

    def ping(self):
        return True

    def close(self):
        pass


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def sample_quotes():
    """A small market listing in rank order."""
    return [
        CoinQuote(id="bitcoin", name="Bitcoin", symbol="btc", current_price=Decimal("67500.12"),
                  price_change_pct_24h=Decimal("-2.3"), market_cap=Decimal("1340000000000")),
        CoinQuote(id="ethereum", name="Ethereum", symbol="eth", current_price=Decimal("3500"),
                  price_change_pct_24h=Decimal("1.2"), market_cap=Decimal("420000000000")),
        CoinQuote(id="wrapped-bitcoin", name="Wrapped Bitcoin", symbol="wbtc",
                  current_price=Decimal("67480"), market_cap=Decimal("10000000000")),
        CoinQuote(id="solana", name="Solana", symbol="sol", current_price=Decimal("150"),
                  price_change_pct_24h=Decimal("5.5"), market_cap=Decimal("70000000000")),
        CoinQuote(id="bitcoin-cash", name="Bitcoin Cash", symbol="bch", current_price=Decimal("450"),
                  market_cap=Decimal("9000000000")),
        CoinQuote(id="dogecoin", name="Dogecoin", symbol="doge", current_price=Decimal("0.12"),
                  price_change_pct_24h=Decimal("-7.1"), market_cap=Decimal("17000000000")),
    ]


@pytest.fixture
def provider(sample_quotes):
    return FakeProvider(sample_quotes)
