"""Dataclasses for holdings and their derived valuation."""
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Optional

from models.quotes import to_decimal


@dataclass
class Holding:
    id: Optional[int] = None
    coin_id: str = ""
    coin_name: str = ""
    symbol: str = ""
    quantity: Decimal = Decimal("0")
    purchase_price: Decimal = Decimal("0")
    purchase_date: Optional[date] = None
    owner: str = ""

    def __post_init__(self):
        self.quantity = to_decimal(self.quantity)
        self.purchase_price = to_decimal(self.purchase_price)
        if isinstance(self.purchase_date, str):
            self.purchase_date = date.fromisoformat(self.purchase_date) if self.purchase_date else None

    def validate(self):
        if not self.coin_id:
            raise ValueError("Holding requires a coin id")
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity}")
        if self.purchase_price < 0:
            raise ValueError(f"Purchase price cannot be negative, got {self.purchase_price}")
        return self

    @property
    def cost(self):
        return self.quantity * self.purchase_price

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass(frozen=True)
class HoldingValuation:
    holding: Holding
    current_price: Decimal
    market_value: Decimal
    cost: Decimal
    profit_loss: Decimal
    profit_loss_pct: Decimal
    price_available: bool = True


@dataclass(frozen=True)
class PortfolioValuation:
    holdings: tuple = ()
    total_cost: Decimal = Decimal("0")
    total_value: Decimal = Decimal("0")
    profit_loss: Decimal = Decimal("0")
    profit_loss_pct: Decimal = Decimal("0")
    missing_prices: tuple = ()

    @property
    def partial(self):
        """True when at least one holding was priced at 0 for lack of data."""
        return bool(self.missing_prices)

    def to_rows(self):
        """Flatten per-holding results for export."""
        rows = []
        for v in self.holdings:
            h = v.holding
            rows.append({
                "id": h.id,
                "coin_id": h.coin_id,
                "coin_name": h.coin_name,
                "symbol": h.symbol.upper(),
                "quantity": str(h.quantity),
                "purchase_price": str(h.purchase_price),
                "purchase_date": h.purchase_date.isoformat() if h.purchase_date else "",
                "current_price": str(v.current_price),
                "market_value": str(v.market_value),
                "cost": str(v.cost),
                "profit_loss": str(v.profit_loss),
                "profit_loss_pct": str(v.profit_loss_pct),
                "price_available": v.price_available,
            })
        return rows
