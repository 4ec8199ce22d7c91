"""Dataclasses for price alerts and trigger events."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from models.enums import Condition
from models.quotes import to_decimal


@dataclass
class Alert:
    id: Optional[int] = None
    coin_id: str = ""
    coin_name: str = ""
    symbol: str = ""
    target_price: Decimal = Decimal("0")
    condition: Condition = Condition.ABOVE
    is_active: bool = True
    owner: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.target_price = to_decimal(self.target_price)
        self.condition = Condition(self.condition)

    def validate(self):
        if not self.coin_id:
            raise ValueError("Alert requires a coin id")
        if self.target_price <= 0:
            raise ValueError(f"Target price must be positive, got {self.target_price}")
        return self

    def is_triggered_by(self, price):
        return self.condition.is_met(to_decimal(price), self.target_price)

    def signature(self):
        """Fields that define one crossing. Editing any of them starts a fresh one."""
        return (self.coin_id, self.target_price, self.condition)

    def copy(self, **changes):
        return replace(self, **changes)

    def describe(self):
        return f"{self.coin_name or self.coin_id} ({self.symbol.upper()}) {self.condition.value} ${self.target_price}"


@dataclass(frozen=True)
class TriggerEvent:
    alert_id: int
    coin_id: str
    evaluated_price: Decimal
    condition: Condition
    target_price: Decimal
    coin_name: str = ""
    symbol: str = ""
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "evaluated_price", to_decimal(self.evaluated_price))
        object.__setattr__(self, "target_price", to_decimal(self.target_price))
        object.__setattr__(self, "condition", Condition(self.condition))

    @classmethod
    def for_alert(cls, alert, price, triggered_at=None):
        return cls(
            alert_id=alert.id,
            coin_id=alert.coin_id,
            evaluated_price=to_decimal(price),
            condition=alert.condition,
            target_price=alert.target_price,
            coin_name=alert.coin_name,
            symbol=alert.symbol,
            triggered_at=triggered_at or datetime.now(timezone.utc),
        )

    @property
    def message(self):
        label = self.coin_name or self.coin_id
        return (f"{label} ({self.symbol.upper()}) is now ${self.evaluated_price:,.2f} "
                f"({self.condition.value} ${self.target_price:,.2f})")

    def to_dict(self):
        return {
            "alert_id": self.alert_id,
            "coin_id": self.coin_id,
            "coin_name": self.coin_name,
            "symbol": self.symbol,
            "evaluated_price": str(self.evaluated_price),
            "condition": self.condition.value,
            "target_price": str(self.target_price),
            "triggered_at": self.triggered_at.isoformat(),
            "message": self.message,
        }
