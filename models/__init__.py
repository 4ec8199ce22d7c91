"""Data models."""
from models.enums import Condition
from models.quotes import CoinQuote, MarketSnapshot, to_decimal
from models.alerts import Alert, TriggerEvent
from models.portfolio import Holding, HoldingValuation, PortfolioValuation
