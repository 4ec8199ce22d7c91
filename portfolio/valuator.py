"""Portfolio valuation: cost basis, market value and profit/loss per holding."""
import logging
from decimal import Decimal, ROUND_HALF_UP

from models.portfolio import HoldingValuation, PortfolioValuation
from models.quotes import to_decimal
from monitor.lookup import resolve_concurrently

logger = logging.getLogger("coinwatch.portfolio.valuator")

ZERO = Decimal("0")
PCT_PLACES = Decimal("0.01")


def profit_loss_pct(profit_loss, cost):
    """profit_loss / cost * 100 to 2 places; 0 when there is no cost basis."""
    if cost == 0:
        return ZERO.quantize(PCT_PLACES)
    return (profit_loss / cost * 100).quantize(PCT_PLACES, rounding=ROUND_HALF_UP)


def valuate_holding(holding, price, price_available=True):
    price = to_decimal(price)
    market_value = holding.quantity * price
    cost = holding.quantity * holding.purchase_price
    pl = market_value - cost
    return HoldingValuation(
        holding=holding,
        current_price=price,
        market_value=market_value,
        cost=cost,
        profit_loss=pl,
        profit_loss_pct=profit_loss_pct(pl, cost),
        price_available=price_available,
    )


def _resolve_price(price_lookup, coin_id):
    value = price_lookup(coin_id) if callable(price_lookup) else price_lookup[coin_id]
    # Accept quotes as well as bare prices
    value = getattr(value, "current_price", value)
    if value is None:
        raise KeyError(coin_id)
    return to_decimal(value)


def valuate(holdings, price_lookup):
    """Value ``holdings`` at the prices given by ``price_lookup``.

    ``price_lookup`` is a mapping or a callable from coin id to a price (or a
    quote). A failed lookup prices that holding at 0 and marks the result
    partial instead of raising. Totals use the same formulas over the summed
    cost and value. Deterministic for a given input.
    """
    prices = {}
    missing = []
    rows = []
    for holding in holdings:
        if holding.coin_id not in prices:
            try:
                prices[holding.coin_id] = (_resolve_price(price_lookup, holding.coin_id), True)
            except Exception as e:
                # Unclassified lookup errors are treated like transient ones
                logger.warning(f"No price for {holding.coin_id}, valuing at 0: {type(e).__name__}: {e}")
                prices[holding.coin_id] = (ZERO, False)
                missing.append(holding.coin_id)
        price, available = prices[holding.coin_id]
        rows.append(valuate_holding(holding, price, available))

    total_cost = sum((r.cost for r in rows), ZERO)
    total_value = sum((r.market_value for r in rows), ZERO)
    total_pl = total_value - total_cost
    return PortfolioValuation(
        holdings=tuple(rows),
        total_cost=total_cost,
        total_value=total_value,
        profit_loss=total_pl,
        profit_loss_pct=profit_loss_pct(total_pl, total_cost),
        missing_prices=tuple(missing),
    )


class PortfolioValuator:
    """Values the stored holdings at live per-coin prices."""

    def __init__(self, store, provider, max_workers=8, lookup_timeout=15):
        self.store = store
        self.provider = provider
        self.max_workers = max_workers
        self.lookup_timeout = lookup_timeout

    def fetch_prices(self, holdings):
        quotes, failures = resolve_concurrently(
            [h.coin_id for h in holdings],
            self.provider.get_quote_detail,
            max_workers=self.max_workers,
            timeout=self.lookup_timeout,
        )
        for coin_id, error in failures.items():
            logger.debug(f"Price lookup failed for {coin_id}: {error}")
        return {coin_id: quote.current_price for coin_id, quote in quotes.items()}

    def current(self):
        holdings = self.store.list_holdings()
        return valuate(holdings, self.fetch_prices(holdings))
