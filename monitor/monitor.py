"""CoinWatchMonitor - wires the poller, snapshot cache, alert evaluator and valuator."""
import logging

from alerts.evaluator import AlertEvaluator
from models.alerts import Alert
from models.portfolio import Holding
from monitor.cache import PriceSnapshotCache
from monitor.paging import page
from monitor.poller import MarketPoller
from portfolio.valuator import PortfolioValuator
from utils.errors import CoinWatchError

logger = logging.getLogger("coinwatch.monitor")


class CoinWatchMonitor:
    """One user session: a poller timer plus an alert evaluation timer.

    The evaluator is started ``alerts.initial_delay`` seconds after the
    poller's first load finishes, then runs on its own interval.
    """

    def __init__(self, db, provider, sinks=None, config=None):
        self.db = db
        self.provider = provider
        self.config = config or {}
        poller_cfg = self.config.get("poller", {})
        alerts_cfg = self.config.get("alerts", {})
        portfolio_cfg = self.config.get("portfolio", {})

        self.cache = PriceSnapshotCache()
        self.poller = MarketPoller(
            provider, self.cache,
            interval_seconds=poller_cfg.get("interval", 30),
        )
        self.evaluator = AlertEvaluator(
            db, provider, sinks,
            interval_seconds=alerts_cfg.get("interval", 30),
            initial_delay=alerts_cfg.get("initial_delay", 2),
            max_workers=alerts_cfg.get("max_workers", 8),
            lookup_timeout=alerts_cfg.get("lookup_timeout", 15),
        )
        self.valuator = PortfolioValuator(
            db, provider,
            max_workers=portfolio_cfg.get("max_workers", 8),
            lookup_timeout=portfolio_cfg.get("lookup_timeout", 15),
        )
        self._started = False

    def start(self):
        """Start polling; the evaluator follows once the first load completes."""
        if self._started:
            return
        self._started = True
        first = self.poller.start()
        if first is None:
            self.evaluator.start()
        else:
            first.add_done_callback(self._after_first_load)

    def _after_first_load(self, future):
        if future.exception() is not None:
            logger.warning("First market load failed; starting alert checks anyway")
        if self._started:
            self.evaluator.start()

    def stop(self, wait=False):
        self._started = False
        self.poller.stop(wait=wait)
        self.evaluator.stop(wait=wait)

    def close(self):
        self._started = False
        self.poller.close()
        self.evaluator.close()

    # --- Market ---

    def ensure_snapshot(self, timeout=None):
        """Latest snapshot, refreshing once if nothing has loaded yet."""
        snapshot = self.cache.get()
        if snapshot is None:
            logger.info("No market data yet, fetching...")
            snapshot = self.poller.refresh_now().result(timeout=timeout)
        return snapshot

    def market_page(self, search_term="", page_number=1, page_size=None):
        snapshot = self.ensure_snapshot()
        size = page_size or self.config.get("market", {}).get("page_size", 50)
        return page(snapshot.quotes, search_term, page_number, size)

    def resolve_coin(self, coin_id):
        """Catalog entry for ``coin_id``: snapshot first, provider detail otherwise."""
        quote = self.cache.get_detail(coin_id)
        if quote is None:
            quote = self.poller.get_coin_details(coin_id)
        return quote

    # --- Alerts and holdings (denormalizing name/symbol at creation) ---

    def _catalog_fields(self, coin_id, coin_name, symbol):
        if coin_name and symbol:
            return coin_name, symbol
        try:
            quote = self.resolve_coin(coin_id)
        except CoinWatchError as e:
            logger.warning(f"Could not look up {coin_id} in the catalog: {e}")
            return coin_name or coin_id, symbol or ""
        return coin_name or quote.name, (symbol or quote.symbol).upper()

    def create_alert(self, coin_id, target_price, condition="above", is_active=True,
                     coin_name="", symbol=""):
        coin_name, symbol = self._catalog_fields(coin_id, coin_name, symbol)
        alert = Alert(coin_id=coin_id, coin_name=coin_name, symbol=symbol,
                      target_price=target_price, condition=condition, is_active=is_active)
        return self.db.create_alert(alert)

    def create_holding(self, coin_id, quantity, purchase_price, purchase_date=None,
                       coin_name="", symbol=""):
        coin_name, symbol = self._catalog_fields(coin_id, coin_name, symbol)
        holding = Holding(coin_id=coin_id, coin_name=coin_name, symbol=symbol,
                          quantity=quantity, purchase_price=purchase_price,
                          purchase_date=purchase_date)
        return self.db.create_holding(holding)

    def valuate_portfolio(self):
        return self.valuator.current()

    def status(self):
        """Summary dict for display."""
        snapshot = self.cache.get()
        return {
            "coins": len(snapshot) if snapshot else 0,
            "fetched_at": self.cache.fetched_at,
            "age_seconds": self.cache.age_seconds(),
            "last_error": str(self.poller.last_error) if self.poller.last_error else None,
            "consecutive_failures": self.poller.consecutive_failures,
            "pending_deactivations": sorted(self.evaluator.pending_ids),
            "polling": self.poller.running,
        }
