"""MarketPoller - keeps the snapshot cache refreshed from the price provider."""
import logging
from datetime import datetime, timezone

from models.quotes import MarketSnapshot
from monitor.scheduler import PeriodicTask
from utils.errors import CoinWatchError, DataUnavailable, TransientFetchError

logger = logging.getLogger("coinwatch.poller")

CRITICAL_FAILURE_STREAK = 5


class MarketPoller:
    def __init__(self, provider, cache, interval_seconds=30, tick=1.0):
        self.provider = provider
        self.cache = cache
        self.last_error = None
        self.last_success_at = None
        self._consecutive_failures = 0
        self._refresh_callbacks = []
        self._error_callbacks = []
        self._task = PeriodicTask("market-poller", self._refresh,
                                  interval_seconds=interval_seconds, tick=tick)

    @property
    def consecutive_failures(self):
        return self._consecutive_failures

    @property
    def running(self):
        return self._task.running

    def on_refresh(self, callback):
        """Register callback called with the new snapshot after each successful refresh."""
        self._refresh_callbacks.append(callback)

    def on_error(self, callback):
        """Register callback called with the exception of each failed refresh."""
        self._error_callbacks.append(callback)

    def start(self):
        """Refresh immediately, then every interval. Returns the first refresh's Future."""
        return self._task.start()

    def stop(self, wait=False):
        self._task.stop(wait=wait)

    def close(self):
        self._task.close()

    def refresh_now(self):
        """Refresh on demand; joins the in-flight refresh if there is one."""
        return self._task.run_now()

    def get_coin_details(self, coin_id):
        """Fresh per-coin quote straight from the provider. Never served from cache."""
        return self.provider.get_quote_detail(coin_id)

    def _fetch_snapshot(self):
        try:
            quotes = self.provider.list_all_quotes()
        except CoinWatchError:
            raise
        except Exception as e:
            # Unclassified provider errors are retried like network failures
            raise TransientFetchError(f"Provider error: {e}") from e
        if not quotes:
            raise DataUnavailable("Provider returned an empty market listing")
        try:
            return MarketSnapshot(quotes=tuple(quotes), fetched_at=datetime.now(timezone.utc))
        except ValueError as e:
            raise DataUnavailable(f"Rejected snapshot: {e}") from e

    def _refresh(self):
        try:
            snapshot = self._fetch_snapshot()
        except CoinWatchError as e:
            self._record_failure(e)
            raise

        self.cache.set(snapshot)
        self.last_error = None
        self.last_success_at = snapshot.fetched_at
        self._consecutive_failures = 0
        logger.info(f"Refreshed market snapshot: {len(snapshot)} coins")
        for cb in self._refresh_callbacks:
            try:
                cb(snapshot)
            except Exception as e:
                logger.warning(f"Refresh callback error: {e}")
        return snapshot

    def _record_failure(self, error):
        self.last_error = error
        self._consecutive_failures += 1
        kept = "keeping previous snapshot" if self.cache.get() is not None else "no data yet"
        logger.error(f"Refresh failed ({self._consecutive_failures} consecutive, {kept}): {error}")
        if self._consecutive_failures >= CRITICAL_FAILURE_STREAK:
            logger.critical(f"{CRITICAL_FAILURE_STREAK}+ consecutive refresh failures!")
        for cb in self._error_callbacks:
            try:
                cb(error)
            except Exception as e:
                logger.warning(f"Error callback error: {e}")
