"""Alert evaluation: one-shot price alerts checked against live per-coin quotes."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.alerts import TriggerEvent
from monitor.lookup import resolve_concurrently
from monitor.scheduler import PeriodicTask
from utils.errors import CoinWatchError, NotFound, StoreUnavailable

logger = logging.getLogger("coinwatch.alerts.evaluator")


@dataclass
class EvaluationReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    evaluated: int = 0
    triggered: list = field(default_factory=list)
    skipped: dict = field(default_factory=dict)
    persist_failures: list = field(default_factory=list)
    recovered: list = field(default_factory=list)

    @property
    def clean(self):
        return not self.skipped and not self.persist_failures

    def summary(self):
        parts = [f"{self.evaluated} evaluated", f"{len(self.triggered)} triggered"]
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        if self.persist_failures:
            parts.append(f"{len(self.persist_failures)} not persisted")
        if self.recovered:
            parts.append(f"{len(self.recovered)} recovered")
        return ", ".join(parts)


class AlertEvaluator:
    """Evaluates active alerts and fires each crossing at most once.

    An alert goes ``active -> inactive`` when its condition is met: one
    TriggerEvent goes to every sink, then ``is_active=False`` is written to
    the store. When that write fails the alert is kept as pending; later
    passes retry the write without notifying again. Passes are single-flight:
    a call made while a pass runs receives that pass's report.
    """

    def __init__(self, store, provider, sinks=None, interval_seconds=30, initial_delay=2.0,
                 max_workers=8, lookup_timeout=15, tick=1.0):
        self.store = store
        self.provider = provider
        self.sinks = list(sinks or [])
        self.max_workers = max_workers
        self.lookup_timeout = lookup_timeout
        self.last_report = None
        # alert id -> (signature, event) for triggers whose deactivation was not persisted
        self._pending = {}
        self._error_callbacks = []
        self._task = PeriodicTask("alert-evaluator", self._evaluate_pass,
                                  interval_seconds=interval_seconds,
                                  initial_delay=initial_delay, tick=tick)

    @property
    def pending_ids(self):
        return set(self._pending)

    def on_error(self, callback):
        """Register callback called with the exception of each failed pass."""
        self._error_callbacks.append(callback)

    def start(self):
        return self._task.start()

    def stop(self, wait=False):
        self._task.stop(wait=wait)

    def close(self):
        self._task.close()

    def evaluate_async(self):
        """Start a pass (or join the running one) and return its Future."""
        return self._task.run_now()

    def evaluate_once(self, timeout=None):
        """Run one pass and return its EvaluationReport."""
        return self._task.run_now().result(timeout=timeout)

    # --- Pass ---

    def _load_active(self):
        active = {}
        for alert in self.store.list_alerts():
            if alert.is_active and alert.id not in active:
                active[alert.id] = alert
        return active

    def _lookup(self, alerts):
        return resolve_concurrently(
            [a.coin_id for a in alerts],
            self.provider.get_quote_detail,
            max_workers=self.max_workers,
            timeout=self.lookup_timeout,
        )

    def _evaluate_pass(self):
        report = EvaluationReport()
        try:
            active = self._load_active()
        except CoinWatchError as e:
            self._record_failure(e)
            raise

        self._forget_stale_pending(active)
        for alert_id in list(self._pending):
            self._retry_deactivation(active[alert_id], report)

        to_check = [a for a in active.values() if a.id not in self._pending and a.id not in report.recovered]
        quotes, failures = self._lookup(to_check)

        for alert in to_check:
            error = failures.get(alert.coin_id)
            if error is not None:
                self._skip(alert, error, report)
                continue
            price = quotes[alert.coin_id].current_price
            report.evaluated += 1
            if not alert.is_triggered_by(price):
                continue

            event = TriggerEvent.for_alert(alert, price)
            logger.info(f"Alert {alert.id} triggered: {event.message}")
            self._dispatch(event)
            report.triggered.append(event)
            self._deactivate(alert, event, report)

        report.finished_at = datetime.now(timezone.utc)
        self.last_report = report
        logger.info(f"Alert pass: {report.summary()}")
        return report

    def _record_failure(self, error):
        logger.error(f"Alert pass aborted, alerts could not be loaded: {error}")
        for cb in self._error_callbacks:
            try:
                cb(error)
            except Exception as e:
                logger.warning(f"Error callback error: {e}")

    def _skip(self, alert, error, report):
        report.skipped[alert.id] = str(error)
        if isinstance(error, NotFound):
            logger.warning(f"Alert {alert.id}: coin {alert.coin_id} unknown to provider, cannot evaluate this cycle")
        else:
            logger.warning(f"Alert {alert.id}: price unavailable ({type(error).__name__}: {error}), retrying next cycle")

    def _deactivate(self, alert, event, report):
        try:
            self.store.update_alert(alert.id, is_active=False)
        except StoreUnavailable as e:
            self._pending[alert.id] = (alert.signature(), event)
            report.persist_failures.append(alert.id)
            logger.error(f"Alert {alert.id} notified but not deactivated ({e}); will retry without re-notifying")
        except KeyError:
            logger.info(f"Alert {alert.id} was deleted before it could be deactivated")

    def _retry_deactivation(self, alert, report):
        try:
            self.store.update_alert(alert.id, is_active=False)
        except StoreUnavailable as e:
            report.persist_failures.append(alert.id)
            logger.error(f"Alert {alert.id} still not deactivated: {e}")
            return
        except KeyError:
            logger.info(f"Alert {alert.id} was deleted before it could be deactivated")
        self._pending.pop(alert.id, None)
        report.recovered.append(alert.id)
        logger.info(f"Alert {alert.id} deactivated on retry")

    def _forget_stale_pending(self, active):
        """Drop pending deactivations for alerts deleted, deactivated or edited since."""
        for alert_id, (signature, _event) in list(self._pending.items()):
            alert = active.get(alert_id)
            if alert is None:
                logger.debug(f"Alert {alert_id} no longer active, dropping pending deactivation")
                del self._pending[alert_id]
            elif alert.signature() != signature:
                logger.info(f"Alert {alert_id} was edited, treating it as a fresh alert")
                del self._pending[alert_id]

    def _dispatch(self, event):
        for sink in self.sinks:
            try:
                sink.send(event)
            except Exception as e:
                logger.warning(f"Notification sink {type(sink).__name__} failed: {e}")

    # --- Dry run ---

    def preview(self, include_inactive=False):
        """Evaluate alerts without notifying or writing anything."""
        alerts = [a for a in self.store.list_alerts() if include_inactive or a.is_active]
        quotes, failures = self._lookup(alerts)
        rows = []
        for alert in alerts:
            quote = quotes.get(alert.coin_id)
            rows.append({
                "alert": alert,
                "price": quote.current_price if quote else None,
                "would_fire": alert.is_triggered_by(quote.current_price) if quote else False,
                "error": str(failures[alert.coin_id]) if alert.coin_id in failures else None,
            })
        return rows
