"""Holder for the latest market snapshot."""
import threading
from datetime import datetime, timezone


class PriceSnapshotCache:
    """Thread-safe holder of the most recent MarketSnapshot.

    The snapshot itself is immutable, so replacing the reference under the
    lock is enough for readers to always see one complete snapshot. ``None``
    means no refresh has succeeded yet.
    """

    def __init__(self):
        self._snapshot = None
        self._lock = threading.Lock()

    def get(self):
        with self._lock:
            return self._snapshot

    def get_detail(self, coin_id):
        """Quote for ``coin_id`` from the current snapshot, or None."""
        snapshot = self.get()
        if snapshot is None:
            return None
        return snapshot.get(coin_id)

    def set(self, snapshot):
        if snapshot is None:
            raise ValueError("Cannot store an empty snapshot")
        with self._lock:
            self._snapshot = snapshot

    @property
    def fetched_at(self):
        snapshot = self.get()
        return snapshot.fetched_at if snapshot else None

    def age_seconds(self):
        fetched = self.fetched_at
        if fetched is None:
            return None
        return (datetime.now(timezone.utc) - fetched).total_seconds()

    def is_fresh(self, max_age_seconds=90):
        age = self.age_seconds()
        return age is not None and age < max_age_seconds
