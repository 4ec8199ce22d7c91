"""Failure taxonomy shared by the poller, evaluator, valuator and stores.

Every failure is scoped to a single fetch, coin, alert or holding. None of
these are fatal to the process; callers classify and carry on.
"""


class CoinWatchError(Exception):
    """Base class for all CoinWatch failures."""


class TransientFetchError(CoinWatchError):
    """Network error, timeout or retryable HTTP status. Retried next cycle."""

    def __init__(self, message, status_code=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.source = source


class DataUnavailable(CoinWatchError):
    """Provider answered, but with an empty or malformed payload."""


class NotFound(CoinWatchError):
    """Coin id unknown to the provider."""

    def __init__(self, coin_id):
        super().__init__(f"Unknown coin id: {coin_id}")
        self.coin_id = coin_id


class StoreUnavailable(CoinWatchError):
    """Alert or holdings store could not be read or written."""


class StorePersistFailure(StoreUnavailable):
    """A mutation (create/update/delete) was not persisted."""
