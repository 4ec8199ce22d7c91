"""Utility modules for CoinWatch."""
from utils.logger import setup_logging
from utils.formatters import format_usd, format_pct, format_quantity, format_timestamp, time_ago
from utils.rate_limiter import RateLimiter
from utils.http_client import HTTPClient, APIError
from utils.errors import (
    CoinWatchError, TransientFetchError, DataUnavailable, NotFound,
    StoreUnavailable, StorePersistFailure,
)
