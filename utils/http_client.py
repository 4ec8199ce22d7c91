"""HTTP client with retries, backoff, and rate limiting."""
import json
import time
import logging
from decimal import Decimal
import requests

logger = logging.getLogger("coinwatch.http")


class APIError(Exception):
    """API request error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source

    @property
    def retryable(self):
        return self.status_code is None or self.status_code in HTTPClient.RETRYABLE_STATUS


class HTTPClient:
    """HTTP client with retry logic and rate limiting.

    Responses are never cached here: price lookups must always reflect the
    provider's current answer. JSON numbers with a fractional part are decoded
    as ``Decimal`` so prices keep the precision the provider sent.
    """

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}
    NON_RETRYABLE_STATUS = {400, 401, 403, 404}
    MAX_BACKOFF = 60

    def __init__(self, base_url, rate_limiter=None, timeout=10, max_retries=2,
                 backoff_base=1.0, headers=None, source=None):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.source = source or self.base_url
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "CoinWatch/1.0", "Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)

    def get(self, path="", params=None):
        """Make a GET request with retry and backoff."""
        return self._request("GET", path, params)

    def _backoff(self, attempt):
        return min(self.backoff_base * 2 ** attempt, self.MAX_BACKOFF)

    def _decode(self, resp, url):
        try:
            return json.loads(resp.text, parse_float=Decimal)
        except ValueError as e:
            raise APIError(
                f"Malformed JSON from {url}: {e}",
                status_code=resp.status_code,
                response_body=resp.text[:500],
                source=self.source,
            ) from e

    def _request(self, method, path, params=None):
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

        last_error = None
        for attempt in range(self.max_retries + 1):
            if self.rate_limiter:
                self.rate_limiter.wait()

            try:
                start = time.monotonic()
                resp = self.session.request(method, url, params=params, timeout=self.timeout)
                latency = int((time.monotonic() - start) * 1000)
                logger.debug(f"{method} {url} -> {resp.status_code} ({latency}ms)")
            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = e
                if attempt < self.max_retries:
                    time.sleep(self._backoff(attempt))
                continue

            if resp.status_code == 200:
                return self._decode(resp, url)

            if resp.status_code in self.NON_RETRYABLE_STATUS:
                raise APIError(
                    f"HTTP {resp.status_code} from {url}",
                    status_code=resp.status_code,
                    response_body=resp.text,
                    source=self.source,
                )

            if resp.status_code in self.RETRYABLE_STATUS:
                last_error = APIError(f"HTTP {resp.status_code} from {url}",
                                      status_code=resp.status_code, source=self.source)
                if attempt < self.max_retries:
                    retry_after = resp.headers.get("Retry-After")
                    try:
                        wait = min(float(retry_after), self.MAX_BACKOFF) if retry_after else self._backoff(attempt)
                    except ValueError:
                        wait = self._backoff(attempt)
                    logger.warning(f"Retryable {resp.status_code} from {url}, waiting {wait:.1f}s (attempt {attempt + 1})")
                    time.sleep(wait)
                continue

            raise APIError(f"Unexpected HTTP {resp.status_code} from {url}",
                           status_code=resp.status_code, source=self.source)

        raise last_error or APIError(f"Max retries exceeded for {url}", source=self.source)

    def close(self):
        self.session.close()
