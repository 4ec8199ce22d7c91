"""Concurrent per-coin lookups for one evaluation pass."""
import logging
from concurrent.futures import ThreadPoolExecutor, wait

from utils.errors import CoinWatchError, TransientFetchError

logger = logging.getLogger("coinwatch.lookup")


def resolve_concurrently(coin_ids, fetch, max_workers=8, timeout=None):
    """Call ``fetch(coin_id)`` once per distinct id, in parallel.

    Returns ``(results, failures)``: two dicts keyed by coin id. A lookup
    still running after ``timeout`` seconds is abandoned and reported as a
    TransientFetchError; it cannot hold up the rest of the pass. Exceptions
    outside the CoinWatch taxonomy are reported as transient too.
    """
    unique = list(dict.fromkeys(coin_ids))
    results, failures = {}, {}
    if not unique:
        return results, failures

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(unique))),
                                  thread_name_prefix="coinwatch-lookup")
    try:
        futures = {executor.submit(fetch, coin_id): coin_id for coin_id in unique}
        done, not_done = wait(futures, timeout=timeout)

        for future in done:
            coin_id = futures[future]
            try:
                results[coin_id] = future.result()
            except CoinWatchError as e:
                failures[coin_id] = e
            except Exception as e:
                failures[coin_id] = TransientFetchError(f"{coin_id}: {e}")

        for future in not_done:
            coin_id = futures[future]
            future.cancel()
            failures[coin_id] = TransientFetchError(f"{coin_id}: lookup timed out after {timeout}s")
            logger.warning(f"Lookup for {coin_id} timed out after {timeout}s")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return results, failures
