"""Periodic task runner with single-flight execution."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

import schedule

logger = logging.getLogger("coinwatch.scheduler")


class PeriodicTask:
    """Runs ``func`` every ``interval_seconds`` and on demand, never twice at once.

    Scheduled ticks and ``run_now()`` calls that arrive while a run is in
    progress coalesce into that run and share its Future. Runs execute on a
    dedicated single worker thread, so the task is serialized against itself
    but independent of other tasks.
    """

    def __init__(self, name, func, interval_seconds=30, initial_delay=0.0, tick=1.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.func = func
        self.interval = interval_seconds
        self.initial_delay = initial_delay
        self.tick = tick
        self._scheduler = schedule.Scheduler()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"coinwatch-{name}")
        self._lock = threading.Lock()
        self._inflight = None
        self._thread = None
        self._stop_event = threading.Event()

    @property
    def running(self):
        return self._thread is not None and not self._stop_event.is_set()

    @property
    def busy(self):
        with self._lock:
            return self._inflight is not None

    def run_now(self) -> Future:
        """Start a run, or join the one in progress."""
        with self._lock:
            if self._inflight is not None:
                logger.debug(f"{self.name}: run already in flight, coalescing")
                return self._inflight
            future = Future()
            self._inflight = future
        try:
            self._executor.submit(self._execute, future)
        except RuntimeError as e:
            # Executor already shut down
            with self._lock:
                self._inflight = None
            future.set_exception(e)
        return future

    def _execute(self, future):
        if not future.set_running_or_notify_cancel():
            with self._lock:
                self._inflight = None
            return
        error = None
        result = None
        try:
            result = self.func()
        except Exception as e:
            logger.debug(f"{self.name}: run raised {type(e).__name__}: {e}")
            error = e
        with self._lock:
            self._inflight = None
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def start(self):
        """Begin the schedule. Returns the Future of the immediate first run, if any."""
        if self._thread is not None:
            return None
        self._stop_event.clear()
        first = self.run_now() if self.initial_delay <= 0 else None
        self._thread = threading.Thread(target=self._run_loop, name=f"coinwatch-{self.name}-loop",
                                        daemon=True)
        self._thread.start()
        logger.info(f"{self.name} started (every {self.interval}s)")
        return first

    def _run_loop(self):
        if self.initial_delay > 0:
            if self._stop_event.wait(self.initial_delay):
                return
            self.run_now()
        self._scheduler.every(self.interval).seconds.do(self.run_now)
        while not self._stop_event.wait(self.tick):
            self._scheduler.run_pending()

    def stop(self, wait=False, timeout=None):
        """Stop scheduling further runs. An in-flight run still completes.

        With ``wait=True``, block until that in-flight run has finished.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._scheduler.clear()
        with self._lock:
            inflight = self._inflight
        if wait and inflight is not None:
            try:
                inflight.result(timeout=timeout)
            except Exception as e:
                logger.debug(f"{self.name}: final run ended with {type(e).__name__}")
        logger.info(f"{self.name} stopped")

    def close(self):
        self.stop(wait=True)
        self._executor.shutdown(wait=True)
