"""Bounded fan-out, rate limiting and retry helpers."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, TypeVar

from tqdm import tqdm

from .errors import FetchError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

J = TypeVar("J")
R = TypeVar("R")

DEFAULT_MAX_WORKERS = 10
# An authenticated GitHub client gets 5000 requests per hour
DEFAULT_REQUESTS_PER_HOUR = 4800.0
DEFAULT_BURST = 1000


def fan_out(
    jobs: Iterable[J],
    func: Callable[[J], R],
    max_workers: int = DEFAULT_MAX_WORKERS,
    desc: str | None = None,
    unit: str = " jobs",
) -> dict[J, R]:
    """Run `func` over every job on a pool of `min(max_workers, len(jobs))` threads.

    Each worker writes its result into a dict keyed by job under a shared lock.
    Completion order is not preserved. An exception raised by `func` propagates to the caller once every
    other job has finished.
    """
    jobs = list(jobs)
    results: dict[J, R] = {}
    if not jobs:
        return results
    lock = threading.Lock()
    nworkers = max(1, min(max_workers, len(jobs)))
    errors: list[BaseException] = []

    def collect(job: J) -> None:
        result = func(job)
        with lock:
            results[job] = result

    with (
        ThreadPoolExecutor(max_workers=nworkers, thread_name_prefix="modgraph") as executor,
        tqdm(desc=desc, total=len(jobs), leave=False, unit=unit, disable=desc is None) as t,
    ):
        futures = [executor.submit(collect, job) for job in jobs]
        for future in as_completed(futures):
            t.update(1)
            try:
                future.result()
            except Exception as e:  # noqa: BLE001
                errors.append(e)
    if errors:
        raise errors[0]
    return results


class RateLimiter:
    """A thread-safe token bucket.

    Tokens refill continuously at `requests_per_hour / 3600` per second up to `burst`; `acquire()` blocks
    until a token is available.
    """

    def __init__(
        self,
        requests_per_hour: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize a rate limiter with a full bucket."""
        if requests_per_hour <= 0 or burst <= 0:
            msg = "requests_per_hour and burst must be positive"
            raise ValueError(msg)
        self.rate: float = requests_per_hour / 3600.0
        self.burst: int = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens: float = float(burst)
        self._last: float = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.rate)
        self._last = now

    def try_acquire(self) -> bool:
        """Take a token if one is available without waiting."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def acquire(self) -> None:
        """Block until a token is available, then take it."""
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self.rate
            # sleep outside the lock so other threads can refill and check
            self._sleep(wait)

    @property
    def available(self) -> float:
        """The number of tokens currently in the bucket."""
        with self._lock:
            self._refill()
            return self._tokens


def retry_with_backoff(
    func: Callable[[], R],
    max_attempts: int = 3,
    backoff: float = 1.0,
    description: str = "request",
    limiter: RateLimiter | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> R:
    """Call `func` until it succeeds, at most `max_attempts` times.

    Only `FetchError`s are retried; after attempt `n` fails the next one waits `n * backoff` seconds. A
    `FetchError` reporting a 404 is raised immediately. When `limiter` is given, every attempt takes a token
    first.
    """
    last_error: FetchError | None = None
    for attempt in range(1, max_attempts + 1):
        if limiter is not None:
            limiter.acquire()
        try:
            return func()
        except FetchError as e:
            if e.is_not_found:
                raise
            last_error = e
            logger.debug("%s failed (attempt %d/%d): %s", description, attempt, max_attempts, e)
            if attempt < max_attempts:
                sleep(attempt * backoff)
    if last_error is None:
        msg = f"{description}: max_attempts must be at least 1"
        raise ValueError(msg)
    raise last_error
