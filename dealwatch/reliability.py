"""Retry, rate limiting and process locking helpers shared by the collaborators."""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import random
import threading
import time
from functools import wraps
from pathlib import Path
from typing import Callable, Tuple, Type

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    """Decorator for retry logic with exponential backoff"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_retries - 1:
                        logger.error(f"{func.__name__} failed after {max_retries} attempts: {e}")
                        raise

                    delay = min(base_delay * (2 ** attempt) + random.uniform(0, 1), max_delay)
                    logger.warning(f"{func.__name__} attempt {attempt + 1} failed: {e}. Retrying in {delay:.1f}s")
                    time.sleep(delay)

        return wrapper
    return decorator


class RateLimiter:
    """Sliding-window rate limiter for API calls"""

    def __init__(self, max_calls: int, time_window: int = 60, sleep: Callable[[float], None] = time.sleep):
        self.max_calls = max_calls
        self.time_window = time_window
        self.calls = []
        self.lock = threading.Lock()
        self._sleep = sleep

    def wait_if_needed(self):
        """Wait if rate limit would be exceeded"""
        with self.lock:
            now = time.time()
            self.calls = [call_time for call_time in self.calls if now - call_time < self.time_window]

            if len(self.calls) >= self.max_calls:
                sleep_time = self.time_window - (now - self.calls[0]) + 1
                if sleep_time > 0:
                    logger.info(f"Rate limit reached, waiting {sleep_time:.1f} seconds")
                    self._sleep(sleep_time)
                    now = time.time()
                    self.calls = [call_time for call_time in self.calls if now - call_time < self.time_window]

            self.calls.append(now)


class ProcessLock:
    """File lock that keeps two worker processes from ingesting at the same time"""

    def __init__(self, lock_file: str):
        self.lock_file = lock_file
        self.lock_file_handle = None

    def acquire(self) -> bool:
        """Acquire the lock; False when another process holds it"""
        try:
            Path(self.lock_file).parent.mkdir(parents=True, exist_ok=True)
            self.lock_file_handle = open(self.lock_file, 'w')
            fcntl.flock(self.lock_file_handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

            self.lock_file_handle.write(str(os.getpid()))
            self.lock_file_handle.flush()

            logger.info(f"Process lock acquired (PID: {os.getpid()})")
            return True
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.EACCES):
                logger.warning(f"Another worker process holds {self.lock_file}")
            else:
                logger.error(f"Failed to acquire process lock: {e}")

            if self.lock_file_handle:
                self.lock_file_handle.close()
                self.lock_file_handle = None

            return False

    def release(self) -> None:
        if self.lock_file_handle:
            try:
                fcntl.flock(self.lock_file_handle, fcntl.LOCK_UN)
                self.lock_file_handle.close()
                self.lock_file_handle = None
                logger.info("Process lock released")
            except OSError as e:
                logger.error(f"Error releasing process lock: {e}")

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, *exc) -> None:
        self.release()
