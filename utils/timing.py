import time
from functools import wraps
from typing import Optional, Dict
from config.logging_config import logger

class Timer:
    """Context manager measuring a block; optionally records the duration into `store[label]`."""

    def __init__(self, label: str = "", store: Optional[Dict[str, float]] = None):
        self.label = label
        self.store = store
        self.elapsed: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._start
        if self.store is not None and self.label:
            self.store[self.label] = self.elapsed
        logger.debug(f"[TIME] {self.label}: {self.elapsed:.6f} seconds")

def async_timed(label: str = None, store: Optional[Dict[str, float]] = None):
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                key = label or func.__name__
                if store is not None:
                    store[key] = elapsed
                logger.debug(f"[TIME] {key}: {elapsed:.6f} seconds")
        return wrapper
    return decorator
