"""
Size-keyed scratch buffer pool for chunked convolution transfers.

The convolution controller copies each chunk of batch items into one
contiguous float64 buffer. Training loops call the controller with the same
batch shapes over and over, so those buffers are recycled instead of being
reallocated on every call.

Key features
------------
1. Exact-length buckets: a buffer is only reused for a request of the same
   number of elements.
2. Bounded free lists: each bucket keeps at most `max_per_bucket` idle
   buffers (default from `BANDCONV_POOL_MAX_PER_BUCKET`); extra recycled
   buffers are dropped and left to the GC.
3. Thread-safe: all bucket access goes through one lock, so different
   operation types may share the pool concurrently.
4. Scoped use: `ScratchLease` holds the buffers of one call and returns them
   on every exit path, including exceptions.

Buffers handed out by `obtain` are zero-filled only when freshly allocated.
Recycled buffers carry stale data; callers must overwrite what they read.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional

import numpy as np

from ._config import get_settings

logger = logging.getLogger(__name__)


class ScratchBufferPool:
    """
    Free-list pool of flat float64 buffers keyed by length.

    Example:
        >>> pool = ScratchBufferPool()
        >>> buf = pool.obtain(1024)
        >>> # ... use buffer ...
        >>> pool.recycle(buf)
    """

    def __init__(self, max_per_bucket: Optional[int] = None) -> None:
        if max_per_bucket is not None and max_per_bucket <= 0:
            raise ValueError(f"max_per_bucket must be positive, got {max_per_bucket}")
        self._max_per_bucket = max_per_bucket
        self._buckets: Dict[int, List[np.ndarray]] = defaultdict(list)
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "allocations": 0,
            "recycled": 0,
            "dropped": 0,
        }

    @property
    def max_per_bucket(self) -> int:
        """
        Free-list bound per length.

        Without an explicit bound this follows the current settings, so it is
        resolved on use rather than at construction.
        """
        if self._max_per_bucket is not None:
            return self._max_per_bucket
        return get_settings().pool_max_per_bucket

    def obtain(self, length: int) -> np.ndarray:
        """
        Return a 1-D float64 buffer of exactly `length` elements.

        Raises
        ------
        ValueError
            If `length` is not positive.
        """
        if length <= 0:
            raise ValueError(f"Scratch buffer length must be positive, got {length}")
        with self._lock:
            bucket = self._buckets.get(length)
            if bucket:
                self._stats["hits"] += 1
                return bucket.pop()
            self._stats["misses"] += 1
            self._stats["allocations"] += 1
        logger.debug("Scratch pool miss: allocating %d doubles", length)
        return np.zeros(length, dtype=np.float64)

    def recycle(self, buffer: Optional[np.ndarray]) -> None:
        """Return `buffer` to its bucket. None is ignored."""
        if buffer is None:
            return
        length = int(buffer.shape[0])
        limit = self.max_per_bucket
        with self._lock:
            bucket = self._buckets[length]
            if len(bucket) >= limit:
                self._stats["dropped"] += 1
                return
            bucket.append(buffer)
            self._stats["recycled"] += 1

    def clear(self) -> None:
        """Drop every idle buffer."""
        with self._lock:
            self._buckets.clear()

    def idle_count(self, length: Optional[int] = None) -> int:
        """Number of idle buffers, for one length or in total."""
        with self._lock:
            if length is not None:
                return len(self._buckets.get(length, ()))
            return sum(len(b) for b in self._buckets.values())

    def stats(self) -> Dict[str, int]:
        """Return a snapshot of the pool counters."""
        with self._lock:
            return dict(self._stats)


DOUBLES = ScratchBufferPool()
"""Process-wide default pool shared by all controllers."""


class ScratchLease:
    """
    Per-call holder of one reusable scratch buffer.

    `ensure(length)` keeps the current buffer while the requested length is
    unchanged and swaps it for a pooled one otherwise. `close()` (or leaving
    the `with` block) returns whatever is held to the pool.
    """

    def __init__(self, pool: ScratchBufferPool) -> None:
        self._pool = pool
        self._buffer: Optional[np.ndarray] = None

    @property
    def buffer(self) -> Optional[np.ndarray]:
        return self._buffer

    def ensure(self, length: int) -> np.ndarray:
        if self._buffer is None or self._buffer.shape[0] != length:
            if self._buffer is not None:
                self._pool.recycle(self._buffer)
                self._buffer = None
            self._buffer = self._pool.obtain(length)
        return self._buffer

    def close(self) -> None:
        if self._buffer is not None:
            self._pool.recycle(self._buffer)
            self._buffer = None

    def __enter__(self) -> "ScratchLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
