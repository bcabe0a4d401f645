"""
Per-operation kernel execution contexts.

Each controller owns one `KernelContext` per operation type (forward,
backprop, gradient). A context holds the mutable transfer state of an
in-flight call (weights, current chunk buffers, chunk counters) behind its
own lock, so two calls of the same operation never interleave their buffer
assignments while different operation types stay independent.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np


class KernelContext:
    """
    Lock-guarded transfer state for one kernel type.

    Attributes
    ----------
    kind : str
        Operation name ("convolve", "backprop" or "gradient").
    weights : Optional[np.ndarray]
        Filter (or partial-sum) buffer bound for the current call.
    input, output : Optional[np.ndarray]
        Chunk buffers bound for the current dispatch.
    chunks_dispatched : int
        Number of chunks dispatched through this context since creation.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.weights: Optional[np.ndarray] = None
        self.input: Optional[np.ndarray] = None
        self.output: Optional[np.ndarray] = None
        self.chunks_dispatched = 0
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def session(self, weights: Optional[np.ndarray] = None) -> Iterator["KernelContext"]:
        """Hold the context's lock for one call; state is cleared on exit."""
        with self._lock:
            self.weights = weights
            try:
                yield self
            finally:
                self.weights = None
                self.input = None
                self.output = None

    def bind(self, input: np.ndarray, output: np.ndarray) -> None:
        self.input = input
        self.output = output
        self.chunks_dispatched += 1

    def unbind(self) -> None:
        self.input = None
        self.output = None

    def __repr__(self) -> str:
        return (
            f"KernelContext(kind={self.kind!r}, busy={self.busy}, "
            f"chunks_dispatched={self.chunks_dispatched})"
        )
