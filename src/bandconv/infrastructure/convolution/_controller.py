"""
Convolution controller: the public entry point of the engine.

`ConvolutionController` binds a resolved `ConvolutionGeometry` to an
executor and exposes the three batched operations:

- `convolve(inputs, filter, outputs)`            forward pass
- `backprop(input_gradients, filter, output_errors)`  input gradient
- `gradient(inputs, weight_gradient, output_errors)`  weight gradient

Batching
--------
Batch items are flat float64 arrays (or the rows of a 2-D array). The
controller copies them into contiguous scratch buffers in chunks of

    items_per_chunk = min(max_buffer_size // per_item_length, batch_length)

items, dispatches the executor once per chunk and copies the results back.
For `gradient` the per-item length is the larger of the input and output
lengths. Scratch buffers come from a size-keyed pool, are reused while the
chunk size is unchanged, and are returned to the pool on every exit path.

Concurrency
-----------
Each controller owns one `KernelContext` per operation type. A call holds
its operation's lock for its whole duration, so concurrent calls of the
same operation on the same controller are serialized while different
operation types do not block each other.

Errors
------
Pre-conditions are validated before any work starts and raise
`ConvolutionConfigError` (or `BufferCapacityError`). Any failure while
copying or computing a chunk is re-raised as `ConvolutionExecutionError`
naming this controller's geometry.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import (
    BufferCapacityError,
    ConvolutionConfigError,
    ConvolutionExecutionError,
)
from ...domain._executor import ConvolutionExecutor
from ...domain._geometry import (
    ConvolutionGeometry,
    Dims,
    Padding,
    padding_from_legacy,
)
from .._buffer_pool import DOUBLES, ScratchBufferPool, ScratchLease
from .._config import MAX_BUFFER_SIZE, ConvolutionSettings, get_settings
from ..executors import ExecutorRegistry
from ._kernel_context import KernelContext

logger = logging.getLogger(__name__)

Batch = Union[Sequence[np.ndarray], np.ndarray]

MAX_PARALLELISM = 16
# element-tap products above which the reference executor is reported as slow
_SLOW_WORKLOAD = 10_000_000


class ConvolutionController:
    """
    Batched 3-band convolution engine.

    Parameters
    ----------
    input_dims : Sequence[int]
        Input triple `[x, y, bands]`.
    filter_dims : Sequence[int]
        Filter triple `[x, y, input_bands * output_bands]`.
    padding_x, padding_y : Optional[int]
        Legacy nullable per-axis padding; None keeps that axis in same mode.
        Mutually exclusive with `padding`.
    padding : Optional[Padding]
        Padding variant (`SamePadding()` or `ExplicitPadding(x, y)`).
    executor : str or ConvolutionExecutor, optional
        Registry name or executor instance. Defaults to the configured
        executor ("numpy" unless `BANDCONV_EXECUTOR` says otherwise).
    max_buffer_size : Optional[int]
        Transfer ceiling in elements; overrides the configured value.
    pool : Optional[ScratchBufferPool]
        Scratch pool; defaults to the process-wide `DOUBLES` pool.
    settings : Optional[ConvolutionSettings]
        Base settings; defaults to the environment-derived settings.

    Raises
    ------
    ConvolutionConfigError
        If the geometry cannot be resolved or the executor is unknown.
    """

    MAX_BUFFER_SIZE = MAX_BUFFER_SIZE

    def __init__(
        self,
        input_dims: Sequence[int],
        filter_dims: Sequence[int],
        padding_x: Optional[int] = None,
        padding_y: Optional[int] = None,
        *,
        padding: Optional[Padding] = None,
        executor: Union[str, ConvolutionExecutor, None] = None,
        max_buffer_size: Optional[int] = None,
        pool: Optional[ScratchBufferPool] = None,
        settings: Optional[ConvolutionSettings] = None,
    ) -> None:
        if padding is not None and (padding_x is not None or padding_y is not None):
            raise ConvolutionConfigError(
                "Pass either padding or padding_x/padding_y, not both"
            )
        if padding is None:
            padding = padding_from_legacy(padding_x, padding_y)
        self.geometry = ConvolutionGeometry.resolve(input_dims, filter_dims, padding)

        base = settings if settings is not None else get_settings()
        self.settings = base.override(
            max_buffer_size=max_buffer_size,
            executor=executor if isinstance(executor, str) else None,
        )
        if executor is None or isinstance(executor, str):
            self.executor = ExecutorRegistry.create(self.settings.executor)
        elif isinstance(executor, ConvolutionExecutor):
            self.executor = executor
        else:
            raise ConvolutionConfigError(
                f"executor must be a name or a ConvolutionExecutor, got {type(executor).__name__}"
            )

        self.pool = pool if pool is not None else DOUBLES
        self._convolve_ctx = KernelContext("convolve")
        self._backprop_ctx = KernelContext("backprop")
        self._gradient_ctx = KernelContext("gradient")

    # ------------------------------------------------------------------
    # Geometry accessors
    # ------------------------------------------------------------------
    @property
    def input_dims(self) -> Dims:
        return self.geometry.input_dims

    @property
    def filter_dims(self) -> Dims:
        return self.geometry.filter_dims

    @property
    def output_dims(self) -> Dims:
        return self.geometry.output_dims

    @property
    def padding_x(self) -> Optional[int]:
        return self.geometry.padding.axis(0)

    @property
    def padding_y(self) -> Optional[int]:
        return self.geometry.padding.axis(1)

    @property
    def kernel_offset(self) -> Tuple[int, int]:
        return self.geometry.kernel_offset

    @property
    def max_buffer_size(self) -> int:
        return self.settings.max_buffer_size

    @property
    def kernel_contexts(self) -> Dict[str, KernelContext]:
        """The per-operation contexts, keyed by operation name."""
        return {
            ctx.kind: ctx
            for ctx in (self._convolve_ctx, self._backprop_ctx, self._gradient_ctx)
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def convolve(self, inputs: Batch, filter: np.ndarray, outputs: Batch) -> None:
        """
        Forward pass: fill every `outputs[n]` from `inputs[n]` and `filter`.

        Parameters
        ----------
        inputs : Batch
            N flat tensors of length `prod(input_dims)`.
        filter : np.ndarray
            Flat filter of length `prod(filter_dims)`.
        outputs : Batch
            N pre-allocated flat tensors of length `prod(output_dims)`,
            overwritten in place.
        """
        geometry = self.geometry
        sources = self._check_batch("inputs", inputs, geometry.input_length, writable=False)
        targets = self._check_batch("outputs", outputs, geometry.output_length, writable=True)
        self._check_same_length(sources, targets)
        weights = self._check_filter(filter)
        if not sources:
            return
        in_len, out_len = geometry.input_length, geometry.output_length
        per_chunk = self._items_per_chunk(in_len, len(sources))
        self._warn_if_slow(len(sources))

        try:
            with self._convolve_ctx.session(weights) as ctx, ScratchLease(
                self.pool
            ) as in_lease, ScratchLease(self.pool) as out_lease:
                for start, count in self._chunks(len(sources), per_chunk):
                    in_buf = in_lease.ensure(in_len * count)
                    out_buf = out_lease.ensure(out_len * count)
                    _gather(sources, start, count, in_buf, in_len)
                    ctx.bind(in_buf, out_buf)
                    self.executor.convolve(geometry, ctx.input, ctx.weights, ctx.output)
                    ctx.unbind()
                    _scatter(out_buf, out_len, targets, start, count)
        except Exception as e:
            raise ConvolutionExecutionError(str(self), geometry) from e

    def backprop(
        self, input_gradients: Batch, filter: np.ndarray, output_errors: Batch
    ) -> None:
        """
        Input-gradient pass: fill every `input_gradients[n]` from
        `output_errors[n]` and `filter`.
        """
        geometry = self.geometry
        targets = self._check_batch(
            "input_gradients", input_gradients, geometry.input_length, writable=True
        )
        sources = self._check_batch(
            "output_errors", output_errors, geometry.output_length, writable=False
        )
        self._check_same_length(targets, sources)
        weights = self._check_filter(filter)
        if not sources:
            return
        in_len, out_len = geometry.input_length, geometry.output_length
        per_chunk = self._items_per_chunk(in_len, len(sources))
        self._warn_if_slow(len(sources))

        try:
            with self._backprop_ctx.session(weights) as ctx, ScratchLease(
                self.pool
            ) as in_lease, ScratchLease(self.pool) as out_lease:
                for start, count in self._chunks(len(sources), per_chunk):
                    in_buf = in_lease.ensure(in_len * count)
                    out_buf = out_lease.ensure(out_len * count)
                    _gather(sources, start, count, out_buf, out_len)
                    ctx.bind(in_buf, out_buf)
                    self.executor.backprop(geometry, ctx.input, ctx.weights, ctx.output)
                    ctx.unbind()
                    _scatter(in_buf, in_len, targets, start, count)
        except Exception as e:
            raise ConvolutionExecutionError(str(self), geometry) from e

    def gradient(
        self, inputs: Batch, weight_gradient: np.ndarray, output_errors: Batch
    ) -> None:
        """
        Weight-gradient pass: add the filter gradient accumulated over all
        `(inputs[n], output_errors[n])` pairs into `weight_gradient`.

        `weight_gradient` is incremented, not overwritten, so gradients can be
        accumulated across chunks and across calls.
        """
        geometry = self.geometry
        sources = self._check_batch("inputs", inputs, geometry.input_length, writable=False)
        errors = self._check_batch(
            "output_errors", output_errors, geometry.output_length, writable=False
        )
        self._check_same_length(sources, errors)
        accumulator = self._check_accumulator(weight_gradient)
        if not sources:
            return
        in_len, out_len = geometry.input_length, geometry.output_length
        per_chunk = self._items_per_chunk(max(in_len, out_len), len(sources))
        weight_count = geometry.filter_length
        parallelism = min(MAX_PARALLELISM, in_len)
        self._warn_if_slow(len(sources))

        try:
            with self._gradient_ctx.session() as ctx, ScratchLease(
                self.pool
            ) as in_lease, ScratchLease(self.pool) as out_lease, ScratchLease(
                self.pool
            ) as partial_lease:
                for start, count in self._chunks(len(sources), per_chunk):
                    in_buf = in_lease.ensure(in_len * count)
                    out_buf = out_lease.ensure(out_len * count)
                    _gather(sources, start, count, in_buf, in_len)
                    _gather(errors, start, count, out_buf, out_len)
                    partials = partial_lease.ensure(weight_count * parallelism)
                    ctx.weights = partials
                    ctx.bind(in_buf, out_buf)
                    self.executor.gradient(
                        geometry,
                        ctx.input,
                        ctx.weights,
                        weight_count,
                        parallelism,
                        ctx.output,
                    )
                    ctx.unbind()
                    accumulator += partials.reshape(parallelism, weight_count).sum(axis=0)
        except Exception as e:
            raise ConvolutionExecutionError(str(self), geometry) from e

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    def _items_per_chunk(self, per_item_length: int, batch_length: int) -> int:
        per_chunk = min(self.max_buffer_size // per_item_length, batch_length)
        if per_chunk <= 0:
            raise BufferCapacityError(per_item_length, self.max_buffer_size)
        logger.debug(
            "%s: %d items in chunks of %d (per item %d, ceiling %d)",
            self,
            batch_length,
            per_chunk,
            per_item_length,
            self.max_buffer_size,
        )
        return per_chunk

    @staticmethod
    def _chunks(batch_length: int, per_chunk: int) -> Iterator[Tuple[int, int]]:
        """Yield `(start, count)` for each chunk; the last one may be smaller."""
        for start in range(0, batch_length, per_chunk):
            yield start, min(per_chunk, batch_length - start)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    @staticmethod
    def _check_batch(
        name: str, batch: Batch, expected_length: int, *, writable: bool
    ) -> List[np.ndarray]:
        items = list(batch)
        for n, item in enumerate(items):
            if writable:
                if not isinstance(item, np.ndarray):
                    raise ConvolutionConfigError(
                        f"{name}[{n}] must be a numpy array to be written in place, "
                        f"got {type(item).__name__}"
                    )
                if item.dtype != np.float64:
                    raise ConvolutionConfigError(
                        f"{name}[{n}] must have dtype float64, got {item.dtype}"
                    )
                if not item.flags.writeable:
                    raise ConvolutionConfigError(f"{name}[{n}] is read-only")
            else:
                item = np.asarray(item, dtype=np.float64)
                items[n] = item
            if item.ndim != 1 or item.shape[0] != expected_length:
                raise ConvolutionConfigError(
                    f"{name}[{n}] must be a flat tensor of length {expected_length}, "
                    f"got shape {item.shape}"
                )
        return items

    @staticmethod
    def _check_same_length(first: List[np.ndarray], second: List[np.ndarray]) -> None:
        if len(first) != len(second):
            raise ConvolutionConfigError(
                f"Batch length mismatch: {len(first)} vs {len(second)}"
            )

    def _check_filter(self, filter: np.ndarray) -> np.ndarray:
        weights = np.ascontiguousarray(filter, dtype=np.float64).reshape(-1)
        if weights.shape[0] != self.geometry.filter_length:
            raise ConvolutionConfigError(
                f"Filter length {weights.shape[0]} does not match filter dims "
                f"{list(self.filter_dims)} ({self.geometry.filter_length})"
            )
        return weights

    def _check_accumulator(self, weight_gradient: np.ndarray) -> np.ndarray:
        if not isinstance(weight_gradient, np.ndarray):
            raise ConvolutionConfigError(
                "weight_gradient must be a numpy array to be accumulated in place"
            )
        if weight_gradient.dtype != np.float64:
            raise ConvolutionConfigError(
                f"weight_gradient must have dtype float64, got {weight_gradient.dtype}"
            )
        if not weight_gradient.flags.writeable:
            raise ConvolutionConfigError("weight_gradient is read-only")
        if weight_gradient.ndim != 1 or weight_gradient.shape[0] != self.geometry.filter_length:
            raise ConvolutionConfigError(
                f"weight_gradient must be a flat array of length "
                f"{self.geometry.filter_length}, got shape {weight_gradient.shape}"
            )
        return weight_gradient

    def _warn_if_slow(self, batch_length: int) -> None:
        if getattr(self.executor, "name", None) != "reference":
            return
        work = batch_length * self.geometry.input_length * self.geometry.filter_length
        if work > _SLOW_WORKLOAD:
            warnings.warn(
                f"{self} is running on the pure-Python reference executor with "
                f"{work} element-tap products; select the 'numpy' executor for speed.",
                RuntimeWarning,
                stacklevel=3,
            )

    def __str__(self) -> str:
        return f"Convolve [{self.geometry}]"

    def __repr__(self) -> str:
        return (
            f"ConvolutionController(input_dims={list(self.input_dims)}, "
            f"filter_dims={list(self.filter_dims)}, padding={self.geometry.padding!r}, "
            f"executor={getattr(self.executor, 'name', type(self.executor).__name__)!r})"
        )


def _gather(
    items: List[np.ndarray], start: int, count: int, buffer: np.ndarray, length: int
) -> None:
    for j in range(count):
        buffer[j * length : (j + 1) * length] = items[start + j]


def _scatter(
    buffer: np.ndarray, length: int, items: List[np.ndarray], start: int, count: int
) -> None:
    for j in range(count):
        items[start + j][...] = buffer[j * length : (j + 1) * length]
