"""
Vectorized NumPy executor for the convolution kernels.

Instead of looping per element, each kernel loops over filter taps and
updates a whole rectangular slab of the chunk at once:

- A tap `(k0, k1, k2)` links one input band to one output band
  (`ConvolutionGeometry.tap_bands`) and shifts coordinates by
  `d = offset - k` on each spatial axis (`input = output + d`).
- The output coordinates with an in-range input partner form the window
  `[max(0, -d), min(out, in - d))` on each axis; the input window is the
  same range shifted by `d`.

Taps are visited in ascending order and zero-weight taps are skipped, so
every element sees exactly the same sequence of floating-point additions as
in `ReferenceExecutor`; results are bit-identical to it for the forward and
input-gradient kernels, and independent of how the batch is chunked. The
weight-gradient kernel skips zero input elements as the reference loop does
and matches it up to summation order.

Buffers are viewed as `(items, bands, y, x)` arrays, which is the flat
layout `x + X * (y + Y * (band + B * batch))` in C order.
"""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

import numpy as np

from ...domain._geometry import ConvolutionGeometry
from ._base import ExecutorRegistry

_Window = Tuple[slice, slice, slice, slice]


def _axis_window(d: int, out_extent: int, in_extent: int) -> Optional[Tuple[slice, slice]]:
    lo = max(0, -d)
    hi = min(out_extent, in_extent - d)
    if lo >= hi:
        return None
    return slice(lo, hi), slice(lo + d, hi + d)


def _iter_taps(
    geometry: ConvolutionGeometry, weight_count: int
) -> Iterator[Tuple[int, int, int, _Window]]:
    """
    Yield `(k, i2, o2, (out_y, out_x, in_y, in_x))` for every tap with a
    non-empty valid window, in ascending tap order.
    """
    offset_y, offset_x = geometry.kernel_offset
    in_dims = geometry.input_dims
    out_dims = geometry.output_dims
    for k in range(weight_count):
        k0, k1, k2 = geometry.decompose_tap(k)
        bands = geometry.tap_bands(k2)
        if bands is None:
            continue
        wx = _axis_window(offset_x - k0, out_dims[0], in_dims[0])
        if wx is None:
            continue
        wy = _axis_window(offset_y - k1, out_dims[1], in_dims[1])
        if wy is None:
            continue
        i2, o2 = bands
        yield k, i2, o2, (wy[0], wx[0], wy[1], wx[1])


def _view(buffer: np.ndarray, dims: Tuple[int, int, int], items: int) -> np.ndarray:
    return buffer.reshape(items, dims[2], dims[1], dims[0])


@ExecutorRegistry.register_executor("numpy")
class NumpyExecutor:
    """Tap-major slab executor backed by NumPy array arithmetic."""

    name = "numpy"

    def convolve(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        items = input.shape[0] // geometry.input_length
        x = _view(input, geometry.input_dims, items)
        y = _view(output, geometry.output_dims, items)
        y.fill(0.0)
        for k, i2, o2, (oy, ox, iy, ix) in _iter_taps(geometry, weights.shape[0]):
            wk = weights[k]
            if wk == 0.0:
                continue
            y[:, o2, oy, ox] += x[:, i2, iy, ix] * wk

    def backprop(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        items = output.shape[0] // geometry.output_length
        g = _view(input, geometry.input_dims, items)
        e = _view(output, geometry.output_dims, items)
        g.fill(0.0)
        for k, i2, o2, (oy, ox, iy, ix) in _iter_taps(geometry, weights.shape[0]):
            wk = weights[k]
            if wk == 0.0:
                continue
            g[:, i2, iy, ix] += e[:, o2, oy, ox] * wk

    def gradient(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        partials: np.ndarray,
        weight_count: int,
        parallelism: int,
        output: np.ndarray,
    ) -> None:
        items = input.shape[0] // geometry.input_length
        x = _view(input, geometry.input_dims, items)
        e = _view(output, geometry.output_dims, items)
        # shard of every input element: flat index modulo parallelism
        shard = _view(
            np.arange(input.shape[0], dtype=np.intp) % parallelism,
            geometry.input_dims,
            items,
        )
        table = partials.reshape(parallelism, weight_count)
        table.fill(0.0)
        for k, i2, o2, (oy, ox, iy, ix) in _iter_taps(geometry, weight_count):
            xs = x[:, i2, iy, ix]
            # zero inputs contribute nothing, even against non-finite errors
            with np.errstate(invalid="ignore"):
                products = np.where(xs != 0.0, xs * e[:, o2, oy, ox], 0.0)
            table[:, k] = np.bincount(
                shard[:, i2, iy, ix].ravel(),
                weights=products.ravel(),
                minlength=parallelism,
            )
