"""
Executor contract for convolution kernels.

An executor runs the three convolution kernels over one contiguous chunk of
batch items. The controller owns batching, scratch buffers and locking; an
executor only sees flat float64 buffers plus the resolved geometry, and must
honor the index arithmetic defined by `ConvolutionGeometry`.

Design notes
------------
- Structural typing (`typing.Protocol` + `@runtime_checkable`) keeps the
  controller independent of concrete executor classes, so a new backend
  only has to provide these three methods.
- Every output buffer passed to an executor may contain stale data from a
  recycled scratch buffer; executors must overwrite it entirely.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from ._geometry import ConvolutionGeometry


@runtime_checkable
class ConvolutionExecutor(Protocol):
    """
    Duck-typed kernel executor.

    Buffers are 1-D float64 arrays holding `n` batch items back to back,
    where `n = len(input) // geometry.input_length`.
    """

    name: str

    def convolve(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        """Fill `output` with the forward convolution of `input` by `weights`."""
        ...

    def backprop(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        """Fill `input` with the input gradient given the output error `output`."""
        ...

    def gradient(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        partials: np.ndarray,
        weight_count: int,
        parallelism: int,
        output: np.ndarray,
    ) -> None:
        """
        Fill `partials` with per-shard weight-gradient sums.

        `partials[k + weight_count * t]` receives the sum for tap `k` over
        input elements whose flat index satisfies `i % parallelism == t`.
        """
        ...
