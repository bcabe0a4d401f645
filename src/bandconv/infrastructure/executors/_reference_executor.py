"""
Pure-Python reference executor for the convolution kernels.

These kernels are written as explicit per-element loops that follow the
flat-index contract literally: every output (or input, or tap/shard pair) is
decomposed into coordinates with `decompose_index`, every filter tap is
tested for a valid partner element, the partner is located with
`flatten_index`, and matching products are accumulated in ascending tap
order.

They are slow. They serve as the correctness baseline that faster executors
are tested against, and as a fallback that needs nothing but the
interpreter.
"""

from __future__ import annotations

import numpy as np

from ...domain._geometry import ConvolutionGeometry, decompose_index, flatten_index
from ._base import ExecutorRegistry


@ExecutorRegistry.register_executor("reference")
class ReferenceExecutor:
    """Loop-based executor; one Python iteration per element and tap."""

    name = "reference"

    def convolve(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        in_size = geometry.input_dims
        out_size = geometry.output_dims
        offset_y, offset_x = geometry.kernel_offset
        w = weights.tolist()
        x_in = input.tolist()

        for o in range(output.shape[0]):
            batch, o2, o1, o0 = decompose_index(o, out_size)

            accum = 0.0
            for k, wk in enumerate(w):
                if wk == 0.0:
                    continue
                k0, k1, k2 = geometry.decompose_tap(k)
                x = k2 - o2
                if x < 0 or x % out_size[2] != 0:
                    continue
                i2 = x // out_size[2]
                if i2 >= in_size[2]:
                    continue
                i0 = o0 - k0 + offset_x
                i1 = o1 - k1 + offset_y
                if 0 <= i0 < in_size[0] and 0 <= i1 < in_size[1]:
                    accum += x_in[flatten_index(i0, i1, i2, batch, in_size)] * wk
            output[o] = accum

    def backprop(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        weights: np.ndarray,
        output: np.ndarray,
    ) -> None:
        in_size = geometry.input_dims
        out_size = geometry.output_dims
        offset_y, offset_x = geometry.kernel_offset
        w = weights.tolist()
        err = output.tolist()

        for i in range(input.shape[0]):
            batch, i2, i1, i0 = decompose_index(i, in_size)

            accum = 0.0
            for k, wk in enumerate(w):
                if wk == 0.0:
                    continue
                k0, k1, k2 = geometry.decompose_tap(k)
                o2 = k2 - i2 * out_size[2]
                if not 0 <= o2 < out_size[2]:
                    continue
                o1 = i1 + k1 - offset_y
                o0 = i0 + k0 - offset_x
                if 0 <= o0 < out_size[0] and 0 <= o1 < out_size[1]:
                    accum += err[flatten_index(o0, o1, o2, batch, out_size)] * wk
            input[i] = accum

    def gradient(
        self,
        geometry: ConvolutionGeometry,
        input: np.ndarray,
        partials: np.ndarray,
        weight_count: int,
        parallelism: int,
        output: np.ndarray,
    ) -> None:
        in_size = geometry.input_dims
        out_size = geometry.output_dims
        offset_y, offset_x = geometry.kernel_offset
        x_in = input.tolist()
        err = output.tolist()

        for thread in range(parallelism):
            for k in range(weight_count):
                k0, k1, k2 = geometry.decompose_tap(k)
                accum = 0.0
                for i in range(thread, len(x_in), parallelism):
                    xi = x_in[i]
                    if xi == 0.0:
                        continue
                    batch, i2, i1, i0 = decompose_index(i, in_size)
                    o2 = k2 - i2 * out_size[2]
                    if not 0 <= o2 < out_size[2]:
                        continue
                    o1 = i1 + k1 - offset_y
                    o0 = i0 + k0 - offset_x
                    if 0 <= o0 < out_size[0] and 0 <= o1 < out_size[1]:
                        accum += xi * err[flatten_index(o0, o1, o2, batch, out_size)]
                partials[k + weight_count * thread] = accum
