"""
bandconv: batched 3-band convolution engine.

Computes width x height x band convolutions over batches of flat tensors,
together with their input gradient and filter-weight gradient, for use as
the compute core of a trainable convolution layer.

Typical use:

    from bandconv import ConvolutionController

    ctrl = ConvolutionController([8, 8, 1], [3, 3, 1])
    ctrl.convolve(inputs, filter, outputs)
    ctrl.backprop(input_grads, filter, output_errors)
    ctrl.gradient(inputs, filter_grad, output_errors)
"""

from .domain import (
    BufferCapacityError,
    ConvolutionConfigError,
    ConvolutionExecutionError,
    ConvolutionExecutor,
    ConvolutionGeometry,
    ExplicitPadding,
    SamePadding,
    resolve_output_dims,
)
from .infrastructure import (
    DOUBLES,
    MAX_BUFFER_SIZE,
    ConvolutionController,
    ConvolutionSettings,
    ExecutorRegistry,
    ScratchBufferPool,
)

__version__ = "0.1.0"

__all__ = [
    "BufferCapacityError",
    "ConvolutionConfigError",
    "ConvolutionController",
    "ConvolutionExecutionError",
    "ConvolutionExecutor",
    "ConvolutionGeometry",
    "ConvolutionSettings",
    "DOUBLES",
    "ExecutorRegistry",
    "ExplicitPadding",
    "MAX_BUFFER_SIZE",
    "SamePadding",
    "ScratchBufferPool",
    "resolve_output_dims",
]
