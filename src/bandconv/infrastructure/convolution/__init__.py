"""
Batched convolution controller and its per-operation kernel contexts.
"""

from ._controller import MAX_PARALLELISM, ConvolutionController
from ._kernel_context import KernelContext

__all__ = [
    ConvolutionController.__name__,
    KernelContext.__name__,
    "MAX_PARALLELISM",
]
