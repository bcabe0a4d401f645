"""
Domain layer of bandconv: geometry, executor contract and error taxonomy.

Nothing in this package touches scratch buffers, locks or configuration;
those live in `bandconv.infrastructure`.
"""

from ._errors import (
    BufferCapacityError,
    ConvolutionConfigError,
    ConvolutionExecutionError,
)
from ._executor import ConvolutionExecutor
from ._geometry import (
    ConvolutionGeometry,
    Dims,
    ExplicitPadding,
    Padding,
    SamePadding,
    decompose_index,
    flatten_index,
    padding_from_legacy,
    resolve_output_dims,
)

__all__ = [
    "BufferCapacityError",
    "ConvolutionConfigError",
    "ConvolutionExecutionError",
    "ConvolutionExecutor",
    "ConvolutionGeometry",
    "Dims",
    "ExplicitPadding",
    "Padding",
    "SamePadding",
    "decompose_index",
    "flatten_index",
    "padding_from_legacy",
    "resolve_output_dims",
]
