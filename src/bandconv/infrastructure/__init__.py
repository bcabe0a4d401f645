"""
Infrastructure layer of bandconv.

Holds everything with runtime state: configuration, the scratch buffer
pool, the executor registry with its built-in executors, and the
convolution controller.
"""

from ._buffer_pool import DOUBLES, ScratchBufferPool, ScratchLease
from ._config import (
    MAX_BUFFER_SIZE,
    ConvolutionSettings,
    get_settings,
    reset_settings_cache,
)
from .convolution import ConvolutionController, KernelContext
from .executors import ExecutorRegistry, NumpyExecutor, ReferenceExecutor

__all__ = [
    "DOUBLES",
    "MAX_BUFFER_SIZE",
    "ConvolutionController",
    "ConvolutionSettings",
    "ExecutorRegistry",
    "KernelContext",
    "NumpyExecutor",
    "ReferenceExecutor",
    "ScratchBufferPool",
    "ScratchLease",
    "get_settings",
    "reset_settings_cache",
]
