"""
Convolution executors.

Importing this package registers the built-in executors ("numpy",
"reference") with `ExecutorRegistry` via import side effects.
"""

from ._base import ExecutorRegistry
from ._numpy_executor import NumpyExecutor
from ._reference_executor import ReferenceExecutor

__all__ = [
    ExecutorRegistry.__name__,
    NumpyExecutor.__name__,
    ReferenceExecutor.__name__,
]
