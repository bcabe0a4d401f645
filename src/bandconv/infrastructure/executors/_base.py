"""
Executor registry and dispatch utilities.

Concrete executors are registered by string name via a decorator-based
registry and instantiated by name when a controller is built.

Usage example
-------------
Registering an executor:

    @ExecutorRegistry.register_executor("numpy")
    class NumpyExecutor:
        ...

Creating one:

    executor = ExecutorRegistry.create("numpy")

Notes
-----
- Registration keys must be unique unless explicitly overwritten.
- Registered classes must satisfy the `ConvolutionExecutor` protocol; this is
  checked when an instance is created.
"""

from __future__ import annotations

from typing import Callable, ClassVar, Dict, TypeVar

from ...domain._errors import ConvolutionConfigError
from ...domain._executor import ConvolutionExecutor

T = TypeVar("T", bound=type)


class ExecutorRegistry:
    """Class-level registry mapping executor names to executor classes."""

    EXECUTORS: ClassVar[Dict[str, type]] = {}

    @classmethod
    def register_executor(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register an executor class under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the executor later.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Executor name must be a non-empty string")

        def decorator(klass: T) -> T:
            if not overwrite and name in cls.EXECUTORS:
                raise ValueError(f"Executor already registered: {name!r}")
            cls.EXECUTORS[name] = klass
            return klass

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered executor names (sorted)."""
        return tuple(sorted(cls.EXECUTORS))

    @classmethod
    def create(cls, name: str) -> ConvolutionExecutor:
        try:
            klass = cls.EXECUTORS[name]
        except KeyError as e:
            available = ", ".join(cls.available()) or "<none>"
            raise ConvolutionConfigError(
                f"Unsupported executor name: {name!r}. Available: {available}"
            ) from e
        executor = klass()
        if not isinstance(executor, ConvolutionExecutor):
            raise ConvolutionConfigError(
                f"Executor {name!r} does not implement ConvolutionExecutor"
            )
        return executor
