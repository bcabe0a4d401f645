"""
Convolution-engine exceptions for bandconv.

This module defines the error taxonomy raised by the convolution engine.
Errors fall into three groups:

- Configuration errors: malformed dimension triples, non-positive derived
  sizes, or buffers whose lengths disagree with the resolved geometry.
- Capacity errors: a single batch item does not fit within the transfer
  ceiling, so no chunk size can be chosen.
- Execution errors: any failure raised while a chunk is being copied or
  computed, wrapped together with the controller's geometry.

Configuration and capacity errors are detected before any work is done and
are never retried. Execution errors are raised once, chained to the
underlying cause; the computation is deterministic, so retrying is pointless.
"""

from __future__ import annotations

from typing import Any, Optional


class ConvolutionConfigError(ValueError):
    """
    Raised when a convolution is configured or invoked with inconsistent sizes.

    Examples include dimension triples that do not have exactly three
    positive entries, an output axis that resolves to a non-positive size,
    a filter whose length disagrees with the filter dimensions, or input and
    output batches of different lengths.
    """


class BufferCapacityError(ConvolutionConfigError):
    """
    Raised when a single batch item exceeds the transfer-buffer ceiling.

    Attributes
    ----------
    per_item_length : int
        Number of elements one batch item occupies in the transfer buffer.
    max_buffer_size : int
        The configured transfer ceiling, in elements.
    """

    def __init__(self, per_item_length: int, max_buffer_size: int) -> None:
        super().__init__(
            f"Requested buffer of {per_item_length} elements per item is over "
            f"max of {max_buffer_size}"
        )
        self.per_item_length = per_item_length
        self.max_buffer_size = max_buffer_size


class ConvolutionExecutionError(RuntimeError):
    """
    Raised when buffer preparation or kernel execution fails mid-call.

    The message names the controller (including its input, filter and output
    dimensions) so the failing configuration can be identified from the
    traceback alone. The underlying exception is available as `__cause__`.

    Attributes
    ----------
    geometry : Any
        The geometry of the controller that failed, if known.
    """

    def __init__(self, description: str, geometry: Optional[Any] = None) -> None:
        super().__init__(f"Error apply {description}")
        self.geometry = geometry
