"""
Runtime configuration for the convolution engine.

Settings come from two places, in increasing priority:

1. Environment variables, read once and cached:
   - `BANDCONV_MAX_BUFFER_SIZE`     transfer ceiling, in float64 elements
   - `BANDCONV_EXECUTOR`            executor registry name ("numpy", "reference")
   - `BANDCONV_POOL_MAX_PER_BUCKET` free-list bound per buffer length
2. Keyword arguments passed to `ConvolutionController`, which override the
   environment for that controller only.

Malformed environment values raise `ConvolutionConfigError` instead of being
silently ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Mapping, Optional

from ..domain._errors import ConvolutionConfigError

MAX_BUFFER_SIZE = 256 * 1024 * 1024
DEFAULT_EXECUTOR = "numpy"
DEFAULT_POOL_MAX_PER_BUCKET = 8

ENV_MAX_BUFFER_SIZE = "BANDCONV_MAX_BUFFER_SIZE"
ENV_EXECUTOR = "BANDCONV_EXECUTOR"
ENV_POOL_MAX_PER_BUCKET = "BANDCONV_POOL_MAX_PER_BUCKET"


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise ConvolutionConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConvolutionConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class ConvolutionSettings:
    """
    Immutable engine settings.

    Attributes
    ----------
    max_buffer_size : int
        Transfer ceiling in float64 elements; bounds how many batch items are
        copied into one contiguous chunk buffer.
    executor : str
        Name of the registered executor used for kernel dispatch.
    pool_max_per_bucket : int
        Maximum number of idle buffers kept per length in the scratch pool.
    """

    max_buffer_size: int = MAX_BUFFER_SIZE
    executor: str = DEFAULT_EXECUTOR
    pool_max_per_bucket: int = DEFAULT_POOL_MAX_PER_BUCKET

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConvolutionSettings":
        env = os.environ if environ is None else environ
        settings = cls()

        raw = env.get(ENV_MAX_BUFFER_SIZE, "").strip()
        if raw:
            settings = replace(
                settings, max_buffer_size=_positive_int(ENV_MAX_BUFFER_SIZE, raw)
            )

        raw = env.get(ENV_EXECUTOR, "").strip()
        if raw:
            settings = replace(settings, executor=raw.lower())

        raw = env.get(ENV_POOL_MAX_PER_BUCKET, "").strip()
        if raw:
            settings = replace(
                settings,
                pool_max_per_bucket=_positive_int(ENV_POOL_MAX_PER_BUCKET, raw),
            )
        return settings

    def override(
        self,
        *,
        max_buffer_size: Optional[int] = None,
        executor: Optional[str] = None,
    ) -> "ConvolutionSettings":
        """Return a copy with the given non-None values replaced."""
        out = self
        if max_buffer_size is not None:
            if int(max_buffer_size) <= 0:
                raise ConvolutionConfigError(
                    f"max_buffer_size must be positive, got {max_buffer_size}"
                )
            out = replace(out, max_buffer_size=int(max_buffer_size))
        if executor is not None:
            out = replace(out, executor=executor)
        return out


@lru_cache(maxsize=1)
def get_settings() -> ConvolutionSettings:
    """Return the process-wide settings read from the environment (cached)."""
    return ConvolutionSettings.from_env()


def reset_settings_cache() -> None:
    """Forget cached settings so the next `get_settings()` re-reads the environment."""
    get_settings.cache_clear()
