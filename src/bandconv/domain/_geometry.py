"""
Geometry resolution for 3-band batched convolutions.

This module owns the index-space contract shared by every convolution
executor: how dimension triples are validated, how output dimensions are
derived from input and filter dimensions, how padding turns into a
coordinate offset, and how flat buffer indices map to `(x, y, band, batch)`
coordinates and back.

Layout
------
Every tensor is a flat float64 buffer addressed row-major with `x` fastest,
then `y`, then `band`, then `batch`:

    flat = x + X * (y + Y * (band + B * batch))

so a chunk of `n` items viewed as a NumPy array has shape `(n, B, Y, X)`.

Filters
-------
A filter is a flat buffer of length `f0 * f1 * f2` with the same x/y/band
ordering. Its band extent `f2` encodes `input_bands * output_bands`: tap band
`k2` feeds output band `k2 % output_bands` from input band
`k2 // output_bands`.

Padding
-------
Padding is a tagged variant:

- `SamePadding()` keeps the spatial size of the input and centers the
  filter (offset `(f - 1) // 2`).
- `ExplicitPadding(x, y)` shrinks the output to `1 + input - filter + padding`
  on each configured axis and uses the padding value itself as the offset.
  An axis left as `None` stays in same mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from ._errors import ConvolutionConfigError

Dims = Tuple[int, int, int]


@dataclass(frozen=True)
class SamePadding:
    """Same-size output with a centered filter on both spatial axes."""

    def axis(self, index: int) -> Optional[int]:
        return None


@dataclass(frozen=True)
class ExplicitPadding:
    """
    Explicit padding for the spatial axes.

    Attributes
    ----------
    x : Optional[int]
        Padding of the width axis, or None to keep that axis in same mode.
    y : Optional[int]
        Padding of the height axis, or None to keep that axis in same mode.
    """

    x: Optional[int] = 0
    y: Optional[int] = 0

    def axis(self, index: int) -> Optional[int]:
        if index == 0:
            return self.x
        if index == 1:
            return self.y
        return None


Padding = Union[SamePadding, ExplicitPadding]


def padding_from_legacy(
    padding_x: Optional[int] = None, padding_y: Optional[int] = None
) -> Padding:
    """
    Build a `Padding` variant from nullable per-axis padding values.

    Both values None selects `SamePadding`; otherwise an `ExplicitPadding`
    carrying the given values is returned.
    """
    if padding_x is None and padding_y is None:
        return SamePadding()
    return ExplicitPadding(x=padding_x, y=padding_y)


def _as_dims(name: str, dims: Sequence[int]) -> Dims:
    try:
        values = tuple(int(d) for d in dims)
    except (TypeError, ValueError) as e:
        raise ConvolutionConfigError(
            f"{name} must be a sequence of 3 integers, got {dims!r}"
        ) from e
    if len(values) != 3:
        raise ConvolutionConfigError(
            f"{name} must have exactly 3 entries, got {list(values)}"
        )
    if any(v <= 0 for v in values):
        raise ConvolutionConfigError(
            f"{name} entries must be positive, got {list(values)}"
        )
    return values  # type: ignore[return-value]


def resolve_output_dims(
    input_dims: Sequence[int],
    filter_dims: Sequence[int],
    padding: Optional[Padding] = None,
) -> Dims:
    """
    Derive output dimensions from input dimensions, filter dimensions and padding.

    Parameters
    ----------
    input_dims : Sequence[int]
        Input triple `[x, y, bands]`.
    filter_dims : Sequence[int]
        Filter triple `[x, y, input_bands * output_bands]`.
    padding : Optional[Padding]
        Padding variant. None is treated as `SamePadding()`.

    Returns
    -------
    tuple[int, int, int]
        Output triple. The band axis is `filter_bands // input_bands`; a
        spatial axis is the input size in same mode, otherwise
        `1 + input - filter + padding`.

    Raises
    ------
    ConvolutionConfigError
        If a triple is malformed or any derived axis is non-positive.
    """
    in_dims = _as_dims("input_dims", input_dims)
    f_dims = _as_dims("filter_dims", filter_dims)
    if padding is None:
        padding = SamePadding()

    out = []
    for i in range(3):
        pad = padding.axis(i)
        if i == 2:
            size = f_dims[i] // in_dims[i]
        elif pad is None:
            size = in_dims[i]
        else:
            size = 1 + in_dims[i] - f_dims[i] + int(pad)
        if size <= 0:
            raise ConvolutionConfigError(
                f"Output axis {i} resolves to non-positive size {size} "
                f"(input={list(in_dims)}, filter={list(f_dims)}, padding={padding})"
            )
        out.append(size)
    return out[0], out[1], out[2]


def flatten_index(x: int, y: int, band: int, batch: int, dims: Dims) -> int:
    """Map `(x, y, band, batch)` to a flat index against `dims`."""
    return x + dims[0] * (y + dims[1] * (band + dims[2] * batch))


def decompose_index(index: int, dims: Dims) -> Tuple[int, int, int, int]:
    """
    Map a flat index back to `(batch, band, y, x)` against `dims`.

    This is the inverse of `flatten_index` for non-negative indices.
    """
    s0 = dims[0]
    s1 = s0 * dims[1]
    s2 = s1 * dims[2]
    return index // s2, index % s2 // s1, index % s1 // s0, index % s0


@dataclass(frozen=True)
class ConvolutionGeometry:
    """
    Resolved, immutable geometry of one convolution configuration.

    Instances are created with `ConvolutionGeometry.resolve(...)`, which
    validates the dimension triples and derives `output_dims` once.

    Attributes
    ----------
    input_dims, filter_dims, output_dims : tuple[int, int, int]
        Dimension triples of the three buffer roles.
    padding : Padding
        The padding variant the geometry was resolved with.
    """

    input_dims: Dims
    filter_dims: Dims
    output_dims: Dims
    padding: Padding

    @classmethod
    def resolve(
        cls,
        input_dims: Sequence[int],
        filter_dims: Sequence[int],
        padding: Optional[Padding] = None,
    ) -> "ConvolutionGeometry":
        if padding is None:
            padding = SamePadding()
        output_dims = resolve_output_dims(input_dims, filter_dims, padding)
        return cls(
            input_dims=_as_dims("input_dims", input_dims),
            filter_dims=_as_dims("filter_dims", filter_dims),
            output_dims=output_dims,
            padding=padding,
        )

    @property
    def offset_x(self) -> int:
        pad = self.padding.axis(0)
        return (self.filter_dims[0] - 1) // 2 if pad is None else int(pad)

    @property
    def offset_y(self) -> int:
        pad = self.padding.axis(1)
        return (self.filter_dims[1] - 1) // 2 if pad is None else int(pad)

    @property
    def kernel_offset(self) -> Tuple[int, int]:
        """The `(offset_y, offset_x)` pair applied between output and input."""
        return self.offset_y, self.offset_x

    @property
    def input_length(self) -> int:
        d = self.input_dims
        return d[0] * d[1] * d[2]

    @property
    def output_length(self) -> int:
        d = self.output_dims
        return d[0] * d[1] * d[2]

    @property
    def filter_length(self) -> int:
        d = self.filter_dims
        return d[0] * d[1] * d[2]

    def decompose_tap(self, k: int) -> Tuple[int, int, int]:
        """
        Split a flat tap index into `(k0, k1, k2)`.

        The band coordinate is `k // (f0 * f1)`. Taps are always below
        `filter_length`, so no modulus against the band extent is needed;
        all executors share this one decomposition.
        """
        f0 = self.filter_dims[0]
        f01 = f0 * self.filter_dims[1]
        return k % f0, k % f01 // f0, k // f01

    def tap_bands(self, k2: int) -> Optional[Tuple[int, int]]:
        """
        Return `(input_band, output_band)` fed by tap band `k2`, or None.

        None is returned when `k2` points past the last input band, which can
        happen when the filter band extent is not an exact multiple of the
        input band count.
        """
        out_bands = self.output_dims[2]
        i2 = k2 // out_bands
        if i2 >= self.input_dims[2]:
            return None
        return i2, k2 % out_bands

    def __str__(self) -> str:
        return (
            f"{list(self.input_dims)} x {list(self.filter_dims)} "
            f"=> {list(self.output_dims)}"
        )
