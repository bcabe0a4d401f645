import unittest

from bandconv.domain import (
    ConvolutionConfigError,
    ConvolutionGeometry,
    ExplicitPadding,
    SamePadding,
    decompose_index,
    flatten_index,
    padding_from_legacy,
    resolve_output_dims,
)


class TestResolveOutputDims(unittest.TestCase):
    def test_same_mode_keeps_spatial_size(self):
        self.assertEqual(resolve_output_dims([8, 8, 1], [3, 3, 1]), (8, 8, 1))
        self.assertEqual(
            resolve_output_dims([8, 8, 1], [3, 3, 1], SamePadding()), (8, 8, 1)
        )

    def test_explicit_padding_band_and_spatial_axes(self):
        # band axis 21 / 7 = 3, spatial axes 1 + 8 - 3 + 0 = 6
        self.assertEqual(
            resolve_output_dims([8, 8, 7], [3, 3, 21], ExplicitPadding(0, 0)),
            (6, 6, 3),
        )

    def test_explicit_padding_per_axis(self):
        self.assertEqual(
            resolve_output_dims([6, 5, 2], [3, 2, 4], ExplicitPadding(x=1, y=0)),
            (5, 4, 2),
        )
        # y left in same mode
        self.assertEqual(
            resolve_output_dims([6, 5, 2], [3, 2, 4], ExplicitPadding(x=0, y=None)),
            (4, 5, 2),
        )

    def test_is_deterministic(self):
        a = resolve_output_dims([10, 7, 3], [5, 3, 12], ExplicitPadding(2, 1))
        b = resolve_output_dims([10, 7, 3], [5, 3, 12], ExplicitPadding(2, 1))
        self.assertEqual(a, b)
        self.assertEqual(a, (8, 6, 4))

    def test_rejects_wrong_length_triples(self):
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([8, 8], [3, 3, 1])
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([8, 8, 1], [3, 3, 1, 1])

    def test_rejects_non_positive_entries(self):
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([8, 0, 1], [3, 3, 1])
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([8, 8, 1], [3, -3, 1])

    def test_rejects_non_positive_derived_size(self):
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([2, 2, 1], [5, 5, 1], ExplicitPadding(0, 0))
        # fewer filter bands than input bands
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims([4, 4, 3], [3, 3, 2])

    def test_rejects_non_integer_entries(self):
        with self.assertRaises(ConvolutionConfigError):
            resolve_output_dims(["a", 4, 1], [3, 3, 1])


class TestPaddingFromLegacy(unittest.TestCase):
    def test_both_none_is_same_padding(self):
        self.assertEqual(padding_from_legacy(None, None), SamePadding())

    def test_values_become_explicit(self):
        self.assertEqual(padding_from_legacy(0, 0), ExplicitPadding(0, 0))
        self.assertEqual(padding_from_legacy(2, None), ExplicitPadding(2, None))


class TestConvolutionGeometry(unittest.TestCase):
    def test_same_mode_offset_is_centered(self):
        g = ConvolutionGeometry.resolve([3, 3, 1], [3, 3, 1])
        self.assertEqual(g.kernel_offset, (1, 1))

        g = ConvolutionGeometry.resolve([9, 9, 1], [5, 3, 1])
        self.assertEqual(g.offset_x, 2)
        self.assertEqual(g.offset_y, 1)

        g = ConvolutionGeometry.resolve([4, 4, 1], [2, 2, 1])
        self.assertEqual(g.kernel_offset, (0, 0))

    def test_explicit_offset_is_padding_value(self):
        g = ConvolutionGeometry.resolve([8, 8, 1], [3, 3, 1], ExplicitPadding(x=2, y=1))
        self.assertEqual(g.kernel_offset, (1, 2))
        self.assertEqual(g.output_dims, (8, 7, 1))

    def test_lengths(self):
        g = ConvolutionGeometry.resolve([8, 8, 7], [3, 3, 21], ExplicitPadding(0, 0))
        self.assertEqual(g.input_length, 448)
        self.assertEqual(g.filter_length, 189)
        self.assertEqual(g.output_length, 108)

    def test_decompose_tap(self):
        g = ConvolutionGeometry.resolve([5, 5, 2], [3, 3, 4])
        k = 2 + 3 * (1 + 3 * 2)
        self.assertEqual(g.decompose_tap(k), (2, 1, 2))
        self.assertEqual(g.decompose_tap(0), (0, 0, 0))
        self.assertEqual(g.decompose_tap(g.filter_length - 1), (2, 2, 3))

    def test_tap_bands(self):
        g = ConvolutionGeometry.resolve([5, 5, 2], [3, 3, 6])
        self.assertEqual(g.output_dims[2], 3)
        self.assertEqual(g.tap_bands(0), (0, 0))
        self.assertEqual(g.tap_bands(4), (1, 1))
        self.assertEqual(g.tap_bands(5), (1, 2))

    def test_tap_bands_past_last_input_band(self):
        # 7 // 2 = 3 output bands; band 6 would read input band 2 of 2
        g = ConvolutionGeometry.resolve([5, 5, 2], [3, 3, 7])
        self.assertIsNone(g.tap_bands(6))

    def test_str(self):
        g = ConvolutionGeometry.resolve([8, 8, 7], [3, 3, 21], ExplicitPadding(0, 0))
        self.assertEqual(str(g), "[8, 8, 7] x [3, 3, 21] => [6, 6, 3]")


class TestIndexing(unittest.TestCase):
    def test_flatten_matches_row_major_layout(self):
        dims = (4, 3, 2)
        self.assertEqual(flatten_index(0, 0, 0, 0, dims), 0)
        self.assertEqual(flatten_index(1, 0, 0, 0, dims), 1)
        self.assertEqual(flatten_index(0, 1, 0, 0, dims), 4)
        self.assertEqual(flatten_index(0, 0, 1, 0, dims), 12)
        self.assertEqual(flatten_index(0, 0, 0, 1, dims), 24)

    def test_decompose_inverts_flatten(self):
        dims = (4, 3, 2)
        for coords in [(3, 2, 1, 0), (1, 1, 0, 5), (0, 2, 1, 2)]:
            i = flatten_index(*coords, dims)
            batch, band, y, x = decompose_index(i, dims)
            self.assertEqual((x, y, band, batch), coords)


if __name__ == "__main__":
    unittest.main()
