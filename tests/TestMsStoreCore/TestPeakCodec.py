import struct
import unittest
import numpy as np

from msstore.core.PeakCodec import PackedPeakCodec, ExplodedPeakCodec, get_codec, prepare_peaks
from msstore.core.constants import PeakFormat
from msstore.core.errors import DataCorruptionError


class TestPreparePeaks(unittest.TestCase):
    def test_sorts_by_mz(self):
        mz, intensity = prepare_peaks([200.0, 100.0, 150.0], [2.0, 1.0, 1.5])
        np.testing.assert_allclose(mz, [100.0, 150.0, 200.0])
        np.testing.assert_allclose(intensity, [1.0, 1.5, 2.0])

    def test_rejects_length_mismatch(self):
        with self.assertRaises(ValueError):
            prepare_peaks([100.0, 200.0], [1.0])

    def test_rejects_negative_intensity(self):
        with self.assertRaises(ValueError):
            prepare_peaks([100.0], [-1.0])


class TestPackedPeakCodec(unittest.TestCase):
    def setUp(self):
        self.mz = np.array([100.0, 200.0, 300.25])
        self.intensity = np.array([10.0, 20.0, 0.5])

    def test_roundtrip_float64(self):
        codec = PackedPeakCodec("float64")
        payload = codec.encode(self.mz, self.intensity)
        self.assertEqual(len(payload), 9 + 3 * 16)
        mz, intensity = codec.decode(payload, peaks_count=3)
        np.testing.assert_array_equal(mz, self.mz)
        np.testing.assert_array_equal(intensity, self.intensity)
        self.assertEqual(mz.dtype, np.float64)

    def test_roundtrip_float32(self):
        codec = PackedPeakCodec("float32")
        payload = codec.encode(self.mz, self.intensity)
        self.assertEqual(len(payload), 9 + 3 * 12)
        mz, intensity = codec.decode(payload)
        np.testing.assert_array_equal(mz, self.mz)
        self.assertEqual(intensity.dtype, np.float32)
        np.testing.assert_allclose(intensity, self.intensity)

    def test_empty_spectrum(self):
        codec = PackedPeakCodec()
        mz, intensity = codec.decode(codec.encode(np.array([]), np.array([])), peaks_count=0)
        self.assertEqual(mz.size, 0)
        self.assertEqual(intensity.size, 0)

    def test_decoded_arrays_are_read_only(self):
        codec = PackedPeakCodec()
        mz, intensity = codec.decode(codec.encode(self.mz, self.intensity))
        with self.assertRaises(ValueError):
            mz[0] = 1.0
        with self.assertRaises(ValueError):
            intensity[0] = 1.0

    def test_truncated_payload(self):
        # header declares 3 peaks, body holds 2
        codec = PackedPeakCodec()
        payload = struct.pack("<QB", 3, 8) + np.array([1.0, 2.0]).tobytes() + np.array([1.0, 2.0]).tobytes()
        with self.assertRaises(DataCorruptionError):
            codec.decode(payload)

    def test_short_header(self):
        with self.assertRaises(DataCorruptionError):
            PackedPeakCodec().decode(b"\x01\x02")

    def test_peaks_count_disagreement(self):
        codec = PackedPeakCodec()
        payload = codec.encode(self.mz, self.intensity)
        with self.assertRaises(DataCorruptionError):
            codec.decode(payload, peaks_count=2)

    def test_item_size_disagreement(self):
        payload = PackedPeakCodec("float32").encode(self.mz, self.intensity)
        with self.assertRaises(DataCorruptionError):
            PackedPeakCodec("float64").decode(payload)

    def test_corruption_is_value_error(self):
        with self.assertRaises(ValueError):
            PackedPeakCodec().decode(None)


class TestExplodedPeakCodec(unittest.TestCase):
    def setUp(self):
        self.codec = ExplodedPeakCodec()

    def test_encode_is_noop(self):
        self.assertIsNone(self.codec.encode(np.array([1.0]), np.array([1.0])))

    def test_rows(self):
        rows = list(self.codec.rows(7, np.array([100.0, 200.0]), np.array([1.0, 2.0])))
        self.assertEqual(rows, [(7, 0, 100.0, 1.0), (7, 1, 200.0, 2.0)])

    def test_decode_orders_by_peak_index(self):
        mz, intensity = self.codec.decode([2, 0, 1], [300.0, 100.0, 200.0], [3.0, 1.0, 2.0], peaks_count=3)
        np.testing.assert_array_equal(mz, [100.0, 200.0, 300.0])
        np.testing.assert_array_equal(intensity, [1.0, 2.0, 3.0])

    def test_decode_gap(self):
        with self.assertRaises(DataCorruptionError):
            self.codec.decode([0, 2], [100.0, 300.0], [1.0, 3.0])

    def test_decode_repeat(self):
        with self.assertRaises(DataCorruptionError):
            self.codec.decode([0, 0], [100.0, 100.0], [1.0, 1.0])

    def test_decode_count_disagreement(self):
        with self.assertRaises(DataCorruptionError):
            self.codec.decode([0, 1], [100.0, 200.0], [1.0, 2.0], peaks_count=3)

    def test_decode_empty(self):
        mz, intensity = self.codec.decode([], [], [], peaks_count=0)
        self.assertEqual(mz.size, 0)
        self.assertEqual(intensity.size, 0)

    def test_decode_many(self):
        decoded = self.codec.decode_many(
            [2, 1, 2, 1],
            [1, 0, 0, 1],
            [250.0, 100.0, 200.0, 150.0],
            [5.0, 1.0, 4.0, 2.0],
            peaks_counts={1: 2, 2: 2, 3: 0},
        )
        self.assertEqual(sorted(decoded), [1, 2, 3])
        np.testing.assert_array_equal(decoded[1][0], [100.0, 150.0])
        np.testing.assert_array_equal(decoded[2][1], [4.0, 5.0])
        self.assertEqual(decoded[3][0].size, 0)

    def test_decode_many_missing_rows(self):
        with self.assertRaises(DataCorruptionError):
            self.codec.decode_many([], [], [], [], peaks_counts={1: 2})


class TestGetCodec(unittest.TestCase):
    def test_select(self):
        self.assertIsInstance(get_codec(PeakFormat.PACKED), PackedPeakCodec)
        self.assertIsInstance(get_codec("exploded", "float32"), ExplodedPeakCodec)

    def test_unknown(self):
        with self.assertRaises(ValueError):
            get_codec("columnar")


if __name__ == "__main__":
    unittest.main()
