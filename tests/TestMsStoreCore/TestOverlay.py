import unittest
import numpy as np
import pandas as pd
import torch

from msstore.core.Overlay import Overlay
from msstore.core.errors import LengthMismatchError, ReadOnlyViolationError


class TestOverlay(unittest.TestCase):
    def setUp(self):
        self.overlay = Overlay(3)

    def test_write_and_get(self):
        self.overlay.write("rtime", [1.0, 2.0, 3.0])
        entry = self.overlay.get("rtime")
        self.assertFalse(entry.is_partial)
        np.testing.assert_array_equal(entry.values, [1.0, 2.0, 3.0])
        self.assertIn("rtime", self.overlay)
        self.assertListEqual(self.overlay.names, ["rtime"])

    def test_write_accepts_series_and_tensor(self):
        self.overlay.write("a", pd.Series([1, 2, 3]))
        self.overlay.write("b", torch.tensor([0.5, 1.5, 2.5]))
        np.testing.assert_array_equal(self.overlay.get("a").values, [1, 2, 3])
        np.testing.assert_allclose(self.overlay.get("b").values, [0.5, 1.5, 2.5])

    def test_write_copies_input(self):
        values = np.array([1.0, 2.0, 3.0])
        self.overlay.write("rtime", values)
        values[0] = 100.0
        self.assertEqual(self.overlay.get("rtime").values[0], 1.0)

    def test_ragged_values_kept_as_objects(self):
        self.overlay.write("tags", [["a"], ["b", "c"], []])
        values = self.overlay.get("tags").values
        self.assertEqual(values.dtype, object)
        self.assertListEqual(values[1], ["b", "c"])

    def test_length_mismatch(self):
        with self.assertRaises(LengthMismatchError):
            self.overlay.write("rtime", [1.0, 2.0])

    def test_scalar_rejected(self):
        with self.assertRaises(LengthMismatchError):
            self.overlay.write("rtime", 1.0)
        with self.assertRaises(LengthMismatchError):
            self.overlay.write("title", "abc")

    def test_reserved_names(self):
        for name in ("spectrum_id", "peaks_count", "mz", "intensity"):
            with self.assertRaises(ReadOnlyViolationError):
                self.overlay.write(name, [1, 2, 3])

    def test_read_only_violation_is_attribute_error(self):
        with self.assertRaises(AttributeError):
            self.overlay.write("mz", [1, 2, 3])

    def test_remove(self):
        self.overlay.write("rtime", [1.0, 2.0, 3.0])
        self.assertTrue(self.overlay.remove("rtime"))
        self.assertFalse(self.overlay.remove("rtime"))
        self.assertNotIn("rtime", self.overlay)

    def test_copy_is_independent(self):
        self.overlay.write("rtime", [1.0, 2.0, 3.0])
        other = self.overlay.copy()
        other.write("rtime", [4.0, 5.0, 6.0])
        np.testing.assert_array_equal(self.overlay.get("rtime").values, [1.0, 2.0, 3.0])

    def test_subset(self):
        self.overlay.write("rtime", [1.0, 2.0, 3.0])
        sub = self.overlay.subset(np.array([2, 2, 0]))
        self.assertEqual(len(sub), 3)
        np.testing.assert_array_equal(sub.get("rtime").values, [3.0, 3.0, 1.0])

    def test_concat_full(self):
        a = Overlay(2)
        a.write("rtime", [1.0, 2.0])
        b = Overlay(1)
        b.write("rtime", [3.0])
        merged = Overlay.concat([a, b])
        self.assertEqual(len(merged), 3)
        self.assertFalse(merged.get("rtime").is_partial)
        np.testing.assert_array_equal(merged.get("rtime").values, [1.0, 2.0, 3.0])

    def test_concat_mixed_numeric_dtypes(self):
        a = Overlay(3)
        a.write("score", [5, 6, 7])
        b = Overlay(3)
        b.write("score", [1.5, 2.5, 3.5])
        values = Overlay.concat([a, b]).get("score").values
        self.assertEqual(values.dtype, np.float64)
        np.testing.assert_array_equal(values, [5.0, 6.0, 7.0, 1.5, 2.5, 3.5])

    def test_concat_text_and_numbers_keep_objects(self):
        a = Overlay(1)
        a.write("label", ["x"])
        b = Overlay(1)
        b.write("label", [1])
        values = Overlay.concat([a, b]).get("label").values
        self.assertEqual(values.dtype, object)
        self.assertListEqual(values.tolist(), ["x", 1])

    def test_concat_partial(self):
        a = Overlay(2)
        b = Overlay(2)
        b.write("rtime", [3.0, 4.0])
        merged = Overlay.concat([a, b])
        entry = merged.get("rtime")
        self.assertTrue(entry.is_partial)
        self.assertListEqual(entry.mask.tolist(), [False, False, True, True])
        self.assertListEqual(list(entry.values[2:]), [3.0, 4.0])

        # masks follow positions through a subset
        sub = merged.subset(np.array([3, 0]))
        self.assertListEqual(sub.get("rtime").mask.tolist(), [True, False])


if __name__ == "__main__":
    unittest.main()
