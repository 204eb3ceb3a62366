import os
import tempfile
import unittest
import numpy as np

from msstore.core.constants import Polarity
from msstore.io.constants import ErrorLogLevel
from msstore.io.msp import read_msp_spectra

DUMMY_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "dummy_files")


class TestReadMSP(unittest.TestCase):
    def setUp(self):
        # --- Dummy MSP file paths ---
        self.test_file = os.path.join(DUMMY_DIR, "store_dummy.msp")
        self.test_file_with_error = os.path.join(DUMMY_DIR, "store_dummy_with_error.msp")

    def test_read_msp_file(self):
        records = list(read_msp_spectra(self.test_file))
        # last record has no trailing blank line
        self.assertEqual(len(records), 3)
        self.assertEqual([r.extra["title"] for r in records], ["Compound A", "Compound B", "Compound C"])

        first = records[0]
        self.assertAlmostEqual(first.precursor_mz, 181.07)
        self.assertEqual(first.polarity, Polarity.POSITIVE)
        self.assertAlmostEqual(first.collision_energy, 20.0)
        self.assertEqual(first.extra["precursor_type"], "[M+H]+")
        self.assertNotIn("num_peaks", first.extra)
        # quoted annotation dropped
        np.testing.assert_allclose(first.mz, [60.1, 85.0, 120.3])
        np.testing.assert_allclose(first.intensity, [100.0, 50.0, 25.0])

    def test_second_record(self):
        second = list(read_msp_spectra(self.test_file))[1]
        self.assertEqual(second.polarity, Polarity.NEGATIVE)
        self.assertAlmostEqual(second.rtime, 192.0)
        self.assertEqual(second.ms_level, 3)
        np.testing.assert_allclose(second.mz, [100.0, 110.0])

    def test_defaults(self):
        third = list(read_msp_spectra(self.test_file))[2]
        self.assertEqual(third.ms_level, 2)
        self.assertEqual(third.polarity, Polarity.UNKNOWN)
        self.assertEqual(third.data_origin, "store_dummy.msp")

    def test_read_msp_file_with_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            error_log_file = os.path.join(tmpdir, "error_log.txt")
            with self.assertLogs("msstore.io.IOContext", level="WARNING"):
                records = list(read_msp_spectra(
                    self.test_file_with_error,
                    error_log_level=ErrorLogLevel.BASIC,
                    error_log_file=error_log_file,
                ))
            self.assertEqual([r.extra["title"] for r in records], ["Good", "Good again"])
            np.testing.assert_allclose(records[1].mz, [30.0, 40.0])

            with open(error_log_file, "r", encoding="utf-8") as f:
                content = f.read()
            self.assertIn("This line is broken", content)
            # BASIC omits the record body
            self.assertNotIn("Name: Bad", content)


if __name__ == "__main__":
    unittest.main()
