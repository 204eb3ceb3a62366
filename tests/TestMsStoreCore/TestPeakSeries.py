import unittest
import numpy as np
import torch
from msstore.core.PeakSeries import PeakSeries


class TestPeakSeries(unittest.TestCase):

    def setUp(self):
        # Fixed test data: 4 spectra, variable sizes (4, 6, 3, 7) = 20 peaks
        self.data = torch.tensor([
            # Spectrum 1 (4 peaks)
            [101.0, 30.0],
            [105.0, 20.0],
            [107.0, 25.0],
            [110.0, 15.0],

            # Spectrum 2 (6 peaks)
            [205.0, 40.0],
            [208.0, 45.0],
            [210.0, 50.0],
            [212.0, 60.0],
            [215.0, 35.0],
            [218.0, 55.0],

            # Spectrum 3 (3 peaks)
            [301.0, 70.0],
            [310.0, 80.0],
            [315.0, 65.0],

            # Spectrum 4 (7 peaks)
            [402.0, 45.0],
            [405.0, 50.0],
            [408.0, 55.0],
            [412.0, 65.0],
            [415.0, 30.0],
            [418.0, 60.0],
            [420.0, 35.0],
        ], dtype=torch.float64)

        # Offsets
        self.offsets = torch.tensor([0, 4, 10, 13, 20], dtype=torch.int64)
        self.ps = PeakSeries(self.data, self.offsets)

    def test_len_and_counts(self):
        self.assertEqual(len(self.ps), 4)          # spectra count
        self.assertEqual(self.ps.n_all_peaks, 20)  # total peaks
        self.assertEqual(self.ps.n_peaks(0), 4)
        self.assertEqual(self.ps.n_peaks(1), 6)
        self.assertEqual(self.ps.n_peaks(2), 3)
        self.assertEqual(self.ps.n_peaks(3), 7)

    def test_getitem_int(self):
        mz, intensity = self.ps[2]  # spectrum 3
        np.testing.assert_allclose(mz, [301.0, 310.0, 315.0])
        np.testing.assert_allclose(intensity, [70.0, 80.0, 65.0])
        self.assertFalse(mz.flags.writeable)

    def test_getitem_slice(self):
        sub = self.ps[0:2]  # spectra 1+2
        self.assertIsInstance(sub, PeakSeries)
        self.assertEqual(len(sub), 2)
        self.assertEqual(sub.n_all_peaks, 10)

    def test_getitem_list_with_duplicates(self):
        sub = self.ps[[3, 1, 3]]
        self.assertEqual(len(sub), 3)
        self.assertEqual(sub.n_all_peaks, 7 + 6 + 7)
        self.assertListEqual(sub.offsets.tolist(), [0, 7, 13, 20])
        np.testing.assert_allclose(sub[1][0], self.ps[1][0])

    def test_mz_and_intensity_views(self):
        sub = self.ps[[2]]
        torch.testing.assert_close(sub.mz, torch.tensor([301.0, 310.0, 315.0], dtype=torch.float64))
        torch.testing.assert_close(sub.intensity, torch.tensor([70.0, 80.0, 65.0], dtype=torch.float64))

    def test_iter_returns_arrays(self):
        spectra = list(self.ps)
        self.assertEqual(len(spectra), 4)
        self.assertEqual(spectra[3][0].size, 7)

    def test_copy_is_independent(self):
        sub = self.ps[[1, 2]].copy()
        self.assertEqual(len(sub), 2)
        self.assertEqual(sub.n_stored_peaks, 9)
        self.assertEqual(self.ps.n_stored_peaks, 20)

    def test_from_arrays(self):
        ps = PeakSeries.from_arrays([
            (np.array([100.0, 200.0]), np.array([10.0, 20.0])),
            (np.array([]), np.array([])),
            (np.array([150.5]), np.array([5.0])),
        ])
        self.assertEqual(len(ps), 3)
        self.assertEqual(ps.n_all_peaks, 3)
        self.assertEqual(ps.n_peaks(1), 0)
        mz, intensity = ps[2]
        np.testing.assert_allclose(mz, [150.5])
        np.testing.assert_allclose(intensity, [5.0])

    def test_from_arrays_empty(self):
        ps = PeakSeries.from_arrays([])
        self.assertEqual(len(ps), 0)
        self.assertEqual(ps.n_all_peaks, 0)

    def test_index_out_of_range(self):
        with self.assertRaises(IndexError):
            self.ps.arrays(4)


if __name__ == "__main__":
    unittest.main()
