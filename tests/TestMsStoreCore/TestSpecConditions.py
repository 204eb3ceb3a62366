import unittest
import numpy as np

from msstore import (
    DataOriginCondition,
    MemoryStore,
    MsLevelCondition,
    PolarityCondition,
    Polarity,
    PrecursorMzRangeCondition,
    RtRangeCondition,
    Spectra,
    SpectrumInput,
)


class TestSpecConditions(unittest.TestCase):
    def setUp(self):
        records = [
            SpectrumInput(mz=[100.0], intensity=[1.0], ms_level=1, rtime=10.0, polarity=1, data_origin="a.mgf"),
            SpectrumInput(mz=[100.0], intensity=[1.0], ms_level=2, rtime=20.0, precursor_mz=300.0, polarity=1, data_origin="a.mgf"),
            SpectrumInput(mz=[100.0], intensity=[1.0], ms_level=2, rtime=30.0, precursor_mz=400.0, polarity=0, data_origin="b.mgf"),
            SpectrumInput(mz=[100.0], intensity=[1.0], ms_level=1, rtime=40.0, data_origin="b.mgf"),
        ]
        self.sps = Spectra.from_store(MemoryStore.from_spectra(records))

    def ids(self, spectra):
        return spectra["spectrum_id"].tolist()

    def test_ms_level(self):
        self.assertListEqual(self.ids(self.sps.filter(MsLevelCondition(2))), [2, 3])
        self.assertListEqual(self.ids(self.sps.filter(MsLevelCondition([1, 2]))), [1, 2, 3, 4])

    def test_rt_range(self):
        self.assertListEqual(self.ids(self.sps.filter(RtRangeCondition(15, 30))), [2, 3])
        self.assertListEqual(self.ids(self.sps.filter(RtRangeCondition(low=35))), [4])
        self.assertListEqual(self.ids(self.sps.filter(RtRangeCondition(high=10))), [1])

    def test_precursor_missing_never_matches(self):
        self.assertListEqual(self.ids(self.sps.filter(PrecursorMzRangeCondition())), [2, 3])
        self.assertListEqual(self.ids(self.sps.filter(PrecursorMzRangeCondition(350, 500))), [3])

    def test_invalid_range(self):
        with self.assertRaises(ValueError):
            RtRangeCondition(30, 10)

    def test_data_origin(self):
        self.assertListEqual(self.ids(self.sps.filter(DataOriginCondition("b.mgf"))), [3, 4])

    def test_polarity(self):
        self.assertListEqual(self.ids(self.sps.filter(PolarityCondition(Polarity.POSITIVE))), [1, 2])
        self.assertListEqual(self.ids(self.sps.filter(PolarityCondition([0, -1]))), [3, 4])

    def test_combinators(self):
        cond = MsLevelCondition(2) & RtRangeCondition(25, 100)
        self.assertListEqual(self.ids(self.sps.filter(cond)), [3])
        cond = MsLevelCondition(1) | PrecursorMzRangeCondition(250, 350)
        self.assertListEqual(self.ids(self.sps.filter(cond)), [1, 2, 4])
        self.assertListEqual(self.ids(self.sps.filter(~MsLevelCondition(1))), [2, 3])

    def test_filter_keeps_current_order(self):
        reordered = self.sps.subset([3, 2, 1, 0])
        self.assertListEqual(self.ids(reordered.filter(MsLevelCondition(2))), [3, 2])

    def test_evaluate_returns_mask(self):
        mask = MsLevelCondition(1).evaluate(self.sps)
        self.assertEqual(mask.dtype, np.bool_)
        self.assertListEqual(mask.tolist(), [True, False, False, True])


if __name__ == "__main__":
    unittest.main()
