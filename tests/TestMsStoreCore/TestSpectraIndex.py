import unittest
import numpy as np
import torch

from msstore.core.SpectraIndex import SpectraIndex, resolve_positions
from msstore.core.errors import IndexRangeError, StoreCompatibilityError


class DummyStore:
    """Minimal store exposing what the index layer looks at."""

    def __init__(self, n, kind="sql", peak_format="packed", variables=("spectrum_id", "ms_level", "peaks_count"), store_uuid=None, key=None):
        self.n = n
        self.kind = kind
        self.peak_format = peak_format
        self.variables = tuple(variables)
        self.store_uuid = store_uuid or f"uuid-{id(self)}"
        self.key = key if key is not None else object()

    def identifiers(self):
        return np.arange(1, self.n + 1, dtype=np.int64)

    def is_same(self, other):
        return other is self or (other.store_uuid == self.store_uuid and other.key is self.key)


class TestResolvePositions(unittest.TestCase):
    def test_none_is_all(self):
        self.assertListEqual(resolve_positions(None, 3).tolist(), [0, 1, 2])

    def test_slice(self):
        self.assertListEqual(resolve_positions(slice(1, None), 4).tolist(), [1, 2, 3])

    def test_int_and_tensor(self):
        self.assertListEqual(resolve_positions(2, 3).tolist(), [2])
        self.assertListEqual(resolve_positions(torch.tensor([2, 0]), 3).tolist(), [2, 0])

    def test_bool_mask(self):
        self.assertListEqual(resolve_positions(np.array([True, False, True]), 3).tolist(), [0, 2])
        with self.assertRaises(IndexRangeError):
            resolve_positions([True, False], 3)

    def test_out_of_range(self):
        with self.assertRaises(IndexRangeError):
            resolve_positions([0, 3], 3)
        # no negative wrap-around
        with self.assertRaises(IndexRangeError):
            resolve_positions([-1], 3)

    def test_index_range_error_is_index_error(self):
        with self.assertRaises(IndexError):
            resolve_positions([5], 3)

    def test_non_integer(self):
        with self.assertRaises(TypeError):
            resolve_positions([0.5], 3)

    def test_empty(self):
        self.assertEqual(resolve_positions([], 3).size, 0)


class TestSpectraIndex(unittest.TestCase):
    def setUp(self):
        self.store = DummyStore(4)
        self.index = SpectraIndex.from_store(self.store)

    def test_from_store(self):
        self.assertEqual(len(self.index), 4)
        self.assertListEqual(self.index.ids.tolist(), [1, 2, 3, 4])

    def test_subset_reorder_and_duplicate(self):
        sub = self.index.subset([3, 0, 3])
        self.assertListEqual(sub.ids.tolist(), [4, 1, 4])
        self.assertIs(sub.stores[0], self.store)

    def test_subset_composition(self):
        p = [3, 1, 2, 0]
        q = [0, 0, 3]
        composed = self.index.subset(p).subset(q)
        direct = self.index.subset([p[i] for i in q])
        self.assertListEqual(composed.ids.tolist(), direct.ids.tolist())

    def test_subset_out_of_range(self):
        with self.assertRaises(IndexRangeError):
            self.index.subset([4])

    def test_groups_single_store(self):
        groups = list(self.index.groups(np.array([2, 0])))
        self.assertEqual(len(groups), 1)
        store, where, ids = groups[0]
        self.assertIs(store, self.store)
        self.assertListEqual(where.tolist(), [0, 1])
        self.assertListEqual(ids.tolist(), [3, 1])

    def test_combine_same_store(self):
        combined = SpectraIndex.combine([self.index.subset([0]), self.index.subset([3, 1])])
        self.assertEqual(len(combined.stores), 1)
        self.assertListEqual(combined.ids.tolist(), [1, 4, 2])

    def test_combine_distinct_stores(self):
        other = DummyStore(2)
        combined = SpectraIndex.combine([self.index.subset([0, 1]), SpectraIndex.from_store(other)])
        self.assertEqual(len(combined), 4)
        self.assertEqual(len(combined.stores), 2)
        self.assertListEqual(combined.ids.tolist(), [1, 2, 1, 2])
        self.assertListEqual(combined.codes.tolist(), [0, 0, 1, 1])

        groups = {id(store): (where.tolist(), ids.tolist()) for store, where, ids in combined.groups()}
        self.assertEqual(groups[id(other)], ([2, 3], [1, 2]))

        # subset keeps store tags
        sub = combined.subset([3, 0])
        self.assertListEqual(sub.codes.tolist(), [1, 0])

    def test_combine_same_store_through_equal_handle(self):
        key = object()
        a = DummyStore(2, store_uuid="u1", key=key)
        b = DummyStore(2, store_uuid="u1", key=key)
        combined = SpectraIndex.combine([SpectraIndex.from_store(a), SpectraIndex.from_store(b)])
        self.assertEqual(len(combined.stores), 1)

    def test_combine_incompatible_format(self):
        other = DummyStore(2, peak_format="exploded")
        with self.assertRaises(StoreCompatibilityError):
            SpectraIndex.combine([self.index, SpectraIndex.from_store(other)])

    def test_combine_incompatible_kind(self):
        other = DummyStore(2, kind="memory", peak_format=None)
        with self.assertRaises(StoreCompatibilityError):
            SpectraIndex.combine([self.index, SpectraIndex.from_store(other)])

    def test_combine_incompatible_variables(self):
        other = DummyStore(2, variables=("spectrum_id", "rtime", "peaks_count"))
        with self.assertRaises(StoreCompatibilityError):
            SpectraIndex.combine([self.index, SpectraIndex.from_store(other)])

    def test_combine_ambiguous_identifier_space(self):
        # same physical store opened through two different handles
        a = DummyStore(2, store_uuid="u1")
        b = DummyStore(2, store_uuid="u1")
        with self.assertRaises(StoreCompatibilityError):
            SpectraIndex.combine([SpectraIndex.from_store(a), SpectraIndex.from_store(b)])

    def test_combine_empty(self):
        with self.assertRaises(ValueError):
            SpectraIndex.combine([])


if __name__ == "__main__":
    unittest.main()
