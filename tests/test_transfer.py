import unittest

import numpy as np

from fem_dof.linalg.comm import SerialComm, run_collective
from fem_dof.linalg.index_map import IndexMap
from fem_dof.linalg.transfer import Export, Import

# rank 0 owns [0, 1, 2] and sees ghost 3; rank 1 owns [3, 4] and sees ghost 2
OWNED = [[0, 1, 2], [3, 4]]
OVERLAP = [[0, 1, 2, 3], [3, 4, 2]]


def build_maps(comm):
    owned = IndexMap(comm, OWNED[comm.rank])
    overlap = IndexMap(comm, OVERLAP[comm.rank])
    return owned, overlap


class TestImport(unittest.TestCase):

    def test_plan(self):
        def plan(comm):
            owned, overlap = build_maps(comm)
            importer = Import(owned, overlap)
            return importer.num_same_ids, importer.send_map, importer.recv_map

        (same0, send0, recv0), (same1, send1, recv1) = run_collective(plan, 2)
        self.assertEqual((same0, same1), (3, 2))
        np.testing.assert_array_equal(send0[1], [2])
        np.testing.assert_array_equal(recv1[0], [2])
        np.testing.assert_array_equal(send1[0], [0])
        np.testing.assert_array_equal(recv0[1], [3])

    def test_apply(self):
        def apply(comm):
            owned, overlap = build_maps(comm)
            values = owned.gids * 10.0
            return Import(owned, overlap).apply(values)

        result = run_collective(apply, 2)
        np.testing.assert_array_equal(result[0], [0.0, 10.0, 20.0, 30.0])
        np.testing.assert_array_equal(result[1], [30.0, 40.0, 20.0])

    def test_apply_2d_values(self):
        def apply(comm):
            owned, overlap = build_maps(comm)
            values = np.stack([owned.gids, -owned.gids], axis=1)
            return Import(owned, overlap).apply(values)

        result = run_collective(apply, 2)
        np.testing.assert_array_equal(result[1], [[3, -3], [4, -4], [2, -2]])

    def test_missing_gid(self):
        comm = SerialComm()
        with self.assertRaises(ValueError):
            Import(IndexMap(comm, [0, 1]), IndexMap(comm, [0, 5]))

    def test_wrong_length(self):
        comm = SerialComm()
        imap = IndexMap(comm, [0, 1])
        with self.assertRaises(ValueError):
            Import(imap, imap).apply(np.zeros(3))


class TestExport(unittest.TestCase):

    def test_add(self):
        def apply(comm):
            owned, overlap = build_maps(comm)
            return Export(overlap, owned).apply(np.ones(overlap.num_my_elements))

        result = run_collective(apply, 2)
        np.testing.assert_array_equal(result[0], [1.0, 1.0, 2.0])
        np.testing.assert_array_equal(result[1], [2.0, 1.0])

    def test_insert(self):
        def apply(comm):
            owned, overlap = build_maps(comm)
            exporter = Export(overlap, owned)
            initial = np.full(owned.num_my_elements, -1.0)
            return exporter.apply(overlap.gids * 10.0, initial, mode="insert"), initial

        (r0, init0), (r1, _) = run_collective(apply, 2)
        np.testing.assert_array_equal(r0, [0.0, 10.0, 20.0])
        np.testing.assert_array_equal(r1, [30.0, 40.0])
        np.testing.assert_array_equal(init0, [-1.0, -1.0, -1.0])

    def test_permuted_source(self):
        comm = SerialComm()
        exporter = Export(IndexMap(comm, [2, 0, 1]), IndexMap(comm, [0, 1, 2]))
        self.assertEqual(exporter.num_same_ids, 0)
        np.testing.assert_array_equal(exporter.apply(np.array([20, 0, 10])), [0, 10, 20])

    def test_invalid_mode(self):
        comm = SerialComm()
        imap = IndexMap(comm, [0])
        with self.assertRaises(ValueError):
            Export(imap, imap).apply(np.zeros(1), mode="max")

    def test_missing_gid(self):
        comm = SerialComm()
        with self.assertRaises(ValueError):
            Export(IndexMap(comm, [0, 3]), IndexMap(comm, [0, 1]))


if __name__ == "__main__":
    unittest.main()
