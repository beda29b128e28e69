import unittest

import numpy as np

from fem_dof.linalg.comm import SerialComm, run_collective
from fem_dof.linalg.index_map import IndexMap


class TestIndexMap(unittest.TestCase):

    def test_serial(self):
        imap = IndexMap(SerialComm(), [4, 7, 5])
        self.assertEqual(len(imap), 3)
        self.assertEqual(imap.num_global_elements, 3)
        self.assertFalse(imap.is_linear)
        self.assertEqual(imap.lid(7), 1)
        self.assertEqual(imap.lid(6), -1)
        self.assertEqual(imap.gid(2), 5)
        self.assertTrue(imap.my_gid(4))
        np.testing.assert_array_equal(imap.lids([5, 4, 9]), [2, 0, -1])
        self.assertEqual((imap.min_all_gid, imap.max_all_gid), (4, 7))

    def test_duplicate_gids(self):
        with self.assertRaises(ValueError):
            IndexMap(SerialComm(), [0, 1, 1])

    def test_empty(self):
        imap = IndexMap(SerialComm(), [])
        self.assertTrue(imap.is_linear)
        self.assertEqual(imap.num_global_elements, 0)
        ranks, lids = imap.remote_index_list([0])
        np.testing.assert_array_equal(ranks, [-1])

    def test_linear_map(self):
        def build(comm):
            gids = [[0, 1, 2], [3, 4]][comm.rank]
            imap = IndexMap(comm, gids)
            return imap.is_linear, imap.num_global_elements, imap.remote_index_list([4, 0, 7])

        for linear, n_global, (ranks, lids) in run_collective(build, 2):
            self.assertTrue(linear)
            self.assertEqual(n_global, 5)
            np.testing.assert_array_equal(ranks, [1, 0, -1])
            np.testing.assert_array_equal(lids, [1, 0, -1])

    def test_overlapping_map(self):
        """A GID stored on two ranks is reported on the lowest one."""

        def build(comm):
            gids = [[0, 1, 2], [3, 4, 2]][comm.rank]
            imap = IndexMap(comm, gids)
            return imap, imap.remote_index_list([2, 4])

        for imap, (ranks, lids) in run_collective(build, 2):
            self.assertFalse(imap.is_linear)
            self.assertEqual(imap.num_global_elements, 6)
            self.assertEqual((imap.min_all_gid, imap.max_all_gid), (0, 4))
            np.testing.assert_array_equal(ranks, [0, 1])
            np.testing.assert_array_equal(lids, [2, 1])


if __name__ == "__main__":
    unittest.main()
