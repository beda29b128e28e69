import unittest

from fem_dof.dofmngr.field_pattern import (
    BasisFieldPattern,
    GeometricAggFieldPattern,
    patterns_equal,
)
from fem_dof.mesh.cell_topology import CellTopology

TRI = CellTopology.from_name("triangle")
QUAD = CellTopology.from_name("quadrilateral")
HEX = CellTopology.from_name("hexahedron")


class TestCellTopology(unittest.TestCase):

    def test_sub_cell_counts(self):
        self.assertEqual([TRI.sub_cell_count(d) for d in range(3)], [3, 3, 1])
        self.assertEqual([HEX.sub_cell_count(d) for d in range(4)], [8, 12, 6, 1])
        tet = CellTopology.from_name("Tetrahedron 4")
        self.assertEqual([tet.sub_cell_count(d) for d in range(4)], [4, 6, 4, 1])

    def test_sub_cell_vertices(self):
        self.assertEqual(QUAD.sub_cell_vertices(1, 3), (3, 0))
        self.assertEqual(QUAD.sub_cell_vertices(2, 0), (0, 1, 2, 3))
        self.assertEqual(HEX.sub_cell_vertices(2, 5), (4, 5, 6, 7))
        with self.assertRaises(IndexError):
            TRI.sub_cell_vertices(1, 3)

    def test_lookup(self):
        self.assertIs(CellTopology.from_gmsh_type(3), QUAD)
        with self.assertRaises(ValueError):
            CellTopology.from_gmsh_type(15)
        with self.assertRaises(ValueError):
            CellTopology.from_name("prism")


class TestBasisFieldPattern(unittest.TestCase):

    def test_nodal(self):
        p = BasisFieldPattern.nodal(TRI)
        self.assertEqual(p.num_basis(), 3)
        self.assertEqual(p.sub_cell_indices(0, 2), [2])
        self.assertEqual(p.sub_cell_indices(1, 0), [])

    def test_lagrange2(self):
        self.assertEqual(BasisFieldPattern.lagrange2(TRI).num_basis(), 6)
        self.assertEqual(BasisFieldPattern.lagrange2(QUAD).num_basis(), 9)
        self.assertEqual(BasisFieldPattern.lagrange2(HEX).num_basis(), 27)

    def test_basis_index_order(self):
        """Vertices come first, then edges, then the interior."""
        p = BasisFieldPattern.lagrange2(QUAD)
        self.assertEqual(p.sub_cell_indices(1, 0), [4])
        self.assertEqual(p.sub_cell_indices(2, 0), [8])

    def test_multiple_dofs(self):
        p = BasisFieldPattern.cell(TRI, 3)
        self.assertEqual(p.sub_cell_indices(2, 0), [0, 1, 2])
        p = BasisFieldPattern(QUAD, {0: 2})
        self.assertEqual(p.sub_cell_indices(0, 1), [2, 3])

    def test_invalid_dimension(self):
        with self.assertRaises(ValueError):
            BasisFieldPattern(TRI, {3: 1})

    def test_patterns_equal(self):
        self.assertTrue(patterns_equal(BasisFieldPattern.nodal(TRI), BasisFieldPattern(TRI, {0: 1})))
        self.assertFalse(patterns_equal(BasisFieldPattern.nodal(TRI), BasisFieldPattern.edge(TRI)))
        self.assertFalse(patterns_equal(BasisFieldPattern.nodal(TRI), BasisFieldPattern.nodal(QUAD)))


class TestGeometricAggFieldPattern(unittest.TestCase):

    def test_union_of_sub_cells(self):
        geom = GeometricAggFieldPattern(
            TRI, [BasisFieldPattern.nodal(TRI), BasisFieldPattern.edge(TRI)]
        )
        self.assertEqual(
            geom.sub_cells(), [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]
        )
        self.assertEqual(geom.num_basis(), 6)
        self.assertEqual(geom.geometric_index(1, 1), 4)
        self.assertEqual(geom.geometric_index(2, 0), -1)
        self.assertEqual(geom.sub_cell_indices(2, 0), [])

    def test_one_slot_per_sub_cell(self):
        geom = GeometricAggFieldPattern(
            QUAD, [BasisFieldPattern(QUAD, {0: 2}), BasisFieldPattern.nodal(QUAD)]
        )
        self.assertEqual(geom.num_basis(), 4)

    def test_empty(self):
        self.assertEqual(GeometricAggFieldPattern(QUAD).sub_cells(), [])

    def test_topology_mismatch(self):
        with self.assertRaises(ValueError):
            GeometricAggFieldPattern(QUAD, [BasisFieldPattern.nodal(TRI)])


if __name__ == "__main__":
    unittest.main()
