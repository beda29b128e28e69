import os
import unittest

import numpy as np

from fem_dof.mesh.cell_topology import CellTopology
from fem_dof.mesh.core_mesh import CoreMesh
from tests.common_meshes import make_test_mesh

try:
    import gmsh  # noqa: F401

    HAVE_GMSH = True
except (ImportError, OSError):
    HAVE_GMSH = False


class TestStructuredMeshes(unittest.TestCase):

    def test_quad_mesh(self):
        """A 2x2 quad mesh has 9 nodes, 4 cells and a single block."""
        mesh = CoreMesh.create_structured_quad_mesh(2, 2)
        self.assertEqual(mesh.dimension, 2)
        self.assertEqual(mesh.num_nodes, 9)
        self.assertEqual(mesh.num_cells, 4)
        self.assertEqual(mesh.node_coords.shape, (9, 3))
        self.assertEqual(mesh.cell_connectivity[0], [0, 1, 4, 3])
        self.assertEqual(mesh.block_ids, [0])
        self.assertEqual(mesh.cell_topology(0).name, "quadrilateral")

    def test_split_blocks(self):
        mesh = CoreMesh.create_structured_quad_mesh(4, 2, split_blocks=True)
        self.assertEqual(mesh.block_ids, [0, 1])
        np.testing.assert_array_equal(mesh.get_block_cells(0), [0, 1, 4, 5])
        np.testing.assert_array_equal(mesh.get_block_cells(1), [2, 3, 6, 7])
        self.assertEqual(mesh.block_names, {0: "block_0", 1: "block_1"})

    def test_tri_mesh(self):
        mesh = CoreMesh.create_structured_tri_mesh(2, 2)
        self.assertEqual(mesh.num_nodes, 9)
        self.assertEqual(mesh.num_cells, 8)
        self.assertEqual(mesh.cell_connectivity[:2], [[0, 1, 4], [0, 4, 3]])

    def test_hex_mesh(self):
        mesh = CoreMesh.create_structured_hex_mesh(2, 1, 1)
        self.assertEqual(mesh.dimension, 3)
        self.assertEqual(mesh.num_nodes, 12)
        self.assertEqual(mesh.num_cells, 2)
        self.assertEqual(mesh.cell_topology(1), CellTopology.from_name("hexahedron"))

    def test_interval_mesh(self):
        mesh = CoreMesh.create_interval_mesh(4, split_blocks=True)
        self.assertEqual(mesh.dimension, 1)
        self.assertEqual(mesh.node_coords.shape, (5, 3))
        np.testing.assert_array_equal(mesh.cell_block_ids, [0, 0, 1, 1])


class TestCoreMesh(unittest.TestCase):

    def setUp(self):
        self.output_dir = "results/coremesh"
        os.makedirs(self.output_dir, exist_ok=True)
        self.mesh = CoreMesh.create_structured_quad_mesh(2, 2)

    def test_extract_neighbors(self):
        """Test the neighbor extraction functionality."""
        self.mesh.analyze_mesh()
        self.assertEqual(self.mesh.cell_neighbors.shape, (4, 4))
        np.testing.assert_array_equal(self.mesh.cell_neighbors[0], [-1, 1, 2, -1])
        np.testing.assert_array_equal(self.mesh.cell_neighbors[3], [1, -1, -1, 2])

    def test_hex_neighbors(self):
        mesh = CoreMesh.create_structured_hex_mesh(2, 1, 1)
        mesh.analyze_mesh()
        self.assertEqual(mesh.cell_neighbors[0, 1], 1)
        self.assertEqual(mesh.cell_neighbors[1, 3], 0)
        self.assertEqual(int(np.sum(mesh.cell_neighbors != -1)), 2)

    def test_compute_centroids(self):
        """Test the cell centroid computation."""
        self.mesh.analyze_mesh()
        self.assertEqual(self.mesh.cell_centroids.shape, (4, 3))
        np.testing.assert_allclose(self.mesh.cell_centroids[0], [0.5, 0.5, 0.0])
        np.testing.assert_allclose(self.mesh.cell_centroids[3], [1.5, 1.5, 0.0])

    def test_analyze_empty_mesh(self):
        with self.assertRaises(RuntimeError):
            CoreMesh().analyze_mesh()

    def test_from_cells_validation(self):
        coords = np.zeros((3, 2))
        with self.assertRaises(ValueError):
            CoreMesh.from_cells(coords, [[0, 1]], "triangle")
        with self.assertRaises(ValueError):
            CoreMesh.from_cells(coords, [[0, 1, 2]], "pyramid")
        with self.assertRaises(ValueError):
            CoreMesh.from_cells(coords, [[0, 1, 2]], "triangle", cell_block_ids=[0, 1])

    def test_plot(self):
        filepath = os.path.join(self.output_dir, "quad_blocks.png")
        self.mesh.plot(filepath, show_cells=True)
        self.assertTrue(os.path.exists(filepath))

    def test_plot_3d_is_skipped(self):
        filepath = os.path.join(self.output_dir, "hex_not_plotted.png")
        if os.path.exists(filepath):
            os.remove(filepath)
        CoreMesh.create_structured_hex_mesh(1, 1, 1).plot(filepath)
        self.assertFalse(os.path.exists(filepath))


@unittest.skipUnless(HAVE_GMSH, "gmsh is not available")
class TestReadGmsh(unittest.TestCase):

    def test_read_gmsh(self):
        """Physical surfaces become element blocks."""
        mesh = make_test_mesh()
        self.assertEqual(mesh.dimension, 2)
        self.assertEqual(mesh.num_nodes, 6)
        self.assertEqual(mesh.num_cells, 2)
        self.assertEqual(mesh.block_ids, [1, 2])
        self.assertEqual(mesh.block_names, {1: "left", 2: "right"})
        self.assertEqual(mesh.cell_topology(0).name, "quadrilateral")
        self.assertEqual(mesh.cell_neighbors.shape[0], 2)
        self.assertTrue(np.any(mesh.cell_neighbors != -1))


if __name__ == "__main__":
    unittest.main()
