import os

import numpy as np

from fem_dof.mesh.core_mesh import CoreMesh

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")


def create_single_triangle_mesh():
    """
    Creates a mesh with one triangle.

    Returns:
        CoreMesh: The mesh (nodes 0, 1, 2).
    """
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
    return CoreMesh.from_cells(coords, [[0, 1, 2]], "triangle")


def create_two_triangle_fixture():
    """
    Provides two triangles sharing the edge (n1, n2).

    Returns:
        tuple: A tuple containing:
            - CoreMesh: The mesh. E0 = {n0, n1, n2}, E1 = {n1, n3, n2}.
            - np.ndarray: The partitioning array.
            - int: The number of partitions.
    """
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    mesh = CoreMesh.from_cells(coords, [[0, 1, 2], [1, 3, 2]], "triangle")

    # Partitioning (2 parts):
    # - Rank 0 owns E0
    # - Rank 1 owns E1
    parts = np.array([0, 1])
    n_parts = 2

    return mesh, parts, n_parts


def create_2x2_quad_mesh_fixture():
    """
    Provides a 2x2 quadrilateral mesh fixture for testing.

    Returns:
        tuple: A tuple containing:
            - CoreMesh: The 2x2 mesh.
            - np.ndarray: The partitioning array.
            - int: The number of partitions.
    """
    mesh = CoreMesh.create_structured_quad_mesh(2, 2)

    # Partitioning (2 parts):
    # - Rank 0 owns cells [0, 1]
    # - Rank 1 owns cells [2, 3]
    parts = np.array([0, 0, 1, 1])
    n_parts = 2

    return mesh, parts, n_parts


def create_3x3_quad_mesh_fixture():
    """
    Provides a 3x3 quadrilateral mesh with two element blocks.

    Returns:
        tuple: A tuple containing:
            - CoreMesh: The 3x3 mesh; column 0 is block 0, columns 1-2 block 1.
            - np.ndarray: The partitioning array.
            - int: The number of partitions.
    """
    mesh = CoreMesh.create_structured_quad_mesh(3, 3, split_blocks=True)

    # Partitioning (3 parts):
    # - Rank 0 owns cells [0, 1, 2]
    # - Rank 1 owns cells [3, 4, 5]
    # - Rank 2 owns cells [6, 7, 8]
    parts = np.array([0, 0, 0, 1, 1, 1, 2, 2, 2])
    n_parts = 3

    return mesh, parts, n_parts


def make_test_mesh():
    """Reads the two-block quadrilateral test mesh (requires gmsh)."""
    mesh = CoreMesh.from_gmsh(os.path.join(DATA_DIR, "two_block_quad.msh"))
    mesh.analyze_mesh()
    return mesh
