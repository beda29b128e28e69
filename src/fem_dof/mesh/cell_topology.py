# -*- coding: utf-8 -*-
"""
Reference-cell topologies.

A ``CellTopology`` lists the sub-cells of a reference element: its vertices
(dimension 0), edges (dimension 1), faces (dimension 2) and the cell itself
(its own dimension). Edges and faces are given as tuples of local vertex
indices in the usual reference numbering (edges of a quadrilateral run
around the boundary, faces of a tetrahedron are (0,1,3), (1,2,3), (0,3,2),
(0,2,1), and so on).
"""

from typing import Dict, Tuple

Sides = Tuple[Tuple[int, ...], ...]


class CellTopology:
    """
    The sub-cell structure of a reference element.

    Attributes:
        name (str): Topology name, e.g. 'triangle'.
        dimension (int): Spatial dimension of the cell.
        num_vertices (int): Number of vertices.
        edges (Sides): Local vertex pairs of the edges.
        faces (Sides): Local vertex tuples of the faces (3D cells only).
    """

    def __init__(
        self,
        name: str,
        dimension: int,
        num_vertices: int,
        edges: Sides = (),
        faces: Sides = (),
    ):
        self.name = name
        self.dimension = dimension
        self.num_vertices = num_vertices
        self.edges = edges
        self.faces = faces

    def sub_cell_count(self, dim: int) -> int:
        """Number of sub-cells of dimension ``dim``."""
        if dim == 0:
            return self.num_vertices
        if dim == self.dimension:
            return 1
        if dim == 1:
            return len(self.edges)
        if dim == 2:
            return len(self.faces)
        return 0

    def sub_cell_vertices(self, dim: int, sub_cell_id: int) -> Tuple[int, ...]:
        """Local vertices of one sub-cell."""
        if not 0 <= sub_cell_id < self.sub_cell_count(dim):
            raise IndexError(
                f"{self.name} has no sub-cell {sub_cell_id} of dimension {dim}."
            )
        if dim == 0:
            return (sub_cell_id,)
        if dim == self.dimension:
            return tuple(range(self.num_vertices))
        if dim == 1:
            return self.edges[sub_cell_id]
        return self.faces[sub_cell_id]

    def sides(self) -> Sides:
        """The (dimension - 1) sub-cells, used to find face neighbours."""
        if self.dimension == 1:
            return tuple((v,) for v in range(self.num_vertices))
        if self.dimension == 2:
            return self.edges
        return self.faces

    @classmethod
    def from_name(cls, name: str) -> "CellTopology":
        key = name.lower().split()[0]
        if key not in _TOPOLOGIES:
            raise ValueError(f"Unsupported cell topology '{name}'.")
        return _TOPOLOGIES[key]

    @classmethod
    def from_gmsh_type(cls, gmsh_type: int) -> "CellTopology":
        if gmsh_type not in _GMSH_TYPES:
            raise ValueError(f"Unsupported Gmsh element type {gmsh_type}.")
        return _TOPOLOGIES[_GMSH_TYPES[gmsh_type]]

    def __eq__(self, other) -> bool:
        return isinstance(other, CellTopology) and self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"CellTopology('{self.name}')"


LINE = CellTopology("line", 1, 2)
TRIANGLE = CellTopology("triangle", 2, 3, edges=((0, 1), (1, 2), (2, 0)))
QUADRILATERAL = CellTopology(
    "quadrilateral", 2, 4, edges=((0, 1), (1, 2), (2, 3), (3, 0))
)
TETRAHEDRON = CellTopology(
    "tetrahedron",
    3,
    4,
    edges=((0, 1), (1, 2), (2, 0), (0, 3), (1, 3), (2, 3)),
    faces=((0, 1, 3), (1, 2, 3), (0, 3, 2), (0, 2, 1)),
)
HEXAHEDRON = CellTopology(
    "hexahedron",
    3,
    8,
    edges=(
        (0, 1), (1, 2), (2, 3), (3, 0),
        (4, 5), (5, 6), (6, 7), (7, 4),
        (0, 4), (1, 5), (2, 6), (3, 7),
    ),
    faces=(
        (0, 1, 5, 4),
        (1, 2, 6, 5),
        (2, 3, 7, 6),
        (0, 4, 7, 3),
        (0, 3, 2, 1),
        (4, 5, 6, 7),
    ),
)

_TOPOLOGIES: Dict[str, CellTopology] = {
    t.name: t for t in (LINE, TRIANGLE, QUADRILATERAL, TETRAHEDRON, HEXAHEDRON)
}

# Gmsh element type codes of the first-order elements.
_GMSH_TYPES: Dict[int, str] = {
    1: "line",
    2: "triangle",
    3: "quadrilateral",
    4: "tetrahedron",
    5: "hexahedron",
}
