# -*- coding: utf-8 -*-
"""
Core data structures for unstructured finite element meshes.

This module defines the `CoreMesh` class, which stores the global mesh a set
of DOF managers is built over: node coordinates, cell-to-node connectivity,
cell types and the element block each cell belongs to.

Key Features:
- Reading mesh data from Gmsh .msh files, with top-dimensional physical
  groups as element blocks.
- Structured interval, quadrilateral, triangle and hexahedral meshes for
  tests and examples.
- Face-neighbour extraction for graph partitioning.
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .cell_topology import CellTopology


class CoreMesh:
    """
    Represents an unstructured mesh with element blocks.

    Attributes:
        dimension (int): The dimension of the mesh (1, 2 or 3).
        num_nodes (int): The total number of nodes in the mesh.
        num_cells (int): The total number of cells (elements) in the mesh.
        node_coords (np.ndarray): An array of shape (N, 3) storing the x, y, z
            coordinates of each node.
        cell_connectivity (List[List[int]]): A list where each inner list contains
            the node indices forming a cell, in reference vertex order.
        cell_type_ids (np.ndarray): An integer type ID for each cell.
        cell_type_map (Dict[int, Dict[str, Any]]): Maps cell type IDs to their
            properties ('name', 'num_nodes', 'topology').
        cell_block_ids (np.ndarray): The element block ID of each cell.
        block_names (Dict[int, str]): Human readable element block names.
        cell_neighbors (np.ndarray): For each cell and side, the neighbouring
            cell index, or -1 on the boundary.
        cell_centroids (np.ndarray): The centroid of each cell.
    """

    def __init__(self) -> None:
        """Initializes an empty mesh."""
        self.dimension: int = 0
        self.num_nodes: int = 0
        self.num_cells: int = 0
        self._is_analyzed: bool = False

        self.node_coords: np.ndarray = np.array([])
        self.cell_connectivity: List[List[int]] = []
        self.cell_type_ids: np.ndarray = np.array([], dtype=int)
        self.cell_type_map: Dict[int, Dict[str, Any]] = {}
        self.cell_block_ids: np.ndarray = np.array([], dtype=int)
        self.block_names: Dict[int, str] = {}

        self.cell_neighbors: np.ndarray = np.array([])
        self.cell_centroids: np.ndarray = np.array([])

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_cells(
        cls,
        node_coords: np.ndarray,
        cell_connectivity: List[List[int]],
        topology: str,
        cell_block_ids: Optional[np.ndarray] = None,
        block_names: Optional[Dict[int, str]] = None,
    ) -> "CoreMesh":
        """
        Creates a single-topology mesh from raw arrays.

        Args:
            node_coords: Node coordinates, shape (N, d) with d <= 3.
            cell_connectivity: Node indices of every cell.
            topology: Name of the cell topology, e.g. 'triangle'.
            cell_block_ids: Element block of each cell; all 0 when omitted.
            block_names: Optional names of the element blocks.
        """
        topo = CellTopology.from_name(topology)
        coords = np.asarray(node_coords, dtype=float)
        if coords.ndim == 1:
            coords = coords.reshape(-1, 1)
        if coords.shape[1] < 3:
            coords = np.hstack([coords, np.zeros((coords.shape[0], 3 - coords.shape[1]))])

        for conn in cell_connectivity:
            if len(conn) != topo.num_vertices:
                raise ValueError(
                    f"A {topo.name} cell needs {topo.num_vertices} nodes, got {len(conn)}."
                )

        mesh = cls()
        mesh.dimension = topo.dimension
        mesh.node_coords = coords
        mesh.num_nodes = coords.shape[0]
        mesh.cell_connectivity = [[int(n) for n in conn] for conn in cell_connectivity]
        mesh.num_cells = len(mesh.cell_connectivity)
        mesh.cell_type_map = {
            0: {"name": topo.name, "num_nodes": topo.num_vertices, "topology": topo}
        }
        mesh.cell_type_ids = np.zeros(mesh.num_cells, dtype=int)
        if cell_block_ids is None:
            mesh.cell_block_ids = np.zeros(mesh.num_cells, dtype=int)
        else:
            mesh.cell_block_ids = np.asarray(cell_block_ids, dtype=int)
            if mesh.cell_block_ids.shape[0] != mesh.num_cells:
                raise ValueError("cell_block_ids must have one entry per cell.")
        mesh.block_names = dict(block_names or {})
        for b in np.unique(mesh.cell_block_ids).tolist():
            mesh.block_names.setdefault(b, f"block_{b}")
        return mesh

    @classmethod
    def from_gmsh(cls, msh_file: str, gmsh_verbose: int = 0) -> "CoreMesh":
        """Creates a mesh from a Gmsh .msh file."""
        mesh = cls()
        mesh.read_gmsh(msh_file, gmsh_verbose)
        return mesh

    @classmethod
    def create_interval_mesh(cls, n: int, split_blocks: bool = False) -> "CoreMesh":
        """
        Creates a mesh of ``n`` line cells on [0, n].

        With ``split_blocks`` the left half of the cells forms block 0 and the
        right half block 1.
        """
        coords = np.arange(n + 1, dtype=float)
        conn = [[i, i + 1] for i in range(n)]
        blocks = [0 if (not split_blocks or i < n // 2) else 1 for i in range(n)]
        return cls.from_cells(coords, conn, "line", np.array(blocks, dtype=int))

    @classmethod
    def create_structured_quad_mesh(
        cls, nx: int, ny: int, split_blocks: bool = False
    ) -> "CoreMesh":
        """
        Creates a structured quadrilateral mesh of size nx x ny.

        Nodes are numbered row by row, cells likewise. With ``split_blocks``
        the cells in columns ``i < nx // 2`` form block 0 and the rest block 1.

        Args:
            nx (int): Number of cells in the x-direction.
            ny (int): Number of cells in the y-direction.
            split_blocks (bool): Whether to create two element blocks.
        """
        coords, node_id = cls._grid_nodes(nx, ny)
        conn, blocks = [], []
        for j in range(ny):
            for i in range(nx):
                conn.append(
                    [node_id(i, j), node_id(i + 1, j), node_id(i + 1, j + 1), node_id(i, j + 1)]
                )
                blocks.append(1 if split_blocks and i >= nx // 2 else 0)
        return cls.from_cells(coords, conn, "quadrilateral", np.array(blocks, dtype=int))

    @classmethod
    def create_structured_tri_mesh(
        cls, nx: int, ny: int, split_blocks: bool = False
    ) -> "CoreMesh":
        """
        Creates a structured triangle mesh: every grid square is cut along its
        diagonal into two counter-clockwise triangles.
        """
        coords, node_id = cls._grid_nodes(nx, ny)
        conn, blocks = [], []
        for j in range(ny):
            for i in range(nx):
                n0, n1 = node_id(i, j), node_id(i + 1, j)
                n2, n3 = node_id(i + 1, j + 1), node_id(i, j + 1)
                conn.extend([[n0, n1, n2], [n0, n2, n3]])
                block = 1 if split_blocks and i >= nx // 2 else 0
                blocks.extend([block, block])
        return cls.from_cells(coords, conn, "triangle", np.array(blocks, dtype=int))

    @classmethod
    def create_structured_hex_mesh(cls, nx: int, ny: int, nz: int) -> "CoreMesh":
        """Creates a structured hexahedral mesh of size nx x ny x nz."""
        nnx, nny = nx + 1, ny + 1

        def node_id(i: int, j: int, k: int) -> int:
            return k * nnx * nny + j * nnx + i

        coords = [
            [float(i), float(j), float(k)]
            for k in range(nz + 1)
            for j in range(nny)
            for i in range(nnx)
        ]
        conn = []
        for k in range(nz):
            for j in range(ny):
                for i in range(nx):
                    bottom = [
                        node_id(i, j, k),
                        node_id(i + 1, j, k),
                        node_id(i + 1, j + 1, k),
                        node_id(i, j + 1, k),
                    ]
                    conn.append(bottom + [n + nnx * nny for n in bottom])
        return cls.from_cells(np.array(coords), conn, "hexahedron")

    @staticmethod
    def _grid_nodes(nx: int, ny: int):
        nnx = nx + 1
        coords = np.array(
            [[float(i), float(j), 0.0] for j in range(ny + 1) for i in range(nnx)]
        )

        def node_id(i: int, j: int) -> int:
            return j * nnx + i

        return coords, node_id

    # =========================================================================
    # Gmsh input
    # =========================================================================

    def read_gmsh(self, msh_file: str, gmsh_verbose: int = 0) -> None:
        """
        Reads mesh data from a Gmsh .msh file.

        Cells are the elements of the highest dimension present. Physical
        groups of that dimension become element blocks (block ID = physical
        tag); cells outside every physical group are put in block 0.

        Args:
            msh_file (str): The path to the .msh file.
            gmsh_verbose (int): The verbosity level for the Gmsh API.
        """
        import gmsh

        gmsh.initialize()
        gmsh.option.setNumber("General.Verbosity", gmsh_verbose)
        try:
            gmsh.open(msh_file)
            tag_to_index = self._read_nodes(gmsh)
            elem_to_cell = self._read_elements(gmsh, tag_to_index)
            self._read_element_blocks(gmsh, elem_to_cell)
        finally:
            gmsh.finalize()

    def _read_nodes(self, gmsh) -> Dict[int, int]:
        """Reads node coordinates and returns the node tag-to-index mapping."""
        raw_tags, raw_coords, _ = gmsh.model.mesh.getNodes()
        self.node_coords = np.array(raw_coords).reshape(-1, 3)
        self.num_nodes = self.node_coords.shape[0]
        return {int(t): i for i, t in enumerate(raw_tags)}

    def _read_elements(self, gmsh, tag_to_index: Dict[int, int]) -> Dict[int, int]:
        """Reads the top-dimensional cells; returns the element tag-to-cell mapping."""
        elem_types, _, _ = gmsh.model.mesh.getElements()
        self.dimension = max(
            (int(gmsh.model.mesh.getElementProperties(int(et))[1]) for et in elem_types),
            default=0,
        )

        elem_types, elem_tags, node_tags = gmsh.model.mesh.getElements(self.dimension)
        all_conn: List[List[int]] = []
        all_type_ids: List[int] = []
        elem_to_cell: Dict[int, int] = {}
        for type_id, (et, tags, nodes) in enumerate(zip(elem_types, elem_tags, node_tags)):
            props = gmsh.model.mesh.getElementProperties(int(et))
            try:
                topo = CellTopology.from_gmsh_type(int(et))
            except ValueError as e:
                raise ValueError(f"Cannot use Gmsh element '{props[0]}': {e}") from e

            self.cell_type_map[type_id] = {
                "name": props[0],
                "num_nodes": int(props[3]),
                "topology": topo,
            }
            raw_conn = np.array(nodes, dtype=np.int64).reshape(-1, int(props[3]))
            try:
                mapped = [[tag_to_index[int(t)] for t in row] for row in raw_conn]
            except KeyError as e:
                raise RuntimeError(
                    f"Mesh data inconsistency: Node tag {e} of a cell was not found "
                    "in the global node list. This may indicate a corrupt mesh file."
                ) from e
            start = len(all_conn)
            for k, tag in enumerate(tags):
                elem_to_cell[int(tag)] = start + k
            all_conn.extend(mapped)
            all_type_ids.extend([type_id] * len(mapped))

        self.cell_connectivity = all_conn
        self.cell_type_ids = np.array(all_type_ids, dtype=int)
        self.num_cells = len(all_conn)
        return elem_to_cell

    def _read_element_blocks(self, gmsh, elem_to_cell: Dict[int, int]) -> None:
        """Assigns cells to element blocks from physical groups of the mesh dimension."""
        self.cell_block_ids = np.zeros(self.num_cells, dtype=int)
        self.block_names = {}
        assigned = np.zeros(self.num_cells, dtype=bool)

        for dim, tag in gmsh.model.getPhysicalGroups(self.dimension):
            name = gmsh.model.getPhysicalName(dim, tag) or f"block_{tag}"
            self.block_names[tag] = name
            for ent in gmsh.model.getEntitiesForPhysicalGroup(dim, tag):
                _, elem_tags, _ = gmsh.model.mesh.getElements(dim, ent)
                for tags in elem_tags:
                    for t in tags:
                        ci = elem_to_cell[int(t)]
                        if assigned[ci] and self.cell_block_ids[ci] != tag:
                            raise ValueError(
                                f"Cell {ci} is assigned to multiple physical groups: "
                                f"{self.cell_block_ids[ci]} and {tag}. Each cell can "
                                "only belong to one element block."
                            )
                        self.cell_block_ids[ci] = tag
                        assigned[ci] = True

        if not np.all(assigned):
            self.block_names.setdefault(0, "block_0")

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def block_ids(self) -> List[int]:
        """Sorted element block IDs present in the mesh."""
        return sorted(int(b) for b in np.unique(self.cell_block_ids))

    def get_block_cells(self, block_id: int) -> npt.NDArray[np.int_]:
        """Global indices of the cells in one element block."""
        return np.flatnonzero(self.cell_block_ids == block_id)

    def cell_topology(self, cell: int) -> CellTopology:
        return self.cell_type_map[int(self.cell_type_ids[cell])]["topology"]

    def analyze_mesh(self) -> None:
        """
        Computes derived mesh properties like centroids and neighbors.

        This method sets the `_is_analyzed` flag to True after completion.
        """
        if self.num_cells == 0:
            raise RuntimeError("No cells found. Read a mesh first.")
        if self._is_analyzed:
            return
        self._compute_centroids()
        self._extract_cell_neighbors()
        self._is_analyzed = True

    def _compute_centroids(self) -> None:
        """Computes the centroid of each cell."""
        self.cell_centroids = np.array(
            [np.mean(self.node_coords[c], axis=0) for c in self.cell_connectivity]
        )

    def _extract_cell_neighbors(self) -> None:
        """Extracts cell-to-cell neighbours across shared sides."""
        cell_sides: List[List[Tuple[int, ...]]] = []
        for ci, conn in enumerate(self.cell_connectivity):
            sides = self.cell_topology(ci).sides()
            cell_sides.append([tuple(sorted(conn[v] for v in side)) for side in sides])

        max_sides = max(len(s) for s in cell_sides)
        neighbors = -np.ones((self.num_cells, max_sides), dtype=int)
        side_map: Dict[Tuple[int, ...], List[int]] = {}
        for ci, sides in enumerate(cell_sides):
            for key in sides:
                side_map.setdefault(key, []).append(ci)

        for ci, sides in enumerate(cell_sides):
            for si, key in enumerate(sides):
                elems = side_map[key]
                if len(elems) == 2:
                    neighbors[ci, si] = elems[0] if elems[1] == ci else elems[1]

        self.cell_neighbors = neighbors

    def plot(
        self,
        filepath: str = "mesh_plot.png",
        parts: Optional[np.ndarray] = None,
        show_cells: bool = False,
    ) -> None:
        """
        Plots the mesh and saves it to a file.

        Args:
            filepath (str): The path to save the plot image.
            parts (np.ndarray, optional): An array mapping each cell to a
                partition ID for coloring. Defaults to the element blocks.
            show_cells (bool): Whether to write cell indices.
        """
        if self.dimension != 2:
            print("Plotting is currently supported only for 2D meshes.")
            return

        import matplotlib.pyplot as plt
        from matplotlib.collections import PolyCollection

        colors = self.cell_block_ids if parts is None else np.asarray(parts)
        polygons = [self.node_coords[c, :2] for c in self.cell_connectivity]

        fig, ax = plt.subplots(figsize=(10, 8))
        collection = PolyCollection(
            polygons, array=colors, cmap="tab20", edgecolor="k", alpha=0.7, lw=0.5
        )
        ax.add_collection(collection)
        if show_cells:
            for ci, poly in enumerate(polygons):
                cx, cy = poly.mean(axis=0)
                ax.text(cx, cy, str(ci), ha="center", va="center", fontsize=6)
        ax.autoscale_view()
        ax.set_aspect("equal")
        ax.set_title("Mesh Plot")
        plt.savefig(filepath, dpi=150, bbox_inches="tight")
        plt.close(fig)
        print(f"Mesh plot saved to: {filepath}")
