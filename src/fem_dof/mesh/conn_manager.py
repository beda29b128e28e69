# -*- coding: utf-8 -*-
"""
Mesh connectivity providers for DOF managers.

A connectivity provider tells a DOF manager which elements a rank holds,
which element block each belongs to, and which mesh entities (vertices,
edges, faces, cell interiors) make up each element. Entities are named by
global keys that every rank derives identically, so two ranks sharing an
entity agree that it is the same one:

- vertex:         ``(0, (node,))``
- edge / face:    ``(dim, sorted global node tuple)``
- cell interior:  ``(mesh dimension, (global cell,))``

Classes:
    ConnManager: The interface DOF managers consume.
    MeshConnManager: The provider for the cells one rank owns in a CoreMesh.

Functions:
    create_conn_managers: Partitions a mesh and creates one provider per rank.
"""

import logging
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .cell_topology import CellTopology
from .core_mesh import CoreMesh
from .partition import partition_mesh, print_partition_summary

logger = logging.getLogger(__name__)

EntityKey = Tuple[int, Tuple[int, ...]]


class ConnManager:
    """
    Interface of a mesh connectivity provider.

    Local element IDs run from 0 to ``num_elements - 1``. Subclasses must
    implement every method below.
    """

    @property
    def num_elements(self) -> int:
        raise NotImplementedError("Subclasses must implement this method.")

    def get_element_block_ids(self) -> List[int]:
        """Element block IDs, identical on every rank."""
        raise NotImplementedError("Subclasses must implement this method.")

    def get_element_block(self, block_id: int) -> Sequence[int]:
        """Local IDs of this rank's elements in one block."""
        raise NotImplementedError("Subclasses must implement this method.")

    def get_block_id(self, local_elmt_id: int) -> int:
        raise NotImplementedError("Subclasses must implement this method.")

    def get_block_topology(self, block_id: int) -> CellTopology:
        raise NotImplementedError("Subclasses must implement this method.")

    def build_connectivity(self, geom_patterns: Mapping[int, object]) -> None:
        """
        Prepares the entity lists of every element.

        Args:
            geom_patterns: Per block, a geometric pattern whose ``sub_cells()``
                lists the ``(dim, sub_cell_id)`` pairs that carry DOFs.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    def get_connectivity(self, local_elmt_id: int) -> Sequence[Hashable]:
        """Global entity keys of one element, in its geometric pattern's order."""
        raise NotImplementedError("Subclasses must implement this method.")

    def get_connectivity_size(self, local_elmt_id: int) -> int:
        return len(self.get_connectivity(local_elmt_id))


class MeshConnManager(ConnManager):
    """
    Connectivity of the cells one rank owns in a global CoreMesh.

    Local element IDs follow ascending global cell index.

    Attributes:
        mesh (CoreMesh): The global mesh.
        rank (int): The rank whose cells this provider exposes.
        l2g_cells (np.ndarray): Map from local element ID to global cell index.
        g2l_cells (Dict[int, int]): Map from global cell index to local element ID.
    """

    def __init__(self, mesh: CoreMesh, parts: Optional[np.ndarray] = None, rank: int = 0):
        self.mesh = mesh
        self.rank = rank
        if parts is None:
            parts = np.zeros(mesh.num_cells, dtype=int)
        parts = np.asarray(parts, dtype=int)
        if parts.shape[0] != mesh.num_cells:
            raise ValueError("parts must have one entry per cell of the mesh.")

        self.l2g_cells: npt.NDArray[np.int_] = np.flatnonzero(parts == rank)
        self.g2l_cells: Dict[int, int] = {
            int(g): l for l, g in enumerate(self.l2g_cells)
        }
        local_blocks = mesh.cell_block_ids[self.l2g_cells]
        self._block_ids = mesh.block_ids
        self._blocks: Dict[int, npt.NDArray[np.int_]] = {
            b: np.flatnonzero(local_blocks == b) for b in self._block_ids
        }
        self._block_topology = self._find_block_topologies()
        self._connectivity: List[List[EntityKey]] = [[] for _ in range(self.num_elements)]

    def _find_block_topologies(self) -> Dict[int, CellTopology]:
        topologies: Dict[int, CellTopology] = {}
        for b in self._block_ids:
            cells = self.mesh.get_block_cells(b)
            topos = {self.mesh.cell_topology(c) for c in cells}
            if len(topos) > 1:
                raise ValueError(
                    f"Element block {b} mixes cell topologies {sorted(t.name for t in topos)}."
                )
            if topos:
                topologies[b] = topos.pop()
        return topologies

    @property
    def num_elements(self) -> int:
        return int(self.l2g_cells.size)

    def get_element_block_ids(self) -> List[int]:
        return list(self._block_ids)

    def get_element_block(self, block_id: int) -> npt.NDArray[np.int_]:
        return self._blocks.get(block_id, np.array([], dtype=int))

    def get_block_id(self, local_elmt_id: int) -> int:
        return int(self.mesh.cell_block_ids[self.l2g_cells[local_elmt_id]])

    def get_block_topology(self, block_id: int) -> CellTopology:
        return self._block_topology[block_id]

    def entity_key(self, local_elmt_id: int, dim: int, sub_cell_id: int) -> EntityKey:
        """Global key of one sub-cell of a local element."""
        g_cell = int(self.l2g_cells[local_elmt_id])
        topo = self.mesh.cell_topology(g_cell)
        if dim == topo.dimension:
            return (dim, (g_cell,))
        conn = self.mesh.cell_connectivity[g_cell]
        nodes = topo.sub_cell_vertices(dim, sub_cell_id)
        return (dim, tuple(sorted(int(conn[v]) for v in nodes)))

    def build_connectivity(self, geom_patterns: Mapping[int, object]) -> None:
        self._connectivity = [[] for _ in range(self.num_elements)]
        for block_id, pattern in geom_patterns.items():
            sub_cells = pattern.sub_cells()
            for elmt in self.get_element_block(block_id):
                self._connectivity[elmt] = [
                    self.entity_key(int(elmt), dim, sc) for dim, sc in sub_cells
                ]
        logger.debug(
            "Rank %d: connectivity built for %d elements in %d blocks",
            self.rank,
            self.num_elements,
            len(geom_patterns),
        )

    def get_connectivity(self, local_elmt_id: int) -> List[EntityKey]:
        return self._connectivity[local_elmt_id]

    def __repr__(self) -> str:
        return f"MeshConnManager(rank={self.rank}, elements={self.num_elements})"


def create_conn_managers(
    global_mesh: CoreMesh,
    n_parts: Optional[int] = None,
    parts: Optional[np.ndarray] = None,
    partition_method: str = "metis",
) -> List[MeshConnManager]:
    """
    Partitions a global mesh and creates a connectivity provider per rank.

    Args:
        global_mesh: The complete, unpartitioned mesh.
        n_parts: The desired number of partitions. Required if `parts` is
            not provided.
        parts: An optional array with the partition ID of each cell. If
            provided, `n_parts` is inferred.
        partition_method: The algorithm for partitioning ('metis' or 'hierarchical').

    Returns:
        A list of MeshConnManager objects, indexed by rank.
    """
    if parts is None:
        if n_parts is None or n_parts <= 0:
            raise ValueError("n_parts > 0 or a valid parts array must be provided.")
        parts = partition_mesh(global_mesh, n_parts, method=partition_method)
        print_partition_summary(parts, global_mesh)
    else:
        parts = np.asarray(parts, dtype=int)
        n_parts = int(np.max(parts) + 1) if parts.size > 0 else 0

    return [MeshConnManager(global_mesh, parts, rank) for rank in range(n_parts)]
