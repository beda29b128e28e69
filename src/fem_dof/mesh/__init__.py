# -*- coding: utf-8 -*-
"""
Meshes and the connectivity a DOF manager reads from them.

Key modules:
- cell_topology: Reference cells and their sub-cells.
- core_mesh:     Nodes, cells and element blocks of a global mesh.
- partition:     Functions for partitioning a global mesh.
- conn_manager:  Per-rank element connectivity in terms of global entities.
"""

from .cell_topology import CellTopology
from .core_mesh import CoreMesh
from .partition import partition_mesh, print_partition_summary
from .conn_manager import ConnManager, MeshConnManager, create_conn_managers

__all__ = [
    "CellTopology",
    "CoreMesh",
    "ConnManager",
    "MeshConnManager",
    "create_conn_managers",
    "partition_mesh",
    "print_partition_summary",
]
