# -*- coding: utf-8 -*-
"""
Distributed index maps, sparsity graphs and transfer operators.

Key modules:
- comm:      Communicators (serial, threads, MPI).
- index_map: Distribution of global indices over ranks.
- crs_graph: Row-distributed sparsity patterns.
- transfer:  Import and Export operators between two maps.
- factory:   Builder used by the DOF manager.
- reorder:   Fill- and bandwidth-reducing orderings of a graph.
"""

from .comm import SerialComm, ThreadComm, get_comm, mpi_comm_world, run_collective
from .index_map import IndexMap
from .crs_graph import CrsGraph
from .transfer import Export, Import
from .factory import LinearObjFactory
from .reorder import reorder_graph

__all__ = [
    "CrsGraph",
    "Export",
    "Import",
    "IndexMap",
    "LinearObjFactory",
    "SerialComm",
    "ThreadComm",
    "get_comm",
    "mpi_comm_world",
    "reorder_graph",
    "run_collective",
]
