# -*- coding: utf-8 -*-
"""
Element partitioning for distributed DOF numbering.

Every cell of a global mesh is assigned to a rank. The resulting ``parts``
array decides which elements each rank's connectivity provider exposes and,
through the shared mesh entities on partition boundaries, which DOFs become
ghosts.

Methods
-------
``"metis"``
    Graph partitioning of the face-neighbour cell graph with the optional
    ``metis`` binding. The binding locates the METIS library through the
    ``METIS_DLL`` environment variable.
``"hierarchical"``
    Recursive coordinate bisection on cell centroids. Needs no external
    library and is deterministic, which makes it the method used in tests.

Functions
---------
:py:func:`partition_mesh`:
    Partitions a mesh into a specified number of parts.
:py:func:`print_partition_summary`:
    Prints the cell distribution across partitions (and element blocks).
"""

import warnings
from typing import Callable, Dict, List, Optional

import numpy as np
import numpy.typing as npt

from .core_mesh import CoreMesh

try:
    import metis
except (ImportError, RuntimeError):
    # The binding raises RuntimeError when it cannot load the METIS library.
    metis = None


def _cell_graph(mesh: CoreMesh) -> List[List[int]]:
    """Neighbour lists of the cells, through shared sides."""
    return [
        sorted({int(nb) for nb in row if nb != -1 and nb != ci})
        for ci, row in enumerate(mesh.cell_neighbors)
    ]


def _metis_parts(
    mesh: CoreMesh, n_parts: int, weights: Optional[npt.NDArray]
) -> npt.NDArray[np.int_]:
    if metis is None:
        raise ImportError("METIS python binding not available")

    kwargs = {"nparts": n_parts}
    if weights is not None:
        kwargs["vweights"] = np.asarray(weights).astype(int).tolist()
    try:
        _, parts = metis.part_graph(_cell_graph(mesh), **kwargs)
    except Exception as ex:
        raise RuntimeError(f"METIS partitioning failed: {ex}") from ex
    return np.asarray(parts, dtype=int)


def _bisect(points: np.ndarray, weights: np.ndarray) -> npt.NDArray[np.bool_]:
    """
    Splits a point set in two halves of equal weight along its longest extent.

    Returns:
        A mask selecting the upper half.
    """
    axis = int(np.argmax(points.max(axis=0) - points.min(axis=0)))
    order = np.argsort(points[:, axis], kind="stable")
    cum = np.cumsum(weights[order])
    if cum[-1] > 0:
        split = int(np.searchsorted(cum, cum[-1] / 2.0, side="right"))
    else:
        split = order.size // 2
    if split in (0, order.size):
        split = order.size // 2

    upper = np.zeros(order.size, dtype=bool)
    upper[order[split:]] = True
    return upper


def _hierarchical_parts(
    mesh: CoreMesh, n_parts: int, weights: Optional[npt.NDArray]
) -> npt.NDArray[np.int_]:
    if n_parts & (n_parts - 1):
        warnings.warn(
            f"The 'hierarchical' partitioning method works best with a number of partitions "
            f"that is a power of two. You provided n_parts={n_parts}, which may result in "
            f"unevenly sized partitions."
        )

    w = np.ones(mesh.num_cells) if weights is None else np.asarray(weights, dtype=float)
    parts = np.zeros(mesh.num_cells, dtype=int)

    # Split the most populated part until there are n_parts of them.
    for new_part in range(1, n_parts):
        largest = int(np.argmax(np.bincount(parts)))
        cells = np.flatnonzero(parts == largest)
        if cells.size < 2:
            warnings.warn(
                f"Cannot split a partition of {cells.size} cell(s); "
                f"returning {int(parts.max()) + 1} partitions instead of n_parts={n_parts}."
            )
            break
        upper = _bisect(mesh.cell_centroids[cells], w[cells])
        parts[cells[upper]] = new_part

    return parts


_PARTITIONERS: Dict[str, Callable] = {
    "metis": _metis_parts,
    "hierarchical": _hierarchical_parts,
}


def partition_mesh(
    mesh: CoreMesh,
    n_parts: int,
    method: str = "metis",
    cell_weights: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Assigns every cell of a mesh to one of ``n_parts`` ranks.

    Args:
        mesh: The global mesh.
        n_parts: The number of partitions.
        method: The partitioning method ('metis' or 'hierarchical').
        cell_weights: Optional load of each cell, e.g. its DOF count.

    Returns:
        The partition ID of each cell.
    """
    if method not in _PARTITIONERS:
        raise NotImplementedError(f"Partition method '{method}' not implemented")
    if n_parts <= 1:
        return np.zeros(mesh.num_cells, dtype=int)

    mesh.analyze_mesh()
    return _PARTITIONERS[method](mesh, n_parts, cell_weights)


def print_partition_summary(parts: np.ndarray, mesh: Optional[CoreMesh] = None):
    """
    Prints the number of cells per partition.

    With ``mesh`` given, the cells of each partition are also broken down by
    element block.
    """
    parts = np.asarray(parts, dtype=int)
    print("--- Partition summary ---")
    if parts.size == 0:
        print("No partitions found.")
        return

    n_parts = int(parts.max() + 1)
    counts = np.bincount(parts, minlength=n_parts)
    print(f"Number of partitions: {n_parts}")
    for p in range(n_parts):
        line = f"  Partition {p}: {counts[p]} cells"
        if mesh is not None:
            blocks = mesh.cell_block_ids[parts == p]
            per_block = ", ".join(
                f"block {b}: {int(np.sum(blocks == b))}" for b in mesh.block_ids
            )
            line += f" ({per_block})"
        print(line)
