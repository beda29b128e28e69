# -*- coding: utf-8 -*-

"""
This module provides reorderings of a finished sparsity graph. Each rank
permutes the rows it stores, using the square block of the graph that couples
those rows to each other. Column indices stay global, so the reordering is a
purely local transform.

Supported strategies:
- Reverse Cuthill-McKee (``"rcm"``): bandwidth reduction.
- Minimum degree (``"mmd"``): exact minimum degree ordering (true degrees
  after every elimination) for fill reduction in direct factorisation. ``"amd"`` is accepted
  as an alias, but no approximate degree update is performed.
- Natural (``"natural"``): the identity permutation.
"""

import heapq
from typing import Dict, List, Set, Tuple

import numpy as np
import numpy.typing as npt
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import reverse_cuthill_mckee

from .crs_graph import CrsGraph
from .index_map import IndexMap


def local_adjacency(graph: CrsGraph) -> csr_matrix:
    """
    Builds the symmetric row-to-row adjacency of the rows stored locally.

    Entry (i, j) is non-zero when row i holds the column of row j (or the
    reverse). Columns of rows stored on other ranks are dropped, as is the
    diagonal.

    Args:
        graph: The graph.

    Returns:
        The adjacency matrix in CSR format, in local row order.
    """
    n = graph.num_my_rows
    if n == 0:
        return csr_matrix((0, 0), dtype=int)

    pattern = graph.pattern.tocoo()
    cols = graph.row_map.lids(pattern.col)
    keep = (cols >= 0) & (cols != pattern.row)
    rows = pattern.row[keep]
    cols = cols[keep]
    adj = csr_matrix((np.ones(rows.size, dtype=int), (rows, cols)), shape=(n, n))
    adj = ((adj + adj.T) > 0).astype(int)
    return csr_matrix(adj)


def bandwidth(adj: csr_matrix) -> int:
    """Largest |i - j| over the non-zeros of ``adj``."""
    coo = adj.tocoo()
    if coo.nnz == 0:
        return 0
    return int(np.abs(coo.row - coo.col).max())


def _eliminate(adj: csr_matrix, order=None) -> Tuple[npt.NDArray[np.int_], int]:
    """
    Symbolic elimination on the graph of ``adj``.

    With ``order`` given, rows are eliminated in that order. Otherwise, the
    row of minimum current degree is eliminated next (ties broken by the
    lower index).

    Returns:
        The elimination order and the number of fill edges it creates.
    """
    n = adj.shape[0]
    neighbors: List[Set[int]] = [set(adj[i].indices.tolist()) for i in range(n)]
    eliminated = np.zeros(n, dtype=bool)
    perm: List[int] = []
    fill = 0

    heap = [(len(neighbors[i]), i) for i in range(n)]
    heapq.heapify(heap)
    fixed = iter(order) if order is not None else None

    while len(perm) < n:
        if fixed is not None:
            v = int(next(fixed))
        else:
            deg, v = heapq.heappop(heap)
            if eliminated[v] or deg != len(neighbors[v]):
                continue

        eliminated[v] = True
        perm.append(v)
        nbrs = list(neighbors[v])
        for u in nbrs:
            neighbors[u].discard(v)
        for a in range(len(nbrs)):
            for b in range(a + 1, len(nbrs)):
                u, w = nbrs[a], nbrs[b]
                if w not in neighbors[u]:
                    neighbors[u].add(w)
                    neighbors[w].add(u)
                    fill += 1
        if fixed is None:
            for u in nbrs:
                heapq.heappush(heap, (len(neighbors[u]), u))
        neighbors[v] = set()

    return np.array(perm, dtype=int), fill


def symbolic_fill(adj: csr_matrix, order) -> int:
    """Number of fill edges created by eliminating the rows of ``adj`` in ``order``."""
    return _eliminate(adj, order)[1]


class _GraphReorderStrategy:
    """
    Abstract base class for graph reordering strategies.

    Subclasses must implement the `get_order` method, which takes the local
    adjacency matrix and returns a permutation array representing the new
    row order.
    """

    def get_order(self, adj: csr_matrix) -> npt.NDArray[np.int_]:
        raise NotImplementedError("Subclasses must implement this method.")


class _RCMStrategy(_GraphReorderStrategy):
    """Reverse Cuthill-McKee ordering, for bandwidth reduction."""

    def get_order(self, adj: csr_matrix) -> npt.NDArray[np.int_]:
        return reverse_cuthill_mckee(adj, symmetric_mode=True).astype(int)


class _MinimumDegreeStrategy(_GraphReorderStrategy):
    """
    Minimum degree ordering.

    Repeatedly eliminates the row with the fewest remaining neighbours and
    connects its neighbours to each other, which keeps the fill-in of a
    sparse Cholesky or LU factorisation low.
    """

    def get_order(self, adj: csr_matrix) -> npt.NDArray[np.int_]:
        return _eliminate(adj)[0]


class _NaturalStrategy(_GraphReorderStrategy):
    """Keeps the current order."""

    def get_order(self, adj: csr_matrix) -> npt.NDArray[np.int_]:
        return np.arange(adj.shape[0], dtype=int)


_STRATEGIES: Dict[str, type] = {
    "rcm": _RCMStrategy,
    "mmd": _MinimumDegreeStrategy,
    "amd": _MinimumDegreeStrategy,
    "natural": _NaturalStrategy,
}


def reorder_graph(
    graph: CrsGraph, strategy: str = "mmd"
) -> Tuple[CrsGraph, npt.NDArray[np.int_]]:
    """
    Permutes the rows a rank stores.

    The returned graph has a new row map listing the same GIDs in the new
    order; building it is collective, so every rank must call this function.

    Args:
        graph: The graph to reorder.
        strategy: One of 'rcm', 'mmd' (alias 'amd'), 'natural'.

    Returns:
        A tuple of the reordered graph and the permutation, where
        ``perm[k]`` is the old local row placed at position ``k``.
    """
    if strategy not in _STRATEGIES:
        raise NotImplementedError(
            f"Graph reordering strategy '{strategy}' is not implemented."
        )

    adj = local_adjacency(graph)
    perm = _STRATEGIES[strategy]().get_order(adj)
    if perm.size != graph.num_my_rows:
        raise RuntimeError(
            f"Reordering '{strategy}' returned {perm.size} rows, "
            f"expected {graph.num_my_rows}."
        )

    row_map = IndexMap(graph.row_map.comm, graph.row_map.gids[perm])
    return CrsGraph(row_map, graph.pattern[perm]), perm
