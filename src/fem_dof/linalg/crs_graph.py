# -*- coding: utf-8 -*-
"""
Compressed-row sparsity graphs.

A ``CrsGraph`` stores, for every row of a distributed row map, the global
column indices that a matrix row may hold. The pattern is kept in a
``scipy.sparse.csr_matrix`` whose row ``l`` is the row with local index ``l``
in the row map and whose column indices are global.
"""

from typing import Dict, Iterable, List, Mapping

import numpy as np
import numpy.typing as npt
from scipy.sparse import csr_matrix

from .index_map import IndexMap


class CrsGraph:
    """
    A distributed sparsity graph.

    Attributes:
        row_map (IndexMap): The rows stored on this rank.
        num_global_cols (int): The number of global columns.
        pattern (csr_matrix): Boolean pattern of shape
            ``(row_map.num_my_elements, num_global_cols)``.
    """

    def __init__(self, row_map: IndexMap, pattern: csr_matrix):
        if pattern.shape[0] != row_map.num_my_elements:
            raise ValueError(
                f"Pattern has {pattern.shape[0]} rows but the row map stores "
                f"{row_map.num_my_elements}."
            )
        self.row_map = row_map
        self.num_global_cols = int(pattern.shape[1])
        pattern = csr_matrix(pattern, dtype=bool)
        pattern.sum_duplicates()
        pattern.sort_indices()
        self.pattern = pattern

    @classmethod
    def from_rows(
        cls,
        row_map: IndexMap,
        rows: Mapping[int, Iterable[int]],
        num_global_cols: int,
    ) -> "CrsGraph":
        """
        Builds a graph from a ``{row_gid: column_gids}`` mapping.

        Rows of ``row_map`` missing from ``rows`` are empty.

        Raises:
            ValueError: If a row GID is not in the row map.
        """
        row_idx: List[npt.NDArray[np.int64]] = []
        col_idx: List[npt.NDArray[np.int64]] = []
        for gid, cols in rows.items():
            lid = row_map.lid(gid)
            if lid < 0:
                raise ValueError(f"Row GID {gid} is not stored in the row map.")
            cols = np.fromiter(cols, dtype=np.int64)
            row_idx.append(np.full(cols.size, lid, dtype=np.int64))
            col_idx.append(cols)
        return cls._from_coo(row_map, row_idx, col_idx, num_global_cols)

    @classmethod
    def _from_coo(
        cls,
        row_map: IndexMap,
        row_idx: List[npt.NDArray[np.int64]],
        col_idx: List[npt.NDArray[np.int64]],
        num_global_cols: int,
    ) -> "CrsGraph":
        r = np.concatenate(row_idx) if row_idx else np.array([], dtype=np.int64)
        c = np.concatenate(col_idx) if col_idx else np.array([], dtype=np.int64)
        pattern = csr_matrix(
            (np.ones(r.size, dtype=bool), (r, c)),
            shape=(row_map.num_my_elements, num_global_cols),
        )
        return cls(row_map, pattern)

    @property
    def num_my_rows(self) -> int:
        return self.row_map.num_my_elements

    @property
    def num_my_nonzeros(self) -> int:
        return int(self.pattern.nnz)

    @property
    def max_num_indices(self) -> int:
        if self.num_my_rows == 0:
            return 0
        return int(np.diff(self.pattern.indptr).max())

    def get_local_row_indices(self, lid: int) -> npt.NDArray[np.int64]:
        """Global column indices of the row with local index ``lid``."""
        start, stop = self.pattern.indptr[lid], self.pattern.indptr[lid + 1]
        return self.pattern.indices[start:stop].astype(np.int64)

    def get_global_row_indices(self, gid: int) -> npt.NDArray[np.int64]:
        """Global column indices of row ``gid``; raises KeyError if not stored here."""
        lid = self.row_map.lid(gid)
        if lid < 0:
            raise KeyError(f"Row GID {gid} is not stored on rank {self.row_map.comm.rank}.")
        return self.get_local_row_indices(lid)

    def to_csr(self) -> csr_matrix:
        """A copy of the pattern as a csr_matrix."""
        return self.pattern.copy()

    def to_dict(self) -> Dict[int, List[int]]:
        """``{row_gid: sorted column gids}`` for every local row."""
        return {
            int(g): self.get_local_row_indices(l).tolist()
            for l, g in enumerate(self.row_map.gids)
        }

    def __repr__(self) -> str:
        return (
            f"CrsGraph(rows={self.num_my_rows}, cols={self.num_global_cols}, "
            f"nnz={self.num_my_nonzeros})"
        )


def export_rows(graph: CrsGraph, exporter, target_map: IndexMap) -> CrsGraph:
    """
    Sends the rows of ``graph`` to the ranks that own them in ``target_map``.

    ``exporter`` must be an ``Export`` from ``graph.row_map`` to
    ``target_map``. Column sets that arrive for the same row are merged.
    Collective.
    """
    comm = target_map.comm
    row_idx: List[npt.NDArray[np.int64]] = []
    col_idx: List[npt.NDArray[np.int64]] = []

    same = np.arange(exporter.num_same_ids, dtype=np.int64)
    local_src = np.concatenate((same, exporter.permute_from))
    local_tgt = np.concatenate((same, exporter.permute_to))
    for src_lid, tgt_lid in zip(local_src, local_tgt):
        cols = graph.get_local_row_indices(int(src_lid))
        row_idx.append(np.full(cols.size, tgt_lid, dtype=np.int64))
        col_idx.append(cols)

    outgoing = [[] for _ in range(comm.size)]
    for rank, src_lids in exporter.send_map.items():
        outgoing[rank] = [graph.get_local_row_indices(int(l)) for l in src_lids]
    incoming = comm.alltoall(outgoing)

    for rank, tgt_lids in exporter.recv_map.items():
        for tgt_lid, cols in zip(tgt_lids, incoming[rank]):
            row_idx.append(np.full(cols.size, tgt_lid, dtype=np.int64))
            col_idx.append(cols)

    return CrsGraph._from_coo(target_map, row_idx, col_idx, graph.num_global_cols)
