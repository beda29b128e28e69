# -*- coding: utf-8 -*-
"""
Distributed index spaces.

An ``IndexMap`` lists the global indices (GIDs) a rank stores, in local
order. Local index ``l`` on a rank refers to ``gids[l]``. Maps are either
one-to-one (every GID on exactly one rank, e.g. the owned DOFs) or
overlapping (shared GIDs on several ranks, e.g. owned plus ghost DOFs).
"""

from typing import Dict, Sequence, Tuple

import numpy as np
import numpy.typing as npt


class IndexMap:
    """
    A distributed list of global indices.

    Construction is collective: every rank of ``comm`` must build its map at
    the same time. The constructor gathers enough information to answer
    ``remote_index_list`` locally afterwards.

    Attributes:
        comm: The communicator the map is distributed over.
        gids (np.ndarray): Global indices stored on this rank, in local order.
        num_global_elements (int): Sum of the local sizes over all ranks.
        min_all_gid (int): Smallest GID on any rank (0 for an empty map).
        max_all_gid (int): Largest GID on any rank (-1 for an empty map).
        is_linear (bool): True when rank ``r`` stores exactly the contiguous
            range following the ranges of ranks ``0..r-1``.
    """

    def __init__(self, comm, gids: Sequence[int]):
        self.comm = comm
        self.gids: npt.NDArray[np.int64] = np.asarray(gids, dtype=np.int64).reshape(-1)
        self._g2l: Dict[int, int] = {int(g): l for l, g in enumerate(self.gids)}
        if len(self._g2l) != self.gids.size:
            raise ValueError("An IndexMap cannot list the same GID twice on one rank.")

        is_contiguous = bool(
            self.gids.size == 0 or np.all(np.diff(self.gids) == 1)
        )
        first = int(self.gids[0]) if self.gids.size else 0
        local_info = (self.gids.size, first, is_contiguous)
        all_info = comm.allgather(local_info)

        counts = np.array([info[0] for info in all_info], dtype=np.int64)
        self._starts = np.concatenate(([0], np.cumsum(counts)))
        self.num_global_elements = int(self._starts[-1])
        self.is_linear = all(
            info[2] and (info[0] == 0 or info[1] == self._starts[r])
            for r, info in enumerate(all_info)
        )

        if self.is_linear:
            self._directory = None
            self.min_all_gid = 0
            self.max_all_gid = self.num_global_elements - 1
        else:
            self._directory = self._build_directory(comm.allgather(self.gids))
            all_gids = np.array(list(self._directory.keys()), dtype=np.int64)
            self.min_all_gid = int(all_gids.min()) if all_gids.size else 0
            self.max_all_gid = int(all_gids.max()) if all_gids.size else -1

    @staticmethod
    def _build_directory(all_gids) -> Dict[int, Tuple[int, int]]:
        """Maps each GID to (rank, lid) on the lowest rank that stores it."""
        directory: Dict[int, Tuple[int, int]] = {}
        for rank, rank_gids in enumerate(all_gids):
            for lid, g in enumerate(rank_gids.tolist()):
                directory.setdefault(g, (rank, lid))
        return directory

    @property
    def num_my_elements(self) -> int:
        return int(self.gids.size)

    def lid(self, gid: int) -> int:
        """Returns the local index of ``gid``, or -1 if this rank does not store it."""
        return self._g2l.get(int(gid), -1)

    def lids(self, gids: Sequence[int]) -> npt.NDArray[np.int64]:
        """Vectorised ``lid``."""
        return np.array([self._g2l.get(int(g), -1) for g in gids], dtype=np.int64)

    def gid(self, lid: int) -> int:
        return int(self.gids[lid])

    def my_gid(self, gid: int) -> bool:
        return int(gid) in self._g2l

    def remote_index_list(
        self, gids: Sequence[int]
    ) -> Tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        """
        Finds which rank stores each GID and at which local index.

        For overlapping maps the lowest rank storing a GID is reported.

        Returns:
            A tuple ``(ranks, lids)``; both are -1 for GIDs not in the map.
        """
        gids = np.asarray(gids, dtype=np.int64).reshape(-1)
        ranks = np.full(gids.size, -1, dtype=np.int64)
        lids = np.full(gids.size, -1, dtype=np.int64)
        if gids.size == 0:
            return ranks, lids

        if self.is_linear:
            valid = (gids >= 0) & (gids < self.num_global_elements)
            owner = np.searchsorted(self._starts, gids[valid], side="right") - 1
            ranks[valid] = owner
            lids[valid] = gids[valid] - self._starts[owner]
            return ranks, lids

        for i, g in enumerate(gids.tolist()):
            if g in self._directory:
                ranks[i], lids[i] = self._directory[g]
        return ranks, lids

    def same_as(self, other: "IndexMap") -> bool:
        """True if both maps store the same GIDs in the same local order on this rank."""
        return np.array_equal(self.gids, other.gids)

    def __len__(self) -> int:
        return self.num_my_elements

    def __repr__(self) -> str:
        return (
            f"IndexMap(rank={self.comm.rank}, local={self.num_my_elements}, "
            f"global={self.num_global_elements}, linear={self.is_linear})"
        )
