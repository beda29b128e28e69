# -*- coding: utf-8 -*-
"""
Transfer operators between two distributions of the same global indices.

``Import`` fills a target layout from a source layout (typically: owned
values -> owned plus ghost values). ``Export`` sends source entries to the
ranks that store them in the target layout and combines them there
(typically: contributions on ghost DOFs -> their owners).

Both operators hold a communication plan with the same structure as a halo
exchange:

- ``num_same_ids``: leading local indices identical in source and target.
- ``permute_from`` / ``permute_to``: further local copies, source lid to
  target lid.
- ``send_map``: ``{rank: source lids}`` sent to each neighbour.
- ``recv_map``: ``{rank: target lids}`` where data from each neighbour lands.

The send and receive lists are ordered so that ``send_map[j]`` on rank ``i``
matches ``recv_map[i]`` on rank ``j`` entry by entry.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .index_map import IndexMap


def _split_local(
    local_gids: npt.NDArray[np.int64], lookup_map: IndexMap
) -> Tuple[int, npt.NDArray[np.int64], npt.NDArray[np.int64], npt.NDArray[np.int64]]:
    """
    Splits ``local_gids`` into entries found locally in ``lookup_map`` and
    entries that live on other ranks.

    Returns:
        ``(num_same, local_positions, lookup_lids, remote_positions)``.
    """
    lookup_lids = lookup_map.lids(local_gids)
    n = min(local_gids.size, lookup_map.num_my_elements)
    same = np.flatnonzero(local_gids[:n] != lookup_map.gids[:n])
    num_same = int(same[0]) if same.size else n

    positions = np.arange(local_gids.size, dtype=np.int64)
    found = lookup_lids >= 0
    local_positions = positions[num_same:][found[num_same:]]
    remote_positions = positions[~found]
    return num_same, local_positions, lookup_lids[local_positions], remote_positions


def _group_by_rank(
    ranks: npt.NDArray[np.int64], values: npt.NDArray[np.int64], size: int
) -> Dict[int, npt.NDArray[np.int64]]:
    """Groups ``values`` by ``ranks``, preserving the order inside each group."""
    grouped: Dict[int, npt.NDArray[np.int64]] = {}
    for rank in range(size):
        mask = ranks == rank
        if np.any(mask):
            grouped[rank] = values[mask]
    return grouped


class _Transfer:
    """Common state and helpers of Import and Export."""

    def __init__(self, source: IndexMap, target: IndexMap):
        self.source_map = source
        self.target_map = target
        self.comm = target.comm
        self.num_same_ids = 0
        self.permute_from: npt.NDArray[np.int64] = np.array([], dtype=np.int64)
        self.permute_to: npt.NDArray[np.int64] = np.array([], dtype=np.int64)
        self.send_map: Dict[int, npt.NDArray[np.int64]] = {}
        self.recv_map: Dict[int, npt.NDArray[np.int64]] = {}

    @property
    def num_send(self) -> int:
        return int(sum(v.size for v in self.send_map.values()))

    @property
    def num_recv(self) -> int:
        return int(sum(v.size for v in self.recv_map.values()))

    def _exchange(self, source_values: np.ndarray) -> List[np.ndarray]:
        outgoing: List[Optional[np.ndarray]] = [None] * self.comm.size
        for rank, lids in self.send_map.items():
            outgoing[rank] = source_values[lids]
        return self.comm.alltoall(outgoing)

    def _check_source(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values)
        if values.shape[0] != self.source_map.num_my_elements:
            raise ValueError(
                f"Expected {self.source_map.num_my_elements} source values, "
                f"got {values.shape[0]}."
            )
        return values

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(same={self.num_same_ids}, "
            f"permute={self.permute_from.size}, send={self.num_send}, "
            f"recv={self.num_recv})"
        )


class Import(_Transfer):
    """
    Fills every target entry with the value the source layout holds for it.

    Every target GID must be stored somewhere in the source map. Construction
    is collective.
    """

    def __init__(self, source: IndexMap, target: IndexMap):
        super().__init__(source, target)
        comm = self.comm
        tgt_gids = target.gids

        self.num_same_ids, self.permute_to, self.permute_from, remote = _split_local(
            tgt_gids, source
        )

        owner_ranks, owner_lids = source.remote_index_list(tgt_gids[remote])
        if np.any(owner_ranks < 0):
            missing = tgt_gids[remote][owner_ranks < 0]
            raise ValueError(
                f"Target GIDs {missing[:10].tolist()} are not stored in the source map."
            )

        self.recv_map = _group_by_rank(owner_ranks, remote, comm.size)
        requests = _group_by_rank(owner_ranks, owner_lids, comm.size)
        incoming = comm.alltoall([requests.get(r) for r in range(comm.size)])
        self.send_map = {
            rank: np.asarray(lids, dtype=np.int64)
            for rank, lids in enumerate(incoming)
            if lids is not None and len(lids) > 0
        }

    def apply(self, source_values: np.ndarray) -> np.ndarray:
        """
        Returns the values of the target layout. Collective.

        Args:
            source_values: Array whose first axis follows the source map.
        """
        source_values = self._check_source(source_values)
        target_values = np.zeros(
            (self.target_map.num_my_elements,) + source_values.shape[1:],
            dtype=source_values.dtype,
        )
        n = self.num_same_ids
        target_values[:n] = source_values[:n]
        target_values[self.permute_to] = source_values[self.permute_from]
        incoming = self._exchange(source_values)
        for rank, lids in self.recv_map.items():
            target_values[lids] = incoming[rank]
        return target_values


class Export(_Transfer):
    """
    Sends every source entry to the rank storing it in the target layout.

    Source GIDs that the target map does not store locally are shipped to the
    lowest rank storing them. Construction is collective.
    """

    COMBINE_MODES = ("add", "insert")

    def __init__(self, source: IndexMap, target: IndexMap):
        super().__init__(source, target)
        comm = self.comm
        src_gids = source.gids

        self.num_same_ids, self.permute_from, self.permute_to, remote = _split_local(
            src_gids, target
        )

        owner_ranks, owner_lids = target.remote_index_list(src_gids[remote])
        if np.any(owner_ranks < 0):
            missing = src_gids[remote][owner_ranks < 0]
            raise ValueError(
                f"Source GIDs {missing[:10].tolist()} are not stored in the target map."
            )

        self.send_map = _group_by_rank(owner_ranks, remote, comm.size)
        destinations = _group_by_rank(owner_ranks, owner_lids, comm.size)
        incoming = comm.alltoall([destinations.get(r) for r in range(comm.size)])
        self.recv_map = {
            rank: np.asarray(lids, dtype=np.int64)
            for rank, lids in enumerate(incoming)
            if lids is not None and len(lids) > 0
        }

    def apply(
        self,
        source_values: np.ndarray,
        target_values: Optional[np.ndarray] = None,
        mode: str = "add",
    ) -> np.ndarray:
        """
        Combines source values into the target layout. Collective.

        Args:
            source_values: Array whose first axis follows the source map.
            target_values: Initial target values; zeros when omitted. Not
                modified.
            mode: ``"add"`` sums every contribution into the target entry,
                ``"insert"`` overwrites it.

        Returns:
            The combined target values.
        """
        if mode not in self.COMBINE_MODES:
            raise ValueError(f"Unknown combine mode '{mode}'.")
        source_values = self._check_source(source_values)
        shape = (self.target_map.num_my_elements,) + source_values.shape[1:]
        if target_values is None:
            result = np.zeros(shape, dtype=source_values.dtype)
        else:
            result = np.array(target_values, copy=True)
            if result.shape != shape:
                raise ValueError(f"Expected target values of shape {shape}.")

        incoming = self._exchange(source_values)
        n = self.num_same_ids
        if mode == "add":
            result[:n] += source_values[:n]
            np.add.at(result, self.permute_to, source_values[self.permute_from])
            for rank, lids in self.recv_map.items():
                np.add.at(result, lids, incoming[rank])
        else:
            result[:n] = source_values[:n]
            result[self.permute_to] = source_values[self.permute_from]
            for rank, lids in self.recv_map.items():
                result[lids] = incoming[rank]
        return result
