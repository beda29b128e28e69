# -*- coding: utf-8 -*-
"""
Parallel resolution of the global DOF numbering.

Every rank lists the (entity, field) pairs its elements touch, together with
the number of DOF slots the field places on that entity. The ranks exchange
their lists once and then all apply the same rules:

1. Ownership: a pair belongs to the lowest rank that lists it.
2. Ranges: rank ``r`` owns the contiguous GID range that follows the slots
   owned by ranks ``0..r-1``.
3. Order: inside its range, a rank numbers the pairs it owns in the order it
   listed them, giving each pair consecutive GIDs for its slots.

Because every rank evaluates the same rules on the same gathered data, the
result is identical everywhere and reproducible from run to run, and shared
entities receive one set of GIDs however many ranks touch them.
"""

import logging
from typing import Dict, Hashable, List, Sequence, Tuple

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

EntityRequest = Tuple[Hashable, int, int]
RequestKey = Tuple[Hashable, int]


class EntityNumbering:
    """
    The resolved numbering as seen by one rank.

    Attributes:
        rank (int): This rank.
        rank_offsets (np.ndarray): ``rank_offsets[r]`` is the first GID owned
            by rank ``r``; ``rank_offsets[-1]`` is the global DOF count.
        owned_start (int): First GID owned by this rank.
        owned_stop (int): One past the last GID owned by this rank.
        requests (List[EntityRequest]): This rank's requests, in order.
        bases (np.ndarray): First GID of each request.
        owners (np.ndarray): Owning rank of each request.
    """

    def __init__(
        self,
        rank: int,
        rank_offsets: npt.NDArray[np.int64],
        requests: List[EntityRequest],
        bases: npt.NDArray[np.int64],
        owners: npt.NDArray[np.int64],
    ):
        self.rank = rank
        self.rank_offsets = rank_offsets
        self.owned_start = int(rank_offsets[rank])
        self.owned_stop = int(rank_offsets[rank + 1])
        self.requests = requests
        self.bases = bases
        self.owners = owners
        self._index: Dict[RequestKey, int] = {
            (key, field): i for i, (key, field, _) in enumerate(requests)
        }

    @property
    def num_global(self) -> int:
        return int(self.rank_offsets[-1])

    @property
    def num_owned(self) -> int:
        return self.owned_stop - self.owned_start

    def gid_base(self, entity_key: Hashable, field_num: int) -> int:
        """First GID of a requested (entity, field) pair."""
        return int(self.bases[self._index[(entity_key, field_num)]])

    def owned_gids(self) -> npt.NDArray[np.int64]:
        return np.arange(self.owned_start, self.owned_stop, dtype=np.int64)

    def ghost_gids(self) -> npt.NDArray[np.int64]:
        """Sorted GIDs this rank references but another rank owns."""
        ghosts = [
            np.arange(base, base + n, dtype=np.int64)
            for (_, _, n), base, owner in zip(self.requests, self.bases, self.owners)
            if owner != self.rank
        ]
        if not ghosts:
            return np.array([], dtype=np.int64)
        return np.sort(np.concatenate(ghosts))

    def owner_of(self, gids: Sequence[int]) -> npt.NDArray[np.int64]:
        """Owning rank of each GID."""
        gids = np.asarray(gids, dtype=np.int64)
        return np.searchsorted(self.rank_offsets, gids, side="right") - 1


def resolve_entity_numbering(
    comm, requests: Sequence[EntityRequest], conflicts: Sequence[str] = ()
) -> EntityNumbering:
    """
    Assigns globally unique GIDs to (entity, field) slots. Collective.

    Args:
        comm: The communicator; every rank must call this function.
        requests: This rank's unique ``(entity_key, field_num, num_slots)``
            triples, in the order GIDs should follow locally.
        conflicts: Errors this rank found in its own requests. They travel
            with the requests so that every rank raises the same error.

    Returns:
        The numbering as seen by this rank.

    Raises:
        ValueError: On every rank, if any rank reports a conflict, repeats
            an (entity, field) pair, or disagrees with another rank on the
            number of slots of a pair.
    """
    requests = [(key, int(field), int(n)) for key, field, n in requests]
    conflicts = list(conflicts)
    if len({(key, field) for key, field, _ in requests}) != len(requests):
        conflicts.append("Numbering requests must not repeat an (entity, field) pair.")

    gathered = comm.allgather((requests, conflicts))
    for r, (_, rank_conflicts) in enumerate(gathered):
        if rank_conflicts:
            raise ValueError(f"Rank {r}: {rank_conflicts[0]}")
    all_requests = [rank_requests for rank_requests, _ in gathered]

    owner: Dict[RequestKey, int] = {}
    slots: Dict[RequestKey, int] = {}
    for r, rank_requests in enumerate(all_requests):
        for key, field, n in rank_requests:
            k = (key, field)
            if k not in slots:
                slots[k] = n
                owner[k] = r
            elif slots[k] != n:
                raise ValueError(
                    f"Ranks disagree on the DOF count of field {field} on entity "
                    f"{key}: {slots[k]} (rank {owner[k]}) vs {n} (rank {r})."
                )

    rank_offsets = np.zeros(comm.size + 1, dtype=np.int64)
    base_of: Dict[RequestKey, int] = {}
    offset = 0
    for r, rank_requests in enumerate(all_requests):
        rank_offsets[r] = offset
        for key, field, n in rank_requests:
            k = (key, field)
            if owner[k] == r:
                base_of[k] = offset
                offset += n
    rank_offsets[comm.size] = offset

    bases = np.array(
        [base_of[(key, field)] for key, field, _ in requests], dtype=np.int64
    )
    owners = np.array([owner[(key, field)] for key, field, _ in requests], dtype=np.int64)

    logger.debug(
        "Rank %d: %d requests, %d owned DOFs of %d",
        comm.rank,
        len(requests),
        int(rank_offsets[comm.rank + 1] - rank_offsets[comm.rank]),
        offset,
    )
    return EntityNumbering(comm.rank, rank_offsets, requests, bases, owners)
