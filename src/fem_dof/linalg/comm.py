# -*- coding: utf-8 -*-
"""
Communicators for the distributed DOF tools.

Every collective in this package is written against a small subset of the
lower-case ``mpi4py`` API:

- ``rank`` and ``size`` attributes,
- ``allgather(obj)``: returns the list of every rank's ``obj``,
- ``alltoall(objs)``: rank ``r`` receives ``objs[r]`` from every rank,
- ``barrier()``.

An ``mpi4py`` communicator therefore works as-is. For serial runs and for
tests, two in-process communicators are provided:

- ``SerialComm``: a single rank.
- ``ThreadComm``: a group of ranks that run as threads of one process and
  exchange Python objects through shared slots. ``run_collective`` drives
  such a group.
"""

import threading
from typing import Any, Callable, List, Sequence

try:
    from mpi4py import MPI
except ImportError:
    MPI = None


class SerialComm:
    """A communicator with exactly one rank."""

    rank = 0
    size = 1

    def allgather(self, obj: Any) -> List[Any]:
        return [obj]

    def alltoall(self, objs: Sequence[Any]) -> List[Any]:
        if len(objs) != 1:
            raise ValueError(f"alltoall expects 1 item, got {len(objs)}.")
        return list(objs)

    def barrier(self) -> None:
        return None

    def __repr__(self) -> str:
        return "SerialComm()"


class _SharedState:
    """Exchange slots and the barrier shared by all ranks of a ThreadComm group."""

    def __init__(self, size: int):
        self.size = size
        self.slots: List[Any] = [None] * size
        self.barrier = threading.Barrier(size)


class ThreadComm:
    """
    One rank of an in-process communicator group.

    Each collective writes the rank's contribution into a shared slot, waits
    for every rank, reads what it needs, and waits again before the slots can
    be reused. If any rank calls ``abort`` the barrier breaks and every peer
    blocked in a collective raises ``threading.BrokenBarrierError``.

    Attributes:
        rank (int): The rank of this member.
        size (int): The number of ranks in the group.
    """

    def __init__(self, rank: int, shared: _SharedState):
        self.rank = rank
        self.size = shared.size
        self._shared = shared

    @classmethod
    def create_group(cls, size: int) -> List["ThreadComm"]:
        """Creates ``size`` communicators that share one exchange state."""
        if size <= 0:
            raise ValueError("A communicator group needs at least one rank.")
        shared = _SharedState(size)
        return [cls(rank, shared) for rank in range(size)]

    def _exchange(self, obj: Any) -> List[Any]:
        self._shared.slots[self.rank] = obj
        self._shared.barrier.wait()
        gathered = list(self._shared.slots)
        self._shared.barrier.wait()
        return gathered

    def allgather(self, obj: Any) -> List[Any]:
        return self._exchange(obj)

    def alltoall(self, objs: Sequence[Any]) -> List[Any]:
        if len(objs) != self.size:
            raise ValueError(f"alltoall expects {self.size} items, got {len(objs)}.")
        gathered = self._exchange(list(objs))
        return [gathered[src][self.rank] for src in range(self.size)]

    def barrier(self) -> None:
        self._shared.barrier.wait()

    def abort(self) -> None:
        self._shared.barrier.abort()

    def __repr__(self) -> str:
        return f"ThreadComm(rank={self.rank}, size={self.size})"


def run_collective(fn: Callable[[ThreadComm], Any], size: int) -> List[Any]:
    """
    Runs ``fn(comm)`` on every rank of a new ThreadComm group.

    Args:
        fn: The per-rank work. It receives the rank's communicator.
        size: The number of ranks.

    Returns:
        The list of return values, indexed by rank.

    Raises:
        The first exception raised by any rank (lowest rank first). The
        other ranks are released from their collectives instead of waiting
        forever.
    """
    comms = ThreadComm.create_group(size)
    results: List[Any] = [None] * size
    errors: List[BaseException] = [None] * size

    def _target(comm: ThreadComm) -> None:
        try:
            results[comm.rank] = fn(comm)
        except BaseException as ex:
            errors[comm.rank] = ex
            comm.abort()

    threads = [
        threading.Thread(target=_target, args=(comm,), name=f"rank-{comm.rank}")
        for comm in comms
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # A broken barrier on a peer is a consequence, not the cause.
    primary = [
        e for e in errors if e is not None and not isinstance(e, threading.BrokenBarrierError)
    ]
    if primary:
        raise primary[0]
    for e in errors:
        if e is not None:
            raise e
    return results


def mpi_comm_world():
    """Returns ``MPI.COMM_WORLD`` from ``mpi4py``."""
    if MPI is None:
        raise ImportError("mpi4py is required for multi-process runs.")
    return MPI.COMM_WORLD


def get_comm(comm=None):
    """Returns ``comm`` or a SerialComm when no communicator is given."""
    return SerialComm() if comm is None else comm
