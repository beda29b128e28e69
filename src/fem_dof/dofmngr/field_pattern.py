# -*- coding: utf-8 -*-
"""
Field patterns: where the degrees of freedom of a field sit on an element.

A field pattern is a query-only object. For a reference cell it answers how
many DOFs a field places on each sub-cell (vertex, edge, face, interior) and
which of the field's local basis indices those are. Any object providing
the methods of ``FieldPattern`` can be registered with a DOF manager; no
inheritance is required, and patterns are compared through their answers
(``patterns_equal``), never through their type.
"""

from typing import Dict, List, Mapping, Protocol, Sequence, Tuple

from ..mesh.cell_topology import CellTopology


class FieldPattern(Protocol):
    """The queries a DOF manager makes of a field pattern."""

    cell_topology: CellTopology

    def dimension(self) -> int:
        ...

    def sub_cell_count(self, dim: int) -> int:
        ...

    def sub_cell_indices(self, dim: int, sub_cell_id: int) -> Sequence[int]:
        ...

    def num_basis(self) -> int:
        ...


def patterns_equal(a: FieldPattern, b: FieldPattern) -> bool:
    """True if two patterns answer every query identically."""
    if a is b:
        return True
    if a.cell_topology != b.cell_topology or a.dimension() != b.dimension():
        return False
    if a.num_basis() != b.num_basis():
        return False
    for dim in range(a.dimension() + 1):
        if a.sub_cell_count(dim) != b.sub_cell_count(dim):
            return False
        for sc in range(a.sub_cell_count(dim)):
            if list(a.sub_cell_indices(dim, sc)) != list(b.sub_cell_indices(dim, sc)):
                return False
    return True


class BasisFieldPattern:
    """
    A field with a fixed number of DOFs on every sub-cell of each dimension.

    Local basis indices are numbered sub-cell by sub-cell: all vertices first,
    then edges, faces and the interior, in reference order.

    Args:
        topology: The reference cell.
        dofs_per_dim: Number of DOFs on each sub-cell, keyed by sub-cell
            dimension. Missing dimensions carry none.
    """

    def __init__(self, topology: CellTopology, dofs_per_dim: Mapping[int, int]):
        self.cell_topology = topology
        self.dofs_per_dim: Dict[int, int] = {
            d: int(n) for d, n in dofs_per_dim.items() if n
        }
        for d, n in self.dofs_per_dim.items():
            if not 0 <= d <= topology.dimension:
                raise ValueError(
                    f"A {topology.name} has no sub-cells of dimension {d}."
                )
            if n < 0:
                raise ValueError("The number of DOFs per sub-cell must be non-negative.")

        self._indices: Dict[Tuple[int, int], List[int]] = {}
        count = 0
        for dim in range(topology.dimension + 1):
            n = self.dofs_per_dim.get(dim, 0)
            for sc in range(topology.sub_cell_count(dim)):
                self._indices[(dim, sc)] = list(range(count, count + n))
                count += n
        self._num_basis = count

    @classmethod
    def nodal(cls, topology: CellTopology) -> "BasisFieldPattern":
        """One DOF per vertex (first-order Lagrange)."""
        return cls(topology, {0: 1})

    @classmethod
    def edge(cls, topology: CellTopology) -> "BasisFieldPattern":
        """One DOF per edge (lowest-order edge elements)."""
        return cls(topology, {1: 1})

    @classmethod
    def face(cls, topology: CellTopology) -> "BasisFieldPattern":
        """One DOF per face of a 3D cell (lowest-order face elements)."""
        return cls(topology, {2: 1})

    @classmethod
    def cell(cls, topology: CellTopology, num_dofs: int = 1) -> "BasisFieldPattern":
        """DOFs on the cell interior only (piecewise constant for ``num_dofs=1``)."""
        return cls(topology, {topology.dimension: num_dofs})

    @classmethod
    def lagrange2(cls, topology: CellTopology) -> "BasisFieldPattern":
        """Second-order Lagrange: simplices carry no interior DOF, tensor cells do."""
        dofs = {0: 1, 1: 1}
        if topology.name == "quadrilateral":
            dofs[2] = 1
        elif topology.name == "hexahedron":
            dofs.update({2: 1, 3: 1})
        return cls(topology, dofs)

    def dimension(self) -> int:
        return self.cell_topology.dimension

    def sub_cell_count(self, dim: int) -> int:
        return self.cell_topology.sub_cell_count(dim)

    def sub_cell_indices(self, dim: int, sub_cell_id: int) -> List[int]:
        return self._indices.get((dim, sub_cell_id), [])

    def num_basis(self) -> int:
        return self._num_basis

    def __repr__(self) -> str:
        return f"BasisFieldPattern({self.cell_topology.name}, {self.dofs_per_dim})"


class GeometricAggFieldPattern:
    """
    The sub-cells of a block that carry at least one DOF of any field.

    Each such sub-cell gets exactly one index, in canonical order (dimension
    ascending, then sub-cell ID). This is the pattern a connectivity provider
    uses to decide which entities of an element it must name.

    Args:
        topology: The block's reference cell.
        patterns: The field patterns active on the block.
    """

    def __init__(self, topology: CellTopology, patterns: Sequence[FieldPattern] = ()):
        self.cell_topology = topology
        for p in patterns:
            if p.cell_topology != topology:
                raise ValueError(
                    f"Field pattern on {p.cell_topology.name} cannot be combined "
                    f"with {topology.name} geometry."
                )

        self._sub_cells: List[Tuple[int, int]] = []
        self._index: Dict[Tuple[int, int], int] = {}
        for dim in range(topology.dimension + 1):
            for sc in range(topology.sub_cell_count(dim)):
                if any(len(p.sub_cell_indices(dim, sc)) > 0 for p in patterns):
                    self._index[(dim, sc)] = len(self._sub_cells)
                    self._sub_cells.append((dim, sc))

    def sub_cells(self) -> List[Tuple[int, int]]:
        """The ``(dim, sub_cell_id)`` pairs carrying DOFs, in index order."""
        return list(self._sub_cells)

    def geometric_index(self, dim: int, sub_cell_id: int) -> int:
        """Index of a sub-cell in ``sub_cells()``, or -1 if it carries no DOF."""
        return self._index.get((dim, sub_cell_id), -1)

    def dimension(self) -> int:
        return self.cell_topology.dimension

    def sub_cell_count(self, dim: int) -> int:
        return self.cell_topology.sub_cell_count(dim)

    def sub_cell_indices(self, dim: int, sub_cell_id: int) -> List[int]:
        idx = self.geometric_index(dim, sub_cell_id)
        return [idx] if idx >= 0 else []

    def num_basis(self) -> int:
        return len(self._sub_cells)
