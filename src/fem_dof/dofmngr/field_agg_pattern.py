# -*- coding: utf-8 -*-
"""
Aggregation of all field patterns active on one element block.

The aggregated pattern fixes the layout of an element's DOF array, which is
also the order of ``DOFManager.get_element_gids``. Slots are assigned sub-cell
by sub-cell in canonical order (vertices, edges, faces, interior; reference
order inside each dimension). Within one sub-cell the fields follow in
ascending field ID, and each field contributes its slots in its own order.

Every rank holding elements of a block derives the same layout from the same
registrations, so the layout is safe to feed into the global numbering.
"""

import sys
from typing import Dict, List, Sequence, TextIO, Tuple

import numpy as np
import numpy.typing as npt

from .field_pattern import FieldPattern, GeometricAggFieldPattern


class FieldAggPattern:
    """
    The combined DOF layout of a block.

    Attributes:
        geom_pattern (GeometricAggFieldPattern): The block's geometric pattern.
        field_ids (List[int]): Active field IDs in ascending order.
    """

    def __init__(
        self,
        geom_pattern: GeometricAggFieldPattern,
        field_patterns: Sequence[Tuple[int, FieldPattern]],
    ):
        self.geom_pattern = geom_pattern
        self.cell_topology = geom_pattern.cell_topology
        patterns = dict(field_patterns)
        if len(patterns) != len(field_patterns):
            raise ValueError("A field can only appear once in an aggregated pattern.")
        self.field_ids: List[int] = sorted(patterns)
        self._patterns: Dict[int, FieldPattern] = patterns

        for fid, p in patterns.items():
            if p.cell_topology != self.cell_topology:
                raise ValueError(
                    f"Field {fid} uses {p.cell_topology.name} but the block geometry "
                    f"is {self.cell_topology.name}."
                )

        self._offsets: Dict[int, List[int]] = {
            fid: [-1] * patterns[fid].num_basis() for fid in self.field_ids
        }
        self._sub_cell_offsets: Dict[Tuple[int, int, int], List[int]] = {}
        geom_index: List[int] = []
        slot_field: List[int] = []
        slot_number: List[int] = []

        offset = 0
        for dim in range(self.cell_topology.dimension + 1):
            for sc in range(self.cell_topology.sub_cell_count(dim)):
                g = geom_pattern.geometric_index(dim, sc)
                for fid in self.field_ids:
                    indices = patterns[fid].sub_cell_indices(dim, sc)
                    if len(indices) and g < 0:
                        raise ValueError(
                            f"Geometric pattern is missing sub-cell ({dim}, {sc}) "
                            f"used by field {fid}."
                        )
                    local = []
                    for k, basis_idx in enumerate(indices):
                        self._offsets[fid][basis_idx] = offset
                        local.append(offset)
                        geom_index.append(g)
                        slot_field.append(fid)
                        slot_number.append(k)
                        offset += 1
                    self._sub_cell_offsets[(fid, dim, sc)] = local

        for fid, offsets in self._offsets.items():
            if -1 in offsets:
                raise ValueError(
                    f"Field {fid} has basis functions that are not attached to any sub-cell."
                )

        self._num_basis = offset
        self._geom_index = np.array(geom_index, dtype=np.int64)
        self._slot_field = np.array(slot_field, dtype=np.int64)
        self._slot_number = np.array(slot_number, dtype=np.int64)

    def num_basis(self) -> int:
        """Length of an element's DOF array on this block."""
        return self._num_basis

    def dimension(self) -> int:
        return self.cell_topology.dimension

    def sub_cell_count(self, dim: int) -> int:
        return self.cell_topology.sub_cell_count(dim)

    def sub_cell_indices(self, dim: int, sub_cell_id: int) -> List[int]:
        """All offsets on one sub-cell, over every field."""
        out: List[int] = []
        for fid in self.field_ids:
            out.extend(self._sub_cell_offsets.get((fid, dim, sub_cell_id), []))
        return out

    def field_pattern(self, field_id: int) -> FieldPattern:
        return self._patterns[field_id]

    def local_offsets(self, field_id: int) -> List[int]:
        """
        Offsets of a field's DOFs in the element DOF array, ordered by the
        field's local basis index.

        Raises:
            KeyError: If the field is not active on this block.
        """
        try:
            return list(self._offsets[field_id])
        except KeyError as e:
            raise KeyError(f"Field {e} is not active on this block.") from e

    def local_offsets_by_sub_cell(
        self, field_id: int, sub_cell_dim: int, sub_cell_id: int
    ) -> List[int]:
        """
        Offsets of a field's DOFs on one sub-cell, in the field's slot order.

        An empty list means the field has no DOF on that sub-cell.

        Raises:
            KeyError: If the field is not active on this block.
            IndexError: If the sub-cell does not exist.
        """
        if field_id not in self._offsets:
            raise KeyError(f"Field {field_id} is not active on this block.")
        if not 0 <= sub_cell_id < self.sub_cell_count(sub_cell_dim):
            raise IndexError(
                f"{self.cell_topology.name} has no sub-cell {sub_cell_id} "
                f"of dimension {sub_cell_dim}."
            )
        return list(self._sub_cell_offsets.get((field_id, sub_cell_dim, sub_cell_id), []))

    def slot_layout(
        self,
    ) -> Tuple[npt.NDArray[np.int64], npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        """
        Per offset: geometric sub-cell index, field ID and slot number within
        that (sub-cell, field) pair.
        """
        return self._geom_index, self._slot_field, self._slot_number

    def slot_count(self, field_id: int, sub_cell_dim: int, sub_cell_id: int) -> int:
        """Number of DOFs a field places on one sub-cell."""
        return len(self._sub_cell_offsets.get((field_id, sub_cell_dim, sub_cell_id), []))

    def print_pattern(self, stream: TextIO = sys.stdout) -> None:
        """Writes the layout, one sub-cell per line."""
        stream.write(
            f"FieldAggPattern: {self.cell_topology.name}, fields {self.field_ids}, "
            f"{self._num_basis} DOFs\n"
        )
        for dim, sc in self.geom_pattern.sub_cells():
            parts = []
            for fid in self.field_ids:
                offsets = self._sub_cell_offsets.get((fid, dim, sc), [])
                if offsets:
                    parts.append(f"field {fid} -> {offsets}")
            stream.write(f"  ({dim}, {sc}): {'; '.join(parts)}\n")
