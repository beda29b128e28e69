# -*- coding: utf-8 -*-
"""
Global numbering of the degrees of freedom of a partitioned mesh.

This module provides the `DOFManager` class. Given a connectivity provider
for the elements a rank holds and a set of registered fields, it assigns
every DOF a global index (GID) that is unique over all ranks and identical on
every rank that sees the DOF, and derives the distributed objects a linear
system needs: the owned and the owned-plus-ghost index maps, the matching
sparsity graphs, and the Import/Export operators between the two layouts.

Lifecycle:
    1. ``set_conn_manager`` (or the constructor) sets the connectivity
       provider and communicator.
    2. ``add_field`` registers fields, any number of times.
    3. ``build_global_unknowns`` numbers the DOFs. This is the one collective
       step: every rank of the communicator must call it.
    4. GIDs, offsets, maps, graphs and transfer operators are available.
    5. ``reset_indices`` drops everything from step 3 (fields stay) and hands
       back the connectivity provider.
"""

import enum
import logging
import sys
from typing import Dict, Hashable, Iterator, List, Optional, Set, TextIO, Tuple, Union

import numpy as np
import numpy.typing as npt

from ..linalg.comm import get_comm
from ..linalg.crs_graph import CrsGraph
from ..linalg.factory import LinearObjFactory
from ..linalg.index_map import IndexMap
from ..linalg.transfer import Export, Import
from .field_agg_pattern import FieldAggPattern
from .field_pattern import FieldPattern, GeometricAggFieldPattern
from .field_registry import FieldRegistry
from .reporting import format_field_information
from .resolver import EntityNumbering, resolve_entity_numbering

logger = logging.getLogger(__name__)


class DOFManagerState(enum.Enum):
    """Whether a DOF manager currently holds a numbering."""

    UNBUILT = "unbuilt"
    BUILT = "built"


class DOFManager:
    """
    Assigns global indices to the DOFs of registered fields on a mesh.

    Attributes:
        state (DOFManagerState): UNBUILT until ``build_global_unknowns``
            succeeds, BUILT afterwards, UNBUILT again after ``reset_indices``.
    """

    def __init__(self, conn_mngr=None, comm=None, factory: Optional[LinearObjFactory] = None):
        """
        Args:
            conn_mngr: Connectivity provider for this rank's elements.
            comm: Communicator; a SerialComm when omitted.
            factory: Builder of maps, graphs and transfer operators.
        """
        self._registry = FieldRegistry()
        self._factory = factory if factory is not None else LinearObjFactory()
        self._conn_mngr = None
        self._comm = None
        self._reset_state()
        if conn_mngr is not None:
            self.set_conn_manager(conn_mngr, comm)

    def _reset_state(self) -> None:
        self.state = DOFManagerState.UNBUILT
        self._geom_patterns: Dict[int, GeometricAggFieldPattern] = {}
        self._field_agg_pattern: Dict[int, FieldAggPattern] = {}
        self._block_to_field: Dict[int, Set[int]] = {}
        self._field_to_elmt_ids: Dict[int, List[int]] = {}
        self._elmt_gids: List[npt.NDArray[np.int64]] = []
        self._numbering: Optional[EntityNumbering] = None
        self._clear_cache()

    def _clear_cache(self) -> None:
        self._map: Optional[IndexMap] = None
        self._overlap_map: Optional[IndexMap] = None
        self._graph: Optional[CrsGraph] = None
        self._overlap_graph: Optional[CrsGraph] = None
        self._overlap_import: Optional[Import] = None
        self._overlap_export: Optional[Export] = None

    def _require_built(self, what: str) -> None:
        if self.state is not DOFManagerState.BUILT:
            raise RuntimeError(
                f"{what} is only available after build_global_unknowns()."
            )

    # =========================================================================
    # Connectivity
    # =========================================================================

    def set_conn_manager(self, conn_mngr, comm=None) -> None:
        """
        Sets the connectivity provider and communicator.

        If a provider is already set, the indices are reset first; registered
        fields are kept. ``build_global_unknowns`` must be called again.
        """
        if conn_mngr is None:
            raise ValueError("A connectivity provider is required.")
        if self._conn_mngr is not None:
            self.reset_indices()
        self._conn_mngr = conn_mngr
        self._comm = get_comm(comm)

    def get_conn_manager(self):
        return self._conn_mngr

    @property
    def comm(self):
        return self._comm

    def reset_indices(self):
        """
        Drops the numbering and every object derived from it.

        Registered fields and patterns are kept. The connectivity provider and
        communicator are released.

        Returns:
            The previous connectivity provider (None if there was none).
        """
        old = self._conn_mngr
        self._conn_mngr = None
        self._comm = None
        self._reset_state()
        return old

    # =========================================================================
    # Fields
    # =========================================================================

    def add_field(
        self, name: str, pattern: FieldPattern, block_id: Optional[int] = None
    ) -> int:
        """
        Registers a field on every element block, or on ``block_id`` only.

        Returns:
            The field number.

        Raises:
            RuntimeError: If the DOFs are already numbered.
            ValueError: If the name is registered with a different pattern.
        """
        if self.state is DOFManagerState.BUILT:
            raise RuntimeError(
                "Fields cannot be added after build_global_unknowns(); "
                "call reset_indices() first."
            )
        return self._registry.add_field(name, pattern, block_id)

    def get_field_num(self, name: str) -> int:
        """The number of a field, or -1 if no field has this name."""
        return self._registry.get_field_num(name)

    def get_field_string(self, field_num: int) -> str:
        """The name of a field number returned by this manager."""
        return self._registry.get_field_string(field_num)

    def get_num_fields(self) -> int:
        return self._registry.get_num_fields()

    def iter_fields(self) -> Iterator[Tuple[int, str]]:
        """Yields ``(field_num, name)`` for every field."""
        return self._registry.iter_fields()

    def is_global_field(self, field_num: int) -> bool:
        return self._registry.is_global(field_num)

    def get_element_block_ids(self) -> List[int]:
        if self._conn_mngr is None:
            return self._registry.blocks_with_explicit_fields()
        return list(self._conn_mngr.get_element_block_ids())

    def get_field_pattern(
        self, block_id: int, field: Union[int, str]
    ) -> Optional[FieldPattern]:
        """The pattern of a field (number or name) on a block, or None."""
        known = None
        if self._conn_mngr is not None:
            known = set(self._conn_mngr.get_element_block_ids())
        return self._registry.get_field_pattern(block_id, field, known)

    # =========================================================================
    # Numbering
    # =========================================================================

    def build_pattern(
        self, block_id: int, geom_pattern: GeometricAggFieldPattern
    ) -> FieldAggPattern:
        """Aggregates the fields active on a block over its geometric pattern."""
        if self._conn_mngr is None:
            raise RuntimeError("set_conn_manager() must be called before build_pattern().")
        block_ids = self._conn_mngr.get_element_block_ids()
        field_patterns = self._registry.block_field_patterns(block_id, block_ids)
        agg = FieldAggPattern(geom_pattern, field_patterns)
        self._geom_patterns[block_id] = geom_pattern
        self._field_agg_pattern[block_id] = agg
        self._block_to_field[block_id] = set(agg.field_ids)
        return agg

    def build_global_unknowns(self) -> None:
        """
        Numbers every DOF. Collective over the communicator.

        Stages: aggregate the patterns of each block, build the element
        connectivity, resolve the global numbering of every (entity, field)
        slot, then compute the GIDs of each element and the field-to-element
        index. Calling it again re-runs every stage.

        Raises:
            RuntimeError: If no connectivity provider is set.
        """
        if self._conn_mngr is None:
            raise RuntimeError("set_conn_manager() must be called before build_global_unknowns().")
        if self.state is DOFManagerState.BUILT:
            logger.debug("Rebuilding the global numbering; previous GIDs are discarded.")
        conn, comm = self._conn_mngr, self._comm
        self._reset_state()

        # 1. patterns
        block_ids = list(conn.get_element_block_ids())
        for block_id in block_ids:
            patterns = [
                p for _, p in self._registry.block_field_patterns(block_id, block_ids)
            ]
            geom = GeometricAggFieldPattern(conn.get_block_topology(block_id), patterns)
            self.build_pattern(block_id, geom)

        # 2. connectivity
        conn.build_connectivity(self._geom_patterns)

        # 3. global numbering
        requests, conflicts = self._collect_requests(block_ids)
        self._numbering = resolve_entity_numbering(
            comm, [(key, f, n) for (key, f), n in requests.items()], conflicts
        )

        # 4. element GIDs
        self._elmt_gids = [np.array([], dtype=np.int64)] * conn.num_elements
        for block_id in block_ids:
            agg = self._field_agg_pattern[block_id]
            geom_index, slot_field, slot_number = agg.slot_layout()
            for elmt in conn.get_element_block(block_id):
                keys = conn.get_connectivity(elmt)
                bases = np.array(
                    [
                        self._numbering.gid_base(keys[g], f)
                        for g, f in zip(geom_index.tolist(), slot_field.tolist())
                    ],
                    dtype=np.int64,
                )
                self._elmt_gids[elmt] = bases + slot_number if bases.size else bases

        # 5. field -> elements
        for block_id in block_ids:
            elmts = [int(e) for e in conn.get_element_block(block_id)]
            for field_num in self._field_agg_pattern[block_id].field_ids:
                self._field_to_elmt_ids.setdefault(field_num, []).extend(elmts)
        for elmts in self._field_to_elmt_ids.values():
            elmts.sort()

        self.state = DOFManagerState.BUILT
        logger.info(
            "Rank %d: numbered %d of %d DOFs over %d elements",
            comm.rank,
            self._numbering.num_owned,
            self._numbering.num_global,
            conn.num_elements,
        )

    def _collect_requests(
        self, block_ids: List[int]
    ) -> Tuple[Dict[Tuple[Hashable, int], int], List[str]]:
        """
        Ordered ``{(entity_key, field_num): num_slots}`` over this rank's elements.

        Blocks that disagree on the DOF count of a field on a shared entity
        are returned as conflict messages, to be raised after the exchange.
        """
        conn = self._conn_mngr
        requests: Dict[Tuple[Hashable, int], int] = {}
        conflicts: List[str] = []
        for block_id in block_ids:
            agg = self._field_agg_pattern[block_id]
            geom = self._geom_patterns[block_id]
            entries = [
                (g, field_num, agg.slot_count(field_num, dim, sc))
                for g, (dim, sc) in enumerate(geom.sub_cells())
                for field_num in agg.field_ids
                if agg.slot_count(field_num, dim, sc) > 0
            ]
            for elmt in conn.get_element_block(block_id):
                keys = conn.get_connectivity(elmt)
                for g, field_num, n in entries:
                    k = (keys[g], field_num)
                    existing = requests.setdefault(k, n)
                    if existing != n:
                        conflicts.append(
                            f"Field {field_num} places {existing} and {n} DOFs on "
                            f"entity {keys[g]} in different blocks."
                        )
        logger.debug("Rank %d: %d numbering requests", self._comm.rank, len(requests))
        return requests, conflicts

    # =========================================================================
    # Element and field accessors
    # =========================================================================

    def get_element_gids(self, local_elmt_id: int) -> List[int]:
        """GIDs of one element, in the layout of its block's aggregated pattern."""
        self._require_built("get_element_gids")
        return self._elmt_gids[local_elmt_id].tolist()

    def _agg_pattern(self, block_id: int) -> FieldAggPattern:
        try:
            return self._field_agg_pattern[block_id]
        except KeyError as e:
            raise KeyError(f"Element block {e} is not known to this DOF manager.") from e

    def get_field_agg_pattern(self, block_id: int) -> FieldAggPattern:
        self._require_built("get_field_agg_pattern")
        return self._agg_pattern(block_id)

    def get_gid_field_offsets(self, block_id: int, field_num: int) -> List[int]:
        """Positions of a field's DOFs in ``get_element_gids`` for elements of a block."""
        self._require_built("get_gid_field_offsets")
        return self._agg_pattern(block_id).local_offsets(field_num)

    def get_gid_field_offsets_by_sub_cell(
        self, block_id: int, field_num: int, sub_cell_dim: int, sub_cell_id: int
    ) -> List[int]:
        """Like ``get_gid_field_offsets``, restricted to one sub-cell of the element."""
        self._require_built("get_gid_field_offsets_by_sub_cell")
        return self._agg_pattern(block_id).local_offsets_by_sub_cell(
            field_num, sub_cell_dim, sub_cell_id
        )

    def get_block_gid_count(self, block_id: int) -> int:
        """Length of ``get_element_gids`` for elements of a block."""
        self._require_built("get_block_gid_count")
        return self._agg_pattern(block_id).num_basis()

    def get_block_field_ids(self, block_id: int) -> List[int]:
        self._require_built("get_block_field_ids")
        return list(self._agg_pattern(block_id).field_ids)

    def get_field_element_ids(self, field_num: int) -> List[int]:
        """Local IDs of the elements on which a field is active."""
        self._require_built("get_field_element_ids")
        return list(self._field_to_elmt_ids.get(field_num, []))

    @property
    def num_owned(self) -> int:
        self._require_built("num_owned")
        return self._numbering.num_owned

    @property
    def num_global(self) -> int:
        self._require_built("num_global")
        return self._numbering.num_global

    def get_owned_indices(self) -> List[int]:
        self._require_built("get_owned_indices")
        return self._numbering.owned_gids().tolist()

    def get_owned_and_shared_indices(self) -> List[int]:
        """Owned GIDs followed by the sorted ghost GIDs."""
        self._require_built("get_owned_and_shared_indices")
        return self._overlap_gids().tolist()

    def _overlap_gids(self) -> npt.NDArray[np.int64]:
        return np.concatenate(
            (self._numbering.owned_gids(), self._numbering.ghost_gids())
        )

    # =========================================================================
    # Distributed objects (collective on first request)
    # =========================================================================

    def get_map(self) -> IndexMap:
        """The owned DOFs."""
        self._require_built("get_map")
        if self._map is None:
            self._map = self._factory.build_map(self._comm, self._numbering.owned_gids())
        return self._map

    def get_overlap_map(self) -> IndexMap:
        """The owned DOFs followed by the ghost DOFs this rank's elements touch."""
        self._require_built("get_overlap_map")
        if self._overlap_map is None:
            self._overlap_map = self._factory.build_map(self._comm, self._overlap_gids())
        return self._overlap_map

    def get_overlap_graph(self) -> CrsGraph:
        """Row per overlapped DOF; columns are the DOFs sharing a local element."""
        self._require_built("get_overlap_graph")
        if self._overlap_graph is None:
            rows: Dict[int, Set[int]] = {}
            for gids in self._elmt_gids:
                cols = gids.tolist()
                for g in cols:
                    rows.setdefault(g, set()).update(cols)
            self._overlap_graph = self._factory.build_graph(
                self.get_overlap_map(), rows, self._numbering.num_global
            )
        return self._overlap_graph

    def get_graph(self) -> CrsGraph:
        """Row per owned DOF, merged over every rank's elements."""
        self._require_built("get_graph")
        if self._graph is None:
            self._graph = self._factory.export_graph(
                self.get_overlap_graph(), self.get_overlap_export(), self.get_map()
            )
        return self._graph

    def get_overlap_import(self) -> Import:
        """Transfers owned values into the overlapped layout."""
        self._require_built("get_overlap_import")
        if self._overlap_import is None:
            self._overlap_import = self._factory.build_import(
                self.get_map(), self.get_overlap_map()
            )
        return self._overlap_import

    def get_overlap_export(self) -> Export:
        """Transfers overlapped contributions to the owning ranks."""
        self._require_built("get_overlap_export")
        if self._overlap_export is None:
            self._overlap_export = self._factory.build_export(
                self.get_overlap_map(), self.get_map()
            )
        return self._overlap_export

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def print_field_information(self, stream: TextIO = sys.stdout) -> None:
        """Writes the registered fields and their block assignments."""
        stream.write(format_field_information(self))
        stream.write("\n")
