# -*- coding: utf-8 -*-
"""
Factory for the distributed linear-algebra objects a DOF manager hands out.

The DOF manager never constructs maps, graphs or transfer operators itself;
it goes through a ``LinearObjFactory`` so that another backend can be
plugged in by passing a different factory with the same four methods.
"""

from typing import Iterable, Mapping, Sequence

from .crs_graph import CrsGraph, export_rows
from .index_map import IndexMap
from .transfer import Export, Import


class LinearObjFactory:
    """Builds IndexMap, CrsGraph, Import and Export objects."""

    def build_map(self, comm, gids: Sequence[int]) -> IndexMap:
        return IndexMap(comm, gids)

    def build_graph(
        self,
        row_map: IndexMap,
        rows: Mapping[int, Iterable[int]],
        num_global_cols: int,
    ) -> CrsGraph:
        return CrsGraph.from_rows(row_map, rows, num_global_cols)

    def build_import(self, source: IndexMap, target: IndexMap) -> Import:
        return Import(source, target)

    def build_export(self, source: IndexMap, target: IndexMap) -> Export:
        return Export(source, target)

    def export_graph(
        self, graph: CrsGraph, exporter: Export, target_map: IndexMap
    ) -> CrsGraph:
        """Merges the rows of ``graph`` onto the ranks owning them in ``target_map``."""
        return export_rows(graph, exporter, target_map)
