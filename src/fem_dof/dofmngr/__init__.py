# -*- coding: utf-8 -*-
"""
Global numbering of finite element degrees of freedom.

Key modules:
- field_pattern:     Where a field's DOFs sit on a reference cell.
- field_registry:    Field names, IDs and per-block patterns.
- field_agg_pattern: The combined DOF layout of an element block.
- resolver:          The collective assignment of GIDs to shared entities.
- dof_manager:       The DOFManager tying the pieces together.
"""

from .field_pattern import BasisFieldPattern, FieldPattern, GeometricAggFieldPattern
from .field_registry import FieldRegistry
from .field_agg_pattern import FieldAggPattern
from .resolver import EntityNumbering, resolve_entity_numbering
from .dof_manager import DOFManager, DOFManagerState
from .reporting import format_field_information

__all__ = [
    "BasisFieldPattern",
    "DOFManager",
    "DOFManagerState",
    "EntityNumbering",
    "FieldAggPattern",
    "FieldPattern",
    "FieldRegistry",
    "GeometricAggFieldPattern",
    "format_field_information",
    "resolve_entity_numbering",
]
