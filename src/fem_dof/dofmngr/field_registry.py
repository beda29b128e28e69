# -*- coding: utf-8 -*-
"""
Registry of the solution fields a DOF manager numbers.

Field names map to small integer IDs (0, 1, 2, ... in registration order).
A field is either active on every element block or on selected blocks only;
each (block, field) pair carries the pattern describing where its DOFs sit.
"""

from typing import Collection, Dict, Iterator, List, Optional, Set, Tuple, Union

from .field_pattern import FieldPattern, patterns_equal


class FieldRegistry:
    """
    Bidirectional field name/ID lookup plus per-block field patterns.

    Lookup misses return sentinels (-1 for IDs, None for patterns) instead of
    raising. Registering a known name with a different pattern for the same
    block raises ValueError.
    """

    def __init__(self) -> None:
        self._field_str_to_int: Dict[str, int] = {}
        self._int_to_field_str: Dict[int, str] = {}
        # fields active on every block
        self._global_patterns: Dict[int, FieldPattern] = {}
        # (block id, field id) ==> pattern
        self._block_patterns: Dict[Tuple[int, int], FieldPattern] = {}
        self._block_to_fields: Dict[int, Set[int]] = {}

    def _new_field(self, name: str) -> int:
        field_num = len(self._field_str_to_int)
        self._field_str_to_int[name] = field_num
        self._int_to_field_str[field_num] = name
        return field_num

    def add_field(
        self, name: str, pattern: FieldPattern, block_id: Optional[int] = None
    ) -> int:
        """
        Registers a field, on every block (``block_id=None``) or on one block.

        Re-registering an identical (name, block, pattern) combination is a
        no-op. A new name gets the next unused field ID; a known name keeps
        its ID.

        Returns:
            The field ID.

        Raises:
            ValueError: If ``name`` is already registered with a different
                pattern on an overlapping set of blocks.
        """
        if not name:
            raise ValueError("Field names must be non-empty strings.")

        field_num = self._field_str_to_int.get(name, -1)
        if block_id is None:
            return self._add_global(name, field_num, pattern)

        block_id = int(block_id)
        if field_num >= 0:
            existing = self._block_patterns.get((block_id, field_num))
            if existing is None:
                existing = self._global_patterns.get(field_num)
            if existing is not None and not patterns_equal(existing, pattern):
                raise ValueError(
                    f"Field '{name}' is already registered on block {block_id} "
                    "with a different pattern."
                )
        else:
            field_num = self._new_field(name)

        self._block_patterns[(block_id, field_num)] = pattern
        self._block_to_fields.setdefault(block_id, set()).add(field_num)
        return field_num

    def _add_global(self, name: str, field_num: int, pattern: FieldPattern) -> int:
        if field_num >= 0:
            existing = [self._global_patterns.get(field_num)] + [
                p for (_, f), p in self._block_patterns.items() if f == field_num
            ]
            for p in existing:
                if p is not None and not patterns_equal(p, pattern):
                    raise ValueError(
                        f"Field '{name}' is already registered with a different pattern."
                    )
        else:
            field_num = self._new_field(name)
        self._global_patterns[field_num] = pattern
        return field_num

    def get_field_num(self, name: str) -> int:
        """The field ID of ``name``, or -1 if it is not registered."""
        return self._field_str_to_int.get(name, -1)

    def get_field_string(self, field_num: int) -> str:
        """The name of a field ID produced by this registry."""
        return self._int_to_field_str[field_num]

    def get_num_fields(self) -> int:
        return len(self._int_to_field_str)

    def iter_fields(self) -> Iterator[Tuple[int, str]]:
        """Yields ``(field_num, name)`` in ascending field ID."""
        for field_num in sorted(self._int_to_field_str):
            yield field_num, self._int_to_field_str[field_num]

    def is_global(self, field_num: int) -> bool:
        """True if the field was registered for every block."""
        return field_num in self._global_patterns

    def get_field_pattern(
        self,
        block_id: int,
        field: Union[int, str],
        known_blocks: Optional[Collection[int]] = None,
    ) -> Optional[FieldPattern]:
        """
        The pattern of a field on a block, or None if there is none.

        Args:
            block_id: Element block ID.
            field: Field ID or field name.
            known_blocks: The blocks that exist. A field registered for every
                block has no pattern on a block outside this set. When None,
                every block exists.
        """
        field_num = self.get_field_num(field) if isinstance(field, str) else int(field)
        if field_num < 0:
            return None
        pattern = self._block_patterns.get((block_id, field_num))
        if pattern is not None:
            return pattern
        if field_num in self._global_patterns and (
            known_blocks is None or block_id in known_blocks
        ):
            return self._global_patterns[field_num]
        return None

    def block_to_fields(self, block_ids: Collection[int]) -> Dict[int, Set[int]]:
        """Active field IDs of every block in ``block_ids``."""
        global_fields = set(self._global_patterns)
        return {
            b: global_fields | self._block_to_fields.get(b, set()) for b in block_ids
        }

    def block_field_patterns(
        self, block_id: int, block_ids: Collection[int]
    ) -> List[Tuple[int, FieldPattern]]:
        """``(field_num, pattern)`` pairs active on a block, by ascending field ID."""
        fields = self.block_to_fields(block_ids).get(block_id, set())
        return [
            (f, self.get_field_pattern(block_id, f, block_ids)) for f in sorted(fields)
        ]

    def blocks_with_explicit_fields(self) -> List[int]:
        return sorted(self._block_to_fields)
