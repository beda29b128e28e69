# -*- coding: utf-8 -*-
"""Human-readable summaries of a DOF manager's fields and numbering."""

from typing import List


def format_field_information(dof_manager) -> str:
    """
    Describes the registered fields and, once built, the per-block layout.

    Args:
        dof_manager: The DOFManager to describe.

    Returns:
        A multi-line string without a trailing newline.
    """
    from .dof_manager import DOFManagerState

    built = dof_manager.state is DOFManagerState.BUILT
    lines: List[str] = ["--- DOF Manager Field Information ---"]
    lines.append(f"State: {dof_manager.state.value}")
    lines.append(f"Fields: {dof_manager.get_num_fields()}")
    for field_num, name in dof_manager.iter_fields():
        scope = "all blocks" if dof_manager.is_global_field(field_num) else "selected blocks"
        lines.append(f"  {field_num:>3d}  {name:<20s} ({scope})")

    if dof_manager.get_conn_manager() is None:
        lines.append("No connectivity manager set.")
        return "\n".join(lines)

    lines.append("")
    lines.append(f"{'Block':>6s} | {'Fields':<24s} | {'DOFs/elem':>9s}")
    lines.append("-" * 46)
    for block_id in dof_manager.get_element_block_ids():
        fields = [
            dof_manager.get_field_string(f)
            for f, _ in dof_manager.iter_fields()
            if dof_manager.get_field_pattern(block_id, f) is not None
        ]
        if built:
            count = str(dof_manager.get_block_gid_count(block_id))
        else:
            count = "-"
        lines.append(f"{block_id:>6d} | {', '.join(fields):<24s} | {count:>9s}")

    if built:
        lines.append("")
        lines.append(
            f"Rank {dof_manager.comm.rank}: {dof_manager.num_owned} owned of "
            f"{dof_manager.num_global} global DOFs"
        )
    return "\n".join(lines)
