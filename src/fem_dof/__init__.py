"""
FEM-DOF

A Python package for numbering the degrees of freedom of finite element fields
on partitioned meshes and building the distributed objects a solver needs.
"""

from . import dofmngr
from . import linalg
from . import mesh

__all__ = [
    "dofmngr",
    "linalg",
    "mesh",
]
