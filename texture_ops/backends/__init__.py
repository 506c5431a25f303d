"""
Device implementations bundled with texture_ops.

ReferenceDevice runs every kernel with NumPy on the host; ModernGLDevice runs
GLSL compute programs through ModernGL.
"""

from .gl import ModernGLDevice
from .reference import ReferenceDevice

__all__ = [
    "ModernGLDevice",
    "ReferenceDevice",
]
