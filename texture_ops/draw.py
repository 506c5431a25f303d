"""
Anti-aliased drawing primitives.

Each pixel becomes lerp(src, color, coverage), where coverage is 1 inside the shape
and ramps to 0 across falloff pixels at its edge.
"""

from typing import TYPE_CHECKING, Sequence

from .core import Scalars, VectorLike
from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps


def circle(
    ops: "TextureOps",
    src: DeviceImage,
    dst: DeviceImage,
    color: VectorLike,
    center: Sequence[float],
    radius: float,
    falloff: float = 0.0,
) -> None:
    """
    Draw a filled circle.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        color: RGBA color
        center: (x, y) center in pixels
        radius: Radius in pixels
        falloff: Width of the soft edge in pixels
    """
    kernel = ops.draw.kernel_pair("Circle", "CircleI")
    ops.draw.unary_op(kernel, src, dst, Scalars.of(color, (center[0], center[1], radius, falloff)))


def line(
    ops: "TextureOps",
    src: DeviceImage,
    dst: DeviceImage,
    color: VectorLike,
    p0: Sequence[float],
    p1: Sequence[float],
    width: float,
    falloff: float = 0.0,
) -> None:
    """
    Draw a line segment with round ends.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        color: RGBA color
        p0: (x, y) start point in pixels
        p1: (x, y) end point in pixels
        width: Line width in pixels
        falloff: Width of the soft edge in pixels
    """
    kernel = ops.draw.kernel_pair("Line", "LineI")
    ops.draw.unary_op(kernel, src, dst, Scalars.of(color, (p0[0], p0[1], p1[0], p1[1]), (width, falloff)))


def border(
    ops: "TextureOps", src: DeviceImage, dst: DeviceImage, color: VectorLike, width: float, falloff: float = 0.0
) -> None:
    """
    Draw a border along the image edges.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        color: RGBA color
        width: Border width in pixels
        falloff: Width of the soft inner edge in pixels
    """
    kernel = ops.draw.kernel_pair("Border", "BorderI")
    ops.draw.unary_op(kernel, src, dst, Scalars.of(color, (width, falloff)))
