"""
Morphology and skeletonization.

Erode and dilate use a fixed 3x3 neighborhood, clamped at the image edges. Neither
has an in-place variant; to iterate them, alternate between the image and a
temporary:

    with ops.pool.temporary_like(img) as tmp:
        erode(ops, img, tmp)
        dilate(ops, tmp, img)
"""

from typing import TYPE_CHECKING

from .arithmetic import copy
from .core import Scalars
from .draw import border
from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps


def erode(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Per-channel minimum over each 3x3 neighborhood.

    Raises:
        InvalidOperation: If dst is src
    """
    ops.ip.unary_op(ops.ip.find_kernel("Erode"), src, dst)


def dilate(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Per-channel maximum over each 3x3 neighborhood.

    Raises:
        InvalidOperation: If dst is src
    """
    ops.ip.unary_op(ops.ip.find_kernel("Dilate"), src, dst)


def skeletonize(
    ops: "TextureOps", src: DeviceImage, dst: DeviceImage, iterations: int, clear_border: bool = False
) -> None:
    """
    Thin a binary image (first channel > 0.5 is foreground) towards its skeleton.

    Each iteration runs the thinning kernel twice, first with parity 0 into a
    temporary image and then with parity 1 back into dst.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        iterations: Number of thinning iterations
        clear_border: Zero a 1-pixel border afterwards, where the clamped
            neighborhood produces artifacts
    """
    if iterations <= 0:
        copy(ops, src, dst)
    else:
        kernel = ops.ip.find_kernel("Skeletonize")
        with ops.pool.temporary_like(src) as tmp:
            for i in range(iterations):
                ops.ip.unary_op(kernel, src if i == 0 else dst, tmp, Scalars.of(0))
                ops.ip.unary_op(kernel, tmp, dst, Scalars.of(1))

    if clear_border:
        border(ops, dst, dst, (0.0, 0.0, 0.0, 0.0), 1.0)
