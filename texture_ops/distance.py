"""
Distance transform by jump flooding.

Every pixel whose first channel is non-zero seeds itself; the other pixels start
with no seed. Each pass looks at the seeds found by the 8 neighbors at +-step and
keeps the closest, with the step halving from 2^(n-1) down to 1. After n passes
each pixel holds (distance, seed x, seed y, seed value) for its nearest seed.

Based on the approach of https://github.com/alpacasking/JumpFloodingAlgorithm
"""

from typing import TYPE_CHECKING

from .arithmetic import copy
from .core import ImageFormat, Scalars, jump_flood_passes
from .resources import DeviceImage
from .settings import get_logger

if TYPE_CHECKING:
    from .context import TextureOps

logger = get_logger(__name__)


def distance_transform(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, squared: bool = False) -> None:
    """
    Distance from each pixel to the nearest non-zero pixel.

    A 4-channel dst receives (distance, seed x, seed y, seed value); fewer channels
    keep the leading components. Pixels with no seed anywhere in the image hold a
    very large distance.

    Args:
        ops: TextureOps context
        src: Source image; seeds are pixels with a non-zero first channel
        dst: Destination image of the same size (may be src)
        squared: Leave squared distances, skipping the square-root pass
    """
    lib = ops.ip
    num_passes = jump_flood_passes(src.width, src.height)
    step_kernel = lib.find_kernel("DistanceTransformStep")

    with ops.pool.temporary(src.width, src.height, ImageFormat.RGBA32F) as tmp1, ops.pool.temporary(
        src.width, src.height, ImageFormat.RGBA32F
    ) as tmp2:
        lib.unary_op(lib.find_kernel("DistanceTransformInit"), src, tmp1)

        step = 1 << (num_passes - 1) if num_passes > 0 else 0
        for _ in range(num_passes):
            lib.unary_op(step_kernel, tmp1, tmp2, Scalars.of((step, 0, 0, 0)))
            tmp1, tmp2 = tmp2, tmp1
            step >>= 1
        logger.debug("Distance transform %dx%d used %d jump-flood passes", src.width, src.height, num_passes)

        if not squared:
            lib.unary_op(lib.find_kernel("DistanceTransformSqrt"), tmp1, tmp2)
            tmp1, tmp2 = tmp2, tmp1

        copy(ops, tmp1, dst)
