"""
Image statistics: parallel reductions and histograms.
"""

from typing import TYPE_CHECKING, Optional

import numpy as np

from .arithmetic import copy
from .core import HISTOGRAM, SRC_A, NDArray, Vec4, ceil_div
from .resources import DeviceImage, HistogramBuffer
from .settings import get_logger

if TYPE_CHECKING:
    from .context import TextureOps

logger = get_logger(__name__)

REDUCE_KERNELS = ("MaxReduce", "MinReduce", "SumReduce")


def _read_first_pixel(ops: "TextureOps", image: DeviceImage) -> NDArray:
    """Read pixel (0, 0), through the device's async readback path when it has one."""
    device = ops.device
    if getattr(device, "supports_async_readback", False):
        request = device.request_readback(image.native, 0, 0, 1, 1)
        return request.wait()
    return image.read(0, 0, 1, 1)


def reduce(ops: "TextureOps", kernel_name: str, src: DeviceImage) -> Vec4:
    """
    Reduce an image to one value per channel.

    src is copied to a float temporary, then the reduction kernel is dispatched in
    place over a domain that halves (rounding up) in each dimension until it is 1x1.
    Each thread combines a 2x2 block of the previous domain.

    Args:
        ops: TextureOps context
        kernel_name: One of "MaxReduce", "MinReduce" or "SumReduce"
        src: Image to reduce

    Returns:
        The reduced value as a 4-vector; channels src does not have are 0
    """
    if kernel_name not in REDUCE_KERNELS:
        raise ValueError(f"Unknown reduction '{kernel_name}', expected one of {REDUCE_KERNELS}")
    lib = ops.ip
    kernel = lib.find_kernel(kernel_name)

    with ops.pool.temporary_like(src, float_forced=True) as tmp:
        # The kernels work in place, so reduce a copy
        copy(ops, src, tmp)

        width, height = src.width, src.height
        passes = 0
        while width > 1 or height > 1:
            half_width = ceil_div(width, 2)
            half_height = ceil_div(height, 2)

            lib.set_size(width, height)
            lib.bind_destination(kernel, tmp)
            groups_x, groups_y = lib.dispatcher.group_count(kernel, half_width, half_height)
            lib.dispatch(kernel, groups_x, groups_y)

            width, height = half_width, half_height
            passes += 1
        logger.debug("%s over %dx%d took %d passes", kernel_name, src.width, src.height, passes)

        pixel = np.asarray(_read_first_pixel(ops, tmp), dtype=np.float32).reshape(-1)

    value = [0.0] * 4
    value[: min(pixel.size, 4)] = [float(v) for v in pixel[:4]]
    return tuple(value)


def max_value(ops: "TextureOps", src: DeviceImage) -> Vec4:
    """Per-channel maximum pixel value."""
    return reduce(ops, "MaxReduce", src)


def min_value(ops: "TextureOps", src: DeviceImage) -> Vec4:
    """Per-channel minimum pixel value."""
    return reduce(ops, "MinReduce", src)


def sum_value(ops: "TextureOps", src: DeviceImage) -> Vec4:
    """Per-channel sum of all pixel values."""
    return reduce(ops, "SumReduce", src)


def average_value(ops: "TextureOps", src: DeviceImage) -> Vec4:
    """Per-channel mean pixel value."""
    total = sum_value(ops, src)
    count = src.width * src.height
    return tuple(v / count for v in total)


def histogram_buffer(
    ops: "TextureOps", src: DeviceImage, buffer: Optional[HistogramBuffer] = None
) -> HistogramBuffer:
    """
    Compute the 256-bucket, per-channel histogram of src on the device.

    Args:
        ops: TextureOps context
        src: Source image
        buffer: Buffer to fill; a new one is created when omitted

    Returns:
        The filled buffer; the caller must release it
    """
    lib = ops.ip
    owned = buffer is None
    if owned:
        buffer = ops.histogram_buffer()
    buffer.ensure_alive()

    try:
        lib.set_size(src.width, src.height)

        # Clear the histogram
        clear_kernel = lib.find_kernel("HistogramEqClear")
        lib.bind_buffer(clear_kernel, HISTOGRAM, buffer.native)
        lib.dispatch(clear_kernel, 1, 1)

        # Count pixels per bucket
        gather_kernel = lib.find_kernel("HistogramEqGather")
        lib.bind_buffer(gather_kernel, HISTOGRAM, buffer.native)
        lib.bind_source(gather_kernel, SRC_A, src)
        lib.dispatch(gather_kernel)
    except BaseException:
        # A buffer passed in stays with the caller
        if owned:
            buffer.release()
        raise

    return buffer


def histogram(ops: "TextureOps", src: DeviceImage) -> NDArray:
    """
    Per-channel histogram of src.

    Returns:
        (256, 4) uint32 array of bucket counts
    """
    with histogram_buffer(ops, src) as buffer:
        return buffer.read()


def equalize_histogram(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Spread each channel's values so its cumulative distribution becomes linear.

    Passes: clear, gather, accumulate (a sequential prefix sum over the 256
    buckets in a single work group), then map each value to its position in the
    cumulative distribution.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
    """
    lib = ops.ip
    with histogram_buffer(ops, src) as buffer:
        lib.set_size(src.width, src.height)

        # Prefix sum of the buckets
        accumulate_kernel = lib.find_kernel("HistogramEqAccumulate")
        lib.bind_buffer(accumulate_kernel, HISTOGRAM, buffer.native)
        lib.dispatch(accumulate_kernel, 1, 1)

        # Remap input to output
        map_kernel = lib.kernel_pair("HistogramEqMap", "HistogramEqMapI")
        lib.bind_buffer(map_kernel.kernel, HISTOGRAM, buffer.native)
        lib.bind_buffer(map_kernel.in_place, HISTOGRAM, buffer.native)
        lib.binary_op(map_kernel, src, None, dst)
