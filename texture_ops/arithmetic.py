"""
Per-pixel arithmetic on device images.

Every function takes the TextureOps context first. Passing the same image as src
and dst runs the operation in place through the kernel's in-place variant.
"""

from typing import TYPE_CHECKING

from .core import Scalars, VectorLike, vec4
from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps


def copy(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Copy src into dst, converting between formats.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image of the same size
    """
    if dst.same_image(src):
        return
    ops.math.unary_op(ops.math.find_kernel("Copy"), src, dst)


def set_value(ops: "TextureOps", dst: DeviceImage, value: VectorLike) -> None:
    """Fill every pixel of dst with value."""
    ops.math.unary_op(ops.math.find_kernel("SetC"), None, dst, Scalars.of(value))


def clear(ops: "TextureOps", dst: DeviceImage) -> None:
    """Fill dst with zeros."""
    set_value(ops, dst, 0.0)


def set_masked(
    ops: "TextureOps", src: DeviceImage, dst: DeviceImage, value: VectorLike, channel_mask: VectorLike
) -> None:
    """
    Set selected channels to a constant.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        value: Value written to the masked channels
        channel_mask: Per-channel blend factor, 1 replaces the channel and 0 keeps it
    """
    kernel = ops.math.kernel_pair("SetCMaskedC", "SetCMaskedCI")
    ops.math.unary_op(kernel, src, dst, Scalars.of(value, channel_mask))


def set_masked_image(
    ops: "TextureOps", src: DeviceImage, dst: DeviceImage, value: VectorLike, mask: DeviceImage
) -> None:
    """
    Blend a constant into src, weighted by the first channel of a mask image.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        value: Value blended in where the mask is set
        mask: Mask image of the same size
    """
    kernel = ops.math.kernel_pair("SetCMasked", "SetCMaskedI")
    ops.math.binary_op(kernel, src, mask, dst, Scalars.of(value))


def add(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, value: VectorLike) -> None:
    """dst = src + value"""
    ops.math.unary_op(ops.math.kernel_pair("AddC", "AddCI"), src, dst, Scalars.of(value))


def add_images(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """dst = src_a + src_b"""
    ops.math.binary_op(ops.math.kernel_pair("Add", "AddI"), src_a, src_b, dst)


def add_weighted(
    ops: "TextureOps",
    src_a: DeviceImage,
    src_b: DeviceImage,
    dst: DeviceImage,
    weight_a: VectorLike,
    weight_b: VectorLike,
) -> None:
    """
    dst = src_a * weight_a + src_b * weight_b

    Weights are either scalars applied to all channels or per-channel vectors.
    """
    kernel = ops.math.kernel_pair("AddWeighted", "AddWeightedI")
    ops.math.binary_op(kernel, src_a, src_b, dst, Scalars.of(weight_a, weight_b))


def lerp(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage, t: float) -> None:
    """Linear interpolation, t=0 gives src_a and t=1 gives src_b."""
    add_weighted(ops, src_a, src_b, dst, 1.0 - t, t)


def multiply(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, value: VectorLike) -> None:
    """dst = src * value"""
    ops.math.unary_op(ops.math.kernel_pair("MultiplyC", "MultiplyCI"), src, dst, Scalars.of(value))


def multiply_images(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """dst = src_a * src_b"""
    ops.math.binary_op(ops.math.kernel_pair("Multiply", "MultiplyI"), src_a, src_b, dst)


def multiply_add(
    ops: "TextureOps",
    src: DeviceImage,
    dst: DeviceImage,
    scale: VectorLike,
    offset: VectorLike,
    saturate: bool = False,
) -> None:
    """
    dst = src * scale + offset, optionally clamped to [0, 1].

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        scale: Per-channel scale
        offset: Per-channel offset
        saturate: Clamp the result to [0, 1]
    """
    if saturate:
        kernel = ops.math.kernel_pair("MultiplyCAddCSat", "MultiplyCAddCSatI")
    else:
        kernel = ops.math.kernel_pair("MultiplyCAddC", "MultiplyCAddCI")
    ops.math.unary_op(kernel, src, dst, Scalars.of(scale, offset))


def clamp(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, min_value: VectorLike, max_value: VectorLike) -> None:
    """Clamp each channel to [min_value, max_value]."""
    ops.math.unary_op(ops.math.kernel_pair("Clamp", "ClampI"), src, dst, Scalars.of(min_value, max_value))


def saturate(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Clamp each channel to [0, 1]."""
    ops.math.unary_op(ops.math.kernel_pair("Saturate", "SaturateI"), src, dst)


def remap_coefficients(from_min: VectorLike, from_max: VectorLike, to_min: VectorLike, to_max: VectorLike):
    """
    Scale and offset mapping [from_min, from_max] onto [to_min, to_max] per channel.

    A channel with an empty source range gets scale 0, so it maps to to_min.

    Returns:
        Tuple of (scale, offset) 4-vectors
    """
    from_min, from_max, to_min, to_max = vec4(from_min), vec4(from_max), vec4(to_min), vec4(to_max)
    scale = []
    for f0, f1, t0, t1 in zip(from_min, from_max, to_min, to_max):
        from_delta = f1 - f0
        scale.append(0.0 if from_delta == 0 else (t1 - t0) / from_delta)
    offset = tuple(t0 - f0 * s for t0, f0, s in zip(to_min, from_min, scale))
    return tuple(scale), offset


def remap(
    ops: "TextureOps",
    src: DeviceImage,
    dst: DeviceImage,
    from_min: VectorLike,
    from_max: VectorLike,
    to_min: VectorLike,
    to_max: VectorLike,
    saturate: bool = False,
) -> None:
    """
    Linearly map values from one range to another.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        from_min: Lower bound of the source range
        from_max: Upper bound of the source range
        to_min: Value from_min maps to
        to_max: Value from_max maps to
        saturate: Clamp the result to [0, 1]
    """
    scale, offset = remap_coefficients(from_min, from_max, to_min, to_max)
    multiply_add(ops, src, dst, scale, offset, saturate)
