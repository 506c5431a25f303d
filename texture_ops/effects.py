"""
Color conversion and geometric transforms on device images.
This module provides the TextureIP program's per-pixel color operations and the
flips/rotation, which run in place by dispatching over half the image and swapping
pixel pairs.
"""

from typing import TYPE_CHECKING, Sequence, Union

from .arithmetic import multiply_add
from .core import Scalars, VectorLike
from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps

# Channel letters accepted by swizzle patterns
SWIZZLE_CHANNELS = {
    "r": 0,
    "x": 0,
    "g": 1,
    "y": 1,
    "b": 2,
    "z": 2,
    "a": 3,
    "w": 3,
}


def grayscale(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Convert to grayscale using linear luminance weights, preserving alpha.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
    """
    ops.ip.unary_op(ops.ip.kernel_pair("Grayscale", "GrayscaleI"), src, dst)


def grayscale_gamma(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Convert gamma-encoded colors to grayscale, preserving alpha."""
    ops.ip.unary_op(ops.ip.kernel_pair("GrayscaleGamma", "GrayscaleGammaI"), src, dst)


def threshold(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, level: VectorLike) -> None:
    """
    Per-channel step: 1 where the channel is at least level, else 0.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        level: Threshold, scalar or per channel
    """
    ops.ip.unary_op(ops.ip.kernel_pair("Threshold", "ThresholdI"), src, dst, Scalars.of(level))


def rgb_to_hsv(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Convert RGB to HSV with all components in [0, 1]; alpha is kept."""
    ops.ip.unary_op(ops.ip.kernel_pair("ConvertRGB2HSV", "ConvertRGB2HSVI"), src, dst)


def hsv_to_rgb(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Convert HSV back to RGB; alpha is kept."""
    ops.ip.unary_op(ops.ip.kernel_pair("ConvertHSV2RGB", "ConvertHSV2RGBI"), src, dst)


def parse_swizzle(pattern: str) -> Sequence[int]:
    """
    Map a swizzle pattern such as "bgra" or "xxxw" to channel indices.

    Patterns shorter than four letters select channel 0 for the missing positions.

    Raises:
        ValueError: If the pattern is longer than 4 or has an unknown letter
    """
    if len(pattern) > 4:
        raise ValueError(f"Swizzle pattern must have at most 4 letters, got '{pattern}'")
    channels = [0, 0, 0, 0]
    for i, letter in enumerate(pattern.lower()):
        if letter not in SWIZZLE_CHANNELS:
            raise ValueError(f"Unknown swizzle channel '{letter}' in '{pattern}'")
        channels[i] = SWIZZLE_CHANNELS[letter]
    return channels


def swizzle(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, channels: Union[str, Sequence[int]]) -> None:
    """
    Reorder channels.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        channels: Pattern string like "abgr", or four source channel indices
    """
    if isinstance(channels, str):
        channels = parse_swizzle(channels)
    if len(channels) != 4 or any(not 0 <= c <= 3 for c in channels):
        raise ValueError(f"Swizzle needs four channel indices in 0..3, got {channels}")
    ops.ip.unary_op(ops.ip.kernel_pair("Swizzle", "SwizzleI"), src, dst, Scalars.of(channels))


def lookup(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, palette: DeviceImage) -> None:
    """
    Replace each pixel with the palette entry indexed by its first channel.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        palette: Palette image; its first row is sampled across its width
    """
    kernel = ops.ip.kernel_pair("Lookup", "LookupI")
    ops.ip.binary_op(kernel, src, palette, dst, match_src_b=False)


def contrast_coefficients(amount: float):
    """
    Scale and offset for a contrast change around mid-gray.

    Negative amounts map to 1 / (1 - amount), positive ones to 1 + amount; alpha
    is left untouched.

    Returns:
        Tuple of (scale, offset) 4-vectors
    """
    amount = 1.0 / (1.0 - amount) if amount < 0 else 1.0 + amount
    scale = (amount, amount, amount, 1.0)
    # (x - 0.5) * amount + 0.5 == x * amount + 0.5 * (1 - amount)
    offset = tuple(0.5 * (1.0 - s) for s in scale)
    return scale, offset


def contrast(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, amount: float) -> None:
    """
    Increase (amount > 0) or decrease (amount < 0) contrast.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        amount: Contrast change, 0 leaves the image unchanged
    """
    scale, offset = contrast_coefficients(amount)
    multiply_add(ops, src, dst, scale, offset)


def _partial_dispatch(ops: "TextureOps", kernel_name: str, dst: DeviceImage, width: int, height: int) -> None:
    """Dispatch an in-place swap kernel over only width x height pixels of dst."""
    lib = ops.ip
    kernel = lib.find_kernel(kernel_name)
    lib.set_size(dst.width, dst.height)
    lib.bind_destination(kernel, dst)
    groups_x, groups_y = lib.dispatcher.group_count(kernel, width, height)
    lib.dispatch(kernel, groups_x, groups_y)


def _geometric(ops: "TextureOps", name: str, src: DeviceImage, dst: DeviceImage, half_width: bool) -> None:
    if not dst.same_image(src):
        ops.ip.unary_op(ops.ip.find_kernel(name), src, dst)
    elif half_width:
        _partial_dispatch(ops, name + "I", dst, (dst.width + 1) // 2, dst.height)
    else:
        _partial_dispatch(ops, name + "I", dst, dst.width, (dst.height + 1) // 2)


def flip_horizontal(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Mirror left to right."""
    _geometric(ops, "FlipHorizontal", src, dst, half_width=True)


def flip_vertical(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Mirror top to bottom."""
    _geometric(ops, "FlipVertical", src, dst, half_width=False)


def rotate_180(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Rotate by 180 degrees."""
    _geometric(ops, "Rotate180", src, dst, half_width=False)
