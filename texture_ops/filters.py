"""
Convolution filters on device images.

Two Gaussian blurs are provided: a separable one whose cost grows with the kernel
size, and a recursive (IIR) one whose cost per pixel is independent of sigma.
"""

import math
from typing import TYPE_CHECKING

from .core import SRC_A, Scalars, Vec4
from .errors import DimensionMismatch, InvalidOperation
from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps


def gaussian_coefficients(size: float, sigma: float = -1.0) -> Vec4:
    """
    Incremental Gaussian coefficients for a kernel of the given size.

    When sigma is not positive it is derived from the size as 0.15 * size + 0.35,
    following OpenCV's getGaussianKernel.

    Args:
        size: Kernel width in pixels
        sigma: Standard deviation, or <= 0 to derive it from size

    Returns:
        (normalization, decay ratio, decay ratio squared, size)
    """
    if sigma <= 0:
        sigma = 0.15 * size + 0.35
    norm = 1.0 / (math.sqrt(2.0 * math.pi) * sigma)
    decay = math.exp(-0.5 / (sigma * sigma))
    return (norm, decay, decay * decay, float(size))


def blur_gaussian(
    ops: "TextureOps", src: DeviceImage, dst: DeviceImage, size: float, sigma: float = -1.0
) -> None:
    """
    Separable Gaussian blur: a horizontal pass into a temporary image, then a
    vertical pass into dst.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        size: Kernel width in pixels
        sigma: Standard deviation, or <= 0 to derive it from size
    """
    coeffs = gaussian_coefficients(size, sigma)
    kernel = ops.ip.find_kernel("BlurGaussian")
    with ops.pool.temporary_like(dst) as tmp:
        # Horizontal
        ops.ip.unary_op(kernel, src, tmp, Scalars(coeffs, (1.0, 0.0, 0.0, 0.0)))
        # Vertical
        ops.ip.unary_op(kernel, tmp, dst, Scalars(coeffs, (0.0, 1.0, 0.0, 0.0)))


def recursive_gaussian_coefficients(sigma: float) -> Vec4:
    """
    Coefficients of the 4th-order recursive Gaussian of Young and van Vliet,
    "Recursive implementation of the Gaussian filter" (1995).

    Args:
        sigma: Standard deviation; below 0.5 there is no blur

    Returns:
        (B, b1, b2, b3) where B is the feed-forward gain and b1..b3 the feedback terms
    """
    if sigma >= 2.5:
        q = 0.98711 * sigma - 0.96330
    elif sigma >= 0.5:
        q = 3.97156 - 4.14554 * math.sqrt(1.0 - 0.26891 * sigma)
    else:
        q = 0.0
    q2 = q * q
    q3 = q * q2

    b0 = 1.57825 + 2.44413 * q + 1.4281 * q2 + 0.422205 * q3
    b1 = (2.44413 * q + 2.85619 * q2 + 1.26661 * q3) / b0
    b2 = (-1.4281 * q2 - 1.26661 * q3) / b0
    b3 = (0.422205 * q3) / b0
    gain = 1.0 - b1 - b2 - b3
    return (gain, b1, b2, b3)


def recursive_convolve(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, coeffs: Vec4) -> None:
    """
    Run a recursive filter forwards and backwards along rows, then columns.

    Texture rows are cheaper to walk than columns, so instead of a column pass the
    backward row pass writes its output transposed and the row passes are repeated:

        1. forward along rows          src  -> dst
        2. backward along rows         dst  -> tmp (transposed)
        3. forward along rows          tmp  -> tmp (in place)
        4. backward along rows         tmp  -> dst (transposed back)

    Each kernel runs one thread per row.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src); must have src's size
        coeffs: (B, b1, b2, b3) filter coefficients
    """
    lib = ops.ip
    if src.size != dst.size:
        raise DimensionMismatch("Recursive convolution", src.size, dst.size)

    fwd_pair = lib.kernel_pair("RecursiveConvolveFwd", "RecursiveConvolveFwdI")
    fwd_in_place = fwd_pair.in_place
    fwd = fwd_in_place if dst.same_image(src) else fwd_pair.kernel
    bak = lib.find_kernel("RecursiveConvolveBak")
    if fwd.group_size != bak.group_size:
        raise InvalidOperation(f"{fwd} and {bak} must share a work-group size")

    lib.bind_scalars(Scalars(tuple(coeffs)))

    rows_groups, _ = lib.dispatcher.group_count(fwd, src.height, 1)
    cols_groups, _ = lib.dispatcher.group_count(fwd, src.width, 1)

    with ops.pool.temporary(dst.height, dst.width, dst.format) as tmp:
        lib.set_size(src.width, src.height)

        # Forward src -> dst
        if fwd is not fwd_in_place:
            lib.bind_source(fwd, SRC_A, src)
        lib.bind_destination(fwd, dst)
        lib.dispatch(fwd, rows_groups, 1)

        # Backward and transpose dst -> tmp
        lib.bind_source(bak, SRC_A, dst)
        lib.bind_destination(bak, tmp)
        lib.dispatch(bak, rows_groups, 1)

        lib.set_size(src.height, src.width)

        # Forward tmp -> tmp
        lib.bind_destination(fwd_in_place, tmp)
        lib.dispatch(fwd_in_place, cols_groups, 1)

        # Backward and transpose tmp -> dst
        lib.bind_source(bak, SRC_A, tmp)
        lib.bind_destination(bak, dst)
        lib.dispatch(bak, cols_groups, 1)


def blur_gaussian_recursive(ops: "TextureOps", src: DeviceImage, dst: DeviceImage, sigma: float) -> None:
    """
    Gaussian blur approximated by a recursive filter; cost does not depend on sigma.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image (may be src)
        sigma: Standard deviation in pixels
    """
    recursive_convolve(ops, src, dst, recursive_gaussian_coefficients(sigma))


def bilateral(
    ops: "TextureOps",
    src: DeviceImage,
    dst: DeviceImage,
    size: float,
    sigma: float = -1.0,
    color_sigma: float = 0.1,
) -> None:
    """
    Edge-preserving blur weighting neighbors by distance and color difference.

    Args:
        ops: TextureOps context
        src: Source image
        dst: Destination image, must not be src
        size: Spatial kernel width in pixels
        sigma: Spatial standard deviation, or <= 0 to derive it from size
        color_sigma: Standard deviation of the color weight
    """
    coeffs = gaussian_coefficients(size, sigma)
    color = (-0.5 / (color_sigma * color_sigma), 0.0, 0.0, 0.0)
    ops.ip.unary_op(ops.ip.find_kernel("Bilateral"), src, dst, Scalars(coeffs, color))


def _neighborhood_filter(ops: "TextureOps", name: str, src: DeviceImage, dst: DeviceImage) -> None:
    # No in-place variant: unary_op rejects dst aliasing src
    ops.ip.unary_op(ops.ip.find_kernel(name), src, dst)


def median_3x3(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Per-channel median of each 3x3 neighborhood. Cannot run in place."""
    _neighborhood_filter(ops, "Median3x3", src, dst)


def median_5x5(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Per-channel median of each 5x5 neighborhood. Cannot run in place."""
    _neighborhood_filter(ops, "Median5x5", src, dst)


def sobel(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Sobel gradient of the first channel.

    dst receives (magnitude, dx, dy, 1). Cannot run in place.
    """
    _neighborhood_filter(ops, "Sobel", src, dst)


def scharr(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """Scharr gradient, laid out like sobel(). Cannot run in place."""
    _neighborhood_filter(ops, "Scharr", src, dst)
