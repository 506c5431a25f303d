"""
Texture Ops

GPU-resident 2D image operators dispatched as compute kernels through a host device.
"""

from .arithmetic import (
    add,
    add_images,
    add_weighted,
    clamp,
    clear,
    copy,
    lerp,
    multiply,
    multiply_add,
    multiply_images,
    remap,
    saturate,
    set_masked,
    set_masked_image,
    set_value,
)
from .compositing import (
    compose,
    compose_atop,
    compose_in,
    compose_out,
    compose_over,
    compose_plus,
    compose_xor,
    premultiply,
)
from .context import TextureOps
from .core import Device, ImageDescriptor, ImageFormat, KernelHandle, KernelPair, Scalars
from .distance import distance_transform
from .draw import border, circle, line
from .effects import (
    contrast,
    flip_horizontal,
    flip_vertical,
    grayscale,
    grayscale_gamma,
    hsv_to_rgb,
    lookup,
    rgb_to_hsv,
    rotate_180,
    swizzle,
    threshold,
)
from .errors import DimensionMismatch, InvalidOperation, ResourceLifecycleError, ResourceNotFound, TextureOpsError
from .filters import (
    bilateral,
    blur_gaussian,
    blur_gaussian_recursive,
    median_3x3,
    median_5x5,
    recursive_convolve,
    scharr,
    sobel,
)
from .morphology import dilate, erode, skeletonize
from .resources import DeviceImage, HistogramBuffer, TempImagePool
from .stats import (
    average_value,
    equalize_histogram,
    histogram,
    histogram_buffer,
    max_value,
    min_value,
    reduce,
    sum_value,
)

__all__ = [
    # Core functionality
    "TextureOps",
    "Device",
    "DeviceImage",
    "TempImagePool",
    "HistogramBuffer",
    "ImageDescriptor",
    "ImageFormat",
    "KernelHandle",
    "KernelPair",
    "Scalars",
    # Errors
    "TextureOpsError",
    "ResourceNotFound",
    "InvalidOperation",
    "ResourceLifecycleError",
    "DimensionMismatch",
    # Arithmetic
    "copy",
    "set_value",
    "clear",
    "set_masked",
    "set_masked_image",
    "add",
    "add_images",
    "add_weighted",
    "lerp",
    "multiply",
    "multiply_images",
    "multiply_add",
    "clamp",
    "saturate",
    "remap",
    # Color and geometry
    "grayscale",
    "grayscale_gamma",
    "threshold",
    "rgb_to_hsv",
    "hsv_to_rgb",
    "swizzle",
    "lookup",
    "contrast",
    "flip_horizontal",
    "flip_vertical",
    "rotate_180",
    # Filters
    "blur_gaussian",
    "blur_gaussian_recursive",
    "recursive_convolve",
    "bilateral",
    "median_3x3",
    "median_5x5",
    "sobel",
    "scharr",
    # Morphology and distance
    "erode",
    "dilate",
    "skeletonize",
    "distance_transform",
    # Statistics
    "reduce",
    "max_value",
    "min_value",
    "sum_value",
    "average_value",
    "histogram",
    "histogram_buffer",
    "equalize_histogram",
    # Compositing
    "premultiply",
    "compose",
    "compose_over",
    "compose_in",
    "compose_out",
    "compose_atop",
    "compose_xor",
    "compose_plus",
    # Drawing
    "circle",
    "line",
    "border",
]
