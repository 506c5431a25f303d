"""
Core types for GPU image processing.
This module defines the data model shared by every layer: pixel formats, image
descriptors, kernel handles, scalar parameter sets and the Device protocol that a
host implements to run kernels on its compute device.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Iterator, List, NamedTuple, Optional, Protocol, Sequence, Tuple, Union

import numpy as np

# Type aliases for cleaner type annotations
NDArray = np.ndarray
Vec4 = Tuple[float, float, float, float]
VectorLike = Union[float, int, Sequence[float]]
GroupSize = Tuple[int, int]
NativeImage = Any
NativeBuffer = Any

# Texture slot names bound on kernels
SRC = "Src"
SRC_A = "SrcA"
SRC_B = "SrcB"
DST = "Dst"

# Scalar registers, each holding a 4-component vector
SCALAR_A = "ScalarA"
SCALAR_B = "ScalarB"
SCALAR_C = "ScalarC"
SCALAR_D = "ScalarD"
SCALAR_SLOTS = (SCALAR_A, SCALAR_B, SCALAR_C, SCALAR_D)

# Pipeline-state registers bound by the dispatcher
TEXTURE_SIZE = "TextureSize"
TEXEL_SIZE = "TexelSize"

# Buffer slot used by the histogram kernels
HISTOGRAM = "Histogram"


class ImageFormat(enum.Enum):
    """
    Pixel formats understood by the library.

    Each member carries (channels, representation, bits per channel, random write).
    Three-channel formats cannot be bound as writable images on most devices.
    """

    R8 = (1, "unorm", 8, True)
    RG8 = (2, "unorm", 8, True)
    RGB8 = (3, "unorm", 8, False)
    RGBA8 = (4, "unorm", 8, True)
    R16F = (1, "float", 16, True)
    RG16F = (2, "float", 16, True)
    RGB16F = (3, "float", 16, False)
    RGBA16F = (4, "float", 16, True)
    R32F = (1, "float", 32, True)
    RG32F = (2, "float", 32, True)
    RGB32F = (3, "float", 32, False)
    RGBA32F = (4, "float", 32, True)

    def __init__(self, channels: int, representation: str, bits: int, random_write: bool):
        self.channels = channels
        self.representation = representation
        self.bits = bits
        self.random_write = random_write

    @property
    def is_float(self) -> bool:
        return self.representation == "float"

    @property
    def dtype(self) -> np.dtype:
        """Host dtype matching one channel of this format."""
        if not self.is_float:
            return np.dtype(np.uint8)
        return np.dtype(np.float16 if self.bits == 16 else np.float32)

    @classmethod
    def find(cls, channels: int, representation: str, bits: int) -> "ImageFormat":
        """
        Look up the format with the given layout.

        Raises:
            ValueError: If no format has that layout
        """
        for fmt in cls:
            if fmt.channels == channels and fmt.representation == representation and fmt.bits == bits:
                return fmt
        raise ValueError(f"No image format with {channels} {representation}{bits} channels")

    def compatible(self) -> "ImageFormat":
        """Return this format, or its 4-channel equivalent if it lacks random-write support."""
        if self.random_write:
            return self
        return ImageFormat.find(4, self.representation, self.bits)

    def float_equivalent(self) -> "ImageFormat":
        """Return the 32-bit float format with a compatible channel count."""
        return {1: ImageFormat.R32F, 2: ImageFormat.RG32F}.get(self.channels, ImageFormat.RGBA32F)


@dataclass(frozen=True)
class ImageDescriptor:
    """Size and pixel format of a device image."""

    width: int
    height: int
    format: ImageFormat

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {self.width}x{self.height}")

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def channels(self) -> int:
        return self.format.channels

    @property
    def is_float(self) -> bool:
        return self.format.is_float

    def with_format(self, fmt: ImageFormat) -> "ImageDescriptor":
        return ImageDescriptor(self.width, self.height, fmt)

    def transposed(self) -> "ImageDescriptor":
        return ImageDescriptor(self.height, self.width, self.format)


def vec4(value: VectorLike) -> Vec4:
    """
    Convert a scalar or short sequence into a 4-component float vector.

    A scalar is broadcast to all four components; a sequence shorter than four
    is padded with zeros.

    Args:
        value: Scalar, or sequence of at most 4 numbers

    Returns:
        Tuple of four floats

    Raises:
        ValueError: If the sequence has more than four components
    """
    if np.ndim(value) == 0:
        v = float(value)
        return (v, v, v, v)
    values = [float(v) for v in value]
    if len(values) > 4:
        raise ValueError(f"Expected at most 4 components, got {len(values)}")
    values.extend([0.0] * (4 - len(values)))
    return tuple(values)


@dataclass(frozen=True)
class Scalars:
    """
    Scalar registers for one dispatch.

    Only registers that were given are bound; unset registers keep whatever value
    the program last received.
    """

    a: Optional[Vec4] = None
    b: Optional[Vec4] = None
    c: Optional[Vec4] = None
    d: Optional[Vec4] = None

    @classmethod
    def of(cls, *values: Optional[VectorLike]) -> "Scalars":
        """Build from up to four positional values, None leaving a register unset."""
        if len(values) > 4:
            raise ValueError(f"At most 4 scalar registers, got {len(values)}")
        converted = [None if v is None else vec4(v) for v in values]
        return cls(*converted)

    def items(self) -> Iterator[Tuple[str, Vec4]]:
        """Yield (register slot, value) for every register that is set."""
        for slot, value in zip(SCALAR_SLOTS, (self.a, self.b, self.c, self.d)):
            if value is not None:
                yield slot, value


@dataclass(frozen=True)
class KernelHandle:
    """A kernel entry point resolved once when its program is loaded."""

    program: str
    name: str
    id: int
    group_size: GroupSize

    def __str__(self) -> str:
        return f"{self.program}.{self.name}"


class KernelPair(NamedTuple):
    """A kernel and its variant that is safe to run with Dst aliasing SrcA."""

    kernel: KernelHandle
    in_place: KernelHandle


@dataclass
class ProgramInfo:
    """What a device reports after loading a program."""

    name: str
    kernels: List[Tuple[str, GroupSize]]
    native: Any = field(default=None, repr=False)


class Device(Protocol):
    """
    Capabilities a host provides to run kernels.

    Program loading, image allocation, parameter binding, dispatch and readback.
    texture_ops never implements these itself; see texture_ops.backends for the
    bundled implementations.
    """

    supports_async_readback: bool

    def load_program(self, name: str) -> ProgramInfo: ...

    def release_program(self, program: ProgramInfo) -> None: ...

    def create_image(self, width: int, height: int, fmt: ImageFormat, random_write: bool = True) -> NativeImage: ...

    def destroy_image(self, image: NativeImage) -> None: ...

    def write_pixels(self, image: NativeImage, data: NDArray) -> None: ...

    def read_pixels(self, image: NativeImage, x: int, y: int, width: int, height: int) -> NDArray: ...

    def request_readback(self, image: NativeImage, x: int, y: int, width: int, height: int) -> Any: ...

    def create_buffer(self, count: int, components: int) -> NativeBuffer: ...

    def destroy_buffer(self, buffer: NativeBuffer) -> None: ...

    def read_buffer(self, buffer: NativeBuffer) -> NDArray: ...

    def bind_texture(self, program: ProgramInfo, kernel_id: int, slot: str, image: NativeImage) -> None: ...

    def bind_vector(self, program: ProgramInfo, slot: str, value: Sequence[float]) -> None: ...

    def bind_buffer(self, program: ProgramInfo, kernel_id: int, slot: str, buffer: NativeBuffer) -> None: ...

    def dispatch(self, program: ProgramInfo, kernel_id: int, gx: int, gy: int, gz: int = 1) -> None: ...


def ceil_div(value: int, divisor: int) -> int:
    """Integer division rounding up."""
    return (value + divisor - 1) // divisor


def jump_flood_passes(width: int, height: int) -> int:
    """Number of jump-flood passes needed to cover an image of the given size."""
    return int(math.ceil(math.log2(max(width, height)))) if max(width, height) > 1 else 0


def validate_image_array(img: NDArray) -> None:
    """
    Validates that a host array can be uploaded as an image.

    Args:
        img: Input image as numpy ndarray, HxW or HxWxC with 1 to 4 channels

    Raises:
        ValueError: If the array is not a 2D or 3D image with 1 to 4 channels
    """
    if img.ndim not in (2, 3):
        raise ValueError(f"Image must be 2D or 3D array, got {img.ndim}D array")
    if img.ndim == 3 and not 1 <= img.shape[2] <= 4:
        raise ValueError(f"Image must have 1 to 4 channels, got {img.shape[2]} channels")


def get_image_dimensions(img: NDArray) -> Tuple[int, int]:
    """
    Extract the height and width from an image array.

    Args:
        img: Input image as numpy ndarray

    Returns:
        Tuple of (height, width)
    """
    height, width = img.shape[:2]
    return height, width


def format_for_array(img: NDArray) -> ImageFormat:
    """
    Pick the image format matching a host array's channels and dtype.

    uint8 arrays map to normalized 8-bit formats, float16 to half formats and
    everything else to 32-bit float formats.
    """
    channels = 1 if img.ndim == 2 else img.shape[2]
    if img.dtype == np.uint8:
        return ImageFormat.find(channels, "unorm", 8)
    if img.dtype == np.float16:
        return ImageFormat.find(channels, "float", 16)
    return ImageFormat.find(channels, "float", 32)
