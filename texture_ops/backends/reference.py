"""
NumPy reference device.

Implements the Device protocol on the host: images are float32 arrays, kernels are
NumPy functions registered per program, and dispatches run synchronously in
submission order. Writes are quantized to the destination format, so results match
what a GPU stores in the same formats. Used for testing and as a CPU fallback.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core import DST, SRC_A, ImageFormat, NDArray, ProgramInfo
from ..errors import InvalidOperation, ResourceLifecycleError, ResourceNotFound
from ..settings import get_logger
from .reference_kernels import PROGRAMS, ReferenceKernel

logger = get_logger(__name__)


class HostImage:
    """Pixel storage for one reference-device image."""

    def __init__(self, width: int, height: int, fmt: ImageFormat, random_write: bool):
        self.width = width
        self.height = height
        self.format = fmt
        self.random_write = random_write
        self.data = np.zeros((height, width, fmt.channels), dtype=np.float32)
        self.destroyed = False

    def rgba(self) -> NDArray:
        """
        Copy of the pixels as an HxWx4 array.

        Missing channels read as 0, except alpha which reads as 1.
        """
        out = np.zeros((self.height, self.width, 4), dtype=np.float32)
        out[..., 3] = 1.0
        out[..., : self.format.channels] = self.data
        return out

    def quantize(self, values: NDArray) -> NDArray:
        """Round values to what this image's format can store."""
        if not self.format.is_float:
            return np.round(np.clip(values, 0.0, 1.0) * 255.0) / 255.0
        if self.format.bits == 16:
            return values.astype(np.float16).astype(np.float32)
        return values.astype(np.float32)

    def store(self, rgba: NDArray, width: Optional[int] = None, height: Optional[int] = None) -> None:
        """Write the top-left width x height region from an HxWx4 array."""
        width = self.width if width is None else min(width, self.width)
        height = self.height if height is None else min(height, self.height)
        region = rgba[:height, :width, : self.format.channels]
        self.data[:height, :width] = self.quantize(region)


class HostBuffer:
    """Counter buffer of the reference device."""

    def __init__(self, count: int, components: int):
        self.data = np.zeros((count, components), dtype=np.uint32)
        self.destroyed = False


class ProgramState:
    """Kernels of a loaded program and its bound parameters."""

    def __init__(self, name: str, kernels: Sequence[ReferenceKernel]):
        self.name = name
        self.kernels = list(kernels)
        self.textures: Dict[int, Dict[str, HostImage]] = {}
        self.buffers: Dict[int, Dict[str, HostBuffer]] = {}
        self.vectors: Dict[str, NDArray] = {}
        self.released = False


class Invocation:
    """Everything a reference kernel sees during one dispatch."""

    def __init__(self, state: ProgramState, kernel: ReferenceKernel, groups: Tuple[int, int]):
        self.state = state
        self.kernel = kernel
        self.groups = groups

    @property
    def threads(self) -> Tuple[int, int]:
        """Number of threads launched along x and y."""
        xs, ys = self.kernel.group_size
        return self.groups[0] * xs, self.groups[1] * ys

    @property
    def size(self) -> Tuple[int, int]:
        """Pipeline size bound as TextureSize."""
        value = self.vector("TextureSize")
        return int(value[0]), int(value[1])

    def vector(self, slot: str) -> NDArray:
        """A bound 4-vector; unbound registers read as zeros."""
        return self.state.vectors.get(slot, np.zeros(4, dtype=np.float64))

    def image(self, slot: str) -> HostImage:
        try:
            image = self.state.textures[self.kernel.id][slot]
        except KeyError:
            raise InvalidOperation(f"{self.state.name}.{self.kernel.name} has no image bound to {slot}") from None
        if image.destroyed:
            raise ResourceLifecycleError(f"{self.state.name}.{self.kernel.name} uses a destroyed image in {slot}")
        return image

    def buffer(self, slot: str) -> HostBuffer:
        try:
            buffer = self.state.buffers[self.kernel.id][slot]
        except KeyError:
            raise InvalidOperation(f"{self.state.name}.{self.kernel.name} has no buffer bound to {slot}") from None
        if buffer.destroyed:
            raise ResourceLifecycleError(f"{self.state.name}.{self.kernel.name} uses a destroyed buffer")
        return buffer

    def texture(self, slot: str) -> NDArray:
        """RGBA copy of the image bound to slot."""
        return self.image(slot).rgba()

    def source(self) -> NDArray:
        """RGBA copy of the kernel input: SrcA, or Dst for in-place variants."""
        return self.texture(DST if self.kernel.in_place else SRC_A)

    @property
    def dst(self) -> HostImage:
        return self.image(DST)

    def write(self, rgba: NDArray) -> None:
        """Store the part of rgba covered by the launched threads into Dst."""
        tx, ty = self.threads
        self.dst.store(rgba, tx, ty)


class ReadbackRequest:
    """Completed readback; the reference device finishes work at submission."""

    def __init__(self, data: NDArray):
        self._data = data

    def done(self) -> bool:
        return True

    def wait(self) -> NDArray:
        return self._data


class ReferenceDevice:
    """
    Device protocol implemented with NumPy.

    Args:
        programs: Mapping of program name to its kernels; defaults to the bundled
            TextureMath, TextureIP and TextureDraw programs
        async_readback: Advertise and use the asynchronous readback path
    """

    def __init__(self, programs: Optional[Dict[str, List[ReferenceKernel]]] = None, async_readback: bool = False):
        self.programs = PROGRAMS if programs is None else programs
        self.supports_async_readback = async_readback
        self.dispatch_log: List[Tuple[str, str, int, int]] = []
        self.images: List[HostImage] = []
        self.buffers: List[HostBuffer] = []

    @property
    def live_images(self) -> int:
        return len(self.images)

    def load_program(self, name: str) -> ProgramInfo:
        if name not in self.programs:
            raise ResourceNotFound("program", name)
        kernels = self.programs[name]
        state = ProgramState(name, kernels)
        return ProgramInfo(name, [(k.name, k.group_size) for k in kernels], native=state)

    def release_program(self, program: ProgramInfo) -> None:
        program.native.released = True

    def _state(self, program: ProgramInfo) -> ProgramState:
        state = program.native
        if state.released:
            raise ResourceLifecycleError(f"Program '{program.name}' has been released")
        return state

    def create_image(self, width: int, height: int, fmt: ImageFormat, random_write: bool = True) -> HostImage:
        if random_write and not fmt.random_write:
            raise InvalidOperation(f"Format {fmt.name} does not support random write")
        image = HostImage(width, height, fmt, random_write)
        self.images.append(image)
        return image

    def destroy_image(self, image: HostImage) -> None:
        if image.destroyed:
            raise ResourceLifecycleError("Image destroyed twice")
        image.destroyed = True
        self.images.remove(image)

    def write_pixels(self, image: HostImage, data: NDArray) -> None:
        data = np.asarray(data)
        values = data.astype(np.float32)
        if data.dtype == np.uint8:
            values /= 255.0
        if values.ndim == 2:
            values = values[..., np.newaxis]
        if values.shape[:2] != (image.height, image.width):
            raise ValueError(
                f"Pixel data is {values.shape[1]}x{values.shape[0]}, image is {image.width}x{image.height}"
            )
        rgba = np.zeros((image.height, image.width, 4), dtype=np.float32)
        rgba[..., 3] = 1.0
        channels = min(values.shape[2], 4)
        rgba[..., :channels] = values[..., :channels]
        image.store(rgba)

    def read_pixels(self, image: HostImage, x: int, y: int, width: int, height: int) -> NDArray:
        if image.destroyed:
            raise ResourceLifecycleError("Reading a destroyed image")
        return image.data[y : y + height, x : x + width].copy()

    def request_readback(self, image: HostImage, x: int, y: int, width: int, height: int) -> ReadbackRequest:
        return ReadbackRequest(self.read_pixels(image, x, y, width, height))

    def create_buffer(self, count: int, components: int) -> HostBuffer:
        buffer = HostBuffer(count, components)
        self.buffers.append(buffer)
        return buffer

    def destroy_buffer(self, buffer: HostBuffer) -> None:
        buffer.destroyed = True
        self.buffers.remove(buffer)

    def read_buffer(self, buffer: HostBuffer) -> NDArray:
        return buffer.data.copy()

    def bind_texture(self, program: ProgramInfo, kernel_id: int, slot: str, image: HostImage) -> None:
        self._state(program).textures.setdefault(kernel_id, {})[slot] = image

    def bind_vector(self, program: ProgramInfo, slot: str, value: Sequence[float]) -> None:
        vector = np.zeros(4, dtype=np.float64)
        vector[: len(value)] = value
        self._state(program).vectors[slot] = vector

    def bind_buffer(self, program: ProgramInfo, kernel_id: int, slot: str, buffer: Any) -> None:
        self._state(program).buffers.setdefault(kernel_id, {})[slot] = buffer

    def dispatch(self, program: ProgramInfo, kernel_id: int, gx: int, gy: int, gz: int = 1) -> None:
        state = self._state(program)
        kernel = state.kernels[kernel_id]
        self.dispatch_log.append((program.name, kernel.name, gx, gy))
        invocation = Invocation(state, kernel, (gx, gy))
        result = kernel.fn(invocation)
        if result is not None:
            invocation.write(result)

    def kernel_calls(self, name: str) -> int:
        """How many times a kernel was dispatched."""
        return sum(1 for _, kernel, _, _ in self.dispatch_log if kernel == name)
