"""
Kernel programs and dispatch.

KernelProgram wraps one compute program loaded through the host Device: it resolves
every kernel name to a KernelHandle once at load time and owns the program's mutable
parameter state. Dispatcher tracks the pipeline size and turns image dimensions into
work-group counts.
"""

from typing import Dict, Optional, Sequence, Tuple

from .core import (
    TEXEL_SIZE,
    TEXTURE_SIZE,
    Device,
    KernelHandle,
    KernelPair,
    NativeBuffer,
    NativeImage,
    ProgramInfo,
    Scalars,
    ceil_div,
)
from .errors import InvalidOperation, ResourceLifecycleError, ResourceNotFound
from .settings import get_logger

logger = get_logger(__name__)


class KernelProgram:
    """
    A compute program and its shader parameter set.

    Bound textures, scalar registers and buffers are state of this instance, not of
    a single call, so one KernelProgram must not be used from several threads at once.
    """

    def __init__(self, device: Device, name: str):
        """
        Load a program and resolve all of its kernels.

        Args:
            device: Host device providing program loading and binding
            name: Program name known to the device

        Raises:
            ResourceNotFound: If the device has no program with this name
        """
        self.device = device
        self.name = name
        self.info: Optional[ProgramInfo] = device.load_program(name)
        self.kernels: Dict[str, KernelHandle] = {
            kernel_name: KernelHandle(name, kernel_name, kernel_id, (int(group_size[0]), int(group_size[1])))
            for kernel_id, (kernel_name, group_size) in enumerate(self.info.kernels)
        }
        logger.info("Loaded program %s with %d kernels", name, len(self.kernels))

    def _require_loaded(self) -> ProgramInfo:
        if self.info is None:
            raise ResourceLifecycleError(f"Program '{self.name}' has been released")
        return self.info

    def release(self) -> None:
        """Release the program on the device. Further use raises ResourceLifecycleError."""
        if self.info is not None:
            self.device.release_program(self.info)
            self.info = None

    def find_kernel(self, name: str) -> KernelHandle:
        """
        Look up a kernel by name.

        Raises:
            ResourceNotFound: If the program has no kernel with this name
        """
        self._require_loaded()
        try:
            return self.kernels[name]
        except KeyError:
            raise ResourceNotFound("kernel", name, self.name) from None

    def has_kernel(self, name: str) -> bool:
        return name in self.kernels

    def kernel_pair(self, name: str, in_place_name: str) -> KernelPair:
        """
        Look up a kernel together with its in-place variant.

        Raises:
            ResourceNotFound: If either kernel is missing
            InvalidOperation: If the two variants declare different work-group sizes
        """
        kernel = self.find_kernel(name)
        in_place = self.find_kernel(in_place_name)
        if kernel.group_size != in_place.group_size:
            raise InvalidOperation(
                f"Kernels {kernel} {kernel.group_size} and {in_place} {in_place.group_size} "
                "must share a work-group size"
            )
        return KernelPair(kernel, in_place)

    def work_group_size(self, kernel: KernelHandle) -> Tuple[int, int]:
        return kernel.group_size

    def set_texture(self, kernel: KernelHandle, slot: str, image: NativeImage) -> None:
        self.device.bind_texture(self._require_loaded(), kernel.id, slot, image)

    def set_vector(self, slot: str, value: Sequence[float]) -> None:
        self.device.bind_vector(self._require_loaded(), slot, tuple(value))

    def set_buffer(self, kernel: KernelHandle, slot: str, buffer: NativeBuffer) -> None:
        self.device.bind_buffer(self._require_loaded(), kernel.id, slot, buffer)

    def set_scalars(self, scalars: Optional[Scalars]) -> None:
        if scalars is None:
            return
        for slot, value in scalars.items():
            self.set_vector(slot, value)


class Dispatcher:
    """
    Issues kernel dispatches for one program.

    Holds the pipeline state, the (width, height) every dimension-dependent dispatch
    is sized from.
    """

    def __init__(self, program: KernelProgram):
        self.program = program
        self.width: Optional[int] = None
        self.height: Optional[int] = None

    @property
    def size(self) -> Optional[Tuple[int, int]]:
        if self.width is None:
            return None
        return self.width, self.height

    def set_size(self, width: int, height: int) -> None:
        """
        Set the pipeline size and bind TextureSize / TexelSize on the program.

        Args:
            width: Pipeline width in pixels
            height: Pipeline height in pixels
        """
        self.width = width
        self.height = height
        self.program.set_vector(TEXTURE_SIZE, (width, height))
        self.program.set_vector(TEXEL_SIZE, (1.0 / width, 1.0 / height))

    def group_count(self, kernel: KernelHandle, width: int, height: int) -> Tuple[int, int]:
        """
        Number of work groups needed to cover width x height threads.

        Args:
            kernel: Kernel whose work-group size is used
            width: Threads needed along x
            height: Threads needed along y

        Returns:
            Tuple of (groups x, groups y), rounded up
        """
        xs, ys = kernel.group_size
        return ceil_div(width, xs), ceil_div(height, ys)

    def dispatch(self, kernel: KernelHandle, groups_x: Optional[int] = None, groups_y: Optional[int] = None) -> None:
        """
        Dispatch a kernel.

        With explicit group counts the kernel is dispatched as given; otherwise the
        counts are derived from the pipeline size.

        Raises:
            InvalidOperation: If no group counts are given and no pipeline size is set
        """
        if groups_x is None or groups_y is None:
            if self.size is None:
                raise InvalidOperation(f"Cannot dispatch {kernel} before the pipeline size is set")
            groups_x, groups_y = self.group_count(kernel, self.width, self.height)
        logger.debug("Dispatch %s groups=(%d, %d) size=%s", kernel, groups_x, groups_y, self.size)
        self.program.device.dispatch(self.program._require_loaded(), kernel.id, groups_x, groups_y, 1)
