"""
Unary and binary operator dispatch with source/destination aliasing resolution.

Many kernels cannot have one image bound both as a readable source and as the
writable destination, so such kernels come in pairs: a normal variant and an
in-place variant that reads and writes Dst only. When Dst is the same image as
SrcA and a pair is given, the in-place variant is dispatched and SrcA is not bound.
There is no swapping of SrcA and SrcB: Dst aliasing SrcB is always rejected.
"""

from typing import Optional, Tuple, Union

from .core import DST, SRC_A, SRC_B, KernelHandle, KernelPair, NativeBuffer, Scalars
from .errors import DimensionMismatch, InvalidOperation
from .program import Dispatcher, KernelProgram
from .resources import DeviceImage
from .settings import get_logger

logger = get_logger(__name__)

KernelSpec = Union[KernelHandle, KernelPair]


def resolve_in_place(
    kernel: KernelSpec, src: Optional[DeviceImage], dst: DeviceImage
) -> Tuple[KernelHandle, Optional[DeviceImage]]:
    """
    Pick the kernel variant for a src/dst combination.

    Args:
        kernel: Single kernel, or a pair with an in-place variant
        src: Image that would be bound as SrcA
        dst: Destination image

    Returns:
        Tuple of (kernel to dispatch, source to bind or None)

    Raises:
        InvalidOperation: If dst aliases src and no in-place variant exists
    """
    if dst.same_image(src):
        if isinstance(kernel, KernelPair):
            return kernel.in_place, None
        raise InvalidOperation(
            f"{kernel} cannot run in place; use a temporary image as destination and copy back"
        )
    if isinstance(kernel, KernelPair):
        return kernel.kernel, src
    return kernel, src


class OperatorLibrary:
    """
    Binds images and scalar registers to a program's kernels and dispatches them.
    """

    def __init__(self, program: KernelProgram):
        self.program = program
        self.dispatcher = Dispatcher(program)

    @property
    def device(self):
        return self.program.device

    def find_kernel(self, name: str) -> KernelHandle:
        return self.program.find_kernel(name)

    def kernel_pair(self, name: str, in_place_name: str) -> KernelPair:
        return self.program.kernel_pair(name, in_place_name)

    def set_size(self, width: int, height: int) -> None:
        self.dispatcher.set_size(width, height)

    def bind_source(self, kernel: KernelHandle, slot: str, image: DeviceImage) -> None:
        image.ensure_alive()
        self.program.set_texture(kernel, slot, image.native)

    def bind_destination(self, kernel: KernelHandle, image: DeviceImage) -> None:
        """
        Bind an image to the Dst slot.

        Raises:
            InvalidOperation: If the image does not support random write
        """
        image.ensure_alive()
        if not image.random_write:
            raise InvalidOperation(f"{image!r} does not support random write and cannot be a destination")
        self.program.set_texture(kernel, DST, image.native)

    def bind_buffer(self, kernel: KernelHandle, slot: str, buffer: NativeBuffer) -> None:
        self.program.set_buffer(kernel, slot, buffer)

    def bind_scalars(self, scalars: Optional[Scalars]) -> None:
        self.program.set_scalars(scalars)

    def dispatch(self, kernel: KernelHandle, groups_x: Optional[int] = None, groups_y: Optional[int] = None) -> None:
        self.dispatcher.dispatch(kernel, groups_x, groups_y)

    def binary_op(
        self,
        kernel: KernelSpec,
        src_a: Optional[DeviceImage],
        src_b: Optional[DeviceImage],
        dst: DeviceImage,
        scalars: Optional[Scalars] = None,
        match_src_b: bool = True,
    ) -> None:
        """
        Bind up to two sources and four scalar registers, then dispatch over dst.

        Args:
            kernel: Kernel, or kernel pair whose in-place variant is used when dst is src_a
            src_a: Image bound to SrcA, or None
            src_b: Image bound to SrcB, or None
            dst: Destination image; also sets the pipeline size
            scalars: Scalar registers to bind
            match_src_b: If False, src_b may differ in size from dst (e.g. a palette)

        Raises:
            InvalidOperation: If dst aliases a source without an in-place variant, or
                dst cannot be randomly written
            DimensionMismatch: If a source's size differs from dst
        """
        if dst.same_image(src_b):
            raise InvalidOperation(f"Destination {dst!r} cannot also be bound as SrcB")
        kernel, src_a = resolve_in_place(kernel, src_a, dst)

        if src_a is not None and src_a.size != dst.size:
            raise DimensionMismatch(f"SrcA of {kernel}", dst.size, src_a.size)
        if src_b is not None and match_src_b and src_b.size != dst.size:
            raise DimensionMismatch(f"SrcB of {kernel}", dst.size, src_b.size)

        self.dispatcher.set_size(dst.width, dst.height)

        if src_a is not None:
            self.bind_source(kernel, SRC_A, src_a)
        if src_b is not None:
            self.bind_source(kernel, SRC_B, src_b)

        self.bind_scalars(scalars)
        self.bind_destination(kernel, dst)
        self.dispatcher.dispatch(kernel)

    def unary_op(
        self,
        kernel: KernelSpec,
        src: Optional[DeviceImage],
        dst: DeviceImage,
        scalars: Optional[Scalars] = None,
    ) -> None:
        """Same as binary_op with no SrcB."""
        self.binary_op(kernel, src, None, dst, scalars)
