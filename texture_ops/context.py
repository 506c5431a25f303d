"""
The host-constructed context every operation runs against.
"""

from typing import Any, Callable, Dict, Optional

from .core import Device, ImageDescriptor, ImageFormat, NDArray, format_for_array, get_image_dimensions, validate_image_array
from .errors import ResourceLifecycleError, ResourceNotFound
from .operators import OperatorLibrary
from .program import KernelProgram
from .resources import DeviceImage, HistogramBuffer, TempImagePool, create_image
from .settings import DEFAULT_FORMAT, PROGRAM_NAMES, get_logger

logger = get_logger(__name__)


class TextureOps:
    """
    Device, kernel programs and temporary pool for one host.

    Programs are loaded on first use of their operator family and dropped by
    release(); a released context can simply be replaced by a new one. A context
    holds mutable kernel parameter state and must not be shared between threads
    without external serialization.
    """

    def __init__(self, device: Device, program_names: Optional[Dict[str, str]] = None):
        """
        Create a context on a host device.

        Args:
            device: Host device implementing the Device protocol
            program_names: Optional overrides of the program name per family
                ("math", "ip", "draw")
        """
        self.device = device
        self.program_names = dict(PROGRAM_NAMES)
        if program_names:
            self.program_names.update(program_names)
        self.pool = TempImagePool(device)
        self._libraries: Dict[str, OperatorLibrary] = {}
        self._released = False

    def __enter__(self) -> "TextureOps":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def library(self, family: str) -> OperatorLibrary:
        """
        Operator library for a program family, loading the program on first use.

        Raises:
            ResourceNotFound: If the family is unknown or the device does not know its program
            ResourceLifecycleError: If the context was released
        """
        if self._released:
            raise ResourceLifecycleError("TextureOps context used after release")
        lib = self._libraries.get(family)
        if lib is None:
            if family not in self.program_names:
                raise ResourceNotFound("program family", family)
            lib = OperatorLibrary(KernelProgram(self.device, self.program_names[family]))
            self._libraries[family] = lib
        return lib

    @property
    def math(self) -> OperatorLibrary:
        return self.library("math")

    @property
    def ip(self) -> OperatorLibrary:
        return self.library("ip")

    @property
    def draw(self) -> OperatorLibrary:
        return self.library("draw")

    def create_image(
        self, width: int, height: int, fmt: Optional[ImageFormat] = None, random_write: bool = True
    ) -> DeviceImage:
        """
        Allocate a device image owned by the caller.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            fmt: Pixel format (defaults to settings.DEFAULT_FORMAT)
            random_write: Whether the image can be used as a destination

        Returns:
            New DeviceImage; the caller releases it
        """
        fmt = fmt or ImageFormat[DEFAULT_FORMAT]
        return create_image(self.device, ImageDescriptor(width, height, fmt), random_write)

    def create_image_like(self, src: DeviceImage, fmt: Optional[ImageFormat] = None) -> DeviceImage:
        return self.create_image(src.width, src.height, fmt or src.format)

    def upload(self, img: NDArray, fmt: Optional[ImageFormat] = None, random_write: bool = True) -> DeviceImage:
        """
        Create a device image holding the pixels of a host array.

        Args:
            img: HxW or HxWxC array; uint8 data is treated as normalized 0-255
            fmt: Pixel format, derived from the array when omitted
            random_write: Whether the image can be used as a destination

        Returns:
            New DeviceImage; the caller releases it
        """
        validate_image_array(img)
        height, width = get_image_dimensions(img)
        image = self.create_image(width, height, fmt or format_for_array(img), random_write)
        image.write(img)
        return image

    def download(self, image: DeviceImage) -> NDArray:
        """Read a whole image back as a float32 HxWxC array."""
        return image.read()

    def histogram_buffer(self) -> HistogramBuffer:
        return HistogramBuffer(self.device)

    def process(self, operation: Callable[..., Any], img: NDArray, *args, **kwargs) -> NDArray:
        """
        Run an operation on a host array and return the result as a host array.

        The array is uploaded, operation(self, src, dst, *args, **kwargs) is run
        into a fresh image of the same size and format, and the result is read back.

        Args:
            operation: Any texture_ops operation taking (ops, src, dst, ...)
            img: Input image as numpy ndarray

        Returns:
            Processed image as float32 numpy ndarray
        """
        src = self.upload(img)
        try:
            dst = self.create_image_like(src)
            try:
                operation(self, src, dst, *args, **kwargs)
                return self.download(dst)
            finally:
                dst.release()
        finally:
            src.release()

    def release(self) -> None:
        """Release programs and pooled images. Safe to call more than once."""
        if self._released:
            return
        for lib in self._libraries.values():
            lib.program.release()
        self._libraries = {}
        self.pool.clear()
        self._released = True
