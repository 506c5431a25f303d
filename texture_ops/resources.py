"""
Device images, the temporary image pool and histogram buffers.
"""

import contextlib
from collections import defaultdict
from typing import Dict, Iterator, List, Optional

from .core import Device, ImageDescriptor, ImageFormat, NativeBuffer, NativeImage, NDArray
from .errors import ResourceLifecycleError
from .settings import HISTOGRAM_BINS, HISTOGRAM_CHANNELS, get_logger

logger = get_logger(__name__)


class DeviceImage:
    """
    A device-resident 2D image.

    Owns the device memory for one ImageDescriptor. Images handed out by a
    TempImagePool are borrowed: once returned to the pool they must not be used.
    """

    def __init__(self, device: Device, native: NativeImage, descriptor: ImageDescriptor, random_write: bool = True):
        self.device = device
        self.native = native
        self.descriptor = descriptor
        self.random_write = random_write
        self._released = False
        # Set while the image sits unused in a pool free list
        self._pooled = False

    def __repr__(self) -> str:
        d = self.descriptor
        return f"DeviceImage({d.width}x{d.height} {d.format.name})"

    @property
    def width(self) -> int:
        return self.descriptor.width

    @property
    def height(self) -> int:
        return self.descriptor.height

    @property
    def size(self):
        return self.descriptor.size

    @property
    def format(self) -> ImageFormat:
        return self.descriptor.format

    @property
    def channels(self) -> int:
        return self.descriptor.channels

    @property
    def alive(self) -> bool:
        return not (self._released or self._pooled)

    def ensure_alive(self) -> None:
        """
        Raises:
            ResourceLifecycleError: If the image was released or returned to its pool
        """
        if self._released:
            raise ResourceLifecycleError(f"{self!r} used after release")
        if self._pooled:
            raise ResourceLifecycleError(f"{self!r} used after being returned to the temporary pool")

    def same_image(self, other: Optional["DeviceImage"]) -> bool:
        """True if other refers to the same underlying device image."""
        return other is not None and (other is self or other.native is self.native)

    def read(self, x: int = 0, y: int = 0, width: Optional[int] = None, height: Optional[int] = None) -> NDArray:
        """Copy a region of the image to host memory, blocking until done."""
        self.ensure_alive()
        width = self.width - x if width is None else width
        height = self.height - y if height is None else height
        return self.device.read_pixels(self.native, x, y, width, height)

    def write(self, data: NDArray) -> None:
        """Upload host pixels covering the whole image."""
        self.ensure_alive()
        self.device.write_pixels(self.native, data)

    def release(self) -> None:
        """
        Destroy the device image.

        Raises:
            ResourceLifecycleError: If the image was already released
        """
        if self._released:
            raise ResourceLifecycleError(f"{self!r} released twice")
        self._released = True
        self.device.destroy_image(self.native)


def create_image(device: Device, descriptor: ImageDescriptor, random_write: bool = True) -> DeviceImage:
    """
    Allocate a device image, promoting the format if it cannot be written randomly.

    Args:
        device: Host device
        descriptor: Requested size and format
        random_write: Whether the image must be usable as a kernel destination

    Returns:
        New DeviceImage, whose descriptor holds the format actually allocated
    """
    if random_write:
        descriptor = descriptor.with_format(descriptor.format.compatible())
    native = device.create_image(descriptor.width, descriptor.height, descriptor.format, random_write)
    return DeviceImage(device, native, descriptor, random_write)


class TempImagePool:
    """
    Pool of temporary device images keyed by descriptor.

    acquire/release must be strictly paired; prefer the temporary() and
    temporary_like() context managers, which release on every exit path.
    """

    def __init__(self, device: Device):
        self.device = device
        self._free: Dict[ImageDescriptor, List[DeviceImage]] = defaultdict(list)
        self._leased: Dict[int, DeviceImage] = {}

    @property
    def leased_count(self) -> int:
        return len(self._leased)

    @property
    def free_count(self) -> int:
        return sum(len(images) for images in self._free.values())

    def acquire(self, width: int, height: int, fmt: ImageFormat) -> DeviceImage:
        """
        Borrow a writable image of the given size.

        The format is promoted to a random-write compatible one when needed, e.g.
        RGB8 becomes RGBA8.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            fmt: Requested pixel format

        Returns:
            A borrowed DeviceImage; pass it back to release() when done
        """
        descriptor = ImageDescriptor(width, height, fmt.compatible())
        free = self._free[descriptor]
        if free:
            image = free.pop()
            image._pooled = False
        else:
            image = create_image(self.device, descriptor)
            logger.debug("Temporary pool allocated %r", image)
        self._leased[id(image)] = image
        return image

    def acquire_matching(self, src: DeviceImage, float_forced: bool = False) -> DeviceImage:
        """
        Borrow an image with the size of src.

        Args:
            src: Reference image
            float_forced: If True, use a 32-bit float format with the same channel
                count instead of src's format (for accumulation without overflow)

        Returns:
            A borrowed DeviceImage
        """
        fmt = src.format.float_equivalent() if float_forced else src.format
        return self.acquire(src.width, src.height, fmt)

    def release(self, image: DeviceImage) -> None:
        """
        Return a borrowed image to the pool.

        Raises:
            ResourceLifecycleError: If the image is not currently leased from this pool,
                or was destroyed while leased
        """
        if self._leased.pop(id(image), None) is None:
            raise ResourceLifecycleError(f"{image!r} was not acquired from this pool or was already released")
        if image._released:
            # Dropped from the lease table so clear() does not destroy it again
            raise ResourceLifecycleError(f"{image!r} was destroyed while leased and cannot return to the pool")
        image._pooled = True
        self._free[image.descriptor].append(image)

    @contextlib.contextmanager
    def temporary(self, width: int, height: int, fmt: ImageFormat) -> Iterator[DeviceImage]:
        """Borrow an image for the duration of a with-block."""
        image = self.acquire(width, height, fmt)
        try:
            yield image
        finally:
            self.release(image)

    @contextlib.contextmanager
    def temporary_like(self, src: DeviceImage, float_forced: bool = False) -> Iterator[DeviceImage]:
        """Borrow an image matching src for the duration of a with-block."""
        image = self.acquire_matching(src, float_forced)
        try:
            yield image
        finally:
            self.release(image)

    def clear(self) -> None:
        """Destroy all pooled images. Images still leased are reported and destroyed too."""
        if self._leased:
            logger.warning("Temporary pool cleared with %d image(s) still leased", len(self._leased))
            for image in self._leased.values():
                image.release()
            self._leased.clear()
        for images in self._free.values():
            for image in images:
                image._pooled = False
                image.release()
        self._free.clear()


class HistogramBuffer:
    """
    Device buffer of 256 buckets x 4 unsigned counters, one per color channel.

    The caller owns the buffer and must release it; it can be used as a context manager.
    """

    def __init__(self, device: Device, bins: int = HISTOGRAM_BINS, channels: int = HISTOGRAM_CHANNELS):
        self.device = device
        self.bins = bins
        self.channels = channels
        self.native: Optional[NativeBuffer] = device.create_buffer(bins, channels)

    def __enter__(self) -> "HistogramBuffer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def ensure_alive(self) -> None:
        if self.native is None:
            raise ResourceLifecycleError("Histogram buffer used after release")

    def read(self) -> NDArray:
        """Copy the counters to host memory as a (bins, channels) array."""
        self.ensure_alive()
        return self.device.read_buffer(self.native).reshape(self.bins, self.channels)

    def release(self) -> None:
        if self.native is None:
            raise ResourceLifecycleError("Histogram buffer released twice")
        self.device.destroy_buffer(self.native)
        self.native = None
