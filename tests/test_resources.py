"""
Tests for device images, the temporary pool and histogram buffers.
"""

import logging

import numpy as np
import pytest

from texture_ops import TextureOps
from texture_ops.arithmetic import set_value
from texture_ops.core import ImageFormat
from texture_ops.errors import ResourceLifecycleError, ResourceNotFound


class TestDeviceImage:
    """Tests for DeviceImage creation, transfer and release."""

    def test_upload_download_float(self, ops, rgba_image):
        """Test that float arrays round-trip exactly."""
        image = ops.upload(rgba_image)
        assert image.format is ImageFormat.RGBA32F
        assert image.size == (64, 64)
        assert np.allclose(ops.download(image), rgba_image, atol=1e-6)

    def test_upload_uint8_is_normalized(self, ops):
        """Test that 8-bit data is read back as values in [0, 1]."""
        img = np.arange(16, dtype=np.uint8).reshape(2, 2, 4) * 17
        image = ops.upload(img)
        assert image.format is ImageFormat.RGBA8
        assert np.allclose(image.read(), img / 255.0, atol=1e-6)

    def test_three_channel_formats_promoted(self, ops):
        """Test that writable RGB images become RGBA, read-only ones stay RGB."""
        assert ops.create_image(4, 4, ImageFormat.RGB8).format is ImageFormat.RGBA8
        assert ops.create_image(4, 4, ImageFormat.RGB8, random_write=False).format is ImageFormat.RGB8

    def test_read_region(self, ops, rgba_image):
        """Test reading part of an image."""
        image = ops.upload(rgba_image)
        assert np.allclose(image.read(3, 5, 2, 4), rgba_image[5:9, 3:5], atol=1e-6)

    def test_same_image(self, ops):
        """Test identity comparison."""
        a = ops.create_image(4, 4)
        b = ops.create_image(4, 4)
        assert a.same_image(a)
        assert not a.same_image(b)
        assert not a.same_image(None)

    def test_release(self, ops, device):
        """Test release, double release and use after release."""
        image = ops.create_image(4, 4)
        assert device.live_images == 1
        image.release()
        assert device.live_images == 0
        assert not image.alive
        with pytest.raises(ResourceLifecycleError):
            image.release()
        with pytest.raises(ResourceLifecycleError):
            image.read()


class TestTempImagePool:
    """Tests for the temporary image pool."""

    def test_released_images_are_reused(self, ops):
        """Test that a returned image is handed out again for the same descriptor."""
        pool = ops.pool
        first = pool.acquire(4, 4, ImageFormat.RGBA8)
        pool.release(first)
        assert pool.free_count == 1
        second = pool.acquire(4, 4, ImageFormat.RGBA8)
        assert second is first
        assert pool.leased_count == 1
        third = pool.acquire(4, 4, ImageFormat.R8)
        assert third is not first

    def test_acquire_promotes_format(self, ops):
        """Test that pooled images are always writable."""
        image = ops.pool.acquire(4, 4, ImageFormat.RGB32F)
        assert image.format is ImageFormat.RGBA32F

    def test_acquire_matching(self, ops):
        """Test size and format matching, with and without float forcing."""
        src = ops.create_image(5, 3, ImageFormat.R8)
        same = ops.pool.acquire_matching(src)
        assert same.size == (5, 3)
        assert same.format is ImageFormat.R8
        forced = ops.pool.acquire_matching(src, float_forced=True)
        assert forced.format is ImageFormat.R32F

    def test_double_release(self, ops):
        """Test that releasing a temporary twice is an error."""
        image = ops.pool.acquire(4, 4, ImageFormat.RGBA8)
        ops.pool.release(image)
        with pytest.raises(ResourceLifecycleError):
            ops.pool.release(image)

    def test_release_foreign_image(self, ops):
        """Test that only leased images can be returned."""
        with pytest.raises(ResourceLifecycleError):
            ops.pool.release(ops.create_image(4, 4))

    def test_release_destroyed_temporary(self, ops):
        """Test that a temporary destroyed while leased cannot return to the pool."""
        image = ops.pool.acquire(4, 4, ImageFormat.RGBA8)
        image.release()
        with pytest.raises(ResourceLifecycleError):
            ops.pool.release(image)
        assert ops.pool.leased_count == 0
        assert ops.pool.free_count == 0
        ops.pool.clear()

    def test_returned_temporary_cannot_be_bound(self, ops):
        """Test that a pooled image is rejected as a destination."""
        image = ops.pool.acquire(4, 4, ImageFormat.RGBA8)
        ops.pool.release(image)
        with pytest.raises(ResourceLifecycleError):
            set_value(ops, image, 1.0)

    def test_temporary_released_on_exception(self, ops):
        """Test that the scoped guard releases on every exit path."""
        with pytest.raises(RuntimeError):
            with ops.pool.temporary(4, 4, ImageFormat.RGBA8):
                raise RuntimeError("boom")
        assert ops.pool.leased_count == 0
        assert ops.pool.free_count == 1

    def test_clear_reports_leaked_temporaries(self, ops, device, caplog):
        """Test that clear() destroys everything and warns about leased images."""
        ops.pool.acquire(4, 4, ImageFormat.RGBA8)
        with ops.pool.temporary(8, 8, ImageFormat.RGBA8):
            pass
        with caplog.at_level(logging.WARNING, logger="texture_ops"):
            ops.pool.clear()
        assert "still leased" in caplog.text
        assert device.live_images == 0
        assert ops.pool.free_count == 0


class TestHistogramBuffer:
    """Tests for histogram buffers."""

    def test_shape_and_release(self, ops, device):
        """Test the buffer layout and its release rules."""
        buffer = ops.histogram_buffer()
        assert buffer.read().shape == (256, 4)
        buffer.release()
        assert device.buffers == []
        with pytest.raises(ResourceLifecycleError):
            buffer.read()
        with pytest.raises(ResourceLifecycleError):
            buffer.release()

    def test_context_manager(self, ops, device):
        """Test release on leaving a with-block."""
        with ops.histogram_buffer():
            assert len(device.buffers) == 1
        assert device.buffers == []


class TestTextureOpsContext:
    """Tests for the context object."""

    def test_release_is_idempotent(self, device):
        """Test release and use after release."""
        ctx = TextureOps(device)
        assert ctx.math.program.name == "TextureMath"
        ctx.release()
        ctx.release()
        with pytest.raises(ResourceLifecycleError):
            ctx.math

    def test_context_manager_clears_pool(self, device):
        """Test that leaving the with-block destroys pooled images."""
        with TextureOps(device) as ctx:
            with ctx.pool.temporary(4, 4, ImageFormat.RGBA8):
                pass
            assert device.live_images == 1
        assert device.live_images == 0

    def test_program_loaded_once(self, ops):
        """Test that a family's library is cached."""
        assert ops.ip is ops.ip
        assert ops.library("draw") is ops.draw

    def test_program_name_override(self, device):
        """Test that a missing program surfaces as ResourceNotFound on first use."""
        with TextureOps(device, program_names={"math": "CustomMath"}) as ctx:
            with pytest.raises(ResourceNotFound):
                ctx.math
            assert ctx.ip.program.name == "TextureIP"

    def test_unknown_family(self, ops):
        """Test that an unknown program family is reported as not found."""
        with pytest.raises(ResourceNotFound, match="program family"):
            ops.library("unknown")
