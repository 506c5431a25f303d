"""
Tests for the filters module of texture_ops.
"""

import math

import numpy as np
import pytest

from texture_ops.core import ImageFormat
from texture_ops.errors import DimensionMismatch, InvalidOperation
from texture_ops.filters import (
    bilateral,
    blur_gaussian,
    blur_gaussian_recursive,
    gaussian_coefficients,
    median_3x3,
    median_5x5,
    recursive_convolve,
    recursive_gaussian_coefficients,
    scharr,
    sobel,
)


def _uniform(ops, width, height, value):
    return ops.upload(np.full((height, width, 4), value, dtype=np.float32))


class TestSeparableBlur:
    """Tests for the two-pass Gaussian blur."""

    def test_gaussian_coefficients(self):
        """Test the incremental coefficients and the derived sigma."""
        norm, decay, decay2, size = gaussian_coefficients(5)
        sigma = 0.15 * 5 + 0.35
        assert norm == pytest.approx(1.0 / (math.sqrt(2 * math.pi) * sigma))
        assert decay == pytest.approx(math.exp(-0.5 / sigma**2))
        assert decay2 == pytest.approx(decay * decay)
        assert size == 5.0
        assert gaussian_coefficients(5, 2.0)[1] == pytest.approx(math.exp(-0.125))

    def test_uniform_stays_uniform(self, ops):
        """Test that a constant image is unchanged, including at the edges."""
        image = _uniform(ops, 16, 12, (0.4, 0.2, 0.9, 1.0))
        blur_gaussian(ops, image, image, 7)
        assert np.allclose(image.read(), (0.4, 0.2, 0.9, 1.0), atol=1e-5)

    def test_two_passes_through_one_temporary(self, ops, device, checkerboard_rgba):
        """Test the pass structure and that the temporary goes back to the pool."""
        src = ops.upload(checkerboard_rgba)
        dst = ops.create_image_like(src)
        blur_gaussian(ops, src, dst, 9)
        assert [entry[1] for entry in device.dispatch_log] == ["BlurGaussian", "BlurGaussian"]
        assert ops.pool.leased_count == 0
        assert ops.pool.free_count == 1
        assert np.std(dst.read()[..., 0]) < np.std(checkerboard_rgba[..., 0])

    def test_in_place_matches_out_of_place(self, ops, rgba_image):
        """Test blurring an image into itself."""
        src = ops.upload(rgba_image)
        dst = ops.create_image_like(src)
        blur_gaussian(ops, src, dst, 5)
        blur_gaussian(ops, src, src, 5)
        assert np.allclose(src.read(), dst.read(), atol=1e-6)

    def test_size_zero_is_identity(self, ops, rgba_image):
        """Test that a single-tap kernel copies."""
        src = ops.upload(rgba_image)
        dst = ops.create_image_like(src)
        blur_gaussian(ops, src, dst, 0)
        assert np.allclose(dst.read(), rgba_image, atol=1e-6)


class TestRecursiveBlur:
    """Tests for the recursive Gaussian."""

    def test_coefficients_sum_to_one(self):
        """Test unit gain for several sigmas."""
        for sigma in (0.6, 1.0, 2.4, 2.5, 8.0):
            gain, b1, b2, b3 = recursive_gaussian_coefficients(sigma)
            assert gain + b1 + b2 + b3 == pytest.approx(1.0)
            assert 0.0 < gain < 1.0

    def test_small_sigma_is_identity(self, ops):
        """Test that sigma < 0.5 gives an identity filter, exercising both transposes."""
        assert recursive_gaussian_coefficients(0.3) == pytest.approx((1.0, 0.0, 0.0, 0.0))
        data = np.random.default_rng(3).random((9, 13, 4)).astype(np.float32)
        src = ops.upload(data)
        dst = ops.create_image_like(src)
        blur_gaussian_recursive(ops, src, dst, 0.3)
        assert np.allclose(dst.read(), data, atol=1e-5)

    def test_four_passes(self, ops, device, rgba_image):
        """Test the forward/backward pass sequence and row-wise group counts."""
        src = ops.upload(rgba_image[:40])
        dst = ops.create_image_like(src)
        blur_gaussian_recursive(ops, src, dst, 2.0)
        assert device.dispatch_log == [
            ("TextureIP", "RecursiveConvolveFwd", 1, 1),
            ("TextureIP", "RecursiveConvolveBak", 1, 1),
            ("TextureIP", "RecursiveConvolveFwdI", 1, 1),
            ("TextureIP", "RecursiveConvolveBak", 1, 1),
        ]
        assert ops.pool.leased_count == 0

    def test_uniform_stays_uniform(self, ops):
        """Test that a constant image is unchanged."""
        image = _uniform(ops, 21, 10, 0.6)
        blur_gaussian_recursive(ops, image, image, 3.0)
        assert np.allclose(image.read(), 0.6, atol=1e-4)

    def test_in_place_uses_in_place_forward(self, ops, device, rgba_image):
        """Test that src is dst selects the in-place forward kernel first."""
        src = ops.upload(rgba_image)
        dst = ops.create_image_like(src)
        blur_gaussian_recursive(ops, src, dst, 1.5)
        blur_gaussian_recursive(ops, src, src, 1.5)
        assert device.dispatch_log[4][1] == "RecursiveConvolveFwdI"
        assert np.allclose(src.read(), dst.read(), atol=1e-6)

    def test_smooths(self, ops, checkerboard_rgba):
        """Test that the recursive blur reduces variation."""
        image = ops.upload(checkerboard_rgba)
        blur_gaussian_recursive(ops, image, image, 3.0)
        assert np.std(image.read()[..., 0]) < 0.5 * np.std(checkerboard_rgba[..., 0])

    def test_size_mismatch(self, ops):
        """Test that src and dst must have the same size."""
        with pytest.raises(DimensionMismatch):
            recursive_convolve(ops, ops.create_image(4, 4), ops.create_image(4, 5), (1, 0, 0, 0))


class TestNeighborhoodFilters:
    """Tests for bilateral, median and gradient filters."""

    def test_bilateral_preserves_edges(self, ops, checkerboard_rgba):
        """Test that a small color sigma keeps hard edges."""
        src = ops.upload(checkerboard_rgba)
        dst = ops.create_image_like(src)
        bilateral(ops, src, dst, 5, color_sigma=0.05)
        assert np.allclose(dst.read(), checkerboard_rgba, atol=1e-3)

    def test_bilateral_smooths_noise(self, ops):
        """Test that small variations are averaged out."""
        noise = 0.5 + 0.02 * np.random.default_rng(5).standard_normal((16, 16, 4))
        src = ops.upload(noise.astype(np.float32))
        dst = ops.create_image_like(src)
        bilateral(ops, src, dst, 5, color_sigma=0.5)
        assert np.std(dst.read()) < np.std(noise)

    def test_median_removes_outlier(self, ops):
        """Test that an isolated pixel disappears."""
        data = np.zeros((7, 7, 4), dtype=np.float32)
        data[3, 3] = 1.0
        src = ops.upload(data)
        dst = ops.create_image_like(src)
        median_3x3(ops, src, dst)
        assert np.allclose(dst.read(), 0.0)
        median_5x5(ops, src, dst)
        assert np.allclose(dst.read(), 0.0)

    def test_gradients_on_vertical_edge(self, ops):
        """Test Sobel and Scharr responses to a step in x."""
        data = np.zeros((8, 8, 4), dtype=np.float32)
        data[:, 4:, 0] = 1.0
        src = ops.upload(data)
        dst = ops.create_image(8, 8, ImageFormat.RGBA32F)

        sobel(ops, src, dst)
        result = dst.read()
        assert np.allclose(result[:, 3, 0], 4.0)
        assert np.allclose(result[:, 4, 1], 4.0)
        assert np.allclose(result[:, 0, 0], 0.0)
        assert np.allclose(result[..., 2], 0.0)
        assert np.allclose(result[..., 3], 1.0)

        scharr(ops, src, dst)
        assert np.allclose(dst.read()[:, 3, 0], 16.0)

    def test_no_in_place(self, ops):
        """Test that neighborhood filters refuse an aliased destination."""
        image = ops.create_image(4, 4)
        for operation in (median_3x3, median_5x5, sobel, scharr):
            with pytest.raises(InvalidOperation):
                operation(ops, image, image)
        with pytest.raises(InvalidOperation):
            bilateral(ops, image, image, 3)
