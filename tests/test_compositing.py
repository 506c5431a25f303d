"""
Tests for the compositing module of texture_ops.
"""

import numpy as np
import pytest

from texture_ops.arithmetic import add_images
from texture_ops.compositing import (
    compose,
    compose_atop,
    compose_in,
    compose_out,
    compose_over,
    compose_plus,
    compose_xor,
    premultiply,
)
from texture_ops.errors import InvalidOperation


@pytest.fixture
def pair(ops, rgba_image, solid_color_rgba):
    """Two 32x32 device images with partial alpha, plus a destination."""
    a = ops.upload(np.ascontiguousarray(rgba_image[:32, :32]))
    b = ops.upload(solid_color_rgba)
    return a, b, ops.create_image_like(a)


def _alphas(rgba_image, solid_color_rgba):
    return rgba_image[:32, :32, 3], solid_color_rgba[..., 3]


class TestCompositing:
    """Tests for the Porter-Duff operators."""

    def test_opaque_over(self, ops, rgba_image, solid_color_rgba):
        """Test that an opaque A completely hides B."""
        data = rgba_image[:32, :32].copy()
        data[..., 3] = 1.0
        a = ops.upload(data)
        b = ops.upload(solid_color_rgba)
        dst = ops.create_image_like(a)
        compose_over(ops, a, b, dst)
        assert np.allclose(dst.read(), data, atol=1e-6)

    def test_over(self, ops, pair, rgba_image, solid_color_rgba):
        """Test the over equation for color and alpha."""
        a, b, dst = pair
        compose_over(ops, a, b, dst)
        alpha_a, alpha_b = _alphas(rgba_image, solid_color_rgba)
        color_a = rgba_image[:32, :32, :3]
        color_b = solid_color_rgba[..., :3]
        result = dst.read()
        expected_alpha = alpha_a + (1 - alpha_a) * alpha_b
        expected_color = alpha_a[..., None] * color_a + ((1 - alpha_a) * alpha_b)[..., None] * color_b
        assert np.allclose(result[..., 3], expected_alpha, atol=1e-6)
        assert np.allclose(result[..., :3], expected_color, atol=1e-6)

    def test_in_and_atop_alpha(self, ops, pair, rgba_image, solid_color_rgba):
        """Test that in yields aA*aB and atop yields aB."""
        a, b, dst = pair
        alpha_a, alpha_b = _alphas(rgba_image, solid_color_rgba)

        compose_in(ops, a, b, dst)
        assert np.allclose(dst.read()[..., 3], alpha_a * alpha_b, atol=1e-6)

        compose_atop(ops, a, b, dst)
        assert np.allclose(dst.read()[..., 3], alpha_b, atol=1e-6)

    def test_xor_is_sum_of_outs(self, ops, pair):
        """Test (A xor B) == (A out B) + (B out A)."""
        a, b, dst = pair
        a_out_b = ops.create_image_like(a)
        b_out_a = ops.create_image_like(a)
        both = ops.create_image_like(a)

        compose_xor(ops, a, b, dst)
        compose_out(ops, a, b, a_out_b)
        compose_out(ops, b, a, b_out_a)
        add_images(ops, a_out_b, b_out_a, both)
        assert np.allclose(dst.read(), both.read(), atol=1e-6)

    def test_plus(self, ops, pair, rgba_image, solid_color_rgba):
        """Test alpha-weighted addition."""
        a, b, dst = pair
        compose_plus(ops, a, b, dst)
        alpha_a, alpha_b = _alphas(rgba_image, solid_color_rgba)
        expected = (
            alpha_a[..., None] * rgba_image[:32, :32, :3] + alpha_b[..., None] * solid_color_rgba[..., :3]
        )
        assert np.allclose(dst.read()[..., :3], expected, atol=1e-6)
        assert np.allclose(dst.read()[..., 3], alpha_a + alpha_b, atol=1e-6)

    def test_by_name(self, ops, pair):
        """Test that compose with a name matches the named wrapper."""
        a, b, dst = pair
        expected = ops.create_image_like(a)
        compose(ops, "atop", a, b, dst)
        compose_atop(ops, a, b, expected)
        assert np.array_equal(dst.read(), expected.read())
        with pytest.raises(ValueError, match="Unknown compositing operator"):
            compose(ops, "multiply", a, b, dst)

    def test_aliased_destination(self, ops, pair):
        """Test that dst may not be either source."""
        a, b, _ = pair
        with pytest.raises(InvalidOperation):
            compose_over(ops, a, b, a)
        with pytest.raises(InvalidOperation):
            compose_over(ops, a, b, b)


class TestPremultiply:
    """Tests for premultiplication."""

    def test_premultiply(self, ops, rgba_image):
        """Test that color is scaled by alpha and alpha kept."""
        src = ops.upload(rgba_image)
        dst = ops.create_image_like(src)
        premultiply(ops, src, dst)
        expected = rgba_image.copy()
        expected[..., :3] *= rgba_image[..., 3:]
        assert np.allclose(dst.read(), expected, atol=1e-6)

        premultiply(ops, src, src)
        assert np.allclose(src.read(), expected, atol=1e-6)

