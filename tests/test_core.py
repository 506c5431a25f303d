"""
Tests for the core module of texture_ops.
"""

import logging

import numpy as np
import pytest

from texture_ops.core import (
    ImageDescriptor,
    ImageFormat,
    Scalars,
    ceil_div,
    format_for_array,
    get_image_dimensions,
    jump_flood_passes,
    validate_image_array,
    vec4,
)
from texture_ops.errors import DimensionMismatch, InvalidOperation, ResourceNotFound, TextureOpsError
from texture_ops.settings import get_logger


class TestImageFormat:
    """Tests for pixel format metadata."""

    def test_compatible_promotes_three_channels(self):
        """Test that formats without random write map to their 4-channel variant."""
        assert ImageFormat.RGB8.compatible() is ImageFormat.RGBA8
        assert ImageFormat.RGB16F.compatible() is ImageFormat.RGBA16F
        assert ImageFormat.RGB32F.compatible() is ImageFormat.RGBA32F
        assert ImageFormat.R8.compatible() is ImageFormat.R8
        assert not ImageFormat.RGB8.random_write

    def test_float_equivalent(self):
        """Test float promotion keeps the channel count where possible."""
        assert ImageFormat.R8.float_equivalent() is ImageFormat.R32F
        assert ImageFormat.RG16F.float_equivalent() is ImageFormat.RG32F
        assert ImageFormat.RGB8.float_equivalent() is ImageFormat.RGBA32F
        assert ImageFormat.RGBA8.float_equivalent() is ImageFormat.RGBA32F

    def test_dtype(self):
        """Test host dtypes per representation."""
        assert ImageFormat.RGBA8.dtype == np.uint8
        assert ImageFormat.R16F.dtype == np.float16
        assert ImageFormat.RG32F.dtype == np.float32
        assert ImageFormat.RGBA32F.is_float
        assert not ImageFormat.RGBA8.is_float

    def test_find(self):
        """Test format lookup by layout."""
        assert ImageFormat.find(2, "unorm", 8) is ImageFormat.RG8
        with pytest.raises(ValueError):
            ImageFormat.find(5, "unorm", 8)


class TestImageDescriptor:
    """Tests for image descriptors."""

    def test_properties(self):
        """Test derived properties and transposition."""
        desc = ImageDescriptor(7, 3, ImageFormat.RG16F)
        assert desc.size == (7, 3)
        assert desc.channels == 2
        assert desc.is_float
        assert desc.transposed() == ImageDescriptor(3, 7, ImageFormat.RG16F)
        assert desc.with_format(ImageFormat.R8).format is ImageFormat.R8

    def test_descriptors_are_hashable_keys(self):
        """Test that equal descriptors can key the same pool free list."""
        pool = {ImageDescriptor(4, 4, ImageFormat.RGBA8): "free"}
        assert pool[ImageDescriptor(4, 4, ImageFormat.RGBA8)] == "free"

    def test_invalid_dimensions(self):
        """Test that non-positive dimensions are rejected."""
        with pytest.raises(ValueError):
            ImageDescriptor(0, 4, ImageFormat.RGBA8)
        with pytest.raises(ValueError):
            ImageDescriptor(4, -1, ImageFormat.RGBA8)


class TestVectors:
    """Tests for vec4 and Scalars."""

    def test_vec4_broadcast_and_pad(self):
        """Test scalar broadcast and zero padding."""
        assert vec4(0.5) == (0.5, 0.5, 0.5, 0.5)
        assert vec4(2) == (2.0, 2.0, 2.0, 2.0)
        assert vec4((1, 2)) == (1.0, 2.0, 0.0, 0.0)
        assert vec4([1, 2, 3, 4]) == (1.0, 2.0, 3.0, 4.0)
        assert vec4(np.array([0.25, 0.5], dtype=np.float32)) == (0.25, 0.5, 0.0, 0.0)
        assert vec4(np.array(0.5)) == (0.5, 0.5, 0.5, 0.5)
        assert vec4(np.float32(0.25)) == (0.25, 0.25, 0.25, 0.25)

    def test_vec4_too_long(self):
        """Test that more than four components are rejected."""
        with pytest.raises(ValueError):
            vec4((1, 2, 3, 4, 5))

    def test_scalars_only_bind_given_registers(self):
        """Test that None leaves a register unset."""
        scalars = Scalars.of(1.0, None, (1, 2))
        assert list(scalars.items()) == [
            ("ScalarA", (1.0, 1.0, 1.0, 1.0)),
            ("ScalarC", (1.0, 2.0, 0.0, 0.0)),
        ]
        assert list(Scalars().items()) == []

    def test_scalars_at_most_four(self):
        """Test that a fifth register is rejected."""
        with pytest.raises(ValueError):
            Scalars.of(1, 2, 3, 4, 5)


class TestHelpers:
    """Tests for dispatch arithmetic and host array helpers."""

    def test_ceil_div(self):
        """Test group count rounding."""
        assert ceil_div(8, 8) == 1
        assert ceil_div(9, 8) == 2
        assert ceil_div(1, 8) == 1
        assert ceil_div(640, 64) == 10

    def test_jump_flood_passes(self):
        """Test the number of jump-flood passes per image size."""
        assert jump_flood_passes(1, 1) == 0
        assert jump_flood_passes(2, 1) == 1
        assert jump_flood_passes(5, 3) == 3
        assert jump_flood_passes(8, 8) == 3
        assert jump_flood_passes(2, 9) == 4

    def test_validate_image_array(self):
        """Test host array validation."""
        validate_image_array(np.zeros((4, 4)))
        validate_image_array(np.zeros((4, 4, 3)))
        with pytest.raises(ValueError, match="2D or 3D"):
            validate_image_array(np.zeros(4))
        with pytest.raises(ValueError, match="1 to 4 channels"):
            validate_image_array(np.zeros((4, 4, 5)))

    def test_get_image_dimensions(self):
        """Test height and width extraction."""
        assert get_image_dimensions(np.zeros((3, 5, 4))) == (3, 5)

    def test_format_for_array(self):
        """Test format selection from dtype and channels."""
        assert format_for_array(np.zeros((2, 2, 3), dtype=np.uint8)) is ImageFormat.RGB8
        assert format_for_array(np.zeros((2, 2), dtype=np.float16)) is ImageFormat.R16F
        assert format_for_array(np.zeros((2, 2, 4))) is ImageFormat.RGBA32F


class TestErrors:
    """Tests for the error taxonomy."""

    def test_dimension_mismatch_message(self):
        """Test that sizes are included in the message."""
        err = DimensionMismatch("SrcB of TextureMath.Add", (4, 4), (2, 3))
        assert "expected 4x4, got 2x3" in str(err)
        assert err.expected == (4, 4)
        assert isinstance(err, ValueError)
        assert isinstance(err, TextureOpsError)

    def test_resource_not_found(self):
        """Test lookup error details."""
        err = ResourceNotFound("kernel", "Blur", "TextureIP")
        assert isinstance(err, LookupError)
        assert str(err) == "kernel 'Blur' not found in program 'TextureIP'"
        assert str(ResourceNotFound("program", "Missing")) == "program 'Missing' not found"

    def test_invalid_operation_is_value_error(self):
        """Test that misuse errors are ValueErrors."""
        assert issubclass(InvalidOperation, ValueError)


class TestLogging:
    """Tests for the logger factory."""

    def test_module_loggers_share_package_handler(self):
        """Test that module loggers propagate to the package logger."""
        logger = get_logger("texture_ops.test_module")
        assert logger.name == "texture_ops.test_module"
        root = logging.getLogger("texture_ops")
        assert len(root.handlers) == 1
        get_logger("texture_ops.other")
        assert len(root.handlers) == 1
