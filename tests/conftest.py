"""
Test fixtures for texture_ops tests.
"""

import os
import sys

import numpy as np
import pytest

# Add the parent directory to the system path to import the module
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from texture_ops import TextureOps  # noqa: E402
from texture_ops.backends import ReferenceDevice  # noqa: E402


@pytest.fixture
def device():
    """NumPy reference device."""
    return ReferenceDevice()


@pytest.fixture
def ops(device):
    """TextureOps context on the reference device, released after the test."""
    ctx = TextureOps(device)
    try:
        yield ctx
    finally:
        ctx.release()


@pytest.fixture
def rgba_image():
    """Create an RGBA test image with color gradients and transparency."""
    # Create a 64x64 RGBA image with red, green, blue gradients and alpha channel
    h, w = 64, 64
    x = np.linspace(0, 1, w)
    y = np.linspace(0, 1, h)
    xx, yy = np.meshgrid(x, y)

    # Red channel: horizontal gradient
    red = xx
    # Green channel: vertical gradient
    green = yy
    # Blue channel: radial gradient from center
    cx, cy = 0.5, 0.5
    blue = 1 - np.sqrt((xx - cx) ** 2 + (yy - cy) ** 2) * 1.4
    blue = np.clip(blue, 0, 1)

    # Alpha channel: circular gradient (1 in center, fading to 0.5 at edges)
    x_alpha = np.linspace(-1, 1, w)
    y_alpha = np.linspace(-1, 1, h)
    xx_alpha, yy_alpha = np.meshgrid(x_alpha, y_alpha)
    alpha = 1 - 0.5 * np.sqrt(xx_alpha**2 + yy_alpha**2)
    alpha = np.clip(alpha, 0.5, 1.0)  # Minimum 0.5 opacity

    # Combine channels into RGBA
    rgba = np.zeros((h, w, 4), dtype=np.float32)
    rgba[:, :, 0] = red
    rgba[:, :, 1] = green
    rgba[:, :, 2] = blue
    rgba[:, :, 3] = alpha

    return rgba


@pytest.fixture
def checkerboard_rgba():
    """Create a checkerboard pattern test image in RGBA format."""
    h, w = 64, 64
    checkerboard = np.ones((h, w, 4), dtype=np.float32)  # All ones, including alpha=1

    # 8x8 pixel checks
    check_size = 8
    rows = (np.arange(h) // check_size) % 2
    cols = (np.arange(w) // check_size) % 2
    white = (rows[:, np.newaxis] + cols[np.newaxis, :]) % 2 == 0
    checkerboard[~white, :3] = 0.0

    return checkerboard


@pytest.fixture
def solid_color_rgba():
    """Create a solid color RGBA test image with varying alpha."""
    h, w = 32, 32
    solid = np.zeros((h, w, 4), dtype=np.float32)

    # Set solid blue color
    solid[:, :, 2] = 0.8  # Blue at 80% intensity

    # Vary alpha horizontally from 0 to 1
    solid[:, :, 3] = np.arange(w)[np.newaxis, :] / w

    return solid


@pytest.fixture
def levels_rgba8():
    """13x7 RGBA8 image using four distinct gray levels in unequal amounts."""
    h, w = 7, 13
    levels = np.array([10, 80, 150, 240], dtype=np.uint8)
    index = (np.arange(h * w) * 7 % 11) % 4
    gray = levels[index].reshape(h, w)
    img = np.empty((h, w, 4), dtype=np.uint8)
    img[..., 0] = gray
    img[..., 1] = gray
    img[..., 2] = gray
    img[..., 3] = 255
    return img
