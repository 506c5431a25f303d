"""
NumPy implementations of the TextureMath, TextureIP and TextureDraw kernels.

Kernels are registered per program with the kernel() decorator. A kernel receives
the Invocation of its dispatch and either returns an HxWx4 result, which is stored
into Dst over the launched thread extent, or writes its outputs itself and returns
None. Images are sampled with coordinates clamped to the edge.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import numpy as np

from ..core import HISTOGRAM, SRC_A, SRC_B, GroupSize, NDArray, ceil_div
from ..settings import DEFAULT_WORK_GROUP_SIZE, HISTOGRAM_BINS

if TYPE_CHECKING:
    from .reference import Invocation

MATH = "TextureMath"
IP = "TextureIP"
DRAW = "TextureDraw"

# Rec. 709 luminance weights
LUMINANCE = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

# Squared distance of pixels that have not found a seed yet
NO_SEED_DISTANCE = 1e20

# Thread layout of kernels that run one thread per image row
ROW_GROUP_SIZE = (64, 1)


@dataclass(frozen=True)
class ReferenceKernel:
    name: str
    fn: Callable[["Invocation"], Optional[NDArray]]
    id: int
    group_size: GroupSize = DEFAULT_WORK_GROUP_SIZE
    in_place: bool = False


PROGRAMS: Dict[str, List[ReferenceKernel]] = {MATH: [], IP: [], DRAW: []}


def kernel(program: str, name: str, in_place_name: Optional[str] = None, group_size: GroupSize = DEFAULT_WORK_GROUP_SIZE):
    """
    Register a function as a kernel of program.

    Args:
        program: Program name
        name: Kernel name
        in_place_name: Also register the function under this name as the in-place
            variant, which reads its input from Dst instead of SrcA
        group_size: Work-group size the kernel declares
    """

    def register(fn):
        kernels = PROGRAMS[program]
        kernels.append(ReferenceKernel(name, fn, len(kernels), group_size))
        if in_place_name:
            kernels.append(ReferenceKernel(in_place_name, fn, len(kernels), group_size, in_place=True))
        return fn

    return register


def _shifted(img: NDArray, dx: int, dy: int) -> NDArray:
    """Sample img at (x + dx, y + dy) for every pixel, clamping to the edge."""
    height, width = img.shape[:2]
    ys = np.clip(np.arange(height) + dy, 0, height - 1)
    xs = np.clip(np.arange(width) + dx, 0, width - 1)
    return img[ys][:, xs]


def _grid(img: NDArray):
    """Pixel x and y coordinates, each shaped like img's first two axes."""
    height, width = img.shape[:2]
    return np.meshgrid(np.arange(width, dtype=np.float64), np.arange(height, dtype=np.float64))


def _fill(inv: "Invocation", value: NDArray) -> NDArray:
    dst = inv.dst
    return np.broadcast_to(np.asarray(value, dtype=np.float32), (dst.height, dst.width, 4))


def _with_alpha(rgb: NDArray, alpha: NDArray) -> NDArray:
    return np.concatenate([rgb, alpha[..., np.newaxis]], axis=-1)


# --- TextureMath ---


@kernel(MATH, "Copy")
def _copy(inv):
    return inv.source()


@kernel(MATH, "SetC")
def _set(inv):
    return _fill(inv, inv.vector("ScalarA"))


@kernel(MATH, "SetCMaskedC", "SetCMaskedCI")
def _set_masked_channels(inv):
    mask = inv.vector("ScalarB")
    return inv.source() * (1.0 - mask) + inv.vector("ScalarA") * mask


@kernel(MATH, "SetCMasked", "SetCMaskedI")
def _set_masked_image(inv):
    mask = inv.texture(SRC_B)[..., :1]
    return inv.source() * (1.0 - mask) + inv.vector("ScalarA") * mask


@kernel(MATH, "AddC", "AddCI")
def _add_constant(inv):
    return inv.source() + inv.vector("ScalarA")


@kernel(MATH, "Add", "AddI")
def _add(inv):
    return inv.source() + inv.texture(SRC_B)


@kernel(MATH, "AddWeighted", "AddWeightedI")
def _add_weighted(inv):
    return inv.source() * inv.vector("ScalarA") + inv.texture(SRC_B) * inv.vector("ScalarB")


@kernel(MATH, "MultiplyC", "MultiplyCI")
def _multiply_constant(inv):
    return inv.source() * inv.vector("ScalarA")


@kernel(MATH, "Multiply", "MultiplyI")
def _multiply(inv):
    return inv.source() * inv.texture(SRC_B)


@kernel(MATH, "MultiplyCAddC", "MultiplyCAddCI")
def _multiply_add(inv):
    return inv.source() * inv.vector("ScalarA") + inv.vector("ScalarB")


@kernel(MATH, "MultiplyCAddCSat", "MultiplyCAddCSatI")
def _multiply_add_saturate(inv):
    return np.clip(_multiply_add(inv), 0.0, 1.0)


@kernel(MATH, "Clamp", "ClampI")
def _clamp(inv):
    return np.clip(inv.source(), inv.vector("ScalarA"), inv.vector("ScalarB"))


@kernel(MATH, "Saturate", "SaturateI")
def _saturate(inv):
    return np.clip(inv.source(), 0.0, 1.0)


# --- TextureIP: color ---


@kernel(IP, "Grayscale", "GrayscaleI")
def _grayscale(inv):
    src = inv.source()
    lum = src[..., :3] @ LUMINANCE
    return _with_alpha(np.repeat(lum[..., np.newaxis], 3, axis=-1), src[..., 3])


@kernel(IP, "GrayscaleGamma", "GrayscaleGammaI")
def _grayscale_gamma(inv):
    src = inv.source()
    linear = np.power(np.clip(src[..., :3], 0.0, None), 2.2)
    lum = np.power(linear @ LUMINANCE, 1.0 / 2.2)
    return _with_alpha(np.repeat(lum[..., np.newaxis], 3, axis=-1), src[..., 3])


@kernel(IP, "Threshold", "ThresholdI")
def _threshold(inv):
    return (inv.source() >= inv.vector("ScalarA")).astype(np.float32)


@kernel(IP, "ConvertRGB2HSV", "ConvertRGB2HSVI")
def _rgb_to_hsv(inv):
    src = inv.source()
    r, g, b = src[..., 0], src[..., 1], src[..., 2]
    maxc = src[..., :3].max(axis=-1)
    minc = src[..., :3].min(axis=-1)
    delta = maxc - minc
    safe_delta = np.where(delta > 0, delta, 1.0)
    s = np.where(maxc > 0, delta / np.where(maxc > 0, maxc, 1.0), 0.0)
    rc = (maxc - r) / safe_delta
    gc = (maxc - g) / safe_delta
    bc = (maxc - b) / safe_delta
    h = np.where(r == maxc, bc - gc, np.where(g == maxc, 2.0 + rc - bc, 4.0 + gc - rc))
    h = np.where(delta > 0, (h / 6.0) % 1.0, 0.0)
    return np.stack([h, s, maxc, src[..., 3]], axis=-1)


@kernel(IP, "ConvertHSV2RGB", "ConvertHSV2RGBI")
def _hsv_to_rgb(inv):
    src = inv.source()
    h, s, v = src[..., 0], src[..., 1], src[..., 2]
    sector = np.floor(h * 6.0)
    f = h * 6.0 - sector
    p = v * (1.0 - s)
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))
    i = sector.astype(np.int64) % 6
    r = np.choose(i, [v, q, p, p, t, v])
    g = np.choose(i, [t, v, v, q, p, p])
    b = np.choose(i, [p, p, t, v, v, q])
    return np.stack([r, g, b, src[..., 3]], axis=-1)


@kernel(IP, "Swizzle", "SwizzleI")
def _swizzle(inv):
    channels = np.clip(inv.vector("ScalarA").astype(np.int64), 0, 3)
    return inv.source()[..., channels]


@kernel(IP, "Lookup", "LookupI")
def _lookup(inv):
    palette = inv.texture(SRC_B)[0]
    last = palette.shape[0] - 1
    index = np.clip(np.rint(inv.source()[..., 0] * last), 0, last).astype(np.int64)
    return palette[index]


@kernel(IP, "Premultiply", "PremultiplyI")
def _premultiply(inv):
    src = inv.source()
    return _with_alpha(src[..., :3] * src[..., 3:], src[..., 3])


# --- TextureIP: geometry ---


@kernel(IP, "FlipHorizontal")
def _flip_horizontal(inv):
    return inv.source()[:, ::-1]


@kernel(IP, "FlipVertical")
def _flip_vertical(inv):
    return inv.source()[::-1]


@kernel(IP, "Rotate180")
def _rotate_180(inv):
    return inv.source()[::-1, ::-1]


@kernel(IP, "FlipHorizontalI")
def _flip_horizontal_in_place(inv):
    # Each thread in the left half swaps its pixel with the mirrored one
    data = inv.dst.data
    width = inv.dst.width
    tx, ty = inv.threads
    half = min((width + 1) // 2, tx)
    rows = min(inv.dst.height, ty)
    left = data[:rows, :half].copy()
    right = data[:rows, width - half :][:, ::-1].copy()
    data[:rows, :half] = right
    data[:rows, width - half :] = left[:, ::-1]


@kernel(IP, "FlipVerticalI")
def _flip_vertical_in_place(inv):
    data = inv.dst.data
    height = inv.dst.height
    tx, ty = inv.threads
    half = min((height + 1) // 2, ty)
    cols = min(inv.dst.width, tx)
    top = data[:half, :cols].copy()
    bottom = data[height - half :, :cols][::-1].copy()
    data[:half, :cols] = bottom
    data[height - half :, :cols] = top[::-1]


@kernel(IP, "Rotate180I")
def _rotate_180_in_place(inv):
    data = inv.dst.data
    height = inv.dst.height
    half = min((height + 1) // 2, inv.threads[1])
    top = data[:half].copy()
    bottom = data[height - half :].copy()
    data[:half] = bottom[::-1, ::-1]
    data[height - half :] = top[::-1, ::-1]


# --- TextureIP: distance transform ---


@kernel(IP, "DistanceTransformInit")
def _distance_init(inv):
    src = inv.source()
    x, y = _grid(src)
    seed = src[..., 0] != 0
    return np.stack(
        [
            np.where(seed, 0.0, NO_SEED_DISTANCE),
            np.where(seed, x, -1.0),
            np.where(seed, y, -1.0),
            np.where(seed, src[..., 0], 0.0),
        ],
        axis=-1,
    )


@kernel(IP, "DistanceTransformStep")
def _distance_step(inv):
    current = inv.source().astype(np.float64)
    step = int(inv.vector("ScalarA")[0])
    x, y = _grid(current)
    best = current.copy()
    for dy in (-step, 0, step):
        for dx in (-step, 0, step):
            if dx == 0 and dy == 0:
                continue
            neighbor = _shifted(current, dx, dy)
            dist = (neighbor[..., 1] - x) ** 2 + (neighbor[..., 2] - y) ** 2
            closer = (neighbor[..., 1] >= 0) & (dist < best[..., 0])
            best[closer, 0] = dist[closer]
            best[closer, 1:] = neighbor[closer, 1:]
    return best


@kernel(IP, "DistanceTransformSqrt")
def _distance_sqrt(inv):
    src = inv.source()
    src[..., 0] = np.sqrt(src[..., 0])
    return src


# --- TextureIP: neighborhood filters ---


def _neighborhood(img: NDArray, radius: int) -> NDArray:
    return np.stack(
        [_shifted(img, dx, dy) for dy in range(-radius, radius + 1) for dx in range(-radius, radius + 1)]
    )


@kernel(IP, "Erode")
def _erode(inv):
    return _neighborhood(inv.source(), 1).min(axis=0)


@kernel(IP, "Dilate")
def _dilate(inv):
    return _neighborhood(inv.source(), 1).max(axis=0)


@kernel(IP, "Median3x3")
def _median_3x3(inv):
    return np.median(_neighborhood(inv.source(), 1), axis=0)


@kernel(IP, "Median5x5")
def _median_5x5(inv):
    return np.median(_neighborhood(inv.source(), 2), axis=0)


def _gradient(inv, side: float, center: float) -> NDArray:
    lum = inv.source()[..., 0]

    def p(dx, dy):
        return _shifted(lum, dx, dy)

    gx = side * (p(1, -1) - p(-1, -1)) + center * (p(1, 0) - p(-1, 0)) + side * (p(1, 1) - p(-1, 1))
    gy = side * (p(-1, 1) - p(-1, -1)) + center * (p(0, 1) - p(0, -1)) + side * (p(1, 1) - p(1, -1))
    return np.stack([np.hypot(gx, gy), gx, gy, np.ones_like(gx)], axis=-1)


@kernel(IP, "Sobel")
def _sobel(inv):
    return _gradient(inv, 1.0, 2.0)


@kernel(IP, "Scharr")
def _scharr(inv):
    return _gradient(inv, 3.0, 10.0)


@kernel(IP, "Skeletonize")
def _skeletonize(inv):
    """One Zhang-Suen thinning sub-iteration; ScalarA.x selects the sub-iteration."""
    src = inv.source()
    parity = int(inv.vector("ScalarA")[0])
    fg = (src[..., 0] > 0.5).astype(np.int64)

    # P2..P9, clockwise from north
    p2, p3, p4, p5, p6, p7, p8, p9 = (
        _shifted(fg, dx, dy) for dx, dy in ((0, -1), (1, -1), (1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1))
    )
    ring = [p2, p3, p4, p5, p6, p7, p8, p9, p2]
    neighbors = sum(ring[:-1])
    transitions = sum(((a == 0) & (b == 1)).astype(np.int64) for a, b in zip(ring[:-1], ring[1:]))
    if parity == 0:
        c1 = p2 * p4 * p6 == 0
        c2 = p4 * p6 * p8 == 0
    else:
        c1 = p2 * p4 * p8 == 0
        c2 = p2 * p6 * p8 == 0
    delete = (fg == 1) & (neighbors >= 2) & (neighbors <= 6) & (transitions == 1) & c1 & c2

    out = src.copy()
    out[delete, :3] = 0.0
    return out


@kernel(IP, "Bilateral")
def _bilateral(inv):
    src = inv.source()
    _, decay, _, size = inv.vector("ScalarA")
    color_coeff = inv.vector("ScalarB")[0]
    radius = int(size // 2)

    acc = np.zeros_like(src, dtype=np.float64)
    total = np.zeros(src.shape[:2] + (1,), dtype=np.float64)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            neighbor = _shifted(src, dx, dy)
            diff = np.sum((neighbor[..., :3] - src[..., :3]) ** 2, axis=-1, keepdims=True)
            weight = decay ** (dx * dx + dy * dy) * np.exp(color_coeff * diff)
            acc += weight * neighbor
            total += weight
    return acc / total


# --- TextureIP: blur ---


@kernel(IP, "BlurGaussian")
def _blur_gaussian(inv):
    """One separable pass along ScalarB.xy with the incremental coefficients in ScalarA."""
    src = inv.source()
    norm, decay, _, size = inv.vector("ScalarA")
    direction = inv.vector("ScalarB")
    dx, dy = int(direction[0]), int(direction[1])
    radius = int(size // 2)

    acc = np.zeros_like(src, dtype=np.float64)
    total = 0.0
    for i in range(-radius, radius + 1):
        weight = norm * decay ** (i * i)
        acc += weight * _shifted(src, i * dx, i * dy)
        total += weight
    return acc / total


def _recursive_rows(rows: NDArray, coeffs: NDArray, reverse: bool) -> NDArray:
    """Run y[n] = B x[n] + b1 y[n-1] + b2 y[n-2] + b3 y[n-3] along axis 1."""
    gain, b1, b2, b3 = coeffs
    if reverse:
        rows = rows[:, ::-1]
    out = np.empty_like(rows, dtype=np.float64)
    # Start from the steady state of a constant signal equal to the first sample
    y1 = y2 = y3 = rows[:, 0].astype(np.float64)
    for n in range(rows.shape[1]):
        y0 = gain * rows[:, n] + b1 * y1 + b2 * y2 + b3 * y3
        out[:, n] = y0
        y3, y2, y1 = y2, y1, y0
    return out[:, ::-1] if reverse else out


@kernel(IP, "RecursiveConvolveFwd", "RecursiveConvolveFwdI", group_size=ROW_GROUP_SIZE)
def _recursive_forward(inv):
    src = inv.source()
    width, height = inv.size
    rows = min(height, inv.threads[0])
    out = src.astype(np.float64)
    out[:rows, :width] = _recursive_rows(src[:rows, :width], inv.vector("ScalarA"), reverse=False)
    inv.dst.store(out)


@kernel(IP, "RecursiveConvolveBak", group_size=ROW_GROUP_SIZE)
def _recursive_backward(inv):
    """Backward pass along rows of SrcA, written transposed into Dst."""
    src = inv.source()
    width, height = inv.size
    rows = min(height, inv.threads[0])
    result = _recursive_rows(src[:rows, :width], inv.vector("ScalarA"), reverse=True)
    dst = inv.dst
    out = dst.rgba().astype(np.float64)
    out[:width, :rows] = result.transpose(1, 0, 2)
    dst.store(out)


# --- TextureIP: histogram ---


def _buckets(values: NDArray) -> NDArray:
    return np.rint(np.clip(values, 0.0, 1.0) * (HISTOGRAM_BINS - 1)).astype(np.int64)


@kernel(IP, "HistogramEqClear", group_size=(HISTOGRAM_BINS, 1))
def _histogram_clear(inv):
    inv.buffer(HISTOGRAM).data[:] = 0


@kernel(IP, "HistogramEqGather")
def _histogram_gather(inv):
    histogram = inv.buffer(HISTOGRAM).data
    width, height = inv.size
    tx, ty = inv.threads
    buckets = _buckets(inv.texture(SRC_A)[: min(height, ty), : min(width, tx)])
    for c in range(histogram.shape[1]):
        counts = np.bincount(buckets[..., c].ravel(), minlength=histogram.shape[0])
        histogram[:, c] += counts.astype(np.uint32)


@kernel(IP, "HistogramEqAccumulate", group_size=(1, 1))
def _histogram_accumulate(inv):
    """Sequential prefix sum over the buckets of each channel."""
    histogram = inv.buffer(HISTOGRAM).data
    histogram[:] = np.cumsum(histogram, axis=0, dtype=np.uint64).astype(np.uint32)


@kernel(IP, "HistogramEqMap", "HistogramEqMapI")
def _histogram_map(inv):
    cdf = inv.buffer(HISTOGRAM).data.astype(np.float64)
    total = np.maximum(cdf[-1], 1.0)
    src = inv.source()
    buckets = _buckets(src)
    out = np.empty_like(src, dtype=np.float64)
    for c in range(4):
        out[..., c] = cdf[buckets[..., c], c] / total[c]
    return out


# --- TextureIP: reduction ---


def _reduce(inv, combine: Callable, pad_mode: str) -> None:
    """Combine each 2x2 block of the TextureSize domain of Dst into its top-left quarter."""
    dst = inv.dst
    width, height = inv.size
    half_w, half_h = ceil_div(width, 2), ceil_div(height, 2)
    block = dst.data[:height, :width].astype(np.float64)
    padded = np.pad(block, ((0, half_h * 2 - height), (0, half_w * 2 - width), (0, 0)), mode=pad_mode)
    reduced = combine(padded.reshape(half_h, 2, half_w, 2, -1), axis=(1, 3))

    tx, ty = inv.threads
    rows, cols = min(half_h, ty), min(half_w, tx)
    dst.data[:rows, :cols] = dst.quantize(reduced[:rows, :cols])


@kernel(IP, "MaxReduce")
def _max_reduce(inv):
    # Edge padding repeats in-range pixels, which leaves min and max unchanged
    _reduce(inv, np.max, "edge")


@kernel(IP, "MinReduce")
def _min_reduce(inv):
    _reduce(inv, np.min, "edge")


@kernel(IP, "SumReduce")
def _sum_reduce(inv):
    _reduce(inv, np.sum, "constant")


# --- TextureIP: compositing ---


def _porter_duff(inv, fa: Callable, fb: Callable) -> NDArray:
    """result = Fa * aA * A + Fb * aB * B, for color and alpha alike."""
    a = inv.texture(SRC_A)
    b = inv.texture(SRC_B)
    alpha_a = a[..., 3:]
    alpha_b = b[..., 3:]
    weight_a = fa(alpha_a, alpha_b) * alpha_a
    weight_b = fb(alpha_a, alpha_b) * alpha_b
    color = weight_a * a[..., :3] + weight_b * b[..., :3]
    return np.concatenate([color, weight_a + weight_b], axis=-1)


@kernel(IP, "ComposeOver")
def _compose_over(inv):
    return _porter_duff(inv, lambda aa, ab: 1.0, lambda aa, ab: 1.0 - aa)


@kernel(IP, "ComposeIn")
def _compose_in(inv):
    return _porter_duff(inv, lambda aa, ab: ab, lambda aa, ab: 0.0)


@kernel(IP, "ComposeOut")
def _compose_out(inv):
    return _porter_duff(inv, lambda aa, ab: 1.0 - ab, lambda aa, ab: 0.0)


@kernel(IP, "ComposeAtop")
def _compose_atop(inv):
    return _porter_duff(inv, lambda aa, ab: ab, lambda aa, ab: 1.0 - aa)


@kernel(IP, "ComposeXor")
def _compose_xor(inv):
    return _porter_duff(inv, lambda aa, ab: 1.0 - ab, lambda aa, ab: 1.0 - aa)


@kernel(IP, "ComposePlus")
def _compose_plus(inv):
    return _porter_duff(inv, lambda aa, ab: 1.0, lambda aa, ab: 1.0)


# --- TextureDraw ---


def _coverage(outside: NDArray, falloff: float) -> NDArray:
    """1 where outside <= 0, ramping to 0 over falloff pixels beyond the shape."""
    if falloff > 0:
        return np.clip(1.0 - outside / falloff, 0.0, 1.0)
    return (outside <= 0).astype(np.float64)


def _paint(inv, coverage: NDArray) -> NDArray:
    src = inv.source()
    color = inv.vector("ScalarA")
    return src + (color - src) * coverage[..., np.newaxis]


@kernel(DRAW, "Circle", "CircleI")
def _circle(inv):
    cx, cy, radius, falloff = inv.vector("ScalarB")
    x, y = _grid(inv.dst.data)
    return _paint(inv, _coverage(np.hypot(x - cx, y - cy) - radius, falloff))


@kernel(DRAW, "Line", "LineI")
def _line(inv):
    x0, y0, x1, y1 = inv.vector("ScalarB")
    width, falloff = inv.vector("ScalarC")[:2]
    x, y = _grid(inv.dst.data)
    vx, vy = x1 - x0, y1 - y0
    length2 = vx * vx + vy * vy
    if length2 > 0:
        t = np.clip(((x - x0) * vx + (y - y0) * vy) / length2, 0.0, 1.0)
    else:
        t = np.zeros_like(x)
    dist = np.hypot(x - (x0 + t * vx), y - (y0 + t * vy))
    return _paint(inv, _coverage(dist - 0.5 * width, falloff))


@kernel(DRAW, "Border", "BorderI")
def _border(inv):
    width, falloff = inv.vector("ScalarB")[:2]
    dst = inv.dst
    x, y = _grid(dst.data)
    edge = np.minimum(np.minimum(x, y), np.minimum(dst.width - 1 - x, dst.height - 1 - y))
    return _paint(inv, _coverage(edge + 0.5 - width, falloff))
