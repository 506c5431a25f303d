"""
Image compositing on device images.
This module provides premultiplication and the Porter-Duff operators over
straight-alpha inputs A and B (alpha aA, aB). Results hold premultiplied color:

    Over   aA*A + (1-aA)*aB*B       aA + (1-aA)*aB      A occludes B
    In     aA*A*aB                  aA*aB               A shows only where B is
    Out    aA*A*(1-aB)              aA*(1-aB)           A shows only where B is not
    Atop   aA*A*aB + (1-aA)*aB*B    aA*aB + (1-aA)*aB   A over B, clipped to B
    Xor    (A out B) + (B out A)    same for alpha      mutually exclusive
    Plus   aA*A + aB*B              aA + aB             no precedence

The compose kernels have no in-place variants: dst must differ from both sources.
"""

from typing import TYPE_CHECKING

from .resources import DeviceImage

if TYPE_CHECKING:
    from .context import TextureOps

# Porter-Duff operators and their kernels
COMPOSE_KERNELS = {
    "over": "ComposeOver",
    "in": "ComposeIn",
    "out": "ComposeOut",
    "atop": "ComposeAtop",
    "xor": "ComposeXor",
    "plus": "ComposePlus",
}


def premultiply(ops: "TextureOps", src: DeviceImage, dst: DeviceImage) -> None:
    """
    Multiply color by alpha.

    Args:
        ops: TextureOps context
        src: Straight-alpha source image
        dst: Destination image (may be src)
    """
    ops.ip.unary_op(ops.ip.kernel_pair("Premultiply", "PremultiplyI"), src, dst)


def compose(ops: "TextureOps", operator: str, src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """
    Composite src_a with src_b using a named Porter-Duff operator.

    Args:
        ops: TextureOps context
        operator: One of "over", "in", "out", "atop", "xor", "plus"
        src_a: Image A
        src_b: Image B, same size as A
        dst: Destination image, distinct from both sources

    Raises:
        ValueError: If the operator is unknown
        InvalidOperation: If dst is one of the sources
    """
    try:
        kernel_name = COMPOSE_KERNELS[operator]
    except KeyError:
        raise ValueError(f"Unknown compositing operator '{operator}'") from None
    ops.ip.binary_op(ops.ip.find_kernel(kernel_name), src_a, src_b, dst)


def compose_over(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """A occludes B."""
    compose(ops, "over", src_a, src_b, dst)


def compose_in(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """A within B: B acts as a matte for A."""
    compose(ops, "in", src_a, src_b, dst)


def compose_out(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """A outside B: the inverse of B acts as a matte for A."""
    compose(ops, "out", src_a, src_b, dst)


def compose_atop(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """A over B, but only where B is visible."""
    compose(ops, "atop", src_a, src_b, dst)


def compose_xor(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """(A out B) + (B out A): A and B exclude each other."""
    compose(ops, "xor", src_a, src_b, dst)


def compose_plus(ops: "TextureOps", src_a: DeviceImage, src_b: DeviceImage, dst: DeviceImage) -> None:
    """A + B weighted by their alphas, without precedence."""
    compose(ops, "plus", src_a, src_b, dst)
