"""
Iceberg Protocol Curve Operations

BN254 (alt_bn128) group arithmetic on top of py_ecc's optimized
implementation: multi-scalar multiplication, fixed-base tables for key
generation, and conversion between projective points and the integer
coordinates used in JSON and contract calldata.

Integer forms:
    G1: (x, y)
    G2: ((x0, x1), (y0, y1)) where x = x0 + x1 * u
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence, Tuple

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    G1,
    G2,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    double,
    field_modulus,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
)

from iceberg.constants import FIXED_BASE_WINDOW_BITS
from iceberg.errors import InvalidProofFormatError

logger = logging.getLogger(__name__)

G1Ints = Tuple[int, int]
G2Ints = Tuple[Tuple[int, int], Tuple[int, int]]

CURVE_ORDER = curve_order


# ==============================================================================
# CONVERSION
# ==============================================================================

def g1_to_ints(point) -> G1Ints:
    """Affine integer coordinates; infinity is (0, 0)."""
    if is_inf(point):
        return (0, 0)
    x, y = normalize(point)
    return (int(x), int(y))


def g2_to_ints(point) -> G2Ints:
    """Affine integer coordinates; infinity is ((0, 0), (0, 0))."""
    if is_inf(point):
        return ((0, 0), (0, 0))
    x, y = normalize(point)
    return (
        (int(x.coeffs[0]), int(x.coeffs[1])),
        (int(y.coeffs[0]), int(y.coeffs[1])),
    )


def _check_coordinates(*values: int) -> None:
    if any(not 0 <= int(v) < field_modulus for v in values):
        raise InvalidProofFormatError("coordinate not below the base field modulus")


def g1_from_ints(coords: Sequence[int]):
    """
    Projective G1 point from affine integers.

    Raises:
        InvalidProofFormatError: If the point is not on the curve
    """
    x, y = int(coords[0]), int(coords[1])
    _check_coordinates(x, y)
    if x == 0 and y == 0:
        return Z1
    point = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(point, b):
        raise InvalidProofFormatError("G1 point not on curve")
    return point


def g2_from_ints(coords: Sequence[Sequence[int]], check_subgroup: bool = True):
    """
    Projective G2 point from affine integers.

    Raises:
        InvalidProofFormatError: If the point is not on the twist curve or
            not in the prime order subgroup
    """
    (x0, x1), (y0, y1) = coords
    _check_coordinates(x0, x1, y0, y1)
    if not any((int(x0), int(x1), int(y0), int(y1))):
        return Z2
    point = (FQ2([int(x0), int(x1)]), FQ2([int(y0), int(y1)]), FQ2.one())
    if not is_on_curve(point, b2):
        raise InvalidProofFormatError("G2 point not on curve")
    if check_subgroup and not is_inf(multiply(point, curve_order)):
        raise InvalidProofFormatError("G2 point not in subgroup")
    return point


# ==============================================================================
# SCALAR MULTIPLICATION
# ==============================================================================

def _window_for(count: int) -> int:
    return max(3, count.bit_length() - 4)


def multiexp(points: Sequence, scalars: Sequence[int], zero=Z1, window: Optional[int] = None):
    """
    Sum of scalars[i] * points[i] (Pippenger bucket method).

    Args:
        points: Projective points of one group
        scalars: Integers, reduced modulo the curve order
        zero: Identity of the group (Z1 or Z2)
        window: Bucket window width in bits, chosen from the size if None

    Returns:
        Projective point
    """
    pairs = []
    for point, scalar in zip(points, scalars):
        scalar %= curve_order
        if scalar and not is_inf(point):
            pairs.append((point, scalar))
    if not pairs:
        return zero

    c = window or _window_for(len(pairs))
    mask = (1 << c) - 1
    num_windows = (curve_order.bit_length() + c - 1) // c

    result = None
    for w in range(num_windows - 1, -1, -1):
        if result is not None:
            for _ in range(c):
                result = double(result)

        buckets: List = [None] * (mask + 1)
        shift = w * c
        for point, scalar in pairs:
            digit = (scalar >> shift) & mask
            if digit:
                bucket = buckets[digit]
                buckets[digit] = point if bucket is None else add(bucket, point)

        running = None
        window_sum = None
        for digit in range(mask, 0, -1):
            bucket = buckets[digit]
            if bucket is not None:
                running = bucket if running is None else add(running, bucket)
            if running is not None:
                window_sum = running if window_sum is None else add(window_sum, running)

        if window_sum is not None:
            result = window_sum if result is None else add(result, window_sum)

    return zero if result is None else result


class FixedBaseTable:
    """
    Precomputed multiples of one base point for many scalar multiplications.

    table[j][k] = k * 2^(w*j) * base, so a scalar costs one addition per
    window instead of a full double-and-add.
    """

    def __init__(self, base, zero=Z1, window_bits: int = FIXED_BASE_WINDOW_BITS):
        self.zero = zero
        self.window_bits = window_bits
        self.num_windows = (curve_order.bit_length() + window_bits - 1) // window_bits
        size = 1 << window_bits

        self.table = []
        window_base = base
        for _ in range(self.num_windows):
            row = [zero, window_base]
            for _ in range(size - 2):
                row.append(add(row[-1], window_base))
            self.table.append(row)
            for _ in range(window_bits):
                window_base = double(window_base)

    def mul(self, scalar: int):
        scalar %= curve_order
        mask = (1 << self.window_bits) - 1
        result = None
        for j in range(self.num_windows):
            digit = (scalar >> (j * self.window_bits)) & mask
            if digit:
                term = self.table[j][digit]
                result = term if result is None else add(result, term)
        return self.zero if result is None else result

    def batch_mul(self, scalars: Sequence[int]) -> List:
        return [self.mul(s) for s in scalars]


def g1_mul(scalar: int):
    return multiply(G1, scalar % curve_order)


def g2_mul(scalar: int):
    return multiply(G2, scalar % curve_order)


__all__ = [
    "CURVE_ORDER", "G1", "G2", "Z1", "Z2",
    "add", "neg", "multiply", "is_inf",
    "g1_to_ints", "g2_to_ints", "g1_from_ints", "g2_from_ints",
    "multiexp", "FixedBaseTable", "g1_mul", "g2_mul",
]
