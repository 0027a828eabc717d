"""
Iceberg Protocol Poseidon Parameter Generation

Round constants and MDS matrices produced by the Grain LFSR procedure of the
Poseidon reference parameter script, so that the native hash and the circuit
share the exact constants used by circomlib.

Procedure:
- 80-bit initial state: field type (2 bits), S-box type (4), field size (12),
  width t (12), R_F (10), R_P (10), then thirty 1 bits
- Clock 160 times and discard the output
- Self-shrinking output: draw bit pairs (b1, b2), emit b2 when b1 == 1
- Round constants: (R_F + R_P) * t samples of n bits, MSB first, rejected
  while >= p
- MDS: Cauchy matrix M[i][j] = 1 / (x_i + y_j) over 2t distinct samples
"""

from __future__ import annotations
from collections import deque
from typing import List, Tuple

from iceberg.constants import (
    FIELD_MODULUS,
    FIELD_BITS,
    GRAIN_FIELD_TYPE,
    GRAIN_SBOX_TYPE,
    GRAIN_STATE_BITS,
    GRAIN_WARMUP_CLOCKS,
)
from iceberg.crypto.field import field_inv

# Tap positions of the feedback polynomial
_TAPS = (62, 51, 38, 23, 13, 0)


def _to_bits(value: int, width: int) -> List[int]:
    """Big-endian bit list of value, zero-padded to width."""
    return [(value >> (width - 1 - i)) & 1 for i in range(width)]


class GrainLFSR:
    """
    Grain-style LFSR used as the Poseidon parameter PRNG.
    """

    def __init__(
        self,
        width: int,
        full_rounds: int,
        partial_rounds: int,
        field_size: int = FIELD_BITS,
        field_type: int = GRAIN_FIELD_TYPE,
        sbox_type: int = GRAIN_SBOX_TYPE,
    ):
        bits = (
            _to_bits(field_type, 2)
            + _to_bits(sbox_type, 4)
            + _to_bits(field_size, 12)
            + _to_bits(width, 12)
            + _to_bits(full_rounds, 10)
            + _to_bits(partial_rounds, 10)
            + [1] * 30
        )
        assert len(bits) == GRAIN_STATE_BITS

        self._state = deque(bits, maxlen=GRAIN_STATE_BITS)
        for _ in range(GRAIN_WARMUP_CLOCKS):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        new_bit = s[_TAPS[0]] ^ s[_TAPS[1]] ^ s[_TAPS[2]] ^ s[_TAPS[3]] ^ s[_TAPS[4]] ^ s[_TAPS[5]]
        # maxlen drops the oldest bit
        s.append(new_bit)
        return new_bit

    def next_bit(self) -> int:
        """Next self-shrinking output bit."""
        while True:
            first = self._clock()
            second = self._clock()
            if first == 1:
                return second

    def random_bits(self, count: int) -> int:
        """Draw count output bits as an integer, first bit most significant."""
        value = 0
        for _ in range(count):
            value = (value << 1) | self.next_bit()
        return value

    def random_field_element(self, field_size: int = FIELD_BITS) -> int:
        """Rejection-sample a field element."""
        value = self.random_bits(field_size)
        while value >= FIELD_MODULUS:
            value = self.random_bits(field_size)
        return value


def generate_round_constants(
    lfsr: GrainLFSR,
    width: int,
    full_rounds: int,
    partial_rounds: int,
) -> List[int]:
    """
    Generate (R_F + R_P) * t round constants.

    Args:
        lfsr: Freshly initialized generator for these parameters
        width: State width t
        full_rounds: R_F
        partial_rounds: R_P

    Returns:
        Flat constant list, constant for round r and lane i at r * t + i
    """
    count = (full_rounds + partial_rounds) * width
    return [lfsr.random_field_element() for _ in range(count)]


def generate_cauchy_mds(lfsr: GrainLFSR, width: int, field_size: int = FIELD_BITS) -> List[List[int]]:
    """
    Generate a Cauchy MDS matrix from the generator's continuing output.

    Samples are reduced modulo p without rejection. The whole sample set is
    redrawn while it contains duplicates or any x_i + y_j is zero.

    Args:
        lfsr: Generator already used for the round constants
        width: State width t

    Returns:
        t x t matrix
    """
    while True:
        samples = [lfsr.random_bits(field_size) % FIELD_MODULUS for _ in range(2 * width)]
        while len(set(samples)) != len(samples):
            samples = [lfsr.random_bits(field_size) % FIELD_MODULUS for _ in range(2 * width)]

        xs = samples[:width]
        ys = samples[width:]
        if any((x + y) % FIELD_MODULUS == 0 for x in xs for y in ys):
            continue

        return [[field_inv(x + y) for y in ys] for x in xs]


def generate_parameters(
    width: int,
    full_rounds: int,
    partial_rounds: int,
) -> Tuple[List[int], List[List[int]]]:
    """
    Generate round constants and MDS matrix for one Poseidon width.

    Returns:
        (round_constants, mds)
    """
    lfsr = GrainLFSR(width, full_rounds, partial_rounds)
    constants = generate_round_constants(lfsr, width, full_rounds, partial_rounds)
    mds = generate_cauchy_mds(lfsr, width)
    return constants, mds
