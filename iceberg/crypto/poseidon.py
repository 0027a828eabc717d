"""
Iceberg Protocol Poseidon Hash

circomlib-compatible Poseidon over the BN254 scalar field:
- x^5 S-box, 8 full rounds, 56 (t=2) or 57 (t=3) partial rounds
- state = [0, inputs...], output is state[0] after the permutation
- each round: add constants, S-box (full: all lanes, partial: lane 0), MDS

H1 and H2 are the one- and two-input instances used for nullifier hashes,
commitments and Merkle nodes. The withdraw circuit recomputes both from the
same PoseidonParams, so any change here changes the circuit.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Sequence, Tuple

from iceberg.constants import (
    FIELD_MODULUS,
    POSEIDON_ALPHA,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_PARTIAL_ROUNDS,
)
from iceberg.crypto.field import parse_field
from iceberg.crypto.grain import generate_parameters
from iceberg.errors import InvalidParameterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoseidonParams:
    """Parameters for one state width."""
    width: int
    full_rounds: int
    partial_rounds: int
    round_constants: Tuple[int, ...]
    mds: Tuple[Tuple[int, ...], ...]

    @property
    def total_rounds(self) -> int:
        return self.full_rounds + self.partial_rounds

    def is_full_round(self, r: int) -> bool:
        """True if round r applies the S-box to every lane."""
        half = self.full_rounds // 2
        return r < half or r >= half + self.partial_rounds

    def round_constant(self, r: int, lane: int) -> int:
        return self.round_constants[r * self.width + lane]

    def fingerprint(self) -> dict:
        """Summary used to match proof artifacts against this build."""
        return {
            "width": self.width,
            "full_rounds": self.full_rounds,
            "partial_rounds": self.partial_rounds,
            "c0": hex(self.round_constants[0]),
            "m00": hex(self.mds[0][0]),
        }


# Parameters loaded from a constants file take precedence over generation
_OVERRIDES: Dict[int, PoseidonParams] = {}


@lru_cache(maxsize=None)
def _generated_params(width: int) -> PoseidonParams:
    if width not in POSEIDON_PARTIAL_ROUNDS:
        raise InvalidParameterError("width", f"unsupported Poseidon width {width}")

    partial_rounds = POSEIDON_PARTIAL_ROUNDS[width]
    constants, mds = generate_parameters(width, POSEIDON_FULL_ROUNDS, partial_rounds)
    logger.debug(f"Generated Poseidon parameters for t={width}")
    return PoseidonParams(
        width=width,
        full_rounds=POSEIDON_FULL_ROUNDS,
        partial_rounds=partial_rounds,
        round_constants=tuple(constants),
        mds=tuple(tuple(row) for row in mds),
    )


def get_params(width: int) -> PoseidonParams:
    """Parameters for state width t (number of inputs + 1)."""
    if width in _OVERRIDES:
        return _OVERRIDES[width]
    return _generated_params(width)


def load_params_file(path: str) -> List[int]:
    """
    Load Poseidon constants from JSON and use them instead of generated ones.

    File format: {"<t>": {"C": [...], "M": [[...], ...]}, ...} with decimal or
    0x-hex strings. Partial round counts come from the protocol constants.

    Args:
        path: JSON file

    Returns:
        Widths loaded
    """
    with open(path, 'r') as f:
        data = json.load(f)

    loaded = []
    for key, entry in data.items():
        width = int(key)
        if width not in POSEIDON_PARTIAL_ROUNDS:
            raise InvalidParameterError("width", f"unsupported Poseidon width {width}")

        partial_rounds = POSEIDON_PARTIAL_ROUNDS[width]
        constants = tuple(parse_field(c) for c in entry["C"])
        mds = tuple(tuple(parse_field(m) for m in row) for row in entry["M"])

        expected = (POSEIDON_FULL_ROUNDS + partial_rounds) * width
        if len(constants) != expected:
            raise InvalidParameterError("C", f"expected {expected} constants for t={width}, got {len(constants)}")
        if len(mds) != width or any(len(row) != width for row in mds):
            raise InvalidParameterError("M", f"expected {width}x{width} matrix")

        _OVERRIDES[width] = PoseidonParams(
            width=width,
            full_rounds=POSEIDON_FULL_ROUNDS,
            partial_rounds=partial_rounds,
            round_constants=constants,
            mds=mds,
        )
        loaded.append(width)

    logger.info(f"Poseidon constants loaded from {path} for widths {sorted(loaded)}")
    return sorted(loaded)


def clear_overrides() -> None:
    """Drop file-loaded constants and fall back to generated ones."""
    _OVERRIDES.clear()


def permute(state: Sequence[int], params: PoseidonParams) -> List[int]:
    """
    Apply the Poseidon permutation.

    Args:
        state: t field elements
        params: Parameters for width t

    Returns:
        Permuted state
    """
    p = FIELD_MODULUS
    t = params.width
    if len(state) != t:
        raise InvalidParameterError("state", f"expected {t} elements, got {len(state)}")

    s = list(state)
    mds = params.mds
    constants = params.round_constants

    for r in range(params.total_rounds):
        base = r * t
        s = [(s[i] + constants[base + i]) % p for i in range(t)]

        if params.is_full_round(r):
            s = [pow(x, POSEIDON_ALPHA, p) for x in s]
        else:
            s[0] = pow(s[0], POSEIDON_ALPHA, p)

        s = [sum(mds[i][j] * s[j] for j in range(t)) % p for i in range(t)]

    return s


def poseidon(inputs: Sequence[int]) -> int:
    """
    Hash field elements with Poseidon (circomlib convention).

    Args:
        inputs: 1..4 canonical field elements

    Returns:
        Field element
    """
    values = [parse_field(x) for x in inputs]
    params = get_params(len(values) + 1)
    return permute([0] + values, params)[0]


def h1(x: int) -> int:
    """Nullifier hash: Poseidon with one input."""
    return poseidon([x])


def h2(x: int, y: int) -> int:
    """Commitment / Merkle node hash: Poseidon with two inputs."""
    return poseidon([x, y])
