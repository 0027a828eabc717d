"""
Iceberg Protocol Withdraw Circuit

Public inputs (in this order): merkleRoot, nullifierHash, recipient
Private inputs: nullifier, secret, pathElements[5], pathIndices[5]

Constraints:
    commitment = H2(nullifier, secret)
    folding commitment along the path yields merkleRoot
    nullifierHash = H1(nullifier)
    every pathIndices[i] is 0 or 1
    recipient is bound to the proof (recipient * recipient)

The Poseidon gadget uses the same PoseidonParams as crypto.poseidon, so
circuit and native hashing cannot drift apart.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Sequence

from iceberg.constants import CIRCUIT_NAME, CIRCUIT_PUBLIC_INPUTS, MERKLE_TREE_DEPTH
from iceberg.crypto.field import parse_field, to_hex32
from iceberg.crypto.merkle import MerklePath
from iceberg.crypto.poseidon import get_params
from iceberg.errors import InvalidParameterError
from iceberg.zk.r1cs import ConstraintSystem, LinearCombination

logger = logging.getLogger(__name__)


# ==============================================================================
# GADGETS
# ==============================================================================

def _sbox(cs: ConstraintSystem, x: LinearCombination, label: str) -> LinearCombination:
    """x^5 with three multiplications."""
    x2 = cs.mul(x, x, f"{label}.x2")
    x4 = cs.mul(x2, x2, f"{label}.x4")
    return cs.mul(x4, x, f"{label}.x5")


def _mix(state: List[LinearCombination], mds) -> List[LinearCombination]:
    mixed = []
    for row in mds:
        acc = LinearCombination.zero()
        for coeff, lane in zip(row, state):
            acc = acc + lane.scale(coeff)
        mixed.append(acc)
    return mixed


def poseidon_gadget(
    cs: ConstraintSystem,
    inputs: Sequence[LinearCombination],
    label: str,
) -> LinearCombination:
    """
    Constrain a Poseidon hash of inputs.

    Linear steps (round constants and MDS) are folded into linear
    combinations; only the S-boxes cost constraints.

    Args:
        cs: Constraint system
        inputs: One or more linear combinations
        label: Prefix for wire names

    Returns:
        Linear combination equal to the hash output
    """
    params = get_params(len(inputs) + 1)
    state = [LinearCombination.zero()] + list(inputs)

    for r in range(params.total_rounds):
        state = [lane + params.round_constant(r, i) for i, lane in enumerate(state)]
        if params.is_full_round(r):
            state = [_sbox(cs, lane, f"{label}.r{r}.{i}") for i, lane in enumerate(state)]
        else:
            state[0] = _sbox(cs, state[0], f"{label}.r{r}.0")
        state = _mix(state, params.mds)

    return state[0]


def merkle_level_gadget(
    cs: ConstraintSystem,
    current: LinearCombination,
    sibling: LinearCombination,
    is_right: LinearCombination,
    label: str,
) -> LinearCombination:
    """
    One level of path folding.

    is_right == 1 places the running node on the right:
        t = is_right * (sibling - current)
        left = current + t, right = sibling - t
    """
    cs.assert_boolean(is_right, f"{label}.bit")
    t = cs.mul(is_right, sibling - current, f"{label}.swap")
    return poseidon_gadget(cs, [current + t, sibling - t], f"{label}.hash")


# ==============================================================================
# CIRCUIT
# ==============================================================================

@dataclass
class WithdrawInputs:
    """Full assignment of the withdraw circuit inputs."""
    merkle_root: int
    nullifier_hash: int
    recipient: int
    nullifier: int
    secret: int
    path_elements: List[int]
    path_indices: List[int]

    @classmethod
    def from_path(
        cls,
        merkle_root: int,
        nullifier_hash: int,
        recipient: int,
        nullifier: int,
        secret: int,
        path: MerklePath,
    ) -> "WithdrawInputs":
        return cls(
            merkle_root=merkle_root,
            nullifier_hash=nullifier_hash,
            recipient=recipient,
            nullifier=nullifier,
            secret=secret,
            path_elements=list(path.path_elements),
            path_indices=list(path.path_indices),
        )

    def public_values(self) -> List[int]:
        return [self.merkle_root, self.nullifier_hash, self.recipient]

    def to_assignment(self) -> Dict[str, int]:
        """Named inputs as consumed by the constraint system."""
        if len(self.path_elements) != len(self.path_indices):
            raise InvalidParameterError("pathElements", "length differs from pathIndices")

        assignment = {
            "merkleRoot": parse_field(self.merkle_root),
            "nullifierHash": parse_field(self.nullifier_hash),
            "recipient": parse_field(self.recipient),
            "nullifier": parse_field(self.nullifier),
            "secret": parse_field(self.secret),
        }
        for i, (element, index) in enumerate(zip(self.path_elements, self.path_indices)):
            assignment[f"pathElements[{i}]"] = parse_field(element)
            assignment[f"pathIndices[{i}]"] = int(index)
        return assignment

    def to_json(self) -> dict:
        """input.json for the circom witness calculator (decimal strings)."""
        return {
            "merkleRoot": str(self.merkle_root),
            "nullifierHash": str(self.nullifier_hash),
            "recipient": str(self.recipient),
            "nullifier": str(self.nullifier),
            "secret": str(self.secret),
            "pathElements": [str(e) for e in self.path_elements],
            "pathIndices": [int(i) for i in self.path_indices],
        }

    def __repr__(self) -> str:
        return f"WithdrawInputs(root={to_hex32(self.merkle_root)[:18]}..., recipient={self.recipient:#x})"


@dataclass
class WithdrawCircuit:
    """The withdraw relation as an R1CS."""
    depth: int = MERKLE_TREE_DEPTH
    cs: ConstraintSystem = field(default_factory=ConstraintSystem)

    def __post_init__(self):
        cs = self.cs
        merkle_root, nullifier_hash, recipient = (cs.public_input(name) for name in CIRCUIT_PUBLIC_INPUTS)

        nullifier = cs.private_input("nullifier")
        secret = cs.private_input("secret")
        elements = [cs.private_input(f"pathElements[{i}]") for i in range(self.depth)]
        indices = [cs.private_input(f"pathIndices[{i}]") for i in range(self.depth)]

        current = poseidon_gadget(cs, [nullifier, secret], "commitment")
        for level in range(self.depth):
            current = merkle_level_gadget(cs, current, elements[level], indices[level], f"level{level}")
        cs.assert_equal(current, merkle_root, "root")

        cs.assert_equal(poseidon_gadget(cs, [nullifier], "nullifierHash"), nullifier_hash, "nullifierHash")

        cs.mul(recipient, recipient, "recipientSquare")
        cs.seal_public_inputs()

        logger.debug(
            f"Withdraw circuit: {cs.num_constraints} constraints, {cs.num_wires} wires"
        )

    @property
    def num_public(self) -> int:
        return self.cs.num_public

    def fingerprint(self) -> dict:
        """Values that proof artifacts must have been built for."""
        return {
            "circuit": CIRCUIT_NAME,
            "depth": self.depth,
            "nPublic": self.cs.num_public,
            "publicInputs": self.cs.public_input_names,
            "constraints": self.cs.num_constraints,
            "wires": self.cs.num_wires,
            "poseidon": [get_params(t).fingerprint() for t in (2, 3)],
        }

    def build_witness(self, inputs: WithdrawInputs, check: bool = True) -> List[int]:
        """
        Compute the full witness.

        Raises:
            WitnessError: If check is set and the inputs do not satisfy the
                circuit (wrong path, wrong nullifier, non-binary index)
        """
        return self.cs.generate_witness(inputs.to_assignment(), check=check)


@lru_cache(maxsize=None)
def withdraw_circuit(depth: int = MERKLE_TREE_DEPTH) -> WithdrawCircuit:
    """Shared circuit instance per depth."""
    return WithdrawCircuit(depth=depth)


def build_witness(inputs: WithdrawInputs, check: bool = True) -> List[int]:
    """Witness for the default-depth withdraw circuit."""
    return withdraw_circuit(len(inputs.path_elements)).build_witness(inputs, check=check)
