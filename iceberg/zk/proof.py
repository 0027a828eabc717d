"""
Iceberg Protocol Proof Formats

Groth16 proofs as integer coordinates, their snarkjs JSON form, and the
eight-word contract form:

    [a0, a1, b00, b01, b10, b11, c0, c1]

Each G2 coordinate is written (imaginary, real) in the contract form, the
reverse of the snarkjs (real, imaginary) order.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from iceberg.constants import CIRCUIT_PUBLIC_INPUTS, CONTRACT_PROOF_LENGTH, PROOF_CURVE, PROOF_PROTOCOL
from iceberg.crypto.field import parse_field, to_hex32
from iceberg.errors import InvalidProofFormatError
from iceberg.zk.curve import G1Ints, G2Ints


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidProofFormatError(f"{name} is not an integer")
    try:
        return int(value, 0) if isinstance(value, str) and value.startswith("0x") else int(value)
    except (TypeError, ValueError):
        raise InvalidProofFormatError(f"{name} is not an integer") from None


@dataclass(frozen=True)
class Groth16Proof:
    """Proof elements A (G1), B (G2), C (G1) in affine integer form."""
    a: G1Ints
    b: G2Ints
    c: G1Ints

    def to_snarkjs(self) -> dict:
        """snarkjs proof.json layout (projective, decimal strings)."""
        (bx0, bx1), (by0, by1) = self.b
        return {
            "pi_a": [str(self.a[0]), str(self.a[1]), "1"],
            "pi_b": [[str(bx0), str(bx1)], [str(by0), str(by1)], ["1", "0"]],
            "pi_c": [str(self.c[0]), str(self.c[1]), "1"],
            "protocol": PROOF_PROTOCOL,
            "curve": PROOF_CURVE,
        }

    @classmethod
    def from_snarkjs(cls, data: Dict[str, Any]) -> "Groth16Proof":
        """
        Parse snarkjs proof.json.

        Raises:
            InvalidProofFormatError: If fields are missing or malformed
        """
        try:
            pi_a, pi_b, pi_c = data["pi_a"], data["pi_b"], data["pi_c"]
            a = (_int(pi_a[0], "pi_a"), _int(pi_a[1], "pi_a"))
            b = (
                (_int(pi_b[0][0], "pi_b"), _int(pi_b[0][1], "pi_b")),
                (_int(pi_b[1][0], "pi_b"), _int(pi_b[1][1], "pi_b")),
            )
            c = (_int(pi_c[0], "pi_c"), _int(pi_c[1], "pi_c"))
        except (KeyError, IndexError, TypeError):
            raise InvalidProofFormatError("missing pi_a, pi_b or pi_c") from None

        protocol = data.get("protocol", PROOF_PROTOCOL)
        if protocol != PROOF_PROTOCOL:
            raise InvalidProofFormatError(f"unsupported protocol {protocol}")
        return cls(a=a, b=b, c=c)

    def to_contract(self) -> List[int]:
        """Eight-word calldata form with the G2 coordinate swap."""
        (bx0, bx1), (by0, by1) = self.b
        return [self.a[0], self.a[1], bx1, bx0, by1, by0, self.c[0], self.c[1]]

    @classmethod
    def from_contract(cls, words: Sequence[Any]) -> "Groth16Proof":
        if len(words) != CONTRACT_PROOF_LENGTH:
            raise InvalidProofFormatError(
                f"contract proof must have {CONTRACT_PROOF_LENGTH} words, got {len(words)}"
            )
        w = [_int(x, f"proof[{i}]") for i, x in enumerate(words)]
        return cls(a=(w[0], w[1]), b=((w[3], w[2]), (w[5], w[4])), c=(w[6], w[7]))


def contract_proof(proof: Groth16Proof) -> List[int]:
    """[a0, a1, b00, b01, b10, b11, c0, c1] as the verifier contract expects."""
    return proof.to_contract()


@dataclass(frozen=True)
class PublicSignals:
    """Public inputs of the withdraw circuit."""
    merkle_root: int
    nullifier_hash: int
    recipient: int

    def to_list(self) -> List[int]:
        return [self.merkle_root, self.nullifier_hash, self.recipient]

    def to_strings(self) -> List[str]:
        """snarkjs public.json layout."""
        return [str(v) for v in self.to_list()]

    @classmethod
    def from_list(cls, values: Sequence[Any]) -> "PublicSignals":
        """
        Raises:
            InvalidProofFormatError: If there are not exactly three values
        """
        if len(values) != len(CIRCUIT_PUBLIC_INPUTS):
            raise InvalidProofFormatError(
                f"expected {len(CIRCUIT_PUBLIC_INPUTS)} public signals, got {len(values)}"
            )
        root, nullifier_hash, recipient = (parse_field(v) for v in values)
        return cls(merkle_root=root, nullifier_hash=nullifier_hash, recipient=recipient)

    def to_dict(self) -> dict:
        return {
            "merkleRoot": to_hex32(self.merkle_root),
            "nullifierHash": to_hex32(self.nullifier_hash),
            "recipient": f"0x{self.recipient:040x}",
        }


@dataclass(frozen=True)
class WithdrawalProof:
    """A proof together with the public signals it was generated for."""
    proof: Groth16Proof
    public_signals: PublicSignals

    @property
    def merkle_root(self) -> int:
        return self.public_signals.merkle_root

    @property
    def nullifier_hash(self) -> int:
        return self.public_signals.nullifier_hash

    @property
    def recipient(self) -> int:
        return self.public_signals.recipient

    def contract_proof(self) -> List[int]:
        return contract_proof(self.proof)

    def to_dict(self) -> dict:
        return {
            "proof": self.proof.to_snarkjs(),
            "publicSignals": self.public_signals.to_strings(),
            "contractProof": [str(w) for w in self.contract_proof()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithdrawalProof":
        """
        Accepts {"proof": <snarkjs>, "publicSignals": [...]} or
        {"contractProof": [8 words], "publicSignals": [...]}.
        """
        if not isinstance(data, dict) or "publicSignals" not in data:
            raise InvalidProofFormatError("missing publicSignals")
        signals = PublicSignals.from_list(data["publicSignals"])
        if "proof" in data:
            proof = Groth16Proof.from_snarkjs(data["proof"])
        elif "contractProof" in data:
            proof = Groth16Proof.from_contract(data["contractProof"])
        else:
            raise InvalidProofFormatError("missing proof")
        return cls(proof=proof, public_signals=signals)
