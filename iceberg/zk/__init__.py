"""
Iceberg Protocol Zero-Knowledge Proofs
Withdraw circuit and Groth16 over BN254.
"""

from iceberg.zk.circuit import WithdrawCircuit, WithdrawInputs, withdraw_circuit, build_witness
from iceberg.zk.groth16 import Groth16Verifier, ProvingKey, VerifyingKey, setup, prove, verify
from iceberg.zk.proof import Groth16Proof, PublicSignals, WithdrawalProof, contract_proof
from iceberg.zk.artifacts import ArtifactStore
from iceberg.zk.prover import WithdrawProver, NativeProver, generate_native_keys

__all__ = [
    # Circuit
    "WithdrawCircuit",
    "WithdrawInputs",
    "withdraw_circuit",
    "build_witness",
    # Groth16
    "Groth16Verifier",
    "ProvingKey",
    "VerifyingKey",
    "setup",
    "prove",
    "verify",
    "Groth16Proof",
    "PublicSignals",
    "WithdrawalProof",
    "contract_proof",
    # Proving pipeline
    "ArtifactStore",
    "WithdrawProver",
    "NativeProver",
    "generate_native_keys",
]
