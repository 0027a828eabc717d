"""
Iceberg Protocol Withdraw Prover

witness -> prove -> local verify, over a pluggable backend:

- NativeProver: Groth16 in-process (py_ecc), run on an executor thread so
  the event loop keeps serving ledger queries while it works
- SnarkjsProver: external snarkjs CLI with circom artifacts

Every proof is checked against the verifying key before it is returned, so
a bad proof is caught before it costs a failed withdrawal.
"""

from __future__ import annotations
import asyncio
import logging
import time
from concurrent.futures import Executor
from typing import Optional, Protocol, Tuple

from iceberg.constants import ARTIFACT_WASM, ARTIFACT_ZKEY
from iceberg.errors import InvalidProofError, PublicSignalMismatchError
from iceberg.zk.artifacts import ArtifactStore
from iceberg.zk.circuit import WithdrawCircuit, WithdrawInputs, withdraw_circuit
from iceberg.zk.groth16 import Groth16Verifier, ProvingKey, VerifyingKey, prove, setup
from iceberg.zk.proof import PublicSignals, WithdrawalProof
from iceberg.zk.snarkjs import SnarkjsProver

logger = logging.getLogger(__name__)


class ProverBackend(Protocol):
    name: str

    async def prove(self, inputs: WithdrawInputs) -> WithdrawalProof:
        ...


class NativeProver:
    """In-process Groth16 prover for the withdraw circuit."""

    name = "native"

    def __init__(
        self,
        pk: ProvingKey,
        circuit: Optional[WithdrawCircuit] = None,
        executor: Optional[Executor] = None,
    ):
        self.pk = pk
        self.circuit = circuit or withdraw_circuit()
        self.executor = executor

    def prove_sync(self, inputs: WithdrawInputs, check_witness: bool = True) -> WithdrawalProof:
        """
        Build the witness and prove, blocking the calling thread.

        Raises:
            WitnessError: If check_witness is set and the inputs do not
                satisfy the circuit
        """
        witness = self.circuit.build_witness(inputs, check=check_witness)
        proof = prove(self.pk, self.circuit.cs, witness, check_witness=check_witness)
        signals = PublicSignals(*self.circuit.cs.public_values(witness))
        return WithdrawalProof(proof=proof, public_signals=signals)

    async def prove(self, inputs: WithdrawInputs) -> WithdrawalProof:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.prove_sync, inputs)


class WithdrawProver:
    """Proof pipeline with local verification."""

    def __init__(self, backend: ProverBackend, vk: VerifyingKey):
        self.backend = backend
        self.verifier = Groth16Verifier(vk)

    @property
    def vk(self) -> VerifyingKey:
        return self.verifier.vk

    async def prove(self, inputs: WithdrawInputs) -> WithdrawalProof:
        """
        Prove and verify locally.

        Args:
            inputs: Full circuit assignment

        Returns:
            Verified WithdrawalProof

        Raises:
            WitnessError: If the inputs do not satisfy the circuit
            ProverError: If the backend fails
            PublicSignalMismatchError: If the backend proved other public inputs
            InvalidProofError: If the proof does not verify
        """
        started = time.monotonic()
        result = await self.backend.prove(inputs)

        expected = PublicSignals(*inputs.public_values())
        for name, want, got in zip(
            ("merkleRoot", "nullifierHash", "recipient"),
            expected.to_list(),
            result.public_signals.to_list(),
        ):
            if want != got:
                raise PublicSignalMismatchError(name, want, got)

        if not self.verify(result):
            raise InvalidProofError("locally generated proof failed verification")

        logger.info(f"Withdrawal proof ready ({self.backend.name}, {time.monotonic() - started:.1f}s)")
        return result

    def verify(self, proof: WithdrawalProof) -> bool:
        return self.verifier.verify(proof.proof, proof.public_signals.to_list())


# ==============================================================================
# FACTORIES
# ==============================================================================

def generate_native_keys(
    store: Optional[ArtifactStore] = None,
    circuit: Optional[WithdrawCircuit] = None,
) -> Tuple[ProvingKey, VerifyingKey]:
    """
    Run a fresh setup for the withdraw circuit, optionally saving the keys
    with a manifest.
    """
    circuit = circuit or withdraw_circuit()
    fingerprint = circuit.fingerprint()
    pk, vk = setup(circuit.cs, fingerprint)
    if store is not None:
        store.save_native_keys(pk, vk, fingerprint)
    return pk, vk


def load_native_prover(
    store: ArtifactStore,
    circuit: Optional[WithdrawCircuit] = None,
    executor: Optional[Executor] = None,
) -> WithdrawProver:
    """Native prover from integrity-checked key files."""
    circuit = circuit or withdraw_circuit()
    pk, vk = store.load_native_keys(circuit.fingerprint())
    return WithdrawProver(NativeProver(pk, circuit, executor), vk)


def load_snarkjs_prover(store: ArtifactStore, binary: str, timeout_sec: float) -> WithdrawProver:
    """snarkjs prover from integrity-checked circom artifacts."""
    store.verify_snarkjs(withdraw_circuit().fingerprint())
    vk = store.load_verifying_key(check=False)
    backend = SnarkjsProver(
        wasm_path=store.path(ARTIFACT_WASM),
        zkey_path=store.path(ARTIFACT_ZKEY),
        binary=binary,
        timeout_sec=timeout_sec,
    )
    return WithdrawProver(backend, vk)
