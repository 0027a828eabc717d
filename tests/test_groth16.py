"""
Iceberg Protocol Groth16 Tests
Withdraw circuit, proof encoding, verification and the full
deposit -> swap -> withdraw flow with real proofs.

Key setup and proving run in pure Python; the session fixtures in
conftest.py build the keys and the "abc123" proof once.
"""

import pytest

from iceberg.client.wallet import authorize_swap, check_withdrawable, generate_withdrawal_proof
from iceberg.constants import EVENT_WITHDRAWAL, MERKLE_TREE_DEPTH
from iceberg.crypto.merkle import MerkleAccumulator
from iceberg.errors import (
    AlreadyWithdrawnError,
    InvalidParameterError,
    InvalidProofError,
    InvalidProofFormatError,
    WitnessError,
)
from iceberg.protocol.commitment import derive
from iceberg.protocol.registry import NullifierState
from iceberg.protocol.swap import SwapOperator
from iceberg.zk.circuit import WithdrawInputs, build_witness, withdraw_circuit
from iceberg.zk.proof import Groth16Proof, PublicSignals, WithdrawalProof, contract_proof

from conftest import (
    DEPOSITOR_KEY,
    EXPECTED_USDC_OUT,
    OTHER_RECIPIENT,
    POOL,
    RECIPIENT,
    USDC,
)

pytestmark = pytest.mark.timeout(600)


def abc123_inputs(note, recipient=RECIPIENT, secret=None) -> WithdrawInputs:
    tree = MerkleAccumulator()
    tree.insert(note.commitment)
    return WithdrawInputs.from_path(
        merkle_root=tree.root(),
        nullifier_hash=note.nullifier_hash,
        recipient=recipient.to_int(),
        nullifier=note.nullifier,
        secret=note.secret if secret is None else secret,
        path=tree.get_proof(0),
    )


# =============================================================================
# Circuit
# =============================================================================

class TestWithdrawCircuit:
    """R1CS of the withdraw relation."""

    def test_public_inputs(self):
        """Public inputs are root, nullifier hash and recipient, in that order."""
        circuit = withdraw_circuit()
        assert circuit.num_public == 3
        assert circuit.fingerprint()["publicInputs"] == ["merkleRoot", "nullifierHash", "recipient"]
        assert circuit.fingerprint()["depth"] == MERKLE_TREE_DEPTH

    def test_valid_witness(self, abc123_note):
        """A correct assignment satisfies every constraint."""
        witness = build_witness(abc123_inputs(abc123_note))
        cs = withdraw_circuit().cs
        assert cs.first_unsatisfied(witness) is None
        assert cs.public_values(witness)[1] == abc123_note.nullifier_hash

    def test_wrong_secret(self, abc123_note):
        """The wrong secret does not reach the root."""
        with pytest.raises(WitnessError):
            build_witness(abc123_inputs(abc123_note, secret=abc123_note.secret + 1))

    def test_wrong_nullifier_hash(self, abc123_note):
        """The nullifier hash must be H1(nullifier)."""
        inputs = abc123_inputs(abc123_note)
        inputs.nullifier_hash = abc123_note.commitment
        with pytest.raises(WitnessError):
            build_witness(inputs)

    def test_non_binary_index(self, abc123_note):
        """Path indices must be bits."""
        inputs = abc123_inputs(abc123_note)
        inputs.path_indices[0] = 2
        with pytest.raises(WitnessError):
            build_witness(inputs)

    def test_path_length_mismatch(self, abc123_note):
        """Elements and indices must pair up."""
        inputs = abc123_inputs(abc123_note)
        inputs.path_indices.pop()
        with pytest.raises(InvalidParameterError):
            inputs.to_assignment()


# =============================================================================
# Proof encoding
# =============================================================================

class TestProofEncoding:
    """snarkjs and contract layouts."""

    def test_contract_order(self):
        """G2 coordinates are swapped within each pair."""
        proof = Groth16Proof(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8))
        assert contract_proof(proof) == [1, 2, 4, 3, 6, 5, 7, 8]
        assert Groth16Proof.from_contract(contract_proof(proof)) == proof

    def test_contract_length(self):
        """Contract proofs have exactly eight words."""
        with pytest.raises(InvalidProofFormatError):
            Groth16Proof.from_contract([1, 2, 3])

    def test_snarkjs_layout(self):
        """proof.json carries projective coordinates as strings."""
        data = Groth16Proof(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8)).to_snarkjs()
        assert data["pi_a"] == ["1", "2", "1"]
        assert data["pi_b"] == [["3", "4"], ["5", "6"], ["1", "0"]]
        assert data["protocol"] == "groth16"
        assert Groth16Proof.from_snarkjs(data) == Groth16Proof(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8))

    def test_malformed_snarkjs(self):
        """Missing proof elements are a format error."""
        with pytest.raises(InvalidProofFormatError):
            Groth16Proof.from_snarkjs({"pi_a": ["1", "2", "1"]})

    def test_public_signal_count(self):
        """Exactly three public signals."""
        with pytest.raises(InvalidProofFormatError):
            PublicSignals.from_list([1, 2])

    def test_withdrawal_proof_dict(self, abc123_proof):
        """Both accepted wire forms parse back to the same proof."""
        data = abc123_proof.to_dict()
        assert WithdrawalProof.from_dict(data) == abc123_proof
        contract_form = {"contractProof": data["contractProof"], "publicSignals": data["publicSignals"]}
        assert WithdrawalProof.from_dict(contract_form) == abc123_proof


# =============================================================================
# Verification
# =============================================================================

class TestVerification:
    """Groth16 verification with the session keys."""

    def test_valid_proof(self, verifier, abc123_proof):
        """An honest proof verifies."""
        assert verifier.verify(abc123_proof.proof, abc123_proof.public_signals.to_list())

    def test_other_recipient(self, verifier, abc123_proof):
        """The proof is bound to its recipient."""
        signals = abc123_proof.public_signals.to_list()
        signals[2] = OTHER_RECIPIENT.to_int()
        assert not verifier.verify(abc123_proof.proof, signals)

    def test_other_root(self, verifier, abc123_proof):
        """The proof is bound to its root."""
        signals = abc123_proof.public_signals.to_list()
        signals[0] = signals[0] + 1
        assert not verifier.verify(abc123_proof.proof, signals)

    def test_tampered_proof(self, verifier, abc123_proof):
        """Swapping proof elements breaks verification."""
        proof = abc123_proof.proof
        tampered = Groth16Proof(a=proof.c, b=proof.b, c=proof.a)
        assert not verifier.verify(tampered, abc123_proof.public_signals.to_list())

    def test_off_curve_point(self, verifier, abc123_proof):
        """Points off the curve verify as False instead of raising."""
        proof = abc123_proof.proof
        broken = Groth16Proof(a=(1, 3), b=proof.b, c=proof.c)
        assert not verifier.verify(broken, abc123_proof.public_signals.to_list())

    def test_input_count(self, verifier, abc123_proof):
        """Wrong number of public inputs verifies as False."""
        assert not verifier.verify(abc123_proof.proof, abc123_proof.public_signals.to_list()[:2])

    def test_unsatisfied_witness(self, verifier, native_prover, abc123_note):
        """A proof built from the wrong secret does not verify."""
        inputs = abc123_inputs(abc123_note, secret=abc123_note.secret + 1)
        forged = native_prover.backend.prove_sync(inputs, check_witness=False)
        assert not verifier.verify(forged.proof, forged.public_signals.to_list())


# =============================================================================
# End to end
# =============================================================================

class TestEndToEnd:
    """Deposit "abc123", swap 0.0002 ETH to USDC, withdraw with a real proof."""

    @pytest.mark.asyncio
    async def test_abc123(self, verified_ledger, mock_aggregator, native_prover,
                          operator_address, depositor_address, chain_id):
        """Recipient receives 500000 USDC units exactly once."""
        note = derive("abc123")
        leaf_index = await verified_ledger.insert(note.commitment, 1, depositor_address)
        assert leaf_index == 0

        operator = SwapOperator(verified_ledger, mock_aggregator, operator_address, chain_id)
        auth, signature = authorize_swap(note, 1, USDC, DEPOSITOR_KEY, chain_id)
        assert await operator.execute_swap(auth, signature) == EXPECTED_USDC_OUT

        status = await check_withdrawable(note.nullifier_hash, verified_ledger)
        assert status.state == NullifierState.SWAPPED
        assert status.withdrawable

        proof = await generate_withdrawal_proof(RECIPIENT, "abc123", verified_ledger, native_prover)
        assert proof.nullifier_hash == note.nullifier_hash
        assert proof.merkle_root == await verified_ledger.get_root()
        assert len(proof.contract_proof()) == 8

        result = await verified_ledger.withdraw(note.nullifier_hash, RECIPIENT, proof)
        assert result.amount == EXPECTED_USDC_OUT
        assert await verified_ledger.balance_of(USDC, RECIPIENT) == EXPECTED_USDC_OUT
        assert await verified_ledger.balance_of(USDC, POOL) == 0
        assert len(await verified_ledger.get_logs(EVENT_WITHDRAWAL)) == 1

        with pytest.raises(AlreadyWithdrawnError):
            await verified_ledger.withdraw(note.nullifier_hash, RECIPIENT, proof)
        status = await check_withdrawable(note.nullifier_hash, verified_ledger)
        assert status.state == NullifierState.WITHDRAWN
        assert not status.withdrawable

    @pytest.mark.asyncio
    async def test_proof_for_other_recipient(self, verified_ledger, mock_aggregator, abc123_proof,
                                             operator_address, depositor_address, chain_id):
        """A proof bound to one recipient cannot pay another."""
        note = derive("abc123")
        await verified_ledger.insert(note.commitment, 1, depositor_address)
        operator = SwapOperator(verified_ledger, mock_aggregator, operator_address, chain_id)
        auth, signature = authorize_swap(note, 1, USDC, DEPOSITOR_KEY, chain_id)
        await operator.execute_swap(auth, signature)

        rebound = WithdrawalProof(
            proof=abc123_proof.proof,
            public_signals=PublicSignals(
                abc123_proof.merkle_root, abc123_proof.nullifier_hash, OTHER_RECIPIENT.to_int()
            ),
        )
        with pytest.raises(InvalidProofError):
            await verified_ledger.withdraw(note.nullifier_hash, OTHER_RECIPIENT, rebound)
        assert not await verified_ledger.is_consumed(note.nullifier_hash)

        await verified_ledger.withdraw(note.nullifier_hash, RECIPIENT, abc123_proof)
        assert await verified_ledger.balance_of(USDC, RECIPIENT) == EXPECTED_USDC_OUT
