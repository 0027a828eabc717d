"""
Iceberg Protocol Test Fixtures
"""

import pytest
import pytest_asyncio
from eth_account import Account

from iceberg.aggregator.mock import MockAggregator
from iceberg.constants import ARBITRUM_USDC, CHAIN_ID_LOCAL, DEFAULT_NATIVE_DENOMINATION
from iceberg.core.asset import NATIVE, Fungible
from iceberg.core.types import Address
from iceberg.crypto.merkle import MerkleAccumulator
from iceberg.protocol.commitment import derive
from iceberg.protocol.ledger import Ledger
from iceberg.zk.circuit import WithdrawInputs, withdraw_circuit
from iceberg.zk.groth16 import Groth16Verifier
from iceberg.zk.proof import Groth16Proof, PublicSignals, WithdrawalProof
from iceberg.zk.prover import NativeProver, WithdrawProver, generate_native_keys


# Well-known development keys (never hold real funds)
OPERATOR_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEPOSITOR_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

POOL = Address.from_hex("0x5FbDB2315678afecb367f032d93F642f64180aa3")
RECIPIENT = Address.from_hex("0x000000000000000000000000000000000000beef")
OTHER_RECIPIENT = Address.from_hex("0x000000000000000000000000000000000000dead")

USDC = Fungible(Address.from_hex(ARBITRUM_USDC))

# 0.0002 ETH at the mock rate of 2500 USDC per ETH
EXPECTED_USDC_OUT = 500_000


class StubVerifier:
    """Verifier double with a fixed answer."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls = []

    def verify(self, proof, public_inputs) -> bool:
        self.calls.append((proof, list(public_inputs)))
        return self.result


def stub_proof(merkle_root: int, nullifier_hash: int, recipient: Address) -> WithdrawalProof:
    """Well-formed proof object whose points mean nothing."""
    return WithdrawalProof(
        proof=Groth16Proof(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8)),
        public_signals=PublicSignals(merkle_root, nullifier_hash, recipient.to_int()),
    )


# =============================================================================
# Accounts
# =============================================================================

@pytest.fixture(scope="session")
def operator_address() -> Address:
    return Address.from_hex(Account.from_key(OPERATOR_KEY).address)


@pytest.fixture(scope="session")
def depositor_address() -> Address:
    return Address.from_hex(Account.from_key(DEPOSITOR_KEY).address)


# =============================================================================
# Groth16 keys and proofs (slow: built once per session)
# =============================================================================

@pytest.fixture(scope="session")
def groth16_keys():
    """Fresh proving and verifying key for the default withdraw circuit."""
    return generate_native_keys()


@pytest.fixture(scope="session")
def verifier(groth16_keys) -> Groth16Verifier:
    _, vk = groth16_keys
    return Groth16Verifier(vk)


@pytest.fixture(scope="session")
def native_prover(groth16_keys) -> WithdrawProver:
    pk, vk = groth16_keys
    return WithdrawProver(NativeProver(pk, withdraw_circuit()), vk)


@pytest.fixture(scope="session")
def abc123_note():
    return derive("abc123")


@pytest.fixture(scope="session")
def abc123_proof(groth16_keys, abc123_note) -> WithdrawalProof:
    """
    Proof for the "abc123" deposit as the first leaf of a fresh tree,
    bound to RECIPIENT.
    """
    pk, _ = groth16_keys
    tree = MerkleAccumulator()
    tree.insert(abc123_note.commitment)
    inputs = WithdrawInputs.from_path(
        merkle_root=tree.root(),
        nullifier_hash=abc123_note.nullifier_hash,
        recipient=RECIPIENT.to_int(),
        nullifier=abc123_note.nullifier,
        secret=abc123_note.secret,
        path=tree.get_proof(0),
    )
    return NativeProver(pk, withdraw_circuit()).prove_sync(inputs)


# =============================================================================
# Ledger
# =============================================================================

@pytest.fixture
def mock_aggregator() -> MockAggregator:
    return MockAggregator()


@pytest.fixture
def stub_verifier() -> StubVerifier:
    return StubVerifier(True)


def make_ledger(verifier, executor, operator: Address) -> Ledger:
    return Ledger(
        verifier=verifier,
        executor=executor,
        owner=operator,
        operator=operator,
        pool_address=POOL,
    )


@pytest_asyncio.fixture
async def ledger(stub_verifier, mock_aggregator, operator_address, depositor_address) -> Ledger:
    """
    Pool with swap config 1 = 0.0002 ETH and a depositor holding 1 ETH.
    Proof verification is stubbed.
    """
    pool = make_ledger(stub_verifier, mock_aggregator, operator_address)
    await pool.add_swap_config(operator_address, NATIVE, DEFAULT_NATIVE_DENOMINATION)
    await pool.fund(NATIVE, depositor_address, 10 ** 18)
    return pool


@pytest_asyncio.fixture
async def verified_ledger(verifier, mock_aggregator, operator_address, depositor_address) -> Ledger:
    """Same pool as ledger, checking proofs with the session verifying key."""
    pool = make_ledger(verifier, mock_aggregator, operator_address)
    await pool.add_swap_config(operator_address, NATIVE, DEFAULT_NATIVE_DENOMINATION)
    await pool.fund(NATIVE, depositor_address, 10 ** 18)
    return pool


@pytest.fixture
def chain_id() -> int:
    return CHAIN_ID_LOCAL
