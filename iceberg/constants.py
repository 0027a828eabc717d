"""
Iceberg Protocol Constants

All protocol constants defined here for single source of truth.
"""

from typing import Final, List, Dict
from dataclasses import dataclass

# ==============================================================================
# PROTOCOL
# ==============================================================================

PROTOCOL_VERSION: Final[int] = 1
PROTOCOL_NAME: Final[str] = "iceberg"

# ==============================================================================
# FIELD (BN254 scalar field)
# ==============================================================================

FIELD_MODULUS: Final[int] = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_BITS: Final[int] = 254
FIELD_BYTES: Final[int] = 32

# ==============================================================================
# POSEIDON
# ==============================================================================

POSEIDON_ALPHA: Final[int] = 5                  # S-box exponent
POSEIDON_FULL_ROUNDS: Final[int] = 8            # R_F, split 4 + 4

# Partial rounds (R_P) per state width t = inputs + 1
POSEIDON_PARTIAL_ROUNDS: Final[Dict[int, int]] = {
    2: 56,
    3: 57,
    4: 56,
    5: 60,
}

# Grain LFSR parameters from the Poseidon reference parameter script
GRAIN_FIELD_TYPE: Final[int] = 1                # prime field
GRAIN_SBOX_TYPE: Final[int] = 0                 # x^alpha
GRAIN_STATE_BITS: Final[int] = 80
GRAIN_WARMUP_CLOCKS: Final[int] = 160

# ==============================================================================
# MERKLE ACCUMULATOR
# ==============================================================================

MERKLE_TREE_DEPTH: Final[int] = 5

# zero[0] = keccak256(MERKLE_ZERO_SEED) mod r
MERKLE_ZERO_SEED: Final[bytes] = b"iceberg"

# ==============================================================================
# GROTH16 / CIRCUIT
# ==============================================================================

CIRCUIT_NAME: Final[str] = "withdraw"
CIRCUIT_PUBLIC_INPUTS: Final[List[str]] = ["merkleRoot", "nullifierHash", "recipient"]
PROOF_PROTOCOL: Final[str] = "groth16"
PROOF_CURVE: Final[str] = "bn128"
CONTRACT_PROOF_LENGTH: Final[int] = 8

# Multiplicative generator of the scalar field, used for roots of unity
FIELD_GENERATOR: Final[int] = 5
# Two-adicity of r - 1
FIELD_TWO_ADICITY: Final[int] = 28

# Fixed-base window width for key generation tables
FIXED_BASE_WINDOW_BITS: Final[int] = 8

# Artifact layout (relative to the artifact root)
ARTIFACT_WASM: Final[str] = "build/withdraw/withdraw_js/withdraw.wasm"
ARTIFACT_ZKEY: Final[str] = "keys/withdraw/withdraw_0001.zkey"
ARTIFACT_VKEY: Final[str] = "keys/withdraw/withdraw_verification_key.json"
ARTIFACT_PKEY: Final[str] = "keys/withdraw/withdraw_proving_key.json"
ARTIFACT_MANIFEST: Final[str] = "manifest.json"

SNARKJS_BINARY: Final[str] = "snarkjs"
SNARKJS_TIMEOUT_SEC: Final[float] = 300.0

# ==============================================================================
# ADDRESSES AND ASSETS
# ==============================================================================

ADDRESS_SIZE: Final[int] = 20
ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"

# Aggregator sentinel for the chain's native coin
NATIVE_TOKEN_SENTINEL: Final[str] = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

NATIVE_DECIMALS: Final[int] = 18
STABLECOIN_DECIMALS: Final[int] = 6

CHAIN_ID_ETHEREUM: Final[int] = 1
CHAIN_ID_ARBITRUM: Final[int] = 42161
CHAIN_ID_LOCAL: Final[int] = 31337

SUPPORTED_CHAINS: Final[List[int]] = [CHAIN_ID_ETHEREUM, CHAIN_ID_ARBITRUM]


@dataclass(frozen=True)
class TokenInfo:
    """Known token on a supported chain."""
    symbol: str
    address: str
    decimals: int
    name: str = ""


ARBITRUM_USDC: Final[str] = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"

_ARBITRUM_TOKENS: List[TokenInfo] = [
    TokenInfo("USDC", ARBITRUM_USDC, STABLECOIN_DECIMALS, "USD Coin"),
    TokenInfo("USDT", "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", STABLECOIN_DECIMALS, "Tether USD"),
    TokenInfo("DAI", "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1", 18, "Dai Stablecoin"),
    TokenInfo("WETH", "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", NATIVE_DECIMALS, "Wrapped Ether"),
]

KNOWN_TOKENS: Dict[int, List[TokenInfo]] = {
    CHAIN_ID_ARBITRUM: _ARBITRUM_TOKENS,
    CHAIN_ID_ETHEREUM: [
        TokenInfo("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", STABLECOIN_DECIMALS, "USD Coin"),
        TokenInfo("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", STABLECOIN_DECIMALS, "Tether USD"),
        TokenInfo("DAI", "0x6B175474E89094C44Da98b954EedeAC495271d0F", 18, "Dai Stablecoin"),
        TokenInfo("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", NATIVE_DECIMALS, "Wrapped Ether"),
    ],
    # Local nodes quote through the mock aggregator with Arbitrum addresses
    CHAIN_ID_LOCAL: _ARBITRUM_TOKENS,
}

# Smallest configured denomination: 0.0002 ETH
DEFAULT_NATIVE_DENOMINATION: Final[int] = 200_000_000_000_000

# ==============================================================================
# AGGREGATOR (1inch v6.0)
# ==============================================================================

ONEINCH_API_BASE: Final[str] = "https://api.1inch.dev"
ONEINCH_API_VERSION: Final[str] = "v6.0"
ONEINCH_API_KEY_ENV: Final[str] = "ONEINCH_API_KEY"
ONEINCH_TIMEOUT_SEC: Final[float] = 15.0

# swap(address,(address,address,address,address,uint256,uint256,uint256),bytes)
ONEINCH_SWAP_SIGNATURE: Final[str] = (
    "swap(address,(address,address,address,address,uint256,uint256,uint256),bytes)"
)
ONEINCH_SWAP_TYPES: Final[List[str]] = [
    "address",
    "(address,address,address,address,uint256,uint256,uint256)",
    "bytes",
]

DEFAULT_SLIPPAGE_BPS: Final[int] = 100          # 1%
MAX_SLIPPAGE_BPS: Final[int] = 5000             # 50%, API upper bound

# ==============================================================================
# EVENT SCANNING
# ==============================================================================

SCAN_CHUNK_BLOCKS: Final[int] = 10_000
SCAN_LOOKBACK_BLOCKS: Final[int] = 100_000
SCAN_RETRY_COUNT: Final[int] = 5
SCAN_BACKOFF_BASE_SEC: Final[float] = 0.5
SCAN_BACKOFF_MAX_SEC: Final[float] = 8.0
SCAN_TIMEOUT_SEC: Final[float] = 60.0

EVENT_DEPOSIT: Final[str] = "Deposit"
EVENT_SWAP_RESULT_RECORDED: Final[str] = "SwapResultRecorded"
EVENT_WITHDRAWAL: Final[str] = "Withdrawal"
EVENT_SYNC_INTERVAL_SEC: Final[float] = 5.0

# ==============================================================================
# API
# ==============================================================================

DEFAULT_API_HOST: Final[str] = "127.0.0.1"
DEFAULT_API_PORT: Final[int] = 8645
MAX_BATCH_SIZE: Final[int] = 100
