"""
Iceberg Protocol JSON-RPC Methods

Ledger reads, the withdraw call and the operator's swap entry point.
Field elements travel as 0x-prefixed 32-byte hex (decimal is accepted on
input), addresses as checksummed hex, amounts as decimal strings.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from iceberg import __version__
from iceberg.client.wallet import check_withdrawable
from iceberg.constants import PROTOCOL_NAME, PROTOCOL_VERSION
from iceberg.core.asset import asset_from_address
from iceberg.core.types import Address
from iceberg.crypto.field import parse_field, to_hex32
from iceberg.protocol.swap import SwapAuthorization, describe_swap_config
from iceberg.zk.proof import WithdrawalProof

if TYPE_CHECKING:
    from iceberg.node.node import IcebergNode

logger = logging.getLogger(__name__)


class RPCError(Exception):
    """RPC error with code and message."""
    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


# Error codes
ERROR_PARSE = -32700
ERROR_INVALID_REQUEST = -32600
ERROR_METHOD_NOT_FOUND = -32601
ERROR_INVALID_PARAMS = -32602
ERROR_INTERNAL = -32603
# IcebergError raised by the ledger; data carries IcebergError.to_dict()
ERROR_PROTOCOL = -32000
ERROR_NOT_AVAILABLE = -32001


# ==============================================================================
# Status Methods
# ==============================================================================

async def get_status(node: "IcebergNode") -> dict:
    return await node.get_status()


async def get_version(node: "IcebergNode") -> dict:
    return {
        "protocol": PROTOCOL_NAME,
        "protocol_version": PROTOCOL_VERSION,
        "node_version": __version__,
        "chain_id": node.config.ledger.chain_id,
    }


async def instance_id(node: "IcebergNode") -> str:
    return await node.ledger.instance_id()


# ==============================================================================
# Merkle Methods
# ==============================================================================

async def get_root(node: "IcebergNode") -> str:
    return to_hex32(await node.ledger.get_root())


async def get_proof(node: "IcebergNode", leaf_index: int) -> dict:
    """
    Authenticated path of a leaf.

    Returns:
        {"leafIndex", "pathElements", "pathIndices"}
    """
    if isinstance(leaf_index, bool) or not isinstance(leaf_index, int):
        raise RPCError(ERROR_INVALID_PARAMS, "leaf_index must be an integer")
    path = await node.ledger.get_proof(leaf_index)
    return path.to_dict()


async def is_known_root(node: "IcebergNode", root: str) -> bool:
    return await node.ledger.is_known_root(parse_field(root))


async def get_leaf_count(node: "IcebergNode") -> int:
    return await node.ledger.leaf_count()


# ==============================================================================
# Swap Methods
# ==============================================================================

async def get_swap_config(node: "IcebergNode", swap_config_id: int) -> dict:
    config = await node.ledger.get_swap_config(int(swap_config_id))
    return config.to_dict()


async def next_swap_config_id(node: "IcebergNode") -> int:
    return await node.ledger.next_swap_config_id()


async def list_swap_configs(node: "IcebergNode") -> List[dict]:
    """
    Every swap configuration labeled with its token for the node's chain.

    Returns:
        [{"configId", "tokenAddress", "tokenSymbol", "tokenName", "decimals",
          "fixedAmount", "fixedAmountFormatted"}]
    """
    chain_id = node.config.ledger.chain_id
    configs = await node.ledger.list_swap_configs()
    return [describe_swap_config(c, chain_id).to_dict() for c in configs]


async def execute_swap(node: "IcebergNode", authorization: dict, signature: str) -> dict:
    """
    Operator entry point: swap a deposit on the depositor's signed request.

    Args:
        authorization: {"chainId", "swapConfigId", "nullifierHash", "tokenOut", "depositor"}
        signature: 0x-prefixed 65-byte signature

    Returns:
        {"nullifierHash", "tokenOut", "amountOut"}
    """
    if node.operator is None:
        raise RPCError(ERROR_NOT_AVAILABLE, "This node does not run the swap operator")
    try:
        request = SwapAuthorization.from_dict(authorization)
    except (KeyError, TypeError, ValueError) as e:
        raise RPCError(ERROR_INVALID_PARAMS, f"Malformed authorization: {e}")

    amount_out = await node.operator.execute_swap(request, signature)
    return {
        "nullifierHash": to_hex32(request.nullifier_hash),
        "tokenOut": request.token_out.address.checksum,
        "amountOut": str(amount_out),
    }


# ==============================================================================
# Nullifier Methods
# ==============================================================================

async def is_consumed(node: "IcebergNode", nullifier_hash: str) -> bool:
    return await node.ledger.is_consumed(parse_field(nullifier_hash))


async def get_swap_result(node: "IcebergNode", nullifier_hash: str) -> Optional[dict]:
    result = await node.ledger.get_swap_result(parse_field(nullifier_hash))
    return result.to_dict() if result else None


async def check_withdrawable_method(node: "IcebergNode", nullifier_hash: str) -> dict:
    status = await check_withdrawable(parse_field(nullifier_hash), node.ledger)
    return status.to_dict()


async def withdraw(node: "IcebergNode", nullifier_hash: str, recipient: str, proof: dict) -> dict:
    """
    Withdraw a recorded swap result.

    Args:
        nullifier_hash: Nullifier hash
        recipient: Recipient address
        proof: {"proof" | "contractProof", "publicSignals"}

    Returns:
        {"tokenOut", "amount"}
    """
    result = await node.ledger.withdraw(
        parse_field(nullifier_hash),
        Address.parse(recipient),
        WithdrawalProof.from_dict(proof),
    )
    return result.to_dict()


# ==============================================================================
# Event Methods
# ==============================================================================

async def block_number(node: "IcebergNode") -> int:
    return await node.ledger.block_number()


async def get_logs(
    node: "IcebergNode",
    event_name: str,
    from_block: int = 0,
    to_block: Optional[int] = None,
) -> List[dict]:
    events = await node.ledger.get_logs(event_name, int(from_block), None if to_block is None else int(to_block))
    return [e.to_dict() for e in events]


async def get_balance(node: "IcebergNode", token: str, owner: str) -> str:
    balance = await node.ledger.balance_of(asset_from_address(token), Address.parse(owner))
    return str(balance)


# ==============================================================================
# Method Registry
# ==============================================================================

METHOD_REGISTRY: Dict[str, Any] = {
    # Status
    "iceberg_status": get_status,
    "iceberg_version": get_version,
    "iceberg_instanceId": instance_id,

    # Merkle
    "iceberg_getRoot": get_root,
    "iceberg_getProof": get_proof,
    "iceberg_isKnownRoot": is_known_root,
    "iceberg_leafCount": get_leaf_count,

    # Swap
    "iceberg_getSwapConfig": get_swap_config,
    "iceberg_nextSwapConfigId": next_swap_config_id,
    "iceberg_listSwapConfigs": list_swap_configs,
    "iceberg_executeSwap": execute_swap,

    # Nullifiers
    "iceberg_isConsumed": is_consumed,
    "iceberg_getSwapResult": get_swap_result,
    "iceberg_checkWithdrawable": check_withdrawable_method,
    "iceberg_withdraw": withdraw,

    # Events
    "iceberg_blockNumber": block_number,
    "iceberg_getLogs": get_logs,
    "iceberg_getBalance": get_balance,
}


def get_method(name: str):
    """Get method handler by name."""
    return METHOD_REGISTRY.get(name)


def list_methods() -> List[str]:
    """List all available methods."""
    return list(METHOD_REGISTRY.keys())
