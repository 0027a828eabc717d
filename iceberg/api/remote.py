"""
Iceberg Protocol Remote Ledger

httpx JSON-RPC client for a node's API. Implements the same read interface as
the in-process Ledger, plus withdraw and executeSwap, so client operations
run unchanged against a remote pool. Protocol errors come back as an
IcebergError with the code and details the node raised.
"""

from __future__ import annotations
import itertools
import logging
from typing import Any, List, Optional, Union

import httpx

from iceberg.api.methods import ERROR_PROTOCOL
from iceberg.core.asset import Asset, asset_from_address
from iceberg.core.types import Address, parse_amount
from iceberg.crypto.field import parse_field, to_hex32
from iceberg.crypto.merkle import MerklePath
from iceberg.errors import InternalError, RPCTransportError, error_from_dict
from iceberg.protocol.events import LedgerEvent, event_from_dict
from iceberg.protocol.registry import SwapResult
from iceberg.protocol.swap import DepositAsset, SwapAuthorization, SwapConfig
from iceberg.zk.proof import WithdrawalProof

logger = logging.getLogger(__name__)


class RemoteLedger:
    """
    Ledger reader/withdrawer over JSON-RPC.

    Args:
        url: Node API URL (http://host:port/)
        timeout: Per-request timeout in seconds
        client: Shared httpx.AsyncClient (one is created per call if None)
    """

    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    async def call(self, method: str, *params: Any) -> Any:
        """
        Invoke one RPC method.

        Raises:
            RPCTransportError: If the node is unreachable or answers garbage
            IcebergError: The protocol error the node raised
        """
        request = {"jsonrpc": "2.0", "method": method, "params": list(params), "id": next(self._ids)}
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=request, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(self.url, json=request, timeout=self.timeout)
            body = resp.json()
        except httpx.HTTPError as e:
            raise RPCTransportError(self.url, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise RPCTransportError(self.url, f"invalid JSON response: {e}") from e

        if not isinstance(body, dict):
            raise RPCTransportError(self.url, "response is not a JSON-RPC object")

        error = body.get("error")
        if error:
            if error.get("code") == ERROR_PROTOCOL and isinstance(error.get("data"), dict):
                raise error_from_dict(error["data"])
            raise InternalError(
                f"{method} failed: {error.get('message', 'unknown error')}",
                {"rpc_code": error.get("code"), "data": error.get("data")},
            )
        logger.debug(f"RPC {method} ok")
        return body.get("result")

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def instance_id(self) -> str:
        return str(await self.call("iceberg_instanceId"))

    async def get_root(self) -> int:
        return parse_field(await self.call("iceberg_getRoot"))

    async def get_proof(self, leaf_index: int) -> MerklePath:
        return MerklePath.from_dict(await self.call("iceberg_getProof", leaf_index))

    async def is_known_root(self, root: int) -> bool:
        return bool(await self.call("iceberg_isKnownRoot", to_hex32(root)))

    async def leaf_count(self) -> int:
        return int(await self.call("iceberg_leafCount"))

    async def get_swap_config(self, swap_config_id: int) -> SwapConfig:
        data = await self.call("iceberg_getSwapConfig", swap_config_id)
        return SwapConfig(
            config_id=int(data["id"]),
            token_in=asset_from_address(data["tokenIn"]),
            fixed_amount=parse_amount(data["fixedAmount"]),
        )

    async def next_swap_config_id(self) -> int:
        return int(await self.call("iceberg_nextSwapConfigId"))

    async def list_deposit_assets(self) -> List[DepositAsset]:
        """Swap configurations labeled by the node (symbol, name, formatted amount)."""
        return [DepositAsset.from_dict(d) for d in await self.call("iceberg_listSwapConfigs")]

    async def is_consumed(self, nullifier_hash: int) -> bool:
        return bool(await self.call("iceberg_isConsumed", to_hex32(nullifier_hash)))

    async def get_swap_result(self, nullifier_hash: int) -> Optional[SwapResult]:
        data = await self.call("iceberg_getSwapResult", to_hex32(nullifier_hash))
        return SwapResult.from_dict(data) if data else None

    async def block_number(self) -> int:
        return int(await self.call("iceberg_blockNumber"))

    async def get_logs(
        self,
        event_name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[LedgerEvent]:
        data = await self.call("iceberg_getLogs", event_name, from_block, to_block)
        return [event_from_dict(e) for e in data]

    async def balance_of(self, asset: Asset, owner: Address) -> int:
        return parse_amount(await self.call("iceberg_getBalance", asset.address.checksum, owner.checksum))

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def withdraw(self, nullifier_hash: int, recipient: Address, proof: WithdrawalProof) -> SwapResult:
        data = await self.call("iceberg_withdraw", to_hex32(nullifier_hash), recipient.checksum, proof.to_dict())
        return SwapResult.from_dict(data)

    async def execute_swap(self, authorization: SwapAuthorization, signature: Union[bytes, str]) -> int:
        """Ask the node's operator to swap a deposit."""
        if isinstance(signature, bytes):
            signature = "0x" + signature.hex()
        data = await self.call(
            "iceberg_executeSwap",
            {
                "chainId": authorization.chain_id,
                "swapConfigId": authorization.swap_config_id,
                "nullifierHash": to_hex32(authorization.nullifier_hash),
                "tokenOut": authorization.token_out.address.checksum,
                "depositor": authorization.depositor.checksum,
            },
            signature,
        )
        return parse_amount(data["amountOut"])

