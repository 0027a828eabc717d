"""
Iceberg Protocol 1inch Client

Async client for the 1inch swap API (v6.0):

    GET /swap/v6.0/{chainId}/quote?src&dst&amount
    GET /swap/v6.0/{chainId}/swap?src&dst&amount&from&slippage&disableEstimate=true

Slippage is passed around in basis points and sent as the percentage the API
expects. The swap response's tx.data is decoded so callers get the router
call's executor, descriptor and inner data alongside the raw bytes.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from iceberg.aggregator.payload import ExecutionPayload, decode_swap_calldata
from iceberg.constants import (
    DEFAULT_SLIPPAGE_BPS,
    MAX_SLIPPAGE_BPS,
    ONEINCH_API_BASE,
    ONEINCH_API_KEY_ENV,
    ONEINCH_API_VERSION,
    ONEINCH_TIMEOUT_SEC,
)
from iceberg.core.asset import Asset
from iceberg.core.types import Address, parse_amount
from iceberg.errors import (
    AggregatorAPIError,
    AggregatorAuthError,
    AggregatorUnavailableError,
    IcebergError,
    InvalidParameterError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    src: Asset
    dst: Asset
    amount: int
    dst_amount: int

    def to_dict(self) -> dict:
        return {
            "src": self.src.api_address,
            "dst": self.dst.api_address,
            "amount": str(self.amount),
            "dstAmount": str(self.dst_amount),
        }


def slippage_percent(slippage_bps: int) -> str:
    """Basis points to the API's percentage string (100 -> "1")."""
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise InvalidParameterError("slippageBps", "must be an integer")
    if slippage_bps < 0 or slippage_bps > MAX_SLIPPAGE_BPS:
        raise InvalidParameterError("slippageBps", f"must be in [0, {MAX_SLIPPAGE_BPS}]")
    return f"{slippage_bps / 100:g}"


class OneInchClient:
    """
    1inch swap API client.

    Args:
        chain_id: Chain to quote on
        api_key: Bearer token (default: $ONEINCH_API_KEY)
        base_url: API base URL
        timeout: Per-request timeout in seconds
        client: Shared httpx.AsyncClient (one is created per request if None)
    """

    def __init__(
        self,
        chain_id: int,
        api_key: Optional[str] = None,
        base_url: str = ONEINCH_API_BASE,
        timeout: float = ONEINCH_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.chain_id = chain_id
        self.api_key = api_key if api_key is not None else os.environ.get(ONEINCH_API_KEY_ENV, "")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def endpoint(self, method: str) -> str:
        return f"{self.base_url}/swap/{ONEINCH_API_VERSION}/{self.chain_id}/{method}"

    async def _get(self, method: str, params: Dict[str, Any]) -> dict:
        if not self.api_key:
            raise AggregatorAuthError(0)

        url = self.endpoint(method)
        headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}
        logger.debug(f"1inch {method}: {params}")

        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, params=params, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise AggregatorUnavailableError(url, str(e) or type(e).__name__) from e

        if resp.status_code in (401, 403):
            raise AggregatorAuthError(resp.status_code)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise AggregatorAPIError(resp.status_code, resp.text, method)

        try:
            data = resp.json()
        except ValueError as e:
            raise AggregatorAPIError(resp.status_code, f"invalid JSON: {e}", method) from e
        if not isinstance(data, dict):
            raise AggregatorAPIError(resp.status_code, "response is not an object", method)
        return data

    async def quote(self, src: Asset, dst: Asset, amount: int) -> Quote:
        """
        Expected output of swapping amount of src into dst.

        Raises:
            AggregatorAuthError: If the API key is missing or rejected
            AggregatorAPIError: On any other non-2xx answer or a malformed body
            AggregatorUnavailableError: If the API cannot be reached
        """
        amount = parse_amount(amount)
        data = await self._get("quote", {
            "src": src.api_address,
            "dst": dst.api_address,
            "amount": str(amount),
        })
        try:
            dst_amount = parse_amount(data["dstAmount"])
        except (KeyError, IcebergError) as e:
            raise AggregatorAPIError(200, f"bad dstAmount in quote: {e}", "quote") from e
        return Quote(src, dst, amount, dst_amount)

    async def build_execution(
        self,
        src: Asset,
        dst: Asset,
        amount: int,
        from_address: Address,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> ExecutionPayload:
        """
        Router calldata swapping amount of src into dst, paid to from_address.

        Args:
            src: Asset sold
            dst: Asset bought
            amount: Exact input amount
            from_address: Pool address (sender and receiver of the swap)
            slippage_bps: Allowed slippage in basis points

        Returns:
            Decoded ExecutionPayload

        Raises:
            AggregatorAuthError, AggregatorAPIError, AggregatorUnavailableError:
                As for quote()
            InvalidParameterError: If the slippage is out of range
        """
        amount = parse_amount(amount)
        data = await self._get("swap", {
            "src": src.api_address,
            "dst": dst.api_address,
            "amount": str(amount),
            "from": from_address.checksum,
            "slippage": slippage_percent(slippage_bps),
            "disableEstimate": "true",
        })

        try:
            calldata = data["tx"]["data"]
        except (KeyError, TypeError) as e:
            raise AggregatorAPIError(200, f"swap response without tx.data ({e})", "swap") from e
        try:
            payload = decode_swap_calldata(calldata)
        except InvalidParameterError as e:
            raise AggregatorAPIError(200, e.message, "swap") from e

        logger.debug(
            f"1inch swap payload: {amount} {src} -> {dst}, "
            f"minReturn {payload.desc.min_return_amount}"
        )
        return payload
