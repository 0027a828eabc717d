"""
Iceberg Protocol Aggregator Payload

The execution payload is the calldata of the aggregator router's

    swap(address executor,
         (address srcToken, address dstToken, address srcReceiver,
          address dstReceiver, uint256 amount, uint256 minReturnAmount,
          uint256 flags) desc,
         bytes data)

decoded into (executor, descriptor, innerData) so the ledger can compare the
declared tokens and amount with the swap configuration.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes

from iceberg.constants import ONEINCH_SWAP_SIGNATURE, ONEINCH_SWAP_TYPES
from iceberg.core.asset import Asset, asset_from_address
from iceberg.core.types import Address
from iceberg.crypto.hash import function_selector
from iceberg.errors import InvalidParameterError

SWAP_SELECTOR = function_selector(ONEINCH_SWAP_SIGNATURE)


@dataclass(frozen=True)
class SwapDescription:
    src_token: Address
    dst_token: Address
    src_receiver: Address
    dst_receiver: Address
    amount: int
    min_return_amount: int
    flags: int = 0

    @property
    def src_asset(self) -> Asset:
        return asset_from_address(self.src_token)

    @property
    def dst_asset(self) -> Asset:
        return asset_from_address(self.dst_token)

    def as_abi_tuple(self) -> tuple:
        return (
            self.src_token.checksum,
            self.dst_token.checksum,
            self.src_receiver.checksum,
            self.dst_receiver.checksum,
            self.amount,
            self.min_return_amount,
            self.flags,
        )

    def to_dict(self) -> dict:
        return {
            "srcToken": self.src_token.checksum,
            "dstToken": self.dst_token.checksum,
            "srcReceiver": self.src_receiver.checksum,
            "dstReceiver": self.dst_receiver.checksum,
            "amount": str(self.amount),
            "minReturnAmount": str(self.min_return_amount),
            "flags": str(self.flags),
        }


@dataclass(frozen=True)
class ExecutionPayload:
    """Decoded router call plus its raw calldata."""
    executor: Address
    desc: SwapDescription
    data: bytes
    calldata: bytes

    def to_dict(self) -> dict:
        return {
            "executor": self.executor.checksum,
            "desc": self.desc.to_dict(),
            "data": "0x" + self.data.hex(),
            "calldata": "0x" + self.calldata.hex(),
        }


def encode_swap_calldata(executor: Address, desc: SwapDescription, data: bytes = b"") -> bytes:
    """ABI-encode a router swap call, selector included."""
    return SWAP_SELECTOR + abi_encode(
        ONEINCH_SWAP_TYPES,
        [executor.checksum, desc.as_abi_tuple(), data],
    )


def build_payload(executor: Address, desc: SwapDescription, data: bytes = b"") -> ExecutionPayload:
    return ExecutionPayload(
        executor=executor,
        desc=desc,
        data=data,
        calldata=encode_swap_calldata(executor, desc, data),
    )


def decode_swap_calldata(calldata: Union[bytes, str]) -> ExecutionPayload:
    """
    Decode router calldata.

    Args:
        calldata: Raw bytes or 0x-prefixed hex

    Returns:
        ExecutionPayload

    Raises:
        InvalidParameterError: If the selector is not the swap selector or
            the arguments do not decode
    """
    if isinstance(calldata, str):
        try:
            calldata = to_bytes(hexstr=calldata)
        except ValueError:
            raise InvalidParameterError("executionPayload", "not hex") from None

    if len(calldata) < 4 or calldata[:4] != SWAP_SELECTOR:
        raise InvalidParameterError(
            "executionPayload",
            f"selector {calldata[:4].hex() or 'missing'} is not swap ({SWAP_SELECTOR.hex()})",
        )

    try:
        executor, desc, data = abi_decode(ONEINCH_SWAP_TYPES, calldata[4:])
    except (DecodingError, ValueError) as e:
        raise InvalidParameterError("executionPayload", f"undecodable: {e}") from None

    src, dst, src_receiver, dst_receiver, amount, min_return, flags = desc
    return ExecutionPayload(
        executor=Address.parse(executor),
        desc=SwapDescription(
            src_token=Address.parse(src),
            dst_token=Address.parse(dst),
            src_receiver=Address.parse(src_receiver),
            dst_receiver=Address.parse(dst_receiver),
            amount=amount,
            min_return_amount=min_return,
            flags=flags,
        ),
        data=bytes(data),
        calldata=bytes(calldata),
    )
