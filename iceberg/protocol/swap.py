"""
Iceberg Protocol Swap Binding

- SwapConfig / SwapConfigRegistry: owner-registered fixed denominations
- describe_swap_config: symbol, name and decimals of a configuration for display
- validate_payload: the execution payload must spend exactly the configured
  asset and amount, buy the requested asset and pay the pool
- SwapAuthorization: depositor's EIP-191 signature over
  solidityKeccak256(chainId, swapConfigId, nullifierHash, tokenOut, depositor)
- SwapOperator: checks the authorization, fetches the payload from the
  aggregator and records the swap on the ledger with operator identity
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils.exceptions import ValidationError as EthValidationError

from iceberg.aggregator.payload import ExecutionPayload
from iceberg.constants import DEFAULT_SLIPPAGE_BPS, KNOWN_TOKENS, NATIVE_DECIMALS
from iceberg.core.asset import Asset, Native, asset_from_address, asset_to_dict
from iceberg.core.types import Address, format_units, parse_amount
from iceberg.crypto.field import parse_field, short_hex, to_bytes32
from iceberg.crypto.hash import solidity_keccak256
from iceberg.errors import (
    InvalidAuthorizationError,
    InvalidParameterError,
    PayloadMismatchError,
    UnknownConfigError,
)

if TYPE_CHECKING:
    from iceberg.protocol.ledger import Ledger

logger = logging.getLogger(__name__)


# ==============================================================================
# SWAP CONFIGURATIONS
# ==============================================================================

@dataclass(frozen=True)
class SwapConfig:
    """One fixed denomination: exactly fixed_amount of token_in per deposit."""
    config_id: int
    token_in: Asset
    fixed_amount: int

    def to_dict(self) -> dict:
        return {
            "id": self.config_id,
            "tokenIn": asset_to_dict(self.token_in)["address"],
            "fixedAmount": str(self.fixed_amount),
        }


class SwapConfigRegistry:
    """Immutable swap configurations with ids assigned from 1."""

    def __init__(self):
        self._configs: Dict[int, SwapConfig] = {}
        self._next_id = 1

    @property
    def next_id(self) -> int:
        return self._next_id

    def add(self, token_in: Asset, fixed_amount: int) -> SwapConfig:
        fixed_amount = parse_amount(fixed_amount)
        if fixed_amount == 0:
            raise InvalidParameterError("fixedAmount", "must be positive")
        config = SwapConfig(self._next_id, token_in, fixed_amount)
        self._configs[config.config_id] = config
        self._next_id += 1
        return config

    def get(self, config_id: int) -> SwapConfig:
        """
        Raises:
            UnknownConfigError: If no such configuration exists
        """
        config = self._configs.get(config_id)
        if config is None:
            raise UnknownConfigError(config_id)
        return config

    def all(self) -> List[SwapConfig]:
        return [self._configs[k] for k in sorted(self._configs)]

    def __len__(self) -> int:
        return len(self._configs)

    def copy(self) -> "SwapConfigRegistry":
        clone = SwapConfigRegistry()
        clone._configs = dict(self._configs)
        clone._next_id = self._next_id
        return clone


@dataclass(frozen=True)
class DepositAsset:
    """A swap configuration labeled for display."""
    config_id: int
    token_in: Asset
    symbol: str
    name: str
    decimals: int
    fixed_amount: int
    fixed_amount_formatted: str

    def to_dict(self) -> dict:
        return {
            "configId": self.config_id,
            "tokenAddress": self.token_in.address.checksum,
            "tokenSymbol": self.symbol,
            "tokenName": self.name,
            "decimals": self.decimals,
            "fixedAmount": str(self.fixed_amount),
            "fixedAmountFormatted": self.fixed_amount_formatted,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DepositAsset":
        return cls(
            config_id=int(data["configId"]),
            token_in=asset_from_address(data["tokenAddress"]),
            symbol=data["tokenSymbol"],
            name=data["tokenName"],
            decimals=int(data["decimals"]),
            fixed_amount=parse_amount(data["fixedAmount"]),
            fixed_amount_formatted=data["fixedAmountFormatted"],
        )


def describe_swap_config(config: SwapConfig, chain_id: int) -> DepositAsset:
    """
    Label a configuration with the token's symbol, name and decimals.

    Tokens missing from KNOWN_TOKENS for the chain come back as "Unknown"
    with the raw amount as their formatted value.
    """
    if isinstance(config.token_in, Native):
        return DepositAsset(
            config.config_id, config.token_in, "ETH", "Ether", NATIVE_DECIMALS,
            config.fixed_amount, format_units(config.fixed_amount, NATIVE_DECIMALS),
        )
    for token in KNOWN_TOKENS.get(chain_id, []):
        if Address.from_hex(token.address.lower()) == config.token_in.address:
            return DepositAsset(
                config.config_id, config.token_in, token.symbol, token.name, token.decimals,
                config.fixed_amount, format_units(config.fixed_amount, token.decimals),
            )
    logger.debug(f"Config {config.config_id}: {config.token_in} not known on chain {chain_id}")
    return DepositAsset(
        config.config_id, config.token_in, "Unknown", "Unknown", NATIVE_DECIMALS,
        config.fixed_amount, str(config.fixed_amount),
    )


def validate_payload(
    payload: ExecutionPayload,
    config: SwapConfig,
    token_out: Asset,
    pool: Address,
) -> None:
    """
    Check an execution payload against the swap it is attributed to.

    Args:
        payload: Decoded router call
        config: Swap configuration of the deposit
        token_out: Asset the depositor asked for
        pool: Address that must receive the output

    Raises:
        PayloadMismatchError: On the first field that does not match
    """
    desc = payload.desc
    if desc.src_asset != config.token_in:
        raise PayloadMismatchError("srcToken", config.token_in, desc.src_token)
    if desc.amount != config.fixed_amount:
        raise PayloadMismatchError("amount", config.fixed_amount, desc.amount)
    if desc.dst_asset != token_out:
        raise PayloadMismatchError("dstToken", token_out, desc.dst_token)
    if desc.dst_receiver != pool:
        raise PayloadMismatchError("dstReceiver", pool, desc.dst_receiver)


# ==============================================================================
# DEPOSITOR AUTHORIZATION
# ==============================================================================

@dataclass(frozen=True)
class SwapAuthorization:
    """What a depositor signs to let the operator swap on their behalf."""
    chain_id: int
    swap_config_id: int
    nullifier_hash: int
    token_out: Asset
    depositor: Address

    def message_hash(self) -> bytes:
        """solidityKeccak256(uint256, uint256, bytes32, address, address)"""
        return solidity_keccak256(
            ["uint256", "uint256", "bytes32", "address", "address"],
            [
                self.chain_id,
                self.swap_config_id,
                to_bytes32(self.nullifier_hash),
                self.token_out.api_address,
                self.depositor.checksum,
            ],
        )

    def sign(self, private_key: Union[bytes, str]) -> bytes:
        """EIP-191 personal signature over the 32-byte message hash."""
        signed = Account.sign_message(encode_defunct(primitive=self.message_hash()), private_key)
        return bytes(signed.signature)

    def recover(self, signature: Union[bytes, str]) -> Address:
        """
        Raises:
            InvalidAuthorizationError: If the signature is malformed
        """
        try:
            signer = Account.recover_message(
                encode_defunct(primitive=self.message_hash()),
                signature=signature,
            )
        except (ValueError, TypeError, EthValidationError) as e:
            raise InvalidAuthorizationError(self.depositor, f"unrecoverable ({e})") from None
        return Address.from_hex(signer)

    def verify(self, signature: Union[bytes, str]) -> None:
        """
        Raises:
            InvalidAuthorizationError: If the signer is not the depositor
        """
        signer = self.recover(signature)
        if signer != self.depositor:
            raise InvalidAuthorizationError(self.depositor, signer)

    @classmethod
    def from_dict(cls, data: dict) -> "SwapAuthorization":
        return cls(
            chain_id=int(data["chainId"]),
            swap_config_id=int(data["swapConfigId"]),
            nullifier_hash=parse_field(data["nullifierHash"]),
            token_out=asset_from_address(data["tokenOut"]),
            depositor=Address.parse(data["depositor"]),
        )


# ==============================================================================
# OPERATOR SERVICE
# ==============================================================================

class ExecutionBuilder(Protocol):
    async def build_execution(
        self,
        src: Asset,
        dst: Asset,
        amount: int,
        from_address: Address,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> ExecutionPayload:
        ...


class SwapOperator:
    """
    Operator-side swap execution.

    Holds the operator identity; the ledger accepts record_swap only from it.
    """

    def __init__(
        self,
        ledger: "Ledger",
        aggregator: ExecutionBuilder,
        operator: Address,
        chain_id: int,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ):
        self.ledger = ledger
        self.aggregator = aggregator
        self.operator = operator
        self.chain_id = chain_id
        self.slippage_bps = slippage_bps

    async def execute_swap(
        self,
        authorization: SwapAuthorization,
        signature: Union[bytes, str],
        slippage_bps: Optional[int] = None,
    ) -> int:
        """
        Swap a deposit's fixed amount into the requested asset.

        Args:
            authorization: Signed request
            signature: Depositor's signature
            slippage_bps: Override of the default slippage

        Returns:
            Amount of token_out recorded for the nullifier hash

        Raises:
            InvalidAuthorizationError: If the request is for another chain or
                not signed by the depositor
            UnknownConfigError, AlreadySwappedError, PayloadMismatchError,
            SlippageExceededError: From the ledger
            AggregatorAPIError, AggregatorAuthError, AggregatorUnavailableError:
                From the aggregator
        """
        if authorization.chain_id != self.chain_id:
            raise InvalidAuthorizationError(
                f"chain {self.chain_id}", f"chain {authorization.chain_id}"
            )
        authorization.verify(signature)

        config = await self.ledger.get_swap_config(authorization.swap_config_id)
        payload = await self.aggregator.build_execution(
            src=config.token_in,
            dst=authorization.token_out,
            amount=config.fixed_amount,
            from_address=self.ledger.pool_address,
            slippage_bps=self.slippage_bps if slippage_bps is None else slippage_bps,
        )

        amount_out = await self.ledger.record_swap(
            caller=self.operator,
            nullifier_hash=authorization.nullifier_hash,
            swap_config_id=authorization.swap_config_id,
            token_out=authorization.token_out,
            execution_payload=payload.calldata,
        )
        logger.info(
            f"Swap executed for {short_hex(authorization.nullifier_hash)}: "
            f"{config.fixed_amount} {config.token_in} -> {amount_out} {authorization.token_out}"
        )
        return amount_out
