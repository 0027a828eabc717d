"""
Iceberg Protocol Error Handling

All error codes and exception classes.
"""

from enum import IntEnum
from typing import Optional, Any


class ErrorCode(IntEnum):
    """Protocol error codes."""

    # 1xxx - General / validation errors
    UNKNOWN_ERROR = 1000
    INVALID_PARAMETER = 1001
    INTERNAL_ERROR = 1002
    INVALID_ADDRESS = 1003
    INVALID_AMOUNT = 1004
    INVALID_FIELD_ELEMENT = 1005
    INVALID_PROOF_FORMAT = 1006

    # 2xxx - Merkle accumulator errors
    CAPACITY_EXCEEDED = 2001
    UNKNOWN_LEAF = 2002
    DUPLICATE_COMMITMENT = 2003

    # 3xxx - Registry / swap errors
    ALREADY_SWAPPED = 3001
    UNKNOWN_CONFIG = 3002
    PAYLOAD_MISMATCH = 3003
    UNAUTHORIZED = 3004
    INVALID_AUTHORIZATION = 3005
    SLIPPAGE_EXCEEDED = 3006
    NO_SWAP_RESULT = 3007
    ALREADY_WITHDRAWN = 3008

    # 4xxx - Proof errors
    INVALID_PROOF = 4001
    PUBLIC_SIGNAL_MISMATCH = 4002
    WITNESS_ERROR = 4003
    PROVER_ERROR = 4004
    ARTIFACT_MISSING = 4005
    ARTIFACT_INTEGRITY = 4006
    ARTIFACT_MISMATCH = 4007
    UNKNOWN_ROOT = 4008

    # 5xxx - External dependency errors
    AGGREGATOR_API_ERROR = 5001
    AGGREGATOR_AUTH_ERROR = 5002
    AGGREGATOR_UNAVAILABLE = 5003
    TRANSFER_FAILED = 5004
    INSUFFICIENT_FUNDS = 5005

    # 6xxx - Client errors
    COMMITMENT_NOT_FOUND = 6001
    SCAN_TIMEOUT = 6002
    RPC_TRANSPORT_ERROR = 6003


class ErrorKind:
    """How a caller should react to an error."""
    VALIDATION = "validation"   # fix the input
    RESYNC = "resync"           # re-query ledger state, then decide
    FATAL = "fatal"             # never retry with the same input
    EXTERNAL = "external"       # dependency failed, retry may help


def error_kind(code: ErrorCode) -> str:
    """Classify an error code."""
    value = int(code)
    if code in (ErrorCode.CAPACITY_EXCEEDED, ErrorCode.INVALID_PROOF,
                ErrorCode.PUBLIC_SIGNAL_MISMATCH, ErrorCode.WITNESS_ERROR,
                ErrorCode.INVALID_AUTHORIZATION, ErrorCode.UNAUTHORIZED):
        return ErrorKind.FATAL
    if code in (ErrorCode.ARTIFACT_MISSING, ErrorCode.ARTIFACT_INTEGRITY,
                ErrorCode.ARTIFACT_MISMATCH):
        return ErrorKind.FATAL
    if code in (ErrorCode.PAYLOAD_MISMATCH, ErrorCode.UNKNOWN_CONFIG):
        return ErrorKind.VALIDATION
    if 2000 <= value < 4000 or code in (ErrorCode.COMMITMENT_NOT_FOUND, ErrorCode.UNKNOWN_ROOT):
        return ErrorKind.RESYNC
    if 5000 <= value < 6000 or code in (ErrorCode.SCAN_TIMEOUT,
                                        ErrorCode.RPC_TRANSPORT_ERROR,
                                        ErrorCode.PROVER_ERROR):
        return ErrorKind.EXTERNAL
    return ErrorKind.VALIDATION


class IcebergError(Exception):
    """Base exception for all Iceberg protocol errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    @property
    def kind(self) -> str:
        """Reaction class of this error (see ErrorKind)."""
        return error_kind(self.code)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
            "kind": self.kind,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


def _short(value: int) -> str:
    return f"0x{value:064x}"[:18] + "..."


# ==============================================================================
# General Errors (1xxx)
# ==============================================================================

class UnknownError(IcebergError):
    def __init__(self, message: str = "Unknown error occurred", details: Any = None):
        super().__init__(ErrorCode.UNKNOWN_ERROR, message, details)


class InvalidParameterError(IcebergError):
    def __init__(self, param: str, message: str = ""):
        msg = f"Invalid parameter: {param}"
        if message:
            msg += f" - {message}"
        super().__init__(ErrorCode.INVALID_PARAMETER, msg, {"parameter": param})


class InternalError(IcebergError):
    def __init__(self, message: str = "Internal error", details: Any = None):
        super().__init__(ErrorCode.INTERNAL_ERROR, message, details)


class InvalidAddressError(IcebergError):
    def __init__(self, value: Any):
        super().__init__(
            ErrorCode.INVALID_ADDRESS,
            f"Malformed address: {value!r}",
            {"value": str(value)}
        )


class InvalidAmountError(IcebergError):
    def __init__(self, value: Any, reason: str = "must be a non-negative integer"):
        super().__init__(
            ErrorCode.INVALID_AMOUNT,
            f"Invalid amount {value!r}: {reason}",
            {"value": str(value), "reason": reason}
        )


class InvalidFieldElementError(IcebergError):
    def __init__(self, value: Any, reason: str = "not a canonical field element"):
        super().__init__(
            ErrorCode.INVALID_FIELD_ELEMENT,
            f"Invalid field element {value!r}: {reason}",
            {"value": str(value), "reason": reason}
        )


class InvalidProofFormatError(IcebergError):
    def __init__(self, reason: str):
        super().__init__(
            ErrorCode.INVALID_PROOF_FORMAT,
            f"Malformed proof: {reason}",
            {"reason": reason}
        )


# ==============================================================================
# Merkle Errors (2xxx)
# ==============================================================================

class CapacityExceededError(IcebergError):
    def __init__(self, capacity: int):
        super().__init__(
            ErrorCode.CAPACITY_EXCEEDED,
            f"Merkle tree is full ({capacity} leaves)",
            {"capacity": capacity}
        )


class UnknownLeafError(IcebergError):
    def __init__(self, leaf_index: int, leaf_count: int):
        super().__init__(
            ErrorCode.UNKNOWN_LEAF,
            f"Leaf {leaf_index} was never inserted (tree has {leaf_count} leaves)",
            {"leaf_index": leaf_index, "leaf_count": leaf_count}
        )


class DuplicateCommitmentError(IcebergError):
    def __init__(self, commitment: int, leaf_index: int):
        super().__init__(
            ErrorCode.DUPLICATE_COMMITMENT,
            f"Commitment {_short(commitment)} already inserted at leaf {leaf_index}",
            {"commitment": hex(commitment), "leaf_index": leaf_index}
        )


# ==============================================================================
# Registry / Swap Errors (3xxx)
# ==============================================================================

class AlreadySwappedError(IcebergError):
    def __init__(self, nullifier_hash: int):
        super().__init__(
            ErrorCode.ALREADY_SWAPPED,
            f"Swap already recorded for nullifier hash {_short(nullifier_hash)}",
            {"nullifier_hash": hex(nullifier_hash)}
        )


class UnknownConfigError(IcebergError):
    def __init__(self, swap_config_id: int):
        super().__init__(
            ErrorCode.UNKNOWN_CONFIG,
            f"Unknown swap config: {swap_config_id}",
            {"swap_config_id": swap_config_id}
        )


class PayloadMismatchError(IcebergError):
    def __init__(self, field_name: str, expected: Any, got: Any):
        super().__init__(
            ErrorCode.PAYLOAD_MISMATCH,
            f"Execution payload {field_name} mismatch: expected {expected}, got {got}",
            {"field": field_name, "expected": str(expected), "got": str(got)}
        )


class UnauthorizedError(IcebergError):
    def __init__(self, caller: Any, role: str):
        super().__init__(
            ErrorCode.UNAUTHORIZED,
            f"{caller} is not the {role}",
            {"caller": str(caller), "role": role}
        )


class InvalidAuthorizationError(IcebergError):
    def __init__(self, expected: Any, recovered: Any):
        super().__init__(
            ErrorCode.INVALID_AUTHORIZATION,
            f"Swap authorization signed by {recovered}, expected {expected}",
            {"expected": str(expected), "recovered": str(recovered)}
        )


class SlippageExceededError(IcebergError):
    def __init__(self, amount_out: int, min_return: int):
        super().__init__(
            ErrorCode.SLIPPAGE_EXCEEDED,
            f"Swap returned {amount_out}, below minimum {min_return}",
            {"amount_out": amount_out, "min_return": min_return}
        )


class NoSwapResultError(IcebergError):
    def __init__(self, nullifier_hash: int):
        super().__init__(
            ErrorCode.NO_SWAP_RESULT,
            f"No swap recorded for nullifier hash {_short(nullifier_hash)}",
            {"nullifier_hash": hex(nullifier_hash)}
        )


class AlreadyWithdrawnError(IcebergError):
    def __init__(self, nullifier_hash: int):
        super().__init__(
            ErrorCode.ALREADY_WITHDRAWN,
            f"Nullifier hash {_short(nullifier_hash)} already withdrawn",
            {"nullifier_hash": hex(nullifier_hash)}
        )


# ==============================================================================
# Proof Errors (4xxx)
# ==============================================================================

class InvalidProofError(IcebergError):
    def __init__(self, reason: str = "Groth16 verification failed"):
        super().__init__(ErrorCode.INVALID_PROOF, reason, {"reason": reason})


class PublicSignalMismatchError(IcebergError):
    def __init__(self, signal: str, expected: int, got: int):
        super().__init__(
            ErrorCode.PUBLIC_SIGNAL_MISMATCH,
            f"Public signal {signal} does not match call argument",
            {"signal": signal, "expected": hex(expected), "got": hex(got)}
        )


class WitnessError(IcebergError):
    def __init__(self, constraint: int, label: str = ""):
        msg = f"Witness does not satisfy constraint {constraint}"
        if label:
            msg += f" ({label})"
        super().__init__(
            ErrorCode.WITNESS_ERROR,
            msg,
            {"constraint": constraint, "label": label}
        )


class ProverError(IcebergError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.PROVER_ERROR, message, details)


class ArtifactMissingError(IcebergError):
    def __init__(self, path: str):
        super().__init__(
            ErrorCode.ARTIFACT_MISSING,
            f"Proof artifact missing: {path}",
            {"path": path}
        )


class ArtifactIntegrityError(IcebergError):
    def __init__(self, path: str, expected: str, got: str):
        super().__init__(
            ErrorCode.ARTIFACT_INTEGRITY,
            f"Proof artifact digest mismatch: {path}",
            {"path": path, "expected": expected, "got": got}
        )


class ArtifactMismatchError(IcebergError):
    def __init__(self, field_name: str, expected: Any, got: Any):
        super().__init__(
            ErrorCode.ARTIFACT_MISMATCH,
            f"Artifacts built for a different circuit: {field_name} is {got}, expected {expected}",
            {"field": field_name, "expected": expected, "got": got}
        )


class UnknownRootError(IcebergError):
    def __init__(self, root: int):
        super().__init__(
            ErrorCode.UNKNOWN_ROOT,
            f"Merkle root {_short(root)} was never produced by this pool",
            {"root": hex(root)}
        )


# ==============================================================================
# External Errors (5xxx)
# ==============================================================================

class AggregatorAPIError(IcebergError):
    def __init__(self, status: int, body: str, endpoint: str = ""):
        super().__init__(
            ErrorCode.AGGREGATOR_API_ERROR,
            f"Aggregator API error {status} on {endpoint or 'request'}: {body[:200]}",
            {"status": status, "body": body, "endpoint": endpoint}
        )


class AggregatorAuthError(IcebergError):
    def __init__(self, status: int = 401):
        super().__init__(
            ErrorCode.AGGREGATOR_AUTH_ERROR,
            "Aggregator rejected the API key",
            {"status": status}
        )


class AggregatorUnavailableError(IcebergError):
    def __init__(self, endpoint: str, error: str):
        super().__init__(
            ErrorCode.AGGREGATOR_UNAVAILABLE,
            f"Aggregator unreachable ({endpoint}): {error}",
            {"endpoint": endpoint, "error": error}
        )


class TransferFailedError(IcebergError):
    def __init__(self, asset: Any, recipient: Any, amount: int, reason: str = ""):
        super().__init__(
            ErrorCode.TRANSFER_FAILED,
            f"Transfer of {amount} {asset} to {recipient} failed" + (f": {reason}" if reason else ""),
            {"asset": str(asset), "recipient": str(recipient), "amount": amount, "reason": reason}
        )


class InsufficientFundsError(IcebergError):
    def __init__(self, owner: Any, asset: Any, balance: int, required: int):
        super().__init__(
            ErrorCode.INSUFFICIENT_FUNDS,
            f"{owner} holds {balance} {asset}, needs {required}",
            {"owner": str(owner), "asset": str(asset), "balance": balance, "required": required}
        )


# ==============================================================================
# Client Errors (6xxx)
# ==============================================================================

class CommitmentNotFoundError(IcebergError):
    def __init__(self, commitment: int, attempts: int = 1):
        super().__init__(
            ErrorCode.COMMITMENT_NOT_FOUND,
            f"No deposit found for commitment {_short(commitment)} after {attempts} scan(s)",
            {"commitment": hex(commitment), "attempts": attempts}
        )


class ScanTimeoutError(IcebergError):
    def __init__(self, timeout_sec: float):
        super().__init__(
            ErrorCode.SCAN_TIMEOUT,
            f"Event scan did not finish within {timeout_sec}s",
            {"timeout_sec": timeout_sec}
        )


class RPCTransportError(IcebergError):
    def __init__(self, url: str, error: str):
        super().__init__(
            ErrorCode.RPC_TRANSPORT_ERROR,
            f"Ledger RPC unreachable ({url}): {error}",
            {"url": url, "error": error}
        )


def error_from_dict(data: dict) -> IcebergError:
    """Rebuild an error from its to_dict() form, keeping code and details."""
    try:
        code = ErrorCode(int(data.get("code", ErrorCode.UNKNOWN_ERROR)))
    except ValueError:
        code = ErrorCode.UNKNOWN_ERROR
    return IcebergError(code, data.get("message", ""), data.get("details"))
