"""
Iceberg Protocol Commitment Generator

Derives the secret pair behind a deposit from a user passphrase:

    numeric passphrase:  secret = int(p),          nullifier = int(reverse(p))
    otherwise:           secret = domainHash(p),   nullifier = domainHash(reverse(p))
    commitment    = H2(nullifier, secret)
    nullifierHash = H1(nullifier)

domainHash(s) = keccak256(utf8(s)) mod r. reverse() reverses characters.
This is the only supported derivation; the same passphrase always yields the
same note.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

from iceberg.crypto.field import to_field, to_hex32
from iceberg.crypto.hash import domain_hash
from iceberg.crypto.poseidon import h1, h2


@dataclass(frozen=True)
class DepositNote:
    """Secret material and public values for one deposit."""
    nullifier: int
    secret: int
    commitment: int
    nullifier_hash: int

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return f"DepositNote(commitment={to_hex32(self.commitment)[:18]}...)"

    def public_dict(self) -> dict:
        return {
            "commitment": to_hex32(self.commitment),
            "nullifierHash": to_hex32(self.nullifier_hash),
        }


def is_numeric_passphrase(passphrase: str) -> bool:
    """True if the passphrase is a non-empty run of ASCII decimal digits."""
    return passphrase.isascii() and passphrase.isdigit()


def derive_secrets(passphrase: str) -> Tuple[int, int]:
    """
    Derive (nullifier, secret) from a passphrase.

    Args:
        passphrase: Any string

    Returns:
        (nullifier, secret) field elements
    """
    reversed_passphrase = passphrase[::-1]
    if is_numeric_passphrase(passphrase):
        secret = to_field(int(passphrase))
        nullifier = to_field(int(reversed_passphrase))
    else:
        secret = domain_hash(passphrase)
        nullifier = domain_hash(reversed_passphrase)
    return nullifier, secret


def commitment_of(nullifier: int, secret: int) -> int:
    return h2(nullifier, secret)


def nullifier_hash_of(nullifier: int) -> int:
    return h1(nullifier)


def derive(passphrase: str) -> DepositNote:
    """
    Derive the full deposit note from a passphrase.

    Deterministic and side-effect free; every string yields a note.

    Args:
        passphrase: User passphrase

    Returns:
        DepositNote
    """
    if not isinstance(passphrase, str):
        raise TypeError(f"passphrase must be str, got {type(passphrase).__name__}")

    nullifier, secret = derive_secrets(passphrase)
    return DepositNote(
        nullifier=nullifier,
        secret=secret,
        commitment=commitment_of(nullifier, secret),
        nullifier_hash=nullifier_hash_of(nullifier),
    )
