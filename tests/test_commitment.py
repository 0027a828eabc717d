"""
Iceberg Protocol Commitment Tests
"""

import secrets

import pytest

from iceberg.constants import FIELD_MODULUS
from iceberg.crypto.hash import domain_hash
from iceberg.crypto.poseidon import h1, h2
from iceberg.protocol.commitment import derive, derive_secrets, is_numeric_passphrase


class TestDerive:
    """Passphrase -> (nullifier, secret, commitment, nullifierHash)."""

    def test_deterministic(self):
        """Same passphrase, same note."""
        for passphrase in ("abc123", "123456", "", "ünïcode ✓"):
            assert derive(passphrase) == derive(passphrase)

    def test_numeric_passphrase(self):
        """Digits map to int(p) and int(reverse(p))."""
        nullifier, secret = derive_secrets("1203")
        assert secret == 1203
        assert nullifier == 3021

    def test_numeric_leading_zero_after_reverse(self):
        """Reversed digits with leading zeros parse as decimal."""
        nullifier, secret = derive_secrets("120")
        assert secret == 120
        assert nullifier == 21

    def test_text_passphrase(self):
        """Other strings hash the passphrase and its reverse."""
        nullifier, secret = derive_secrets("abc123")
        assert secret == domain_hash("abc123")
        assert nullifier == domain_hash("321cba")

    def test_empty_passphrase(self):
        """The empty string is not numeric and still yields a note."""
        assert not is_numeric_passphrase("")
        note = derive("")
        assert note.secret == domain_hash("")

    def test_non_ascii_digits_not_numeric(self):
        """Only ASCII digits count as numeric."""
        assert not is_numeric_passphrase("١٢٣")
        assert is_numeric_passphrase("0123")

    def test_huge_number_reduced(self):
        """Numeric passphrases beyond r are reduced into the field."""
        passphrase = str(FIELD_MODULUS + 5)
        _, secret = derive_secrets(passphrase)
        assert secret == 5

    def test_public_values(self):
        """commitment = H2(nullifier, secret), nullifierHash = H1(nullifier)."""
        note = derive("abc123")
        assert note.commitment == h2(note.nullifier, note.secret)
        assert note.nullifier_hash == h1(note.nullifier)

    def test_repr_hides_secrets(self):
        """Secrets never show up in repr."""
        note = derive("abc123")
        text = repr(note)
        assert str(note.secret) not in text
        assert str(note.nullifier) not in text

    def test_rejects_non_string(self):
        """Passphrases are strings."""
        with pytest.raises(TypeError):
            derive(123456)

    @pytest.mark.timeout(600)
    def test_no_collisions_smoke(self):
        """10,000 distinct random passphrases give distinct commitments and nullifier hashes."""
        passphrases = {secrets.token_hex(8) for _ in range(10_000)}
        notes = [derive(p) for p in passphrases]
        assert len({n.commitment for n in notes}) == len(passphrases)
        assert len({n.nullifier_hash for n in notes}) == len(passphrases)
