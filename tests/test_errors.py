"""
Iceberg Protocol Error Tests
Error kinds and the dict form used over JSON-RPC.
"""

from iceberg.errors import (
    AggregatorUnavailableError,
    AlreadySwappedError,
    ErrorCode,
    ErrorKind,
    InvalidProofError,
    UnknownConfigError,
    UnknownRootError,
    error_from_dict,
    error_kind,
)


class TestErrorKind:
    """How callers are told to react."""

    def test_unknown_root_is_resync(self):
        """A root the pool does not know calls for re-reading ledger state."""
        assert UnknownRootError(12345).kind == ErrorKind.RESYNC

    def test_state_errors_are_resync(self):
        """Registry conflicts and missing deposits are stale-state conditions."""
        assert AlreadySwappedError(1).kind == ErrorKind.RESYNC
        assert error_kind(ErrorCode.COMMITMENT_NOT_FOUND) == ErrorKind.RESYNC

    def test_other_kinds(self):
        """Bad proofs are fatal, dependencies external, bad configs validation."""
        assert InvalidProofError().kind == ErrorKind.FATAL
        assert AggregatorUnavailableError("https://api.1inch.dev", "timeout").kind == ErrorKind.EXTERNAL
        assert UnknownConfigError(9).kind == ErrorKind.VALIDATION


class TestErrorDict:
    """to_dict / error_from_dict"""

    def test_code_and_kind_survive(self):
        """A rebuilt error keeps code, message and kind."""
        original = UnknownRootError(12345)
        rebuilt = error_from_dict(original.to_dict())
        assert rebuilt.code == ErrorCode.UNKNOWN_ROOT
        assert rebuilt.message == original.message
        assert rebuilt.kind == ErrorKind.RESYNC

    def test_unknown_code(self):
        """Codes this client does not know map to UNKNOWN_ERROR."""
        assert error_from_dict({"code": 9999, "message": "?"}).code == ErrorCode.UNKNOWN_ERROR
