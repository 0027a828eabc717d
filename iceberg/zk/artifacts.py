"""
Iceberg Protocol Proof Artifacts

Artifacts live under one root directory next to a manifest.json:

    {
        "version": 1,
        "circuit": "withdraw",
        "fingerprint": {...},
        "files": {"keys/withdraw/...": "<sha256 hex>", ...}
    }

Nothing is proven or verified against artifacts that are missing, whose
digest differs from the manifest, or that were built for a different
circuit.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from iceberg.constants import (
    ARTIFACT_MANIFEST,
    ARTIFACT_PKEY,
    ARTIFACT_VKEY,
    ARTIFACT_WASM,
    ARTIFACT_ZKEY,
    CIRCUIT_NAME,
    PROTOCOL_VERSION,
)
from iceberg.crypto.hash import sha256_file
from iceberg.errors import (
    ArtifactIntegrityError,
    ArtifactMismatchError,
    ArtifactMissingError,
    InvalidProofFormatError,
)
from iceberg.zk.groth16 import ProvingKey, VerifyingKey

logger = logging.getLogger(__name__)

# Fingerprint entries an externally compiled circuit can be checked against
EXTERNAL_FINGERPRINT_KEYS: Tuple[str, ...] = ("circuit", "depth", "nPublic", "publicInputs")


@dataclass
class ArtifactManifest:
    """Digest list and circuit fingerprint of an artifact directory."""
    circuit: str = CIRCUIT_NAME
    fingerprint: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, str] = field(default_factory=dict)
    version: int = PROTOCOL_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "circuit": self.circuit,
            "fingerprint": self.fingerprint,
            "files": dict(sorted(self.files.items())),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactManifest":
        return cls(
            circuit=data.get("circuit", CIRCUIT_NAME),
            fingerprint=data.get("fingerprint", {}),
            files=dict(data.get("files", {})),
            version=int(data.get("version", PROTOCOL_VERSION)),
        )

    def save(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "ArtifactManifest":
        if not os.path.isfile(path):
            raise ArtifactMissingError(path)
        try:
            with open(path, 'r') as f:
                return cls.from_dict(json.load(f))
        except json.JSONDecodeError as e:
            raise ArtifactIntegrityError(path, "valid JSON", str(e)) from e


def _normalize(value: Any) -> Any:
    """JSON round trip so tuples and lists compare equal."""
    return json.loads(json.dumps(value))


def check_fingerprint(
    expected: Dict[str, Any],
    actual: Dict[str, Any],
    keys: Optional[Iterable[str]] = None,
) -> None:
    """
    Compare circuit fingerprints.

    Args:
        expected: Fingerprint of the compiled circuit
        actual: Fingerprint recorded with the artifacts
        keys: Entries to compare (all of expected if None)

    Raises:
        ArtifactMismatchError: On the first differing entry
    """
    for key in (keys if keys is not None else expected.keys()):
        want = _normalize(expected.get(key))
        got = _normalize(actual.get(key))
        if want != got:
            raise ArtifactMismatchError(key, want, got)


@dataclass
class ArtifactStore:
    """Artifact directory with integrity checking."""
    root: str

    def path(self, relative: str) -> str:
        return os.path.join(self.root, relative)

    @property
    def manifest_path(self) -> str:
        return self.path(ARTIFACT_MANIFEST)

    def write_manifest(self, files: Iterable[str], fingerprint: Dict[str, Any]) -> ArtifactManifest:
        """
        Hash the given files and write manifest.json.

        Raises:
            ArtifactMissingError: If a listed file does not exist
        """
        digests = {}
        for relative in files:
            full = self.path(relative)
            if not os.path.isfile(full):
                raise ArtifactMissingError(full)
            digests[relative] = sha256_file(full)

        manifest = ArtifactManifest(fingerprint=_normalize(fingerprint), files=digests)
        manifest.save(self.manifest_path)
        logger.info(f"Artifact manifest written: {len(digests)} files in {self.root}")
        return manifest

    def verify(
        self,
        required: Iterable[str],
        expected_fingerprint: Optional[Dict[str, Any]] = None,
        fingerprint_keys: Optional[Iterable[str]] = None,
    ) -> ArtifactManifest:
        """
        Check that required files exist and match the manifest.

        Args:
            required: Relative paths that must be present
            expected_fingerprint: Fingerprint of the circuit in use
            fingerprint_keys: Subset of fingerprint entries to compare

        Returns:
            The verified manifest

        Raises:
            ArtifactMissingError: If the manifest or a required file is missing
            ArtifactIntegrityError: If a file's digest differs from the manifest
            ArtifactMismatchError: If the fingerprint differs
        """
        manifest = ArtifactManifest.load(self.manifest_path)

        for relative in required:
            full = self.path(relative)
            if not os.path.isfile(full):
                raise ArtifactMissingError(full)
            expected = manifest.files.get(relative)
            if expected is None:
                raise ArtifactIntegrityError(full, "listed in manifest", "unlisted")
            actual = sha256_file(full)
            if actual != expected:
                raise ArtifactIntegrityError(full, expected, actual)

        if manifest.circuit != CIRCUIT_NAME:
            raise ArtifactMismatchError("circuit", CIRCUIT_NAME, manifest.circuit)
        if expected_fingerprint is not None:
            check_fingerprint(expected_fingerprint, manifest.fingerprint, fingerprint_keys)

        logger.debug(f"Artifacts verified in {self.root}")
        return manifest

    # ==========================================================================
    # Native backend (proving key JSON + verification key JSON)
    # ==========================================================================

    def save_native_keys(self, pk: ProvingKey, vk: VerifyingKey, fingerprint: Dict[str, Any]) -> ArtifactManifest:
        """Write both keys and a manifest covering them."""
        for relative in (ARTIFACT_PKEY, ARTIFACT_VKEY):
            os.makedirs(os.path.dirname(self.path(relative)), exist_ok=True)
        pk.save(self.path(ARTIFACT_PKEY))
        vk.save(self.path(ARTIFACT_VKEY))
        return self.write_manifest([ARTIFACT_PKEY, ARTIFACT_VKEY], fingerprint)

    def load_native_keys(self, fingerprint: Dict[str, Any]) -> Tuple[ProvingKey, VerifyingKey]:
        """
        Load the native proving and verification keys after integrity checks.

        Raises:
            ArtifactMissingError, ArtifactIntegrityError, ArtifactMismatchError
        """
        self.verify([ARTIFACT_PKEY, ARTIFACT_VKEY], fingerprint)
        pk = ProvingKey.load(self.path(ARTIFACT_PKEY))
        if pk.fingerprint:
            check_fingerprint(fingerprint, pk.fingerprint)
        vk = self.load_verifying_key(check=False)
        if vk.n_public != pk.num_public:
            raise ArtifactMismatchError("nPublic", pk.num_public, vk.n_public)
        logger.info(f"Native proving keys loaded from {self.root}")
        return pk, vk

    def load_verifying_key(self, check: bool = True) -> VerifyingKey:
        """
        Load the verification key.

        Raises:
            ArtifactMissingError, ArtifactIntegrityError
        """
        if check:
            self.verify([ARTIFACT_VKEY])
        path = self.path(ARTIFACT_VKEY)
        try:
            return VerifyingKey.load(path)
        except InvalidProofFormatError as e:
            raise ArtifactIntegrityError(path, "snarkjs verification key", e.message) from e

    # ==========================================================================
    # snarkjs backend (wasm + zkey + verification key)
    # ==========================================================================

    @property
    def snarkjs_files(self) -> List[str]:
        return [ARTIFACT_WASM, ARTIFACT_ZKEY, ARTIFACT_VKEY]

    def verify_snarkjs(self, fingerprint: Dict[str, Any]) -> ArtifactManifest:
        """Check the externally compiled artifacts against the circuit shape."""
        return self.verify(self.snarkjs_files, fingerprint, EXTERNAL_FINGERPRINT_KEYS)
