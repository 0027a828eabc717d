"""
Iceberg Protocol snarkjs Backend

Proves with externally compiled circom artifacts by running

    snarkjs groth16 fullprove input.json withdraw.wasm withdraw_0001.zkey proof.json public.json

in a private temporary directory. The result is parsed into the same
WithdrawalProof type the native prover returns.
"""

from __future__ import annotations
import asyncio
import json
import logging
import os
import tempfile
import time
from typing import List, Optional

from iceberg.constants import SNARKJS_BINARY, SNARKJS_TIMEOUT_SEC
from iceberg.errors import InvalidFieldElementError, InvalidProofFormatError, ProverError
from iceberg.zk.circuit import WithdrawInputs
from iceberg.zk.proof import Groth16Proof, PublicSignals, WithdrawalProof

logger = logging.getLogger(__name__)


class SnarkjsProver:
    """Prover backend delegating to the snarkjs CLI."""

    name = "snarkjs"

    def __init__(
        self,
        wasm_path: str,
        zkey_path: str,
        binary: str = SNARKJS_BINARY,
        timeout_sec: float = SNARKJS_TIMEOUT_SEC,
        work_dir: Optional[str] = None,
    ):
        self.wasm_path = wasm_path
        self.zkey_path = zkey_path
        self.binary = binary
        self.timeout_sec = timeout_sec
        self.work_dir = work_dir

    def command(self, run_dir: str) -> List[str]:
        return [
            self.binary, "groth16", "fullprove",
            os.path.join(run_dir, "input.json"),
            self.wasm_path,
            self.zkey_path,
            os.path.join(run_dir, "proof.json"),
            os.path.join(run_dir, "public.json"),
        ]

    async def prove(self, inputs: WithdrawInputs) -> WithdrawalProof:
        """
        Run snarkjs fullprove on the inputs.

        Args:
            inputs: Full circuit assignment

        Returns:
            WithdrawalProof parsed from proof.json and public.json

        Raises:
            ProverError: If snarkjs is missing, times out, exits non-zero or
                writes unreadable output
        """
        with tempfile.TemporaryDirectory(prefix="iceberg-prove-", dir=self.work_dir) as run_dir:
            with open(os.path.join(run_dir, "input.json"), 'w') as f:
                json.dump(inputs.to_json(), f)

            started = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.command(run_dir),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as e:
                raise ProverError(f"{self.binary} not found", {"binary": self.binary}) from e

            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_sec)
            except asyncio.TimeoutError:
                raise ProverError(
                    f"snarkjs did not finish within {self.timeout_sec}s",
                    {"timeout_sec": self.timeout_sec},
                ) from None
            finally:
                # Timeout and cancellation both leave the process running
                if process.returncode is None:
                    process.kill()
                    await process.wait()
                    logger.debug(f"snarkjs (pid {process.pid}) killed")

            if process.returncode != 0:
                raise ProverError(
                    f"snarkjs exited with code {process.returncode}",
                    {
                        "returncode": process.returncode,
                        "stderr": stderr.decode(errors="replace")[-2000:],
                        "stdout": stdout.decode(errors="replace")[-2000:],
                    },
                )

            logger.debug(f"snarkjs fullprove finished in {time.monotonic() - started:.1f}s")
            return self._read_output(run_dir)

    @staticmethod
    def _read_output(run_dir: str) -> WithdrawalProof:
        try:
            with open(os.path.join(run_dir, "proof.json"), 'r') as f:
                proof = Groth16Proof.from_snarkjs(json.load(f))
            with open(os.path.join(run_dir, "public.json"), 'r') as f:
                signals = PublicSignals.from_list(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            raise ProverError(f"snarkjs output unreadable: {e}") from e
        except (InvalidProofFormatError, InvalidFieldElementError) as e:
            raise ProverError(f"snarkjs output malformed: {e.message}") from e
        return WithdrawalProof(proof=proof, public_signals=signals)
