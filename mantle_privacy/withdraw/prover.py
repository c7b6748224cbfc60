"""Groth16 proving through the snarkjs CLI."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Protocol, Sequence, Tuple

import trio

from ..privacy_protocol.config import PROOF_CALLDATA_LENGTH
from ..privacy_protocol.exceptions import ProofGenerationError, ProofTimeout
from .witness import WithdrawWitness

logger = logging.getLogger(__name__)

DEFAULT_PROVE_TIMEOUT = 300.0


@dataclass(frozen=True)
class Groth16Proof:
    pi_a: Tuple[int, int]
    pi_b: Tuple[Tuple[int, int], Tuple[int, int]]
    pi_c: Tuple[int, int]
    public_signals: Tuple[int, ...]

    def to_calldata(self) -> List[int]:
        """Flatten for the Solidity verifier; B coordinates are swapped."""
        return [
            self.pi_a[0],
            self.pi_a[1],
            self.pi_b[0][1],
            self.pi_b[0][0],
            self.pi_b[1][1],
            self.pi_b[1][0],
            self.pi_c[0],
            self.pi_c[1],
        ]

    def to_snarkjs(self) -> Dict[str, Any]:
        """Projective JSON form read by ``snarkjs groth16 verify``."""
        return {
            "pi_a": [str(self.pi_a[0]), str(self.pi_a[1]), "1"],
            "pi_b": [
                [str(self.pi_b[0][0]), str(self.pi_b[0][1])],
                [str(self.pi_b[1][0]), str(self.pi_b[1][1])],
                ["1", "0"],
            ],
            "pi_c": [str(self.pi_c[0]), str(self.pi_c[1]), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }

    @classmethod
    def from_snarkjs(cls, proof: Dict[str, Any], public_signals: Sequence[Any]) -> "Groth16Proof":
        try:
            return cls(
                pi_a=(int(proof["pi_a"][0]), int(proof["pi_a"][1])),
                pi_b=(
                    (int(proof["pi_b"][0][0]), int(proof["pi_b"][0][1])),
                    (int(proof["pi_b"][1][0]), int(proof["pi_b"][1][1])),
                ),
                pi_c=(int(proof["pi_c"][0]), int(proof["pi_c"][1])),
                public_signals=tuple(int(s) for s in public_signals),
            )
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProofGenerationError(f"malformed snarkjs proof: {exc}") from exc


def check_calldata(calldata: Sequence[int]) -> None:
    if len(calldata) != PROOF_CALLDATA_LENGTH:
        raise ProofGenerationError(
            f"proof calldata must have {PROOF_CALLDATA_LENGTH} elements, got {len(calldata)}"
        )


class Prover(Protocol):
    async def prove(self, witness: WithdrawWitness) -> Groth16Proof:
        ...

    async def verify(self, proof: Groth16Proof) -> bool:
        ...


@asynccontextmanager
async def _scratch_dir() -> AsyncIterator[trio.Path]:
    """Temporary directory created and removed off the event loop."""
    path = await trio.to_thread.run_sync(tempfile.mkdtemp, "", "mantle-prover-")
    try:
        yield trio.Path(path)
    finally:
        with trio.CancelScope(shield=True):
            await trio.to_thread.run_sync(shutil.rmtree, path, True)


class SnarkjsProver:
    """
    Runs ``snarkjs groth16 fullprove`` in a subprocess.

    The subprocess is started with trio.run_process, so cancelling the
    caller's scope (or hitting ``timeout``) kills it. With a verification
    key, ``verify`` checks a proof with ``snarkjs groth16 verify`` before it
    is sent on chain.
    """

    def __init__(
        self,
        wasm_path: Path | str,
        zkey_path: Path | str,
        vkey_path: Path | str | None = None,
        snarkjs: str = "snarkjs",
        timeout: float = DEFAULT_PROVE_TIMEOUT,
    ) -> None:
        self.wasm_path = Path(wasm_path)
        self.zkey_path = Path(zkey_path)
        self.vkey_path = Path(vkey_path) if vkey_path is not None else None
        self.snarkjs = snarkjs
        self.timeout = timeout

    async def _check_assets(self) -> None:
        if not await trio.Path(self.wasm_path).exists():
            raise ProofGenerationError(f"missing circuit wasm: {self.wasm_path}")
        if not await trio.Path(self.zkey_path).exists():
            raise ProofGenerationError(f"missing proving key: {self.zkey_path}")

    async def _run(self, args: List[str], what: str) -> subprocess.CompletedProcess:
        command = [self.snarkjs, "groth16", *args]
        try:
            with trio.fail_after(self.timeout):
                return await trio.run_process(
                    command, capture_stdout=True, capture_stderr=True, check=False
                )
        except trio.TooSlowError as exc:
            raise ProofTimeout(f"{what} exceeded {self.timeout}s") from exc
        except OSError as exc:
            raise ProofGenerationError(f"cannot run {self.snarkjs}: {exc}") from exc

    async def prove(self, witness: WithdrawWitness) -> Groth16Proof:
        await self._check_assets()
        async with _scratch_dir() as tmp:
            input_path = tmp / "input.json"
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            await input_path.write_text(json.dumps(witness.to_circuit_input()))

            logger.info("Generating withdrawal proof (timeout %.0fs)", self.timeout)
            result = await self._run(
                [
                    "fullprove",
                    str(input_path),
                    str(self.wasm_path),
                    str(self.zkey_path),
                    str(proof_path),
                    str(public_path),
                ],
                "prover",
            )
            if result.returncode != 0:
                stderr = result.stderr.decode(errors="replace").strip() or "unknown prover error"
                raise ProofGenerationError(f"prover failed: {stderr}")

            try:
                proof_json = json.loads(await proof_path.read_text())
                public_json = json.loads(await public_path.read_text())
            except (OSError, json.JSONDecodeError) as exc:
                raise ProofGenerationError(f"prover output unreadable: {exc}") from exc

        proof = Groth16Proof.from_snarkjs(proof_json, public_json)
        check_public_signals(proof, witness)
        return proof

    async def verify(self, proof: Groth16Proof) -> bool:
        if self.vkey_path is None:
            logger.warning("No verification key configured, proof not checked locally")
            return True
        if not await trio.Path(self.vkey_path).exists():
            raise ProofGenerationError(f"missing verification key: {self.vkey_path}")

        async with _scratch_dir() as tmp:
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            await proof_path.write_text(json.dumps(proof.to_snarkjs()))
            await public_path.write_text(json.dumps([str(s) for s in proof.public_signals]))
            result = await self._run(
                ["verify", str(self.vkey_path), str(public_path), str(proof_path)],
                "verifier",
            )

        if result.returncode != 0:
            output = (result.stdout + result.stderr).decode(errors="replace").strip()
            logger.warning("Local proof verification failed: %s", output or "no output")
            return False
        return True


def check_public_signals(proof: Groth16Proof, witness: WithdrawWitness) -> None:
    expected = witness.public_signals()
    if proof.public_signals != expected:
        raise ProofGenerationError("prover public signals do not match the witness")
