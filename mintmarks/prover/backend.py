"""Proving backend interface and the ``nargo``/``bb`` implementation.

A backend is acquired per proving run through :func:`open_backend`, which
awaits :meth:`ProvingBackend.destroy` on every exit path.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import subprocess
import tempfile
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Mapping, Protocol, Sequence

from ..circuit.artifact import CircuitArtifact
from ..circuit.codec import field_to_int, parse_printed_value
from ..circuit.inputs import to_prover_toml
from ..errors import BackendError

logger = logging.getLogger(__name__)

# Keccak transcripts are what the EVM verifier contract checks; Poseidon2 is
# for native/recursive verification.  Prove and verify must use the same one.
KECCAK = "keccak"
POSEIDON2 = "poseidon2"
HASH_VARIANTS = (KECCAK, POSEIDON2)

FIELD_BYTES = 32


@dataclass(frozen=True)
class Execution:
    """Witness produced by executing the circuit, plus its return value."""

    witness: Any
    return_value: Any = None


@dataclass(frozen=True)
class ProofData:
    proof: bytes
    public_inputs: list[str] = field(default_factory=list)


class ProvingBackend(Protocol):
    """Operations the proof driver needs from a proving system."""

    async def execute(self, inputs: Mapping[str, Any]) -> Execution:  # pragma: no cover - interface
        ...

    async def generate_proof(self, witness: Any, *, hash_variant: str) -> ProofData:  # pragma: no cover - interface
        ...

    async def verify_proof(self, proof: ProofData, *, hash_variant: str) -> bool:  # pragma: no cover - interface
        ...

    async def destroy(self) -> None:  # pragma: no cover - interface
        ...


BackendFactory = Callable[[CircuitArtifact], ProvingBackend]


@asynccontextmanager
async def open_backend(factory: BackendFactory, circuit: CircuitArtifact) -> AsyncIterator[ProvingBackend]:
    backend = factory(circuit)
    try:
        yield backend
    finally:
        await backend.destroy()
        logger.debug("Proving backend destroyed")


def split_public_inputs(data: bytes) -> list[str]:
    """Split a binary public input file into ``0x`` field element strings."""

    if len(data) % FIELD_BYTES:
        raise BackendError(f"Public input file of {len(data)} bytes is not a multiple of {FIELD_BYTES}")
    return ["0x" + data[offset : offset + FIELD_BYTES].hex() for offset in range(0, len(data), FIELD_BYTES)]


def join_public_inputs(public_inputs: Sequence[Any]) -> bytes:
    return b"".join(field_to_int(value).to_bytes(FIELD_BYTES, "big") for value in public_inputs)


def _circuit_output(stdout: str) -> Any:
    """Return value printed by ``nargo execute``, parsed when possible."""

    for line in stdout.splitlines():
        if "Circuit output:" in line:
            printed = line.split("Circuit output:", 1)[1].strip()
            try:
                return parse_printed_value(printed)
            except ValueError as exc:
                logger.debug("Keeping unparsed circuit output %r: %s", printed, exc)
                return printed
    return None


class NargoBackend:
    """Drive ``nargo execute`` and the ``bb`` UltraHonk prover.

    ``nargo`` reads the inputs from ``<program_dir>/<prover_name>.toml`` and
    writes the witness to ``<program_dir>/target/<witness_name>.gz``.  Proofs,
    public inputs and the verification key go to a scratch directory that is
    removed by :meth:`destroy` unless one was supplied.
    """

    def __init__(
        self,
        circuit: CircuitArtifact,
        *,
        program_dir: Path,
        work_dir: Path | None = None,
        nargo_binary: str = "nargo",
        bb_binary: str = "bb",
        prover_name: str = "Prover",
        witness_name: str = "mintmarks",
    ) -> None:
        self.circuit = circuit
        self.program_dir = Path(program_dir)
        self.nargo_binary = nargo_binary
        self.bb_binary = bb_binary
        self.prover_name = prover_name
        self.witness_name = witness_name
        self._owns_work_dir = work_dir is None
        self.work_dir = Path(work_dir) if work_dir is not None else Path(tempfile.mkdtemp(prefix="mintmarks-"))

    async def _run(self, command: list[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Run one tool invocation; the child is killed if the caller is cancelled."""

        logger.debug("Running %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BackendError(f"Executable not found: {command[0]}") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.warning("Killing %s (pid %d) after cancellation", command[0], process.pid)
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            raise

        result = subprocess.CompletedProcess(
            command,
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            raise BackendError(
                f"{command[0]} {command[1]} failed with exit code {result.returncode}: {result.stderr.strip()}"
            )
        return result

    def _circuit_path(self) -> Path:
        if self.circuit.path is not None:
            return self.circuit.path
        path = self.work_dir / "circuit.json"
        if not path.exists():
            path.write_text(json.dumps(self.circuit.raw))
        return path

    async def execute(self, inputs: Mapping[str, Any]) -> Execution:
        prover_toml = self.program_dir / f"{self.prover_name}.toml"
        prover_toml.write_text(to_prover_toml(inputs), encoding="utf-8")
        result = await self._run(
            [
                self.nargo_binary,
                "execute",
                self.witness_name,
                "--program-dir",
                str(self.program_dir),
                "--prover-name",
                self.prover_name,
            ]
        )
        witness = self.program_dir / "target" / f"{self.witness_name}.gz"
        return Execution(witness=witness, return_value=_circuit_output(result.stdout))

    async def generate_proof(self, witness: Any, *, hash_variant: str) -> ProofData:
        await self._run(
            [
                self.bb_binary,
                "prove",
                "--scheme",
                "ultra_honk",
                "--oracle_hash",
                hash_variant,
                "-b",
                str(self._circuit_path()),
                "-w",
                str(witness),
                "-o",
                str(self.work_dir),
                "--write_vk",
            ]
        )
        proof = (self.work_dir / "proof").read_bytes()
        public_inputs = split_public_inputs((self.work_dir / "public_inputs").read_bytes())
        return ProofData(proof=proof, public_inputs=public_inputs)

    async def verify_proof(self, proof: ProofData, *, hash_variant: str) -> bool:
        proof_path = self.work_dir / "verify_proof"
        inputs_path = self.work_dir / "verify_public_inputs"
        proof_path.write_bytes(proof.proof)
        inputs_path.write_bytes(join_public_inputs(proof.public_inputs))
        result = await self._run(
            [
                self.bb_binary,
                "verify",
                "--scheme",
                "ultra_honk",
                "--oracle_hash",
                hash_variant,
                "-k",
                str(self.work_dir / "vk"),
                "-p",
                str(proof_path),
                "-i",
                str(inputs_path),
            ],
            check=False,
        )
        if result.returncode != 0:
            logger.warning("bb verify exited with %d: %s", result.returncode, result.stderr.strip())
        return result.returncode == 0

    async def destroy(self) -> None:
        if self._owns_work_dir:
            await asyncio.to_thread(shutil.rmtree, self.work_dir, True)


__all__ = [
    "KECCAK",
    "POSEIDON2",
    "HASH_VARIANTS",
    "Execution",
    "ProofData",
    "ProvingBackend",
    "BackendFactory",
    "NargoBackend",
    "open_backend",
    "split_public_inputs",
    "join_public_inputs",
]
