"""Generate and locally verify a Mintmarks proof."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from ..circuit.artifact import CircuitArtifact
from ..circuit.codec import (
    DATE_CAPACITY,
    EVENT_NAME_CAPACITY,
    PublicOutputs,
    decode_bounded_vec,
    parse_public_inputs,
    public_inputs_to_hex,
)
from ..circuit.inputs import CircuitInputs
from ..errors import ProofVerificationFailed
from .backend import HASH_VARIANTS, KECCAK, BackendFactory, ProofData, ProvingBackend, open_backend

logger = logging.getLogger(__name__)


class ProofSink(Protocol):
    """Destination for a verified proof."""

    def write(self, proof: bytes, public_inputs: Sequence[str]) -> None:  # pragma: no cover - interface
        ...


class DirectorySink:
    """Writes ``proof.bin`` and ``public_inputs.json`` into a directory."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.proof_path = self.path / "proof.bin"
        self.public_inputs_path = self.path / "public_inputs.json"

    def write(self, proof: bytes, public_inputs: Sequence[str]) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self.proof_path.write_bytes(proof)
        with self.public_inputs_path.open("w", encoding="utf-8") as handle:
            json.dump(list(public_inputs), handle, indent=2)


class MemorySink:
    """In-memory sink useful for testing and embedding."""

    def __init__(self) -> None:
        self.proof: bytes | None = None
        self.public_inputs: list[str] = []

    def write(self, proof: bytes, public_inputs: Sequence[str]) -> None:
        self.proof = proof
        self.public_inputs = list(public_inputs)


@dataclass(frozen=True)
class ProofTimings:
    execute_seconds: float
    prove_seconds: float
    verify_seconds: float
    total_seconds: float


@dataclass(frozen=True)
class ProofResult:
    proof: bytes
    public_inputs: list[str]
    verified: bool
    outputs: PublicOutputs
    timings: ProofTimings
    hash_variant: str

    @property
    def proof_size(self) -> int:
        return len(self.proof)

    def public_inputs_hex(self) -> list[str]:
        return public_inputs_to_hex(self.public_inputs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "hash_variant": self.hash_variant,
            "proof_size": self.proof_size,
            "public_inputs_count": len(self.public_inputs),
            "outputs": self.outputs.to_dict(),
            "timings": {
                "execute_seconds": round(self.timings.execute_seconds, 3),
                "prove_seconds": round(self.timings.prove_seconds, 3),
                "verify_seconds": round(self.timings.verify_seconds, 3),
                "total_seconds": round(self.timings.total_seconds, 3),
            },
        }


def describe_return_value(return_value: Any) -> dict[str, str] | None:
    """Readable form of ``(pubkey_hash, nullifier, date, event_name)``."""

    if isinstance(return_value, (str, bytes)) or not isinstance(return_value, Sequence):
        return None
    if len(return_value) < 4:
        return None
    return {
        "pubkey_hash": str(return_value[0]),
        "email_nullifier": str(return_value[1]),
        "date_value": decode_bounded_vec(return_value[2]),
        "event_name": decode_bounded_vec(return_value[3]),
    }


async def _prove(
    backend: ProvingBackend, inputs: Mapping[str, Any], hash_variant: str
) -> tuple[ProofData, float, float, float]:
    started = time.perf_counter()
    execution = await backend.execute(inputs)
    execute_seconds = time.perf_counter() - started

    described = describe_return_value(execution.return_value)
    if described is not None:
        logger.info(
            "Circuit returned pubkey_hash=%s nullifier=%s date=%r event=%r",
            described["pubkey_hash"],
            described["email_nullifier"],
            described["date_value"],
            described["event_name"],
        )
    else:
        logger.info("Circuit return value: %s", execution.return_value)

    started = time.perf_counter()
    proof = await backend.generate_proof(execution.witness, hash_variant=hash_variant)
    prove_seconds = time.perf_counter() - started
    logger.info("Proof generated in %.2fs (%.2f KB)", prove_seconds, len(proof.proof) / 1024)

    started = time.perf_counter()
    verified = await backend.verify_proof(proof, hash_variant=hash_variant)
    verify_seconds = time.perf_counter() - started
    if not verified:
        raise ProofVerificationFailed(f"Proof failed local verification with the {hash_variant} transcript")
    logger.info("Proof verified in %.2fs", verify_seconds)

    return proof, execute_seconds, prove_seconds, verify_seconds


async def generate_and_verify(
    circuit: CircuitArtifact,
    inputs: CircuitInputs | Mapping[str, Any],
    backend_factory: BackendFactory,
    *,
    hash_variant: str = KECCAK,
    sink: ProofSink | None = None,
    timeout: float | None = None,
    date_capacity: int = DATE_CAPACITY,
    event_name_capacity: int = EVENT_NAME_CAPACITY,
) -> ProofResult:
    """Execute the circuit, prove, verify, and hand the proof to ``sink``.

    The same ``hash_variant`` is used for proving and verifying.  Nothing is
    written to ``sink`` unless local verification succeeds, and the backend is
    destroyed whether the run succeeds, fails or times out.

    Raises:
        ProofVerificationFailed: If the fresh proof does not verify.
        BackendError: If the proving toolchain fails.
        asyncio.TimeoutError: If ``timeout`` elapses first.
    """

    if hash_variant not in HASH_VARIANTS:
        raise ValueError(f"Unknown hash variant {hash_variant!r}; expected one of {HASH_VARIANTS}")

    payload = inputs.to_dict() if isinstance(inputs, CircuitInputs) else dict(inputs)
    started = time.perf_counter()
    async with open_backend(backend_factory, circuit) as backend:
        run = _prove(backend, payload, hash_variant)
        if timeout is not None:
            proof, execute_seconds, prove_seconds, verify_seconds = await asyncio.wait_for(run, timeout)
        else:
            proof, execute_seconds, prove_seconds, verify_seconds = await run
    total_seconds = time.perf_counter() - started

    outputs = parse_public_inputs(
        proof.public_inputs,
        date_capacity=date_capacity,
        event_name_capacity=event_name_capacity,
    )
    if sink is not None:
        sink.write(proof.proof, proof.public_inputs)

    return ProofResult(
        proof=proof.proof,
        public_inputs=list(proof.public_inputs),
        verified=True,
        outputs=outputs,
        timings=ProofTimings(
            execute_seconds=execute_seconds,
            prove_seconds=prove_seconds,
            verify_seconds=verify_seconds,
            total_seconds=total_seconds,
        ),
        hash_variant=hash_variant,
    )


__all__ = [
    "ProofSink",
    "DirectorySink",
    "MemorySink",
    "ProofTimings",
    "ProofResult",
    "describe_return_value",
    "generate_and_verify",
]
