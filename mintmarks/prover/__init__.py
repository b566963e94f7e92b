"""Proof generation and verification."""

from .backend import (
    HASH_VARIANTS,
    KECCAK,
    POSEIDON2,
    Execution,
    NargoBackend,
    ProofData,
    ProvingBackend,
    open_backend,
)
from .driver import (
    DirectorySink,
    MemorySink,
    ProofResult,
    ProofTimings,
    describe_return_value,
    generate_and_verify,
)

__all__ = [
    "HASH_VARIANTS",
    "KECCAK",
    "POSEIDON2",
    "Execution",
    "NargoBackend",
    "ProofData",
    "ProvingBackend",
    "open_backend",
    "DirectorySink",
    "MemorySink",
    "ProofResult",
    "ProofTimings",
    "describe_return_value",
    "generate_and_verify",
]
