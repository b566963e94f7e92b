"""Mintmarks email header extraction and circuit I/O."""

from .errors import BackendError, CircuitArtifactError, FieldNotFound, MintmarksError, ProofVerificationFailed

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "CircuitArtifactError",
    "FieldNotFound",
    "MintmarksError",
    "ProofVerificationFailed",
]
