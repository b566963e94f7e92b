"""Exception hierarchy shared by the extraction, codec and proving layers."""

from __future__ import annotations

from typing import Sequence


class MintmarksError(Exception):
    """Base class for every error raised by :mod:`mintmarks`."""


class FieldNotFound(MintmarksError, LookupError):
    """A required header is absent outside of the DKIM-Signature headers."""

    def __init__(self, field_name: str, available_headers: Sequence[str] = ()) -> None:
        self.field_name = field_name
        self.available_headers = list(available_headers)
        message = f'Header field "{field_name}" not found outside DKIM headers'
        if self.available_headers:
            message += f" (available: {', '.join(self.available_headers)})"
        super().__init__(message)


class ProofVerificationFailed(MintmarksError):
    """The freshly generated proof did not verify locally."""


class BackendError(MintmarksError):
    """Failure reported by the DKIM collaborator or the proving toolchain."""


class CircuitArtifactError(MintmarksError, ValueError):
    """The compiled circuit does not match the layout this package expects."""


__all__ = [
    "MintmarksError",
    "FieldNotFound",
    "ProofVerificationFailed",
    "BackendError",
    "CircuitArtifactError",
]
