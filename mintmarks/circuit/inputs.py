"""Assemble the Mintmarks circuit inputs from a verified email."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence

from ..errors import BackendError
from ..headers.locator import SequenceDescriptor, locate_header_sequence
from ..headers.sequences import derive_value_sequence, extract_event_name_sequence

logger = logging.getLogger(__name__)

MAX_HEADER_LENGTH = 2048

BASE_INPUT_NAMES = ("signature", "header", "pubkey")
SEQUENCE_INPUT_NAMES = (
    "date_header_sequence",
    "date_value_sequence",
    "subject_header_sequence",
    "subject_value_sequence",
    "event_name_sequence",
)
CIRCUIT_INPUT_NAMES = BASE_INPUT_NAMES + SEQUENCE_INPUT_NAMES


class DkimVerification(Protocol):
    """What the assembler needs from a DKIM verification result."""

    headers: bytes
    domain: str | None

    def base_inputs(self, max_header_length: int) -> dict[str, Any]:  # pragma: no cover - interface
        ...


@dataclass(frozen=True)
class HeaderSequences:
    """Every header range the circuit constrains."""

    date_header: SequenceDescriptor
    date_value: SequenceDescriptor
    subject_header: SequenceDescriptor
    subject_value: SequenceDescriptor
    event_name: SequenceDescriptor

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            "date_header_sequence": self.date_header.to_dict(),
            "date_value_sequence": self.date_value.to_dict(),
            "subject_header_sequence": self.subject_header.to_dict(),
            "subject_value_sequence": self.subject_value.to_dict(),
            "event_name_sequence": self.event_name.to_dict(),
        }


def derive_header_sequences(headers: bytes) -> HeaderSequences:
    """Locate Date and Subject and narrow them down to the event name.

    Raises:
        FieldNotFound: If either header is missing.
    """

    date_header = locate_header_sequence(headers, "date")
    date_value = derive_value_sequence(date_header, "date")
    subject_header = locate_header_sequence(headers, "subject")
    subject_value = derive_value_sequence(subject_header, "subject")
    event_name = extract_event_name_sequence(headers, subject_value)
    return HeaderSequences(
        date_header=date_header,
        date_value=date_value,
        subject_header=subject_header,
        subject_value=subject_value,
        event_name=event_name,
    )


@dataclass(frozen=True)
class CircuitInputs:
    """Named input set consumed by one proving run."""

    base: Mapping[str, Any]
    sequences: HeaderSequences
    headers: bytes
    domain: str | None = None

    def to_dict(self) -> dict[str, Any]:
        inputs = {name: self.base[name] for name in BASE_INPUT_NAMES}
        inputs.update(self.sequences.to_dict())
        return inputs

    def text(self, sequence: SequenceDescriptor) -> str:
        return sequence.slice(self.headers).decode("utf-8", errors="replace")

    def summary(self) -> dict[str, Any]:
        """Human readable view of the derived ranges."""

        def _describe(sequence: SequenceDescriptor) -> dict[str, Any]:
            return {"index": sequence.index, "length": sequence.length, "text": self.text(sequence)}

        return {
            "domain": self.domain,
            "headers_length": len(self.headers),
            "date": _describe(self.sequences.date_value),
            "subject": _describe(self.sequences.subject_value),
            "event_name": _describe(self.sequences.event_name),
        }


def assemble_circuit_inputs(
    dkim_result: DkimVerification, *, max_header_length: int = MAX_HEADER_LENGTH
) -> CircuitInputs:
    """Combine the DKIM base fields with the derived header sequences.

    Raises:
        FieldNotFound: If the Date or Subject header is missing.
        BackendError: If the DKIM result lacks one of the base fields.
    """

    headers = dkim_result.headers
    sequences = derive_header_sequences(headers)

    base = dkim_result.base_inputs(max_header_length)
    missing = [name for name in BASE_INPUT_NAMES if name not in base]
    if missing:
        raise BackendError(f"DKIM inputs missing fields: {', '.join(missing)}")

    inputs = CircuitInputs(base=base, sequences=sequences, headers=headers, domain=dkim_result.domain)
    logger.info(
        "Assembled circuit inputs for %s: date=%r event=%r",
        dkim_result.domain or "unknown domain",
        inputs.text(sequences.date_value),
        inputs.text(sequences.event_name),
    )
    return inputs


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, Sequence):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    raise TypeError(f"Unsupported Prover.toml value: {type(value).__name__}")


def _toml_table(lines: list[str], path: tuple[str, ...], table: Mapping[str, Any]) -> None:
    scalars = [(key, value) for key, value in table.items() if not isinstance(value, Mapping)]
    tables = [(key, value) for key, value in table.items() if isinstance(value, Mapping)]
    if path and (scalars or not tables):
        lines.append("")
        lines.append(f"[{'.'.join(path)}]")
    for key, value in scalars:
        lines.append(f"{key} = {_toml_value(value)}")
    for key, value in tables:
        _toml_table(lines, path + (key,), value)


def to_prover_toml(inputs: Mapping[str, Any], comments: Iterable[str] = ()) -> str:
    """Render circuit inputs in the ``Prover.toml`` format read by ``nargo``."""

    lines = [f"# {comment}" for comment in comments]
    if lines:
        lines.append("")
    _toml_table(lines, (), inputs)
    return "\n".join(lines).lstrip("\n") + "\n"


__all__ = [
    "MAX_HEADER_LENGTH",
    "BASE_INPUT_NAMES",
    "SEQUENCE_INPUT_NAMES",
    "CIRCUIT_INPUT_NAMES",
    "DkimVerification",
    "HeaderSequences",
    "CircuitInputs",
    "derive_header_sequences",
    "assemble_circuit_inputs",
    "to_prover_toml",
]
