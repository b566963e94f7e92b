"""Loading and layout checks for the compiled Noir circuit.

The artifact is loaded once by the caller and passed around explicitly; the
capacities of the two bounded outputs and the input names are taken from its
ABI and compared with the constants the codec and assembler use.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from jsonschema import Draft202012Validator
from packaging.version import InvalidVersion, Version

from ..errors import CircuitArtifactError
from .codec import DATE_CAPACITY, EVENT_NAME_CAPACITY
from .inputs import CIRCUIT_INPUT_NAMES

MIN_NOIR_VERSION = "1.0.0-beta.5"
BOUNDED_VEC_PATH = "BoundedVec"


def _default_schema_path() -> Path:
    return Path(__file__).resolve().parents[1] / "schema" / "circuit.schema.json"


def _validate_schema(document: Any, schema_path: Path) -> list[str]:
    with schema_path.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(document), key=lambda err: list(err.path))
    return [f"{list(error.path)}: {error.message}" for error in errors]


def _bounded_vec_capacity(abi_type: Mapping[str, Any]) -> int | None:
    if abi_type.get("kind") != "struct" or not str(abi_type.get("path", "")).endswith(BOUNDED_VEC_PATH):
        return None
    for field in abi_type.get("fields", []):
        if field.get("name") == "storage":
            return int(field["type"]["length"])
    return None


@dataclass(frozen=True)
class CircuitArtifact:
    """Compiled circuit: bytecode plus its declared ABI."""

    path: Path | None
    noir_version: str
    bytecode: str
    abi: Mapping[str, Any]
    raw: Mapping[str, Any]

    @classmethod
    def from_dict(cls, document: Mapping[str, Any], *, path: Path | None = None) -> "CircuitArtifact":
        return cls(
            path=path,
            noir_version=document["noir_version"],
            bytecode=document["bytecode"],
            abi=document["abi"],
            raw=document,
        )

    @property
    def parameter_names(self) -> list[str]:
        return [parameter["name"] for parameter in self.abi.get("parameters", [])]

    def bounded_vec_capacities(self) -> list[int]:
        """Storage capacities of the bounded vectors in the return value, in order."""

        return_type = self.abi.get("return_type") or {}
        abi_type = return_type.get("abi_type") or {}
        if abi_type.get("kind") == "tuple":
            members: Iterable[Mapping[str, Any]] = abi_type.get("fields", [])
        else:
            members = [abi_type]

        capacities: list[int] = []
        for member in members:
            capacity = _bounded_vec_capacity(member)
            if capacity is not None:
                capacities.append(capacity)
        return capacities

    def check_version(self, minimum: str = MIN_NOIR_VERSION) -> None:
        try:
            version = Version(self.noir_version)
        except InvalidVersion as exc:
            raise CircuitArtifactError(f"Unrecognised noir_version {self.noir_version!r}") from exc
        if version < Version(minimum):
            raise CircuitArtifactError(
                f"Circuit compiled with Noir {self.noir_version}, below the minimum {minimum}"
            )

    def check_layout(
        self,
        *,
        input_names: Iterable[str] = CIRCUIT_INPUT_NAMES,
        date_capacity: int = DATE_CAPACITY,
        event_name_capacity: int = EVENT_NAME_CAPACITY,
    ) -> None:
        """Fail unless inputs and output capacities match this package."""

        errors: list[str] = []
        declared = set(self.parameter_names)
        expected = set(input_names)
        if declared - expected:
            errors.append(f"unexpected circuit inputs: {', '.join(sorted(declared - expected))}")
        if expected - declared:
            errors.append(f"missing circuit inputs: {', '.join(sorted(expected - declared))}")

        capacities = self.bounded_vec_capacities()
        if capacities != [date_capacity, event_name_capacity]:
            errors.append(
                f"bounded output capacities {capacities} != [{date_capacity}, {event_name_capacity}]"
            )

        if errors:
            raise CircuitArtifactError("Circuit layout mismatch: " + "; ".join(errors))


def load_circuit(
    path: Path,
    *,
    schema_path: Path | None = None,
    min_noir_version: str | None = MIN_NOIR_VERSION,
) -> CircuitArtifact:
    """Read, validate and return a compiled circuit artifact.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        CircuitArtifactError: If the document fails schema or version checks.
    """

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
    except json.JSONDecodeError as exc:
        raise CircuitArtifactError(f"Circuit artifact {path} is not valid JSON") from exc

    schema_errors = _validate_schema(document, schema_path or _default_schema_path())
    if schema_errors:
        raise CircuitArtifactError("; ".join(schema_errors))

    artifact = CircuitArtifact.from_dict(document, path=path)
    if min_noir_version:
        artifact.check_version(min_noir_version)
    return artifact


__all__ = [
    "MIN_NOIR_VERSION",
    "CircuitArtifact",
    "load_circuit",
]
