"""Circuit artifact, input assembly and output decoding."""

from .artifact import MIN_NOIR_VERSION, CircuitArtifact, load_circuit
from .codec import (
    DATE_CAPACITY,
    EVENT_NAME_CAPACITY,
    PublicOutputs,
    decode_bounded_vec,
    field_to_int,
    parse_printed_value,
    parse_public_inputs,
    public_input_count,
    public_inputs_to_hex,
)
from .inputs import (
    CIRCUIT_INPUT_NAMES,
    MAX_HEADER_LENGTH,
    CircuitInputs,
    HeaderSequences,
    assemble_circuit_inputs,
    derive_header_sequences,
    to_prover_toml,
)

__all__ = [
    "MIN_NOIR_VERSION",
    "CircuitArtifact",
    "load_circuit",
    "DATE_CAPACITY",
    "EVENT_NAME_CAPACITY",
    "PublicOutputs",
    "decode_bounded_vec",
    "field_to_int",
    "parse_printed_value",
    "parse_public_inputs",
    "public_input_count",
    "public_inputs_to_hex",
    "CIRCUIT_INPUT_NAMES",
    "MAX_HEADER_LENGTH",
    "CircuitInputs",
    "HeaderSequences",
    "assemble_circuit_inputs",
    "derive_header_sequences",
    "to_prover_toml",
]
