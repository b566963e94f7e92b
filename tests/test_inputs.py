from dataclasses import dataclass, field

import pytest

from mintmarks.circuit.inputs import (
    CIRCUIT_INPUT_NAMES,
    assemble_circuit_inputs,
    derive_header_sequences,
    to_prover_toml,
)
from mintmarks.errors import BackendError, FieldNotFound


@dataclass
class FakeDkimResult:
    headers: bytes
    domain: str | None = "luma-mail.com"
    drop: tuple[str, ...] = ()
    requested_lengths: list[int] = field(default_factory=list)

    def base_inputs(self, max_header_length: int) -> dict:
        self.requested_lengths.append(max_header_length)
        storage = [str(byte) for byte in self.headers] + ["0"] * (max_header_length - len(self.headers))
        base = {
            "signature": ["0x1", "0x2"],
            "header": {"storage": storage, "len": str(len(self.headers))},
            "pubkey": {"modulus": ["0x3", "0x4"], "redc": ["0x5", "0x6"]},
        }
        for name in self.drop:
            base.pop(name)
        return base


def test_sequences_point_at_expected_ranges(canonical_headers):
    sequences = derive_header_sequences(canonical_headers)

    assert sequences.date_header.slice(canonical_headers) == b"date:Mon, 14 Oct 2024 18:03:12 +0000"
    assert sequences.date_value.slice(canonical_headers) == b"Mon, 14 Oct 2024 18:03:12 +0000"
    assert sequences.subject_header.slice(canonical_headers) == (
        b"subject:Registration Confirmation: Thanks for joining Foo Bar Meetup"
    )
    assert sequences.subject_value.slice(canonical_headers) == (
        b"Registration Confirmation: Thanks for joining Foo Bar Meetup"
    )
    assert sequences.event_name.slice(canonical_headers) == b"Foo Bar Meetup"


def test_assembled_inputs_use_circuit_names(canonical_headers):
    dkim_result = FakeDkimResult(canonical_headers)

    inputs = assemble_circuit_inputs(dkim_result, max_header_length=1024)
    payload = inputs.to_dict()

    assert dkim_result.requested_lengths == [1024]
    assert tuple(payload) == CIRCUIT_INPUT_NAMES
    assert payload["signature"] == ["0x1", "0x2"]
    assert len(payload["header"]["storage"]) == 1024

    event_range = payload["event_name_sequence"]
    start = int(event_range["index"])
    assert isinstance(event_range["index"], str)
    assert canonical_headers[start : start + int(event_range["length"])] == b"Foo Bar Meetup"

    summary = inputs.summary()
    assert summary["domain"] == "luma-mail.com"
    assert summary["event_name"]["text"] == "Foo Bar Meetup"
    assert summary["date"]["text"] == "Mon, 14 Oct 2024 18:03:12 +0000"


def test_missing_subject_is_fatal():
    dkim_result = FakeDkimResult(b"from:a@example.com\r\ndate:Mon, 14 Oct 2024\r\ndkim-signature:h=from:subject:date; b=")

    with pytest.raises(FieldNotFound) as excinfo:
        assemble_circuit_inputs(dkim_result)

    assert excinfo.value.field_name == "subject"
    assert dkim_result.requested_lengths == []


def test_missing_base_field_is_a_backend_error(canonical_headers):
    with pytest.raises(BackendError, match="pubkey"):
        assemble_circuit_inputs(FakeDkimResult(canonical_headers, drop=("pubkey",)))


def test_prover_toml_layout(canonical_headers):
    inputs = assemble_circuit_inputs(FakeDkimResult(canonical_headers), max_header_length=512)

    text = to_prover_toml(inputs.to_dict(), ["Generated Prover.toml for Mintmarks", "Event: Foo Bar Meetup"])

    assert text.startswith("# Generated Prover.toml for Mintmarks\n# Event: Foo Bar Meetup\n\nsignature = [")
    assert '\n[pubkey]\nmodulus = ["0x3", "0x4"]\nredc = ["0x5", "0x6"]\n' in text
    sequence = inputs.sequences.event_name
    assert f'\n[event_name_sequence]\nindex = "{sequence.index}"\nlength = "{sequence.length}"\n' in text


def test_prover_toml_parses_back_to_inputs(canonical_headers):
    tomllib = pytest.importorskip("tomllib")
    payload = assemble_circuit_inputs(FakeDkimResult(canonical_headers), max_header_length=512).to_dict()

    assert tomllib.loads(to_prover_toml(payload)) == payload


def test_prover_toml_rejects_unsupported_values():
    with pytest.raises(TypeError):
        to_prover_toml({"value": 1.5})
