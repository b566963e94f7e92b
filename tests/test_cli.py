import json

import pytest

from mintmarks import cli
from mintmarks.circuit.inputs import CIRCUIT_INPUT_NAMES
from mintmarks.prover.backend import Execution, ProofData

from conftest import RAW_EMAIL


def _write_signed_email(tmp_path, signed_email):
    message, record = signed_email
    eml = tmp_path / "confirmation.eml"
    eml.write_bytes(message)
    record_path = tmp_path / "s1._domainkey.txt"
    record_path.write_bytes(record + b"\n")
    return eml, record_path


def test_decode_command(tmp_path, capsys, encode_public_inputs):
    public_inputs = encode_public_inputs("0x2a", "0x0b", "Mon, 14 Oct 2024 18:03:12 +0000", "Foo Bar Meetup")
    path = tmp_path / "public_inputs.json"
    path.write_text(json.dumps(public_inputs))

    cli.main(["decode", str(path)])

    summary = json.loads(capsys.readouterr().out)
    assert summary["event_name"] == "Foo Bar Meetup"
    assert summary["date_iso"] == "2024-10-14T18:03:12+00:00"
    assert len(summary["public_inputs_hex"]) == 324


def test_decode_command_rejects_short_arrays(tmp_path):
    path = tmp_path / "public_inputs.json"
    path.write_text(json.dumps(["0x1", "0x2"]))

    with pytest.raises(SystemExit, match="Expected 324 public inputs, got 2"):
        cli.main(["decode", str(path)])


def test_prepare_writes_prover_toml(tmp_path, capsys, signed_email):
    eml, record_path = _write_signed_email(tmp_path, signed_email)
    output = tmp_path / "Prover.toml"

    cli.main(["prepare", str(eml), "--dkim-key-record", str(record_path), "--output", str(output)])

    text = output.read_text()
    assert text.startswith("# Generated Prover.toml for Mintmarks\n# Domain: luma-mail.com\n# Event: Foo Bar Meetup\n")
    assert "\n[event_name_sequence]\n" in text
    summary = json.loads(capsys.readouterr().out)
    assert summary["event_name"]["text"] == "Foo Bar Meetup"
    assert summary["output"] == str(output)


def test_prepare_json_format(tmp_path, signed_email):
    eml, record_path = _write_signed_email(tmp_path, signed_email)
    output = tmp_path / "inputs.json"

    cli.main(
        ["prepare", str(eml), "--dkim-key-record", str(record_path), "--output", str(output), "--format", "json"]
    )

    payload = json.loads(output.read_text())
    assert tuple(payload) == CIRCUIT_INPUT_NAMES
    assert payload["date_value_sequence"]["length"] == str(len("Mon, 14 Oct 2024 18:03:12 +0000"))


def test_prepare_rejects_unsigned_email(tmp_path):
    eml = tmp_path / "unsigned.eml"
    eml.write_bytes(RAW_EMAIL)

    with pytest.raises(SystemExit, match="No DKIM signature found"):
        cli.main(["prepare", str(eml), "--output", str(tmp_path / "Prover.toml")])


def test_prove_runs_backend_and_writes_artifacts(
    tmp_path, capsys, monkeypatch, signed_email, circuit_document, encode_public_inputs
):
    eml, record_path = _write_signed_email(tmp_path, signed_email)
    circuit_path = tmp_path / "circuits" / "target" / "mintmarks_circuits.json"
    circuit_path.parent.mkdir(parents=True)
    circuit_path.write_text(json.dumps(circuit_document()))
    public_inputs = encode_public_inputs("0x2a", "0x0b", "Mon, 14 Oct 2024 18:03:12 +0000", "Foo Bar Meetup")
    created = []

    class FakeNargoBackend:
        def __init__(self, artifact, *, program_dir, nargo_binary, bb_binary):
            self.program_dir = program_dir
            self.inputs = None
            self.destroyed = False
            created.append(self)

        async def execute(self, inputs):
            self.inputs = inputs
            return Execution(witness="witness")

        async def generate_proof(self, witness, *, hash_variant):
            return ProofData(proof=b"\x07" * 16, public_inputs=public_inputs)

        async def verify_proof(self, proof, *, hash_variant):
            return True

        async def destroy(self):
            self.destroyed = True

    monkeypatch.setattr(cli, "NargoBackend", FakeNargoBackend)

    cli.main(["prove", str(eml), "--dkim-key-record", str(record_path), "--circuit", str(circuit_path)])

    summary = json.loads(capsys.readouterr().out)
    assert summary["verified"] is True
    assert summary["outputs"]["event_name"] == "Foo Bar Meetup"
    assert summary["inputs"]["domain"] == "luma-mail.com"

    (backend,) = created
    assert backend.destroyed
    assert backend.program_dir == circuit_path.resolve().parents[1]
    assert backend.inputs["event_name_sequence"]["length"] == str(len("Foo Bar Meetup"))

    target = circuit_path.resolve().parent
    assert (target / "proof.bin").read_bytes() == b"\x07" * 16
    assert json.loads((target / "public_inputs.json").read_text()) == public_inputs


def test_prove_rejects_circuit_with_other_capacities(tmp_path, circuit_document, signed_email):
    eml, record_path = _write_signed_email(tmp_path, signed_email)
    circuit_path = tmp_path / "target" / "circuit.json"
    circuit_path.parent.mkdir(parents=True)
    circuit_path.write_text(json.dumps(circuit_document(event_name_capacity=128)))

    with pytest.raises(SystemExit, match="capacities"):
        cli.main(["prove", str(eml), "--dkim-key-record", str(record_path), "--circuit", str(circuit_path)])
