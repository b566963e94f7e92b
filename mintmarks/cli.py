"""Command line entrypoint for preparing inputs, proving and decoding."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from .circuit.artifact import load_circuit
from .circuit.codec import DATE_CAPACITY, EVENT_NAME_CAPACITY, parse_public_inputs, public_inputs_to_hex
from .circuit.dkim_inputs import verify_dkim
from .circuit.inputs import MAX_HEADER_LENGTH, CircuitInputs, assemble_circuit_inputs, to_prover_toml
from .errors import MintmarksError
from .headers.email_source import validate_eml
from .prover.backend import HASH_VARIANTS, KECCAK, NargoBackend
from .prover.driver import DirectorySink, generate_and_verify

logger = logging.getLogger(__name__)


@dataclass
class ProverConfig:
    command: str
    eml: Path | None
    circuit: Path | None
    program_dir: Path | None
    output: Path | None
    output_dir: Path | None
    output_format: str
    public_inputs: Path | None
    dkim_key_record: Path | None
    max_header_length: int
    date_capacity: int
    event_name_capacity: int
    hash_variant: str
    nargo_binary: str
    bb_binary: str
    timeout: float | None
    verbose: bool


def _static_dnsfunc(record_path: Path) -> Callable[..., bytes]:
    record = record_path.read_bytes().strip()

    def dnsfunc(name: bytes, timeout: int = 5) -> bytes:
        return record

    return dnsfunc


def _parse_args(argv: Sequence[str] | None) -> ProverConfig:
    parser = argparse.ArgumentParser(description="Mintmarks email proof toolkit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def _email_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("eml", type=Path, help="DKIM-signed .eml file")
        sub.add_argument(
            "--dkim-key-record",
            type=Path,
            help="File holding the selector's DKIM TXT record (skips the DNS lookup)",
        )
        sub.add_argument("--max-header-length", type=int, default=MAX_HEADER_LENGTH)

    prepare = subparsers.add_parser("prepare", help="Write the circuit inputs for an email")
    _email_arguments(prepare)
    prepare.add_argument("--output", type=Path, default=Path("Prover.toml"))
    prepare.add_argument("--format", dest="output_format", choices=("toml", "json"), default="toml")

    prove = subparsers.add_parser("prove", help="Generate and verify a proof for an email")
    _email_arguments(prove)
    prove.add_argument("--circuit", type=Path, required=True, help="Compiled circuit JSON")
    prove.add_argument("--program-dir", type=Path, help="Noir project directory (default: circuit's project)")
    prove.add_argument("--output-dir", type=Path, help="Where proof.bin and public_inputs.json go")
    prove.add_argument("--hash-variant", choices=HASH_VARIANTS, default=KECCAK)
    prove.add_argument("--nargo-binary", default="nargo")
    prove.add_argument("--bb-binary", default="bb")
    prove.add_argument("--timeout", type=float, help="Seconds before the proving run is abandoned")

    decode = subparsers.add_parser("decode", help="Decode a public_inputs.json file")
    decode.add_argument("public_inputs", type=Path)

    for sub in (prove, decode):
        sub.add_argument("--date-capacity", type=int, default=DATE_CAPACITY)
        sub.add_argument("--event-name-capacity", type=int, default=EVENT_NAME_CAPACITY)

    args = parser.parse_args(argv)
    circuit = getattr(args, "circuit", None)
    program_dir = getattr(args, "program_dir", None)
    output_dir = getattr(args, "output_dir", None)
    if circuit is not None:
        # Compiled artifacts live in <project>/target/<name>.json.
        program_dir = program_dir or circuit.resolve().parents[1]
        output_dir = output_dir or circuit.resolve().parent

    return ProverConfig(
        command=args.command,
        eml=getattr(args, "eml", None),
        circuit=circuit,
        program_dir=program_dir,
        output=getattr(args, "output", None),
        output_dir=output_dir,
        output_format=getattr(args, "output_format", "toml"),
        public_inputs=getattr(args, "public_inputs", None),
        dkim_key_record=getattr(args, "dkim_key_record", None),
        max_header_length=getattr(args, "max_header_length", MAX_HEADER_LENGTH),
        date_capacity=getattr(args, "date_capacity", DATE_CAPACITY),
        event_name_capacity=getattr(args, "event_name_capacity", EVENT_NAME_CAPACITY),
        hash_variant=getattr(args, "hash_variant", KECCAK),
        nargo_binary=getattr(args, "nargo_binary", "nargo"),
        bb_binary=getattr(args, "bb_binary", "bb"),
        timeout=getattr(args, "timeout", None),
        verbose=args.verbose,
    )


def _build_inputs(config: ProverConfig) -> CircuitInputs:
    assert config.eml is not None  # Enforced by argument parsing.
    email = config.eml.read_bytes()
    logger.info("Read %s (%d bytes)", config.eml, len(email))

    problems = validate_eml(email)
    if problems:
        raise SystemExit("; ".join(problems))

    dnsfunc = _static_dnsfunc(config.dkim_key_record) if config.dkim_key_record else None
    dkim_result = verify_dkim(email, dnsfunc=dnsfunc)
    return assemble_circuit_inputs(dkim_result, max_header_length=config.max_header_length)


def _prepare(config: ProverConfig) -> dict[str, Any]:
    inputs = _build_inputs(config)
    assert config.output is not None
    if config.output_format == "json":
        config.output.write_text(json.dumps(inputs.to_dict(), indent=2))
    else:
        event_name = inputs.text(inputs.sequences.event_name)
        comments = [
            "Generated Prover.toml for Mintmarks",
            f"Domain: {inputs.domain or 'unknown'}",
            f"Event: {event_name.strip()}",
        ]
        config.output.write_text(to_prover_toml(inputs.to_dict(), comments))

    summary = inputs.summary()
    summary["output"] = str(config.output)
    return summary


def _prove(config: ProverConfig) -> dict[str, Any]:
    assert config.circuit is not None and config.program_dir is not None and config.output_dir is not None
    circuit = load_circuit(config.circuit)
    circuit.check_layout(date_capacity=config.date_capacity, event_name_capacity=config.event_name_capacity)
    logger.info("Circuit loaded: %s (Noir %s)", config.circuit, circuit.noir_version)

    inputs = _build_inputs(config)
    sink = DirectorySink(config.output_dir)

    def backend_factory(artifact):
        return NargoBackend(
            artifact,
            program_dir=config.program_dir,
            nargo_binary=config.nargo_binary,
            bb_binary=config.bb_binary,
        )

    result = asyncio.run(
        generate_and_verify(
            circuit,
            inputs,
            backend_factory,
            hash_variant=config.hash_variant,
            sink=sink,
            timeout=config.timeout,
            date_capacity=config.date_capacity,
            event_name_capacity=config.event_name_capacity,
        )
    )

    summary = result.to_dict()
    summary["inputs"] = inputs.summary()
    summary["artifacts"] = {
        "proof": str(sink.proof_path),
        "public_inputs": str(sink.public_inputs_path),
    }
    return summary


def _decode(config: ProverConfig) -> dict[str, Any]:
    assert config.public_inputs is not None
    with config.public_inputs.open("r", encoding="utf-8") as handle:
        public_inputs = json.load(handle)
    outputs = parse_public_inputs(
        public_inputs,
        date_capacity=config.date_capacity,
        event_name_capacity=config.event_name_capacity,
    )
    summary = outputs.to_dict()
    summary["public_inputs_hex"] = public_inputs_to_hex(public_inputs)
    return summary


COMMANDS = {
    "prepare": _prepare,
    "prove": _prove,
    "decode": _decode,
}


def main(argv: Sequence[str] | None = None) -> None:
    config = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        summary = COMMANDS[config.command](config)
    except (MintmarksError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc
    except asyncio.TimeoutError as exc:
        raise SystemExit(f"Proving did not finish within {config.timeout}s") from exc

    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
