import base64
from typing import Callable

import pytest

from mintmarks.circuit.inputs import CIRCUIT_INPUT_NAMES

CANONICAL_HEADERS = (
    b"from:Luma <calendar@luma-mail.com>\r\n"
    b"to:alice@example.com\r\n"
    b"subject:Registration Confirmation: Thanks for joining Foo Bar Meetup\r\n"
    b"date:Mon, 14 Oct 2024 18:03:12 +0000\r\n"
    b"dkim-signature:v=1; a=rsa-sha256; c=relaxed/relaxed; d=luma-mail.com; s=s1;"
    b" h=from:to:subject:date; bh=47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU=; b="
)

RAW_EMAIL = (
    b"From: Luma <calendar@luma-mail.com>\r\n"
    b"To: alice@example.com\r\n"
    b"Subject: Registration Confirmation: Thanks for joining Foo Bar Meetup\r\n"
    b"Date: Mon, 14 Oct 2024 18:03:12 +0000\r\n"
    b"Message-ID: <registration-1@luma-mail.com>\r\n"
    b"\r\n"
    b"See you there!\r\n"
)


def _bounded_vec(capacity: int) -> dict:
    return {
        "kind": "struct",
        "path": "std::collections::bounded_vec::BoundedVec",
        "fields": [
            {
                "name": "storage",
                "type": {"kind": "array", "length": capacity, "type": {"kind": "integer", "sign": "unsigned", "width": 8}},
            },
            {"name": "len", "type": {"kind": "integer", "sign": "unsigned", "width": 32}},
        ],
    }


@pytest.fixture
def canonical_headers() -> bytes:
    return CANONICAL_HEADERS


@pytest.fixture
def circuit_document() -> Callable[..., dict]:
    def _build(
        *,
        noir_version: str = "1.0.0-beta.5+0000000000000000000000000000000000000000",
        date_capacity: int = 64,
        event_name_capacity: int = 256,
        parameter_names=CIRCUIT_INPUT_NAMES,
    ) -> dict:
        return {
            "noir_version": noir_version,
            "hash": 1234,
            "bytecode": "H4sIAAAAAAAA/+3BAQ0AAADCoPdPbQ8HFAAAAAAAAAAAAAAAAAAAAAA=",
            "abi": {
                "parameters": [
                    {"name": name, "type": {"kind": "field"}, "visibility": "private"}
                    for name in parameter_names
                ],
                "return_type": {
                    "abi_type": {
                        "kind": "tuple",
                        "fields": [
                            {"kind": "field"},
                            {"kind": "field"},
                            _bounded_vec(date_capacity),
                            _bounded_vec(event_name_capacity),
                        ],
                    },
                    "visibility": "public",
                },
                "error_types": {},
            },
        }

    return _build


@pytest.fixture
def encode_public_inputs() -> Callable[..., list[str]]:
    """Lay out public inputs the way the prover flattens the circuit outputs."""

    def _vector(text: str, capacity: int) -> list[str]:
        data = text.encode("utf-8")
        return [str(byte) for byte in data] + ["0"] * (capacity - len(data)) + [str(len(data))]

    def _encode(
        pubkey_hash: str,
        nullifier: str,
        date_value: str,
        event_name: str,
        *,
        date_capacity: int = 64,
        event_name_capacity: int = 256,
    ) -> list[str]:
        return [pubkey_hash, nullifier] + _vector(date_value, date_capacity) + _vector(event_name, event_name_capacity)

    return _encode


@pytest.fixture(scope="session")
def signed_email() -> tuple[bytes, bytes]:
    """A relaxed/relaxed DKIM-signed email and the TXT record for its key."""

    dkim = pytest.importorskip("dkim")
    serialization = pytest.importorskip("cryptography.hazmat.primitives.serialization")
    rsa = pytest.importorskip("cryptography.hazmat.primitives.asymmetric.rsa")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_der = key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    record = b"v=DKIM1; k=rsa; p=" + base64.b64encode(public_der)

    signature = dkim.sign(
        RAW_EMAIL,
        b"s1",
        b"luma-mail.com",
        private_pem,
        canonicalize=(b"relaxed", b"relaxed"),
        include_headers=[b"from", b"to", b"subject", b"date"],
    )
    return signature + RAW_EMAIL, record
