"""Decoding of the circuit's bounded-length outputs.

The circuit returns ``(pubkey_hash, email_nullifier, date, event_name)``
where ``date`` and ``event_name`` are ``BoundedVec<u8, N>`` values: ``N``
storage bytes plus the number of bytes actually used.  In the flat public
input array produced by the prover each vector is laid out as its ``N``
storage elements followed by its length::

    [pubkey_hash, email_nullifier,
     date.storage[0..64], date.len,
     event_name.storage[0..256], event_name.len]

The capacities must be those the circuit was compiled with; a wrong capacity
shifts every element after it.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

from dateutil import parser as date_parser

DATE_CAPACITY = 64
EVENT_NAME_CAPACITY = 256
FIELD_HEX_WIDTH = 64


def field_to_int(value: Any) -> int:
    """Convert a field element (int, decimal string or ``0x`` hex) to int."""

    if isinstance(value, bool):
        raise ValueError("Boolean is not a field element")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text, 10)


def _decode_bytes(elements: Sequence[Any], length: int) -> str:
    if length <= 0:
        return ""
    values = [field_to_int(element) for element in elements[:length]]
    for position, value in enumerate(values):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Vector element {position} is {value}, not a byte")
    return bytes(values).decode("utf-8", errors="replace")


def decode_bounded_vec(value: Any) -> str:
    """Decode a bounded vector returned by circuit execution.

    Two shapes are accepted: a mapping with ``storage`` and ``len`` (the form
    the Noir executor returns) and a flat sequence whose first element is the
    length.  Anything malformed decodes to ``""``; this is meant for display,
    not for values that feed a proof.
    """

    try:
        if isinstance(value, Mapping):
            if "storage" not in value or "len" not in value:
                return ""
            storage = value["storage"]
            if isinstance(storage, (str, bytes)) or not isinstance(storage, Sequence):
                return ""
            return _decode_bytes(storage, field_to_int(value["len"]))

        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and value:
            return _decode_bytes(value[1:], field_to_int(value[0]))
    except (ValueError, TypeError):
        return ""
    return ""


_PRINTED_TOKEN_RE = re.compile(
    r'\s*(?:(?P<punct>[()\[\]{},:])|(?P<string>"(?:[^"\\]|\\.)*")|(?P<atom>(?:::|[^\s()\[\]{},:"])+))'
)
_CLOSERS = {"(": ")", "[": "]"}


def _printed_tokens(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _PRINTED_TOKEN_RE.match(text, position)
        if match is None or match.end() == position:
            raise ValueError(f"Unexpected character {text[position]!r} at {position}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _PrintedValueParser:
    def __init__(self, tokens: list[tuple[str, str]]) -> None:
        self.tokens = tokens
        self.position = 0

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def _take(self, expected: str | None = None) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ValueError("Printed value ends early")
        if expected is not None and token[1] != expected:
            raise ValueError(f"Expected {expected!r}, found {token[1]!r}")
        self.position += 1
        return token

    def _items(self, closer: str) -> list[Any]:
        items: list[Any] = []
        while True:
            token = self._peek()
            if token is not None and token[1] == closer:
                self._take()
                return items
            items.append(self.value())
            token = self._take()
            if token[1] == closer:
                return items
            if token[1] != ",":
                raise ValueError(f"Expected ',' or {closer!r}, found {token[1]!r}")

    def _fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        while True:
            kind, name = self._take()
            if name == "}":
                return fields
            if kind != "atom":
                raise ValueError(f"Expected a field name, found {name!r}")
            self._take(":")
            fields[name] = self.value()
            _kind, separator = self._take()
            if separator == "}":
                return fields
            if separator != ",":
                raise ValueError(f"Expected ',' or '}}', found {separator!r}")

    def value(self) -> Any:
        kind, text = self._take()
        if text in _CLOSERS:
            return self._items(_CLOSERS[text])
        if kind == "string":
            return json.loads(text)
        if kind == "atom":
            following = self._peek()
            if following is not None and following[1] == "{":
                self._take()
                return self._fields()
            return text
        raise ValueError(f"Unexpected {text!r}")


def parse_printed_value(text: str) -> Any:
    """Parse a value as ``nargo execute`` prints it.

    ``(0x2a, 0x0b, BoundedVec { storage: [72, 105, 0], len: 2 })`` becomes
    ``["0x2a", "0x0b", {"storage": ["72", "105", "0"], "len": "2"}]``: tuples
    and arrays become lists, structs become mappings (the struct name is
    dropped), strings are unquoted and every other scalar is kept as its text.
    The bounded vectors in the result are what :func:`decode_bounded_vec`
    accepts.

    Raises:
        ValueError: If ``text`` is not a single well-formed printed value.
    """

    tokens = _printed_tokens(text)
    if not tokens:
        raise ValueError("Printed value is empty")
    parser = _PrintedValueParser(tokens)
    value = parser.value()
    if parser.position != len(tokens):
        raise ValueError(f"Unexpected {tokens[parser.position][1]!r} after printed value")
    return value


@dataclass(frozen=True)
class PublicOutputs:
    """Decoded public outputs of a Mintmarks proof."""

    pubkey_hash: str
    email_nullifier: str
    date_value: str
    event_name: str

    def event_datetime(self) -> datetime | None:
        """Parse the email ``Date`` value, or ``None`` when it is not a date."""

        if not self.date_value:
            return None
        try:
            return date_parser.parse(self.date_value)
        except (ValueError, OverflowError):
            return None

    def to_dict(self) -> dict[str, Any]:
        parsed = self.event_datetime()
        return {
            "pubkey_hash": self.pubkey_hash,
            "email_nullifier": self.email_nullifier,
            "date_value": self.date_value,
            "date_iso": parsed.isoformat() if parsed else None,
            "event_name": self.event_name,
        }


def public_input_count(
    *, date_capacity: int = DATE_CAPACITY, event_name_capacity: int = EVENT_NAME_CAPACITY
) -> int:
    return 2 + (date_capacity + 1) + (event_name_capacity + 1)


def parse_public_inputs(
    public_inputs: Sequence[Any],
    *,
    date_capacity: int = DATE_CAPACITY,
    event_name_capacity: int = EVENT_NAME_CAPACITY,
) -> PublicOutputs:
    """Decode the flat public input array into its four values.

    Raises:
        ValueError: If the array is shorter than the layout requires, a
            length element is not a number or a storage element used by the
            length is not a byte.
    """

    expected = public_input_count(date_capacity=date_capacity, event_name_capacity=event_name_capacity)
    if len(public_inputs) < expected:
        raise ValueError(f"Expected {expected} public inputs, got {len(public_inputs)}")

    index = 0
    pubkey_hash = str(public_inputs[index])
    index += 1
    email_nullifier = str(public_inputs[index])
    index += 1

    date_storage = public_inputs[index : index + date_capacity]
    index += date_capacity
    date_length = min(field_to_int(public_inputs[index]), date_capacity)
    index += 1

    event_storage = public_inputs[index : index + event_name_capacity]
    index += event_name_capacity
    event_length = min(field_to_int(public_inputs[index]), event_name_capacity)

    return PublicOutputs(
        pubkey_hash=pubkey_hash,
        email_nullifier=email_nullifier,
        date_value=_decode_bytes(date_storage, date_length),
        event_name=_decode_bytes(event_storage, event_length),
    )


def public_inputs_to_hex(public_inputs: Sequence[Any]) -> list[str]:
    """Render field elements as ``0x``-prefixed 32-byte hex for calldata."""

    return ["0x" + format(field_to_int(value), "x").rjust(FIELD_HEX_WIDTH, "0") for value in public_inputs]


__all__ = [
    "DATE_CAPACITY",
    "EVENT_NAME_CAPACITY",
    "PublicOutputs",
    "decode_bounded_vec",
    "field_to_int",
    "parse_printed_value",
    "parse_public_inputs",
    "public_input_count",
    "public_inputs_to_hex",
]
