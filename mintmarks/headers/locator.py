"""Locate header fields inside a DKIM-canonicalized header block.

The proving circuit receives the signed header block as a fixed-width byte
array together with ``(index, length)`` pairs pointing at the fields it
should read.  The circuit checks those ranges against the bytes it was given,
so the offsets computed here have to be exact: the range covers
``name:value`` and stops right before the line break that ends the header.

Three details matter for correctness:

* A header starts at offset 0 or right after a line feed.  The circuit
  rejects ranges that begin anywhere else, so a name that merely appears
  inside another header (``x-original-date:``, an ARC ``h=`` list) is skipped.
* Header runs are delimited by *unfolded* line breaks.  A ``\\n`` (optionally
  preceded by ``\\r``) followed by a space or a tab is a folded continuation
  and belongs to the same header.
* The DKIM-Signature header lists the signed header names in its ``h=`` tag
  (``h=from:to:subject:date``).  Those look exactly like header starts, so any
  candidate that begins inside a DKIM-Signature header is discarded.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Sequence

from ..errors import FieldNotFound

logger = logging.getLogger(__name__)

CR = 0x0D
LF = 0x0A
FOLD_BYTES = frozenset((0x20, 0x09))

DKIM_SIGNATURE_RE = re.compile(rb"^dkim-signature:", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class SequenceDescriptor:
    """Byte range ``[index, index + length)`` inside a header buffer."""

    index: int
    length: int

    def __post_init__(self) -> None:
        if self.index < 0 or self.length < 0:
            raise ValueError(f"Sequence bounds must be non-negative: {self.index}, {self.length}")

    @property
    def end(self) -> int:
        return self.index + self.length

    def slice(self, buffer: bytes) -> bytes:
        if self.end > len(buffer):
            raise ValueError(
                f"Sequence {self.index}+{self.length} exceeds buffer of {len(buffer)} bytes"
            )
        return bytes(buffer[self.index : self.end])

    def to_dict(self) -> dict[str, str]:
        """Circuit input form: both values as decimal strings."""

        return {"index": str(self.index), "length": str(self.length)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SequenceDescriptor":
        return cls(index=int(data["index"]), length=int(data["length"]))


@dataclass(frozen=True)
class DkimRange:
    """Span of one DKIM-Signature header, both ends inclusive for exclusion."""

    start: int
    end: int

    def contains(self, offset: int) -> bool:
        return self.start <= offset <= self.end


def unfolded_line_end(buffer: bytes, start: int) -> int | None:
    """Return the offset of the first unfolded line break at or after ``start``.

    The returned offset points at the ``\\r`` of a ``\\r\\n`` pair, or at the
    ``\\n`` of a bare line feed, so slicing up to it never includes the line
    break.  ``None`` means the buffer ends without an unfolded line break.
    """

    size = len(buffer)
    position = start
    while True:
        newline = buffer.find(b"\n", position)
        if newline == -1:
            return None
        if newline + 1 < size and buffer[newline + 1] in FOLD_BYTES:
            position = newline + 1
            continue
        if newline > start and buffer[newline - 1] == CR:
            return newline - 1
        return newline


def find_dkim_ranges(buffer: bytes) -> list[DkimRange]:
    """Spans of every DKIM-Signature header in ``buffer``.

    The signature header is normally the last one in a canonical header block
    and carries no trailing line break, so a range may also end at the end of
    the buffer.
    """

    ranges: list[DkimRange] = []
    for match in DKIM_SIGNATURE_RE.finditer(buffer):
        end = unfolded_line_end(buffer, match.end())
        ranges.append(DkimRange(match.start(), len(buffer) if end is None else end))
    return ranges


def _at_line_start(buffer: bytes, offset: int) -> bool:
    return offset == 0 or buffer[offset - 1] == LF


def _candidate_starts(buffer: bytes, field_name: str, separator: str) -> Iterator[int]:
    # First character in either case, remainder lowercase (canonical form).
    first = field_name[0]
    heads = {ord(first.lower()), ord(first.upper())}
    tail = (field_name[1:].lower() + separator).encode("ascii")

    position = 1
    while True:
        found = buffer.find(tail, position)
        if found == -1:
            return
        start = found - 1
        if buffer[start] in heads and _at_line_start(buffer, start):
            yield start
        position = found + 1


def list_header_names(buffer: bytes) -> list[str]:
    """Names of the top-level headers in ``buffer``, for diagnostics."""

    names: list[str] = []
    for line in bytes(buffer).splitlines():
        if not line or line[:1] in (b" ", b"\t"):
            continue
        name, colon, _ = line.partition(b":")
        if colon:
            names.append(name.decode("ascii", errors="replace"))
    return names


def locate_header_sequence(
    buffer: bytes,
    field_name: str,
    *,
    separators: Sequence[str] = (":",),
) -> SequenceDescriptor:
    """Find ``field_name`` in ``buffer`` and return its full header range.

    Args:
        buffer: Canonicalized header block.
        field_name: Header name, e.g. ``"date"`` or ``"subject"``.
        separators: Name/value separators tried in priority order.  The
            default matches DKIM canonical form only.

    Returns:
        Range covering ``name:value`` without the terminating line break.

    Raises:
        FieldNotFound: If every occurrence lies inside a DKIM-Signature header
            or the field does not occur at all.
    """

    if not field_name:
        raise ValueError("field_name must be a non-empty header name")
    if not field_name.isascii():
        raise ValueError(f"Header names are ASCII, got {field_name!r}")

    dkim_ranges = find_dkim_ranges(buffer)
    for separator in separators:
        prefix_length = len(field_name) + len(separator)
        for start in _candidate_starts(buffer, field_name, separator):
            if any(dkim_range.contains(start) for dkim_range in dkim_ranges):
                logger.debug("Skipping %s candidate at %d inside DKIM-Signature", field_name, start)
                continue
            end = unfolded_line_end(buffer, start + prefix_length)
            if end is None:
                continue
            sequence = SequenceDescriptor(start, end - start)
            logger.debug("Located %s header at %d (%d bytes)", field_name, sequence.index, sequence.length)
            return sequence

    raise FieldNotFound(field_name, list_header_names(buffer))


__all__ = [
    "SequenceDescriptor",
    "DkimRange",
    "unfolded_line_end",
    "find_dkim_ranges",
    "list_header_names",
    "locate_header_sequence",
]
