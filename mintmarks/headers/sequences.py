"""Narrow located header ranges down to the parts the circuit reads."""

from __future__ import annotations

import logging

from .locator import SequenceDescriptor

logger = logging.getLogger(__name__)

# Subject template used by the event platform's registration emails.
EVENT_NAME_PREFIX = "Thanks for joining "


def derive_value_sequence(header_sequence: SequenceDescriptor, field_name: str) -> SequenceDescriptor:
    """Range of the header value, i.e. everything after ``name:``.

    DKIM relaxed canonicalization lowercases the name and removes the
    whitespace around the colon, and the locator already stops before the
    line break, so the value is exactly the remainder after the prefix.  A
    header block that is not canonicalized (``Subject: hello``) would leave
    the leading space inside the value.
    """

    prefix_length = len(field_name) + 1
    if header_sequence.length < prefix_length:
        raise ValueError(
            f"Sequence of {header_sequence.length} bytes cannot hold the {field_name!r} prefix"
        )
    return SequenceDescriptor(
        index=header_sequence.index + prefix_length,
        length=header_sequence.length - prefix_length,
    )


def extract_event_name_sequence(
    buffer: bytes,
    subject_value_sequence: SequenceDescriptor,
    *,
    prefix: str = EVENT_NAME_PREFIX,
) -> SequenceDescriptor:
    """Range of the event name inside the subject value.

    The event name is whatever follows the first occurrence of ``prefix``.
    Subjects without the prefix fall back to the whole subject value; callers
    get a noisier event name rather than an error.
    """

    subject_value = subject_value_sequence.slice(buffer)
    offset = subject_value.find(prefix.encode("utf-8"))
    if offset == -1:
        logger.debug("Subject has no %r prefix, using the whole subject value", prefix)
        return subject_value_sequence

    name_offset = offset + len(prefix.encode("utf-8"))
    return SequenceDescriptor(
        index=subject_value_sequence.index + name_offset,
        length=subject_value_sequence.length - name_offset,
    )


__all__ = [
    "EVENT_NAME_PREFIX",
    "derive_value_sequence",
    "extract_event_name_sequence",
]
