"""Header location and sequence derivation for the Mintmarks circuit."""

from .email_source import decode_raw_message, validate_eml
from .locator import (
    DkimRange,
    SequenceDescriptor,
    find_dkim_ranges,
    list_header_names,
    locate_header_sequence,
    unfolded_line_end,
)
from .sequences import EVENT_NAME_PREFIX, derive_value_sequence, extract_event_name_sequence

__all__ = [
    "DkimRange",
    "SequenceDescriptor",
    "find_dkim_ranges",
    "list_header_names",
    "locate_header_sequence",
    "unfolded_line_end",
    "EVENT_NAME_PREFIX",
    "derive_value_sequence",
    "extract_event_name_sequence",
    "decode_raw_message",
    "validate_eml",
]
