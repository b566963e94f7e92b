"""Helpers for the raw email bytes that feed the extraction pipeline.

Emails arrive either as ``.eml`` files read from disk or as the
``raw`` field of a webmail API message, which is the RFC 5322 message encoded
with URL-safe Base64 and usually stripped of its padding.
"""

from __future__ import annotations

import base64
import binascii
from email.parser import BytesParser
from email.policy import default as default_policy

REQUIRED_HEADERS = ("From", "To", "Subject", "Date")


def decode_raw_message(raw: str | bytes) -> bytes:
    """Decode a base64url ``raw`` message payload into RFC 5322 bytes.

    Raises:
        ValueError: If the payload is not valid base64url.
    """

    if isinstance(raw, str):
        raw = raw.encode("ascii")
    raw = raw.strip()
    padded = raw + b"=" * (-len(raw) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (ValueError, binascii.Error) as exc:
        raise ValueError("Raw message payload is not valid base64url") from exc


def validate_eml(content: bytes) -> list[str]:
    """Return the problems that rule ``content`` out as proof input.

    An empty list means the message is DKIM-signed and carries every header
    the circuit needs.
    """

    if not content:
        return ["File is empty"]

    message = BytesParser(policy=default_policy).parsebytes(content, headersonly=True)
    problems: list[str] = []
    if message.get("DKIM-Signature") is None:
        problems.append("No DKIM signature found. This circuit requires DKIM-signed emails.")

    missing = [name for name in REQUIRED_HEADERS if message.get(name) is None]
    if missing:
        problems.append(f"Missing required headers: {', '.join(missing)}")
    return problems


__all__ = [
    "REQUIRED_HEADERS",
    "decode_raw_message",
    "validate_eml",
]
