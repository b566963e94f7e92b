"""DKIM verification and the signature/key inputs derived from it.

The circuit re-checks the RSA signature over the canonical signed header
block, so besides verifying the email we need that exact block plus the
signature and public key split into the limb representation of the circuit's
big-number library (120-bit little-endian limbs, with a Barrett reduction
parameter next to the modulus).

Only the header signature is checked; the body hash is not part of what the
circuit proves and is skipped unless ``check_body_hash`` is requested.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

import dkim
from dkim.canonicalization import CanonicalizationPolicy
from dkim.crypto import RSASSA_PKCS1_v1_5_verify
from dkim.util import InvalidTagValueList, parse_tag_value

from ..errors import BackendError
from .inputs import MAX_HEADER_LENGTH

logger = logging.getLogger(__name__)

LIMB_BITS = 120
SIGNATURE_HEADER = b"dkim-signature"
HASH_ALGORITHMS = {b"rsa-sha256": "sha256", b"rsa-sha1": "sha1"}

DnsFunc = Callable[..., Any]


def to_limbs(value: int, bits: int) -> list[str]:
    """Split ``value`` into ``ceil(bits / 120)`` little-endian hex limbs."""

    count = -(-bits // LIMB_BITS)
    mask = (1 << LIMB_BITS) - 1
    return [hex((value >> (LIMB_BITS * position)) & mask) for position in range(count)]


def redc_parameter(modulus: int) -> int:
    """Barrett reduction parameter ``2**(2*bits + 4) // modulus``."""

    bits = modulus.bit_length()
    return (1 << (2 * bits + 4)) // modulus


@dataclass(frozen=True)
class DkimResult:
    """Outcome of verifying one DKIM-Signature header."""

    headers: bytes
    domain: str
    selector: str
    signature: int
    modulus: int
    public_exponent: int
    canonicalization: str

    @property
    def key_bits(self) -> int:
        return self.modulus.bit_length()

    def base_inputs(self, max_header_length: int = MAX_HEADER_LENGTH) -> dict[str, Any]:
        """``signature``, ``header`` and ``pubkey`` circuit inputs.

        Raises:
            ValueError: If the signed header block exceeds ``max_header_length``.
        """

        if len(self.headers) > max_header_length:
            raise ValueError(
                f"Signed headers are {len(self.headers)} bytes, above the circuit maximum of {max_header_length}"
            )
        storage = list(self.headers) + [0] * (max_header_length - len(self.headers))
        return {
            "signature": to_limbs(self.signature, self.key_bits),
            "header": {
                "storage": [str(byte) for byte in storage],
                "len": str(len(self.headers)),
            },
            "pubkey": {
                "modulus": to_limbs(self.modulus, self.key_bits),
                "redc": to_limbs(redc_parameter(self.modulus), self.key_bits),
            },
        }


def _signed_header_block(
    headers: list[Any], signature_header: Any, tags: dict[bytes, bytes]
) -> bytes:
    policy = CanonicalizationPolicy.from_c_value(tags.get(b"c", b"simple/simple"))
    include_headers = [name.lower() for name in re.split(rb"\s*:\s*", tags[b"h"].strip())]

    canonical = policy.canonicalize_headers(headers)
    signed = dkim.select_headers(canonical, include_headers)
    emptied = (signature_header[0], dkim.RE_BTAG.sub(b"\\1", signature_header[1]))
    (sig_name, sig_value), = policy.canonicalize_headers([emptied])

    block = b"".join(name + b":" + value for name, value in signed)
    return block + sig_name + b":" + sig_value.rstrip()


def verify_dkim(
    message: bytes,
    *,
    dnsfunc: DnsFunc | None = None,
    check_body_hash: bool = False,
) -> DkimResult:
    """Verify the first DKIM signature of ``message`` and rebuild its inputs.

    Args:
        message: Raw RFC 5322 message.
        dnsfunc: TXT record lookup with dkimpy's signature
            ``dnsfunc(name, timeout=...)``; defaults to dkimpy's resolver.
        check_body_hash: Also require the ``bh=`` body hash to match.

    Raises:
        BackendError: If the message has no usable signature, the key cannot
            be fetched or the signature does not verify.
    """

    dns_kwargs = {} if dnsfunc is None else {"dnsfunc": dnsfunc}
    try:
        headers, _body = dkim.rfc822_parse(message)
        signature_header = next(
            (header for header in headers if header[0].lower() == SIGNATURE_HEADER), None
        )
        if signature_header is None:
            raise BackendError("Message has no DKIM-Signature header")

        tags = parse_tag_value(signature_header[1])
        domain = tags[b"d"].strip()
        selector = tags[b"s"].strip()
        algorithm = tags.get(b"a", b"rsa-sha256")
        if algorithm not in HASH_ALGORITHMS:
            raise BackendError(f"Unsupported DKIM algorithm {algorithm.decode('ascii', 'replace')}")

        record_name = selector + b"._domainkey." + domain + b"."
        public_key = dkim.load_pk_from_dns(record_name, **dns_kwargs)[0]
        if not isinstance(public_key, dict) or "modulus" not in public_key:
            raise BackendError("Only RSA DKIM keys are supported")

        block = _signed_header_block(headers, signature_header, tags)
        signature_bytes = base64.b64decode(re.sub(rb"\s+", b"", tags[b"b"]))
        hasher = hashlib.new(HASH_ALGORITHMS[algorithm], block)
        verified = RSASSA_PKCS1_v1_5_verify(hasher, signature_bytes, public_key)
        if verified and check_body_hash:
            verified = dkim.verify(message, **dns_kwargs)
    except (dkim.DKIMException, InvalidTagValueList) as exc:
        raise BackendError(f"DKIM verification error: {exc}") from exc
    except KeyError as exc:
        raise BackendError(f"DKIM-Signature header missing tag {exc}") from exc

    if not verified:
        raise BackendError("DKIM signature verification failed")

    result = DkimResult(
        headers=block,
        domain=domain.decode("ascii"),
        selector=selector.decode("ascii"),
        signature=int.from_bytes(signature_bytes, "big"),
        modulus=public_key["modulus"],
        public_exponent=public_key["publicExponent"],
        canonicalization=tags.get(b"c", b"simple/simple").decode("ascii"),
    )
    logger.info(
        "DKIM signature verified for %s (selector %s, %d-bit key, %d header bytes)",
        result.domain,
        result.selector,
        result.key_bits,
        len(result.headers),
    )
    return result


__all__ = [
    "LIMB_BITS",
    "DkimResult",
    "redc_parameter",
    "to_limbs",
    "verify_dkim",
]
