import base64

import pytest

from mintmarks.headers.email_source import decode_raw_message, validate_eml

from conftest import RAW_EMAIL


def test_decode_unpadded_base64url():
    payload = base64.urlsafe_b64encode(RAW_EMAIL).rstrip(b"=").decode("ascii")

    assert decode_raw_message(payload) == RAW_EMAIL
    assert decode_raw_message(payload + "\n") == RAW_EMAIL


def test_decode_keeps_url_safe_alphabet():
    data = b"\xfb\xff\xfe"

    assert decode_raw_message(base64.urlsafe_b64encode(data)) == data


def test_decode_rejects_garbage():
    with pytest.raises(ValueError, match="base64url"):
        decode_raw_message("not base64 at all!")


def test_validate_reports_missing_signature():
    problems = validate_eml(RAW_EMAIL)

    assert problems == ["No DKIM signature found. This circuit requires DKIM-signed emails."]


def test_validate_reports_missing_headers():
    content = b"DKIM-Signature: v=1; d=example.com; s=s1; b=abc\r\nFrom: a@example.com\r\n\r\nbody\r\n"

    problems = validate_eml(content)

    assert problems == ["Missing required headers: To, Subject, Date"]


def test_validate_empty_file():
    assert validate_eml(b"") == ["File is empty"]


def test_validate_accepts_signed_email(signed_email):
    message, _record = signed_email

    assert validate_eml(message) == []
