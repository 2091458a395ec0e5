import base64
from datetime import datetime, timedelta

import pytest

from src.attendance_engine.attendance_engine.core.enums import TokenFailure
from src.attendance_engine.attendance_engine.qr.codec import TokenCodec

ISSUED = datetime(2026, 3, 2, 9, 0, 0)


def _codec(**kwargs) -> TokenCodec:
    return TokenCodec("unit-test-key", **kwargs)


@pytest.mark.parametrize("age_seconds", [0, 29, 30])
def test_token_accepted_up_to_ttl(age_seconds):
    codec = _codec()
    issued = codec.issue(7, now=ISSUED)

    result = codec.validate(issued.token, 7, now=ISSUED + timedelta(seconds=age_seconds))

    assert result.ok is True
    assert result.reason is None
    assert result.business_id == 7


def test_token_expired_after_ttl():
    codec = _codec()
    issued = codec.issue(7, now=ISSUED)

    result = codec.validate(issued.token, 7, now=ISSUED + timedelta(seconds=31))

    assert result.ok is False
    assert result.reason == TokenFailure.EXPIRED


def test_issue_reports_expiry():
    issued = _codec(ttl_seconds=45).issue(3, now=ISSUED)

    assert issued.business_id == 3
    assert issued.issued_at == ISSUED
    assert issued.expires_at == ISSUED + timedelta(seconds=45)


def test_tokens_are_unique_per_issue():
    codec = _codec()

    assert codec.issue(1, now=ISSUED).token != codec.issue(1, now=ISSUED).token


def test_wrong_business():
    codec = _codec()
    issued = codec.issue(7, now=ISSUED)

    result = codec.validate(issued.token, 8, now=ISSUED + timedelta(seconds=5))

    assert result.reason == TokenFailure.WRONG_BUSINESS


def test_expiry_is_checked_before_business():
    codec = _codec()
    issued = codec.issue(7, now=ISSUED)

    result = codec.validate(issued.token, 8, now=ISSUED + timedelta(minutes=5))

    assert result.reason == TokenFailure.EXPIRED


def test_tampered_signature_is_invalid_format():
    codec = _codec()
    payload, signature = codec.issue(7, now=ISSUED).token.split(".")
    forged = payload + "." + ("A" if signature[0] != "A" else "B") + signature[1:]

    assert codec.validate(forged, 7, now=ISSUED).reason == TokenFailure.INVALID_FORMAT


def test_tampered_payload_is_invalid_format():
    codec = _codec()
    payload, signature = codec.issue(7, now=ISSUED).token.split(".")
    _, issued_ms, nonce = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)).decode().split(":")
    other = base64.urlsafe_b64encode(f"8:{issued_ms}:{nonce}".encode()).rstrip(b"=").decode()

    assert codec.validate(f"{other}.{signature}", 8, now=ISSUED).reason == TokenFailure.INVALID_FORMAT


def test_token_signed_with_other_key_is_invalid_format():
    issued = TokenCodec("another-key").issue(7, now=ISSUED)

    assert _codec().validate(issued.token, 7, now=ISSUED).reason == TokenFailure.INVALID_FORMAT


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c", ".", "abc.", None, 12345, "é.abc", "abc.é"])
def test_garbage_is_invalid_format(token):
    assert _codec().validate(token, 7, now=ISSUED).reason == TokenFailure.INVALID_FORMAT


def test_token_from_the_future_beyond_skew_is_invalid_format():
    codec = _codec()
    issued = codec.issue(7, now=ISSUED)

    assert codec.validate(issued.token, 7, now=ISSUED - timedelta(seconds=4)).ok is True
    assert codec.validate(issued.token, 7, now=ISSUED - timedelta(seconds=6)).reason == TokenFailure.INVALID_FORMAT


def test_empty_signing_key_is_a_configuration_error():
    with pytest.raises(ValueError):
        TokenCodec("")


def test_non_ascii_in_a_real_token_is_invalid_format():
    codec = _codec()
    payload, signature = codec.issue(7, now=ISSUED).token.split(".")

    assert codec.validate(f"{payload}é.{signature}", 7, now=ISSUED).reason == TokenFailure.INVALID_FORMAT
    assert codec.validate(f"{payload}.{signature}ü", 7, now=ISSUED).reason == TokenFailure.INVALID_FORMAT
